from sqlalchemy import Column, Float, Integer, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Issue(Base):
    __tablename__ = "issues"

    id = Column(Text, primary_key=True, comment="Tracker issue id")
    identifier = Column(Text, nullable=False, comment="Human key, e.g. ENG-123")
    title = Column(Text, nullable=False)
    team_id = Column(Text, nullable=False)
    team_name = Column(Text, nullable=False)
    team_key = Column(Text, nullable=False, index=True)
    state_id = Column(Text, nullable=False)
    state_name = Column(Text, nullable=False)
    state_type = Column(
        Text,
        nullable=False,
        index=True,
        comment="backlog|unstarted|started|completed|canceled",
    )
    assignee_id = Column(Text, index=True)
    assignee_name = Column(Text)
    priority = Column(Integer, nullable=False, default=0, comment="0 = no priority")
    estimate = Column(Float)
    last_comment_at = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    completed_at = Column(Text)
    labels = Column(Text, comment="JSON list of labels")
    project_id = Column(Text, index=True)
    project_name = Column(Text)
    project_state = Column(Text)
    project_health = Column(Text)
    project_updated_at = Column(Text)
    project_lead_name = Column(Text)
    project_target_date = Column(Text)
    project_estimated_end_date = Column(Text)


class Project(Base):
    __tablename__ = "projects"

    project_id = Column(Text, primary_key=True)
    project_name = Column(Text, nullable=False)
    project_state = Column(Text)
    project_state_category = Column(Text, comment="e.g. started, inProgress")
    project_health = Column(Text, comment="Human-entered health, free text")
    project_lead_name = Column(Text)
    target_date = Column(Text)
    estimated_end_date = Column(Text)
    teams = Column(Text, nullable=False, default="[]", comment="JSON list of team keys")
    engineers = Column(
        Text, nullable=False, default="[]", comment="JSON list of assignee names"
    )
    total_issues = Column(Integer, nullable=False, default=0)
    completed_issues = Column(Integer, nullable=False, default=0)
    in_progress_issues = Column(Integer, nullable=False, default=0)
    missing_lead = Column(Integer, nullable=False, default=0)
    is_stale_update = Column(Integer, nullable=False, default=0)
    has_status_mismatch = Column(Integer, nullable=False, default=0)
    missing_health = Column(Integer, nullable=False, default=0)
    has_date_discrepancy = Column(Integer, nullable=False, default=0)


class Engineer(Base):
    __tablename__ = "engineers"

    assignee_id = Column(Text, primary_key=True)
    assignee_name = Column(Text, nullable=False)
    team_ids = Column(Text, nullable=False, default="[]")
    team_names = Column(Text, nullable=False, default="[]", comment="JSON list")
    wip_issue_count = Column(Integer, nullable=False, default=0)
    wip_limit_violation = Column(Integer, nullable=False, default=0)
    multi_project_violation = Column(Integer, nullable=False, default=0)
    missing_estimate_count = Column(Integer, nullable=False, default=0)
    missing_priority_count = Column(Integer, nullable=False, default=0)
    no_recent_comment_count = Column(Integer, nullable=False, default=0)
    wip_age_violation_count = Column(Integer, nullable=False, default=0)


class SyncMetadata(Base):
    __tablename__ = "sync_metadata"

    id = Column(Integer, primary_key=True, default=1)
    last_sync_time = Column(Text)
    sync_status = Column(Text, nullable=False, default="idle")
    sync_error = Column(Text)
