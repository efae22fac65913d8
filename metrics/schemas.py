from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, TypedDict, Union
from typing_extensions import NotRequired


class IssueRow(TypedDict):
    id: str
    identifier: str
    title: str
    team_id: str
    team_name: str
    team_key: str
    state_id: str
    state_name: str
    state_type: str  # backlog|unstarted|started|completed|canceled
    assignee_id: Optional[str]
    assignee_name: Optional[str]
    priority: int  # 0 = none
    estimate: Optional[float]
    created_at: str
    updated_at: str
    completed_at: NotRequired[Optional[str]]
    last_comment_at: NotRequired[Optional[str]]
    # JSON-encoded list of label names or {name, parent: {name}} objects.
    labels: NotRequired[Optional[str]]
    project_id: NotRequired[Optional[str]]
    project_name: NotRequired[Optional[str]]
    project_state: NotRequired[Optional[str]]
    project_health: NotRequired[Optional[str]]
    project_updated_at: NotRequired[Optional[str]]
    project_lead_name: NotRequired[Optional[str]]
    project_target_date: NotRequired[Optional[str]]
    project_estimated_end_date: NotRequired[Optional[str]]


class ProjectRow(TypedDict):
    project_id: str
    project_name: str
    project_state: Optional[str]
    project_state_category: Optional[str]
    project_health: Optional[str]  # free text entered by a human
    project_lead_name: Optional[str]
    target_date: Optional[str]
    estimated_end_date: Optional[str]
    teams: str  # JSON list of team keys
    engineers: str  # JSON list of assignee names
    total_issues: int
    completed_issues: int
    in_progress_issues: int
    # 0/1 hygiene flags computed during sync.
    missing_lead: int
    is_stale_update: int
    has_status_mismatch: int
    missing_health: int
    has_date_discrepancy: int


class EngineerRow(TypedDict):
    assignee_id: str
    assignee_name: str
    team_ids: NotRequired[str]
    team_names: str  # JSON list of team names
    wip_issue_count: int
    wip_limit_violation: int
    multi_project_violation: int
    missing_estimate_count: int
    missing_priority_count: int
    no_recent_comment_count: int
    wip_age_violation_count: int


class SyncMetadataRow(TypedDict):
    last_sync_time: Optional[str]


class ThroughputRecord(TypedDict):
    team_id: str
    team_name: str
    true_throughput: float
    pr_count: int


@dataclass(frozen=True)
class TeamHealthRecord:
    healthy_workload_percent: float
    healthy_ic_count: int
    total_ic_count: int
    wip_violation_count: int
    multi_project_violation_count: int
    impacted_project_count: int
    total_project_count: int
    status: str  # healthy|warning|critical

    # Older dashboards read these.
    ic_wip_violation_percent: float = 0.0
    project_wip_violation_percent: float = 0.0
    healthy_project_count: int = 0


@dataclass(frozen=True)
class ProjectVelocityStatus:
    project_id: str
    project_name: str
    linear_health: Optional[str]  # raw human-entered value
    calculated_health: str  # onTrack|atRisk|offTrack
    effective_health: str
    days_off_target: Optional[int]
    health_source: str  # human|velocity


@dataclass(frozen=True)
class VelocityHealthRecord:
    on_track_percent: float
    at_risk_percent: float
    off_track_percent: float
    project_statuses: List[ProjectVelocityStatus]
    status: str


@dataclass(frozen=True)
class QualityHealthRecord:
    open_bug_count: int
    bugs_opened_in_period: int
    bugs_closed_in_period: int
    net_bug_change: int
    average_bug_age_days: float
    max_bug_age_days: float
    composite_score: int
    status: str


@dataclass(frozen=True)
class LinearHygieneRecord:
    hygiene_score: int
    total_gaps: int
    max_possible_gaps: int

    missing_estimate_count: int
    missing_priority_count: int
    no_recent_comment_count: int
    wip_age_violation_count: int

    missing_lead_count: int
    stale_update_count: int
    status_mismatch_count: int
    missing_health_count: int
    date_discrepancy_count: int

    engineers_with_gaps: int
    total_engineers: int
    projects_with_gaps: int
    total_projects: int
    status: str


@dataclass(frozen=True)
class ProductivityPending:
    notes: str
    status: str = field(default="pending", init=False)


@dataclass(frozen=True)
class ProductivityMeasured:
    true_throughput: float
    engineer_count: Optional[int]
    true_throughput_per_engineer: Optional[float]
    status: str  # healthy|warning|critical|unknown


TeamProductivity = Union[ProductivityPending, ProductivityMeasured]


@dataclass(frozen=True)
class SnapshotMetadata:
    captured_at: str
    synced_at: Optional[str]
    level: str  # org|domain|team
    level_id: Optional[str]


@dataclass(frozen=True)
class MetricsSnapshotV1:
    team_health: TeamHealthRecord
    velocity_health: VelocityHealthRecord
    team_productivity: TeamProductivity
    quality: QualityHealthRecord
    metadata: SnapshotMetadata
    # Absent on snapshots captured before hygiene tracking existed.
    linear_hygiene: Optional[LinearHygieneRecord] = None
    schema_version: int = 1


@dataclass(frozen=True)
class MetricsSnapshotRecord:
    """One stored row of the `metrics_snapshots` table."""

    id: Optional[int]
    captured_at: str
    schema_version: int
    level: str
    level_id: Optional[str]
    metrics_json: str
