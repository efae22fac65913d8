"""Shared test fixtures for the test suite."""
import json
from datetime import datetime, timezone

import pytest


def _json_list(value):
    return value if isinstance(value, str) else json.dumps(list(value))


@pytest.fixture
def now():
    """Fixed reference time for age and period calculations."""
    return datetime(2025, 3, 15, tzinfo=timezone.utc)


@pytest.fixture
def make_engineer():
    def _make(name, *, team_names=("Platform",), wip=3, **overrides):
        row = {
            "assignee_id": f"user-{name.lower().replace(' ', '-')}",
            "assignee_name": name,
            "team_ids": "[]",
            "team_names": _json_list(team_names),
            "wip_issue_count": wip,
            "wip_limit_violation": 0,
            "multi_project_violation": 0,
            "missing_estimate_count": 0,
            "missing_priority_count": 0,
            "no_recent_comment_count": 0,
            "wip_age_violation_count": 0,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_project():
    def _make(
        project_id,
        *,
        teams=("ENG",),
        engineers=(),
        in_progress=2,
        category="started",
        **overrides,
    ):
        row = {
            "project_id": project_id,
            "project_name": f"Project {project_id}",
            "project_state": category,
            "project_state_category": category,
            "project_health": None,
            "project_lead_name": "Lead",
            "target_date": None,
            "estimated_end_date": None,
            "teams": _json_list(teams),
            "engineers": _json_list(engineers),
            "total_issues": 10,
            "completed_issues": 3,
            "in_progress_issues": in_progress,
            "missing_lead": 0,
            "is_stale_update": 0,
            "has_status_mismatch": 0,
            "missing_health": 0,
            "has_date_discrepancy": 0,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_issue():
    counter = {"n": 0}

    def _make(
        *,
        team_key="ENG",
        team_name="Platform",
        labels=(),
        state_type="started",
        created_at="2025-03-01T00:00:00Z",
        completed_at=None,
        **overrides,
    ):
        counter["n"] += 1
        n = counter["n"]
        row = {
            "id": f"issue-{n}",
            "identifier": f"{team_key}-{n}",
            "title": f"Issue {n}",
            "team_id": f"team-{team_key.lower()}",
            "team_name": team_name,
            "team_key": team_key,
            "state_id": f"state-{state_type}",
            "state_name": state_type.title(),
            "state_type": state_type,
            "assignee_id": None,
            "assignee_name": None,
            "priority": 2,
            "estimate": 1.0,
            "last_comment_at": None,
            "created_at": created_at,
            "updated_at": created_at,
            "completed_at": completed_at,
            "labels": _json_list(labels),
            "project_id": None,
            "project_name": None,
            "project_state": None,
            "project_health": None,
            "project_updated_at": None,
            "project_lead_name": None,
            "project_target_date": None,
            "project_estimated_end_date": None,
        }
        row.update(overrides)
        return row

    return _make
