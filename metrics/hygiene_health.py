from __future__ import annotations

from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from metrics.schemas import EngineerRow, IssueRow, LinearHygieneRecord, ProjectRow
from metrics.scoping import engineers_for_teams, projects_for_teams
from metrics.status import round_int, status_from_score

# Gap types an engineer's WIP issue / an active project can each exhibit.
ENGINEER_GAP_TYPES = 4
PROJECT_GAP_TYPES = 5

_ENGINEER_GAP_FIELDS = (
    "missing_estimate_count",
    "missing_priority_count",
    "no_recent_comment_count",
    "wip_age_violation_count",
)
_PROJECT_GAP_FIELDS = (
    "missing_lead",
    "is_stale_update",
    "has_status_mismatch",
    "missing_health",
    "has_date_discrepancy",
)


def _count(row, field: str) -> int:
    return max(0, int(row.get(field) or 0))


def count_engineer_gaps(engineer: EngineerRow) -> int:
    return sum(_count(engineer, f) for f in _ENGINEER_GAP_FIELDS)


def count_project_gaps(project: ProjectRow) -> int:
    return sum(1 for f in _PROJECT_GAP_FIELDS if _count(project, f) > 0)


def _active_engineers(engineers: Sequence[EngineerRow]) -> List[EngineerRow]:
    return [e for e in engineers if _count(e, "wip_issue_count") > 0]


def _active_projects(projects: Sequence[ProjectRow]) -> List[ProjectRow]:
    return [p for p in projects if _count(p, "in_progress_issues") > 0]


def calculate_hygiene_health(
    engineers: Sequence[EngineerRow],
    projects: Sequence[ProjectRow],
    *,
    engineer_filter: Optional[Callable[[EngineerRow], bool]] = None,
    project_filter: Optional[Callable[[ProjectRow], bool]] = None,
) -> LinearHygieneRecord:
    """
    Tactical hygiene score: 100 minus the share of possible gaps present.

    The theoretical maximum is four gap types per active WIP issue plus five
    per active project. With nothing active the score is 100.
    """
    scoped_engineers = (
        [e for e in engineers if engineer_filter(e)] if engineer_filter else engineers
    )
    scoped_projects = (
        [p for p in projects if project_filter(p)] if project_filter else projects
    )
    active_engineers = _active_engineers(scoped_engineers)
    active_projects = _active_projects(scoped_projects)

    engineer_totals = {
        f: sum(_count(e, f) for e in active_engineers) for f in _ENGINEER_GAP_FIELDS
    }
    project_totals = {
        f: sum(1 for p in active_projects if _count(p, f) > 0)
        for f in _PROJECT_GAP_FIELDS
    }
    total_wip_issues = sum(_count(e, "wip_issue_count") for e in active_engineers)

    total_gaps = sum(engineer_totals.values()) + sum(project_totals.values())
    max_possible_gaps = (
        total_wip_issues * ENGINEER_GAP_TYPES + len(active_projects) * PROJECT_GAP_TYPES
    )

    if max_possible_gaps == 0:
        score = 100
    else:
        score = round_int((1 - total_gaps / max_possible_gaps) * 100)
        score = max(0, min(100, score))

    return LinearHygieneRecord(
        hygiene_score=score,
        total_gaps=total_gaps,
        max_possible_gaps=max_possible_gaps,
        missing_estimate_count=engineer_totals["missing_estimate_count"],
        missing_priority_count=engineer_totals["missing_priority_count"],
        no_recent_comment_count=engineer_totals["no_recent_comment_count"],
        wip_age_violation_count=engineer_totals["wip_age_violation_count"],
        missing_lead_count=project_totals["missing_lead"],
        stale_update_count=project_totals["is_stale_update"],
        status_mismatch_count=project_totals["has_status_mismatch"],
        missing_health_count=project_totals["missing_health"],
        date_discrepancy_count=project_totals["has_date_discrepancy"],
        engineers_with_gaps=sum(
            1 for e in active_engineers if count_engineer_gaps(e) > 0
        ),
        total_engineers=len(active_engineers),
        projects_with_gaps=sum(1 for p in active_projects if count_project_gaps(p) > 0),
        total_projects=len(active_projects),
        status=status_from_score(score),
    )


def calculate_hygiene_health_for_team(
    team_key: str,
    engineers: Sequence[EngineerRow],
    projects: Sequence[ProjectRow],
    issues: Sequence[IssueRow] = (),
    *,
    engineer_team_mapping: Optional[Mapping[str, str]] = None,
) -> LinearHygieneRecord:
    return calculate_hygiene_health(
        engineers_for_teams(
            [team_key],
            engineers,
            issues,
            engineer_team_mapping,
            key_substring_fallback=True,
        ),
        projects_for_teams([team_key], projects),
    )


def calculate_hygiene_health_for_domain(
    domain_team_keys: Sequence[str],
    engineers: Sequence[EngineerRow],
    projects: Sequence[ProjectRow],
    issues: Sequence[IssueRow] = (),
    *,
    engineer_team_mapping: Optional[Mapping[str, str]] = None,
) -> LinearHygieneRecord:
    return calculate_hygiene_health(
        engineers_for_teams(
            list(domain_team_keys), engineers, issues, engineer_team_mapping
        ),
        projects_for_teams(domain_team_keys, projects),
    )


def get_engineers_with_gaps(
    engineers: Sequence[EngineerRow], limit: int = 20
) -> List[Tuple[EngineerRow, int]]:
    ranked = [(e, count_engineer_gaps(e)) for e in _active_engineers(engineers)]
    ranked = [item for item in ranked if item[1] > 0]
    ranked.sort(key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def get_projects_with_gaps(
    projects: Sequence[ProjectRow], limit: int = 20
) -> List[Tuple[ProjectRow, int]]:
    ranked = [(p, count_project_gaps(p)) for p in _active_projects(projects)]
    ranked = [item for item in ranked if item[1] > 0]
    ranked.sort(key=lambda item: item[1], reverse=True)
    return ranked[:limit]
