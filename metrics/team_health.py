from __future__ import annotations

import warnings
from typing import Callable, List, Mapping, Optional, Sequence

from metrics.schemas import EngineerRow, IssueRow, ProjectRow, TeamHealthRecord
from metrics.scoping import (
    engineers_for_teams,
    project_engineer_names,
    projects_for_teams,
)
from metrics.status import classify_status, round_half_up

ProjectFilter = Callable[[ProjectRow], bool]


def is_healthy_workload(engineer: EngineerRow) -> bool:
    """Within the WIP ceiling and focused on a single project."""
    return (
        int(engineer.get("wip_limit_violation") or 0) == 0
        and int(engineer.get("multi_project_violation") or 0) == 0
    )


def _find_engineer(
    name: str, engineers: Sequence[EngineerRow]
) -> Optional[EngineerRow]:
    for engineer in engineers:
        if engineer.get("assignee_name") == name:
            return engineer
    return None


def get_project_engineers_in_violation(
    project: ProjectRow, engineers: Sequence[EngineerRow]
) -> List[EngineerRow]:
    result: List[EngineerRow] = []
    for name in project_engineer_names(project):
        engineer = _find_engineer(name, engineers)
        if engineer is not None and not is_healthy_workload(engineer):
            result.append(engineer)
    return result


def has_project_violation(
    project: ProjectRow, engineers: Sequence[EngineerRow]
) -> bool:
    """True when any engineer listed on the project has an unhealthy workload."""
    for name in project_engineer_names(project):
        engineer = _find_engineer(name, engineers)
        if engineer is not None and not is_healthy_workload(engineer):
            return True
    return False


def has_project_wip_violation(
    project: ProjectRow, engineers: Sequence[EngineerRow]
) -> bool:
    """Deprecated: use `has_project_violation`."""
    warnings.warn(
        "has_project_wip_violation is deprecated; use has_project_violation",
        DeprecationWarning,
        stacklevel=2,
    )
    return has_project_violation(project, engineers)


def _engineers_to_analyze(
    engineers: Sequence[EngineerRow],
    active_projects: Sequence[ProjectRow],
    engineer_team_mapping: Optional[Mapping[str, str]],
) -> List[EngineerRow]:
    if engineer_team_mapping:
        mapped = set(engineer_team_mapping.keys())
        return [
            e
            for e in engineers
            if int(e.get("wip_issue_count") or 0) > 0
            and e.get("assignee_name") in mapped
        ]

    relevant_ids = set()
    for project in active_projects:
        for name in project_engineer_names(project):
            engineer = _find_engineer(name, engineers)
            if engineer is not None:
                relevant_ids.add(engineer.get("assignee_id"))

    relevant = [e for e in engineers if e.get("assignee_id") in relevant_ids]
    if not relevant:
        relevant = [e for e in engineers if int(e.get("wip_issue_count") or 0) > 0]
    return relevant


def calculate_team_health(
    engineers: Sequence[EngineerRow],
    projects: Sequence[ProjectRow],
    *,
    project_filter: Optional[ProjectFilter] = None,
    engineer_team_mapping: Optional[Mapping[str, str]] = None,
) -> TeamHealthRecord:
    """
    Share of ICs with a healthy workload and projects touched by an unhealthy IC.

    Only projects with in-progress issues are considered. When an engineer ->
    team mapping is configured it decides which engineers count; otherwise
    engineers listed on active projects count, falling back to everyone with
    WIP when no project lists anyone.
    """
    scoped_projects = (
        [p for p in projects if project_filter(p)] if project_filter else projects
    )
    active_projects = [
        p for p in scoped_projects if int(p.get("in_progress_issues") or 0) > 0
    ]

    analyzed = _engineers_to_analyze(engineers, active_projects, engineer_team_mapping)

    total_ic_count = len(analyzed)
    healthy_ic_count = sum(1 for e in analyzed if is_healthy_workload(e))
    wip_violation_count = sum(
        1 for e in analyzed if int(e.get("wip_limit_violation") or 0) == 1
    )
    multi_project_violation_count = sum(
        1 for e in analyzed if int(e.get("multi_project_violation") or 0) == 1
    )

    healthy_pct = (
        (healthy_ic_count / total_ic_count) * 100 if total_ic_count > 0 else 0.0
    )

    impacted_project_count = sum(
        1 for p in active_projects if has_project_violation(p, engineers)
    )
    total_project_count = len(active_projects)

    ic_violation_pct = (
        ((total_ic_count - healthy_ic_count) / total_ic_count) * 100
        if total_ic_count > 0
        else 0.0
    )
    project_violation_pct = (
        (impacted_project_count / total_project_count) * 100
        if total_project_count > 0
        else 0.0
    )

    return TeamHealthRecord(
        healthy_workload_percent=round_half_up(healthy_pct, 1),
        healthy_ic_count=healthy_ic_count,
        total_ic_count=total_ic_count,
        wip_violation_count=wip_violation_count,
        multi_project_violation_count=multi_project_violation_count,
        impacted_project_count=impacted_project_count,
        total_project_count=total_project_count,
        status=classify_status(100 - healthy_pct),
        ic_wip_violation_percent=round_half_up(ic_violation_pct, 1),
        project_wip_violation_percent=round_half_up(project_violation_pct, 1),
        healthy_project_count=total_project_count - impacted_project_count,
    )


def calculate_team_health_for_team(
    team_key: str,
    engineers: Sequence[EngineerRow],
    projects: Sequence[ProjectRow],
    issues: Sequence[IssueRow] = (),
    *,
    engineer_team_mapping: Optional[Mapping[str, str]] = None,
) -> TeamHealthRecord:
    return calculate_team_health(
        engineers_for_teams(
            [team_key],
            engineers,
            issues,
            engineer_team_mapping,
            key_substring_fallback=True,
        ),
        projects_for_teams([team_key], projects),
        engineer_team_mapping=engineer_team_mapping,
    )


def calculate_team_health_for_domain(
    domain_team_keys: Sequence[str],
    engineers: Sequence[EngineerRow],
    projects: Sequence[ProjectRow],
    issues: Sequence[IssueRow] = (),
    *,
    engineer_team_mapping: Optional[Mapping[str, str]] = None,
) -> TeamHealthRecord:
    return calculate_team_health(
        engineers_for_teams(
            list(domain_team_keys), engineers, issues, engineer_team_mapping
        ),
        projects_for_teams(domain_team_keys, projects),
        engineer_team_mapping=engineer_team_mapping,
    )
