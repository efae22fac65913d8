from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from metrics.schemas import ProjectRow, ProjectVelocityStatus, VelocityHealthRecord
from metrics.scoping import parse_timestamp, projects_for_teams
from metrics.status import classify_status, round_half_up, round_int

ON_TRACK = "onTrack"
AT_RISK = "atRisk"
OFF_TRACK = "offTrack"

SOURCE_HUMAN = "human"
SOURCE_VELOCITY = "velocity"

AT_RISK_DAYS_THRESHOLD = 14
OFF_TRACK_DAYS_THRESHOLD = 28

_PESSIMISTIC = (AT_RISK, OFF_TRACK)
_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class EffectiveHealth:
    effective_health: str
    calculated_health: str
    health_source: str
    days_off_target: Optional[int]


def is_active_project(project: ProjectRow) -> bool:
    category = str(project.get("project_state_category") or "").lower()
    return "progress" in category or "started" in category


def calculate_days_off_target(project: ProjectRow) -> Optional[int]:
    """Predicted end minus target date, in whole days (positive means late)."""
    target = parse_timestamp(project.get("target_date"))
    predicted = parse_timestamp(project.get("estimated_end_date"))
    if target is None or predicted is None:
        return None
    return round_int((predicted - target).total_seconds() / _SECONDS_PER_DAY)


def calculate_velocity_based_health(days_off: Optional[int]) -> str:
    if days_off is None or days_off <= 0:
        return ON_TRACK
    if days_off > OFF_TRACK_DAYS_THRESHOLD:
        return OFF_TRACK
    if days_off > AT_RISK_DAYS_THRESHOLD:
        return AT_RISK
    return ON_TRACK


def normalize_health_value(health: Optional[str]) -> Optional[str]:
    """
    Normalize free-text project health to onTrack / atRisk / offTrack.

    "Off Track" -> offTrack, "On Track" -> onTrack, "At Risk" -> atRisk.
    Anything unrecognized is None.
    """
    if not health:
        return None
    lower = health.lower()

    if "off" in lower or "track" in lower:
        if "off" in lower:
            return OFF_TRACK
        if "on" in lower:
            return ON_TRACK
    if "risk" in lower:
        return AT_RISK
    return None


def reconcile_health(
    human: Optional[str], calculated: str
) -> Tuple[str, str]:
    """
    Reconcile normalized human health with the calculated trajectory.

    Returns (effective_health, source). A pessimistic human value always
    wins; otherwise a pessimistic calculation overrides; otherwise the human
    value (or onTrack) stands.
    """
    if human in _PESSIMISTIC:
        return human, SOURCE_HUMAN
    if calculated in _PESSIMISTIC:
        return calculated, SOURCE_VELOCITY
    return human or ON_TRACK, SOURCE_HUMAN


def calculate_effective_health(project: ProjectRow) -> EffectiveHealth:
    days_off = calculate_days_off_target(project)
    calculated = calculate_velocity_based_health(days_off)
    effective, source = reconcile_health(
        normalize_health_value(project.get("project_health")), calculated
    )
    return EffectiveHealth(
        effective_health=effective,
        calculated_health=calculated,
        health_source=source,
        days_off_target=days_off,
    )


def project_velocity_status(project: ProjectRow) -> ProjectVelocityStatus:
    result = calculate_effective_health(project)
    return ProjectVelocityStatus(
        project_id=str(project.get("project_id")),
        project_name=str(project.get("project_name") or ""),
        linear_health=project.get("project_health"),
        calculated_health=result.calculated_health,
        effective_health=result.effective_health,
        days_off_target=result.days_off_target,
        health_source=result.health_source,
    )


def calculate_velocity_health(
    projects: Sequence[ProjectRow],
    *,
    project_filter: Optional[Callable[[ProjectRow], bool]] = None,
) -> VelocityHealthRecord:
    scoped = [p for p in projects if project_filter(p)] if project_filter else projects
    statuses = [project_velocity_status(p) for p in scoped if is_active_project(p)]

    total = len(statuses)
    on_track = sum(1 for s in statuses if s.effective_health == ON_TRACK)
    at_risk = sum(1 for s in statuses if s.effective_health == AT_RISK)
    off_track = sum(1 for s in statuses if s.effective_health == OFF_TRACK)

    # No active projects reads as fully on track.
    on_track_pct = (on_track / total) * 100 if total > 0 else 100.0
    at_risk_pct = (at_risk / total) * 100 if total > 0 else 0.0
    off_track_pct = (off_track / total) * 100 if total > 0 else 0.0

    return VelocityHealthRecord(
        on_track_percent=round_half_up(on_track_pct, 1),
        at_risk_percent=round_half_up(at_risk_pct, 1),
        off_track_percent=round_half_up(off_track_pct, 1),
        project_statuses=statuses,
        status=classify_status(100 - on_track_pct),
    )


def calculate_velocity_health_for_team(
    team_key: str, projects: Sequence[ProjectRow]
) -> VelocityHealthRecord:
    return calculate_velocity_health(projects_for_teams([team_key], projects))


def calculate_velocity_health_for_domain(
    domain_team_keys: Sequence[str], projects: Sequence[ProjectRow]
) -> VelocityHealthRecord:
    return calculate_velocity_health(projects_for_teams(domain_team_keys, projects))


def get_projects_needing_attention(
    projects: Sequence[ProjectRow],
) -> List[Tuple[ProjectRow, ProjectVelocityStatus]]:
    """Active at-risk/off-track projects, off-track first then most overdue."""
    flagged = [
        (p, project_velocity_status(p)) for p in projects if is_active_project(p)
    ]
    flagged = [(p, s) for p, s in flagged if s.effective_health in _PESSIMISTIC]
    flagged.sort(
        key=lambda item: (
            0 if item[1].effective_health == OFF_TRACK else 1,
            -(item[1].days_off_target or 0),
        )
    )
    return flagged
