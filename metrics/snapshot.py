"""
MetricsSnapshotV1 <-> JSON.

Stored snapshots use camelCase keys. Parsing validates the pillar shapes
with strict pydantic models, backfills team-health fields that older
snapshots lack and tolerates a missing `linearHygiene` block.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, ValidationError
from typing_extensions import Annotated

from metrics.schemas import (
    LinearHygieneRecord,
    MetricsSnapshotV1,
    ProductivityMeasured,
    ProductivityPending,
    ProjectVelocityStatus,
    QualityHealthRecord,
    SnapshotMetadata,
    TeamHealthRecord,
    TeamProductivity,
    VelocityHealthRecord,
)
from metrics.status import HEALTHY, PENDING, round_int

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1
METRICS_LEVELS = ("org", "domain", "team")


class SnapshotParseError(ValueError):
    """Raised when stored snapshot JSON does not match MetricsSnapshotV1."""


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _team_health_to_dict(th: TeamHealthRecord) -> Dict[str, Any]:
    return {
        "healthyWorkloadPercent": th.healthy_workload_percent,
        "healthyIcCount": th.healthy_ic_count,
        "totalIcCount": th.total_ic_count,
        "wipViolationCount": th.wip_violation_count,
        "multiProjectViolationCount": th.multi_project_violation_count,
        "impactedProjectCount": th.impacted_project_count,
        "totalProjectCount": th.total_project_count,
        "status": th.status,
        "icWipViolationPercent": th.ic_wip_violation_percent,
        "projectWipViolationPercent": th.project_wip_violation_percent,
        "healthyProjectCount": th.healthy_project_count,
    }


def _project_status_to_dict(ps: ProjectVelocityStatus) -> Dict[str, Any]:
    return {
        "projectId": ps.project_id,
        "projectName": ps.project_name,
        "linearHealth": ps.linear_health,
        "calculatedHealth": ps.calculated_health,
        "effectiveHealth": ps.effective_health,
        "daysOffTarget": ps.days_off_target,
        "healthSource": ps.health_source,
    }


def _velocity_to_dict(vh: VelocityHealthRecord) -> Dict[str, Any]:
    return {
        "onTrackPercent": vh.on_track_percent,
        "atRiskPercent": vh.at_risk_percent,
        "offTrackPercent": vh.off_track_percent,
        "projectStatuses": [_project_status_to_dict(p) for p in vh.project_statuses],
        "status": vh.status,
    }


def _productivity_to_dict(tp: TeamProductivity) -> Dict[str, Any]:
    if isinstance(tp, ProductivityPending):
        return {"status": PENDING, "notes": tp.notes}
    return {
        "trueThroughput": tp.true_throughput,
        "engineerCount": tp.engineer_count,
        "trueThroughputPerEngineer": tp.true_throughput_per_engineer,
        "status": tp.status,
    }


def _quality_to_dict(q: QualityHealthRecord) -> Dict[str, Any]:
    return {
        "openBugCount": q.open_bug_count,
        "bugsOpenedInPeriod": q.bugs_opened_in_period,
        "bugsClosedInPeriod": q.bugs_closed_in_period,
        "netBugChange": q.net_bug_change,
        "averageBugAgeDays": q.average_bug_age_days,
        "maxBugAgeDays": q.max_bug_age_days,
        "compositeScore": q.composite_score,
        "status": q.status,
    }


def _hygiene_to_dict(h: LinearHygieneRecord) -> Dict[str, Any]:
    return {
        "hygieneScore": h.hygiene_score,
        "totalGaps": h.total_gaps,
        "maxPossibleGaps": h.max_possible_gaps,
        "missingEstimateCount": h.missing_estimate_count,
        "missingPriorityCount": h.missing_priority_count,
        "noRecentCommentCount": h.no_recent_comment_count,
        "wipAgeViolationCount": h.wip_age_violation_count,
        "missingLeadCount": h.missing_lead_count,
        "staleUpdateCount": h.stale_update_count,
        "statusMismatchCount": h.status_mismatch_count,
        "missingHealthCount": h.missing_health_count,
        "dateDiscrepancyCount": h.date_discrepancy_count,
        "engineersWithGaps": h.engineers_with_gaps,
        "totalEngineers": h.total_engineers,
        "projectsWithGaps": h.projects_with_gaps,
        "totalProjects": h.total_projects,
        "status": h.status,
    }


def snapshot_to_dict(snapshot: MetricsSnapshotV1) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "schemaVersion": snapshot.schema_version,
        "teamHealth": _team_health_to_dict(snapshot.team_health),
        "velocityHealth": _velocity_to_dict(snapshot.velocity_health),
        "teamProductivity": _productivity_to_dict(snapshot.team_productivity),
        "quality": _quality_to_dict(snapshot.quality),
    }
    if snapshot.linear_hygiene is not None:
        data["linearHygiene"] = _hygiene_to_dict(snapshot.linear_hygiene)
    data["metadata"] = {
        "capturedAt": snapshot.metadata.captured_at,
        "syncedAt": snapshot.metadata.synced_at,
        "level": snapshot.metadata.level,
        "levelId": snapshot.metadata.level_id,
    }
    return data


def snapshot_to_json(snapshot: MetricsSnapshotV1) -> str:
    return json.dumps(snapshot_to_dict(snapshot), separators=(",", ":"))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

PillarStatus = Literal["healthy", "warning", "critical"]
ProductivityStatus = Literal["healthy", "warning", "critical", "unknown", "pending"]


class _StoredModel(BaseModel):
    # No coercion: 2.7 is not an int and "3" is not a number.
    model_config = ConfigDict(strict=True, populate_by_name=True)


class _TeamHealthIn(_StoredModel):
    healthy_ic_count: int = Field(alias="healthyIcCount")
    total_ic_count: int = Field(alias="totalIcCount")
    total_project_count: int = Field(alias="totalProjectCount")
    status: PillarStatus
    # Missing on snapshots captured before these fields existed.
    healthy_workload_percent: Optional[float] = Field(
        default=None, alias="healthyWorkloadPercent"
    )
    wip_violation_count: Optional[int] = Field(default=None, alias="wipViolationCount")
    multi_project_violation_count: Optional[int] = Field(
        default=None, alias="multiProjectViolationCount"
    )
    impacted_project_count: Optional[int] = Field(
        default=None, alias="impactedProjectCount"
    )
    ic_wip_violation_percent: Optional[float] = Field(
        default=None, alias="icWipViolationPercent"
    )
    project_wip_violation_percent: Optional[float] = Field(
        default=None, alias="projectWipViolationPercent"
    )
    healthy_project_count: Optional[int] = Field(
        default=None, alias="healthyProjectCount"
    )


class _ProjectStatusIn(_StoredModel):
    project_id: str = Field(alias="projectId")
    project_name: str = Field(alias="projectName")
    linear_health: Optional[str] = Field(default=None, alias="linearHealth")
    calculated_health: str = Field(alias="calculatedHealth")
    effective_health: str = Field(alias="effectiveHealth")
    days_off_target: Optional[int] = Field(default=None, alias="daysOffTarget")
    health_source: Literal["human", "velocity"] = Field(alias="healthSource")


class _VelocityIn(_StoredModel):
    on_track_percent: float = Field(alias="onTrackPercent")
    at_risk_percent: float = Field(alias="atRiskPercent")
    off_track_percent: float = Field(alias="offTrackPercent")
    project_statuses: List[_ProjectStatusIn] = Field(alias="projectStatuses")
    status: PillarStatus


class _MeasuredIn(_StoredModel):
    true_throughput: float = Field(alias="trueThroughput")
    engineer_count: Optional[int] = Field(default=None, alias="engineerCount")
    true_throughput_per_engineer: Optional[float] = Field(
        default=None, alias="trueThroughputPerEngineer"
    )
    status: ProductivityStatus


class _PendingIn(_StoredModel):
    status: Literal["pending"]
    notes: str


def _productivity_shape(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return "measured" if "trueThroughput" in value else "pending"
    return None


class _QualityIn(_StoredModel):
    open_bug_count: int = Field(alias="openBugCount")
    bugs_opened_in_period: int = Field(alias="bugsOpenedInPeriod")
    bugs_closed_in_period: int = Field(alias="bugsClosedInPeriod")
    net_bug_change: int = Field(alias="netBugChange")
    average_bug_age_days: float = Field(alias="averageBugAgeDays")
    max_bug_age_days: float = Field(alias="maxBugAgeDays")
    composite_score: int = Field(alias="compositeScore")
    status: PillarStatus


class _HygieneIn(_StoredModel):
    hygiene_score: int = Field(alias="hygieneScore")
    total_gaps: int = Field(alias="totalGaps")
    max_possible_gaps: int = Field(alias="maxPossibleGaps")
    missing_estimate_count: int = Field(alias="missingEstimateCount")
    missing_priority_count: int = Field(alias="missingPriorityCount")
    no_recent_comment_count: int = Field(alias="noRecentCommentCount")
    wip_age_violation_count: int = Field(alias="wipAgeViolationCount")
    missing_lead_count: int = Field(alias="missingLeadCount")
    stale_update_count: int = Field(alias="staleUpdateCount")
    status_mismatch_count: int = Field(alias="statusMismatchCount")
    missing_health_count: int = Field(alias="missingHealthCount")
    date_discrepancy_count: int = Field(alias="dateDiscrepancyCount")
    engineers_with_gaps: int = Field(alias="engineersWithGaps")
    total_engineers: int = Field(alias="totalEngineers")
    projects_with_gaps: int = Field(alias="projectsWithGaps")
    total_projects: int = Field(alias="totalProjects")
    status: PillarStatus


class _MetadataIn(_StoredModel):
    captured_at: str = Field(alias="capturedAt")
    synced_at: Optional[str] = Field(default=None, alias="syncedAt")
    level: Literal["org", "domain", "team"]
    level_id: Optional[str] = Field(default=None, alias="levelId")


class _SnapshotIn(_StoredModel):
    schema_version: Literal[1] = Field(alias="schemaVersion")
    team_health: _TeamHealthIn = Field(alias="teamHealth")
    velocity_health: _VelocityIn = Field(alias="velocityHealth")
    team_productivity: Annotated[
        Union[
            Annotated[_MeasuredIn, Tag("measured")],
            Annotated[_PendingIn, Tag("pending")],
        ],
        Discriminator(_productivity_shape),
    ] = Field(alias="teamProductivity")
    quality: _QualityIn
    linear_hygiene: Optional[_HygieneIn] = Field(default=None, alias="linearHygiene")
    metadata: _MetadataIn


def _team_health_record(th: _TeamHealthIn) -> TeamHealthRecord:
    """Fill in team-health fields older snapshots did not store."""
    total_ic = th.total_ic_count
    total_projects = th.total_project_count
    ic_violation_pct = th.ic_wip_violation_percent
    project_violation_pct = th.project_wip_violation_percent
    healthy_projects = th.healthy_project_count

    healthy_pct = th.healthy_workload_percent
    if healthy_pct is None:
        if ic_violation_pct is not None:
            healthy_pct = 100 - ic_violation_pct
        elif total_ic > 0:
            healthy_pct = (th.healthy_ic_count / total_ic) * 100
        else:
            healthy_pct = 100.0

    wip_violations = th.wip_violation_count
    if wip_violations is None:
        wip_violations = total_ic - th.healthy_ic_count

    impacted = th.impacted_project_count
    if impacted is None:
        if project_violation_pct is not None and total_projects > 0:
            impacted = round_int((project_violation_pct / 100) * total_projects)
        elif healthy_projects is not None:
            impacted = total_projects - healthy_projects
        else:
            impacted = 0

    if ic_violation_pct is None:
        ic_violation_pct = 100 - healthy_pct
    if project_violation_pct is None:
        project_violation_pct = (
            (impacted / total_projects) * 100 if total_projects > 0 else 0.0
        )
    if healthy_projects is None:
        healthy_projects = total_projects - impacted

    return TeamHealthRecord(
        healthy_workload_percent=healthy_pct,
        healthy_ic_count=th.healthy_ic_count,
        total_ic_count=total_ic,
        wip_violation_count=wip_violations,
        multi_project_violation_count=th.multi_project_violation_count or 0,
        impacted_project_count=impacted,
        total_project_count=total_projects,
        status=th.status,
        ic_wip_violation_percent=ic_violation_pct,
        project_wip_violation_percent=project_violation_pct,
        healthy_project_count=healthy_projects,
    )


def _productivity_record(tp: Union[_MeasuredIn, _PendingIn]) -> TeamProductivity:
    if isinstance(tp, _PendingIn):
        return ProductivityPending(notes=tp.notes)
    return ProductivityMeasured(
        true_throughput=tp.true_throughput,
        engineer_count=tp.engineer_count,
        true_throughput_per_engineer=tp.true_throughput_per_engineer,
        status=tp.status,
    )


def snapshot_from_dict(data: Any) -> MetricsSnapshotV1:
    try:
        stored = _SnapshotIn.model_validate(data)
    except ValidationError as exc:
        raise SnapshotParseError(f"Invalid metrics snapshot: {exc}") from exc

    vh = stored.velocity_health
    q = stored.quality
    h = stored.linear_hygiene
    return MetricsSnapshotV1(
        team_health=_team_health_record(stored.team_health),
        velocity_health=VelocityHealthRecord(
            on_track_percent=vh.on_track_percent,
            at_risk_percent=vh.at_risk_percent,
            off_track_percent=vh.off_track_percent,
            project_statuses=[
                ProjectVelocityStatus(**ps.model_dump()) for ps in vh.project_statuses
            ],
            status=vh.status,
        ),
        team_productivity=_productivity_record(stored.team_productivity),
        quality=QualityHealthRecord(**q.model_dump()),
        linear_hygiene=LinearHygieneRecord(**h.model_dump()) if h is not None else None,
        metadata=SnapshotMetadata(**stored.metadata.model_dump()),
        schema_version=CURRENT_SCHEMA_VERSION,
    )


def parse_metrics_snapshot(raw_json: str) -> MetricsSnapshotV1:
    try:
        data = json.loads(raw_json)
    except (TypeError, ValueError) as exc:
        raise SnapshotParseError(f"Invalid snapshot JSON: {exc}") from exc
    return snapshot_from_dict(data)


def safe_parse_metrics_snapshot(raw_json: Optional[str]) -> Optional[MetricsSnapshotV1]:
    if not raw_json:
        return None
    try:
        return parse_metrics_snapshot(raw_json)
    except SnapshotParseError as exc:
        logger.warning("Failed to parse metrics snapshot: %s", exc)
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def create_empty_metrics_snapshot(
    level: str, level_id: Optional[str], captured_at: str
) -> MetricsSnapshotV1:
    return MetricsSnapshotV1(
        team_health=TeamHealthRecord(
            healthy_workload_percent=100.0,
            healthy_ic_count=0,
            total_ic_count=0,
            wip_violation_count=0,
            multi_project_violation_count=0,
            impacted_project_count=0,
            total_project_count=0,
            status=HEALTHY,
        ),
        velocity_health=VelocityHealthRecord(
            on_track_percent=100.0,
            at_risk_percent=0.0,
            off_track_percent=0.0,
            project_statuses=[],
            status=HEALTHY,
        ),
        team_productivity=ProductivityPending(notes="No data captured yet"),
        quality=QualityHealthRecord(
            open_bug_count=0,
            bugs_opened_in_period=0,
            bugs_closed_in_period=0,
            net_bug_change=0,
            average_bug_age_days=0.0,
            max_bug_age_days=0.0,
            composite_score=100,
            status=HEALTHY,
        ),
        linear_hygiene=None,
        metadata=SnapshotMetadata(
            captured_at=captured_at, synced_at=None, level=level, level_id=level_id
        ),
    )


def get_metrics_summary(snapshot: MetricsSnapshotV1) -> str:
    """Human-readable one-line-per-pillar summary."""
    th = snapshot.team_health
    vh = snapshot.velocity_health
    q = snapshot.quality
    tp = snapshot.team_productivity

    lines: List[str] = [
        f"Team Health: {th.status.upper()} "
        f"({th.healthy_ic_count}/{th.total_ic_count} ICs healthy, "
        f"{th.healthy_project_count}/{th.total_project_count} projects healthy)",
        f"Velocity: {vh.status.upper()} "
        f"({vh.on_track_percent:.1f}% on track, {vh.at_risk_percent:.1f}% at risk, "
        f"{vh.off_track_percent:.1f}% off track)",
        f"Quality: {q.status.upper()} (Score: {q.composite_score}, "
        f"{q.open_bug_count} open bugs, {q.net_bug_change:+d} net)",
    ]
    if isinstance(tp, ProductivityPending):
        lines.append(f"Productivity: {tp.status.upper()} ({tp.notes})")
    else:
        per_eng = (
            f"{tp.true_throughput_per_engineer:.2f}/IC"
            if tp.true_throughput_per_engineer is not None
            else "n/a per IC"
        )
        lines.append(
            f"Productivity: {tp.status.upper()} "
            f"(TrueThroughput {tp.true_throughput:.1f}, {per_eng})"
        )
    if snapshot.linear_hygiene is not None:
        h = snapshot.linear_hygiene
        lines.append(
            f"Hygiene: {h.status.upper()} (Score: {h.hygiene_score}, "
            f"{h.total_gaps}/{h.max_possible_gaps} gaps)"
        )
    return "\n".join(lines)
