from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from metrics.config import MetricsConfig
from metrics.schemas import MetricsSnapshotV1, ProductivityMeasured
from metrics.scoping import parse_timestamp
from metrics.snapshot import (
    METRICS_LEVELS,
    parse_metrics_snapshot,
    safe_parse_metrics_snapshot,
    snapshot_to_dict,
)
from metrics.velocity_health import AT_RISK, OFF_TRACK, ON_TRACK

from ..models.schemas import (
    LatestMetricsResponse,
    LatestSnapshotEntry,
    TrendDataPoint,
    TrendHygiene,
    TrendProductivity,
    TrendQuality,
    TrendsResponse,
    TrendTeamHealth,
    TrendVelocityHealth,
)
from ..queries.client import metrics_sink, tracker_store

logger = logging.getLogger(__name__)

DEFAULT_TREND_LIMIT = 168


class InvalidQueryError(ValueError):
    """Request parameters that can never match a snapshot."""


class SnapshotNotFoundError(LookupError):
    pass


def validate_level(level: str, level_id: Optional[str]) -> Optional[str]:
    """Return the level id to query with (None for org)."""
    if level not in METRICS_LEVELS:
        raise InvalidQueryError(
            f"Invalid level: {level}. Must be 'org', 'domain', or 'team'."
        )
    if level == "org":
        return None
    if not level_id:
        raise InvalidQueryError(f"levelId is required for level '{level}'")
    return level_id


def validate_date_bound(name: str, value: Optional[str]) -> None:
    if value and parse_timestamp(value) is None:
        raise InvalidQueryError(
            f"Invalid {name}: {value}. Expected YYYY-MM-DD or an ISO-8601 timestamp."
        )


async def build_latest_response(
    *,
    db_url: str,
    config: MetricsConfig,
    level: str = "org",
    level_id: Optional[str] = None,
    all_levels: bool = False,
) -> LatestMetricsResponse:
    # Sink and store access is synchronous and runs in a worker thread.
    return await asyncio.to_thread(
        _latest_response,
        db_url=db_url,
        config=config,
        level=level,
        level_id=level_id,
        all_levels=all_levels,
    )


async def build_trends_response(
    *,
    db_url: str,
    level: str = "org",
    level_id: Optional[str] = None,
    limit: int = DEFAULT_TREND_LIMIT,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> TrendsResponse:
    return await asyncio.to_thread(
        _trends_response,
        db_url=db_url,
        level=level,
        level_id=level_id,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
    )


def _latest_response(
    *,
    db_url: str,
    config: MetricsConfig,
    level: str = "org",
    level_id: Optional[str] = None,
    all_levels: bool = False,
) -> LatestMetricsResponse:
    if all_levels:
        with metrics_sink(db_url) as sink:
            records = sink.get_all_latest_metrics_snapshots()
        entries: List[LatestSnapshotEntry] = []
        for record in records:
            if record.level == "team" and not config.is_team_included(record.level_id):
                continue
            parsed = safe_parse_metrics_snapshot(record.metrics_json)
            if parsed is None:
                continue
            entries.append(
                LatestSnapshotEntry(
                    level=record.level,
                    level_id=record.level_id,
                    snapshot=snapshot_to_dict(parsed),
                    captured_at=record.captured_at,
                )
            )
        with tracker_store(db_url) as store:
            team_names = {
                key: name
                for key, name in store.get_team_names_by_key().items()
                if config.is_team_included(key)
            }
        return LatestMetricsResponse(snapshots=entries, team_names=team_names)

    query_level_id = validate_level(level, level_id)
    with metrics_sink(db_url) as sink:
        record = sink.get_latest_metrics_snapshot(level, query_level_id)
    if record is None:
        suffix = f" with id '{query_level_id}'" if query_level_id else ""
        raise SnapshotNotFoundError(
            f"No metrics snapshot found for level '{level}'{suffix}"
        )
    # SnapshotParseError propagates; the route reports it as a server error.
    parsed = parse_metrics_snapshot(record.metrics_json)
    return LatestMetricsResponse(snapshot=snapshot_to_dict(parsed))


def trend_data_point(captured_at: str, snapshot: MetricsSnapshotV1) -> TrendDataPoint:
    th = snapshot.team_health
    vh = snapshot.velocity_health
    q = snapshot.quality
    tp = snapshot.team_productivity
    hygiene = snapshot.linear_hygiene

    effective = [s.effective_health for s in vh.project_statuses]
    measured = isinstance(tp, ProductivityMeasured)

    return TrendDataPoint(
        captured_at=captured_at,
        team_health=TrendTeamHealth(
            healthy_workload_percent=th.healthy_workload_percent,
            healthy_ic_count=th.healthy_ic_count,
            total_ic_count=th.total_ic_count,
            wip_violation_count=th.wip_violation_count,
            multi_project_violation_count=th.multi_project_violation_count,
            impacted_project_count=th.impacted_project_count,
            total_project_count=th.total_project_count,
            status=th.status,
        ),
        velocity_health=TrendVelocityHealth(
            on_track_percent=vh.on_track_percent,
            at_risk_percent=vh.at_risk_percent,
            off_track_percent=vh.off_track_percent,
            on_track_count=effective.count(ON_TRACK),
            at_risk_count=effective.count(AT_RISK),
            off_track_count=effective.count(OFF_TRACK),
            total_project_count=len(effective),
            status=vh.status,
        ),
        productivity=TrendProductivity(
            true_throughput=tp.true_throughput if measured else None,
            engineer_count=tp.engineer_count if measured else None,
            true_throughput_per_engineer=(
                tp.true_throughput_per_engineer if measured else None
            ),
            status=tp.status,
        ),
        quality=TrendQuality(
            composite_score=q.composite_score,
            open_bug_count=q.open_bug_count,
            bugs_opened_in_period=q.bugs_opened_in_period,
            bugs_closed_in_period=q.bugs_closed_in_period,
            net_bug_change=q.net_bug_change,
            average_bug_age_days=q.average_bug_age_days,
            max_bug_age_days=q.max_bug_age_days,
            status=q.status,
        ),
        linear_hygiene=(
            TrendHygiene(
                hygiene_score=hygiene.hygiene_score,
                total_gaps=hygiene.total_gaps,
                engineers_with_gaps=hygiene.engineers_with_gaps,
                total_engineers=hygiene.total_engineers,
                projects_with_gaps=hygiene.projects_with_gaps,
                total_projects=hygiene.total_projects,
                status=hygiene.status,
            )
            if hygiene is not None
            else None
        ),
    )


def _trends_response(
    *,
    db_url: str,
    level: str = "org",
    level_id: Optional[str] = None,
    limit: int = DEFAULT_TREND_LIMIT,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> TrendsResponse:
    """
    Snapshot series for charting, oldest first.

    A date range is used only when both ends are given; otherwise the most
    recent `limit` snapshots are returned. Rows that fail to parse are skipped.
    """
    query_level_id = validate_level(level, level_id)
    validate_date_bound("startDate", start_date)
    validate_date_bound("endDate", end_date)
    with metrics_sink(db_url) as sink:
        if start_date and end_date:
            records = sink.get_metrics_snapshots_by_date_range(
                level, query_level_id, start_date, end_date
            )
        else:
            records = sink.get_metrics_snapshot_trend(level, query_level_id, limit)

    points: List[TrendDataPoint] = []
    for record in records:
        parsed = safe_parse_metrics_snapshot(record.metrics_json)
        if parsed is None:
            continue
        points.append(trend_data_point(record.captured_at, parsed))

    skipped = len(records) - len(points)
    if skipped:
        logger.warning(
            "Skipped %d unparseable snapshots for level=%s level_id=%s",
            skipped,
            level,
            query_level_id,
        )
    return TrendsResponse(level=level, level_id=query_level_id, data_points=points)
