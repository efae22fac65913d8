from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from connectors.getdx import (
    GetDXClient,
    ProductivityFetchResult,
    fetch_productivity_metrics,
)
from metrics.config import MetricsConfig, load_metrics_config
from metrics.hygiene_health import (
    calculate_hygiene_health,
    calculate_hygiene_health_for_domain,
    calculate_hygiene_health_for_team,
)
from metrics.productivity_health import (
    calculate_productivity_for_domain,
    calculate_productivity_for_org,
    calculate_productivity_for_team,
)
from metrics.quality_health import (
    calculate_quality_health,
    calculate_quality_health_for_domain,
    calculate_quality_health_for_team,
)
from metrics.schemas import (
    EngineerRow,
    IssueRow,
    MetricsSnapshotV1,
    ProductivityPending,
    ProjectRow,
    SnapshotMetadata,
    TeamProductivity,
)
from metrics.scoping import all_team_keys
from metrics.sinks.sqlite import SQLiteMetricsSink, format_timestamp
from metrics.snapshot import (
    CURRENT_SCHEMA_VERSION,
    METRICS_LEVELS,
    snapshot_to_json,
)
from metrics.team_health import (
    calculate_team_health,
    calculate_team_health_for_domain,
    calculate_team_health_for_team,
)
from metrics.velocity_health import (
    calculate_velocity_health,
    calculate_velocity_health_for_domain,
    calculate_velocity_health_for_team,
)
from providers.domains import DomainMapping, load_domain_mapping
from storage import TrackerStore, detect_db_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackerData:
    """Everything a capture run reads from the store, loaded once."""

    issues: List[IssueRow]
    projects: List[ProjectRow]
    engineers: List[EngineerRow]
    synced_at: Optional[str] = None


@dataclass
class CaptureResult:
    success: bool
    snapshots_created: int = 0
    error: Optional[str] = None
    details: Dict[str, Any] = field(
        default_factory=lambda: {"org": False, "domains": [], "teams": [], "failed": []}
    )


def load_tracker_data(store: TrackerStore) -> TrackerData:
    metadata = store.get_sync_metadata()
    return TrackerData(
        issues=store.get_all_issues(),
        projects=store.get_all_projects(),
        engineers=store.get_all_engineers(),
        synced_at=(metadata or {}).get("last_sync_time") or None,
    )


def resolve_engineer_count(
    team_keys: Optional[Sequence[str]],
    engineer_team_mapping: Mapping[str, str],
    fallback: int,
) -> int:
    """
    Engineer count for a scope.

    `team_keys=None` means the whole org. A configured engineer -> team
    mapping is authoritative; otherwise `fallback` (the team-health IC count)
    is used.
    """
    if not engineer_team_mapping:
        return fallback
    if team_keys is None:
        return len(engineer_team_mapping)
    keys = {k.upper() for k in team_keys}
    return sum(1 for team in engineer_team_mapping.values() if team.upper() in keys)


def _productivity_for_scope(
    level: str,
    level_id: Optional[str],
    productivity: Optional[ProductivityFetchResult],
    engineer_count: int,
    config: MetricsConfig,
) -> TeamProductivity:
    if level == "team":
        return calculate_productivity_for_team()
    if productivity is None:
        return ProductivityPending(notes="Productivity source not queried")
    if not productivity.success:
        return ProductivityPending(
            notes=f"GetDX unavailable: {productivity.error or 'unknown error'}"
        )

    if level == "domain" and level_id:
        measured = calculate_productivity_for_domain(
            level_id,
            productivity.metrics,
            ic_count=engineer_count,
            target=config.throughput_per_ic_target,
            external_domain_mappings=config.external_domain_mappings,
        )
    else:
        measured = calculate_productivity_for_org(
            productivity.metrics,
            ic_count=engineer_count,
            target=config.throughput_per_ic_target,
        )
    if measured is None:
        return ProductivityPending(notes="No GetDX throughput data for this scope")
    return measured


def build_metrics_snapshot(
    level: str,
    level_id: Optional[str],
    data: TrackerData,
    config: MetricsConfig,
    *,
    captured_at: datetime,
    domains: Optional[DomainMapping] = None,
    productivity: Optional[ProductivityFetchResult] = None,
) -> MetricsSnapshotV1:
    """
    Compute all five pillars for one scope.

    An unknown level, or a domain/team level without an id, is computed as
    the org.
    """
    if level not in METRICS_LEVELS or (level != "org" and not level_id):
        logger.warning(
            "Invalid snapshot scope level=%s level_id=%s, using org", level, level_id
        )
        level, level_id = "org", None
    if captured_at.tzinfo is None:
        captured_at = captured_at.replace(tzinfo=timezone.utc)

    mapping = config.engineer_team_mapping
    if level == "domain":
        team_keys: Optional[List[str]] = (domains or DomainMapping()).teams_for_domain(
            level_id or ""
        )
        keys = team_keys or []
        team_health = calculate_team_health_for_domain(
            keys, data.engineers, data.projects, data.issues,
            engineer_team_mapping=mapping,
        )
        velocity = calculate_velocity_health_for_domain(keys, data.projects)
        hygiene = calculate_hygiene_health_for_domain(
            keys, data.engineers, data.projects, data.issues,
            engineer_team_mapping=mapping,
        )
    elif level == "team":
        team_keys = [level_id or ""]
        team_health = calculate_team_health_for_team(
            team_keys[0], data.engineers, data.projects, data.issues,
            engineer_team_mapping=mapping,
        )
        velocity = calculate_velocity_health_for_team(team_keys[0], data.projects)
        hygiene = calculate_hygiene_health_for_team(
            team_keys[0], data.engineers, data.projects, data.issues,
            engineer_team_mapping=mapping,
        )
    else:
        team_keys = None
        team_health = calculate_team_health(
            data.engineers, data.projects, engineer_team_mapping=mapping
        )
        velocity = calculate_velocity_health(data.projects)
        hygiene = calculate_hygiene_health(data.engineers, data.projects)

    engineer_count = resolve_engineer_count(
        team_keys, mapping, team_health.total_ic_count
    )

    if level == "domain":
        quality = calculate_quality_health_for_domain(
            team_keys or [], data.issues, now=captured_at, engineer_count=engineer_count
        )
    elif level == "team":
        quality = calculate_quality_health_for_team(
            level_id or "", data.issues, now=captured_at, engineer_count=engineer_count
        )
    else:
        quality = calculate_quality_health(
            data.issues, now=captured_at, engineer_count=engineer_count
        )

    return MetricsSnapshotV1(
        team_health=team_health,
        velocity_health=velocity,
        team_productivity=_productivity_for_scope(
            level, level_id, productivity, engineer_count, config
        ),
        quality=quality,
        linear_hygiene=hygiene,
        metadata=SnapshotMetadata(
            captured_at=format_timestamp(captured_at),
            synced_at=data.synced_at,
            level=level,
            level_id=level_id,
        ),
        schema_version=CURRENT_SCHEMA_VERSION,
    )


def fetch_productivity(
    config: MetricsConfig, client: Optional[GetDXClient] = None
) -> ProductivityFetchResult:
    """One productivity fetch per run; never raises."""
    if client is None and config.getdx_api_key:
        client = GetDXClient(api_key=config.getdx_api_key)
    return fetch_productivity_metrics(client, config.getdx_feed_token)


def capture_org_snapshot(
    store: TrackerStore,
    config: MetricsConfig,
    *,
    now: Optional[datetime] = None,
    productivity: Optional[ProductivityFetchResult] = None,
) -> Optional[MetricsSnapshotV1]:
    """Compute the org snapshot without persisting it. None on failure."""
    try:
        data = load_tracker_data(store)
        return build_metrics_snapshot(
            "org",
            None,
            data,
            config,
            captured_at=now or datetime.now(timezone.utc),
            productivity=productivity,
        )
    except Exception:
        logger.exception("Failed to capture org snapshot")
        return None


def capture_metrics_snapshots(
    store: TrackerStore,
    sink: SQLiteMetricsSink,
    config: MetricsConfig,
    *,
    now: Optional[datetime] = None,
    productivity: Optional[ProductivityFetchResult] = None,
) -> CaptureResult:
    """
    Capture and persist snapshots for the org, every domain and every team.

    All rows of one run share the same `captured_at`. A scope that fails is
    logged and listed in `details["failed"]`; the remaining scopes are still
    captured.
    """
    started = time.monotonic()
    captured_at = now or datetime.now(timezone.utc)
    captured_at_str = format_timestamp(captured_at)
    logger.info("Starting metrics snapshot capture at %s", captured_at_str)

    result = CaptureResult(success=True)
    try:
        data = load_tracker_data(store)
    except Exception as exc:
        logger.exception("Failed to load tracker data for snapshot capture")
        result.success = False
        result.error = str(exc)
        return result

    logger.info(
        "Loaded %d issues, %d projects, %d engineers",
        len(data.issues),
        len(data.projects),
        len(data.engineers),
    )

    domains = load_domain_mapping(config)

    def _capture(level: str, level_id: Optional[str]) -> bool:
        try:
            snapshot = build_metrics_snapshot(
                level,
                level_id,
                data,
                config,
                captured_at=captured_at,
                domains=domains,
                productivity=productivity,
            )
            sink.insert_metrics_snapshot(
                captured_at=captured_at_str,
                schema_version=CURRENT_SCHEMA_VERSION,
                level=level,
                level_id=level_id,
                metrics_json=snapshot_to_json(snapshot),
            )
        except Exception:
            logger.exception(
                "Snapshot capture failed for level=%s level_id=%s", level, level_id
            )
            result.details["failed"].append(
                level if level_id is None else f"{level}:{level_id}"
            )
            return False
        result.snapshots_created += 1
        return True

    logger.info("Capturing org-level snapshot")
    result.details["org"] = _capture("org", None)

    if domains and domains.all_domains():
        domain_names = domains.all_domains()
        logger.info("Capturing %d domain-level snapshots", len(domain_names))
        for domain in domain_names:
            if _capture("domain", domain):
                result.details["domains"].append(domain)
    else:
        logger.info("No domain mappings configured, skipping domain snapshots")

    team_keys = [k for k in all_team_keys(data.projects) if config.is_team_included(k)]
    logger.info("Capturing %d team-level snapshots", len(team_keys))
    for team_key in team_keys:
        if _capture("team", team_key):
            result.details["teams"].append(team_key)

    failed = result.details["failed"]
    if failed:
        result.success = False
        result.error = f"{len(failed)} snapshot scope(s) failed: {', '.join(failed)}"

    logger.info(
        "Snapshot capture complete: %d snapshots in %.0fms (%d failed)",
        result.snapshots_created,
        (time.monotonic() - started) * 1000,
        len(failed),
    )
    return result


def run_snapshot_job(
    *,
    db_url: Optional[str] = None,
    config: Optional[MetricsConfig] = None,
    now: Optional[datetime] = None,
    fetch_productivity_data: bool = True,
    client: Optional[GetDXClient] = None,
) -> CaptureResult:
    """
    Capture one round of snapshots from the tracker tables in `db_url`.

    Snapshots are appended to `metrics_snapshots` in the same database.
    """
    db_url = db_url or os.getenv("DB_CONN_STRING") or os.getenv("DATABASE_URL")
    if not db_url:
        raise ValueError("Database URI is required (pass --db or set DB_CONN_STRING).")
    if detect_db_type(db_url) != "sqlite":
        raise ValueError("Snapshot capture currently supports SQLite databases only")

    config = config if config is not None else load_metrics_config()

    productivity: Optional[ProductivityFetchResult] = None
    if fetch_productivity_data:
        productivity = fetch_productivity(config, client)
    else:
        logger.info("Skipping productivity fetch")

    store = TrackerStore(db_url)
    sink = SQLiteMetricsSink(db_url)
    try:
        store.ensure_tables()
        sink.ensure_tables()
        return capture_metrics_snapshots(
            store, sink, config, now=now, productivity=productivity
        )
    finally:
        for closeable in (sink, store):
            try:
                closeable.close()
            except Exception:
                logger.exception("Error closing %s", type(closeable).__name__)
