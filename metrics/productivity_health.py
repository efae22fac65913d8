from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from metrics.schemas import ProductivityMeasured, ProductivityPending, ThroughputRecord
from metrics.status import UNKNOWN, classify_status, round_half_up

logger = logging.getLogger(__name__)

# Throughput units per IC over the 14-day window (about 3 per week).
DEFAULT_THROUGHPUT_PER_IC_TARGET = 6.0

TEAM_LEVEL_PENDING_NOTES = "Team-level GetDX integration pending"


def status_from_per_ic_throughput(
    per_ic: Optional[float], target: float = DEFAULT_THROUGHPUT_PER_IC_TARGET
) -> str:
    if per_ic is None:
        return UNKNOWN
    if target <= 0:
        target = DEFAULT_THROUGHPUT_PER_IC_TARGET
    percent_of_target = min((per_ic / target) * 100, 100.0)
    return classify_status(100 - percent_of_target)


def _measure(
    records: Sequence[ThroughputRecord],
    ic_count: Optional[int],
    target: float,
) -> ProductivityMeasured:
    total = sum(float(r.get("true_throughput") or 0.0) for r in records)
    per_ic = total / ic_count if ic_count is not None and ic_count > 0 else None
    return ProductivityMeasured(
        true_throughput=round_half_up(total, 1),
        engineer_count=ic_count,
        true_throughput_per_engineer=(
            round_half_up(per_ic, 2) if per_ic is not None else None
        ),
        status=status_from_per_ic_throughput(per_ic, target),
    )


def calculate_productivity_for_org(
    records: Sequence[ThroughputRecord],
    *,
    ic_count: Optional[int] = None,
    target: float = DEFAULT_THROUGHPUT_PER_IC_TARGET,
) -> Optional[ProductivityMeasured]:
    """Org throughput across every external team; None when there is no data."""
    if not records:
        return None
    return _measure(records, ic_count, target)


def domain_for_external_team(
    key: str, mappings: Mapping[str, str]
) -> Optional[str]:
    if key in mappings:
        return mappings[key]
    lower = key.lower()
    for candidate, domain in mappings.items():
        if candidate.lower() == lower:
            return domain
    return None


def calculate_productivity_for_domain(
    domain: str,
    records: Sequence[ThroughputRecord],
    *,
    ic_count: Optional[int] = None,
    target: float = DEFAULT_THROUGHPUT_PER_IC_TARGET,
    external_domain_mappings: Optional[Mapping[str, str]] = None,
) -> Optional[ProductivityMeasured]:
    """
    Throughput of the external teams belonging to `domain`.

    Explicit mappings (by team id, then name) are consulted first; only when
    no mappings are configured does a team whose name equals the domain
    (case-insensitively) count. None when nothing matches.
    """
    mappings = external_domain_mappings or {}
    matched = []
    for record in records:
        team_id = str(record.get("team_id") or "")
        team_name = str(record.get("team_name") or "")
        mapped = domain_for_external_team(team_id, mappings) or domain_for_external_team(
            team_name, mappings
        )
        if mapped == domain:
            matched.append(record)
        elif not mappings and team_name.lower() == domain.lower():
            matched.append(record)

    if not matched:
        logger.debug("No external productivity teams matched domain %s", domain)
        return None
    return _measure(matched, ic_count, target)


def calculate_productivity_for_team() -> ProductivityPending:
    return ProductivityPending(notes=TEAM_LEVEL_PENDING_NOTES)
