"""
GetDX connector for team throughput data.

Reads the PR-throughput datafeed (rows of ``[day, team_name, throughput,
pr_count]``) and rolls it up per team for the productivity pillar.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from connectors.exceptions import APIException, ConnectorException
from connectors.utils.rest import RESTClient
from metrics.schemas import ThroughputRecord

logger = logging.getLogger(__name__)

GETDX_BASE_URL = "https://api.getdx.com"
DATAFEED_ENDPOINT = "/queries.datafeed"
PRODUCTIVITY_PERIOD_DAYS = 14


@dataclass(frozen=True)
class ThroughputRow:
    day: str
    team_name: str
    throughput: float
    pr_count: int


@dataclass(frozen=True)
class TeamThroughput:
    throughput: float
    pr_count: int


@dataclass
class ProductivityFetchResult:
    success: bool
    metrics: List[ThroughputRecord] = field(default_factory=list)
    error: Optional[str] = None


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class GetDXClient(RESTClient):
    """
    REST client for the GetDX API (bearer-token auth).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = GETDX_BASE_URL,
        timeout: int = 30,
    ):
        """
        Initialize GetDX client.

        :param api_key: GetDX API key.
        :param base_url: GetDX API base URL.
        :param timeout: Request timeout in seconds.
        """
        super().__init__(base_url=base_url, token=api_key, timeout=timeout)

    def fetch_throughput_rows(self, feed_token: str) -> List[ThroughputRow]:
        """
        Fetch the raw PR throughput datafeed.

        :param feed_token: Datafeed token for the PR throughput query.
        :return: Parsed rows.
        :raises APIException: If the payload does not look like a datafeed.
        """
        payload = self.get(DATAFEED_ENDPOINT, params={"feed_token": feed_token})
        data = payload.get("data") if isinstance(payload, dict) else None
        rows = data.get("rows") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise APIException("Unexpected datafeed payload: missing data.rows")

        parsed: List[ThroughputRow] = []
        for row in rows:
            if not isinstance(row, (list, tuple)) or len(row) < 2:
                logger.debug("Skipping malformed datafeed row: %r", row)
                continue
            parsed.append(
                ThroughputRow(
                    day=str(row[0]),
                    team_name=str(row[1]),
                    throughput=_to_float(row[2]) if len(row) > 2 else 0.0,
                    pr_count=_to_int(row[3]) if len(row) > 3 else 0,
                )
            )
        return parsed

    def fetch_throughput_by_team(
        self,
        feed_token: str,
        *,
        days: int = 7,
        today: Optional[date] = None,
    ) -> Dict[str, TeamThroughput]:
        """
        Aggregate the datafeed per team over the trailing `days`.

        :param feed_token: Datafeed token.
        :param days: Window length in days.
        :param today: Reference day (defaults to today, UTC).
        :return: team name -> totals.
        """
        today = today or datetime.now(timezone.utc).date()
        cutoff = (today - timedelta(days=days)).isoformat()

        totals: Dict[str, Dict] = {}
        for row in self.fetch_throughput_rows(feed_token):
            # "2026-01-05 00:00:00" -> "2026-01-05"
            row_day = row.day.split(" ")[0].split("T")[0]
            if row_day < cutoff:
                continue
            entry = totals.setdefault(
                row.team_name, {"throughput": 0.0, "pr_count": 0}
            )
            entry["throughput"] += row.throughput
            entry["pr_count"] += row.pr_count

        result: Dict[str, TeamThroughput] = {}
        for team, entry in totals.items():
            result[team] = TeamThroughput(
                throughput=round(entry["throughput"], 2),
                pr_count=entry["pr_count"],
            )
        return result


def fetch_productivity_metrics(
    client: Optional[GetDXClient],
    feed_token: Optional[str],
    *,
    period_days: int = PRODUCTIVITY_PERIOD_DAYS,
    today: Optional[date] = None,
) -> ProductivityFetchResult:
    """
    Fetch per-team throughput for the productivity pillar.

    Never raises: missing configuration and connector failures are reported
    through `ProductivityFetchResult.error`.
    """
    if client is None:
        logger.info("GetDX not configured - GETDX_API_KEY not set")
        return ProductivityFetchResult(success=False, error="GetDX not configured")
    if not feed_token:
        logger.info(
            "GetDX PR throughput not configured - GETDX_PR_THROUGHPUT_FEED_TOKEN not set"
        )
        return ProductivityFetchResult(
            success=False, error="GetDX PR Throughput datafeed not configured"
        )

    try:
        by_team = client.fetch_throughput_by_team(
            feed_token, days=period_days, today=today
        )
    except ConnectorException as exc:
        logger.warning("Failed to fetch GetDX PR throughput: %s", exc)
        return ProductivityFetchResult(success=False, error=str(exc))

    metrics: List[ThroughputRecord] = [
        {
            # The datafeed only identifies teams by name.
            "team_id": team_name,
            "team_name": team_name,
            "true_throughput": data.throughput,
            "pr_count": data.pr_count,
        }
        for team_name, data in by_team.items()
    ]
    logger.info(
        "Fetched %d team productivity records (%d day period)",
        len(metrics),
        period_days,
    )
    return ProductivityFetchResult(success=True, metrics=metrics)


def aggregate_org_productivity(metrics: List[ThroughputRecord]) -> Dict[str, float]:
    """Org-wide totals across every team record."""
    return {
        "true_throughput": round(
            sum(float(m.get("true_throughput") or 0.0) for m in metrics), 2
        ),
        "pr_count": sum(int(m.get("pr_count") or 0) for m in metrics),
    }
