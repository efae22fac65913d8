from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from metrics.schemas import IssueRow, QualityHealthRecord
from metrics.scoping import issues_for_teams, parse_json_list, parse_timestamp
from metrics.status import round_half_up, round_int, status_from_score

DEFAULT_PERIOD_DAYS = 14

# Calibration constants for the composite score.
BUG_PENALTY_PER_ENG = 12
NET_PENALTY_PER_ENG = 200
AGE_PENALTY_PER_DAY = 0.5
BUG_WEIGHT = 0.3
NET_WEIGHT = 0.4
AGE_WEIGHT = 0.3

_CLOSED_STATE_TYPES = {"completed", "canceled"}


@dataclass(frozen=True)
class BugTrendPeriod:
    period_start: datetime
    period_end: datetime
    opened: int
    closed: int
    net_change: int


def is_bug_issue(issue: IssueRow) -> bool:
    """
    Broad bug heuristic over the JSON label list.

    Matches a `type: bug` scoped label or any label whose name contains "bug".
    Labels may be plain strings or `{name, parent: {name}}` objects.
    """
    for label in parse_json_list(issue.get("labels")):
        if isinstance(label, str):
            if "bug" in label.lower():
                return True
            continue
        if not isinstance(label, dict):
            continue
        name = str(label.get("name") or "").lower()
        parent = label.get("parent")
        parent_name = (
            str(parent.get("name") or "").lower() if isinstance(parent, dict) else ""
        )
        if name == "bug" and parent_name == "type":
            return True
        if "bug" in name:
            return True
    return False


def is_open_issue(issue: IssueRow) -> bool:
    return issue.get("state_type") not in _CLOSED_STATE_TYPES


def calculate_issue_age_days(issue: IssueRow, now: datetime) -> Optional[float]:
    created = parse_timestamp(issue.get("created_at"))
    if created is None:
        return None
    return (now - created).total_seconds() / 86400.0


def calculate_composite_score(
    open_count: int,
    net_change: int,
    avg_age_days: float,
    engineer_count: int = 1,
) -> int:
    eng = max(1, int(engineer_count or 0))
    bug_score = max(0.0, 100 - (open_count / eng) * BUG_PENALTY_PER_ENG)
    net_score = max(0.0, 100 - (net_change / eng) * NET_PENALTY_PER_ENG)
    age_score = max(0.0, 100 - avg_age_days * AGE_PENALTY_PER_DAY)
    weighted = bug_score * BUG_WEIGHT + net_score * NET_WEIGHT + age_score * AGE_WEIGHT
    return max(0, min(100, round_int(weighted)))


def _in_window(
    value: Optional[str], start: datetime, end: Optional[datetime] = None
) -> bool:
    ts = parse_timestamp(value)
    if ts is None or ts < start:
        return False
    return end is None or ts < end


def calculate_quality_health(
    issues: Sequence[IssueRow],
    *,
    now: datetime,
    period_days: int = DEFAULT_PERIOD_DAYS,
    issue_filter: Optional[Callable[[IssueRow], bool]] = None,
    engineer_count: int = 1,
) -> QualityHealthRecord:
    scoped = [i for i in issues if issue_filter(i)] if issue_filter else issues
    period_start = now - timedelta(days=period_days)

    bugs = [i for i in scoped if is_bug_issue(i)]
    open_bugs = [b for b in bugs if is_open_issue(b)]
    opened = sum(1 for b in bugs if _in_window(b.get("created_at"), period_start))
    closed = sum(1 for b in bugs if _in_window(b.get("completed_at"), period_start))

    ages = [
        age
        for age in (calculate_issue_age_days(b, now) for b in open_bugs)
        if age is not None
    ]
    avg_age = sum(ages) / len(ages) if ages else 0.0
    max_age = max(ages) if ages else 0.0

    net_change = opened - closed
    score = calculate_composite_score(len(open_bugs), net_change, avg_age, engineer_count)

    return QualityHealthRecord(
        open_bug_count=len(open_bugs),
        bugs_opened_in_period=opened,
        bugs_closed_in_period=closed,
        net_bug_change=net_change,
        average_bug_age_days=round_half_up(avg_age, 1),
        max_bug_age_days=round_half_up(max_age, 1),
        composite_score=score,
        status=status_from_score(score),
    )


def calculate_quality_health_for_team(
    team_key: str,
    issues: Sequence[IssueRow],
    *,
    now: datetime,
    period_days: int = DEFAULT_PERIOD_DAYS,
    engineer_count: int = 1,
) -> QualityHealthRecord:
    return calculate_quality_health(
        issues_for_teams([team_key], issues),
        now=now,
        period_days=period_days,
        engineer_count=engineer_count,
    )


def calculate_quality_health_for_domain(
    domain_team_keys: Sequence[str],
    issues: Sequence[IssueRow],
    *,
    now: datetime,
    period_days: int = DEFAULT_PERIOD_DAYS,
    engineer_count: int = 1,
) -> QualityHealthRecord:
    return calculate_quality_health(
        issues_for_teams(domain_team_keys, issues),
        now=now,
        period_days=period_days,
        engineer_count=engineer_count,
    )


def get_oldest_open_bugs(
    issues: Sequence[IssueRow], *, now: datetime, limit: int = 10
) -> List[Tuple[IssueRow, float]]:
    aged: List[Tuple[IssueRow, float]] = []
    for issue in issues:
        if not (is_bug_issue(issue) and is_open_issue(issue)):
            continue
        age = calculate_issue_age_days(issue, now)
        if age is not None:
            aged.append((issue, age))
    aged.sort(key=lambda item: item[1], reverse=True)
    return aged[:limit]


def get_bug_trends(
    issues: Sequence[IssueRow],
    *,
    now: datetime,
    periods: int = 4,
    period_days: int = 7,
) -> List[BugTrendPeriod]:
    """Opened/closed bug counts per trailing window, oldest window first."""
    bugs = [i for i in issues if is_bug_issue(i)]
    span = timedelta(days=period_days)
    trends: List[BugTrendPeriod] = []
    for i in range(periods - 1, -1, -1):
        end = now - span * i
        start = end - span
        opened = sum(1 for b in bugs if _in_window(b.get("created_at"), start, end))
        closed = sum(1 for b in bugs if _in_window(b.get("completed_at"), start, end))
        trends.append(
            BugTrendPeriod(
                period_start=start,
                period_end=end,
                opened=opened,
                closed=closed,
                net_change=opened - closed,
            )
        )
    return trends
