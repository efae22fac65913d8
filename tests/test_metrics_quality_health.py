import copy

import pytest

from metrics.quality_health import (
    calculate_composite_score,
    calculate_quality_health,
    calculate_quality_health_for_team,
    get_bug_trends,
    get_oldest_open_bugs,
    is_bug_issue,
)
from metrics.status import HEALTHY, WARNING


@pytest.fixture
def bugs(make_issue):
    return [
        # open, 10 days old, opened in period
        make_issue(labels=["Bug"], created_at="2025-03-05T00:00:00Z"),
        # closed in period
        make_issue(
            labels=[{"name": "bug", "parent": {"name": "type"}}],
            state_type="completed",
            created_at="2025-02-01T00:00:00Z",
            completed_at="2025-03-10T00:00:00Z",
        ),
        # open, 60 days old
        make_issue(
            labels=["bug"], state_type="unstarted", created_at="2025-01-14T00:00:00Z"
        ),
        make_issue(labels=["feature"], created_at="2025-03-10T00:00:00Z"),
    ]


def test_composite_score_reference_case():
    # bugsPerEng = 10/5 = 2 -> 100 - 24 = 76
    # netPerEng = 2/5 = 0.4 -> 100 - 80 = 20
    # age 30 -> 100 - 15 = 85
    # 76*0.3 + 20*0.4 + 85*0.3 = 22.8 + 8 + 25.5 = 56.3 -> 56
    assert calculate_composite_score(10, 2, 30, 5) == 56


def test_composite_score_floors_components_at_zero():
    # every component clamps to 0
    assert calculate_composite_score(100, 10, 500, 1) == 0
    # a shrinking backlog pushes netScore above 100; the composite caps at 100
    assert calculate_composite_score(0, -1, 0, 1) == 100


def test_is_bug_issue_label_shapes(make_issue):
    assert is_bug_issue(make_issue(labels=["Bug"]))
    assert is_bug_issue(make_issue(labels=["regression-bug"]))
    assert is_bug_issue(
        make_issue(labels=[{"name": "Bug", "parent": {"name": "Type"}}])
    )
    assert not is_bug_issue(make_issue(labels=["feature"]))
    assert not is_bug_issue(make_issue(labels="not json"))


def test_quality_health(bugs, now):
    result = calculate_quality_health(bugs, now=now, engineer_count=1)

    assert result.open_bug_count == 2
    assert result.bugs_opened_in_period == 1
    assert result.bugs_closed_in_period == 1
    assert result.net_bug_change == 0
    # ages 10 and 60 days
    assert result.average_bug_age_days == 35.0
    assert result.max_bug_age_days == 60.0
    # 76*0.3 + 100*0.4 + 82.5*0.3 = 22.8 + 40 + 24.75 = 87.55 -> 88
    assert result.composite_score == 88
    assert result.status == WARNING


def test_quality_health_no_bugs_is_healthy(now):
    result = calculate_quality_health([], now=now)
    assert result.open_bug_count == 0
    assert result.average_bug_age_days == 0.0
    assert result.composite_score == 100
    assert result.status == HEALTHY


def test_unparseable_created_at_counts_open_without_age(make_issue, now):
    issues = [make_issue(labels=["bug"], created_at="yesterday")]
    result = calculate_quality_health(issues, now=now)
    assert result.open_bug_count == 1
    assert result.bugs_opened_in_period == 0
    assert result.average_bug_age_days == 0.0


def test_quality_for_team_scopes_by_team_key(bugs, make_issue, now):
    other = make_issue(team_key="OPS", labels=["bug"], created_at="2025-03-14T00:00:00Z")
    result = calculate_quality_health_for_team("eng", bugs + [other], now=now)
    assert result == calculate_quality_health(bugs, now=now)


def test_oldest_open_bugs(bugs, now):
    oldest = get_oldest_open_bugs(bugs, now=now)
    assert [round(age) for _, age in oldest] == [60, 10]
    assert len(get_oldest_open_bugs(bugs, now=now, limit=1)) == 1


def test_bug_trends_oldest_period_first(bugs, now):
    trends = get_bug_trends(bugs, now=now, periods=2, period_days=7)
    # [Mar 1, Mar 8): opened Mar 5; [Mar 8, Mar 15): closed Mar 10
    assert (trends[0].opened, trends[0].closed) == (1, 0)
    assert (trends[1].opened, trends[1].closed, trends[1].net_change) == (0, 1, -1)
    assert trends[0].period_end == trends[1].period_start


def test_quality_health_is_idempotent(bugs, now):
    before = copy.deepcopy(bugs)

    first = calculate_quality_health(bugs, now=now, engineer_count=3)
    second = calculate_quality_health(bugs, now=now, engineer_count=3)

    assert first == second
    assert bugs == before
