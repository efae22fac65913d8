import copy

from metrics.status import CRITICAL, HEALTHY
from metrics.velocity_health import (
    AT_RISK,
    OFF_TRACK,
    ON_TRACK,
    SOURCE_HUMAN,
    SOURCE_VELOCITY,
    calculate_days_off_target,
    calculate_effective_health,
    calculate_velocity_based_health,
    calculate_velocity_health,
    calculate_velocity_health_for_team,
    get_projects_needing_attention,
    is_active_project,
    normalize_health_value,
    reconcile_health,
)


def test_velocity_based_health_thresholds():
    assert calculate_velocity_based_health(None) == ON_TRACK
    assert calculate_velocity_based_health(-5) == ON_TRACK
    assert calculate_velocity_based_health(14) == ON_TRACK
    assert calculate_velocity_based_health(15) == AT_RISK
    assert calculate_velocity_based_health(28) == AT_RISK
    assert calculate_velocity_based_health(29) == OFF_TRACK


def test_normalize_health_value():
    assert normalize_health_value("Off Track") == OFF_TRACK
    assert normalize_health_value("ON TRACK") == ON_TRACK
    assert normalize_health_value("At Risk") == AT_RISK
    assert normalize_health_value("complete") is None
    assert normalize_health_value(None) is None


def test_days_off_target(make_project):
    # Jan 1 -> Feb 10 is 31 + 9 = 40 days late
    project = make_project(
        "p1", target_date="2025-01-01", estimated_end_date="2025-02-10"
    )
    assert calculate_days_off_target(project) == 40

    early = make_project(
        "p2", target_date="2025-02-10", estimated_end_date="2025-02-01"
    )
    assert calculate_days_off_target(early) == -9

    assert calculate_days_off_target(make_project("p3", target_date="2025-01-01")) is None
    assert calculate_days_off_target(
        make_project("p4", target_date="soon", estimated_end_date="2025-01-01")
    ) is None


def test_calculated_pessimism_overrides_optimistic_human(make_project):
    project = make_project(
        "p1",
        project_health="On Track",
        target_date="2025-01-01",
        estimated_end_date="2025-02-10",
    )
    result = calculate_effective_health(project)
    assert result.days_off_target == 40
    assert result.calculated_health == OFF_TRACK
    assert result.effective_health == OFF_TRACK
    assert result.health_source == SOURCE_VELOCITY


def test_pessimistic_human_wins_over_optimistic_calculation(make_project):
    project = make_project("p1", project_health="At Risk")
    result = calculate_effective_health(project)
    assert result.calculated_health == ON_TRACK
    assert result.effective_health == AT_RISK
    assert result.health_source == SOURCE_HUMAN


def test_reconcile_health_defaults_to_on_track():
    assert reconcile_health(None, ON_TRACK) == (ON_TRACK, SOURCE_HUMAN)
    assert reconcile_health(OFF_TRACK, AT_RISK) == (OFF_TRACK, SOURCE_HUMAN)
    assert reconcile_health(ON_TRACK, AT_RISK) == (AT_RISK, SOURCE_VELOCITY)


def test_is_active_project(make_project):
    assert is_active_project(make_project("a", category="started"))
    assert is_active_project(make_project("b", category="inProgress"))
    assert not is_active_project(make_project("c", category="completed"))
    assert not is_active_project(make_project("d", category=None))


def test_velocity_health_org(make_project):
    projects = [
        make_project("on", project_health="On Track"),
        make_project(
            "off", target_date="2025-01-01", estimated_end_date="2025-02-10"
        ),
        make_project("done", category="completed", project_health="Off Track"),
    ]
    result = calculate_velocity_health(projects)

    # Two active projects: one on track, one off track
    assert [s.project_id for s in result.project_statuses] == ["on", "off"]
    assert result.on_track_percent == 50.0
    assert result.at_risk_percent == 0.0
    assert result.off_track_percent == 50.0
    assert result.status == CRITICAL


def test_velocity_health_without_active_projects_is_on_track():
    result = calculate_velocity_health([])
    assert result.on_track_percent == 100.0
    assert result.project_statuses == []
    assert result.status == HEALTHY


def test_velocity_health_for_team_filters_by_team_key(make_project):
    projects = [
        make_project("eng", teams=["ENG"]),
        make_project(
            "ops",
            teams=["OPS"],
            target_date="2025-01-01",
            estimated_end_date="2025-02-10",
        ),
    ]
    result = calculate_velocity_health_for_team("eng", projects)
    assert [s.project_id for s in result.project_statuses] == ["eng"]
    assert result.status == HEALTHY


def test_projects_needing_attention_order(make_project):
    projects = [
        make_project("risk", project_health="At Risk"),
        make_project(
            "off30", target_date="2025-01-01", estimated_end_date="2025-01-31"
        ),
        make_project("fine", project_health="On Track"),
        make_project(
            "off40", target_date="2025-01-01", estimated_end_date="2025-02-10"
        ),
    ]
    flagged = get_projects_needing_attention(projects)
    assert [p["project_id"] for p, _ in flagged] == ["off40", "off30", "risk"]
    assert flagged[0][1].days_off_target == 40


def test_velocity_health_is_idempotent(make_project):
    projects = [
        make_project("on", project_health="On Track"),
        make_project(
            "off", target_date="2025-01-01", estimated_end_date="2025-02-10"
        ),
        make_project("risk", project_health="At Risk"),
    ]
    before = copy.deepcopy(projects)

    assert calculate_velocity_health(projects) == calculate_velocity_health(projects)
    assert projects == before
