from metrics.productivity_health import (
    TEAM_LEVEL_PENDING_NOTES,
    calculate_productivity_for_domain,
    calculate_productivity_for_org,
    calculate_productivity_for_team,
    domain_for_external_team,
    status_from_per_ic_throughput,
)
from metrics.schemas import ProductivityPending
from metrics.status import CRITICAL, HEALTHY, UNKNOWN, WARNING


def _record(name, throughput, prs=0):
    return {
        "team_id": name,
        "team_name": name,
        "true_throughput": throughput,
        "pr_count": prs,
    }


def test_status_from_per_ic_throughput():
    assert status_from_per_ic_throughput(6.0, 6.0) == HEALTHY
    assert status_from_per_ic_throughput(12.0, 6.0) == HEALTHY  # capped at 100%
    # 4.8 / 6 = 80% of target -> 20% violation
    assert status_from_per_ic_throughput(4.8, 6.0) == WARNING
    assert status_from_per_ic_throughput(3.0, 6.0) == CRITICAL
    assert status_from_per_ic_throughput(None) == UNKNOWN


def test_org_productivity():
    records = [_record("Team Alpha", 30.0, 12), _record("Team Beta", 18.5, 7)]
    result = calculate_productivity_for_org(records, ic_count=8)

    # 48.5 / 8 = 6.0625 -> 6.06 per IC, above the 6.0 target
    assert result.true_throughput == 48.5
    assert result.engineer_count == 8
    assert result.true_throughput_per_engineer == 6.06
    assert result.status == HEALTHY


def test_org_productivity_without_records_is_absent():
    assert calculate_productivity_for_org([], ic_count=5) is None


def test_org_productivity_without_engineers_is_unknown():
    result = calculate_productivity_for_org([_record("A", 10.0)], ic_count=0)
    assert result.true_throughput_per_engineer is None
    assert result.status == UNKNOWN


def test_domain_productivity_uses_explicit_mapping():
    records = [_record("Team Alpha", 10.0), _record("Team Beta", 5.0)]
    result = calculate_productivity_for_domain(
        "Platform",
        records,
        ic_count=2,
        external_domain_mappings={"team alpha": "Platform"},
    )
    assert result.true_throughput == 10.0
    assert result.true_throughput_per_engineer == 5.0


def test_domain_productivity_name_equality_without_mapping():
    records = [_record("platform", 9.0), _record("Other", 5.0)]
    result = calculate_productivity_for_domain("Platform", records, ic_count=3)
    assert result.true_throughput == 9.0
    assert calculate_productivity_for_domain("Missing", records, ic_count=3) is None


def test_domain_for_external_team_prefers_exact_match():
    mappings = {"Alpha": "Exact", "alpha": "Lower"}
    assert domain_for_external_team("Alpha", mappings) == "Exact"
    assert domain_for_external_team("ALPHA", {"alpha": "Lower"}) == "Lower"
    assert domain_for_external_team("Beta", mappings) is None


def test_team_productivity_is_pending():
    result = calculate_productivity_for_team()
    assert isinstance(result, ProductivityPending)
    assert result.status == "pending"
    assert result.notes == TEAM_LEVEL_PENDING_NOTES


def test_productivity_is_idempotent():
    records = [_record("Team Alpha", 30.0, 12), _record("Team Beta", 18.5, 7)]
    mappings = {"team alpha": "Platform"}

    assert calculate_productivity_for_org(
        records, ic_count=8
    ) == calculate_productivity_for_org(records, ic_count=8)
    assert calculate_productivity_for_domain(
        "Platform", records, ic_count=2, external_domain_mappings=mappings
    ) == calculate_productivity_for_domain(
        "Platform", records, ic_count=2, external_domain_mappings=mappings
    )
    assert records[0]["true_throughput"] == 30.0
