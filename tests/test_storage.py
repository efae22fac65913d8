from datetime import datetime, timezone

import pytest

from metrics.sinks.sqlite import SQLiteMetricsSink
from models import Issue
from storage import TrackerStore, detect_db_type, model_to_dict


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'tracker.db'}"


@pytest.fixture
def sink(db_url):
    sink = SQLiteMetricsSink(db_url)
    sink.ensure_tables()
    yield sink
    sink.close()


def test_detect_db_type():
    assert detect_db_type("sqlite:///tracker.db") == "sqlite"
    assert detect_db_type("sqlite+aiosqlite:///tracker.db") == "sqlite"
    assert detect_db_type("postgresql://user@host/db") == "postgres"
    with pytest.raises(ValueError):
        detect_db_type("mysql://host/db")
    with pytest.raises(ValueError):
        detect_db_type("")


def test_model_to_dict():
    issue = Issue(id="i1", identifier="ENG-1", title="Fix", team_key="ENG")
    doc = model_to_dict(issue)
    assert doc["id"] == "i1"
    assert doc["team_key"] == "ENG"
    assert doc["labels"] is None


def test_tracker_store_round_trip(db_url, make_issue, make_project, make_engineer):
    with TrackerStore(db_url) as store:
        store.upsert_issues(
            [
                make_issue(id="i1", team_key="ENG", team_name="Platform"),
                make_issue(id="i2", team_key="OPS", team_name="Ops"),
            ]
        )
        store.upsert_projects([make_project("p1", engineers=["Alice"])])
        store.upsert_engineers([make_engineer("Alice")])
        store.set_last_sync_time("2025-03-14T23:55:00Z")

        assert {i["id"] for i in store.get_all_issues()} == {"i1", "i2"}
        projects = store.get_all_projects()
        assert projects[0]["engineers"] == '["Alice"]'
        assert store.get_all_engineers()[0]["assignee_name"] == "Alice"
        assert store.get_sync_metadata() == {"last_sync_time": "2025-03-14T23:55:00Z"}
        assert store.get_team_names_by_key() == {"ENG": "Platform", "OPS": "Ops"}


def test_tracker_store_upsert_updates_existing(db_url, make_engineer):
    with TrackerStore(db_url) as store:
        store.upsert_engineers([make_engineer("Alice", wip=2)])
        store.upsert_engineers([make_engineer("Alice", wip=7, wip_limit_violation=1)])
        engineers = store.get_all_engineers()

    assert len(engineers) == 1
    assert engineers[0]["wip_issue_count"] == 7
    assert engineers[0]["wip_limit_violation"] == 1


def test_sync_metadata_absent(db_url):
    with TrackerStore(db_url) as store:
        assert store.get_sync_metadata() is None


def _insert(sink, captured_at, level="org", level_id=None, body="{}"):
    return sink.insert_metrics_snapshot(
        captured_at=captured_at,
        schema_version=1,
        level=level,
        level_id=level_id,
        metrics_json=body,
    )


def test_sink_latest_snapshot(sink):
    _insert(sink, "2025-03-15T00:00:00.000Z", body='{"n": 1}')
    _insert(sink, "2025-03-15T01:00:00.000Z", body='{"n": 2}')
    _insert(sink, "2025-03-15T02:00:00.000Z", level="team", level_id="ENG")

    latest = sink.get_latest_metrics_snapshot("org")
    assert latest.metrics_json == '{"n": 2}'
    assert latest.level_id is None
    assert sink.get_latest_metrics_snapshot("team", "ENG").level == "team"
    assert sink.get_latest_metrics_snapshot("team", "OPS") is None


def test_sink_insert_normalizes_datetimes(sink):
    row_id = _insert(sink, datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc))
    assert row_id >= 1
    assert sink.get_latest_metrics_snapshot("org").captured_at == "2025-03-15T12:00:00.000Z"


def test_sink_all_latest_one_per_scope(sink):
    _insert(sink, "2025-03-15T00:00:00.000Z")
    _insert(sink, "2025-03-15T01:00:00.000Z")
    _insert(sink, "2025-03-15T00:00:00.000Z", level="team", level_id="OPS")
    _insert(sink, "2025-03-15T00:00:00.000Z", level="team", level_id="ENG")
    _insert(sink, "2025-03-15T00:00:00.000Z", level="domain", level_id="Platform")

    latest = sink.get_all_latest_metrics_snapshots()
    assert [(r.level, r.level_id) for r in latest] == [
        ("org", None),
        ("domain", "Platform"),
        ("team", "ENG"),
        ("team", "OPS"),
    ]
    assert latest[0].captured_at == "2025-03-15T01:00:00.000Z"


def test_sink_trend_is_oldest_first_and_limited(sink):
    for hour in range(5):
        _insert(sink, f"2025-03-15T0{hour}:00:00.000Z")

    trend = sink.get_metrics_snapshot_trend("org", limit=3)
    assert [r.captured_at[11:13] for r in trend] == ["02", "03", "04"]


def test_sink_date_range_is_inclusive(sink):
    _insert(sink, "2025-03-14T23:00:00.000Z")
    _insert(sink, "2025-03-15T00:00:00.000Z")
    _insert(sink, "2025-03-15T23:59:00.000Z")
    _insert(sink, "2025-03-16T00:00:00.000Z")

    rows = sink.get_metrics_snapshots_by_date_range(
        "org", None, "2025-03-15", "2025-03-15"
    )
    assert [r.captured_at for r in rows] == [
        "2025-03-15T00:00:00.000Z",
        "2025-03-15T23:59:00.000Z",
    ]


def test_sink_date_range_accepts_second_precision_bounds(sink):
    _insert(sink, "2025-03-01T00:00:00.000Z")
    _insert(sink, "2025-03-01T12:00:00.500Z")

    rows = sink.get_metrics_snapshots_by_date_range(
        "org", None, "2025-03-01T00:00:00Z", "2025-03-02"
    )
    assert len(rows) == 2
    assert rows[0].captured_at == "2025-03-01T00:00:00.000Z"

    rows = sink.get_metrics_snapshots_by_date_range(
        "org", None, "2025-03-01T00:00:00+00:00", "2025-03-01T12:00:00Z"
    )
    assert [r.captured_at for r in rows] == ["2025-03-01T00:00:00.000Z"]


@pytest.mark.parametrize("bound", ["not-a-date", "2025-13-45", "2025-03-01Tnope"])
def test_sink_date_range_rejects_invalid_bounds(sink, bound):
    with pytest.raises(ValueError):
        sink.get_metrics_snapshots_by_date_range("org", None, bound, "2025-03-02")
