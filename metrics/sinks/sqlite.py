from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from metrics.schemas import MetricsSnapshotRecord
from metrics.scoping import parse_timestamp


def format_timestamp(value: Union[datetime, str]) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2025-03-15T12:00:00.000Z."""
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _range_bound(value: Union[datetime, str], *, end: bool) -> str:
    """
    Normalize a range bound to the stored timestamp format.

    Date-only bounds cover the whole day. Any other string is parsed and
    re-formatted so second-precision or offset bounds compare correctly.
    """
    if isinstance(value, str):
        raw = value.strip()
        if len(raw) == 10:
            try:
                date.fromisoformat(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid date bound: {value!r}") from exc
            return raw + ("T23:59:59.999Z" if end else "T00:00:00.000Z")
        parsed = parse_timestamp(raw)
        if parsed is None:
            raise ValueError(f"Invalid timestamp bound: {value!r}")
        value = parsed
    return format_timestamp(value)


def _level_clause(level_id: Optional[str]) -> str:
    if level_id is None:
        return "level = :level AND level_id IS NULL"
    return "level = :level AND level_id = :level_id"


def _row_to_record(row) -> MetricsSnapshotRecord:
    m = row._mapping
    return MetricsSnapshotRecord(
        id=int(m["id"]),
        captured_at=str(m["captured_at"]),
        schema_version=int(m["schema_version"]),
        level=str(m["level"]),
        level_id=m["level_id"],
        metrics_json=str(m["metrics_json"]),
    )


class SQLiteMetricsSink:
    """SQLite sink for metrics snapshots (append-only, one row per capture)."""

    def __init__(self, db_url: str) -> None:
        if not db_url:
            raise ValueError("SQLite DB URL is required")
        if "sqlite+aiosqlite://" in db_url:
            db_url = db_url.replace("sqlite+aiosqlite://", "sqlite://", 1)
        self.engine: Engine = create_engine(db_url, echo=False)

    def close(self) -> None:
        self.engine.dispose()

    def ensure_tables(self) -> None:
        stmts = [
            """
            CREATE TABLE IF NOT EXISTS metrics_snapshots (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              captured_at TEXT NOT NULL,
              schema_version INTEGER NOT NULL,
              level TEXT NOT NULL,
              level_id TEXT,
              metrics_json TEXT NOT NULL
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_metrics_snapshots_level
            ON metrics_snapshots (level, level_id, captured_at)
            """,
        ]
        with self.engine.begin() as conn:
            for stmt in stmts:
                conn.execute(text(stmt))

    def insert_metrics_snapshot(
        self,
        *,
        captured_at: Union[datetime, str],
        schema_version: int,
        level: str,
        level_id: Optional[str],
        metrics_json: str,
    ) -> int:
        stmt = text(
            """
            INSERT INTO metrics_snapshots (
              captured_at, schema_version, level, level_id, metrics_json
            ) VALUES (
              :captured_at, :schema_version, :level, :level_id, :metrics_json
            )
            """
        )
        with self.engine.begin() as conn:
            result = conn.execute(
                stmt,
                {
                    "captured_at": format_timestamp(captured_at),
                    "schema_version": int(schema_version),
                    "level": level,
                    "level_id": level_id,
                    "metrics_json": metrics_json,
                },
            )
            return int(result.lastrowid)

    def get_latest_metrics_snapshot(
        self, level: str, level_id: Optional[str] = None
    ) -> Optional[MetricsSnapshotRecord]:
        stmt = text(
            f"""
            SELECT id, captured_at, schema_version, level, level_id, metrics_json
            FROM metrics_snapshots
            WHERE {_level_clause(level_id)}
            ORDER BY captured_at DESC, id DESC
            LIMIT 1
            """
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt, {"level": level, "level_id": level_id}).first()
        return _row_to_record(row) if row is not None else None

    def get_all_latest_metrics_snapshots(self) -> List[MetricsSnapshotRecord]:
        """The newest snapshot for every (level, level_id) pair."""
        stmt = text(
            """
            SELECT s.id, s.captured_at, s.schema_version, s.level, s.level_id,
                   s.metrics_json
            FROM metrics_snapshots s
            WHERE s.id = (
              SELECT s2.id FROM metrics_snapshots s2
              WHERE s2.level = s.level
                AND COALESCE(s2.level_id, '') = COALESCE(s.level_id, '')
              ORDER BY s2.captured_at DESC, s2.id DESC
              LIMIT 1
            )
            ORDER BY CASE s.level WHEN 'org' THEN 0 WHEN 'domain' THEN 1 ELSE 2 END,
                     s.level_id
            """
        )
        with self.engine.connect() as conn:
            return [_row_to_record(r) for r in conn.execute(stmt)]

    def get_metrics_snapshot_trend(
        self, level: str, level_id: Optional[str] = None, limit: int = 168
    ) -> List[MetricsSnapshotRecord]:
        """Most recent `limit` snapshots, oldest first."""
        stmt = text(
            f"""
            SELECT id, captured_at, schema_version, level, level_id, metrics_json
            FROM metrics_snapshots
            WHERE {_level_clause(level_id)}
            ORDER BY captured_at DESC, id DESC
            LIMIT :limit
            """
        )
        with self.engine.connect() as conn:
            rows = conn.execute(
                stmt, {"level": level, "level_id": level_id, "limit": max(0, int(limit))}
            ).all()
        return [_row_to_record(r) for r in reversed(rows)]

    def get_metrics_snapshots_by_date_range(
        self,
        level: str,
        level_id: Optional[str],
        start: Union[datetime, str],
        end: Union[datetime, str],
    ) -> List[MetricsSnapshotRecord]:
        stmt = text(
            f"""
            SELECT id, captured_at, schema_version, level, level_id, metrics_json
            FROM metrics_snapshots
            WHERE {_level_clause(level_id)}
              AND captured_at >= :start AND captured_at <= :end
            ORDER BY captured_at ASC, id ASC
            """
        )
        with self.engine.connect() as conn:
            rows = conn.execute(
                stmt,
                {
                    "level": level,
                    "level_id": level_id,
                    "start": _range_bound(start, end=False),
                    "end": _range_bound(end, end=True),
                },
            ).all()
        return [_row_to_record(r) for r in rows]
