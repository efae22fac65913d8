from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy import create_engine, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.inspection import inspect
from sqlalchemy.orm import Session, sessionmaker

from metrics.schemas import EngineerRow, IssueRow, ProjectRow, SyncMetadataRow
from models.tracker import Base, Engineer, Issue, Project, SyncMetadata

logger = logging.getLogger(__name__)


def detect_db_type(conn_string: str) -> str:
    """
    Detect database type from connection string.

    :param conn_string: Database connection string.
    :return: Database type ('sqlite' or 'postgres').
    :raises ValueError: If database type cannot be determined.
    """
    if not conn_string:
        raise ValueError("Database connection string is required")

    scheme = conn_string.split("://", 1)[0].lower() if "://" in conn_string else ""
    if scheme.startswith("sqlite"):
        return "sqlite"
    if scheme.startswith("postgres"):
        return "postgres"
    raise ValueError(
        f"Could not detect database type from connection string: {conn_string}. "
        f"Supported types: sqlite, postgres"
    )


def normalize_sqlite_url(db_url: str) -> str:
    if "sqlite+aiosqlite://" in db_url:
        return db_url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return db_url


def model_to_dict(model: Any) -> Dict[str, Any]:
    """Convert a SQLAlchemy model instance to a plain dict."""
    mapper = inspect(model.__class__)
    return {column.key: getattr(model, column.key) for column in mapper.columns}


class TrackerStore:
    """
    Read access to the synced tracker tables (issues, projects, engineers).

    Rows come back as plain dicts shaped like the TypedDicts in
    `metrics.schemas`, which is what every pillar calculator consumes.
    """

    def __init__(self, conn_string: str, echo: bool = False) -> None:
        detect_db_type(conn_string)
        self.engine: Engine = create_engine(normalize_sqlite_url(conn_string), echo=echo)
        self.session_factory = sessionmaker(self.engine, expire_on_commit=False)

    def __enter__(self) -> "TrackerStore":
        if self.engine.dialect.name == "sqlite":
            self.ensure_tables()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.engine.dispose()

    def ensure_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def _all(self, model: Type[Base]) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            return [model_to_dict(row) for row in session.scalars(select(model))]

    def get_all_issues(self) -> List[IssueRow]:
        return self._all(Issue)  # type: ignore[return-value]

    def get_all_projects(self) -> List[ProjectRow]:
        return self._all(Project)  # type: ignore[return-value]

    def get_all_engineers(self) -> List[EngineerRow]:
        return self._all(Engineer)  # type: ignore[return-value]

    def get_sync_metadata(self) -> Optional[SyncMetadataRow]:
        with self.session_factory() as session:
            row = session.get(SyncMetadata, 1)
            if row is None:
                return None
            return {"last_sync_time": row.last_sync_time}

    def get_team_names_by_key(self) -> Dict[str, str]:
        """team_key -> team_name, as seen on issues."""
        with self.session_factory() as session:
            rows = session.execute(
                select(Issue.team_key, Issue.team_name).distinct()
            ).all()
        return {key: name for key, name in rows if key and name}

    # ---- writes (used by the sync collaborator and fixtures) ----

    def _upsert_many(
        self,
        session: Session,
        model: Type[Base],
        rows: List[Dict[str, Any]],
        conflict_columns: List[str],
    ) -> None:
        if not rows:
            return
        if self.engine.dialect.name != "sqlite":
            for row in rows:
                session.merge(model(**row))
            return
        columns = {c.key for c in inspect(model).columns}
        stmt = sqlite_insert(model)
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={
                col: getattr(stmt.excluded, col)
                for col in columns
                if col not in conflict_columns
            },
        )
        session.execute(stmt, rows)

    def upsert_issues(self, rows: Iterable[Dict[str, Any]]) -> None:
        with self.session_factory.begin() as session:
            self._upsert_many(session, Issue, list(rows), ["id"])

    def upsert_projects(self, rows: Iterable[Dict[str, Any]]) -> None:
        with self.session_factory.begin() as session:
            self._upsert_many(session, Project, list(rows), ["project_id"])

    def upsert_engineers(self, rows: Iterable[Dict[str, Any]]) -> None:
        with self.session_factory.begin() as session:
            self._upsert_many(session, Engineer, list(rows), ["assignee_id"])

    def set_last_sync_time(self, last_sync_time: Optional[str]) -> None:
        with self.session_factory.begin() as session:
            row = session.get(SyncMetadata, 1)
            if row is None:
                session.add(SyncMetadata(id=1, last_sync_time=last_sync_time))
            else:
                row.last_sync_time = last_sync_time
