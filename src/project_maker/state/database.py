"""
Persistence boundary for Project Maker.

SQLite (or any SQLAlchemy-supported) database holding three tables:
  projects: one row per project
  features: one row per feature; list/log fields are JSON-encoded text
  settings: key/value rows (e.g. the active project id)

Stores talk to it through parameterized query/execute primitives. Calls run
in a worker thread so the event loop is never blocked, and are serialized
so a single SQLite connection is never used from two threads at once.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite://"

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS projects (
        id              TEXT PRIMARY KEY,
        name            TEXT NOT NULL,
        path            TEXT NOT NULL,
        description     TEXT,
        settings        TEXT,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS features (
        id                  TEXT PRIMARY KEY,
        project_id          TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        title               TEXT NOT NULL,
        description         TEXT,
        status              TEXT NOT NULL,
        complexity          TEXT NOT NULL,
        key_points          TEXT,
        acceptance_criteria TEXT,
        suggested_tests     TEXT,
        dependencies        TEXT,
        automation_status   TEXT NOT NULL,
        automation_logs     TEXT,
        branch_name         TEXT,
        pr_url              TEXT,
        order_index         INTEGER NOT NULL DEFAULT 0,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_features_project_status ON features(project_id, status)",
    """
    CREATE TABLE IF NOT EXISTS settings (
        id      TEXT PRIMARY KEY,
        value   TEXT NOT NULL
    )
    """,
]


class PersistenceError(Exception):
    """Raised when a database call fails."""
    pass


def serialize(data: Any) -> str:
    """Encode a list/dict field for a TEXT column."""
    return json.dumps(data)


def deserialize(data: str | None, default: Any = None) -> Any:
    """Decode a JSON TEXT column, returning default for NULL or garbage."""
    if default is None:
        default = []
    if data is None or data == "":
        return default
    if not isinstance(data, str):
        return data
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable JSON column value: %r", data[:200])
        return default


class Database:
    """
    Thin async facade over a SQLAlchemy engine.

    Example:
        db = Database("sqlite:///project_maker.db")
        await db.init()
        rows = await db.query("SELECT * FROM features WHERE project_id = :pid", {"pid": pid})
    """

    def __init__(self, url: str = IN_MEMORY_URL, echo: bool = False):
        """
        Initialize the database facade.

        Args:
            url: SQLAlchemy database URL (in-memory SQLite by default)
            echo: Log every SQL statement
        """
        self.url = url
        self.engine: Engine = self._create_engine(url, echo)
        self._lock = asyncio.Lock()

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in (IN_MEMORY_URL, "sqlite:///:memory:"):
                # One shared connection, otherwise every checkout gets an empty database
                kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    async def init(self) -> None:
        """Create tables if they don't exist."""
        def create() -> None:
            with self.engine.begin() as conn:
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(text(statement))

        await self._run(create, "initialize schema")
        logger.info("Database schema initialized (%s)", self.url)

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a SELECT and return rows as dictionaries."""
        def select() -> list[dict[str, Any]]:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql), params or {})
                return [dict(row._mapping) for row in result]

        return await self._run(select, sql)

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run an INSERT/UPDATE/DELETE in its own transaction; return affected rows."""
        def write() -> int:
            with self.engine.begin() as conn:
                return conn.execute(text(sql), params or {}).rowcount

        return await self._run(write, sql)

    async def execute_many(self, statements: Sequence[tuple[str, dict[str, Any]]]) -> None:
        """Run several statements in a single transaction (all or nothing)."""
        def write_all() -> None:
            with self.engine.begin() as conn:
                for sql, params in statements:
                    conn.execute(text(sql), params)

        await self._run(write_all, f"batch of {len(statements)} statements")

    async def close(self) -> None:
        """Dispose of pooled connections."""
        self.engine.dispose()

    async def _run(self, func, description: str):
        async with self._lock:
            try:
                return await asyncio.to_thread(func)
            except SQLAlchemyError as e:
                logger.error("Database call failed (%s): %s", description.strip()[:80], e)
                raise PersistenceError(str(e)) from e
