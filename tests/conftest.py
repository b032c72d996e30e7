"""
Pytest configuration and fixtures for sql-output.

Provides loguru capture, a scripted in-memory store for engine tests and a
temporary SQLite database for integration tests.
"""

from typing import Any, Mapping, Sequence

import pytest
from loguru import logger
from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine

from sql_output.store import TableDescriptor


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda m: records.append(m.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


class ScriptedStore:
    """Store double: the first insert may fail with ``bulk_error``; single-row
    inserts pop failures from ``row_errors`` keyed by the row's ``message``."""

    def __init__(
        self,
        columns: Sequence[str] = ("message", "host", "level"),
        bulk_error: Exception | None = None,
        row_errors: Mapping[str, list[Exception]] | None = None,
        missing_tables: Sequence[str] = (),
    ):
        self.columns = tuple(columns)
        self.bulk_error = bulk_error
        self.row_errors = {k: list(v) for k, v in (row_errors or {}).items()}
        self.missing_tables = set(missing_tables)
        self.calls: list[list[dict[str, Any]]] = []
        self.inserted: list[dict[str, Any]] = []

    def describe(self, table_name: str) -> TableDescriptor:
        if table_name in self.missing_tables:
            raise LookupError(f"no such table: {table_name}")
        return TableDescriptor(
            name=table_name, columns=self.columns, json_columns=frozenset(), table=None
        )

    def insert(self, descriptor, rows):
        self.calls.append([dict(r) for r in rows])
        if self.bulk_error is not None and len(self.calls) == 1:
            raise self.bulk_error
        if len(rows) == 1:
            pending = self.row_errors.get(rows[0].get("message"))
            if pending:
                raise pending.pop(0)
        self.inserted.extend(dict(r) for r in rows)
        return len(rows)


@pytest.fixture
def scripted_store():
    """Factory for ScriptedStore instances."""
    return ScriptedStore


@pytest.fixture
def sqlite_path(tmp_path):
    """SQLite file with a ``logs`` (default) and an ``access_logs`` table."""
    path = tmp_path / "logs.db"
    engine = create_engine(f"sqlite:///{path}")
    md = MetaData()
    Table(
        "logs",
        md,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("message", Text, nullable=False),
        Column("host", String(255)),
        Column("tag", String(255)),
        Column("created_at", String(64)),
    )
    Table(
        "access_logs",
        md,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("path", String(1024), nullable=False),
        Column("status", Integer),
        Column("host", String(255)),
    )
    md.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def sqlite_config(sqlite_path) -> dict:
    """Raw configuration: default ``logs`` table plus ``access.*`` -> ``access_logs``."""
    return {
        "host": "localhost",
        "adapter": "sqlite",
        "database": str(sqlite_path),
        "tables": [
            {"table": "logs", "column_mapping": "message,host,tag,time:created_at"},
            {
                "pattern": "access.*",
                "table": "access_logs",
                "column_mapping": "path,code:status,host",
                "num_retries": 2,
            },
        ],
    }
