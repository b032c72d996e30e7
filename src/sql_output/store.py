"""
Persistence adapter over SQLAlchemy Core.

Owns the engine, reflects destination tables into ``TableDescriptor`` handles
and bulk-inserts rows. Every failure leaving ``insert`` is an
``ImportFailure`` tagged deterministic or transient.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from loguru import logger
from sqlalchemy import JSON, MetaData, Table, create_engine
from sqlalchemy.engine import Engine

from .config import OutputConfig
from .errors import (
    DeterministicImportError,
    ImportFailure,
    MalformedRecordError,
    classify_db_error,
)


@dataclass(frozen=True)
class TableDescriptor:
    """Schema handle for one bound destination table."""

    name: str
    columns: tuple[str, ...]
    json_columns: frozenset[str]
    table: Table

    def check_columns(self, columns: Sequence[str]) -> list[str]:
        """Return the names in ``columns`` the table does not have."""
        known = set(self.columns)
        return [c for c in columns if c not in known]

    def build_row(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a transformed record as a row for this table."""
        missing = self.check_columns(list(values))
        if missing:
            raise MalformedRecordError(f"Unknown columns for '{self.name}': {missing}")
        row: dict[str, Any] = {}
        for column, value in values.items():
            if isinstance(value, (dict, list)) and column not in self.json_columns:
                # nested values are stored as JSON text in non-JSON columns
                try:
                    value = json.dumps(value, default=str)
                except (TypeError, ValueError, RecursionError) as e:
                    raise MalformedRecordError(
                        f"Can't serialize value of column '{column}': {e}"
                    ) from e
            row[column] = value
        return row


def _group_by_columns(rows: Sequence[Mapping[str, Any]]) -> list[list[Mapping[str, Any]]]:
    """Group rows sharing a column set, keeping first-seen order."""
    groups: dict[frozenset[str], list[Mapping[str, Any]]] = {}
    for row in rows:
        groups.setdefault(frozenset(row), []).append(row)
    return list(groups.values())


class SQLStore:
    """Engine owner and bulk writer for one output stage instance."""

    def __init__(self, engine: Engine):
        self._engine = engine

    @classmethod
    def from_config(cls, config: OutputConfig, **engine_kwargs) -> "SQLStore":
        engine = create_engine(config.url(), pool_pre_ping=True, **engine_kwargs)
        logger.info(
            f"Connecting to {config.drivername} database '{config.database}' on {config.host}"
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        self._engine.dispose()

    def describe(self, table_name: str, schema: Optional[str] = None) -> TableDescriptor:
        """Reflect ``table_name``. Raises the underlying SQLAlchemy error on failure."""
        table = Table(table_name, MetaData(), schema=schema, autoload_with=self._engine)
        columns = tuple(c.name for c in table.columns)
        json_columns = frozenset(c.name for c in table.columns if isinstance(c.type, JSON))
        return TableDescriptor(
            name=table_name, columns=columns, json_columns=json_columns, table=table
        )

    def insert(self, descriptor: TableDescriptor, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert ``rows`` in one transaction. Returns the number of rows written."""
        if not rows:
            return 0

        for row in rows:
            missing = descriptor.check_columns(list(row))
            if missing:
                raise DeterministicImportError(
                    f"Missing columns in '{descriptor.name}': {missing}"
                )

        try:
            with self._engine.begin() as conn:
                for group in _group_by_columns(rows):
                    conn.execute(descriptor.table.insert(), [dict(r) for r in group])
        except ImportFailure:
            raise
        except Exception as e:
            raise classify_db_error(e) from e
        return len(rows)
