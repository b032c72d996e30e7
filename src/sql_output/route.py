"""
TableRoute: binds a tag pattern to one destination table, its column mapping
and its retry budget.
"""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from .chunk import Entry
from .config import DEFAULT_NUM_RETRIES, TableConfig
from .errors import BindError
from .mapping import ColumnMapping
from .matching import MatchPattern
from .store import SQLStore, TableDescriptor


class TableRoute:
    def __init__(
        self,
        pattern: str,
        table: str,
        mapping: ColumnMapping,
        max_retries: int = DEFAULT_NUM_RETRIES,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.pattern = MatchPattern.create(pattern)
        self.table = table
        self.mapping = mapping
        self.max_retries = max_retries
        self._descriptor: Optional[TableDescriptor] = None

    @classmethod
    def from_config(cls, cfg: TableConfig) -> "TableRoute":
        return cls(
            pattern=cfg.pattern,
            table=cfg.table,
            mapping=ColumnMapping.parse(cfg.column_mapping),
            max_retries=cfg.num_retries,
        )

    @property
    def is_default(self) -> bool:
        return self.pattern.empty

    @property
    def bound(self) -> bool:
        return self._descriptor is not None

    @property
    def descriptor(self) -> TableDescriptor:
        if self._descriptor is None:
            raise RuntimeError(f"Table '{self.table}' is not bound")
        return self._descriptor

    def matches(self, tag: str) -> bool:
        """Default route matches everything; it is only consulted as a last resort."""
        if self.is_default:
            return True
        return self.pattern.match(tag)

    def bind(self, store: SQLStore) -> None:
        """Reflect the table and check every mapped column exists.

        Raises:
            BindError: table unreachable, missing, or lacking mapped columns
        """
        try:
            descriptor = store.describe(self.table)
        except Exception as e:
            raise BindError(self.table, e) from e

        missing = descriptor.check_columns(self.mapping.columns)
        if missing:
            raise BindError(self.table, LookupError(f"unknown columns {missing}"))

        self._descriptor = descriptor
        logger.info(f"Selecting '{self.table}' table")

    def transform(self, entry: Entry) -> dict[str, Any]:
        """Map an entry's record to a row. Raises MalformedRecordError."""
        return self.descriptor.build_row(self.mapping.apply(entry.record))

    def __repr__(self) -> str:
        return (
            f"TableRoute(pattern={self.pattern.text!r}, table={self.table!r}, "
            f"max_retries={self.max_retries})"
        )
