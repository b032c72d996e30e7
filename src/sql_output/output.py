"""
SQLOutput: the output stage the host framework drives.

Lifecycle:
    out = SQLOutput(load_config("sql.yml"))
    out.start()                      # connect + bind routes
    out.handle(chunk)                # once per buffered chunk
    out.shutdown()
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from loguru import logger

from .chunk import Chunk, pack_entry
from .config import OutputConfig, load_config
from .engine import RETRY_BACKOFF_SECONDS, ImportEngine, ImportResult
from .registry import TableRegistry
from .store import SQLStore


class SQLOutput:
    def __init__(
        self,
        config: OutputConfig,
        *,
        store: Optional[SQLStore] = None,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.config = config
        self.registry = TableRegistry.from_config(config)
        self._remove_tag_prefix = (
            re.compile("^" + re.escape(config.remove_tag_prefix))
            if config.remove_tag_prefix
            else None
        )
        self._store = store
        self._owns_store = store is None
        self._engine_kwargs: dict[str, Any] = {"backoff_seconds": backoff_seconds}
        if sleep is not None:
            self._engine_kwargs["sleep"] = sleep
        self._engine: Optional[ImportEngine] = None

    @classmethod
    def from_file(cls, path: str | Path, **kwargs) -> "SQLOutput":
        return cls(load_config(path), **kwargs)

    # ---------- lifecycle

    @property
    def started(self) -> bool:
        return self._engine is not None

    def start(self) -> None:
        """Connect and bind routes.

        Raises:
            BindError: the default table can't be bound
        """
        if self._store is None:
            self._store = SQLStore.from_config(self.config)
        try:
            self.registry.bind(self._store)
        except Exception:
            self._close_store()
            raise
        self._engine = ImportEngine(self._store, **self._engine_kwargs)
        logger.info(
            f"SQL output started with {len(self.registry.routes)} route(s) "
            f"and default table '{self.registry.default.table}'"
        )

    def shutdown(self) -> None:
        """Stop accepting chunks. An in-flight ``handle`` call has already returned."""
        if self._engine is None:
            return
        self._engine = None
        self._close_store()
        logger.info("SQL output stopped")

    def _close_store(self) -> None:
        if self._owns_store and self._store is not None:
            self._store.close()
            self._store = None

    def __enter__(self) -> "SQLOutput":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ---------- host-facing formatting

    def format_tag(self, tag: str) -> str:
        if self._remove_tag_prefix is not None:
            return self._remove_tag_prefix.sub("", tag, count=1)
        return tag

    def _format_time(self, time: int) -> str:
        if self.config.localtime:
            dt = datetime.fromtimestamp(time).astimezone()
        else:
            dt = datetime.fromtimestamp(time, timezone.utc)
        if self.config.time_format:
            return dt.strftime(self.config.time_format)
        return dt.isoformat()

    def format(self, tag: str, time: int, record: Mapping[str, Any]) -> bytes:
        """Pack one event, injecting the time/tag keys when configured."""
        if isinstance(record, Mapping) and (
            self.config.include_time_key or self.config.include_tag_key
        ):
            record = dict(record)
            if self.config.include_time_key:
                record[self.config.time_key] = self._format_time(time)
            if self.config.include_tag_key:
                record[self.config.tag_key] = tag
        return pack_entry(tag, time, record)

    def emit(self, tag: str, events: Iterable[tuple[int, Any]]) -> Chunk:
        """Build a chunk for ``tag`` from ``(time, record)`` events."""
        return Chunk(tag, b"".join(self.format(tag, t, r) for t, r in events))

    # ---------- write path

    def handle(self, chunk: Chunk) -> ImportResult:
        """Import one chunk into the table its tag routes to.

        Raises:
            TransientImportError: whole-chunk failure; the host should re-deliver
            RuntimeError: called before ``start`` or after ``shutdown``
        """
        if self._engine is None:
            raise RuntimeError("SQLOutput is not started")

        tag = self.format_tag(chunk.key)
        route = self.registry.resolve(tag)
        logger.debug(f"Routing chunk '{chunk.key}' to '{route.table}' table")
        result = self._engine.import_chunk(route, chunk)
        logger.bind(**result.to_dict()).debug(
            f"Chunk '{chunk.key}' {result.outcome.value}: "
            f"imported={result.imported} dropped={result.dropped_count}"
        )
        return result
