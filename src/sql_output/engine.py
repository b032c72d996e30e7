"""
ImportEngine: bulk import with deterministic fallback and bounded retry.

Flow per chunk:
    1. decode + transform every entry; malformed ones are logged and dropped
    2. one bulk insert of all transformed rows
    3. on a deterministic failure, insert rows one by one:
       - deterministic again -> drop with an error log
       - transient -> retry up to ``route.max_retries`` times with a fixed
         backoff, then drop with an error log
Transient failures of the bulk insert propagate so the host re-delivers the
whole chunk.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from loguru import logger

from .chunk import Chunk, Entry
from .errors import DeterministicImportError, MalformedRecordError, TransientImportError
from .metrics import BULK_IMPORT_SECONDS, FALLBACKS_TOTAL, RECORDS_TOTAL, RETRIES_TOTAL
from .route import TableRoute
from .store import SQLStore

RETRY_BACKOFF_SECONDS = 0.5


class RecordOutcome(str, Enum):
    IMPORTED = "imported"
    MALFORMED = "malformed"
    DETERMINISTIC_FAILURE = "deterministic_failure"
    TRANSIENT_FAILURE_EXHAUSTED = "transient_failure_exhausted"


class BatchOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    SKIPPED = "skipped"  # nothing reached the database


@dataclass
class ImportResult:
    """Accounting for one chunk: every record ends up in exactly one counter."""

    table: str
    imported: int = 0
    malformed: int = 0
    deterministic_failures: int = 0
    exhausted: int = 0
    retries: int = 0
    fallback: bool = False

    @property
    def dropped_count(self) -> int:
        return self.malformed + self.deterministic_failures + self.exhausted

    @property
    def total(self) -> int:
        return self.imported + self.dropped_count

    @property
    def outcome(self) -> BatchOutcome:
        if self.total == self.malformed:
            return BatchOutcome.SKIPPED
        if self.dropped_count == 0:
            return BatchOutcome.SUCCESS
        return BatchOutcome.PARTIAL_SUCCESS

    def add(self, outcome: RecordOutcome, n: int = 1) -> None:
        if outcome is RecordOutcome.IMPORTED:
            self.imported += n
        elif outcome is RecordOutcome.MALFORMED:
            self.malformed += n
        elif outcome is RecordOutcome.DETERMINISTIC_FAILURE:
            self.deterministic_failures += n
        else:
            self.exhausted += n

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["outcome"] = self.outcome.value
        d["dropped"] = self.dropped_count
        return d


def _dump(record: Any) -> str:
    try:
        return json.dumps(record, default=str, ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        pass
    try:
        return repr(record)
    except RecursionError:
        return f"<{type(record).__name__} nested too deeply to dump>"


class ImportEngine:
    """Writes rows of one route through a ``SQLStore``."""

    def __init__(
        self,
        store: SQLStore,
        *,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._backoff = backoff_seconds
        self._sleep = sleep

    def import_chunk(self, route: TableRoute, chunk: Chunk) -> ImportResult:
        """Decode, transform and import a chunk into ``route``'s table.

        Raises:
            TransientImportError: the bulk insert failed nondeterministically
        """
        result = ImportResult(table=route.table)
        rows: list[dict[str, Any]] = []

        objects = chunk.unpack()
        while True:
            try:
                obj = next(objects)
            except StopIteration:
                break
            except MalformedRecordError as e:
                # corrupt payload: nothing after this point can be decoded
                logger.bind(table=route.table, chunk=chunk.key, error=str(e)).error(
                    "Failed to decode the rest of the chunk"
                )
                result.add(RecordOutcome.MALFORMED)
                break
            try:
                rows.append(route.transform(Entry.from_packed(obj)))
            except MalformedRecordError as e:
                logger.bind(
                    table=route.table,
                    error=str(e),
                    error_class=type(e).__name__,
                    record=_dump(obj),
                ).warning("Failed to create a row. Ignore a record")
                result.add(RecordOutcome.MALFORMED)

        self._import(route, rows, result)
        self._publish(result)
        return result

    def import_rows(self, route: TableRoute, rows: Sequence[Mapping[str, Any]]) -> ImportResult:
        """Bulk insert ``rows``; fall back to one-by-one on a deterministic failure.

        Raises:
            TransientImportError: the bulk insert failed nondeterministically
        """
        result = ImportResult(table=route.table)
        self._import(route, rows, result)
        self._publish(result)
        return result

    def _import(
        self, route: TableRoute, rows: Sequence[Mapping[str, Any]], result: ImportResult
    ) -> None:
        if not rows:
            return

        descriptor = route.descriptor
        try:
            with BULK_IMPORT_SECONDS.labels(route.table).time():
                self._store.insert(descriptor, rows)
        except DeterministicImportError as e:
            logger.bind(table=route.table, error=str(e), error_class=e.error_class).warning(
                "Got deterministic error. Fallback to one-by-one import"
            )
            FALLBACKS_TOTAL.labels(route.table).inc()
            result.fallback = True
            for row in rows:
                result.add(self._import_one(route, row, result))
        else:
            result.add(RecordOutcome.IMPORTED, len(rows))

    def _import_one(
        self, route: TableRoute, row: Mapping[str, Any], result: ImportResult
    ) -> RecordOutcome:
        for attempt in range(route.max_retries + 1):
            try:
                self._store.insert(route.descriptor, [row])
                return RecordOutcome.IMPORTED
            except DeterministicImportError as e:
                logger.bind(
                    table=route.table, error=str(e), error_class=e.error_class, record=_dump(row)
                ).error("Got deterministic error again. Dump a record")
                return RecordOutcome.DETERMINISTIC_FAILURE
            except TransientImportError as e:
                if attempt >= route.max_retries:
                    logger.bind(
                        table=route.table,
                        error=str(e),
                        error_class=e.error_class,
                        record=_dump(row),
                    ).error("Can't recover undeterministic error. Dump a record")
                    return RecordOutcome.TRANSIENT_FAILURE_EXHAUSTED

                retry = attempt + 1
                logger.bind(
                    table=route.table, error=str(e), error_class=e.error_class, retry=retry
                ).warning(f"Failed to import a record: retry number = {retry}")
                RETRIES_TOTAL.labels(route.table).inc()
                result.retries += 1
                self._sleep(self._backoff)

        raise AssertionError("unreachable: max_retries must be >= 0")

    @staticmethod
    def _publish(result: ImportResult) -> None:
        # published once the chunk settles; a redelivered chunk is not counted twice
        counts = {
            RecordOutcome.IMPORTED: result.imported,
            RecordOutcome.MALFORMED: result.malformed,
            RecordOutcome.DETERMINISTIC_FAILURE: result.deterministic_failures,
            RecordOutcome.TRANSIENT_FAILURE_EXHAUSTED: result.exhausted,
        }
        for outcome, n in counts.items():
            if n:
                RECORDS_TOTAL.labels(result.table, outcome.value).inc(n)
