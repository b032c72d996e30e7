"""
SQL output stage for tagged log records.

Routes buffered chunks of ``(tag, time, record)`` entries to relational
tables by tag pattern, bulk-imports them, and degrades to one-by-one import
with bounded retry when a bulk import fails deterministically.

Usage:
    from sql_output import SQLOutput, load_config

    with SQLOutput(load_config("sql.yml")) as out:
        out.handle(out.emit("access.web", [(time, {"host": "a", "path": "/"})]))
"""

from .chunk import Chunk, Entry
from .config import OutputConfig, TableConfig, build_config, load_config
from .engine import BatchOutcome, ImportEngine, ImportResult, RecordOutcome
from .errors import (
    BindError,
    ConfigError,
    DeterministicImportError,
    ErrorKind,
    ImportFailure,
    MalformedRecordError,
    SQLOutputError,
    TransientImportError,
)
from .mapping import ColumnMapping
from .matching import MatchPattern
from .output import SQLOutput
from .registry import TableRegistry
from .route import TableRoute
from .store import SQLStore, TableDescriptor

__version__ = "0.1.0"
__all__ = [
    "SQLOutput",
    "OutputConfig",
    "TableConfig",
    "build_config",
    "load_config",
    "Chunk",
    "Entry",
    "ColumnMapping",
    "MatchPattern",
    "TableRoute",
    "TableRegistry",
    "SQLStore",
    "TableDescriptor",
    "ImportEngine",
    "ImportResult",
    "BatchOutcome",
    "RecordOutcome",
    "ErrorKind",
    "SQLOutputError",
    "ConfigError",
    "BindError",
    "MalformedRecordError",
    "ImportFailure",
    "DeterministicImportError",
    "TransientImportError",
]
