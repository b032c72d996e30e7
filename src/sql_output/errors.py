"""
Custom exceptions for the SQL output stage.

Failures are classified once, at the persistence boundary, into an
``ErrorKind`` so the import engine never inspects driver exception types.
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy import exc as sa_exc


class ErrorKind(str, Enum):
    """How a failure should be recovered from."""

    DETERMINISTIC = "deterministic"  # recurs identically on retry
    TRANSIENT = "transient"  # may succeed later
    MALFORMED = "malformed"  # single record cannot be decoded/transformed


class SQLOutputError(Exception):
    """Base error for the SQL output stage."""

    pass


class ConfigError(SQLOutputError):
    """Invalid configuration. Fatal at startup."""

    pass


class BindError(SQLOutputError):
    """A configured table could not be bound at startup."""

    def __init__(self, table: str, cause: BaseException):
        super().__init__(f"Can't handle '{table}' table: {cause}")
        self.table = table
        self.cause = cause


class MalformedRecordError(SQLOutputError):
    """A single entry failed decoding or transformation."""

    kind = ErrorKind.MALFORMED


class ImportFailure(SQLOutputError):
    """Base for classified import failures."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause

    @property
    def error_class(self) -> str:
        """Name of the underlying exception class, for logs."""
        return type(self.cause).__name__ if self.cause is not None else type(self).__name__


class DeterministicImportError(ImportFailure):
    """Batch or record is structurally unimportable (schema, constraint, statement)."""

    kind = ErrorKind.DETERMINISTIC


class TransientImportError(ImportFailure):
    """Connectivity, contention, timeout, or anything not known to be deterministic."""

    kind = ErrorKind.TRANSIENT


# SQLSTATE classes (first two characters of the code)
_DETERMINISTIC_SQLSTATE = {"22", "23", "42"}
_TRANSIENT_SQLSTATE = {"08", "40", "53", "57"}

# schema/statement errors from drivers without SQLSTATE (sqlite3, pymysql)
_DETERMINISTIC_MESSAGES = (
    "no such column",
    "has no column named",
    "no such table",
    "syntax error",
    "unknown column",
)
_DETERMINISTIC_ERRNOS = {1054, 1064, 1146}  # MySQL: bad field, parse error, no such table

_DETERMINISTIC_DBAPI = (
    sa_exc.IntegrityError,
    sa_exc.ProgrammingError,
    sa_exc.DataError,
    sa_exc.NotSupportedError,
)

def _sqlstate(e: sa_exc.DBAPIError) -> str | None:
    orig = e.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code if isinstance(code, str) and len(code) >= 2 else None


def _is_schema_error(orig: BaseException | None) -> bool:
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in _DETERMINISTIC_ERRNOS:
        return True
    text = str(orig).lower()
    return any(m in text for m in _DETERMINISTIC_MESSAGES)


def classify_db_error(e: Exception) -> ImportFailure:
    """Map a persistence-layer exception to a deterministic or transient failure."""
    message = str(e)

    if isinstance(e, sa_exc.DBAPIError):
        if e.connection_invalidated:
            return TransientImportError(message, e)
        state = _sqlstate(e)
        if state is not None:
            if state[:2] in _DETERMINISTIC_SQLSTATE:
                return DeterministicImportError(message, e)
            if state[:2] in _TRANSIENT_SQLSTATE:
                return TransientImportError(message, e)
        elif _is_schema_error(e.orig):
            return DeterministicImportError(message, e)
        if isinstance(e, _DETERMINISTIC_DBAPI):
            return DeterministicImportError(message, e)
        return TransientImportError(message, e)

    if isinstance(e, (sa_exc.TimeoutError, sa_exc.DisconnectionError)):
        return TransientImportError(message, e)

    # bind parameter / compilation problems never reach the database
    if isinstance(
        e,
        (sa_exc.StatementError, sa_exc.CompileError, sa_exc.ArgumentError, sa_exc.NoSuchColumnError),
    ):
        return DeterministicImportError(message, e)

    return TransientImportError(message, e)
