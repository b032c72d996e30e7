"""
Column mapping: project a raw record onto destination columns.

The mapping string is ``key[:column],...``; a key without a column maps to a column
of the same name.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterator, Mapping

from .errors import ConfigError, MalformedRecordError


class ColumnMapping:
    """Immutable, ordered ``source key -> column`` mapping."""

    __slots__ = ("_pairs",)

    def __init__(self, pairs: Mapping[str, str]):
        object.__setattr__(self, "_pairs", MappingProxyType(dict(pairs)))

    def __setattr__(self, name, value):
        raise AttributeError("ColumnMapping is immutable")

    @classmethod
    def parse(cls, spec: str) -> "ColumnMapping":
        if spec is None or not spec.strip():
            raise ConfigError("column_mapping must not be empty")

        pairs: dict[str, str] = {}
        for item in spec.split(","):
            key, sep, column = item.strip().partition(":")
            key = key.strip()
            column = column.strip() if sep else key
            if not key:
                raise ConfigError(f"Empty key in column_mapping: {spec!r}")
            if not column:
                raise ConfigError(f"Empty column for key {key!r} in column_mapping: {spec!r}")
            if key in pairs:
                raise ConfigError(f"Duplicate key {key!r} in column_mapping: {spec!r}")
            pairs[key] = column
        return cls(pairs)

    def apply(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Copy mapped keys present in ``record`` to their columns; drop the rest."""
        if not isinstance(record, Mapping):
            raise MalformedRecordError(
                f"Record must be a mapping, got {type(record).__name__}"
            )
        return {column: record[key] for key, column in self._pairs.items() if key in record}

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._pairs)

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self._pairs.values())

    def items(self):
        return self._pairs.items()

    def __iter__(self) -> Iterator[str]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return list(self._pairs.items()) == list(other._pairs.items())

    def __hash__(self) -> int:
        return hash(tuple(self._pairs.items()))

    def __repr__(self) -> str:
        spec = ",".join(k if k == c else f"{k}:{c}" for k, c in self._pairs.items())
        return f"ColumnMapping({spec!r})"
