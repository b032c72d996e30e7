"""
Chunks: host-buffered batches of ``(tag, time, record)`` entries.

Entries are packed back-to-back as msgpack arrays and decoded lazily, one
entry at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

import msgpack

from .errors import MalformedRecordError


@dataclass(frozen=True)
class Entry:
    """One decoded event."""

    tag: str
    time: int
    record: dict[str, Any]

    @classmethod
    def from_packed(cls, obj: Any) -> "Entry":
        """Validate a decoded msgpack object as a ``[tag, time, record]`` triple."""
        if not isinstance(obj, (list, tuple)) or len(obj) != 3:
            raise MalformedRecordError(f"Expected [tag, time, record], got {obj!r}")
        tag, time, record = obj
        if not isinstance(tag, str):
            raise MalformedRecordError(f"Entry tag must be a string, got {tag!r}")
        if isinstance(time, bool) or not isinstance(time, (int, float)):
            raise MalformedRecordError(f"Entry time must be numeric, got {time!r}")
        return cls(tag=tag, time=int(time), record=record)


def pack_entry(tag: str, time: int, record: Any) -> bytes:
    return msgpack.packb([tag, time, record], use_bin_type=True)


class Chunk:
    """A tagged batch of packed entries, as handed over by the host framework."""

    def __init__(self, key: str, payload: bytes = b""):
        self.key = key
        self.payload = payload

    @classmethod
    def from_entries(cls, key: str, entries: Iterable[tuple[str, int, Any]]) -> "Chunk":
        return cls(key, b"".join(pack_entry(t, ts, r) for t, ts, r in entries))

    def __len__(self) -> int:
        return len(self.payload)

    def unpack(self) -> Iterator[Any]:
        """Yield decoded objects lazily.

        Shape problems are left to the caller (see ``Entry.from_packed``).
        Corrupt bytes end decoding with ``MalformedRecordError``; entries
        already yielded stay valid.
        """
        unpacker = msgpack.Unpacker(raw=False, strict_map_key=False)
        unpacker.feed(self.payload)
        while True:
            # start of the next entry; tell() moves past partial bytes on OutOfData
            offset = unpacker.tell()
            try:
                obj = unpacker.unpack()
            except msgpack.OutOfData:
                if offset < len(self.payload):
                    raise MalformedRecordError(
                        f"Truncated chunk payload at offset {offset} of {len(self.payload)} bytes"
                    )
                return
            except (ValueError, msgpack.UnpackException) as e:
                raise MalformedRecordError(
                    f"Corrupt chunk payload at offset {offset} of {len(self.payload)} bytes: {e}"
                ) from e
            yield obj

    def __repr__(self) -> str:
        return f"Chunk(key={self.key!r}, bytes={len(self.payload)})"
