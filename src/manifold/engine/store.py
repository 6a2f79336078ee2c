"""The record store accessor the patch engine is written against.

The engine never touches a record directly: every read and write goes
through these methods, so the same accessor serves snapshots, diffing,
application and rollback.  ``manifold.storage.table.RecordTable`` is the
in-process implementation; a host integration supplies its own.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Protocol

Record = Any


class RecordStore(Protocol):
    def count(self) -> int:
        """Return the number of records in the whole tree."""

    def iter_records(self) -> Iterator[Record]:
        """Yield every record in index (depth-first) order."""

    def get_by_index(self, index: int) -> Record | None:
        """Return the record at zero-based *index*, or ``None`` when out of range."""

    def get_by_id(self, record_id: int) -> Record | None: ...

    def get_by_description(self, description: str, exact: bool = True) -> Record | None:
        """Return the first record (in index order) with a matching description."""

    def record_id(self, record: Record) -> int: ...

    def record_index(self, record: Record) -> int: ...

    def read_field(self, record: Record, path: str) -> object:
        """Return the value at a dotted field *path*, or ``None`` when unset."""

    def has_field(self, record: Record, path: str) -> bool:
        """Return ``True`` if *path* holds a value, even ``None``, on *record*."""

    def remove_field(self, record: Record, path: str) -> None:
        """Delete an extra (non-schema) field.  Absent paths are ignored."""

    def write_field(self, record: Record, path: str, value: object) -> None:
        """Assign *value* at a dotted field *path*.

        Raises:
            WriteError: If the store rejects the write.
        """

    def set_offset_list(self, record: Record, offsets: list[int]) -> None:
        """Replace the whole offset list (count and entries) in one step."""

    def clear_entry_list(self, record: Record) -> None: ...

    def add_entry(self, record: Record, entry: str) -> None: ...
