"""In-process record table: an ordered tree of memory records.

Implements the ``RecordStore`` accessor and round-trips through a JSON
document (``.manifold/table.json``)::

    {"schema_version": 1, "next_id": 3, "records": [{"ID": 1, ..., "Children": [...]}]}
"""

from __future__ import annotations

import copy
import json
from collections.abc import Iterator

from manifold.core.errors import WriteError
from manifold.core.schema import SCHEMA, parse_field_path

TABLE_SCHEMA_VERSION = 1

# Virtual fields computed from table structure.  Readable, never writable.
READ_ONLY_FIELDS: frozenset[str] = frozenset(
    {"ID", "Index", "OffsetCount", "DropDownCount", "Children", "Extra"}
)


def default_record_fields() -> dict:
    """Return the field values a freshly created record starts with."""
    return {
        "Description": "",
        "Address": "",
        "Type": 2,
        "VarType": "vtDword",
        "Color": 0,
        "Active": False,
        "ShowAsHex": False,
        "ShowAsSigned": False,
        "AllowIncrease": False,
        "AllowDecrease": False,
        "Collapsed": False,
        "Async": False,
        "DontSave": False,
        "DropDownLinked": False,
        "DropDownLinkedMemrec": "",
        "DropDownReadOnly": False,
        "DropDownDescriptionOnly": False,
        "DisplayAsDropDownListItem": False,
        "Options": "[]",
        "Offset": [],
        "DropDownList": [],
        "Script": None,
        "Value": "",
        "CustomTypeName": "",
    }


class RecordTable:
    """An ordered tree of records addressed by stable integer ids.

    Records are plain dicts holding every schema field plus ``ID``,
    ``Children`` (child ids in order) and ``Extra`` (fields outside the
    schema).  ``Index`` is the depth-first position and is recomputed on
    every lookup.
    """

    def __init__(self) -> None:
        self._records: dict[int, dict] = {}
        self._parents: dict[int, int | None] = {}
        self._roots: list[int] = []
        self._next_id = 1

    # -- structure (record-store collaborator side) -------------------------

    def add_record(
        self,
        fields: dict | None = None,
        *,
        parent_id: int | None = None,
        record_id: int | None = None,
        position: int | None = None,
    ) -> dict:
        """Create a record under *parent_id* (or at the top level) and return it.

        Unknown keys in *fields* are kept as extras.
        """
        if record_id is None:
            record_id = self._next_id
        if record_id in self._records:
            raise ValueError(f"Record ID {record_id} already exists")
        if parent_id is not None and parent_id not in self._records:
            raise ValueError(f"Parent record {parent_id} not found")

        record = default_record_fields()
        record["ID"] = record_id
        record["Children"] = []
        record["Extra"] = {}
        for key, value in (fields or {}).items():
            if key in SCHEMA:
                record[key] = copy.deepcopy(value)
            elif key not in READ_ONLY_FIELDS:
                record["Extra"][key] = copy.deepcopy(value)

        self._records[record_id] = record
        self._parents[record_id] = parent_id
        siblings = self._siblings(parent_id)
        siblings.insert(len(siblings) if position is None else position, record_id)
        self._next_id = max(self._next_id, record_id + 1)
        return record

    def delete_record(self, record_id: int) -> None:
        """Delete a record together with its whole subtree."""
        record = self._records.get(record_id)
        if record is None:
            raise ValueError(f"Record {record_id} not found")
        self._siblings(self._parents[record_id]).remove(record_id)
        stack = [record_id]
        while stack:
            rid = stack.pop()
            stack.extend(self._records[rid]["Children"])
            del self._records[rid]
            del self._parents[rid]

    def move_record(self, record_id: int, position: int) -> None:
        """Move a record (and its subtree) to *position* among its siblings."""
        if record_id not in self._records:
            raise ValueError(f"Record {record_id} not found")
        siblings = self._siblings(self._parents[record_id])
        siblings.remove(record_id)
        siblings.insert(position, record_id)

    def copy(self) -> RecordTable:
        """Return a deep copy with identical ids and order."""
        return RecordTable.from_dict(self.to_dict())

    def _siblings(self, parent_id: int | None) -> list[int]:
        if parent_id is None:
            return self._roots
        return self._records[parent_id]["Children"]

    def _order(self) -> list[int]:
        order: list[int] = []
        stack = list(reversed(self._roots))
        while stack:
            rid = stack.pop()
            order.append(rid)
            stack.extend(reversed(self._records[rid]["Children"]))
        return order

    # -- RecordStore accessor ------------------------------------------------

    def count(self) -> int:
        return len(self._records)

    def iter_records(self) -> Iterator[dict]:
        for rid in self._order():
            yield self._records[rid]

    def get_by_index(self, index: int) -> dict | None:
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if index < 0 or index >= len(self._records):
            return None
        return self._records[self._order()[index]]

    def get_by_id(self, record_id: int) -> dict | None:
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            return None
        return self._records.get(record_id)

    def get_by_description(self, description: str, exact: bool = True) -> dict | None:
        wanted = description if exact else description.casefold()
        for record in self.iter_records():
            desc = record["Description"]
            if (desc if exact else str(desc).casefold()) == wanted:
                return record
        return None

    def record_id(self, record: dict) -> int:
        return record["ID"]

    def record_index(self, record: dict) -> int:
        return self._order().index(record["ID"])

    def read_field(self, record: dict, path: str) -> object:
        fp = parse_field_path(path)
        if not fp.rest:
            if fp.root == "Index":
                return self.record_index(record)
            if fp.root == "OffsetCount":
                return len(record["Offset"])
            if fp.root == "DropDownCount":
                return len(record["DropDownList"])
            if fp.root in record and fp.root != "Extra":
                return copy.deepcopy(record[fp.root])
            return copy.deepcopy(record["Extra"].get(fp.root))

        if fp.root in ("Offset", "DropDownList"):
            index = fp.element_index
            items = record[fp.root]
            if index is None or not 0 <= index < len(items):
                return None
            return items[index]
        if fp.root in record:
            return None

        cur = record["Extra"].get(fp.root)
        for key in fp.rest:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(key)
        return copy.deepcopy(cur)

    def has_field(self, record: dict, path: str) -> bool:
        fp = parse_field_path(path)
        if (fp.root in record and fp.root != "Extra") or fp.root in READ_ONLY_FIELDS:
            if fp.root in ("Offset", "DropDownList") and fp.rest:
                index = fp.element_index
                return index is not None and 0 <= index < len(record[fp.root])
            return not fp.rest
        cur = record["Extra"]
        for key in (fp.root, *fp.rest):
            if not isinstance(cur, dict) or key not in cur:
                return False
            cur = cur[key]
        return True

    def remove_field(self, record: dict, path: str) -> None:
        self._require_live(record)
        fp = parse_field_path(path)
        if fp.root in SCHEMA or fp.root in READ_ONLY_FIELDS:
            raise WriteError(f"Cannot remove schema field '{fp.root}'")
        keys = (fp.root, *fp.rest)
        cur = record["Extra"]
        for key in keys[:-1]:
            cur = cur.get(key)
            if not isinstance(cur, dict):
                return
        cur.pop(keys[-1], None)

    def write_field(self, record: dict, path: str, value: object) -> None:
        fp = parse_field_path(path)
        self._require_live(record)
        if fp.root in READ_ONLY_FIELDS:
            raise WriteError(f"Field '{fp.root}' is read-only")

        if fp.root in ("Offset", "DropDownList"):
            if not fp.rest:
                if not isinstance(value, list):
                    raise WriteError(f"{fp.root} requires a list")
                if fp.root == "Offset":
                    self.set_offset_list(record, value)
                else:
                    record["DropDownList"] = [str(v) for v in value]
                return
            index = fp.element_index
            items = record[fp.root]
            if index is None or not 0 <= index < len(items):
                raise WriteError(f"Intermediate path missing: {path}")
            if fp.root == "Offset":
                if isinstance(value, bool) or not isinstance(value, int):
                    raise WriteError(f"Offset entries must be integers, got {value!r}")
                items[index] = value
            else:
                items[index] = str(value)
            return

        if fp.root in SCHEMA:
            if fp.rest:
                raise WriteError(f"Cannot index into scalar field '{fp.root}'")
            if fp.root == "Script" and value is not None and not isinstance(value, str):
                raise WriteError("Script body must be a string")
            record[fp.root] = copy.deepcopy(value)
            return

        extra = record["Extra"]
        if not fp.rest:
            extra[fp.root] = copy.deepcopy(value)
            return
        cur = extra
        for key in (fp.root, *fp.rest[:-1]):
            nxt = cur.get(key)
            if not isinstance(nxt, dict):
                raise WriteError(f"Intermediate path missing: {key}")
            cur = nxt
        cur[fp.rest[-1]] = copy.deepcopy(value)

    def set_offset_list(self, record: dict, offsets: list[int]) -> None:
        self._require_live(record)
        for value in offsets:
            if isinstance(value, bool) or not isinstance(value, int):
                raise WriteError(f"Offset entries must be integers, got {value!r}")
        record["Offset"] = list(offsets)

    def clear_entry_list(self, record: dict) -> None:
        self._require_live(record)
        record["DropDownList"] = []

    def add_entry(self, record: dict, entry: str) -> None:
        self._require_live(record)
        record["DropDownList"].append(str(entry))

    def _require_live(self, record: dict) -> None:
        if self._records.get(record.get("ID")) is not record:
            raise WriteError(f"Record {record.get('ID')} is no longer in the table")

    # -- serialization --------------------------------------------------------

    def to_dict(self) -> dict:
        """Return the nested JSON-ready form of the table."""

        def _node(rid: int) -> dict:
            record = self._records[rid]
            node = {k: copy.deepcopy(v) for k, v in record.items() if k != "Children"}
            node["Children"] = [_node(cid) for cid in record["Children"]]
            return node

        return {
            "schema_version": TABLE_SCHEMA_VERSION,
            "next_id": self._next_id,
            "records": [_node(rid) for rid in self._roots],
        }

    @classmethod
    def from_dict(cls, data: dict) -> RecordTable:
        """Build a table from :meth:`to_dict` output."""
        table = cls()

        def _add(node: dict, parent_id: int | None) -> None:
            fields = {k: v for k, v in node.items() if k not in READ_ONLY_FIELDS}
            fields.update(node.get("Extra") or {})
            record = table.add_record(fields, parent_id=parent_id, record_id=node.get("ID"))
            for child in node.get("Children") or []:
                _add(child, record["ID"])

        for node in data.get("records", []):
            _add(node, None)
        table._next_id = max(table._next_id, int(data.get("next_id", 1)))
        return table


def serialize_table(table: RecordTable) -> str:
    """Serialize a table as sorted, indented JSON with a trailing newline."""
    return json.dumps(table.to_dict(), sort_keys=True, indent=2) + "\n"


def load_table(raw: str) -> RecordTable:
    """Parse a table JSON string.  Pure: the caller does the file I/O."""
    return RecordTable.from_dict(json.loads(raw))
