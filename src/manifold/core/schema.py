"""Field schema, field-path parsing, and per-kind value coercion."""

from __future__ import annotations

import math
import re
from typing import NamedTuple, TypedDict

from manifold.core.errors import CoercionError, SchemaError

# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------

KIND_STRING = "string"
KIND_NUMBER = "number"
KIND_BOOL = "bool"
KIND_OPTIONS = "options"
KIND_OFFSETS = "offsets"
KIND_DROPDOWN = "dropdown"
KIND_SCRIPT = "script"
KIND_ANY = "any"

FIELD_KINDS: frozenset[str] = frozenset(
    {
        KIND_STRING,
        KIND_NUMBER,
        KIND_BOOL,
        KIND_OPTIONS,
        KIND_OFFSETS,
        KIND_DROPDOWN,
        KIND_SCRIPT,
        KIND_ANY,
    }
)

LIST_KINDS: frozenset[str] = frozenset({KIND_OFFSETS, KIND_DROPDOWN})


class FieldSpec(TypedDict):
    kind: str
    path: str


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

# Insertion order is the canonical field order used for fingerprint lines
# and for diffing.
SCHEMA: dict[str, FieldSpec] = {
    "Description": {"kind": KIND_STRING, "path": "Description"},
    "Address": {"kind": KIND_STRING, "path": "Address"},
    "Type": {"kind": KIND_NUMBER, "path": "Type"},
    "VarType": {"kind": KIND_STRING, "path": "VarType"},
    "Color": {"kind": KIND_NUMBER, "path": "Color"},
    "Active": {"kind": KIND_BOOL, "path": "Active"},
    "ShowAsHex": {"kind": KIND_BOOL, "path": "ShowAsHex"},
    "ShowAsSigned": {"kind": KIND_BOOL, "path": "ShowAsSigned"},
    "AllowIncrease": {"kind": KIND_BOOL, "path": "AllowIncrease"},
    "AllowDecrease": {"kind": KIND_BOOL, "path": "AllowDecrease"},
    "Collapsed": {"kind": KIND_BOOL, "path": "Collapsed"},
    "Async": {"kind": KIND_BOOL, "path": "Async"},
    "DontSave": {"kind": KIND_BOOL, "path": "DontSave"},
    "DropDownLinked": {"kind": KIND_BOOL, "path": "DropDownLinked"},
    "DropDownLinkedMemrec": {"kind": KIND_STRING, "path": "DropDownLinkedMemrec"},
    "DropDownReadOnly": {"kind": KIND_BOOL, "path": "DropDownReadOnly"},
    "DropDownDescriptionOnly": {"kind": KIND_BOOL, "path": "DropDownDescriptionOnly"},
    "DisplayAsDropDownListItem": {"kind": KIND_BOOL, "path": "DisplayAsDropDownListItem"},
    "Options": {"kind": KIND_OPTIONS, "path": "Options"},
    "Offset": {"kind": KIND_OFFSETS, "path": "Offset"},
    "DropDownList": {"kind": KIND_DROPDOWN, "path": "DropDownList"},
    "Script": {"kind": KIND_SCRIPT, "path": "Script"},
    "Value": {"kind": KIND_STRING, "path": "Value"},
    "CustomTypeName": {"kind": KIND_STRING, "path": "CustomTypeName"},
}

# Heavy or volatile fields that snapshots capture only on request.
OPTIONAL_FIELDS: frozenset[str] = frozenset({"Script", "Value", "CustomTypeName"})

BASE_FIELDS: tuple[str, ...] = tuple(f for f in SCHEMA if f not in OPTIONAL_FIELDS)


def lookup_field(path: str) -> FieldSpec:
    """Return the schema entry for *path*, or an ``any`` entry for unknown paths."""
    spec = SCHEMA.get(path)
    if spec is not None:
        return spec
    return {"kind": KIND_ANY, "path": path}


def captured_fields(
    *,
    include_script: bool = False,
    include_value: bool = False,
    include_custom_type_name: bool = False,
) -> list[str]:
    """Return the schema fields a snapshot captures, in canonical order."""
    wanted = {
        "Script": include_script,
        "Value": include_value,
        "CustomTypeName": include_custom_type_name,
    }
    return [f for f in SCHEMA if f not in OPTIONAL_FIELDS or wanted[f]]


# ---------------------------------------------------------------------------
# Field paths
# ---------------------------------------------------------------------------


class FieldPath(NamedTuple):
    """A dotted field path split into its root field and the remaining keys.

    ``"Description"`` -> ``FieldPath("Description", ())``;
    ``"Offset.0"`` -> ``FieldPath("Offset", ("0",))``.
    """

    root: str
    rest: tuple[str, ...]

    @property
    def element_index(self) -> int | None:
        """Return the single integer element key, or ``None``."""
        if len(self.rest) != 1:
            return None
        try:
            return int(self.rest[0])
        except ValueError:
            return None

    def __str__(self) -> str:
        return ".".join((self.root, *self.rest))


def parse_field_path(path: str) -> FieldPath:
    """Split a dotted path into a :class:`FieldPath`.

    Raises:
        SchemaError: If *path* is empty or contains only separators.
    """
    parts = [p for p in str(path).split(".") if p]
    if not parts:
        raise SchemaError("Missing Path")
    return FieldPath(parts[0], tuple(parts[1:]))


# ---------------------------------------------------------------------------
# Options vocabulary
# ---------------------------------------------------------------------------

VALID_OPTIONS: frozenset[str] = frozenset(
    {
        "moHideChildren",
        "moActivateChildrenAsWell",
        "moDeactivateChildrenAsWell",
        "moRecursiveSetValue",
        "moAllowManualCollapseAndExpand",
        "moManualExpandCollapse",
        "moAlwaysHideChildren",
    }
)

_OPTION_TOKEN_RE = re.compile(r"[^,\s]+")


def normalize_options(value: object) -> str:
    """Normalize an options set to its canonical ``"[a,b]"`` form.

    Accepts ``"[a,b]"``, ``"a, b"`` or a list of names.  Unknown names are
    dropped and the survivors are sorted and de-duplicated.
    """
    if value is None:
        tokens: list[str] = []
    elif isinstance(value, (list, tuple, set, frozenset)):
        tokens = [str(v) for v in value]
    elif isinstance(value, str):
        body = value.strip()
        if body.startswith("["):
            body = body[1:]
        if body.endswith("]"):
            body = body[:-1]
        tokens = _OPTION_TOKEN_RE.findall(body)
    else:
        raise SchemaError(f"Expected options string or list, got {type(value).__name__}")
    chosen = sorted({t for t in tokens if t in VALID_OPTIONS})
    return "[" + ",".join(chosen) + "]"


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def _reject_containers(value: object, kind: str) -> None:
    if isinstance(value, (list, tuple, dict, set)):
        raise SchemaError(f"Expected {kind}, got {type(value).__name__}")


def coerce_string(value: object) -> str:
    _reject_containers(value, "string")
    if value is None:
        raise CoercionError("Expected string, got null")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_number(value: object) -> int | float:
    """Coerce *value* to an int (preferred) or a finite float."""
    _reject_containers(value, "number")
    if isinstance(value, bool) or value is None:
        raise CoercionError("Expected number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CoercionError("Expected finite number")
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 0)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            raise CoercionError(f"Expected number, got {value!r}") from None
        return coerce_number(number)
    raise CoercionError(f"Expected number, got {type(value).__name__}")


def coerce_bool(value: object) -> bool:
    _reject_containers(value, "boolean")
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise CoercionError(f"Expected boolean, got {value!r}")


# ---------------------------------------------------------------------------
# List coercion
# ---------------------------------------------------------------------------


def coerce_offsets(value: object) -> list[int]:
    """Coerce an ordered offset list; every element must be an integer."""
    if not isinstance(value, (list, tuple)):
        raise SchemaError("Expected offsets list")
    offsets: list[int] = []
    for i, item in enumerate(value):
        try:
            number = coerce_number(item)
        except SchemaError:
            raise CoercionError(f"Offset {i} is not an integer: {item!r}") from None
        if not isinstance(number, int):
            raise CoercionError(f"Offset {i} is not an integer: {item!r}")
        offsets.append(number)
    return offsets


def coerce_dropdown(value: object) -> list[str]:
    """Coerce a dropdown entry list from a list or a newline-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [line for line in re.split(r"[\r\n]+", value) if line]
    if isinstance(value, (list, tuple)):
        return [coerce_string(entry) for entry in value]
    raise SchemaError("Expected dropdown list (list or newline-separated string)")


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

SCRIPT_REPLACE_MODES: tuple[str, ...] = ("plain", "pattern")


def coerce_script_payload(value: object, default_mode: str = "plain") -> str | dict | None:
    """Validate a script patch value.

    Returns the new body (``str``), ``None`` to clear the script, or a
    normalized replace payload dict with ``replace``, ``with``, ``mode``,
    ``count`` and ``all`` keys.
    """
    if value is None or isinstance(value, str):
        return value
    if not isinstance(value, dict) or "replace" not in value or "with" not in value:
        raise SchemaError("Invalid script patch payload")
    mode = value.get("mode") or default_mode
    if mode not in SCRIPT_REPLACE_MODES:
        raise SchemaError(f"Unknown script replace mode: {mode!r}")
    count = value.get("count", 1)
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise CoercionError(f"Replace count must be a positive integer, got {count!r}")
    if value["replace"] in ("", None):
        raise SchemaError("Script replace payload has empty search text")
    return {
        "replace": coerce_string(value["replace"]),
        "with": coerce_string(value["with"]),
        "mode": mode,
        "count": count,
        "all": value.get("all") is True,
    }


def apply_script_replace(script: str, payload: dict) -> str:
    """Run a scoped replacement over *script* and return the new body.

    Raises:
        CoercionError: If the search text does not occur in *script*.
        SchemaError: If a ``pattern`` mode expression does not compile.
    """
    if payload["mode"] == "pattern":
        try:
            regex = re.compile(payload["replace"])
        except re.error as exc:
            raise SchemaError(f"Invalid script pattern: {exc}") from None
        replacement = payload["with"]
    else:
        regex = re.compile(re.escape(payload["replace"]))
        literal = payload["with"]
        replacement = lambda _match: literal  # noqa: E731

    limit = 0 if payload["all"] else payload["count"]
    try:
        replaced, hits = regex.subn(replacement, script, count=limit)
    except (re.error, IndexError) as exc:
        raise SchemaError(f"Invalid script replacement: {exc}") from None
    if hits == 0:
        raise CoercionError(f"String not found in script: {payload['replace']}")
    return replaced


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_SIMPLE_COERCERS = {
    KIND_STRING: coerce_string,
    KIND_NUMBER: coerce_number,
    KIND_BOOL: coerce_bool,
    KIND_OPTIONS: normalize_options,
    KIND_OFFSETS: coerce_offsets,
    KIND_DROPDOWN: coerce_dropdown,
}


def coerce_value(kind: str, value: object) -> object:
    """Coerce *value* for every kind except ``script`` (which needs the current body).

    ``any`` values pass through untouched.
    """
    if kind == KIND_ANY:
        return value
    coercer = _SIMPLE_COERCERS.get(kind)
    if coercer is None:
        raise SchemaError(f"Unknown kind: {kind}")
    return coercer(value)


def values_equal(kind: str, a: object, b: object) -> bool:
    """Compare two field values: ordered-sequence equality for list kinds,
    scalar equality otherwise (``True`` never equals ``1``)."""
    if kind in LIST_KINDS:
        return list(a or []) == list(b or [])
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def normalize_read_value(kind: str, value: object) -> object:
    """Canonicalize a value read from a record so reads compare like writes."""
    if kind == KIND_OPTIONS:
        try:
            return normalize_options(value)
        except SchemaError:
            return value
    if kind in LIST_KINDS:
        return list(value) if value is not None else []
    return value
