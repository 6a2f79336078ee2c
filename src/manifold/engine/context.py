"""The patch engine context: per-process snapshot table and rollback log."""

from __future__ import annotations

from manifold.core.config import default_config
from manifold.core.schema import LIST_KINDS, SCHEMA, parse_field_path
from manifold.engine.store import RecordStore

# Rollback value for a path that did not exist before the transaction touched it.
MISSING = object()


class PatchEngine:
    """Explicit context passed to every engine operation.

    Holds the record store, the policy flags from config, the named
    snapshots, and the bookkeeping of the single in-flight apply
    transaction.  There is no transaction id: callers must not start a
    second apply before the first one finished or reverted.
    """

    def __init__(self, store: RecordStore, config: dict | None = None) -> None:
        settings: dict = dict(default_config())
        settings.update(config or {})
        self.store = store
        self.version: str = str(settings["client_version"])
        self.safe_mode: bool = bool(settings["safe_mode"])
        self.strict_target_resolution: bool = bool(settings["strict_target_resolution"])
        self.default_script_replace_mode: str = settings["default_script_replace_mode"]

        self.snapshots: dict[str, dict] = {}
        # (record_id, field path) -> value before the first write this transaction.
        # Insertion order is capture order.
        self.rollback_log: dict[tuple[int, str], object] = {}
        self.applied_patches: list[str] = []

    def clear_transaction(self) -> None:
        """Drop the rollback log and applied-patch list."""
        self.rollback_log = {}
        self.applied_patches = []

    def reset(self) -> None:
        """Return the engine to its freshly constructed state."""
        self.clear_transaction()
        self.snapshots = {}

    def capture(self, record, path: str) -> bool:
        """Record the pre-mutation value of *path* on *record* unless already captured.

        Writes to an element of a list field (``Offset.2``) capture the whole
        list, so one entry restores the field no matter how it was touched.
        Paths that do not exist yet are captured as :data:`MISSING` so the
        reverter removes them again.  Returns ``True`` when a new entry was
        created.
        """
        key = (self.store.record_id(record), rollback_path(path))
        if key in self.rollback_log:
            return False
        if self.store.has_field(record, key[1]):
            self.rollback_log[key] = self.store.read_field(record, key[1])
        else:
            self.rollback_log[key] = MISSING
        return True


def rollback_path(path: str) -> str:
    """Return the path whose value a rollback entry for *path* must hold."""
    fp = parse_field_path(path)
    spec = SCHEMA.get(fp.root)
    if fp.rest and spec is not None and spec["kind"] in LIST_KINDS:
        return fp.root
    return str(fp)
