"""Project layout, atomic writes, JSONL appends, and root discovery.

A project keeps its state in a ``.manifold/`` directory::

    .manifold/
        config.json
        table.json
        events.jsonl
        snapshots/<name>.json
        sync/config.json
        locks/
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

MANIFOLD_DIR = ".manifold"
MANIFOLD_ROOT_ENV = "MANIFOLD_ROOT"

CONFIG_FILE = "config.json"
TABLE_FILE = "table.json"
EVENTS_FILE = "events.jsonl"

_SNAPSHOT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ManifoldRootError(Exception):
    """Raised when MANIFOLD_ROOT is set but does not point at a project."""


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _fsync_directory(path: Path) -> None:
    # Not every platform can fsync a directory descriptor.
    try:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        pass


def atomic_write(path: Path, content: str) -> None:
    """Replace *path* with *content* via a sibling temp file and ``os.replace``.

    Readers see either the old file or the new one, never a torn write.

    Raises:
        FileNotFoundError: If the parent directory does not exist.
    """
    parent = path.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {parent}")

    fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=".tmp.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    _fsync_directory(parent)


def jsonl_append(path: Path, line: str) -> None:
    """Append one newline-terminated JSONL record to *path* and fsync it.

    Does no locking; callers hold the table lock while journaling.
    """
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(line)
        fh.flush()
        os.fsync(fh.fileno())


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def ensure_manifold_dirs(root: Path) -> Path:
    """Create ``.manifold/`` and its subdirectories under *root*; return it."""
    manifold_dir = root / MANIFOLD_DIR
    for subdir in ("snapshots", "sync", "locks"):
        (manifold_dir / subdir).mkdir(parents=True, exist_ok=True)
    events = manifold_dir / EVENTS_FILE
    if not events.exists():
        events.touch()
    return manifold_dir


def snapshot_path(manifold_dir: Path, name: str) -> Path:
    """Return the file holding the exported snapshot *name*.

    Raises:
        ValueError: If *name* is not a safe file stem.
    """
    if not _SNAPSHOT_NAME_RE.match(name):
        raise ValueError(f"Invalid snapshot name: {name!r}")
    return manifold_dir / "snapshots" / f"{name}.json"


def list_snapshot_names(manifold_dir: Path) -> list[str]:
    """Return the names of every exported snapshot, sorted."""
    snapshots_dir = manifold_dir / "snapshots"
    if not snapshots_dir.is_dir():
        return []
    return sorted(p.stem for p in snapshots_dir.glob("*.json"))


def find_root(start: Path | None = None) -> Path | None:
    """Return the directory holding ``.manifold/``, or ``None``.

    ``MANIFOLD_ROOT``, when set, wins and is validated with no walk-up
    fallback.  Otherwise the search walks up from *start* (default: cwd).

    Raises:
        ManifoldRootError: If ``MANIFOLD_ROOT`` is set but invalid.
    """
    env_root = os.environ.get(MANIFOLD_ROOT_ENV)
    if env_root is not None:
        if not env_root:
            raise ManifoldRootError(f"{MANIFOLD_ROOT_ENV} is set but empty")
        env_path = Path(env_root)
        if not (env_path / MANIFOLD_DIR).is_dir():
            raise ManifoldRootError(
                f"{MANIFOLD_ROOT_ENV} does not contain a {MANIFOLD_DIR}/ directory: {env_root}"
            )
        return env_path

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / MANIFOLD_DIR).is_dir():
            return candidate
    return None
