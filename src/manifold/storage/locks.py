"""File locks serializing CLI transactions on a project."""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from pathlib import Path

from filelock import FileLock, Timeout

TABLE_LOCK = "table"


class LockTimeout(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""


@contextlib.contextmanager
def manifold_lock(
    locks_dir: Path,
    key: str = TABLE_LOCK,
    timeout: float = 10,
) -> Generator[None, None, None]:
    """Hold ``locks_dir/<key>.lock`` for the duration of the block.

    Raises:
        LockTimeout: If the lock is not acquired within *timeout* seconds.
    """
    lock = FileLock(locks_dir / f"{key}.lock", timeout=timeout)
    try:
        lock.acquire()
    except Timeout:
        raise LockTimeout(f"Could not acquire lock '{key}' within {timeout}s") from None
    try:
        yield
    finally:
        lock.release()
