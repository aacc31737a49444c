"""Advisory inter-process lock for FleetKeep state files.

The lock for ``nodes.json`` is the directory ``nodes.json.lock``. Creating a
directory is atomic on every local filesystem, so whichever process manages
``mkdir`` first owns the lock. The owner writes a unique token into the
directory and only removes a lock that still carries its token. Every writer
honors the lock; the filesystem does not enforce it.

A lock older than the staleness window is taken over by renaming it to a
private tombstone first. Only one process can win that rename, and the
tombstone is checked again before it is discarded, so a lock that was
reclaimed and re-acquired in the meantime is put back untouched.
"""

from __future__ import annotations

import contextlib
import logging
import os
import random
import shutil
import time
import uuid
from collections.abc import Iterator
from pathlib import Path

from .constants import (
    LOCK_BACKOFF_FACTOR,
    LOCK_MAX_DELAY_S,
    LOCK_MIN_DELAY_S,
    LOCK_OWNER_FILE,
    LOCK_RETRIES,
    LOCK_STALE_S,
    LOCK_SUFFIX,
)
from .exceptions import LockTimeoutError
from .utils import ensure_private_dir

logger = logging.getLogger("fleetkeep")


def lock_path_for(path: Path) -> Path:
    """Return the lock directory guarding path."""
    return path.with_name(path.name + LOCK_SUFFIX)


def new_owner_token() -> str:
    return f"{os.getpid()}-{uuid.uuid4().hex}"


def read_owner(lock_dir: Path) -> str | None:
    """Return the token of the process holding lock_dir, if recorded."""
    try:
        return (lock_dir / LOCK_OWNER_FILE).read_text(encoding="utf-8").strip() or None
    except (FileNotFoundError, NotADirectoryError):
        return None


def backoff_delay(attempt: int) -> float:
    """Delay before retry number attempt (0-based), with jitter."""
    delay = LOCK_MIN_DELAY_S * (LOCK_BACKOFF_FACTOR**attempt) * random.uniform(1, 2)
    return min(delay, LOCK_MAX_DELAY_S)


def _is_stale(lock_dir: Path, stale_s: float) -> bool:
    try:
        mtime = lock_dir.stat().st_mtime
    except FileNotFoundError:
        return False
    return time.time() - mtime > stale_s


def _create(lock_dir: Path, token: str) -> bool:
    try:
        os.mkdir(lock_dir, 0o700)
    except FileExistsError:
        return False
    (lock_dir / LOCK_OWNER_FILE).write_text(token + "\n", encoding="utf-8")
    return True


def _reclaim_stale(lock_dir: Path, stale_s: float, token: str) -> bool:
    """Move a stale lock out of the way; True if it was discarded."""
    tombstone = lock_dir.with_name(f"{lock_dir.name}.stale-{token}")
    try:
        os.rename(lock_dir, tombstone)
    except FileNotFoundError:
        # Another process got there first
        return False
    if not _is_stale(tombstone, stale_s):
        # Lost a race with a process that already re-acquired it
        try:
            os.rename(tombstone, lock_dir)
        except OSError as e:
            logger.warning("Could not restore lock %s: %s", lock_dir, e)
        return False
    logger.warning("Reclaiming stale lock %s (owner %s)", lock_dir, read_owner(tombstone) or "unknown")
    shutil.rmtree(tombstone, ignore_errors=True)
    return True


def _try_acquire(lock_dir: Path, stale_s: float, token: str) -> bool:
    if _create(lock_dir, token):
        return True
    if _is_stale(lock_dir, stale_s) and _reclaim_stale(lock_dir, stale_s, token):
        return _create(lock_dir, token)
    return False


def _release(lock_dir: Path, token: str) -> None:
    owner = read_owner(lock_dir)
    if owner != token:
        logger.warning("Lock %s is now held by %s; leaving it in place", lock_dir, owner or "unknown")
        return
    shutil.rmtree(lock_dir, ignore_errors=True)


@contextlib.contextmanager
def file_lock(
    path: Path,
    *,
    retries: int = LOCK_RETRIES,
    stale_s: float = LOCK_STALE_S,
) -> Iterator[None]:
    """Hold the advisory lock for path for the duration of the block.

    Retries with exponential backoff; a lock older than stale_s is assumed
    abandoned and taken over. The lock is released even if the block raises.

    Raises:
        LockTimeoutError: if the lock is still held after all retries
    """
    ensure_private_dir(path.parent)
    lock_dir = lock_path_for(path)
    token = new_owner_token()
    attempt = 0
    while not _try_acquire(lock_dir, stale_s, token):
        if attempt >= retries:
            raise LockTimeoutError(
                f"Could not acquire lock on {path} after {retries} retries "
                "(another fleetkeep process may be running)"
            )
        delay = backoff_delay(attempt)
        logger.debug("Lock %s busy, retrying in %.2fs", lock_dir, delay)
        time.sleep(delay)
        attempt += 1
    try:
        yield
    finally:
        _release(lock_dir, token)
