"""FleetKeep utility functions."""

from __future__ import annotations

import datetime as dt
import json
import os
import tempfile
from pathlib import Path
from typing import Any

PRIVATE_DIR_MODE = 0o700
PRIVATE_FILE_MODE = 0o600


def utc_now_iso() -> str:
    """Return current UTC time in ISO format without microseconds."""
    return dt.datetime.now(dt.UTC).replace(microsecond=0).isoformat()


def format_elapsed_time(seconds: float) -> str:
    """Format elapsed time in human-readable format.

    Args:
        seconds: Elapsed time in seconds

    Returns:
        Formatted string like "1m25s", "45s", or "1h05m30s"
    """
    total_seconds = int(seconds)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours}h{minutes:02d}m{secs:02d}s"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def format_relative_time(ts: str, *, now: dt.datetime | None = None) -> str:
    """Format an ISO timestamp as a coarse age like "3h ago".

    Unparseable timestamps are returned unchanged.
    """
    try:
        then = dt.datetime.fromisoformat(ts)
    except ValueError:
        return ts
    if then.tzinfo is None:
        then = then.replace(tzinfo=dt.UTC)
    now = now or dt.datetime.now(dt.UTC)
    diff = int((now - then).total_seconds())
    if diff < 60:
        return "just now"
    minutes, _ = divmod(diff, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d ago"
    if hours:
        return f"{hours}h ago"
    return f"{minutes}m ago"


def ensure_private_dir(p: Path) -> None:
    """Create directory (and parents) readable only by the owner."""
    p.mkdir(mode=PRIVATE_DIR_MODE, parents=True, exist_ok=True)


def write_text_atomic(path: Path, content: str) -> None:
    """Write text to path via a temp file in the same directory and rename.

    The temp file is chmod 0600 before it is renamed over the target, so
    readers only ever see the old file or the complete new one.
    """
    ensure_private_dir(path.parent)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, PRIVATE_FILE_MODE)
        os.replace(temp_path, path)
    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise


def write_json_atomic(path: Path, value: Any) -> None:
    """Serialize value as indented JSON and write it atomically."""
    write_text_atomic(path, json.dumps(value, indent=2) + "\n")


def infer_actor() -> str:
    """Infer the actor (user) performing the operation."""
    return (
        os.environ.get("FLEETKEEP_ACTOR")
        or os.environ.get("SUDO_USER")
        or os.environ.get("USER")
        or "unknown"
    )


def parse_kv_lines(output: str) -> dict[str, str]:
    """Parse key=value lines from string output."""
    d: dict[str, str] = {}
    for line in output.splitlines():
        if "=" in line:
            k, v = line.split("=", 1)
            d[k.strip()] = v.strip()
    return d


def parse_tags(raw: str | None) -> list[str]:
    """Split a comma-separated tag string, dropping blanks."""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]
