"""FleetKeep audit trail: one JSON line per operator action."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .utils import ensure_private_dir, infer_actor, utc_now_iso

logger = logging.getLogger("fleetkeep")


def append_jsonl(path: Path, record: dict[str, Any]) -> None:
    """Append a JSON record to a JSONL file."""
    ensure_private_dir(path.parent)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, sort_keys=True) + "\n")


def record_action(path: Path, action: str, node: str, *, ok: bool, **details: Any) -> None:
    """Best-effort audit entry; a failed write is logged, never raised."""
    record = {
        "ts": utc_now_iso(),
        "actor": infer_actor(),
        "action": action,
        "node": node,
        "ok": ok,
        **details,
    }
    try:
        append_jsonl(path, record)
    except OSError as e:
        logger.warning("Could not write audit log %s: %s", path, e)
