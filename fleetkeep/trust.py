"""Trust-on-first-use host identity checks.

First contact pins every key ssh-keyscan returns. Later contacts re-scan
and require the preferred pinned key to still be offered; a mismatch is
fatal unless the operator explicitly accepts the change for this call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .exceptions import HostKeyChangedError, HostKeyError
from .host_keys import (
    HostKeyEntry,
    get_host_key,
    parse_keyscan_output,
    pin_host_key,
    remove_host_key,
)
from .models import Node
from .ssh import ssh_keyscan

logger = logging.getLogger("fleetkeep")


class HostKeyStatus(str, Enum):
    NEW = "new"  # first contact, keys pinned now
    VERIFIED = "verified"  # re-scan matched the pinned key
    CHANGED = "changed"  # mismatch accepted by the operator, re-pinned
    PINNED = "pinned"  # re-scan failed; ssh itself still enforces the pin


@dataclass(frozen=True)
class HostKeyCheck:
    status: HostKeyStatus
    key: HostKeyEntry | None = None
    pinned: list[HostKeyEntry] = field(default_factory=list)


def _pin_all(known_hosts_path: Path, keys: list[HostKeyEntry]) -> None:
    for key in keys:
        pin_host_key(known_hosts_path, key)


def verify_host_identity(
    node: Node,
    *,
    known_hosts_path: Path,
    timeout_s: float,
    trust_change: bool = False,
) -> HostKeyCheck:
    """Check (and on first contact pin) the host key for node.

    Raises:
        HostKeyError: first contact and no keys could be scanned
        HostKeyChangedError: the key changed and trust_change is False
    """
    existing = get_host_key(known_hosts_path, node.host, node.port)
    scan = ssh_keyscan(node.host, node.port, timeout_s=timeout_s)
    scanned = (
        parse_keyscan_output(scan.output, node.host, node.port) if scan.exit_code == 0 else []
    )

    if existing is None:
        if scan.exit_code != 0 or not scan.output.strip():
            raise HostKeyError(f"Failed to scan host key: {scan.error or 'no keys returned'}")
        if not scanned:
            raise HostKeyError("No host keys found")
        _pin_all(known_hosts_path, scanned)
        logger.info("Pinned %d host key(s) for %s:%d", len(scanned), node.host, node.port)
        preferred = get_host_key(known_hosts_path, node.host, node.port)
        return HostKeyCheck(status=HostKeyStatus.NEW, key=preferred, pinned=scanned)

    if not scanned:
        logger.debug("Could not re-scan %s:%d; relying on pinned key", node.host, node.port)
        return HostKeyCheck(status=HostKeyStatus.PINNED, key=existing)

    if any(k.key_type == existing.key_type and k.key == existing.key for k in scanned):
        return HostKeyCheck(status=HostKeyStatus.VERIFIED, key=existing)

    if not trust_change:
        raise HostKeyChangedError(
            f"Host key changed for {node.host}:{node.port}! "
            "Use --trust-host-key-change to accept the new key."
        )
    # Old keys of types the host no longer offers would keep failing the check
    remove_host_key(known_hosts_path, node.host, node.port)
    _pin_all(known_hosts_path, scanned)
    logger.warning("Host key for %s:%d changed; re-pinned new key(s)", node.host, node.port)
    preferred = get_host_key(known_hosts_path, node.host, node.port)
    return HostKeyCheck(status=HostKeyStatus.CHANGED, key=preferred, pinned=scanned)
