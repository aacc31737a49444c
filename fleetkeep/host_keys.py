"""Pinned SSH host keys (the fleet's known_hosts file).

File format, one entry per line::

    host ssh-ed25519 AAAA...
    [host]:2222 ssh-rsa AAAA...

Blank lines and '#' comments are ignored. ssh reads the same file through
``UserKnownHostsFile``, so entries are written in plain (unhashed) form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from .constants import DEFAULT_SSH_PORT, PREFERRED_KEY_TYPES
from .lockfile import file_lock
from .utils import write_text_atomic

_BRACKET_ADDR_RE = re.compile(r"^\[([^\]]+)\]:(\d+)$")


@dataclass(frozen=True)
class HostKeyEntry:
    host: str
    port: int
    key_type: str
    key: str

    @property
    def fingerprint(self) -> str:
        """Key snapshot stored on the node record."""
        return f"{self.key_type} {self.key}"


def format_address(host: str, port: int) -> str:
    if port == DEFAULT_SSH_PORT:
        return host
    return f"[{host}]:{port}"


def parse_address(address: str) -> tuple[str, int]:
    m = _BRACKET_ADDR_RE.match(address)
    if m:
        return m.group(1), int(m.group(2))
    return address, DEFAULT_SSH_PORT


def _iter_key_lines(content: str):
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        yield parts


def parse_known_hosts(content: str) -> list[HostKeyEntry]:
    """Parse known_hosts content; malformed lines are skipped."""
    entries = []
    for address, key_type, key, *_ in _iter_key_lines(content):
        host, port = parse_address(address)
        entries.append(HostKeyEntry(host=host, port=port, key_type=key_type, key=key))
    return entries


def format_known_hosts(entries: list[HostKeyEntry]) -> str:
    """Serialize entries in canonical form (one line each, trailing newline)."""
    if not entries:
        return ""
    lines = [f"{format_address(e.host, e.port)} {e.key_type} {e.key}" for e in entries]
    return "\n".join(lines) + "\n"


def parse_keyscan_output(output: str, host: str, port: int) -> list[HostKeyEntry]:
    """Parse ssh-keyscan output into entries for host:port.

    The address column of the scan output is ignored; keyscan may print
    it in a different form than the one we asked for.
    """
    return [
        HostKeyEntry(host=host, port=port, key_type=key_type, key=key)
        for _, key_type, key, *_ in _iter_key_lines(output)
    ]


def load_known_hosts(path: Path) -> list[HostKeyEntry]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    return parse_known_hosts(content)


def save_known_hosts(path: Path, entries: list[HostKeyEntry]) -> None:
    write_text_atomic(path, format_known_hosts(entries))


def select_preferred(entries: list[HostKeyEntry]) -> HostKeyEntry | None:
    """Pick ed25519, then rsa, then whatever was recorded first."""
    for key_type in PREFERRED_KEY_TYPES:
        for e in entries:
            if e.key_type == key_type:
                return e
    return entries[0] if entries else None


def get_host_keys(path: Path, host: str, port: int) -> list[HostKeyEntry]:
    return [e for e in load_known_hosts(path) if e.host == host and e.port == port]


def get_host_key(path: Path, host: str, port: int) -> HostKeyEntry | None:
    """Return the preferred pinned key for host:port, or None."""
    return select_preferred(get_host_keys(path, host, port))


def pin_host_key(path: Path, entry: HostKeyEntry) -> None:
    """Pin entry, replacing only the key with the same host, port and type."""
    with file_lock(path):
        entries = [
            e
            for e in load_known_hosts(path)
            if not (e.host == entry.host and e.port == entry.port and e.key_type == entry.key_type)
        ]
        entries.append(entry)
        save_known_hosts(path, entries)


def remove_host_key(path: Path, host: str, port: int) -> bool:
    """Drop every pinned key for host:port. Returns False if none existed."""
    with file_lock(path):
        entries = load_known_hosts(path)
        kept = [e for e in entries if not (e.host == host and e.port == port)]
        if len(kept) == len(entries):
            return False
        save_known_hosts(path, kept)
    return True


def has_host_key_changed(path: Path, entry: HostKeyEntry) -> bool | None:
    """Compare entry with the preferred pinned key.

    Returns None if nothing is pinned for the address, False if it matches,
    True otherwise.
    """
    existing = get_host_key(path, entry.host, entry.port)
    if existing is None:
        return None
    return not (existing.key_type == entry.key_type and existing.key == entry.key)
