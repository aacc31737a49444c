"""Inventory record types.

A ``Node`` is one managed machine. ``NewNode`` is the input to ``add_node``
(the id is generated by the store) and ``NodeUpdate`` is a partial update
where ``None`` means "leave the stored value alone".
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from .constants import DEFAULT_SSH_PORT


class OsFamily(str, Enum):
    DARWIN = "darwin"
    LINUX = "linux"
    UNKNOWN = "unknown"


class Arch(str, Enum):
    X64 = "x64"
    ARM64 = "arm64"
    UNKNOWN = "unknown"


class ServiceStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InstallRecord:
    """Which agent version was installed on a node, and when."""

    version: str
    installed_at: str

    def to_dict(self) -> dict[str, str]:
        return {"version": self.version, "installed_at": self.installed_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstallRecord:
        return cls(version=str(data["version"]), installed_at=str(data["installed_at"]))


@dataclass
class Node:
    """One managed machine in the fleet."""

    id: str
    name: str
    host: str
    user: str
    port: int = DEFAULT_SSH_PORT
    trusted: bool = False
    host_key: str | None = None
    tags: list[str] = field(default_factory=list)
    os: OsFamily | None = None
    arch: Arch | None = None
    installed: InstallRecord | None = None
    last_seen: str | None = None
    service_status: ServiceStatus | None = None

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "trusted": self.trusted,
            "host_key": self.host_key,
            "tags": list(self.tags),
            "os": self.os.value if self.os else None,
            "arch": self.arch.value if self.arch else None,
            "installed": self.installed.to_dict() if self.installed else None,
            "last_seen": self.last_seen,
            "service_status": self.service_status.value if self.service_status else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        """Build a Node from its stored form.

        Raises:
            KeyError, TypeError, ValueError: if the record is malformed
        """
        port = data.get("port", DEFAULT_SSH_PORT)
        if not isinstance(port, int) or isinstance(port, bool):
            raise TypeError(f"port must be an integer, got {port!r}")
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise TypeError("tags must be a list")
        installed = data.get("installed")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            host=str(data["host"]),
            user=str(data["user"]),
            port=port,
            trusted=bool(data.get("trusted", False)),
            host_key=data.get("host_key"),
            tags=[str(t) for t in tags],
            os=OsFamily(data["os"]) if data.get("os") else None,
            arch=Arch(data["arch"]) if data.get("arch") else None,
            installed=InstallRecord.from_dict(installed) if installed else None,
            last_seen=data.get("last_seen"),
            service_status=(
                ServiceStatus(data["service_status"]) if data.get("service_status") else None
            ),
        )


@dataclass
class NewNode:
    """Input for adding a node."""

    name: str
    host: str
    user: str
    port: int = DEFAULT_SSH_PORT
    trusted: bool = False
    host_key: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class NodeUpdate:
    """Partial update of a stored node; ``None`` fields are left unchanged."""

    host: str | None = None
    port: int | None = None
    user: str | None = None
    trusted: bool | None = None
    host_key: str | None = None
    tags: list[str] | None = None
    os: OsFamily | None = None
    arch: Arch | None = None
    installed: InstallRecord | None = None
    last_seen: str | None = None
    service_status: ServiceStatus | None = None

    def apply(self, node: Node) -> None:
        """Copy every provided field onto node in place."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name in ("host", "user"):
                value = value.strip()
            elif f.name == "tags":
                value = list(value)
            setattr(node, f.name, value)
