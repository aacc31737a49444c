"""FleetKeep configuration: where the fleet's local state lives.

The configuration is resolved once at process start and passed to every
component, so tests can point the whole tool at a temporary directory.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    AUDIT_FILE_NAME,
    FLEET_DIR_ENV,
    FLEET_DIR_NAME,
    KNOWN_HOSTS_FILE_NAME,
    NODES_FILE_NAME,
)


@dataclass(frozen=True)
class FleetConfig:
    """Resolved paths for one fleet directory."""

    fleet_dir: Path

    @property
    def nodes_path(self) -> Path:
        return self.fleet_dir / NODES_FILE_NAME

    @property
    def known_hosts_path(self) -> Path:
        return self.fleet_dir / KNOWN_HOSTS_FILE_NAME

    @property
    def audit_log_path(self) -> Path:
        return self.fleet_dir / AUDIT_FILE_NAME


def resolve_fleet_dir(env: Mapping[str, str], home: Path) -> Path:
    """Return the fleet directory.

    Priority:
    1. FLEETKEEP_DIR (``~`` expanded, made absolute)
    2. ~/.fleetkeep
    """
    override = (env.get(FLEET_DIR_ENV) or "").strip()
    if override:
        if override == "~" or override.startswith(("~/", "~\\")):
            override = str(home) + override[1:]
        return Path(override).resolve()
    return home / FLEET_DIR_NAME


def load_config(env: Mapping[str, str] | None = None, home: Path | None = None) -> FleetConfig:
    """Build the FleetConfig from the environment and home directory."""
    env = os.environ if env is None else env
    home = Path(os.path.expanduser("~")) if home is None else home
    return FleetConfig(fleet_dir=resolve_fleet_dir(env, home))
