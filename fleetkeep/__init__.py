"""
FleetKeep - lifecycle manager for a fleet of agent nodes reached over SSH.

Design goals:
- No server required: one CLI process per operation, state in ~/.fleetkeep.
- Hardened SSH: absolute ssh binary, BatchMode, pinned host keys only.
- Bootstrap is probe, plan, execute; re-running converges instead of breaking.
"""

from __future__ import annotations

from .cli import main
from .config import FleetConfig, load_config
from .exceptions import FleetKeepError, UserError

__all__ = [
    "FleetConfig",
    "FleetKeepError",
    "UserError",
    "load_config",
    "main",
]
