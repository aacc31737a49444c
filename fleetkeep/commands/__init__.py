"""FleetKeep command implementations."""

from __future__ import annotations

from .bootstrap import cmd_bootstrap
from .nodes import cmd_add, cmd_get, cmd_list, cmd_rm
from .ping import cmd_ping
from .status import cmd_status

__all__ = [
    "cmd_add",
    "cmd_bootstrap",
    "cmd_get",
    "cmd_list",
    "cmd_ping",
    "cmd_rm",
    "cmd_status",
]
