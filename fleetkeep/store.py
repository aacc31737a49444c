"""Fleet inventory store (nodes.json).

All mutations follow the same cycle under the inventory lock: re-read the
file, change it in memory, write it back atomically. Reads (``get_node``,
``list_nodes``) take no lock and may see a slightly stale snapshot.

A file that cannot be parsed, has the wrong schema version, or contains an
invalid record reads as an empty inventory. The next write replaces it.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import INVENTORY_SCHEMA_VERSION, NODE_NAME_MAX_LEN
from .exceptions import DuplicateNodeError, ValidationError
from .lockfile import file_lock
from .models import NewNode, Node, NodeUpdate
from .utils import write_json_atomic

logger = logging.getLogger("fleetkeep")

NODE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class Inventory:
    """Schema-versioned, ordered collection of nodes."""

    nodes: list[Node] = field(default_factory=list)
    schema_version: int = INVENTORY_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "nodes": [n.to_dict() for n in self.nodes],
        }

    def find(self, name: str) -> int | None:
        """Return the index of the node called name (case-insensitive)."""
        wanted = normalize_node_name(name)
        for i, node in enumerate(self.nodes):
            if normalize_node_name(node.name) == wanted:
                return i
        return None


def normalize_node_name(name: str) -> str:
    return name.strip().lower()


def validate_node_name(name: str) -> None:
    if not name or not name.strip():
        raise ValidationError("Node name cannot be empty")
    if not NODE_NAME_RE.fullmatch(name):
        raise ValidationError(
            "Node name must contain only letters, numbers, hyphens, and underscores"
        )
    if len(name) > NODE_NAME_MAX_LEN:
        raise ValidationError(f"Node name must be at most {NODE_NAME_MAX_LEN} characters")


def validate_host(host: str) -> None:
    if not host or not host.strip():
        raise ValidationError("Host cannot be empty")
    # ssh would parse a leading '-' as an option
    if host.strip().startswith("-"):
        raise ValidationError("Host cannot start with '-' (security)")


def validate_port(port: int) -> None:
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        raise ValidationError("Port must be an integer between 1 and 65535")


def validate_user(user: str) -> None:
    if not user or not user.strip():
        raise ValidationError("User cannot be empty")


def parse_inventory(raw: str) -> Inventory:
    """Parse nodes.json content.

    Raises:
        ValueError: if the content is not a valid inventory
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("inventory must be a JSON object")
    version = data.get("schema_version")
    if version != INVENTORY_SCHEMA_VERSION:
        raise ValueError(f"unsupported schema_version {version!r}")
    raw_nodes = data.get("nodes", [])
    if not isinstance(raw_nodes, list):
        raise ValueError("nodes must be a list")
    try:
        nodes = [Node.from_dict(n) for n in raw_nodes]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ValueError(f"invalid node record: {e}") from e
    return Inventory(nodes=nodes)


def load_inventory(path: Path) -> Inventory:
    """Load the inventory, treating a missing or unusable file as empty."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Inventory()
    except OSError as e:
        logger.warning("Cannot read inventory %s: %s", path, e)
        return Inventory()
    try:
        return parse_inventory(raw)
    except ValueError as e:
        logger.warning("Ignoring unusable inventory %s: %s", path, e)
        return Inventory()


def save_inventory(path: Path, inventory: Inventory) -> None:
    """Write the inventory atomically (owner-only permissions)."""
    write_json_atomic(path, inventory.to_dict())


def add_node(path: Path, new: NewNode) -> Node:
    """Add a node with a freshly generated id.

    Raises:
        ValidationError: if any field is malformed
        DuplicateNodeError: if the name is taken (case-insensitive)
        LockTimeoutError: if the inventory stays locked
    """
    validate_node_name(new.name)
    validate_host(new.host)
    validate_port(new.port)
    validate_user(new.user)

    with file_lock(path):
        inventory = load_inventory(path)
        if inventory.find(new.name) is not None:
            raise DuplicateNodeError(f"Node with name '{new.name}' already exists")
        node = Node(
            id=str(uuid.uuid4()),
            name=new.name.strip(),
            host=new.host.strip(),
            port=new.port,
            user=new.user.strip(),
            trusted=new.trusted,
            host_key=new.host_key,
            tags=list(new.tags),
        )
        inventory.nodes.append(node)
        save_inventory(path, inventory)
    logger.debug("Added node %s (%s)", node.name, node.id)
    return node


def list_nodes(path: Path) -> list[Node]:
    """Return all nodes in inventory order."""
    return load_inventory(path).nodes


def get_node(path: Path, name: str) -> Node | None:
    """Return the node called name (case-insensitive), or None."""
    inventory = load_inventory(path)
    index = inventory.find(name)
    return None if index is None else inventory.nodes[index]


def remove_node(path: Path, name: str) -> bool:
    """Remove the node called name. Returns False if it did not exist."""
    with file_lock(path):
        inventory = load_inventory(path)
        index = inventory.find(name)
        if index is None:
            return False
        del inventory.nodes[index]
        save_inventory(path, inventory)
    logger.debug("Removed node %s", name)
    return True


def update_node(path: Path, name: str, update: NodeUpdate) -> Node | None:
    """Merge update into the node called name; None if it does not exist.

    Raises:
        ValidationError: if an updated field is malformed
    """
    if update.host is not None:
        validate_host(update.host)
    if update.port is not None:
        validate_port(update.port)
    if update.user is not None:
        validate_user(update.user)

    with file_lock(path):
        inventory = load_inventory(path)
        index = inventory.find(name)
        if index is None:
            return None
        node = inventory.nodes[index]
        update.apply(node)
        save_inventory(path, inventory)
    return node
