"""Tests for fleetkeep/store.py - inventory persistence and validation."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest
from fleetkeep.exceptions import DuplicateNodeError, ValidationError
from fleetkeep.lockfile import lock_path_for
from fleetkeep.models import InstallRecord, NewNode, NodeUpdate, OsFamily, ServiceStatus
from fleetkeep.store import (
    add_node,
    get_node,
    list_nodes,
    load_inventory,
    parse_inventory,
    remove_node,
    update_node,
    validate_node_name,
)


@pytest.fixture
def nodes_path(tmp_dir: Path) -> Path:
    return tmp_dir / ".fleetkeep" / "nodes.json"


def new_node(name: str = "edge-1", **kw) -> NewNode:
    defaults = {"host": "10.0.0.5", "user": "ops"}
    defaults.update(kw)
    return NewNode(name=name, **defaults)


class TestAddNode:
    """Tests for add_node."""

    def test_add_to_empty_store(self, nodes_path: Path):
        """Adding to an empty store yields one node with defaults filled in."""
        node = add_node(nodes_path, new_node(tags=["prod"]))

        assert node.id
        assert node.port == 22
        assert node.trusted is False
        assert node.tags == ["prod"]
        assert [n.name for n in list_nodes(nodes_path)] == ["edge-1"]

    def test_ids_are_unique(self, nodes_path: Path):
        """Each added node gets its own identifier."""
        a = add_node(nodes_path, new_node("a"))
        b = add_node(nodes_path, new_node("b"))
        assert a.id != b.id

    def test_duplicate_name_case_insensitive(self, nodes_path: Path):
        """A name differing only in case is rejected and the store is unchanged."""
        add_node(nodes_path, new_node("edge-1"))
        before = nodes_path.read_text()

        with pytest.raises(DuplicateNodeError, match="Node with name 'EDGE-1' already exists"):
            add_node(nodes_path, new_node("EDGE-1"))

        assert nodes_path.read_text() == before

    def test_invalid_name_rejected_without_writing(self, nodes_path: Path):
        """Validation happens before anything touches the disk."""
        with pytest.raises(ValidationError):
            add_node(nodes_path, new_node("bad name!"))
        assert not nodes_path.exists()

    def test_host_starting_with_dash_rejected(self, nodes_path: Path):
        """Hosts that ssh would parse as options are refused."""
        with pytest.raises(ValidationError, match="security"):
            add_node(nodes_path, new_node(host="-oProxyCommand=evil"))

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_out_of_range(self, nodes_path: Path, port: int):
        """Ports outside 1-65535 are rejected."""
        with pytest.raises(ValidationError, match="Port"):
            add_node(nodes_path, new_node(port=port))

    def test_empty_user_rejected(self, nodes_path: Path):
        """A blank login user is rejected."""
        with pytest.raises(ValidationError, match="User cannot be empty"):
            add_node(nodes_path, new_node(user="  "))

    def test_file_is_private(self, nodes_path: Path):
        """Inventory file is written owner-only."""
        add_node(nodes_path, new_node())
        assert (nodes_path.stat().st_mode & 0o777) == 0o600

    def test_lock_released_after_write(self, nodes_path: Path):
        """No lock directory is left behind."""
        add_node(nodes_path, new_node())
        assert not lock_path_for(nodes_path).exists()

    def test_lock_released_when_mutation_raises(self, nodes_path: Path):
        """A duplicate-name failure inside the lock still releases it."""
        add_node(nodes_path, new_node())
        with pytest.raises(DuplicateNodeError):
            add_node(nodes_path, new_node())
        assert not lock_path_for(nodes_path).exists()


class TestValidateNodeName:
    """Tests for validate_node_name."""

    @pytest.mark.parametrize("name", ["edge-1", "EDGE_2", "a", "x" * 100])
    def test_valid(self, name: str):
        """Letters, digits, hyphen and underscore are allowed up to 100 chars."""
        validate_node_name(name)

    @pytest.mark.parametrize("name", ["", "   ", "has space", "dot.name", "slash/name", "edge\n"])
    def test_invalid_characters(self, name: str):
        """Anything outside the safe character set is rejected."""
        with pytest.raises(ValidationError):
            validate_node_name(name)

    def test_too_long(self):
        """Names longer than 100 characters are rejected."""
        with pytest.raises(ValidationError, match="at most 100"):
            validate_node_name("x" * 101)


class TestReadNodes:
    """Tests for get_node and list_nodes."""

    def test_get_is_case_insensitive(self, nodes_path: Path):
        """Lookup ignores case."""
        add_node(nodes_path, new_node("Edge-1"))
        node = get_node(nodes_path, "edge-1")
        assert node is not None
        assert node.name == "Edge-1"

    def test_get_missing(self, nodes_path: Path):
        """Unknown names return None."""
        assert get_node(nodes_path, "nope") is None

    def test_missing_file_reads_empty(self, nodes_path: Path):
        """A store that was never written lists no nodes."""
        assert list_nodes(nodes_path) == []

    def test_list_preserves_insertion_order(self, nodes_path: Path):
        """Nodes come back in the order they were added."""
        for name in ("c", "a", "b"):
            add_node(nodes_path, new_node(name))
        assert [n.name for n in list_nodes(nodes_path)] == ["c", "a", "b"]


class TestCorruptInventory:
    """Tests for unusable inventory files."""

    def test_corrupt_file_reads_empty(self, nodes_path: Path, caplog):
        """Unparseable content is treated as an empty inventory, with a warning."""
        nodes_path.parent.mkdir(parents=True)
        nodes_path.write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="fleetkeep"):
            assert list_nodes(nodes_path) == []
        assert "Ignoring unusable inventory" in caplog.text

    def test_wrong_schema_version_reads_empty(self, nodes_path: Path):
        """A different schema version is not interpreted."""
        nodes_path.parent.mkdir(parents=True)
        nodes_path.write_text(json.dumps({"schema_version": 99, "nodes": []}))
        assert load_inventory(nodes_path).nodes == []

    def test_next_write_replaces_corrupt_file(self, nodes_path: Path):
        """Adding a node over a corrupt file produces a valid inventory."""
        nodes_path.parent.mkdir(parents=True)
        nodes_path.write_text("garbage")

        add_node(nodes_path, new_node())

        data = json.loads(nodes_path.read_text())
        assert data["schema_version"] == 1
        assert [n["name"] for n in data["nodes"]] == ["edge-1"]

    def test_parse_rejects_non_integer_port(self):
        """A record with a string port is invalid."""
        raw = json.dumps(
            {
                "schema_version": 1,
                "nodes": [{"id": "1", "name": "a", "host": "h", "user": "u", "port": "22"}],
            }
        )
        with pytest.raises(ValueError, match="invalid node record"):
            parse_inventory(raw)


class TestRemoveNode:
    """Tests for remove_node."""

    def test_remove_existing(self, nodes_path: Path):
        """Removing a stored node returns True and drops it."""
        add_node(nodes_path, new_node("a"))
        add_node(nodes_path, new_node("b"))

        assert remove_node(nodes_path, "A") is True
        assert [n.name for n in list_nodes(nodes_path)] == ["b"]

    def test_remove_missing(self, nodes_path: Path):
        """Removing an unknown node returns False."""
        assert remove_node(nodes_path, "ghost") is False


class TestUpdateNode:
    """Tests for update_node."""

    def test_partial_update_leaves_other_fields(self, nodes_path: Path):
        """Only the provided fields change."""
        original = add_node(nodes_path, new_node(tags=["prod"]))

        updated = update_node(
            nodes_path,
            "edge-1",
            NodeUpdate(
                os=OsFamily.LINUX,
                installed=InstallRecord(version="2.0.0", installed_at="2026-01-01T00:00:00+00:00"),
                service_status=ServiceStatus.RUNNING,
            ),
        )

        assert updated is not None
        reloaded = get_node(nodes_path, "edge-1")
        assert reloaded is not None
        assert reloaded.id == original.id
        assert reloaded.host == "10.0.0.5"
        assert reloaded.tags == ["prod"]
        assert reloaded.os == OsFamily.LINUX
        assert reloaded.installed is not None
        assert reloaded.installed.version == "2.0.0"
        assert reloaded.service_status == ServiceStatus.RUNNING

    def test_update_missing_returns_none(self, nodes_path: Path):
        """Updating an unknown node is a no-op returning None."""
        assert update_node(nodes_path, "ghost", NodeUpdate(trusted=True)) is None

    def test_update_validates_host(self, nodes_path: Path):
        """Updated fields go through the same validation as add."""
        add_node(nodes_path, new_node())
        with pytest.raises(ValidationError):
            update_node(nodes_path, "edge-1", NodeUpdate(host="-bad"))

    def test_no_temp_files_left(self, nodes_path: Path):
        """Atomic writes clean up after themselves."""
        add_node(nodes_path, new_node())
        update_node(nodes_path, "edge-1", NodeUpdate(trusted=True))
        leftovers = [p for p in os.listdir(nodes_path.parent) if p.endswith(".tmp")]
        assert leftovers == []
