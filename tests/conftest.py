"""Shared pytest fixtures for FleetKeep tests."""

from __future__ import annotations

import json
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from fleetkeep.bootstrap.types import NodeInfo
from fleetkeep.config import FleetConfig
from fleetkeep.models import Arch, NewNode, Node, OsFamily
from fleetkeep.ssh import SshResult
from fleetkeep.store import add_node


@pytest.fixture
def tmp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def config(tmp_dir: Path) -> FleetConfig:
    """FleetConfig rooted in a temporary fleet directory."""
    return FleetConfig(fleet_dir=tmp_dir / ".fleetkeep")


@pytest.fixture
def sample_node() -> Node:
    """A trusted node that is not stored anywhere."""
    return Node(
        id="00000000-0000-4000-8000-000000000001",
        name="edge-1",
        host="10.0.0.5",
        user="ops",
        port=22,
        trusted=True,
    )


@pytest.fixture
def stored_node(config: FleetConfig) -> Node:
    """An untrusted node added to the temporary inventory."""
    return add_node(config.nodes_path, NewNode(name="edge-1", host="10.0.0.5", user="ops"))


@pytest.fixture
def linux_info() -> NodeInfo:
    """Fact sheet for a bare Linux node (nothing installed yet)."""
    return NodeInfo(
        os=OsFamily.LINUX,
        arch=Arch.X64,
        home_dir="/home/ops",
        has_node=False,
        has_npm=False,
        has_agent=False,
        has_service=False,
        service_running=False,
    )


@pytest.fixture
def darwin_info() -> NodeInfo:
    """Fact sheet for a macOS node with Node.js already present."""
    return NodeInfo(
        os=OsFamily.DARWIN,
        arch=Arch.ARM64,
        home_dir="/Users/ops",
        has_node=True,
        node_version="20.10.0",
        has_npm=True,
        has_agent=False,
        has_service=False,
        service_running=False,
    )


@pytest.fixture
def make_ssh_result():
    """Factory for SshResult values returned by a patched transport."""
    return ssh_result


def ssh_result(
    stdout: str = "",
    stderr: str = "",
    exit_code: int | None = 0,
    *,
    timed_out: bool = False,
) -> SshResult:
    """Build an SshResult for tests that patch the transport."""
    return SshResult(
        stdout=stdout,
        stderr=stderr,
        exit_code=None if timed_out else exit_code,
        signal="SIGKILL" if timed_out else None,
        timed_out=timed_out,
    )


@pytest.fixture
def read_jsonl():
    """Reader returning every record of a JSONL file ([] if it does not exist)."""
    return jsonl_records


def jsonl_records(path: Path) -> list[dict]:
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]
