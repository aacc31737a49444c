"""Tests for fleetkeep/bootstrap/preflight.py - read-only node probing."""

from __future__ import annotations

from pathlib import Path

import pytest
from fleetkeep.bootstrap.preflight import (
    PreflightError,
    gather_node_info,
    parse_agent_version,
    parse_arch,
    parse_node_version,
    parse_os,
    service_probe_command,
    tool_probe_command,
)
from fleetkeep.exceptions import FleetKeepError
from fleetkeep.models import Arch, Node, OsFamily

KNOWN_HOSTS = Path("/tmp/fleet/known_hosts")

SYSTEM_LINUX = "OS=Linux\nARCH=x86_64\nHOME_DIR=/home/ops\n"
NODE_PRESENT = "NODE_PRESENT=1\nNODE_VERSION=v20.10.0\n"
NPM_PRESENT = "NPM_PRESENT=1\n"
AGENT_ABSENT = "AGENT_PRESENT=0\n"
SERVICE_ABSENT = "SERVICE_PRESENT=0\nSERVICE_RUNNING=0\n"


@pytest.fixture
def mock_exec(mocker):
    return mocker.patch("fleetkeep.bootstrap.preflight.ssh_exec_node")


def gather(node: Node):
    return gather_node_info(node, known_hosts_path=KNOWN_HOSTS, timeout_s=5)


class TestParsers:
    """Tests for the output parsers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Darwin", OsFamily.DARWIN), ("Linux\n", OsFamily.LINUX), ("FreeBSD", OsFamily.UNKNOWN)],
    )
    def test_parse_os(self, raw: str, expected: OsFamily):
        """uname -s is mapped case-insensitively."""
        assert parse_os(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("x86_64", Arch.X64),
            ("amd64", Arch.X64),
            ("arm64", Arch.ARM64),
            ("aarch64", Arch.ARM64),
            ("riscv64", Arch.UNKNOWN),
        ],
    )
    def test_parse_arch(self, raw: str, expected: Arch):
        """uname -m is mapped to the supported architectures."""
        assert parse_arch(raw) == expected

    def test_parse_node_version(self):
        """The leading v is dropped."""
        assert parse_node_version("v20.10.0") == "20.10.0"
        assert parse_node_version("garbage") is None

    def test_parse_agent_version(self):
        """Semver or git sha is extracted from free-form output."""
        assert parse_agent_version("raven 2.0.1 (build abc)") == "2.0.1"
        assert parse_agent_version("deadbeef1") == "deadbeef1"
        assert parse_agent_version("") is None


class TestProbeCommands:
    """Tests for the generated probe scripts."""

    def test_tool_probe_quotes_binary(self):
        """The binary name is shell-quoted inside the script."""
        cmd = tool_probe_command("node", "NODE", with_version=True)
        assert cmd.startswith("sh -c ")
        assert "NODE_PRESENT" in cmd
        assert "NODE_VERSION" in cmd

    def test_tool_probe_without_version(self):
        """No version line is emitted when not requested."""
        assert "NPM_VERSION" not in tool_probe_command("npm", "NPM", with_version=False)

    def test_service_probe_per_os(self):
        """Linux uses systemctl --user, macOS launchctl, others nothing."""
        assert "systemctl --user" in service_probe_command(OsFamily.LINUX)
        assert "launchctl list" in service_probe_command(OsFamily.DARWIN)
        assert service_probe_command(OsFamily.UNKNOWN) is None


class TestGatherNodeInfo:
    """Tests for gather_node_info with a mocked transport."""

    def test_bare_linux_node(self, sample_node: Node, mock_exec, make_ssh_result):
        """All five probes succeed and the fact sheet is assembled."""
        mock_exec.side_effect = [
            make_ssh_result(SYSTEM_LINUX),
            make_ssh_result(NODE_PRESENT),
            make_ssh_result(NPM_PRESENT),
            make_ssh_result(AGENT_ABSENT),
            make_ssh_result(SERVICE_ABSENT),
        ]

        result = gather(sample_node)

        assert result.success
        info = result.node_info
        assert info.os == OsFamily.LINUX
        assert info.arch == Arch.X64
        assert info.home_dir == "/home/ops"
        assert info.has_node is True
        assert info.node_version == "20.10.0"
        assert info.has_npm is True
        assert info.has_agent is False
        assert info.agent_version is None
        assert info.has_service is False
        assert mock_exec.call_count == 5

    def test_unknown_os_skips_service_probe(self, sample_node: Node, mock_exec, make_ssh_result):
        """Service presence stays unknown when the OS is not supported."""
        mock_exec.side_effect = [
            make_ssh_result("OS=FreeBSD\nARCH=amd64\nHOME_DIR=/home/ops\n"),
            make_ssh_result("NODE_PRESENT=0\n"),
            make_ssh_result("NPM_PRESENT=0\n"),
            make_ssh_result(AGENT_ABSENT),
        ]

        result = gather(sample_node)

        assert result.success
        assert result.node_info.os == OsFamily.UNKNOWN
        assert result.node_info.has_service is None
        assert mock_exec.call_count == 4

    def test_agent_version_parsed(self, sample_node: Node, mock_exec, make_ssh_result):
        """An installed agent reports its version."""
        mock_exec.side_effect = [
            make_ssh_result(SYSTEM_LINUX),
            make_ssh_result(NODE_PRESENT),
            make_ssh_result(NPM_PRESENT),
            make_ssh_result("AGENT_PRESENT=1\nAGENT_VERSION=raven 2.0.0\n"),
            make_ssh_result("SERVICE_PRESENT=1\nSERVICE_RUNNING=1\n"),
        ]

        info = gather(sample_node).node_info

        assert info.has_agent is True
        assert info.agent_version == "2.0.0"
        assert info.has_service is True
        assert info.service_running is True

    def test_first_probe_timeout(self, sample_node: Node, mock_exec, make_ssh_result):
        """A timeout stops preflight with no partial fact sheet."""
        mock_exec.return_value = make_ssh_result(timed_out=True)

        result = gather(sample_node)

        assert result.success is False
        assert result.node_info is None
        assert "Timed out" in result.error
        assert mock_exec.call_count == 1

    def test_connection_failure(self, sample_node: Node, mock_exec, make_ssh_result):
        """A non-zero exit without output reports stderr."""
        mock_exec.return_value = make_ssh_result(
            stderr="ssh: connect to host 10.0.0.5 port 22: Connection refused", exit_code=255
        )

        result = gather(sample_node)

        assert result.success is False
        assert "Connection refused" in result.error

    def test_empty_home_dir(self, sample_node: Node, mock_exec, make_ssh_result):
        """A missing home directory is a failure."""
        mock_exec.return_value = make_ssh_result("OS=Linux\nARCH=x86_64\nHOME_DIR=\n")

        result = gather(sample_node)

        assert result.success is False
        assert result.error == "Failed to determine home directory"


class TestPreflightError:
    """Tests for the preflight error type."""

    def test_is_fleetkeep_error(self):
        """Preflight failures belong to the package error hierarchy."""
        assert issubclass(PreflightError, FleetKeepError)
