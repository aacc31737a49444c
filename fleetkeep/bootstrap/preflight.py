"""Bootstrap preflight: gather read-only facts about a node.

Each probe prints ``KEY=VALUE`` lines. A probe whose presence key is
missing from the output and that exited non-zero (or timed out) means the
round trip itself failed, and preflight stops there.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import Path

from ..constants import AGENT_BINARY, LAUNCHD_LABEL, PREFLIGHT_TIMEOUT_S, SYSTEMD_UNIT_NAME
from ..exceptions import FleetKeepError
from ..models import Arch, Node, OsFamily
from ..ssh import sh_command, ssh_exec_node
from ..utils import parse_kv_lines
from .types import NodeInfo

logger = logging.getLogger("fleetkeep")

_SEMVER_RE = re.compile(r"^v?(\d+\.\d+\.\d+)")
_AGENT_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+|[a-f0-9]{7,40})", re.IGNORECASE)


class PreflightError(FleetKeepError):
    """A preflight round trip failed; the message is shown to the operator."""


@dataclass(frozen=True)
class PreflightResult:
    success: bool
    node_info: NodeInfo | None = None
    error: str | None = None


def parse_os(uname_s: str) -> OsFamily:
    lower = uname_s.strip().lower()
    if "darwin" in lower:
        return OsFamily.DARWIN
    if "linux" in lower:
        return OsFamily.LINUX
    return OsFamily.UNKNOWN


def parse_arch(uname_m: str) -> Arch:
    lower = uname_m.strip().lower()
    if lower in ("x86_64", "amd64"):
        return Arch.X64
    if lower in ("arm64", "aarch64"):
        return Arch.ARM64
    return Arch.UNKNOWN


def parse_node_version(output: str) -> str | None:
    """'v20.10.0' -> '20.10.0'."""
    m = _SEMVER_RE.match(output.strip())
    return m.group(1) if m else None


def parse_agent_version(output: str) -> str | None:
    """Extract a semver or git sha from the agent's --version output."""
    m = _AGENT_VERSION_RE.search(output.strip())
    return m.group(1) if m else None


def system_probe_command() -> str:
    return sh_command(
        """
printf 'OS=%s\\n' "$(uname -s)"
printf 'ARCH=%s\\n' "$(uname -m)"
printf 'HOME_DIR=%s\\n' "$HOME"
"""
    )


def tool_probe_command(binary: str, key: str, *, with_version: bool) -> str:
    """Probe for binary on the remote PATH; prints <key>_PRESENT (and _VERSION)."""
    b = shlex.quote(binary)
    version_line = (
        f"  printf '{key}_VERSION=%s\\n' \"$({b} --version 2>/dev/null | head -n 1)\"\n"
        if with_version
        else ""
    )
    return sh_command(
        f"""
if command -v {b} >/dev/null 2>&1; then
  printf '{key}_PRESENT=1\\n'
{version_line}else
  printf '{key}_PRESENT=0\\n'
fi
"""
    )


def service_probe_command(os_family: OsFamily) -> str | None:
    """Service manager query for the OS; None if the OS is not supported."""
    if os_family == OsFamily.LINUX:
        unit = shlex.quote(SYSTEMD_UNIT_NAME)
        return sh_command(
            f"""
state=$(systemctl --user is-enabled {unit} 2>/dev/null || true)
case "$state" in
  enabled|enabled-runtime|disabled|static|linked|linked-runtime|indirect)
    printf 'SERVICE_PRESENT=1\\n' ;;
  *)
    printf 'SERVICE_PRESENT=0\\n' ;;
esac
if systemctl --user is-active {unit} >/dev/null 2>&1; then
  printf 'SERVICE_RUNNING=1\\n'
else
  printf 'SERVICE_RUNNING=0\\n'
fi
"""
        )
    if os_family == OsFamily.DARWIN:
        label = shlex.quote(LAUNCHD_LABEL)
        return sh_command(
            f"""
if launchctl list {label} >/dev/null 2>&1; then
  printf 'SERVICE_PRESENT=1\\n'
  if launchctl list {label} 2>/dev/null | grep -q '"PID"'; then
    printf 'SERVICE_RUNNING=1\\n'
  else
    printf 'SERVICE_RUNNING=0\\n'
  fi
else
  printf 'SERVICE_PRESENT=0\\n'
  printf 'SERVICE_RUNNING=0\\n'
fi
"""
        )
    return None


def _round_trip(
    node: Node,
    command: str,
    sentinel: str,
    *,
    what: str,
    known_hosts_path: Path,
    timeout_s: float,
) -> dict[str, str]:
    result = ssh_exec_node(node, command, timeout_s=timeout_s, known_hosts_path=known_hosts_path)
    if result.timed_out:
        raise PreflightError(f"Timed out while checking {what}")
    values = parse_kv_lines(result.stdout)
    if sentinel not in values:
        detail = result.stderr.strip() or result.stdout.strip() or f"exit code {result.exit_code}"
        raise PreflightError(f"Failed to check {what}: {detail}")
    return values


def gather_node_info(
    node: Node,
    *,
    known_hosts_path: Path,
    timeout_s: float = PREFLIGHT_TIMEOUT_S,
) -> PreflightResult:
    """Run the preflight probes against node. Never returns a partial fact sheet."""
    kw = {"known_hosts_path": known_hosts_path, "timeout_s": timeout_s}
    try:
        system = _round_trip(node, system_probe_command(), "OS", what="system info", **kw)
        home_dir = system.get("HOME_DIR", "")
        if not home_dir:
            raise PreflightError("Failed to determine home directory")
        os_family = parse_os(system.get("OS", ""))
        arch = parse_arch(system.get("ARCH", ""))
        logger.debug("Preflight %s: os=%s arch=%s", node.name, os_family.value, arch.value)

        node_probe = _round_trip(
            node,
            tool_probe_command("node", "NODE", with_version=True),
            "NODE_PRESENT",
            what="Node.js",
            **kw,
        )
        npm_probe = _round_trip(
            node,
            tool_probe_command("npm", "NPM", with_version=False),
            "NPM_PRESENT",
            what="npm",
            **kw,
        )
        agent_probe = _round_trip(
            node,
            tool_probe_command(AGENT_BINARY, "AGENT", with_version=True),
            "AGENT_PRESENT",
            what=AGENT_BINARY,
            **kw,
        )

        has_service: bool | None = None
        service_running: bool | None = None
        service_cmd = service_probe_command(os_family)
        if service_cmd is not None:
            service = _round_trip(node, service_cmd, "SERVICE_PRESENT", what="service", **kw)
            has_service = service["SERVICE_PRESENT"] == "1"
            service_running = service.get("SERVICE_RUNNING") == "1"
    except PreflightError as e:
        logger.debug("Preflight %s failed: %s", node.name, e)
        return PreflightResult(success=False, error=str(e))

    has_node = node_probe["NODE_PRESENT"] == "1"
    has_agent = agent_probe["AGENT_PRESENT"] == "1"
    info = NodeInfo(
        os=os_family,
        arch=arch,
        home_dir=home_dir,
        has_node=has_node,
        node_version=parse_node_version(node_probe.get("NODE_VERSION", "")) if has_node else None,
        has_npm=npm_probe["NPM_PRESENT"] == "1",
        has_agent=has_agent,
        agent_version=(
            parse_agent_version(agent_probe.get("AGENT_VERSION", "")) if has_agent else None
        ),
        has_service=has_service,
        service_running=service_running,
    )
    return PreflightResult(success=True, node_info=info)
