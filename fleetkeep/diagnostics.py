"""Remote health probe for the ``status`` command.

One round trip per node runs a composite script whose output looks like::

    DIAG_START
    VERSION:1.2.3            (or VERSION:NOT_FOUND)
    SERVICE:running          (or stopped)
    STATUS_JSON:{"uptime": 93784000}
    DIAG_END

The prober never writes the inventory; callers persist what they need.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from .constants import (
    AGENT_BINARY,
    DIAG_END,
    DIAG_START,
    LAUNCHD_LABEL,
    NOT_FOUND,
    SYSTEMD_UNIT_NAME,
)
from .models import Node, ServiceStatus
from .ssh import SshResult, sh_command, ssh_exec_node
from .utils import utc_now_iso

logger = logging.getLogger("fleetkeep")

_VERSION_LINE_RE = re.compile(r"^VERSION:(.*)$", re.MULTILINE)
_SERVICE_LINE_RE = re.compile(r"^SERVICE:(running|stopped)\s*$", re.MULTILINE)
_STATUS_LINE_RE = re.compile(r"^STATUS_JSON:(.*)$", re.MULTILINE)
_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+|[a-f0-9]{7,40})", re.IGNORECASE)


@dataclass
class NodeDiagnostics:
    name: str
    host: str
    online: bool
    service_running: bool = False
    service_status: ServiceStatus = ServiceStatus.UNKNOWN
    version: str | None = None
    uptime: str | None = None
    last_seen: str | None = None
    error: str | None = None
    latency_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["service_status"] = self.service_status.value
        return d


def build_diagnostics_command() -> str:
    return sh_command(
        f"""
echo "{DIAG_START}"
if command -v {AGENT_BINARY} >/dev/null 2>&1; then
  echo "VERSION:$({AGENT_BINARY} --version 2>/dev/null | head -n 1)"
else
  echo "VERSION:{NOT_FOUND}"
fi
if [ "$(uname -s)" = "Darwin" ]; then
  if launchctl list {LAUNCHD_LABEL} 2>/dev/null | grep -q '"PID"'; then
    echo "SERVICE:running"
  else
    echo "SERVICE:stopped"
  fi
else
  if systemctl --user is-active {SYSTEMD_UNIT_NAME} >/dev/null 2>&1; then
    echo "SERVICE:running"
  else
    echo "SERVICE:stopped"
  fi
fi
status=$({AGENT_BINARY} gateway status --json --timeout 3000 2>/dev/null) || status='{{}}'
echo "STATUS_JSON:$(printf '%s' "$status" | tr -d '\\n')"
echo "{DIAG_END}"
"""
    )


def format_uptime_ms(ms: float) -> str:
    """93784000 -> '1d 2h'; uses the two largest applicable units."""
    seconds = int(ms // 1000)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def parse_version(raw: str) -> str | None:
    raw = raw.strip()
    if not raw or raw == NOT_FOUND:
        return None
    m = _VERSION_RE.search(raw)
    return m.group(1) if m else raw


def parse_uptime(status_json: str) -> str | None:
    try:
        status = json.loads(status_json)
    except ValueError:
        return None
    if not isinstance(status, dict):
        return None
    uptime = status.get("uptime")
    if isinstance(uptime, str):
        return uptime
    if isinstance(uptime, (int, float)) and not isinstance(uptime, bool):
        return format_uptime_ms(uptime)
    return None


def parse_diagnostics(
    node: Node,
    result: SshResult,
    latency_ms: int | None,
    *,
    now: str | None = None,
) -> NodeDiagnostics:
    """Classify one probe round trip into a health record."""
    if result.timed_out:
        return NodeDiagnostics(
            name=node.name,
            host=node.host,
            online=False,
            last_seen=node.last_seen,
            error="timed out",
        )

    output = result.stdout
    if result.exit_code != 0 and DIAG_START not in output:
        return NodeDiagnostics(
            name=node.name,
            host=node.host,
            online=False,
            last_seen=node.last_seen,
            error=result.stderr.strip() or f"ssh exit code: {result.exit_code}",
            latency_ms=latency_ms,
        )

    version = None
    m = _VERSION_LINE_RE.search(output)
    if m:
        version = parse_version(m.group(1))

    service_status = ServiceStatus.UNKNOWN
    m = _SERVICE_LINE_RE.search(output)
    if m:
        service_status = ServiceStatus(m.group(1))

    uptime = None
    m = _STATUS_LINE_RE.search(output)
    if m:
        uptime = parse_uptime(m.group(1))

    return NodeDiagnostics(
        name=node.name,
        host=node.host,
        online=True,
        service_running=service_status == ServiceStatus.RUNNING,
        service_status=service_status,
        version=version,
        uptime=uptime,
        last_seen=now or utc_now_iso(),
        latency_ms=latency_ms,
    )


def run_node_diagnostics(node: Node, *, known_hosts_path: Path, timeout_s: float) -> NodeDiagnostics:
    """Probe node once. Never raises; failures are reported in the record."""
    start_time = time.time()
    try:
        result = ssh_exec_node(
            node,
            build_diagnostics_command(),
            timeout_s=timeout_s,
            known_hosts_path=known_hosts_path,
        )
    except Exception as e:
        logger.debug("Diagnostics for %s failed: %s", node.name, e)
        return NodeDiagnostics(
            name=node.name, host=node.host, online=False, last_seen=node.last_seen, error=str(e)
        )
    latency_ms = int((time.time() - start_time) * 1000)
    diag = parse_diagnostics(node, result, latency_ms)
    logger.debug(
        "Diagnostics %s: online=%s service=%s (%dms)",
        node.name,
        diag.online,
        diag.service_status.value,
        latency_ms,
    )
    return diag
