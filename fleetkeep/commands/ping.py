"""FleetKeep ping command: verify the host identity and test SSH access."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import click

from ..audit import record_action
from ..constants import MIN_TIMEOUT_S
from ..exceptions import CommandFailureError, HostKeyError, UserError
from ..models import NodeUpdate
from ..ssh import VerificationMode, ssh_exec_node
from ..store import get_node, update_node
from ..trust import HostKeyStatus, verify_host_identity
from ..utils import utc_now_iso

if TYPE_CHECKING:
    from ..cli_types import PingArgs
    from ..config import FleetConfig

PING_COMMAND = "echo pong && uname -a"


def _fail(args: PingArgs, name: str, error: str) -> CommandFailureError:
    if args.json:
        print(
            json.dumps(
                {
                    "name": name,
                    "reachable": False,
                    "exit_code": None,
                    "stdout": "",
                    "stderr": "",
                    "timed_out": False,
                    "host_key_status": None,
                    "error": error,
                },
                indent=2,
                sort_keys=True,
            )
        )
    else:
        click.echo(f"ERROR: {name}: {error}", err=True)
    return CommandFailureError(rc=1)


def cmd_ping(args: PingArgs, config: FleetConfig) -> None:
    """Check the host key (pinning it on first contact), then run a test command.

    A successful ping marks the node trusted and records its host key, so
    later commands run with strict host key checking.
    """
    if args.timeout < MIN_TIMEOUT_S:
        raise UserError(f"Timeout must be at least {MIN_TIMEOUT_S} second(s)")

    node = get_node(config.nodes_path, args.name)
    if node is None:
        raise _fail(args, args.name, "Node not found")

    try:
        check = verify_host_identity(
            node,
            known_hosts_path=config.known_hosts_path,
            timeout_s=args.timeout,
            trust_change=args.trust_host_key_change,
        )
    except HostKeyError as e:
        record_action(config.audit_log_path, "node.ping", node.name, ok=False, error=str(e))
        raise _fail(args, node.name, str(e)) from e

    if not args.json:
        if check.status == HostKeyStatus.NEW:
            click.echo(f"Pinned {len(check.pinned)} host key(s) for {node.host}")
        elif check.status == HostKeyStatus.CHANGED:
            click.echo(f"Re-pinned host key for {node.host} (key changed)")

    result = ssh_exec_node(
        node,
        PING_COMMAND,
        timeout_s=args.timeout,
        known_hosts_path=config.known_hosts_path,
        verification=VerificationMode.STRICT,
    )
    if result.ok:
        update_node(
            config.nodes_path,
            node.name,
            NodeUpdate(
                trusted=True,
                host_key=check.key.fingerprint if check.key else None,
                last_seen=utc_now_iso(),
            ),
        )
    record_action(
        config.audit_log_path,
        "node.ping",
        node.name,
        ok=result.ok,
        host_key_status=check.status.value,
        exit_code=result.exit_code,
        timed_out=result.timed_out,
    )

    report: dict[str, Any] = {
        "name": node.name,
        "reachable": result.ok,
        "exit_code": result.exit_code,
        "stdout": result.stdout.strip(),
        "stderr": result.stderr.strip(),
        "timed_out": result.timed_out,
        "host_key_status": check.status.value,
        "error": None,
    }
    if args.json:
        if not result.ok:
            report["error"] = (
                "timed out"
                if result.timed_out
                else result.stderr.strip() or f"ssh exit code: {result.exit_code}"
            )
        print(json.dumps(report, indent=2, sort_keys=True))
        if not result.ok:
            raise CommandFailureError(rc=1)
        return

    if result.ok:
        lines = result.stdout.strip().splitlines()
        click.echo(f"{node.name}: {lines[0] if lines else 'pong'}")
        if len(lines) > 1:
            click.echo(f"  {lines[1]}")
        click.echo(f"  host key: {check.status.value}")
        return

    exit_desc = result.exit_code if result.exit_code is not None else result.signal
    click.echo(f"ERROR: {node.name}: failed (exit {exit_desc})", err=True)
    if result.timed_out:
        click.echo("  timed out", err=True)
    if result.stderr.strip():
        click.echo(f"  {result.stderr.strip()}", err=True)
    raise CommandFailureError(rc=1)
