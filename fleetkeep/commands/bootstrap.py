"""FleetKeep bootstrap command."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import click

from ..audit import record_action
from ..bootstrap import bootstrap, format_plan, format_result, plan_to_dict
from ..bootstrap.types import BootstrapStep, StepStatus
from ..constants import MIN_TIMEOUT_S
from ..exceptions import CommandFailureError, UserError
from ..store import get_node

if TYPE_CHECKING:
    from ..cli_types import BootstrapArgs
    from ..config import FleetConfig

STATUS_ICONS = {
    StepStatus.PENDING: "○",
    StepStatus.RUNNING: "◐",
    StepStatus.SUCCESS: "✓",
    StepStatus.SKIPPED: "○",
    StepStatus.FAILED: "✗",
}


def print_progress(step: BootstrapStep, status: StepStatus) -> None:
    click.echo(f"  {STATUS_ICONS[status]} {step.description}")


def cmd_bootstrap(args: BootstrapArgs, config: FleetConfig) -> None:
    """Install and start the agent on a trusted node.

    With --dry-run the node is only probed and the plan is printed.
    """
    if args.command_timeout < MIN_TIMEOUT_S:
        raise UserError(f"Command timeout must be at least {MIN_TIMEOUT_S} second(s)")

    node = get_node(config.nodes_path, args.name)
    if node is None:
        raise UserError(f"Node not found: {args.name}", rc=1)
    if not node.trusted:
        raise UserError(
            f"Node '{node.name}' is not trusted. Run 'fleetkeep ping {node.name}' first "
            "to verify and trust the host key.",
            rc=1,
        )

    if not args.json:
        if args.dry_run:
            click.echo(f"Gathering node info for {node.name}...")
        else:
            click.echo(f"Bootstrapping node: {node.name}")
            click.echo(f"  Host: {node.host}")
            click.echo(f"  User: {node.user}")
            click.echo(f"  Version: {args.version}")
            click.echo(f"  Force: {str(args.force).lower()}")
            click.echo()

    plan, result = bootstrap(
        config,
        node,
        version=args.version,
        force=args.force,
        dry_run=args.dry_run,
        command_timeout_s=args.command_timeout,
        on_progress=None if args.json or args.dry_run else print_progress,
    )

    if not args.dry_run:
        record_action(
            config.audit_log_path,
            "node.bootstrap",
            node.name,
            ok=result.success,
            version=args.version,
            force=args.force,
            error=result.error,
        )

    if args.json:
        if args.dry_run and plan is not None:
            print(json.dumps({"dry_run": True, "plan": plan_to_dict(plan)}, indent=2, sort_keys=True))
        else:
            print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    elif args.dry_run and plan is not None:
        click.echo()
        click.echo("[DRY RUN] The following bootstrap plan would be executed:")
        click.echo()
        click.echo(format_plan(plan))
    else:
        click.echo()
        click.echo(format_result(result))

    if not result.success:
        raise CommandFailureError(rc=1)
