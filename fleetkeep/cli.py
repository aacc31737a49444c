"""FleetKeep CLI using Click."""

from __future__ import annotations

import logging
import sys
from importlib.metadata import version

import click

from .cli_types import AddArgs, BootstrapArgs, GetArgs, ListArgs, PingArgs, RmArgs, StatusArgs
from .commands import cmd_add, cmd_bootstrap, cmd_get, cmd_list, cmd_ping, cmd_rm, cmd_status
from .config import FleetConfig, load_config
from .constants import (
    COMMAND_TIMEOUT_S,
    DEFAULT_PING_TIMEOUT_S,
    DEFAULT_SSH_PORT,
    DEFAULT_STATUS_TIMEOUT_S,
    DEFAULT_STATUS_WORKERS,
    LATEST_VERSION,
)
from .exceptions import CommandFailureError, FleetKeepError, UserError

# Module logger
logger = logging.getLogger("fleetkeep")


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)
    if any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    ):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)


def json_option(func):
    """Decorator adding --json to a command."""
    return click.option(
        "--json",
        "json_output",
        is_flag=True,
        help="Emit machine-readable JSON to stdout.",
    )(func)


def get_config(ctx: click.Context) -> FleetConfig:
    return ctx.obj["config"]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=version("fleetkeep"), prog_name="fleetkeep")
@click.option(
    "--debug",
    "-d",
    is_flag=True,
    help="Enable debug logging to stderr.",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """FleetKeep: manage a fleet of agent nodes over SSH.

    State lives in ~/.fleetkeep (override with FLEETKEEP_DIR).
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj.setdefault("config", load_config())
    setup_logging(debug=debug)
    logger.debug("Fleet directory: %s", ctx.obj["config"].fleet_dir)


@cli.command("add")
@click.argument("name")
@click.option("--host", required=True, help="Hostname or IP address of the node.")
@click.option("--user", required=True, help="SSH login user.")
@click.option(
    "--port",
    type=int,
    default=DEFAULT_SSH_PORT,
    show_default=True,
    help="SSH port.",
)
@click.option("--tags", help="Comma-separated tags, e.g. 'prod,gpu'.")
@json_option
@click.pass_context
def add(
    ctx: click.Context,
    name: str,
    host: str,
    user: str,
    port: int,
    tags: str | None,
    json_output: bool,
):
    """Add a node to the inventory (untrusted until pinged)."""
    args = AddArgs(name=name, host=host, user=user, port=port, tags=tags, json=json_output)
    cmd_add(args, get_config(ctx))


@cli.command("list")
@json_option
@click.pass_context
def list_(ctx: click.Context, json_output: bool):
    """List all nodes."""
    cmd_list(ListArgs(json=json_output), get_config(ctx))


@cli.command("get")
@click.argument("name")
@json_option
@click.pass_context
def get(ctx: click.Context, name: str, json_output: bool):
    """Show one node in detail."""
    cmd_get(GetArgs(name=name, json=json_output), get_config(ctx))


@cli.command("rm")
@click.argument("name")
@click.option("--force", is_flag=True, help="Confirm removal.")
@json_option
@click.pass_context
def rm(ctx: click.Context, name: str, force: bool, json_output: bool):
    """Remove a node from the inventory."""
    cmd_rm(RmArgs(name=name, force=force, json=json_output), get_config(ctx))


@cli.command("ping")
@click.argument("name")
@click.option(
    "--timeout",
    type=int,
    default=DEFAULT_PING_TIMEOUT_S,
    show_default=True,
    help="Timeout in seconds for the keyscan and the SSH command.",
)
@click.option(
    "--trust-host-key-change",
    is_flag=True,
    help="Accept and re-pin a changed host key.",
)
@json_option
@click.pass_context
def ping(
    ctx: click.Context,
    name: str,
    timeout: int,
    trust_host_key_change: bool,
    json_output: bool,
):
    """Verify the host key and test SSH connectivity.

    The first successful ping pins the host key and marks the node trusted.
    """
    args = PingArgs(
        name=name,
        timeout=timeout,
        trust_host_key_change=trust_host_key_change,
        json=json_output,
    )
    cmd_ping(args, get_config(ctx))


@cli.command("bootstrap")
@click.argument("name")
@click.option(
    "--version",
    "agent_version",
    default=LATEST_VERSION,
    show_default=True,
    help="Agent version to install.",
)
@click.option("--force", is_flag=True, help="Reinstall the agent and service even if present.")
@click.option("--dry-run", is_flag=True, help="Probe the node and print the plan only.")
@click.option(
    "--command-timeout",
    type=int,
    default=COMMAND_TIMEOUT_S,
    show_default=True,
    help="Timeout in seconds for each remote command.",
)
@json_option
@click.pass_context
def bootstrap(
    ctx: click.Context,
    name: str,
    agent_version: str,
    force: bool,
    dry_run: bool,
    command_timeout: int,
    json_output: bool,
):
    """Install Node.js, the agent and its service on a trusted node."""
    args = BootstrapArgs(
        name=name,
        version=agent_version,
        force=force,
        dry_run=dry_run,
        command_timeout=command_timeout,
        json=json_output,
    )
    cmd_bootstrap(args, get_config(ctx))


@cli.command("status")
@click.argument("name", required=False)
@click.option(
    "--timeout",
    type=int,
    default=DEFAULT_STATUS_TIMEOUT_S,
    show_default=True,
    help="Per-node probe timeout in seconds.",
)
@click.option(
    "--workers",
    type=int,
    default=DEFAULT_STATUS_WORKERS,
    show_default=True,
    help="Number of nodes probed in parallel.",
)
@json_option
@click.pass_context
def status(ctx: click.Context, name: str | None, timeout: int, workers: int, json_output: bool):
    """Check agent health on all nodes, or on NAME only."""
    args = StatusArgs(name=name, timeout=timeout, workers=workers, json=json_output)
    cmd_status(args, get_config(ctx))


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except CommandFailureError as e:
        # Command already printed its error message, just exit
        sys.exit(e.rc)
    except UserError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(e.rc)
    except FleetKeepError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        click.echo("ERROR: Interrupted", err=True)
        sys.exit(130)
