"""FleetKeep status command: probe node health concurrently."""

from __future__ import annotations

import json
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from typing import TYPE_CHECKING

import click

from ..constants import MIN_TIMEOUT_S
from ..diagnostics import NodeDiagnostics, run_node_diagnostics
from ..exceptions import FleetKeepError, UserError
from ..models import NodeUpdate
from ..store import get_node, list_nodes, update_node
from ..utils import format_elapsed_time

if TYPE_CHECKING:
    from ..cli_types import StatusArgs
    from ..config import FleetConfig
    from ..models import Node

logger = logging.getLogger("fleetkeep")

STATUS_COLUMNS = (16, 12, 10, 16, 12, 10)


def format_status_row(*cells: str) -> str:
    return " ".join(c.ljust(w) for c, w in zip(cells, STATUS_COLUMNS, strict=True)).rstrip()


def format_status_line(diag: NodeDiagnostics) -> str:
    return format_status_row(
        diag.name,
        "✓ online" if diag.online else "✗ offline",
        "running" if diag.service_running else diag.service_status.value,
        diag.version or "-",
        diag.uptime or "-",
        f"{diag.latency_ms}ms" if diag.latency_ms is not None else "-",
    )


def record_diagnostics(config: FleetConfig, diag: NodeDiagnostics) -> None:
    """Persist last contact and service state for an online node."""
    if not diag.online:
        return
    try:
        update_node(
            config.nodes_path,
            diag.name,
            NodeUpdate(last_seen=diag.last_seen, service_status=diag.service_status),
        )
    except FleetKeepError as e:
        logger.warning("Could not update %s in inventory: %s", diag.name, e)


def collect_diagnostics(
    nodes: list[Node], config: FleetConfig, *, timeout_s: float, workers: int, show_progress: bool
) -> list[NodeDiagnostics]:
    """Probe every node with at most `workers` probes in flight.

    Inventory updates happen here, on the calling thread, as results arrive.
    Results come back in the same order as nodes.
    """
    by_name: dict[str, NodeDiagnostics] = {}
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(nodes)))) as executor:
        future_to_node = {
            executor.submit(
                run_node_diagnostics,
                node,
                known_hosts_path=config.known_hosts_path,
                timeout_s=timeout_s,
            ): node
            for node in nodes
        }
        with (
            click.progressbar(
                length=len(nodes),
                label="Checking nodes",
                show_eta=True,
                show_percent=True,
                file=sys.stderr,
            )
            if show_progress
            else nullcontext()
        ) as bar:
            for future in as_completed(future_to_node):
                node = future_to_node[future]
                try:
                    diag = future.result()
                except Exception as e:
                    diag = NodeDiagnostics(
                        name=node.name,
                        host=node.host,
                        online=False,
                        last_seen=node.last_seen,
                        error=str(e),
                    )
                record_diagnostics(config, diag)
                by_name[node.name] = diag
                if show_progress:
                    bar.update(1)
    return [by_name[node.name] for node in nodes]


def cmd_status(args: StatusArgs, config: FleetConfig) -> None:
    if args.timeout < MIN_TIMEOUT_S:
        raise UserError(f"Timeout must be at least {MIN_TIMEOUT_S} second(s)")
    if args.workers < 1:
        raise UserError("--workers must be at least 1")

    if args.name:
        node = get_node(config.nodes_path, args.name)
        if node is None:
            raise UserError(f"Node not found: {args.name}", rc=1)
        nodes = [node]
    else:
        nodes = list_nodes(config.nodes_path)

    if not nodes:
        if args.json:
            print(json.dumps({"nodes": []}, indent=2, sort_keys=True))
        else:
            click.echo("No fleet nodes configured.")
            click.echo("Use 'fleetkeep add' to add a node.")
        return

    start_time = time.monotonic()
    results = collect_diagnostics(
        nodes,
        config,
        timeout_s=args.timeout,
        workers=args.workers,
        show_progress=not args.json and len(nodes) > 1,
    )

    if args.json:
        print(json.dumps({"nodes": [d.to_dict() for d in results]}, indent=2, sort_keys=True))
        return

    click.echo()
    click.echo(format_status_row("NAME", "STATUS", "SERVICE", "VERSION", "UPTIME", "LATENCY"))
    click.echo("-" * 85)
    for diag in results:
        click.echo(format_status_line(diag))
        if diag.error and not diag.online:
            click.echo(f"    Error: {diag.error}")

    total = len(results)
    online = sum(1 for d in results if d.online)
    running = sum(1 for d in results if d.service_running)
    duration = format_elapsed_time(time.monotonic() - start_time)
    click.echo()
    click.echo(
        f"Summary: {online}/{total} online, {running}/{total} running, duration={duration}"
    )
