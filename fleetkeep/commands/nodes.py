"""FleetKeep inventory commands: add, list, get, rm."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import click

from ..audit import record_action
from ..exceptions import UserError
from ..host_keys import remove_host_key
from ..models import NewNode, Node
from ..store import add_node, get_node, list_nodes, remove_node
from ..utils import format_relative_time, parse_tags

if TYPE_CHECKING:
    from ..cli_types import AddArgs, GetArgs, ListArgs, RmArgs
    from ..config import FleetConfig

logger = logging.getLogger("fleetkeep")

LIST_COLUMNS = (("NAME", 16), ("HOST", 20), ("USER", 12), ("PORT", 6), ("TAGS", 15), ("TRUSTED", 8))


def _dump(value: object) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))


def node_not_found(name: str) -> UserError:
    return UserError(f"Node not found: {name}", rc=1)


def format_list_row(*cells: str) -> str:
    padded = [cell.ljust(width) for cell, (_, width) in zip(cells, LIST_COLUMNS, strict=False)]
    padded.extend(cells[len(LIST_COLUMNS) :])
    return " ".join(padded).rstrip()


def format_node_row(node: Node) -> str:
    return format_list_row(
        node.name,
        node.host,
        node.user,
        str(node.port),
        ",".join(node.tags) if node.tags else "-",
        "yes" if node.trusted else "no",
        format_relative_time(node.last_seen) if node.last_seen else "-",
    )


def cmd_add(args: AddArgs, config: FleetConfig) -> None:
    tags = parse_tags(args.tags)
    node = add_node(
        config.nodes_path,
        NewNode(name=args.name, host=args.host, user=args.user, port=args.port, tags=tags),
    )
    record_action(
        config.audit_log_path,
        "node.add",
        node.name,
        ok=True,
        host=node.host,
        port=node.port,
        user=node.user,
    )
    if args.json:
        _dump(node.to_dict())
        return
    click.echo(f"Added node: {node.name} ({node.address})")
    if node.tags:
        click.echo(f"  tags: {', '.join(node.tags)}")


def cmd_list(args: ListArgs, config: FleetConfig) -> None:
    nodes = list_nodes(config.nodes_path)
    if args.json:
        _dump({"nodes": [n.to_dict() for n in nodes]})
        return
    if not nodes:
        click.echo("No fleet nodes configured.")
        click.echo("Use 'fleetkeep add' to add a node.")
        return

    click.echo(format_list_row(*(title for title, _ in LIST_COLUMNS), "LAST SEEN"))
    click.echo("-" * 100)
    for node in nodes:
        click.echo(format_node_row(node))
    click.echo()
    click.echo(f"Total: {len(nodes)} node(s)")


def cmd_get(args: GetArgs, config: FleetConfig) -> None:
    node = get_node(config.nodes_path, args.name)
    if node is None:
        raise node_not_found(args.name)
    if args.json:
        _dump(node.to_dict())
        return

    click.echo(f"Name:     {node.name}")
    click.echo(f"ID:       {node.id}")
    click.echo(f"Host:     {node.host}")
    click.echo(f"Port:     {node.port}")
    click.echo(f"User:     {node.user}")
    click.echo(f"Trusted:  {'yes' if node.trusted else 'no'}")
    click.echo(f"Tags:     {', '.join(node.tags) if node.tags else '(none)'}")
    if node.host_key:
        click.echo(f"Host Key: {node.host_key[:50]}...")
    if node.os:
        arch = node.arch.value if node.arch else "unknown"
        click.echo(f"Platform: {node.os.value}/{arch}")
    if node.installed:
        click.echo("Installed:")
        click.echo(f"  Version:     {node.installed.version}")
        click.echo(f"  Installed:   {node.installed.installed_at}")
    if node.service_status:
        click.echo(f"Service:  {node.service_status.value}")
    if node.last_seen:
        click.echo(f"Last Seen: {node.last_seen}")


def cmd_rm(args: RmArgs, config: FleetConfig) -> None:
    """Remove a node; its pinned host keys go too unless another node shares them."""
    node = get_node(config.nodes_path, args.name)
    if node is None:
        raise node_not_found(args.name)
    if not args.force:
        raise UserError(f"Use --force to confirm removal of node '{node.name}'", rc=1)

    if not remove_node(config.nodes_path, node.name):
        raise node_not_found(args.name)

    shared = any(
        n.host == node.host and n.port == node.port for n in list_nodes(config.nodes_path)
    )
    keys_removed = False
    if not shared:
        keys_removed = remove_host_key(config.known_hosts_path, node.host, node.port)
        if keys_removed:
            logger.debug("Dropped pinned host keys for %s:%d", node.host, node.port)
    record_action(
        config.audit_log_path,
        "node.remove",
        node.name,
        ok=True,
        host=node.host,
        port=node.port,
        host_keys_removed=keys_removed,
    )

    if args.json:
        _dump({"removed": node.name, "success": True, "host_keys_removed": keys_removed})
    else:
        click.echo(f"Removed node: {node.name}")
