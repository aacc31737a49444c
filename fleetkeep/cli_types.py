"""Type definitions for CLI command arguments."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AddArgs:
    """Arguments for add command."""

    name: str
    host: str
    user: str
    port: int
    tags: str | None
    json: bool


@dataclass
class ListArgs:
    """Arguments for list command."""

    json: bool


@dataclass
class GetArgs:
    """Arguments for get command."""

    name: str
    json: bool


@dataclass
class RmArgs:
    """Arguments for rm command."""

    name: str
    force: bool
    json: bool


@dataclass
class PingArgs:
    """Arguments for ping command."""

    name: str
    timeout: int
    trust_host_key_change: bool
    json: bool


@dataclass
class BootstrapArgs:
    """Arguments for bootstrap command."""

    name: str
    version: str
    force: bool
    dry_run: bool
    command_timeout: int
    json: bool


@dataclass
class StatusArgs:
    """Arguments for status command."""

    name: str | None
    timeout: int
    workers: int
    json: bool
