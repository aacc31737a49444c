"""Build the ordered list of steps that installs the agent on a node."""

from __future__ import annotations

import shlex
from typing import Any

from ..constants import (
    AGENT_CONFIG_DIR,
    AGENT_NPM_PACKAGE,
    LATEST_VERSION,
    NODESOURCE_MAJOR,
    PLAN_COMMAND_PREVIEW_LEN,
    SYSTEMD_UNIT_NAME,
)
from ..exceptions import UnsupportedOsError
from ..models import Node, OsFamily
from . import templates
from .types import BootstrapPlan, BootstrapStep, NodeInfo

AGENT_INSTALL_HINT = "Agent installation failed. Check npm configuration and network connectivity."


def _has_node(info: NodeInfo) -> bool:
    return info.has_node


def agent_install_command(version: str) -> str:
    if version == LATEST_VERSION:
        return f"npm install -g {AGENT_NPM_PACKAGE}"
    return f"npm install -g {shlex.quote(f'{AGENT_NPM_PACKAGE}@{version}')}"


def _install_agent_step(version: str, force: bool) -> BootstrapStep:
    def skip_if(info: NodeInfo) -> bool:
        if force or not info.has_agent:
            return False
        return version == LATEST_VERSION or info.agent_version == version

    suffix = "" if version == LATEST_VERSION else f" ({version})"
    return BootstrapStep(
        id="install-agent",
        description=f"Install {AGENT_NPM_PACKAGE}{suffix}",
        commands=(agent_install_command(version),),
        skippable=not force,
        skip_if=skip_if,
        error_hint=AGENT_INSTALL_HINT,
    )


def _config_dir_step() -> BootstrapStep:
    return BootstrapStep(
        id="create-config-dir",
        description="Create configuration directory",
        commands=(f"mkdir -p {AGENT_CONFIG_DIR}", f"chmod 700 {AGENT_CONFIG_DIR}"),
        skippable=False,
    )


def _service_skip(force: bool):
    def skip_if(info: NodeInfo) -> bool:
        return not force and info.has_service is True

    return skip_if


def _darwin_steps(info: NodeInfo, version: str, force: bool) -> list[BootstrapStep]:
    return [
        BootstrapStep(
            id="install-node",
            description="Install Node.js via Homebrew",
            commands=(
                "command -v brew >/dev/null 2>&1 || /bin/bash -c "
                '"$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"',
                "brew install node",
            ),
            skippable=True,
            skip_if=_has_node,
            error_hint="Node.js installation failed. Please install Node.js manually: brew install node",
        ),
        _install_agent_step(version, force),
        _config_dir_step(),
        BootstrapStep(
            id="install-service",
            description="Install launchd service",
            commands=tuple(templates.launchd_install_commands(info.home_dir)),
            skippable=not force,
            skip_if=_service_skip(force),
            error_hint="Failed to install launchd service. Check ~/Library/LaunchAgents permissions.",
        ),
        BootstrapStep(
            id="start-service",
            description="Start gateway service",
            commands=tuple(templates.launchd_start_commands()),
            skippable=False,
            error_hint="Failed to start the service. Check launchctl logs.",
        ),
        BootstrapStep(
            id="verify-service",
            description="Verify service is running",
            commands=tuple(templates.launchd_verify_commands()),
            skippable=False,
            error_hint=(
                f"Service verification failed. Check {templates.LAUNCHD_STDERR_LOG} "
                "for details."
            ),
        ),
    ]


def _linux_node_install_command() -> str:
    setup = f"setup_{NODESOURCE_MAJOR}.x"
    return (
        "if command -v apt-get >/dev/null 2>&1; then\n"
        f"  curl -fsSL https://deb.nodesource.com/{setup} | sudo -E bash - &&\n"
        "  sudo apt-get install -y nodejs\n"
        "elif command -v dnf >/dev/null 2>&1; then\n"
        f"  curl -fsSL https://rpm.nodesource.com/{setup} | sudo bash - &&\n"
        "  sudo dnf install -y nodejs\n"
        "elif command -v yum >/dev/null 2>&1; then\n"
        f"  curl -fsSL https://rpm.nodesource.com/{setup} | sudo bash - &&\n"
        "  sudo yum install -y nodejs\n"
        "else\n"
        "  echo 'Unsupported package manager' && exit 1\n"
        "fi"
    )


def _linux_steps(info: NodeInfo, version: str, force: bool) -> list[BootstrapStep]:
    journal_hint = f"Check journalctl --user -u {SYSTEMD_UNIT_NAME} for details."
    return [
        BootstrapStep(
            id="install-node",
            description="Install Node.js",
            commands=(_linux_node_install_command(),),
            skippable=True,
            skip_if=_has_node,
            error_hint="Node.js installation failed. Please install Node.js manually.",
        ),
        _install_agent_step(version, force),
        _config_dir_step(),
        BootstrapStep(
            id="install-service",
            description="Install systemd user service",
            commands=tuple(templates.systemd_install_commands(info.home_dir)),
            skippable=not force,
            skip_if=_service_skip(force),
            error_hint="Failed to install systemd service. Check ~/.config/systemd/user permissions.",
        ),
        BootstrapStep(
            id="start-service",
            description="Start gateway service",
            commands=tuple(templates.systemd_start_commands()),
            skippable=False,
            error_hint=f"Failed to start the service. {journal_hint}",
        ),
        BootstrapStep(
            id="verify-service",
            description="Verify service is running",
            commands=tuple(templates.systemd_verify_commands()),
            skippable=False,
            error_hint=f"Service verification failed. {journal_hint}",
        ),
    ]


def build_bootstrap_plan(
    node: Node,
    info: NodeInfo,
    *,
    version: str = LATEST_VERSION,
    force: bool = False,
) -> BootstrapPlan:
    """Build the install plan for node from its preflight facts.

    Raises:
        UnsupportedOsError: if the node is neither macOS nor Linux
    """
    if info.os == OsFamily.DARWIN:
        steps = _darwin_steps(info, version, force)
    elif info.os == OsFamily.LINUX:
        steps = _linux_steps(info, version, force)
    else:
        raise UnsupportedOsError(f"Unsupported operating system: {info.os.value}")
    return BootstrapPlan(
        node=node,
        node_info=info,
        steps=tuple(steps),
        target_version=version,
        force=force,
    )


def _preview(command: str) -> str:
    command = command.replace("\n", " ")
    if len(command) > PLAN_COMMAND_PREVIEW_LEN:
        return command[: PLAN_COMMAND_PREVIEW_LEN - 3] + "..."
    return command


def format_plan(plan: BootstrapPlan) -> str:
    lines = [
        f"Bootstrap plan for {plan.node.name} ({plan.node.host})",
        f"  OS: {plan.node_info.os.value}, Arch: {plan.node_info.arch.value}",
        f"  Target version: {plan.target_version}",
        f"  Force: {str(plan.force).lower()}",
        "",
        "Steps:",
    ]
    for i, step in enumerate(plan.steps, start=1):
        will_skip = plan.will_skip(step)
        lines.append(f"  {i}. {step.description}{' [SKIP]' if will_skip else ''}")
        if will_skip:
            continue
        for command in step.commands:
            lines.append(f"     $ {_preview(command)}")
    return "\n".join(lines)


def plan_to_dict(plan: BootstrapPlan) -> dict[str, Any]:
    """JSON view of the plan with each skip decision already resolved."""
    return {
        "node": {"name": plan.node.name, "host": plan.node.host},
        "node_info": plan.node_info.to_dict(),
        "target_version": plan.target_version,
        "force": plan.force,
        "steps": [
            {
                "id": step.id,
                "description": step.description,
                "skippable": step.skippable,
                "will_skip": plan.will_skip(step),
                "commands": list(step.commands),
            }
            for step in plan.steps
        ],
    }
