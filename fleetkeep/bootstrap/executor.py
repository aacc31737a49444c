"""Run a bootstrap plan step by step over SSH.

Steps run strictly in order and the first failure aborts the run. Nothing
is rolled back; steps are written so that re-running the plan converges.
"""

from __future__ import annotations

import logging
import time

from ..config import FleetConfig
from ..constants import COMMAND_TIMEOUT_S, LATEST_VERSION, PREFLIGHT_TIMEOUT_S
from ..exceptions import UnsupportedOsError
from ..models import InstallRecord, Node, NodeUpdate, OsFamily, ServiceStatus
from ..ssh import ssh_exec_node
from ..store import update_node
from ..utils import utc_now_iso
from .plan import build_bootstrap_plan
from .preflight import gather_node_info
from .types import (
    BootstrapPlan,
    BootstrapResult,
    BootstrapStep,
    ProgressCallback,
    StepResult,
    StepStatus,
)

logger = logging.getLogger("fleetkeep")

DRY_RUN_OUTPUT = "[DRY RUN] Commands not executed"
UNSUPPORTED_OS_ERROR = "Unsupported operating system. Only macOS and Linux are supported."


def execute_step(
    node: Node, step: BootstrapStep, *, config: FleetConfig, timeout_s: float
) -> StepResult:
    """Run every command of step in order, stopping at the first failure."""
    start = time.time()
    stdout = ""
    stderr = ""
    for command in step.commands:
        result = ssh_exec_node(
            node, command, timeout_s=timeout_s, known_hosts_path=config.known_hosts_path
        )
        stdout += result.stdout
        stderr += result.stderr
        if result.ok:
            continue
        if result.timed_out:
            error = "Command timed out"
        else:
            error = step.error_hint or f"Command failed with exit code {result.exit_code}"
        logger.debug("Step %s failed on %s: %s", step.id, node.name, error)
        return StepResult(
            step=step,
            status=StepStatus.FAILED,
            stdout=stdout,
            stderr=stderr,
            duration_s=time.time() - start,
            error=error,
        )
    return StepResult(
        step=step,
        status=StepStatus.SUCCESS,
        stdout=stdout,
        stderr=stderr,
        duration_s=time.time() - start,
    )


def execute_bootstrap_plan(
    plan: BootstrapPlan,
    *,
    config: FleetConfig,
    dry_run: bool = False,
    command_timeout_s: float = COMMAND_TIMEOUT_S,
    on_progress: ProgressCallback | None = None,
) -> BootstrapResult:
    """Execute plan against its node.

    On full success (and not dry_run) the inventory record is updated once
    with the detected os/arch, the install record and the service state.
    """

    def notify(step: BootstrapStep, status: StepStatus) -> None:
        if on_progress is not None:
            on_progress(step, status)

    start = time.time()
    results: list[StepResult] = []

    for step in plan.steps:
        if plan.will_skip(step):
            notify(step, StepStatus.SKIPPED)
            results.append(StepResult(step=step, status=StepStatus.SKIPPED))
            continue

        notify(step, StepStatus.RUNNING)
        if dry_run:
            results.append(StepResult(step=step, status=StepStatus.SUCCESS, stdout=DRY_RUN_OUTPUT))
            notify(step, StepStatus.SUCCESS)
            continue

        logger.debug("Running step %s on %s", step.id, plan.node.name)
        result = execute_step(plan.node, step, config=config, timeout_s=command_timeout_s)
        results.append(result)
        notify(step, result.status)
        if result.status == StepStatus.FAILED:
            return BootstrapResult(
                node=plan.node,
                success=False,
                step_results=tuple(results),
                total_duration_s=time.time() - start,
                error=result.error,
            )

    if not dry_run:
        now = utc_now_iso()
        update_node(
            config.nodes_path,
            plan.node.name,
            NodeUpdate(
                os=plan.node_info.os,
                arch=plan.node_info.arch,
                installed=InstallRecord(version=plan.target_version, installed_at=now),
                last_seen=now,
                service_status=ServiceStatus.RUNNING,
            ),
        )

    return BootstrapResult(
        node=plan.node,
        success=True,
        step_results=tuple(results),
        installed_version=plan.target_version,
        total_duration_s=time.time() - start,
    )


def bootstrap(
    config: FleetConfig,
    node: Node,
    *,
    version: str = LATEST_VERSION,
    force: bool = False,
    dry_run: bool = False,
    command_timeout_s: float = COMMAND_TIMEOUT_S,
    preflight_timeout_s: float = PREFLIGHT_TIMEOUT_S,
    on_progress: ProgressCallback | None = None,
) -> tuple[BootstrapPlan | None, BootstrapResult]:
    """Preflight, plan and execute in one go.

    Returns the plan (None when preflight or planning failed) together with
    the result, so callers can render either.
    """
    start = time.time()
    preflight = gather_node_info(
        node, known_hosts_path=config.known_hosts_path, timeout_s=preflight_timeout_s
    )
    if not preflight.success or preflight.node_info is None:
        return None, BootstrapResult(
            node=node,
            success=False,
            total_duration_s=time.time() - start,
            error=f"Preflight failed: {preflight.error}",
        )

    info = preflight.node_info
    if info.os == OsFamily.UNKNOWN:
        return None, BootstrapResult(
            node=node,
            success=False,
            total_duration_s=time.time() - start,
            error=UNSUPPORTED_OS_ERROR,
        )
    try:
        plan = build_bootstrap_plan(node, info, version=version, force=force)
    except UnsupportedOsError as e:
        return None, BootstrapResult(
            node=node, success=False, total_duration_s=time.time() - start, error=str(e)
        )

    result = execute_bootstrap_plan(
        plan,
        config=config,
        dry_run=dry_run,
        command_timeout_s=command_timeout_s,
        on_progress=on_progress,
    )
    return plan, result


def _status_icon(status: StepStatus) -> str:
    if status == StepStatus.SUCCESS:
        return "✓"
    if status == StepStatus.SKIPPED:
        return "○"
    return "✗"


def format_result(result: BootstrapResult) -> str:
    if result.success:
        lines = [f"✓ Bootstrap completed successfully for {result.node.name}"]
    else:
        lines = [f"✗ Bootstrap failed for {result.node.name}"]
    if result.installed_version:
        lines.append(f"  Installed version: {result.installed_version}")
    lines.append(f"  Total time: {result.total_duration_s:.1f}s")
    if result.error and not result.step_results:
        lines.append(f"  Error: {result.error}")
    lines.append("")

    for r in result.step_results:
        took = f" ({r.duration_s:.1f}s)" if r.duration_s > 0 else ""
        lines.append(f"  {_status_icon(r.status)} {r.step.description}{took}")
        if r.status == StepStatus.FAILED and r.error:
            lines.append(f"    Error: {r.error}")
            # last few lines of stderr are usually the useful ones
            for line in r.stderr.strip().splitlines()[-3:]:
                lines.append(f"    > {line}")
    return "\n".join(lines)
