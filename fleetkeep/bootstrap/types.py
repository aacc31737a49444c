"""Types shared by the bootstrap phases (preflight, plan, execute)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from ..models import Arch, Node, OsFamily


@dataclass(frozen=True)
class NodeInfo:
    """Facts gathered from a node during preflight.

    ``has_service``/``service_running`` are None when the service manager
    was not queried (unknown OS), which is different from "not installed".
    """

    os: OsFamily
    arch: Arch
    home_dir: str
    has_node: bool
    has_npm: bool
    has_agent: bool
    node_version: str | None = None
    agent_version: str | None = None
    has_service: bool | None = None
    service_running: bool | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "os": self.os.value,
            "arch": self.arch.value,
            "home_dir": self.home_dir,
            "has_node": self.has_node,
            "node_version": self.node_version,
            "has_npm": self.has_npm,
            "has_agent": self.has_agent,
            "agent_version": self.agent_version,
            "has_service": self.has_service,
            "service_running": self.service_running,
        }


# Pure predicate over the fact sheet; must not do I/O.
SkipPredicate = Callable[[NodeInfo], bool]


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BootstrapStep:
    id: str
    description: str
    commands: tuple[str, ...]
    skippable: bool
    skip_if: SkipPredicate | None = None
    error_hint: str | None = None

    def should_skip(self, info: NodeInfo) -> bool:
        return self.skip_if is not None and self.skip_if(info)


@dataclass(frozen=True)
class BootstrapPlan:
    node: Node
    node_info: NodeInfo
    steps: tuple[BootstrapStep, ...]
    target_version: str
    force: bool

    def will_skip(self, step: BootstrapStep) -> bool:
        return step.should_skip(self.node_info)


@dataclass(frozen=True)
class StepResult:
    step: BootstrapStep
    status: StepStatus
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    error: str | None = None


@dataclass(frozen=True)
class BootstrapResult:
    node: Node
    success: bool
    step_results: tuple[StepResult, ...] = field(default_factory=tuple)
    installed_version: str | None = None
    total_duration_s: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "node": {"name": self.node.name, "host": self.node.host},
            "installed_version": self.installed_version,
            "total_duration_s": round(self.total_duration_s, 3),
            "error": self.error,
            "steps": [
                {
                    "id": r.step.id,
                    "description": r.step.description,
                    "status": r.status.value,
                    "duration_s": round(r.duration_s, 3),
                    "error": r.error,
                }
                for r in self.step_results
            ],
        }


ProgressCallback = Callable[[BootstrapStep, StepStatus], None]
