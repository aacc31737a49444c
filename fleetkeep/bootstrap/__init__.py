"""Install and start the agent on a node: preflight, plan, execute."""

from __future__ import annotations

from .executor import bootstrap, execute_bootstrap_plan, format_result
from .plan import build_bootstrap_plan, format_plan, plan_to_dict
from .preflight import PreflightResult, gather_node_info
from .types import (
    BootstrapPlan,
    BootstrapResult,
    BootstrapStep,
    NodeInfo,
    StepResult,
    StepStatus,
)

__all__ = [
    "BootstrapPlan",
    "BootstrapResult",
    "BootstrapStep",
    "NodeInfo",
    "PreflightResult",
    "StepResult",
    "StepStatus",
    "bootstrap",
    "build_bootstrap_plan",
    "execute_bootstrap_plan",
    "format_plan",
    "format_result",
    "gather_node_info",
    "plan_to_dict",
]
