"""Pure domain types for the approval kernel (zero I/O)."""

from approval_kernel.domain.approval import (
    Approval,
    ApprovalPriority,
    ApprovalStatus,
    ApprovalStep,
    DispatchReport,
    HookOutcome,
    SideEffectFailure,
    StepDecision,
    StepSpec,
    StepStatus,
    TransitionResult,
    WorkflowKind,
)
from approval_kernel.domain.approval_route import ApprovalRoute, RouteStep
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.workflow_registry import (
    WorkflowRegistry,
    WorkflowRegistryEntry,
)

__all__ = [
    "Approval",
    "ApprovalPriority",
    "ApprovalStatus",
    "ApprovalStep",
    "DispatchReport",
    "HookOutcome",
    "SideEffectFailure",
    "StepDecision",
    "StepSpec",
    "StepStatus",
    "TransitionResult",
    "WorkflowKind",
    "ApprovalRoute",
    "RouteStep",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "WorkflowRegistry",
    "WorkflowRegistryEntry",
]
