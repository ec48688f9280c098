"""Caller-facing approval services: orchestration and post-commit side effects."""

from approval_services.approval_orchestrator import ApprovalOrchestrator
from approval_services.side_effects import (
    ApprovalNotifier,
    CacheInvalidator,
    DispatchReport,
    SideEffectDispatcher,
    SideEffectFailure,
)

__all__ = [
    "ApprovalOrchestrator",
    "ApprovalNotifier",
    "CacheInvalidator",
    "DispatchReport",
    "SideEffectDispatcher",
    "SideEffectFailure",
]
