"""Selectors for the approval kernel (read side)."""

from approval_kernel.selectors.approval_selector import (
    ApprovalSelector,
    ApprovalView,
    UserApprovals,
    UserDirectory,
    UserInfo,
    WorkflowPayloadView,
)

__all__ = [
    "ApprovalSelector",
    "ApprovalView",
    "UserApprovals",
    "UserDirectory",
    "UserInfo",
    "WorkflowPayloadView",
]
