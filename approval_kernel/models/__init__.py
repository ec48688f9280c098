"""ORM models for the approval kernel."""

from approval_kernel.models.approval import ApprovalModel, ApprovalStepModel

__all__ = [
    "ApprovalModel",
    "ApprovalStepModel",
]
