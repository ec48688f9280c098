"""Kernel services (flush-only; callers own the transaction)."""

from approval_kernel.services.approval_service import ApprovalService

__all__ = ["ApprovalService"]
