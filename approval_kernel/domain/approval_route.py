"""Approval route value objects.

A route is a configured template of steps for one workflow kind.  Routes
are loaded from YAML by ``approval_config`` and expanded into concrete
``StepSpec`` chains by ``approval_engines.routing``.
"""

from __future__ import annotations

from dataclasses import dataclass

from approval_kernel.domain.approval import WorkflowKind


@dataclass(frozen=True)
class RouteStep:
    """One templated step.

    Exactly one of ``assigned_to_user_id`` (literal) or ``assignee_path``
    (dotted path into the creation context) names the assignee.  A step
    whose ``condition`` evaluates false is left out of the chain.
    """

    step_order: int
    is_required: bool = True
    assigned_to_user_id: str | None = None
    assignee_path: str | None = None
    condition: str | None = None
    label: str | None = None


@dataclass(frozen=True)
class ApprovalRoute:
    workflow_kind: WorkflowKind
    route_name: str
    steps: tuple[RouteStep, ...]
    requires_all_steps: bool = True
    is_default: bool = False
    is_active: bool = True
    description: str | None = None
