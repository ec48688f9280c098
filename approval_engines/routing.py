"""
approval_engines.routing -- Expand a configured route into a concrete chain.

Responsibility:
    Turn an ``ApprovalRoute`` template plus a creation context into the
    ordered ``StepSpec`` list the state machine accepts: evaluate step
    conditions, resolve assignees, and renumber the surviving steps.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Guard expressions:
    ``<dotted.path> <op> <literal>`` with op one of ``<= >= != == < >``,
    or a bare ``<dotted.path>`` tested for truthiness.  The literal is
    coerced to the type of the resolved value.  An unresolvable path makes
    the guard false.

Failure modes:
    - InvalidChainError when no step survives, or a surviving step has no
      resolvable assignee.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from approval_engines.step_ledger import validate_ordering
from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import StepSpec
from approval_kernel.domain.approval_route import ApprovalRoute, RouteStep
from approval_kernel.exceptions import InvalidChainError

_OPERATORS = ("<=", ">=", "!=", "==", "<", ">")


@traced_engine("routing", "1.0", fingerprint_fields=("context",))
def expand_route(
    route: ApprovalRoute,
    context: Mapping[str, Any] | None = None,
) -> list[StepSpec]:
    """Expand ``route`` against ``context`` into a dense 1..N chain."""
    context = dict(context or {})
    specs: list[StepSpec] = []

    for template in sorted(route.steps, key=lambda s: s.step_order):
        if template.condition and not evaluate_guard(template.condition, context):
            continue
        assignee = _resolve_assignee(template, context)
        specs.append(
            StepSpec(
                step_order=len(specs) + 1,
                assigned_to_user_id=assignee,
                is_required=template.is_required,
            )
        )

    if not specs:
        raise InvalidChainError(
            f"Route {route.route_name!r} produced no steps for this context"
        )
    return list(validate_ordering(specs))


def _resolve_assignee(template: RouteStep, context: dict[str, Any]) -> str:
    if template.assigned_to_user_id:
        return template.assigned_to_user_id
    if template.assignee_path:
        value = resolve_field(template.assignee_path, context)
        if value is not None and value != "":
            return str(value)
        raise InvalidChainError(
            f"Route step {template.step_order}: no assignee at "
            f"{template.assignee_path!r}"
        )
    raise InvalidChainError(f"Route step {template.step_order} has no assignee")


def evaluate_guard(expression: str, context: Mapping[str, Any]) -> bool:
    """Evaluate a simple comparison guard against ``context``."""
    expression = expression.strip()

    for op in _OPERATORS:
        if op not in expression:
            continue
        field_path, expected_str = (part.strip() for part in expression.split(op, 1))

        actual = resolve_field(field_path, context)
        if actual is None:
            return False
        expected = _coerce_literal(expected_str, actual)
        if expected is None:
            return False

        try:
            if op == "<=":
                return actual <= expected
            if op == ">=":
                return actual >= expected
            if op == "!=":
                return actual != expected
            if op == "==":
                return actual == expected
            if op == "<":
                return actual < expected
            return actual > expected
        except TypeError:
            return False

    return bool(resolve_field(expression, context))


def _coerce_literal(literal: str, actual: Any) -> Any:
    literal = literal.strip("'\"")
    if isinstance(actual, bool):
        lowered = literal.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return None
    try:
        return type(actual)(literal)
    except (ValueError, TypeError):
        return None


def resolve_field(field_path: str, context: Mapping[str, Any]) -> Any:
    """``client.partner_id`` -> context["client"]["partner_id"]."""
    current: Any = context
    for part in field_path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current
