"""
Route Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML route files and parses them into frozen ``ApprovalRoute`` /
``RouteStep`` values from ``approval_kernel.domain.approval_route``.

Architecture position
---------------------
**Config layer**.  Sits above the kernel; the kernel never imports it.

File format
-----------
::

    routes:
      - workflow_kind: VAULT_DOCUMENT
        route_name: standard
        is_default: true
        requires_all_steps: true
        steps:
          - step_order: 1
            assignee_path: document.owner_id
          - step_order: 2
            assigned_to_user_id: compliance-officer
            is_required: false
            condition: document.sensitivity >= 3

Failure modes
-------------
* Missing file -> ``FileNotFoundError`` propagates.
* Invalid YAML, unknown workflow kinds, missing keys, steps with no or
  two assignee sources, or two defaults for one kind
  -> ``InvalidRouteConfigError`` naming the file.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_kernel.domain.approval import WorkflowKind
from approval_kernel.domain.approval_route import ApprovalRoute, RouteStep
from approval_kernel.exceptions import InvalidRouteConfigError
from approval_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_ROUTES_PATH = Path(__file__).parent / "routes" / "default_routes.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_route_step(data: dict[str, Any]) -> RouteStep:
    """
    Parse one templated step.

    Raises:
        KeyError: ``step_order`` missing.
        ValueError: not a mapping, or zero or two assignee sources.
    """
    if not isinstance(data, dict):
        raise ValueError(f"step entry must be a mapping, got {data!r}")
    literal = data.get("assigned_to_user_id")
    path = data.get("assignee_path")
    if bool(literal) == bool(path):
        raise ValueError(
            f"step {data.get('step_order')}: exactly one of "
            "assigned_to_user_id / assignee_path is required"
        )
    return RouteStep(
        step_order=int(data["step_order"]),
        is_required=bool(data.get("is_required", True)),
        assigned_to_user_id=str(literal) if literal else None,
        assignee_path=path,
        condition=data.get("condition"),
        label=data.get("label"),
    )


def parse_route(data: dict[str, Any]) -> ApprovalRoute:
    """
    Parse an ``ApprovalRoute`` from a dict.

    Raises:
        KeyError: ``workflow_kind``, ``route_name`` or ``steps`` missing.
        ValueError: not a mapping, unknown workflow kind or malformed step.
    """
    if not isinstance(data, dict):
        raise ValueError(f"route entry must be a mapping, got {data!r}")
    if not isinstance(data["steps"], list):
        raise ValueError("'steps' must be a list")
    steps = tuple(parse_route_step(s) for s in data["steps"])
    return ApprovalRoute(
        workflow_kind=WorkflowKind(data["workflow_kind"]),
        route_name=str(data["route_name"]),
        steps=steps,
        requires_all_steps=bool(data.get("requires_all_steps", True)),
        is_default=bool(data.get("is_default", False)),
        is_active=bool(data.get("is_active", True)),
        description=data.get("description"),
    )


def parse_routes(data: dict[str, Any], source: str = "<memory>") -> list[ApprovalRoute]:
    """Parse the ``routes`` list of a loaded document."""
    raw = data.get("routes")
    if not isinstance(raw, list):
        raise InvalidRouteConfigError(source, "top-level 'routes' list is required")

    routes: list[ApprovalRoute] = []
    for index, item in enumerate(raw):
        try:
            routes.append(parse_route(item))
        except (KeyError, ValueError, TypeError) as exc:
            raise InvalidRouteConfigError(source, f"route #{index}: {exc}") from exc

    defaults: dict[WorkflowKind, str] = {}
    seen: set[tuple[WorkflowKind, str]] = set()
    for route in routes:
        key = (route.workflow_kind, route.route_name)
        if key in seen:
            raise InvalidRouteConfigError(
                source, f"duplicate route {route.workflow_kind.value}/{route.route_name}",
            )
        seen.add(key)
        if route.is_default and route.is_active:
            if route.workflow_kind in defaults:
                raise InvalidRouteConfigError(
                    source,
                    f"two default routes for {route.workflow_kind.value}: "
                    f"{defaults[route.workflow_kind]}, {route.route_name}",
                )
            defaults[route.workflow_kind] = route.route_name
    return routes


def load_routes(path: Path | str) -> list[ApprovalRoute]:
    """Load and validate a route file."""
    path = Path(path)
    try:
        data = load_yaml_file(path)
    except yaml.YAMLError as exc:
        raise InvalidRouteConfigError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidRouteConfigError(str(path), "document must be a mapping")

    routes = parse_routes(data, source=str(path))
    logger.info(
        "approval_routes_loaded",
        extra={
            "source": str(path),
            "route_count": len(routes),
            "checksum": compute_checksum(data),
        },
    )
    return routes


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a loaded route document."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
