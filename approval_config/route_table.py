"""Lookup of configured approval routes by workflow kind and name."""

from __future__ import annotations

from collections.abc import Iterable

from approval_kernel.domain.approval import WorkflowKind
from approval_kernel.domain.approval_route import ApprovalRoute
from approval_kernel.exceptions import RouteNotFoundError


class RouteTable:
    """Active routes indexed by ``(workflow_kind, route_name)``.

    Inactive routes are kept out of the index entirely.
    """

    def __init__(self, routes: Iterable[ApprovalRoute]):
        self._routes: dict[tuple[WorkflowKind, str], ApprovalRoute] = {}
        self._defaults: dict[WorkflowKind, ApprovalRoute] = {}
        for route in routes:
            if not route.is_active:
                continue
            self._routes[(route.workflow_kind, route.route_name)] = route
            if route.is_default:
                self._defaults[route.workflow_kind] = route

    def get(
        self,
        workflow_kind: WorkflowKind | str,
        route_name: str | None = None,
    ) -> ApprovalRoute:
        """Named route, or the kind's default when ``route_name`` is None."""
        kind = WorkflowKind(workflow_kind)
        if route_name is None:
            route = self._defaults.get(kind)
        else:
            route = self._routes.get((kind, route_name))
        if route is None:
            raise RouteNotFoundError(kind.value, route_name)
        return route

    def for_kind(self, workflow_kind: WorkflowKind | str) -> list[ApprovalRoute]:
        kind = WorkflowKind(workflow_kind)
        return [r for (k, _), r in self._routes.items() if k is kind]

    def __len__(self) -> int:
        return len(self._routes)
