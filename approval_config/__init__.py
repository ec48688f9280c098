"""
approval_config -- YAML-configured approval routes.

Responsibility:
    Load route templates from YAML and expose them through a ``RouteTable``.
    ``load_default_route_table()`` reads the routes packaged with the
    project; deployments pass their own file to ``load_route_table()``.

Architecture position:
    Configuration -- sits above ``approval_kernel`` and below
    ``approval_services``.  The kernel MUST NEVER import from here.

Failure modes:
    - ``InvalidRouteConfigError`` -- malformed route file.
    - ``RouteNotFoundError`` -- lookup of a missing or inactive route.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import (
    DEFAULT_ROUTES_PATH,
    compute_checksum,
    load_routes,
    parse_routes,
)
from approval_config.route_table import RouteTable


def load_route_table(path: Path | str) -> RouteTable:
    return RouteTable(load_routes(path))


def load_default_route_table() -> RouteTable:
    return load_route_table(DEFAULT_ROUTES_PATH)


__all__ = [
    "DEFAULT_ROUTES_PATH",
    "RouteTable",
    "compute_checksum",
    "load_default_route_table",
    "load_route_table",
    "load_routes",
    "parse_routes",
]
