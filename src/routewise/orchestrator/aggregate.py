from __future__ import annotations

import re
from typing import Iterable

from routewise.domain.models import Route, RouteHandler, RouteSource
from routewise.extractors.nextjs.paths import normalize_route_path

ROUTE_TYPES: dict[RouteSource, str] = {
    RouteSource.FILE_ROUTER_APP: "file-router-app",
    RouteSource.FILE_ROUTER_PAGES: "file-router-pages",
    RouteSource.RPC: "rpc",
    RouteSource.CONTROLLER: "controller",
    RouteSource.CONFIG_CMS: "config-cms",
}

_ACTIONS = {
    "GET": "Get",
    "POST": "Create",
    "PUT": "Update",
    "PATCH": "Update",
    "DELETE": "Delete",
}

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")


def route_type(source: RouteSource) -> str:
    try:
        return ROUTE_TYPES[source]
    except KeyError:
        raise ValueError(f"Unknown route source: {source!r}") from None


def route_name(method: str, path: str) -> str:
    return f"{method} {path}"


def to_route(handler: RouteHandler) -> Route:
    path = normalize_route_path(handler.path)
    return Route(
        name=route_name(handler.method, path),
        path=path,
        method=handler.method,
        file_path=handler.file,
        type=route_type(handler.source),
        headers=dict(handler.headers) if handler.headers else None,
        query=dict(handler.query) if handler.query else None,
        body=handler.body,
    )


def to_routes(handlers: Iterable[RouteHandler]) -> list[Route]:
    return [to_route(h) for h in handlers]


def aggregate(*results: Iterable[Route]) -> list[Route]:
    """Concatenate per-extractor results, keeping extractor order."""
    out: list[Route] = []
    for routes in results:
        out.extend(routes)
    return out


def _humanize_camel_case(text: str) -> str:
    spaced = _CAMEL_BOUNDARY.sub(r" \1", text).strip()
    return spaced[:1].upper() + spaced[1:]


def humanize_route_name(route: Route) -> str:
    """
    Display label for a route:
      rpc   /api/trpc/auth.getSession -> Get Session
      REST  GET /api/users/:id        -> Get Users :id
    """
    if route.type == "rpc":
        procedure = route.path.rsplit("/", 1)[-1]
        parts = [p for p in procedure.split(".") if p]
        return _humanize_camel_case(parts[-1]) if parts else procedure

    parts = [p for p in route.path.split("/") if p and p != "api"]
    resource = " ".join(w[:1].upper() + w[1:] for w in " ".join(parts[-2:]).split(" ") if w)
    action = _ACTIONS.get(route.method.upper(), "Handle")
    return f"{action} {resource}".strip()
