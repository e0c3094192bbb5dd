import pytest

from routewise.domain.models import Route, RouteHandler, RouteSource
from routewise.orchestrator.aggregate import (
    ROUTE_TYPES,
    aggregate,
    humanize_route_name,
    route_type,
    to_route,
)


def handler(**kw) -> RouteHandler:
    base = dict(path="/api/users", method="GET", file="/repo/app/api/users/route.ts", line=3, source=RouteSource.FILE_ROUTER_APP)
    base.update(kw)
    return RouteHandler(**base)


def test_every_source_maps_to_a_route_type():
    assert set(ROUTE_TYPES) == set(RouteSource)
    assert route_type(RouteSource.RPC) == "rpc"
    assert route_type(RouteSource.CONFIG_CMS) == "config-cms"


def test_unknown_source_raises():
    with pytest.raises(ValueError):
        route_type("graphql")  # type: ignore[arg-type]


def test_to_route_normalizes_path_and_names_route():
    r = to_route(handler(path="api//users/:id/", method="DELETE"))
    assert r.path == "/api/users/:id"
    assert r.name == "DELETE /api/users/:id"
    assert r.type == "file-router-app"
    assert r.file_path == "/repo/app/api/users/route.ts"
    assert r.headers is None and r.query is None and r.body is None


def test_to_route_carries_request_hints():
    r = to_route(
        handler(
            method="POST",
            source=RouteSource.CONTROLLER,
            headers={"Content-Type": "application/json"},
            query={"page": ""},
            body="{}",
        )
    )
    dumped = r.model_dump(by_alias=True, exclude_none=True)
    assert dumped == {
        "name": "POST /api/users",
        "path": "/api/users",
        "method": "POST",
        "filePath": "/repo/app/api/users/route.ts",
        "type": "controller",
        "headers": {"Content-Type": "application/json"},
        "query": {"page": ""},
        "body": "{}",
    }


def test_aggregate_keeps_extractor_order():
    a = [to_route(handler(path="/a"))]
    b = [to_route(handler(path="/b")), to_route(handler(path="/c"))]
    assert [r.path for r in aggregate(a, [], b)] == ["/a", "/b", "/c"]


@pytest.mark.parametrize(
    "method,path,type_,expected",
    [
        ("GET", "/api/users/:id", "file-router-app", "Get Users :id"),
        ("POST", "/api/orders", "file-router-pages", "Create Orders"),
        ("PATCH", "/cms/posts/:id", "config-cms", "Update Posts :id"),
        ("OPTIONS", "/api", "controller", "Handle"),
        ("GET", "/api/trpc/auth.getSession", "rpc", "Get Session"),
    ],
)
def test_humanize_route_name(method, path, type_, expected):
    r = Route(name=f"{method} {path}", path=path, method=method, filePath="/x.ts", type=type_)
    assert humanize_route_name(r) == expected
