from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from tree_sitter import Node

from routewise.domain.models import HTTP_METHODS, Route, RouteHandler, RouteSource, ScanOptions
from routewise.extractors.nextjs.paths import normalize_route_path
from routewise.logs import LoggerLike, resolve_logger
from routewise.repo.framework_detector import FRAMEWORK_DEPENDENCIES, has_dependency
from routewise.repo.scanner import resolve_repo_root
from routewise.syntax.nodes import (
    call_arguments,
    callee_name,
    decorator_call,
    function_name,
    iter_descendants,
    line_of,
    named_children_of_type,
    object_property,
    string_value,
    unwrap_expression,
)
from routewise.syntax.project import Project, SourceFile

CONTROLLER_DECORATOR = "Controller"
BODY_DECORATOR = "Body"
QUERY_DECORATOR = "Query"
HEADERS_DECORATOR = "Headers"
HEADER_DECORATOR = "Header"

METHOD_DECORATORS: dict[str, tuple[str, ...]] = {
    "Get": ("GET",),
    "Post": ("POST",),
    "Put": ("PUT",),
    "Patch": ("PATCH",),
    "Delete": ("DELETE",),
    "Options": ("OPTIONS",),
    "Head": ("HEAD",),
    "All": HTTP_METHODS,
}

_CLASS_TYPES = ("class_declaration", "abstract_class_declaration", "class")


def has_nestjs(root: Path, logger: Optional[LoggerLike] = None) -> bool:
    return has_dependency(root, FRAMEWORK_DEPENDENCIES["nestjs"], logger)


def is_controller_file(sf: SourceFile) -> bool:
    return ".controller." in sf.path.name or b"@Controller" in sf.source


def path_argument(args: list[Node]) -> Optional[str]:
    """`'users'`, `['users', 'people']` (first wins) or `{ path: 'users' }`."""
    if not args:
        return None
    node = unwrap_expression(args[0])
    if node is None:
        return None
    if node.type == "array":
        for element in node.named_children:
            value = string_value(element)
            if value is not None:
                return value
        return None
    if node.type == "object":
        inner = object_property(node, "path")
        return path_argument([inner]) if inner is not None else None
    return string_value(node)


def join_route(*parts: Optional[str]) -> str:
    return normalize_route_path("/".join(p.strip("/") for p in parts if p and p.strip("/")))


def find_global_prefix(project: Project, logger: Optional[LoggerLike] = None) -> str:
    """First `app.setGlobalPrefix('api')` in the project, if any."""
    log = resolve_logger(logger)
    for sf in project:
        if b"setGlobalPrefix" not in sf.source:
            continue
        for call in project.find_calls(sf, lambda c: callee_name(c) == "setGlobalPrefix"):
            args = call_arguments(call)
            prefix = string_value(args[0]) if args else None
            if prefix is not None:
                log.debug("Found global prefix '%s' in %s", prefix, project.relative(sf))
                return prefix
    return ""


def _class_decorators(cls: Node) -> list[Node]:
    out = [c for c in cls.children if c.type == "decorator"]
    parent = cls.parent
    if parent is not None and parent.type == "export_statement":
        out = [c for c in parent.children if c.type == "decorator"] + out
    return out


def _member_decorators(member: Node) -> list[Node]:
    # the TS grammar puts member decorators before the method as siblings
    preceding: list[Node] = []
    prev = member.prev_named_sibling
    while prev is not None and prev.type == "decorator":
        preceding.append(prev)
        prev = prev.prev_named_sibling
    return list(reversed(preceding)) + [c for c in member.children if c.type == "decorator"]


def _parameter_decorators(method: Node) -> list[Node]:
    params = method.child_by_field_name("parameters")
    if params is None:
        return []
    out: list[Node] = []
    for p in params.named_children:
        out.extend(c for c in p.children if c.type == "decorator")
    return out


def controller_prefix(cls: Node) -> Optional[str]:
    """The controller's path prefix ('' for `@Controller()`), or None when `cls` is not a controller."""
    for d in _class_decorators(cls):
        name, args = decorator_call(d)
        if name == CONTROLLER_DECORATOR:
            return path_argument(args) or ""
    return None


def _method_handlers(
    sf: SourceFile,
    class_name: str,
    prefix: str,
    global_prefix: str,
    method: Node,
) -> list[RouteHandler]:
    verbs: tuple[str, ...] = ()
    sub_path: Optional[str] = None
    headers: dict[str, str] = {}
    for d in _member_decorators(method):
        name, args = decorator_call(d)
        if name in METHOD_DECORATORS and not verbs:
            verbs = METHOD_DECORATORS[name]
            sub_path = path_argument(args)
        elif name == HEADER_DECORATOR and len(args) >= 2:
            key, value = string_value(args[0]), string_value(args[1])
            if key is not None and value is not None:
                headers[key] = value
    if not verbs:
        return []

    query: dict[str, str] = {}
    body_fields: list[str] = []
    has_body = False
    for d in _parameter_decorators(method):
        name, args = decorator_call(d)
        key = string_value(args[0]) if args else None
        if name == QUERY_DECORATOR and key:
            query[key] = ""
        elif name == HEADERS_DECORATOR and key:
            headers.setdefault(key, "")
        elif name == BODY_DECORATOR:
            has_body = True
            if key:
                body_fields.append(key)

    body = None
    if has_body:
        body = json.dumps({f: "" for f in body_fields}, indent=2) if body_fields else "{}"
        headers.setdefault("Content-Type", "application/json")

    path = join_route(global_prefix, prefix, sub_path)
    handler_name = f"{class_name}.{function_name(method) or 'handler'}"
    return [
        RouteHandler(
            path=path,
            method=verb,
            file=str(sf.path),
            line=line_of(method),
            source=RouteSource.CONTROLLER,
            handler_name=handler_name,
            headers=dict(headers) if headers else None,
            query=dict(query) if query else None,
            body=body,
        )
        for verb in verbs
    ]


def extract_controller_file(sf: SourceFile, global_prefix: str = "", logger: Optional[LoggerLike] = None) -> list[RouteHandler]:
    log = resolve_logger(logger)
    out: list[RouteHandler] = []
    for cls in iter_descendants(sf.root):
        if cls.type not in _CLASS_TYPES:
            continue
        prefix = controller_prefix(cls)
        if prefix is None:
            continue
        class_name = function_name(cls) or "AnonymousController"
        log.debug("Found controller %s with prefix '%s'", class_name, prefix)
        body = cls.child_by_field_name("body")
        if body is None:
            continue
        for method in named_children_of_type(body, "method_definition"):
            out.extend(_method_handlers(sf, class_name, prefix, global_prefix, method))
    return out


def extract_nestjs_handlers(
    project: Project,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    log.debug("Parsing NestJS controllers")
    global_prefix = find_global_prefix(project, log)
    out: list[RouteHandler] = []
    for sf in project:
        if not is_controller_file(sf):
            continue
        try:
            out.extend(extract_controller_file(sf, global_prefix, log))
        except Exception:
            log.exception("Failed to parse controller file: %s", project.relative(sf))
    log.info("Parsed %d NestJS routes", len(out))
    return out


def parse_nestjs_routes(
    root: Path,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[Route]:
    from routewise.orchestrator.aggregate import to_routes

    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    root = resolve_repo_root(root)
    if not options.force and not has_nestjs(root, log):
        return []
    project = Project.load(root, max_files=options.max_files, logger=log)
    return to_routes(extract_nestjs_handlers(project, options, log))
