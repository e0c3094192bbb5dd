from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from tree_sitter import Node

from routewise.domain.models import HTTP_METHODS, MethodDetector, Route, RouteHandler, RouteSource, ScanOptions
from routewise.extractors.nextjs.paths import (
    app_route_path,
    convert_dynamic_segments,
    extract_dynamic_segments,
    is_app_router_file,
    is_pages_router_file,
    pages_route_path,
)
from routewise.logs import LoggerLike, resolve_logger
from routewise.repo.framework_detector import FRAMEWORK_DEPENDENCIES, has_dependency
from routewise.repo.scanner import resolve_repo_root
from routewise.syntax.nodes import (
    call_arguments,
    call_function,
    first_child_of_type,
    function_name,
    iter_descendants,
    line_of,
    member_object,
    member_property_name,
    named_children_of_type,
    node_text,
    string_value,
    unwrap_expression,
)
from routewise.syntax.project import Project, SourceFile

MIDDLEWARE_PATTERN = re.compile(r"middleware|NextRequest|authenticate|authorize|auth\(")

_EQUALITY_OPERATORS = frozenset({"===", "==", "!==", "!="})


def has_nextjs(root: Path, logger: Optional[LoggerLike] = None) -> bool:
    return has_dependency(root, FRAMEWORK_DEPENDENCIES["nextjs"], logger)


def has_middleware(sf: SourceFile) -> bool:
    return MIDDLEWARE_PATTERN.search(sf.text) is not None


# ----------------------------
# App Router
# ----------------------------


def collect_http_method_handlers(sf: SourceFile) -> dict[str, Node]:
    """
    Exported handlers named after HTTP verbs, in source order:
      export async function GET() {}
      export const POST = async () => {}
      export const PUT = withAuth(handler)
      export { handler as DELETE }
    """
    handlers: dict[str, Node] = {}
    for stmt in named_children_of_type(sf.root, "export_statement"):
        if first_child_of_type(stmt, "default") is not None:
            continue

        decl = stmt.child_by_field_name("declaration")
        if decl is not None:
            if decl.type in ("function_declaration", "generator_function_declaration"):
                name = function_name(decl)
                if name in HTTP_METHODS:
                    handlers.setdefault(name, decl)
            elif decl.type in ("lexical_declaration", "variable_declaration"):
                for d in named_children_of_type(decl, "variable_declarator"):
                    name = node_text(d.child_by_field_name("name"))
                    value = unwrap_expression(d.child_by_field_name("value"))
                    if name in HTTP_METHODS and value is not None:
                        handlers.setdefault(name, value)
            continue

        clause = first_child_of_type(stmt, "export_clause")
        if clause is None:
            continue
        for specifier in named_children_of_type(clause, "export_specifier"):
            alias = specifier.child_by_field_name("alias")
            exported = node_text(alias if alias is not None else specifier.child_by_field_name("name"))
            if exported in HTTP_METHODS:
                handlers.setdefault(exported, specifier)
    return handlers


def extract_app_routes(project: Project, logger: Optional[LoggerLike] = None) -> list[RouteHandler]:
    log = resolve_logger(logger)
    log.debug("Parsing Next.js App Router routes")
    out: list[RouteHandler] = []
    for sf in project:
        rel = project.relative(sf)
        if not is_app_router_file(rel):
            continue
        try:
            out.extend(_app_route_file(sf, rel, log))
        except Exception:
            log.exception("Failed to parse route file: %s", rel)
    log.info("Parsed %d App Router routes", len(out))
    return out


def _app_route_file(sf: SourceFile, rel: str, log: LoggerLike) -> list[RouteHandler]:
    raw_path = app_route_path(rel)
    if raw_path is None:
        log.debug("Skipping %s: not routable", rel)
        return []

    handlers = collect_http_method_handlers(sf)
    if not handlers:
        log.debug("No exported HTTP handlers in %s", rel)
        return []

    path = convert_dynamic_segments(raw_path)
    segments = tuple(extract_dynamic_segments(raw_path))
    middleware = has_middleware(sf)
    out = []
    for method, node in handlers.items():
        log.debug("Found exported %s handler in %s", method, rel)
        out.append(
            RouteHandler(
                path=path,
                method=method,
                file=str(sf.path),
                line=line_of(node),
                source=RouteSource.FILE_ROUTER_APP,
                handler_name=method,
                dynamic_segments=segments,
                uses_middleware=middleware,
            )
        )
    return out


# ----------------------------
# Pages Router
# ----------------------------


def detect_pages_router_handler(project: Project, sf: SourceFile) -> Optional[Node]:
    """The default export (or a named `handler` export) of a pages/api file."""
    for stmt in named_children_of_type(sf.root, "export_statement"):
        if first_child_of_type(stmt, "default") is None:
            continue
        decl = stmt.child_by_field_name("declaration")
        if decl is not None:
            return decl
        value = unwrap_expression(stmt.child_by_field_name("value"))
        if value is not None and value.type == "identifier":
            for d in project.module_declarations(sf, node_text(value)):
                return d.value if d.value is not None else d.node
        if value is not None:
            return value

    for d in project.exported_declarations(sf, "handler"):
        return d.value if d.value is not None else d.node
    return None


def _is_method_access(node: Optional[Node]) -> bool:
    node = unwrap_expression(node)
    return node is not None and node.type == "member_expression" and member_property_name(node) == "method"


def _literal_method(node: Optional[Node]) -> Optional[str]:
    value = string_value(node)
    if value is None:
        return None
    value = value.upper()
    return value if value in HTTP_METHODS else None


def method_comparisons(scope: Node) -> list[str]:
    """
    HTTP verbs compared against `<req>.method` inside `scope`:
      req.method === 'POST'      'PUT' !== request.method
      switch (req.method) { case 'DELETE': ... }
      ['GET', 'HEAD'].includes(req.method)
    """
    found: list[str] = []

    def add(method: Optional[str]) -> None:
        if method and method not in found:
            found.append(method)

    for node in iter_descendants(scope):
        if node.type == "binary_expression":
            op = node.child_by_field_name("operator")
            if op is None or op.type not in _EQUALITY_OPERATORS:
                continue
            left = node.child_by_field_name("left")
            right = node.child_by_field_name("right")
            if _is_method_access(left):
                add(_literal_method(right))
            elif _is_method_access(right):
                add(_literal_method(left))

        elif node.type == "switch_statement":
            value = node.child_by_field_name("value")
            if value is None or not any(_is_method_access(n) for n in iter_descendants(value)):
                continue
            body = node.child_by_field_name("body")
            for case in named_children_of_type(body, "switch_case") if body is not None else []:
                add(_literal_method(case.child_by_field_name("value")))

        elif node.type == "call_expression":
            fn = call_function(node)
            if fn is None or member_property_name(fn) != "includes":
                continue
            args = call_arguments(node)
            target = unwrap_expression(member_object(fn))
            if not args or not _is_method_access(args[0]) or target is None or target.type != "array":
                continue
            for element in target.named_children:
                add(_literal_method(element))
    return found


def detect_pages_router_methods(sf: SourceFile, handler: Optional[Node]) -> list[str]:
    """
    Verbs the handler checks for, falling back to the whole file (wrapped
    handlers like `export default withAuth(handler)`), then to GET.
    """
    methods = method_comparisons(handler) if handler is not None else []
    if not methods:
        methods = method_comparisons(sf.root)
    return methods or ["GET"]


def extract_pages_routes(
    project: Project,
    method_detector: Optional[MethodDetector] = None,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    log = resolve_logger(logger)
    detect = method_detector or detect_pages_router_methods
    log.debug("Parsing Next.js Pages Router routes")
    out: list[RouteHandler] = []
    for sf in project:
        rel = project.relative(sf)
        if not is_pages_router_file(rel):
            continue
        try:
            out.extend(_pages_route_file(project, sf, rel, detect, log))
        except Exception:
            log.exception("Failed to parse page route file: %s", rel)
    log.info("Parsed %d Pages Router routes", len(out))
    return out


def _pages_route_file(
    project: Project,
    sf: SourceFile,
    rel: str,
    detect: MethodDetector,
    log: LoggerLike,
) -> list[RouteHandler]:
    raw_path = pages_route_path(rel)
    if raw_path is None:
        log.debug("Skipping reserved file %s", rel)
        return []

    handler = detect_pages_router_handler(project, sf)
    if handler is None:
        log.debug("No handler export in %s", rel)
        return []

    path = convert_dynamic_segments(raw_path)
    segments = tuple(extract_dynamic_segments(raw_path))
    middleware = has_middleware(sf)
    name = function_name(handler) if handler.type in ("function_declaration", "function_expression") else None
    out = []
    for method in detect(sf, handler):
        log.debug("Detected %s method in %s", method, rel)
        out.append(
            RouteHandler(
                path=path,
                method=method,
                file=str(sf.path),
                line=line_of(handler),
                source=RouteSource.FILE_ROUTER_PAGES,
                handler_name=name or "handler",
                dynamic_segments=segments,
                uses_middleware=middleware,
            )
        )
    return out


# ----------------------------
# Entry points
# ----------------------------


def extract_nextjs_handlers(
    project: Project,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    return extract_app_routes(project, log) + extract_pages_routes(project, options.pages_method_detector, log)


def parse_nextjs_routes(
    root: Path,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[Route]:
    from routewise.orchestrator.aggregate import to_routes

    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    root = resolve_repo_root(root)
    if not options.force and not has_nextjs(root, log):
        return []
    project = Project.load(root, max_files=options.max_files, logger=log)
    return to_routes(extract_nextjs_handlers(project, options, log))
