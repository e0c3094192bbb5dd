"""
tRPC procedure extraction.

Two passes over the project:

  1. string-literal procedures (v9 style)
       createRouter().query('list', {...}).mutation('create', {...})
  2. object-literal procedures (v10+ style), with router composition
       export const userRouter = createTRPCRouter({ byId: publicProcedure.query(...) })
       export const appRouter = createTRPCRouter({ user: userRouter })

Paths are `<base>/<router path>.<procedure>`; queries are GET and mutations
POST. Subscriptions have no plain HTTP form and are skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from tree_sitter import Node

from routewise.domain.models import ProcedureClassifier, Route, RouteHandler, RouteSource, ScanOptions
from routewise.extractors.trpc.detection import (
    RouterCallSite,
    RouterDetectionConfig,
    build_router_detection_config,
    call_key,
    collect_router_call_sites,
    get_router_reference_name,
    infer_router_name,
    is_router_factory_call,
    is_router_reference,
    normalize_router_name,
)
from routewise.logs import LoggerLike, resolve_logger
from routewise.repo.framework_detector import FRAMEWORK_DEPENDENCIES, has_dependency
from routewise.repo.scanner import resolve_repo_root
from routewise.syntax.nodes import (
    FUNCTION_TYPES,
    ancestors,
    call_arguments,
    call_function,
    iter_descendants,
    line_of,
    member_object,
    member_property_name,
    node_text,
    object_property,
    pair_key,
    string_value,
    unwrap_expression,
)
from routewise.syntax.project import Project, SourceFile
from routewise.syntax.resolver import SymbolResolver

DEFAULT_BASE_PATH = "/api/trpc"

PROCEDURE_KINDS = ("query", "mutation", "subscription")

MUTATION_LIKE_NAMES = re.compile(r"^(create|update|delete|set)", re.IGNORECASE)
QUERY_LIKE_NAMES = re.compile(r"^(get|list|fetch)", re.IGNORECASE)

_PROCEDURE_NAME = re.compile(r"^[\w$.\-]+$")


def has_trpc(root: Path, logger: Optional[LoggerLike] = None) -> bool:
    return has_dependency(root, FRAMEWORK_DEPENDENCIES["trpc"], logger)


def default_procedure_classifier(kind: Optional[str], name: str) -> Optional[str]:
    """
    HTTP method for a procedure, or None to skip it. The call kind wins;
    with no kind (an unresolved reference) the name decides.
    """
    if kind == "query":
        return "GET"
    if kind == "mutation":
        return "POST"
    if kind is not None:
        return None
    if MUTATION_LIKE_NAMES.match(name):
        return "POST"
    if QUERY_LIKE_NAMES.match(name):
        return "GET"
    return None


def procedure_kind(node: Optional[Node]) -> Optional[str]:
    """`publicProcedure.input(x).query(fn)` -> "query"."""
    node = unwrap_expression(node)
    if node is None or node.type != "call_expression":
        return None
    fn = call_function(node)
    prop = member_property_name(fn) if fn is not None else None
    return prop if prop in PROCEDURE_KINDS else None


def join_procedure_path(*parts: str) -> str:
    return ".".join(p for p in parts if p)


def _on_builder_chain(call: Node) -> bool:
    """True when the receiver of `call` bottoms out in a call: `createRouter().query(...)`."""
    node = member_object(call_function(call))
    while node is not None:
        node = unwrap_expression(node)
        if node is None:
            return False
        if node.type == "call_expression":
            return True
        if node.type != "member_expression":
            return False
        node = member_object(node)
    return False


def _is_string_named(call: Node) -> bool:
    args = call_arguments(call)
    return bool(args) and string_value(args[0]) is not None


@dataclass
class _Procedure:
    name: str  # dotted, relative to the owning router
    kind: Optional[str]
    line: int


@dataclass
class _RouterBody:
    site: RouterCallSite
    procedures: list[_Procedure] = field(default_factory=list)
    mounts: list[tuple[str, RouterCallSite]] = field(default_factory=list)


class TRPCExtractor:
    def __init__(
        self,
        project: Project,
        detection: RouterDetectionConfig,
        base_path: str = DEFAULT_BASE_PATH,
        classifier: Optional[ProcedureClassifier] = None,
        logger: Optional[LoggerLike] = None,
    ):
        self.project = project
        self.detection = detection
        self.base_path = "/" + base_path.strip("/") if base_path.strip("/") else ""
        self.classifier = classifier or default_procedure_classifier
        self.logger = resolve_logger(logger)
        self.resolver = SymbolResolver(project, self.logger)
        self.sites: dict[tuple[str, int, int], RouterCallSite] = {}
        self.bodies: dict[tuple[str, int, int], _RouterBody] = {}

    def extract(self) -> list[RouteHandler]:
        self.logger.debug("Parsing tRPC routers")
        for sf in list(self.project):
            for site in collect_router_call_sites(sf, self.detection, self.logger):
                self.sites[site.key] = site

        out: list[RouteHandler] = []
        for sf in list(self.project):
            try:
                out.extend(self._string_procedures(sf))
            except Exception:
                self.logger.exception("Failed to parse tRPC router file: %s", self.project.relative(sf))

        for site in list(self.sites.values()):
            try:
                self._body(site)
            except Exception:
                self.logger.exception(
                    "Failed to read router body '%s' in %s", site.name, self.project.relative(site.file)
                )
        out.extend(self._compose())

        deduped: list[RouteHandler] = []
        seen: set[tuple[str, str, str]] = set()
        for h in out:
            k = (h.method, h.path, h.file)
            if k in seen:
                continue
            seen.add(k)
            deduped.append(h)
        self.logger.info("Parsed %d tRPC procedures", len(deduped))
        return deduped

    def _handler(self, full_name: str, method: str, sf: SourceFile, line: int, kind: Optional[str]) -> RouteHandler:
        return RouteHandler(
            path=f"{self.base_path}/{full_name}",
            method=method,
            file=str(sf.path),
            line=line,
            source=RouteSource.RPC,
            handler_name=full_name,
            body="{}" if kind == "mutation" else None,
            headers={"Content-Type": "application/json"} if kind == "mutation" else None,
        )

    # ---- string-literal pass ----

    def _string_procedures(self, sf: SourceFile) -> list[RouteHandler]:
        stem = sf.path.name.rsplit(".", 1)[0]
        file_router = normalize_router_name(stem) if stem.lower().endswith(".router") else None

        out: list[RouteHandler] = []
        for node in iter_descendants(sf.root):
            if node.type != "call_expression":
                continue
            fn = call_function(node)
            kind = member_property_name(fn) if fn is not None else None
            if kind not in ("query", "mutation"):
                continue
            args = call_arguments(node)
            name = string_value(args[0]) if args else None
            if not name or not _PROCEDURE_NAME.match(name):
                continue

            owner = self._owning_site(sf, node)
            if owner is not None and not (owner.name.startswith("router@") and file_router):
                prefix = normalize_router_name(owner.name)
            elif owner is not None or _on_builder_chain(node):
                prefix = file_router
            else:
                # `pool.query('orders')` in a *.router.ts file is not a procedure
                prefix = None
            if prefix is None:
                self.logger.debug("No router owns %s('%s') at line %d", kind, name, line_of(node))
                continue
            method = self.classifier(kind, name)
            if method is None:
                continue
            full = join_procedure_path(prefix, name)
            # a chained call starts where the chain starts
            line = line_of(fn.child_by_field_name("property") or node)
            self.logger.debug("Found %s procedure %s in %s", kind, full, self.project.relative(sf))
            out.append(self._handler(full, method, sf, line, kind))
        return out

    def _owning_site(self, sf: SourceFile, call: Node) -> Optional[RouterCallSite]:
        # the builder chain: createRouter().query('a').mutation('b')
        node = member_object(call_function(call))
        while node is not None:
            node = unwrap_expression(node)
            if node is None:
                break
            if node.type == "call_expression":
                site = self.sites.get(call_key(sf, node))
                if site is not None:
                    return site
                node = call_function(node)
            elif node.type == "member_expression":
                node = member_object(node)
            elif node.type == "identifier":
                for decl in self.project.module_declarations(sf, node_text(node)):
                    value = unwrap_expression(decl.value)
                    if value is not None and value.type == "call_expression":
                        site = self.sites.get(call_key(sf, value))
                        if site is not None:
                            return site
                break
            else:
                break

        # an enclosing router call, as long as no function body sits in between
        for a in ancestors(call):
            if a.type in FUNCTION_TYPES:
                break
            if a.type == "call_expression":
                site = self.sites.get(call_key(sf, a))
                if site is not None:
                    return site
        return None

    # ---- object-literal pass ----

    def _site_for(self, sf: SourceFile, call: Node) -> Optional[RouterCallSite]:
        key = call_key(sf, call)
        site = self.sites.get(key)
        if site is None and is_router_factory_call(call, self.detection):
            # routers in files loaded on demand during resolution
            site = RouterCallSite(call=call, name=infer_router_name(call) or f"router@{line_of(call)}", file=sf)
            self.sites[key] = site
        return site

    def _body(self, site: RouterCallSite) -> Optional[_RouterBody]:
        if site.key in self.bodies:
            return self.bodies[site.key]
        args = call_arguments(site.call)
        if not args:
            return None
        literal = self.resolver.resolve_object(site.file, args[0])
        if literal is None:
            return None
        body = _RouterBody(site)
        self.bodies[site.key] = body
        self._collect(body, literal.file, literal.node, "", set())
        self.logger.debug(
            "Router '%s': %d procedures, %d mounted routers",
            site.name,
            len(body.procedures),
            len(body.mounts),
        )
        return body

    def _collect(self, body: _RouterBody, sf: SourceFile, obj: Node, prefix: str, seen: set[tuple[str, int, int]]) -> None:
        key = (str(sf.path), obj.start_byte, obj.end_byte)
        if key in seen:
            return
        seen.add(key)

        for child in obj.named_children:
            if child.type == "spread_element":
                inner = next((c for c in child.named_children if c.type != "comment"), None)
                spread = self.resolver.resolve_object(sf, inner) if inner is not None else None
                if spread is not None:
                    self._collect(body, spread.file, spread.node, prefix, seen)
                continue
            if child.type == "pair":
                name = pair_key(child)
                value = child.child_by_field_name("value")
            elif child.type == "shorthand_property_identifier":
                name = node_text(child)
                value = child
            else:
                continue
            if not name or value is None:
                continue
            self._entry(body, sf, join_procedure_path(prefix, name), value, line_of(child), seen)

    def _entry(
        self,
        body: _RouterBody,
        sf: SourceFile,
        name: str,
        value: Node,
        line: int,
        seen: set[tuple[str, int, int]],
    ) -> None:
        value = unwrap_expression(value)
        if value is None:
            return

        kind = procedure_kind(value)
        if kind is not None:
            # `.query('list', {...})` is named by its string and counted by the string-literal pass
            if not _is_string_named(value):
                body.procedures.append(_Procedure(name, kind, line))
            return

        if value.type == "call_expression":
            site = self._site_for(sf, value)
            if site is not None:
                body.mounts.append((name, site))
            return

        if value.type == "object":
            self._collect(body, sf, value, name, seen)
            return

        if value.type not in ("identifier", "shorthand_property_identifier", "member_expression"):
            return

        for vf, v in self._reference_values(sf, value):
            v = unwrap_expression(v)
            if v is None:
                continue
            kind = procedure_kind(v)
            if kind is not None:
                body.procedures.append(_Procedure(name, kind, line))
                return
            if v.type == "call_expression":
                site = self._site_for(vf, v)
                if site is not None:
                    body.mounts.append((name, site))
                    return
            if v.type == "object":
                self._collect(body, vf, v, name, seen)
                return

        if is_router_reference(value, self.detection):
            self.logger.debug("Could not resolve router reference %s", get_router_reference_name(value))
            return
        # unresolved procedure reference; let the classifier decide from the name
        body.procedures.append(_Procedure(name, None, line))

    def _reference_values(self, sf: SourceFile, node: Node) -> list[tuple[SourceFile, Node]]:
        if node.type in ("identifier", "shorthand_property_identifier"):
            out: list[tuple[SourceFile, Node]] = []
            for decl in self.resolver.declarations_for(sf, node):
                out.extend(self.resolver.resolve_declaration_values(decl))
            return out

        # ns.userRouter through a namespace import, or routers.user through an object literal
        obj = unwrap_expression(member_object(node))
        prop = member_property_name(node)
        if obj is None or not prop:
            return []
        if obj.type == "identifier":
            for decl in self.resolver.declarations_for(sf, obj):
                if decl.kind != "import" or decl.imported_name != "*":
                    continue
                target = self.project.resolve_module(decl.file, decl.module or "")
                if target is None:
                    continue
                out = []
                for exported in self.project.exported_declarations(target, prop):
                    out.extend(self.resolver.resolve_declaration_values(exported))
                return out
        container = self.resolver.resolve_object(sf, obj)
        if container is None:
            return []
        value = object_property(container.node, prop)
        return [(container.file, value)] if value is not None else []

    # ---- composition ----

    def _compose(self) -> list[RouteHandler]:
        mounted = {target.key for body in self.bodies.values() for _, target in body.mounts}
        emitted: set[tuple[str, int, int]] = set()
        out: list[RouteHandler] = []

        for key, body in list(self.bodies.items()):
            if key in mounted:
                continue
            # a root router that mounts others serves its own procedures at the base path
            prefix = "" if body.mounts else normalize_router_name(body.site.name)
            out.extend(self._emit(body, prefix, set(), emitted))

        # routers only reachable through a mount cycle
        for key, body in list(self.bodies.items()):
            if key not in emitted:
                out.extend(self._emit(body, normalize_router_name(body.site.name), set(), emitted))
        return out

    def _emit(
        self,
        body: _RouterBody,
        prefix: str,
        visited: set[tuple[str, int, int]],
        emitted: set[tuple[str, int, int]],
    ) -> list[RouteHandler]:
        key = body.site.key
        if key in visited:
            self.logger.debug("Router composition cycle through '%s'; stopping", body.site.name)
            return []
        visited.add(key)
        emitted.add(key)
        try:
            out: list[RouteHandler] = []
            for proc in body.procedures:
                method = self.classifier(proc.kind, proc.name.rsplit(".", 1)[-1])
                if method is None:
                    continue
                full = join_procedure_path(prefix, proc.name)
                out.append(self._handler(full, method, body.site.file, proc.line, proc.kind))
            for mount, target in body.mounts:
                target_body = self._body(target)
                if target_body is None:
                    self.logger.debug("Mounted router '%s' has no object body", target.name)
                    continue
                out.extend(self._emit(target_body, join_procedure_path(prefix, mount), visited, emitted))
            return out
        finally:
            visited.discard(key)


def extract_trpc_handlers(
    project: Project,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    detection = build_router_detection_config(
        options.trpc_router_factories,
        options.trpc_router_identifier_pattern,
        log,
    )
    extractor = TRPCExtractor(
        project,
        detection,
        base_path=options.trpc_base_path,
        classifier=options.procedure_classifier,
        logger=log,
    )
    return extractor.extract()


def parse_trpc_routes(
    root: Path,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[Route]:
    from routewise.orchestrator.aggregate import to_routes

    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    root = resolve_repo_root(root)
    if not options.force and not has_trpc(root, log):
        return []
    project = Project.load(root, max_files=options.max_files, logger=log)
    return to_routes(extract_trpc_handlers(project, options, log))
