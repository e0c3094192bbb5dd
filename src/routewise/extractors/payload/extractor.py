"""
Payload CMS routes, derived from the config object.

Payload generates REST endpoints for every collection and global declared in
`buildConfig({...})`; nothing in the source names those paths, so they are
synthesized here from the slugs and flags that are statically visible.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from routewise.domain.models import Route, RouteHandler, RouteSource, ScanOptions
from routewise.extractors.nextjs.paths import convert_dynamic_segments, normalize_route_path
from routewise.extractors.payload.constants import (
    AUTH_OPERATIONS,
    COLLECTION_OPERATIONS,
    CONFIG_PATTERNS,
    DEFAULT_API_PREFIX,
    DEFAULT_ENDPOINTS,
    GLOBAL_OPERATIONS,
    JSON_CONTENT_TYPE,
    METHOD_MAP,
    MULTIPART_CONTENT_TYPE,
    UPLOAD_OPERATIONS,
    Operation,
)
from routewise.logs import LoggerLike, resolve_logger
from routewise.repo.framework_detector import FRAMEWORK_DEPENDENCIES, has_dependency
from routewise.repo.scanner import resolve_repo_root
from routewise.syntax.nodes import (
    boolean_property,
    call_arguments,
    callee_name,
    first_child_of_type,
    named_children_of_type,
    object_property,
    string_property,
)
from routewise.syntax.project import Project, SourceFile
from routewise.syntax.resolver import ResolvedLiteral, SymbolResolver


@dataclass(frozen=True)
class ParsedEndpoint:
    path: str
    method: str
    root: bool
    line: int


@dataclass(frozen=True)
class ParsedCollection:
    slug: str
    auth: bool
    upload: bool
    endpoints: tuple[ParsedEndpoint, ...]
    line: int
    originating_file: Optional[str] = None


@dataclass(frozen=True)
class ParsedGlobal:
    slug: str
    endpoints: tuple[ParsedEndpoint, ...]
    line: int
    originating_file: Optional[str] = None


def has_payload(root: Path, logger: Optional[LoggerLike] = None) -> bool:
    return has_dependency(root, FRAMEWORK_DEPENDENCIES["payload"], logger)


def find_payload_config(project: Project, logger: Optional[LoggerLike] = None) -> Optional[SourceFile]:
    log = resolve_logger(logger)
    for pattern in CONFIG_PATTERNS:
        sf = project.get_file(pattern)
        if sf is not None:
            log.debug("Found Payload config: %s", project.relative(sf))
            return sf
    log.debug("No Payload config file found")
    return None


def find_config_object(
    project: Project,
    resolver: SymbolResolver,
    sf: SourceFile,
    logger: Optional[LoggerLike] = None,
) -> Optional[ResolvedLiteral]:
    """`buildConfig({...})` first, then whatever `export default` resolves to."""
    log = resolve_logger(logger)
    for call in project.find_calls(sf, lambda c: callee_name(c) == "buildConfig"):
        args = call_arguments(call)
        found = resolver.resolve_object(sf, args[0]) if args else None
        if found is not None:
            log.debug("Found buildConfig call with config object")
            return found

    for stmt in named_children_of_type(sf.root, "export_statement"):
        if first_child_of_type(stmt, "default") is None:
            continue
        found = resolver.resolve_object(sf, stmt.child_by_field_name("value"))
        if found is not None:
            log.debug("Found default export with config object")
            return found
    return None


def _originating_file(lit: ResolvedLiteral, config_file: SourceFile) -> Optional[str]:
    return None if lit.file is config_file else str(lit.file.path)


class PayloadConfigParser:
    """Reads one resolved config literal into collections, globals and endpoints."""

    def __init__(self, resolver: SymbolResolver, config_file: SourceFile, logger: Optional[LoggerLike] = None):
        self.resolver = resolver
        self.config_file = config_file
        self.logger = resolve_logger(logger)

    def api_prefix(self, config: ResolvedLiteral) -> str:
        routes = self.resolver.resolve_object(config.file, object_property(config.node, "routes"))
        if routes is not None:
            api = string_property(routes.node, "api")
            if api is not None:
                self.logger.debug("Found custom API prefix: %s", api)
                return normalize_route_path(api)
        return DEFAULT_API_PREFIX

    def _literals(self, owner: ResolvedLiteral, key: str) -> list[ResolvedLiteral]:
        value = object_property(owner.node, key)
        if value is None:
            return []
        return self.resolver.resolve_elements(owner.file, value)

    def endpoints(self, owner: ResolvedLiteral) -> list[ParsedEndpoint]:
        out: list[ParsedEndpoint] = []
        for lit in self._literals(owner, "endpoints"):
            path = string_property(lit.node, "path")
            method = string_property(lit.node, "method")
            if not path or not method:
                self.logger.debug("Skipping endpoint without path or method at line %d", lit.line)
                continue
            out.append(ParsedEndpoint(path=path, method=method, root=boolean_property(lit.node, "root"), line=lit.line))
            self.logger.debug("Found custom endpoint: %s %s", method.upper(), path)
        return out

    def collections(self, config: ResolvedLiteral) -> list[ParsedCollection]:
        out: list[ParsedCollection] = []
        for lit in self._literals(config, "collections"):
            slug = string_property(lit.node, "slug")
            if not slug:
                self.logger.debug("Skipping collection without a static slug at line %d", lit.line)
                continue
            out.append(
                ParsedCollection(
                    slug=slug,
                    auth=boolean_property(lit.node, "auth"),
                    upload=boolean_property(lit.node, "upload"),
                    endpoints=tuple(self.endpoints(lit)),
                    line=lit.line,
                    originating_file=_originating_file(lit, self.config_file),
                )
            )
            self.logger.debug("Found collection: %s", slug)
        return out

    def globals(self, config: ResolvedLiteral) -> list[ParsedGlobal]:
        out: list[ParsedGlobal] = []
        for lit in self._literals(config, "globals"):
            slug = string_property(lit.node, "slug")
            if not slug:
                self.logger.debug("Skipping global without a static slug at line %d", lit.line)
                continue
            out.append(
                ParsedGlobal(
                    slug=slug,
                    endpoints=tuple(self.endpoints(lit)),
                    line=lit.line,
                    originating_file=_originating_file(lit, self.config_file),
                )
            )
            self.logger.debug("Found global: %s", slug)
        return out


# ----------------------------
# Route generation
# ----------------------------


def _content_type(op: Operation, upload: bool = False) -> Optional[dict[str, str]]:
    if not op.has_body:
        return None
    if upload and op.name in ("create", "uploadFile"):
        return {"Content-Type": MULTIPART_CONTENT_TYPE}
    return {"Content-Type": JSON_CONTENT_TYPE}


def _endpoint_path(base: str, path: str) -> str:
    return normalize_route_path(convert_dynamic_segments(f"{base}/{path.lstrip('/')}"))


def collection_routes(
    collection: ParsedCollection,
    prefix: str,
    config_path: str,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    log = resolve_logger(logger)
    base = normalize_route_path(f"{prefix}/{collection.slug}")
    file = collection.originating_file or config_path

    def handler(path: str, method: str, cms_source: str, name: str, headers=None, line=collection.line) -> RouteHandler:
        return RouteHandler(
            path=path,
            method=method,
            file=file,
            line=line,
            source=RouteSource.CONFIG_CMS,
            handler_name=name,
            collection_slug=collection.slug,
            cms_source=cms_source,
            headers=headers,
        )

    out: list[RouteHandler] = []
    ops = COLLECTION_OPERATIONS + (AUTH_OPERATIONS if collection.auth else ())
    if collection.upload:
        ops += UPLOAD_OPERATIONS
    for op in ops:
        path = normalize_route_path(base + op.path_suffix)
        out.append(handler(path, op.method, "collection", op.name, _content_type(op, collection.upload)))

    for ep in collection.endpoints:
        method = METHOD_MAP.get(ep.method.lower())
        if method is None:
            log.debug("Unknown HTTP method: %s", ep.method)
            continue
        out.append(handler(_endpoint_path(base, ep.path), method, "endpoint", ep.path, line=ep.line))

    log.info("Collection '%s' generated %d routes", collection.slug, len(out))
    return out


def global_routes(
    item: ParsedGlobal,
    prefix: str,
    config_path: str,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    log = resolve_logger(logger)
    base = normalize_route_path(f"{prefix}/globals/{item.slug}")
    file = item.originating_file or config_path
    out: list[RouteHandler] = []
    for op in GLOBAL_OPERATIONS:
        out.append(
            RouteHandler(
                path=normalize_route_path(base + op.path_suffix),
                method=op.method,
                file=file,
                line=item.line,
                source=RouteSource.CONFIG_CMS,
                handler_name=op.name,
                cms_source="global",
                headers=_content_type(op),
            )
        )
    for ep in item.endpoints:
        method = METHOD_MAP.get(ep.method.lower())
        if method is None:
            log.debug("Unknown HTTP method: %s", ep.method)
            continue
        out.append(
            RouteHandler(
                path=_endpoint_path(base, ep.path),
                method=method,
                file=file,
                line=ep.line,
                source=RouteSource.CONFIG_CMS,
                handler_name=ep.path,
                cms_source="endpoint",
            )
        )
    return out


def root_endpoint_routes(
    endpoints: list[ParsedEndpoint],
    prefix: str,
    config_path: str,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    log = resolve_logger(logger)
    out: list[RouteHandler] = []
    for ep in endpoints:
        method = METHOD_MAP.get(ep.method.lower())
        if method is None:
            log.debug("Unknown HTTP method: %s", ep.method)
            continue
        # `root: true` mounts at the server root instead of under the API prefix
        path = _endpoint_path("", ep.path) if ep.root else _endpoint_path(prefix, ep.path)
        out.append(
            RouteHandler(
                path=path,
                method=method,
                file=config_path,
                line=ep.line,
                source=RouteSource.CONFIG_CMS,
                handler_name=ep.path,
                cms_source="endpoint",
            )
        )
    return out


def default_routes(prefix: str, config_path: str) -> list[RouteHandler]:
    return [
        RouteHandler(
            path=normalize_route_path(prefix + op.path_suffix),
            method=op.method,
            file=config_path,
            line=0,
            source=RouteSource.CONFIG_CMS,
            handler_name=op.name,
            cms_source="default",
            headers=_content_type(op),
        )
        for op in DEFAULT_ENDPOINTS
    ]


def parse_payload_config(
    project: Project,
    config_file: SourceFile,
    resolver: Optional[SymbolResolver] = None,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    log = resolve_logger(logger)
    resolver = resolver or SymbolResolver(project, log)
    config = find_config_object(project, resolver, config_file, log)
    if config is None:
        log.debug("Could not find Payload config object")
        return []

    parser = PayloadConfigParser(resolver, config_file, log)
    config_path = str(config_file.path)
    prefix = parser.api_prefix(config)
    log.debug("API prefix: %s", prefix)

    out: list[RouteHandler] = []
    collections = parser.collections(config)
    log.info("Found %d Payload collections", len(collections))
    for collection in collections:
        out.extend(collection_routes(collection, prefix, config_path, log))
    for item in parser.globals(config):
        out.extend(global_routes(item, prefix, config_path, log))
    out.extend(root_endpoint_routes(parser.endpoints(config), prefix, config_path, log))
    out.extend(default_routes(prefix, config_path))
    return out


def extract_payload_handlers(
    project: Project,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[RouteHandler]:
    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    config_file = find_payload_config(project, log)
    if config_file is None:
        return []
    try:
        return parse_payload_config(project, config_file, logger=log)
    except Exception:
        log.exception("Failed to parse Payload config: %s", project.relative(config_file))
        return []


def parse_payload_routes(
    root: Path,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> list[Route]:
    from routewise.orchestrator.aggregate import to_routes

    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)
    root = resolve_repo_root(root)
    if not options.force and not has_payload(root, log):
        return []
    project = Project.load(root, max_files=options.max_files, logger=log)
    return to_routes(extract_payload_handlers(project, options, log))
