"""
Router factory detection for tRPC sources.

A call is a router when either its callee name is a known factory
(`createTRPCRouter`, `router`, or whatever the caller configures) or the
callee "looks like" a router according to an identifier pattern (default
`/router$/i`). Both signals are also used to recognise router references
inside a router body, which is how composition is found.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from tree_sitter import Node

from routewise.logs import LoggerLike, resolve_logger
from routewise.syntax.nodes import (
    FUNCTION_TYPES,
    ancestors,
    call_function,
    function_name,
    iter_descendants,
    line_of,
    member_object,
    member_property_name,
    node_text,
    pair_key,
    unwrap_expression,
)
from routewise.syntax.project import SourceFile

ROUTER_FACTORY_NAMES: tuple[str, ...] = ("createTRPCRouter", "router")
ROUTER_IDENTIFIER_PATTERN = re.compile(r"router$", re.IGNORECASE)


@dataclass(frozen=True)
class RouterDetectionConfig:
    factory_names: frozenset[str]
    identifier_pattern: re.Pattern


def call_key(sf: SourceFile, call: Node) -> tuple[str, int, int]:
    return (str(sf.path), call.start_byte, call.end_byte)


@dataclass(frozen=True)
class RouterCallSite:
    call: Node
    name: str
    file: SourceFile

    @property
    def key(self) -> tuple[str, int, int]:
        # chained calls share a start byte, so the span is needed
        return call_key(self.file, self.call)

    @property
    def line(self) -> int:
        return line_of(self.call)


def normalize_factory_names(names: Optional[Iterable[str]]) -> list[str]:
    """Accepts repeated and comma-separated entries; empty input means the defaults."""
    out: list[str] = []
    for item in names or []:
        for part in item.split(","):
            part = part.strip()
            if part and part not in out:
                out.append(part)
    return out or list(ROUTER_FACTORY_NAMES)


def build_router_identifier_pattern(pattern: Optional[str], logger: Optional[LoggerLike] = None) -> re.Pattern:
    if not pattern:
        return ROUTER_IDENTIFIER_PATTERN
    try:
        return re.compile(pattern)
    except re.error as exc:
        resolve_logger(logger).warning(
            "Failed to parse router identifier pattern '%s' (%s), falling back to default: %s",
            pattern,
            exc,
            ROUTER_IDENTIFIER_PATTERN.pattern,
        )
        return ROUTER_IDENTIFIER_PATTERN


def build_router_detection_config(
    factory_names: Optional[Iterable[str]] = None,
    identifier_pattern: Optional[str] = None,
    logger: Optional[LoggerLike] = None,
) -> RouterDetectionConfig:
    log = resolve_logger(logger)
    factories = normalize_factory_names(factory_names)
    pattern = build_router_identifier_pattern(identifier_pattern, log)
    log.debug(
        "Router detection config: factories: %s; identifier pattern: %s",
        ", ".join(factories),
        pattern.pattern,
    )
    return RouterDetectionConfig(factory_names=frozenset(factories), identifier_pattern=pattern)


# ----------------------------
# Signals
# ----------------------------


def _matches_factory(expression: Optional[Node], factory_names: frozenset[str]) -> bool:
    if expression is None:
        return False
    if expression.type == "identifier":
        return node_text(expression) in factory_names
    if expression.type == "member_expression":
        return member_property_name(expression) in factory_names
    return False


def _is_routerish(expression: Optional[Node], pattern: re.Pattern) -> bool:
    if expression is None:
        return False
    if expression.type == "identifier":
        return pattern.search(node_text(expression)) is not None
    if expression.type == "member_expression":
        if pattern.search(member_property_name(expression) or ""):
            return True
        obj = member_object(expression)
        return obj is not None and obj.type == "identifier" and pattern.search(node_text(obj)) is not None
    if expression.type == "call_expression":
        return _is_routerish(call_function(expression), pattern)
    return False


def is_router_factory_call(call: Node, detection: RouterDetectionConfig) -> bool:
    fn = call_function(call)
    return _matches_factory(fn, detection.factory_names) or _is_routerish(fn, detection.identifier_pattern)


def is_router_reference(node: Optional[Node], detection: RouterDetectionConfig) -> bool:
    """True for `userRouter`, `routers.user`, `api.userRouter`, and router factory calls."""
    node = unwrap_expression(node)
    if node is None:
        return False
    pattern = detection.identifier_pattern
    if node.type == "identifier":
        return pattern.search(node_text(node)) is not None
    if node.type == "member_expression":
        return _is_routerish(node, pattern)
    if node.type == "call_expression":
        return is_router_factory_call(node, detection)
    return False


def get_router_reference_name(node: Optional[Node]) -> Optional[str]:
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "identifier":
        return node_text(node)
    if node.type == "member_expression":
        return f"{node_text(member_object(node))}.{member_property_name(node)}"
    if node.type == "call_expression":
        fn = call_function(node)
        if fn is not None and fn.type in ("identifier", "member_expression"):
            return node_text(fn)
    return None


_ROUTER_FILE_SUFFIX = re.compile(r"\.(router|trpc)$", re.IGNORECASE)
# only a camel-case prefix: `createUserRouter`, not `userRouter` or `buildingRouter`
_FACTORY_PREFIX = re.compile(r"^(?:create|build|make|use)(?=[A-Z])")
_ROUTER_SUFFIX = re.compile(r"router$", re.IGNORECASE)
_COMPOUND = re.compile(r"[.\-_]+(\w)")


def normalize_router_name(value: str) -> str:
    """
    Stable prefix for a router name:
      appRouter -> app, createUserRouter -> user, user.router -> user,
      admin-users -> adminUsers
    """
    cleaned = _ROUTER_FILE_SUFFIX.sub("", value)
    cleaned = _FACTORY_PREFIX.sub("", cleaned)
    cleaned = _ROUTER_SUFFIX.sub("", cleaned)
    stripped = _COMPOUND.sub(lambda m: m.group(1).upper(), cleaned)
    if not stripped:
        return ""
    return stripped[0].lower() + stripped[1:]


# ----------------------------
# Call sites
# ----------------------------


def _declarator_name(node: Node) -> Optional[str]:
    name = node.child_by_field_name("name")
    if name is None or name.type != "identifier":
        return None
    return node_text(name)


def infer_router_name(call: Node) -> Optional[str]:
    """
    Nearest enclosing variable declaration, then object property, then the
    enclosing function's own name or the variable it is assigned to.
    """
    chain = list(ancestors(call))

    for a in chain:
        if a.type == "variable_declarator":
            name = _declarator_name(a)
            if name:
                return name

    for a in chain:
        if a.type == "pair":
            key = pair_key(a)
            if key:
                return key

    func = next((a for a in chain if a.type in FUNCTION_TYPES), None)
    if func is not None:
        if func.type in ("function_declaration", "generator_function_declaration"):
            name = function_name(func)
            if name:
                return name
        for a in ancestors(func):
            if a.type == "variable_declarator":
                name = _declarator_name(a)
                if name:
                    return name
    return None


def collect_router_call_sites(
    sf: SourceFile,
    detection: RouterDetectionConfig,
    logger: Optional[LoggerLike] = None,
) -> list[RouterCallSite]:
    log = resolve_logger(logger)
    out: list[RouterCallSite] = []
    seen: set[tuple[str, int, int]] = set()
    for node in iter_descendants(sf.root):
        if node.type != "call_expression" or not is_router_factory_call(node, detection):
            continue
        key = call_key(sf, node)
        if key in seen:
            continue
        seen.add(key)

        name = infer_router_name(node)
        line = line_of(node)
        if name:
            log.debug("Detected router factory call '%s' at line %d", name, line)
        else:
            log.debug("Detected router factory call at line %d", line)
        out.append(RouterCallSite(call=node, name=name or f"router@{line}", file=sf))
    return out
