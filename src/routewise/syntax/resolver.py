"""
Follow a reference expression to the object literal(s) it denotes.

Handles, in any combination:
  - `const X = { ... }`, `const X = factory({ ... })`
  - `as` / `satisfies` / parentheses / `!` wrappers, nested arbitrarily
  - `export default { ... }`
  - named, default, aliased and namespace imports, through re-export chains
  - arrays and `...spread` of arrays, including spreads of spreads

Every declaration is interned into a table and each resolution call keeps a
set of visited indices, so circular imports terminate. Failures return
None / [] and never raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tree_sitter import Node

from routewise.logs import LoggerLike, resolve_logger
from routewise.syntax.nodes import (
    ancestors,
    call_arguments,
    line_of,
    member_object,
    member_property_name,
    node_text,
    object_property,
    unwrap_expression,
)
from routewise.syntax.project import Declaration, Project, SourceFile

_REFERENCE_TYPES = frozenset({"identifier", "shorthand_property_identifier"})
_SCOPE_TYPES = frozenset({"statement_block", "program", "class_static_block"})


@dataclass(frozen=True)
class ResolvedLiteral:
    """An object literal plus the file it was found in."""

    node: Node
    file: SourceFile

    @property
    def line(self) -> int:
        return line_of(self.node)

    @property
    def key(self) -> tuple[str, int, int]:
        return (str(self.file.path), self.node.start_byte, self.node.end_byte)


class DeclarationTable:
    """Interns declarations to small integers so visited checks are identity-based."""

    def __init__(self) -> None:
        self._index: dict[tuple[str, int, int, str], int] = {}

    def intern(self, decl: Declaration) -> int:
        idx = self._index.get(decl.key)
        if idx is None:
            idx = len(self._index)
            self._index[decl.key] = idx
        return idx

    def __len__(self) -> int:
        return len(self._index)


def unwrap_to_object(node: Optional[Node]) -> Optional[Node]:
    """
    The object literal an initializer stands for, without following any
    references: the literal itself, or the first object argument of a
    factory call, seen through type wrappers at any depth.
    """
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "object":
        return node
    if node.type in ("call_expression", "new_expression"):
        for arg in call_arguments(node):
            arg = unwrap_expression(arg)
            if arg is not None and arg.type == "object":
                return arg
    return None


class SymbolResolver:
    def __init__(self, project: Project, logger: Optional[LoggerLike] = None):
        self.project = project
        self.logger = resolve_logger(logger)
        self.table = DeclarationTable()

    # ---- public API ----

    def resolve_object(self, sf: SourceFile, node: Node) -> Optional[ResolvedLiteral]:
        return self._object(sf, node, set())

    def resolve_elements(self, sf: SourceFile, node: Optional[Node]) -> list[ResolvedLiteral]:
        """
        Object literals of an array-valued expression: an array literal, a
        reference to one, or a spread. Unresolvable elements are skipped.
        Each literal appears once even when reachable by several paths.
        """
        if node is None:
            return []
        out: list[ResolvedLiteral] = []
        seen: set[tuple[str, int, int]] = set()
        for lit in self._elements(sf, node, set()):
            if lit.key in seen:
                continue
            seen.add(lit.key)
            out.append(lit)
        return out

    def declarations_for(self, sf: SourceFile, node: Node) -> list[Declaration]:
        """Declarations of the identifier `node`, innermost enclosing scope first."""
        if node.type not in _REFERENCE_TYPES:
            return []
        name = node_text(node)
        for scope in ancestors(node):
            if scope.type not in _SCOPE_TYPES:
                continue
            found = self.project.scope_declarations(sf, scope, name)
            if found:
                return found
        return []

    def resolve_declaration_values(self, decl: Declaration) -> list[tuple[SourceFile, Node]]:
        """(file, value expression) pairs behind a declaration, following imports."""
        return self._values(decl, set())

    # ---- internals ----
    #
    # `visited` holds the declarations on the current resolution path. An
    # index is released when its branch is done, so sibling references that
    # share an intermediate declaration (`[ns.Users, ns.Posts]`) both resolve,
    # while a chain that comes back to itself stops.

    def _object(self, sf: SourceFile, node: Optional[Node], visited: set[int]) -> Optional[ResolvedLiteral]:
        node = unwrap_expression(node)
        if node is None:
            return None

        direct = unwrap_to_object(node)
        if direct is not None:
            return ResolvedLiteral(direct, sf)

        if node.type in _REFERENCE_TYPES:
            for decl in self.declarations_for(sf, node):
                found = self._object_from_declaration(decl, visited)
                if found is not None:
                    if found.file is not sf:
                        self.logger.debug(
                            "Resolved %s to object in %s", node_text(node), self.project.relative(found.file)
                        )
                    return found
            self.logger.debug("Could not resolve %s", node_text(node))
            return None

        if node.type == "member_expression":
            return self._member_object(sf, node, visited)

        return None

    def _object_from_declaration(self, decl: Declaration, visited: set[int]) -> Optional[ResolvedLiteral]:
        idx = self.table.intern(decl)
        if idx in visited:
            self.logger.debug("Cycle through %s in %s; stopping", decl.name, self.project.relative(decl.file))
            return None
        visited.add(idx)
        try:
            if decl.kind != "import":
                return self._object(decl.file, decl.value, visited)
            for exported in self._imported_declarations(decl):
                found = self._object_from_declaration(exported, visited)
                if found is not None:
                    return found
            return None
        finally:
            visited.discard(idx)

    def _member_object(self, sf: SourceFile, node: Node, visited: set[int]) -> Optional[ResolvedLiteral]:
        """`ns.Users` through a namespace import, or `Config.Users` through an object literal."""
        obj = unwrap_expression(member_object(node))
        prop = member_property_name(node)
        if obj is None or not prop:
            return None

        if obj.type == "identifier":
            for decl in self.declarations_for(sf, obj):
                if decl.kind != "import" or decl.imported_name != "*":
                    continue
                target = self.project.resolve_module(decl.file, decl.module or "")
                if target is None:
                    self.logger.debug("Could not resolve module: %s", decl.module)
                    continue
                for exported in self.project.exported_declarations(target, prop):
                    found = self._object_from_declaration(exported, visited)
                    if found is not None:
                        return found

        container = self._object(sf, obj, visited)
        if container is None:
            return None
        value = object_property(container.node, prop)
        if value is None:
            return None
        return self._object(container.file, value, visited)

    def _imported_declarations(self, decl: Declaration) -> list[Declaration]:
        if decl.imported_name == "*":
            return []
        self.logger.debug("Following import of %s from %s", decl.imported_name, decl.module)
        target = self.project.resolve_module(decl.file, decl.module or "")
        if target is None:
            self.logger.debug("Could not resolve module: %s", decl.module)
            return []
        return self.project.exported_declarations(target, decl.imported_name or "")

    def _values(self, decl: Declaration, visited: set[int]) -> list[tuple[SourceFile, Node]]:
        idx = self.table.intern(decl)
        if idx in visited:
            return []
        visited.add(idx)
        try:
            if decl.kind != "import":
                value = decl.value
                return [(decl.file, value)] if value is not None else []
            out: list[tuple[SourceFile, Node]] = []
            for exported in self._imported_declarations(decl):
                out.extend(self._values(exported, visited))
            return out
        finally:
            visited.discard(idx)

    def _elements(self, sf: SourceFile, node: Optional[Node], visited: set[int]) -> list[ResolvedLiteral]:
        node = unwrap_expression(node)
        if node is None:
            return []

        if node.type == "array":
            out: list[ResolvedLiteral] = []
            for element in node.named_children:
                if element.type == "comment":
                    continue
                if element.type == "spread_element":
                    inner = next((c for c in element.named_children if c.type != "comment"), None)
                    out.extend(self._elements(sf, inner, visited))
                    continue
                lit = self._object(sf, element, visited)
                if lit is None:
                    self.logger.debug("Skipping unresolvable element: %s", _preview(element))
                    continue
                out.append(lit)
            return out

        if node.type in _REFERENCE_TYPES:
            for decl in self.declarations_for(sf, node):
                out = self._elements_from_declaration(decl, visited)
                if out:
                    return out
            self.logger.debug("Could not resolve array %s", node_text(node))
            return []

        if node.type == "member_expression":
            # `...group.items` where group resolves to an object literal
            container = self._object(sf, member_object(node), visited)
            prop = member_property_name(node)
            if container is None or not prop:
                return []
            return self._elements(container.file, object_property(container.node, prop), visited)

        return []

    def _elements_from_declaration(self, decl: Declaration, visited: set[int]) -> list[ResolvedLiteral]:
        idx = self.table.intern(decl)
        if idx in visited:
            self.logger.debug("Cycle through %s in %s; stopping", decl.name, self.project.relative(decl.file))
            return []
        visited.add(idx)
        try:
            if decl.kind != "import":
                return self._elements(decl.file, decl.value, visited)
            out: list[ResolvedLiteral] = []
            for exported in self._imported_declarations(decl):
                out.extend(self._elements_from_declaration(exported, visited))
            return out
        finally:
            visited.discard(idx)


def _preview(node: Node, limit: int = 60) -> str:
    text = " ".join(node_text(node).split())
    return text if len(text) <= limit else text[: limit - 1] + "…"
