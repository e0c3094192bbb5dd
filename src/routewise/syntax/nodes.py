"""Small helpers over tree-sitter nodes for the TypeScript/TSX grammars."""

from __future__ import annotations

from typing import Iterator, Optional

from tree_sitter import Node

# `function` is the pre-0.21 grammar name for function expressions
FUNCTION_TYPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)

# expressions that only narrow or assert a type around the real value
WRAPPER_TYPES = frozenset(
    {
        "as_expression",
        "satisfies_expression",
        "parenthesized_expression",
        "non_null_expression",
        "type_assertion",
    }
)

STRING_TYPES = frozenset({"string", "template_string"})


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def line_of(node: Node) -> int:
    return node.start_point[0] + 1


def iter_descendants(node: Node) -> Iterator[Node]:
    """Pre-order walk, including `node` itself. Iterative so deep files do not hit the recursion limit."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def find_descendants(node: Node, node_type: str) -> list[Node]:
    return [n for n in iter_descendants(node) if n.type == node_type]


def ancestors(node: Node) -> Iterator[Node]:
    parent = node.parent
    while parent is not None:
        yield parent
        parent = parent.parent


def named_children_of_type(node: Node, node_type: str) -> list[Node]:
    return [c for c in node.named_children if c.type == node_type]


def first_child_of_type(node: Node, node_type: str) -> Optional[Node]:
    for c in node.children:
        if c.type == node_type:
            return c
    return None


def unwrap_expression(node: Optional[Node]) -> Optional[Node]:
    """
    Strip `as`, `satisfies`, parentheses, `!` and `<T>` assertions, to any depth.
    """
    while node is not None and node.type in WRAPPER_TYPES:
        inner = [c for c in node.named_children if c.type != "comment"]
        if not inner:
            return None
        # `<T>expr` puts the type first; every other wrapper puts the value first
        node = inner[-1] if node.type == "type_assertion" else inner[0]
    return node


def string_value(node: Optional[Node]) -> Optional[str]:
    """Value of a plain string or a template literal without substitutions."""
    node = unwrap_expression(node)
    if node is None or node.type not in STRING_TYPES:
        return None
    if node.type == "template_string" and any(c.type == "template_substitution" for c in node.named_children):
        return None
    raw = node_text(node)
    return raw[1:-1] if len(raw) >= 2 else ""


def call_function(call: Node) -> Optional[Node]:
    return call.child_by_field_name("function")


def call_arguments(call: Node) -> list[Node]:
    args = call.child_by_field_name("arguments")
    # tagged templates put a template_string where the argument list would be
    if args is None or args.type != "arguments":
        return []
    return [c for c in args.named_children if c.type != "comment"]


def member_property_name(node: Node) -> Optional[str]:
    if node.type != "member_expression":
        return None
    prop = node.child_by_field_name("property")
    return node_text(prop) if prop is not None else None


def member_object(node: Node) -> Optional[Node]:
    if node.type != "member_expression":
        return None
    return node.child_by_field_name("object")


def callee_name(call: Node) -> Optional[str]:
    """`foo(...)` -> foo, `a.b.foo(...)` -> foo."""
    fn = call_function(call)
    if fn is None:
        return None
    if fn.type == "identifier":
        return node_text(fn)
    return member_property_name(fn)


def pair_key(pair: Node) -> Optional[str]:
    key = pair.child_by_field_name("key")
    if key is None:
        return None
    if key.type in ("property_identifier", "identifier", "private_property_identifier", "number"):
        return node_text(key)
    if key.type in STRING_TYPES:
        return string_value(key)
    # computed keys (`[name]: ...`) are not statically known
    return None


def object_property(obj: Node, name: str) -> Optional[Node]:
    """
    Value node of `name` in an object literal. Shorthand `{ name }` returns the
    shorthand identifier itself so callers can resolve it like a reference.
    Later properties win, matching runtime semantics.
    """
    found: Optional[Node] = None
    for child in obj.named_children:
        if child.type == "pair" and pair_key(child) == name:
            found = child.child_by_field_name("value")
        elif child.type == "shorthand_property_identifier" and node_text(child) == name:
            found = child
    return found


def boolean_property(obj: Node, name: str) -> bool:
    """`true` and object literals (`auth: { ... }`) count as enabled."""
    value = unwrap_expression(object_property(obj, name))
    if value is None:
        return False
    if value.type == "true":
        return True
    return value.type == "object"


def string_property(obj: Node, name: str) -> Optional[str]:
    return string_value(object_property(obj, name))


def decorator_call(decorator: Node) -> tuple[Optional[str], list[Node]]:
    """`@Get(':id')` -> ("Get", [arg]); `@Injectable` -> ("Injectable", [])."""
    expr = next((c for c in decorator.named_children if c.type != "comment"), None)
    if expr is None:
        return None, []
    if expr.type == "call_expression":
        fn = call_function(expr)
        if fn is None:
            return None, []
        name = node_text(fn) if fn.type == "identifier" else member_property_name(fn)
        return name, call_arguments(expr)
    if expr.type == "identifier":
        return node_text(expr), []
    if expr.type == "member_expression":
        return member_property_name(expr), []
    return None, []


def function_name(node: Node) -> Optional[str]:
    name = node.child_by_field_name("name")
    return node_text(name) if name is not None else None
