from __future__ import annotations

import re
from typing import Optional

from routewise.domain.models import DynamicSegment

RESERVED_SEGMENTS = frozenset({"_app", "_document", "_error", "404", "500"})

# order matters: each later pattern also matches the earlier ones' text
_OPTIONAL_CATCH_ALL = re.compile(r"\[\[\.\.\.([^\]]+)\]\]")
_CATCH_ALL = re.compile(r"\[\.\.\.([^\]]+)\]")
_DYNAMIC = re.compile(r"\[([^\]]+)\]")

_MULTI_SLASH = re.compile(r"/{2,}")

_ROUTE_GROUP = re.compile(r"^\(.*\)$")

APP_ROUTE_FILE = re.compile(r"^route\.(ts|tsx|js|jsx|mjs)$")
PAGES_EXTENSIONS = re.compile(r"\.(ts|tsx|js|jsx|mjs)$")


def convert_dynamic_segments(route_path: str) -> str:
    """
    [[...slug]] -> :slug*?   [...slug] -> :slug*   [id] -> :id
    """
    route_path = _OPTIONAL_CATCH_ALL.sub(r":\1*?", route_path)
    route_path = _CATCH_ALL.sub(r":\1*", route_path)
    return _DYNAMIC.sub(r":\1", route_path)


def parse_dynamic_segment(segment: str) -> Optional[DynamicSegment]:
    m = _OPTIONAL_CATCH_ALL.fullmatch(segment)
    if m:
        return DynamicSegment(name=m.group(1), is_catch_all=True, is_optional=True)
    m = _CATCH_ALL.fullmatch(segment)
    if m:
        return DynamicSegment(name=m.group(1), is_catch_all=True, is_optional=False)
    m = _DYNAMIC.fullmatch(segment)
    if m:
        return DynamicSegment(name=m.group(1))
    return None


def extract_dynamic_segments(route_path: str) -> list[DynamicSegment]:
    out: list[DynamicSegment] = []
    for segment in route_path.split("/"):
        seg = parse_dynamic_segment(segment)
        if seg is not None:
            out.append(seg)
    return out


def is_reserved_segment(segment: str) -> bool:
    return segment in RESERVED_SEGMENTS


def normalize_route_path(route_path: str) -> str:
    p = (route_path or "").strip()
    if not p.startswith("/"):
        p = "/" + p
    p = _MULTI_SLASH.sub("/", p)
    if p != "/" and p.endswith("/"):
        p = p[:-1]
    return p


def is_app_router_file(rel_path: str) -> bool:
    parts = rel_path.replace("\\", "/").split("/")
    return "app" in parts[:-1] and APP_ROUTE_FILE.match(parts[-1]) is not None


def is_pages_router_file(rel_path: str) -> bool:
    parts = rel_path.replace("\\", "/").split("/")
    # .mts/.cts/.cjs files are scanned for imports but Next.js does not route them
    return (
        _pages_api_index(parts) is not None
        and PAGES_EXTENSIONS.search(parts[-1]) is not None
        and APP_ROUTE_FILE.match(parts[-1]) is None
    )


def _pages_api_index(parts: list[str]) -> Optional[int]:
    for i in range(len(parts) - 2):
        if parts[i] == "pages" and parts[i + 1] == "api":
            return i
    return None


def app_route_segments(rel_path: str) -> Optional[list[str]]:
    """
    URL segments of an App Router route file, or None when the file is not
    routable. Route groups `(x)` and parallel slots `@x` do not appear in the
    URL; private folders `_x` opt the whole subtree out of routing.
    """
    parts = rel_path.replace("\\", "/").split("/")
    if "app" not in parts[:-1]:
        return None
    start = parts.index("app") + 1
    segments: list[str] = []
    for part in parts[start:-1]:
        if _ROUTE_GROUP.match(part) or part.startswith("@"):
            continue
        if part.startswith("_"):
            return None
        segments.append(part)
    return segments


def app_route_path(rel_path: str) -> Optional[str]:
    """app/api/users/[id]/route.ts -> /api/users/[id] (brackets kept; convert separately)."""
    segments = app_route_segments(rel_path)
    if segments is None:
        return None
    return normalize_route_path("/".join(segments))


def pages_route_path(rel_path: str) -> Optional[str]:
    """pages/api/orders/index.ts -> /api/orders; pages/api/index.ts -> /api."""
    parts = rel_path.replace("\\", "/").split("/")
    idx = _pages_api_index(parts)
    if idx is None:
        return None
    segments = parts[idx + 1 :]
    if PAGES_EXTENSIONS.search(segments[-1]) is None:
        return None
    segments[-1] = PAGES_EXTENSIONS.sub("", segments[-1])
    if is_reserved_segment(segments[-1]):
        return None
    if segments[-1] == "index":
        segments = segments[:-1]
    return normalize_route_path("/".join(segments)) or "/api"
