from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

RouteType = Literal["file-router-app", "file-router-pages", "rpc", "controller", "config-cms"]

Framework = Literal["nextjs", "trpc", "nestjs", "payload"]

ALL_FRAMEWORKS: tuple[str, ...] = ("nextjs", "trpc", "nestjs", "payload")


class RouteSource(enum.Enum):
    """Which extractor produced a RouteHandler. Closed set; the aggregator maps every member."""

    FILE_ROUTER_APP = "file-router-app"
    FILE_ROUTER_PAGES = "file-router-pages"
    RPC = "rpc"
    CONTROLLER = "controller"
    CONFIG_CMS = "config-cms"


@dataclass(frozen=True)
class DynamicSegment:
    name: str
    is_catch_all: bool = False
    is_optional: bool = False


@dataclass(frozen=True)
class RouteHandler:
    """
    Framework-neutral record emitted by every extractor before aggregation.

    Always carries path/method/file/line; the remaining fields are filled in
    by the extractors that know about them.
    """

    path: str
    method: str
    file: str
    line: int
    source: RouteSource

    handler_name: str = ""
    collection_slug: Optional[str] = None
    cms_source: Optional[str] = None  # collection | global | endpoint | default
    headers: Optional[dict[str, str]] = None
    query: Optional[dict[str, str]] = None
    body: Optional[str] = None
    dynamic_segments: tuple[DynamicSegment, ...] = ()
    uses_middleware: bool = False


class Route(BaseModel):
    """The uniform route record handed to callers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    path: str
    method: HttpMethod
    file_path: str = Field(alias="filePath")
    type: RouteType
    headers: Optional[dict[str, str]] = None
    query: Optional[dict[str, str]] = None
    body: Optional[str] = None


MethodDetector = Callable[[Any, Any], list[str]]
ProcedureClassifier = Callable[[Optional[str], str], Optional[str]]


class ScanOptions(BaseModel):
    """Per-run overrides. Everything has a default so `ScanOptions()` is a full scan."""

    frameworks: list[Framework] = Field(default_factory=lambda: list(ALL_FRAMEWORKS))
    force: bool = False  # run extractors even when the manifest does not list the framework
    max_files: Optional[int] = None

    trpc_router_factories: list[str] = Field(default_factory=list)
    trpc_router_identifier_pattern: Optional[str] = None
    trpc_base_path: str = "/api/trpc"

    pages_method_detector: Optional[MethodDetector] = None
    procedure_classifier: Optional[ProcedureClassifier] = None
    debug: Optional[Callable[[str], None]] = None
