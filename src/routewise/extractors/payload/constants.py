from __future__ import annotations

from dataclasses import dataclass

CONFIG_PATTERNS: tuple[str, ...] = (
    "payload.config.ts",
    "payload.config.js",
    "src/payload.config.ts",
    "src/payload.config.js",
    "config/payload.config.ts",
    "config/payload.config.js",
)

DEFAULT_API_PREFIX = "/api"

JSON_CONTENT_TYPE = "application/json"
MULTIPART_CONTENT_TYPE = "multipart/form-data"


@dataclass(frozen=True)
class Operation:
    name: str
    method: str
    path_suffix: str
    has_body: bool


COLLECTION_OPERATIONS: tuple[Operation, ...] = (
    Operation("find", "GET", "", False),
    Operation("findByID", "GET", "/:id", False),
    Operation("count", "GET", "/count", False),
    Operation("create", "POST", "", True),
    Operation("update", "PATCH", "", True),
    Operation("updateByID", "PATCH", "/:id", True),
    Operation("delete", "DELETE", "", False),
    Operation("deleteByID", "DELETE", "/:id", False),
)

AUTH_OPERATIONS: tuple[Operation, ...] = (
    Operation("login", "POST", "/login", True),
    Operation("logout", "POST", "/logout", False),
    Operation("refresh", "POST", "/refresh-token", False),
    Operation("me", "GET", "/me", False),
    Operation("forgotPassword", "POST", "/forgot-password", True),
    Operation("resetPassword", "POST", "/reset-password", True),
    Operation("unlock", "POST", "/unlock", True),
    Operation("verifyEmail", "POST", "/verify/:token", False),
)

UPLOAD_OPERATIONS: tuple[Operation, ...] = (Operation("uploadFile", "POST", "/file", True),)

GLOBAL_OPERATIONS: tuple[Operation, ...] = (
    Operation("findOne", "GET", "", False),
    Operation("update", "POST", "", True),
)

# served by every Payload install, relative to the API prefix
DEFAULT_ENDPOINTS: tuple[Operation, ...] = (
    Operation("getPreference", "GET", "/payload-preferences/:key", False),
    Operation("setPreference", "POST", "/payload-preferences/:key", True),
    Operation("deletePreference", "DELETE", "/payload-preferences/:key", False),
    Operation("access", "GET", "/access", False),
)

METHOD_MAP: dict[str, str] = {
    "get": "GET",
    "post": "POST",
    "put": "PUT",
    "patch": "PATCH",
    "delete": "DELETE",
    "head": "HEAD",
    "options": "OPTIONS",
}
