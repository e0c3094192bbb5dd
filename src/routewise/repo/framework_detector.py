from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from routewise.logs import LoggerLike, resolve_logger

FRAMEWORK_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    "nextjs": ("next",),
    "trpc": ("@trpc/server",),
    "nestjs": ("@nestjs/core", "@nestjs/common"),
    "payload": ("payload",),
}

# monorepo folders whose packages count as part of the project
WORKSPACE_DIRS = ("apps", "packages")


@dataclass(frozen=True)
class FrameworkDetection:
    nextjs: bool = False
    trpc: bool = False
    nestjs: bool = False
    payload: bool = False

    def __getitem__(self, framework: str) -> bool:
        return bool(getattr(self, framework, False))

    @property
    def detected(self) -> list[str]:
        return [fw for fw in FRAMEWORK_DEPENDENCIES if self[fw]]


def manifest_paths(root: Path) -> list[Path]:
    out = [root / "package.json"]
    for ws in WORKSPACE_DIRS:
        ws_dir = root / ws
        if not ws_dir.is_dir():
            continue
        for child in sorted(ws_dir.iterdir()):
            manifest = child / "package.json"
            if manifest.is_file():
                out.append(manifest)
    return out


def read_declared_dependencies(manifest: Path, logger: Optional[LoggerLike] = None) -> set[str]:
    """
    Names under dependencies + devDependencies. Unreadable or malformed
    manifests count as declaring nothing.
    """
    log = resolve_logger(logger)
    try:
        payload = json.loads(manifest.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return set()
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        log.debug("Could not read %s: %s", manifest, exc)
        return set()

    if not isinstance(payload, dict):
        log.debug("Ignoring %s: expected a JSON object", manifest)
        return set()

    names: set[str] = set()
    for key in ("dependencies", "devDependencies"):
        section = payload.get(key)
        if isinstance(section, dict):
            names.update(str(k) for k in section)
    return names


def has_dependency(root: Path, names: Iterable[str], logger: Optional[LoggerLike] = None) -> bool:
    wanted = set(names)
    try:
        manifests = manifest_paths(root)
    except OSError as exc:
        resolve_logger(logger).debug("Could not list manifests under %s: %s", root, exc)
        return False
    return any(wanted & read_declared_dependencies(m, logger) for m in manifests)


def detect_frameworks(root: Path, logger: Optional[LoggerLike] = None) -> FrameworkDetection:
    """
    Manifest-only detection: never parses source, never raises for a missing
    or broken package.json.
    """
    log = resolve_logger(logger)
    try:
        manifests = manifest_paths(root)
    except OSError as exc:
        log.debug("Could not list manifests under %s: %s", root, exc)
        return FrameworkDetection()

    declared: set[str] = set()
    for m in manifests:
        declared |= read_declared_dependencies(m, log)

    found = {fw: bool(declared & set(deps)) for fw, deps in FRAMEWORK_DEPENDENCIES.items()}
    for fw, ok in found.items():
        if ok:
            log.info("Detected %s project", fw)
    return FrameworkDetection(**found)
