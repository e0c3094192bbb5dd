from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from routewise.domain.models import ALL_FRAMEWORKS, Route, RouteHandler, ScanOptions
from routewise.extractors.nestjs.extractor import extract_nestjs_handlers
from routewise.extractors.nextjs.extractor import extract_nextjs_handlers
from routewise.extractors.payload.extractor import extract_payload_handlers
from routewise.extractors.trpc.extractor import extract_trpc_handlers
from routewise.logs import LoggerLike, resolve_logger
from routewise.orchestrator.aggregate import aggregate, to_routes
from routewise.repo.framework_detector import FrameworkDetection, detect_frameworks
from routewise.repo.scanner import resolve_repo_root
from routewise.syntax.project import Project

Extractor = Callable[[Project, Optional[ScanOptions], Optional[LoggerLike]], list[RouteHandler]]

# run order is output order
EXTRACTORS: dict[str, Extractor] = {
    "nextjs": extract_nextjs_handlers,
    "trpc": extract_trpc_handlers,
    "nestjs": extract_nestjs_handlers,
    "payload": extract_payload_handlers,
}


@dataclass(frozen=True)
class ScanResult:
    root: str
    detection: FrameworkDetection
    frameworks: list[str]  # extractors that ran
    files_scanned: int
    routes: list[Route]
    failed: list[str] = field(default_factory=list)


def select_frameworks(detection: FrameworkDetection, options: ScanOptions) -> list[str]:
    return [fw for fw in ALL_FRAMEWORKS if fw in options.frameworks and (options.force or detection[fw])]


def run_scan(
    root: Path | str,
    options: Optional[ScanOptions] = None,
    logger: Optional[LoggerLike] = None,
) -> ScanResult:
    options = options or ScanOptions()
    log = resolve_logger(logger, options.debug)

    root_path = resolve_repo_root(root)

    detection = detect_frameworks(root_path, log)
    selected = select_frameworks(detection, options)
    if not selected:
        log.info("No supported framework detected in %s", root_path)
        return ScanResult(str(root_path), detection, [], 0, [])

    project = Project.load(root_path, max_files=options.max_files, logger=log)

    results: list[list[Route]] = []
    failed: list[str] = []
    for fw in selected:
        try:
            results.append(to_routes(EXTRACTORS[fw](project, options, log)))
        except Exception:
            log.exception("Route extraction failed for %s", fw)
            failed.append(fw)

    routes = aggregate(*results)
    log.info("Found %d routes across %s", len(routes), ", ".join(selected))
    return ScanResult(
        root=str(root_path),
        detection=detection,
        frameworks=selected,
        files_scanned=len(project),
        routes=routes,
        failed=failed,
    )
