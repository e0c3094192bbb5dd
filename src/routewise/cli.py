from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from routewise.domain.models import ALL_FRAMEWORKS, ScanOptions
from routewise.orchestrator.aggregate import humanize_route_name
from routewise.orchestrator.pipeline import run_scan
from routewise.repo.framework_detector import detect_frameworks


app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


def _repo_path(repo: str) -> Path:
    repo_path = Path(repo).expanduser().resolve()
    if not repo_path.exists():
        raise typer.BadParameter(f"Repo path does not exist: {repo_path}")
    if not repo_path.is_dir():
        raise typer.BadParameter(f"Repo path is not a directory: {repo_path}")
    return repo_path


def _configure_logging(debug: bool) -> None:
    if not debug:
        return
    handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    logger = logging.getLogger("routewise")
    logger.setLevel(logging.DEBUG)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(handler)


@app.command()
def scan(
    repo: str = typer.Argument(..., help="Path to the JS/TS project to scan"),
    framework: Optional[list[str]] = typer.Option(
        None, "--framework", "-f", help="Only run these extractors (nextjs/trpc/nestjs/payload)"
    ),
    force: bool = typer.Option(False, help="Run extractors even if package.json does not list the framework"),
    router_factory: Optional[list[str]] = typer.Option(
        None, "--router-factory", help="tRPC router factory name (repeatable or comma-separated)"
    ),
    router_pattern: Optional[str] = typer.Option(
        None, "--router-pattern", help="Regex for identifiers that look like tRPC routers"
    ),
    trpc_base_path: str = typer.Option("/api/trpc", help="Base path tRPC is served under"),
    max_files: Optional[int] = typer.Option(None, help="Limit scanned files (debug)"),
    limit: int = typer.Option(200, help="Max rows to print"),
    format: str = typer.Option("table", help="Output format: table|json"),
    debug: bool = typer.Option(False, "--debug", help="Log extraction details to stderr"),
) -> None:
    repo_path = _repo_path(repo)
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")
    unknown = [f for f in framework or [] if f not in ALL_FRAMEWORKS]
    if unknown:
        raise typer.BadParameter(f"Unknown framework(s): {', '.join(unknown)}")

    _configure_logging(debug)
    options = ScanOptions(
        frameworks=list(framework) if framework else list(ALL_FRAMEWORKS),
        force=force,
        max_files=max_files,
        trpc_router_factories=list(router_factory or []),
        trpc_router_identifier_pattern=router_pattern,
        trpc_base_path=trpc_base_path,
    )
    try:
        result = run_scan(repo_path, options)
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    if fmt == "json":
        payload = [r.model_dump(by_alias=True, exclude_none=True) for r in result.routes]
        typer.echo(json.dumps(payload, indent=2))
        return

    console.print(f"[bold green]routewise[/bold green] scan: {escape(str(repo_path))}")
    detected = ", ".join(result.detection.detected) or "none"
    console.print(f"Detected frameworks: [bold]{escape(detected)}[/bold]")
    console.print(f"Source files parsed: {result.files_scanned}")
    for fw in result.failed:
        console.print(f"[red]Extraction failed for {escape(fw)}[/red] (rerun with --debug)")
    console.print(f"Routes found: [bold]{len(result.routes)}[/bold] (showing up to {limit})")

    if not result.routes:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("NAME")
    table.add_column("TYPE", no_wrap=True)
    table.add_column("FILE")

    for r in result.routes[:limit]:
        table.add_row(
            r.method,
            escape(r.path),
            escape(humanize_route_name(r)),
            r.type,
            escape(os.path.relpath(r.file_path, str(repo_path))),
        )

    console.print(table)
    if len(result.routes) > limit:
        console.print(f"  … and {len(result.routes) - limit} more")


@app.command()
def detect(
    repo: str = typer.Argument(..., help="Path to the JS/TS project"),
) -> None:
    repo_path = _repo_path(repo)
    detection = detect_frameworks(repo_path)

    table = Table(show_header=True, header_style="bold")
    table.add_column("FRAMEWORK", no_wrap=True)
    table.add_column("DETECTED", no_wrap=True)
    for fw in ALL_FRAMEWORKS:
        table.add_row(fw, "[green]yes[/green]" if detection[fw] else "no")
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
