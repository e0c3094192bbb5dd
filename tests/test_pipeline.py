from pathlib import Path
import json
import textwrap

import pytest

from routewise.domain.models import ScanOptions
from routewise.orchestrator import pipeline
from routewise.extractors.nestjs.extractor import parse_nestjs_routes
from routewise.extractors.nextjs.extractor import parse_nextjs_routes
from routewise.extractors.payload.extractor import parse_payload_routes
from routewise.extractors.trpc.extractor import parse_trpc_routes
from routewise.orchestrator.pipeline import run_scan


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def make_repo(root: Path, deps: dict[str, str]) -> None:
    write(root / "package.json", json.dumps({"dependencies": deps}))
    write(
        root / "app" / "api" / "users" / "route.ts",
        """
        export async function GET() { return Response.json([]); }
        """,
    )
    write(
        root / "src" / "items.controller.ts",
        """
        @Controller('items')
        export class ItemsController {
          @Post()
          create(@Body() body: unknown) {}
        }
        """,
    )


def test_run_scan_detects_and_aggregates(tmp_path: Path):
    make_repo(tmp_path, {"next": "14", "@nestjs/common": "10"})

    result = run_scan(tmp_path)
    assert result.frameworks == ["nextjs", "nestjs"]
    assert result.files_scanned == 2
    assert result.failed == []
    assert [(r.method, r.path, r.type) for r in result.routes] == [
        ("GET", "/api/users", "file-router-app"),
        ("POST", "/items", "controller"),
    ]
    assert result.routes[1].body == "{}"


def test_run_scan_framework_filter(tmp_path: Path):
    make_repo(tmp_path, {"next": "14", "@nestjs/common": "10"})

    result = run_scan(tmp_path, ScanOptions(frameworks=["nestjs"]))
    assert result.frameworks == ["nestjs"]
    assert [r.path for r in result.routes] == ["/items"]


def test_run_scan_without_detected_frameworks(tmp_path: Path):
    make_repo(tmp_path, {"react": "18"})

    result = run_scan(tmp_path)
    assert result.frameworks == []
    assert result.files_scanned == 0
    assert result.routes == []

    forced = run_scan(tmp_path, ScanOptions(force=True))
    assert forced.frameworks == ["nextjs", "trpc", "nestjs", "payload"]
    assert {r.path for r in forced.routes} == {"/api/users", "/items"}


def test_run_scan_rejects_bad_root(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        run_scan(tmp_path / "missing")

    f = tmp_path / "file.txt"
    f.write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        run_scan(f)


@pytest.mark.parametrize(
    "parse", [parse_nextjs_routes, parse_trpc_routes, parse_nestjs_routes, parse_payload_routes]
)
def test_framework_entry_points_reject_missing_root(tmp_path: Path, parse):
    with pytest.raises(FileNotFoundError):
        parse(tmp_path / "missing")
    with pytest.raises(FileNotFoundError):
        parse(tmp_path / "missing", ScanOptions(force=True))


def test_failing_extractor_does_not_stop_the_scan(tmp_path: Path, monkeypatch):
    make_repo(tmp_path, {"next": "14", "@nestjs/common": "10"})

    def boom(project, options=None, logger=None):
        raise RuntimeError("boom")

    monkeypatch.setitem(pipeline.EXTRACTORS, "nextjs", boom)
    result = run_scan(tmp_path)
    assert result.failed == ["nextjs"]
    assert [r.path for r in result.routes] == ["/items"]


def test_debug_sink_sees_the_run(tmp_path: Path):
    make_repo(tmp_path, {"next": "14"})
    lines: list[str] = []

    run_scan(tmp_path, ScanOptions(debug=lines.append))
    assert any("Found exported GET handler" in line for line in lines)
