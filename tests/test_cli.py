from pathlib import Path
import json
import textwrap

from typer.testing import CliRunner

from routewise.cli import app

runner = CliRunner()


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def make_repo(root: Path) -> None:
    write(root / "package.json", '{"dependencies": {"next": "14.2.0"}}')
    write(
        root / "pages" / "api" / "orders" / "index.ts",
        """
        export default function handler(req, res) {
          if (req.method === 'POST') return res.status(201).end();
        }
        """,
    )


def test_scan_json_output(tmp_path: Path):
    make_repo(tmp_path)

    result = runner.invoke(app, ["scan", str(tmp_path), "--format", "json"])
    assert result.exit_code == 0, result.output
    routes = json.loads(result.stdout)
    assert routes == [
        {
            "name": "POST /api/orders",
            "path": "/api/orders",
            "method": "POST",
            "filePath": str(tmp_path.resolve() / "pages/api/orders/index.ts"),
            "type": "file-router-pages",
        }
    ]


def test_scan_table_output(tmp_path: Path):
    make_repo(tmp_path)

    result = runner.invoke(app, ["scan", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Detected frameworks: nextjs" in result.stdout
    assert "Routes found: 1" in result.stdout
    assert "POST" in result.stdout


def test_scan_rejects_bad_arguments(tmp_path: Path):
    assert runner.invoke(app, ["scan", str(tmp_path / "missing")]).exit_code != 0
    assert runner.invoke(app, ["scan", str(tmp_path), "--format", "xml"]).exit_code != 0
    assert runner.invoke(app, ["scan", str(tmp_path), "-f", "rails"]).exit_code != 0


def test_detect_lists_frameworks(tmp_path: Path):
    make_repo(tmp_path)

    result = runner.invoke(app, ["detect", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "nextjs" in result.stdout
    assert "payload" in result.stdout
    assert "yes" in result.stdout
