import json
from pathlib import Path

from routewise.repo.framework_detector import detect_frameworks, has_dependency


def write_manifest(p: Path, deps=None, dev=None) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps({"dependencies": deps or {}, "devDependencies": dev or {}}), encoding="utf-8")


def test_detects_from_root_manifest(tmp_path: Path):
    write_manifest(tmp_path / "package.json", deps={"next": "14.0.0"}, dev={"@trpc/server": "^10"})

    d = detect_frameworks(tmp_path)
    assert d.nextjs and d.trpc
    assert not d.nestjs and not d.payload
    assert d.detected == ["nextjs", "trpc"]


def test_detects_from_workspace_manifests(tmp_path: Path):
    write_manifest(tmp_path / "package.json")
    write_manifest(tmp_path / "apps" / "api" / "package.json", deps={"@nestjs/common": "^10"})
    write_manifest(tmp_path / "packages" / "cms" / "package.json", deps={"payload": "^2"})

    d = detect_frameworks(tmp_path)
    assert d.nestjs and d.payload
    assert d["nestjs"] is True
    assert d["nextjs"] is False


def test_missing_or_broken_manifest_means_not_detected(tmp_path: Path):
    assert detect_frameworks(tmp_path).detected == []

    (tmp_path / "package.json").write_text("{ not json", encoding="utf-8")
    assert detect_frameworks(tmp_path).detected == []
    assert has_dependency(tmp_path, ["next"]) is False


def test_non_object_manifest_is_ignored(tmp_path: Path):
    (tmp_path / "package.json").write_text("[1, 2, 3]", encoding="utf-8")
    assert has_dependency(tmp_path, ["next"]) is False
