from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Optional

from routewise.logs import LoggerLike, resolve_logger
from routewise.repo.ignore import should_ignore_dir, should_ignore_file

SOURCE_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")

MAX_SOURCE_BYTES = 2_000_000


def scan_source_files(repo_path: Path, max_files: int | None = None) -> list[str]:
    """
    Return absolute paths (as strings) of JS/TS source files under repo_path,
    sorted so repeated scans visit files in the same order.
    """
    out: list[str] = []
    for root, dirs, files in _walk(repo_path):
        root_p = Path(root)

        # prune ignored dirs
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(root_p / d))

        for f in sorted(files):
            if not f.endswith(SOURCE_EXTENSIONS) or should_ignore_file(f):
                continue
            out.append(str((root_p / f).resolve()))
            if max_files is not None and len(out) >= max_files:
                return out
    return out


def _walk(repo_path: Path):
    # Separate helper to make unit testing easier (can be mocked)
    return os.walk(repo_path)


def resolve_repo_root(root: Path | str) -> Path:
    """Absolute root directory; a missing or non-directory root raises."""
    root_path = Path(root).expanduser().resolve()
    if not root_path.exists():
        raise FileNotFoundError(f"Repo path does not exist: {root_path}")
    if not root_path.is_dir():
        raise NotADirectoryError(f"Repo path is not a directory: {root_path}")
    return root_path


def read_source(path: str, max_bytes: int = MAX_SOURCE_BYTES, logger: Optional[LoggerLike] = None) -> Optional[bytes]:
    """File contents, or None when unreadable or larger than max_bytes (bundles, generated code)."""
    try:
        with open(path, "rb") as f:
            data = f.read(max_bytes + 1)
    except OSError:
        return None
    if len(data) > max_bytes:
        resolve_logger(logger).warning("Skipping %s: larger than %d bytes", path, max_bytes)
        return None
    return data


def read_sources(paths: Iterable[str], workers: int = 8) -> dict[str, Optional[bytes]]:
    """
    Read many files with overlapping I/O. Unreadable files map to None so the
    caller can log and skip them.
    """
    paths = list(paths)
    if len(paths) < 2 or workers <= 1:
        return {p: read_source(p) for p in paths}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return dict(zip(paths, executor.map(read_source, paths)))
