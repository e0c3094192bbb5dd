from __future__ import annotations

from pathlib import Path

DEFAULT_IGNORES = {
    ".git",
    ".next",
    ".turbo",
    ".vercel",
    ".svelte-kit",
    ".cache",
    "node_modules",
    "dist",
    "build",
    "out",
    "coverage",
    "__pycache__",
}


def should_ignore_dir(dir_path: Path) -> bool:
    return dir_path.name in DEFAULT_IGNORES


def should_ignore_file(name: str) -> bool:
    # type declarations never carry runtime routes
    return name.endswith((".d.ts", ".d.mts", ".d.cts"))
