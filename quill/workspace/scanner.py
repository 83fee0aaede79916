"""
QUILL Project Scanner

Walks the project and returns a flat list of relative file paths, skipping
build output, caches and anything the root .gitignore excludes.
"""

from __future__ import annotations

import os
from pathlib import Path

import pathspec
from loguru import logger

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ALWAYS_IGNORE = [".git", "node_modules", ".quill", "dist", "coverage"]

SKIP_DIRS = {
    ".git", ".quill", ".venv", "venv", "env",
    "node_modules", "target", "dist", "build", "__pycache__",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    ".next", ".nuxt", "coverage",
}


class ProjectScanner:
    def __init__(self, root: Path, extra_ignores: list[str] | None = None):
        self.root = Path(root).resolve()
        self.spec = self._load_spec(extra_ignores or [])

    def _load_spec(self, extra_ignores: list[str]) -> pathspec.PathSpec:
        lines = list(ALWAYS_IGNORE) + list(extra_ignores)
        gitignore = self.root / ".gitignore"
        if gitignore.is_file():
            try:
                lines.extend(gitignore.read_text(encoding="utf-8", errors="replace").splitlines())
            except OSError as e:
                logger.warning(f"[SCANNER] Could not read .gitignore: {e}")
        return pathspec.PathSpec.from_lines("gitwildmatch", lines)

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        check = rel_path + "/" if is_dir else rel_path
        return self.spec.match_file(check)

    def scan(self) -> list[str]:
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            prefix = "" if rel_dir == "." else rel_dir + "/"

            # Prune in place so os.walk never descends into ignored trees
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in SKIP_DIRS and not self.is_ignored(prefix + d, is_dir=True)
            )

            for name in filenames:
                rel_path = prefix + name
                if not self.is_ignored(rel_path):
                    files.append(rel_path)

        files.sort()
        logger.debug(f"[SCANNER] {len(files)} files in {self.root}")
        return files
