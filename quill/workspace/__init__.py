"""
QUILL Workspace

Root-confined filesystem access. Every path is joined against a fixed
project root; anything that resolves outside it is rejected before any I/O.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


class WorkspaceError(Exception):
    pass


class AccessDeniedError(WorkspaceError):
    """Raised when a path resolves outside the project root."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Access denied (outside root): {path}")


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


class Workspace:
    """
    The project directory an agent session works in.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def resolve(self, path: str | Path = ".") -> Path:
        """Join ``path`` against the root, refusing anything that escapes it."""
        candidate = (self.root / path).resolve()
        if candidate != self.root and not candidate.is_relative_to(self.root):
            logger.warning(f"[WORKSPACE] Blocked path outside root: {path}")
            raise AccessDeniedError(str(path))
        return candidate

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).exists()

    def read_text(self, path: str | Path) -> str:
        return self.resolve(path).read_text(encoding="utf-8")

    def write_text(self, path: str | Path, content: str) -> Path:
        fpath = self.resolve(path)
        fpath.parent.mkdir(parents=True, exist_ok=True)
        fpath.write_text(content, encoding="utf-8")
        return fpath

    def mkdir(self, path: str | Path) -> Path:
        dpath = self.resolve(path)
        dpath.mkdir(parents=True, exist_ok=True)
        return dpath

    def list_dir(self, path: str | Path = ".") -> list[str]:
        dpath = self.resolve(path)
        return sorted(
            entry.name + ("/" if entry.is_dir() else "")
            for entry in dpath.iterdir()
        )

    def run_command(
        self,
        command: str,
        cwd: str | Path | None = None,
        timeout: int = 120,
    ) -> CommandResult:
        """Run a shell command inside the workspace."""
        workdir = self.resolve(cwd) if cwd else self.root
        logger.debug(f"[WORKSPACE] $ {command} (cwd={workdir})")
        result = subprocess.run(
            command,
            shell=True,
            cwd=workdir,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return CommandResult(result.returncode, result.stdout, result.stderr)

    def git(self, *args: str, check: bool = False, timeout: int = 60) -> CommandResult:
        result = subprocess.run(
            ["git", *args],
            cwd=self.root,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if check and result.returncode != 0:
            raise WorkspaceError(f"Git failed: git {' '.join(args)}\n{result.stderr}")
        return CommandResult(result.returncode, result.stdout, result.stderr)
