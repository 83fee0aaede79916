"""
QUILL Context Gatherer

Ranks project files against a free-text query by path alone:

  1.0  a query term equals the file name   -> full content attached
  0.5  a query term appears in the path
  0.1  everything else
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Literal

from loguru import logger
from pydantic import BaseModel

from quill.workspace import Workspace
from quill.workspace.scanner import ProjectScanner

ContextTier = Literal["path", "summary", "full"]

EXACT_NAME_SCORE = 1.0
PATH_MATCH_SCORE = 0.5
DEFAULT_SCORE = 0.1
FULL_TIER_THRESHOLD = 0.8


class FileContext(BaseModel):
    path: str
    relevance: float
    tier: ContextTier = "path"
    content: str | None = None


class ContextManager:
    def __init__(self, workspace: Workspace, scanner: ProjectScanner | None = None):
        self.workspace = workspace
        self.scanner = scanner or ProjectScanner(workspace.root)

    def score(self, rel_path: str, terms: list[str]) -> float:
        lower_path = rel_path.lower()
        name = PurePosixPath(lower_path).name
        if any(t == name for t in terms):
            return EXACT_NAME_SCORE
        if any(t in lower_path for t in terms):
            return PATH_MATCH_SCORE
        return DEFAULT_SCORE

    def gather(self, query: str) -> list[FileContext]:
        """Score every scanned file against ``query``, most relevant first."""
        terms = query.lower().split()
        files: list[FileContext] = []

        for rel_path in self.scanner.scan():
            ctx = FileContext(path=rel_path, relevance=self.score(rel_path, terms))
            if ctx.relevance >= FULL_TIER_THRESHOLD:
                try:
                    ctx.content = self.workspace.read_text(rel_path)
                    ctx.tier = "full"
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"[CONTEXT] Failed to read {rel_path}: {e}")
            files.append(ctx)

        # sorted() is stable, so equal scores keep scan order
        return sorted(files, key=lambda f: f.relevance, reverse=True)
