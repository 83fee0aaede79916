"""
QUILL Patch Engine

Applies a unified diff to one file in the workspace. The pre-patch content
is backed up before anything else happens, every hunk must locate its
context, and the target is only written once the whole patch has applied.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from quill.workspace import Workspace

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_FILE_HEADERS = ("--- ", "+++ ", "diff ", "index ", "new file mode", "deleted file mode")


class PatchError(Exception):
    pass


class PatchContextMismatch(PatchError):
    """Raised internally when a hunk's context cannot be located."""


@dataclass
class Hunk:
    old_start: int
    lines: list[str] = field(default_factory=list)
    # Line counts from the header; None for a bare "@@"
    old_count: int | None = None
    new_count: int | None = None

    @property
    def before(self) -> list[str]:
        return [ln[1:] for ln in self.lines if ln[:1] in (" ", "-")]

    @property
    def after(self) -> list[str]:
        return [ln[1:] for ln in self.lines if ln[:1] in (" ", "+")]


@dataclass
class PatchOperation:
    target_path: Path
    diff_text: str
    backup_path: Path | None = None
    outcome: bool = False


# ---------------------------------------------------------------------------
# Diff parsing
# ---------------------------------------------------------------------------

def _strip_fences(text: str) -> str:
    cleaned = text.strip("\n")
    if cleaned.lstrip().startswith("```"):
        lines = [l for l in cleaned.split("\n") if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def _trim_blank_tail(hunk: Hunk, blank_tail: int) -> None:
    """Drop trailing bare blank lines the header counts do not call for."""
    while blank_tail:
        if hunk.old_count is not None and hunk.new_count is not None:
            if len(hunk.before) <= hunk.old_count and len(hunk.after) <= hunk.new_count:
                return
        hunk.lines.pop()
        blank_tail -= 1


def parse_hunks(diff_text: str) -> list[Hunk]:
    """Split a unified diff into hunks. File headers are skipped."""
    lines = _strip_fences(diff_text).splitlines()

    hunks: list[Hunk] = []
    current: Hunk | None = None
    blank_tail = 0
    for line in lines:
        header = _HUNK_HEADER.match(line)
        if line.startswith("@@"):
            if current is not None:
                _trim_blank_tail(current, blank_tail)
            blank_tail = 0
            if header:
                old_count, new_count = header.group(2), header.group(4)
                current = Hunk(
                    old_start=int(header.group(1)),
                    old_count=int(old_count) if old_count is not None else 1,
                    new_count=int(new_count) if new_count is not None else 1,
                )
            else:
                # Header without line numbers
                current = Hunk(old_start=0)
            hunks.append(current)
            continue
        if current is None:
            if line.startswith(_FILE_HEADERS) or not line.strip():
                continue
            raise PatchError(f"Unexpected line before first hunk: {line[:80]}")
        if line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        if line[:1] in (" ", "+", "-"):
            current.lines.append(line)
            blank_tail = 0
        elif line == "":
            # Bare blank line: empty context
            current.lines.append(" ")
            blank_tail += 1
        elif line.startswith(_FILE_HEADERS):
            _trim_blank_tail(current, blank_tail)
            blank_tail = 0
            current = None
        else:
            raise PatchError(f"Invalid patch line: {line[:80]}")

    if current is not None:
        _trim_blank_tail(current, blank_tail)

    return [h for h in hunks if h.lines]


# ---------------------------------------------------------------------------
# Hunk application
# ---------------------------------------------------------------------------

def _find_block(haystack: list[str], needle: list[str], start: int, hint: int) -> int:
    """Index of ``needle`` in ``haystack`` at or after ``start``, closest to ``hint``."""
    limit = len(haystack) - len(needle) + 1
    for normalize in (lambda s: s, lambda s: s.rstrip()):
        target = [normalize(n) for n in needle]
        matches = [
            idx for idx in range(start, limit)
            if [normalize(h) for h in haystack[idx:idx + len(needle)]] == target
        ]
        if matches:
            return min(matches, key=lambda idx: abs(idx - hint))
    return -1


def apply_hunks(text: str, hunks: list[Hunk]) -> str:
    """Return ``text`` with every hunk applied, or raise PatchContextMismatch."""
    if not hunks:
        raise PatchContextMismatch("Diff contains no hunks.")

    crlf = text.count("\r\n")
    newline = "\r\n" if crlf > text.count("\n") - crlf else "\n"
    had_trailing_newline = text.endswith("\n")
    lines = text.split(newline) if text else []
    if had_trailing_newline and lines and lines[-1] == "":
        lines.pop()

    cursor = 0
    offset = 0
    for number, hunk in enumerate(hunks, start=1):
        before, after = hunk.before, hunk.after
        hint = max(hunk.old_start - 1, 0) + offset

        if not before:
            # Pure insertion: the header line number is all we have
            at = min(max(hunk.old_start, 0) + offset, len(lines))
            if at < cursor:
                raise PatchContextMismatch(f"Hunk {number}: insertion point precedes previous hunk.")
        else:
            at = _find_block(lines, before, cursor, hint)
            if at < 0:
                raise PatchContextMismatch(f"Hunk {number}: context not found.")

        lines[at:at + len(before)] = after
        cursor = at + len(after)
        offset += len(after) - len(before)

    patched = newline.join(lines)
    if had_trailing_newline and lines:
        patched += newline
    return patched


# ---------------------------------------------------------------------------
# Patcher
# ---------------------------------------------------------------------------

class Patcher:
    def __init__(self, workspace: Workspace, backup_dir: str = ".quill/backups"):
        self.workspace = workspace
        self.backup_dir = backup_dir
        self.last_operation: PatchOperation | None = None

    def apply_patch(self, path: str, diff_text: str) -> bool:
        """
        Apply ``diff_text`` to ``path``.

        Returns True when the file was rewritten with the patched content,
        False when any hunk failed to apply (the file is left untouched).
        Raises FileNotFoundError when there is no file to patch and
        AccessDeniedError when ``path`` escapes the workspace.
        """
        target = self.workspace.resolve(path)
        op = PatchOperation(target_path=target, diff_text=diff_text)
        self.last_operation = op

        if not target.is_file():
            raise FileNotFoundError(f"Cannot patch missing file: {path}")
        raw = target.read_bytes()

        op.backup_path = self._create_backup(path, raw)

        try:
            patched = apply_hunks(raw.decode("utf-8"), parse_hunks(diff_text))
        except PatchError as e:
            logger.warning(f"[PATCH] Failed to apply patch to {path}: {e}")
            return False

        target.write_bytes(patched.encode("utf-8"))
        op.outcome = True
        logger.info(f"[PATCH] Applied patch to {path}")
        return True

    def _create_backup(self, path: str, content: bytes) -> Path:
        backup_dir = self.workspace.mkdir(self.backup_dir)
        timestamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
        safe_name = re.sub(r"[\\/]", "_", path)
        backup_path = backup_dir / f"{safe_name}_{timestamp}.bak"
        backup_path.write_bytes(content)
        logger.debug(f"[PATCH] Backup written: {backup_path}")
        return backup_path
