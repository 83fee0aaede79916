"""
QUILL Tool Factory

Builds the session's ToolRegistry: every built-in definition paired with
its implementation, mutating tools wrapped by the Permission Gate.
"""

from __future__ import annotations

import fnmatch
import functools
import re
import shlex
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from quill.config_loader import ToolsConfig
from quill.editing.patcher import Patcher
from quill.planning import TodoManager
from quill.tools import definitions as defs
from quill.tools.permissions import PermissionGate
from quill.tools.registry import ToolExecutor, ToolRegistry
from quill.workspace import AccessDeniedError, CommandResult, Workspace
from quill.workspace.scanner import ProjectScanner

ACCESS_DENIED = "Error: Access denied (outside root)."

TODO_STATUSES = ("pending", "in-progress", "completed", "failed")

DEFAULT_GATED_TOOLS = (
    "create_file",
    "write_file",
    "edit_file",
    "create_dir",
    "run_command",
    "git_commit",
    "test_run",
    "format_file",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _confined(executor: ToolExecutor) -> ToolExecutor:
    """Turn a root escape into the agent-visible denial string."""
    @functools.wraps(executor)
    def wrapper(args: dict[str, Any]) -> str:
        try:
            return executor(args)
        except AccessDeniedError:
            return ACCESS_DENIED
    return wrapper


def _format_command_result(result: CommandResult) -> str:
    return f"Exit code: {result.returncode}\nSTDOUT:\n{result.stdout}\nSTDERR:\n{result.stderr}"


def truncate_lines(content: str, max_lines: int) -> str:
    lines = content.split("\n")
    if len(lines) <= max_lines:
        return content
    head = "\n".join(lines[:max_lines])
    return f"{head}\n\n... (truncated {len(lines) - max_lines} lines)"


def detect_test_command(repo: Path) -> str | None:
    """Auto-detect the test command based on repo contents."""
    if (repo / "Cargo.toml").exists():
        return "cargo test"
    if (repo / "package.json").exists():
        return "npm test"
    if (repo / "pyproject.toml").exists() or (repo / "setup.py").exists():
        return "python -m pytest"
    if (repo / "go.mod").exists():
        return "go test ./..."
    if (repo / "Makefile").exists():
        return "make test"
    return None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_tool_registry(
    workspace: Workspace,
    todos: TodoManager,
    gate: PermissionGate | None = None,
    scanner: ProjectScanner | None = None,
    patcher: Patcher | None = None,
    tools_config: ToolsConfig | None = None,
    gated_tools: list[str] | tuple[str, ...] = DEFAULT_GATED_TOOLS,
) -> ToolRegistry:
    registry = ToolRegistry()
    cfg = tools_config or ToolsConfig()
    gate = gate or PermissionGate()
    scanner = scanner or ProjectScanner(workspace.root)
    patcher = patcher or Patcher(workspace)
    gated = set(gated_tools)

    def register(definition: defs.ToolDefinition) -> Callable[[ToolExecutor], ToolExecutor]:
        def decorator(executor: ToolExecutor) -> ToolExecutor:
            wrapped = _confined(executor)
            if definition.name in gated:
                wrapped = gate.wrap(definition.name, wrapped)
            registry.register(definition, wrapped)
            return executor
        return decorator

    # -- Planning -----------------------------------------------------------

    @register(defs.TODO_WRITE)
    def todo_write(args: dict[str, Any]) -> str:
        action = args.get("action")
        if action == "add":
            text = str(args.get("text") or "").strip()
            if not text:
                return "Error: 'text' is required to add a todo."
            todos.add(text)
        elif action == "update":
            status = args.get("status")
            if status not in TODO_STATUSES:
                return f"Error: status must be one of {', '.join(TODO_STATUSES)}."
            if not todos.update_status(str(args.get("id", "")), status):
                return f"Error: no todo with id '{args.get('id')}'."
        else:
            return "Error: action must be 'add' or 'update'."
        return "Todo updated."

    @register(defs.TODO_READ)
    def todo_read(args: dict[str, Any]) -> str:
        return todos.to_json()

    # -- Filesystem ---------------------------------------------------------

    @register(defs.READ_FILE)
    def read_file(args: dict[str, Any]) -> str:
        return workspace.read_text(args["path"])

    @register(defs.LIST_DIR)
    def list_dir(args: dict[str, Any]) -> str:
        return "\n".join(workspace.list_dir(args.get("path") or "."))

    @register(defs.CREATE_FILE)
    def create_file(args: dict[str, Any]) -> str:
        if workspace.exists(args["path"]):
            return "Error: File already exists. Use write_file to overwrite."
        workspace.write_text(args["path"], args.get("content") or "")
        return f"File created at {args['path']}"

    @register(defs.WRITE_FILE)
    def write_file(args: dict[str, Any]) -> str:
        workspace.write_text(args["path"], args["content"])
        return f"File written to {args['path']}"

    @register(defs.EDIT_FILE)
    def edit_file(args: dict[str, Any]) -> str:
        if patcher.apply_patch(args["path"], args["diff"]):
            return "Patch applied successfully."
        return "Patch application failed (check context/backups)."

    @register(defs.CREATE_DIR)
    def create_dir(args: dict[str, Any]) -> str:
        workspace.mkdir(args["path"])
        return f"Directory created: {args['path']}"

    # -- Search & discovery -------------------------------------------------

    @register(defs.SEARCH_TEXT)
    def search_text(args: dict[str, Any]) -> str:
        pattern = re.compile(args["query"])
        scope = args.get("path")
        prefix = workspace.relative(workspace.resolve(scope)) if scope else ""
        if prefix == ".":
            prefix = ""

        matches: list[str] = []
        for rel_path in scanner.scan():
            if prefix and not (rel_path == prefix or rel_path.startswith(prefix + "/")):
                continue
            try:
                content = workspace.resolve(rel_path).read_text(encoding="utf-8", errors="ignore")
            except OSError as e:
                logger.debug(f"[TOOLS] search_text skipped {rel_path}: {e}")
                continue
            if pattern.search(content):
                matches.append(rel_path)
                if len(matches) >= cfg.search_max_results:
                    break

        if not matches:
            return "No matches found."
        return "Found in:\n" + "\n".join(matches)

    @register(defs.SEARCH_FILES)
    def search_files(args: dict[str, Any]) -> str:
        pattern = args["pattern"]
        files = scanner.scan()
        if any(ch in pattern for ch in "*?["):
            hits = [f for f in files if fnmatch.fnmatch(f, pattern) or fnmatch.fnmatch(Path(f).name, pattern)]
        else:
            needle = pattern.lower()
            hits = [f for f in files if needle in f.lower()]
        return "\n".join(hits) if hits else "No files found."

    # -- Commands -----------------------------------------------------------

    @register(defs.RUN_COMMAND)
    def run_command(args: dict[str, Any]) -> str:
        result = workspace.run_command(args["command"], cwd=args.get("cwd"), timeout=cfg.command_timeout)
        return _format_command_result(result)

    # -- Context ------------------------------------------------------------

    @register(defs.SCAN_CONTEXT)
    def scan_context(args: dict[str, Any]) -> str:
        files = scanner.scan()
        return f"Project Files ({len(files)}):\n" + "\n".join(files)

    @register(defs.SUMMARIZE_FILE)
    def summarize_file(args: dict[str, Any]) -> str:
        content = workspace.read_text(args["path"])
        return f"Summary (first {cfg.summary_lines} lines):\n" + truncate_lines(content, cfg.summary_lines)

    # -- Git / tests / formatting -------------------------------------------

    @register(defs.GIT_DIFF)
    def git_diff(args: dict[str, Any]) -> str:
        result = workspace.git("diff")
        if result.returncode != 0:
            return f"Git error: {result.stderr.strip()}"
        return result.stdout or "No changes."

    @register(defs.GIT_COMMIT)
    def git_commit(args: dict[str, Any]) -> str:
        result = workspace.git("commit", "-m", args["message"])
        if result.returncode != 0:
            return f"Commit error: {(result.stderr or result.stdout).strip()}"
        return result.stdout

    @register(defs.TEST_RUN)
    def test_run(args: dict[str, Any]) -> str:
        command = args.get("command") or cfg.test_command or detect_test_command(workspace.root)
        if not command:
            return "Error: no test command configured or detected."
        result = workspace.run_command(command, timeout=cfg.command_timeout)
        return f"Test Results ({command}):\n" + _format_command_result(result)

    @register(defs.FORMAT_FILE)
    def format_file(args: dict[str, Any]) -> str:
        target = workspace.resolve(args["path"])
        command = cfg.format_command.format(path=shlex.quote(workspace.relative(target)))
        result = workspace.run_command(command, timeout=cfg.command_timeout)
        if result.returncode != 0:
            return f"Format error: {(result.stderr or result.stdout).strip()}"
        return f"Formatted {args['path']}"

    logger.debug(f"[TOOLS] {len(registry)} tools registered ({len(gated)} gated)")
    return registry
