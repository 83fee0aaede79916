import json
from unittest.mock import MagicMock

import pytest

from quill.config_loader import ToolsConfig
from quill.tools.factory import ACCESS_DENIED, create_tool_registry, detect_test_command, truncate_lines
from quill.tools.permissions import PermissionGate, PermissionResponse

BUILTIN_TOOLS = {
    "todo_write", "todo_read", "read_file", "list_dir", "create_file",
    "write_file", "edit_file", "create_dir", "search_text", "search_files",
    "run_command", "scan_context", "summarize_file", "git_diff",
    "git_commit", "test_run", "format_file",
}


def test_all_builtin_tools_registered(registry):
    assert {d.name for d in registry.get_definitions()} == BUILTIN_TOOLS


def test_write_then_read(registry, workspace):
    assert registry.execute("write_file", {"path": "a.txt", "content": "hello"}) == "File written to a.txt"
    assert registry.execute("read_file", {"path": "a.txt"}) == "hello"


def test_create_file_refuses_to_overwrite(registry, workspace):
    assert registry.execute("create_file", {"path": "new.txt", "content": "v1"}) == "File created at new.txt"
    result = registry.execute("create_file", {"path": "new.txt", "content": "v2"})

    assert result == "Error: File already exists. Use write_file to overwrite."
    assert (workspace.root / "new.txt").read_text(encoding="utf-8") == "v1"


def test_read_missing_file_is_error_string(registry):
    assert registry.execute("read_file", {"path": "ghost.txt"}).startswith("Error executing tool 'read_file'")


@pytest.mark.parametrize("tool,args", [
    ("read_file", {"path": "../../etc/passwd"}),
    ("write_file", {"path": "../escape.txt", "content": "x"}),
    ("list_dir", {"path": ".."}),
    ("create_dir", {"path": "../sibling"}),
])
def test_paths_outside_root_are_denied(registry, workspace, tool, args):
    assert registry.execute(tool, args) == ACCESS_DENIED
    assert not (workspace.root.parent / "escape.txt").exists()
    assert not (workspace.root.parent / "sibling").exists()


def test_edit_file_reports_outcome(registry, workspace):
    (workspace.root / "f.js").write_text("function f(){return 1}\n", encoding="utf-8")
    diff = "@@ -1 +1 @@\n-function f(){return 1}\n+function f(){return 2}\n"
    bad = "@@ -1 +1 @@\n-nothing like this\n+x\n"

    assert registry.execute("edit_file", {"path": "f.js", "diff": diff}) == "Patch applied successfully."
    assert registry.execute("edit_file", {"path": "f.js", "diff": bad}) == "Patch application failed (check context/backups)."


def test_edit_missing_file_is_error_string(registry):
    result = registry.execute("edit_file", {"path": "ghost.js", "diff": "@@ -1 +1 @@\n-a\n+b\n"})
    assert result.startswith("Error executing tool 'edit_file'")


def test_todo_round_trip(registry, todos):
    assert registry.execute("todo_write", {"action": "add", "text": "write tests"}) == "Todo updated."
    todo_id = todos.list()[0].id

    assert registry.execute("todo_write", {"action": "update", "id": todo_id, "status": "completed"}) == "Todo updated."

    items = json.loads(registry.execute("todo_read", {}))
    assert items == [{"id": todo_id, "text": "write tests", "status": "completed"}]


def test_todo_write_rejects_bad_input(registry):
    assert registry.execute("todo_write", {"action": "remove"}).startswith("Error:")
    assert registry.execute("todo_write", {"action": "update", "id": "nope", "status": "completed"}).startswith("Error:")
    assert registry.execute("todo_write", {"action": "update", "id": "x", "status": "maybe"}).startswith("Error:")


def test_search_text_and_files(registry, workspace):
    workspace.write_text("src/app.py", "def handler():\n    return 1\n")
    workspace.write_text("src/other.py", "x = 2\n")
    workspace.write_text("README.md", "docs\n")

    assert registry.execute("search_text", {"query": r"def \w+"}) == "Found in:\nsrc/app.py"
    assert registry.execute("search_text", {"query": "nothing-here"}) == "No matches found."
    assert registry.execute("search_files", {"pattern": "*.py"}) == "src/app.py\nsrc/other.py"
    assert registry.execute("search_files", {"pattern": "read"}) == "README.md"


def test_scan_context_lists_files(registry, workspace):
    workspace.write_text("a.py", "")
    workspace.write_text("b/c.py", "")

    assert registry.execute("scan_context", {}) == "Project Files (2):\na.py\nb/c.py"


def test_summarize_file_truncates(workspace, todos):
    registry = create_tool_registry(workspace, todos, tools_config=ToolsConfig(summary_lines=2))
    workspace.write_text("long.txt", "1\n2\n3\n4")

    result = registry.execute("summarize_file", {"path": "long.txt"})

    assert result.startswith("Summary (first 2 lines):\n1\n2")
    assert "truncated 2 lines" in result


def test_run_command_formats_result(registry):
    result = registry.execute("run_command", {"command": "echo out && echo err 1>&2"})
    assert result.startswith("Exit code: 0\nSTDOUT:\nout")
    assert "STDERR:\nerr" in result


def test_gated_tool_denied_does_not_write(workspace, todos, event_bus):
    approver = MagicMock(return_value=PermissionResponse(allowed=False, feedback="not now"))
    registry = create_tool_registry(workspace, todos, gate=PermissionGate(approver, event_bus=event_bus))

    result = registry.execute("write_file", {"path": "a.txt", "content": "x"})

    assert result == "User denied permission with feedback: not now"
    assert not (workspace.root / "a.txt").exists()


def test_read_only_tools_are_not_gated(workspace, todos, event_bus):
    approver = MagicMock()
    registry = create_tool_registry(workspace, todos, gate=PermissionGate(approver, event_bus=event_bus))
    workspace.write_text("a.txt", "hi")

    assert registry.execute("read_file", {"path": "a.txt"}) == "hi"
    approver.assert_not_called()


def test_truncate_lines_keeps_short_content():
    assert truncate_lines("a\nb", 5) == "a\nb"


def test_detect_test_command(tmp_path):
    assert detect_test_command(tmp_path) is None
    (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")
    assert detect_test_command(tmp_path) == "python -m pytest"
