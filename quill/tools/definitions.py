"""
Built-in tool catalogue.

Each definition is the model-facing contract of one tool: a name, a one-line
description and a JSON-schema parameter object. Implementations live in
quill.tools.factory.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))


def _params(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _string(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

TODO_WRITE = ToolDefinition(
    name="todo_write",
    description="Add a task to the plan, or update the status of an existing task.",
    parameters=_params(
        {
            "action": _string("Either 'add' or 'update'.", enum=["add", "update"]),
            "text": _string("Task text (required for add)."),
            "id": _string("Task id (required for update)."),
            "status": _string(
                "New status (for update).",
                enum=["pending", "in-progress", "completed", "failed"],
            ),
        },
        ["action"],
    ),
)

TODO_READ = ToolDefinition(
    name="todo_read",
    description="Show the current plan and the status of each task.",
)

# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------

READ_FILE = ToolDefinition(
    name="read_file",
    description="Read a file from the project.",
    parameters=_params({"path": _string("File path relative to the project root.")}, ["path"]),
)

LIST_DIR = ToolDefinition(
    name="list_dir",
    description="List the entries of a directory.",
    parameters=_params({"path": _string("Directory path relative to the project root.")}, ["path"]),
)

CREATE_FILE = ToolDefinition(
    name="create_file",
    description="Create a new file. Fails if the file already exists.",
    parameters=_params(
        {
            "path": _string("Path of the new file."),
            "content": _string("Initial content (optional)."),
        },
        ["path"],
    ),
)

WRITE_FILE = ToolDefinition(
    name="write_file",
    description="Replace the entire content of a file.",
    parameters=_params(
        {
            "path": _string("File path."),
            "content": _string("Complete new content."),
        },
        ["path", "content"],
    ),
)

EDIT_FILE = ToolDefinition(
    name="edit_file",
    description="Change part of a file by applying a unified diff.",
    parameters=_params(
        {
            "path": _string("File path."),
            "diff": _string("Unified diff to apply to the file."),
        },
        ["path", "diff"],
    ),
)

CREATE_DIR = ToolDefinition(
    name="create_dir",
    description="Create a directory, including missing parents.",
    parameters=_params({"path": _string("Directory path.")}, ["path"]),
)

# ---------------------------------------------------------------------------
# Search & discovery
# ---------------------------------------------------------------------------

SEARCH_TEXT = ToolDefinition(
    name="search_text",
    description="Search project files for text or a regular expression.",
    parameters=_params(
        {
            "query": _string("Text or regex to look for."),
            "path": _string("Only search files under this path (optional)."),
        },
        ["query"],
    ),
)

SEARCH_FILES = ToolDefinition(
    name="search_files",
    description="Find project files whose path matches a name fragment or glob.",
    parameters=_params({"pattern": _string("Glob pattern or part of a file name.")}, ["pattern"]),
)

# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

RUN_COMMAND = ToolDefinition(
    name="run_command",
    description="Run a shell command in the project.",
    parameters=_params(
        {
            "command": _string("Command line to execute."),
            "cwd": _string("Working directory relative to the project root (optional)."),
        },
        ["command"],
    ),
)

# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

SCAN_CONTEXT = ToolDefinition(
    name="scan_context",
    description="List every project file that is not ignored.",
    parameters=_params({"root": _string("Unused; scanning always starts at the project root.")}),
)

SUMMARIZE_FILE = ToolDefinition(
    name="summarize_file",
    description="Show the first lines of a file.",
    parameters=_params({"path": _string("File path.")}, ["path"]),
)

# ---------------------------------------------------------------------------
# Git / tests / formatting
# ---------------------------------------------------------------------------

GIT_DIFF = ToolDefinition(
    name="git_diff",
    description="Show unstaged changes (git diff).",
)

GIT_COMMIT = ToolDefinition(
    name="git_commit",
    description="Commit the staged changes.",
    parameters=_params({"message": _string("Commit message.")}, ["message"]),
)

TEST_RUN = ToolDefinition(
    name="test_run",
    description="Run the project's tests.",
    parameters=_params({"command": _string("Test command to use instead of the detected one (optional).")}),
)

FORMAT_FILE = ToolDefinition(
    name="format_file",
    description="Format a file with the configured formatter.",
    parameters=_params({"path": _string("File path.")}, ["path"]),
)
