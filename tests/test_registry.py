import pytest

from quill.tools.definitions import ToolDefinition, WRITE_FILE
from quill.tools.registry import ToolNotFoundError, ToolRegistry

ECHO = ToolDefinition(
    name="echo",
    description="Echo a value.",
    parameters={
        "type": "object",
        "properties": {"value": {"type": "string"}},
        "required": ["value"],
    },
)


def test_execute_returns_executor_output():
    registry = ToolRegistry()
    registry.register(ECHO, lambda args: f"echo: {args['value']}")

    assert registry.execute("echo", {"value": "hi"}) == "echo: hi"


def test_unknown_tool_raises_and_touches_nothing(tmp_path):
    registry = ToolRegistry()
    registry.register(WRITE_FILE, lambda args: (tmp_path / args["path"]).write_text(args["content"]))

    with pytest.raises(ToolNotFoundError, match="Tool 'delete_everything' not found."):
        registry.execute("delete_everything", {"path": "a.txt", "content": "x"})

    assert list(tmp_path.iterdir()) == []


def test_executor_fault_becomes_error_string():
    registry = ToolRegistry()

    def boom(args):
        raise OSError("disk on fire")

    registry.register(ECHO, boom)
    result = registry.execute("echo", {"value": "x"})

    assert result.startswith("Error executing tool 'echo'")
    assert "disk on fire" in result


def test_missing_required_argument():
    registry = ToolRegistry()
    calls = []
    registry.register(ECHO, lambda args: calls.append(args) or "ran")

    result = registry.execute("echo", {})

    assert result == "Error: missing required argument(s) for 'echo': value"
    assert calls == []


def test_duplicate_registration_rejected():
    registry = ToolRegistry()
    registry.register(ECHO, lambda args: "one")

    with pytest.raises(ValueError):
        registry.register(ECHO, lambda args: "two")

    assert registry.execute("echo", {"value": "x"}) == "one"


def test_definitions_keep_registration_order():
    registry = ToolRegistry()
    registry.register(ECHO, lambda args: "")
    registry.register(WRITE_FILE, lambda args: "")

    assert [d.name for d in registry.get_definitions()] == ["echo", "write_file"]
    assert len(registry) == 2
    assert registry.has("write_file")
    assert not registry.has("read_file")


def test_non_string_output_is_stringified():
    registry = ToolRegistry()
    registry.register(ECHO, lambda args: 3)

    assert registry.execute("echo", {"value": "x"}) == "3"
