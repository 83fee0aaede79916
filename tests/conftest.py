import json

import pytest

from quill.event_bus import EventBus
from quill.planning import TodoManager
from quill.tools.factory import create_tool_registry
from quill.workspace import Workspace


class ScriptedLLM:
    """Replays canned replies in order and records every message list it receives."""

    def __init__(self, replies, chunk_size=None):
        self.replies = list(replies)
        self.chunk_size = chunk_size
        self.calls: list[list[dict]] = []

    def _next(self, messages):
        self.calls.append([dict(m) for m in messages])
        if not self.replies:
            raise AssertionError("ScriptedLLM ran out of replies")
        return self.replies.pop(0)

    def chat(self, messages):
        return self._next(messages)

    def chat_stream(self, messages):
        reply = self._next(messages)
        size = self.chunk_size or max(len(reply), 1)
        for i in range(0, len(reply), size):
            yield reply[i:i + size]


def tool_call(name, thought="working", **arguments):
    return json.dumps({"thought": thought, "toolCall": {"name": name, "arguments": arguments}})


def final(answer, thought="done thinking"):
    return json.dumps({"thought": thought, "finalAnswer": answer})


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return Workspace(root)


@pytest.fixture
def todos():
    return TodoManager()


@pytest.fixture
def registry(workspace, todos):
    # No approver: gated tools run straight through
    return create_tool_registry(workspace, todos)
