from __future__ import annotations

import json
import uuid
from typing import Literal

from pydantic import BaseModel, Field

TodoStatus = Literal["pending", "in-progress", "completed", "failed"]


class TodoItem(BaseModel):
    """A single task in the agent's working plan."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:7])
    text: str
    status: TodoStatus = "pending"


class TodoManager:
    """The agent's plan for the current session. Lives in memory only."""

    def __init__(self):
        self._todos: list[TodoItem] = []

    def add(self, text: str) -> TodoItem:
        todo = TodoItem(text=text)
        self._todos.append(todo)
        return todo

    def update_status(self, todo_id: str, status: TodoStatus) -> bool:
        for todo in self._todos:
            if todo.id == todo_id:
                todo.status = status
                return True
        return False

    def list(self) -> list[TodoItem]:
        return list(self._todos)

    def to_json(self) -> str:
        return json.dumps([t.model_dump() for t in self._todos], indent=2)
