"""
QUILL Tool Registry

Maps tool names to a definition (what the model sees) and an executor
(what actually runs). Executor failures are returned as text so the model
can react on the next iteration; only an unknown name raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from quill.tools.definitions import ToolDefinition

ToolExecutor = Callable[[dict[str, Any]], str]


class ToolNotFoundError(Exception):
    """Raised when a tool name is absent from the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' not found.")


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    executor: ToolExecutor


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(self, definition: ToolDefinition, executor: ToolExecutor) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Tool '{definition.name}' is already registered.")
        self._tools[definition.name] = RegisteredTool(definition, executor)
        logger.debug(f"[REGISTRY] Registered {definition.name}")

    def get_definitions(self) -> tuple[ToolDefinition, ...]:
        return tuple(tool.definition for tool in self._tools.values())

    def has(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def execute(self, name: str, args: dict[str, Any] | None = None) -> str:
        """Run a tool by name.

        Args:
            name (str): Registered tool name.
            args (dict | None): Arguments proposed by the model.

        Returns:
            str: The tool output, or a formatted error string if the
                arguments are incomplete or the executor raised.

        Raises:
            ToolNotFoundError: If no tool is registered under ``name``.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning(f"[REGISTRY] Unknown tool requested: {name}")
            raise ToolNotFoundError(name)

        args = args or {}
        missing = [key for key in tool.definition.required if key not in args]
        if missing:
            return f"Error: missing required argument(s) for '{name}': {', '.join(missing)}"

        try:
            return str(tool.executor(args))
        except Exception as e:
            logger.warning(f"[REGISTRY] {name} failed: {e}")
            return f"Error executing tool '{name}': {e}"
