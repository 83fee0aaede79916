"""
QUILL tools: the registry contract, the built-in catalogue, and the
permission middleware that guards mutating tools.
"""

from quill.tools.definitions import ToolDefinition
from quill.tools.registry import ToolNotFoundError, ToolRegistry

__all__ = ["ToolDefinition", "ToolNotFoundError", "ToolRegistry"]
