"""
QUILL agent core.

  - types:        Step / ToolCall contracts
  - parser:       raw model text -> Step
  - orchestrator: the bounded step loop
"""

from quill.agents.types import Step, ToolCall
from quill.agents.parser import ParseError, parse
from quill.agents.orchestrator import (
    STEP_LIMIT_SENTINEL,
    AgentOrchestrator,
    AgentRun,
)

__all__ = [
    "STEP_LIMIT_SENTINEL",
    "AgentOrchestrator",
    "AgentRun",
    "ParseError",
    "Step",
    "ToolCall",
    "parse",
]
