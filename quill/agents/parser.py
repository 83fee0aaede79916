"""
QUILL Response Parser

Recovers a Step from raw model text. Strategies are tried in a fixed order
and the first one that yields a Step wins:

  1. the first fenced block (```json or bare ```)
  2. the widest {...} span in the text
  3. the whole text
  4. a completion marker ("done", "completed") -> final answer = raw text
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from quill.agents.types import Step

_FENCE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)
_COMPLETION = re.compile(r"done|completed", re.IGNORECASE)
_STEP_KEYS = {
    "thought", "toolCall", "tool_call", "finalAnswer", "final_answer",
}

SNIPPET_LENGTH = 100


class ParseError(Exception):
    """Raised when no strategy can recover a Step from model output."""

    def __init__(self, text: str):
        self.snippet = text[:SNIPPET_LENGTH]
        super().__init__(f"Could not parse model response: {self.snippet!r}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_step(candidate: str | None) -> Step | None:
    """Decode a JSON candidate and validate it as a Step."""
    if not candidate or not candidate.strip():
        return None
    try:
        data: Any = json.loads(candidate.strip(), strict=False)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not _STEP_KEYS & data.keys():
        return None
    try:
        return Step.model_validate(data)
    except ValidationError as e:
        logger.debug(f"[PARSER] JSON is not a valid step: {e.error_count()} error(s)")
        return None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def from_fenced_block(text: str) -> Step | None:
    match = _FENCE.search(text)
    return _to_step(match.group(1)) if match else None


def from_outer_braces(text: str) -> Step | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _to_step(text[start:end + 1])


def from_whole_text(text: str) -> Step | None:
    return _to_step(text)


def from_completion_marker(text: str) -> Step | None:
    if _COMPLETION.search(text):
        return Step(thought="Model signalled completion without structured output.", final_answer=text)
    return None


STRATEGIES: tuple[Callable[[str], Step | None], ...] = (
    from_fenced_block,
    from_outer_braces,
    from_whole_text,
    from_completion_marker,
)


def parse(text: str) -> Step:
    """Parse raw model text into a Step, or raise ParseError."""
    for strategy in STRATEGIES:
        step = strategy(text)
        if step is not None:
            logger.debug(f"[PARSER] Recovered step via {strategy.__name__}")
            return step

    logger.warning(f"[PARSER] No strategy matched: {text[:SNIPPET_LENGTH]!r}")
    raise ParseError(text)
