"""
QUILL Router — Vendor-Agnostic Model Client

Routes chat calls through LiteLLM so the agent loop never knows which
vendor is backing it. Handles budget tracking, retries, streaming and
structured logging.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol

import litellm
from loguru import logger
from tenacity import retry, stop_after_attempt, wait_exponential

from quill.config_loader import QuillConfig


class BudgetExceededError(Exception):
    pass


class LLMClient(Protocol):
    """What the orchestrator needs from a model client."""

    def chat(self, messages: list[dict[str, str]]) -> str: ...

    def chat_stream(self, messages: list[dict[str, str]]) -> Iterator[str]: ...


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0


@dataclass
class BudgetTracker:
    """Tracks token + dollar spend per session."""
    max_tokens: int = 500_000
    max_dollars: float = 10.0
    usage: UsageRecord = field(default_factory=UsageRecord)

    @property
    def tokens_remaining(self) -> int:
        return max(0, self.max_tokens - self.usage.total_tokens)

    @property
    def dollars_remaining(self) -> float:
        return max(0.0, self.max_dollars - self.usage.estimated_cost)

    @property
    def budget_exceeded(self) -> bool:
        return self.usage.total_tokens >= self.max_tokens or self.usage.estimated_cost >= self.max_dollars

    def record(self, response: Any) -> None:
        """Record usage from a LiteLLM response (or one rebuilt from a stream).

        Args:
            response (Any): The response object returned by LiteLLM.
        """
        usage = getattr(response, "usage", None)
        if usage:
            self.usage.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.usage.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.usage.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.usage.estimated_cost += litellm.completion_cost(completion_response=response)
        except Exception as e:
            # Unknown or local models have no price table
            logger.debug(f"[ROUTER] No cost estimate: {e}")

        self.usage.call_count += 1

    def summary(self) -> dict:
        return {
            "total_tokens": self.usage.total_tokens,
            "estimated_cost": round(self.usage.estimated_cost, 4),
            "call_count": self.usage.call_count,
            "tokens_remaining": self.tokens_remaining,
            "dollars_remaining": round(self.dollars_remaining, 4),
        }


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _is_gpt5_model(model: str) -> bool:
    """GPT-5 family models have restricted parameter support."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith("gpt-5")


def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith(("o1", "o3", "o4"))


def _build_kwargs(
    model: str,
    messages: list[dict[str, str]],
    temperature: float,
    max_tokens: int,
    stream: bool = False,
) -> dict[str, Any]:
    """
    Build LiteLLM kwargs with per-model param filtering.
    Different model families support different parameters.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }

    if not _is_gpt5_model(model) and not _is_o_series_model(model):
        kwargs["temperature"] = temperature

    if stream:
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

    return kwargs


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class Router:
    """
    Vendor-agnostic chat client.

    The orchestrator calls `router.chat_stream(messages)` and joins the
    fragments; `router.chat(messages)` returns the whole reply at once.
    """

    def __init__(self, config: QuillConfig):
        self.config = config
        self.model = config.routing.model
        self.budget = BudgetTracker(
            max_tokens=config.limits.max_tokens_per_session,
            max_dollars=config.limits.max_dollars_per_session,
        )

        litellm.suppress_debug_info = True

    def _check_budget(self) -> None:
        if self.budget.budget_exceeded:
            raise BudgetExceededError(f"Budget exceeded: {self.budget.summary()}")

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    def _completion(self, messages: list[dict[str, str]], stream: bool) -> Any:
        kwargs = _build_kwargs(
            self.model,
            messages,
            self.config.llm.temperature,
            self.config.llm.max_tokens,
            stream=stream,
        )
        return litellm.completion(**kwargs)

    def chat(self, messages: list[dict[str, str]]) -> str:
        """Send a completion request and return the full reply text.

        Raises:
            BudgetExceededError: If the session's token or dollar budget is spent.
        """
        self._check_budget()
        start = time.monotonic()
        logger.debug(f"[ROUTER] chat → {self.model} ({len(messages)} messages)")

        response = self._completion(messages, stream=False)
        self.budget.record(response)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            f"[ROUTER] complete — {self.budget.usage.total_tokens} tokens, "
            f"${self.budget.usage.estimated_cost:.4f}, {elapsed_ms}ms"
        )
        return response.choices[0].message.content or ""

    def chat_stream(self, messages: list[dict[str, str]]) -> Iterator[str]:
        """Yield reply fragments as they arrive."""
        self._check_budget()
        logger.debug(f"[ROUTER] stream → {self.model} ({len(messages)} messages)")

        chunks: list[Any] = []
        for chunk in self._completion(messages, stream=True):
            chunks.append(chunk)
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            content = getattr(delta, "content", None) if delta else None
            if content:
                yield content

        if chunks:
            # Usage and cost are read from the reassembled response
            response = litellm.stream_chunk_builder(chunks, messages=messages)
            self.budget.record(response if response is not None else chunks[-1])
