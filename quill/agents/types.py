"""
Data contracts shared by the parser, orchestrator and session.
No business logic lives here beyond field coercion.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator

Role = Literal["user", "assistant", "system"]


def message(role: Role, content: str) -> dict[str, str]:
    """Build a role-tagged chat message."""
    return {"role": role, "content": content}


class ToolCall(BaseModel):
    """A named action with arguments requested by the model."""

    name: str
    arguments: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("arguments", "args"),
    )

    @field_validator("arguments", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class Step(BaseModel):
    """One iteration's structured output."""

    thought: str = ""
    tool_call: ToolCall | None = Field(
        default=None,
        validation_alias=AliasChoices("toolCall", "tool_call"),
    )
    tool_output: str | None = Field(
        default=None,
        validation_alias=AliasChoices("toolOutput", "tool_output"),
    )
    final_answer: str | None = Field(
        default=None,
        validation_alias=AliasChoices("finalAnswer", "final_answer"),
    )

    @field_validator("thought", mode="before")
    @classmethod
    def _coerce_thought(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("final_answer", mode="before")
    @classmethod
    def _coerce_final_answer(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value, indent=2)

    def to_model_json(self) -> str:
        """Render the step the way the model is asked to write it."""
        data: dict[str, Any] = {"thought": self.thought}
        if self.final_answer is not None:
            data["finalAnswer"] = self.final_answer
        elif self.tool_call is not None:
            data["toolCall"] = {
                "name": self.tool_call.name,
                "arguments": self.tool_call.arguments,
            }
        return json.dumps(data)
