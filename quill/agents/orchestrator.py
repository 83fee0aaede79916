"""
QUILL Orchestrator — The Step Loop

Drives one request to completion:

  prompt → LLM → parse → (final answer | tool call → gate → registry)
         → tool result becomes the next prompt → ...

The loop is bounded by max_steps. It never raises for model or tool
misbehaviour: parse failures are retried, tool failures are fed back as
text, and running out of steps returns a sentinel. Only collaborator faults
(transport errors, budget exhaustion) propagate.
"""

from __future__ import annotations

import json
import threading
from typing import Callable, Generator, Iterator

from loguru import logger

from quill.agents import parser
from quill.agents.types import Step, message
from quill.event_bus import EventBus, bus as default_bus
from quill.router import LLMClient
from quill.tools.registry import ToolNotFoundError, ToolRegistry

DEFAULT_MAX_STEPS = 10

STEP_LIMIT_SENTINEL = "Max steps reached."
PAUSED_SENTINEL = "Run paused."
PARSE_RETRY_THOUGHT = "Failed to parse LLM response. Retrying..."


def tool_result_prompt(name: str, result: str) -> str:
    return f"Tool '{name}' returned: {result}"


SYSTEM_PROMPT = """You are Quill, a coding assistant working inside the user's project from the terminal.

You can use these tools:
{tools}

Guidelines:
1. Answer questions, explanations and example snippets directly with "finalAnswer".
2. Only change files when the user asks for a change or clearly implies one. Showing code is not a reason to write a file.
3. Prefer edit_file with a small unified diff over rewriting a whole file. Read a file before editing it.
4. One tool call per reply. You will receive the tool's output in the next message.
5. Be concise.

Reply with exactly one JSON object and nothing else. To use a tool:
{{
  "thought": "your reasoning",
  "toolCall": {{"name": "tool_name", "arguments": {{ ... }}}}
}}
When you are done or simply replying:
{{
  "thought": "your reasoning",
  "finalAnswer": "your response"
}}
{context}"""


class AgentOrchestrator:
    """
    Runs the bounded step loop against one tool registry.

    The system prompt (tool catalogue + project file list) is rendered once
    at construction and reused for every run.
    """

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        max_steps: int = DEFAULT_MAX_STEPS,
        project_files: list[str] | None = None,
        max_context_files: int = 200,
        pause_event: threading.Event | None = None,
        event_bus: EventBus | None = None,
    ):
        self.llm = llm
        self.tools = registry
        self.max_steps = max_steps
        # Steps of the current run only
        self.history: list[Step] = []
        self.pause_event = pause_event or threading.Event()
        self.bus = event_bus or default_bus
        self.system_prompt = self.build_system_prompt(project_files or [], max_context_files)

    # ------------------------------------------------------------------
    # Prompt composition
    # ------------------------------------------------------------------

    def build_system_prompt(self, project_files: list[str], max_files: int) -> str:
        tool_lines = "\n".join(
            f"{d.name}: {d.description} Params: {json.dumps(d.parameters)}"
            for d in self.tools.get_definitions()
        )

        context = ""
        if project_files:
            shown = project_files[:max_files]
            context = "\nProject files:\n" + "\n".join(f"- {f}" for f in shown)
            if len(project_files) > max_files:
                context += f"\n... and {len(project_files) - max_files} more files."

        return SYSTEM_PROMPT.format(tools=tool_lines, context=context)

    def compose_messages(
        self,
        prior_history: list[dict[str, str]],
        exchanges: list[dict[str, str]],
        prompt: str,
    ) -> list[dict[str, str]]:
        return [
            message("system", self.system_prompt),
            *prior_history,
            *exchanges,
            message("user", prompt),
        ]

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _call_llm(self, messages: list[dict[str, str]]) -> str:
        # Drain the stream first; the parser only ever sees the whole reply
        return "".join(self.llm.chat_stream(messages))

    def _execute_tool(self, name: str, args: dict) -> str:
        try:
            return self.tools.execute(name, args)
        except ToolNotFoundError as e:
            return f"Error: {e}"

    def _paused(self) -> bool:
        if self.pause_event.is_set():
            logger.info("[ORCH] Paused; not acting on the last step")
            self.bus.emit("run_finished", "orchestrator", {"result": PAUSED_SENTINEL})
            return True
        return False

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(
        self,
        prompt: str,
        history: list[dict[str, str]] | None = None,
    ) -> Generator[Step, None, str]:
        """
        Yield one Step per iteration; return the final answer, or
        STEP_LIMIT_SENTINEL when max_steps iterations pass without one.
        ``self.history`` holds the Steps of this run only.
        """
        self.history = []
        prior_history = history if history is not None else []
        exchanges: list[dict[str, str]] = []
        current_prompt = prompt

        for index in range(self.max_steps):
            logger.debug(f"[ORCH] Step {index + 1}/{self.max_steps}")
            messages = self.compose_messages(prior_history, exchanges, current_prompt)
            response_text = self._call_llm(messages)

            try:
                step = parser.parse(response_text)
            except parser.ParseError as e:
                logger.warning(f"[ORCH] {e}")
                diagnostic = Step(thought=PARSE_RETRY_THOUGHT, tool_output=f"Error: {e}")
                self.bus.emit("step", "orchestrator", {"index": index, "step": diagnostic.model_dump()})
                yield diagnostic
                if self._paused():
                    return PAUSED_SENTINEL
                continue

            self.history.append(step)
            self.bus.emit("step", "orchestrator", {"index": index, "step": step.model_dump()})
            yield step

            if step.final_answer is not None:
                logger.info(f"[ORCH] Final answer after {index + 1} step(s)")
                self.bus.emit("run_finished", "orchestrator", {"result": step.final_answer})
                return step.final_answer

            if self._paused():
                return PAUSED_SENTINEL

            exchanges.append(message("user", current_prompt))
            exchanges.append(message("assistant", step.to_model_json()))

            if step.tool_call is not None:
                name = step.tool_call.name
                logger.info(f"[ORCH] Tool call: {name}")
                result = self._execute_tool(name, step.tool_call.arguments)
                step.tool_output = result
                self.bus.emit("tool_result", "orchestrator", {"tool": name, "output": result})
                current_prompt = tool_result_prompt(name, result)

        logger.warning(f"[ORCH] Step budget of {self.max_steps} exhausted")
        self.bus.emit("run_finished", "orchestrator", {"result": STEP_LIMIT_SENTINEL})
        return STEP_LIMIT_SENTINEL


class AgentRun:
    """
    Iterable wrapper around run() for callers that want the steps and the
    return value without handling StopIteration.
    """

    def __init__(
        self,
        steps: Generator[Step, None, str],
        on_finish: Callable[[str], None] | None = None,
    ):
        self._gen = steps
        self._on_finish = on_finish
        self.steps: list[Step] = []
        self.result: str | None = None
        self.finished = False

    def __iter__(self) -> Iterator[Step]:
        while not self.finished:
            try:
                step = next(self._gen)
            except StopIteration as stop:
                self.result = stop.value
                self.finished = True
                if self._on_finish is not None:
                    self._on_finish(self.result)
                return
            self.steps.append(step)
            yield step

    def wait(self) -> str:
        """Consume the remaining steps and return the result."""
        for _ in self:
            pass
        return self.result
