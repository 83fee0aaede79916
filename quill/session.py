"""
QUILL Session

One conversation against one project root. Wires the workspace, scanner,
todo list, patcher, permission gate, tool registry and orchestrator once,
then runs each user turn through the same orchestrator so the tool
catalogue and system prompt stay fixed for the session.
"""

from __future__ import annotations

import threading
import uuid
from pathlib import Path

from loguru import logger

from quill.agents.orchestrator import PAUSED_SENTINEL, AgentOrchestrator, AgentRun
from quill.agents.types import Step, message
from quill.audit_logger import AuditLogger
from quill.config_loader import QuillConfig
from quill.editing.patcher import Patcher
from quill.event_bus import EventBus, bus as default_bus
from quill.planning import TodoManager
from quill.router import LLMClient, Router
from quill.tools.factory import create_tool_registry
from quill.tools.permissions import Approver, PermissionGate
from quill.workspace import Workspace
from quill.workspace.scanner import ProjectScanner


class Session:
    def __init__(
        self,
        repo_path: Path,
        config: QuillConfig,
        llm: LLMClient | None = None,
        approver: Approver | None = None,
        event_bus: EventBus | None = None,
        audit: bool = True,
    ):
        self.session_id = uuid.uuid4().hex[:12]
        self.config = config
        self.bus = event_bus or default_bus
        self.llm = llm or Router(config)

        self.workspace = Workspace(repo_path)
        self.scanner = ProjectScanner(self.workspace.root, config.context.extra_ignores)
        self.todos = TodoManager()
        self.patcher = Patcher(self.workspace, config.workspace.backup_dir)
        self.gate = PermissionGate(approver, autopilot=config.permissions.autopilot, event_bus=self.bus)
        self.registry = create_tool_registry(
            self.workspace,
            self.todos,
            gate=self.gate,
            scanner=self.scanner,
            patcher=self.patcher,
            tools_config=config.tools,
            gated_tools=config.permissions.gated_tools,
        )

        self._pause = threading.Event()
        self.orchestrator = AgentOrchestrator(
            self.llm,
            self.registry,
            max_steps=config.limits.max_steps,
            project_files=self.scanner.scan(),
            max_context_files=config.context.max_files,
            pause_event=self._pause,
            event_bus=self.bus,
        )

        # Multi-turn conversation, passed by reference as prior history
        self.messages: list[dict[str, str]] = []

        self.audit: AuditLogger | None = None
        if audit:
            log_dir = self.workspace.root / config.workspace.log_dir
            self.audit = AuditLogger(log_dir / f"session-{self.session_id}.jsonl")
            self.audit.attach(self.bus)

        logger.info(f"[SESSION] {self.session_id} ready at {self.workspace.root}")

    @property
    def steps(self) -> list[Step]:
        return self.orchestrator.history

    @property
    def autopilot(self) -> bool:
        return self.gate.autopilot

    def ask(self, prompt: str) -> AgentRun:
        """Start a turn. Iterate the returned run to drive it."""
        self._pause.clear()

        def record(result: str) -> None:
            self.messages.append(message("user", prompt))
            self.messages.append(message("assistant", result or (PAUSED_SENTINEL if self.paused else "Done.")))

        return AgentRun(self.orchestrator.run(prompt, self.messages), on_finish=record)

    def pause(self) -> None:
        self._pause.set()

    def resume(self) -> None:
        self._pause.clear()

    @property
    def paused(self) -> bool:
        return self._pause.is_set()

    def close(self) -> None:
        if self.audit is not None:
            self.audit.detach(self.bus)
            self.audit = None
