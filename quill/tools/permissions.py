"""
QUILL Permission Gate

Human-in-the-loop middleware for mutating tools. A gated executor asks an
approver before it runs; the approver may allow, deny (with feedback), or
switch the session to autopilot so later requests resolve immediately.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from quill.event_bus import EventBus, bus as default_bus
from quill.tools.registry import ToolExecutor


class PermissionResponse(BaseModel):
    allowed: bool
    feedback: str | None = None
    autopilot: bool = False


Approver = Callable[[str, dict[str, Any]], PermissionResponse]


class PermissionAlreadyResolvedError(Exception):
    """Raised when a permission request is resolved a second time."""


class PermissionPendingError(Exception):
    """Raised when a new request is posted while another is still pending."""


def denial_message(response: PermissionResponse) -> str:
    if response.feedback:
        return f"User denied permission with feedback: {response.feedback}"
    return "User denied permission."


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class PermissionGate:
    """
    Wraps executors so they only run after approval.

    The autopilot flag is per session: it starts from the constructor value
    and can be switched on by an approver response carrying autopilot=True.
    """

    def __init__(
        self,
        approver: Approver | None = None,
        autopilot: bool = False,
        event_bus: EventBus | None = None,
    ):
        self.approver = approver
        self.autopilot = autopilot
        self.bus = event_bus or default_bus

    def check(self, tool_name: str, args: dict[str, Any]) -> PermissionResponse:
        if self.autopilot or self.approver is None:
            return PermissionResponse(allowed=True)

        logger.info(f"[GATE] Awaiting approval for {tool_name}")
        response = self.approver(tool_name, args)
        if response.allowed and response.autopilot:
            logger.info("[GATE] Autopilot enabled for the rest of the session")
            self.autopilot = True

        self.bus.emit("permission_resolved", "gate", {
            "tool": tool_name,
            "allowed": response.allowed,
            "feedback": response.feedback,
        })
        return response

    def wrap(self, tool_name: str, executor: ToolExecutor) -> ToolExecutor:
        def gated(args: dict[str, Any]) -> str:
            response = self.check(tool_name, args)
            if not response.allowed:
                logger.info(f"[GATE] {tool_name} denied")
                return denial_message(response)
            return executor(args)

        gated.__name__ = f"gated_{tool_name}"
        return gated


# ---------------------------------------------------------------------------
# Single-slot channel (threaded front-ends)
# ---------------------------------------------------------------------------

@dataclass
class PermissionRequest:
    tool_name: str
    args: dict[str, Any]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    _decided: threading.Event = field(default_factory=threading.Event, repr=False)
    _response: PermissionResponse | None = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def resolved(self) -> bool:
        return self._decided.is_set()

    def resolve(self, response: PermissionResponse) -> None:
        with self._lock:
            if self._decided.is_set():
                raise PermissionAlreadyResolvedError(f"Permission request {self.id} already resolved.")
            self._response = response
            self._decided.set()

    def wait(self, timeout: float | None = None) -> PermissionResponse | None:
        self._decided.wait(timeout)
        return self._response


class PermissionChannel:
    """
    Blocking single-slot channel between the agent loop and a UI thread.

    The agent thread calls request(), which posts one PermissionRequest and
    blocks until the UI calls resolve() on it. The pending request is the
    only state the two sides share.
    """

    def __init__(self, event_bus: EventBus | None = None):
        self.bus = event_bus or default_bus
        self._pending: PermissionRequest | None = None
        self._slot = threading.Lock()
        self._posted = threading.Condition()

    @property
    def pending(self) -> PermissionRequest | None:
        return self._pending

    def wait_for_request(self, timeout: float | None = None) -> PermissionRequest | None:
        """Block the UI side until a request is posted."""
        with self._posted:
            self._posted.wait_for(lambda: self._pending is not None, timeout)
            return self._pending

    def request(self, tool_name: str, args: dict[str, Any]) -> PermissionResponse:
        if not self._slot.acquire(blocking=False):
            raise PermissionPendingError("A permission request is already pending.")
        try:
            req = PermissionRequest(tool_name=tool_name, args=args)
            with self._posted:
                self._pending = req
                self._posted.notify_all()

            self.bus.emit("permission_requested", "gate", {
                "id": req.id,
                "tool": tool_name,
                "args": args,
            })
            logger.debug(f"[GATE] Request {req.id} posted for {tool_name}")

            response = req.wait()
            return response if response is not None else PermissionResponse(allowed=False)
        finally:
            with self._posted:
                self._pending = None
            self._slot.release()

    __call__ = request


# ---------------------------------------------------------------------------
# Console approver (CLI)
# ---------------------------------------------------------------------------

class ConsoleApprover:
    """Synchronous approver that asks on the terminal."""

    CHOICES = ["a", "b", "c"]

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def __call__(self, tool_name: str, args: dict[str, Any]) -> PermissionResponse:
        self.console.print(Panel(
            f"[bold]Tool:[/] {tool_name}\n[bold]Args:[/] {escape(json.dumps(args, indent=2)[:2000])}\n\n"
            "  [a] Yes - execute this action\n"
            "  [b] Yes - enable autopilot (approve all)\n"
            "  [c] No - tell the agent what to do instead",
            title="[bold red]PERMISSION REQUIRED[/]",
            border_style="red",
        ))
        choice = Prompt.ask("Choice", choices=self.CHOICES, default="a", console=self.console)

        if choice == "a":
            return PermissionResponse(allowed=True)
        if choice == "b":
            return PermissionResponse(allowed=True, autopilot=True)

        feedback = Prompt.ask("What should it do instead?", default="", console=self.console)
        return PermissionResponse(allowed=False, feedback=feedback.strip() or None)
