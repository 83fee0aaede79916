import json
from pathlib import Path

from quill.event_bus import AgentEvent, EventBus


class AuditLogger:
    """Appends bus events to a JSON-lines session transcript, flushed in batches."""

    def __init__(self, log_file: Path, batch_size: int = 10):
        self.log_file = Path(log_file)
        self.batch_size = batch_size
        self._buffer: list[str] = []

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe(self.log)

    def detach(self, event_bus: EventBus) -> None:
        self.flush()
        event_bus.unsubscribe(self.log)

    def log(self, event: AgentEvent) -> None:
        self._buffer.append(json.dumps(event.model_dump(), default=str) + "\n")
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.writelines(self._buffer)
        self._buffer.clear()

    def __del__(self):
        self.flush()
