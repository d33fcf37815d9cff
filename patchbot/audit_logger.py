import json
from pathlib import Path

from patchbot.event_bus import EventBus, PatchBotEvent


class AuditLogger:
    """
    Audit Logger that subscribes to an Event Bus and writes events
    to an append-only JSONL file.
    """
    def __init__(self, file_path: Path, event_bus: EventBus):
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        event_bus.subscribe(self.log_event)

    def log_event(self, event: PatchBotEvent) -> None:
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event.model_dump(), ensure_ascii=False) + "\n")
