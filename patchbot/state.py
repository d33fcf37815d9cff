from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RunPhase(str, Enum):
    RESOLVING = "resolving"
    PLANNING = "planning"
    GENERATING = "generating"
    APPLYING = "applying"
    SUMMARIZING = "summarizing"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_PHASES = {RunPhase.DONE, RunPhase.FAILED}


class RunState(BaseModel):
    """The working memory of one controller run."""
    run_id: str
    phase: RunPhase = RunPhase.RESOLVING
    branch_name: str = ""
    repo_url: str = ""
    is_pull_request: bool = False
    changed_files: list[str] = Field(default_factory=list)
    patch_rounds: int = 0
    explanation: str = ""
    commit_message: str = ""
    events: list[dict[str, Any]] = Field(default_factory=list)

    def enter(self, phase: RunPhase) -> None:
        if self.phase in TERMINAL_PHASES:
            raise RuntimeError(f"Run {self.run_id} already finished in {self.phase.value}")
        self.phase = phase
        self.events.append({
            "phase": phase.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    @property
    def finished(self) -> bool:
        return self.phase in TERMINAL_PHASES
