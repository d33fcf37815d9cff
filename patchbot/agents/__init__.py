"""
PatchBot Agent Roster

Each agent is:
  - A system prompt
  - A user payload template
  - A response parser

Agents are stateless between runs. State lives in the RequestContext.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from patchbot.router import Router, RouterResponse


class BaseAgent(ABC):
    """
    Base class for all PatchBot agents.

    Subclasses define:
      - role: str — maps to router model
      - system_prompt: str — fixed instruction for the model
      - build_messages() — constructs the chat messages
      - parse_response() — extracts structured output
    """

    role: str = "unknown"
    system_prompt: str = "You are a helpful assistant."
    temperature: float = 0.2

    def __init__(self, router: Router):
        self.router = router

    def run(self, payload: Any, **kwargs) -> Any:
        """Execute the agent: build messages → call model → parse."""
        messages = self.build_messages(payload)
        kwargs.setdefault("temperature", self.temperature)
        response = self.router.complete(
            role=self.role,
            messages=messages,
            **kwargs,
        )
        return self.parse_response(response, payload)

    @abstractmethod
    def build_messages(self, payload: Any) -> list[dict[str, str]]:
        """Build the message list for the LLM call."""
        ...

    @abstractmethod
    def parse_response(self, response: RouterResponse, payload: Any) -> Any:
        """Parse the LLM response into structured output."""
        ...

    def _system_msg(self) -> dict[str, str]:
        return {"role": "system", "content": self.system_prompt}

    def _user_msg(self, content: str) -> dict[str, str]:
        return {"role": "user", "content": content}
