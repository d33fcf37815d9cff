"""
💬 The Responder

Answers comments that ask about the code instead of asking to change it.
"""

from __future__ import annotations

from patchbot.agents import BaseAgent
from patchbot.router import RouterResponse


class ResponderAgent(BaseAgent):
    role = "responder"
    temperature = 0.7

    system_prompt = """You are PatchBot, an AI assistant answering questions and comments about code.
Provide clear, accurate information and helpful suggestions.
If you're asked to explain code, break down the logic in an easy-to-understand way.
If you're asked to suggest improvements, be specific and constructive.
"""

    def build_messages(self, payload: str) -> list[dict[str, str]]:
        return [self._system_msg(), self._user_msg(payload)]

    def parse_response(self, response: RouterResponse, payload: str) -> str:
        return response.content.strip()

    def answer(self, comment: str, where: str) -> str:
        return self.run(f"Context: {where}\n\nComment: {comment}")
