"""
🔎 The Reviewer

Reads a newly opened pull request (title, description, diff) and
writes review feedback. Never edits code.
"""

from __future__ import annotations

from patchbot.agents import BaseAgent
from patchbot.router import RouterResponse


class ReviewerAgent(BaseAgent):
    role = "reviewer"
    temperature = 0.7

    system_prompt = """You are PatchBot, an AI assistant reviewing code in a pull request.
Provide constructive feedback and clear explanations.
Focus on code quality, potential bugs, and suggestions for improvement.
Be concise but thorough in your analysis.
"""

    def build_messages(self, payload: dict[str, str]) -> list[dict[str, str]]:
        content = (
            f"Title: {payload['title']}\n\n"
            f"Description:\n{payload['body'] or '(none)'}\n\n"
            f"Diff:\n```diff\n{payload['diff']}\n```"
        )
        return [self._system_msg(), self._user_msg(content)]

    def parse_response(self, response: RouterResponse, payload: dict[str, str]) -> str:
        return response.content.strip()

    def review(self, title: str, body: str, diff: str) -> str:
        return self.run({"title": title, "body": body, "diff": diff})
