"""
📝 The Summarizer

Condenses an implementation explanation into a one-line commit subject.
Best effort: it never blocks an otherwise successful patch.
"""

from __future__ import annotations

from loguru import logger

from patchbot.agents import BaseAgent
from patchbot.config_loader import DEFAULT_SUBJECT_LENGTH
from patchbot.router import GenerationError, Router, RouterResponse


FALLBACK_SUBJECT = "Code changes requested"


class SummarizationError(Exception):
    pass


class SummarizerAgent(BaseAgent):
    role = "summarizer"
    temperature = 0.7

    system_prompt = """Based on the following technical explanation of code changes,
create a clear, concise summary suitable for a git commit message (max 80 characters).

Your response should be a simple commit message and nothing else. Return a single line
of at most 80 characters. It will be used verbatim as: git commit -m "<your response>"
"""

    def __init__(self, router: Router, max_length: int = DEFAULT_SUBJECT_LENGTH):
        super().__init__(router)
        self.max_length = max_length

    def build_messages(self, explanation: str) -> list[dict[str, str]]:
        return [self._system_msg(), self._user_msg(f"Technical explanation: {explanation}")]

    def parse_response(self, response: RouterResponse, explanation: str) -> str:
        lines = [line.strip() for line in response.content.strip().splitlines() if line.strip()]
        subject = (lines[0] if lines else "").strip("\"'`").strip()[: self.max_length]
        if not subject:
            raise SummarizationError("Summarizer returned an empty subject")
        return subject

    def summarize(self, explanation: str) -> str:
        if not explanation or not explanation.strip():
            return FALLBACK_SUBJECT

        try:
            subject = self.run(explanation)
        except (GenerationError, SummarizationError) as e:
            logger.warning(f"[SUMMARY] Falling back to raw explanation: {e}")
            return explanation[: self.max_length]

        logger.info(f"[SUMMARY] {subject}")
        return subject
