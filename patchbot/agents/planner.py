"""
🧠 The Planner

Reads the request and the files in context, writes a short plan.
Never writes code. The plan is fed back into the edit request.
"""

from __future__ import annotations

import re

from loguru import logger

from patchbot.agents import BaseAgent
from patchbot.context import RequestContext
from patchbot.router import RouterResponse


_PLAN_PATTERN = re.compile(r"PLAN:\s*(.*?)(?:\s*ENDPLAN|\s*$)", re.IGNORECASE | re.DOTALL)


def extract_plan(response: str) -> str:
    """Body between PLAN: and ENDPLAN (or end of text); the whole response if unmarked."""
    match = _PLAN_PATTERN.search(response or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    return (response or "").strip()


class PlannerAgent(BaseAgent):
    role = "planner"

    system_prompt = """You are the planning engine inside PatchBot, an assistant that edits source code on request.

Read the request and the provided files, then write a short, concrete plan for the code changes.

Rules:
- Name every file that must change or be created.
- One bullet per change. Keep it under 15 bullets.
- Do not write code. Do not restate the request.
- If the request is ambiguous, state the assumption you are making.

Respond in exactly this format:

PLAN:
- first change
- second change
ENDPLAN
"""

    def build_messages(self, context: RequestContext) -> list[dict[str, str]]:
        return [self._system_msg(), self._user_msg(context.render())]

    def parse_response(self, response: RouterResponse, context: RequestContext) -> str:
        plan = extract_plan(response.content)
        logger.info(f"[PLAN] Plan ready — {len(plan.splitlines())} lines ({response.model})")
        logger.debug(f"[PLAN] {plan}")
        return plan

    def get_plan(self, context: RequestContext) -> str:
        """Generate the plan once per context; later calls return the memo."""
        if context.plan is None:
            context.plan = self.run(context)
        return context.plan
