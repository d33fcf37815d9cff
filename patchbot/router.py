"""
PatchBot Router — Vendor-Agnostic Model Abstraction

Routes agent calls through LiteLLM so agents never know
which vendor is backing them. Handles budget tracking,
retries, and structured logging.

The router is the text-generation capability: it is built once
per run and handed to the controller and agents explicitly.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import litellm
from loguru import logger
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from patchbot.config_loader import PatchBotConfig


class GenerationError(Exception):
    """The text generator could not produce a response."""


class BudgetExceededError(GenerationError):
    pass


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0


@dataclass
class BudgetTracker:
    """Tracks token + dollar spend per request."""
    max_tokens: int = 400_000
    max_dollars: float = 5.0
    usage: UsageRecord = field(default_factory=UsageRecord)

    @property
    def tokens_remaining(self) -> int:
        return max(0, self.max_tokens - self.usage.total_tokens)

    @property
    def dollars_remaining(self) -> float:
        return max(0.0, self.max_dollars - self.usage.estimated_cost)

    @property
    def budget_exceeded(self) -> bool:
        return self.usage.total_tokens >= self.max_tokens or self.usage.estimated_cost >= self.max_dollars

    def record(self, response: Any) -> None:
        """Record usage from a LiteLLM response.

        Cost estimation is best-effort: models unknown to LiteLLM's
        pricing table only contribute token counts.

        Args:
            response (Any): The response object returned by LiteLLM.
        """
        usage = getattr(response, "usage", None)
        if usage:
            self.usage.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.usage.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.usage.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.usage.estimated_cost += litellm.completion_cost(completion_response=response)
        except Exception as e:
            logger.debug(f"[ROUTER] Cost unavailable: {e}")

        self.usage.call_count += 1

    def summary(self) -> dict:
        return {
            "total_tokens": self.usage.total_tokens,
            "estimated_cost": round(self.usage.estimated_cost, 4),
            "call_count": self.usage.call_count,
            "tokens_remaining": self.tokens_remaining,
            "dollars_remaining": round(self.dollars_remaining, 4),
        }


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series / gpt-5 reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith(("o1", "o3", "o4", "gpt-5"))


def _build_kwargs(
    model: str,
    messages: list[dict[str, str]],
    temperature: float,
    max_tokens: int,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }
    if not _is_o_series_model(model):
        kwargs["temperature"] = temperature
    return kwargs


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class RouterResponse(BaseModel):
    content: str
    model: str
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0


class Router:
    """
    Vendor-agnostic model router.

    Agents call `router.complete(role, messages)`.
    The router resolves the model, enforces budget, and returns structured output.
    """

    def __init__(self, config: PatchBotConfig):
        self.config = config
        self.budget = BudgetTracker(
            max_tokens=config.limits.max_tokens_per_request,
            max_dollars=config.limits.max_dollars_per_request,
        )
        self._role_model_map = {
            "planner": config.routing.planner,
            "implementer": config.routing.implementer,
            "summarizer": config.routing.summarizer,
            "responder": config.routing.responder,
            "reviewer": config.routing.reviewer,
        }

        litellm.suppress_debug_info = True

    def resolve_model(self, role: str) -> str:
        """Resolve agent role to a specific model string.

        Raises:
            ValueError: If the provided role is not found in the role-to-model mapping.
        """
        model = self._role_model_map.get(role)
        if not model:
            raise ValueError(f"Unknown agent role: {role}. Known: {list(self._role_model_map)}")
        return model

    @staticmethod
    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    def _completion(kwargs: dict[str, Any]) -> Any:
        return litellm.completion(**kwargs)

    def complete(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float = 0.2,
        max_tokens: int = 8192,
    ) -> RouterResponse:
        """Send a completion request through LiteLLM.

        Args:
            role (str): Agent role name (planner, implementer, summarizer, responder, reviewer).
            messages (list[dict[str, str]]): Standard chat messages [{"role": ..., "content": ...}].
            temperature (float, optional): Sampling temperature. Defaults to 0.2.
                Dropped automatically for models that don't support it.
            max_tokens (int, optional): Max response tokens. Defaults to 8192.

        Returns:
            RouterResponse: Content, model used, tokens used, estimated cost and latency.

        Raises:
            BudgetExceededError: If the token or dollar budget is already spent.
            GenerationError: If the provider call fails after retries.
        """
        if self.budget.budget_exceeded:
            raise BudgetExceededError(f"Budget exceeded: {self.budget.summary()}")

        model = self.resolve_model(role)
        start = time.monotonic()

        logger.debug(f"[ROUTER] {role} → {model} ({len(messages)} messages)")

        kwargs = _build_kwargs(model, messages, temperature, max_tokens)
        try:
            response = self._completion(kwargs)
        except Exception as e:
            raise GenerationError(f"{role} generation failed ({model}): {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.budget.record(response)

        content = response.choices[0].message.content or ""

        logger.debug(
            f"[ROUTER] {role} complete — "
            f"{self.budget.usage.total_tokens} tokens, "
            f"${self.budget.usage.estimated_cost:.4f}, "
            f"{elapsed_ms}ms"
        )

        usage = getattr(response, "usage", None)
        return RouterResponse(
            content=content,
            model=model,
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            cost=self.budget.usage.estimated_cost,
            latency_ms=elapsed_ms,
        )
