"""
Configuration loader for PatchBot.
Merges built-in defaults with a deployment override file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


DEFAULT_MAX_ROUNDS = 3
DEFAULT_SUBJECT_LENGTH = 80
DEFAULT_FILE_LINES = 10_000


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class RoutingConfig(BaseModel):
    planner: str = "openai/gpt-4o"
    implementer: str = "openai/gpt-4o"
    summarizer: str = "openai/gpt-4o-mini"
    responder: str = "openai/gpt-4o-mini"
    reviewer: str = "openai/gpt-4o"


class LimitsConfig(BaseModel):
    max_patch_rounds: int = Field(default=DEFAULT_MAX_ROUNDS, ge=1)
    commit_subject_length: int = Field(default=DEFAULT_SUBJECT_LENGTH, ge=1)
    max_file_lines: int = Field(default=DEFAULT_FILE_LINES, ge=1)
    max_tokens_per_request: int = 400_000
    max_dollars_per_request: float = 5.0
    use_plan: bool = True


class BotConfig(BaseModel):
    trigger_phrase: str = "@patchbot"
    ignore_marker: str = "bot:ignore"
    issue_branch_prefix: str = "patchbot/issue-"
    git_user_name: str = "PatchBot"
    git_user_email: str = "patchbot[bot]@users.noreply.github.com"


class GitHubConfig(BaseModel):
    api_url: str = "https://api.github.com"
    token: str | None = Field(default=None, repr=False)
    timeout: int = 30


class PatchBotConfig(BaseModel):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    bot: BotConfig = Field(default_factory=BotConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
_LOCAL_OVERRIDE = Path(".patchbot") / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}

    token = os.environ.get("GITHUB_TOKEN")
    if token:
        overrides.setdefault("github", {})["token"] = token

    trigger = os.environ.get("PATCHBOT_TRIGGER_PHRASE")
    if trigger:
        overrides.setdefault("bot", {})["trigger_phrase"] = trigger

    # Strong model drives planning, edits + reviews, weak model drives summaries + replies
    strong = os.environ.get("STRONG_AI_MODEL") or os.environ.get("AI_MODEL")
    if strong:
        routing = overrides.setdefault("routing", {})
        routing["planner"] = strong
        routing["implementer"] = strong
        routing["reviewer"] = strong

    weak = os.environ.get("WEAK_AI_MODEL")
    if weak:
        routing = overrides.setdefault("routing", {})
        routing["summarizer"] = weak
        routing["responder"] = weak

    return overrides


def load_config(override_path: Path | None = None) -> PatchBotConfig:
    """
    Load config by merging:
      1. Built-in defaults (patchbot/config.yaml)
      2. Override file (explicit path, else ./.patchbot/config.yaml if present)
      3. Environment variable overrides
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    candidate = override_path or _LOCAL_OVERRIDE
    if candidate.exists():
        with open(candidate, "r") as f:
            overrides: dict[str, Any] = yaml.safe_load(f) or {}
        base = _deep_merge(base, overrides)

    base = _deep_merge(base, _env_overrides())
    return PatchBotConfig(**base)


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available."""
    return {
        "GITHUB_TOKEN":      bool(os.environ.get("GITHUB_TOKEN")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
    }
