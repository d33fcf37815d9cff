from pathlib import Path

import pytest
from pydantic import ValidationError

from patchbot.config_loader import PatchBotConfig, _deep_merge, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GITHUB_TOKEN", "PATCHBOT_TRIGGER_PHRASE", "STRONG_AI_MODEL", "AI_MODEL", "WEAK_AI_MODEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_config()
    assert config.limits.max_patch_rounds == 3
    assert config.limits.commit_subject_length == 80
    assert config.bot.ignore_marker == "bot:ignore"
    assert config.limits.max_file_lines == 10000
    assert config.github.token is None


def test_override_file_is_merged(tmp_path: Path):
    override = tmp_path / "override.yaml"
    override.write_text("limits:\n  max_patch_rounds: 5\nbot:\n  trigger_phrase: '@fixer'\n")
    config = load_config(override)
    assert config.limits.max_patch_rounds == 5
    assert config.limits.commit_subject_length == 80
    assert config.bot.trigger_phrase == "@fixer"


def test_environment_wins(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_x")
    monkeypatch.setenv("AI_MODEL", "anthropic/claude-sonnet-4-20250514")
    monkeypatch.setenv("WEAK_AI_MODEL", "openai/gpt-4o-mini")
    config = load_config()
    assert config.github.token == "ghp_x"
    strong = "anthropic/claude-sonnet-4-20250514"
    assert config.routing.planner == config.routing.implementer == config.routing.reviewer == strong
    assert config.routing.summarizer == "openai/gpt-4o-mini"


def test_round_limit_must_be_positive():
    with pytest.raises(ValidationError):
        PatchBotConfig(limits={"max_patch_rounds": 0})


def test_deep_merge_keeps_untouched_keys():
    merged = _deep_merge({"a": {"b": 1, "c": 2}, "d": 3}, {"a": {"b": 9}})
    assert merged == {"a": {"b": 9, "c": 2}, "d": 3}
