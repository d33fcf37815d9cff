"""
PatchBot CLI — The Interface

Event entry points (normally called from a webhook or CI job):
  1. patchbot comment        --repo owner/name --number N --body "..."
  2. patchbot review-comment --repo owner/name --number N --comment-id ID --body "..."
  3. patchbot issue          --repo owner/name --number N
  4. patchbot pull-request   --repo owner/name --number N
  5. patchbot revert         --repo owner/name --number N --body "@patchbot bot:revert"

Plus utilities:
  - patchbot status          (check config + API keys)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from patchbot.agents.responder import ResponderAgent
from patchbot.agents.reviewer import ReviewerAgent
from patchbot.audit_logger import AuditLogger
from patchbot.config_loader import PatchBotConfig, load_config, validate_api_keys
from patchbot.controller import Controller
from patchbot.event_bus import EventBus
from patchbot.github import GitHubClient
from patchbot.handlers import HandlerOutcome, RequestHandler
from patchbot.identity import BANNER, __codename__, __tagline__, __version__
from patchbot.router import Router

load_dotenv()

app = typer.Typer(
    name="patchbot",
    help=f"{__codename__} — {__tagline__}\nRequest-driven code edits for GitHub.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def _split_repo(repo: str) -> tuple[str, str]:
    owner, _, name = repo.partition("/")
    if not owner or not name or "/" in name:
        console.print(f"[red]Expected --repo owner/name, got: {repo}[/]")
        raise typer.Exit(2)
    return owner, name


def _read_body(body: Optional[str], body_file: Optional[Path]) -> str:
    if body_file:
        return body_file.read_text(encoding="utf-8")
    if body:
        return body
    console.print("[red]Provide --body or --body-file[/]")
    raise typer.Exit(2)


def _build_handler(config_path: Optional[Path], audit_log: Optional[Path]) -> RequestHandler:
    config = load_config(config_path)
    try:
        github = GitHubClient(config.github)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    bus = EventBus()
    if audit_log:
        AuditLogger(audit_log, bus)

    router = Router(config)
    controller = Controller(config, router, github, event_bus=bus)
    return RequestHandler(config, github, controller, ResponderAgent(router), reviewer=ReviewerAgent(router))


def _report(outcome: HandlerOutcome) -> None:
    if not outcome.handled:
        console.print("[dim]Nothing to do.[/]")
        return

    result = outcome.result
    ok = result.success if result else not (outcome.reply or "").startswith("❌")
    title = f"{outcome.action} — {'ok' if ok else 'failed'}"

    lines = []
    if result:
        if result.branch_name:
            lines.append(f"Branch:  {result.branch_name}")
        if result.changed_files:
            lines.append(f"Files:   {', '.join(result.changed_files)}")
        if result.rounds:
            lines.append(f"Rounds:  {result.rounds}")
        if result.error:
            lines.append(f"Error:   {result.error}")
    if outcome.pull_request_url:
        lines.append(f"PR:      {outcome.pull_request_url}")
    if not lines and outcome.reply:
        lines.append(outcome.reply)

    console.print(Panel(Text("\n".join(lines)), title=title, border_style="green" if ok else "red"))
    if not ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

ConfigOption = typer.Option(None, "--config", "-c", help="Config override YAML")
AuditOption = typer.Option(None, "--audit-log", help="Append run events to this JSONL file")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


@app.command()
def comment(
    repo: str = typer.Option(..., "--repo", "-r", help="owner/name"),
    number: int = typer.Option(..., "--number", "-n", help="Issue or pull request number"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Comment text"),
    body_file: Optional[Path] = typer.Option(None, "--body-file", help="Read the comment text from a file"),
    config: Optional[Path] = ConfigOption,
    audit_log: Optional[Path] = AuditOption,
    verbose: bool = VerboseOption,
):
    """Handle a comment on an issue or pull request."""
    _configure_logging(verbose)
    owner, name = _split_repo(repo)
    handler = _build_handler(config, audit_log)
    _report(handler.handle_comment(owner, name, number, _read_body(body, body_file)))


@app.command("review-comment")
def review_comment(
    repo: str = typer.Option(..., "--repo", "-r", help="owner/name"),
    number: int = typer.Option(..., "--number", "-n", help="Pull request number"),
    comment_id: int = typer.Option(..., "--comment-id", help="Review comment id"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Comment text"),
    body_file: Optional[Path] = typer.Option(None, "--body-file", help="Read the comment text from a file"),
    config: Optional[Path] = ConfigOption,
    audit_log: Optional[Path] = AuditOption,
    verbose: bool = VerboseOption,
):
    """Handle a review comment on a pull request diff."""
    _configure_logging(verbose)
    owner, name = _split_repo(repo)
    handler = _build_handler(config, audit_log)
    _report(handler.handle_review_comment(owner, name, number, comment_id, _read_body(body, body_file)))


@app.command()
def issue(
    repo: str = typer.Option(..., "--repo", "-r", help="owner/name"),
    number: int = typer.Option(..., "--number", "-n", help="Issue number"),
    config: Optional[Path] = ConfigOption,
    audit_log: Optional[Path] = AuditOption,
    verbose: bool = VerboseOption,
):
    """Turn an issue into a pull request."""
    _configure_logging(verbose)
    owner, name = _split_repo(repo)
    handler = _build_handler(config, audit_log)
    _report(handler.handle_issue(owner, name, number))


@app.command("pull-request")
def pull_request(
    repo: str = typer.Option(..., "--repo", "-r", help="owner/name"),
    number: int = typer.Option(..., "--number", "-n", help="Pull request number"),
    config: Optional[Path] = ConfigOption,
    audit_log: Optional[Path] = AuditOption,
    verbose: bool = VerboseOption,
):
    """Review a newly opened pull request."""
    _configure_logging(verbose)
    owner, name = _split_repo(repo)
    handler = _build_handler(config, audit_log)
    _report(handler.handle_pull_request(owner, name, number))


@app.command()
def revert(
    repo: str = typer.Option(..., "--repo", "-r", help="owner/name"),
    number: int = typer.Option(..., "--number", "-n", help="Pull request number"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Comment text"),
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Revert the last commit on a pull request branch."""
    _configure_logging(verbose)
    owner, name = _split_repo(repo)
    handler = _build_handler(config, None)
    text = body or f"{handler.trigger} bot:revert"
    _report(handler.handle_revert(owner, name, number, text))


@app.command()
def status(
    config: Optional[Path] = ConfigOption,
):
    """Check PatchBot configuration and readiness."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")
    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)
    console.print(key_table)

    _print_config(load_config(config))


def _print_config(config: PatchBotConfig) -> None:
    console.print("\n[bold]Routing:[/]")
    console.print(f"  Planner:     {config.routing.planner}")
    console.print(f"  Implementer: {config.routing.implementer}")
    console.print(f"  Summarizer:  {config.routing.summarizer}")
    console.print(f"  Responder:   {config.routing.responder}")
    console.print(f"  Reviewer:    {config.routing.reviewer}")

    console.print("\n[bold]Limits:[/]")
    console.print(f"  Max patch rounds:   {config.limits.max_patch_rounds}")
    console.print(f"  Commit subject len: {config.limits.commit_subject_length}")
    console.print(f"  Max tokens/request: {config.limits.max_tokens_per_request:,}")
    console.print(f"  Max $/request:      ${config.limits.max_dollars_per_request}")
    console.print(f"  Planning:           {'on' if config.limits.use_plan else 'off'}")

    console.print("\n[bold]Bot:[/]")
    console.print(f"  Trigger:       {config.bot.trigger_phrase}")
    console.print(f"  Ignore marker: {config.bot.ignore_marker}")
    console.print(f"  Issue branch:  {config.bot.issue_branch_prefix}<N>")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(msg, style="dim", highlight=False, markup=False, end=""),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(msg, highlight=False, markup=False, end=""),
            level="INFO",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
