"""
PatchBot Request Handlers

Entry points for the events the bot reacts to:
  - a comment on an issue or pull request
  - a review comment anchored to a diff line
  - an issue asking for a change (answered with a new pull request)
  - a newly opened pull request (answered with a review)
  - a revert request ("<trigger> bot:revert") on a pull request

Each handler decides what to do, runs the controller, the responder or the reviewer,
and posts exactly one reply. Replies end with the ignore marker so the
bot never answers itself.
"""

from __future__ import annotations

import re
from typing import Callable, Literal

from loguru import logger
from pydantic import BaseModel

from patchbot.agents.responder import ResponderAgent
from patchbot.agents.reviewer import ReviewerAgent
from patchbot.config_loader import PatchBotConfig
from patchbot.controller import ChangeRequest, Controller, RunResult
from patchbot.directives import has_file_directives
from patchbot.github import GitHubClient, GitHubError
from patchbot.router import GenerationError
from patchbot.workspace import Workspace, WorkspaceError, mask_credentials


_CHANGE_WORDS = re.compile(
    r"\b(?:chang|modif|updat|fix|implement|refactor|add|remov|renam|delet)(?:e|es|ed|ing|y|ies|ied|s)?\b",
    re.IGNORECASE,
)


class HandlerOutcome(BaseModel):
    handled: bool
    action: Literal["skipped", "code_change", "answer", "pull_request", "review", "revert"] = "skipped"
    reply: str | None = None
    result: RunResult | None = None
    pull_request_url: str | None = None


def is_code_change_request(text: str, trigger_phrase: str) -> bool:
    """A triggered comment asking for an edit, or carrying file directives."""
    if trigger_phrase not in text:
        return False
    if _CHANGE_WORDS.search(text):
        return True
    return has_file_directives(text)


def _file_list(files: list[str]) -> str:
    return "\n".join(f"- `{f}`" for f in files) or "- (none)"


def format_change_reply(result: RunResult) -> str:
    if result.success:
        return (
            f"✅ I've made the requested changes and pushed them to `{result.branch_name}`.\n\n"
            f"**Changes made:**\n{result.explanation}\n\n"
            f"**Modified files:**\n{_file_list(result.changed_files)}"
        )
    return format_error_reply(result.error or "Unknown error")


def format_error_reply(error: str) -> str:
    return (
        "❌ I encountered an error while processing your request:\n"
        f"```\n{mask_credentials(error)}\n```\n\n"
        "Please provide more details or try a different request."
    )


class RequestHandler:
    """Routes incoming GitHub events to the controller, the responder or the reviewer."""

    def __init__(
        self,
        config: PatchBotConfig,
        github: GitHubClient,
        controller: Controller,
        responder: ResponderAgent,
        workspace_factory: Callable[[str], Workspace] | None = None,
        reviewer: ReviewerAgent | None = None,
    ):
        self.config = config
        self.github = github
        self.controller = controller
        self.responder = responder
        self.reviewer = reviewer or ReviewerAgent(responder.router)
        self.workspace_factory = workspace_factory or controller.workspace_factory

    @property
    def trigger(self) -> str:
        return self.config.bot.trigger_phrase

    def _should_skip(self, body: str) -> bool:
        if self.config.bot.ignore_marker in body:
            logger.info("[HANDLER] Ignoring bot-authored comment")
            return True
        if self.trigger not in body:
            logger.info("[HANDLER] No trigger phrase; skipping")
            return True
        return False

    # -----------------------------------------------------------------------
    # Replies
    # -----------------------------------------------------------------------

    def _post_comment(self, owner: str, repo: str, number: int, body: str, quote: str | None = None) -> None:
        text = f"{body}\n\n{self.config.bot.ignore_marker}"
        if quote:
            quoted = "\n".join(f"> {line}" for line in quote.strip().splitlines())
            text = f"{quoted}\n\n{text}"
        try:
            self.github.create_comment(owner, repo, number, text)
        except GitHubError as e:
            logger.error(f"[HANDLER] Could not post comment on #{number}: {e}")

    def _post_review_reply(self, owner: str, repo: str, number: int, comment_id: int, body: str) -> None:
        text = f"{body}\n\n{self.config.bot.ignore_marker}"
        try:
            self.github.reply_to_review_comment(owner, repo, number, comment_id, text)
        except GitHubError as e:
            logger.error(f"[HANDLER] Could not reply to review comment {comment_id}: {e}")

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    def handle_comment(self, owner: str, repo: str, number: int, body: str) -> HandlerOutcome:
        """Comment on an issue or pull request."""
        if self._should_skip(body):
            return HandlerOutcome(handled=False)

        if is_code_change_request(body, self.trigger):
            result = self.controller.run(
                ChangeRequest(owner=owner, repo=repo, number=number, request_text=body)
            )
            reply = format_change_reply(result)
            self._post_comment(owner, repo, number, reply, quote=body)
            return HandlerOutcome(handled=True, action="code_change", reply=reply, result=result)

        try:
            reply = self.responder.answer(body, f"{owner}/{repo}#{number}")
        except GenerationError as e:
            reply = format_error_reply(str(e))
        self._post_comment(owner, repo, number, reply, quote=body)
        return HandlerOutcome(handled=True, action="answer", reply=reply)

    def handle_review_comment(
        self, owner: str, repo: str, number: int, comment_id: int, body: str
    ) -> HandlerOutcome:
        """Review comment anchored to a diff line; the anchor goes into the context."""
        if self._should_skip(body):
            return HandlerOutcome(handled=False)

        if is_code_change_request(body, self.trigger):
            result = self.controller.run(
                ChangeRequest(
                    owner=owner, repo=repo, number=number,
                    request_text=body, review_comment_id=comment_id,
                )
            )
            reply = format_change_reply(result)
            self._post_review_reply(owner, repo, number, comment_id, reply)
            return HandlerOutcome(handled=True, action="code_change", reply=reply, result=result)

        try:
            reply = self.responder.answer(body, f"review comment {comment_id} on {owner}/{repo}#{number}")
        except GenerationError as e:
            reply = format_error_reply(str(e))
        self._post_review_reply(owner, repo, number, comment_id, reply)
        return HandlerOutcome(handled=True, action="answer", reply=reply)

    def handle_issue(self, owner: str, repo: str, number: int) -> HandlerOutcome:
        """Turn a triggered issue into a pull request with the requested changes."""
        try:
            issue = self.github.get_issue(owner, repo, number)
        except GitHubError as e:
            reply = format_error_reply(str(e))
            self._post_comment(owner, repo, number, reply)
            return HandlerOutcome(handled=True, action="pull_request", reply=reply)

        title = issue.get("title") or ""
        body = issue.get("body") or ""
        if self.trigger not in title and self.trigger not in body:
            logger.info(f"[HANDLER] Issue #{number} has no trigger phrase; skipping")
            return HandlerOutcome(handled=False)

        self._post_comment(
            owner, repo, number,
            "I'm processing your request to make code changes. I'll open a PR shortly.",
        )

        result = self.controller.run(
            ChangeRequest(owner=owner, repo=repo, number=number, request_text=f"{title}\n\n{body}")
        )
        if not result.success:
            reply = format_error_reply(result.error or "Unknown error")
            self._post_comment(owner, repo, number, reply)
            return HandlerOutcome(handled=True, action="pull_request", reply=reply, result=result)

        subject = (result.commit_message or title).splitlines()[0]
        pr_body = (
            f"Fixes #{number}\n\n"
            f"**Changes made:**\n{result.explanation}\n\n"
            f"**Modified files:**\n{_file_list(result.changed_files)}"
        )
        try:
            pr = self.github.create_pull_request(
                owner, repo,
                head=result.branch_name or "",
                base=result.base_branch or "main",
                title=subject,
                body=pr_body,
            )
        except GitHubError as e:
            # Branch is pushed; a PR for it may already exist
            logger.warning(f"[HANDLER] PR creation failed: {e}")
            reply = (
                f"✅ I pushed the requested changes to `{result.branch_name}`, "
                f"but could not open a pull request:\n```\n{e}\n```"
            )
            self._post_comment(owner, repo, number, reply)
            return HandlerOutcome(handled=True, action="pull_request", reply=reply, result=result)

        reply = (
            f"✅ I've created a PR with the requested changes: #{pr.get('number')}\n\n"
            f"**Changes made:**\n{result.explanation}\n\n"
            f"**Modified files:**\n{_file_list(result.changed_files)}"
        )
        self._post_comment(owner, repo, number, reply)
        return HandlerOutcome(
            handled=True, action="pull_request", reply=reply,
            result=result, pull_request_url=pr.get("html_url"),
        )

    def handle_pull_request(self, owner: str, repo: str, number: int) -> HandlerOutcome:
        """Review a newly opened pull request from its title, description and diff."""
        try:
            pr = self.github.get_pull_request(owner, repo, number)
            diff = self.github.get_pull_request_diff(owner, repo, number)
        except GitHubError as e:
            logger.error(f"[HANDLER] Could not load PR #{number}: {e}")
            reply = format_error_reply(str(e))
            self._post_comment(owner, repo, number, reply)
            return HandlerOutcome(handled=True, action="review", reply=reply)

        try:
            reply = self.reviewer.review(pr.get("title") or "", pr.get("body") or "", diff)
        except GenerationError as e:
            logger.error(f"[HANDLER] Review of PR #{number} failed: {e}")
            reply = format_error_reply(str(e))

        self._post_comment(owner, repo, number, reply)
        return HandlerOutcome(handled=True, action="review", reply=reply)

    def handle_revert(self, owner: str, repo: str, number: int, body: str) -> HandlerOutcome:
        """Revert the head commit of a pull request branch."""
        if body.strip() != f"{self.trigger} bot:revert":
            return HandlerOutcome(handled=False)

        workspace: Workspace | None = None
        try:
            pr = self.github.get_pull_request(owner, repo, number)
            head = pr.get("head") or {}
            branch = head["ref"]
            repo_url = (head.get("repo") or {}).get("clone_url") or f"https://github.com/{owner}/{repo}.git"

            workspace = self.workspace_factory(repo_url)
            workspace.clone(branch, depth=2)
            message = workspace.revert_last_commit()
            workspace.push(branch)
            subject = message.splitlines()[0] if message else "HEAD"
            reply = f'✅ Successfully reverted the previous commit: "{subject}"'
        except (GitHubError, WorkspaceError, KeyError) as e:
            logger.error(f"[HANDLER] Revert on #{number} failed: {mask_credentials(str(e))}")
            reply = f"❌ Failed to revert the previous commit: {mask_credentials(str(e))}"
        finally:
            if workspace is not None:
                workspace.cleanup()

        self._post_comment(owner, repo, number, reply)
        return HandlerOutcome(handled=True, action="revert", reply=reply)
