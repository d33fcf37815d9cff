"""
PatchBot Controller — The Orchestrator

It is NOT smart. It is deterministic.

Pipeline (one request, strictly sequential):
  RESOLVING   → pick repository + branch, clone, fetch prior artifact, resolve files
  PLANNING    → optional short plan
  GENERATING  → SEARCH/REPLACE edit set
  APPLYING    → patch engine with bounded correction rounds
  SUMMARIZING → one-line commit subject
  COMMITTING  → commit + push
  DONE

Any failure moves the run to FAILED. The workspace is removed on
every path, and errors come back as a RunResult, never as an exception.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, Field

from patchbot.agents.implementer import ImplementerAgent
from patchbot.agents.planner import PlannerAgent
from patchbot.agents.summarizer import SummarizerAgent
from patchbot.config_loader import PatchBotConfig
from patchbot.context import PriorArtifact, RequestContext, ReviewComment, ThreadComment
from patchbot.event_bus import EventBus
from patchbot.github import GitHubClient, GitHubError
from patchbot.patcher import PatchEngine
from patchbot.router import Router
from patchbot.state import RunPhase, RunState
from patchbot.workspace import Workspace, WorkspaceError, mask_credentials


# ---------------------------------------------------------------------------
# Request / Result
# ---------------------------------------------------------------------------

class ChangeRequest(BaseModel):
    """A request to change code, made on an issue or pull request."""
    owner: str
    repo: str
    number: int
    request_text: str
    review_comment_id: int | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


class RunResult(BaseModel):
    success: bool
    explanation: str | None = None
    changed_files: list[str] = Field(default_factory=list)
    branch_name: str | None = None
    base_branch: str | None = None
    repo_url: str | None = None
    is_pull_request: bool = False
    commit_message: str | None = None
    commit_sha: str | None = None
    rounds: int = 0
    error: str | None = None


@dataclass
class _Target:
    repo_url: str
    branch: str
    clone_branch: str
    base_branch: str
    is_pull_request: bool
    baseline_files: list[str] = field(default_factory=list)

    @property
    def needs_new_branch(self) -> bool:
        return self.branch != self.clone_branch


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class Controller:
    """
    Runs one ChangeRequest end to end.

    Collaborators are passed in explicitly: the router (text generator),
    the GitHub client and a workspace factory. Nothing is read from
    process-wide state.
    """

    def __init__(
        self,
        config: PatchBotConfig,
        router: Router,
        github: GitHubClient,
        event_bus: EventBus | None = None,
        workspace_factory: Callable[[str], Workspace] | None = None,
    ):
        self.config = config
        self.router = router
        self.github = github
        self.event_bus = event_bus or EventBus()
        self.workspace_factory = workspace_factory or self._default_workspace

        self.planner = PlannerAgent(router)
        self.implementer = ImplementerAgent(router)
        self.summarizer = SummarizerAgent(router, max_length=config.limits.commit_subject_length)
        self.engine = PatchEngine(
            self.implementer,
            max_rounds=config.limits.max_patch_rounds,
            event_bus=self.event_bus,
        )

    def _default_workspace(self, repo_url: str) -> Workspace:
        return Workspace(
            repo_url,
            token=self.config.github.token,
            user_name=self.config.bot.git_user_name,
            user_email=self.config.bot.git_user_email,
        )

    def run(self, request: ChangeRequest) -> RunResult:
        """Execute the full pipeline for one request."""
        state = RunState(run_id=request.slug)
        workspace: Workspace | None = None

        logger.info(f"[CONTROLLER] Starting {request.slug}")

        try:
            # ── 1. Resolve target + workspace + context ──
            self._enter(state, RunPhase.RESOLVING)
            target = self._resolve_target(request)
            state.branch_name = target.branch
            state.repo_url = mask_credentials(target.repo_url)
            state.is_pull_request = target.is_pull_request

            workspace = self.workspace_factory(target.repo_url)
            root = workspace.clone(target.clone_branch)
            if target.needs_new_branch:
                workspace.checkout_new_branch(target.branch)

            artifact = self._fetch_artifact(request, target)
            context = RequestContext(
                request.request_text,
                root,
                artifact=artifact,
                baseline_paths=target.baseline_files,
                max_file_lines=self.config.limits.max_file_lines,
            )
            logger.info(f"[CONTROLLER] Context files: {', '.join(context.file_paths) or '(none)'}")

            # ── 2. Plan ──
            if self.config.limits.use_plan:
                self._enter(state, RunPhase.PLANNING)
                self.planner.get_plan(context)

            # ── 3. Generate edits ──
            self._enter(state, RunPhase.GENERATING)
            edit_set = self.implementer.generate_edits(context)
            state.explanation = edit_set.explanation

            # ── 4. Apply with correction rounds ──
            self._enter(state, RunPhase.APPLYING)
            applied = self.engine.apply(edit_set.blocks, context)
            state.changed_files = applied.changed_files
            state.patch_rounds = applied.rounds

            # ── 5. Commit subject ──
            self._enter(state, RunPhase.SUMMARIZING)
            subject = self.summarizer.summarize(edit_set.explanation)
            state.commit_message = f"{subject}\n\nRequested via {request.slug}"

            # ── 6. Commit + push ──
            self._enter(state, RunPhase.COMMITTING)
            sha = workspace.commit(state.commit_message)
            if sha is None:
                raise WorkspaceError("The requested edits did not change any file")
            workspace.push(target.branch)

            self._enter(state, RunPhase.DONE)
            logger.info(
                f"[CONTROLLER] {request.slug} done — {len(state.changed_files)} files, "
                f"{state.patch_rounds} rounds, branch {target.branch}"
            )
            return RunResult(
                success=True,
                explanation=edit_set.explanation or "Code changes applied successfully",
                changed_files=state.changed_files,
                branch_name=target.branch,
                base_branch=target.base_branch,
                repo_url=state.repo_url,
                is_pull_request=target.is_pull_request,
                commit_message=state.commit_message,
                commit_sha=sha,
                rounds=state.patch_rounds,
            )

        except Exception as e:
            failed_in = state.phase
            error = mask_credentials(str(e)) or type(e).__name__
            logger.error(f"[CONTROLLER] {request.slug} failed in {failed_in.value}: {error}")
            self._enter(state, RunPhase.FAILED, {"failed_in": failed_in.value, "error": error})
            return RunResult(
                success=False,
                branch_name=state.branch_name or None,
                repo_url=state.repo_url or None,
                is_pull_request=state.is_pull_request,
                changed_files=state.changed_files,
                rounds=state.patch_rounds,
                error=error,
            )
        finally:
            if workspace is not None:
                try:
                    workspace.cleanup()
                except Exception as cleanup_error:
                    logger.error(f"[CONTROLLER] Cleanup failed: {cleanup_error}")

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------

    def _resolve_target(self, request: ChangeRequest) -> _Target:
        owner, repo, number = request.owner, request.repo, request.number

        if self.github.is_pull_request(owner, repo, number):
            pr = self.github.get_pull_request(owner, repo, number)
            head = pr.get("head") or {}
            head_repo = head.get("repo") or {}
            if not head_repo.get("clone_url"):
                raise GitHubError(f"Head repository of PR #{number} is no longer available")

            files = self.github.list_pull_request_files(owner, repo, number)
            return _Target(
                repo_url=head_repo["clone_url"],
                branch=head["ref"],
                clone_branch=head["ref"],
                base_branch=(pr.get("base") or {}).get("ref", ""),
                is_pull_request=True,
                baseline_files=[f["filename"] for f in files if f.get("status") != "removed"],
            )

        repo_data = self.github.get_repo(owner, repo)
        default_branch = repo_data.get("default_branch") or "main"
        issue_branch = f"{self.config.bot.issue_branch_prefix}{number}"
        exists = self.github.branch_exists(owner, repo, issue_branch)
        logger.info(
            f"[CONTROLLER] Issue #{number}: "
            f"{'reusing' if exists else 'creating'} branch {issue_branch}"
        )
        return _Target(
            repo_url=repo_data["clone_url"],
            branch=issue_branch,
            clone_branch=issue_branch if exists else default_branch,
            base_branch=default_branch,
            is_pull_request=False,
        )

    def _fetch_artifact(self, request: ChangeRequest, target: _Target) -> PriorArtifact:
        owner, repo, number = request.owner, request.repo, request.number
        issue = self.github.get_issue(owner, repo, number)

        marker = self.config.bot.ignore_marker
        request_body = request.request_text.strip()
        comments = [
            ThreadComment(author=(c.get("user") or {}).get("login", ""), body=c.get("body") or "")
            for c in self.github.list_issue_comments(owner, repo, number)
            if c.get("body") and marker not in c["body"] and c["body"].strip() != request_body
        ]

        diff = ""
        if target.is_pull_request:
            diff = self.github.get_pull_request_diff(owner, repo, number)

        review_comment = None
        if request.review_comment_id:
            raw = self.github.get_review_comment(owner, repo, request.review_comment_id)
            review_comment = ReviewComment(
                path=raw.get("path", ""),
                line=raw.get("line"),
                diff_hunk=raw.get("diff_hunk") or "",
                position=raw.get("position"),
                commit_id=raw.get("commit_id") or "",
            )

        return PriorArtifact(
            number=number,
            title=issue.get("title") or "",
            body=issue.get("body") or "",
            is_pull_request=target.is_pull_request,
            comments=comments,
            diff=diff,
            review_comment=review_comment,
            changed_files=target.baseline_files,
        )

    # -----------------------------------------------------------------------
    # Utilities
    # -----------------------------------------------------------------------

    def _enter(self, state: RunState, phase: RunPhase, data: dict[str, Any] | None = None) -> None:
        state.enter(phase)
        self.event_bus.emit(
            "phase_entered",
            "controller",
            {"run_id": state.run_id, "phase": phase.value, **(data or {})},
        )
