"""
PatchBot Workspace — version control wrapper

Every run gets a private temporary directory holding a shallow,
single-branch clone. All git commands run with that directory as
their explicit cwd; the process working directory is never changed.

Clone and push URLs carry the access token, so every string that
leaves this module goes through mask_credentials().
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import tempfile
from pathlib import Path

from loguru import logger


class WorkspaceError(Exception):
    pass


_CREDENTIALS = re.compile(r"(https?://)[^/@\s]+@")


def mask_credentials(text: str) -> str:
    """Replace the userinfo part of any URL with ***."""
    return _CREDENTIALS.sub(r"\1***@", text or "")


def authenticated_url(repo_url: str, token: str | None) -> str:
    if not token or not repo_url.startswith("https://"):
        return repo_url
    return repo_url.replace("https://", f"https://x-access-token:{token}@", 1)


class Workspace:
    """
    Manages a temporary shallow clone for a single run.
    """

    def __init__(
        self,
        repo_url: str,
        token: str | None = None,
        user_name: str = "PatchBot",
        user_email: str = "patchbot[bot]@users.noreply.github.com",
        base_dir: Path | None = None,
        timeout: int = 300,
    ):
        self.repo_url = repo_url
        self.user_name = user_name
        self.user_email = user_email
        self.base_dir = base_dir
        self.timeout = timeout
        self._token = token
        self._path: Path | None = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise WorkspaceError("Workspace has not been created")
        return self._path

    @property
    def created(self) -> bool:
        return self._path is not None

    def create(self) -> Path:
        """Allocate the private working directory."""
        if self.base_dir:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._path = Path(tempfile.mkdtemp(prefix="patchbot-", dir=self.base_dir))
        logger.info(f"[WORKSPACE] Created {self._path}")
        return self._path

    def clone(self, branch: str, depth: int = 1) -> Path:
        """Shallow-clone a single branch into the workspace.

        Reverting HEAD needs its parent, so callers that revert pass depth=2.
        """
        if not self.created:
            self.create()

        logger.info(f"[WORKSPACE] Cloning {mask_credentials(self.repo_url)} @ {branch}")
        self._run_cmd(
            [
                "git", "clone", "--depth", str(depth), "--single-branch", "--branch", branch,
                authenticated_url(self.repo_url, self._token), str(self.path),
            ],
            cwd=self.path.parent,
        )
        self._git("config", "user.name", self.user_name)
        self._git("config", "user.email", self.user_email)
        return self.path

    def checkout_new_branch(self, name: str) -> None:
        logger.info(f"[WORKSPACE] Creating branch {name}")
        self._git("checkout", "-b", name)

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD", capture=True).strip()

    def commit(self, message: str, add_all: bool = True) -> str | None:
        """Stage and commit changes. Returns the new sha, or None if nothing changed."""
        if add_all:
            self._git("add", "-A")

        status = self._git("status", "--porcelain", capture=True)
        if not status.strip():
            logger.info("[WORKSPACE] Nothing to commit.")
            return None

        self._git("commit", "-m", message)
        return self._git("rev-parse", "HEAD", capture=True).strip()

    def push(self, branch: str) -> None:
        self._git("push", authenticated_url(self.repo_url, self._token), f"HEAD:refs/heads/{branch}")
        logger.info(f"[WORKSPACE] Pushed {branch}")

    def last_commit_message(self) -> str:
        return self._git("log", "-1", "--pretty=%B", capture=True).strip()

    def revert_last_commit(self) -> str:
        """Revert HEAD with a new commit; returns the reverted commit's message."""
        message = self.last_commit_message()
        self._git("revert", "HEAD", "--no-edit")
        logger.info(f"[WORKSPACE] Reverted: {message.splitlines()[0] if message else '?'}")
        return message

    def cleanup(self) -> None:
        """Remove the working directory. Safe to call more than once."""
        if self._path is None:
            return
        shutil.rmtree(self._path, ignore_errors=True)
        logger.info(f"[WORKSPACE] Cleaned up {self._path}")
        self._path = None

    def __enter__(self) -> "Workspace":
        self.create()
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()

    def _git(self, *args: str, check: bool = True, capture: bool = False) -> str:
        return self._run_cmd(["git", *args], cwd=self.path, check=check, capture=capture)

    def _run_cmd(self, cmd: list[str], cwd: Path, check: bool = True, capture: bool = False) -> str:
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        try:
            result = subprocess.run(
                cmd, cwd=cwd, capture_output=True, text=True, timeout=self.timeout, env=env
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise WorkspaceError(mask_credentials(f"Git failed: {' '.join(cmd)}: {e}")) from None
        if check and result.returncode != 0:
            raise WorkspaceError(
                mask_credentials(f"Git failed: {' '.join(cmd)}\n{result.stderr.strip()}")
            )
        return result.stdout if capture else ""
