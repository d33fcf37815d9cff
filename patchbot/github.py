"""
PatchBot GitHub client

Thin wrapper over the GitHub REST API covering exactly what the bot
needs: reading issues, pull requests, diffs and comments, checking
branches, and posting replies / pull requests.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import requests
from loguru import logger

from patchbot.config_loader import GitHubConfig


class GitHubError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """
    GitHub REST client bound to one token.

    All methods take the repository as (owner, repo) so one client can
    serve requests for several repositories.
    """

    def __init__(self, config: GitHubConfig, session: requests.Session | None = None):
        if not config.token:
            raise ValueError("GitHub token is required (set GITHUB_TOKEN)")

        self.api_url = config.api_url.rstrip("/")
        self.timeout = config.timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/vnd.github.v3+json",
            "Authorization": f"Bearer {config.token}",
            "User-Agent": "PatchBot",
        })

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.api_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise GitHubError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise GitHubError(
                f"{method} {path} returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return response

    def _get_json(self, path: str, **kwargs) -> Any:
        return self._request("GET", path, **kwargs).json()

    def _get_paginated(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = self._get_json(path, params={"per_page": 100, "page": page})
            items.extend(batch)
            if len(batch) < 100:
                return items
            page += 1

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner)}/{quote(repo)}"

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_repo(self, owner: str, repo: str) -> dict[str, Any]:
        return self._get_json(self._repo_path(owner, repo))

    def get_issue(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        return self._get_json(f"{self._repo_path(owner, repo)}/issues/{number}")

    def is_pull_request(self, owner: str, repo: str, number: int) -> bool:
        """Pull requests are issues carrying a `pull_request` key."""
        if not number:
            return False
        try:
            issue = self.get_issue(owner, repo, number)
        except GitHubError as e:
            logger.warning(f"[GITHUB] Could not check whether #{number} is a PR: {e}")
            return False
        return issue.get("pull_request") is not None

    def get_pull_request(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        return self._get_json(f"{self._repo_path(owner, repo)}/pulls/{number}")

    def get_pull_request_diff(self, owner: str, repo: str, number: int) -> str:
        response = self._request(
            "GET",
            f"{self._repo_path(owner, repo)}/pulls/{number}",
            headers={"Accept": "application/vnd.github.v3.diff"},
        )
        return response.text

    def list_pull_request_files(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/pulls/{number}/files")

    def list_issue_comments(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        return self._get_paginated(f"{self._repo_path(owner, repo)}/issues/{number}/comments")

    def get_review_comment(self, owner: str, repo: str, comment_id: int) -> dict[str, Any]:
        return self._get_json(f"{self._repo_path(owner, repo)}/pulls/comments/{comment_id}")

    def branch_exists(self, owner: str, repo: str, branch: str) -> bool:
        try:
            self._request("GET", f"{self._repo_path(owner, repo)}/git/ref/heads/{quote(branch)}")
        except GitHubError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def create_comment(self, owner: str, repo: str, number: int, body: str) -> dict[str, Any]:
        logger.debug(f"[GITHUB] Commenting on {owner}/{repo}#{number}")
        return self._request(
            "POST", f"{self._repo_path(owner, repo)}/issues/{number}/comments", json={"body": body}
        ).json()

    def reply_to_review_comment(
        self, owner: str, repo: str, number: int, comment_id: int, body: str
    ) -> dict[str, Any]:
        logger.debug(f"[GITHUB] Replying to review comment {comment_id} on #{number}")
        return self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/pulls/{number}/comments/{comment_id}/replies",
            json={"body": body},
        ).json()

    def create_pull_request(
        self, owner: str, repo: str, head: str, base: str, title: str, body: str
    ) -> dict[str, Any]:
        logger.info(f"[GITHUB] Opening PR {head} → {base} on {owner}/{repo}")
        return self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/pulls",
            json={"head": head, "base": base, "title": title, "body": body},
        ).json()
