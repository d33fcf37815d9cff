import shutil
import subprocess
from pathlib import Path

import pytest

from patchbot.router import GenerationError, RouterResponse


class FakeRouter:
    """Scripted stand-in for the model router; replies are consumed in order."""

    def __init__(self, replies=None, by_role=None):
        self.replies = list(replies or [])
        self.by_role = {role: list(items) for role, items in (by_role or {}).items()}
        self.calls: list[dict] = []

    def complete(self, role, messages, temperature=0.2, max_tokens=8192):
        self.calls.append({"role": role, "messages": messages, "temperature": temperature})
        queue = self.by_role.get(role, self.replies)
        if not queue:
            raise GenerationError(f"no scripted reply for {role}")
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return RouterResponse(content=reply, model=f"fake/{role}")

    def calls_for(self, role):
        return [c for c in self.calls if c["role"] == role]


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("def main():\n    return 1\n")
    (tmp_path / "src" / "util.py").write_text("X = 1\n")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "index.md").write_text("# Docs\n")
    (tmp_path / "README.md").write_text("readme\n")
    return tmp_path


def git(cwd: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout


def block(filename: str, search: str, replace: str, lang: str = "python") -> str:
    return (
        f"{filename}\n```{lang}\n<<<<<<< SEARCH\n{search}=======\n{replace}>>>>>>> REPLACE\n```"
    )


@pytest.fixture
def origin(tmp_path: Path) -> Path:
    """Bare repository with `main` and `feature` branches holding a tiny project."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    bare = tmp_path / "origin.git"
    seed = tmp_path / "seed"
    git(tmp_path, "init", "--bare", str(bare))
    git(tmp_path, "init", str(seed))
    (seed / "src").mkdir()
    (seed / "src" / "app.py").write_text("def main():\n    return 1\n")
    (seed / "README.md").write_text("readme\n")
    git(seed, "add", "-A")
    git(
        seed,
        "-c", "user.name=Seed", "-c", "user.email=seed@example.com", "-c", "commit.gpgsign=false",
        "commit", "-m", "initial",
    )
    git(seed, "push", str(bare), "HEAD:refs/heads/main")
    git(seed, "push", str(bare), "HEAD:refs/heads/feature")
    return bare


class FakeGitHub:
    """In-memory GitHub client covering the calls the bot makes."""

    def __init__(self, clone_url: str, pull_request: bool = True, branches=()):
        self.clone_url = clone_url
        self.pull_request = pull_request
        self.branches = set(branches)
        self.comments: list[tuple[int, str]] = []
        self.review_replies: list[tuple[int, int, str]] = []
        self.pulls: list[dict] = []
        self.issue = {"title": "Bump the return value", "body": "main should return 2"}
        self.thread = [
            {"user": {"login": "octo"}, "body": "please bump it"},
            {"user": {"login": "patchbot"}, "body": "done\n\nbot:ignore"},
        ]

    def is_pull_request(self, owner, repo, number):
        return self.pull_request

    def get_pull_request(self, owner, repo, number):
        return {
            "title": "Return one from main",
            "body": "main should return 1",
            "head": {"ref": "feature", "repo": {"clone_url": self.clone_url}},
            "base": {"ref": "main"},
        }

    def list_pull_request_files(self, owner, repo, number):
        return [
            {"filename": "src/app.py", "status": "modified"},
            {"filename": "old.py", "status": "removed"},
        ]

    def get_pull_request_diff(self, owner, repo, number):
        return "-    return 0\n+    return 1"

    def get_repo(self, owner, repo):
        return {"default_branch": "main", "clone_url": self.clone_url}

    def branch_exists(self, owner, repo, branch):
        return branch in self.branches

    def get_issue(self, owner, repo, number):
        return dict(self.issue)

    def list_issue_comments(self, owner, repo, number):
        return list(self.thread)

    def get_review_comment(self, owner, repo, comment_id):
        return {"path": "src/app.py", "line": 2, "diff_hunk": "@@ -1,2 +1,2 @@", "commit_id": "abc"}

    def create_comment(self, owner, repo, number, body):
        self.comments.append((number, body))
        return {"id": len(self.comments)}

    def reply_to_review_comment(self, owner, repo, number, comment_id, body):
        self.review_replies.append((number, comment_id, body))
        return {"id": comment_id + 1}

    def create_pull_request(self, owner, repo, head, base, title, body):
        pr = {"number": 99, "html_url": f"https://github.com/{owner}/{repo}/pull/99",
              "head": head, "base": base, "title": title, "body": body}
        self.pulls.append(pr)
        return pr
