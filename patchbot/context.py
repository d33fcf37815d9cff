"""
PatchBot Context Assembler

Builds the text bundle sent to the generator: the request, any prior
artifact (issue/PR title, body, conversation, diff, anchored review
comment), an optional plan, and the current contents of every
referenced file.

File contents are read from disk on every render so a retry round
always sees the tree as the previous round left it. Only the path
list is cached.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from loguru import logger
from pydantic import BaseModel, Field

from patchbot.config_loader import DEFAULT_FILE_LINES
from patchbot.directives import resolve_file_references


class ReviewComment(BaseModel):
    """A single review comment anchored to a line of a pull request diff."""
    path: str
    line: int | None = None
    diff_hunk: str = ""
    position: int | None = None
    commit_id: str = ""

    def to_context(self) -> str:
        return json.dumps(self.model_dump(), indent=2)


class ThreadComment(BaseModel):
    author: str = ""
    body: str


class PriorArtifact(BaseModel):
    """Metadata of the issue or pull request a request was made on."""
    number: int
    title: str = ""
    body: str = ""
    is_pull_request: bool = False
    comments: list[ThreadComment] = Field(default_factory=list)
    diff: str = ""
    review_comment: ReviewComment | None = None
    changed_files: list[str] = Field(default_factory=list)


class RequestContext:
    """
    Aggregated context for one request.

    Mutable only through append_follow_up() and the plan memo; the
    resolved path list is computed on first use and then reused.
    """

    def __init__(
        self,
        request_text: str,
        working_root: Path,
        artifact: PriorArtifact | None = None,
        baseline_paths: Iterable[str] = (),
        max_file_lines: int = DEFAULT_FILE_LINES,
    ):
        self.request_text = request_text
        self.working_root = Path(working_root)
        self.artifact = artifact
        self.baseline_paths = list(baseline_paths)
        self.max_file_lines = max_file_lines
        self.plan: str | None = None
        self._file_paths: list[str] | None = None
        self._follow_ups: list[str] = []

    # -----------------------------------------------------------------------
    # Files
    # -----------------------------------------------------------------------

    @property
    def file_paths(self) -> list[str]:
        if self._file_paths is None:
            self._file_paths = resolve_file_references(
                self.request_text, self.working_root, self.baseline_paths
            )
        return list(self._file_paths)

    def read_files(self) -> dict[str, str]:
        """Read every resolved file verbatim; unreadable files get an error marker instead."""
        contents = {}
        for rel_path in self.file_paths:
            full = self.working_root / rel_path
            try:
                with open(full, "r", encoding="utf-8", newline="") as f:
                    content = f.read()
                lines = content.splitlines(keepends=True)
                if len(lines) > self.max_file_lines:
                    content = "".join(lines[: self.max_file_lines])
                    content += (
                        f"\n... truncated ({len(lines)} lines total, "
                        f"only the first {self.max_file_lines} are shown)"
                    )
                contents[rel_path] = content
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"[CONTEXT] Could not read {rel_path}: {e}")
                contents[rel_path] = f"[Error reading file: {e}]"
        return contents

    # -----------------------------------------------------------------------
    # Follow-ups
    # -----------------------------------------------------------------------

    def append_follow_up(self, text: str) -> None:
        self._follow_ups.append(text)

    @property
    def follow_ups(self) -> list[str]:
        return list(self._follow_ups)

    # -----------------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------------

    def request_copy(self) -> str:
        return f"Request: {self.request_text}"

    def file_copy(self) -> str:
        listing = "\n".join(
            f"--- {path} ---\n{content}\n" for path, content in self.read_files().items()
        )
        return f"Available files and contents:\n{listing}"

    def _artifact_sections(self) -> list[str]:
        sections = []
        artifact = self.artifact
        if not artifact:
            return sections

        body = artifact.body.strip()
        if artifact.title and artifact.title.strip() != self.request_text.strip():
            kind = "Pull request" if artifact.is_pull_request else "Issue"
            sections.append(f"{kind} #{artifact.number}: {artifact.title}")
        if body and body != self.request_text.strip():
            sections.append(f"Description:\n{body}")
        if artifact.comments:
            thread = "\n".join(
                f"@{c.author}: {c.body}" if c.author else c.body for c in artifact.comments
            )
            sections.append(f"Conversation:\n{thread}")
        return sections

    def render(self) -> str:
        sections = self._artifact_sections()
        sections.append(self.request_copy())

        if self.plan:
            sections.append(f"Plan:\n{self.plan}")

        sections.append(self.file_copy())

        if self.artifact and self.artifact.diff:
            sections.append(f"Diff:\n```diff\n{self.artifact.diff}\n```")
        if self.artifact and self.artifact.review_comment:
            sections.append(f"Review comment:\n{self.artifact.review_comment.to_context()}")

        for follow_up in self._follow_ups:
            sections.append(f"Additional context:\n{follow_up}")

        return "\n\n".join(sections)

    def __str__(self) -> str:
        return self.render()
