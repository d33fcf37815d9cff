"""
PatchBot Edit Protocol — SEARCH/REPLACE wire grammar

A model response is free-text explanation followed by zero or more
edit blocks of exactly this shape:

    path/to/file.py
    ```python
    <<<<<<< SEARCH
    lines to find, verbatim (empty = create the file)
    =======
    lines to put in their place
    >>>>>>> REPLACE
    ```

The three markers are literal and must sit alone on their line.
The fence language tag is free. The explanation is everything before
the first block; optional "EXPLANATION:" / "CHANGES:" labels around
it are dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


SEARCH_MARKER = "<<<<<<< SEARCH"
DIVIDER_MARKER = "======="
REPLACE_MARKER = ">>>>>>> REPLACE"

_BLOCK_PATTERN = re.compile(
    r"^(?P<filename>[^\n]+)\n"
    r"```[^\n]*\n"
    + re.escape(SEARCH_MARKER) + r"\n"
    r"(?P<search>.*?)"
    r"^" + re.escape(DIVIDER_MARKER) + r"\n"
    r"(?P<replace>.*?)"
    r"^" + re.escape(REPLACE_MARKER) + r"\n"
    r"```",
    re.MULTILINE | re.DOTALL,
)

_EXPLANATION_LABEL = re.compile(r"^\s*EXPLANATION:[ \t]*\n?")
_CHANGES_LABEL = re.compile(r"\n?[ \t]*CHANGES:\s*$")


class NoEditsProduced(Exception):
    """The generator response contained no well-formed edit block."""

    def __init__(self, message: str, response: str = ""):
        super().__init__(message)
        self.response = response


@dataclass(frozen=True)
class EditBlock:
    filename: str
    search: str
    replace: str

    @property
    def is_creation(self) -> bool:
        return self.search == ""


@dataclass(frozen=True)
class EditSet:
    blocks: tuple[EditBlock, ...]
    explanation: str

    @property
    def filenames(self) -> list[str]:
        return list(dict.fromkeys(block.filename for block in self.blocks))

    def __len__(self) -> int:
        return len(self.blocks)


def extract_edit_blocks(response: str) -> list[EditBlock]:
    """Return every well-formed block in order of appearance."""
    return [
        EditBlock(
            filename=match.group("filename").strip(),
            search=match.group("search"),
            replace=match.group("replace"),
        )
        for match in _BLOCK_PATTERN.finditer(response or "")
    ]


def extract_explanation(response: str) -> str:
    """Text before the first block, without the optional section labels."""
    response = response or ""
    first = _BLOCK_PATTERN.search(response)
    preamble = response[: first.start()] if first else response
    preamble = _EXPLANATION_LABEL.sub("", preamble, count=1)
    preamble = _CHANGES_LABEL.sub("", preamble.rstrip(), count=1)
    return preamble.strip()


def parse_edit_set(response: str) -> EditSet:
    return EditSet(
        blocks=tuple(extract_edit_blocks(response)),
        explanation=extract_explanation(response),
    )

