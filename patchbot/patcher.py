"""
PatchBot Patch Engine

Applies SEARCH/REPLACE blocks to a working tree and drives the
bounded correction loop.

Application rules, per block, in order:
  - the filename counts as touched before anything is attempted
  - empty SEARCH: create (or overwrite) the file with REPLACE
  - otherwise the file must exist and contain SEARCH verbatim;
    only the first occurrence is replaced

A round is `run_round(root, blocks) -> RoundResult`. Failed blocks are
reported back to the implementer through the request context and the
whole block list is replaced by its answer. After `max_rounds` rounds
with failures the engine gives up with RetryBudgetExhausted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from loguru import logger

from patchbot.agents.implementer import ImplementerAgent
from patchbot.config_loader import DEFAULT_MAX_ROUNDS
from patchbot.context import RequestContext
from patchbot.edit_blocks import EditBlock
from patchbot.event_bus import EventBus


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class PatchBlockError(Exception):
    """A single block could not be applied. Recoverable through a retry round."""

    def __init__(self, block: EditBlock, message: str):
        super().__init__(message)
        self.block = block


class FileNotFound(PatchBlockError):
    pass


class SearchTextNotFound(PatchBlockError):
    pass


class PathOutsideWorkspace(PatchBlockError):
    pass


class PatchApplicationFailed(Exception):
    """Blocks were still failing when the engine stopped."""

    def __init__(self, message: str, failures: Iterable["FailureRecord"] = (), rounds: int = 0):
        super().__init__(message)
        self.failures = list(failures)
        self.rounds = rounds


class RetryBudgetExhausted(PatchApplicationFailed):
    pass


# ---------------------------------------------------------------------------
# Round data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FailureRecord:
    block: EditBlock
    error: PatchBlockError

    @property
    def reason(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class RoundResult:
    number: int
    touched: tuple[str, ...]
    succeeded: tuple[EditBlock, ...]
    failed: tuple[FailureRecord, ...]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class ApplyResult:
    changed_files: list[str]
    rounds: int
    unresolved: list[FailureRecord] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Single block application
# ---------------------------------------------------------------------------

def _resolve_target(root: Path, block: EditBlock) -> Path:
    base = root.resolve()
    target = (base / block.filename).resolve()
    if target != base and base not in target.parents:
        raise PathOutsideWorkspace(block, f"Path {block.filename} is outside the working tree")
    return target


def _read(path: Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _write(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def apply_block(root: Path, block: EditBlock) -> Path:
    """Apply one block under *root*. Raises a PatchBlockError subclass on failure."""
    target = _resolve_target(root, block)

    if block.is_creation:
        target.parent.mkdir(parents=True, exist_ok=True)
        _write(target, block.replace)
        logger.debug(f"[PATCH] Created {block.filename}")
        return target

    if not target.is_file():
        raise FileNotFound(
            block, f"File {block.filename} does not exist but has non-empty search content"
        )

    content = _read(target)
    if block.search not in content:
        raise SearchTextNotFound(block, f"Search text not found in {block.filename}")

    _write(target, content.replace(block.search, block.replace, 1))
    logger.debug(f"[PATCH] Patched {block.filename}")
    return target


def run_round(root: Path, blocks: Iterable[EditBlock], number: int = 1) -> RoundResult:
    """Attempt every block once, in order; collect successes and failures."""
    touched: list[str] = []
    succeeded: list[EditBlock] = []
    failed: list[FailureRecord] = []

    for block in blocks:
        touched.append(block.filename)
        try:
            apply_block(root, block)
            succeeded.append(block)
        except PatchBlockError as e:
            logger.warning(f"[PATCH] Round {number}: {block.filename}: {e}")
            failed.append(FailureRecord(block=block, error=e))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"[PATCH] Round {number}: {block.filename}: {e}")
            failed.append(FailureRecord(
                block=block,
                error=PatchBlockError(block, f"Could not write {block.filename}: {e}"),
            ))

    return RoundResult(
        number=number,
        touched=tuple(dict.fromkeys(touched)),
        succeeded=tuple(succeeded),
        failed=tuple(failed),
    )


def format_failure_report(failures: Iterable[FailureRecord]) -> str:
    """Follow-up text asking the model to correct the failed blocks."""
    parts = [
        "The following search/replace blocks failed to apply. "
        "Please provide corrected search/replace blocks for them, "
        "matching the current file contents above exactly."
    ]
    for failure in failures:
        parts.append(
            f"File: {failure.block.filename}\n"
            f"Error: {failure.reason}\n"
            f"Original search:\n```\n{failure.block.search}\n```\n"
            f"Original replace:\n```\n{failure.block.replace}\n```"
        )
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PatchEngine:
    """Applies an edit set and re-prompts the implementer for failed blocks."""

    def __init__(
        self,
        implementer: ImplementerAgent,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        event_bus: EventBus | None = None,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.implementer = implementer
        self.max_rounds = max_rounds
        self.event_bus = event_bus

    def apply(self, blocks: Iterable[EditBlock], context: RequestContext) -> ApplyResult:
        root = context.working_root
        changed: dict[str, None] = {}
        current = tuple(blocks)

        for number in range(1, self.max_rounds + 1):
            result = run_round(root, current, number)
            changed.update(dict.fromkeys(result.touched))
            self._emit(result)

            if result.ok:
                logger.info(
                    f"[PATCH] Applied {len(result.succeeded)} blocks in round {number}"
                )
                return ApplyResult(changed_files=list(changed), rounds=number)

            if number == self.max_rounds:
                raise RetryBudgetExhausted(
                    f"Failed to apply {len(result.failed)} blocks after {self.max_rounds} rounds",
                    failures=result.failed,
                    rounds=number,
                )

            logger.info(
                f"[PATCH] Retry {number}/{self.max_rounds - 1} for "
                f"{len(result.failed)} failed blocks"
            )
            context.append_follow_up(format_failure_report(result.failed))
            current = self.implementer.generate_edits(context).blocks

        # max_rounds >= 1, so the loop always returns or raises
        raise AssertionError("unreachable")

    def _emit(self, result: RoundResult) -> None:
        if not self.event_bus:
            return
        self.event_bus.emit(
            "patch_round",
            "patcher",
            {
                "round": result.number,
                "succeeded": len(result.succeeded),
                "failed": [
                    {"file": f.block.filename, "error": type(f.error).__name__}
                    for f in result.failed
                ],
            },
        )
