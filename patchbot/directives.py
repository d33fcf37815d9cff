"""
PatchBot File Reference Resolver

Turns a request into the set of files the model gets to see.

Directive grammar (case-sensitive, one directive per line):

    /add src/app.py docs/          single-line form, space separated
    /ignore build/ *.min.js

    .add-files                      legacy bullet form
    - src/app.py
    - tests/**/*.py
    .ignore
    - dist/

Patterns are globs relative to the working root. A pattern ending in
"/" means "every file under this directory". Bad patterns are logged
and skipped; they never abort resolution.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Iterable

from loguru import logger


class ResolutionError(Exception):
    """A single path/glob pattern could not be resolved."""


_SINGLE_LINE = {
    "add": re.compile(r"^[ \t]*/add[ \t]+(\S.*)$", re.MULTILINE),
    "ignore": re.compile(r"^[ \t]*/ignore[ \t]+(\S.*)$", re.MULTILINE),
}

_LEGACY = {
    "add": re.compile(r"^[ \t]*\.add-files[ \t]*\n((?:[ \t]*-[ \t]+[^\n]+(?:\n|$))+)", re.MULTILINE),
    "ignore": re.compile(r"^[ \t]*\.ignore[ \t]*\n((?:[ \t]*-[ \t]+[^\n]+(?:\n|$))+)", re.MULTILINE),
}

_BULLET = re.compile(r"^[ \t]*-[ \t]+(.+?)[ \t]*$", re.MULTILINE)
_GLOB_CHARS = set("*?[")
_SKIP_PARTS = {".git"}


@dataclass
class FileDirectives:
    add_files: list[str] = field(default_factory=list)
    ignore_files: list[str] = field(default_factory=list)


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


def extract_file_directives(text: str) -> FileDirectives:
    """Collect add/ignore patterns from both directive forms, in order of appearance."""
    found: dict[str, list[tuple[int, str]]] = {"add": [], "ignore": []}

    for kind, pattern in _SINGLE_LINE.items():
        for match in pattern.finditer(text or ""):
            for token in match.group(1).split():
                found[kind].append((match.start(), token))

    for kind, pattern in _LEGACY.items():
        for match in pattern.finditer(text or ""):
            for bullet in _BULLET.finditer(match.group(1)):
                found[kind].append((match.start(1) + bullet.start(), bullet.group(1)))

    return FileDirectives(
        add_files=_dedupe(token for _, token in sorted(found["add"], key=lambda t: t[0])),
        ignore_files=_dedupe(token for _, token in sorted(found["ignore"], key=lambda t: t[0])),
    )


def has_file_directives(text: str) -> bool:
    """True if *text* carries an add or ignore directive in either form."""
    patterns = (*_SINGLE_LINE.values(), *_LEGACY.values())
    return any(pattern.search(text or "") for pattern in patterns)


def _validate_pattern(pattern: str) -> str:
    cleaned = pattern.strip()
    if not cleaned:
        raise ResolutionError("empty pattern")
    if cleaned.startswith("./"):
        cleaned = cleaned[2:]
    posix = PurePosixPath(cleaned)
    if posix.is_absolute() or re.match(r"^[A-Za-z]:[\\/]", cleaned):
        raise ResolutionError(f"absolute pattern not allowed: {pattern}")
    if ".." in posix.parts:
        raise ResolutionError(f"pattern escapes the working tree: {pattern}")
    return cleaned


def _relative(path: Path, root: Path) -> str | None:
    rel = path.relative_to(root)
    if _SKIP_PARTS.intersection(rel.parts):
        return None
    return rel.as_posix()


def _expand(pattern: str, root: Path) -> list[str]:
    cleaned = _validate_pattern(pattern)

    if not _GLOB_CHARS.intersection(cleaned):
        target = root / cleaned
        if target.is_file():
            return [PurePosixPath(cleaned).as_posix()]
        if not target.is_dir():
            logger.debug(f"[RESOLVE] No file at {cleaned}")
            return []
        cleaned = cleaned.rstrip("/") + "/"

    adjusted = f"{cleaned}**/*" if cleaned.endswith("/") else cleaned
    matches = []
    for path in sorted(root.glob(adjusted)):
        if path.is_file():
            rel = _relative(path, root)
            if rel:
                matches.append(rel)
    return matches


def resolve_globs(patterns: Iterable[str], root: Path) -> list[str]:
    """Expand every pattern against *root*; a failing pattern is logged and skipped."""
    files: list[str] = []
    for pattern in patterns:
        try:
            files.extend(_expand(pattern, root))
        except (ResolutionError, ValueError, NotImplementedError, OSError) as e:
            logger.warning(f"[RESOLVE] Skipping pattern {pattern!r}: {e}")
    return _dedupe(files)


def apply_ignore_patterns(files: Iterable[str], ignore_patterns: list[str], root: Path) -> list[str]:
    """Drop files matched by an ignore glob or lying under an ignored directory."""
    files = list(files)
    if not ignore_patterns:
        return files

    ignored = set(resolve_globs(ignore_patterns, root))
    prefixes = []
    for pattern in ignore_patterns:
        stripped = pattern.strip()
        if stripped.startswith("./"):
            stripped = stripped[2:]
        if stripped.endswith("/"):
            prefixes.append(stripped)
        elif (root / stripped).is_dir():
            prefixes.append(stripped + "/")

    kept = []
    for file in files:
        if file in ignored:
            continue
        if any(file.startswith(prefix) for prefix in prefixes):
            continue
        if any(fnmatch(file, pattern.strip()) for pattern in ignore_patterns):
            continue
        kept.append(file)
    return kept


def resolve_file_references(text: str, root: Path, baseline: Iterable[str] = ()) -> list[str]:
    """
    Resolve the files referenced by a request.

    Baseline paths (e.g. files already touched by a pull request) are
    unioned with the expanded /add patterns, then /ignore patterns are
    applied to the union.
    """
    baseline = list(baseline)
    directives = extract_file_directives(text)
    added = resolve_globs(directives.add_files, root)
    combined = _dedupe([*baseline, *added])
    resolved = apply_ignore_patterns(combined, directives.ignore_files, root)

    logger.info(
        f"[RESOLVE] {len(resolved)} files in context "
        f"(baseline={len(baseline)}, "
        f"add={len(directives.add_files)}, ignore={len(directives.ignore_files)})"
    )
    return resolved
