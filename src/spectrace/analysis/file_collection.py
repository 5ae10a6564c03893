"""Glob resolution, ignore matching and parallel per-file work."""

from __future__ import annotations

import concurrent.futures
from functools import lru_cache
import os
from pathlib import Path, PurePath
import re
from typing import Callable, Iterable, Sequence, TypeVar, cast

import structlog

from spectrace.exceptions import InternalCheckError

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")
_R = TypeVar("_R")

_BRACE_RE = re.compile(r"\{([^{}]*)\}")
_DEFAULT_WORKERS = min(32, (os.cpu_count() or 1) + 4)


def expand_braces(pattern: str) -> list[str]:
    match = _BRACE_RE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a simple glob into a regex matching any path-segment suffix."""
    alternatives = []
    for expanded in expand_braces(pattern):
        parts: list[str] = []
        index = 0
        while index < len(expanded):
            char = expanded[index]
            if expanded.startswith("**/", index):
                parts.append("(?:.*/)?")
                index += 3
                continue
            if expanded.startswith("**", index):
                parts.append(".*")
                index += 2
                continue
            if char == "*":
                parts.append("[^/]*")
            elif char == "?":
                parts.append("[^/]")
            else:
                parts.append(re.escape(char))
            index += 1
        alternatives.append("".join(parts))
    return re.compile(rf"(^|/)(?:{'|'.join(alternatives)})($|/)")


def path_matches(path: str | PurePath, patterns: Iterable[str]) -> bool:
    text = PurePath(path).as_posix()
    return any(glob_to_regex(pattern).search(text) for pattern in patterns)


def _relative_posix(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def is_ignored(path: Path, root: Path, patterns: Sequence[str]) -> bool:
    if not patterns:
        return False
    return path_matches(_relative_posix(path, root), patterns) or path_matches(
        path, patterns
    )


def _glob_one(root: Path, pattern: str) -> Iterable[Path]:
    candidate = Path(pattern)
    if candidate.is_absolute():
        anchor = Path(candidate.anchor)
        return anchor.glob(str(candidate.relative_to(anchor)))
    return root.glob(pattern)


def collect_files(
    root: Path, globs: Sequence[str], ignore: Sequence[str] = ()
) -> tuple[Path, ...]:
    """Resolve ``globs`` under ``root`` into a sorted, de-duplicated file list."""
    seen: set[Path] = set()
    for pattern in globs:
        for expanded in expand_braces(pattern):
            for path in _glob_one(root, expanded):
                if path in seen or not path.is_file():
                    continue
                if is_ignored(path, root, ignore):
                    continue
                seen.add(path)
    return tuple(sorted(seen, key=lambda item: item.as_posix()))


def read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("file_unreadable", path=str(path), error=str(exc))
        return None


def scatter_gather(
    fn: Callable[[_T], _R],
    items: Sequence[_T],
    *,
    stage: str,
    max_workers: int | None = None,
) -> list[_R]:
    """Run ``fn`` over ``items`` in parallel and return results in input order."""
    if not items:
        return []
    workers = max(1, min(max_workers or _DEFAULT_WORKERS, len(items)))
    results: list[_R | None] = [None] * len(items)
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
        for future in concurrent.futures.as_completed(futures):
            try:
                results[futures[future]] = future.result()
            except Exception as exc:
                raise InternalCheckError(stage, exc) from exc
    logger.debug("scatter_gather_complete", stage=stage, items=len(items))
    return cast("list[_R]", results)
