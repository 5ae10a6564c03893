"""Collect the file excerpts behind a trace result, ordered for reading."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
import math
from pathlib import Path
import re
from typing import Sequence

import structlog

from spectrace.analysis.file_collection import read_text
from spectrace.analysis.trace_resolver import TraceChain, TraceNode, TraceResult

logger = structlog.get_logger(__name__)

DEFAULT_BEFORE_CONTEXT = 5
DEFAULT_AFTER_CONTEXT = 20
_OPENER_SEARCH_LINES = 50
_BLOCK_SCAN_LINES = 100
_CHARS_PER_TOKEN = 4

_HEADING_RE = re.compile(r"^(#{1,6})\s")
_BLOCK_OPENER_RE = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?(?:def|class|function)\b"
    r"|^\s*(?:it|test|describe)\s*\("
)
_DECORATOR_RE = re.compile(r"^\s*@[\w.]+")


class SectionKind(StrEnum):
    TASK = "task"
    REQUIREMENT = "requirement"
    DESIGN = "design"
    IMPLEMENTATION = "implementation"
    TEST = "test"


SECTION_PRIORITY: dict[SectionKind, int] = {
    SectionKind.TASK: 1,
    SectionKind.REQUIREMENT: 2,
    SectionKind.DESIGN: 3,
    SectionKind.IMPLEMENTATION: 5,
    SectionKind.TEST: 6,
}

@dataclass(frozen=True)
class ContentSection:
    kind: SectionKind
    path: str
    start_line: int
    end_line: int
    content: str

    @property
    def priority(self) -> int:
        return SECTION_PRIORITY[self.kind]


@dataclass(frozen=True)
class BudgetResult:
    sections: tuple[ContentSection, ...]
    footer: str | None

    @property
    def truncated(self) -> bool:
        return self.footer is not None


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def _heading_levels(lines: Sequence[str]) -> list[int]:
    """Heading depth per line, 0 for non-headings and lines inside code fences."""
    levels: list[int] = []
    in_fence = False
    for line in lines:
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            levels.append(0)
            continue
        match = None if in_fence else _HEADING_RE.match(line)
        levels.append(len(match.group(1)) if match else 0)
    return levels


def spec_section_bounds(lines: Sequence[str], line: int) -> tuple[int, int]:
    """Return 0-based inclusive bounds of the heading section holding ``line``."""
    levels = _heading_levels(lines)
    anchor = min(max(line - 1, 0), len(lines) - 1)
    start = next((index for index in range(anchor, -1, -1) if levels[index]), None)
    if start is None:
        start_level = 6
        start = anchor
    else:
        start_level = levels[start]
    end = len(lines) - 1
    for index in range(start + 1, len(lines)):
        if levels[index] and levels[index] <= start_level:
            end = index - 1
            break
    while end > start and not lines[end].strip():
        end -= 1
    return start, end


def _indent(text: str) -> int:
    return len(text) - len(text.lstrip())


def _indented_block_end(lines: Sequence[str], start: int, limit: int) -> int:
    indent = _indent(lines[start])
    header_end = start
    while header_end < limit and not lines[header_end].rstrip().endswith(":"):
        header_end += 1
    end = header_end
    for index in range(header_end + 1, limit):
        text = lines[index]
        if not text.strip():
            continue
        if _indent(text) <= indent:
            break
        end = index
    return end


def _braced_block_end(lines: Sequence[str], start: int, limit: int) -> int | None:
    depth = 0
    opened = False
    for index in range(start, limit):
        for char in lines[index]:
            if char == "{":
                depth += 1
                opened = True
            elif char == "}":
                depth -= 1
        if opened and depth <= 0:
            return index
    return None


def _block_end(lines: Sequence[str], start: int) -> int | None:
    limit = min(len(lines), start + _BLOCK_SCAN_LINES)
    for index in range(start, limit):
        text = lines[index].rstrip()
        if "{" in text:
            return _braced_block_end(lines, start, limit)
        if text.endswith(":"):
            return _indented_block_end(lines, start, limit)
    return None


def code_excerpt_bounds(
    lines: Sequence[str],
    line: int,
    before_context: int = DEFAULT_BEFORE_CONTEXT,
    after_context: int = DEFAULT_AFTER_CONTEXT,
) -> tuple[int, int]:
    """Return 0-based inclusive bounds of the block enclosing a marker line."""
    marker = min(max(line - 1, 0), len(lines) - 1)
    lowest = max(0, marker - _OPENER_SEARCH_LINES)
    for index in range(marker, lowest - 1, -1):
        if not _BLOCK_OPENER_RE.match(lines[index]):
            continue
        end = _block_end(lines, index)
        if end is None or end < marker:
            break
        start = index
        while start > 0 and _DECORATOR_RE.match(lines[start - 1]):
            start -= 1
        return start, end
    return max(0, marker - before_context), min(len(lines) - 1, marker + after_context)


class _FileCache:
    def __init__(self) -> None:
        self._lines: dict[str, list[str] | None] = {}

    def lines(self, path: str) -> list[str] | None:
        if path not in self._lines:
            text = read_text(Path(path))
            self._lines[path] = text.splitlines() if text is not None else None
        return self._lines[path]


def _excerpt(lines: Sequence[str], start: int, end: int) -> str:
    return "\n".join(lines[start : end + 1])


def _chain_sections(
    chain: TraceChain,
) -> list[tuple[SectionKind, Sequence[TraceNode]]]:
    # Component code is listed under implementations.
    head = [chain.requirement] if chain.requirement is not None else []
    return [
        (SectionKind.REQUIREMENT, [*head, *chain.acs]),
        (SectionKind.DESIGN, [*chain.design_components, *chain.properties]),
        (SectionKind.IMPLEMENTATION, chain.implementations),
        (SectionKind.TEST, chain.tests),
    ]


def assemble_content(
    result: TraceResult,
    task_path: str | None = None,
    *,
    before_context: int = DEFAULT_BEFORE_CONTEXT,
    after_context: int = DEFAULT_AFTER_CONTEXT,
) -> list[ContentSection]:
    cache = _FileCache()
    sections: list[ContentSection] = []
    seen_keys: set[tuple[str, str, str]] = set()
    seen_ranges: set[tuple[str, int, int]] = set()

    if task_path is not None:
        lines = cache.lines(task_path)
        if lines is not None:
            sections.append(
                ContentSection(SectionKind.TASK, task_path, 1, len(lines), "\n".join(lines))
            )

    def add(node: TraceNode, kind: SectionKind) -> None:
        path = node.location.path
        key = (kind.value, path, node.id)
        if key in seen_keys:
            return
        seen_keys.add(key)
        lines = cache.lines(path)
        if not lines:
            return
        if kind in (SectionKind.IMPLEMENTATION, SectionKind.TEST):
            start, end = code_excerpt_bounds(
                lines, node.location.line, before_context, after_context
            )
        else:
            start, end = spec_section_bounds(lines, node.location.line)
        if (path, start, end) in seen_ranges:
            return
        seen_ranges.add((path, start, end))
        sections.append(ContentSection(kind, path, start + 1, end + 1, _excerpt(lines, start, end)))

    for chain in result.chains:
        for kind, nodes in _chain_sections(chain):
            for node in nodes:
                add(node, kind)
    sections.sort(key=lambda section: section.priority)
    logger.debug("content_assembled", sections=len(sections))
    return sections


def apply_token_budget(sections: Sequence[ContentSection], max_tokens: int) -> BudgetResult:
    """Keep sections in priority order while they fit in ``max_tokens``."""
    if max_tokens <= 0:
        return BudgetResult((), None)
    kept: list[ContentSection] = []
    used = 0
    omitted = 0
    for position, section in enumerate(sections):
        cost = estimate_tokens(section.content)
        if used + cost <= max_tokens:
            kept.append(section)
            used += cost
        elif not kept:
            limit = max_tokens * _CHARS_PER_TOKEN
            kept.append(replace(section, content=section.content[:limit]))
            omitted = len(sections) - position - 1
            break
        else:
            omitted += 1
    footer = None
    if omitted:
        noun = "section" if omitted == 1 else "sections"
        footer = f"... {omitted} more {noun} omitted (use --max-tokens to increase)"
    return BudgetResult(tuple(kept), footer)
