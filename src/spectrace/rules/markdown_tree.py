"""Heading tree, list, table and code-fence extraction for Markdown documents."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Iterator

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE_PREFIX = "```"
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?:\[([ xX])\]\s+)?(.*)$")
_TABLE_ROW_RE = re.compile(r"^\s*\|.*\|\s*$")
_TABLE_SEPARATOR_CELL_RE = re.compile(r"^:?-{1,}:?$")


def is_fence(line: str) -> bool:
    return line.lstrip().startswith(_FENCE_PREFIX)


@dataclass
class SectionNode:
    heading: str
    level: int
    line: int
    content: list[str] = field(default_factory=list)
    children: list["SectionNode"] = field(default_factory=list)

    def heading_line(self) -> str:
        return f"{'#' * self.level} {self.heading}"


@dataclass(frozen=True)
class MarkdownTable:
    header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]


@dataclass
class MarkdownDocument:
    path: str
    lines: list[str]
    preamble: list[str] = field(default_factory=list)
    sections: list[SectionNode] = field(default_factory=list)


def parse_markdown(path: str, text: str) -> MarkdownDocument:
    lines = text.splitlines()
    document = MarkdownDocument(path=path, lines=lines)
    stack: list[SectionNode] = []
    in_fence = False
    for number, line in enumerate(lines, start=1):
        if is_fence(line):
            in_fence = not in_fence
        match = None if in_fence or is_fence(line) else _HEADING_RE.match(line)
        if match is None:
            (stack[-1].content if stack else document.preamble).append(line)
            continue
        node = SectionNode(heading=match.group(2), level=len(match.group(1)), line=number)
        while stack and stack[-1].level >= node.level:
            stack.pop()
        if stack:
            stack[-1].children.append(node)
        else:
            document.sections.append(node)
        stack.append(node)
    return document


def walk(nodes: list[SectionNode]) -> Iterator[SectionNode]:
    for node in nodes:
        yield node
        yield from walk(node.children)


def full_text(node: SectionNode) -> str:
    parts = ["\n".join(node.content)]
    for child in node.children:
        parts.append(child.heading_line())
        parts.append(full_text(child))
    return "\n".join(parts)


def list_items(node: SectionNode) -> list[str]:
    items: list[str] = []
    in_fence = False
    for line in node.content:
        if is_fence(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _LIST_ITEM_RE.match(line)
        if match is None:
            continue
        checkbox, text = match.group(1), match.group(2)
        items.append(f"[{checkbox}] {text}" if checkbox is not None else text)
    for child in node.children:
        items.extend(list_items(child))
    return items


def _cells(line: str) -> tuple[str, ...]:
    return tuple(cell.strip() for cell in line.strip().strip("|").split("|"))


def _is_separator(cells: tuple[str, ...]) -> bool:
    return all(_TABLE_SEPARATOR_CELL_RE.match(cell) for cell in cells if cell) and any(cells)


def tables(node: SectionNode) -> list[MarkdownTable]:
    found: list[MarkdownTable] = []
    block: list[tuple[str, ...]] = []
    in_fence = False

    def flush() -> None:
        if block:
            header, *rest = block
            found.append(
                MarkdownTable(header, tuple(row for row in rest if not _is_separator(row)))
            )
            block.clear()

    for line in node.content:
        if is_fence(line):
            in_fence = not in_fence
            flush()
            continue
        if not in_fence and _TABLE_ROW_RE.match(line):
            block.append(_cells(line))
        else:
            flush()
    flush()
    for child in node.children:
        found.extend(tables(child))
    return found


def has_code_block(node: SectionNode) -> bool:
    return any(is_fence(line) for line in node.content) or any(
        has_code_block(child) for child in node.children
    )
