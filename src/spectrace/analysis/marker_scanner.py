"""Extract traceability markers from source-file comments.

A marker line looks like ``# @spec-impl: CFG-1_AC-1, CFG-1_AC-2``. The token in
front of the colon selects the marker type by its position in the configured
token list (implementation, test, component). Ignore directives switch scanning
off for a whole file, the next line, the current line, or a start/end block.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from pathlib import Path
import re
from typing import ClassVar, Sequence, TypeAlias

import structlog

from spectrace.analysis.file_collection import (
    collect_files,
    is_ignored,
    read_text,
    scatter_gather,
)
from spectrace.analysis.findings import Finding, FindingCode, error
from spectrace.analysis.identifiers import SourceLocation, leading_id_token
from spectrace.config import CheckConfig

logger = structlog.get_logger(__name__)

_IGNORE_PREFIX = "@spec-ignore"
_IGNORE_FILE_RE = re.compile(re.escape(_IGNORE_PREFIX + "-file") + r"(?![\w-])")
_IGNORE_NEXT_LINE_RE = re.compile(re.escape(_IGNORE_PREFIX + "-next-line") + r"(?![\w-])")
_IGNORE_START_RE = re.compile(re.escape(_IGNORE_PREFIX + "-start") + r"(?![\w-])")
_IGNORE_END_RE = re.compile(re.escape(_IGNORE_PREFIX + "-end") + r"(?![\w-])")
_IGNORE_LINE_RE = re.compile(re.escape(_IGNORE_PREFIX) + r"(?![\w-])")
_ANNOTATION_RE = re.compile(r"^\([^()]*\)")
_COMMENT_CLOSERS = ("*/", "-->")


class MarkerKind(StrEnum):
    IMPL = "impl"
    TEST = "test"
    COMPONENT = "component"


_KIND_BY_POSITION = (MarkerKind.IMPL, MarkerKind.TEST, MarkerKind.COMPONENT)


@dataclass(frozen=True)
class _Marker:
    id: str
    path: str
    line: int
    start_column: int
    end_column: int

    @property
    def location(self) -> SourceLocation:
        return SourceLocation(self.path, self.line)


@dataclass(frozen=True)
class ImplMarker(_Marker):
    kind: ClassVar[MarkerKind] = MarkerKind.IMPL


@dataclass(frozen=True)
class TestMarker(_Marker):
    kind: ClassVar[MarkerKind] = MarkerKind.TEST
    __test__ = False


@dataclass(frozen=True)
class ComponentMarker(_Marker):
    kind: ClassVar[MarkerKind] = MarkerKind.COMPONENT


CodeMarker: TypeAlias = ImplMarker | TestMarker | ComponentMarker


@dataclass(frozen=True)
class MarkerScanResult:
    markers: tuple[CodeMarker, ...] = ()
    findings: tuple[Finding, ...] = ()


def make_marker(
    kind: MarkerKind, marker_id: str, path: str, line: int, start: int, end: int
) -> CodeMarker:
    match kind:
        case MarkerKind.IMPL:
            return ImplMarker(marker_id, path, line, start, end)
        case MarkerKind.TEST:
            return TestMarker(marker_id, path, line, start, end)
        case MarkerKind.COMPONENT:
            return ComponentMarker(marker_id, path, line, start, end)
    raise ValueError(f"unknown marker kind: {kind!r}")


def marker_pattern(tokens: Sequence[str]) -> re.Pattern[str]:
    # Longest first so a token that prefixes another never wins early.
    alternatives = "|".join(re.escape(token) for token in sorted(tokens, key=len, reverse=True))
    return re.compile(rf"({alternatives}):\s*(.+)")


def _kind_by_token(tokens: Sequence[str]) -> dict[str, MarkerKind]:
    return {token: _KIND_BY_POSITION[index] for index, token in enumerate(tokens[:3])}


def _trailing_text(remainder: str) -> str:
    rest = remainder.strip()
    annotation = _ANNOTATION_RE.match(rest)
    if annotation is not None:
        rest = rest[annotation.end() :].strip()
    for closer in _COMMENT_CLOSERS:
        if rest.endswith(closer):
            rest = rest[: -len(closer)].strip()
    return rest


def _scannable_lines(lines: Sequence[str]) -> list[tuple[int, str]]:
    """Apply ignore directives and return the (1-based line, text) pairs left."""
    if any(_IGNORE_FILE_RE.search(line) for line in lines):
        return []
    kept: list[tuple[int, str]] = []
    in_block = False
    skip_next = False
    for index, line in enumerate(lines, start=1):
        if in_block:
            if _IGNORE_END_RE.search(line):
                in_block = False
            continue
        if _IGNORE_START_RE.search(line):
            in_block = True
            continue
        if skip_next:
            skip_next = False
            continue
        if _IGNORE_NEXT_LINE_RE.search(line):
            skip_next = True
            continue
        if _IGNORE_LINE_RE.search(line):
            continue
        kept.append((index, line))
    return kept


def scan_content(path: str, text: str, tokens: Sequence[str]) -> MarkerScanResult:
    pattern = marker_pattern(tokens)
    kinds = _kind_by_token(tokens)
    markers: list[CodeMarker] = []
    findings: list[Finding] = []
    for line_number, line in _scannable_lines(text.splitlines()):
        match = pattern.search(line)
        if match is None:
            continue
        kind = kinds.get(match.group(1))
        if kind is None:
            continue
        offset = match.start(2)
        for raw in match.group(2).split(","):
            entry = raw.strip()
            marker_id = leading_id_token(entry)
            if marker_id is not None:
                start = offset + (len(raw) - len(raw.lstrip()))
                markers.append(
                    make_marker(kind, marker_id, path, line_number, start, start + len(marker_id))
                )
                trailing = _trailing_text(entry[len(marker_id) :])
                if trailing:
                    findings.append(
                        error(
                            FindingCode.MARKER_TRAILING_TEXT,
                            f"Marker '{marker_id}' has unexpected trailing text: '{trailing}'",
                            path,
                            line=line_number,
                            id=marker_id,
                        )
                    )
            offset += len(raw) + 1
    return MarkerScanResult(tuple(markers), tuple(findings))


def scan_file(path: Path, tokens: Sequence[str]) -> MarkerScanResult:
    text = read_text(path)
    if text is None:
        return MarkerScanResult()
    return scan_content(str(path), text, tokens)


def merge_scan_results(results: Sequence[MarkerScanResult]) -> MarkerScanResult:
    markers: list[CodeMarker] = []
    findings: list[Finding] = []
    for result in results:
        markers.extend(result.markers)
        findings.extend(result.findings)
    return MarkerScanResult(tuple(markers), tuple(findings))


def code_files(config: CheckConfig, root: Path) -> tuple[Path, ...]:
    files = collect_files(root, config.code_globs, config.code_ignore)
    return tuple(path for path in files if not is_ignored(path, root, config.ignore_markers))


def scan_markers(config: CheckConfig, root: Path) -> MarkerScanResult:
    files = code_files(config, root)
    results = scatter_gather(
        partial(scan_file, tokens=config.markers), files, stage="marker scan"
    )
    merged = merge_scan_results(results)
    logger.debug("markers_scanned", files=len(files), markers=len(merged.markers))
    return merged
