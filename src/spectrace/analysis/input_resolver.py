"""Turn trace command inputs (ids, task files, source files) into query ids."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Iterable, Sequence

from spectrace.analysis.file_collection import read_text
from spectrace.analysis.identifiers import EMBEDDED_ID_RE, ID_TOKEN_RE
from spectrace.analysis.marker_scanner import marker_pattern
from spectrace.analysis.trace_index import TraceIndex

_TASK_LINK_RE = re.compile(r"^\s*(?:IMPLEMENTS|TESTS):")
_TRACEABILITY_HEADING_RE = re.compile(r"^## Requirements Traceability")
_LEVEL_TWO_HEADING_RE = re.compile(r"^## ")
_TRACEABILITY_LINE_RE = re.compile(r"^- ([A-Z][A-Z0-9]*(?:-\d+(?:\.\d+)?(?:_AC-\d+)?|_P-\d+))")


@dataclass(frozen=True)
class InputResolution:
    ids: tuple[str, ...]
    warnings: tuple[str, ...]


def _partition(
    candidates: Iterable[str], index: TraceIndex, message: str
) -> tuple[list[str], list[str]]:
    resolved: list[str] = []
    warnings: list[str] = []
    for identifier in dict.fromkeys(candidates):
        if identifier in index.all_ids:
            resolved.append(identifier)
        else:
            warnings.append(message.format(id=identifier))
    return resolved, warnings


def resolve_ids(ids: Sequence[str], index: TraceIndex) -> InputResolution:
    resolved, warnings = _partition(ids, index, "ID '{id}' not found in any spec or code")
    return InputResolution(tuple(resolved), tuple(warnings))


def task_file_ids(text: str) -> list[str]:
    found: list[str] = []
    in_traceability = False
    for line in text.splitlines():
        if _TASK_LINK_RE.match(line):
            found.extend(EMBEDDED_ID_RE.findall(line))
        if _TRACEABILITY_HEADING_RE.match(line):
            in_traceability = True
            continue
        if in_traceability and _LEVEL_TWO_HEADING_RE.match(line):
            in_traceability = False
            continue
        if in_traceability:
            match = _TRACEABILITY_LINE_RE.match(line)
            if match is not None:
                found.append(match.group(1))
    return found


def resolve_task_file(task_path: Path, index: TraceIndex) -> InputResolution:
    text = read_text(task_path)
    if text is None:
        return InputResolution((), (f"Task file not found: {task_path}",))
    resolved, warnings = _partition(
        task_file_ids(text), index, "ID '{id}' from task file not found in specs"
    )
    if not resolved and not warnings:
        warnings.append(f"No traceability IDs found in task file: {task_path}")
    return InputResolution(tuple(resolved), tuple(warnings))


def source_file_ids(text: str, tokens: Sequence[str]) -> list[str]:
    pattern = marker_pattern(tokens)
    found: list[str] = []
    for line in text.splitlines():
        match = pattern.search(line)
        if match is None:
            continue
        for entry in match.group(2).split(","):
            token = ID_TOKEN_RE.match(entry.strip())
            if token is not None:
                found.append(token.group(1))
    return found


def resolve_source_file(
    file_path: Path, index: TraceIndex, tokens: Sequence[str]
) -> InputResolution:
    text = read_text(file_path)
    if text is None:
        return InputResolution((), (f"Source file not found: {file_path}",))
    resolved, warnings = _partition(
        source_file_ids(text, tokens), index, "Marker ID '{id}' not found in specs"
    )
    if not resolved and not warnings:
        warnings.append(f"No traceability markers found in file: {file_path}")
    return InputResolution(tuple(resolved), tuple(warnings))
