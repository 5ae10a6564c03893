"""Line-oriented parser for spec documents.

Recognised shapes::

    ### CFG-1: Load configuration           requirement
    - [ ] CFG-1_AC-1 Reads the file          acceptance criterion
    - CFG_P-1 Loading is idempotent          property
    ### CFG-ConfigLoader                     component
    IMPLEMENTS: CFG-1_AC-1, CFG-1_AC-2       cross-reference

A cross-reference belongs to the structural element above it: ``implements``
links to the nearest component heading at or before its line, ``validates``
links to the nearest property definition at or before its line. A reference
with nothing above it keeps ``owner=None`` and contributes no graph edges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from pathlib import Path
import re
from types import MappingProxyType
from typing import Mapping, Sequence

import structlog

from spectrace.analysis.file_collection import collect_files, read_text, scatter_gather
from spectrace.analysis.identifiers import EMBEDDED_ID_RE, IdKind, SourceLocation
from spectrace.config import CheckConfig

logger = structlog.get_logger(__name__)

REQUIREMENT_RE = re.compile(r"^###\s+([A-Z][A-Z0-9]*-\d+(?:\.\d+)?)\s*:\s*(.*)")
AC_RE = re.compile(r"^-\s+(?:\[[ x]\]\s+)?([A-Z][A-Z0-9]*-\d+(?:\.\d+)?_AC-\d+)\s+(.*)")
PROPERTY_RE = re.compile(r"^-\s+([A-Z][A-Z0-9]*_P-\d+)\s+(.*)")
COMPONENT_RE = re.compile(r"^###\s+([A-Z][A-Z0-9]*-[A-Za-z][A-Za-z0-9]*)\s*$")
_FILE_CODE_RE = re.compile(r"^(?:REQ|DESIGN|FEAT|EXAMPLES|API)-([A-Z][A-Z0-9]*)-")


class CrossRefKind(StrEnum):
    IMPLEMENTS = "implements"
    VALIDATES = "validates"


@dataclass(frozen=True)
class CrossReference:
    kind: CrossRefKind
    target_ids: tuple[str, ...]
    line: int
    owner: str | None = None


@dataclass(frozen=True)
class SpecDefinition:
    id: str
    kind: IdKind
    text: str
    location: SourceLocation


@dataclass(frozen=True)
class SpecFile:
    path: str
    code: str
    definitions: tuple[SpecDefinition, ...] = ()
    cross_refs: tuple[CrossReference, ...] = ()
    text: str = field(default="", repr=False, compare=False)

    def _ids(self, kind: IdKind) -> tuple[str, ...]:
        return tuple(item.id for item in self.definitions if item.kind is kind)

    @property
    def requirement_ids(self) -> tuple[str, ...]:
        return self._ids(IdKind.REQUIREMENT)

    @property
    def ac_ids(self) -> tuple[str, ...]:
        return self._ids(IdKind.AC)

    @property
    def property_ids(self) -> tuple[str, ...]:
        return self._ids(IdKind.PROPERTY)

    @property
    def component_names(self) -> tuple[str, ...]:
        return self._ids(IdKind.COMPONENT)


@dataclass(frozen=True)
class SpecParseResult:
    spec_files: tuple[SpecFile, ...]
    definitions: Mapping[str, SpecDefinition]
    requirement_ids: frozenset[str]
    ac_ids: frozenset[str]
    property_ids: frozenset[str]
    component_names: frozenset[str]

    @property
    def all_ids(self) -> frozenset[str]:
        return frozenset(self.definitions)

    @property
    def id_locations(self) -> dict[str, SourceLocation]:
        return {key: value.location for key, value in self.definitions.items()}


def file_code(path: str | Path) -> str:
    match = _FILE_CODE_RE.match(Path(path).name)
    return match.group(1) if match else ""


def _cross_reference_kind(keyword: str) -> CrossRefKind:
    if "implements" in keyword.lower():
        return CrossRefKind.IMPLEMENTS
    return CrossRefKind.VALIDATES


def classify_line(line: str) -> tuple[IdKind, str, str] | None:
    """Return ``(kind, id, text)`` for a defining line, or ``None``."""
    requirement = REQUIREMENT_RE.match(line)
    if requirement is not None:
        return IdKind.REQUIREMENT, requirement.group(1), requirement.group(2).strip()
    ac = AC_RE.match(line)
    if ac is not None:
        return IdKind.AC, ac.group(1), ac.group(2).strip()
    prop = PROPERTY_RE.match(line)
    if prop is not None:
        return IdKind.PROPERTY, prop.group(1), prop.group(2).strip()
    component = COMPONENT_RE.match(line)
    if component is not None:
        return IdKind.COMPONENT, component.group(1), component.group(1)
    return None


def parse_spec_content(
    path: str, text: str, cross_ref_patterns: Sequence[str]
) -> SpecFile:
    definitions: list[SpecDefinition] = []
    cross_refs: list[CrossReference] = []
    last_component: str | None = None
    last_property: str | None = None
    for line_number, line in enumerate(text.splitlines(), start=1):
        recognised = classify_line(line)
        if recognised is not None:
            kind, identifier, label = recognised
            definitions.append(
                SpecDefinition(identifier, kind, label, SourceLocation(path, line_number))
            )
            if kind is IdKind.COMPONENT:
                last_component = identifier
            elif kind is IdKind.PROPERTY:
                last_property = identifier
        for keyword in cross_ref_patterns:
            position = line.find(keyword)
            if position < 0:
                continue
            targets = tuple(EMBEDDED_ID_RE.findall(line[position + len(keyword) :]))
            if targets:
                ref_kind = _cross_reference_kind(keyword)
                owner = last_component if ref_kind is CrossRefKind.IMPLEMENTS else last_property
                cross_refs.append(CrossReference(ref_kind, targets, line_number, owner))
            break
    return SpecFile(
        path=path,
        code=file_code(path),
        definitions=tuple(definitions),
        cross_refs=tuple(cross_refs),
        text=text,
    )


def parse_spec_file(path: Path, cross_ref_patterns: Sequence[str]) -> SpecFile | None:
    text = read_text(path)
    if text is None:
        return None
    return parse_spec_content(str(path), text, cross_ref_patterns)


def merge_spec_files(spec_files: Sequence[SpecFile]) -> SpecParseResult:
    definitions: dict[str, SpecDefinition] = {}
    for spec_file in spec_files:
        for definition in spec_file.definitions:
            definitions[definition.id] = definition
    by_kind: dict[IdKind, set[str]] = {kind: set() for kind in IdKind}
    for definition in definitions.values():
        by_kind[definition.kind].add(definition.id)
    return SpecParseResult(
        spec_files=tuple(spec_files),
        definitions=MappingProxyType(definitions),
        requirement_ids=frozenset(by_kind[IdKind.REQUIREMENT]),
        ac_ids=frozenset(by_kind[IdKind.AC]),
        property_ids=frozenset(by_kind[IdKind.PROPERTY]),
        component_names=frozenset(by_kind[IdKind.COMPONENT]),
    )


def spec_files_for(config: CheckConfig, root: Path) -> tuple[Path, ...]:
    return collect_files(root, config.spec_globs, config.spec_ignore)


def parse_specs(config: CheckConfig, root: Path) -> SpecParseResult:
    files = spec_files_for(config, root)
    parsed = scatter_gather(
        partial(parse_spec_file, cross_ref_patterns=config.cross_ref_patterns),
        files,
        stage="spec parse",
    )
    result = merge_spec_files([item for item in parsed if item is not None])
    logger.debug("specs_parsed", files=len(files), ids=len(result.definitions))
    return result
