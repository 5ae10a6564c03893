from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Generic, Hashable, Mapping, TypeVar

from spectrace.analysis.identifiers import PROPERTY_SEPARATOR, SourceLocation, parent_requirement
from spectrace.analysis.marker_scanner import (
    ComponentMarker,
    ImplMarker,
    MarkerScanResult,
    TestMarker,
)
from spectrace.analysis.spec_parser import CrossRefKind, SpecParseResult

_V = TypeVar("_V", bound=Hashable)


class _MultiMap(Generic[_V]):
    """Insertion-ordered key -> unique values builder."""

    def __init__(self) -> None:
        self._values: dict[str, dict[_V, None]] = {}

    def add(self, key: str, value: _V) -> None:
        self._values.setdefault(key, {})[value] = None

    def freeze(self) -> Mapping[str, tuple[_V, ...]]:
        return MappingProxyType({key: tuple(values) for key, values in self._values.items()})


@dataclass(frozen=True)
class TraceIndex:
    req_to_acs: Mapping[str, tuple[str, ...]]
    ac_to_components: Mapping[str, tuple[str, ...]]
    ac_to_code: Mapping[str, tuple[SourceLocation, ...]]
    ac_to_tests: Mapping[str, tuple[SourceLocation, ...]]
    property_to_tests: Mapping[str, tuple[SourceLocation, ...]]
    component_to_code: Mapping[str, tuple[SourceLocation, ...]]
    ac_to_requirement: Mapping[str, str]
    component_to_acs: Mapping[str, tuple[str, ...]]
    property_to_acs: Mapping[str, tuple[str, ...]]
    id_locations: Mapping[str, SourceLocation]
    all_ids: frozenset[str]

    def location_of(self, identifier: str) -> SourceLocation | None:
        return self.id_locations.get(identifier)


def build_trace_index(specs: SpecParseResult, markers: MarkerScanResult) -> TraceIndex:
    req_to_acs: _MultiMap[str] = _MultiMap()
    ac_to_requirement: dict[str, str] = {}
    for ac_id in (key for key in specs.definitions if key in specs.ac_ids):
        parent = parent_requirement(ac_id)
        if parent is not None and parent in specs.requirement_ids:
            req_to_acs.add(parent, ac_id)
            ac_to_requirement[ac_id] = parent

    ac_to_components: _MultiMap[str] = _MultiMap()
    component_to_acs: _MultiMap[str] = _MultiMap()
    property_to_acs: _MultiMap[str] = _MultiMap()
    for spec_file in specs.spec_files:
        for ref in spec_file.cross_refs:
            if ref.owner is None:
                continue
            for target in ref.target_ids:
                if ref.kind is CrossRefKind.IMPLEMENTS:
                    ac_to_components.add(target, ref.owner)
                    component_to_acs.add(ref.owner, target)
                else:
                    property_to_acs.add(ref.owner, target)

    ac_to_code: _MultiMap[SourceLocation] = _MultiMap()
    ac_to_tests: _MultiMap[SourceLocation] = _MultiMap()
    property_to_tests: _MultiMap[SourceLocation] = _MultiMap()
    component_to_code: _MultiMap[SourceLocation] = _MultiMap()
    for marker in markers.markers:
        match marker:
            case ImplMarker():
                ac_to_code.add(marker.id, marker.location)
            case TestMarker():
                if PROPERTY_SEPARATOR in marker.id:
                    property_to_tests.add(marker.id, marker.location)
                else:
                    ac_to_tests.add(marker.id, marker.location)
            case ComponentMarker():
                component_to_code.add(marker.id, marker.location)

    return TraceIndex(
        req_to_acs=req_to_acs.freeze(),
        ac_to_components=ac_to_components.freeze(),
        ac_to_code=ac_to_code.freeze(),
        ac_to_tests=ac_to_tests.freeze(),
        property_to_tests=property_to_tests.freeze(),
        component_to_code=component_to_code.freeze(),
        ac_to_requirement=MappingProxyType(ac_to_requirement),
        component_to_acs=component_to_acs.freeze(),
        property_to_acs=property_to_acs.freeze(),
        id_locations=MappingProxyType(specs.id_locations),
        all_ids=specs.all_ids,
    )
