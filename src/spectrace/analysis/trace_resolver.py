"""Answer "everything connected to X" queries over a :class:`TraceIndex`.

Traversal distance is counted in hops from the queried id. From a requirement
its acceptance criteria are one hop away, their components, code and tests two
hops, and component code three. ``depth=None`` walks the whole chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, Sequence

from spectrace.analysis.identifiers import IdKind, SourceLocation, classify_id
from spectrace.analysis.trace_index import TraceIndex


class Direction(StrEnum):
    BOTH = "both"
    FORWARD = "forward"
    REVERSE = "reverse"


class NodeKind(StrEnum):
    REQUIREMENT = "requirement"
    AC = "ac"
    COMPONENT = "component"
    PROPERTY = "property"
    IMPLEMENTATION = "implementation"
    TEST = "test"


@dataclass(frozen=True)
class TraceOptions:
    direction: Direction = Direction.BOTH
    depth: int | None = None
    scope: str | None = None
    no_code: bool = False
    no_tests: bool = False


@dataclass(frozen=True)
class TraceNode:
    id: str
    kind: NodeKind
    location: SourceLocation

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.id, self.location.path, self.location.line)


@dataclass(frozen=True)
class TraceChain:
    query_id: str
    requirement: TraceNode | None = None
    acs: tuple[TraceNode, ...] = ()
    design_components: tuple[TraceNode, ...] = ()
    implementations: tuple[TraceNode, ...] = ()
    tests: tuple[TraceNode, ...] = ()
    properties: tuple[TraceNode, ...] = ()

    def nodes(self) -> list[TraceNode]:
        head = [self.requirement] if self.requirement is not None else []
        return [
            *head,
            *self.acs,
            *self.design_components,
            *self.properties,
            *self.implementations,
            *self.tests,
        ]


@dataclass(frozen=True)
class TraceResult:
    chains: tuple[TraceChain, ...] = ()
    not_found: tuple[str, ...] = ()


def _dedup(nodes: Iterable[TraceNode], scope: str | None) -> tuple[TraceNode, ...]:
    seen: set[tuple[str, str, int]] = set()
    kept: list[TraceNode] = []
    for node in nodes:
        if scope is not None and not node.id.startswith(scope):
            continue
        if node.key in seen:
            continue
        seen.add(node.key)
        kept.append(node)
    return tuple(kept)


@dataclass
class _ChainBuilder:
    index: TraceIndex
    options: TraceOptions
    query_id: str
    requirement: TraceNode | None = None
    acs: list[TraceNode] = field(default_factory=list)
    components: list[TraceNode] = field(default_factory=list)
    implementations: list[TraceNode] = field(default_factory=list)
    tests: list[TraceNode] = field(default_factory=list)
    properties: list[TraceNode] = field(default_factory=list)

    def allows(self, hop: int) -> bool:
        return self.options.depth is None or hop <= self.options.depth

    @property
    def forward(self) -> bool:
        return self.options.direction is not Direction.REVERSE

    @property
    def reverse(self) -> bool:
        return self.options.direction is not Direction.FORWARD

    def spec_node(self, identifier: str, kind: NodeKind) -> TraceNode | None:
        location = self.index.location_of(identifier)
        return TraceNode(identifier, kind, location) if location is not None else None

    def add_spec(self, target: list[TraceNode], identifier: str, kind: NodeKind) -> None:
        node = self.spec_node(identifier, kind)
        if node is not None:
            target.append(node)

    def set_requirement(self, identifier: str | None) -> None:
        if identifier is not None and self.requirement is None:
            self.requirement = self.spec_node(identifier, NodeKind.REQUIREMENT)

    def add_component_code(self, component: str) -> None:
        for location in self.index.component_to_code.get(component, ()):
            self.implementations.append(TraceNode(component, NodeKind.COMPONENT, location))

    def ac_downstream(self, ac_id: str, hop: int) -> None:
        if not self.allows(hop):
            return
        components = self.index.ac_to_components.get(ac_id, ())
        for component in components:
            self.add_spec(self.components, component, NodeKind.COMPONENT)
        for location in self.index.ac_to_code.get(ac_id, ()):
            self.implementations.append(TraceNode(ac_id, NodeKind.IMPLEMENTATION, location))
        for location in self.index.ac_to_tests.get(ac_id, ()):
            self.tests.append(TraceNode(ac_id, NodeKind.TEST, location))
        if self.allows(hop + 1):
            for component in components:
                self.add_component_code(component)

    def build(self) -> TraceChain:
        scope = self.options.scope
        requirement = self.requirement
        if requirement is not None and scope is not None and not requirement.id.startswith(scope):
            requirement = None
        return TraceChain(
            query_id=self.query_id,
            requirement=requirement,
            acs=_dedup(self.acs, scope),
            design_components=_dedup(self.components, scope),
            implementations=() if self.options.no_code else _dedup(self.implementations, scope),
            tests=() if self.options.no_tests else _dedup(self.tests, scope),
            properties=() if self.options.no_tests else _dedup(self.properties, scope),
        )


def _trace_requirement(builder: _ChainBuilder, requirement_id: str) -> None:
    builder.set_requirement(requirement_id)
    if not builder.forward or not builder.allows(1):
        return
    for ac_id in builder.index.req_to_acs.get(requirement_id, ()):
        builder.add_spec(builder.acs, ac_id, NodeKind.AC)
        builder.ac_downstream(ac_id, hop=2)


def _trace_ac(builder: _ChainBuilder, ac_id: str) -> None:
    builder.add_spec(builder.acs, ac_id, NodeKind.AC)
    if builder.reverse and builder.allows(1):
        builder.set_requirement(builder.index.ac_to_requirement.get(ac_id))
    if builder.forward:
        builder.ac_downstream(ac_id, hop=1)


def _trace_linked_acs(builder: _ChainBuilder, ac_ids: Sequence[str]) -> None:
    if not builder.allows(1):
        return
    for ac_id in ac_ids:
        builder.add_spec(builder.acs, ac_id, NodeKind.AC)
        if builder.allows(2):
            builder.set_requirement(builder.index.ac_to_requirement.get(ac_id))


def _trace_property(builder: _ChainBuilder, property_id: str) -> None:
    builder.add_spec(builder.properties, property_id, NodeKind.PROPERTY)
    if builder.forward and builder.allows(1):
        for location in builder.index.property_to_tests.get(property_id, ()):
            builder.tests.append(TraceNode(property_id, NodeKind.TEST, location))
    if builder.reverse:
        _trace_linked_acs(builder, builder.index.property_to_acs.get(property_id, ()))


def _trace_component(builder: _ChainBuilder, component: str) -> None:
    builder.add_spec(builder.components, component, NodeKind.COMPONENT)
    if builder.forward and builder.allows(1):
        builder.add_component_code(component)
    if builder.reverse:
        _trace_linked_acs(builder, builder.index.component_to_acs.get(component, ()))


def resolve_chain(index: TraceIndex, query_id: str, options: TraceOptions) -> TraceChain:
    builder = _ChainBuilder(index=index, options=options, query_id=query_id)
    match classify_id(query_id):
        case IdKind.REQUIREMENT:
            _trace_requirement(builder, query_id)
        case IdKind.AC:
            _trace_ac(builder, query_id)
        case IdKind.PROPERTY:
            _trace_property(builder, query_id)
        case IdKind.COMPONENT:
            _trace_component(builder, query_id)
    return builder.build()


def resolve_trace(
    index: TraceIndex, ids: Sequence[str], options: TraceOptions | None = None
) -> TraceResult:
    options = options or TraceOptions()
    chains: list[TraceChain] = []
    not_found: list[str] = []
    for query_id in ids:
        if query_id not in index.all_ids:
            not_found.append(query_id)
            continue
        chains.append(resolve_chain(index, query_id, options))
    return TraceResult(chains=tuple(chains), not_found=tuple(not_found))
