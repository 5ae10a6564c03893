from __future__ import annotations

import pytest

from spectrace.analysis.trace_resolver import (
    Direction,
    NodeKind,
    TraceOptions,
    resolve_trace,
)
from tests.trace_fixtures import build_sample_index


def _ids(nodes) -> list[str]:
    return [node.id for node in nodes]


def test_requirement_forward_walks_full_chain() -> None:
    index = build_sample_index()
    (chain,) = resolve_trace(index, ["CFG-1"]).chains
    assert chain.requirement is not None and chain.requirement.id == "CFG-1"
    assert _ids(chain.acs) == ["CFG-1_AC-1", "CFG-1_AC-2"]
    assert _ids(chain.design_components) == ["CFG-Loader"]
    assert _ids(chain.implementations) == ["CFG-1_AC-1", "CFG-Loader", "CFG-1_AC-2"]
    assert chain.implementations[1].kind is NodeKind.COMPONENT
    assert [node.location.render() for node in chain.tests] == ["tests/test_loader.py:1"]
    assert chain.properties == ()


def test_ac_both_directions_includes_requirement() -> None:
    index = build_sample_index()
    (both,) = resolve_trace(index, ["CFG-1_AC-1"]).chains
    assert both.requirement is not None and both.requirement.id == "CFG-1"
    assert _ids(both.acs) == ["CFG-1_AC-1"]
    assert _ids(both.design_components) == ["CFG-Loader"]
    (forward,) = resolve_trace(
        index, ["CFG-1_AC-1"], TraceOptions(direction=Direction.FORWARD)
    ).chains
    assert forward.requirement is None
    (reverse,) = resolve_trace(
        index, ["CFG-1_AC-1"], TraceOptions(direction=Direction.REVERSE)
    ).chains
    assert reverse.requirement is not None
    assert reverse.implementations == () and reverse.tests == ()


def test_property_trace_reaches_tests_and_linked_acs() -> None:
    index = build_sample_index()
    (chain,) = resolve_trace(index, ["CFG_P-1"]).chains
    assert _ids(chain.properties) == ["CFG_P-1"]
    assert [node.location.line for node in chain.tests] == [4]
    assert _ids(chain.acs) == ["CFG-1_AC-1"]
    assert chain.requirement is not None and chain.requirement.id == "CFG-1"


def test_component_trace() -> None:
    index = build_sample_index()
    (chain,) = resolve_trace(index, ["CFG-Loader"]).chains
    assert _ids(chain.design_components) == ["CFG-Loader"]
    assert [node.location.render() for node in chain.implementations] == ["src/loader.py:1"]
    assert _ids(chain.acs) == ["CFG-1_AC-1"]


def test_unknown_ids_are_reported() -> None:
    result = resolve_trace(build_sample_index(), ["NOPE-1", "CFG-1"])
    assert result.not_found == ("NOPE-1",)
    assert [chain.query_id for chain in result.chains] == ["CFG-1"]


def test_depth_limits_hops() -> None:
    index = build_sample_index()
    (zero,) = resolve_trace(index, ["CFG-1"], TraceOptions(depth=0)).chains
    assert _ids(zero.nodes()) == ["CFG-1"]
    (one,) = resolve_trace(index, ["CFG-1"], TraceOptions(depth=1)).chains
    assert _ids(one.acs) == ["CFG-1_AC-1", "CFG-1_AC-2"]
    assert one.implementations == () and one.tests == ()
    (two,) = resolve_trace(index, ["CFG-1"], TraceOptions(depth=2)).chains
    assert _ids(two.implementations) == ["CFG-1_AC-1", "CFG-1_AC-2"]


@pytest.mark.parametrize("query", ["CFG-1", "CFG-1_AC-1", "CFG_P-1", "CFG-Loader"])
def test_depth_is_monotonic(query: str) -> None:
    index = build_sample_index()
    previous: set[tuple[str, str, int]] = set()
    for depth in range(0, 5):
        options = TraceOptions(direction=Direction.FORWARD, depth=depth)
        (chain,) = resolve_trace(index, [query], options).chains
        keys = {node.key for node in chain.nodes()}
        assert previous <= keys
        previous = keys
    (unbounded,) = resolve_trace(
        index, [query], TraceOptions(direction=Direction.FORWARD)
    ).chains
    assert previous == {node.key for node in unbounded.nodes()}


def test_scope_keeps_matching_prefix_only() -> None:
    index = build_sample_index()
    (chain,) = resolve_trace(index, ["CFG-1"], TraceOptions(scope="CFG-1")).chains
    assert all(node.id.startswith("CFG-1") for node in chain.nodes())
    assert chain.design_components == ()


def test_no_code_and_no_tests() -> None:
    index = build_sample_index()
    (chain,) = resolve_trace(
        index, ["CFG-1"], TraceOptions(no_code=True, no_tests=True)
    ).chains
    assert chain.implementations == ()
    assert chain.tests == ()
    assert _ids(chain.acs) == ["CFG-1_AC-1", "CFG-1_AC-2"]


def test_chains_have_unique_nodes_and_are_deterministic() -> None:
    index = build_sample_index()
    ids = sorted(index.all_ids)
    first = resolve_trace(index, ids)
    second = resolve_trace(index, ids)
    assert first == second
    for chain in first.chains:
        keys = [(node.kind, node.key) for node in chain.nodes()]
        assert len(keys) == len(set(keys))
