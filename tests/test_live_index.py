from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from spectrace import live_index as live_index_module
from spectrace.analysis.identifiers import IdKind, SourceLocation
from spectrace.config import CheckConfig
from spectrace.live_index import IndexState, LiveIndex
from tests.project_helpers import write


@pytest.fixture()
def ready_index(x_project: Path) -> LiveIndex:
    index = LiveIndex()
    index.rebuild(CheckConfig(), x_project)
    return index


def test_queries_are_empty_until_built(x_project: Path) -> None:
    index = LiveIndex(root=x_project)
    assert index.state is IndexState.EMPTY
    assert index.id_count() == 0
    assert index.definition("X-1") is None
    assert index.definitions() == []
    assert index.markers_in(x_project / "src/loader.py") == ()


def test_rebuild_indexes_specs_and_markers(ready_index: LiveIndex) -> None:
    root = ready_index.root
    assert ready_index.ready
    assert ready_index.id_count() == 3
    assert ready_index.definition("X-1_AC-1").text == "Reads the configuration file"
    assert ready_index.implementations("X-1_AC-1") == (
        SourceLocation(str(root / "src/loader.py"), 2),
    )
    assert ready_index.tests("X-1_AC-1") == (
        SourceLocation(str(root / "tests/test_loader.py"), 1),
    )
    assert [item.id for item in ready_index.definitions((IdKind.COMPONENT,))] == ["X-Loader"]
    assert ready_index.relative(root / "src/loader.py") == "src/loader.py"


def test_marker_at_uses_zero_based_positions(ready_index: LiveIndex) -> None:
    source = ready_index.root / "src/loader.py"
    marker = ready_index.marker_at(source, 1, 20)
    assert marker is not None and marker.id == "X-1_AC-1"
    assert ready_index.marker_at(source, 1, 2) is None
    assert ready_index.marker_at(source, 0, 20) is None


def test_update_file_replaces_previous_contribution(ready_index: LiveIndex) -> None:
    source = ready_index.root / "src/loader.py"
    ready_index.update_file(source, "# @spec-impl: GHOST-1_AC-1\n")
    assert ready_index.implementations("X-1_AC-1") == ()
    assert [marker.id for marker in ready_index.markers_in(source)] == ["GHOST-1_AC-1"]


def test_update_spec_file_adds_and_drops_definitions(ready_index: LiveIndex) -> None:
    spec = ready_index.root / ".spectrace/specs/REQ-X-loader.md"
    ready_index.update_file(
        spec,
        "### X-1: Load\n\n- [ ] X-1_AC-1 Reads\n- [ ] X-1_AC-2 Rejects bad files\n",
    )
    assert ready_index.definition("X-1_AC-2") is not None
    ready_index.update_file(spec, "### X-2: Replaced\n")
    assert ready_index.definition("X-1") is None
    assert ready_index.definition("X-1_AC-1") is None
    assert ready_index.definition("X-2") is not None
    assert ready_index.definition("X-Loader") is not None


def test_remove_file_drops_markers(ready_index: LiveIndex) -> None:
    test_file = ready_index.root / "tests/test_loader.py"
    ready_index.remove_file(test_file)
    assert ready_index.tests("X-1_AC-1") == ()
    assert str(test_file) not in ready_index.marker_files()


def test_failed_rebuild_clears_index(
    ready_index: LiveIndex, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(config: CheckConfig, root: Path) -> tuple[Path, ...]:
        raise OSError("disk went away")

    monkeypatch.setattr(live_index_module, "spec_files_for", _boom)
    with pytest.raises(OSError):
        ready_index.rebuild(CheckConfig(), ready_index.root)
    assert ready_index.state is IndexState.FAILED
    assert ready_index.id_count() == 0


def test_dropping_winning_duplicate_restores_the_other_definition(x_project: Path) -> None:
    specs = x_project / ".spectrace/specs"
    write(specs / "REQ-X-a.md", "### X-9: First\n")
    write(specs / "REQ-X-b.md", "### X-9: Second\n")
    index = LiveIndex()
    index.rebuild(CheckConfig(), x_project)
    assert index.definition("X-9").text == "Second"

    index.update_file(index.root / ".spectrace/specs/REQ-X-b.md", "nothing here\n")
    assert index.definition("X-9").text == "First"

    index.remove_file(index.root / ".spectrace/specs/REQ-X-a.md")
    assert index.definition("X-9") is None


def test_ignored_code_files_contribute_nothing(x_project: Path) -> None:
    config = replace(
        CheckConfig(),
        code_ignore=CheckConfig().code_ignore + ("src/generated/**",),
        ignore_markers=("src/vendor/**",),
    )
    index = LiveIndex()
    index.rebuild(config, x_project)
    generated = index.root / "src/generated/model.py"
    vendored = index.root / "src/vendor/lib.py"
    index.update_file(generated, "# @spec-impl: GHOST-1_AC-1\n")
    index.update_file(vendored, "# @spec-impl: GHOST-1_AC-1\n")
    assert index.markers_in(generated) == ()
    assert index.markers_in(vendored) == ()
    assert index.implementations("GHOST-1_AC-1") == ()
