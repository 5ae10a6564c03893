from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import textwrap

from spectrace.analysis.findings import FindingCode
from spectrace.analysis.marker_scanner import (
    ComponentMarker,
    ImplMarker,
    MarkerKind,
    TestMarker,
    scan_content,
    scan_markers,
)
from spectrace.config import DEFAULT_MARKERS, CheckConfig


def _scan(text: str, tokens: tuple[str, ...] = DEFAULT_MARKERS):
    return scan_content("src/a.py", textwrap.dedent(text).lstrip("\n"), tokens)


def test_scan_splits_ids_and_records_columns() -> None:
    result = _scan("# @spec-impl: X-1_AC-1, X-1_AC-2\n")
    assert [marker.id for marker in result.markers] == ["X-1_AC-1", "X-1_AC-2"]
    first, second = result.markers
    assert isinstance(first, ImplMarker)
    assert (first.line, first.start_column, first.end_column) == (1, 14, 22)
    assert (second.start_column, second.end_column) == (24, 32)
    assert result.findings == ()


def test_marker_kinds_follow_token_position() -> None:
    result = _scan(
        """
        # @impl: X-1_AC-1
        # @test: X-1_AC-1
        # @component: X-Loader
        """,
        ("@impl", "@test", "@component"),
    )
    assert [type(marker) for marker in result.markers] == [
        ImplMarker,
        TestMarker,
        ComponentMarker,
    ]
    assert [marker.kind for marker in result.markers] == [
        MarkerKind.IMPL,
        MarkerKind.TEST,
        MarkerKind.COMPONENT,
    ]


def test_trailing_text_is_reported() -> None:
    result = _scan("# @spec-impl: X-1_AC-1 extra words\n")
    assert [marker.id for marker in result.markers] == ["X-1_AC-1"]
    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.code is FindingCode.MARKER_TRAILING_TEXT
    assert finding.line == 1
    assert "extra words" in finding.message


def test_annotations_and_comment_closers_are_allowed() -> None:
    result = _scan(
        """
        # @spec-impl: X-1_AC-1 (partial)
        /* @spec-impl: X-1_AC-2 */
        <!-- @spec-test: X-1_AC-3 -->
        """
    )
    assert [marker.id for marker in result.markers] == ["X-1_AC-1", "X-1_AC-2", "X-1_AC-3"]
    assert result.findings == ()


def test_ignore_directives_hide_markers() -> None:
    result = _scan(
        """
        x = 1  # @spec-ignore-next-line
        # @spec-impl: A-1_AC-1
        # @spec-impl: A-1_AC-2  @spec-ignore
        # @spec-ignore-start
        # @spec-impl: A-1_AC-3
        # @spec-ignore-end
        # @spec-impl: A-1_AC-4
        """
    )
    assert [(marker.id, marker.line) for marker in result.markers] == [("A-1_AC-4", 7)]


def test_ignore_block_contains_only_its_lines() -> None:
    result = _scan(
        """
        # @spec-impl: A-1_AC-1
        # @spec-ignore-start
        # @spec-impl: A-1_AC-2
        # @spec-ignore-end
        # @spec-impl: A-1_AC-3
        """
    )
    assert [marker.id for marker in result.markers] == ["A-1_AC-1", "A-1_AC-3"]


def test_ignore_file_directive() -> None:
    result = _scan(
        """
        # @spec-ignore-file
        # @spec-impl: A-1_AC-1
        """
    )
    assert result.markers == ()


def test_scan_markers_over_project(x_project: Path) -> None:
    result = scan_markers(CheckConfig(), x_project)
    assert [(type(marker), marker.id) for marker in result.markers] == [
        (ImplMarker, "X-1_AC-1"),
        (TestMarker, "X-1_AC-1"),
    ]
    impl = result.markers[0]
    assert impl.path.endswith("src/loader.py")
    assert impl.line == 2


def test_ignore_markers_config_skips_files(x_project: Path) -> None:
    config = replace(CheckConfig(), ignore_markers=("tests/**",))
    result = scan_markers(config, x_project)
    assert [type(marker) for marker in result.markers] == [ImplMarker]


def test_dotted_acceptance_criterion_stays_whole() -> None:
    result = _scan("# @spec-impl: X-1.2_AC-3, X-1.2\n")
    assert [marker.id for marker in result.markers] == ["X-1.2_AC-3", "X-1.2"]
    assert result.findings == ()
