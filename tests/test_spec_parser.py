from __future__ import annotations

from pathlib import Path
import textwrap

from spectrace.analysis.identifiers import IdKind
from spectrace.analysis.spec_parser import (
    CrossRefKind,
    classify_line,
    file_code,
    merge_spec_files,
    parse_spec_content,
    parse_specs,
)
from spectrace.config import DEFAULT_CROSS_REF_PATTERNS, CheckConfig

DESIGN = textwrap.dedent(
    """
    # Design

    IMPLEMENTS: CFG-9_AC-1

    ### CFG-Loader

    IMPLEMENTS: CFG-1_AC-1, CFG-1_AC-2

    ## Properties

    - CFG_P-1 Loading twice yields the same result
      VALIDATES: CFG-1_AC-1
    """
).lstrip("\n")


def test_classify_line_shapes() -> None:
    assert classify_line("### CFG-1: Load configuration") == (
        IdKind.REQUIREMENT,
        "CFG-1",
        "Load configuration",
    )
    assert classify_line("- [x] CFG-1_AC-1 Reads the file") == (
        IdKind.AC,
        "CFG-1_AC-1",
        "Reads the file",
    )
    assert classify_line("- CFG_P-1 Idempotent") == (IdKind.PROPERTY, "CFG_P-1", "Idempotent")
    assert classify_line("### CFG-Loader") == (IdKind.COMPONENT, "CFG-Loader", "CFG-Loader")
    assert classify_line("Plain text CFG-1") is None


def test_file_code_from_name() -> None:
    assert file_code("specs/REQ-CFG-config.md") == "CFG"
    assert file_code("DESIGN-X-loader.md") == "X"
    assert file_code("notes.md") == ""


def test_parse_definitions_in_document_order() -> None:
    text = textwrap.dedent(
        """
        ### CFG-1: Load configuration

        - [ ] CFG-1_AC-2 Rejects malformed files
        - [ ] CFG-1_AC-1 Reads the file

        ### CFG-1.1: Defaults
        """
    ).lstrip("\n")
    spec_file = parse_spec_content("REQ-CFG-config.md", text, DEFAULT_CROSS_REF_PATTERNS)
    assert [item.id for item in spec_file.definitions] == [
        "CFG-1",
        "CFG-1_AC-2",
        "CFG-1_AC-1",
        "CFG-1.1",
    ]
    assert spec_file.code == "CFG"
    assert spec_file.requirement_ids == ("CFG-1", "CFG-1.1")
    assert spec_file.definitions[1].location.line == 3


def test_cross_refs_attach_to_positional_owner() -> None:
    spec_file = parse_spec_content("DESIGN-CFG-config.md", DESIGN, DEFAULT_CROSS_REF_PATTERNS)
    refs = spec_file.cross_refs
    assert [(ref.kind, ref.owner, ref.target_ids) for ref in refs] == [
        (CrossRefKind.IMPLEMENTS, None, ("CFG-9_AC-1",)),
        (CrossRefKind.IMPLEMENTS, "CFG-Loader", ("CFG-1_AC-1", "CFG-1_AC-2")),
        (CrossRefKind.VALIDATES, "CFG_P-1", ("CFG-1_AC-1",)),
    ]
    assert spec_file.component_names == ("CFG-Loader",)
    assert spec_file.property_ids == ("CFG_P-1",)


def test_merge_later_definition_wins() -> None:
    first = parse_spec_content("a.md", "### CFG-1: First\n", DEFAULT_CROSS_REF_PATTERNS)
    second = parse_spec_content("b.md", "### CFG-1: Second\n", DEFAULT_CROSS_REF_PATTERNS)
    merged = merge_spec_files([first, second])
    assert merged.definitions["CFG-1"].text == "Second"
    assert merged.id_locations["CFG-1"].path == "b.md"
    assert merged.requirement_ids == frozenset({"CFG-1"})


def test_parse_specs_reads_project(x_project: Path) -> None:
    result = parse_specs(CheckConfig(), x_project)
    assert len(result.spec_files) == 2
    assert result.all_ids == frozenset({"X-1", "X-1_AC-1", "X-Loader"})
    assert result.ac_ids == frozenset({"X-1_AC-1"})
    assert result.component_names == frozenset({"X-Loader"})
