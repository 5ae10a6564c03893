from __future__ import annotations

from pathlib import Path
import textwrap

from spectrace.analysis.content_assembler import (
    ContentSection,
    SectionKind,
    apply_token_budget,
    assemble_content,
    code_excerpt_bounds,
    estimate_tokens,
    spec_section_bounds,
)
from spectrace.analysis.trace_resolver import resolve_trace
from spectrace.commands.trace import load_trace_index
from spectrace.config import CheckConfig
from tests.project_helpers import write


def _lines(text: str) -> list[str]:
    return textwrap.dedent(text).lstrip("\n").splitlines()


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_spec_section_bounds_stop_at_sibling_heading() -> None:
    lines = _lines(
        """
        # Title

        ### CFG-1: Load

        - [ ] CFG-1_AC-1 Reads

        ```
        # fenced, not a heading
        ```

        ### CFG-2: Next
        text
        """
    )
    assert spec_section_bounds(lines, 5) == (2, 8)
    assert spec_section_bounds(lines, 12) == (10, 11)


def test_code_excerpt_uses_indented_block_and_decorators() -> None:
    lines = _lines(
        """
        import os

        @decorator
        def load(path):
            # @spec-impl: X-1_AC-1
            value = 1
            return value

        def other():
            pass
        """
    )
    assert code_excerpt_bounds(lines, 5) == (2, 6)


def test_code_excerpt_uses_braced_block() -> None:
    lines = _lines(
        """
        function load() {
          // @spec-impl: X-1_AC-1
          return 1;
        }
        const after = 2;
        """
    )
    assert code_excerpt_bounds(lines, 2) == (0, 3)


def test_code_excerpt_falls_back_to_context_window() -> None:
    lines = [f"line {number}" for number in range(30)]
    assert code_excerpt_bounds(lines, 15) == (9, 29)
    assert code_excerpt_bounds(lines, 15, before_context=2, after_context=3) == (12, 17)


def test_assemble_content_orders_and_deduplicates(x_project: Path) -> None:
    index = load_trace_index(CheckConfig(), x_project)
    task = write(x_project / "tasks/TASK-1.md", "# Task\n\nIMPLEMENTS: X-1_AC-1\n")
    sections = assemble_content(resolve_trace(index, ["X-1"]), str(task))
    assert [section.kind for section in sections] == [
        SectionKind.TASK,
        SectionKind.REQUIREMENT,
        SectionKind.DESIGN,
        SectionKind.IMPLEMENTATION,
        SectionKind.TEST,
    ]
    requirement = sections[1]
    assert (requirement.start_line, requirement.end_line) == (3, 5)
    assert requirement.content.startswith("### X-1: Load the configuration")
    implementation = sections[3]
    assert (implementation.start_line, implementation.end_line) == (1, 4)
    assert implementation.content.startswith("def load(path):")
    assert [section.priority for section in sections] == [1, 2, 3, 5, 6]


def _section(content: str) -> ContentSection:
    return ContentSection(SectionKind.REQUIREMENT, "a.md", 1, 1, content)


def test_token_budget_keeps_what_fits() -> None:
    sections = [_section("a" * 40), _section("b" * 40), _section("c" * 40)]
    result = apply_token_budget(sections, 25)
    assert [section.content[0] for section in result.sections] == ["a", "b"]
    assert result.truncated
    assert result.footer == "... 1 more section omitted (use --max-tokens to increase)"


def test_token_budget_truncates_first_oversized_section() -> None:
    sections = [_section("a" * 40), _section("b" * 40), _section("c" * 40)]
    result = apply_token_budget(sections, 5)
    assert [section.content for section in result.sections] == ["a" * 20]
    assert result.footer == "... 2 more sections omitted (use --max-tokens to increase)"


def test_token_budget_everything_fits() -> None:
    sections = [_section("a" * 8)]
    result = apply_token_budget(sections, 100)
    assert list(result.sections) == sections
    assert result.footer is None


def test_component_code_is_an_implementation_excerpt(x_project: Path) -> None:
    write(
        x_project / "src/loader.py",
        """
        # @spec-component: X-Loader
        class Loader:
            # @spec-impl: X-1_AC-1
            def load(self, path):
                return path
        """,
    )
    index = load_trace_index(CheckConfig(), x_project)
    sections = assemble_content(resolve_trace(index, ["X-Loader"]))
    assert [section.kind for section in sections] == [
        SectionKind.REQUIREMENT,
        SectionKind.DESIGN,
        SectionKind.IMPLEMENTATION,
    ]
    code = sections[-1]
    assert code.path.endswith("loader.py")
    assert (code.start_line, code.end_line) == (1, 5)
    assert code.content.startswith("# @spec-component: X-Loader")
