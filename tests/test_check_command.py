from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from spectrace.analysis.findings import FindingCode, Severity
from spectrace.commands.check import ExitCode, run_check
from spectrace.config import CheckConfig
from spectrace.exceptions import RuleValidationError
from tests.project_helpers import write


def test_fully_traced_project_is_clean(x_project: Path) -> None:
    outcome = run_check(CheckConfig(), x_project)
    assert outcome.findings == ()
    assert outcome.clean
    assert outcome.exit_code is ExitCode.OK


def test_ghost_marker_yields_single_orphan(x_project: Path) -> None:
    write(x_project / "src/ghost.py", "# @spec-impl: GHOST-1_AC-1\n")
    outcome = run_check(CheckConfig(), x_project)
    assert [(item.code, item.id) for item in outcome.findings] == [
        (FindingCode.ORPHANED_MARKER, "GHOST-1_AC-1")
    ]
    assert "GHOST-1_AC-1" in outcome.findings[0].message
    assert outcome.exit_code is ExitCode.FINDINGS


def test_warnings_promoted_unless_allowed(x_project: Path) -> None:
    write(
        x_project / ".spectrace/specs/REQ-X-loader.md",
        """
        ### X-1: Load the configuration

        - [ ] X-1_AC-1 Reads the configuration file
        - [ ] X-1_AC-2 Rejects malformed files
        """,
    )
    strict = run_check(CheckConfig(), x_project)
    assert [(item.code, item.severity) for item in strict.findings] == [
        (FindingCode.UNCOVERED_AC, Severity.ERROR)
    ]
    assert not strict.clean
    relaxed = run_check(replace(CheckConfig(), allow_warnings=True), x_project)
    assert [item.severity for item in relaxed.findings] == [Severity.WARNING]
    assert relaxed.clean


def test_spec_only_skips_code(x_project: Path) -> None:
    write(x_project / "src/ghost.py", "# @spec-impl: GHOST-1_AC-1\n")
    outcome = run_check(replace(CheckConfig(), spec_only=True), x_project)
    # Without markers nothing refers back to the design file.
    assert [(item.code, Path(item.path).name) for item in outcome.findings] == [
        (FindingCode.ORPHANED_SPEC, "DESIGN-X-loader.md")
    ]


def test_schema_rules_are_applied(x_project: Path) -> None:
    write(
        x_project / ".spectrace/schemas/requirements.schema.yaml",
        """
        target-files: "REQ-*.md"
        sections:
          - heading: Overview
            level: 2
            required: true
        """,
    )
    outcome = run_check(CheckConfig(), x_project)
    assert [item.code for item in outcome.findings] == [FindingCode.SCHEMA_MISSING_SECTION]
    disabled = run_check(replace(CheckConfig(), schema_enabled=False), x_project)
    assert disabled.findings == ()


def test_invalid_rule_file_aborts(x_project: Path) -> None:
    write(x_project / ".spectrace/schemas/bad.schema.yaml", "sections: 3\n")
    with pytest.raises(RuleValidationError):
        run_check(CheckConfig(), x_project)
