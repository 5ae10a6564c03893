from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Iterable, Sequence


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class FindingCode(StrEnum):
    ORPHANED_MARKER = "orphaned-marker"
    UNCOVERED_AC = "uncovered-ac"
    BROKEN_CROSS_REF = "broken-cross-ref"
    INVALID_ID_FORMAT = "invalid-id-format"
    MARKER_TRAILING_TEXT = "marker-trailing-text"
    ORPHANED_SPEC = "orphaned-spec"
    SCHEMA_MISSING_SECTION = "schema-missing-section"
    SCHEMA_WRONG_LEVEL = "schema-wrong-level"
    SCHEMA_MISSING_CONTENT = "schema-missing-content"
    SCHEMA_TABLE_COLUMNS = "schema-table-columns"
    SCHEMA_PROHIBITED = "schema-prohibited"
    SCHEMA_NO_RULE = "schema-no-rule"
    SCHEMA_LINE_LIMIT = "schema-line-limit"


@dataclass(frozen=True)
class Finding:
    severity: Severity
    code: FindingCode
    message: str
    path: str
    line: int | None = None
    id: str | None = None
    rule_source: str | None = None
    rule: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


def error(code: FindingCode, message: str, path: str, **extra: object) -> Finding:
    return Finding(Severity.ERROR, code, message, path, **extra)  # type: ignore[arg-type]


def warning(code: FindingCode, message: str, path: str, **extra: object) -> Finding:
    return Finding(Severity.WARNING, code, message, path, **extra)  # type: ignore[arg-type]


def promote_warnings(findings: Iterable[Finding]) -> list[Finding]:
    return [
        replace(finding, severity=Severity.ERROR)
        if finding.severity is Severity.WARNING
        else finding
        for finding in findings
    ]


def count_by_severity(findings: Sequence[Finding]) -> tuple[int, int]:
    errors = sum(1 for finding in findings if finding.is_error)
    return errors, len(findings) - errors


def is_clean(findings: Sequence[Finding]) -> bool:
    return not any(finding.is_error for finding in findings)
