"""Object model for declarative document-structure rules."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import TypeAlias

# A pattern containing none of these is treated as literal text.
_REGEX_METACHARACTERS_RE = re.compile(r"[.+*?^${}()|\[\]\\]")


def is_literal(pattern: str) -> bool:
    return _REGEX_METACHARACTERS_RE.search(pattern) is None


def heading_regex(pattern: str) -> re.Pattern[str]:
    """Anchor a heading pattern to the whole heading text."""
    if is_literal(pattern):
        return re.compile(rf"^{re.escape(pattern)}$", re.IGNORECASE)
    return re.compile(rf"^(?:{pattern})$")


@dataclass(frozen=True)
class WhenCondition:
    heading_matches: str | None = None
    heading_not_matches: str | None = None

    def holds(self, heading: str) -> bool:
        if self.heading_matches is not None and not re.search(self.heading_matches, heading):
            return False
        if self.heading_not_matches is not None and re.search(
            self.heading_not_matches, heading
        ):
            return False
        return True


@dataclass(frozen=True)
class PatternRule:
    pattern: str
    label: str | None = None
    description: str | None = None
    required: bool = True
    prohibited: bool = False
    when: WhenCondition | None = None


@dataclass(frozen=True)
class ListRule:
    pattern: str
    min: int = 1
    label: str | None = None
    when: WhenCondition | None = None


@dataclass(frozen=True)
class TableRule:
    columns: tuple[str, ...]
    min_rows: int = 0
    heading: str | None = None
    when: WhenCondition | None = None


@dataclass(frozen=True)
class CodeBlockRule:
    label: str | None = None
    when: WhenCondition | None = None


@dataclass(frozen=True)
class HeadingOrTextRule:
    text: str
    required: bool = True
    when: WhenCondition | None = None


ContainsRule: TypeAlias = PatternRule | ListRule | TableRule | CodeBlockRule | HeadingOrTextRule


@dataclass(frozen=True)
class SectionRule:
    heading: str
    level: int
    required: bool = False
    repeatable: bool = False
    description: str | None = None
    contains: tuple[ContainsRule, ...] = ()
    children: tuple["SectionRule", ...] = ()


@dataclass(frozen=True)
class RuleFile:
    source: str
    target_files: str
    sections: tuple[SectionRule, ...] = ()
    sections_prohibited: tuple[str, ...] = ()
    description: str | None = None
    line_limit: int | None = None
    example: str | None = None
