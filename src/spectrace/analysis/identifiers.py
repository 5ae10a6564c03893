"""Identifier grammar shared by the scanner, parser, index and checkers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
import re

DEFAULT_ID_PATTERN = r"([A-Z][A-Z0-9]*-\d+(?:\.\d+)?(?:_AC-\d+)?|[A-Z][A-Z0-9]*_P-\d+)"

AC_SEPARATOR = "_AC-"
PROPERTY_SEPARATOR = "_P-"

_REQUIREMENT_PREFIX_RE = re.compile(r"^[A-Z][A-Z0-9]*-\d+")
_REQUIREMENT_ID_RE = re.compile(r"[A-Z][A-Z0-9]*-\d+(?:\.\d+)?")
_FEATURE_CODE_RE = re.compile(r"^([A-Z][A-Z0-9]*)")
_REFERENCED_CODE_RE = re.compile(r"^([A-Z][A-Z0-9]*)[-_]")
# Leading identifier token of a marker entry; trailing annotations are not part of it.
ID_TOKEN_RE = re.compile(r"^([A-Z][A-Z0-9]*(?:[-_][A-Za-z0-9]+)*(?:\.\d+)?(?:_AC-\d+)?)")
# Any requirement, AC or property id embedded in free text.
EMBEDDED_ID_RE = re.compile(r"[A-Z][A-Z0-9]*-\d+(?:\.\d+)?(?:_AC-\d+)?|[A-Z][A-Z0-9]*_P-\d+")


class IdKind(StrEnum):
    REQUIREMENT = "requirement"
    AC = "ac"
    PROPERTY = "property"
    COMPONENT = "component"


@dataclass(frozen=True)
class SourceLocation:
    path: str
    line: int

    def render(self) -> str:
        return f"{self.path}:{self.line}"


def classify_id(text: str) -> IdKind:
    """Classify an identifier by its shape alone."""
    if AC_SEPARATOR in text:
        return IdKind.AC
    if PROPERTY_SEPARATOR in text:
        return IdKind.PROPERTY
    if _REQUIREMENT_PREFIX_RE.match(text):
        return IdKind.REQUIREMENT
    return IdKind.COMPONENT


def parent_requirement(ac_id: str) -> str | None:
    index = ac_id.find(AC_SEPARATOR)
    if index <= 0:
        return None
    return ac_id[:index]


def parent_of_subrequirement(requirement_id: str) -> str | None:
    index = requirement_id.rfind(".")
    if index <= 0:
        return None
    parent = requirement_id[:index]
    if not _REQUIREMENT_ID_RE.fullmatch(parent):
        return None
    return parent


def feature_code(identifier: str) -> str:
    match = _FEATURE_CODE_RE.match(identifier)
    return match.group(1) if match else ""


def referenced_code(identifier: str) -> str | None:
    match = _REFERENCED_CODE_RE.match(identifier)
    return match.group(1) if match else None


def leading_id_token(text: str) -> str | None:
    match = ID_TOKEN_RE.match(text)
    return match.group(1) if match else None


def matches_id_format(identifier: str, pattern: re.Pattern[str]) -> bool:
    return pattern.fullmatch(identifier) is not None
