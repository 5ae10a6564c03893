"""Exceptions raised by spectrace outside the findings channel."""

from __future__ import annotations

from pathlib import Path


class SpectraceError(RuntimeError):
    """Base class for failures that abort a command instead of producing findings."""


class RuleValidationError(SpectraceError):
    """A schema rule file is malformed.

    Loading stops at the first invalid file; a partial rule set is never used.
    """

    def __init__(self, path: Path | str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = str(path)
        self.detail = message


class InternalCheckError(SpectraceError):
    """An unexpected failure while scanning or checking.

    Kept distinct from findings so callers can report it as its own outcome.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause
