"""spectrace package root."""

from spectrace.exceptions import InternalCheckError, RuleValidationError, SpectraceError

__all__ = ["__version__", "InternalCheckError", "RuleValidationError", "SpectraceError"]

__version__ = "0.1.0"
