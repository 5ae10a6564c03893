from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time
from enum import StrEnum
from functools import cached_property
from pathlib import Path
import re
from typing import Mapping, TypeAlias
import tomllib

from spectrace.analysis.identifiers import DEFAULT_ID_PATTERN

DEFAULT_CONFIG_NAME = "spectrace.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

DEFAULT_SPEC_GLOBS = (".spectrace/specs/**/*.md",)
DEFAULT_CODE_GLOBS = ("src/**/*.{py,ts,js,tsx,jsx,go,rs,java,cs}", "tests/**/*.py")
DEFAULT_IGNORE = ("node_modules/**", "dist/**", ".venv/**")
DEFAULT_MARKERS = ("@spec-impl", "@spec-test", "@spec-component")
DEFAULT_CROSS_REF_PATTERNS = ("IMPLEMENTS:", "VALIDATES:")
DEFAULT_SCHEMA_DIR = ".spectrace/schemas"


class OutputFormat(StrEnum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class CheckConfig:
    spec_globs: tuple[str, ...] = DEFAULT_SPEC_GLOBS
    code_globs: tuple[str, ...] = DEFAULT_CODE_GLOBS
    spec_ignore: tuple[str, ...] = DEFAULT_IGNORE
    code_ignore: tuple[str, ...] = DEFAULT_IGNORE
    ignore_markers: tuple[str, ...] = ()
    markers: tuple[str, ...] = DEFAULT_MARKERS
    id_pattern: str = DEFAULT_ID_PATTERN
    cross_ref_patterns: tuple[str, ...] = DEFAULT_CROSS_REF_PATTERNS
    format: OutputFormat = OutputFormat.TEXT
    schema_dir: str = DEFAULT_SCHEMA_DIR
    schema_enabled: bool = True
    allow_warnings: bool = False
    spec_only: bool = False

    @cached_property
    def id_regex(self) -> re.Pattern[str]:
        return re.compile(self.id_pattern)


@dataclass(frozen=True)
class CheckOverrides:
    """Values supplied on the command line; ``None`` means "not given"."""

    format: OutputFormat | None = None
    allow_warnings: bool | None = None
    spec_only: bool | None = None
    spec_ignore: tuple[str, ...] = ()
    code_ignore: tuple[str, ...] = ()


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def check_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("check", {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _pattern_list(value: TomlValue, default: tuple[str, ...]) -> tuple[str, ...]:
    # Globs may carry {a,b} alternations, so no comma splitting here.
    if isinstance(value, str) and value.strip():
        return (value.strip(),)
    if isinstance(value, list) and value and all(isinstance(item, str) for item in value):
        return tuple(item for item in value if item.strip())
    return default


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _bool_or(value: TomlValue, default: bool) -> bool:
    if value is None:
        return default
    return _as_bool(value)


def _str_or(value: TomlValue, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def check_config_from_section(
    section: Mapping[str, TomlValue] | None,
    overrides: CheckOverrides | None = None,
) -> CheckConfig:
    section = section if isinstance(section, Mapping) else {}
    overrides = overrides or CheckOverrides()
    markers = tuple(_normalize_name_list(section.get("markers"))) or DEFAULT_MARKERS
    cross_refs = (
        tuple(_normalize_name_list(section.get("cross-ref-patterns")))
        or DEFAULT_CROSS_REF_PATTERNS
    )
    file_format = section.get("format")
    fmt = OutputFormat.JSON if file_format == OutputFormat.JSON.value else OutputFormat.TEXT
    config = CheckConfig(
        spec_globs=_pattern_list(section.get("spec-globs"), DEFAULT_SPEC_GLOBS),
        code_globs=_pattern_list(section.get("code-globs"), DEFAULT_CODE_GLOBS),
        spec_ignore=_pattern_list(section.get("spec-ignore"), DEFAULT_IGNORE)
        + overrides.spec_ignore,
        code_ignore=_pattern_list(section.get("code-ignore"), DEFAULT_IGNORE)
        + overrides.code_ignore,
        ignore_markers=_pattern_list(section.get("ignore-markers"), ()),
        markers=markers,
        id_pattern=_str_or(section.get("id-pattern"), DEFAULT_ID_PATTERN),
        cross_ref_patterns=cross_refs,
        format=fmt,
        schema_dir=_str_or(section.get("schema-dir"), DEFAULT_SCHEMA_DIR),
        schema_enabled=_bool_or(section.get("schema-enabled"), True),
        allow_warnings=_bool_or(section.get("allow-warnings"), False),
        spec_only=_bool_or(section.get("spec-only"), False),
    )
    return apply_overrides(config, overrides)


def apply_overrides(config: CheckConfig, overrides: CheckOverrides) -> CheckConfig:
    changes: dict[str, object] = {}
    if overrides.format is not None:
        changes["format"] = overrides.format
    if overrides.allow_warnings:
        changes["allow_warnings"] = True
    if overrides.spec_only:
        changes["spec_only"] = True
    return replace(config, **changes) if changes else config


def load_check_config(
    root: Path | None = None,
    config_path: Path | None = None,
    overrides: CheckOverrides | None = None,
) -> CheckConfig:
    return check_config_from_section(
        check_defaults(root=root, config_path=config_path), overrides
    )
