from __future__ import annotations

from pathlib import Path
import re
from typing import Mapping

import structlog
import yaml

from spectrace.exceptions import RuleValidationError
from spectrace.rules.model import (
    CodeBlockRule,
    ContainsRule,
    HeadingOrTextRule,
    ListRule,
    PatternRule,
    RuleFile,
    SectionRule,
    TableRule,
    WhenCondition,
    is_literal,
)

logger = structlog.get_logger(__name__)

RULE_FILE_SUFFIX = ".schema.yaml"


class _Context:
    """Carries the file path for error messages while walking one rule file."""

    def __init__(self, path: Path):
        self.path = path

    def fail(self, where: str, message: str) -> RuleValidationError:
        return RuleValidationError(self.path, f"{where}: {message}")

    def regex(self, value: str, where: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise self.fail(where, f"invalid regular expression {value!r} ({exc})") from exc
        return value

    def text(self, value: object, where: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise self.fail(where, "expected a non-empty string")
        return value

    def optional_text(self, value: object, where: str) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise self.fail(where, "expected a string")
        return value

    def flag(self, value: object, where: str, default: bool) -> bool:
        if value is None:
            return default
        if not isinstance(value, bool):
            raise self.fail(where, "expected a boolean")
        return value

    def count(self, value: object, where: str, default: int, minimum: int = 0) -> int:
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            raise self.fail(where, f"expected an integer >= {minimum}")
        return value

    def mapping(self, value: object, where: str) -> Mapping[str, object]:
        if not isinstance(value, Mapping):
            raise self.fail(where, "expected a mapping")
        return value


def _when(ctx: _Context, raw: object, where: str) -> WhenCondition | None:
    if raw is None:
        return None
    payload = ctx.mapping(raw, where)
    matches = ctx.optional_text(payload.get("heading-matches"), f"{where}.heading-matches")
    not_matches = ctx.optional_text(
        payload.get("heading-not-matches"), f"{where}.heading-not-matches"
    )
    if matches is None and not_matches is None:
        raise ctx.fail(where, "requires heading-matches or heading-not-matches")
    if matches is not None:
        ctx.regex(matches, f"{where}.heading-matches")
    if not_matches is not None:
        ctx.regex(not_matches, f"{where}.heading-not-matches")
    return WhenCondition(heading_matches=matches, heading_not_matches=not_matches)


def _contains_rule(ctx: _Context, raw: object, where: str) -> ContainsRule:
    payload = ctx.mapping(raw, where)
    when = _when(ctx, payload.get("when"), f"{where}.when")
    if "pattern" in payload:
        pattern = ctx.regex(ctx.text(payload["pattern"], f"{where}.pattern"), f"{where}.pattern")
        return PatternRule(
            pattern=pattern,
            label=ctx.optional_text(payload.get("label"), f"{where}.label"),
            description=ctx.optional_text(payload.get("description"), f"{where}.description"),
            required=ctx.flag(payload.get("required"), f"{where}.required", True),
            prohibited=ctx.flag(payload.get("prohibited"), f"{where}.prohibited", False),
            when=when,
        )
    if "list" in payload:
        spec = ctx.mapping(payload["list"], f"{where}.list")
        field_name = f"{where}.list.pattern"
        pattern = ctx.regex(ctx.text(spec.get("pattern"), field_name), field_name)
        return ListRule(
            pattern=pattern,
            min=ctx.count(spec.get("min"), f"{where}.list.min", 1),
            label=ctx.optional_text(spec.get("label"), f"{where}.list.label"),
            when=when,
        )
    if "table" in payload:
        spec = ctx.mapping(payload["table"], f"{where}.table")
        columns = spec.get("columns")
        if (
            not isinstance(columns, list)
            or not columns
            or any(not isinstance(item, str) for item in columns)
        ):
            raise ctx.fail(f"{where}.table.columns", "expected a non-empty list of strings")
        return TableRule(
            heading=ctx.optional_text(spec.get("heading"), f"{where}.table.heading"),
            columns=tuple(columns),
            min_rows=ctx.count(spec.get("min-rows"), f"{where}.table.min-rows", 0),
            when=when,
        )
    if "code-block" in payload:
        if payload["code-block"] is not True:
            raise ctx.fail(f"{where}.code-block", "must be true")
        return CodeBlockRule(
            label=ctx.optional_text(payload.get("label"), f"{where}.label"), when=when
        )
    if "heading-or-text" in payload:
        return HeadingOrTextRule(
            text=ctx.text(payload["heading-or-text"], f"{where}.heading-or-text"),
            required=ctx.flag(payload.get("required"), f"{where}.required", True),
            when=when,
        )
    raise ctx.fail(where, "has no recognized rule type")


def _section_rule(ctx: _Context, raw: object, where: str) -> SectionRule:
    payload = ctx.mapping(raw, where)
    heading = ctx.text(payload.get("heading"), f"{where}.heading")
    if not is_literal(heading):
        ctx.regex(heading, f"{where}.heading")
    level = payload.get("level")
    if isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= 6:
        raise ctx.fail(f"{where}.level", "expected an integer between 1 and 6")
    contains_raw = payload.get("contains", [])
    children_raw = payload.get("children", [])
    if not isinstance(contains_raw, list):
        raise ctx.fail(f"{where}.contains", "expected a list")
    if not isinstance(children_raw, list):
        raise ctx.fail(f"{where}.children", "expected a list")
    return SectionRule(
        heading=heading,
        level=level,
        required=ctx.flag(payload.get("required"), f"{where}.required", False),
        repeatable=ctx.flag(payload.get("repeatable"), f"{where}.repeatable", False),
        description=ctx.optional_text(payload.get("description"), f"{where}.description"),
        contains=tuple(
            _contains_rule(ctx, item, f"{where}.contains[{index}]")
            for index, item in enumerate(contains_raw)
        ),
        children=tuple(
            _section_rule(ctx, item, f"{where}.children[{index}]")
            for index, item in enumerate(children_raw)
        ),
    )


def rule_file_from_mapping(path: Path, payload: object) -> RuleFile:
    ctx = _Context(path)
    data = ctx.mapping(payload, "document")
    target = ctx.text(data.get("target-files"), "target-files")
    sections_raw = data.get("sections")
    sections: tuple[SectionRule, ...] = ()
    if sections_raw is not None:
        if not isinstance(sections_raw, list) or not sections_raw:
            raise ctx.fail("sections", "expected a non-empty list")
        sections = tuple(
            _section_rule(ctx, item, f"sections[{index}]")
            for index, item in enumerate(sections_raw)
        )
    prohibited_raw = data.get("sections-prohibited", [])
    if not isinstance(prohibited_raw, list) or any(
        not isinstance(item, str) for item in prohibited_raw
    ):
        raise ctx.fail("sections-prohibited", "expected a list of strings")
    line_limit = data.get("line-limit")
    if line_limit is not None:
        line_limit = ctx.count(line_limit, "line-limit", 0, minimum=1)
    return RuleFile(
        source=str(path),
        target_files=target,
        sections=sections,
        sections_prohibited=tuple(prohibited_raw),
        description=ctx.optional_text(data.get("description"), "description"),
        line_limit=line_limit,
        example=ctx.optional_text(data.get("example"), "example"),
    )


def load_rule_file(path: Path) -> RuleFile:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuleValidationError(path, f"unreadable rule file ({exc})") from exc
    except yaml.YAMLError as exc:
        raise RuleValidationError(path, f"invalid YAML ({exc})") from exc
    return rule_file_from_mapping(path, payload)


def load_rules(schema_dir: Path) -> list[RuleFile]:
    """Load every rule file in ``schema_dir``; any invalid file aborts the load."""
    if not schema_dir.is_dir():
        logger.debug("schema_dir_missing", schema_dir=str(schema_dir))
        return []
    paths = sorted(schema_dir.glob(f"*{RULE_FILE_SUFFIX}"))
    rules = [load_rule_file(path) for path in paths]
    logger.debug("rules_loaded", schema_dir=str(schema_dir), files=len(rules))
    return rules
