"""Validate spec documents against loaded structure rules."""

from __future__ import annotations

import re
from typing import Iterable, Sequence

import structlog

from spectrace.analysis.file_collection import path_matches
from spectrace.analysis.findings import Finding, FindingCode, error, warning
from spectrace.analysis.spec_parser import SpecFile
from spectrace.rules.markdown_tree import (
    SectionNode,
    full_text,
    has_code_block,
    list_items,
    parse_markdown,
    tables,
    walk,
)
from spectrace.rules.model import (
    CodeBlockRule,
    ContainsRule,
    HeadingOrTextRule,
    ListRule,
    PatternRule,
    RuleFile,
    SectionRule,
    TableRule,
    heading_regex,
)

logger = structlog.get_logger(__name__)


def applicable_rules(path: str, rule_files: Iterable[RuleFile]) -> list[RuleFile]:
    return [rule_file for rule_file in rule_files if path_matches(path, [rule_file.target_files])]


def _evaluate_contains(
    path: str, node: SectionNode, rule: ContainsRule, source: str
) -> list[Finding]:
    heading = node.heading
    extra = {"line": node.line, "rule_source": source, "rule": heading}
    match rule:
        case PatternRule():
            found = re.search(rule.pattern, full_text(node), re.MULTILINE) is not None
            label = rule.label or rule.pattern
            if rule.prohibited:
                if found:
                    return [
                        warning(
                            FindingCode.SCHEMA_PROHIBITED,
                            f"Section '{heading}' contains prohibited content: {label}",
                            path,
                            **extra,
                        )
                    ]
                return []
            if not found and rule.required:
                return [
                    error(
                        FindingCode.SCHEMA_MISSING_CONTENT,
                        f"Section '{heading}' is missing required content: {label}",
                        path,
                        **extra,
                    )
                ]
            return []
        case ListRule():
            matching = [item for item in list_items(node) if re.search(rule.pattern, item)]
            if len(matching) < rule.min:
                label = rule.label or rule.pattern
                return [
                    error(
                        FindingCode.SCHEMA_MISSING_CONTENT,
                        f"Section '{heading}' has {len(matching)} list item(s) matching "
                        f"{label}, expected at least {rule.min}",
                        path,
                        **extra,
                    )
                ]
            return []
        case TableRule():
            named = f" '{rule.heading}'" if rule.heading else ""
            found_tables = tables(node)
            if not found_tables:
                return [
                    error(
                        FindingCode.SCHEMA_MISSING_CONTENT,
                        f"Section '{heading}' is missing required table{named}",
                        path,
                        **extra,
                    )
                ]
            wanted = set(rule.columns)
            qualifying = next(
                (table for table in found_tables if wanted <= set(table.header)), None
            )
            if qualifying is None:
                first = found_tables[0]
                return [
                    error(
                        FindingCode.SCHEMA_TABLE_COLUMNS,
                        f"Table{named} in section '{heading}' must have columns "
                        f"{', '.join(rule.columns)}; found {', '.join(first.header)}",
                        path,
                        **extra,
                    )
                ]
            if len(qualifying.rows) < rule.min_rows:
                return [
                    error(
                        FindingCode.SCHEMA_MISSING_CONTENT,
                        f"Table{named} in section '{heading}' has "
                        f"{len(qualifying.rows)} row(s), expected at least {rule.min_rows}",
                        path,
                        **extra,
                    )
                ]
            return []
        case CodeBlockRule():
            if has_code_block(node):
                return []
            suffix = f" ({rule.label})" if rule.label else ""
            return [
                error(
                    FindingCode.SCHEMA_MISSING_CONTENT,
                    f"Section '{heading}' is missing a code block{suffix}",
                    path,
                    **extra,
                )
            ]
        case HeadingOrTextRule():
            needle = rule.text.upper()
            if any(needle in child.heading.upper() for child in walk(node.children)):
                return []
            if needle in full_text(node).upper() or not rule.required:
                return []
            return [
                error(
                    FindingCode.SCHEMA_MISSING_CONTENT,
                    f"Section '{heading}' must mention '{rule.text}' in a heading or its text",
                    path,
                    **extra,
                )
            ]
    raise ValueError(f"unsupported contains rule: {rule!r}")


def check_sections(
    path: str,
    candidates: Sequence[SectionNode],
    rules: Sequence[SectionRule],
    source: str,
) -> list[Finding]:
    findings: list[Finding] = []
    for rule in rules:
        pattern = heading_regex(rule.heading)
        named = [node for node in candidates if pattern.match(node.heading)]
        at_level = [node for node in named if node.level == rule.level]
        if not at_level:
            if named:
                node = named[0]
                findings.append(
                    warning(
                        FindingCode.SCHEMA_WRONG_LEVEL,
                        f"Section '{node.heading}' should be level {rule.level} "
                        f"but is level {node.level}",
                        path,
                        line=node.line,
                        rule_source=source,
                        rule=rule.heading,
                    )
                )
            elif rule.required:
                findings.append(
                    error(
                        FindingCode.SCHEMA_MISSING_SECTION,
                        f"Missing required section: '{rule.heading}' (level {rule.level})",
                        path,
                        rule_source=source,
                        rule=rule.heading,
                    )
                )
            continue
        for node in at_level if rule.repeatable else at_level[:1]:
            for contains in rule.contains:
                if contains.when is not None and not contains.when.holds(node.heading):
                    continue
                findings.extend(_evaluate_contains(path, node, contains, source))
            if rule.children:
                findings.extend(
                    check_sections(path, list(walk(node.children)), rule.children, source)
                )
    return findings


def check_prohibited(
    path: str, lines: Sequence[str], patterns: Sequence[str], source: str
) -> list[Finding]:
    findings: list[Finding] = []
    for pattern in patterns:
        in_fence = False
        for number, line in enumerate(lines, start=1):
            if line.startswith("```"):
                in_fence = not in_fence
                continue
            if in_fence or pattern not in line:
                continue
            findings.append(
                warning(
                    FindingCode.SCHEMA_PROHIBITED,
                    f"Prohibited formatting '{pattern}' found",
                    path,
                    line=number,
                    rule_source=source,
                )
            )
            break
    return findings


def check_document(spec_file: SpecFile, rule_file: RuleFile) -> list[Finding]:
    document = parse_markdown(spec_file.path, spec_file.text)
    findings = check_sections(
        spec_file.path, list(walk(document.sections)), rule_file.sections, rule_file.source
    )
    findings.extend(
        check_prohibited(
            spec_file.path, document.lines, rule_file.sections_prohibited, rule_file.source
        )
    )
    if rule_file.line_limit is not None and len(document.lines) > rule_file.line_limit:
        findings.append(
            warning(
                FindingCode.SCHEMA_LINE_LIMIT,
                f"File has {len(document.lines)} lines, exceeding the limit of "
                f"{rule_file.line_limit}",
                spec_file.path,
                rule_source=rule_file.source,
            )
        )
    return findings


def _empty_rule_findings(rule_files: Sequence[RuleFile]) -> list[Finding]:
    return [
        warning(
            FindingCode.SCHEMA_NO_RULE,
            f"Rule file for '{rule_file.target_files}' declares no sections, "
            "prohibitions or line limit",
            rule_file.source,
            rule_source=rule_file.source,
        )
        for rule_file in rule_files
        if not rule_file.sections
        and not rule_file.sections_prohibited
        and rule_file.line_limit is None
    ]


def check_schemas(
    spec_files: Sequence[SpecFile], rule_files: Sequence[RuleFile]
) -> list[Finding]:
    findings = _empty_rule_findings(rule_files)
    for spec_file in spec_files:
        for rule_file in applicable_rules(spec_file.path, rule_files):
            findings.extend(check_document(spec_file, rule_file))
    logger.debug("schemas_checked", documents=len(spec_files), findings=len(findings))
    return findings
