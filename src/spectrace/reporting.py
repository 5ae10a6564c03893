"""Text and JSON renderings of findings, trace chains and assembled content."""

from __future__ import annotations

from typing import Sequence

from spectrace.analysis.content_assembler import ContentSection, SectionKind, estimate_tokens
from spectrace.analysis.findings import Finding, count_by_severity
from spectrace.analysis.trace_resolver import NodeKind, TraceChain, TraceNode, TraceResult
from spectrace.config import DEFAULT_MARKERS
from spectrace.schema import (
    CheckReportDTO,
    ContentReportDTO,
    ContentSectionDTO,
    FindingDTO,
    TraceChainDTO,
    TraceNodeDTO,
    TraceReportDTO,
)

_LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".cs": "csharp",
    ".md": "markdown",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
}

_SECTION_TITLES = {
    SectionKind.TASK: "Task",
    SectionKind.REQUIREMENT: "Requirement",
    SectionKind.DESIGN: "Design",
    SectionKind.IMPLEMENTATION: "Implementation",
    SectionKind.TEST: "Test",
}


def finding_to_dto(finding: Finding) -> FindingDTO:
    return FindingDTO(
        severity=finding.severity.value,
        code=finding.code.value,
        message=finding.message,
        file_path=finding.path or None,
        line=finding.line,
        id=finding.id,
        rule_source=finding.rule_source,
        rule=finding.rule,
    )


def render_finding(finding: Finding) -> str:
    location = finding.path
    if finding.line is not None:
        location = f"{location}:{finding.line}"
    return f"{location}  {finding.severity.value}  {finding.message} [{finding.code.value}]"


def render_summary(findings: Sequence[Finding]) -> str:
    if not findings:
        return "Validation passed: no issues found."
    errors, warnings = count_by_severity(findings)
    return f"{errors} error(s), {warnings} warning(s)"


def render_findings_json(findings: Sequence[Finding]) -> str:
    errors, warnings = count_by_severity(findings)
    report = CheckReportDTO(
        valid=errors == 0,
        errors=errors,
        warnings=warnings,
        findings=[finding_to_dto(finding) for finding in findings],
    )
    return report.to_json()


def _node_dto(node: TraceNode) -> TraceNodeDTO:
    return TraceNodeDTO(id=node.id, file_path=node.location.path, line=node.location.line)


def chain_to_dto(chain: TraceChain) -> TraceChainDTO:
    return TraceChainDTO(
        query_id=chain.query_id,
        requirement=_node_dto(chain.requirement) if chain.requirement is not None else None,
        acs=[_node_dto(node) for node in chain.acs],
        design_components=[_node_dto(node) for node in chain.design_components],
        implementations=[_node_dto(node) for node in chain.implementations],
        tests=[_node_dto(node) for node in chain.tests],
        properties=[_node_dto(node) for node in chain.properties],
    )


def render_trace_json(result: TraceResult) -> str:
    return TraceReportDTO(
        chains=[chain_to_dto(chain) for chain in result.chains],
        not_found=list(result.not_found),
    ).to_json()


def _spec_lines(title: str, nodes: Sequence[TraceNode]) -> list[str]:
    if not nodes:
        return []
    return ["", f"  ▼ {title}", *(f"  │  {node.id} ({node.location.render()})" for node in nodes)]


def _code_lines(
    title: str, nodes: Sequence[TraceNode], markers: Sequence[str]
) -> list[str]:
    if not nodes:
        return []
    impl_token, test_token, component_token = (list(markers) + list(DEFAULT_MARKERS))[:3]
    token_by_kind = {
        NodeKind.IMPLEMENTATION: impl_token,
        NodeKind.TEST: test_token,
        NodeKind.COMPONENT: component_token,
    }
    lines = ["", f"  ▼ {title}"]
    for node in nodes:
        token = token_by_kind.get(node.kind, impl_token)
        lines.append(f"  │  {node.location.render()}  ({token}: {node.id})")
    return lines


def render_chain_tree(chain: TraceChain, markers: Sequence[str] = DEFAULT_MARKERS) -> list[str]:
    lines = [chain.query_id]
    if chain.requirement is not None:
        requirement = chain.requirement
        lines.extend(
            ["", "  ▲ Requirement", f"  │  {requirement.id} ({requirement.location.render()})"]
        )
    lines.extend(_spec_lines("Acceptance Criteria", chain.acs))
    lines.extend(_spec_lines("Design", chain.design_components))
    lines.extend(_spec_lines("Properties", chain.properties))
    lines.extend(_code_lines("Implementation", chain.implementations, markers))
    lines.extend(_code_lines("Tests", chain.tests, markers))
    return lines


def render_trace_tree(result: TraceResult, markers: Sequence[str] = DEFAULT_MARKERS) -> str:
    lines: list[str] = []
    for chain in result.chains:
        lines.extend(render_chain_tree(chain, markers))
        lines.append("")
    lines.extend(f"✗ {identifier}: not found" for identifier in result.not_found)
    return "\n".join(lines).rstrip()


def render_trace_list(result: TraceResult) -> str:
    locations: dict[str, None] = {}
    for chain in result.chains:
        for node in chain.nodes():
            locations[node.location.render()] = None
    return "\n".join(locations)


def language_for(path: str) -> str:
    for suffix, language in _LANGUAGE_BY_SUFFIX.items():
        if path.endswith(suffix):
            return language
    return ""


def render_content_markdown(
    sections: Sequence[ContentSection], query_label: str, footer: str | None
) -> str:
    lines = [f"# Context: {query_label}", ""]
    last_kind: SectionKind | None = None
    for section in sections:
        if section.kind is not last_kind:
            lines.extend([f"## {_SECTION_TITLES[section.kind]}", ""])
            last_kind = section.kind
        lines.extend(
            [f"> From: {section.path} (lines {section.start_line}-{section.end_line})", ""]
        )
        if section.kind in (SectionKind.IMPLEMENTATION, SectionKind.TEST):
            lines.extend([f"```{language_for(section.path)}", section.content, "```"])
        else:
            lines.append(section.content)
        lines.append("")
    if footer:
        lines.extend(["---", footer, ""])
    return "\n".join(lines)


def render_content_json(
    sections: Sequence[ContentSection], query_label: str, footer: str | None
) -> str:
    report = ContentReportDTO(
        query=query_label,
        sections=[
            ContentSectionDTO(
                type=section.kind.value,
                file_path=section.path,
                start_line=section.start_line,
                end_line=section.end_line,
                content=section.content,
                priority=section.priority,
            )
            for section in sections
        ],
        estimated_tokens=estimate_tokens("".join(section.content for section in sections)),
        files_included=len({section.path for section in sections}),
        truncated=True if footer else None,
        truncation_message=footer,
    )
    return report.to_json()
