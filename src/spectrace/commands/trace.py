from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import structlog

from spectrace.analysis.content_assembler import (
    DEFAULT_AFTER_CONTEXT,
    DEFAULT_BEFORE_CONTEXT,
    apply_token_budget,
    assemble_content,
)
from spectrace.analysis.input_resolver import (
    InputResolution,
    resolve_ids,
    resolve_source_file,
    resolve_task_file,
)
from spectrace.analysis.marker_scanner import scan_markers
from spectrace.analysis.spec_parser import parse_specs
from spectrace.analysis.trace_index import TraceIndex, build_trace_index
from spectrace.analysis.trace_resolver import TraceOptions, TraceResult, resolve_trace
from spectrace.config import CheckConfig
from spectrace.reporting import (
    render_content_json,
    render_content_markdown,
    render_trace_json,
    render_trace_list,
    render_trace_tree,
)

logger = structlog.get_logger(__name__)


class TraceFormat(StrEnum):
    TREE = "tree"
    LIST = "list"
    JSON = "json"


@dataclass(frozen=True)
class TraceRequest:
    ids: tuple[str, ...] = ()
    all_ids: bool = False
    task: Path | None = None
    file: Path | None = None
    options: TraceOptions = field(default_factory=TraceOptions)
    output: TraceFormat = TraceFormat.TREE
    content: bool = False
    max_tokens: int | None = None
    before_context: int = DEFAULT_BEFORE_CONTEXT
    after_context: int = DEFAULT_AFTER_CONTEXT


@dataclass(frozen=True)
class TraceOutcome:
    text: str
    resolved: bool
    messages: tuple[str, ...] = ()


def load_trace_index(config: CheckConfig, root: Path) -> TraceIndex:
    return build_trace_index(parse_specs(config, root), scan_markers(config, root))


def resolve_inputs(
    request: TraceRequest, index: TraceIndex, config: CheckConfig
) -> InputResolution | None:
    if request.all_ids:
        return InputResolution(tuple(sorted(index.all_ids)), ())
    if request.task is not None:
        return resolve_task_file(request.task, index)
    if request.file is not None:
        return resolve_source_file(request.file, index, config.markers)
    if request.ids:
        return resolve_ids(request.ids, index)
    return None


def _no_ids_message(request: TraceRequest) -> str:
    if request.file is not None:
        return "No traceability markers found in file"
    if request.task is not None:
        return "No traceability IDs found in task file"
    return "No valid IDs found"


def render_result(
    request: TraceRequest, result: TraceResult, ids: tuple[str, ...], config: CheckConfig
) -> str:
    if request.content or request.max_tokens is not None:
        sections = assemble_content(
            result,
            str(request.task) if request.task is not None else None,
            before_context=request.before_context,
            after_context=request.after_context,
        )
        footer = None
        if request.max_tokens is not None:
            budget = apply_token_budget(sections, request.max_tokens)
            sections, footer = list(budget.sections), budget.footer
        label = ", ".join(ids)
        if request.output is TraceFormat.JSON:
            return render_content_json(sections, label, footer)
        return render_content_markdown(sections, label, footer)
    match request.output:
        case TraceFormat.LIST:
            return render_trace_list(result)
        case TraceFormat.JSON:
            return render_trace_json(result)
        case TraceFormat.TREE:
            return render_trace_tree(result, config.markers)
    raise ValueError(f"unknown trace format: {request.output!r}")


def run_trace(request: TraceRequest, config: CheckConfig, root: Path) -> TraceOutcome:
    index = load_trace_index(config, root)
    resolution = resolve_inputs(request, index, config)
    if resolution is None:
        return TraceOutcome("", False, ("No IDs, --all, --task, or --file specified",))
    messages = list(resolution.warnings)
    if not resolution.ids:
        return TraceOutcome("", False, tuple(messages) or (_no_ids_message(request),))
    result = resolve_trace(index, resolution.ids, request.options)
    messages.extend(f"ID not found: {identifier}" for identifier in result.not_found)
    if not result.chains:
        return TraceOutcome("", False, tuple(messages))
    logger.debug("trace_resolved", ids=len(resolution.ids), chains=len(result.chains))
    return TraceOutcome(render_result(request, result, resolution.ids, config), True, tuple(messages))
