from __future__ import annotations

import json
from pathlib import Path

from spectrace.analysis.trace_resolver import TraceOptions
from spectrace.commands.trace import TraceFormat, TraceRequest, run_trace
from spectrace.config import CheckConfig
from tests.project_helpers import write


def test_tree_trace_of_requirement(x_project: Path) -> None:
    outcome = run_trace(TraceRequest(ids=("X-1",)), CheckConfig(), x_project)
    assert outcome.resolved
    assert outcome.messages == ()
    lines = outcome.text.splitlines()
    assert lines[0] == "X-1"
    assert "  ▲ Requirement" in lines
    assert any("X-Loader" in line for line in lines)
    assert any(line.endswith("(@spec-test: X-1_AC-1)") for line in lines)


def test_unknown_id_is_unresolved(x_project: Path) -> None:
    outcome = run_trace(TraceRequest(ids=("NOPE-1",)), CheckConfig(), x_project)
    assert not outcome.resolved
    assert outcome.text == ""
    assert outcome.messages == ("ID 'NOPE-1' not found in any spec or code",)


def test_missing_input_is_reported(x_project: Path) -> None:
    outcome = run_trace(TraceRequest(), CheckConfig(), x_project)
    assert not outcome.resolved
    assert outcome.messages == ("No IDs, --all, --task, or --file specified",)


def test_list_output_has_unique_locations(x_project: Path) -> None:
    request = TraceRequest(ids=("X-1", "X-1_AC-1"), output=TraceFormat.LIST)
    outcome = run_trace(request, CheckConfig(), x_project)
    entries = outcome.text.splitlines()
    assert len(entries) == len(set(entries))
    assert str(x_project / "src/loader.py") + ":2" in entries


def test_json_output(x_project: Path) -> None:
    request = TraceRequest(
        ids=("X-1_AC-1",), output=TraceFormat.JSON, options=TraceOptions(no_tests=True)
    )
    payload = json.loads(run_trace(request, CheckConfig(), x_project).text)
    chain = payload["chains"][0]
    assert chain["queryId"] == "X-1_AC-1"
    assert chain["requirement"]["id"] == "X-1"
    assert chain["tests"] == []
    assert payload["notFound"] == []


def test_all_ids_traces_every_definition(x_project: Path) -> None:
    request = TraceRequest(all_ids=True, output=TraceFormat.JSON)
    payload = json.loads(run_trace(request, CheckConfig(), x_project).text)
    assert [chain["queryId"] for chain in payload["chains"]] == ["X-1", "X-1_AC-1", "X-Loader"]


def test_source_file_input(x_project: Path) -> None:
    request = TraceRequest(file=x_project / "src/loader.py", output=TraceFormat.JSON)
    payload = json.loads(run_trace(request, CheckConfig(), x_project).text)
    assert [chain["queryId"] for chain in payload["chains"]] == ["X-1_AC-1"]


def test_task_file_without_ids(x_project: Path) -> None:
    task = write(x_project / "tasks/TASK-2.md", "# Task\n\nNothing linked yet.\n")
    outcome = run_trace(TraceRequest(task=task), CheckConfig(), x_project)
    assert not outcome.resolved
    assert outcome.messages == (f"No traceability IDs found in task file: {task}",)


def test_content_markdown(x_project: Path) -> None:
    outcome = run_trace(TraceRequest(ids=("X-1",), content=True), CheckConfig(), x_project)
    lines = outcome.text.splitlines()
    assert lines[0] == "# Context: X-1"
    assert "## Requirement" in lines
    assert "## Implementation" in lines
    assert "    # @spec-impl: X-1_AC-1" in lines


def test_max_tokens_implies_content_and_truncates(x_project: Path) -> None:
    request = TraceRequest(ids=("X-1",), output=TraceFormat.JSON, max_tokens=10)
    payload = json.loads(run_trace(request, CheckConfig(), x_project).text)
    assert payload["truncated"] is True
    assert payload["truncationMessage"].endswith("(use --max-tokens to increase)")
    assert [section["type"] for section in payload["sections"]] == ["requirement"]


def test_content_for_component_fences_its_code(x_project: Path) -> None:
    write(x_project / "src/loader.py", "# @spec-component: X-Loader\nclass Loader:\n    pass\n")
    outcome = run_trace(TraceRequest(ids=("X-Loader",), content=True), CheckConfig(), x_project)
    lines = outcome.text.splitlines()
    assert "## Implementation" in lines
    assert "```python" in lines
