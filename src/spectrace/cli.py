from __future__ import annotations

from pathlib import Path
from typing import List, NoReturn, Optional

import structlog
import typer

from spectrace.analysis.findings import Finding, Severity
from spectrace.analysis.trace_resolver import Direction, TraceOptions
from spectrace.commands.check import ExitCode, run_check
from spectrace.commands.trace import TraceFormat, TraceRequest, run_trace
from spectrace.config import CheckConfig, CheckOverrides, OutputFormat, load_check_config
from spectrace.exceptions import SpectraceError
from spectrace.logging_setup import configure_logging
from spectrace.reporting import render_finding, render_findings_json, render_summary

logger = structlog.get_logger(__name__)

app = typer.Typer(add_completion=False)

_SEVERITY_COLORS = {
    Severity.ERROR: typer.colors.RED,
    Severity.WARNING: typer.colors.YELLOW,
}


def _fail(stage: str, exc: BaseException) -> NoReturn:
    logger.error("command_failed", stage=stage, error=str(exc))
    typer.secho(f"spectrace {stage} failed: {exc}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=ExitCode.INTERNAL_ERROR)


def _emit_text_report(findings: tuple[Finding, ...]) -> None:
    for finding in findings:
        typer.secho(render_finding(finding), fg=_SEVERITY_COLORS.get(finding.severity))
    if findings:
        typer.echo("")
    typer.echo(render_summary(findings))


@app.command("check")
def check(
    root: Path = typer.Option(Path("."), "--root", help="Project root to validate."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to spectrace.toml."),
    output_format: Optional[OutputFormat] = typer.Option(
        None, "--format", help="Report format (text or json)."
    ),
    allow_warnings: Optional[bool] = typer.Option(
        None,
        "--allow-warnings/--no-allow-warnings",
        help="Report warnings without failing the run.",
    ),
    spec_only: Optional[bool] = typer.Option(
        None, "--spec-only/--no-spec-only", help="Skip the code scan and code checks."
    ),
    spec_ignore: List[str] = typer.Option(
        [], "--spec-ignore", help="Extra glob to exclude from spec discovery."
    ),
    code_ignore: List[str] = typer.Option(
        [], "--code-ignore", help="Extra glob to exclude from the code scan."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
) -> None:
    """Validate markers, spec cross-references and document structure."""
    configure_logging(verbose)
    overrides = CheckOverrides(
        format=output_format,
        allow_warnings=allow_warnings,
        spec_only=spec_only,
        spec_ignore=tuple(spec_ignore),
        code_ignore=tuple(code_ignore),
    )
    try:
        check_config = load_check_config(root=root, config_path=config, overrides=overrides)
        outcome = run_check(check_config, root)
    except SpectraceError as exc:
        _fail("check", exc)
    except Exception as exc:  # pragma: no cover - unexpected failure surface
        logger.exception("unexpected_failure", command="check")
        _fail("check", exc)
    if check_config.format is OutputFormat.JSON:
        typer.echo(render_findings_json(outcome.findings))
    else:
        _emit_text_report(outcome.findings)
    raise typer.Exit(code=outcome.exit_code)


def _trace_format(json_output: bool, list_output: bool) -> TraceFormat:
    if json_output:
        return TraceFormat.JSON
    if list_output:
        return TraceFormat.LIST
    return TraceFormat.TREE


def _context_lines(
    before: Optional[int], after: Optional[int], context: Optional[int]
) -> tuple[int, int]:
    defaults = TraceRequest()
    before_lines = before if before is not None else context
    after_lines = after if after is not None else context
    return (
        defaults.before_context if before_lines is None else before_lines,
        defaults.after_context if after_lines is None else after_lines,
    )


@app.command("trace")
def trace(
    ids: List[str] = typer.Argument(None, help="Requirement, AC, property or component ids."),
    all_ids: bool = typer.Option(False, "--all", help="Trace every known id."),
    task: Optional[Path] = typer.Option(None, "--task", help="Trace the ids named in a task file."),
    file: Optional[Path] = typer.Option(None, "--file", help="Trace the markers in a source file."),
    direction: Direction = typer.Option(Direction.BOTH, "--direction", help="Walk direction."),
    depth: Optional[int] = typer.Option(None, "--depth", min=0, help="Maximum hops from each id."),
    scope: Optional[str] = typer.Option(None, "--scope", help="Keep only ids with this prefix."),
    no_code: bool = typer.Option(False, "--no-code", help="Omit implementation markers."),
    no_tests: bool = typer.Option(False, "--no-tests", help="Omit test markers."),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON."),
    list_output: bool = typer.Option(False, "--list", help="Emit unique path:line entries."),
    content: bool = typer.Option(False, "--content", help="Assemble the traced content."),
    max_tokens: Optional[int] = typer.Option(
        None, "--max-tokens", min=1, help="Token budget for assembled content."
    ),
    after: Optional[int] = typer.Option(
        None, "-A", "--after-context", min=0, help="Lines after each code marker."
    ),
    before: Optional[int] = typer.Option(
        None, "-B", "--before-context", min=0, help="Lines before each code marker."
    ),
    context: Optional[int] = typer.Option(
        None, "-C", "--context", min=0, help="Lines before and after each code marker."
    ),
    root: Path = typer.Option(Path("."), "--root", help="Project root to index."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to spectrace.toml."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
) -> None:
    """Show everything connected to the given ids."""
    configure_logging(verbose)
    before_lines, after_lines = _context_lines(before, after, context)
    request = TraceRequest(
        ids=tuple(ids or ()),
        all_ids=all_ids,
        task=task,
        file=file,
        options=TraceOptions(
            direction=direction,
            depth=depth,
            scope=scope,
            no_code=no_code,
            no_tests=no_tests,
        ),
        output=_trace_format(json_output, list_output),
        content=content,
        max_tokens=max_tokens,
        before_context=before_lines,
        after_context=after_lines,
    )
    try:
        trace_config: CheckConfig = load_check_config(root=root, config_path=config)
        outcome = run_trace(request, trace_config, root)
    except SpectraceError as exc:
        _fail("trace", exc)
    except Exception as exc:  # pragma: no cover - unexpected failure surface
        logger.exception("unexpected_failure", command="trace")
        _fail("trace", exc)
    for message in outcome.messages:
        typer.secho(message, err=True, fg=typer.colors.YELLOW)
    if outcome.text:
        typer.echo(outcome.text)
    raise typer.Exit(code=ExitCode.OK if outcome.resolved else ExitCode.FINDINGS)


@app.command("lsp")
def lsp(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
) -> None:
    """Run the spectrace language server on stdio."""
    configure_logging(verbose)
    from spectrace.server import start

    start()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
