from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

import structlog

from spectrace.analysis.consistency import check_code_against_spec, check_spec_against_spec
from spectrace.analysis.findings import Finding, is_clean, promote_warnings
from spectrace.analysis.marker_scanner import MarkerScanResult, scan_markers
from spectrace.analysis.spec_parser import SpecParseResult, parse_specs
from spectrace.config import CheckConfig
from spectrace.rules.checker import check_schemas
from spectrace.rules.loader import load_rules
from spectrace.rules.model import RuleFile

logger = structlog.get_logger(__name__)


class ExitCode(IntEnum):
    OK = 0
    FINDINGS = 1
    INTERNAL_ERROR = 2


@dataclass(frozen=True)
class CheckOutcome:
    findings: tuple[Finding, ...]

    @property
    def clean(self) -> bool:
        return is_clean(self.findings)

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.OK if self.clean else ExitCode.FINDINGS


def _load_inputs(
    config: CheckConfig, root: Path
) -> tuple[MarkerScanResult, SpecParseResult, list[RuleFile]]:
    with concurrent.futures.ThreadPoolExecutor(max_workers=3) as executor:
        markers_future = (
            None if config.spec_only else executor.submit(scan_markers, config, root)
        )
        specs_future = executor.submit(parse_specs, config, root)
        rules_future = (
            executor.submit(load_rules, root / config.schema_dir)
            if config.schema_enabled
            else None
        )
        markers = markers_future.result() if markers_future is not None else MarkerScanResult()
        specs = specs_future.result()
        rules = rules_future.result() if rules_future is not None else []
    return markers, specs, rules


def run_check(config: CheckConfig, root: Path) -> CheckOutcome:
    """Run every checker over the project at ``root``.

    Rule-file errors and unexpected failures propagate; only findings are
    returned.
    """
    markers, specs, rules = _load_inputs(config, root)
    findings: list[Finding] = list(markers.findings)
    if not config.spec_only:
        findings.extend(check_code_against_spec(markers, specs, config))
    findings.extend(check_spec_against_spec(specs, markers))
    if rules:
        findings.extend(check_schemas(specs.spec_files, rules))
    if not config.allow_warnings:
        findings = promote_warnings(findings)
    logger.debug(
        "check_complete",
        markers=len(markers.markers),
        spec_files=len(specs.spec_files),
        rule_files=len(rules),
        findings=len(findings),
    )
    return CheckOutcome(tuple(findings))
