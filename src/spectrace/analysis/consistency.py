"""Code-vs-spec and spec-vs-spec consistency checks."""

from __future__ import annotations

from spectrace.analysis.findings import Finding, FindingCode, error, warning
from spectrace.analysis.identifiers import matches_id_format, referenced_code
from spectrace.analysis.marker_scanner import (
    ComponentMarker,
    ImplMarker,
    MarkerScanResult,
    TestMarker,
)
from spectrace.analysis.spec_parser import SpecParseResult
from spectrace.config import CheckConfig


def check_code_against_spec(
    markers: MarkerScanResult, specs: SpecParseResult, config: CheckConfig
) -> list[Finding]:
    findings: list[Finding] = []
    known_ids = specs.all_ids
    tested: set[str] = set()
    for marker in markers.markers:
        match marker:
            case ComponentMarker():
                if marker.id not in specs.component_names:
                    findings.append(
                        error(
                            FindingCode.ORPHANED_MARKER,
                            f"Component marker '{marker.id}' not found in any spec file",
                            marker.path,
                            line=marker.line,
                            id=marker.id,
                        )
                    )
                continue
            case TestMarker():
                tested.add(marker.id)
            case ImplMarker():
                pass
        if not matches_id_format(marker.id, config.id_regex):
            findings.append(
                error(
                    FindingCode.INVALID_ID_FORMAT,
                    f"Marker '{marker.id}' does not match the configured id format",
                    marker.path,
                    line=marker.line,
                    id=marker.id,
                )
            )
        if marker.id not in known_ids:
            findings.append(
                error(
                    FindingCode.ORPHANED_MARKER,
                    f"Marker '{marker.id}' not found in any spec file",
                    marker.path,
                    line=marker.line,
                    id=marker.id,
                )
            )
    for definition in specs.definitions.values():
        if definition.id not in specs.ac_ids or definition.id in tested:
            continue
        findings.append(
            warning(
                FindingCode.UNCOVERED_AC,
                f"Acceptance criterion '{definition.id}' has no test marker",
                definition.location.path,
                line=definition.location.line,
                id=definition.id,
            )
        )
    return findings


def check_spec_against_spec(
    specs: SpecParseResult, markers: MarkerScanResult
) -> list[Finding]:
    findings: list[Finding] = []
    known_ids = specs.all_ids
    for spec_file in specs.spec_files:
        for ref in spec_file.cross_refs:
            for target in ref.target_ids:
                if target in known_ids:
                    continue
                findings.append(
                    error(
                        FindingCode.BROKEN_CROSS_REF,
                        f"Cross-reference '{target}' ({ref.kind}) not found in any spec file",
                        spec_file.path,
                        line=ref.line,
                        id=target,
                    )
                )

    marker_codes = {referenced_code(marker.id) for marker in markers.markers}
    for spec_file in specs.spec_files:
        if not spec_file.code:
            continue
        referenced = marker_codes | {
            referenced_code(target)
            for other in specs.spec_files
            if other is not spec_file
            for ref in other.cross_refs
            for target in ref.target_ids
        }
        if spec_file.code in referenced:
            continue
        findings.append(
            warning(
                FindingCode.ORPHANED_SPEC,
                f"Spec file feature code '{spec_file.code}' is not referenced by any "
                "marker or cross-reference",
                spec_file.path,
            )
        )
    return findings
