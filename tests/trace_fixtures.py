from __future__ import annotations

import textwrap

from spectrace.analysis.marker_scanner import merge_scan_results, scan_content
from spectrace.analysis.spec_parser import merge_spec_files, parse_spec_content
from spectrace.analysis.trace_index import TraceIndex, build_trace_index
from spectrace.config import DEFAULT_CROSS_REF_PATTERNS, DEFAULT_MARKERS

REQUIREMENTS = """
### CFG-1: Load configuration

- [ ] CFG-1_AC-1 Reads the file
- [ ] CFG-1_AC-2 Validates the file

### OTH-1: Other feature

- [ ] OTH-1_AC-1 Does something else
"""

DESIGN = """
### CFG-Loader

IMPLEMENTS: CFG-1_AC-1

## Properties

- CFG_P-1 Loading is idempotent
  VALIDATES: CFG-1_AC-1
"""

LOADER = """
# @spec-component: CFG-Loader
class Loader:
    # @spec-impl: CFG-1_AC-1
    def load(self):
        return None
    # @spec-impl: CFG-1_AC-2
"""

LOADER_TESTS = """
# @spec-test: CFG-1_AC-1, CFG-1_AC-1
def test_load():
    pass
# @spec-test: CFG_P-1
def test_idempotent():
    pass
"""


def _text(value: str) -> str:
    return textwrap.dedent(value).lstrip("\n")


def build_sample_index() -> TraceIndex:
    specs = merge_spec_files(
        [
            parse_spec_content("REQ-CFG-config.md", _text(REQUIREMENTS), DEFAULT_CROSS_REF_PATTERNS),
            parse_spec_content("DESIGN-CFG-config.md", _text(DESIGN), DEFAULT_CROSS_REF_PATTERNS),
        ]
    )
    markers = merge_scan_results(
        [
            scan_content("src/loader.py", _text(LOADER), DEFAULT_MARKERS),
            scan_content("tests/test_loader.py", _text(LOADER_TESTS), DEFAULT_MARKERS),
        ]
    )
    return build_trace_index(specs, markers)
