from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from spectrace.logging_setup import configure_logging
from tests.project_helpers import make_x_project


@pytest.fixture(autouse=True)
def _quiet_logging():
    configure_logging(verbose=False)
    yield


@pytest.fixture
def x_project(tmp_path: Path) -> Path:
    return make_x_project(tmp_path / "project")
