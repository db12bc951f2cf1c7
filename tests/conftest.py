"""
Shared test fixtures and pytest configuration.

Markers:
    @pytest.mark.klee     - Requires the klee executable on PATH
    @pytest.mark.seahorn  - Requires the sea executable on PATH
    @pytest.mark.smack    - Requires the smack executable on PATH

Run only the fast, tool-free tests:
    pytest -m "not klee and not seahorn and not smack"
"""

import shutil
from pathlib import Path

import pytest

from cargo_verify.config import VerifyConfig
from cargo_verify.types import VerificationJob

_TOOL_MARKERS = {"klee": "klee", "seahorn": "sea", "smack": "smack"}


def pytest_configure(config):
    """Register custom markers."""
    for marker, executable in _TOOL_MARKERS.items():
        config.addinivalue_line("markers", f"{marker}: requires the {executable} executable on PATH")


def pytest_collection_modifyitems(config, items):
    """Auto-skip tests whose backend is not installed."""
    available = {marker: shutil.which(exe) is not None for marker, exe in _TOOL_MARKERS.items()}
    for item in items:
        for marker, ok in available.items():
            if marker in item.keywords and not ok:
                item.add_marker(pytest.mark.skip(reason=f"{_TOOL_MARKERS[marker]} not installed"))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A fake crate directory with a manifest and a bitcode artifact."""
    (tmp_path / "Cargo.toml").write_text('[package]\nname = "demo"\n', encoding="utf-8")
    artifact = tmp_path / "target" / "demo.link.bc"
    artifact.parent.mkdir(parents=True)
    artifact.write_bytes(b"BC\xc0\xde")
    return tmp_path


@pytest.fixture
def config(project: Path) -> VerifyConfig:
    return VerifyConfig(manifest_path=project / "Cargo.toml", package="demo", jobs=1)


@pytest.fixture
def make_job(project: Path):
    def _make(name: str, entry: str | None = None) -> VerificationJob:
        return VerificationJob(
            display_name=name,
            entry_symbol=entry or f"_ZN4demo{name}",
            artifact=project / "target" / "demo.link.bc",
        )

    return _make
