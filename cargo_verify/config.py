"""Configuration for cargo-verify.

Loads settings from environment variables with sensible defaults; the CLI
overrides individual fields afterwards.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import List, Optional


class Verbosity(IntEnum):
    """Combined result of --quiet and the number of -v flags."""

    QUIET = 0  # one character per test
    NORMAL = 1  # announce major steps
    INFORMATIVE = 2  # -v: timings
    MAJOR = 3  # -vv: commands and output of major steps
    MINOR = 4  # -vvv: commands and output of minor steps
    TRIVIAL = 5  # -vvvv: everything

    @classmethod
    def from_flags(cls, quiet: bool, verbose: int) -> "Verbosity":
        if quiet:
            return cls.QUIET
        return cls(min(cls.NORMAL + max(verbose, 0), cls.TRIVIAL))


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


@dataclass
class VerifyConfig:
    """Run configuration shared read-only by every backend and worker."""

    manifest_path: Path = Path("Cargo.toml")
    package: str = ""
    backend: Optional[str] = None  # None = auto-detect
    backend_flags: List[str] = field(default_factory=list)
    replace_backend_flags: bool = False
    seahorn_verify_c_common_dir: Optional[str] = None
    features: List[str] = field(default_factory=list)
    tests: bool = False
    test_filters: List[str] = field(default_factory=list)
    args: List[str] = field(default_factory=list)
    jobs: int = field(default_factory=lambda: os.cpu_count() or 1)
    replay: int = 0
    verbose: int = 0
    quiet: bool = False
    script: Optional[Path] = None
    report: Optional[Path] = None
    job_timeout: Optional[float] = None  # None = no orchestrator deadline
    log_level: str = "WARNING"

    @property
    def verbosity(self) -> Verbosity:
        return Verbosity.from_flags(self.quiet, self.verbose)

    @property
    def project_dir(self) -> Path:
        return self.manifest_path.parent

    @property
    def verifying_tests(self) -> bool:
        return self.tests or bool(self.test_filters)

    def split_features(self) -> List[str]:
        """Features may be space or comma separated, like `cargo test`."""
        out: List[str] = []
        for item in self.features:
            out.extend(f for f in item.replace(",", " ").split(" ") if f)
        return out

    @classmethod
    def from_env(cls) -> "VerifyConfig":
        cfg = cls(
            backend=os.getenv("CARGO_VERIFY_BACKEND") or None,
            seahorn_verify_c_common_dir=os.getenv("SEAHORN_VERIFY_C_COMMON_DIR") or None,
            log_level=os.getenv("CARGO_VERIFY_LOG_LEVEL", "WARNING").upper(),
            job_timeout=_env_float("CARGO_VERIFY_JOB_TIMEOUT"),
        )
        jobs = _env_int("CARGO_VERIFY_JOBS")
        if jobs is not None:
            cfg.jobs = jobs
        return cfg
