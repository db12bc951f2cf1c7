"""
Core data model for the verification engine.

Uses frozen dataclasses for values that are created once and shared
read-only between worker threads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum, StrEnum
from pathlib import Path
from typing import Optional

LOG = logging.getLogger("cargo_verify.types")

# None: no failure expected. "": any panic expected. "text": panic message must contain it.
Expectation = Optional[str]


class Verdict(StrEnum):
    """Canonical outcome of one verification job. Compared only by equality."""

    UNKNOWN = "UNKNOWN"
    VERIFIED = "VERIFIED"
    ERROR = "ERROR"
    ASSERT_FAILED = "ASSERT_FAILED"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    OVERFLOW = "OVERFLOW"
    PANIC = "PANIC"
    REACHABLE = "REACHABLE"
    TIMEOUT = "TIMEOUT"

    @property
    def short_label(self) -> str:
        """Label used in per-test lines and the summary line."""
        if self is Verdict.VERIFIED:
            return "OK"
        return self.value

    @property
    def char(self) -> str:
        """Single character shown per test in quiet mode."""
        return _VERDICT_CHARS[self]

    @property
    def passed(self) -> bool:
        return self is Verdict.VERIFIED


_VERDICT_CHARS = {
    Verdict.UNKNOWN: "?",
    Verdict.VERIFIED: ".",
    Verdict.ERROR: "F",
    Verdict.ASSERT_FAILED: "A",
    Verdict.OUT_OF_BOUNDS: "B",
    Verdict.OVERFLOW: "O",
    Verdict.PANIC: "P",
    Verdict.REACHABLE: "R",
    Verdict.TIMEOUT: "T",
}


class Importance(IntEnum):
    """
    Display rank of a single output line. Lower is more important.

    Only used to decide whether a line is echoed at the current verbosity;
    it has no influence on the verdict.
    """

    SCRIPT_ERROR = -1  # always shown
    UNCATEGORIZED = 0  # backend message nobody has classified yet
    BRIEF = 1  # short description of an error
    DETAILS = 2  # long details about an error
    APPLICATION = 3  # program output, stack dumps
    WARNING = 4
    NOISE = 5


@dataclass(frozen=True)
class VerificationJob:
    """One function to check: its test name, its binary-level symbol, and the artifact."""

    display_name: str
    entry_symbol: str
    artifact: Path

    def __post_init__(self) -> None:
        if not self.display_name:
            raise ValueError("VerificationJob.display_name must not be empty")
        if not self.entry_symbol:
            raise ValueError("VerificationJob.entry_symbol must not be empty")
        object.__setattr__(self, "artifact", Path(self.artifact))

    def to_dict(self) -> dict[str, str]:
        return {
            "display_name": self.display_name,
            "entry_symbol": self.entry_symbol,
            "artifact": str(self.artifact),
        }

    @classmethod
    def from_dict(cls, d: dict[str, str], artifact: str | Path | None = None) -> "VerificationJob":
        return cls(
            display_name=d["display_name"],
            entry_symbol=d["entry_symbol"],
            artifact=Path(artifact if artifact is not None else d["artifact"]),
        )
