from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from cargo_verify.types import Verdict

LOG = logging.getLogger("cargo_verify.models")


class JobOutcome(BaseModel):
    display_name: str
    entry_symbol: str
    verdict: Verdict
    expectation: Optional[str] = None
    error: Optional[str] = None
    stats: Dict[str, int] = Field(default_factory=dict)
    duration_ms: int = 0
    counterexamples: List[str] = Field(default_factory=list)


class SuiteResult(BaseModel):
    backend: str
    total: int
    passed: int
    failed: int
    verdict: Verdict
    outcomes: List[JobOutcome]

    @classmethod
    def from_outcomes(cls, backend: str, outcomes: List[JobOutcome]) -> "SuiteResult":
        passed = sum(1 for o in outcomes if o.verdict == Verdict.VERIFIED)
        # any failing verdict will do; the full breakdown stays in `outcomes`
        representative = next(
            (o.verdict for o in outcomes if o.verdict != Verdict.VERIFIED),
            Verdict.VERIFIED,
        )
        return cls(
            backend=backend,
            total=len(outcomes),
            passed=passed,
            failed=len(outcomes) - passed,
            verdict=representative,
            outcomes=list(outcomes),
        )

    @property
    def verdicts(self) -> List[Verdict]:
        return [o.verdict for o in self.outcomes]

    @property
    def exit_code(self) -> int:
        return 0 if self.verdict == Verdict.VERIFIED else 1

    def summary_line(self) -> str:
        return f"test result: {self.verdict.short_label}. {self.passed} passed; {self.failed} failed"


def append_report(path: Path, suite: SuiteResult) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = suite.model_dump(mode="json")
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload) + "\n")
    LOG.info("Appended suite report to %s", path)


def load_reports(path: Path) -> List[SuiteResult]:
    path = Path(path)
    if not path.exists():
        return []
    reports: List[SuiteResult] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                reports.append(SuiteResult.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError):
                LOG.warning("Skipping invalid line in report %s", path)
    return reports
