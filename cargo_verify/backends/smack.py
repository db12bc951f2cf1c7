"""SMACK backend (Boogie verifier)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from cargo_verify.backend import VerificationBackend
from cargo_verify.classifier import (
    ImportanceRule,
    Rule,
    expected_panic,
    is_marker,
    resolve_completion,
    starts_with,
)
from cargo_verify.types import Importance, Verdict, VerificationJob

LOG = logging.getLogger("cargo_verify.backends.smack")

VERDICT_RULES: Sequence[Rule] = (
    Rule("expect-marker", is_marker, None),
    Rule("expected-panic", expected_panic, Verdict.VERIFIED),
    Rule("no-errors", starts_with("SMACK found no errors"), resolve_completion),
    Rule("found-error", starts_with("SMACK found an error"), Verdict.ERROR),
    Rule("timed-out", starts_with("SMACK timed out"), Verdict.TIMEOUT),
)

IMPORTANCE_RULES: Sequence[ImportanceRule] = (
    ImportanceRule("expect-marker", is_marker, Importance.WARNING),
    ImportanceRule("expected-panic", expected_panic, Importance.NOISE),
    ImportanceRule("result", starts_with("SMACK found"), Importance.BRIEF),
    # any other SMACK message has not been categorized yet: always show it
    ImportanceRule("smack-other", starts_with("SMACK"), Importance.UNCATEGORIZED),
)


class SmackBackend(VerificationBackend):
    name = "SMACK"
    executable = "smack"
    output_root = "smackout"
    features = ("verifier-smack",)
    expectation_streams = ("stderr", "stdout")
    classify_streams = ("stderr", "stdout")
    echo_streams = ("stderr", "stdout")

    def default_flags(self, job: VerificationJob, out_dir: Path, user_flags: List[str]) -> List[str]:
        return [
            "--verifier=boogie",
            *user_flags,
            f"--entry-points={job.entry_symbol}",
            str(job.artifact),
        ]

    def verdict_rules(self) -> Sequence[Rule]:
        return VERDICT_RULES

    def importance_rules(self) -> Sequence[ImportanceRule]:
        return IMPORTANCE_RULES
