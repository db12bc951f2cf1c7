"""
SeaHorn bounded model checking backend.

SeaHorn's verdict is a bare `sat` (a violation is reachable) or `unsat`
(no violation) line. The expectation marker and panic messages show up on
stderr; the verdict line may be on either stream, so stderr is checked
before stdout.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from cargo_verify.backend import VerificationBackend
from cargo_verify.classifier import (
    ImportanceRule,
    Rule,
    all_of,
    any_of,
    ends_with,
    equals,
    expected_panic,
    is_marker,
    resolve_completion,
    starts_with,
)
from cargo_verify.config import VerifyConfig
from cargo_verify.errors import JobError, SetupError
from cargo_verify.types import Importance, Verdict, VerificationJob

LOG = logging.getLogger("cargo_verify.backends.seahorn")

VERDICT_RULES: Sequence[Rule] = (
    Rule("expect-marker", is_marker, None),
    Rule("expected-panic", expected_panic, Verdict.VERIFIED),
    Rule("sat", equals("sat"), Verdict.ERROR),
    Rule("unsat", equals("unsat"), resolve_completion),
)

IMPORTANCE_RULES: Sequence[ImportanceRule] = (
    ImportanceRule("expect-marker", is_marker, Importance.WARNING),
    ImportanceRule("sat", equals("sat"), Importance.BRIEF),
    ImportanceRule(
        "known-warning",
        any_of(
            starts_with("Warning: Externalizing function:"),
            starts_with("Warning: not lowering an initializer for a global struct:"),
            all_of(starts_with("Warning: found"), ends_with("possible reads of undefined values")),
        ),
        Importance.WARNING,
    ),
    ImportanceRule("expected-panic", expected_panic, Importance.NOISE),
    ImportanceRule("unsat", equals("unsat"), Importance.NOISE),
    # any other SeaHorn warning has not been categorized yet: always show it
    ImportanceRule("warning-other", starts_with("Warning:"), Importance.UNCATEGORIZED),
)


class SeahornBackend(VerificationBackend):
    name = "SeaHorn"
    executable = "sea"
    output_root = "seaout"
    features = ("verifier-seahorn",)
    expectation_streams = ("stderr",)
    classify_streams = ("stderr", "stdout")
    echo_streams = ("stderr",)

    def validate(self, config: VerifyConfig) -> None:
        if config.args:
            raise SetupError("The Seahorn backend does not support passing arguments yet.")
        if config.replay:
            raise SetupError("The Seahorn backend does not support '--replay' yet.")

    def common_dir(self) -> str:
        common = self.config.seahorn_verify_c_common_dir
        if not common:
            raise JobError("The '--seahorn-verify-c-common-dir' option is missing")
        return common

    def build_invocation(self, job: VerificationJob, out_dir: Path) -> List[str]:
        # required even when the user replaces the default flags
        self.common_dir()
        return super().build_invocation(job, out_dir)

    def default_flags(self, job: VerificationJob, out_dir: Path, user_flags: List[str]) -> List[str]:
        return [
            "yama",
            "-y",
            f"{self.common_dir()}/seahorn/sea_base.yaml",
            "bpf",
            f"--temp-dir={out_dir}",
            f"--entry={job.entry_symbol}",
            *user_flags,
            str(job.artifact),
        ]

    def verdict_rules(self) -> Sequence[Rule]:
        return VERDICT_RULES

    def importance_rules(self) -> Sequence[ImportanceRule]:
        return IMPORTANCE_RULES
