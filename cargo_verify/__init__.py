"""
cargo-verify: run symbolic execution / model checking backends over a
compiled crate and reduce their output to one verdict per checked function.

Provides the backend interface with KLEE, SeaHorn, SMACK, direct-test and
mock backends, the per-backend verdict classifiers, the parallel job
scheduler, and counterexample replay.
"""

from __future__ import annotations

from cargo_verify.errors import JobError, ReplayError, SetupError, VerifyError
from cargo_verify.models import JobOutcome, SuiteResult
from cargo_verify.types import Expectation, Importance, Verdict, VerificationJob

__all__ = [
    "Expectation",
    "Importance",
    "JobError",
    "JobOutcome",
    "ReplayError",
    "SetupError",
    "SuiteResult",
    "Verdict",
    "VerificationJob",
    "VerifyError",
]
