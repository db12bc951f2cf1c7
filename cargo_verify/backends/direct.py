"""
Direct-test backend: no symbolic execution, just the project's own harness.

Always available, so it is the fallback when no verifier is installed. It
runs `cargo test` once for the whole suite; property-based tests then run
with random inputs instead of symbolic ones.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Sequence

from cargo_verify.backend import VerificationBackend
from cargo_verify.classifier import LineContext, Rule, classify_line, contains
from cargo_verify.config import VerifyConfig
from cargo_verify.errors import JobError, SetupError
from cargo_verify.models import JobOutcome
from cargo_verify.types import Verdict, VerificationJob

LOG = logging.getLogger("cargo_verify.backends.direct")

# only consulted when the harness exits unsuccessfully
FAILURE_RULES: Sequence[Rule] = (Rule("with-overflow", contains("with overflow"), Verdict.OVERFLOW),)


class DirectTestBackend(VerificationBackend):
    name = "Proptest"
    executable = "cargo"

    def is_installed(self) -> bool:
        return True

    def validate(self, config: VerifyConfig) -> None:
        if config.replay > 0 and config.args:
            raise SetupError("The Proptest backend does not support '--replay' and passing arguments together.")

    def suite_job(self, artifact: Path | str = "") -> VerificationJob:
        """The single job standing for the whole harness run."""
        name = self.config.package or self.config.project_dir.name or "main"
        return VerificationJob(display_name=name, entry_symbol="main", artifact=Path(artifact))

    def default_flags(self, job: VerificationJob, out_dir: Path, user_flags: List[str]) -> List[str]:
        cfg = self.config
        flags = ["test", "--manifest-path", str(cfg.manifest_path)]
        flags.extend(["-v"] * cfg.verbose)
        features = cfg.split_features()
        if features:
            flags.extend(["--features", ",".join(features)])
        if cfg.tests:
            flags.append("--tests")
        for t in cfg.test_filters:
            flags.extend(["--test", t])
        flags.extend(user_flags)
        flags.extend(["--", "--nocapture"])
        if cfg.replay > 0:
            # replayed output must not be captured by the harness either
            flags.extend(["--", "--nocapture"])
        elif cfg.args:
            flags.extend(["--", *cfg.args])
        return flags

    def verdict_rules(self) -> Sequence[Rule]:
        return FAILURE_RULES

    def verify(self, job: VerificationJob) -> JobOutcome:
        t0 = time.monotonic()
        cmd = self.build_invocation(job, self.config.project_dir)
        error = None
        try:
            result = self.execute(cmd)
        except JobError as exc:
            LOG.warning("Proptest failed '%s'", exc)
            verdict = Verdict.ERROR
            error = str(exc)
        else:
            verdict = self._verdict(result.success, result.timed_out, result.lines("stderr"), job.display_name)

        return JobOutcome(
            display_name=job.display_name,
            entry_symbol=job.entry_symbol,
            verdict=verdict,
            error=error,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

    def _verdict(self, success: bool, timed_out: bool, stderr: List[str], name: str) -> Verdict:
        if timed_out:
            return Verdict.TIMEOUT
        if success:
            return Verdict.VERIFIED
        ctx = LineContext(expect=None, name=name)
        for line in stderr:
            _, verdict = classify_line(line, self.verdict_rules(), ctx)
            if verdict is not None:
                return verdict
        return Verdict.ERROR
