"""
Job scheduler: fans verification jobs out over a bounded worker pool.

Each job's invocation, output capture and classification happen inside one
worker; the only state shared between workers is the backend (read-only)
and the optional transcript log (locked per record).
"""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from cargo_verify.backend import VerificationBackend, select_backend
from cargo_verify.backends.direct import DirectTestBackend
from cargo_verify.config import Verbosity, VerifyConfig
from cargo_verify.errors import JobError, SetupError
from cargo_verify.models import JobOutcome, SuiteResult
from cargo_verify.run_tools import TranscriptLog
from cargo_verify.types import Verdict, VerificationJob

LOG = logging.getLogger("cargo_verify.scheduler")


class JobScheduler:
    """
    Runs `backend.verify` once per job and aggregates the verdicts.

    With one worker jobs run sequentially on the calling thread. With more,
    a fixed-size pool is configured once for the scheduler's lifetime.

    Usage::

        scheduler = JobScheduler(backend, config)
        suite = scheduler.run(jobs)
    """

    def __init__(
        self,
        backend: VerificationBackend,
        config: Optional[VerifyConfig] = None,
        transcript: Optional[TranscriptLog] = None,
    ) -> None:
        self._backend = backend
        self._config = config or backend.config
        self._transcript = transcript
        self._pool: Optional[ThreadPoolExecutor] = None
        self._workers = 0

    @property
    def backend(self) -> VerificationBackend:
        return self._backend

    def configure_pool(self, workers: int) -> ThreadPoolExecutor:
        """Create the worker pool. Calling this twice is a programming error."""
        if self._pool is not None:
            raise RuntimeError("worker pool is already configured")
        if workers < 1:
            raise ValueError(f"worker count must be at least 1, got {workers}")
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cargo-verify")
        self._workers = workers
        return self._pool

    def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)

    def run(self, jobs: Sequence[VerificationJob], workers: Optional[int] = None) -> SuiteResult:
        """Verify every job; the result holds one outcome per job, in input order."""
        workers = workers if workers is not None else self._config.jobs
        jobs = list(jobs)
        print(f"Running {len(jobs)} test(s)")

        if workers <= 1 or len(jobs) <= 1:
            outcomes = [self._run_one(job) for job in jobs]
        else:
            pool = self._pool or self.configure_pool(workers)
            # map preserves input order regardless of completion order
            outcomes = list(pool.map(self._run_one, jobs))

        return SuiteResult.from_outcomes(self._backend.name, outcomes)

    def _run_one(self, job: VerificationJob) -> JobOutcome:
        t0 = time.monotonic()
        try:
            outcome = self._backend.verify(job)
        except JobError as exc:
            LOG.error("%s", exc)
            LOG.error("Failed to run test '%s'.", job.display_name)
            outcome = self._failed(job, str(exc), t0)
        except Exception as exc:  # noqa: BLE001
            LOG.exception("Backend %s crashed on '%s'", self._backend.name, job.display_name)
            outcome = self._failed(job, f"{type(exc).__name__}: {exc}", t0)

        self._report(outcome)
        return outcome

    @staticmethod
    def _failed(job: VerificationJob, error: str, t0: float) -> JobOutcome:
        return JobOutcome(
            display_name=job.display_name,
            entry_symbol=job.entry_symbol,
            verdict=Verdict.UNKNOWN,
            error=error,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

    def _report(self, outcome: JobOutcome) -> None:
        if self._config.quiet:
            sys.stdout.write(outcome.verdict.char)
        else:
            sys.stdout.write(f"test {outcome.display_name} ... {outcome.verdict.short_label}\n")
        sys.stdout.flush()


def run_suite(
    backend_choice: Optional[str],
    jobs: Sequence[VerificationJob],
    flags: Sequence[str] = (),
    worker_count: Optional[int] = None,
    config: Optional[VerifyConfig] = None,
    transcript: Optional[TranscriptLog] = None,
    requested: Optional[int] = None,
    backend: Optional[VerificationBackend] = None,
) -> SuiteResult:
    """
    Select a backend, verify every job, and replay counterexamples if asked.

    Setup problems (backend missing, resolved job count mismatch) raise
    SetupError before any job runs. Per-job problems never escape: every
    requested job gets an outcome.
    """
    config = replace(config or VerifyConfig())
    if flags:
        config.backend_flags = list(flags)
    if worker_count is not None:
        config.jobs = worker_count

    if requested is not None and requested != len(jobs):
        missing = requested - len(jobs)
        raise SetupError(f"Unable to find {missing} tests in bytecode file")

    if backend is None:
        backend = select_backend(backend_choice, config, transcript)
    else:
        backend.validate(config)

    if isinstance(backend, DirectTestBackend):
        # the harness checks the whole suite in one run
        artifact = jobs[0].artifact if jobs else ""
        jobs = [backend.suite_job(artifact)]
    elif not jobs:
        raise SetupError("No tests found")

    LOG.info("Checking %s", ", ".join(job.display_name for job in jobs))

    before = time.monotonic()
    scheduler = JobScheduler(backend, config, transcript)
    try:
        suite = scheduler.run(jobs)
    finally:
        scheduler.shutdown()
    after = time.monotonic()

    print()
    print(suite.summary_line())
    if config.verbosity >= Verbosity.INFORMATIVE:
        print(f"Verify {after - before:.3f}s")

    if config.replay > 0:
        from cargo_verify.replay import ReplayEngine

        engine = ReplayEngine(config, backend, transcript)
        by_name = {job.display_name: job for job in jobs}
        for outcome in suite.outcomes:
            engine.replay_outcome(by_name[outcome.display_name], outcome)

    return suite
