"""
Exception hierarchy for cargo-verify.

    VerifyError                 -- base; never raised directly
      SetupError                -- fatal to the whole run, raised before any job starts
      JobError                  -- fatal to one job only; converted to a verdict by the scheduler
      ReplayError               -- counterexample replay failed; reported as a warning
"""

from __future__ import annotations


class VerifyError(Exception):
    """Base class for all cargo-verify errors."""


class SetupError(VerifyError):
    """Backend missing, bad option combination, or symbol count mismatch."""


class JobError(VerifyError):
    """A single job could not be run (spawn failure, stale output directory, ...)."""

    def __init__(self, message: str, job_name: str | None = None) -> None:
        super().__init__(message)
        self.job_name = job_name


class ReplayError(VerifyError):
    """A counterexample could not be replayed. Never affects a verdict."""
