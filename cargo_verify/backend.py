"""
Abstract verification backend interface.

One backend is selected per run (explicitly, or by probing the host in a
fixed preference order) and shared read-only by every worker thread. Each
concrete backend owns its output-directory policy, its invocation template,
and the rule tables used to classify its output.
"""

from __future__ import annotations

import logging
import re
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from cargo_verify import classifier, expectation
from cargo_verify.config import Verbosity, VerifyConfig
from cargo_verify.errors import JobError, SetupError
from cargo_verify.models import JobOutcome
from cargo_verify.run_tools import CommandResult, TranscriptLog, run_command
from cargo_verify.types import Expectation, Importance, Verdict, VerificationJob

LOG = logging.getLogger("cargo_verify.backend")

_PLACEHOLDER = re.compile(r"\{\{|\}\}|\{([^{}]*)\}")


def format_flag(flag: str, entry: str, file: Path, output_dir: Path) -> str:
    """
    Substitute `{entry}`, `{file}` and `{output_dir}` in a user-supplied flag.

    `{{` and `}}` stand for literal braces; any other placeholder is an error.
    """
    values = {"entry": entry, "file": str(file), "output_dir": str(output_dir)}

    def _sub(match: re.Match) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        key = match.group(1)
        if key not in values:
            raise JobError(f"Unknown placeholder '{{{key}}}' in backend flag '{flag}'")
        return values[key]

    return _PLACEHOLDER.sub(_sub, flag)


class VerificationBackend(ABC):
    """
    Interface implemented by every verification backend.

    Subclasses set `name`, `executable` and `output_root`, and provide
    `build_invocation`, the verdict rules and the importance rules.
    `verify` never lets a misbehaving tool abort the run: tool output is
    always reduced to a verdict. Only problems that stop the job from
    running at all surface as JobError.
    """

    name: str = ""
    executable: str = ""
    output_root: str = ""
    features: Sequence[str] = ()
    # which captured streams carry the expectation marker / are classified, in order
    expectation_streams: Sequence[str] = ("stderr",)
    classify_streams: Sequence[str] = ("stderr",)
    echo_streams: Sequence[str] = ("stderr",)
    latin1_output: bool = False
    create_output_dir: bool = True

    def __init__(self, config: Optional[VerifyConfig] = None, transcript: Optional[TranscriptLog] = None) -> None:
        self.config = config or VerifyConfig()
        self.transcript = transcript

    # -- capability probing ---------------------------------------------------

    def is_installed(self) -> bool:
        return shutil.which(self.executable) is not None

    def validate(self, config: VerifyConfig) -> None:
        """Reject option combinations this backend cannot honour. Raises SetupError."""

    # -- output directory -----------------------------------------------------

    def output_dir(self, job: VerificationJob) -> Path:
        return self.config.project_dir / self.output_root / job.display_name

    def prepare_output_dir(self, job: VerificationJob) -> Path:
        """Remove any previous results; never reuse stale verifier state."""
        out_dir = self.output_dir(job)
        if out_dir.is_dir() and not out_dir.is_symlink():
            shutil.rmtree(out_dir, ignore_errors=True)
        elif out_dir.exists() or out_dir.is_symlink():
            try:
                out_dir.unlink()
            except OSError as exc:
                LOG.debug("Unable to remove %s: %s", out_dir, exc)
        if out_dir.exists():
            raise JobError(
                f"Directory or file '{out_dir}' already exists, and can't be removed",
                job_name=job.display_name,
            )
        if self.create_output_dir:
            out_dir.mkdir(parents=True, exist_ok=True)
        else:
            out_dir.parent.mkdir(parents=True, exist_ok=True)
        return out_dir

    # -- invocation -----------------------------------------------------------

    def user_flags(self, job: VerificationJob, out_dir: Path) -> List[str]:
        return [format_flag(f, job.entry_symbol, job.artifact, out_dir) for f in self.config.backend_flags]

    @abstractmethod
    def default_flags(self, job: VerificationJob, out_dir: Path, user_flags: List[str]) -> List[str]:
        """Full argument list (after the executable) when flags are not replaced."""
        ...

    def build_invocation(self, job: VerificationJob, out_dir: Path) -> List[str]:
        flags = self.user_flags(job, out_dir)
        if self.config.replace_backend_flags:
            return [self.executable, *flags]
        return [self.executable, *self.default_flags(job, out_dir, flags)]

    # -- classification -------------------------------------------------------

    @abstractmethod
    def verdict_rules(self) -> Sequence[classifier.Rule]:
        ...

    def importance_rules(self) -> Sequence[classifier.ImportanceRule]:
        return ()

    def classify_output(self, result: CommandResult, name: str) -> tuple[Verdict, Expectation]:
        """Extract the expectation, then classify. Pure: same output, same verdict."""
        expect = expectation.extract_expectation(result.lines(*self.expectation_streams))
        verdict = classifier.classify(result.lines(*self.classify_streams), self.verdict_rules(), expect, name)
        LOG.info("Status: '%s' expected: '%s'", verdict, "---" if expect is None else expect)
        return verdict, expect

    def collect_stats(self, result: CommandResult) -> Dict[str, int]:
        return {}

    def counterexamples(self, out_dir: Path) -> List[Path]:
        return []

    # -- running --------------------------------------------------------------

    def execute(self, cmd: List[str], env: Optional[Dict[str, str]] = None) -> CommandResult:
        return run_command(
            cmd,
            env=env,
            latin1=self.latin1_output,
            timeout=self.config.job_timeout,
            transcript=self.transcript,
        )

    def verify(self, job: VerificationJob) -> JobOutcome:
        t0 = time.monotonic()
        out_dir = self.prepare_output_dir(job)

        LOG.info("     Running %s to verify %s", self.name, job.display_name)
        LOG.info("      file: %s", job.artifact)
        LOG.info("      entry: %s", job.entry_symbol)
        LOG.info("      results: %s", out_dir)

        cmd = self.build_invocation(job, out_dir)
        result = self.execute(cmd)

        if result.timed_out:
            verdict, expect = Verdict.TIMEOUT, None
        else:
            verdict, expect = self.classify_output(result, job.display_name)
        if verdict == Verdict.UNKNOWN:
            LOG.warning("%s: unable to determine a verdict from %s output", job.display_name, self.name)

        ctx = classifier.LineContext(expect=expect, name=job.display_name)
        classifier.echo_lines(
            result.lines(*self.echo_streams),
            self.importance_rules(),
            ctx,
            self.config.verbose,
            default=Importance.APPLICATION,
        )

        stats = self.collect_stats(result)
        if stats:
            if "completed paths" in stats:
                LOG.info("     %s: %d paths", job.display_name, stats["completed paths"])
            LOG.info("     %s: %s", job.display_name, stats)

        return JobOutcome(
            display_name=job.display_name,
            entry_symbol=job.entry_symbol,
            verdict=verdict,
            expectation=expect,
            stats=stats,
            duration_ms=int((time.monotonic() - t0) * 1000),
            counterexamples=[str(p) for p in self.counterexamples(out_dir)],
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


# Probed in this order when the user does not choose a backend.
PREFERENCE_ORDER = ("klee", "seahorn", "smack")
FALLBACK_BACKEND = "proptest"


def build_verification_backend(
    backend: str,
    config: Optional[VerifyConfig] = None,
    transcript: Optional[TranscriptLog] = None,
    **kwargs: Any,
) -> VerificationBackend:
    """
    Factory: create a VerificationBackend of the requested type.

    Args:
        backend: "klee", "seahorn", "smack", "proptest" or "mock"
        config: run configuration shared by all jobs
        transcript: optional shared script log
        **kwargs: Backend-specific configuration

    Raises:
        ValueError: Unknown backend
    """
    backend = backend.lower()
    if backend == "klee":
        from cargo_verify.backends.klee import KleeBackend

        return KleeBackend(config, transcript, **kwargs)

    elif backend == "seahorn":
        from cargo_verify.backends.seahorn import SeahornBackend

        return SeahornBackend(config, transcript, **kwargs)

    elif backend == "smack":
        from cargo_verify.backends.smack import SmackBackend

        return SmackBackend(config, transcript, **kwargs)

    elif backend in ("proptest", "direct"):
        from cargo_verify.backends.direct import DirectTestBackend

        return DirectTestBackend(config, transcript, **kwargs)

    elif backend == "mock":
        from cargo_verify.backends.mock import MockBackend

        return MockBackend(config, transcript, **kwargs)

    else:
        raise ValueError(
            f"Unknown verification backend: {backend!r}. Supported: 'klee', 'seahorn', 'smack', 'proptest', 'mock'"
        )


def select_backend(
    choice: Optional[str],
    config: Optional[VerifyConfig] = None,
    transcript: Optional[TranscriptLog] = None,
) -> VerificationBackend:
    """
    Pick the backend for the whole run.

    An explicit choice must be installed. Otherwise the first installed
    backend in PREFERENCE_ORDER wins, falling back to the direct-test backend.
    """
    config = config or VerifyConfig()
    if choice:
        try:
            backend = build_verification_backend(choice, config, transcript)
        except ValueError as exc:
            raise SetupError(str(exc)) from exc
        if not backend.is_installed():
            raise SetupError(f"{backend.name} is not installed")
    else:
        backend = None
        for candidate in PREFERENCE_ORDER:
            found = build_verification_backend(candidate, config, transcript)
            if found.is_installed():
                backend = found
                break
        if backend is None:
            backend = build_verification_backend(FALLBACK_BACKEND, config, transcript)
        LOG.info("Using %s as backend", backend.name)
        if config.verbosity >= Verbosity.NORMAL:
            print(f"Using {backend.name} as backend")

    backend.validate(config)
    return backend
