"""
Counterexample replay.

Re-runs the uninstrumented program with a backend-produced
counterexample bound as its concrete input, so the user can see the values
that reproduce a verdict. Replay is diagnostic only: it never changes a
verdict, and failures are reported as warnings.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from cargo_verify.backend import VerificationBackend
from cargo_verify.config import VerifyConfig
from cargo_verify.errors import JobError, ReplayError
from cargo_verify.models import JobOutcome
from cargo_verify.run_tools import TranscriptLog, run_command
from cargo_verify.types import VerificationJob

LOG = logging.getLogger("cargo_verify.replay")

# backends whose counterexamples the program's runtime can consume
_REPLAY_ENV = {"KLEE": "KTEST_FILE"}


@dataclass
class Transcript:
    """Concrete output of one replayed counterexample."""

    counterexample: Path
    lines: List[str] = field(default_factory=list)
    exit_code: int = 0


class ReplayEngine:
    def __init__(
        self,
        config: VerifyConfig,
        backend: VerificationBackend,
        transcript: Optional[TranscriptLog] = None,
    ) -> None:
        self._config = config
        self._backend = backend
        self._transcript = transcript

    def build_command(self, job: VerificationJob) -> List[str]:
        cfg = self._config
        features = cfg.split_features()
        if cfg.verifying_tests:
            cmd = ["cargo", "test", "--manifest-path", str(cfg.manifest_path)]
            if features:
                cmd.extend(["--features", ",".join(features)])
            cmd.extend([job.display_name, "--", "--nocapture"])
        else:
            cmd = ["cargo", "run", "--manifest-path", str(cfg.manifest_path)]
            if features:
                cmd.extend(["--features", ",".join(features)])
            if cfg.args:
                cmd.extend(["--", *cfg.args])
        return cmd

    def build_env(self, counterexample: Path) -> Dict[str, str]:
        var = _REPLAY_ENV.get(self._backend.name)
        if var is None:
            raise ReplayError(f"The {self._backend.name} backend does not support '--replay'")
        rustflags = os.environ.get("RUSTFLAGS")
        rustflags = f"{rustflags} --cfg=verify" if rustflags else "--cfg=verify"
        return {"RUSTFLAGS": rustflags, var: str(counterexample)}

    def replay(self, job: VerificationJob, counterexample: Path | str) -> Transcript:
        """
        Run the program once with `counterexample` as its input.

        A non-zero exit is expected (the counterexample usually reproduces a
        failure) and is not an error.
        """
        counterexample = Path(counterexample)
        if not counterexample.is_file():
            raise ReplayError(f"Counterexample '{counterexample}' does not exist")

        env = self.build_env(counterexample)
        cmd = self.build_command(job)
        try:
            result = run_command(cmd, env=env, transcript=self._transcript)
        except JobError as exc:
            raise ReplayError(str(exc)) from exc

        transcript = Transcript(
            counterexample=counterexample,
            lines=result.lines("stdout", "stderr"),
            exit_code=result.exit_code,
        )
        for line in transcript.lines:
            print(line)
        return transcript

    def replay_outcome(self, job: VerificationJob, outcome: JobOutcome) -> List[Transcript]:
        """Replay every counterexample of a finished job; warnings only on failure."""
        transcripts: List[Transcript] = []
        for ktest in outcome.counterexamples:
            print(f"    Test input {ktest}")
            try:
                transcripts.append(self.replay(job, ktest))
            except ReplayError as exc:
                LOG.warning("Failed to replay: %s", exc)
        return transcripts


def replay(
    job: VerificationJob,
    counterexample_path: Path | str,
    backend: VerificationBackend,
    config: Optional[VerifyConfig] = None,
) -> Transcript:
    """Replay one counterexample. Raises ReplayError."""
    engine = ReplayEngine(config or backend.config, backend)
    return engine.replay(job, counterexample_path)
