"""
Mock verification backend for testing.

Replays canned tool output per job instead of spawning a process, and
classifies it with the rule tables of a real backend. Records every call.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from cargo_verify.backend import VerificationBackend
from cargo_verify.backends import klee, seahorn, smack
from cargo_verify.classifier import ImportanceRule, Rule
from cargo_verify.config import VerifyConfig
from cargo_verify.errors import JobError
from cargo_verify.run_tools import CommandResult, TranscriptLog
from cargo_verify.types import VerificationJob

LOG = logging.getLogger("cargo_verify.backends.mock")

_TABLES = {
    "klee": (klee.VERDICT_RULES, klee.IMPORTANCE_RULES),
    "seahorn": (seahorn.VERDICT_RULES, seahorn.IMPORTANCE_RULES),
    "smack": (smack.VERDICT_RULES, smack.IMPORTANCE_RULES),
}


class MockBackend(VerificationBackend):
    """
    Scripted backend.

    Args:
        outputs: entry symbol -> (stdout, stderr)
        failures: entry symbols whose run raises JobError
        dialect: whose rule tables to classify with ("klee", "seahorn", "smack")
    """

    name = "Mock"
    executable = "true"
    output_root = "mockout"

    def __init__(
        self,
        config: Optional[VerifyConfig] = None,
        transcript: Optional[TranscriptLog] = None,
        outputs: Optional[Dict[str, Tuple[str, str]]] = None,
        failures: Sequence[str] = (),
        dialect: str = "klee",
        installed: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, transcript)
        self.outputs = dict(outputs or {})
        self.failures = set(failures)
        self.dialect = dialect
        self.installed = installed
        self.classify_streams = ("stderr", "stdout")
        self.expectation_streams = ("stderr", "stdout")
        self.call_log: List[VerificationJob] = []
        self._lock = threading.Lock()

    def is_installed(self) -> bool:
        return self.installed

    def prepare_output_dir(self, job: VerificationJob) -> Path:
        return self.output_dir(job)

    def default_flags(self, job: VerificationJob, out_dir: Path, user_flags: List[str]) -> List[str]:
        return [job.entry_symbol, *user_flags]

    def verdict_rules(self) -> Sequence[Rule]:
        return _TABLES[self.dialect][0]

    def importance_rules(self) -> Sequence[ImportanceRule]:
        return _TABLES[self.dialect][1]

    def verify(self, job: VerificationJob):
        with self._lock:
            self.call_log.append(job)
        return super().verify(job)

    def execute(self, cmd: List[str], env: Optional[Dict[str, str]] = None) -> CommandResult:
        entry = cmd[1] if len(cmd) > 1 else ""
        if entry in self.failures:
            raise JobError(f"FAILED: unable to run '{self.executable}' for {entry}")
        if entry not in self.outputs:
            LOG.debug("No canned output for %s", entry)
        stdout, stderr = self.outputs.get(entry, ("", ""))
        return CommandResult(exit_code=0, stdout=stdout, stderr=stderr, duration_ms=0)
