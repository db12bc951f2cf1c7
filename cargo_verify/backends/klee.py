"""
KLEE symbolic execution backend.

KLEE writes everything interesting to stderr: its own diagnostics, the
program's panic messages, and the final `KLEE: done:` statistics. Test
inputs that reached an error are left in the output directory as
`test*.ktest` files with a `test*.<kind>.err` companion.
"""

from __future__ import annotations

import glob
import logging
import re
from pathlib import Path
from typing import Dict, List, Sequence

from cargo_verify.backend import VerificationBackend
from cargo_verify.classifier import (
    ImportanceRule,
    Rule,
    all_of,
    contains,
    expected_panic,
    is_marker,
    resolve_completion,
    starts_with,
)
from cargo_verify.run_tools import CommandResult
from cargo_verify.types import Importance, Verdict, VerificationJob

LOG = logging.getLogger("cargo_verify.backends.klee")

_KLEE_ERROR = starts_with("KLEE: ERROR:")

VERDICT_RULES: Sequence[Rule] = (
    Rule("halt-timer", starts_with("KLEE: HaltTimer invoked"), Verdict.TIMEOUT),
    Rule("halting", starts_with("KLEE: halting execution, dumping remaining states"), Verdict.TIMEOUT),
    # setup problems, not defects in the program under test
    Rule("could-not-link", starts_with("KLEE: ERROR: Could not link"), Verdict.UNKNOWN),
    Rule("unable-to-load", starts_with("KLEE: ERROR: Unable to load symbol"), Verdict.UNKNOWN),
    Rule("klee-unreachable", all_of(_KLEE_ERROR, contains("unreachable")), Verdict.REACHABLE),
    Rule("klee-overflow", all_of(_KLEE_ERROR, contains("overflow")), Verdict.OVERFLOW),
    Rule("klee-out-of-bounds", all_of(_KLEE_ERROR, contains("out of bound")), Verdict.OUT_OF_BOUNDS),
    Rule("klee-error", _KLEE_ERROR, Verdict.ERROR),
    Rule("expect-marker", is_marker, None),
    Rule("expected-panic", expected_panic, Verdict.VERIFIED),
    Rule("assertion-failed", contains("assertion failed"), Verdict.ASSERT_FAILED),
    Rule("verification-failed", contains("verification failed"), Verdict.ERROR),
    Rule("index-out-of-bounds", contains("index out of bounds"), Verdict.OUT_OF_BOUNDS),
    Rule("with-overflow", contains("with overflow"), Verdict.OVERFLOW),
    Rule("panicked", contains("panicked at"), Verdict.PANIC),
    Rule("backtrace-note", contains("note: run with `RUST_BACKTRACE=1`"), Verdict.ERROR),
    Rule("done", contains("KLEE: done:"), resolve_completion),
)

IMPORTANCE_RULES: Sequence[ImportanceRule] = (
    ImportanceRule("expect-marker", is_marker, Importance.WARNING),
    # reported directly when detected
    ImportanceRule("expected-panic", expected_panic, Importance.NOISE),
    ImportanceRule("assertion-failed", contains("assertion failed"), Importance.BRIEF),
    ImportanceRule("verification-failed", contains("verification failed"), Importance.BRIEF),
    ImportanceRule("with-overflow", contains("with overflow"), Importance.BRIEF),
    ImportanceRule("could-not-link", starts_with("KLEE: ERROR: Could not link"), Importance.SCRIPT_ERROR),
    ImportanceRule("unable-to-load", starts_with("KLEE: ERROR: Unable to load symbol"), Importance.SCRIPT_ERROR),
    ImportanceRule("klee-error", _KLEE_ERROR, Importance.DETAILS),
    ImportanceRule(
        "data-layout",
        starts_with("warning: Linking two modules of different data layouts"),
        Importance.WARNING,
    ),
    ImportanceRule("klee-warning", contains("KLEE: WARNING:"), Importance.WARNING),
    ImportanceRule("klee-warning-once", contains("KLEE: WARNING ONCE:"), Importance.WARNING),
    ImportanceRule("output-directory", starts_with("KLEE: output directory"), Importance.NOISE),
    ImportanceRule("using", starts_with("KLEE: Using"), Importance.NOISE),
    ImportanceRule("posix-model", starts_with("KLEE: NOTE: Using POSIX model"), Importance.NOISE),
    ImportanceRule("done", starts_with("KLEE: done:"), Importance.NOISE),
    ImportanceRule("halt-timer", starts_with("KLEE: HaltTimer invoked"), Importance.NOISE),
    ImportanceRule(
        "halting",
        starts_with("KLEE: halting execution, dumping remaining states"),
        Importance.NOISE,
    ),
    ImportanceRule(
        "ignoring-error",
        starts_with("KLEE: NOTE: now ignoring this error at this location"),
        Importance.NOISE,
    ),
    # anything else from KLEE has not been categorized yet: always show it
    ImportanceRule("klee-other", starts_with("KLEE:"), Importance.UNCATEGORIZED),
)

_KLEE_DONE = re.compile(r"^KLEE: done:\s+(.*)= (\d+)")


def parse_stats(lines: List[str]) -> Dict[str, int]:
    """Collect `KLEE: done: <name> = <n>` statistics."""
    stats: Dict[str, int] = {}
    for line in lines:
        match = _KLEE_DONE.match(line)
        if match:
            stats[match.group(1).strip()] = int(match.group(2))
    return stats


class KleeBackend(VerificationBackend):
    """Verification via KLEE; counterexamples are `.ktest` files."""

    name = "KLEE"
    executable = "klee"
    output_root = "kleeout"
    features = ("verifier-klee",)
    expectation_streams = ("stderr",)
    classify_streams = ("stderr",)
    echo_streams = ("stderr",)
    latin1_output = True
    # KLEE refuses to start if its --output-dir already exists
    create_output_dir = False

    def default_flags(self, job: VerificationJob, out_dir: Path, user_flags: List[str]) -> List[str]:
        return [
            "--exit-on-error",
            "--entry-point",
            job.entry_symbol,
            "--libc=klee",
            "--silent-klee-assume",
            "--disable-verify",
            "--output-dir",
            str(out_dir),
            *user_flags,
            str(job.artifact),
            *self.config.args,
        ]

    def verdict_rules(self) -> Sequence[Rule]:
        return VERDICT_RULES

    def importance_rules(self) -> Sequence[ImportanceRule]:
        return IMPORTANCE_RULES

    def collect_stats(self, result: CommandResult) -> Dict[str, int]:
        return parse_stats(result.lines("stderr"))

    def failures(self, out_dir: Path) -> List[Path]:
        pattern = str(Path(glob.escape(str(out_dir))) / "test*.err")
        failures = sorted(Path(p) for p in glob.glob(pattern))
        LOG.info("      Failing test: %s", [str(p) for p in failures])
        return failures

    def counterexamples(self, out_dir: Path) -> List[Path]:
        """
        `.ktest` inputs worth replaying.

        With replay level 2 or more every generated test is returned, not
        just the failing ones.
        """
        if self.config.replay > 1:
            pattern = str(Path(glob.escape(str(out_dir))) / "test*.ktest")
            return sorted(Path(p) for p in glob.glob(pattern))
        # test000001.ptr.err -> test000001.ktest
        return sorted(p.with_suffix("").with_suffix(".ktest") for p in self.failures(out_dir))
