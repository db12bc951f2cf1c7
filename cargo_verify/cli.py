"""
Command line entry point.

Building the crate, patching its bitcode and resolving symbols are done by
the build pipeline, which hands over a job manifest:

    {
      "package": "mycrate",
      "artifact": "target/.../mycrate-1234.link.patch-init-feat.bc",
      "requested": 2,
      "jobs": [
        {"display_name": "tests::t1", "entry_symbol": "_ZN7mycrate5tests2t117h..."},
        {"display_name": "tests::t2", "entry_symbol": "_ZN7mycrate5tests2t217h..."}
      ]
    }
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from cargo_verify.config import Verbosity, VerifyConfig
from cargo_verify.errors import SetupError
from cargo_verify.models import SuiteResult, append_report
from cargo_verify.run_tools import TranscriptLog
from cargo_verify.scheduler import run_suite
from cargo_verify.types import VerificationJob

LOG = logging.getLogger("cargo_verify.cli")

BACKENDS = ("klee", "seahorn", "smack", "proptest")


def _comma_list(values: Optional[List[str]]) -> List[str]:
    out: List[str] = []
    for value in values or []:
        out.extend(v for v in value.split(",") if v)
    return out


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="cargo-verify", description="Execute verification tools")
    ap.add_argument("--manifest-path", type=Path, default=Path("Cargo.toml"), help="Path to Cargo.toml")
    ap.add_argument("--job-manifest", type=Path, help="JSON file of resolved jobs from the build pipeline")
    ap.add_argument("-b", "--backend", type=str.lower, choices=BACKENDS, help="Select verification backend")
    ap.add_argument(
        "--backend-flags",
        action="append",
        metavar="FLAGS",
        help=(
            "Comma separated list of flags to pass to the verification backend "
            '("{entry}" is replaced with the mangled entry function name; "{file}" with the '
            'bitcode file; "{output_dir}" with the output directory)'
        ),
    )
    ap.add_argument(
        "--replace-backend-flags",
        action="store_true",
        help="Use --backend-flags instead of the hard-coded flags rather than appending to them",
    )
    ap.add_argument("--seahorn-verify-c-common-dir", metavar="PATH", help="Location of 'verify_c_common'")
    ap.add_argument("--features", action="append", metavar="FEATURES", help="Features to activate")
    ap.add_argument("-t", "--tests", action="store_true", help="Verify all tests instead of 'main'")
    ap.add_argument("--test", action="append", default=[], metavar="TESTNAME", help="Only verify matching tests")
    ap.add_argument("-j", "--jobs", type=int, metavar="N", help="Number of parallel jobs, defaults to # of CPUs")
    ap.add_argument("-r", "--replay", action="count", default=0, help="Replay to display concrete input values")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="Use verbose output")
    ap.add_argument("-q", "--quiet", action="store_true", help="Display one character per test")
    ap.add_argument("--script", type=Path, metavar="PATH", help="Write every command run to a script")
    ap.add_argument("--report", type=Path, metavar="PATH", help="Append a JSON suite report")
    ap.add_argument("--job-timeout", type=float, metavar="SECONDS", help="Kill a backend run after this long")
    ap.add_argument("args", nargs="*", metavar="ARG", help="Arguments to pass to program under test (after --)")
    return ap


def config_from_args(ns: argparse.Namespace) -> VerifyConfig:
    cfg = VerifyConfig.from_env()
    cfg.manifest_path = ns.manifest_path
    if ns.backend:
        cfg.backend = ns.backend
    cfg.backend_flags = _comma_list(ns.backend_flags)
    cfg.replace_backend_flags = ns.replace_backend_flags
    if ns.seahorn_verify_c_common_dir:
        cfg.seahorn_verify_c_common_dir = ns.seahorn_verify_c_common_dir
    cfg.features = list(ns.features or [])
    cfg.tests = ns.tests
    cfg.test_filters = list(ns.test)
    cfg.args = list(ns.args)
    if ns.jobs is not None:
        cfg.jobs = ns.jobs
    cfg.replay = ns.replay
    cfg.verbose = ns.verbose
    cfg.quiet = ns.quiet
    cfg.script = ns.script
    cfg.report = ns.report
    if ns.job_timeout is not None:
        cfg.job_timeout = ns.job_timeout
    return cfg


def load_jobs(path: Path, config: VerifyConfig) -> tuple[List[VerificationJob], Optional[int]]:
    """Read the build pipeline's manifest; returns the jobs and the requested count."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SetupError(f"Cannot read job manifest '{path}': {exc}") from exc
    if not isinstance(data, dict) or "artifact" not in data:
        raise SetupError(f"Invalid job manifest '{path}'")

    if data.get("package"):
        config.package = str(data["package"])
    try:
        jobs = [VerificationJob.from_dict(j, artifact=data["artifact"]) for j in data.get("jobs", [])]
    except (KeyError, TypeError, ValueError) as exc:
        raise SetupError(f"Invalid job in manifest '{path}': {exc}") from exc
    if config.test_filters:
        jobs = [j for j in jobs if any(f in j.display_name for f in config.test_filters)]
        return jobs, None
    requested = data.get("requested")
    return jobs, int(requested) if requested is not None else None


def _log_level(config: VerifyConfig) -> int:
    base = logging.getLevelName(config.log_level)
    if not isinstance(base, int):
        base = logging.WARNING
    # each -v lowers the threshold by one level
    return max(logging.DEBUG, base - 10 * config.verbose)


def run(argv: Optional[Sequence[str]] = None) -> SuiteResult:
    args = list(sys.argv[1:] if argv is None else argv)
    if args[:1] == ["verify"]:
        # invoked as `cargo verify ...`
        args = args[1:]
    ns = build_parser().parse_args(args)
    config = config_from_args(ns)

    logging.basicConfig(
        level=_log_level(config),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    jobs: List[VerificationJob] = []
    requested = None
    if ns.job_manifest is not None:
        jobs, requested = load_jobs(ns.job_manifest, config)

    transcript = TranscriptLog(config.script) if config.script else None

    beginning = time.monotonic()
    suite = run_suite(
        config.backend,
        jobs,
        config.backend_flags,
        config.jobs,
        config=config,
        transcript=transcript,
        requested=requested,
    )
    if config.verbosity >= Verbosity.INFORMATIVE:
        print(f"Total {time.monotonic() - beginning:.3f}s")

    if config.report is not None:
        append_report(config.report, suite)
    return suite


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        suite = run(argv)
    except SetupError as exc:
        LOG.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"VERIFICATION_RESULT: {suite.verdict.value}")
    return suite.exit_code


if __name__ == "__main__":
    sys.exit(main())
