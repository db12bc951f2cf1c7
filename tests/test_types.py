"""Tests for cargo_verify.types, cargo_verify.models and cargo_verify.config."""

import pytest

from cargo_verify.config import Verbosity, VerifyConfig
from cargo_verify.models import JobOutcome, SuiteResult, append_report, load_reports
from cargo_verify.types import Verdict, VerificationJob


def _outcome(name: str, verdict: Verdict) -> JobOutcome:
    return JobOutcome(display_name=name, entry_symbol=f"_ZN{name}", verdict=verdict)


class TestVerdict:
    def test_verified_label_is_ok(self):
        assert Verdict.VERIFIED.short_label == "OK"
        assert Verdict.OVERFLOW.short_label == "OVERFLOW"

    def test_quiet_chars(self):
        chars = "".join(v.char for v in Verdict)
        assert chars == "?.FABOPRT"

    def test_only_verified_passes(self):
        assert [v for v in Verdict if v.passed] == [Verdict.VERIFIED]


class TestVerificationJob:
    def test_artifact_coerced_to_path(self, tmp_path):
        job = VerificationJob("tests::t1", "_ZN1t", str(tmp_path / "a.bc"))
        assert job.artifact == tmp_path / "a.bc"

    def test_empty_display_name_rejected(self):
        with pytest.raises(ValueError, match="display_name"):
            VerificationJob("", "_ZN1t", "a.bc")

    def test_empty_entry_symbol_rejected(self):
        with pytest.raises(ValueError, match="entry_symbol"):
            VerificationJob("t1", "", "a.bc")

    def test_from_dict_with_shared_artifact(self):
        job = VerificationJob.from_dict({"display_name": "t1", "entry_symbol": "_ZN1t"}, artifact="x.bc")
        assert job.to_dict() == {"display_name": "t1", "entry_symbol": "_ZN1t", "artifact": "x.bc"}

    def test_frozen(self):
        job = VerificationJob("t1", "_ZN1t", "a.bc")
        with pytest.raises(AttributeError):
            job.display_name = "t2"


class TestSuiteResult:
    def test_all_verified(self):
        suite = SuiteResult.from_outcomes("KLEE", [_outcome("a", Verdict.VERIFIED), _outcome("b", Verdict.VERIFIED)])
        assert suite.verdict == Verdict.VERIFIED
        assert suite.exit_code == 0
        assert suite.summary_line() == "test result: OK. 2 passed; 0 failed"

    def test_mixed_outcomes(self):
        suite = SuiteResult.from_outcomes("KLEE", [_outcome("a", Verdict.VERIFIED), _outcome("b", Verdict.OVERFLOW)])
        assert suite.passed == 1
        assert suite.failed == 1
        assert suite.verdict == Verdict.OVERFLOW
        assert suite.exit_code == 1
        assert suite.summary_line() == "test result: OVERFLOW. 1 passed; 1 failed"

    def test_unknown_counts_as_failed(self):
        suite = SuiteResult.from_outcomes("KLEE", [_outcome("a", Verdict.UNKNOWN)])
        assert suite.failed == 1
        assert suite.exit_code == 1

    def test_verdicts_in_input_order(self):
        outcomes = [_outcome("b", Verdict.PANIC), _outcome("a", Verdict.VERIFIED)]
        suite = SuiteResult.from_outcomes("KLEE", outcomes)
        assert suite.verdicts == [Verdict.PANIC, Verdict.VERIFIED]

    def test_report_appends_lines(self, tmp_path):
        path = tmp_path / "reports" / "runs.jsonl"
        append_report(path, SuiteResult.from_outcomes("KLEE", [_outcome("a", Verdict.VERIFIED)]))
        append_report(path, SuiteResult.from_outcomes("SMACK", [_outcome("a", Verdict.ERROR)]))

        reports = load_reports(path)
        assert [r.backend for r in reports] == ["KLEE", "SMACK"]
        assert reports[1].outcomes[0].verdict == Verdict.ERROR

    def test_load_reports_skips_bad_lines(self, tmp_path):
        path = tmp_path / "runs.jsonl"
        append_report(path, SuiteResult.from_outcomes("KLEE", [_outcome("a", Verdict.VERIFIED)]))
        with path.open("a", encoding="utf-8") as handle:
            handle.write("{not json\n\n")
        assert len(load_reports(path)) == 1

    def test_load_reports_skips_schema_mismatch(self, tmp_path):
        path = tmp_path / "runs.jsonl"
        with path.open("w", encoding="utf-8") as handle:
            handle.write('{"backend": "KLEE", "total": "many"}\n')
        append_report(path, SuiteResult.from_outcomes("KLEE", [_outcome("a", Verdict.VERIFIED)]))
        reports = load_reports(path)
        assert len(reports) == 1
        assert reports[0].passed == 1

    def test_load_missing_report(self, tmp_path):
        assert load_reports(tmp_path / "nope.jsonl") == []


class TestConfig:
    def test_verbosity_from_flags(self):
        assert Verbosity.from_flags(quiet=True, verbose=3) == Verbosity.QUIET
        assert Verbosity.from_flags(quiet=False, verbose=0) == Verbosity.NORMAL
        assert Verbosity.from_flags(quiet=False, verbose=2) == Verbosity.MAJOR
        assert Verbosity.from_flags(quiet=False, verbose=10) == Verbosity.TRIVIAL

    def test_split_features(self):
        cfg = VerifyConfig(features=["a b", "c,d", ""])
        assert cfg.split_features() == ["a", "b", "c", "d"]

    def test_verifying_tests(self):
        assert not VerifyConfig().verifying_tests
        assert VerifyConfig(tests=True).verifying_tests
        assert VerifyConfig(test_filters=["t1"]).verifying_tests

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CARGO_VERIFY_BACKEND", "smack")
        monkeypatch.setenv("CARGO_VERIFY_JOBS", "3")
        monkeypatch.setenv("SEAHORN_VERIFY_C_COMMON_DIR", "/opt/verify-c-common")
        monkeypatch.setenv("CARGO_VERIFY_LOG_LEVEL", "debug")
        monkeypatch.setenv("CARGO_VERIFY_JOB_TIMEOUT", "2.5")
        cfg = VerifyConfig.from_env()
        assert cfg.backend == "smack"
        assert cfg.jobs == 3
        assert cfg.seahorn_verify_c_common_dir == "/opt/verify-c-common"
        assert cfg.log_level == "DEBUG"
        assert cfg.job_timeout == 2.5

    def test_from_env_defaults(self, monkeypatch):
        for var in (
            "CARGO_VERIFY_BACKEND",
            "CARGO_VERIFY_JOBS",
            "SEAHORN_VERIFY_C_COMMON_DIR",
            "CARGO_VERIFY_LOG_LEVEL",
            "CARGO_VERIFY_JOB_TIMEOUT",
        ):
            monkeypatch.delenv(var, raising=False)
        cfg = VerifyConfig.from_env()
        assert cfg.backend is None
        assert cfg.jobs >= 1
        assert cfg.job_timeout is None
        assert cfg.log_level == "WARNING"
