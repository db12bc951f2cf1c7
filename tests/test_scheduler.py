"""Tests for the job scheduler and run_suite."""

import pytest

from cargo_verify.backends.mock import MockBackend
from cargo_verify.errors import SetupError
from cargo_verify.scheduler import JobScheduler, run_suite
from cargo_verify.types import Verdict

DONE = "KLEE: done: total instructions = 10\nKLEE: done: completed paths = 1\n"
OVERFLOW = "thread 'main' panicked at 'attempt to add with overflow', src/lib.rs:3:5\n"
ASSERT = "thread 'main' panicked at 'assertion failed: x < 3', src/lib.rs:9:5\n"


def _make_suite(make_job, config, failures=()):
    jobs = [make_job(f"t{i}") for i in range(1, 7)]
    stderrs = [DONE, OVERFLOW, ASSERT, DONE, "garbage\n", DONE]
    outputs = {job.entry_symbol: ("", stderr) for job, stderr in zip(jobs, stderrs)}
    backend = MockBackend(config, outputs=outputs, failures=[jobs[i].entry_symbol for i in failures])
    return backend, jobs


class TestJobScheduler:
    def test_sequential(self, make_job, config):
        backend, jobs = _make_suite(make_job, config)
        suite = JobScheduler(backend, config).run(jobs, workers=1)
        assert suite.verdicts == [
            Verdict.VERIFIED,
            Verdict.OVERFLOW,
            Verdict.ASSERT_FAILED,
            Verdict.VERIFIED,
            Verdict.UNKNOWN,
            Verdict.VERIFIED,
        ]
        assert len(backend.call_log) == 6

    def test_parallel_matches_sequential(self, make_job, config):
        backend, jobs = _make_suite(make_job, config)
        sequential = JobScheduler(backend, config).run(jobs, workers=1)

        scheduler = JobScheduler(backend, config)
        try:
            parallel = scheduler.run(jobs, workers=4)
        finally:
            scheduler.shutdown()

        assert parallel.verdicts == sequential.verdicts
        assert [o.display_name for o in parallel.outcomes] == [j.display_name for j in jobs]
        assert (parallel.passed, parallel.failed) == (sequential.passed, sequential.failed)

    def test_job_error_does_not_stop_others(self, make_job, config, caplog):
        backend, jobs = _make_suite(make_job, config, failures=[0])
        suite = JobScheduler(backend, config).run(jobs, workers=1)
        assert suite.outcomes[0].verdict == Verdict.UNKNOWN
        assert "unable to run" in suite.outcomes[0].error
        assert suite.outcomes[1].verdict == Verdict.OVERFLOW
        assert "Failed to run test 't1'." in caplog.text

    def test_unexpected_exception_becomes_unknown(self, make_job, config, monkeypatch):
        backend, jobs = _make_suite(make_job, config)

        def _boom(cmd, env=None):
            raise RuntimeError("backend bug")

        monkeypatch.setattr(backend, "execute", _boom)
        suite = JobScheduler(backend, config).run(jobs[:2], workers=1)
        assert suite.verdicts == [Verdict.UNKNOWN, Verdict.UNKNOWN]
        assert "RuntimeError" in suite.outcomes[0].error

    def test_pool_configured_once(self, make_job, config):
        backend, _ = _make_suite(make_job, config)
        scheduler = JobScheduler(backend, config)
        try:
            scheduler.configure_pool(2)
            with pytest.raises(RuntimeError, match="already configured"):
                scheduler.configure_pool(2)
        finally:
            scheduler.shutdown()

    def test_pool_needs_a_worker(self, make_job, config):
        backend, _ = _make_suite(make_job, config)
        with pytest.raises(ValueError):
            JobScheduler(backend, config).configure_pool(0)

    def test_per_test_lines(self, make_job, config, capsys):
        backend, jobs = _make_suite(make_job, config)
        JobScheduler(backend, config).run(jobs[:2], workers=1)
        out = capsys.readouterr().out
        assert "Running 2 test(s)" in out
        assert "test t1 ... OK" in out
        assert "test t2 ... OVERFLOW" in out

    def test_quiet_mode(self, make_job, config, capsys):
        config.quiet = True
        backend, jobs = _make_suite(make_job, config)
        JobScheduler(backend, config).run(jobs, workers=1)
        assert ".OA.?." in capsys.readouterr().out


class TestRunSuite:
    def test_mixed_suite(self, make_job, config, capsys):
        jobs = [make_job("t1"), make_job("t2")]
        backend = MockBackend(
            config,
            outputs={jobs[0].entry_symbol: ("", DONE), jobs[1].entry_symbol: ("", OVERFLOW)},
        )
        suite = run_suite(None, jobs, config=config, backend=backend, worker_count=2)

        assert suite.passed == 1
        assert suite.failed == 1
        assert suite.verdict == Verdict.OVERFLOW
        assert suite.exit_code == 1
        assert "test result: OVERFLOW. 1 passed; 1 failed" in capsys.readouterr().out

    def test_all_verified(self, make_job, config, capsys):
        jobs = [make_job("t1")]
        backend = MockBackend(config, outputs={jobs[0].entry_symbol: ("", DONE)})
        suite = run_suite(None, jobs, config=config, backend=backend)
        assert suite.exit_code == 0
        assert "test result: OK. 1 passed; 0 failed" in capsys.readouterr().out

    def test_symbol_count_mismatch(self, make_job, config):
        backend = MockBackend(config)
        with pytest.raises(SetupError, match="Unable to find 1 tests"):
            run_suite(None, [make_job("t1")], config=config, backend=backend, requested=2)
        assert backend.call_log == []

    def test_no_jobs(self, config):
        with pytest.raises(SetupError, match="No tests found"):
            run_suite(None, [], config=config, backend=MockBackend(config))

    def test_caller_config_untouched(self, make_job, config):
        jobs = [make_job("t1")]
        backend = MockBackend(config, outputs={jobs[0].entry_symbol: ("", DONE)})
        run_suite(None, jobs, flags=["--max-time=5"], worker_count=3, config=config, backend=backend)
        assert config.backend_flags == []
        assert config.jobs == 1

    def test_direct_backend_runs_once(self, make_job, config, monkeypatch):
        from cargo_verify import backend as backend_module
        from cargo_verify.run_tools import CommandResult

        calls = []

        def _run(cmd, **kwargs):
            calls.append(cmd)
            return CommandResult(exit_code=0, stdout="", stderr="", duration_ms=1)

        monkeypatch.setattr(backend_module, "run_command", _run)
        monkeypatch.setattr(backend_module.shutil, "which", lambda exe: None)

        suite = run_suite(None, [make_job("t1"), make_job("t2")], config=config)
        assert suite.backend == "Proptest"
        assert suite.total == 1
        assert suite.verdict == Verdict.VERIFIED
        assert len(calls) == 1
        assert calls[0][:2] == ["cargo", "test"]
