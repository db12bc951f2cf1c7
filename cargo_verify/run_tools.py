from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from cargo_verify.errors import JobError

LOG = logging.getLogger("cargo_verify.run_tools")


@dataclass
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def lines(self, *streams: str) -> List[str]:
        """Lines of the named streams, concatenated in the order given."""
        out: List[str] = []
        for stream in streams:
            out.extend(getattr(self, stream).splitlines())
        return out


def format_command(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in cmd)


class TranscriptLog:
    """
    Append-only script of every command run, shared by all workers.

    One record (directory change, environment, command, captured output) is
    written under the lock so concurrent jobs never interleave mid-record.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # start from an empty script on every run
        self.path.write_text("", encoding="utf-8")

    def record(
        self,
        cmd: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        output: Optional[CommandResult] = None,
    ) -> None:
        lines: List[str] = []
        wrapped = cwd is not None or bool(env)
        indent = "    " if wrapped else ""
        if wrapped:
            lines.append("(")
        if cwd is not None:
            lines.append(f"{indent}cd {shlex.quote(str(cwd))}")
        for var, val in (env or {}).items():
            lines.append(f"{indent}export {var}={shlex.quote(val)}")
        lines.append(indent + format_command(cmd))
        if wrapped:
            lines.append(")")
        if output is not None:
            for line in output.lines("stdout", "stderr"):
                lines.append(f"# {line}")
            lines.append(f"# exit code: {output.exit_code}")

        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write("\n".join(lines) + "\n")


def _decode(data: bytes, latin1: bool) -> str:
    if latin1:
        return data.decode("latin-1")
    return data.decode("utf-8", errors="replace")


def info_lines(prefix: str, lines: Iterable[str], level: int = logging.DEBUG) -> None:
    for line in lines:
        LOG.log(level, "%s%s", prefix, line)


def run_command(
    cmd: Sequence[str],
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[Path] = None,
    latin1: bool = False,
    check: bool = False,
    timeout: Optional[float] = None,
    transcript: Optional[TranscriptLog] = None,
) -> CommandResult:
    """
    Run `cmd`, capturing stdout and stderr as whole buffered strings.

    `env` holds only the extra variables; they are layered over os.environ.
    Raises JobError if the program cannot be spawned, or if `check` is set and
    it exits unsuccessfully.
    """
    cmd = [str(part) for part in cmd]
    program = cmd[0]
    LOG.info("Running '%s' in '%s' with command:\n%s", program, cwd or ".", format_command(cmd))
    if env:
        LOG.info(
            "with environment variables:\n%s",
            "\n".join(f"{var}={shlex.quote(val)}" for var, val in env.items()),
        )

    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    start = time.perf_counter()
    timed_out = False
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
            capture_output=True,
            timeout=timeout,
        )
        exit_code = proc.returncode
        stdout_bytes, stderr_bytes = proc.stdout, proc.stderr
    except subprocess.TimeoutExpired as exc:
        # subprocess.run has already killed the child
        timed_out = True
        exit_code = -1
        stdout_bytes = exc.stdout or b""
        stderr_bytes = exc.stderr or b""
    except OSError as exc:
        raise JobError(f"FAILED: unable to run '{program}': {exc}") from exc
    duration_ms = int((time.perf_counter() - start) * 1000)

    result = CommandResult(
        exit_code=exit_code,
        stdout=_decode(stdout_bytes, latin1),
        stderr=_decode(stderr_bytes, latin1),
        duration_ms=duration_ms,
        timed_out=timed_out,
    )
    info_lines("STDOUT: ", result.stdout.splitlines())
    info_lines("STDERR: ", result.stderr.splitlines())

    if transcript is not None:
        try:
            transcript.record(cmd, env=env, cwd=cwd, output=result)
        except OSError as exc:
            LOG.error("Cannot write to script: %s", exc)

    if timed_out:
        LOG.warning("'%s' killed after %.1fs", program, timeout)
    elif check and exit_code != 0:
        if exit_code < 0:
            raise JobError(f"FAILED: '{program}' terminated by a signal.")
        raise JobError(f"FAILED: '{program}' terminated with exit code {exit_code}.")

    return result
