"""Build/test command capture for error-driven fixing (`/fix`)."""

import asyncio
import os
import time
from dataclasses import dataclass
from typing import List, Optional

from . import config
from .job_log import JobLog, get_job_log
from .notify import NoticeLevel, Notifier, StderrNotifier
from .registry import JobStatus
from .utils import dbg

TRUNCATION_MARKER = "... (truncated)\n"

RUNNER_MARKERS = (
    ("Makefile", "make"),
    ("package.json", "npm test"),
    ("Cargo.toml", "cargo test"),
    ("go.mod", "go test ./..."),
    ("mix.exs", "mix test"),
    ("Gemfile", "bundle exec rspec"),
    ("pyproject.toml", "pytest"),
    ("setup.py", "pytest"),
    ("flake.nix", "nix build"),
    ("build.zig", "zig build test"),
    ("CMakeLists.txt", "cmake --build build && ctest --test-dir build"),
)


@dataclass(frozen=True)
class RunResult:
    command: str
    exit_code: int
    stdout: str
    stderr: str
    started_at: float
    duration: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def truncate_tail(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return TRUNCATION_MARKER + text[-max_chars:]


def detect_runner(root: str) -> str:
    """Suggest a build/test command from marker files in root; "" when nothing matches."""
    for marker, cmd in RUNNER_MARKERS:
        if os.path.isfile(os.path.join(root, marker)):
            return cmd
    return ""


class RunStore:
    def __init__(
        self,
        job_log: Optional[JobLog] = None,
        notifier: Optional[Notifier] = None,
        history_max: int = config.RUN_HISTORY_MAX,
        output_max_chars: int = config.RUN_OUTPUT_MAX_CHARS,
    ):
        self.job_log = job_log if job_log is not None else get_job_log()
        self.notifier = notifier if notifier is not None else StderrNotifier()
        self.history_max = max(1, int(history_max))
        self.output_max_chars = max(1, int(output_max_chars))
        self.history: List[RunResult] = []

    @property
    def last(self) -> Optional[RunResult]:
        return self.history[0] if self.history else None

    async def run(self, command: str, cwd: Optional[str] = None) -> RunResult:
        self.notifier.notify(f"running: {command}", NoticeLevel.INFO)
        started = time.time()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
            out, err = await proc.communicate()
            code = proc.returncode if proc.returncode is not None else -1
        except OSError as e:
            dbg(f"runs: failed to start {command!r}: {e}")
            out, err, code = b"", str(e).encode("utf-8"), -1
        return self.record(
            command,
            code,
            out.decode("utf-8", errors="replace"),
            err.decode("utf-8", errors="replace"),
            started=started,
            duration=time.time() - started,
            cwd=cwd,
        )

    def record(
        self,
        command: str,
        exit_code: int,
        stdout: str,
        stderr: str,
        started: Optional[float] = None,
        duration: float = 0.0,
        cwd: Optional[str] = None,
    ) -> RunResult:
        result = RunResult(
            command=command,
            exit_code=int(exit_code),
            stdout=truncate_tail(stdout or "", self.output_max_chars),
            stderr=truncate_tail(stderr or "", self.output_max_chars),
            started_at=started if started is not None else time.time(),
            duration=max(0.0, float(duration)),
        )
        self.history.insert(0, result)
        del self.history[self.history_max:]

        job_id = self.job_log.next_id()
        self.job_log.start(job_id, f"run:{command[:30]}", cwd or os.getcwd(), (0, 0), command)
        self.job_log.finish(
            job_id,
            JobStatus.SUCCEEDED if result.ok else JobStatus.BACKEND_ERROR,
            raw_response=result.stdout + "\n" + result.stderr,
            error_message=None if result.ok else f"Exit code {result.exit_code}",
        )

        preview = ""
        if not result.ok and result.stderr.strip():
            preview = ": " + result.stderr.strip().split("\n")[0]
        self.notifier.notify(
            f"'{command}' finished (exit {result.exit_code}, {result.duration:.1f}s){preview}",
            NoticeLevel.INFO if result.ok else NoticeLevel.WARN,
        )
        return result

    def last_run_context(self) -> Optional[str]:
        r = self.last
        if r is None:
            return None
        parts = [
            f"Command: {r.command}",
            f"Exit code: {r.exit_code}",
            f"Duration: {r.duration:.1f}s",
        ]
        if r.stdout:
            parts += ["\n── stdout ──", r.stdout.rstrip("\n")]
        if r.stderr:
            parts += ["\n── stderr ──", r.stderr.rstrip("\n")]
        return "\n".join(parts)
