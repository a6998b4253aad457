"""Bounded in-memory audit log of jobs, plus per-job transcript files.

Entries are created when a job starts and finished exactly once. The log
also hands out job ids so ids stay unique for the whole process, even
after entries are evicted.
"""

import itertools
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from . import config
from .registry import JobStatus
from .utils import dbg

STATUS_ICONS = {
    JobStatus.PENDING: "…",
    JobStatus.RUNNING: "⟳",
    JobStatus.SUCCEEDED: "✓",
    JobStatus.NO_CHANGE: "=",
    JobStatus.PARSE_FAILED: "?",
    JobStatus.BACKEND_ERROR: "✗",
    JobStatus.EMPTY_OUTPUT: "∅",
    JobStatus.TIMED_OUT: "⏱",
    JobStatus.CANCELLED: "⊘",
}

DETAIL_PROMPT_LINES = 60
DETAIL_RESPONSE_LINES = 40


@dataclass
class JobLogEntry:
    id: int
    status: JobStatus
    mode_label: str
    document_id: str
    line_range: Tuple[int, int]
    prompt_text: str = ""
    raw_response: str = ""
    parsed_code: Optional[str] = None
    error_message: Optional[str] = None
    started_at: float = 0.0
    finished_at: Optional[float] = None
    bytes_sent: int = 0
    bytes_received: int = 0
    transcript_path: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at


class JobLog:
    def __init__(
        self,
        max_entries: int = config.JOB_LOG_MAX,
        transcripts: bool = config.TRANSCRIPTS,
        transcript_dir: str = config.TRANSCRIPT_DIR,
    ):
        self.max_entries = max(1, int(max_entries))
        self.transcripts = transcripts
        self.transcript_dir = transcript_dir
        self._entries: List[JobLogEntry] = []
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[JobLogEntry]:
        return iter(list(self._entries))

    def entries(self) -> List[JobLogEntry]:
        """Newest first."""
        return list(self._entries)

    def get(self, job_id: int) -> Optional[JobLogEntry]:
        for entry in self._entries:
            if entry.id == job_id:
                return entry
        return None

    def clear(self) -> None:
        self._entries = []

    def start(
        self,
        job_id: int,
        mode_label: str,
        document_id: str,
        line_range: Tuple[int, int],
        prompt_text: str = "",
    ) -> JobLogEntry:
        entry = JobLogEntry(
            id=job_id,
            status=JobStatus.PENDING,
            mode_label=mode_label,
            document_id=document_id,
            line_range=(int(line_range[0]), int(line_range[1])),
            prompt_text=prompt_text or "",
            started_at=time.time(),
            bytes_sent=len((prompt_text or "").encode("utf-8")),
        )
        entry.transcript_path = self._open_transcript(entry)
        self._entries.insert(0, entry)
        del self._entries[self.max_entries:]
        return entry

    def mark_running(self, job_id: int) -> None:
        entry = self.get(job_id)
        if entry is not None and not entry.finished:
            entry.status = JobStatus.RUNNING

    def finish(
        self,
        job_id: int,
        status: JobStatus,
        raw_response: str = "",
        parsed_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[JobLogEntry]:
        """Finalize an entry. Returns None when it is unknown or already finished."""
        entry = self.get(job_id)
        if entry is None or entry.finished:
            return None
        entry.status = JobStatus(status)
        entry.raw_response = raw_response or ""
        entry.parsed_code = parsed_code
        entry.error_message = error_message
        entry.finished_at = time.time()
        entry.bytes_received = len(entry.raw_response.encode("utf-8"))
        self._close_transcript(entry)
        return entry

    def _open_transcript(self, entry: JobLogEntry) -> Optional[str]:
        if not self.transcripts:
            return None
        started = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(entry.started_at))
        try:
            fd, path = tempfile.mkstemp(
                prefix=f"codesplice_job_{entry.id}_", suffix=".md", dir=self.transcript_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"# Job #{entry.id} [{entry.mode_label}]\n\n")
                f.write(f"- document: {entry.document_id}\n")
                f.write(f"- lines: {entry.line_range[0]}-{entry.line_range[1]}\n")
                f.write(f"- started: {started}\n\n")
                f.write("## Prompt\n\n")
                f.write(entry.prompt_text + "\n")
        except OSError as e:
            dbg(f"job_log: transcript open failed for #{entry.id}: {e}")
            return None
        return path

    def _close_transcript(self, entry: JobLogEntry) -> None:
        if not entry.transcript_path:
            return
        try:
            with open(entry.transcript_path, "a", encoding="utf-8") as f:
                f.write("\n## Response\n\n")
                f.write((entry.raw_response or "(empty)") + "\n")
                f.write(f"\n## Status: {entry.status.value}\n")
                if entry.error_message:
                    f.write(f"\n## Error\n\n{entry.error_message}\n")
        except OSError as e:
            dbg(f"job_log: transcript append failed for #{entry.id}: {e}")

    @staticmethod
    def format_entry(entry: JobLogEntry) -> str:
        icon = STATUS_ICONS.get(entry.status, " ")
        when = time.strftime("%H:%M:%S", time.localtime(entry.started_at))
        dur = f"{entry.duration:.1f}s" if entry.duration is not None else "running"
        name = os.path.basename(entry.document_id) or entry.document_id
        return (
            f"{icon} #{entry.id} {when} [{entry.mode_label}] "
            f"{name}:{entry.line_range[0]}-{entry.line_range[1]} {dur}"
        )

    @staticmethod
    def format_detail(entry: JobLogEntry) -> str:
        lines = [
            f"Job #{entry.id}",
            f"Status:   {entry.status.value}",
            f"Mode:     {entry.mode_label}",
            f"Document: {entry.document_id}",
            f"Lines:    {entry.line_range[0]}-{entry.line_range[1]}",
        ]
        if entry.duration is not None:
            lines.append(f"Duration: {entry.duration:.1f}s")
        lines.append(f"Bytes:    {entry.bytes_sent} sent / {entry.bytes_received} received")
        if entry.transcript_path:
            lines.append(f"Transcript: {entry.transcript_path}")
        if entry.error_message:
            lines += ["", "Error:", entry.error_message]

        prompt_lines = entry.prompt_text.split("\n")
        lines += ["", "Prompt:"] + prompt_lines[:DETAIL_PROMPT_LINES]
        if len(prompt_lines) > DETAIL_PROMPT_LINES:
            lines.append(f"... ({len(prompt_lines) - DETAIL_PROMPT_LINES} more lines)")

        if entry.raw_response:
            resp_lines = entry.raw_response.split("\n")
            lines += ["", "Response:"] + resp_lines[:DETAIL_RESPONSE_LINES]
            if len(resp_lines) > DETAIL_RESPONSE_LINES:
                lines.append(f"... ({len(resp_lines) - DETAIL_RESPONSE_LINES} more lines)")
        return "\n".join(lines)


_default_log: Optional[JobLog] = None


def get_job_log() -> JobLog:
    global _default_log
    if _default_log is None:
        _default_log = JobLog()
    return _default_log
