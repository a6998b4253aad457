"""In-flight job table: overlap checks and line-range bookkeeping.

The registry is a plain object owned by the session and handed to the
runner and the edit applier. It is only touched from the event-loop thread,
so admission (overlap check + register) is atomic as long as it happens in
one synchronous call, which `admit` guarantees.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .errors import SubmissionRejected


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    NO_CHANGE = "no_change"
    PARSE_FAILED = "parse_failed"
    BACKEND_ERROR = "backend_error"
    EMPTY_OUTPUT = "empty_output"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (JobStatus.PENDING, JobStatus.RUNNING)


@dataclass(frozen=True)
class Selection:
    """Snapshot of what the user asked to transform. Lines are 1-based, inclusive."""

    document_id: str
    start_line: int
    end_line: int
    original_text: str
    language: str = ""

    def __post_init__(self):
        if self.start_line < 1:
            raise ValueError(f"start_line must be >= 1 (got {self.start_line})")
        if self.end_line < self.start_line:
            raise ValueError(
                f"end_line {self.end_line} is before start_line {self.start_line}"
            )

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


@dataclass
class Job:
    id: int
    document_id: str
    current_start_line: int
    current_end_line: int
    mode_label: str = "custom"
    status: JobStatus = JobStatus.PENDING
    backend_handle: Optional[Any] = None
    started_at: float = field(default_factory=time.time)

    def covers(self, line: int) -> bool:
        return self.current_start_line <= line <= self.current_end_line

    def distance_to(self, line: int) -> int:
        if self.covers(line):
            return 0
        return min(abs(line - self.current_start_line), abs(line - self.current_end_line))


class SelectionRegistry:
    def __init__(self):
        self._jobs: Dict[int, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: int) -> bool:
        return job_id in self._jobs

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs.values()))

    def get(self, job_id: int) -> Optional[Job]:
        return self._jobs.get(job_id)

    def active(self) -> List[Job]:
        return sorted(self._jobs.values(), key=lambda j: j.id)

    def jobs_for(self, document_id: str) -> List[Job]:
        return [j for j in self.active() if j.document_id == document_id]

    def overlaps(
        self,
        document_id: str,
        start: int,
        end: int,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """True iff a registered job on the same document shares at least one line."""
        for job in self._jobs.values():
            if job.id == exclude_id or job.document_id != document_id:
                continue
            if start <= job.current_end_line and end >= job.current_start_line:
                return True
        return False

    def register(self, job: Job) -> None:
        if job.current_end_line < job.current_start_line:
            raise ValueError(f"job #{job.id}: end line before start line")
        if job.id in self._jobs:
            raise ValueError(f"job #{job.id} already registered")
        self._jobs[job.id] = job

    def admit(self, job: Job) -> None:
        """Overlap check and registration as one step; raises SubmissionRejected."""
        if self.overlaps(job.document_id, job.current_start_line, job.current_end_line):
            raise SubmissionRejected(
                "overlap",
                f"lines {job.current_start_line}-{job.current_end_line} overlap a running job",
            )
        self.register(job)

    def deregister(self, job_id: int) -> Optional[Job]:
        return self._jobs.pop(job_id, None)

    def shift_after(
        self,
        excluding_id: Optional[int],
        document_id: str,
        boundary_line: int,
        delta: int,
    ) -> List[Job]:
        """Move every other job on the document that starts after boundary_line by delta.

        Jobs starting at or before the boundary are left alone. Returns the
        jobs that moved.
        """
        if delta == 0:
            return []
        shifted: List[Job] = []
        for job in self.active():
            if job.id == excluding_id or job.document_id != document_id:
                continue
            if job.current_start_line > boundary_line:
                job.current_start_line += delta
                job.current_end_line += delta
                shifted.append(job)
        return shifted
