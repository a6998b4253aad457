"""User-facing notifications and progress indicators.

These are separate from `dbg` logging: exactly one notification is emitted
per terminal job state, at a severity matching the outcome.
"""

import sys
from enum import Enum
from typing import List, Protocol, Tuple

from .registry import JobStatus


class NoticeLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


STATUS_LEVELS = {
    JobStatus.SUCCEEDED: NoticeLevel.INFO,
    JobStatus.NO_CHANGE: NoticeLevel.INFO,
    JobStatus.CANCELLED: NoticeLevel.INFO,
    JobStatus.PARSE_FAILED: NoticeLevel.WARN,
    JobStatus.EMPTY_OUTPUT: NoticeLevel.WARN,
    JobStatus.BACKEND_ERROR: NoticeLevel.ERROR,
    JobStatus.TIMED_OUT: NoticeLevel.ERROR,
}


def level_for(status: JobStatus) -> NoticeLevel:
    return STATUS_LEVELS.get(status, NoticeLevel.INFO)


class Notifier(Protocol):
    def notify(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> None:
        ...


class ProgressIndicator(Protocol):
    def show(self, job_id: int, document_id: str, start: int, end: int) -> None:
        ...

    def update(self, job_id: int, start: int, end: int) -> None:
        ...

    def clear(self, job_id: int) -> None:
        ...


class StderrNotifier:
    def __init__(self, stream=None):
        self.stream = stream

    def notify(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> None:
        tag = "" if level == NoticeLevel.INFO else f"{NoticeLevel(level).value}: "
        print(f"[codesplice] {tag}{message}", file=self.stream or sys.stderr)


class RecordingNotifier:
    """Keeps every notification in memory."""

    def __init__(self):
        self.messages: List[Tuple[NoticeLevel, str]] = []

    def notify(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> None:
        self.messages.append((NoticeLevel(level), message))

    def levels(self) -> List[NoticeLevel]:
        return [lvl for lvl, _ in self.messages]


class NullIndicator:
    def show(self, job_id: int, document_id: str, start: int, end: int) -> None:
        pass

    def update(self, job_id: int, start: int, end: int) -> None:
        pass

    def clear(self, job_id: int) -> None:
        pass
