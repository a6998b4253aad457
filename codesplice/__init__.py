"""codesplice: per-selection code-model jobs spliced back into the document."""

from .errors import BackendError, SubmissionRejected, UnknownMode
from .extractor import Accepted, Rejected, extract
from .job_log import JobLog, JobLogEntry, get_job_log
from .registry import Job, JobStatus, Selection, SelectionRegistry

__all__ = [
    "Accepted",
    "BackendError",
    "Job",
    "JobLog",
    "JobLogEntry",
    "JobStatus",
    "Rejected",
    "Selection",
    "SelectionRegistry",
    "SubmissionRejected",
    "UnknownMode",
    "extract",
    "get_job_log",
]

__version__ = "0.1.0"
