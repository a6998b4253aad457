"""Exceptions raised at the edges of the job pipeline.

Inside a running job every failure resolves into a terminal status; these
classes only cross the boundary where a caller must react synchronously
(submission) or where a transport hands a failure back to the runner.
"""

SPAWN_FAILED = "spawn_failed"
NONZERO_EXIT = "nonzero_exit"
TRANSPORT_ERROR = "transport_error"


class SubmissionRejected(Exception):
    """A selection could not be admitted; no job was created."""

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        super().__init__(message or reason)


class BackendError(Exception):
    """Transport-level failure: spawn_failed, nonzero_exit or transport_error."""

    def __init__(self, kind: str, message: str = ""):
        self.kind = kind
        self.message = message or kind
        super().__init__(f"{kind}: {self.message}")


class UnknownMode(KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"unknown mode: {self.name}"
