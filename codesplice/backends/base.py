"""Transport protocol for model backends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class BackendResult:
    exit_code: int = 0
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False

    @classmethod
    def timeout(cls) -> "BackendResult":
        return cls(exit_code=-1, timed_out=True)

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class BackendTransport(Protocol):
    name: str

    async def start(self, prompt: str) -> Any:
        """Begin one model call. Raises BackendError(spawn_failed) if it cannot start."""
        ...

    async def wait(self, handle: Any, timeout: float) -> BackendResult:
        """Completion or timeout, whichever comes first.

        Returns BackendResult(timed_out=True) on timeout without terminating
        the call; raises BackendError(transport_error) on transport failures.
        """
        ...

    def terminate(self, handle: Any) -> None:
        """Fire-and-forget termination. Safe to call on a finished handle."""
        ...
