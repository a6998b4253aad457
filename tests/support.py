"""Test doubles shared by the runner and session tests."""

import asyncio
from typing import Callable, List, Optional, Tuple, Union

from codesplice.backends.base import BackendResult
from codesplice.errors import SPAWN_FAILED, TRANSPORT_ERROR, BackendError

Reply = Tuple[bytes, float]
Responder = Callable[[str], Union[bytes, Reply]]


class FakeBackend:
    """Transport double: each call resolves `delay` seconds after start.

    `respond(prompt)` returns stdout bytes, or (stdout, delay) to vary timing
    per job.
    """

    name = "fake"

    def __init__(
        self,
        stdout: bytes = b"",
        delay: float = 0.0,
        exit_code: int = 0,
        stderr: bytes = b"",
        respond: Optional[Responder] = None,
        spawn_error: bool = False,
        transport_error: bool = False,
    ):
        self.stdout = stdout
        self.delay = delay
        self.exit_code = exit_code
        self.stderr = stderr
        self.respond = respond
        self.spawn_error = spawn_error
        self.transport_error = transport_error
        self.prompts: List[str] = []
        self.handles: List["asyncio.Future[BackendResult]"] = []
        self.terminated: List["asyncio.Future[BackendResult]"] = []

    def _reply(self, prompt: str) -> Reply:
        if self.respond is None:
            return self.stdout, self.delay
        out = self.respond(prompt)
        if isinstance(out, tuple):
            return out
        return out, self.delay

    async def start(self, prompt: str) -> "asyncio.Future[BackendResult]":
        if self.spawn_error:
            raise BackendError(SPAWN_FAILED, "fake-agent: No such file or directory")
        self.prompts.append(prompt)
        stdout, delay = self._reply(prompt)
        loop = asyncio.get_running_loop()
        handle = loop.create_future()
        result = BackendResult(exit_code=self.exit_code, stdout=stdout, stderr=self.stderr)

        def _complete():
            if not handle.done():
                handle.set_result(result)

        loop.call_later(delay, _complete)
        self.handles.append(handle)
        return handle

    async def wait(self, handle, timeout: float) -> BackendResult:
        try:
            result = await asyncio.wait_for(asyncio.shield(handle), timeout=timeout)
        except asyncio.TimeoutError:
            return BackendResult.timeout()
        if self.transport_error:
            raise BackendError(TRANSPORT_ERROR, "malformed response envelope: no choices")
        return result

    def terminate(self, handle) -> None:
        self.terminated.append(handle)


class StubbornBackend(FakeBackend):
    """Ignores both the timeout and termination; its call always completes late."""

    async def wait(self, handle, timeout: float) -> BackendResult:
        return await asyncio.shield(handle)


class RecordingIndicator:
    def __init__(self):
        self.shown = {}
        self.updates = []
        self.cleared = []

    def show(self, job_id, document_id, start, end):
        self.shown[job_id] = (document_id, start, end)

    def update(self, job_id, start, end):
        self.updates.append((job_id, start, end))

    def clear(self, job_id):
        self.cleared.append(job_id)


def fenced(code: str, lang: str = "python") -> bytes:
    return f"```{lang}\n{code}\n```\n".encode("utf-8")


def numbered_doc(n: int) -> str:
    return "\n".join(f"line {i}" for i in range(1, n + 1))
