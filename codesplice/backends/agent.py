"""External command-line agent transport (`<agent> run [--model M] <prompt>`)."""

from __future__ import annotations

import asyncio
import os
from typing import List, Optional, Sequence

from .. import config
from ..errors import SPAWN_FAILED, BackendError
from ..utils import dbg
from .base import BackendResult


class AgentBackend:
    name = "agent"

    def __init__(
        self,
        agent_bin: str = config.AGENT_BIN,
        model: Optional[str] = config.MODEL,
        flags: Sequence[str] = tuple(config.AGENT_FLAGS),
        cwd: Optional[str] = config.AGENT_CWD,
    ):
        self.agent_bin = agent_bin
        self.model = model
        self.flags = list(flags)
        self.cwd = cwd

    def command(self, prompt: str) -> List[str]:
        cmd = [self.agent_bin, "run"]
        if self.model:
            cmd += ["--model", self.model]
        cmd += self.flags
        cmd.append(prompt)
        return cmd

    async def start(self, prompt: str) -> asyncio.subprocess.Process:
        cmd = self.command(prompt)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except (OSError, ValueError) as e:
            raise BackendError(
                SPAWN_FAILED, f"{os.path.basename(self.agent_bin)}: {e}"
            ) from e
        dbg(f"agent: spawned pid={proc.pid} bin={self.agent_bin} prompt_len={len(prompt)}")
        return proc

    async def wait(self, handle: asyncio.subprocess.Process, timeout: float) -> BackendResult:
        try:
            stdout, stderr = await asyncio.wait_for(handle.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            return BackendResult.timeout()
        return BackendResult(
            exit_code=handle.returncode if handle.returncode is not None else -1,
            stdout=stdout or b"",
            stderr=stderr or b"",
        )

    def terminate(self, handle: asyncio.subprocess.Process) -> None:
        if handle is None or handle.returncode is not None:
            return
        try:
            handle.terminate()
        except ProcessLookupError:
            pass
        dbg(f"agent: sent SIGTERM to pid={handle.pid}")
