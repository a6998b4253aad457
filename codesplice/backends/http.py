"""Hosted model transport: one OpenAI-compatible chat-completions request per job."""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib import error as urllib_error
from urllib import request as urllib_request

from .. import config
from ..errors import SPAWN_FAILED, TRANSPORT_ERROR, BackendError
from ..utils import dbg, dbg_dump
from .base import BackendResult


@dataclass
class HttpCall:
    future: "asyncio.Future[bytes]"
    terminated: bool = False


class HttpBackend:
    name = "http"

    def __init__(
        self,
        url: str = config.HTTP_URL,
        model: str = config.HTTP_MODEL,
        api_key: Optional[str] = None,
        max_tokens: int = config.HTTP_MAX_TOKENS,
        temperature: float = config.HTTP_TEMPERATURE,
        max_response_bytes: int = config.HTTP_MAX_RESPONSE_BYTES,
        request_timeout: float = config.JOB_TIMEOUT,
    ):
        self.url = url
        self.model = model
        self.api_key = api_key if api_key is not None else os.getenv(config.HTTP_API_KEY_ENV, "")
        self.max_tokens = max(1, int(max_tokens))
        self.temperature = float(temperature)
        self.max_response_bytes = max(1, int(max_response_bytes))
        self.request_timeout = max(0.05, float(request_timeout))

    def payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": False,
        }

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(self, prompt: str) -> bytes:
        """Blocking request; runs in a worker thread."""
        req = urllib_request.Request(
            self.url,
            data=json.dumps(self.payload(prompt)).encode("utf-8"),
            headers=self._headers(),
            method="POST",
        )
        try:
            with urllib_request.urlopen(req, timeout=self.request_timeout) as resp:
                raw = resp.read(self.max_response_bytes + 1)
        except urllib_error.HTTPError as e:
            body = ""
            try:
                body = e.read(2000).decode("utf-8", errors="replace")
            except OSError:
                pass
            raise BackendError(TRANSPORT_ERROR, f"HTTP {e.code}: {body.strip() or e.reason}") from e
        except (urllib_error.URLError, OSError) as e:
            raise BackendError(TRANSPORT_ERROR, f"request failed: {e}") from e

        if len(raw) > self.max_response_bytes:
            raise BackendError(
                TRANSPORT_ERROR, f"response exceeds {self.max_response_bytes} bytes"
            )
        dbg_dump("http: raw envelope", raw.decode("utf-8", errors="replace"))
        return parse_envelope(raw).encode("utf-8")

    async def start(self, prompt: str) -> HttpCall:
        try:
            future = asyncio.ensure_future(asyncio.to_thread(self._request, prompt))
        except RuntimeError as e:
            raise BackendError(SPAWN_FAILED, f"could not schedule request: {e}") from e
        dbg(f"http: POST {self.url} model={self.model} prompt_len={len(prompt)}")
        return HttpCall(future=future)

    async def wait(self, handle: HttpCall, timeout: float) -> BackendResult:
        try:
            content = await asyncio.wait_for(asyncio.shield(handle.future), timeout=timeout)
        except asyncio.TimeoutError:
            return BackendResult.timeout()
        return BackendResult(exit_code=0, stdout=content)

    def terminate(self, handle: HttpCall) -> None:
        # The worker thread cannot be interrupted; its result is discarded.
        if handle is None or handle.terminated:
            return
        handle.terminated = True
        if not handle.future.done():
            handle.future.cancel()
        dbg("http: request abandoned")


def parse_envelope(raw: bytes) -> str:
    """Pull the assistant text out of a chat-completions response body."""
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise BackendError(TRANSPORT_ERROR, f"malformed response envelope: {e}") from e
    if not isinstance(data, dict):
        raise BackendError(TRANSPORT_ERROR, "malformed response envelope: not an object")
    if data.get("error"):
        err = data["error"]
        msg = err.get("message") if isinstance(err, dict) else str(err)
        raise BackendError(TRANSPORT_ERROR, f"backend error: {msg}")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise BackendError(TRANSPORT_ERROR, "malformed response envelope: no choices")
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message")
    content = message.get("content") if isinstance(message, dict) else first.get("text")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise BackendError(TRANSPORT_ERROR, "malformed response envelope: content is not text")
    return content
