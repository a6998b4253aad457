"""Interchangeable model transports behind one protocol."""

from typing import Any, Optional

from .. import config
from .agent import AgentBackend
from .base import BackendResult, BackendTransport
from .http import HttpBackend, parse_envelope

__all__ = [
    "AgentBackend",
    "BackendResult",
    "BackendTransport",
    "HttpBackend",
    "make_backend",
    "parse_envelope",
]

_BACKENDS = {
    "agent": AgentBackend,
    "http": HttpBackend,
}


def make_backend(name: Optional[str] = None, **kwargs: Any) -> BackendTransport:
    key = (name or config.BACKEND or "agent").strip().lower()
    cls = _BACKENDS.get(key)
    if cls is None:
        raise ValueError(f"unknown backend {key!r} (expected one of {sorted(_BACKENDS)})")
    return cls(**kwargs)
