from __future__ import annotations

from contextvars import ContextVar, Token
from uuid import uuid4

_REQUEST_ID: ContextVar[str | None] = ContextVar("kpis_request_id", default=None)

REQUEST_ID_HEADER = "X-Request-Id"


def current_request_id() -> str | None:
    return _REQUEST_ID.get()


def bind_request_id(value: str | None) -> tuple[str, Token[str | None]]:
    resolved = (value or "").strip()[:64] or uuid4().hex
    return resolved, _REQUEST_ID.set(resolved)


def unbind_request_id(token: Token[str | None]) -> None:
    _REQUEST_ID.reset(token)
