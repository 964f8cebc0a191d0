from __future__ import annotations

from kpis.core.types import JsonObject


def error_envelope(message: str, *, code: str | None = None) -> JsonObject:
    payload: JsonObject = {"ok": False, "error": message}
    if code is not None:
        payload["code"] = code
    return payload
