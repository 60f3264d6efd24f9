from __future__ import annotations

from typing import Any

import requests


def _retry_after_seconds(response: Any) -> float | None:
    headers = getattr(response, "headers", None) or {}
    try:
        value = headers.get("Retry-After")
    except Exception:
        return None
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def is_retryable_http_exception(exc: BaseException) -> tuple[bool, float | None, str | None]:
    """
    Retry policy for XRPC calls:
    - connection errors and timeouts
    - HTTP 429 (honouring Retry-After)
    - HTTP 500+
    """
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        code = getattr(response, "status_code", None)
        if code == 429:
            return True, _retry_after_seconds(response), "http_429"
        if isinstance(code, int) and code >= 500:
            return True, None, f"http_{code}"
        return False, None, f"http_{code}" if code is not None else "http_status"

    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True, None, "network_error"

    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True, None, "network_error"

    return False, None, None
