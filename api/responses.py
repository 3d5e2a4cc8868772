"""
Response envelope helpers.

Every endpoint answers ``{success, data?, error?, timestamp}``.  Success
responses also carry a fixed ``Cache-Control: public, max-age=N`` and, for
cached endpoints, ``X-Cache: HIT|MISS``.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi.responses import JSONResponse


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def cache_headers(max_age: int, cache_status: str | None = None) -> dict[str, str]:
    headers = {"Cache-Control": f"public, max-age={max_age}"}
    if cache_status:
        headers["X-Cache"] = cache_status
    return headers


def success_response(
    data: Any,
    max_age: int | None = None,
    cache_status: str | None = None,
) -> JSONResponse:
    headers = cache_headers(max_age, cache_status) if max_age is not None else None
    return JSONResponse(
        content={"success": True, "data": data, "timestamp": utc_timestamp()},
        headers=headers,
    )


def error_response(
    status_code: int,
    message: str,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": message}
    if details is not None:
        content["details"] = details
    content["timestamp"] = utc_timestamp()
    return JSONResponse(status_code=status_code, content=content, headers=headers)
