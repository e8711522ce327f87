"""Source-protocol error bodies."""

from __future__ import annotations

from fastapi.responses import JSONResponse

from bridgegate.core.errors import BridgeGateError, MethodNotAllowedError, UpstreamError


def error_response(exc: BridgeGateError, request_id: str) -> JSONResponse:
    detail = (exc.message or "").strip() or exc.code
    error: dict = {
        "type": exc.error_type,
        "code": exc.code,
        "message": detail,
    }
    if isinstance(exc, UpstreamError) and exc.upstream_status is not None:
        error["upstream_status"] = exc.upstream_status
    headers = {"Allow": "POST"} if isinstance(exc, MethodNotAllowedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"type": "error", "error": error, "request_id": request_id},
        headers=headers,
    )
