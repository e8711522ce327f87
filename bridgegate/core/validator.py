"""
请求边界校验：传输层（体积上限）与协议层（字段范围）。
两层都必须在转换之前通过；协议层按固定顺序检查，第一个不满足的规则即返回。
"""

from __future__ import annotations

import json
from typing import Any, NoReturn

from pydantic import ValidationError
from starlette.requests import Request

from bridgegate.core.errors import ClientInputError, PayloadTooLargeError
from bridgegate.core.models import SourceRequest

TEMPERATURE_RANGE = (0.0, 2.0)
TOP_P_RANGE = (0.0, 1.0)


def check_declared_length(raw_header: str | None, limit: int) -> int | None:
    """Reject a declared Content-Length above *limit*. Returns the parsed value, if any."""

    candidate = (raw_header or "").strip()
    if not candidate:
        return None
    try:
        declared = int(candidate)
    except ValueError:
        raise ClientInputError("invalid Content-Length header", code="invalid_content_length") from None
    if declared < 0:
        raise ClientInputError("invalid Content-Length header", code="invalid_content_length")
    if limit > 0 and declared > limit:
        raise PayloadTooLargeError(f"request body too large: {declared} bytes (max: {limit})")
    return declared


async def read_capped_body(request: Request, limit: int) -> bytes:
    """Read the request body, aborting as soon as more than *limit* bytes arrive.

    The declared Content-Length is not trusted here; a missing or understated header
    still cannot push more than *limit* bytes into memory.
    """

    received = bytearray()
    async for chunk in request.stream():
        if not chunk:
            continue
        received.extend(chunk)
        if limit > 0 and len(received) > limit:
            raise PayloadTooLargeError(f"request body too large: exceeds {limit} bytes")
    return bytes(received)


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def parse_source_request(body: bytes) -> SourceRequest:
    try:
        payload: Any = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        raise ClientInputError("invalid JSON: body is not valid UTF-8", code="invalid_json") from None
    except json.JSONDecodeError as exc:
        raise ClientInputError(f"invalid JSON: {exc.msg} at position {exc.pos}", code="invalid_json") from None
    if not isinstance(payload, dict):
        raise ClientInputError("invalid JSON: request body must be an object", code="invalid_json")
    try:
        return SourceRequest.model_validate(payload)
    except ValidationError as exc:
        raise ClientInputError(f"invalid request: {_describe_validation_error(exc)}", code="invalid_request_shape") from None


def _fail(message: str) -> NoReturn:
    raise ClientInputError(message, code="validation_failed")


def validate_source_request(req: SourceRequest, *, max_messages: int, max_tokens: int) -> None:
    if not req.model:
        _fail("model is required")

    if not req.messages:
        _fail("messages array cannot be empty")
    if max_messages > 0 and len(req.messages) > max_messages:
        _fail(f"too many messages: {len(req.messages)} (max: {max_messages})")

    if req.max_tokens is not None:
        if req.max_tokens > max_tokens:
            _fail(f"max_tokens too large: {req.max_tokens} (max: {max_tokens})")
        if req.max_tokens < 0:
            _fail("max_tokens cannot be negative")

    low, high = TEMPERATURE_RANGE
    if req.temperature is not None and not (low <= req.temperature <= high):
        _fail(f"temperature must be between {low:g} and {high:g}, got: {req.temperature:g}")

    low, high = TOP_P_RANGE
    if req.top_p is not None and not (low <= req.top_p <= high):
        _fail(f"top_p must be between {low:g} and {high:g}, got: {req.top_p:g}")
