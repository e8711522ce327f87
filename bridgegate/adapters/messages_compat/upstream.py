"""
上游 chat/completions 调用：连接池、超时与响应解码。从 router 拆出，便于维护与单测。
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx
from pydantic import ValidationError

from bridgegate.config.settings import Settings
from bridgegate.core.errors import UpstreamError
from bridgegate.core.models import CanonicalResponse
from bridgegate.util.logger import logger

CHAT_COMPLETIONS_PATH = "/chat/completions"
_ERROR_DETAIL_MAX_CHARS = 600


def _normalize_upstream_base(raw_base: str) -> str:
    candidate = raw_base.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("invalid_upstream_scheme")
    if not parsed.netloc:
        raise ValueError("invalid_upstream_host")
    if parsed.query or parsed.fragment:
        raise ValueError("invalid_upstream_query_fragment")
    # 只去掉一个结尾斜杠
    cleaned_path = parsed.path[:-1] if parsed.path.endswith("/") else parsed.path
    return urlunparse((parsed.scheme, parsed.netloc, cleaned_path, "", "", ""))


def _upstream_http_limits(config: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(config.upstream_max_connections)),
        max_keepalive_connections=max(5, int(config.upstream_max_keepalive_connections)),
        keepalive_expiry=float(config.upstream_keepalive_expiry_seconds),
    )


def _upstream_http_timeout(config: Settings) -> httpx.Timeout:
    overall = float(config.upstream_timeout_seconds)
    return httpx.Timeout(
        connect=float(config.upstream_connect_timeout_seconds),
        read=float(config.upstream_read_timeout_seconds),
        write=overall,
        pool=overall,
    )


def _decode_json_or_text(body: bytes) -> dict[str, Any] | str:
    text = body.decode("utf-8", errors="replace")
    if not text:
        return ""
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
        return text
    except json.JSONDecodeError:
        return text


def _safe_error_detail(payload: dict[str, Any] | str) -> str:
    if isinstance(payload, str):
        return payload[:_ERROR_DETAIL_MAX_CHARS]
    error = payload.get("error")
    if isinstance(error, str):
        return error[:_ERROR_DETAIL_MAX_CHARS]
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"][:_ERROR_DETAIL_MAX_CHARS]
    return json.dumps(payload, ensure_ascii=False)[:_ERROR_DETAIL_MAX_CHARS]


def decode_chat_completion(status_code: int, body: bytes, provider: str) -> CanonicalResponse:
    """Turn a raw backend reply into a CanonicalResponse or raise UpstreamError."""

    if status_code != 200:
        detail = _safe_error_detail(_decode_json_or_text(body))
        raise UpstreamError(
            f"{provider} error: {detail}",
            code="upstream_http_error",
            upstream_status=status_code,
        )

    try:
        parsed = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UpstreamError(
            f"Failed to parse {provider} response: {exc}",
            code="upstream_invalid_response",
            upstream_status=status_code,
        ) from exc
    if not isinstance(parsed, dict):
        raise UpstreamError(
            f"Failed to parse {provider} response: expected a JSON object",
            code="upstream_invalid_response",
            upstream_status=status_code,
        )

    try:
        resp = CanonicalResponse.model_validate(parsed)
    except ValidationError as exc:
        raise UpstreamError(
            f"Failed to parse {provider} response: {exc.error_count()} invalid field(s)",
            code="upstream_invalid_response",
            upstream_status=status_code,
        ) from exc

    if resp.error is not None:
        raise UpstreamError(
            f"{provider} returned error: {_safe_error_detail(parsed)}",
            code="upstream_reported_error",
            upstream_status=status_code,
        )
    return resp


class UpstreamClient:
    """Pooled client for one backend. Safe to share across concurrent requests."""

    def __init__(self, config: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.provider = config.provider_name
        self.base_url = _normalize_upstream_base(config.base_url)
        self.url = f"{self.base_url}{CHAT_COMPLETIONS_PATH}"
        self._token = config.provider_token
        self._overall_timeout = float(config.upstream_timeout_seconds)
        self._timeout = _upstream_http_timeout(config)
        self._limits = _upstream_http_limits(config)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    http2=False,
                    timeout=self._timeout,
                    limits=self._limits,
                    transport=self._transport,
                )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_headers(self, request_id: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "X-Request-ID": request_id,
        }

    async def post_chat_completions(self, body: bytes, request_id: str) -> tuple[int, bytes]:
        logger.debug("forward_json start request_id=%s url=%s payload_bytes=%d", request_id, self.url, len(body))
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(
                client.post(self.url, content=body, headers=self._build_headers(request_id)),
                timeout=self._overall_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            detail = (str(exc) or "").strip() or "timed out"
            logger.warning("forward_json timeout request_id=%s url=%s error=%s", request_id, self.url, detail)
            raise UpstreamError(f"Failed to call {self.provider}: {detail}", code="upstream_timeout") from exc
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or "connection_failed"
            logger.warning("forward_json http_error request_id=%s url=%s error=%s", request_id, self.url, detail)
            raise UpstreamError(f"Failed to call {self.provider}: {detail}", code="upstream_unreachable") from exc
        logger.debug("forward_json done request_id=%s status=%s", request_id, response.status_code)
        return response.status_code, response.content
