"""FastAPI app entry."""

from __future__ import annotations

import re
import uuid
from typing import Awaitable, Callable

import httpx
from fastapi import FastAPI, Request
from starlette.responses import Response

from bridgegate.adapters.messages_compat.router import MessagesHandler, build_router
from bridgegate.adapters.messages_compat.upstream import UpstreamClient
from bridgegate.config.settings import Settings, load_settings
from bridgegate.core.auth import HEALTH_PATH, AuthGate
from bridgegate.core.errors import InternalError
from bridgegate.core.responses import error_response
from bridgegate.util.logger import logger

RESPONSE_REQUEST_ID_HEADER = "X-Request-ID"
# 外部传入的关联 ID 会回显到响应头与日志，限制长度与字符集
_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._:\-]{1,128}")


def resolve_request_id(raw: str | None) -> str:
    candidate = (raw or "").strip()
    if candidate and _REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Tags each request with a correlation id and echoes it on the response."""

    def __init__(self, config: Settings) -> None:
        self.header = config.request_id_header

    async def __call__(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = resolve_request_id(request.headers.get(self.header))
        request.state.request_id = request_id
        logger.debug("request enter request_id=%s method=%s path=%s", request_id, request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception as exc:  # pragma: no cover - fail-safe
            logger.exception("gateway unhandled exception request_id=%s path=%s", request_id, request.url.path)
            response = error_response(InternalError(f"gateway internal error: {type(exc).__name__}"), request_id)
        response.headers[RESPONSE_REQUEST_ID_HEADER] = request_id
        return response


def health_payload(config: Settings) -> dict:
    return {"status": "ok", "provider": config.provider_name}


def create_app(config: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the proxy app around one immutable config and one pooled upstream client."""

    config = config or load_settings()
    upstream = UpstreamClient(config, transport=transport)
    handler = MessagesHandler(config, upstream)

    app = FastAPI(title=config.app_name)
    app.state.config = config
    app.state.upstream = upstream
    app.include_router(build_router(handler), prefix="/v1")

    @app.get(HEALTH_PATH)
    def health() -> dict:
        logger.debug("health check")
        return health_payload(config)

    @app.on_event("shutdown")
    async def shutdown_cleanup() -> None:
        await upstream.aclose()
        logger.info("upstream client closed provider=%s", config.provider_name)

    # 后注册的在外层：关联 ID 先于鉴权，401 也带 X-Request-ID
    app.middleware("http")(AuthGate(config))
    app.middleware("http")(CorrelationIdMiddleware(config))
    return app

