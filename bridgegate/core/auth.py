"""Optional bearer-token gate in front of the translation endpoint."""

from __future__ import annotations

import hmac
from typing import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response

from bridgegate.config.settings import Settings
from bridgegate.core.errors import AuthError
from bridgegate.core.responses import error_response
from bridgegate.util.logger import logger

HEALTH_PATH = "/health"
_BEARER_PREFIX = "Bearer "


def is_authorized(path: str, authorization: str | None, config: Settings) -> bool:
    if path == HEALTH_PATH:
        return True
    if not config.auth_enabled:
        return True
    header = authorization or ""
    if not header.startswith(_BEARER_PREFIX):
        return False
    presented = header[len(_BEARER_PREFIX):]
    return hmac.compare_digest(presented.encode("utf-8"), config.proxy_auth_token.encode("utf-8"))


class AuthGate:
    """HTTP middleware; stateless apart from the config it was built with."""

    def __init__(self, config: Settings) -> None:
        self.config = config

    async def __call__(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if is_authorized(request.url.path, request.headers.get("authorization"), self.config):
            return await call_next(request)
        request_id = getattr(request.state, "request_id", "")
        logger.warning(
            "auth rejected request_id=%s method=%s path=%s header_present=%s",
            request_id or "-",
            request.method,
            request.url.path,
            "authorization" in request.headers,
        )
        return error_response(AuthError(), request_id)
