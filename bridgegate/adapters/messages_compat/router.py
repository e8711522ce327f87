"""Messages-compatible routes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from bridgegate.adapters.messages_compat.extractor import TEXT_ONLY_EXTRACTOR, ContentExtractor
from bridgegate.adapters.messages_compat.mapper import to_canonical, to_source
from bridgegate.adapters.messages_compat.upstream import UpstreamClient, decode_chat_completion
from bridgegate.config.settings import Settings
from bridgegate.core.context import (
    STAGE_BACKEND_OK,
    STAGE_CONVERTED,
    STAGE_DISPATCHED,
    STAGE_PARSED,
    STAGE_SENT,
    STAGE_SIZE_CHECKED,
    STAGE_TRANSLATED,
    STAGE_VALIDATED,
    RequestContext,
)
from bridgegate.core.errors import BridgeGateError, InternalError, MethodNotAllowedError
from bridgegate.core.models import CanonicalRequest
from bridgegate.core.responses import error_response
from bridgegate.core.validator import (
    check_declared_length,
    parse_source_request,
    read_capped_body,
    validate_source_request,
)
from bridgegate.util.logger import logger

MESSAGES_ROUTE = "/v1/messages"
# 客户端断开检测的轮询间隔
_DISCONNECT_POLL_SECONDS = 0.5
# nginx 约定的 "client closed request"，仅用于日志与占位响应
_CLIENT_CLOSED_STATUS = 499

T = TypeVar("T")


class ClientDisconnected(Exception):
    """Caller went away while the backend call was in flight."""


async def _await_unless_disconnected(request: Request, awaitable: Awaitable[T]) -> T:
    task = asyncio.ensure_future(awaitable)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


def _encode_canonical(canonical: CanonicalRequest) -> bytes:
    try:
        return json.dumps(canonical.to_wire(), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise InternalError(f"Failed to marshal request: {exc}", code="request_encoding_failed") from exc


class MessagesHandler:
    """Runs one /v1/messages call: validate, parse, convert, dispatch, translate, emit.

    Every stage is a single terminal failure point; the first BridgeGateError
    becomes the response and nothing else is written.
    """

    def __init__(
        self,
        config: Settings,
        upstream: UpstreamClient,
        extractor: ContentExtractor = TEXT_ONLY_EXTRACTOR,
    ) -> None:
        self.config = config
        self.upstream = upstream
        self.extractor = extractor

    def _request_id(self, request: Request) -> str:
        request_id = getattr(request.state, "request_id", "")
        if request_id:
            return request_id
        return request.headers.get(self.config.request_id_header, "")

    async def handle(self, request: Request) -> Response:
        ctx = RequestContext(
            request_id=self._request_id(request),
            route=MESSAGES_ROUTE,
            provider=self.config.provider_name,
        )
        try:
            return await self._run(request, ctx)
        except ClientDisconnected:
            logger.info(
                "client disconnected request_id=%s stage=%s elapsed_ms=%d",
                ctx.request_id,
                ctx.stage,
                ctx.elapsed_ms(),
            )
            return Response(status_code=_CLIENT_CLOSED_STATUS)
        except BridgeGateError as exc:
            log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
            logger.log(
                log_level,
                "request failed request_id=%s stage=%s class=%s code=%s status=%s model=%s error=%s",
                ctx.request_id,
                ctx.stage,
                type(exc).__name__,
                exc.code,
                exc.status_code,
                ctx.model or "-",
                exc.message,
            )
            return error_response(exc, ctx.request_id)

    async def _run(self, request: Request, ctx: RequestContext) -> Response:
        limit = int(self.config.max_request_body_bytes)
        check_declared_length(request.headers.get("content-length"), limit)
        body = await read_capped_body(request, limit)
        ctx.advance(STAGE_SIZE_CHECKED)

        source_req = parse_source_request(body)
        ctx.model = source_req.model
        ctx.advance(STAGE_PARSED)

        validate_source_request(
            source_req,
            max_messages=int(self.config.max_messages_count),
            max_tokens=int(self.config.max_tokens_limit),
        )
        ctx.advance(STAGE_VALIDATED)
        logger.debug(
            "messages request request_id=%s model=%s messages=%d system=%s body_bytes=%d",
            ctx.request_id,
            source_req.model,
            len(source_req.messages),
            source_req.system is not None,
            len(body),
        )

        canonical = to_canonical(source_req, self.extractor)
        upstream_body = _encode_canonical(canonical)
        ctx.advance(STAGE_CONVERTED)

        ctx.advance(STAGE_DISPATCHED)
        status_code, raw = await _await_unless_disconnected(
            request,
            self.upstream.post_chat_completions(upstream_body, ctx.request_id),
        )
        upstream_resp = decode_chat_completion(status_code, raw, self.config.provider_name)
        ctx.advance(STAGE_BACKEND_OK)

        source_resp = to_source(upstream_resp)
        ctx.advance(STAGE_TRANSLATED)

        try:
            response = JSONResponse(status_code=200, content=source_resp.model_dump(mode="json"))
        except (TypeError, ValueError) as exc:
            raise InternalError(f"Failed to encode response: {exc}", code="response_encoding_failed") from exc
        ctx.advance(STAGE_SENT)
        logger.info(
            "messages ok request_id=%s model=%s provider=%s stop_reason=%s elapsed_ms=%d",
            ctx.request_id,
            source_req.model,
            ctx.provider,
            source_resp.stop_reason,
            ctx.elapsed_ms(),
        )
        return response

    async def reject_method(self, request: Request) -> Response:
        request_id = self._request_id(request)
        logger.warning("method not allowed request_id=%s method=%s path=%s", request_id, request.method, request.url.path)
        return error_response(MethodNotAllowedError("Method not allowed"), request_id)


def build_router(handler: MessagesHandler) -> APIRouter:
    router = APIRouter()

    @router.post("/messages")
    async def messages(request: Request) -> Response:
        return await handler.handle(request)

    @router.api_route("/messages", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
    async def messages_wrong_method(request: Request) -> Response:
        return await handler.reject_method(request)

    return router
