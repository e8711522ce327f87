"""Messages <-> chat-completions model mapping."""

from __future__ import annotations

from bridgegate.adapters.messages_compat.extractor import TEXT_ONLY_EXTRACTOR, ContentExtractor
from bridgegate.core.models import (
    CanonicalMessage,
    CanonicalRequest,
    CanonicalResponse,
    SourceRequest,
    SourceResponse,
    SourceUsage,
    TextContent,
)

SOURCE_ID_PREFIX = "msg_"
STOP_REASON_END_TURN = "end_turn"
# 非 "stop" 的 finish_reason（length / content_filter / tool_calls ...）统一折叠为 max_tokens
STOP_REASON_MAX_TOKENS = "max_tokens"


def to_canonical(req: SourceRequest, extractor: ContentExtractor = TEXT_ONLY_EXTRACTOR) -> CanonicalRequest:
    messages: list[CanonicalMessage] = []

    if req.system is not None:
        system_text = extractor.extract(req.system)
        if system_text:
            messages.append(CanonicalMessage(role="system", content=system_text))

    for item in req.messages:
        messages.append(CanonicalMessage(role=item.role, content=extractor.extract(item.content)))

    return CanonicalRequest(
        model=req.model,
        messages=tuple(messages),
        max_tokens=req.max_tokens,
        temperature=req.temperature,
        top_p=req.top_p,
    )


def map_finish_reason(finish_reason: str | None) -> str:
    if finish_reason == "stop":
        return STOP_REASON_END_TURN
    return STOP_REASON_MAX_TOKENS


def to_source(resp: CanonicalResponse) -> SourceResponse:
    output = SourceResponse(
        id=f"{SOURCE_ID_PREFIX}{resp.id}",
        model=resp.model,
        usage=SourceUsage(
            input_tokens=resp.usage.prompt_tokens or 0,
            output_tokens=resp.usage.completion_tokens or 0,
        ),
    )
    if resp.choices:
        first = resp.choices[0]
        output.content = [TextContent(text=first.message.content or "")]
        output.stop_reason = map_finish_reason(first.finish_reason)
    return output
