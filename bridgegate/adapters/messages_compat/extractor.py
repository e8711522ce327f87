"""
消息内容归一化：source 协议的 content 可能是字符串、内容块列表或其他形状，
统一压平成一个字符串再发往上游。该函数永不失败，未知形状退化为默认文本表示。
"""

from __future__ import annotations

from typing import Any, Mapping

from bridgegate.core.models import ContentBlock

BLOCK_SEPARATOR = "\n"


class ContentExtractor:
    """Flattening policy for one content value.

    The default policy keeps the ``text`` of text-bearing blocks and drops every
    other block kind (images, tool calls, ...). Subclass and override
    :meth:`extract_block` to carry other block kinds through instead.
    """

    name = "text_only"

    def extract(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            parts = [part for part in (self.extract_block(item) for item in value) if part is not None]
            return BLOCK_SEPARATOR.join(parts)
        if value is None:
            return ""
        return str(value)

    def extract_block(self, block: Any) -> str | None:
        if isinstance(block, ContentBlock):
            return block.text
        if not isinstance(block, Mapping):
            return None
        text = block.get("text")
        if isinstance(text, str):
            return text
        return None


TEXT_ONLY_EXTRACTOR = ContentExtractor()


def extract_content(value: Any) -> str:
    return TEXT_ONLY_EXTRACTOR.extract(value)
