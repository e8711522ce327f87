"""Credential masking for log output."""

from __future__ import annotations

import re


def mask_for_log(value: str) -> str:
    """Return a partially-masked version of *value* safe for log output.

    Rules:
    - Preserve first 3 chars + last 2 chars for values >= 10 chars.
    - Shorter values get progressively fewer visible chars.
    - Empty values render as ``(not set)``.
    """
    normalized = re.sub(r"\s+", " ", value or "").strip()
    length = len(normalized)
    if length <= 0:
        return "(not set)"
    if length <= 4:
        return "*" * length

    head = 3 if length >= 10 else 1
    tail = 2 if length >= 10 else 1
    return f"{normalized[:head]}{'*' * (length - head - tail)}{normalized[-tail:]}"
