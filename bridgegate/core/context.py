"""Per-request runtime context."""

from __future__ import annotations

from dataclasses import dataclass, field
from time import monotonic

STAGE_RECEIVED = "received"
STAGE_SIZE_CHECKED = "size_checked"
STAGE_PARSED = "parsed"
STAGE_VALIDATED = "validated"
STAGE_CONVERTED = "converted"
STAGE_DISPATCHED = "dispatched"
STAGE_BACKEND_OK = "backend_ok"
STAGE_TRANSLATED = "translated"
STAGE_SENT = "sent"


@dataclass(slots=True)
class RequestContext:
    request_id: str
    route: str
    provider: str
    model: str = ""
    stage: str = STAGE_RECEIVED
    started_at: float = field(default_factory=monotonic)

    def advance(self, stage: str) -> None:
        self.stage = stage

    def elapsed_ms(self) -> int:
        return int((monotonic() - self.started_at) * 1000)
