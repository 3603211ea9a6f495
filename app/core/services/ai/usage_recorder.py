"""Token usage accounting for successful generations."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class UsageRecord:
    prompt: str
    response_text: str
    input_tokens: int
    output_tokens: int
    model: str
    actor_id: Optional[str] = None
    tenant_id: Optional[str] = None


class UsageRecorder(Protocol):
    def record(self, usage: UsageRecord) -> None: ...


class LoggingUsageRecorder:
    """Writes one ``llm_usage`` line per successful call."""

    def record(self, usage: UsageRecord) -> None:
        payload = asdict(usage)
        payload["prompt"] = usage.prompt[:_PREVIEW_CHARS]
        payload["response_text"] = usage.response_text[:_PREVIEW_CHARS]
        logger.info("llm_usage %s", json.dumps(payload, ensure_ascii=False))


@dataclass(frozen=True)
class UsageActor:
    """Who a usage record is billed to."""

    actor_id: Optional[str] = None
    tenant_id: Optional[str] = None
