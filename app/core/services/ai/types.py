"""Value types shared by the Gemini client, fallback chain and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ProviderResponse:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class GenerationRequest:
    """One structured-content request; rebuilt rather than mutated."""

    prompt: str
    system_instruction: str = ""
    response_schema: Any = None
    candidate_models: Tuple[str, ...] = ()
    actor_id: Optional[str] = None
    tenant_id: Optional[str] = None

    def with_instruction_suffix(self, suffix: str) -> "GenerationRequest":
        instruction = "\n\n".join(part for part in (self.system_instruction, suffix) if part)
        return replace(self, system_instruction=instruction)
