"""AI services package for Exile Build Forge.

Provides Gemini build generation and translation with model fallback and
a domain guardrail that keeps the output on Path of Exile builds.
"""

from app.core.services.ai.ai_service import (
    BuildGenerationService,
    GenerationResult,
    generate_build,
    translate_build,
)
from app.core.services.ai.build_contract import BuildPayload, BuildSessionContext
from app.core.services.ai.errors import (
    AIServiceError,
    DomainMismatchError,
    ModelUnavailableError,
    QuotaExceededError,
)
from app.core.services.ai.gemini_client import GeminiClient
from app.core.services.ai.model_policy import ConfiguredModels

__all__ = [
    "BuildGenerationService",
    "GenerationResult",
    "generate_build",
    "translate_build",
    "BuildPayload",
    "BuildSessionContext",
    "GeminiClient",
    "ConfiguredModels",
    "AIServiceError",
    "QuotaExceededError",
    "ModelUnavailableError",
    "DomainMismatchError",
]
