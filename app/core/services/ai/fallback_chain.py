"""Model fallback chain for Gemini generation calls."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, NoReturn, Optional, Protocol, Sequence

from app.core.services.ai.error_classifier import LLMErrorType, classify_error, extract_retry_after_seconds
from app.core.services.ai.errors import ModelUnavailableError, QuotaExceededError
from app.core.services.ai.model_policy import dedupe_models
from app.core.services.ai.types import GenerationRequest, ProviderResponse

logger = logging.getLogger(__name__)


class GenerationProvider(Protocol):
    def invoke(
        self,
        model_id: str,
        prompt: str,
        *,
        system_instruction: str = "",
        response_schema: Any = None,
        timeout_seconds: Optional[float] = None,
    ) -> ProviderResponse: ...


class AttemptOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"


@dataclass(frozen=True)
class FallbackAttempt:
    model_id: str
    outcome: AttemptOutcome
    response: Optional[ProviderResponse] = None
    retry_after_seconds: Optional[int] = None
    error: Any = None
    latency_ms: int = 0


@dataclass
class ChainResult:
    response: ProviderResponse
    model_id: str
    attempts: List[FallbackAttempt] = field(default_factory=list)


class ModelFallbackChain:
    """Walks candidate models in order until one succeeds.

    Quota and model-unavailable failures advance to the next candidate.
    Any other failure aborts the walk and is re-raised unchanged.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        timeout_seconds: Optional[float] = None,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._timeout_seconds = timeout_seconds
        self._time_fn = time_fn

    def _log_structured(self, payload: dict) -> None:
        try:
            logger.info("llm_call %s", json.dumps(payload, ensure_ascii=False))
        except (TypeError, ValueError):
            logger.info("llm_call %s", payload)

    def run(
        self,
        request: GenerationRequest,
        candidate_models: Optional[Sequence[str]] = None,
    ) -> ChainResult:
        candidates = dedupe_models(candidate_models if candidate_models is not None else request.candidate_models)
        if not candidates:
            raise ValueError("At least one candidate model is required")

        attempts: List[FallbackAttempt] = []

        for index, model_id in enumerate(candidates):
            started = self._time_fn()
            try:
                response = self._provider.invoke(
                    model_id,
                    request.prompt,
                    system_instruction=request.system_instruction,
                    response_schema=request.response_schema,
                    timeout_seconds=self._timeout_seconds,
                )
            except Exception as exc:
                latency_ms = int(round((self._time_fn() - started) * 1000))
                classified = classify_error(exc, model_id=model_id)
                self._log_structured(
                    {
                        "model": model_id,
                        "attempt": index + 1,
                        "status_code": classified.status_code,
                        "latency_ms": latency_ms,
                        "error_type": classified.kind.value,
                        "error": classified.message[:220],
                    }
                )

                if classified.kind == LLMErrorType.QUOTA_EXCEEDED:
                    retry_after = extract_retry_after_seconds(exc, classified)
                    attempts.append(
                        FallbackAttempt(
                            model_id=model_id,
                            outcome=AttemptOutcome.QUOTA_EXCEEDED,
                            retry_after_seconds=retry_after,
                            error=exc,
                            latency_ms=latency_ms,
                        )
                    )
                    logger.warning(
                        "Quota exceeded on %s (retry after %ss); trying next model.",
                        model_id,
                        retry_after if retry_after is not None else "?",
                    )
                    continue

                if classified.kind == LLMErrorType.MODEL_UNAVAILABLE:
                    attempts.append(
                        FallbackAttempt(
                            model_id=model_id,
                            outcome=AttemptOutcome.MODEL_UNAVAILABLE,
                            error=exc,
                            latency_ms=latency_ms,
                        )
                    )
                    logger.warning(
                        "Model %s unavailable for generateContent; trying next model.",
                        model_id,
                    )
                    continue

                logger.error(
                    "Unclassified Gemini error on %s; aborting fallback chain: %s",
                    model_id,
                    classified.message[:200],
                )
                raise

            latency_ms = int(round((self._time_fn() - started) * 1000))
            attempts.append(
                FallbackAttempt(
                    model_id=model_id,
                    outcome=AttemptOutcome.SUCCESS,
                    response=response,
                    latency_ms=latency_ms,
                )
            )
            self._log_structured(
                {
                    "model": model_id,
                    "attempt": index + 1,
                    "status_code": 200,
                    "latency_ms": latency_ms,
                    "tokens_in": response.usage.input_tokens,
                    "tokens_out": response.usage.output_tokens,
                }
            )
            return ChainResult(response=response, model_id=model_id, attempts=attempts)

        self._raise_exhausted(attempts)

    @staticmethod
    def _raise_exhausted(attempts: List[FallbackAttempt]) -> NoReturn:
        attempted = [attempt.model_id for attempt in attempts]
        last = attempts[-1]
        if last.outcome == AttemptOutcome.QUOTA_EXCEEDED:
            raise QuotaExceededError(
                retry_after_seconds=last.retry_after_seconds,
                attempted_models=attempted,
            )
        raise ModelUnavailableError(
            f"No available Gemini model among: {', '.join(attempted)}",
            attempted_models=attempted,
        )
