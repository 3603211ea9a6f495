"""Build generation orchestrator.

Coordinates the full generation pipeline:
  fallback chain -> decode -> usage record -> domain check -> (correct once)

The domain check reads the raw decoded JSON, before normalization maps
legacy culinary values (``meal_type: dessert``...) onto build enums.
Usage records are handed to a single background worker so a slow
recorder never delays the caller; ``flush_usage()`` waits for them.

Quota and model-unavailable failures are handled inside the fallback
chain and surface here as terminal errors without a domain check. An
off-domain payload triggers one more chain walk with a correction
appended to the system instruction; a second off-domain payload raises
:class:`DomainMismatchError`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from app.core.config import settings
from app.core.services.ai.build_contract import BuildPayload, decode_build_json
from app.core.services.ai.domain_validator import DomainAssessment, DomainThresholds, assess_build_domain
from app.core.services.ai.errors import DomainMismatchError
from app.core.services.ai.fallback_chain import ChainResult, FallbackAttempt, GenerationProvider, ModelFallbackChain
from app.core.services.ai.gemini_client import GeminiClient
from app.core.services.ai.model_policy import (
    ConfiguredModels,
    ModelCatalog,
    build_model_attempt_chain,
    build_translation_model_chain,
    dedupe_models,
    get_configured_models,
)
from app.core.services.ai.prompt_builder import (
    build_generation_request,
    build_translation_request,
    with_domain_correction,
)
from app.core.services.ai.types import GenerationRequest, TokenUsage
from app.core.services.ai.usage_recorder import LoggingUsageRecorder, UsageActor, UsageRecord, UsageRecorder

logger = logging.getLogger(__name__)

# First walk plus one corrective walk.
MAX_GENERATION_ROUNDS = 2


@dataclass
class GenerationResult:
    payload: BuildPayload
    model: str
    attempts: List[FallbackAttempt] = field(default_factory=list)
    rounds: int = 1
    usage: TokenUsage = field(default_factory=TokenUsage)


class BuildGenerationService:
    """Entry point for structured build generation and translation."""

    def __init__(
        self,
        provider: Optional[GenerationProvider] = None,
        *,
        usage_recorder: Optional[UsageRecorder] = None,
        model_catalog: Optional[ModelCatalog] = None,
        thresholds: Optional[DomainThresholds] = None,
        timeout_seconds: Optional[float] = None,
        usage_executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._provider = provider if provider is not None else GeminiClient()
        self._usage_recorder = usage_recorder if usage_recorder is not None else LoggingUsageRecorder()
        self._catalog = model_catalog if model_catalog is not None else ModelCatalog()
        self._thresholds = thresholds or DomainThresholds.from_settings()
        timeout = timeout_seconds if timeout_seconds is not None else settings.GEMINI_TIMEOUT_SECONDS
        self._chain = ModelFallbackChain(self._provider, timeout_seconds=timeout)

        self._usage_executor = usage_executor
        self._owns_usage_executor = usage_executor is None
        self._pending_usage: List[Future] = []
        self._usage_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Candidate models
    # ------------------------------------------------------------------

    def _candidate_models(self, request: GenerationRequest, models: Optional[ConfiguredModels]) -> List[str]:
        if models is None and request.candidate_models:
            return dedupe_models(request.candidate_models)

        configured = models or get_configured_models()
        unavailable = self._catalog.unavailable_configured_models(self._provider, configured)
        if unavailable:
            logger.warning(
                "Configured Gemini model(s) not listed by models.list(): %s",
                ", ".join(unavailable),
            )
        return build_model_attempt_chain(configured)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(text: str) -> Dict[str, Any]:
        if not str(text or "").strip():
            raise RuntimeError("AI generation failed")
        try:
            return decode_build_json(text)
        except ValueError as exc:
            raise RuntimeError("AI generation returned malformed JSON") from exc

    @staticmethod
    def _to_payload(raw: Dict[str, Any]) -> BuildPayload:
        try:
            return BuildPayload.model_validate(raw)
        except ValueError as exc:
            raise RuntimeError("AI generation returned malformed JSON") from exc

    # ------------------------------------------------------------------
    # Usage accounting (background)
    # ------------------------------------------------------------------

    def _executor(self) -> ThreadPoolExecutor:
        with self._usage_lock:
            if self._usage_executor is None:
                self._usage_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="usage-recorder")
            return self._usage_executor

    def _write_usage(self, record: UsageRecord) -> None:
        try:
            self._usage_recorder.record(record)
        except Exception as exc:
            logger.error("Failed to log Gemini usage: %s", exc)

    def _record_usage(self, request: GenerationRequest, result: ChainResult, actor: UsageActor) -> None:
        record = UsageRecord(
            prompt=request.prompt,
            response_text=result.response.text,
            input_tokens=result.response.usage.input_tokens,
            output_tokens=result.response.usage.output_tokens,
            model=result.model_id,
            actor_id=actor.actor_id,
            tenant_id=actor.tenant_id,
        )
        try:
            future = self._executor().submit(self._write_usage, record)
        except RuntimeError as exc:
            # executor already shut down
            logger.error("Failed to log Gemini usage: %s", exc)
            return
        with self._usage_lock:
            self._pending_usage = [item for item in self._pending_usage if not item.done()]
            self._pending_usage.append(future)

    def flush_usage(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued usage records. Returns False if ``timeout`` expired first."""
        with self._usage_lock:
            pending = list(self._pending_usage)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self, *, wait_for_usage: bool = True) -> None:
        """Stop the usage worker this service created.

        Queued records are still written when ``wait_for_usage`` is False;
        the call just does not block on them.
        """
        with self._usage_lock:
            executor = self._usage_executor if self._owns_usage_executor else None
        if executor is not None:
            executor.shutdown(wait=wait_for_usage)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        request: GenerationRequest,
        *,
        models: Optional[ConfiguredModels] = None,
        actor: Optional[UsageActor] = None,
    ) -> GenerationResult:
        """Run the pipeline for one request.

        ``models`` overrides the configured primary/fallback ids for this
        call only. Terminal errors (quota, unavailable, domain mismatch)
        are :class:`AIServiceError` subclasses; anything else the provider
        raises propagates unchanged.
        """
        candidates = self._candidate_models(request, models)
        actor = actor or UsageActor(actor_id=request.actor_id, tenant_id=request.tenant_id)

        attempts: List[FallbackAttempt] = []
        input_tokens = 0
        output_tokens = 0
        assessment: Optional[DomainAssessment] = None
        current = request

        for round_index in range(MAX_GENERATION_ROUNDS):
            result = self._chain.run(current, candidates)
            attempts.extend(result.attempts)
            raw = self._decode(result.response.text)
            payload = self._to_payload(raw)
            input_tokens += result.response.usage.input_tokens
            output_tokens += result.response.usage.output_tokens
            self._record_usage(current, result, actor)

            assessment = assess_build_domain(raw, self._thresholds)
            if not assessment.is_off_domain:
                logger.info(
                    "Build generated with %s (round %s, tokens in=%s out=%s)",
                    result.model_id,
                    round_index + 1,
                    result.response.usage.input_tokens,
                    result.response.usage.output_tokens,
                )
                return GenerationResult(
                    payload=payload,
                    model=result.model_id,
                    attempts=attempts,
                    rounds=round_index + 1,
                    usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
                )

            logger.warning(
                "Off-domain build from %s (round %s/%s); matched terms: %s",
                result.model_id,
                round_index + 1,
                MAX_GENERATION_ROUNDS,
                ", ".join(assessment.matched_off_domain_terms),
            )
            current = with_domain_correction(request)

        raise DomainMismatchError(matched_terms=assessment.matched_off_domain_terms if assessment else [])

    def generate_build(
        self,
        members: Iterable[Any],
        context: Any,
        *,
        models: Optional[ConfiguredModels] = None,
        actor: Optional[UsageActor] = None,
        candidate_models: Sequence[str] = (),
        local_context: Optional[str] = None,
    ) -> GenerationResult:
        """Build the request from party data + session context and generate."""
        request = build_generation_request(
            members,
            context,
            candidate_models=candidate_models,
            actor_id=actor.actor_id if actor else None,
            tenant_id=actor.tenant_id if actor else None,
            local_context=local_context,
        )
        return self.generate(request, models=models, actor=actor)

    def translate_build(
        self,
        payload: Union[BuildPayload, Dict[str, Any]],
        language: str,
        *,
        models: Optional[ConfiguredModels] = None,
        actor: Optional[UsageActor] = None,
        local_context: Optional[str] = None,
    ) -> GenerationResult:
        """Translate an existing build into ``language`` (``en`` or ``pt-BR``).

        Starts at the fallback model, since translation does not need the
        primary one, and walks the same quota/unavailable chain. Usage is
        recorded; the domain check is not repeated.
        """
        actor = actor or UsageActor()
        request = build_translation_request(
            payload,
            language,
            actor_id=actor.actor_id,
            tenant_id=actor.tenant_id,
            local_context=local_context,
        )
        candidates = build_translation_model_chain(models or get_configured_models())

        result = self._chain.run(request, candidates)
        raw = self._decode(result.response.text)
        raw["language"] = language
        translated = self._to_payload(raw)
        self._record_usage(request, result, actor)

        logger.info(
            "Build translated to %s with %s (tokens in=%s out=%s)",
            language,
            result.model_id,
            result.response.usage.input_tokens,
            result.response.usage.output_tokens,
        )
        return GenerationResult(
            payload=translated,
            model=result.model_id,
            attempts=list(result.attempts),
            usage=result.response.usage,
        )


def generate_build(
    members: Iterable[Any],
    context: Any,
    *,
    provider: Optional[GenerationProvider] = None,
    models: Optional[ConfiguredModels] = None,
    actor: Optional[UsageActor] = None,
) -> BuildPayload:
    """Module-level shortcut returning just the validated payload."""
    service = BuildGenerationService(provider)
    try:
        return service.generate_build(members, context, models=models, actor=actor).payload
    finally:
        service.close(wait_for_usage=False)


def translate_build(
    payload: Union[BuildPayload, Dict[str, Any]],
    language: str,
    *,
    provider: Optional[GenerationProvider] = None,
    actor: Optional[UsageActor] = None,
) -> BuildPayload:
    """Module-level shortcut returning just the translated payload."""
    service = BuildGenerationService(provider)
    try:
        return service.translate_build(payload, language, actor=actor).payload
    finally:
        service.close(wait_for_usage=False)
