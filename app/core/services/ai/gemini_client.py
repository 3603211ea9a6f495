"""Gemini API client wrapper for build generation.

Thin wrapper around the ``google-genai`` SDK: one structured-output call
per model id, no retries of its own (the fallback chain decides what
happens on failure) and safe logging (never logs API keys).
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from google import genai
from google.genai import types

from app.core.config import settings
from app.core.services.ai.types import ProviderResponse, TokenUsage

logger = logging.getLogger(__name__)


class GeminiClient:
    """Synchronous Gemini client used as the generation provider."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._temperature = temperature
        self._client = client

    def _resolved_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key
        return str(settings.GEMINI_API_KEY or "")

    def is_configured(self) -> bool:
        """Return True when a Gemini API key (or an injected client) is available."""
        return self._client is not None or bool(self._resolved_api_key())

    def _get_client(self) -> Any:
        """Lazy-initialise the SDK client on first call."""
        if self._client is not None:
            return self._client
        if not self.is_configured():
            raise RuntimeError("GEMINI_API_KEY is not configured")
        self._client = genai.Client(api_key=self._resolved_api_key())
        logger.info("GeminiClient initialised")
        return self._client

    def invoke(
        self,
        model_id: str,
        prompt: str,
        *,
        system_instruction: str = "",
        response_schema: Any = None,
        timeout_seconds: Optional[float] = None,
    ) -> ProviderResponse:
        """Submit one prompt + schema to ``model_id``.

        Provider exceptions propagate untouched; classifying them is the
        fallback chain's job.
        """
        client = self._get_client()
        temperature = self._temperature if self._temperature is not None else settings.GEMINI_TEMPERATURE
        timeout = timeout_seconds if timeout_seconds is not None else settings.GEMINI_TIMEOUT_SECONDS

        config = types.GenerateContentConfig(
            system_instruction=system_instruction or None,
            response_mime_type="application/json",
            response_schema=response_schema,
            temperature=temperature,
            http_options=types.HttpOptions(timeout=int(float(timeout) * 1000)),
        )
        response = client.models.generate_content(
            model=model_id,
            contents=prompt,
            config=config,
        )

        usage = getattr(response, "usage_metadata", None)
        return ProviderResponse(
            text=getattr(response, "text", None) or "",
            usage=TokenUsage(
                input_tokens=int(getattr(usage, "prompt_token_count", 0) or 0),
                output_tokens=int(getattr(usage, "candidates_token_count", 0) or 0),
            ),
        )

    def list_model_names(self) -> List[str]:
        """Return the raw model names (``models/<id>``) the API key can see."""
        names: List[str] = []
        for model in self._get_client().models.list():
            name = getattr(model, "name", None)
            if isinstance(name, str) and name:
                names.append(name)
        return names
