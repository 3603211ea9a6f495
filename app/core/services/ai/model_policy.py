"""Gemini model selection: configured models, attempt chain and catalog check."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_PRIMARY_MODEL = "gemini-3-pro-preview"
DEFAULT_GEMINI_FALLBACK_MODEL = "gemini-2.5-flash"

CANONICAL_GEMINI_FALLBACK_MODELS = (
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
)

_MODEL_LIST_CACHE_TTL_S = 10 * 60


@dataclass(frozen=True)
class ConfiguredModels:
    primary_model: str = DEFAULT_GEMINI_PRIMARY_MODEL
    fallback_model: str = DEFAULT_GEMINI_FALLBACK_MODEL


def _normalize_configured_model(value: Any, default: str) -> str:
    if not isinstance(value, str):
        return default
    trimmed = value.strip()
    return trimmed or default


def get_configured_models(source: Any = None) -> ConfiguredModels:
    """Resolve primary/fallback ids from a settings-like object.

    Blank or missing values fall back to the default model ids.
    """
    if source is None:
        from app.core.config import settings as source
    return ConfiguredModels(
        primary_model=_normalize_configured_model(
            getattr(source, "GEMINI_MODEL_PRIMARY", None),
            DEFAULT_GEMINI_PRIMARY_MODEL,
        ),
        fallback_model=_normalize_configured_model(
            getattr(source, "GEMINI_MODEL_FALLBACK", None),
            DEFAULT_GEMINI_FALLBACK_MODEL,
        ),
    )


def dedupe_models(models: Iterable[Optional[str]]) -> List[str]:
    chain: List[str] = []
    for model in models:
        text = str(model or "").strip()
        if not text or text in chain:
            continue
        chain.append(text)
    return chain


def build_model_attempt_chain(configured: Optional[ConfiguredModels] = None) -> List[str]:
    """Primary, configured fallback, then the canonical last-resort models."""
    configured = configured or get_configured_models()
    return dedupe_models(
        [
            configured.primary_model,
            configured.fallback_model,
            *CANONICAL_GEMINI_FALLBACK_MODELS,
        ]
    )


def _normalize_model_name(value: str) -> str:
    trimmed = value.strip()
    if "/" in trimmed:
        return trimmed.rsplit("/", 1)[-1]
    return trimmed


class ModelCatalog:
    """Caches the provider's model list to spot misconfigured model ids."""

    def __init__(
        self,
        *,
        ttl_seconds: float = _MODEL_LIST_CACHE_TTL_S,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._time_fn = time_fn
        self._names: Optional[Set[str]] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def _refresh(self, client: Any) -> Optional[Set[str]]:
        now = self._time_fn()
        with self._lock:
            if self._names is not None and now < self._expires_at:
                return set(self._names)
        try:
            names = {
                _normalize_model_name(name)
                for name in client.list_model_names()
                if isinstance(name, str) and name.strip()
            }
        except Exception as exc:
            logger.warning(
                "Failed to validate configured models via models.list(): %s",
                str(exc)[:200],
            )
            return None
        with self._lock:
            self._names = names
            self._expires_at = now + self._ttl_seconds
        return set(names)

    def unavailable_configured_models(self, client: Any, configured: ConfiguredModels) -> List[str]:
        """Return configured ids missing from the provider catalog.

        Listing failures report nothing as unavailable; the fallback chain
        still handles not-found responses at call time.
        """
        if not callable(getattr(client, "list_model_names", None)):
            return []
        names = self._refresh(client)
        if names is None:
            return []
        return [
            model
            for model in dedupe_models([configured.primary_model, configured.fallback_model])
            if model not in names
        ]


def build_translation_model_chain(configured: Optional[ConfiguredModels] = None) -> List[str]:
    """Translation skips the primary model: fallback first, then the canonical ones."""
    configured = configured or get_configured_models()
    return dedupe_models([configured.fallback_model, *CANONICAL_GEMINI_FALLBACK_MODELS])
