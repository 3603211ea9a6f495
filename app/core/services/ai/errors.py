"""Terminal exceptions for the build generation flow."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class AIServiceError(RuntimeError):
    """Base class for classified AI service errors."""

    code: str = "gemini.error"
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.details: List[str] = [str(item) for item in (details or [])]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "code": self.code,
            "details": list(self.details),
        }


class QuotaExceededError(AIServiceError):
    """Raised when every reachable candidate model reported resource exhaustion."""

    code = "gemini.quota_exceeded"
    status_code = 429

    def __init__(
        self,
        message: str = "Gemini quota exceeded",
        *,
        retry_after_seconds: Optional[int] = None,
        attempted_models: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message, details=attempted_models)
        self.retry_after_seconds = retry_after_seconds
        self.attempted_models: List[str] = list(attempted_models or [])

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retryAfterSeconds"] = self.retry_after_seconds
        return payload


class ModelUnavailableError(AIServiceError):
    """Raised when the fallback chain ends on not-found/unsupported models."""

    code = "gemini.model_unavailable"
    status_code = 503

    def __init__(
        self,
        message: str = "No configured Gemini model is available",
        *,
        attempted_models: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message, details=attempted_models)
        self.attempted_models: List[str] = list(attempted_models or [])


class DomainMismatchError(AIServiceError):
    """Raised when generation stays off-domain after the corrective retry."""

    code = "gemini.domain_mismatch"
    status_code = 422

    def __init__(
        self,
        message: str = "Generated content does not describe a Path of Exile build",
        *,
        matched_terms: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message, details=matched_terms)
        self.matched_terms: List[str] = list(matched_terms or [])
