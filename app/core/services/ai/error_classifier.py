"""Classification helpers for Gemini provider errors.

Provider failures arrive in several shapes: ``google.genai`` ``APIError``
instances, plain exceptions whose message is a JSON-encoded error body,
bare dicts with a nested ``error`` object, or values that are not objects
at all. :func:`classify_error` normalises all of them once into a
:class:`ClassifiedError`; everything downstream branches on that value.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

QUOTA_STATUS_CODE = 429
NOT_FOUND_STATUS_CODE = 404
RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
NOT_FOUND = "NOT_FOUND"

_RETRY_IN_TEXT_RE = re.compile(r"retry in\s+([0-9]+(?:\.[0-9]+)?)s", re.IGNORECASE)
_RETRY_DELAY_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)s\s*$")


class LLMErrorType(str, Enum):
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    UNCLASSIFIED = "UNCLASSIFIED"


@dataclass(frozen=True)
class ClassifiedError:
    kind: LLMErrorType
    raw_cause: Any
    status_code: Optional[int] = None
    status: str = ""
    message: str = ""
    details: List[Any] = field(default_factory=list)


def _field(value: Any, name: str) -> Any:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(name)
    try:
        return getattr(value, name, None)
    except Exception:
        return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _names_model(message: str, model_id: str) -> bool:
    """True when ``model_id`` appears as a whole id (``gemini-2.5-flash`` != ``...-flash-lite``)."""
    pattern = r"(?:^|[\s/'\"`])" + re.escape(model_id) + r"(?![\w.-])"
    return re.search(pattern, message) is not None


def _raw_message(error: Any) -> str:
    message = _field(error, "message")
    if isinstance(message, str):
        return message
    if isinstance(error, BaseException):
        return str(error)
    return ""


def parse_error_payload(error: Any) -> Optional[Dict[str, Any]]:
    """Recover the nested ``{"error": {...}}`` body from a provider error."""
    if error is None:
        return None

    nested = _field(error, "error")
    if isinstance(nested, Mapping):
        return {"error": dict(nested)}

    # google.genai APIError keeps the decoded response body on these attributes.
    for attr in ("details", "response_json"):
        body = _field(error, attr)
        if isinstance(body, Mapping) and isinstance(body.get("error"), Mapping):
            return {"error": dict(body["error"])}

    message = _raw_message(error)
    if not message:
        return None
    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def _status_code(error: Any, body: Mapping[str, Any]) -> Optional[int]:
    candidates = [
        body.get("code"),
        _field(error, "status"),
        _field(error, "code"),
        _field(error, "status_code"),
    ]
    for candidate in candidates:
        status = _as_int(candidate)
        if status is not None:
            return status
    return None


def _status_name(error: Any, body: Mapping[str, Any]) -> str:
    for candidate in (body.get("status"), _field(error, "status")):
        if isinstance(candidate, str) and candidate.strip() and _as_int(candidate) is None:
            return candidate.strip().upper()
    return ""


def classify_error(error: Any, *, model_id: Optional[str] = None) -> ClassifiedError:
    """Classify a provider error into quota, availability or unclassified buckets.

    ``model_id`` is the candidate being tried; a not-found response only
    counts as model unavailability when its message names that model.
    """
    payload = parse_error_payload(error) or {}
    body = payload.get("error") if isinstance(payload.get("error"), Mapping) else {}

    status_code = _status_code(error, body)
    status = _status_name(error, body)
    body_message = body.get("message") if isinstance(body.get("message"), str) else ""
    message = "\n".join(part for part in (body_message, _raw_message(error)) if part)
    details = body.get("details") if isinstance(body.get("details"), list) else []

    kind = LLMErrorType.UNCLASSIFIED
    if status_code == QUOTA_STATUS_CODE or status == RESOURCE_EXHAUSTED:
        kind = LLMErrorType.QUOTA_EXCEEDED
    elif status_code == NOT_FOUND_STATUS_CODE or status == NOT_FOUND:
        if model_id is None or _names_model(message, model_id):
            kind = LLMErrorType.MODEL_UNAVAILABLE

    return ClassifiedError(
        kind=kind,
        raw_cause=error,
        status_code=status_code,
        status=status,
        message=message,
        details=list(details),
    )


def _round_up_seconds(value: float) -> int:
    return max(1, int(math.ceil(value)))


def extract_retry_after_seconds(
    error: Any,
    classified: Optional[ClassifiedError] = None,
) -> Optional[int]:
    """Best-effort retry-after extraction for quota errors.

    Structured ``RetryInfo`` details win over the free-text ``retry in Ns``
    hint. ``None`` means no hint was found, which is not the same as zero.
    """
    if classified is None:
        classified = classify_error(error)
    if classified.kind != LLMErrorType.QUOTA_EXCEEDED:
        return None

    for detail in classified.details:
        if not isinstance(detail, Mapping):
            continue
        if "RetryInfo" not in str(detail.get("@type") or ""):
            continue
        match = _RETRY_DELAY_RE.match(str(detail.get("retryDelay") or ""))
        if match:
            return _round_up_seconds(float(match.group(1)))

    match = _RETRY_IN_TEXT_RE.search(classified.message)
    if match:
        return _round_up_seconds(float(match.group(1)))
    return None
