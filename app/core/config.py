from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()  # Load .env file if present


def _get(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _get_int(key: str, default: int) -> int:
    raw = _get(key, str(default)).strip()
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    APP_NAME: str = _get("APP_NAME", "Exile Build Forge")
    APP_ENV: str = _get("APP_ENV", "dev")
    LOG_LEVEL: str = _get("LOG_LEVEL", "INFO").upper()

    # Gemini integration
    GEMINI_API_KEY: str = _get("GEMINI_API_KEY", "")
    GEMINI_MODEL_PRIMARY: str = _get("GEMINI_MODEL_PRIMARY", "gemini-3-pro-preview")
    GEMINI_MODEL_FALLBACK: str = _get("GEMINI_MODEL_FALLBACK", "gemini-2.5-flash")
    GEMINI_TEMPERATURE: float = float(_get("GEMINI_TEMPERATURE", "0.7"))
    GEMINI_TIMEOUT_SECONDS: int = _get_int("GEMINI_TIMEOUT_SECONDS", 60)

    # Local application context appended to the system instruction
    AI_CONTEXT_FILE_PATH: str = _get("AI_CONTEXT_FILE_PATH", "")

    # Domain guardrail thresholds
    DOMAIN_MIN_OFF_DOMAIN_HITS_WITHOUT_ON_DOMAIN: int = _get_int(
        "DOMAIN_MIN_OFF_DOMAIN_HITS_WITHOUT_ON_DOMAIN", 2
    )
    DOMAIN_MIN_OFF_DOMAIN_HITS_WITH_WEAK_ON_DOMAIN: int = _get_int(
        "DOMAIN_MIN_OFF_DOMAIN_HITS_WITH_WEAK_ON_DOMAIN", 3
    )
    DOMAIN_MAX_WEAK_ON_DOMAIN_HITS: int = _get_int("DOMAIN_MAX_WEAK_ON_DOMAIN_HITS", 1)


settings = Settings()
