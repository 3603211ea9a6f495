"""Build payload contract: response schema, normalization and narrative cleanup."""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BuildArchetype(str, Enum):
    LEAGUE_STARTER = "league_starter"
    MAPPER = "mapper"
    BOSSING = "bossing"
    HYBRID = "hybrid"


class BuildCostTier(str, Enum):
    CHEAP = "cheap"
    MEDIUM = "medium"
    EXPENSIVE = "expensive"
    MIRROR_OF_KALANDRA = "mirror_of_kalandra"


_ARCHETYPE_ALIASES: Dict[str, BuildArchetype] = {
    "main": BuildArchetype.LEAGUE_STARTER,
    "main_course": BuildArchetype.LEAGUE_STARTER,
    "maincourse": BuildArchetype.LEAGUE_STARTER,
    "appetizer": BuildArchetype.MAPPER,
    "starter": BuildArchetype.MAPPER,
    "dessert": BuildArchetype.BOSSING,
    "snack": BuildArchetype.HYBRID,
    **{member.value: member for member in BuildArchetype},
}

_COST_TIER_ALIASES: Dict[str, BuildCostTier] = {
    **{member.value: member for member in BuildCostTier},
    "mirror_of_kalandra": BuildCostTier.MIRROR_OF_KALANDRA,
    "mirror": BuildCostTier.MIRROR_OF_KALANDRA,
    "barato": BuildCostTier.CHEAP,
    "medio": BuildCostTier.MEDIUM,
    "médio": BuildCostTier.MEDIUM,
    "caro": BuildCostTier.EXPENSIVE,
    "easy": BuildCostTier.CHEAP,
    "intermediate": BuildCostTier.MEDIUM,
    "advanced": BuildCostTier.EXPENSIVE,
    "ascendant": BuildCostTier.MIRROR_OF_KALANDRA,
    "chef": BuildCostTier.MIRROR_OF_KALANDRA,
}


def _alias_key(value: Any) -> str:
    raw = getattr(value, "value", value)
    return re.sub(r"\s+", "_", str(raw or "").strip().lower())


def normalize_build_archetype(value: Any) -> BuildArchetype:
    return _ARCHETYPE_ALIASES.get(_alias_key(value), BuildArchetype.LEAGUE_STARTER)


def normalize_build_cost_tier(value: Any) -> BuildCostTier:
    return _COST_TIER_ALIASES.get(_alias_key(value), BuildCostTier.MEDIUM)


def normalize_setup_time_preference(value: Any) -> str:
    return "plenty" if str(value or "").strip().lower() == "plenty" else "quick"


# --- narrative cleanup -------------------------------------------------------

_NARRATIVE_TOKENS: Dict[str, List[str]] = {
    "league_starter": ["league_starter", "league starter", "main_course", "maincourse"],
    "mapper": ["mapper"],
    "bossing": ["bossing"],
    "hybrid": ["hybrid"],
    "cheap": ["cheap"],
    "medium": ["medium"],
    "expensive": ["expensive"],
    "mirror_of_kalandra": ["mirror_of_kalandra", "mirror of kalandra", "ascendant", "chef"],
}

_LABELS_EN = {
    "league_starter": "League Starter",
    "mapper": "Mapper",
    "bossing": "Bossing",
    "hybrid": "Hybrid",
    "cheap": "Cheap",
    "medium": "Medium",
    "expensive": "Expensive",
    "mirror_of_kalandra": "Mirror of Kalandra",
}

_LABELS_PT = {
    **_LABELS_EN,
    "cheap": "Barato",
    "medium": "Médio",
    "expensive": "Caro",
}


def narrative_labels(language: Optional[str] = None) -> Dict[str, str]:
    if str(language or "").strip().lower().startswith("pt"):
        return _LABELS_PT
    return _LABELS_EN


def _compile_variant_patterns():
    compiled = []
    for key, variants in _NARRATIVE_TOKENS.items():
        for variant in variants:
            escaped = re.escape(variant)
            quoted = re.compile(r"([\"'])\s*" + escaped + r"\s*\1", re.IGNORECASE)
            plain = re.compile(r"\b" + escaped + r"\b", re.IGNORECASE)
            compiled.append((key, quoted, plain))
    return compiled


_VARIANT_PATTERNS = _compile_variant_patterns()


def sanitize_narrative_text(value: Any, language: Optional[str] = None) -> str:
    """Replace enum tokens (``mirror_of_kalandra``, ``"cheap"``...) with labels."""
    labels = narrative_labels(language)
    text = "" if value is None else str(value)
    for key, quoted, plain in _VARIANT_PATTERNS:
        replacement = labels[key]
        text = quoted.sub(lambda _m: replacement, text)
        text = plain.sub(lambda _m: replacement, text)
    return text


def tier_label(value: Any, language: Optional[str] = None) -> str:
    return narrative_labels(language)[normalize_build_cost_tier(value).value]


def archetype_label(value: Any, language: Optional[str] = None) -> str:
    return narrative_labels(language)[normalize_build_archetype(value).value]


# --- response schema handed to the SDK --------------------------------------


class BuildEntrySchema(BaseModel):
    name: str
    quantity: str
    unit: str


class BuildOutputSchema(BaseModel):
    """Structured-output schema; kept free of defaults and validators."""

    analysis_log: str
    build_title: str
    build_reasoning: str
    gear_gems: List[BuildEntrySchema]
    build_items: List[BuildEntrySchema]
    build_steps: List[str]
    compliance_badge: bool
    build_archetype: BuildArchetype
    build_cost_tier: BuildCostTier
    setup_time: str
    setup_time_minutes: Optional[int]


# --- lenient payload ---------------------------------------------------------


class BuildEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    quantity: str = ""
    unit: str = ""

    @model_validator(mode="before")
    @classmethod
    def coerce(cls, data: Any) -> Any:
        if data is None:
            return {}
        if isinstance(data, str):
            try:
                parsed = json.loads(data)
            except ValueError:
                return {"name": data}
            if isinstance(parsed, dict):
                return {
                    "name": str(parsed.get("name") or data),
                    "quantity": str(parsed.get("quantity") or ""),
                    "unit": str(parsed.get("unit") or ""),
                }
            return {"name": data}
        if isinstance(data, dict):
            return {key: str(data.get(key) or "") for key in ("name", "quantity", "unit")}
        return data


def _entries(raw: Any) -> List[BuildEntry]:
    if not isinstance(raw, list):
        return []
    entries = [BuildEntry.model_validate(item) for item in raw]
    return [entry for entry in entries if entry.name.strip()]


def _steps(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    steps: List[str] = []
    for step in raw:
        if isinstance(step, str):
            text = step.strip()
        elif isinstance(step, dict) and isinstance(step.get("text"), str):
            text = step["text"].strip()
        else:
            text = ""
        if text:
            steps.append(text)
    return steps


def _minutes(raw: Any) -> Optional[int]:
    if raw is None or raw == "" or isinstance(raw, bool):
        return None
    try:
        return int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return None


def _badge(raw: Any) -> bool:
    return True if raw is None else bool(raw)


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


class BuildPayload(BaseModel):
    """Normalized build as returned to callers.

    Accepts legacy field names (``recipe_title``, ``shopping_list``,
    ``meal_type``...) and coerces sloppy model output before validation.
    Narrative fields are cleaned of raw enum tokens.
    """

    model_config = ConfigDict(extra="ignore")

    analysis_log: str = "Manual Entry"
    build_title: str = ""
    build_reasoning: str = ""
    gear_gems: List[BuildEntry] = Field(default_factory=list)
    build_items: List[BuildEntry] = Field(default_factory=list)
    build_steps: List[str] = Field(default_factory=list)
    compliance_badge: bool = True
    build_archetype: BuildArchetype = BuildArchetype.LEAGUE_STARTER
    build_cost_tier: BuildCostTier = BuildCostTier.MEDIUM
    setup_time: str = ""
    setup_time_minutes: Optional[int] = None
    language: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            return data

        language = data.get("language")
        steps = _steps(_first(data, "build_steps", "step_by_step"))
        return {
            "analysis_log": sanitize_narrative_text(data.get("analysis_log") or "Manual Entry", language),
            "build_title": str(_first(data, "build_title", "recipe_title") or ""),
            "build_reasoning": sanitize_narrative_text(
                _first(data, "build_reasoning", "match_reasoning") or "", language
            ),
            "gear_gems": _entries(_first(data, "gear_gems", "ingredients_from_pantry")),
            "build_items": _entries(_first(data, "build_items", "shopping_list")),
            "build_steps": [sanitize_narrative_text(step, language) for step in steps],
            "compliance_badge": _badge(_first(data, "compliance_badge", "safety_badge")),
            "build_archetype": normalize_build_archetype(_first(data, "build_archetype", "meal_type")),
            "build_cost_tier": normalize_build_cost_tier(
                _first(data, "build_cost_tier", "build_complexity", "difficulty")
            ),
            "setup_time": str(_first(data, "setup_time", "prep_time") or ""),
            "setup_time_minutes": _minutes(_first(data, "setup_time_minutes", "prep_time_minutes")),
            "language": language if isinstance(language, str) else None,
        }

    @property
    def build_complexity(self) -> BuildCostTier:
        return self.build_cost_tier


def decode_build_json(text: str) -> Dict[str, Any]:
    """Decode model output text into the raw, unnormalized JSON object.

    Raises ``ValueError`` when the text is not a JSON object.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Build payload must be a JSON object")
    return data


def parse_build_payload(text: str) -> BuildPayload:
    """Decode model output text into a normalized :class:`BuildPayload`."""
    return BuildPayload.model_validate(decode_build_json(text))


# --- session context ---------------------------------------------------------


class BuildSessionContext(BaseModel):
    """Per-request user input for build generation."""

    model_config = ConfigDict(extra="ignore")

    party_member_ids: List[str] = Field(default_factory=list)
    stash_gear_gems: List[Any] = Field(default_factory=list)
    requested_archetype: BuildArchetype = BuildArchetype.LEAGUE_STARTER
    cost_tier_preference: BuildCostTier = BuildCostTier.MEDIUM
    setup_time_preference: str = "quick"
    build_notes: str = ""
    language: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_aliases(cls, data: Any) -> Any:
        """Accept the legacy household-style field names."""
        if data is None:
            return {}
        if not isinstance(data, dict):
            return data

        def _list(*keys: str) -> List[Any]:
            for key in keys:
                if isinstance(data.get(key), list):
                    return list(data[key])
            return []

        language = data.get("language")
        return {
            "party_member_ids": [str(item) for item in _list("party_member_ids", "who_is_eating")],
            "stash_gear_gems": _list("stash_gear_gems", "pantry_ingredients"),
            "requested_archetype": normalize_build_archetype(
                data.get("requested_archetype") or data.get("requested_type")
            ),
            "cost_tier_preference": normalize_build_cost_tier(
                data.get("cost_tier_preference")
                or data.get("build_complexity")
                or data.get("difficulty_preference")
                or data.get("difficulty")
            ),
            "setup_time_preference": normalize_setup_time_preference(
                data.get("setup_time_preference") or data.get("prep_time_preference")
            ),
            "build_notes": str(data.get("build_notes") or data.get("observation") or ""),
            "language": language if isinstance(language, str) else None,
        }
