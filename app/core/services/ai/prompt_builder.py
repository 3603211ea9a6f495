"""Prompt construction for build generation.

Builds the system instruction from the session context, appends the
optional local application context file and produces the domain
correction suffix used when a response drifts off-topic.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union

from app.core.services.ai.build_contract import (
    BuildOutputSchema,
    BuildPayload,
    BuildSessionContext,
    archetype_label,
    tier_label,
)
from app.core.services.ai.types import GenerationRequest

logger = logging.getLogger(__name__)

DEFAULT_AI_CONTEXT_FILE_PATH = ".ai/ai-context.local.md"
DEFAULT_AI_CONTEXT_TEMPLATE_PATH = ".ai/ai-context.template.md"

LOCAL_CONTEXT_HEADER = "LOCAL APPLICATION CONTEXT (FOLLOW STRICTLY):"

SYSTEM_PROMPT = (
    "You are the Build Planner for a Path of Exile party.\n"
    "OBJECTIVES:\n"
    "1. Follow the requested build archetype: {archetype}.\n"
    "2. Target cost tier: {cost_tier}. Only suggest gear and gems that fit this budget.\n"
    "3. Setup time preference: {setup_time}.\n"
    "4. Prefer gear and gems already in the stash; list anything missing in build_items.\n"
    "5. If no reasonable build of the requested archetype fits the stash and budget, "
    "use analysis_log to explain exactly why.\n"
    "6. Every party member must be able to play the build safely in current league content.\n"
    "{notes}"
    "OUTPUT:\n"
    "Localize the output to {language} and respond ONLY with JSON matching the schema. "
    "Never write raw enum tokens such as snake_case tier names in narrative fields.\n"
)

DOMAIN_CORRECTION_PROMPT = (
    "CRITICAL DOMAIN CORRECTION:\n"
    "Your previous answer described food, cooking or recipes. That is WRONG.\n"
    "This application plans Path of Exile character builds only.\n"
    "- Talk about skill gems, support gems, gear, passive tree, ascendancy, "
    "mapping and bossing.\n"
    "- Do NOT mention recipes, ingredients, meals, kitchens, measures or cooking steps.\n"
    "- gear_gems and build_items must be Path of Exile items or gems.\n"
    "Regenerate the full JSON now."
)

TRANSLATION_SYSTEM_PROMPT = (
    "You translate Path of Exile build plans.\n"
    "Keep game terms (skill gems, support gems, unique items, currency orbs) "
    "as the community names them in the target language.\n"
    "Respond ONLY with JSON matching the schema.\n"
)

TRANSLATION_PROMPT = (
    "Translate the following build JSON to {language}.\n"
    "Maintain the EXACT JSON structure. Only translate the values of: {fields}.\n"
    "Do NOT translate \"compliance_badge\" boolean or the enum fields "
    "\"build_archetype\" and \"build_cost_tier\".\n\n"
    "Build JSON:\n{build_json}"
)

_TRANSLATED_FIELDS = (
    "build_title",
    "analysis_log",
    "build_reasoning",
    "gear_gems",
    "build_items",
    "build_steps",
    "setup_time",
)

ContextSource = Union[BuildSessionContext, dict, None]


def _read_context_file(path: Path, *, warn_on_error: bool = False) -> str:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except OSError as exc:
        if warn_on_error:
            logger.warning("Failed to read AI context file at %s: %s", path, exc)
        return ""
    return content.strip()


def load_local_ai_context(
    configured_path: Optional[str] = None,
    *,
    base_dir: Optional[Union[str, Path]] = None,
) -> str:
    """Return the local application context text, or ``""``.

    ``configured_path`` defaults to ``AI_CONTEXT_FILE_PATH``. When it is
    not set and the local file is missing or empty, the committed
    template is used instead.
    """
    if configured_path is None:
        from app.core.config import settings

        configured_path = settings.AI_CONTEXT_FILE_PATH
    explicit = str(configured_path or "").strip()
    root = Path(base_dir) if base_dir is not None else Path(os.getcwd())

    resolved = (root / (explicit or DEFAULT_AI_CONTEXT_FILE_PATH)).resolve()
    template = (root / DEFAULT_AI_CONTEXT_TEMPLATE_PATH).resolve()

    content = _read_context_file(resolved, warn_on_error=True)
    if content:
        return content
    if not explicit and resolved != template:
        return _read_context_file(template)
    return ""


def _language_name(language: Optional[str]) -> str:
    if str(language or "").strip().lower().startswith("pt"):
        return "PORTUGUESE (BRAZIL)"
    return "ENGLISH"


def _with_local_context(instruction: str, local_context: str) -> str:
    if local_context.strip():
        return f"{instruction}\n{LOCAL_CONTEXT_HEADER}\n{local_context.strip()}\n"
    return instruction


def build_system_instruction(context: ContextSource, local_context: str = "") -> str:
    ctx = BuildSessionContext.model_validate(context or {})
    setup_time = "Quick (under 30min)" if ctx.setup_time_preference == "quick" else "Can take time"
    notes = f"7. Party notes (follow them): {ctx.build_notes.strip()}\n" if ctx.build_notes.strip() else ""

    instruction = SYSTEM_PROMPT.format(
        archetype=archetype_label(ctx.requested_archetype),
        cost_tier=tier_label(ctx.cost_tier_preference),
        setup_time=setup_time,
        notes=notes,
        language=_language_name(ctx.language),
    )
    return _with_local_context(instruction, local_context)


def build_prompt(members: Iterable[Any], context: ContextSource) -> str:
    """Serialize party data and session context as the user prompt."""
    ctx = BuildSessionContext.model_validate(context or {})
    payload = {
        "party_db": list(members or []),
        "session_context": ctx.model_dump(mode="json"),
    }
    return json.dumps(payload, ensure_ascii=False, default=str)


def build_generation_request(
    members: Iterable[Any],
    context: ContextSource,
    *,
    candidate_models: Sequence[str] = (),
    actor_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    local_context: Optional[str] = None,
) -> GenerationRequest:
    if local_context is None:
        local_context = load_local_ai_context()
    return GenerationRequest(
        prompt=build_prompt(members, context),
        system_instruction=build_system_instruction(context, local_context),
        response_schema=BuildOutputSchema,
        candidate_models=tuple(candidate_models),
        actor_id=actor_id,
        tenant_id=tenant_id,
    )


def with_domain_correction(request: GenerationRequest) -> GenerationRequest:
    """Return a copy of ``request`` with the domain correction appended."""
    return request.with_instruction_suffix(DOMAIN_CORRECTION_PROMPT)


def build_translation_request(
    payload: Union[BuildPayload, dict],
    language: str,
    *,
    actor_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    local_context: Optional[str] = None,
) -> GenerationRequest:
    """Request that translates an existing build into ``language``.

    ``payload`` may use legacy field names; it is normalized before being
    serialized into the prompt.
    """
    if local_context is None:
        local_context = load_local_ai_context()
    build = BuildPayload.model_validate(payload)
    build_json = json.dumps(
        build.model_dump(mode="json", exclude={"language"}),
        ensure_ascii=False,
    )
    prompt = TRANSLATION_PROMPT.format(
        language=_language_name(language).title(),
        fields=", ".join(f'"{name}"' for name in _TRANSLATED_FIELDS),
        build_json=build_json,
    )
    return GenerationRequest(
        prompt=prompt,
        system_instruction=_with_local_context(TRANSLATION_SYSTEM_PROMPT, local_context),
        response_schema=BuildOutputSchema,
        actor_id=actor_id,
        tenant_id=tenant_id,
    )
