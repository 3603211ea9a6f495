"""Tests for system instruction, local context and correction prompts."""

import json

from app.core.services.ai.build_contract import BuildOutputSchema
from app.core.services.ai.prompt_builder import (
    DEFAULT_AI_CONTEXT_FILE_PATH,
    DEFAULT_AI_CONTEXT_TEMPLATE_PATH,
    LOCAL_CONTEXT_HEADER,
    build_generation_request,
    build_prompt,
    build_system_instruction,
    build_translation_request,
    load_local_ai_context,
    with_domain_correction,
)

_CONTEXT = {
    "party_member_ids": ["m1"],
    "stash_gear_gems": ["Arc"],
    "requested_archetype": "bossing",
    "cost_tier_preference": "mirror_of_kalandra",
    "setup_time_preference": "quick",
    "build_notes": "Hardcore, no melee",
}


def _write(base, relative, content):
    path = base / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestSystemInstruction:
    def test_uses_human_readable_tier(self):
        instruction = build_system_instruction(_CONTEXT)
        assert "Mirror of Kalandra" in instruction
        assert "mirror_of_kalandra" not in instruction
        assert "Bossing" in instruction

    def test_notes_and_setup_time(self):
        instruction = build_system_instruction(_CONTEXT)
        assert "Hardcore, no melee" in instruction
        assert "Quick (under 30min)" in instruction

    def test_local_context_block_only_when_present(self):
        assert LOCAL_CONTEXT_HEADER not in build_system_instruction(_CONTEXT, "")
        assert LOCAL_CONTEXT_HEADER not in build_system_instruction(_CONTEXT, "   \n")
        with_context = build_system_instruction(_CONTEXT, "Always prefer bows.")
        assert LOCAL_CONTEXT_HEADER in with_context
        assert with_context.rstrip().endswith("Always prefer bows.")

    def test_portuguese_output_language(self):
        instruction = build_system_instruction({**_CONTEXT, "language": "pt-BR"})
        assert "PORTUGUESE" in instruction


def test_prompt_serializes_party_and_context():
    prompt = json.loads(build_prompt([{"id": "m1", "class": "Ranger"}], _CONTEXT))
    assert prompt["party_db"] == [{"id": "m1", "class": "Ranger"}]
    assert prompt["session_context"]["cost_tier_preference"] == "mirror_of_kalandra"


def test_generation_request():
    request = build_generation_request(
        [],
        _CONTEXT,
        candidate_models=["a", "b"],
        actor_id="u1",
        tenant_id="t1",
        local_context="",
    )
    assert request.response_schema is BuildOutputSchema
    assert request.candidate_models == ("a", "b")
    assert request.actor_id == "u1"
    assert request.tenant_id == "t1"


def test_domain_correction_returns_new_request():
    request = build_generation_request([], _CONTEXT, local_context="")
    corrected = with_domain_correction(request)

    assert corrected is not request
    assert "CRITICAL DOMAIN CORRECTION" in corrected.system_instruction
    assert corrected.system_instruction.startswith(request.system_instruction)
    assert "CRITICAL DOMAIN CORRECTION" not in request.system_instruction
    assert corrected.prompt == request.prompt


def test_translation_request():
    request = build_translation_request(
        {"recipe_title": "Arc Mapper", "safety_badge": False},
        "pt-BR",
        actor_id="u1",
        tenant_id="k1",
        local_context="league rules",
    )

    assert "Translate the following build JSON to Portuguese (Brazil)." in request.prompt
    build_json = json.loads(request.prompt.split("Build JSON:\n", 1)[1])
    assert build_json["build_title"] == "Arc Mapper"
    assert build_json["compliance_badge"] is False
    assert "language" not in build_json
    assert request.system_instruction.endswith(f"{LOCAL_CONTEXT_HEADER}\nleague rules\n")
    assert request.response_schema is BuildOutputSchema
    assert (request.actor_id, request.tenant_id) == ("u1", "k1")


def test_translation_request_defaults_to_english():
    request = build_translation_request({"build_title": "Arc"}, "es", local_context="")
    assert "to English." in request.prompt
    assert LOCAL_CONTEXT_HEADER not in request.system_instruction


class TestLocalAiContext:
    def test_reads_configured_file(self, tmp_path):
        _write(tmp_path, "ctx/custom.md", "  custom rules \n")
        assert load_local_ai_context("ctx/custom.md", base_dir=tmp_path) == "custom rules"

    def test_default_local_file(self, tmp_path):
        _write(tmp_path, DEFAULT_AI_CONTEXT_FILE_PATH, "local rules")
        _write(tmp_path, DEFAULT_AI_CONTEXT_TEMPLATE_PATH, "template rules")
        assert load_local_ai_context("", base_dir=tmp_path) == "local rules"

    def test_falls_back_to_template_when_local_missing(self, tmp_path):
        _write(tmp_path, DEFAULT_AI_CONTEXT_TEMPLATE_PATH, "template rules")
        assert load_local_ai_context("", base_dir=tmp_path) == "template rules"

    def test_falls_back_to_template_when_local_blank(self, tmp_path):
        _write(tmp_path, DEFAULT_AI_CONTEXT_FILE_PATH, "   ")
        _write(tmp_path, DEFAULT_AI_CONTEXT_TEMPLATE_PATH, "template rules")
        assert load_local_ai_context("", base_dir=tmp_path) == "template rules"

    def test_explicit_path_does_not_use_template(self, tmp_path):
        _write(tmp_path, DEFAULT_AI_CONTEXT_TEMPLATE_PATH, "template rules")
        assert load_local_ai_context("missing.md", base_dir=tmp_path) == ""

    def test_nothing_available(self, tmp_path):
        assert load_local_ai_context("", base_dir=tmp_path) == ""

    def test_unreadable_path_logs_warning(self, tmp_path, caplog):
        (tmp_path / "ctx_dir").mkdir()
        with caplog.at_level("WARNING"):
            assert load_local_ai_context("ctx_dir", base_dir=tmp_path) == ""
        assert "Failed to read AI context file" in caplog.text
