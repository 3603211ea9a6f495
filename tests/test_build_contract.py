"""Tests for build payload normalization and narrative cleanup."""

import json

import pytest

from app.core.services.ai.build_contract import (
    BuildArchetype,
    BuildCostTier,
    BuildOutputSchema,
    BuildPayload,
    BuildSessionContext,
    decode_build_json,
    normalize_build_archetype,
    normalize_build_cost_tier,
    parse_build_payload,
    sanitize_narrative_text,
    tier_label,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("league_starter", BuildArchetype.LEAGUE_STARTER),
        ("Main Course", BuildArchetype.LEAGUE_STARTER),
        ("appetizer", BuildArchetype.MAPPER),
        ("dessert", BuildArchetype.BOSSING),
        ("snack", BuildArchetype.HYBRID),
        ("nonsense", BuildArchetype.LEAGUE_STARTER),
        (None, BuildArchetype.LEAGUE_STARTER),
    ],
)
def test_normalize_archetype(raw, expected):
    assert normalize_build_archetype(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("cheap", BuildCostTier.CHEAP),
        ("Mirror of Kalandra", BuildCostTier.MIRROR_OF_KALANDRA),
        ("chef", BuildCostTier.MIRROR_OF_KALANDRA),
        ("médio", BuildCostTier.MEDIUM),
        ("advanced", BuildCostTier.EXPENSIVE),
        ("", BuildCostTier.MEDIUM),
    ],
)
def test_normalize_cost_tier(raw, expected):
    assert normalize_build_cost_tier(raw) == expected


class TestSanitizeNarrative:
    def test_replaces_snake_case_tokens(self):
        text = sanitize_narrative_text("A league_starter for mirror_of_kalandra budgets")
        assert text == "A League Starter for Mirror of Kalandra budgets"

    def test_replaces_quoted_tokens(self):
        assert sanitize_narrative_text('Tier "expensive" fits.') == "Tier Expensive fits."

    def test_portuguese_labels(self):
        assert sanitize_narrative_text("build cheap", "pt-BR") == "build Barato"

    def test_leaves_unrelated_words(self):
        assert sanitize_narrative_text("Scale cold damage") == "Scale cold damage"

    def test_none_becomes_empty(self):
        assert sanitize_narrative_text(None) == ""


def test_tier_label_is_human_readable():
    assert tier_label("mirror_of_kalandra") == "Mirror of Kalandra"
    assert tier_label("cheap", "pt") == "Barato"


class TestBuildPayload:
    def test_canonical_payload(self):
        payload = BuildPayload.model_validate(
            {
                "analysis_log": "Stash has a 5-link bow.",
                "build_title": "Tornado Shot Deadeye",
                "build_reasoning": "A mapper for medium budgets.",
                "gear_gems": [{"name": "Tornado Shot", "quantity": 1, "unit": "gem"}],
                "build_items": [{"name": "Chaos Orb", "quantity": "20", "unit": "x"}],
                "build_steps": ["Level with Lightning Arrow", {"text": "Swap at level 28"}],
                "compliance_badge": False,
                "build_archetype": "mapper",
                "build_cost_tier": "medium",
                "setup_time": "2 hours",
                "setup_time_minutes": "120",
            }
        )
        assert payload.build_archetype == BuildArchetype.MAPPER
        assert payload.build_cost_tier == BuildCostTier.MEDIUM
        assert payload.build_complexity == BuildCostTier.MEDIUM
        assert payload.gear_gems[0].quantity == "1"
        assert payload.build_steps == ["Level with Lightning Arrow", "Swap at level 28"]
        assert payload.build_reasoning == "A Mapper for Medium budgets."
        assert payload.compliance_badge is False
        assert payload.setup_time_minutes == 120

    def test_legacy_field_names(self):
        payload = BuildPayload.model_validate(
            {
                "recipe_title": "Legacy Build",
                "match_reasoning": "ok",
                "ingredients_from_pantry": ['{"name": "Vaal Orb", "quantity": "2"}', "Jewel"],
                "shopping_list": [{"name": "  "}, {"name": "Exalted Orb"}],
                "step_by_step": ["  step one  ", "", 3],
                "safety_badge": True,
                "meal_type": "dessert",
                "difficulty": "chef",
                "prep_time": "10 min",
                "prep_time_minutes": None,
            }
        )
        assert payload.build_title == "Legacy Build"
        assert [entry.name for entry in payload.gear_gems] == ["Vaal Orb", "Jewel"]
        assert payload.gear_gems[0].quantity == "2"
        assert [entry.name for entry in payload.build_items] == ["Exalted Orb"]
        assert payload.build_steps == ["step one"]
        assert payload.build_archetype == BuildArchetype.BOSSING
        assert payload.build_cost_tier == BuildCostTier.MIRROR_OF_KALANDRA
        assert payload.setup_time_minutes is None

    def test_defaults_for_missing_fields(self):
        payload = BuildPayload.model_validate({})
        assert payload.analysis_log == "Manual Entry"
        assert payload.compliance_badge is True
        assert payload.build_archetype == BuildArchetype.LEAGUE_STARTER
        assert payload.build_cost_tier == BuildCostTier.MEDIUM
        assert payload.gear_gems == []

    def test_unparseable_minutes_become_none(self):
        assert BuildPayload.model_validate({"setup_time_minutes": "soon"}).setup_time_minutes is None

    def test_parse_build_payload_rejects_non_objects(self):
        with pytest.raises(ValueError):
            parse_build_payload("[]")
        with pytest.raises(ValueError):
            parse_build_payload("not json")

    def test_parse_build_payload(self):
        payload = parse_build_payload(json.dumps({"build_title": "Arc Witch"}))
        assert payload.build_title == "Arc Witch"

    def test_decode_build_json_keeps_legacy_values(self):
        raw = decode_build_json(json.dumps({"meal_type": "dessert", "recipe_title": "Sweet Treat"}))
        assert raw == {"meal_type": "dessert", "recipe_title": "Sweet Treat"}
        with pytest.raises(ValueError):
            decode_build_json("\"just a string\"")


def test_output_schema_lists_every_field():
    fields = set(BuildOutputSchema.model_fields)
    assert fields == {
        "analysis_log",
        "build_title",
        "build_reasoning",
        "gear_gems",
        "build_items",
        "build_steps",
        "compliance_badge",
        "build_archetype",
        "build_cost_tier",
        "setup_time",
        "setup_time_minutes",
    }


class TestBuildSessionContext:
    def test_canonical_fields(self):
        ctx = BuildSessionContext.model_validate(
            {
                "party_member_ids": ["m1", "m2"],
                "stash_gear_gems": ["Arc"],
                "requested_archetype": "bossing",
                "cost_tier_preference": "expensive",
                "setup_time_preference": "plenty",
                "build_notes": "Hardcore league",
                "language": "en",
            }
        )
        assert ctx.requested_archetype == BuildArchetype.BOSSING
        assert ctx.cost_tier_preference == BuildCostTier.EXPENSIVE
        assert ctx.setup_time_preference == "plenty"

    def test_legacy_aliases(self):
        ctx = BuildSessionContext.model_validate(
            {
                "who_is_eating": ["a", 2],
                "pantry_ingredients": ["Chaos Orb"],
                "requested_type": "appetizer",
                "difficulty_preference": "easy",
                "prep_time_preference": "whenever",
                "observation": "no melee",
            }
        )
        assert ctx.party_member_ids == ["a", "2"]
        assert ctx.stash_gear_gems == ["Chaos Orb"]
        assert ctx.requested_archetype == BuildArchetype.MAPPER
        assert ctx.cost_tier_preference == BuildCostTier.CHEAP
        assert ctx.setup_time_preference == "quick"
        assert ctx.build_notes == "no melee"
