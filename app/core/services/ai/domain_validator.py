"""Domain guardrail for generated builds.

The model behind this service was originally prompted as a recipe
assistant and still drifts back to cooking content now and then. This
module scores generated text against two vocabularies, culinary
(off-domain) and Path of Exile (on-domain), and decides whether the
output must be rejected.

Decision rules, in order, any of which marks content off-domain:

1. a high-confidence culinary term appears anywhere;
2. a culinary term appears in the critical fields (title, reasoning,
   analysis log, enums, setup time) and no PoE term appears anywhere;
3. ``min_off_hits_without_on`` or more culinary terms and no PoE term;
4. ``min_off_hits_with_weak_on`` or more culinary terms and at most
   ``max_weak_on_hits`` PoE terms.

Rule 2 only applies to structured payloads.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Pattern, Tuple


@dataclass(frozen=True)
class TermPattern:
    term: str
    pattern: Pattern[str]
    high_confidence: bool = False


def _term(term: str, regex: str, *, high_confidence: bool = False) -> TermPattern:
    return TermPattern(term=term, pattern=re.compile(regex, re.IGNORECASE), high_confidence=high_confidence)


def _hc(term: str, regex: str) -> TermPattern:
    return _term(term, regex, high_confidence=True)


OFF_DOMAIN_TERMS: Tuple[TermPattern, ...] = (
    _hc("recipe", r"\brecipe(s)?\b"),
    _hc("receita", r"\breceita(s)?\b"),
    _hc("dish", r"\bdish(es)?\b"),
    _hc("prato", r"\bprato(s)?\b"),
    _hc("meal", r"\bmeal(s)?\b"),
    _hc("refeicao", r"\brefei[cç][aã]o(es)?\b"),
    _hc("food", r"\bfood\b"),
    _hc("comida", r"\bcomida\b"),
    _hc("culinary", r"\bculinar(y|ia|io)\b"),
    _hc("kitchen", r"\bkitchen\b"),
    _hc("cozinha", r"\bcozinha\b"),
    _hc("pantry", r"\bpantry\b"),
    _hc("despensa", r"\bdespensa\b"),
    _hc("fridge", r"\bfridge\b"),
    _hc("geladeira", r"\bgeladeira\b"),
    _hc("ingredient", r"\bingredient(s)?\b"),
    _hc("ingrediente", r"\bingrediente(s)?\b"),
    _hc("cook", r"\bcook(ing|ed)?\b"),
    _hc("cozinhar", r"\bcozinh(ar|ando|ado)\b"),
    _hc("prato principal", r"\bprato principal\b"),
    _hc("main course", r"\bmain course\b"),
    # Legacy archetype labels and loose measures; need corroboration.
    _term("appetizer", r"\bappetizer\b"),
    _term("dessert", r"\bdessert\b"),
    _term("snack", r"\bsnack\b"),
    _hc("chicken", r"\bchicken\b"),
    _hc("frango", r"\bfrango\b"),
    _hc("beef", r"\bbeef\b"),
    _hc("carne", r"\bcarne\b"),
    _hc("pork", r"\bpork\b"),
    _hc("porco", r"\bporco\b"),
    _hc("fish", r"\bfish\b"),
    _hc("peixe", r"\bpeixe\b"),
    _hc("rice", r"\brice\b"),
    _hc("arroz", r"\barroz\b"),
    _hc("pasta", r"\bpasta\b"),
    _hc("macarrao", r"\bmacarr[aã]o\b"),
    _hc("onion", r"\bonion\b"),
    _hc("cebola", r"\bcebola\b"),
    _hc("garlic", r"\bgarlic\b"),
    _hc("alho", r"\balho\b"),
    _hc("tomato", r"\btomato(es)?\b"),
    _hc("tomate", r"\btomate(s)?\b"),
    _hc("salt", r"\bsalt\b"),
    _hc("sal", r"\bsal\b"),
    _hc("pepper", r"\bpepper\b"),
    _hc("pimenta", r"\bpimenta\b"),
    _hc("sugar", r"\bsugar\b"),
    _hc("acucar", r"\ba[cç][uú]car\b"),
    _hc("egg", r"\begg(s)?\b"),
    _hc("ovo", r"\bovo(s)?\b"),
    _hc("milk", r"\bmilk\b"),
    _hc("leite", r"\bleite\b"),
    _hc("cheese", r"\bcheese\b"),
    _hc("queijo", r"\bqueijo\b"),
    _hc("bread", r"\bbread\b"),
    _hc("pao", r"\bp[aã]o\b"),
    _hc("flour", r"\bflour\b"),
    _hc("farinha", r"\bfarinha\b"),
    _hc("butter", r"\bbutter\b"),
    _hc("manteiga", r"\bmanteiga\b"),
    _hc("olive oil", r"\bolive oil\b"),
    _hc("azeite", r"\bazeite\b"),
    _hc("cake", r"\bcake\b"),
    _hc("bolo", r"\bbolo\b"),
    _hc("soup", r"\bsoup\b"),
    _hc("sopa", r"\bsopa\b"),
    _hc("salad", r"\bsalad\b"),
    _hc("salada", r"\bsalada\b"),
    _hc("pizza", r"\bpizza\b"),
    _hc("burger", r"\bburger\b"),
    _hc("sandwich", r"\bsandwich\b"),
    _hc("sanduiche", r"\bsandu[ií]che\b"),
    _hc("beans", r"\bbean(s)?\b"),
    _hc("feijao", r"\bfeij[aã]o\b"),
    _hc("potato", r"\bpotato(es)?\b"),
    _hc("batata", r"\bbatata\b"),
    _hc("carrot", r"\bcarrot(s)?\b"),
    _hc("cenoura", r"\bcenoura\b"),
    _hc("banana", r"\bbanana(s)?\b"),
    _hc("apple", r"\bapple(s)?\b"),
    _hc("maca", r"\bma[cç][aã](s)?\b"),
    _hc("tablespoon", r"\btablespoon(s)?\b"),
    _hc("teaspoon", r"\bteaspoon(s)?\b"),
    _hc("tbsp", r"\btbsp\b"),
    _hc("tsp", r"\btsp\b"),
    _term("cup", r"\bcup(s)?\b"),
    _hc("ounce", r"\bounce(s)?\b"),
    _term("pound", r"\bpound(s)?\b"),
    _hc("gram", r"\bgram(s)?\b"),
    _hc("kilogram", r"\bkilogram(s)?\b"),
    _hc("milliliter", r"\bmillilit(er|re)(s)?\b"),
    _hc("liter", r"\blit(er|re)(s)?\b"),
    # "6L" is also six-link shorthand.
    _term("metric cooking unit", r"\b\d+\s?(kg|g|ml|l|oz|lb)\b"),
)

ON_DOMAIN_TERMS: Tuple[TermPattern, ...] = (
    _term("path of exile", r"\bpath of exile\b"),
    _term("poe", r"\bpoe\b"),
    _term("exile", r"\bexile(s)?\b"),
    _term("atlas", r"\batlas\b"),
    _term("hideout", r"\bhideout\b"),
    _term("stash", r"\bstash\b"),
    _term("party", r"\bparty\b"),
    _term("league starter", r"\bleague starter\b"),
    _term("mapper", r"\bmapper\b"),
    _term("bossing", r"\bbossing\b"),
    _term("ascendant", r"\bascendant\b"),
    _term("ascendancy", r"\bascendanc(y|ies)\b"),
    _term("skill gem", r"\bskill gem(s)?\b"),
    _term("support gem", r"\bsupport gem(s)?\b"),
    _term("gem", r"\bgem(s)?\b"),
    _term("gear", r"\bgear\b"),
    _term("socket", r"\bsocket(s)?\b"),
    _term("link", r"\blink(s)?\b"),
    _term("map", r"\bmap(s|ping)?\b"),
    _term("boss", r"\bboss(es|ing)?\b"),
    _term("orb", r"\borb(s)?\b"),
    _term("fusing", r"\bfusing\b"),
    _term("chromatic", r"\bchromatic\b"),
    _term("annulment", r"\bannulment\b"),
    _term("vaal orb", r"\bvaal orb\b"),
    _term("chaos orb", r"\bchaos orb\b"),
    _term("divine orb", r"\bdivine orb\b"),
    _term("exalted orb", r"\bexalted orb\b"),
    _term("jewel", r"\bjewel(s)?\b"),
    _term("waystone", r"\bwaystone(s)?\b"),
    _term("dps", r"\bdps\b"),
    _term("passive tree", r"\bpassive tree\b"),
    _term("ascendancy point", r"\bascendancy point(s)?\b"),
    _term("resistance", r"\bresistance(s)?\b"),
    _term("energy shield", r"\benergy shield\b"),
    _term("evasion", r"\bevasion\b"),
    _term("armour", r"\barmou?r\b"),
)

# Current field name first, then the legacy names raw model output may still use.
_CRITICAL_FIELDS: Tuple[Tuple[str, ...], ...] = (
    ("build_title", "recipe_title"),
    ("build_reasoning", "match_reasoning"),
    ("analysis_log",),
    ("build_archetype", "meal_type"),
    ("build_cost_tier", "difficulty"),
    ("build_complexity",),
    ("setup_time", "prep_time"),
)
_ENTRY_LIST_FIELDS: Tuple[Tuple[str, ...], ...] = (
    ("gear_gems", "ingredients_from_pantry"),
    ("build_items", "shopping_list"),
)
_STEP_FIELDS = ("build_steps", "step_by_step")


@dataclass(frozen=True)
class DomainThresholds:
    min_off_hits_without_on: int = 2
    min_off_hits_with_weak_on: int = 3
    max_weak_on_hits: int = 1

    @classmethod
    def from_settings(cls, source: Any = None) -> "DomainThresholds":
        if source is None:
            from app.core.config import settings as source
        return cls(
            min_off_hits_without_on=int(getattr(source, "DOMAIN_MIN_OFF_DOMAIN_HITS_WITHOUT_ON_DOMAIN", 2)),
            min_off_hits_with_weak_on=int(getattr(source, "DOMAIN_MIN_OFF_DOMAIN_HITS_WITH_WEAK_ON_DOMAIN", 3)),
            max_weak_on_hits=int(getattr(source, "DOMAIN_MAX_WEAK_ON_DOMAIN_HITS", 1)),
        )


@dataclass(frozen=True)
class DomainAssessment:
    is_off_domain: bool
    on_domain_hits: int
    off_domain_hits: int
    high_confidence_off_domain_hits: int
    matched_off_domain_terms: List[str] = field(default_factory=list)
    matched_on_domain_terms: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Matches:
    all: List[str]
    high_confidence: List[str]


def _collect_matches(text: str, patterns: Iterable[TermPattern]) -> _Matches:
    source = str(text or "")
    matched: List[str] = []
    high_confidence: List[str] = []
    for item in patterns:
        if item.term in matched:
            continue
        if item.pattern.search(source):
            matched.append(item.term)
            if item.high_confidence:
                high_confidence.append(item.term)
    return _Matches(all=matched, high_confidence=high_confidence)


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _first_field(value: Any, names: Iterable[str]) -> Any:
    for name in names:
        found = _field(value, name)
        if found is not None:
            return found
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    # str-based enums render as their value
    return str(getattr(value, "value", value)).strip()


def _entry_text(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.strip()
    parts = [_text(_field(entry, key)) for key in ("name", "quantity", "unit")]
    return " ".join(part for part in parts if part)


def _step_text(step: Any) -> str:
    if isinstance(step, str):
        return step
    return _text(_field(step, "text"))


def _judge(
    off: _Matches,
    on: _Matches,
    thresholds: DomainThresholds,
    *,
    critical_off_hits: int = 0,
) -> bool:
    off_hits = len(off.all)
    on_hits = len(on.all)
    return (
        len(off.high_confidence) > 0
        or (critical_off_hits > 0 and on_hits == 0)
        or (off_hits >= thresholds.min_off_hits_without_on and on_hits == 0)
        or (off_hits >= thresholds.min_off_hits_with_weak_on and on_hits <= thresholds.max_weak_on_hits)
    )


def assess_text_domain(text: str, thresholds: Optional[DomainThresholds] = None) -> DomainAssessment:
    """Assess free text (no critical-field rule)."""
    thresholds = thresholds or DomainThresholds()
    off = _collect_matches(text, OFF_DOMAIN_TERMS)
    on = _collect_matches(text, ON_DOMAIN_TERMS)
    return DomainAssessment(
        is_off_domain=_judge(off, on, thresholds),
        on_domain_hits=len(on.all),
        off_domain_hits=len(off.all),
        high_confidence_off_domain_hits=len(off.high_confidence),
        matched_off_domain_terms=off.all,
        matched_on_domain_terms=on.all,
    )


def assess_build_domain(build: Any, thresholds: Optional[DomainThresholds] = None) -> DomainAssessment:
    """Assess a build payload field by field.

    ``build`` is either the raw decoded mapping (legacy field names and
    unnormalized enum values included) or a :class:`BuildPayload`.
    """
    thresholds = thresholds or DomainThresholds()

    critical_text = "\n".join(_text(_first_field(build, names)) for names in _CRITICAL_FIELDS).strip()

    item_lines: List[str] = []
    for names in _ENTRY_LIST_FIELDS:
        entries = _first_field(build, names)
        if isinstance(entries, (list, tuple)):
            item_lines.extend(_entry_text(entry) for entry in entries)
    steps = _first_field(build, _STEP_FIELDS)
    if isinstance(steps, (list, tuple)):
        item_lines.extend(_step_text(step) for step in steps)
    item_text = "\n".join(item_lines).strip()

    full_text = "\n".join(part for part in (critical_text, item_text) if part)

    off_critical = _collect_matches(critical_text, OFF_DOMAIN_TERMS)
    off = _collect_matches(full_text, OFF_DOMAIN_TERMS)
    on = _collect_matches(full_text, ON_DOMAIN_TERMS)

    return DomainAssessment(
        is_off_domain=_judge(off, on, thresholds, critical_off_hits=len(off_critical.all)),
        on_domain_hits=len(on.all),
        off_domain_hits=len(off.all),
        high_confidence_off_domain_hits=len(off.high_confidence),
        matched_off_domain_terms=off.all,
        matched_on_domain_terms=on.all,
    )
