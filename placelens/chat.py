"""
Chat Intent Engine.

Questions about an analysed place are classified by an ordered rule table
(first match wins), answered from the snapshot or from a narrow on-demand
places query, and phrased by the generative backend when its answer passes
a few sanity checks. Otherwise a fixed template is used. ``answer`` never
raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from placelens.errors import AdapterUnavailable, BackendUnavailable
from placelens.geo import within_radius
from placelens.llm import GenerativeBackend
from placelens.models import CATEGORY_ORDER, ContextSnapshot, Coordinate, PoiCategory, Report
from placelens.pois import normalize_name

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "infrastructure"

QUALITATIVE_LIMIT = "There is no qualitative data (ambience, quality, prices) for these places."

NO_DATA_PHRASES = (
    "no puedo confirmarlo",
    "i can't confirm",
    "i cannot confirm",
    "i don't have enough",
    "i do not have enough",
    "not enough information",
    "no information available",
)

_BEST_MATCHER_WORDS = ("best", "mejor", "recommended", "recommend", "recomendado", "recomiendas", "top", "worth")
_BEST_MATCHER_PHRASES = ("cual elegir", "merece la pena", "donde ir", "which one")


# ---------- Matching ---------- #

class Matcher(Protocol):
    def matches(self, text: str) -> bool: ...


def _tokens(text: str) -> list[str]:
    return normalize_name(text).split()


def _plural_forms(word: str) -> set[str]:
    forms = {word}
    if len(word) > 3 and word.endswith("es"):
        forms.add(word[:-2])
    if len(word) > 2 and word.endswith("s"):
        forms.add(word[:-1])
    return forms


class KeywordMatcher:
    """Whole-word, accent-insensitive keywords with simple plural folding.

    Entries containing a space are matched as phrases.
    """

    def __init__(self, *keywords: str):
        self.words: set[str] = set()
        self.phrases: list[str] = []
        for keyword in keywords:
            normalized = " ".join(_tokens(keyword))
            if " " in normalized:
                self.phrases.append(normalized)
            elif normalized:
                self.words.add(normalized)

    def matches(self, text: str) -> bool:
        tokens = _tokens(text)
        for token in tokens:
            if _plural_forms(token) & self.words:
                return True
        padded = f" {' '.join(tokens)} "
        return any(f" {phrase} " in padded for phrase in self.phrases)


@dataclass(frozen=True)
class IntentRule:
    matcher: Matcher
    intent: str
    categories: tuple[PoiCategory, ...] = ()
    tags: tuple[str, ...] = ()
    requery: bool = False
    limitation: str | None = None


# Order matters: narrow shop types and "tapas" must win over the generic rules.
INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(KeywordMatcher("bakery", "panaderia", "horno de pan", "bread"), "bakery",
               tags=("shop=bakery",), requery=True),
    IntentRule(KeywordMatcher("pastry", "pasteleria", "confiteria", "cake shop"), "pastry",
               tags=("shop~pastry|confectionery",), requery=True),
    IntentRule(KeywordMatcher("butcher", "carniceria"), "butcher",
               tags=("shop=butcher",), requery=True),
    IntentRule(KeywordMatcher("greengrocer", "fruteria", "verduleria"), "greengrocer",
               tags=("shop=greengrocer",), requery=True),
    IntentRule(KeywordMatcher("pharmacy", "farmacia", "chemist", "drugstore"), "pharmacy",
               categories=(PoiCategory.PHARMACY,)),
    IntentRule(KeywordMatcher("hospital", "clinic", "clinica", "urgencias", "doctor", "medico", "centro de salud",
                              "emergency room"), "health",
               categories=(PoiCategory.HOSPITAL,)),
    IntentRule(KeywordMatcher("atm", "cajero", "bank", "banco", "cash"), "cash",
               tags=("amenity~bank|atm",), requery=True),
    IntentRule(KeywordMatcher("gasolinera", "fuel", "petrol", "gas station"), "fuel",
               tags=("amenity=fuel",), requery=True),
    IntentRule(KeywordMatcher("parking", "aparcamiento", "aparcar", "car park"), "parking",
               tags=("amenity=parking",), requery=True),
    IntentRule(KeywordMatcher("gym", "gimnasio", "fitness"), "gym",
               tags=("leisure=fitness_centre",), requery=True),
    IntentRule(KeywordMatcher("tapas", "tapear", "tapeo"), "tapas",
               categories=(PoiCategory.BAR, PoiCategory.RESTAURANT),
               limitation="There is no specific data about tapas; bars and restaurants are shown instead."),
    IntentRule(KeywordMatcher("restaurant", "restaurante", "comer", "cenar", "cena", "almuerzo", "almorzar",
                              "comida", "eat", "dinner", "lunch", "food"), "restaurant",
               categories=(PoiCategory.RESTAURANT, PoiCategory.FAST_FOOD)),
    IntentRule(KeywordMatcher("bar", "pub", "club", "discoteca", "nightlife", "copas", "drinks"), "nightlife",
               categories=(PoiCategory.BAR, PoiCategory.CLUB)),
    IntentRule(KeywordMatcher("cafe", "cafeteria", "coffee"), "cafe",
               categories=(PoiCategory.CAFE,)),
    IntentRule(KeywordMatcher("supermarket", "supermercado", "groceries", "grocery"), "supermarket",
               categories=(PoiCategory.SUPERMARKET,)),
    IntentRule(KeywordMatcher("bus", "autobus", "parada", "metro", "tren", "train", "estacion", "station",
                              "transport", "transporte"), "transport",
               categories=(PoiCategory.TRANSPORT,)),
    IntentRule(KeywordMatcher("hotel", "hostel", "alojamiento", "accommodation", "dormir"), "hotel",
               categories=(PoiCategory.HOTEL,)),
    IntentRule(KeywordMatcher("school", "colegio", "escuela", "instituto"), "school",
               categories=(PoiCategory.SCHOOL,)),
    IntentRule(KeywordMatcher("tourism", "turismo", "turistico", "attraction", "atraccion", "museum", "museo",
                              "viewpoint", "mirador", "sightseeing", "visitar", "visit"), "tourism",
               categories=(PoiCategory.ATTRACTION, PoiCategory.MUSEUM, PoiCategory.VIEWPOINT)),
)

_DEFAULT_RULE = IntentRule(KeywordMatcher(), DEFAULT_INTENT, categories=CATEGORY_ORDER)
_BEST = KeywordMatcher(*_BEST_MATCHER_WORDS, *_BEST_MATCHER_PHRASES)


def classify(question: str, rules: tuple[IntentRule, ...] = INTENT_RULES) -> IntentRule:
    for rule in rules:
        if rule.matcher.matches(question):
            return rule
    return _DEFAULT_RULE


# ---------- Answer ---------- #

@dataclass(frozen=True)
class Candidate:
    name: str
    distance_m: int
    kind: str
    rating: float | None = None


@dataclass
class ChatAnswer:
    answer: str
    limitations: list[str] = field(default_factory=list)
    sources_used: dict[str, int] = field(default_factory=dict)
    intent: str = DEFAULT_INTENT


CHAT_SYSTEM_PROMPT = """You answer questions about one specific place using ONLY the JSON
context you are given (points of interest with distance_m and kind). Never invent places,
ratings, prices, opening hours or ambience. Help the user decide: pick ONE primary option,
explain why using distance and kind, compare it with 1-2 nearby alternatives, and state data
limitations honestly. Answer in plain text (no JSON, no markdown code), using the sections
"Primary recommendation:", "Why:", "Alternatives:" and "Limitations:". Reply in the
language of the question."""


def looks_structured(text: str) -> bool:
    stripped = text.strip()
    return "```" in stripped or stripped.startswith(("{", "["))


def acceptable_answer(text: str | None, has_candidates: bool) -> bool:
    if not text or not text.strip():
        return False
    if looks_structured(text):
        return False
    if has_candidates:
        lowered = normalize_name(text)
        if any(normalize_name(p) in lowered for p in NO_DATA_PHRASES):
            return False
    return True


def _rank(candidates: list[Candidate], best: bool) -> list[Candidate]:
    if best:
        return sorted(candidates, key=lambda c: (-(c.rating if c.rating is not None else -1.0), c.distance_m, c.name))
    return sorted(candidates, key=lambda c: (c.distance_m, c.name))


def template_answer(ranked: list[Candidate], limitations: list[str]) -> str:
    if not ranked:
        lines = ["With the available data I cannot confirm this."]
        if limitations:
            lines += ["", "Limitations:", *(f"- {item}" for item in limitations)]
        return "\n".join(lines)

    primary, alternatives = ranked[0], ranked[1:3]
    why = [f"It is the closest {primary.kind} within the search radius, at {primary.distance_m} m."]
    if primary.rating is not None:
        why.append(f"It has a rating of {primary.rating:g}.")
    if alternatives:
        alt = alternatives[0]
        why.append(f"Compared with {alt.name} ({alt.distance_m} m) it is a better fit on the data available.")
    alt_lines = [f"- {c.name} ({c.kind}, {c.distance_m} m)" for c in alternatives] or [
        "- No other nearby alternatives in the data."
    ]
    return "\n".join([
        f"Primary recommendation: {primary.name} ({primary.distance_m} m)",
        "",
        "Why:",
        *(f"- {line}" for line in why),
        "",
        "Alternatives:",
        *alt_lines,
        "",
        "Limitations:",
        *(f"- {item}" for item in limitations),
    ])


class ChatEngine:
    def __init__(
        self,
        backend: GenerativeBackend | None = None,
        places=None,
        *,
        requery_timeout: float = 6.0,
        rules: tuple[IntentRule, ...] = INTENT_RULES,
        max_candidates: int = 10,
    ):
        self.backend = backend
        self.places = places
        self.requery_timeout = requery_timeout
        self.rules = rules
        self.max_candidates = max_candidates

    async def answer(
        self,
        question: str,
        snapshot: ContextSnapshot,
        prior_report: Report | None = None,
        *,
        center: Coordinate | None = None,
        radius_m: int | None = None,
    ) -> ChatAnswer:
        """Answer ``question`` from ``snapshot``.

        ``center``/``radius_m`` are the point actually asked about; the live
        re-query uses them, falling back to the snapshot's own when omitted.
        """
        rule = classify(question, self.rules)
        logger.info("Chat intent %s for %r", rule.intent, question[:80])
        limitations: list[str] = [rule.limitation] if rule.limitation else []
        sources: dict[str, int] = {}

        if rule.requery:
            candidates = await self._requery(
                rule,
                center or snapshot.center,
                radius_m or snapshot.radius_m,
                limitations,
            )
            if candidates:
                sources[rule.intent] = len(candidates)
        else:
            candidates = []
            for category in rule.categories:
                found = [
                    Candidate(p.name, p.distance_m, category.value.replace("_", " "), p.rating)
                    for p in snapshot.pois(category)
                ]
                if found:
                    sources[category.value] = len(found)
                candidates.extend(found)
            if not candidates:
                limitations.append(f"There is no data for this category ({rule.intent}) within the radius.")

        if snapshot.stale:
            limitations.append("These results come from an earlier snapshot; the places index is currently down.")
        limitations.append(QUALITATIVE_LIMIT)

        ranked = _rank(candidates, _BEST.matches(question))[: self.max_candidates]
        text = await self._generate(question, rule, ranked, snapshot, prior_report)
        if not acceptable_answer(text, bool(ranked)):
            if text is not None:
                logger.info("Generated chat answer rejected; using template")
            text = template_answer(ranked, limitations)

        return ChatAnswer(answer=text, limitations=limitations, sources_used=sources, intent=rule.intent)

    async def _requery(
        self,
        rule: IntentRule,
        center: Coordinate,
        radius_m: int,
        limitations: list[str],
    ) -> list[Candidate]:
        if self.places is None:
            limitations.append(f"There is no data for this category ({rule.intent}): live search is not configured.")
            return []
        try:
            raw = await asyncio.wait_for(
                self.places.fetch_by_tags(center, radius_m, list(rule.tags)),
                self.requery_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("On-demand %s query timed out", rule.intent)
            raw = None
        except AdapterUnavailable as exc:
            logger.warning("On-demand %s query failed: %s", rule.intent, exc.details)
            raw = None
        except Exception as exc:
            logger.error("On-demand %s query crashed: %s", rule.intent, exc)
            raw = None

        if raw is None:
            limitations.append(f"There is no data for this category ({rule.intent}): the live search failed.")
            return []
        named = [r for r in raw if r.name]
        hits = within_radius(named, center, radius_m, key=lambda r: r.coordinate)
        if not hits:
            limitations.append(f"There is no data for this category ({rule.intent}) within the radius.")
        return [Candidate(r.name, d, rule.intent, r.rating) for r, d in hits]

    async def _generate(
        self,
        question: str,
        rule: IntentRule,
        ranked: list[Candidate],
        snapshot: ContextSnapshot,
        prior_report: Report | None,
    ) -> str | None:
        if self.backend is None:
            return None
        context: dict[str, Any] = {
            "place": snapshot.place.name,
            "radius_m": snapshot.radius_m,
            "intent": rule.intent,
            "candidates": [
                {"name": c.name, "distance_m": c.distance_m, "kind": c.kind, "rating": c.rating} for c in ranked
            ],
            "poi_counts": {c.value: n for c, n in snapshot.poi_summary.counts.items()},
        }
        if prior_report is not None:
            context["report_summary"] = prior_report.summary
        messages = [
            {"role": "system", "content": CHAT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Context:\n{json.dumps(context, ensure_ascii=False)}\n\nQuestion: {question}",
            },
        ]
        try:
            turn = await self.backend.complete(messages)
        except BackendUnavailable as exc:
            logger.warning("Chat backend unavailable: %s", exc)
            return None
        except Exception as exc:
            logger.error("Chat backend failed: %s", exc)
            return None
        return turn.content
