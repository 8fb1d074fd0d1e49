# =============================================================================
# Completeness Scoring — Re-grade Agent Answers on Their Actual Text
# =============================================================================
#
# Agent confidence is self-reported and unreliable. When several agents
# answered, the orchestrator re-grades every answer with
# evaluate_response_completeness(), a weighted heuristic over checkable
# signals:
#
#   confidence * weight
#   + length bucket        (very short -0.3, short +0.2, medium +0.1, long -0.1)
#   - give-up phrases      (-0.4, a further -0.2 on factual/company queries)
#   + greeting reply       (+0.15 for short greetings to greeting inputs)
#   + factual markers      (+0.1 for years, amounts, "founded in", ...)
#   + follow-up continuity (+0.1 when a follow-up answer keeps the subject)
#
# clamped to [0, 1].
#
# resolve_by_completeness() turns those scores into a winner with a few
# explicit preferences (high-confidence specialist, general agent for
# short inputs, research when it is clearly complete, summarizer only
# when notably better).
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from chatmesh.agents.classification import (
    is_company_related_query,
    is_factual_follow_up_query,
    is_factual_query,
    is_simple_greeting,
)
from chatmesh.agents.types import AgentResult, ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_COMPLETENESS_WEIGHT = 0.6

GIVE_UP_PHRASES: tuple[str, ...] = (
    "i need to search",
    "i'd need to search",
    "i don't have enough information",
    "i do not have enough information",
    "i need more information",
    "could you clarify",
    "i don't know",
    "i do not know",
    "i'm not sure",
    "need_more_search",
    "no tengo suficiente información",
    "no tengo suficiente informacion",
    "necesito más información",
    "necesito buscar",
    "podrías aclarar",
    "no lo sé",
    "no lo se",
)

GREETING_REPLY_MARKERS: tuple[str, ...] = (
    "Hello", "Hi there", "Greetings", "¡Hola", "Hola",
)
MAX_GREETING_REPLY_LENGTH = 100

FACTUAL_MARKERS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:1[5-9]|20)\d{2}\b"),
    re.compile(r"\$\s?\d[\d,.]*(?:\s?(?:million|billion|trillion|[MBK]))?", re.IGNORECASE),
    re.compile(r"\bfounded in\b", re.IGNORECASE),
    re.compile(r"\bheadquarter(?:s|ed)\b", re.IGNORECASE),
    re.compile(r"\bCEO\b"),
    re.compile(r"\baccording to\b", re.IGNORECASE),
    re.compile(r"\bfundad[ao] en\b", re.IGNORECASE),
    re.compile(r"\bsede\b", re.IGNORECASE),
)

# Capitalised words worth tracking across turns (skip sentence starters)
_PROPER_NOUN = re.compile(r"\b[A-Z][a-zA-Z]{2,}\b")
_COMMON_CAPITALISED = frozenset({
    "The", "This", "That", "These", "Those", "What", "When", "Where", "Who",
    "Why", "How", "Yes", "And", "But", "Its", "His", "Her", "They", "You",
    "Hello", "Hola", "Sure", "Here", "There", "Based", "According",
})


@dataclass
class ScoredResult:
    """One candidate answer with its completeness score."""

    agent: str
    result: AgentResult
    completeness: float

    @property
    def confidence(self) -> float:
        return self.result.confidence


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def _proper_nouns(text: str) -> set[str]:
    return {w for w in _PROPER_NOUN.findall(text) if w not in _COMMON_CAPITALISED}


def evaluate_response_completeness(
    response: str | AgentResult | None,
    confidence: float,
    input: str | None = None,
    history: Sequence[ChatMessage] | None = None,
    weight: float = DEFAULT_COMPLETENESS_WEIGHT,
) -> float:
    """
    Score how complete an answer looks, in [0, 1].

    Pure function of its arguments. `input` and `history` are optional;
    without them the query-dependent adjustments are skipped (except the
    greeting bonus, which then applies to any short greeting reply).
    """
    if isinstance(response, AgentResult):
        text = response.output or ""
    else:
        text = response or ""
    lowered = text.lower()
    length = len(text)

    score = confidence * weight

    if length < 10:
        score -= 0.3
    elif length < 300:
        score += 0.2
    elif length < 1000:
        score += 0.1
    else:
        score -= 0.1

    if any(phrase in lowered for phrase in GIVE_UP_PHRASES):
        score -= 0.4
        if input and (is_factual_query(input) or is_company_related_query(input)):
            score -= 0.2

    if (
        length < MAX_GREETING_REPLY_LENGTH
        and any(marker in text for marker in GREETING_REPLY_MARKERS)
        and (input is None or is_simple_greeting(input))
    ):
        score += 0.15

    if any(pattern.search(text) for pattern in FACTUAL_MARKERS):
        score += 0.1

    if input and history and is_factual_follow_up_query(input, history):
        previous = history[-1].content or ""
        if _proper_nouns(previous) & _proper_nouns(text):
            score += 0.1

    return max(0.0, min(1.0, score))


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

HIGH_COMPLETENESS_CONFIDENCE = 0.85
HIGH_COMPLETENESS_SCORE = 0.8
SHORT_INPUT_MAX_WORDS = 5
GENERAL_SHORT_INPUT_COMPLETENESS = 0.7
RESEARCH_COMPLETENESS = 0.75
SUMMARIZER_MARGIN = 0.15


def score_results(
    results: Mapping[str, AgentResult],
    input: str | None = None,
    history: Sequence[ChatMessage] | None = None,
    weight: float = DEFAULT_COMPLETENESS_WEIGHT,
) -> list[ScoredResult]:
    """Score every result and sort by completeness, best first."""
    scored = [
        ScoredResult(
            agent=name,
            result=result,
            completeness=evaluate_response_completeness(
                result.output, result.confidence, input, history, weight,
            ),
        )
        for name, result in results.items()
    ]
    scored.sort(key=lambda s: s.completeness, reverse=True)
    return scored


def resolve_by_completeness(
    results: Mapping[str, AgentResult],
    input: str = "",
    history: Sequence[ChatMessage] | None = None,
    weight: float = DEFAULT_COMPLETENESS_WEIGHT,
    summarizer_margin: float = SUMMARIZER_MARGIN,
    general_agent: str = "general",
    summarizer_agent: str = "summarizer",
) -> ScoredResult | None:
    """
    Pick the winning answer among several candidates.

    Rules, in order:
    1. Top answer has confidence >= 0.85 and completeness >= 0.8 → it wins.
    2. Short input (<= 5 words) and the general answer scores > 0.7 → general.
    3. research scores > 0.75 → research.
    4. summarizer must beat the best other answer by `summarizer_margin`,
       otherwise the best non-summarizer answer wins.
    5. Highest completeness.

    Returns None when `results` is empty.
    """
    scored = score_results(results, input, history, weight)
    if not scored:
        return None

    logger.info(
        "Completeness scores: %s",
        ", ".join(
            f"{s.agent}:{s.confidence:.2f}:{s.completeness:.2f}" for s in scored
        ),
    )

    top = scored[0]
    if (
        top.confidence >= HIGH_COMPLETENESS_CONFIDENCE
        and top.completeness >= HIGH_COMPLETENESS_SCORE
    ):
        return top

    by_name = {s.agent: s for s in scored}

    general = by_name.get(general_agent)
    if (
        general is not None
        and len(input.split()) <= SHORT_INPUT_MAX_WORDS
        and general.completeness > GENERAL_SHORT_INPUT_COMPLETENESS
    ):
        return general

    research = by_name.get("research")
    if research is not None and research.completeness > RESEARCH_COMPLETENESS:
        return research

    if top.agent == summarizer_agent:
        runner_up = next((s for s in scored if s.agent != summarizer_agent), None)
        if runner_up is not None and top.completeness - runner_up.completeness < summarizer_margin:
            return runner_up

    return top
