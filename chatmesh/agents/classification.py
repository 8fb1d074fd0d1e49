# =============================================================================
# Query Classification — Keyword & Regex Heuristics
# =============================================================================
#
# Pure functions that label a user query (greeting, weather, time,
# document, factual, follow-up). Used in two places:
#   1. The orchestrator's shortcut node, to bypass LLM routing for common
#      unambiguous queries.
#   2. Completeness scoring, to decide which bonuses and penalties apply.
#
# DESIGN DECISION: Rule-based over LLM classification.
# Zero latency, zero cost, deterministic, easy to test. The LLM router
# still handles everything these rules do not claim.
#
# DESIGN DECISION: Bilingual (EN/ES) keyword tuples at module level.
# Each list can be extended or swapped on its own without touching the
# matching logic.
#
# DESIGN DECISION: Ambiguity → GENERAL.
# When no rule clearly matches, classify_query_type() returns GENERAL so
# routing falls towards the cheapest safe agent.
# =============================================================================

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum

from chatmesh.agents.types import ChatMessage


class QueryType(str, Enum):
    GREETING = "greeting"
    WEATHER = "weather"
    TIME = "time"
    DOCUMENT = "document"
    FACTUAL = "factual"
    GENERAL = "general"


# ---------------------------------------------------------------------------
# Keyword Tables
# ---------------------------------------------------------------------------

GREETINGS: tuple[str, ...] = (
    # English
    "hi", "hello", "hey", "hi there", "hello there", "hey there", "howdy",
    "good morning", "good afternoon", "good evening", "greetings",
    "how are you", "what's up", "whats up", "sup", "yo",
    # Spanish
    "hola", "buenos dias", "buenos días", "buenas tardes", "buenas noches",
    "buenas", "qué tal", "que tal", "cómo estás", "como estas", "saludos",
)

# Short acknowledgements that carry no task of their own
PLEASANTRIES: tuple[str, ...] = (
    "ok", "okay", "k", "thanks", "thank you", "thx", "cool", "great",
    "nice", "bye", "goodbye", "see you", "yes", "no", "sure",
    "gracias", "muchas gracias", "vale", "adiós", "adios", "chao", "sí", "si",
    "de acuerdo", "perfecto",
)

MAX_GREETING_PREFIX_WORDS = 4

WEATHER_KEYWORDS: tuple[str, ...] = (
    "weather", "temperature", "forecast", "rain", "raining", "snow",
    "snowing", "sunny", "humidity", "wind", "storm",
    "clima", "temperatura", "pronóstico", "pronostico",
    "lluvia", "llueve", "lloviendo", "nieve", "nevando", "soleado",
    "humedad", "viento", "tormenta",
)
WEATHER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bhow (?:hot|cold|warm|humid|windy)\b", re.IGNORECASE),
    re.compile(r"\bqu[ée] tiempo hace\b", re.IGNORECASE),
    re.compile(r"\bhace (?:calor|fr[ií]o)\b", re.IGNORECASE),
    re.compile(r"\bwill it (?:rain|snow)\b", re.IGNORECASE),
    # Degrees only count with weather phrasing, not in unit conversions
    re.compile(r"\bhow many degrees (?:is it|outside|out there|today|tomorrow)\b", re.IGNORECASE),
    re.compile(r"\bcu[áa]ntos grados (?:hace|hay|tenemos)\b", re.IGNORECASE),
)

TIME_KEYWORDS: tuple[str, ...] = (
    "what time", "current time", "time is it", "time in", "timezone",
    "time zone", "qué hora", "que hora", "hora es", "hora en", "zona horaria",
)
TIME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bwhat(?:'s| is) the time\b", re.IGNORECASE),
    re.compile(r"\bqu[ée] hora\b", re.IGNORECASE),
)

DOCUMENT_KEYWORDS: tuple[str, ...] = (
    "document", "pdf", "file", "upload", "uploaded", "attachment", "report",
    "the paper", "this paper", "page", "chapter", "section",
    "documento", "archivo", "fichero", "subido", "adjunto", "informe",
    "página", "pagina", "capítulo", "capitulo", "sección", "seccion",
)
DOCUMENT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:in|from|according to) (?:the|this|my) (?:document|file|pdf|report)\b", re.IGNORECASE),
    re.compile(r"\b(?:en|del|seg[uú]n) (?:el|este|mi) (?:documento|archivo|pdf|informe)\b", re.IGNORECASE),
    re.compile(r"\bsummar(?:ize|ise|y) (?:the|this|it)\b", re.IGNORECASE),
    re.compile(r"\bresum(?:e|en|ir)\b", re.IGNORECASE),
)
# Vague follow-ups that only make sense when a document is in play
DOCUMENT_FOLLOW_UP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bwhat (?:is|'s) (?:this|it) about\b", re.IGNORECASE),
    re.compile(r"\bwhat does (?:it|this) say\b", re.IGNORECASE),
    re.compile(r"\b(?:main|key) (?:points|ideas|findings|topics)\b", re.IGNORECASE),
    re.compile(r"\b(?:tell me|explain) (?:more )?about (?:it|this)\b", re.IGNORECASE),
    re.compile(r"\bde qu[ée] (?:trata|va|habla)\b", re.IGNORECASE),
    re.compile(r"\bqu[ée] dice\b", re.IGNORECASE),
    re.compile(r"\b(?:puntos|ideas) (?:principales|clave)\b", re.IGNORECASE),
    re.compile(r"\b(?:the )?(?:author|conclusion|summary|abstract)\b", re.IGNORECASE),
    re.compile(r"\b(?:autor|conclusi[oó]n|resumen)\b", re.IGNORECASE),
)

# Markers a chat history carries once a document has been uploaded
UPLOAD_MARKERS: tuple[str, ...] = (
    "[pdf uploaded]", "[document uploaded]", "[file uploaded]", "uploaded",
    "document", "archivo", "documento", "subido",
)
UPLOAD_FILENAME = re.compile(r"\b[\w\-. ]+\.(?:pdf|docx?|txt|md|csv)\b", re.IGNORECASE)

COMPANY_KEYWORDS: tuple[str, ...] = (
    "company", "corporation", "corp", "inc", "ltd", "llc", "startup",
    "ceo", "founder", "founded", "headquarters", "revenue", "employees",
    "subsidiary", "stock", "shares", "market cap", "ipo",
    "empresa", "compañía", "compania", "corporación", "fundador", "fundada",
    "sede", "ingresos", "empleados", "acciones",
)
COMPANY_SUFFIX = re.compile(r"\b\w+\s+(?:Inc|Corp|Ltd|LLC|S\.A\.|GmbH)\b\.?")

FACTUAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[\s¿¡]*(?:who|when|where|which|how many|how much|what year)\b", re.IGNORECASE),
    re.compile(r"^[\s¿¡]*what (?:is|are|was|were)\s+(?:the\s+)?\w+", re.IGNORECASE),
    re.compile(r"^[\s¿¡]*(?:qui[ée]n|cu[aá]ndo|d[oó]nde|cu[aá]l|cu[aá]nto|cu[aá]ntos)\b", re.IGNORECASE),
    re.compile(r"^[\s¿¡]*qu[ée] (?:es|son|fue|era)\b", re.IGNORECASE),
    re.compile(r"\b(?:population|capital|founded|invented|discovered|born|died)\b", re.IGNORECASE),
    re.compile(r"\b(?:poblaci[oó]n|capital|fundad[ao]|inventad[ao]|descubiert[ao]|naci[oó]|muri[oó])\b", re.IGNORECASE),
)

# Short, pronoun-led questions that lean on the previous turn
FOLLOW_UP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:it|its|they|their|them|he|his|she|her|that|this|those)\b", re.IGNORECASE),
    re.compile(r"\b(?:él|ella|ellos|ellas|su|sus|eso|esa|ese|esto)\b", re.IGNORECASE),
    re.compile(r"^\s*(?:and|what about|how about|y|qu[ée] hay de)\b", re.IGNORECASE),
)
MAX_FOLLOW_UP_WORDS = 10

_TRAILING_PUNCTUATION = " \t\n.,!?¡¿;:…"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _normalize(query: str) -> str:
    text = " ".join(query.lower().split())
    return text.strip(_TRAILING_PUNCTUATION)


def _contains_keyword(text: str, keywords: Sequence[str]) -> bool:
    """Word-boundary keyword match on already-lowercased text."""
    return any(
        re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", text) for keyword in keywords
    )


def _matches_any(text: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    return any(pattern.search(text) for pattern in patterns)


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------


def is_simple_greeting(query: str) -> bool:
    """
    True for greetings and bare acknowledgements.

    Exact match against the greeting/pleasantry lists, or a short query
    (at most four words) that starts with a greeting, e.g. "hola amigo".
    """
    text = _normalize(query)
    if not text:
        return False
    if text in GREETINGS or text in PLEASANTRIES:
        return True

    words = text.split()
    if len(words) > MAX_GREETING_PREFIX_WORDS:
        return False
    return any(
        text.startswith(greeting + " ") or text.startswith(greeting + ",")
        for greeting in GREETINGS
    )


def is_weather_query(query: str) -> bool:
    text = query.lower()
    return _contains_keyword(text, WEATHER_KEYWORDS) or _matches_any(text, WEATHER_PATTERNS)


def is_time_query(query: str) -> bool:
    text = query.lower()
    return _contains_keyword(text, TIME_KEYWORDS) or _matches_any(text, TIME_PATTERNS)


def is_document_related_query(query: str, has_document_context: bool = False) -> bool:
    """
    True when the query is about an uploaded document.

    Explicit document vocabulary always counts. Vague follow-ups such as
    "what is this about?" only count when has_document_context is set.
    """
    text = query.lower()
    if _contains_keyword(text, DOCUMENT_KEYWORDS) or _matches_any(text, DOCUMENT_PATTERNS):
        return True
    return has_document_context and _matches_any(text, DOCUMENT_FOLLOW_UP_PATTERNS)


def has_document_context_in_history(
    history: Sequence[ChatMessage],
    lookback: int = 10,
) -> bool:
    """True if one of the last `lookback` messages mentions an upload."""
    for message in list(history)[-lookback:]:
        content = (message.content or "").lower()
        if any(marker in content for marker in UPLOAD_MARKERS):
            return True
        if UPLOAD_FILENAME.search(content):
            return True
    return False


def is_company_related_query(query: str) -> bool:
    return _contains_keyword(query.lower(), COMPANY_KEYWORDS) or bool(
        COMPANY_SUFFIX.search(query)
    )


def is_factual_query(query: str) -> bool:
    if is_simple_greeting(query):
        return False
    return _matches_any(query, FACTUAL_PATTERNS) or is_company_related_query(query)


def is_factual_follow_up_query(query: str, history: Sequence[ChatMessage]) -> bool:
    """
    True for a short pronoun-led question continuing a factual exchange.

    Example: after "When was Google founded?" the query "who is its CEO?"
    is a follow-up. Needs at least one previous message.
    """
    if not history:
        return False
    words = query.split()
    if not words or len(words) > MAX_FOLLOW_UP_WORDS:
        return False
    if not _matches_any(query, FOLLOW_UP_PATTERNS):
        return False

    previous_human = next(
        (m.content for m in reversed(list(history)) if m.role == "human"),
        None,
    )
    if previous_human is None:
        return False
    return is_factual_query(previous_human) or is_factual_query(query)


def classify_query_type(query: str) -> QueryType:
    """
    Label a query. Checked in order: greeting, weather, time, document,
    factual. Anything else is GENERAL.
    """
    if is_simple_greeting(query):
        return QueryType.GREETING
    if is_weather_query(query):
        return QueryType.WEATHER
    if is_time_query(query):
        return QueryType.TIME
    if is_document_related_query(query):
        return QueryType.DOCUMENT
    if is_factual_query(query):
        return QueryType.FACTUAL
    return QueryType.GENERAL
