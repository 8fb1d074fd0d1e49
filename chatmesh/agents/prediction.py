# =============================================================================
# Routing Prediction Parser — From LLM Text to {agent, confidence}
# =============================================================================
#
# The routing agent is asked for JSON like
#   {"agentName": "weather", "confidence": 0.9, "reasoning": "..."}
# but models wrap it in prose, fence it in markdown, or ignore the format
# entirely. parse_prediction() never fails; it walks a cascade and
# records which step produced the answer in `source`:
#
#   1. "json"     — the whole text parses as JSON
#   2. "embedded" — a ```json fence or the first {...} span parses
#   3. "mention"  — a candidate agent name appears in the text
#   4. "keywords" — classify_query_type() on the user query
#   5. "default"  — general at 0.5
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from chatmesh.agents.classification import QueryType, classify_query_type
from chatmesh.agents.errors import PredictionParseError

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "general"
DEFAULT_CONFIDENCE = 0.5
KEYWORD_CONFIDENCE = 0.6
WEATHER_MENTION_CONFIDENCE = 0.85
MENTION_CONFIDENCE = 0.55

# Preferred first
WEATHER_AGENTS: tuple[str, ...] = ("open_weather_map", "weather")
TIME_AGENTS: tuple[str, ...] = ("time", "current_time")

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BRACED_SPAN = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class AgentPrediction:
    agent_name: str
    confidence: float
    reasoning: str = ""
    source: str = "default"


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


def _from_payload(payload: Any, candidates: Sequence[str], source: str) -> AgentPrediction:
    if not isinstance(payload, dict):
        raise PredictionParseError(f"Expected a JSON object, got {type(payload).__name__}")
    if payload.get("error"):
        raise PredictionParseError(
            f"Routing agent reported an error: {payload.get('message') or payload['error']}"
        )
    agent_name = payload.get("agentName") or payload.get("agent_name") or payload.get("agent")
    if not agent_name:
        raise PredictionParseError("Prediction has no agentName")
    if agent_name not in candidates:
        raise PredictionParseError(f"Predicted agent '{agent_name}' is not a candidate")
    return AgentPrediction(
        agent_name=agent_name,
        confidence=_clamp(payload.get("confidence"), DEFAULT_CONFIDENCE),
        reasoning=str(payload.get("reasoning") or ""),
        source=source,
    )


def _parse_direct(raw: str, candidates: Sequence[str]) -> AgentPrediction:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PredictionParseError(f"Not JSON: {e}") from e
    return _from_payload(payload, candidates, "json")


def _parse_embedded(raw: str, candidates: Sequence[str]) -> AgentPrediction:
    for pattern in (_FENCED_JSON, _BRACED_SPAN):
        match = pattern.search(raw)
        if not match:
            continue
        span = match.group(1) if match.groups() else match.group(0)
        try:
            payload = json.loads(span)
        except json.JSONDecodeError:
            continue
        return _from_payload(payload, candidates, "embedded")
    raise PredictionParseError("No embedded JSON object found")


def _parse_mention(raw: str, candidates: Sequence[str]) -> AgentPrediction | None:
    text = raw.lower()
    # Longest names first so "open_weather_map" wins over "weather"
    for name in sorted(candidates, key=len, reverse=True):
        if re.search(rf"(?<![\w]){re.escape(name.lower())}(?![\w])", text):
            confidence = (
                WEATHER_MENTION_CONFIDENCE if name in WEATHER_AGENTS else MENTION_CONFIDENCE
            )
            return AgentPrediction(
                agent_name=name,
                confidence=confidence,
                reasoning="Agent name mentioned in routing output",
                source="mention",
            )
    return None


def _first_candidate(names: Sequence[str], candidates: Sequence[str]) -> str | None:
    return next((n for n in names if n in candidates), None)


def _parse_keywords(query: str, candidates: Sequence[str]) -> AgentPrediction | None:
    query_type = classify_query_type(query)
    agent_name: str | None = None
    if query_type is QueryType.TIME:
        agent_name = _first_candidate(TIME_AGENTS, candidates)
    elif query_type is QueryType.WEATHER:
        agent_name = _first_candidate(WEATHER_AGENTS, candidates)
    elif query_type is QueryType.FACTUAL:
        agent_name = _first_candidate(("research",), candidates)
    elif query_type is QueryType.DOCUMENT:
        agent_name = _first_candidate(("document_search",), candidates)

    if agent_name is None:
        return None
    return AgentPrediction(
        agent_name=agent_name,
        confidence=KEYWORD_CONFIDENCE,
        reasoning=f"Keyword classification: {query_type.value}",
        source="keywords",
    )


def default_prediction(candidates: Sequence[str]) -> AgentPrediction:
    agent_name = DEFAULT_AGENT
    if candidates and DEFAULT_AGENT not in candidates:
        agent_name = candidates[0]
    return AgentPrediction(
        agent_name=agent_name,
        confidence=DEFAULT_CONFIDENCE,
        reasoning="Default routing",
        source="default",
    )


def keyword_prediction(query: str, candidates: Sequence[str]) -> AgentPrediction:
    """Routing without an LLM: keyword classification, then the default."""
    return _parse_keywords(query, candidates) or default_prediction(candidates)


def parse_prediction(
    raw: str | None,
    query: str,
    candidates: Sequence[str],
) -> AgentPrediction:
    """
    Turn the routing agent's raw output into an AgentPrediction.

    Never raises. The returned agent is always one of `candidates`
    (or "general" when candidates is empty).
    """
    text = (raw or "").strip()

    if text:
        for step in (_parse_direct, _parse_embedded):
            try:
                prediction = step(text, candidates)
            except PredictionParseError as e:
                logger.debug("Prediction parse step %s failed: %s", step.__name__, e)
                continue
            return prediction

        mentioned = _parse_mention(text, candidates)
        if mentioned is not None:
            return mentioned

    logger.info("Routing output unusable, falling back to keyword classification")
    return keyword_prediction(query, candidates)
