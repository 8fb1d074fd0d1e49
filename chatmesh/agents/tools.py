# =============================================================================
# Tool Agents — Thin Wrappers Around External Services
# =============================================================================
#
# Tool agents do one concrete thing and never call an LLM:
#
#   search / web_search — SearxNG JSON API
#   open_weather_map    — OpenWeatherMap geocoding + current weather
#   current_time        — wall-clock time for an IANA timezone (zoneinfo)
#   hashing             — md5/sha1/sha256/sha512 of a text (hashlib)
#
# DESIGN DECISION: One shared httpx.AsyncClient.
# The composition root creates a single client with connection pooling
# and passes it to every HTTP tool. Tests swap in a client backed by
# httpx.MockTransport.
#
# Tool failures are reported as low-confidence results with a readable
# message; the calling agent decides what to tell the user.
# =============================================================================

from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from chatmesh.agents.base import BaseAgent, parse_json_object
from chatmesh.agents.classification import is_weather_query
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn

SEARCH_CONFIDENCE = 0.8
WEATHER_CONFIDENCE = 0.95
TIME_CONFIDENCE = 0.95
HASH_CONFIDENCE = 0.95
TOOL_FAILURE_CONFIDENCE = 0.1

MAX_SEARCH_RESULTS = 8
MAX_SNIPPET_LENGTH = 500

# "what's the weather in Santo Domingo?" -> "Santo Domingo"
_LOCATION_PHRASE = re.compile(r"\b(?:in|en|at|for|de|para)\s+(.+?)[\s?!.¿¡]*$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Web Search (SearxNG)
# ---------------------------------------------------------------------------


def parse_search_input(input: str) -> tuple[str, list[str]]:
    """
    Accept either a plain query or {"query": ..., "exclude_sites": [...]}.
    """
    payload = parse_json_object(input) if input.lstrip().startswith("{") else None
    if payload and payload.get("query"):
        return str(payload["query"]), [str(s) for s in payload.get("exclude_sites") or []]
    return input.strip(), []


def format_search_results(results: list[dict]) -> str:
    lines: list[str] = []
    for i, item in enumerate(results[:MAX_SEARCH_RESULTS], start=1):
        title = item.get("title") or "(untitled)"
        url = item.get("url") or ""
        snippet = (item.get("content") or "")[:MAX_SNIPPET_LENGTH]
        lines.append(f"[{i}] {title}\n{url}\n{snippet}".rstrip())
    return "\n\n".join(lines)


class WebSearchAgent(BaseAgent):
    description = "Runs a web search and returns the top results with URLs."

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        name: str = "search",
    ) -> None:
        self.name = name
        super().__init__()
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        query, exclude_sites = parse_search_input(input)
        if not query:
            return AgentResult.failure("Please provide something to search for.")

        full_query = " ".join([query, *(f"-site:{site}" for site in exclude_sites)])
        self.logger.info("Searching SearxNG: '%s'", full_query)

        try:
            response = await self.http_client.get(
                f"{self.base_url}/search",
                params={"q": full_query, "format": "json"},
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            self.logger.error("SearxNG search failed for '%s': %s", full_query, e)
            return AgentResult.failure(
                "Search failed: unable to get results from the search provider.",
                TOOL_FAILURE_CONFIDENCE,
            )

        results = data.get("results") or []
        if not results:
            self.logger.warning("SearxNG returned no results for '%s'", full_query)
            return AgentResult(output=f'No search results found for "{query}".', confidence=0.2)

        return AgentResult(
            output=format_search_results(results),
            confidence=SEARCH_CONFIDENCE,
            metadata={"result_count": len(results)},
        )


# ---------------------------------------------------------------------------
# OpenWeatherMap
# ---------------------------------------------------------------------------


def extract_location(text: str) -> str:
    """
    Location part of a weather question, or the text itself when it is
    already just a place name.
    """
    text = text.strip()
    if is_weather_query(text):
        match = _LOCATION_PHRASE.search(text)
        if match:
            return match.group(1).strip()
    return text.strip(" ?!.¿¡")


class OpenWeatherMapAgent(BaseAgent):
    name = "open_weather_map"
    description = "Provides the current weather for a single, specific city."

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://api.openweathermap.org",
    ) -> None:
        super().__init__()
        self.http_client = http_client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        location = extract_location(input)
        if not location:
            return AgentResult.failure("Please provide a valid location to check the weather.")
        if not self.api_key:
            return AgentResult.failure("OpenWeatherMap API key is missing.")

        try:
            geo = await self.http_client.get(
                f"{self.base_url}/geo/1.0/direct",
                params={"q": location, "limit": 1, "appid": self.api_key},
            )
            geo.raise_for_status()
            places = geo.json()
            if not places:
                return AgentResult.failure(
                    f"Could not find location data for {location}. "
                    "Please try with a more specific location."
                )
            place = places[0]

            weather = await self.http_client.get(
                f"{self.base_url}/data/2.5/weather",
                params={
                    "lat": place["lat"],
                    "lon": place["lon"],
                    "units": "metric",
                    "appid": self.api_key,
                },
            )
            weather.raise_for_status()
            data = weather.json()
        except (httpx.HTTPError, json.JSONDecodeError, KeyError) as e:
            self.logger.error("OpenWeatherMap lookup failed for '%s': %s", location, e)
            return AgentResult.failure(
                f"An error occurred while fetching weather for {location}. "
                "Please try again with a more specific location."
            )

        main = data.get("main", {})
        description = (data.get("weather") or [{}])[0].get("description", "unknown conditions")
        wind = data.get("wind", {}).get("speed", "N/A")
        name = place.get("name", location)
        country = place.get("country", "")
        where = f"{name}, {country}" if country else name

        return AgentResult(
            output=(
                f"Current weather in {where}: {description}. "
                f"Temp: {main.get('temp')}°C (feels like {main.get('feels_like')}°C). "
                f"Humidity: {main.get('humidity')}%. Wind speed: {wind} m/s."
            ),
            confidence=WEATHER_CONFIDENCE,
        )


# ---------------------------------------------------------------------------
# Current Time
# ---------------------------------------------------------------------------


class CurrentTimeAgent(BaseAgent):
    name = "current_time"
    description = "Gets the current date and time for a specific IANA timezone."

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        timezone = input.strip() or "UTC"
        try:
            zone = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return AgentResult.failure(
                f"'{timezone}' is not a valid IANA timezone, e.g. 'America/Santo_Domingo'."
            )
        now = datetime.now(zone)
        return AgentResult(
            output=(
                f"The current time in {timezone} is {now.strftime('%A, %B %d, %Y %H:%M:%S')} "
                f"(UTC{now.strftime('%z')})."
            ),
            confidence=TIME_CONFIDENCE,
            metadata={"iso": now.isoformat()},
        )


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

HASH_ALGORITHMS: tuple[str, ...] = ("md5", "sha1", "sha256", "sha512")


class HashingAgent(BaseAgent):
    name = "hashing"
    description = "Computes cryptographic hashes of text (input: '<algorithm> <text>')."

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        algorithm, _, text = input.strip().partition(" ")
        algorithm = algorithm.lower().replace("-", "")
        if algorithm not in HASH_ALGORITHMS:
            # No algorithm given: hash the whole input with sha256
            algorithm, text = "sha256", input.strip()
        if not text:
            return AgentResult.failure("Please provide the text to hash.")

        digest = hashlib.new(algorithm, text.encode("utf-8")).hexdigest()
        return AgentResult(
            output=f"The {algorithm} hash of '{text}' is: {digest}",
            confidence=HASH_CONFIDENCE,
        )
