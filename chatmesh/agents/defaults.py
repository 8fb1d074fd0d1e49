# =============================================================================
# Default Agent Set — Composition of the Production Registry
# =============================================================================
#
# build_default_registry() wires every built-in agent into one registry.
# Called once from the FastAPI lifespan; tests build their own registries
# with fakes instead.
#
# "search" and "web_search" are the same SearxNG tool under two names:
# the research loop delegates to "search", the routing prompt advertises
# "web_search" for direct lookups. SearxNG also backs currency_converter.
# =============================================================================

from __future__ import annotations

import logging

import httpx

from chatmesh.agents.calculators import (
    CalculatorAgent,
    CurrencyConverterAgent,
    UnitConverterAgent,
)
from chatmesh.agents.code import CodeGenerationAgent, CodeInterpreterAgent, CodeOptimizationAgent
from chatmesh.agents.documents import DocumentSearchAgent
from chatmesh.agents.general import GeneralAgent
from chatmesh.agents.location import TimeAgent, WeatherAgent
from chatmesh.agents.registry import AgentRegistry
from chatmesh.agents.research import ResearchAgent
from chatmesh.agents.routing import RoutingAgent
from chatmesh.agents.subject import SubjectInferenceAgent
from chatmesh.agents.summarizer import SummarizerAgent
from chatmesh.agents.tools import (
    CurrentTimeAgent,
    HashingAgent,
    OpenWeatherMapAgent,
    WebSearchAgent,
)
from chatmesh.config import Settings

logger = logging.getLogger(__name__)


def build_default_registry(settings: Settings, http_client: httpx.AsyncClient) -> AgentRegistry:
    registry = AgentRegistry(max_depth=settings.max_delegation_depth)

    for agent in (
        GeneralAgent(),
        RoutingAgent(),
        SubjectInferenceAgent(),
        ResearchAgent(max_iterations=settings.research_max_iterations),
        SummarizerAgent(),
        WebSearchAgent(http_client, settings.searxng_base_url, name="search"),
        WebSearchAgent(http_client, settings.searxng_base_url, name="web_search"),
        WeatherAgent(),
        OpenWeatherMapAgent(
            http_client, settings.openweather_api_key, settings.openweather_base_url,
        ),
        TimeAgent(),
        CurrentTimeAgent(),
        HashingAgent(),
        DocumentSearchAgent(top_k=settings.document_search_top_k),
        CodeInterpreterAgent(),
        CodeOptimizationAgent(),
        CodeGenerationAgent(),
        CalculatorAgent(),
        CurrencyConverterAgent(http_client, settings.searxng_base_url),
        UnitConverterAgent(),
    ):
        registry.register(agent)

    logger.info("Registered %d agents: %s", len(registry), ", ".join(registry.names()))
    return registry
