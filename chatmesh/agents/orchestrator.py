# =============================================================================
# Agent Orchestrator — Confidence-Gated Routing as a LangGraph
# =============================================================================
#
# Given candidate agent names and a user query, the orchestrator decides
# which agent(s) run and which answer the user sees.
#
# GRAPH TOPOLOGY:
#
#   START ──▶ shortcuts ──(resolved)──────────────────────────▶ END
#                 │
#                 └──▶ predict ──(conf >= high)──▶ single ──(usable)──▶ END
#                         │                          │
#                         │                      (unusable)
#                         │                          ▼
#                         └───────(conf < high)───▶ dual ──────────────▶ END
#
#   shortcuts: document context → first-turn document probe → weather →
#              greeting. Any hit resolves without asking the routing LLM.
#   predict:   routing agent + prediction parse cascade (prediction.py).
#   single:    run only the predicted agent; accept non-trivial output.
#   dual:      predicted agent and `general` concurrently; prefer the
#              prediction, then general, then best completeness.
#
# DESIGN DECISION: Routing never raises.
# route_by_confidence() wraps the graph in one try/except. Whatever goes
# wrong (unknown agents, provider outages, bugs in an agent) the caller
# gets a well-formed RoutingOutcome; worst case the "fallback" apology.
#
# DESIGN DECISION: Graph compiled per orchestrator.
# Nodes are bound methods so they can reach the injected registry and
# config. One orchestrator is built at startup and reused, so the graph
# is still compiled once per process.
#
# DESIGN DECISION: Every invocation has a deadline.
# Agents are wrapped in asyncio.wait_for(config.agent_timeout_seconds);
# a hung agent becomes a 0.1-confidence failure like any other error.
# =============================================================================

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from chatmesh.agents import scoring
from chatmesh.agents.classification import (
    has_document_context_in_history,
    is_document_related_query,
    is_simple_greeting,
    is_weather_query,
)
from chatmesh.agents.errors import AgentExecutionError, AgentNotFoundError, RoutingFailure
from chatmesh.agents.prediction import (
    WEATHER_AGENTS,
    AgentPrediction,
    keyword_prediction,
    parse_prediction,
)
from chatmesh.agents.registry import AgentRegistry
from chatmesh.agents.types import AgentContext, AgentResult

if TYPE_CHECKING:
    from chatmesh.config import Settings

logger = logging.getLogger(__name__)

GENERAL_AGENT = "general"
ROUTING_AGENT = "routing"
DOCUMENT_AGENT = "document_search"
FALLBACK_AGENT = "fallback"

# Substituted by run_parallel when none of the requested agents exist
PARALLEL_FALLBACK_ORDER: tuple[str, ...] = ("general", "web_search", "research")

# Agents that serve other agents and are never offered as routing targets
INTERNAL_AGENTS: frozenset[str] = frozenset({ROUTING_AGENT})

FALLBACK_MESSAGE = "I'm having trouble processing your request right now."
NO_AGENTS_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Our agent system is experiencing issues."
)

# A first-turn document probe answer containing one of these is a miss
DOCUMENT_MISS_PHRASES: tuple[str, ...] = (
    "no document",
    "cannot find",
    "could not be found",
    "no information",
    "no relevant information",
)


# ---------------------------------------------------------------------------
# Configuration & Results
# ---------------------------------------------------------------------------


@dataclass
class RoutingConfig:
    """Tunable routing constants. Defaults mirror chatmesh.config.Settings."""

    high_confidence_threshold: float = 0.6
    medium_confidence_threshold: float = 0.4
    completeness_weight: float = 0.6
    min_single_output_length: int = 10
    document_probe_min_length: int = 50
    summarizer_completeness_margin: float = 0.15
    agent_timeout_seconds: float | None = 60.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RoutingConfig:
        if settings is None:
            from chatmesh.config import get_settings

            settings = get_settings()
        return cls(
            high_confidence_threshold=settings.routing_high_confidence_threshold,
            medium_confidence_threshold=settings.routing_medium_confidence_threshold,
            completeness_weight=settings.routing_completeness_weight,
            min_single_output_length=settings.routing_min_single_output_length,
            document_probe_min_length=settings.routing_document_probe_min_length,
            summarizer_completeness_margin=settings.routing_summarizer_completeness_margin,
            agent_timeout_seconds=settings.agent_timeout_seconds,
        )


@dataclass
class RoutingOutcome:
    """The selected agent, its answer, and every answer produced on the way."""

    agent: str
    result: AgentResult
    all: dict[str, AgentResult] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent,
            "result": self.result.to_dict(),
            "all": {name: r.to_dict() for name, r in self.all.items()},
        }


InputFn = Callable[[str | None, AgentContext], str | Awaitable[str]]


@dataclass
class AgentStep:
    """One stage of a sequential pipeline: agent name + input builder."""

    agent: str
    input_fn: InputFn


# ---------------------------------------------------------------------------
# Graph State
# ---------------------------------------------------------------------------


class RoutingState(TypedDict, total=False):
    """
    State flowing through the routing graph.

    NOTE: context holds live objects (LLM provider, stores). Fine as long
    as no checkpointer is configured on the graph.
    """

    # --- Input ---
    query: str
    candidates: list[str]
    context: AgentContext

    # --- Intermediate ---
    prediction: AgentPrediction
    attempted: dict[str, AgentResult]

    # --- Output ---
    outcome: RoutingOutcome | None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AgentOrchestrator:
    def __init__(
        self,
        registry: AgentRegistry,
        config: RoutingConfig | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or RoutingConfig()
        self._graph = self._build_graph()

    # -----------------------------------------------------------------------
    # Invocation Primitives
    # -----------------------------------------------------------------------

    async def _call(self, name: str, input: str, context: AgentContext) -> AgentResult:
        """Registry call with the configured deadline. Errors propagate."""
        call = self.registry.call_agent(name, input, context)
        timeout = self.config.agent_timeout_seconds
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError:
            logger.warning("Agent '%s' timed out after %.1fs", name, timeout)
            return AgentResult.failure(f"Agent '{name}' timed out before producing an answer.")

    async def _invoke(self, name: str, input: str, context: AgentContext) -> AgentResult:
        """Like _call, but an agent error becomes a 0.1-confidence result."""
        try:
            return await self._call(name, input, context)
        except Exception as e:
            error = AgentExecutionError(name, e)
            logger.error("%s", error, exc_info=True)
            return AgentResult.failure(f"Error processing request with agent '{name}'.")

    def _available(self, name: str, candidates: Sequence[str]) -> bool:
        return name in candidates and name in self.registry

    # -----------------------------------------------------------------------
    # Public Execution API
    # -----------------------------------------------------------------------

    async def run_single_agent(
        self,
        name: str,
        input: str,
        context: AgentContext,
    ) -> AgentResult:
        """
        Run one agent.

        Raises AgentNotFoundError for an unknown name. Agent errors and
        timeouts come back as failure results.
        """
        if name not in self.registry:
            raise AgentNotFoundError(name, self.registry.names())
        logger.info("run_single_agent: '%s'", name)
        return await self._invoke(name, input, context)

    async def run_parallel(
        self,
        names: Sequence[str],
        input: str,
        context: AgentContext,
    ) -> dict[str, AgentResult]:
        """
        Run several agents concurrently and return every result by name.

        Unknown names are skipped. If none remain, the first registered
        of general / web_search / research stands in. One agent failing
        never affects the others.
        """
        available: list[str] = []
        for name in names:
            if name in self.registry:
                if name not in available:
                    available.append(name)
            else:
                logger.warning("Agent '%s' not found in registry. Skipping.", name)

        if not available:
            logger.warning(
                "None of the requested agents exist: [%s]. Trying fallback agents.",
                ", ".join(names),
            )
            substitute = next(
                (n for n in PARALLEL_FALLBACK_ORDER if n in self.registry), None,
            )
            if substitute is None:
                logger.error("No fallback agents available")
                return {FALLBACK_AGENT: AgentResult(output=NO_AGENTS_MESSAGE, confidence=0.0)}
            logger.info("Using '%s' as fallback agent", substitute)
            available.append(substitute)

        results = await asyncio.gather(
            *(self._invoke(name, input, context) for name in available),
        )
        return dict(zip(available, results))

    async def run_steps(
        self,
        steps: Sequence[AgentStep],
        context: AgentContext,
    ) -> list[AgentResult]:
        """
        Run a sequential pipeline. Each step's input_fn receives the
        previous step's output (None for the first step) and the context.
        """
        previous: str | None = None
        results: list[AgentResult] = []
        for step in steps:
            if step.agent not in self.registry:
                raise AgentNotFoundError(step.agent, self.registry.names())
            value = step.input_fn(previous, context)
            if inspect.isawaitable(value):
                value = await value
            logger.info("run_steps: '%s'", step.agent)
            result = await self._call(step.agent, value, context)
            results.append(result)
            previous = result.output
        return results

    def resolve_by_completeness(
        self,
        results: dict[str, AgentResult],
        input: str = "",
        context: AgentContext | None = None,
    ) -> RoutingOutcome | None:
        history = context.chat_history if context is not None else None
        best = scoring.resolve_by_completeness(
            results,
            input,
            history,
            weight=self.config.completeness_weight,
            summarizer_margin=self.config.summarizer_completeness_margin,
        )
        if best is None:
            return None
        return RoutingOutcome(agent=best.agent, result=best.result, all=dict(results))

    async def route_by_completeness(
        self,
        candidates: Sequence[str],
        query: str,
        context: AgentContext,
    ) -> RoutingOutcome:
        """Fan out to every candidate and keep the most complete answer."""
        try:
            results = await self.run_parallel(candidates, query, context)
            outcome = self.resolve_by_completeness(results, query, context)
            if outcome is None:
                raise RoutingFailure("No agent returned a result")
            return outcome
        except Exception:
            logger.exception("route_by_completeness failed")
            return self._fallback_outcome()

    # -----------------------------------------------------------------------
    # Prediction
    # -----------------------------------------------------------------------

    async def predict_best_agent(
        self,
        query: str,
        candidates: Sequence[str],
        context: AgentContext,
    ) -> AgentPrediction:
        """Ask the routing agent for a target, falling back to keywords."""
        if ROUTING_AGENT not in self.registry:
            logger.warning("Routing agent not available, using keyword classification")
            prediction = keyword_prediction(query, candidates)
        else:
            routing_context = context.overlay(available_agents=tuple(candidates))
            result = await self._invoke(ROUTING_AGENT, query, routing_context)
            if result.is_error:
                prediction = keyword_prediction(query, candidates)
            else:
                prediction = parse_prediction(result.output, query, candidates)

        if (
            prediction.agent_name != GENERAL_AGENT
            and GENERAL_AGENT in candidates
            and is_simple_greeting(query)
        ):
            logger.info("Greeting override: %s -> general", prediction.agent_name)
            prediction = AgentPrediction(
                agent_name=GENERAL_AGENT,
                confidence=max(prediction.confidence, self.config.high_confidence_threshold),
                reasoning="Simple greeting",
                source="greeting",
            )
        return prediction

    # -----------------------------------------------------------------------
    # Graph Nodes
    # -----------------------------------------------------------------------

    async def _shortcuts_node(self, state: RoutingState) -> dict:
        query = state["query"]
        candidates = state["candidates"]
        context = state["context"]
        history = context.chat_history

        # 1. Document already in the conversation
        if (
            self._available(DOCUMENT_AGENT, candidates)
            and has_document_context_in_history(history)
            and is_document_related_query(query, has_document_context=True)
        ):
            logger.info("Shortcut: document context in history -> %s", DOCUMENT_AGENT)
            result = await self._invoke(DOCUMENT_AGENT, query, context)
            return {"outcome": RoutingOutcome(DOCUMENT_AGENT, result, {DOCUMENT_AGENT: result})}

        # 2. First turn that looks like a document question
        if (
            not history
            and self._available(DOCUMENT_AGENT, candidates)
            and is_document_related_query(query)
        ):
            logger.info("Shortcut: probing %s on first turn", DOCUMENT_AGENT)
            result = await self._invoke(DOCUMENT_AGENT, query, context)
            if self._is_document_hit(result):
                return {"outcome": RoutingOutcome(DOCUMENT_AGENT, result, {DOCUMENT_AGENT: result})}
            logger.info("Document probe missed, continuing with normal routing")

        # 3. Weather
        if is_weather_query(query):
            weather_agent = next(
                (n for n in WEATHER_AGENTS if self._available(n, candidates)), None,
            )
            if weather_agent is not None:
                logger.info("Shortcut: weather query -> %s", weather_agent)
                result = await self._invoke(weather_agent, query, context)
                return {"outcome": RoutingOutcome(weather_agent, result, {weather_agent: result})}

        # 4. Greeting
        if is_simple_greeting(query) and self._available(GENERAL_AGENT, candidates):
            logger.info("Shortcut: simple greeting -> %s", GENERAL_AGENT)
            result = await self._invoke(GENERAL_AGENT, query, context)
            return {"outcome": RoutingOutcome(GENERAL_AGENT, result, {GENERAL_AGENT: result})}

        return {"outcome": None}

    def _is_document_hit(self, result: AgentResult) -> bool:
        text = (result.output or "").strip()
        if result.is_error or len(text) <= self.config.document_probe_min_length:
            return False
        lowered = text.lower()
        return not any(phrase in lowered for phrase in DOCUMENT_MISS_PHRASES)

    async def _predict_node(self, state: RoutingState) -> dict:
        prediction = await self.predict_best_agent(
            state["query"], state["candidates"], state["context"],
        )
        logger.info(
            "Predicted agent: %s (confidence=%.2f, source=%s)",
            prediction.agent_name, prediction.confidence, prediction.source,
        )
        return {"prediction": prediction}

    async def _single_node(self, state: RoutingState) -> dict:
        prediction = state["prediction"]
        name = prediction.agent_name
        logger.info("High confidence, running single agent: %s", name)
        result = await self._invoke(name, state["query"], state["context"])

        if result.is_usable(self.config.min_single_output_length):
            return {"outcome": RoutingOutcome(name, result, {name: result})}

        logger.info("Single agent %s returned unusable output, running dual", name)
        return {"attempted": {name: result}}

    async def _dual_node(self, state: RoutingState) -> dict:
        prediction = state["prediction"]
        predicted = prediction.agent_name
        candidates = state["candidates"]
        context = state["context"]
        query = state["query"]

        names = [predicted]
        backup = None
        if (
            predicted != GENERAL_AGENT
            and GENERAL_AGENT in candidates
            and GENERAL_AGENT in self.registry
        ):
            backup = GENERAL_AGENT
            names.append(backup)

        logger.info("Running agents in parallel: %s", ", ".join(names))
        results = await self.run_parallel(names, query, context)

        if predicted in results and results[predicted].is_usable():
            return {"outcome": RoutingOutcome(predicted, results[predicted], results)}
        if backup is not None and backup in results and results[backup].is_usable():
            logger.info("Using backup agent %s", backup)
            return {"outcome": RoutingOutcome(backup, results[backup], results)}

        outcome = self.resolve_by_completeness(results, query, context)
        if outcome is None:
            raise RoutingFailure("No agent returned a result")
        logger.info("Resolved by completeness: %s", outcome.agent)
        return {"outcome": outcome}

    # -----------------------------------------------------------------------
    # Edges
    # -----------------------------------------------------------------------

    @staticmethod
    def _after_shortcuts(state: RoutingState) -> str:
        return "resolved" if state.get("outcome") is not None else "predict"

    def _gate(self, state: RoutingState) -> str:
        confidence = state["prediction"].confidence
        if confidence >= self.config.high_confidence_threshold:
            return "single"
        # Medium and low confidence both take the safety-net path
        return "dual"

    @staticmethod
    def _after_single(state: RoutingState) -> str:
        return "resolved" if state.get("outcome") is not None else "dual"

    def _build_graph(self):
        builder = StateGraph(RoutingState)
        builder.add_node("shortcuts", self._shortcuts_node)
        builder.add_node("predict", self._predict_node)
        builder.add_node("single", self._single_node)
        builder.add_node("dual", self._dual_node)

        builder.add_edge(START, "shortcuts")
        builder.add_conditional_edges(
            "shortcuts", self._after_shortcuts, {"resolved": END, "predict": "predict"},
        )
        builder.add_conditional_edges(
            "predict", self._gate, {"single": "single", "dual": "dual"},
        )
        builder.add_conditional_edges(
            "single", self._after_single, {"resolved": END, "dual": "dual"},
        )
        builder.add_edge("dual", END)
        return builder.compile()

    # -----------------------------------------------------------------------
    # Routing Entry Points
    # -----------------------------------------------------------------------

    @staticmethod
    def _fallback_outcome() -> RoutingOutcome:
        result = AgentResult(output=FALLBACK_MESSAGE, confidence=0.0)
        return RoutingOutcome(agent=FALLBACK_AGENT, result=result, all={FALLBACK_AGENT: result})

    def default_candidates(self) -> list[str]:
        return [n for n in self.registry.names() if n not in INTERNAL_AGENTS]

    async def route_by_confidence(
        self,
        candidates: Sequence[str] | None,
        query: str,
        context: AgentContext,
    ) -> RoutingOutcome:
        """
        Pick an agent for `query` and return its answer.

        Never raises: any failure inside routing yields the "fallback"
        outcome with confidence 0.
        """
        names = list(candidates) if candidates is not None else self.default_candidates()
        logger.info(
            "Routing query '%s' across [%s]",
            query[:50] + ("..." if len(query) > 50 else ""),
            ", ".join(names),
        )

        if context.input != query:
            context = context.overlay(input=query)

        try:
            final = await self._graph.ainvoke(
                {"query": query, "candidates": names, "context": context},
            )
            outcome = final.get("outcome")
            if outcome is None:
                raise RoutingFailure("Routing graph finished without an outcome")
        except Exception:
            logger.exception("Error in route_by_confidence")
            return self._fallback_outcome()

        logger.info(
            "Routed to %s (confidence=%.2f)", outcome.agent, outcome.result.confidence,
        )
        return outcome

    async def route(
        self,
        query: str,
        context: AgentContext,
        candidates: Sequence[str] | None = None,
    ) -> RoutingOutcome:
        return await self.route_by_confidence(candidates, query, context)
