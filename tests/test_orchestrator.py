# =============================================================================
# Unit Tests — Agent Orchestrator (Confidence-Gated Routing)
# =============================================================================
#
# Routing is exercised end-to-end through the compiled LangGraph with
# scripted agents. The routing agent is a fake that returns a canned
# prediction, so every branch (shortcuts, single, dual, fallback) can be
# pinned without an LLM. Call counts show which agents actually ran.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from chatmesh.agents.errors import AgentNotFoundError
from chatmesh.agents.orchestrator import (
    FALLBACK_AGENT,
    FALLBACK_MESSAGE,
    AgentOrchestrator,
    AgentStep,
    RoutingConfig,
)
from chatmesh.agents.registry import AgentRegistry
from chatmesh.agents.types import AgentContext, AgentResult, ChatMessage

LONG_ANSWER = (
    "Here is a complete and detailed answer that easily clears every "
    "minimum length threshold used by the router."
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class ScriptedAgent:
    """Returns a fixed result (or raises) and counts its invocations."""

    def __init__(self, name, output=LONG_ANSWER, confidence=0.8, error=None, delay=0.0):
        self.name = name
        self.description = f"{name} agent"
        self.output = output
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, AgentContext]] = []

    async def handle(self, input, context, call_agent=None):
        self.calls.append((input, context))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AgentResult(output=self.output, confidence=self.confidence)


class FakeRoutingAgent(ScriptedAgent):
    """Routing agent answering with a canned JSON prediction."""

    def __init__(self, agent_name="general", confidence=0.9, raw=None):
        payload = raw if raw is not None else json.dumps(
            {"agentName": agent_name, "confidence": confidence, "reasoning": "test"},
        )
        super().__init__("routing", output=payload, confidence=0.9)


def _setup(*agents, config=None):
    registry = AgentRegistry()
    for agent in agents:
        registry.register(agent)
    return AgentOrchestrator(registry, config or RoutingConfig())


def _context(history=(), llm=None):
    return AgentContext(session_id="test-session", chat_history=history, llm=llm)


# ---------------------------------------------------------------------------
# Test: Shortcuts
# ---------------------------------------------------------------------------


class TestShortcuts:
    def test_greeting_goes_to_general_without_prediction(self):
        general = ScriptedAgent("general", "¡Hola! ¿En qué puedo ayudarte?", 0.75)
        research = ScriptedAgent("research")
        routing = FakeRoutingAgent("research", 0.99)
        orchestrator = _setup(general, research, routing)

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "hola!", _context(),
        ))

        assert outcome.agent == "general"
        assert len(routing.calls) == 0
        assert len(research.calls) == 0

    def test_ok_routes_to_general(self):
        general = ScriptedAgent("general", "Great! Anything else?", 0.75)
        orchestrator = _setup(
            general, ScriptedAgent("research"), ScriptedAgent("weather"), FakeRoutingAgent("research"),
        )
        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research", "weather"], "ok", _context(),
        ))
        assert outcome.agent == "general"

    def test_weather_query_skips_llm_prediction(self):
        llm = AsyncMock()
        weather_tool = ScriptedAgent("open_weather_map", "Paris: 18°C, light rain.", 0.95)
        weather = ScriptedAgent("weather")
        routing = FakeRoutingAgent("general")
        orchestrator = _setup(ScriptedAgent("general"), weather_tool, weather, routing)

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "open_weather_map", "weather"],
            "what's the weather in Paris?",
            _context(llm=llm),
        ))

        assert outcome.agent == "open_weather_map"
        assert len(routing.calls) == 0
        assert len(weather.calls) == 0
        llm.complete.assert_not_called()

    def test_weather_agent_used_when_tool_not_a_candidate(self):
        weather = ScriptedAgent("weather", "Sunny in Madrid.", 0.9)
        orchestrator = _setup(ScriptedAgent("general"), weather, FakeRoutingAgent("general"))
        outcome = _run(orchestrator.route_by_confidence(
            ["general", "weather"], "¿Qué tiempo hace en Madrid?", _context(),
        ))
        assert outcome.agent == "weather"

    def test_document_follow_up_uses_document_search(self):
        document = ScriptedAgent("document_search", "The report covers Q3 revenue.", 0.9)
        routing = FakeRoutingAgent("general")
        orchestrator = _setup(ScriptedAgent("general"), document, routing)
        history = [
            ChatMessage("human", "[PDF Uploaded] report.pdf"),
            ChatMessage("ai", "Thanks, I've read it."),
        ]

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "document_search"], "what is this about?", _context(history),
        ))

        assert outcome.agent == "document_search"
        assert len(routing.calls) == 0

    def test_first_turn_document_probe_hit(self):
        document = ScriptedAgent("document_search", LONG_ANSWER, 0.9)
        orchestrator = _setup(ScriptedAgent("general"), document, FakeRoutingAgent("general"))
        outcome = _run(orchestrator.route_by_confidence(
            ["general", "document_search"], "summarize the pdf I uploaded", _context(),
        ))
        assert outcome.agent == "document_search"

    def test_first_turn_document_probe_miss_continues_routing(self):
        document = ScriptedAgent(
            "document_search",
            "No relevant information found in your uploaded documents for this query.",
            0.5,
        )
        general = ScriptedAgent("general", LONG_ANSWER, 0.75)
        routing = FakeRoutingAgent("general", 0.9)
        orchestrator = _setup(general, document, routing)

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "document_search"], "summarize the pdf I uploaded", _context(),
        ))

        assert outcome.agent == "general"
        assert len(routing.calls) == 1
        assert len(document.calls) == 1


# ---------------------------------------------------------------------------
# Test: Confidence Gate
# ---------------------------------------------------------------------------


class TestConfidenceGate:
    def test_high_confidence_runs_single_agent(self):
        research = ScriptedAgent("research", LONG_ANSWER, 0.9)
        general = ScriptedAgent("general")
        orchestrator = _setup(general, research, FakeRoutingAgent("research", 0.9))

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "Who founded Microsoft?", _context(),
        ))

        assert outcome.agent == "research"
        assert list(outcome.all) == ["research"]
        assert len(general.calls) == 0

    def test_unusable_single_answer_falls_back_to_dual(self):
        research = ScriptedAgent("research", "", 0.9)
        general = ScriptedAgent("general", LONG_ANSWER, 0.75)
        orchestrator = _setup(general, research, FakeRoutingAgent("research", 0.9))

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "Who founded Microsoft?", _context(),
        ))

        assert outcome.agent == "general"
        assert len(general.calls) == 1

    def test_medium_confidence_runs_prediction_and_general(self):
        research = ScriptedAgent("research", LONG_ANSWER, 0.9)
        general = ScriptedAgent("general", "Something else entirely.", 0.75)
        orchestrator = _setup(general, research, FakeRoutingAgent("research", 0.5))

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "Who founded Microsoft?", _context(),
        ))

        assert outcome.agent == "research"
        assert set(outcome.all) == {"research", "general"}
        assert len(general.calls) == 1

    def test_low_confidence_takes_dual_path_too(self):
        research = ScriptedAgent("research", LONG_ANSWER, 0.9)
        general = ScriptedAgent("general", LONG_ANSWER, 0.75)
        orchestrator = _setup(general, research, FakeRoutingAgent("research", 0.1))
        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "Who founded Microsoft?", _context(),
        ))
        assert set(outcome.all) == {"research", "general"}

    def test_failed_prediction_uses_general_backup(self):
        research = ScriptedAgent("research", error=RuntimeError("search down"))
        general = ScriptedAgent("general", LONG_ANSWER, 0.75)
        orchestrator = _setup(general, research, FakeRoutingAgent("research", 0.5))

        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "Who founded Microsoft?", _context(),
        ))

        assert outcome.agent == "general"
        assert outcome.all["research"].confidence == 0.1

    def test_routing_agent_sees_candidates(self):
        routing = FakeRoutingAgent("general", 0.9)
        orchestrator = _setup(ScriptedAgent("general"), ScriptedAgent("research"), routing)
        _run(orchestrator.route_by_confidence(
            ["general", "research"], "tell me something fun", _context(),
        ))
        _, routing_context = routing.calls[0]
        assert routing_context.available_agents == ("general", "research")

    def test_unparseable_prediction_uses_keywords(self):
        research = ScriptedAgent("research", LONG_ANSWER, 0.9)
        orchestrator = _setup(
            ScriptedAgent("general"), research, FakeRoutingAgent(raw="no idea, sorry"),
        )
        outcome = _run(orchestrator.route_by_confidence(
            ["general", "research"], "Who founded Microsoft?", _context(),
        ))
        # keyword prediction: research at 0.6 = high threshold
        assert outcome.agent == "research"

    def test_without_routing_agent_keywords_decide(self):
        time_agent = ScriptedAgent("time", "It is 10:00 in Tokyo right now.", 0.9)
        orchestrator = _setup(ScriptedAgent("general"), time_agent)
        outcome = _run(orchestrator.route_by_confidence(
            ["general", "time"], "what time is it in Tokyo?", _context(),
        ))
        assert outcome.agent == "time"

    def test_default_candidates_exclude_routing(self):
        orchestrator = _setup(
            ScriptedAgent("general"), ScriptedAgent("research"), FakeRoutingAgent("general"),
        )
        assert orchestrator.default_candidates() == ["general", "research"]

    def test_none_candidates_means_all_registered(self):
        general = ScriptedAgent("general", LONG_ANSWER, 0.75)
        orchestrator = _setup(general, FakeRoutingAgent("general", 0.9))
        outcome = _run(orchestrator.route(
            "tell me something fun", _context(),
        ))
        assert outcome.agent == "general"


class TestPredictBestAgent:
    def test_greeting_override(self):
        orchestrator = _setup(
            ScriptedAgent("general"), ScriptedAgent("research"), FakeRoutingAgent("research", 0.3),
        )
        prediction = _run(orchestrator.predict_best_agent(
            "hola", ["general", "research"], _context(),
        ))
        assert prediction.agent_name == "general"
        assert prediction.confidence == pytest.approx(0.6)
        assert prediction.source == "greeting"


# ---------------------------------------------------------------------------
# Test: Never Raises
# ---------------------------------------------------------------------------


class TestFallback:
    def test_internal_error_returns_fallback(self):
        orchestrator = _setup(ScriptedAgent("general"), FakeRoutingAgent("general"))
        with patch.object(
            orchestrator, "predict_best_agent", AsyncMock(side_effect=RuntimeError("bug")),
        ):
            outcome = _run(orchestrator.route_by_confidence(
                ["general"], "tell me something fun", _context(),
            ))
        assert outcome.agent == FALLBACK_AGENT
        assert outcome.result.output == FALLBACK_MESSAGE
        assert outcome.result.confidence == 0.0
        assert set(outcome.all) == {FALLBACK_AGENT}

    def test_no_usable_agents(self):
        orchestrator = _setup(FakeRoutingAgent("ghost"))
        outcome = _run(orchestrator.route_by_confidence(
            ["ghost"], "tell me something fun", _context(),
        ))
        assert outcome.agent == FALLBACK_AGENT
        assert outcome.result.confidence == 0.0

    def test_outcome_serialises(self):
        orchestrator = _setup(ScriptedAgent("general", LONG_ANSWER, 0.75))
        outcome = _run(orchestrator.route_by_confidence(["general"], "hi", _context()))
        data = outcome.to_dict()
        assert data["agent"] == "general"
        assert data["result"]["confidence"] == 0.75
        assert "general" in data["all"]


# ---------------------------------------------------------------------------
# Test: Execution Primitives
# ---------------------------------------------------------------------------


class TestExecution:
    def test_run_single_agent_unknown(self):
        orchestrator = _setup(ScriptedAgent("general"))
        with pytest.raises(AgentNotFoundError):
            _run(orchestrator.run_single_agent("missing", "x", _context()))

    def test_run_single_agent_error_becomes_result(self):
        orchestrator = _setup(ScriptedAgent("boom", error=ValueError("bad")))
        result = _run(orchestrator.run_single_agent("boom", "x", _context()))
        assert result.confidence == 0.1
        assert result.output == "Error processing request with agent 'boom'."

    def test_run_parallel_isolates_failures(self):
        orchestrator = _setup(
            ScriptedAgent("a", "answer a", 0.7),
            ScriptedAgent("boom", error=RuntimeError("kaput")),
            ScriptedAgent("c", "answer c", 0.6),
        )
        results = _run(orchestrator.run_parallel(["a", "boom", "c"], "x", _context()))

        assert results["a"].output == "answer a"
        assert results["c"].output == "answer c"
        assert results["boom"].confidence == 0.1
        assert results["boom"].output == "Error processing request with agent 'boom'."

    def test_run_parallel_is_concurrent(self):
        orchestrator = _setup(
            ScriptedAgent("a", delay=0.2), ScriptedAgent("b", delay=0.2), ScriptedAgent("c", delay=0.2),
        )
        elapsed = _run(_timed(orchestrator.run_parallel(["a", "b", "c"], "x", _context())))
        assert elapsed < 0.5

    def test_run_parallel_skips_unknown(self):
        orchestrator = _setup(ScriptedAgent("a"))
        results = _run(orchestrator.run_parallel(["a", "ghost"], "x", _context()))
        assert list(results) == ["a"]

    def test_run_parallel_fallback_substitute(self):
        orchestrator = _setup(ScriptedAgent("general", LONG_ANSWER, 0.75))
        results = _run(orchestrator.run_parallel(["ghost"], "x", _context()))
        assert list(results) == ["general"]

    def test_run_parallel_without_any_fallback(self):
        orchestrator = _setup(ScriptedAgent("a"))
        results = _run(orchestrator.run_parallel(["ghost"], "x", _context()))
        assert list(results) == ["fallback"]
        assert results["fallback"].confidence == 0.0

    def test_timeout_becomes_failure(self):
        orchestrator = _setup(
            ScriptedAgent("slow", delay=1.0),
            config=RoutingConfig(agent_timeout_seconds=0.01),
        )
        result = _run(orchestrator.run_single_agent("slow", "x", _context()))
        assert result.is_error
        assert "timed out" in result.output

    def test_run_steps_threads_outputs(self):
        upper = ScriptedAgent("first", "step one", 0.9)
        second = ScriptedAgent("second", "step two", 0.9)
        orchestrator = _setup(upper, second)

        async def build_second(previous, context):
            return f"{previous} -> next"

        results = _run(orchestrator.run_steps(
            [
                AgentStep("first", lambda previous, context: "start"),
                AgentStep("second", build_second),
            ],
            _context(),
        ))

        assert [r.output for r in results] == ["step one", "step two"]
        assert upper.calls[0][0] == "start"
        assert second.calls[0][0] == "step one -> next"

    def test_run_steps_unknown_agent(self):
        orchestrator = _setup(ScriptedAgent("first"))
        with pytest.raises(AgentNotFoundError):
            _run(orchestrator.run_steps(
                [AgentStep("missing", lambda p, c: "x")], _context(),
            ))

    def test_route_by_completeness(self):
        orchestrator = _setup(
            ScriptedAgent("a", "ok", 0.9),
            ScriptedAgent("b", "GBH was founded in 2004 in Santo Domingo.", 0.8),
        )
        outcome = _run(orchestrator.route_by_completeness(
            ["a", "b"], "When was GBH founded and by whom exactly?", _context(),
        ))
        assert outcome.agent == "b"
        assert set(outcome.all) == {"a", "b"}

    def test_agents_receive_enriched_context(self):
        general = ScriptedAgent("general", LONG_ANSWER, 0.75)
        orchestrator = _setup(general)
        _run(orchestrator.run_single_agent("general", "hello world", _context()))
        _, seen = general.calls[0]
        assert seen.metadata["agent_name"] == "general"
        assert seen.metadata["input_length"] == len("hello world")
        assert seen.call_chain == ("general",)


async def _timed(coro) -> float:
    loop = asyncio.get_running_loop()
    start = loop.time()
    await coro
    return loop.time() - start
