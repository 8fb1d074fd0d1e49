# =============================================================================
# Agent Registry — Directory of Agents + Chained Invocation
# =============================================================================
#
# The registry maps agent names to implementations and provides
# call_agent(), the single path through which one agent delegates to
# another. call_agent enriches the sub-call's context with bookkeeping
# metadata (input_length, timestamp, agent_name, delegation depth and
# call chain) and hands the agent a reference back to itself so chains
# can continue.
#
# DESIGN DECISION: Explicit instance, not a process-wide singleton.
# The composition root (chatmesh.main) builds one registry at startup and
# injects it into the orchestrator. Tests construct a fresh registry per
# case instead of clearing global state.
#
# DESIGN DECISION: Bounded recursion.
# Agent A may call B which calls A again. Every call_agent increments the
# delegation depth carried in context metadata; past max_depth the call
# fails with MaxDelegationDepthExceeded instead of recursing forever.
#
# DESIGN DECISION: Optional per-call deadline.
# When timeout_seconds is set, a hung delegated call is cut off and
# replaced with the standard low-confidence failure result.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from chatmesh.agents.errors import AgentNotFoundError, MaxDelegationDepthExceeded
from chatmesh.agents.types import (
    AGENT_NAME,
    CALL_CHAIN,
    DELEGATION_DEPTH,
    INPUT_LENGTH,
    TIMESTAMP,
    Agent,
    AgentContext,
    AgentResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 8


class AgentRegistry:
    """Name → Agent mapping, populated at startup and read per request."""

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        timeout_seconds: float | None = None,
    ) -> None:
        self._agents: dict[str, Agent] = {}
        self.max_depth = max_depth
        self.timeout_seconds = timeout_seconds

    # -----------------------------------------------------------------------
    # Registration & Lookup
    # -----------------------------------------------------------------------

    def register(self, agent: Agent) -> Agent:
        """Insert or replace the handler stored under agent.name."""
        name = getattr(agent, "name", "")
        if not name:
            raise ValueError("Cannot register an agent without a name")
        if name in self._agents:
            logger.info("Replacing registered agent '%s'", name)
        self._agents[name] = agent
        return agent

    def unregister(self, name: str) -> None:
        self._agents.pop(name, None)

    def clear(self) -> None:
        self._agents.clear()

    def get_agent(self, name: str) -> Agent | None:
        return self._agents.get(name)

    def get_all_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def names(self) -> list[str]:
        return list(self._agents)

    def describe(self) -> dict[str, str]:
        return {name: agent.description for name, agent in self._agents.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    # -----------------------------------------------------------------------
    # Chained Invocation
    # -----------------------------------------------------------------------

    async def call_agent(
        self,
        name: str,
        input: str,
        context: AgentContext | None = None,
    ) -> AgentResult:
        """
        Invoke a registered agent with an enriched copy of the context.

        Raises:
            AgentNotFoundError: no agent is registered under `name`.
            MaxDelegationDepthExceeded: the call chain is too deep.
        Exceptions raised by the agent itself propagate to the caller.
        """
        agent = self._agents.get(name)
        if agent is None:
            raise AgentNotFoundError(name, self._agents)

        parent = context if context is not None else AgentContext(session_id="", input=input)
        depth = parent.delegation_depth + 1
        chain = parent.call_chain + (name,)
        if depth > self.max_depth:
            raise MaxDelegationDepthExceeded(name, depth, parent.call_chain)

        enriched = parent.overlay(
            metadata={
                INPUT_LENGTH: len(input),
                TIMESTAMP: datetime.now(UTC).isoformat(),
                AGENT_NAME: name,
                DELEGATION_DEPTH: depth,
                CALL_CHAIN: chain,
            },
        )

        logger.debug("call_agent: %s (depth=%d)", " -> ".join(chain), depth)

        if self.timeout_seconds is None:
            return await agent.handle(input, enriched, self.call_agent)

        try:
            return await asyncio.wait_for(
                agent.handle(input, enriched, self.call_agent),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Agent '%s' timed out after %.1fs", name, self.timeout_seconds,
            )
            return AgentResult.failure(
                f"Agent '{name}' timed out before producing an answer.",
            )
