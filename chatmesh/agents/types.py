# =============================================================================
# Agent Types — Context, Result, and the Agent Interface
# =============================================================================
#
# DESIGN DECISION: Frozen context with additive overlays.
# One AgentContext flows through an entire routing decision, including
# concurrent fan-outs. Contexts are immutable; an agent that wants to add
# data calls context.overlay(...) and passes the NEW object on. A sibling
# running concurrently never sees another agent's additions.
#
# DESIGN DECISION: Small explicit core + capability side-table.
# The fields every agent may rely on (session, history, input, llm, topic)
# are typed attributes. Optional collaborators (document store, embedder)
# go into `capabilities` keyed by the constants below, so each agent
# states what it needs via context.require(KEY).
# =============================================================================

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from chatmesh.agents.errors import MissingCapabilityError

if TYPE_CHECKING:
    from chatmesh.services.llm import LLMProvider


# ---------------------------------------------------------------------------
# Capability Keys
# ---------------------------------------------------------------------------

DOCUMENT_STORE = "document_store"
EMBEDDER = "embedder"

# Metadata keys written by AgentRegistry.call_agent
INPUT_LENGTH = "input_length"
TIMESTAMP = "timestamp"
AGENT_NAME = "agent_name"
DELEGATION_DEPTH = "delegation_depth"
CALL_CHAIN = "call_chain"


# ---------------------------------------------------------------------------
# Chat Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatMessage:
    """One turn of conversation history."""

    role: str  # "human", "ai" or "system"
    content: str

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


# ---------------------------------------------------------------------------
# Agent Context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentContext:
    """
    Request-scoped data handed to every agent in a routing chain.

    Mappings are wrapped in MappingProxyType and history is stored as a
    tuple, so a context can be shared by reference between concurrent
    agents without any of them mutating it.
    """

    session_id: str
    input: str = ""
    chat_history: Sequence[ChatMessage] = ()
    llm: LLMProvider | None = None
    user_id: str | None = None
    chat_default_topic: str | None = None
    available_agents: Sequence[str] = ()
    capabilities: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "chat_history", tuple(self.chat_history))
        object.__setattr__(self, "available_agents", tuple(self.available_agents))
        object.__setattr__(
            self, "capabilities", MappingProxyType(dict(self.capabilities)),
        )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def overlay(
        self,
        *,
        metadata: Mapping[str, Any] | None = None,
        capabilities: Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> AgentContext:
        """
        Return a new context extended with the given fields.

        metadata and capabilities are merged (new keys win), every other
        keyword replaces the attribute of the same name.
        """
        return replace(
            self,
            metadata={**self.metadata, **(metadata or {})},
            capabilities={**self.capabilities, **(capabilities or {})},
            **fields,
        )

    def capability(self, key: str, default: Any = None) -> Any:
        return self.capabilities.get(key, default)

    def require(self, key: str) -> Any:
        """Return a capability or raise MissingCapabilityError."""
        try:
            return self.capabilities[key]
        except KeyError:
            raise MissingCapabilityError(key) from None

    @property
    def agent_name(self) -> str | None:
        return self.metadata.get(AGENT_NAME)

    @property
    def delegation_depth(self) -> int:
        return int(self.metadata.get(DELEGATION_DEPTH, 0))

    @property
    def call_chain(self) -> tuple[str, ...]:
        return tuple(self.metadata.get(CALL_CHAIN, ()))


# ---------------------------------------------------------------------------
# Agent Result
# ---------------------------------------------------------------------------


@dataclass
class AgentResult:
    """
    Output of any agent invocation.

    `confidence` is self-reported, conventionally in [0, 1]: 0 means
    nothing useful to contribute, >= 0.85 signals high trust.
    """

    output: str
    confidence: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, message: str, confidence: float = 0.1) -> AgentResult:
        """Standard low-confidence error result."""
        return cls(output=message, confidence=confidence, metadata={"error": True})

    @property
    def is_error(self) -> bool:
        return bool(self.metadata.get("error"))

    def is_usable(self, min_length: int = 0) -> bool:
        """Non-error result whose stripped output is longer than min_length."""
        text = (self.output or "").strip()
        return not self.is_error and bool(text) and len(text) > min_length

    def to_dict(self) -> dict[str, Any]:
        return {"output": self.output, "confidence": self.confidence}


# ---------------------------------------------------------------------------
# Agent Interface
# ---------------------------------------------------------------------------

CallAgentFn = Callable[..., Awaitable[AgentResult]]
"""call_agent(name, input, context=None) -> AgentResult"""


@runtime_checkable
class Agent(Protocol):
    """
    Structural interface every registered agent satisfies.

    handle() must not raise for expected failures; well-behaved agents
    return a low-confidence AgentResult instead. call_agent lets an agent
    delegate to another registered agent without knowing the registry.
    """

    name: str
    description: str

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        ...
