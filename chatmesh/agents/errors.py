# =============================================================================
# Agent Errors — Routing & Delegation Failure Taxonomy
# =============================================================================
#
#   AgentError
#   ├── AgentNotFoundError         — no handler registered under a name
#   ├── AgentExecutionError        — an agent's handle() raised
#   ├── PredictionParseError       — routing LLM output unparseable
#   ├── RoutingFailure             — no candidate produced a usable result
#   ├── MaxDelegationDepthExceeded — agent call chain too deep
#   └── MissingCapabilityError     — context lacks a required collaborator
#
# None of these reach the end user. The orchestrator converts every one
# of them into a low-confidence AgentResult or the terminal fallback.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable


class AgentError(Exception):
    """Base class for all agent-layer errors."""


class AgentNotFoundError(AgentError):
    """Raised when a requested agent name has no registered handler."""

    def __init__(self, name: str, known: Iterable[str] = ()) -> None:
        self.name = name
        self.known = sorted(known)
        super().__init__(
            f"Agent '{name}' not found. Registered agents: "
            f"{', '.join(self.known) or '(none)'}"
        )


class AgentExecutionError(AgentError):
    """An agent's handle() raised; wraps the original exception."""

    def __init__(self, name: str, cause: BaseException) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"Agent '{name}' failed: {cause}")


class PredictionParseError(AgentError):
    """The routing LLM's answer was not a usable {agentName, confidence} JSON."""


class RoutingFailure(AgentError):
    """Every candidate failed or none existed."""


class MaxDelegationDepthExceeded(AgentError):
    """An agent chain recursed past the registry's depth ceiling."""

    def __init__(self, name: str, depth: int, chain: tuple[str, ...]) -> None:
        self.name = name
        self.depth = depth
        self.chain = chain
        super().__init__(
            f"Delegation depth {depth} exceeded calling '{name}' "
            f"(chain: {' -> '.join(chain) or '(root)'})"
        )


class MissingCapabilityError(AgentError):
    """A context capability required by an agent was not provided."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Context capability '{key}' is not available")
