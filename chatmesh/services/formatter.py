# =============================================================================
# Response Formatter — Clean Agent Output Before Users See It
# =============================================================================
#
# LLM-backed agents (especially the tool-using research loop) leak their
# scaffolding into answers: "THOUGHT:" / "ACTION:" blocks, "I'll search
# for ..." narration, tool names, "According to the search results,"
# hedges. format_agent_response() strips those with an ordered list of
# regex passes.
#
# DESIGN DECISION: Ordered (pattern, replacement) table.
# The passes are order-dependent: FINAL ANSWER extraction must run first
# so the scratchpad before it is discarded wholesale, and the block
# removals must run before the bare-keyword removals. Keeping the passes
# in one tuple makes that order visible and testable.
#
# DESIGN DECISION: Uniform error text.
# format_error_response() logs the real exception server-side and returns
# the same apology every time. Users never see stack traces or provider
# error strings.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from chatmesh.agents.types import AgentContext, AgentResult, ChatMessage

logger = logging.getLogger(__name__)

ERROR_CONFIDENCE = 0.1

_MARKERS = r"(?=ACTION:|OBSERVATION:|THOUGHT:|FINAL ANSWER:|$)"

# (pattern, replacement) — applied in order
_CLEANUP_PASSES: tuple[tuple[re.Pattern[str], str], ...] = (
    # Keep only what follows FINAL ANSWER
    (re.compile(r"^.*?FINAL ANSWER:\s*(.*)$", re.IGNORECASE | re.DOTALL), r"\1"),
    # Reasoning scaffolding blocks, each ending at the next marker or end of line
    (re.compile(r"^THOUGHT:.*?" + _MARKERS, re.MULTILINE), ""),
    (re.compile(r"^ACTION:.*?" + _MARKERS, re.MULTILINE), ""),
    (re.compile(r"^OBSERVATION:.*?" + _MARKERS, re.MULTILINE), ""),
    # Search narration lines
    (re.compile(r"^Executing web_search.*?$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^I'll search for.*?$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^I need to search.*?$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Let me search for.*?$", re.IGNORECASE | re.MULTILINE), ""),
    (re.compile(r"^Let's search for.*?$", re.IGNORECASE | re.MULTILINE), ""),
    # Leftover markers and tool names (upper-case tokens only)
    (re.compile(r"\b(?:THOUGHT|ACTION|OBSERVATION):"), ""),
    (re.compile(r"web_search", re.IGNORECASE), ""),
    (re.compile(r"\bTOOL\b"), ""),
    (re.compile(r"\bQUERY\b"), ""),
    # Attribution hedges
    (re.compile(r"According to (?:the|my|our) (?:search |web )?results,?\s*", re.IGNORECASE), ""),
    (re.compile(r"Based on (?:the|my|our) (?:search |web )?results,?\s*", re.IGNORECASE), ""),
    (re.compile(r"The (?:search |web )?results indicate,?\s*", re.IGNORECASE), ""),
    (re.compile(r"From the information provided,?\s*", re.IGNORECASE), ""),
    (re.compile(r"From what I found,?\s*", re.IGNORECASE), ""),
)


class ResponseFormatter:
    """Stateless helpers for shaping agent output."""

    @staticmethod
    def clean_output(text: str) -> str:
        for pattern, replacement in _CLEANUP_PASSES:
            text = pattern.sub(replacement, text)
        return text.strip()

    @staticmethod
    def format_agent_response(
        output: Any,
        confidence: float,
        cleanup_metadata: bool = True,
    ) -> AgentResult:
        """
        Normalise raw agent output into an AgentResult.

        Non-string output is JSON-encoded first. With cleanup_metadata
        the reasoning scaffolding and tool chatter are removed.
        """
        text = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False)
        if cleanup_metadata:
            text = ResponseFormatter.clean_output(text)
        return AgentResult(output=text, confidence=confidence)

    @staticmethod
    def format_error_response(
        error: BaseException | str,
        context: AgentContext | None = None,
        agent_name: str | None = None,
    ) -> AgentResult:
        """Log `error` and return the generic apology as a 0.1 result."""
        prefix = f"[{agent_name}] " if agent_name else ""
        if isinstance(error, BaseException):
            logger.error(
                "%sError in agent: %s", prefix, error,
                exc_info=(type(error), error, error.__traceback__),
            )
        else:
            logger.error("%sError in agent: %s", prefix, error)

        topic = context.chat_default_topic if context is not None else None
        topic_hint = f"Remember, I'm specialized in {topic}. " if topic else ""
        return AgentResult(
            output=(
                "I apologize, but I encountered an error while processing your "
                f"request. {topic_hint}Could you please try rephrasing your question?"
            ),
            confidence=ERROR_CONFIDENCE,
            metadata={"error": True},
        )

    @staticmethod
    def format_chat_history(
        history: Sequence[ChatMessage],
        limit: int = 10,
        style: str = "text",
    ) -> str:
        """Render the last `limit` messages as plain text or markdown."""
        recent = list(history)[-limit:] if limit > 0 else []
        if style == "markdown":
            return "\n\n".join(f"**{m.role}**: {m.content}" for m in recent)
        return "\n".join(f"{m.role}: {m.content}" for m in recent)

    @staticmethod
    def format_routing_response(
        agent_name: str,
        confidence: float,
        reasoning: str,
    ) -> str:
        """JSON routing decision in the shape the prediction parser expects."""
        return json.dumps(
            {"agentName": agent_name, "confidence": confidence, "reasoning": reasoning},
        )
