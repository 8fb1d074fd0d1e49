# =============================================================================
# BaseAgent — Shared Plumbing for Concrete Agents
# =============================================================================
#
# Concrete agents subclass BaseAgent and implement `handle()`. The base
# class supplies the pieces nearly every agent repeats: a per-agent
# logger, an LLM call helper that reads the provider from the context,
# and the standard error results.
#
# Agents that need no LLM (pure tools) still subclass BaseAgent for the
# logger and error helpers; nothing here forces an LLM dependency.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn
from chatmesh.services.formatter import ResponseFormatter
from chatmesh.services.llm import complete_prompt

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def parse_json_object(raw: str) -> dict[str, Any] | None:
    """
    Parse an LLM answer that should be a JSON object.

    Accepts bare JSON or JSON inside a ```json fence. Returns None for
    anything that is not a JSON object.
    """
    text = (raw or "").strip()
    fenced = _FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


class BaseAgent(ABC):
    name: str = ""
    description: str = ""

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"chatmesh.agents.{self.name or type(self).__name__}")

    @abstractmethod
    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        ...

    async def _complete(
        self,
        context: AgentContext,
        prompt: str,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float | None = None,
    ) -> str:
        """Run one prompt through the context's LLM and return the text."""
        if context.llm is None:
            raise RuntimeError(f"Agent '{self.name}' needs an LLM but the context has none")
        return await complete_prompt(
            context.llm, prompt, system=system, json_mode=json_mode, temperature=temperature,
        )

    def _failure(self, error: BaseException | str, context: AgentContext | None = None) -> AgentResult:
        return ResponseFormatter.format_error_response(error, context, self.name)

    def _require_call_agent(self, call_agent: CallAgentFn | None) -> CallAgentFn:
        if call_agent is None:
            raise RuntimeError(f"Agent '{self.name}' delegates to other agents but got no call_agent")
        return call_agent

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
