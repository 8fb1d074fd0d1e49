# =============================================================================
# Summarizer Agent — Condense Text for the User
# =============================================================================
#
# Takes arbitrary text (search results, document excerpts, tool output
# bundled with a question) and returns a clean markdown summary in the
# language of the input. Other agents delegate their final write-up here.
# =============================================================================

from __future__ import annotations

from chatmesh.agents.base import BaseAgent
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn
from chatmesh.services.formatter import ResponseFormatter
from chatmesh.services.language import get_language_context

SUMMARY_CONFIDENCE = 0.9

PROMPT_TEMPLATE = """You are an expert text analyst and summarizer.

{language}

TEXT TO ANALYZE:
{input}

INSTRUCTIONS:
1. If the text contains its own instructions or a question, follow them exactly.
2. Otherwise, write a clear and concise summary of the key information.
3. Stick to facts; do not speculate.
4. Do not include technical metadata or your own thinking process.
5. Use markdown (headings, bold text, lists, tables) where it helps readability."""


class SummarizerAgent(BaseAgent):
    name = "summarizer"
    description = "Summarizes and analyzes long pieces of text or content."

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if context.llm is None:
            return self._failure(
                "I am having trouble analyzing this text right now. Please try again later.",
                context,
            )
        try:
            language = await get_language_context(input, context.llm)
            prompt = PROMPT_TEMPLATE.format(language=language.instructions, input=input)
            output = await self._complete(context, prompt)
        except Exception as e:
            return self._failure(e, context)

        if not output.strip():
            return self._failure("Summarizer returned an empty response", context)
        return ResponseFormatter.format_agent_response(output, SUMMARY_CONFIDENCE)
