# =============================================================================
# General Agent — Conversational Catch-All
# =============================================================================
#
# Answers greetings, small talk, questions about the assistant itself and
# anything no specialist claims. It is also the safety net the
# orchestrator runs next to a low-confidence prediction.
#
# When a default topic is configured the agent stays on that topic and
# politely declines anything else.
# =============================================================================

from __future__ import annotations

from chatmesh.agents.base import BaseAgent
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn
from chatmesh.services.formatter import ResponseFormatter
from chatmesh.services.language import NONSENSE, get_language_context

GENERAL_CONFIDENCE = 0.75
NONSENSE_CONFIDENCE = 0.3

SYSTEM_PROMPT = (
    "You are chatmesh, a friendly multilingual assistant. Answer the user's "
    "last message directly and conversationally. Keep greetings short."
)


def _topic_rules(topic: str) -> str:
    return (
        f'You are a specialized assistant for "{topic}".\n'
        f'- If the user\'s message is about "{topic}", give a helpful, detailed answer.\n'
        f'- If it is NOT about "{topic}", politely decline, state your '
        f"specialization and suggest one or two example questions about it.\n"
        f"- Do NOT answer off-topic questions, even if you know the answer."
    )


class GeneralAgent(BaseAgent):
    name = "general"
    description = (
        "A general-purpose conversational agent for a wide range of topics, "
        "including answering questions about itself."
    )

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if context.llm is None:
            return AgentResult.failure(
                "I'm sorry, I can't process this request without my language model."
            )

        try:
            language = await get_language_context(input, context.llm)
            if language.language == NONSENSE:
                return AgentResult(
                    output=(
                        "I'm sorry, I didn't understand your request. "
                        "Could you please rephrase it?"
                    ),
                    confidence=NONSENSE_CONFIDENCE,
                )

            system = SYSTEM_PROMPT
            if context.chat_default_topic:
                system = f"{system}\n\n{_topic_rules(context.chat_default_topic)}"
            system = f"{system}\n\n{language.instructions}"

            history = ResponseFormatter.format_chat_history(context.chat_history)
            prompt = (
                f"Current conversation:\n{history}\nhuman: {input}\nai:"
                if history
                else f"human: {input}\nai:"
            )

            output = await self._complete(context, prompt, system=system)
        except Exception as e:
            return self._failure(e, context)

        return AgentResult(output=output.strip(), confidence=GENERAL_CONFIDENCE)
