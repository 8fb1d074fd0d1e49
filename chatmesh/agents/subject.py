# =============================================================================
# Subject Inference Agent — What Is "It" Referring To?
# =============================================================================
#
# Follow-ups like "when was it founded?" or "y en Filipinas?" only make
# sense against the previous turns. This agent reads recent history and
# returns a JSON object {"subject": ..., "description": ...} naming the
# entity the latest message refers to, or "{}" when there is none.
#
# Used by research, weather and time agents to rewrite vague queries.
# Never fails: errors and missing collaborators yield "{}".
# =============================================================================

from __future__ import annotations

import json

from chatmesh.agents.base import BaseAgent, parse_json_object
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn

SUBJECT_CONFIDENCE = 0.95
HISTORY_WINDOW = 6
EMPTY_SUBJECT = "{}"

PROMPT_TEMPLATE = """You are a subject analysis expert. Identify the primary subject the user's latest message refers to, using the conversation history.

Rules:
1. Identify the main entity (the "subject") the latest message refers to.
2. Extract descriptive details that disambiguate it (e.g. "Dominican software company").
3. Return one JSON object with keys "subject" and "description".
4. If the latest message is a greeting, a question to the assistant itself, or starts an unrelated topic, return {{}}.
5. If no subject can be determined, return {{}}.

Example:
History: "human: Tell me about GBH, the Dominican software company."
Latest message: "When was it founded?"
Response: {{"subject": "GBH", "description": "Dominican software company"}}

Conversation history:
{history}

Latest message: "{input}"

JSON response:"""


def parse_subject(raw: str) -> dict[str, str]:
    """Parse the agent's output; anything unusable becomes {}."""
    payload = parse_json_object(raw)
    if not payload or not payload.get("subject"):
        return {}
    return {
        "subject": str(payload["subject"]),
        "description": str(payload.get("description") or ""),
    }


class SubjectInferenceAgent(BaseAgent):
    name = "subject_inference"
    description = (
        "Infers the main subject and its descriptive context from the recent "
        "conversation history."
    )

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if not context.chat_history:
            return AgentResult(output=EMPTY_SUBJECT, confidence=0.0)
        if context.llm is None:
            self.logger.warning("LLM not available for subject inference")
            return AgentResult(output=EMPTY_SUBJECT, confidence=0.0)

        history = "\n".join(str(m) for m in context.chat_history[-HISTORY_WINDOW:])
        prompt = PROMPT_TEMPLATE.format(history=history, input=input)

        try:
            raw = (await self._complete(context, prompt, json_mode=True, temperature=0)).strip()
        except Exception:
            self.logger.exception("Subject inference failed")
            return AgentResult(output=EMPTY_SUBJECT, confidence=0.0)

        subject = parse_subject(raw)
        self.logger.info("Inferred subject: %s", subject or "(none)")
        if not subject:
            return AgentResult(output=EMPTY_SUBJECT, confidence=0.0)
        return AgentResult(output=json.dumps(subject, ensure_ascii=False), confidence=SUBJECT_CONFIDENCE)
