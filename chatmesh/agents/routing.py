# =============================================================================
# Routing Agent — LLM Prediction of the Best Agent
# =============================================================================
#
# Builds a prompt listing the candidate agents (from
# context.available_agents) with their descriptions and a strict
# priority order, and asks the LLM for
#   {"agentName": "...", "confidence": 0.0-1.0, "reasoning": "..."}
#
# The raw text is returned unparsed; the orchestrator owns parsing
# (prediction.py) so a malformed answer degrades gracefully there.
# =============================================================================

from __future__ import annotations

from chatmesh.agents.base import BaseAgent
from chatmesh.agents.classification import has_document_context_in_history
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn
from chatmesh.services.formatter import ResponseFormatter

ROUTING_CONFIDENCE = 0.9

# Human-readable descriptions offered to the routing LLM. Agents missing
# from this table fall back to their own `description`.
AGENT_DESCRIPTIONS: dict[str, str] = {
    "general": (
        "A general-purpose conversational agent for a wide range of topics, "
        "including answering questions about itself."
    ),
    "research": (
        "Provides detailed factual information by searching the web. Handles "
        "companies, news, people, and knowledge-based topics."
    ),
    "time": "Provides current time, date, and timezone information.",
    "current_time": "Returns the current time for a given IANA timezone.",
    "weather": "Provides weather forecasts and current conditions.",
    "open_weather_map": "Looks up current weather conditions for a location.",
    "document_search": "Searches through user-uploaded documents to find specific information.",
    "summarizer": "Summarizes long pieces of text or content.",
    "code_interpreter": (
        "Analyzes, explains, and answers questions about existing code "
        "snippets provided by the user."
    ),
    "code_optimization": (
        "Analyzes the performance of code the user provides and proposes an "
        "optimized version."
    ),
    "code_generation": "Writes new code from a description of what the user needs.",
    "calculator": "Evaluates arithmetic expressions (\"2+2\", \"sqrt(16) * 3\").",
    "currency_converter": "Converts amounts between currencies (\"100 USD to EUR\").",
    "unit_converter": (
        "Converts between units of measurement (\"5 miles to km\", "
        "\"30 degrees Celsius to Fahrenheit\")."
    ),
    "hashing": "Computes cryptographic hashes of text.",
    "search": "Runs a raw web search and returns the top results.",
    "web_search": "Runs a raw web search and returns the top results.",
}

# Ordered routing rules; lines whose agent is not a candidate are dropped.
PRIORITY_RULES: tuple[tuple[str, str], ...] = (
    ("general", 'Personal/conversational queries (greetings, introductions) → general'),
    ("calculator", 'Math expressions ("2+2", "what is 3 * (4 + 5)") → calculator'),
    ("currency_converter", 'Currency conversions ("100 USD to EUR") → currency_converter'),
    ("unit_converter", 'Unit conversions ("10 kg to lb", "30 degrees to Fahrenheit") → unit_converter'),
    ("hashing", 'Hashing queries ("hash", "sha256 of \'hello\'") → hashing'),
    ("time", 'Time queries ("time", "date", "today") → time'),
    ("weather", 'Weather queries ("weather", "temperature") → weather'),
    ("open_weather_map", 'Weather queries when "weather" is unavailable → open_weather_map'),
    ("document_search", 'Explicit document queries ("document", "what is this about") → document_search'),
    ("research", "Research queries (companies, people, facts) → research"),
    ("code_optimization", "Requests to optimize or speed up provided code → code_optimization"),
    ("code_interpreter", "Code analysis queries (user provides code) → code_interpreter"),
    ("code_generation", 'Requests to write new code ("write a function that...") → code_generation'),
    ("document_search", "Ambiguous queries WITH document context → document_search"),
    ("general", "Everything else → general"),
)

RESPONSE_FORMAT = (
    "MANDATORY RESPONSE FORMAT - RESPOND WITH ONLY THIS JSON:\n"
    '{"agentName": "agent_name", "confidence": 0.85, "reasoning": "brief reason"}\n\n'
    "DO NOT WRITE ANY OTHER TEXT. ONLY JSON."
)


def build_routing_prompt(input: str, context: AgentContext, descriptions: dict[str, str]) -> str:
    candidates = list(context.available_agents)
    topic = context.chat_default_topic

    sections: list[str] = [
        "You route user queries to the single best agent. The query may be "
        "in any language; route by meaning, not language.",
    ]
    if topic:
        sections.append(
            f'IMPORTANT TOPIC RESTRICTION: This chat is strictly focused on "{topic}".\n'
            f'- If the user\'s query is NOT about "{topic}", you MUST route to "general".'
        )

    agent_lines = "\n".join(
        f"- {name}: {descriptions[name]}" for name in candidates if name in descriptions
    )
    sections.append(f"AVAILABLE AGENTS:\n{agent_lines}")
    sections.append(f'USER QUERY: "{input}"')

    if context.chat_history:
        recent = ", ".join(str(m) for m in context.chat_history[-2:])
        sections.append(f"CONTEXT: {recent}")
    if has_document_context_in_history(context.chat_history):
        sections.append(
            "DOCUMENT CONTEXT DETECTED: the user has uploaded documents. "
            "For ambiguous queries, prefer document_search."
        )

    rules: list[str] = []
    if topic and "general" in candidates:
        rules.append(f'Queries unrelated to "{topic}" → general')
    rules.extend(rule for agent, rule in PRIORITY_RULES if agent in candidates)
    numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))
    sections.append(f"ROUTING RULES (STRICT PRIORITY ORDER):\n{numbered}")

    sections.append(RESPONSE_FORMAT)
    return "\n\n".join(sections)


class RoutingAgent(BaseAgent):
    name = "routing"
    description = "Determines the best agent to handle a user query using LLM analysis."

    def __init__(self, descriptions: dict[str, str] | None = None) -> None:
        super().__init__()
        self.descriptions = {**AGENT_DESCRIPTIONS, **(descriptions or {})}

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if not context.available_agents:
            return self._failure(
                "Unable to route your request: no candidate agents were provided.", context,
            )
        if context.llm is None:
            return self._failure(
                "Unable to route your request: language model is not available.", context,
            )

        prompt = build_routing_prompt(input, context, self.descriptions)
        self.logger.info("Routing agent analyzing query: '%s'", input[:50])

        try:
            output = await self._complete(context, prompt, json_mode=True, temperature=0)
        except Exception as e:
            return self._failure(e, context)

        self.logger.info("Routing agent raw response: %s", output)
        return ResponseFormatter.format_agent_response(output, ROUTING_CONFIDENCE, cleanup_metadata=False)
