# =============================================================================
# Research Agent — Iterative Web Research Loop
# =============================================================================
#
# Answers factual questions (companies, people, events) by searching the
# web until an LLM analyst judges the answer complete.
#
# FLOW:
#   1. Query analysis (LLM, JSON): core topic + sites to exclude.
#   2. subject_inference: resolve "it"/"they" against chat history.
#   3. Loop (<= max_iterations):
#        search → LLM decides {"nextAction": "FINISH" | "SEARCH", ...}
#        FINISH → return the final answer (0.98)
#        SEARCH → refine the query and loop
#   4. Out of iterations → summarizer synthesises the findings (0.6).
#
# DESIGN DECISION: Agentic loop inside the agent, not as graph edges.
# Same shape as a self-evaluating retrieval loop: the routing graph stays
# simple and the loop's trace lives in the result metadata.
#
# Every sub-call goes through call_agent, so the search and summarizer
# agents see the enriched context (call chain, research topic).
# =============================================================================

from __future__ import annotations

import json
from dataclasses import dataclass, field

from chatmesh.agents.base import BaseAgent, parse_json_object
from chatmesh.agents.subject import parse_subject
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn
from chatmesh.services.language import get_language_context

FINISH_CONFIDENCE = 0.98
SYNTHESIS_CONFIDENCE = 0.6
PARSE_FAILURE_CONFIDENCE = 0.4
DEFAULT_MAX_ITERATIONS = 5

RESEARCH_TOPIC = "research_topic"

QUERY_ANALYSIS_PROMPT = """Analyze the user's research request and extract the core research topic and any web domains they want excluded.

User's query:
"{input}"

Respond with a JSON object with two keys:
- "research_topic": the core question the user is asking.
- "exclude_sites": a list of domains to exclude (empty list if none were mentioned)."""

ANALYSIS_PROMPT = """You are a research analyst. Decide whether the research history fully answers the user's question.

{language}

User's original question:
"{input}"

Research context:
{subject}

Research history (most recent last):
{history}

Respond with a JSON object:
- If the question is fully answered:
  {{"nextAction": "FINISH", "nextQueryOrFinalAnswer": "<complete final answer in markdown, ending with a '## Sources' list of the most relevant URLs>"}}
- Otherwise:
  {{"nextAction": "SEARCH", "nextQueryOrFinalAnswer": "<a targeted search query>", "exclude_sites": ["<optional domains to skip>"]}}"""

SYNTHESIS_PROMPT = """Several searches did not produce a definitive answer. Write one helpful answer from the research history below: highlight any concrete facts that were found, acknowledge what is still unknown, and end with a '## Sources' list of the most relevant URLs. Do not include raw search results or JSON.

{language}

User's original question:
"{input}"

Research context:
{subject}

Research history:
{history}"""


@dataclass
class SearchRound:
    query: str
    exclude_sites: list[str] = field(default_factory=list)
    results: str = ""

    def search_input(self) -> str:
        return json.dumps({"query": self.query, "exclude_sites": self.exclude_sites})


def _format_history(rounds: list[SearchRound]) -> str:
    return "\n\n---\n\n".join(
        f'Search #{i} (Query: "{r.query}"):\n{r.results}'
        for i, r in enumerate(rounds, start=1)
    )


class ResearchAgent(BaseAgent):
    name = "research"
    description = "Performs multi-step, intelligent web research to answer complex questions."

    def __init__(self, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> None:
        super().__init__()
        self.max_iterations = max_iterations

    async def _analyse_query(self, input: str, context: AgentContext) -> tuple[str, list[str]]:
        prompt = QUERY_ANALYSIS_PROMPT.format(input=input)
        try:
            payload = parse_json_object(await self._complete(context, prompt, json_mode=True))
        except Exception as e:
            self.logger.warning("Query analysis failed: %s", e)
            payload = None
        if not payload:
            return input, []
        topic = str(payload.get("research_topic") or input)
        exclusions = [str(s) for s in payload.get("exclude_sites") or []]
        return topic, exclusions

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if context.llm is None:
            return AgentResult.failure("Research failed: LLM not available.")
        call_agent = self._require_call_agent(call_agent)
        try:
            return await self._research(input, context, call_agent)
        except Exception as e:
            return self._failure(e, context)

    async def _research(
        self, input: str, context: AgentContext, call_agent: CallAgentFn,
    ) -> AgentResult:
        topic, exclusions = await self._analyse_query(input, context)

        subject_result = await call_agent("subject_inference", input, context)
        subject = parse_subject(subject_result.output)
        subject_note = ""
        if subject:
            subject_note = (
                f'The user is asking about "{subject["subject"]} ({subject["description"]})".'
            )
            topic = f'{subject["subject"]} {subject["description"]} {topic}'.strip()
            self.logger.info("Research context added, query: '%s'", topic)

        research_context = context.overlay(metadata={RESEARCH_TOPIC: topic})
        language = (await get_language_context(input, context.llm)).instructions

        rounds: list[SearchRound] = []
        current = SearchRound(query=topic, exclude_sites=exclusions)

        for iteration in range(1, self.max_iterations + 1):
            self.logger.info("Research iteration %d: '%s'", iteration, current.query)
            search_result = await call_agent("search", current.search_input(), research_context)
            current.results = search_result.output
            rounds.append(current)

            prompt = ANALYSIS_PROMPT.format(
                language=language,
                input=input,
                subject=subject_note,
                history=_format_history(rounds),
            )
            raw = await self._complete(research_context, prompt, json_mode=True)
            analysis = parse_json_object(raw)
            action = (analysis or {}).get("nextAction")
            answer = (analysis or {}).get("nextQueryOrFinalAnswer")

            if action == "FINISH" and answer:
                self.logger.info("Research complete after %d iteration(s)", iteration)
                return AgentResult(
                    output=str(answer),
                    confidence=FINISH_CONFIDENCE,
                    metadata={"iterations": iteration},
                )
            if action == "SEARCH" and answer:
                current = SearchRound(
                    query=str(answer),
                    exclude_sites=[str(s) for s in analysis.get("exclude_sites") or []],
                )
                continue

            self.logger.error("Could not parse research analysis: %s", raw[:200])
            return AgentResult(
                output=(
                    "I encountered an issue with my research process, but here is "
                    f"the last information I found: {rounds[-1].results}"
                ),
                confidence=PARSE_FAILURE_CONFIDENCE,
                metadata={"iterations": iteration},
            )

        self.logger.warning(
            "Research reached %d iterations without a final answer, synthesising",
            self.max_iterations,
        )
        synthesis = SYNTHESIS_PROMPT.format(
            language=language,
            input=input,
            subject=subject_note,
            history=_format_history(rounds),
        )
        summary = await call_agent("summarizer", synthesis, research_context)
        return AgentResult(
            output=summary.output,
            confidence=SYNTHESIS_CONFIDENCE,
            metadata={"iterations": self.max_iterations},
        )
