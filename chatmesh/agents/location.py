# =============================================================================
# Location Agents — Weather and Time for One or Two Places
# =============================================================================
#
# Weather and time questions share one pipeline:
#
#   subject_inference  → "y en Filipinas?" picks up the earlier place
#   LLM extraction     → "Santo Domingo, DO | Manila, PH"
#   tool per location  → open_weather_map / current_time (concurrently)
#   summarizer         → a friendly answer in the user's language
#
# LocationAgent implements the pipeline; subclasses provide the tool
# lookup and the wording. Up to two locations are supported so users can
# compare ("weather in Paris vs London").
# =============================================================================

from __future__ import annotations

import asyncio
from abc import abstractmethod

from chatmesh.agents.base import BaseAgent
from chatmesh.agents.subject import parse_subject
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn

LOCATION_CONFIDENCE = 0.9
NO_LOCATION_CONFIDENCE = 0.4
ERROR_CONFIDENCE = 0.2
MAX_LOCATIONS = 2
LOCATION_SEPARATOR = "|"

EXTRACTION_PROMPT = """Extract up to two location names from the user's query, using the context if provided.

Rules:
1. Identify every distinct location in the query and the context.
2. For comparisons, include both locations.
3. Separate two locations with " | ".
4. Return ONLY the location name(s), e.g. "Santo Domingo, DO | Manila, PH".
5. If there is no location, return an empty answer.

Query: "{query}"
Location(s):"""

PRESENTATION_PROMPT = """You are a {topic} analyst. The user asked: "{input}"

{topic_title} data:
{data}

Present this information clearly and conversationally. {comparison}Reply in the same language as the user's query and format with markdown."""


class LocationAgent(BaseAgent):
    topic: str = ""
    tool_agent: str = ""

    async def _extract_locations(self, query: str, context: AgentContext) -> list[str]:
        raw = await self._complete(context, EXTRACTION_PROMPT.format(query=query), temperature=0)
        cleaned = raw.strip().strip('"').strip()
        locations = [loc.strip() for loc in cleaned.split(LOCATION_SEPARATOR) if loc.strip()]
        return locations[:MAX_LOCATIONS]

    @abstractmethod
    async def _lookup(
        self,
        location: str,
        context: AgentContext,
        call_agent: CallAgentFn,
    ) -> AgentResult:
        ...

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
        call_agent = self._require_call_agent(call_agent)
        self.logger.info("Processing %s request: '%s'", self.topic, input)

        try:
            subject = parse_subject(
                (await call_agent("subject_inference", input, context)).output
            )
            query = input
            if subject:
                query = f'{input} (context: {subject["subject"]}, {subject["description"]})'

            locations = await self._extract_locations(query, context)
            self.logger.info("Extracted locations: %s", locations)
            if not locations:
                return AgentResult(
                    output=(
                        f"I couldn't identify a location in your request. Please "
                        f"specify a city, like '{self.topic} in London'."
                    ),
                    confidence=NO_LOCATION_CONFIDENCE,
                )

            lookups = await asyncio.gather(
                *(self._lookup(loc, context, call_agent) for loc in locations),
            )
            data = "\n\n".join(r.output for r in lookups)
            comparison = (
                "The user wants to compare these locations. " if len(locations) > 1 else ""
            )
            prompt = PRESENTATION_PROMPT.format(
                topic=self.topic,
                topic_title=self.topic.capitalize(),
                input=input,
                data=data,
                comparison=comparison,
            )
            final = await call_agent("summarizer", prompt, context)
        except Exception:
            self.logger.exception("Error in %s agent", self.name)
            return AgentResult(
                output=(
                    f"I'm sorry, I couldn't get the {self.topic} information. "
                    "Please try again with a specific location."
                ),
                confidence=ERROR_CONFIDENCE,
                metadata={"error": True},
            )

        return AgentResult(
            output=final.output,
            confidence=LOCATION_CONFIDENCE,
            metadata={"locations": locations},
        )


class WeatherAgent(LocationAgent):
    name = "weather"
    description = (
        "Get current weather information for a specific location or compare "
        "weather between multiple locations."
    )
    topic = "weather"
    tool_agent = "open_weather_map"

    async def _lookup(
        self,
        location: str,
        context: AgentContext,
        call_agent: CallAgentFn,
    ) -> AgentResult:
        return await call_agent(self.tool_agent, location, context)


TIMEZONE_PROMPT = """Return ONLY the IANA timezone name (e.g. "America/New_York", "Europe/London") for this location, with no other text.

Location: "{location}"
Timezone:"""


class TimeAgent(LocationAgent):
    name = "time"
    description = "Get the current time for a specific location or compare times between locations."
    topic = "time"
    tool_agent = "current_time"

    async def _lookup(
        self,
        location: str,
        context: AgentContext,
        call_agent: CallAgentFn,
    ) -> AgentResult:
        raw = await self._complete(
            context, TIMEZONE_PROMPT.format(location=location), temperature=0,
        )
        timezone = raw.strip().strip('"').strip()
        if not timezone:
            return AgentResult(
                output=f"Could not determine the timezone for {location}.",
                confidence=NO_LOCATION_CONFIDENCE,
            )
        return await call_agent(self.tool_agent, timezone, context)
