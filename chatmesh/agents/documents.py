# =============================================================================
# Document Search Agent — Answers from the User's Uploaded Documents
# =============================================================================
#
# Pipeline:
#   1. Embed the question (EMBEDDER capability)
#   2. Similarity search in the user's own collection (DOCUMENT_STORE)
#   3. Hand the question + retrieved chunks to the summarizer agent
#
# The orchestrator knows nothing about vectors; to it, document_search is
# just another agent. Store and embedder arrive through the context's
# capability table, so tests swap them for in-memory fakes.
#
# DESIGN DECISION: Answer strictly from the retrieved chunks.
# The synthesis prompt forbids outside knowledge; if the chunks don't
# contain the answer, the summarizer says so and the orchestrator's
# document-miss phrases let the router try other agents.
# =============================================================================

from __future__ import annotations

from chatmesh.agents.base import BaseAgent
from chatmesh.agents.types import DOCUMENT_STORE, EMBEDDER, AgentContext, AgentResult, CallAgentFn
from chatmesh.config import settings
from chatmesh.services.formatter import ResponseFormatter
from chatmesh.services.language import get_language_context

NO_RESULTS_MESSAGE = "No relevant information found in your uploaded documents for this query."
NO_RESULTS_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.95
CONFIDENCE_BOOST = 0.1
DEFAULT_LANGUAGE_INSTRUCTIONS = "Please respond in the appropriate language."

SYNTHESIS_PROMPT = """You are an expert document analyst. Answer the user's question based *only* on the provided document chunks.

{language}

**User's Question:**
"{question}"

**Retrieved Document Chunks:**
{chunks}

**Instructions:**
1. Read the question and the document chunks carefully.
2. Write a clear, concise and direct answer using only information from the chunks.
3. If the chunks do not contain enough information, state that the information could not be found in the document.
4. Do not make up information or use external knowledge.
5. Do not refer to the chunks directly (e.g. "In chunk 3..."). Just provide the answer.

**Answer:**"""


class DocumentSearchAgent(BaseAgent):
    name = "document_search"
    description = (
        "Searches through user-uploaded documents to find specific information "
        "and provide a summarized answer."
    )

    def __init__(self, top_k: int | None = None) -> None:
        super().__init__()
        self.top_k = top_k or settings.document_search_top_k

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if not context.user_id:
            return self._failure("Cannot search documents without a user session.", context)

        try:
            store = context.require(DOCUMENT_STORE)
            embedder = context.require(EMBEDDER)
            call_agent = self._require_call_agent(call_agent)

            query_embedding = await embedder.embed_query(input)
            chunks = await store.similarity_search(context.user_id, query_embedding, k=self.top_k)
            self.logger.info(
                "Retrieved %d chunks for user %s", len(chunks), context.user_id,
            )
            if not chunks:
                return AgentResult(output=NO_RESULTS_MESSAGE, confidence=NO_RESULTS_CONFIDENCE)

            retrieved = "\n\n".join(
                f"--- Document Chunk {i} ---\n{chunk.content}"
                for i, chunk in enumerate(chunks, start=1)
            )
            language = DEFAULT_LANGUAGE_INSTRUCTIONS
            if context.llm is not None:
                language = (await get_language_context(input, context.llm)).instructions
            prompt = SYNTHESIS_PROMPT.format(
                language=language,
                question=input,
                chunks=retrieved,
            )
            summary = await call_agent("summarizer", prompt, context)
        except Exception as e:
            return self._failure(e, context)

        result = ResponseFormatter.format_agent_response(
            summary.output,
            min(MAX_CONFIDENCE, (summary.confidence or 0.8) + CONFIDENCE_BOOST),
        )
        result.metadata["chunk_count"] = len(chunks)
        return result
