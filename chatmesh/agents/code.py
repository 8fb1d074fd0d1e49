# =============================================================================
# Code Agents — Explain, Optimize, and Generate Code
# =============================================================================
#
#   code_interpreter  — explains code the user pasted
#   code_optimization — finds performance problems and proposes a faster version
#   code_generation   — writes new code from a description
#
# Interpreter flow:
#   1. Pull fenced code blocks out of the message (or treat a message that
#      looks like raw code as one block)
#   2. Per block, concurrently: detect the programming language, then ask
#      for patterns and issues as JSON
#   3. One final LLM call answers the user's question with that analysis
#
# Analysis failures for a single block are logged and skipped; the final
# explanation still runs with whatever was collected.
# =============================================================================

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from chatmesh.agents.base import BaseAgent, parse_json_object
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn, ChatMessage
from chatmesh.services.formatter import ResponseFormatter
from chatmesh.services.language import NONSENSE, get_language_context

CODE_CONFIDENCE = 0.85
NO_CODE_CONFIDENCE = 0.3

_CODE_BLOCK = re.compile(r"```[\w+#-]*\n(.*?)```", re.DOTALL)
_CODE_HINTS = re.compile(
    r"(\bdef |\bclass |\bfunction\b|\bimport |=>|;\s*$|\{\s*$|#include|\bpublic\s+\w+)",
    re.MULTILINE,
)

LANGUAGE_PROMPT = """You are a programming language detector. Respond with ONLY the name of the programming language of this code in lowercase (e.g. "python", "javascript", "java"). If unknown, respond with "unknown".

```
{code}
```"""

ANALYSIS_PROMPT = """Analyze this {language} code for patterns and potential issues.

```{language}
{code}
```

Respond with a JSON object with two keys: "patterns" (an array of strings) and "issues" (an array of strings)."""

EXPLANATION_PROMPT = """You are an expert software engineer explaining code to a colleague.

{language}

User's message:
{input}

Automated analysis:
{summary}
Patterns: {patterns}
Potential issues: {issues}

Answer the user's question about the code. If there is no explicit question, explain what the code does, step by step. Mention important issues and suggest concrete fixes. Use markdown with fenced code blocks."""


@dataclass
class CodeAnalysis:
    languages: list[str] = field(default_factory=list)
    patterns: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    summary: str = ""


def extract_code_blocks(text: str) -> list[str]:
    """Fenced blocks if any, else the whole text when it looks like code."""
    blocks = [b.strip() for b in _CODE_BLOCK.findall(text) if b.strip()]
    if blocks:
        return blocks
    if len(_CODE_HINTS.findall(text)) >= 2:
        return [text.strip()]
    return []


def summarize_blocks(blocks: list[str], languages: list[str]) -> str:
    total_lines = sum(len(b.splitlines()) for b in blocks)
    known = sorted({lang for lang in languages if lang and lang != "unknown"})
    lang_list = ", ".join(known) or "unknown"
    return f"Code contains {len(blocks)} block(s) with {total_lines} total lines in {lang_list}"


class CodeInterpreterAgent(BaseAgent):
    name = "code_interpreter"
    description = "Explains code snippets supplied by the user and points out potential issues."

    async def _analyse_block(self, code: str, context: AgentContext) -> tuple[str, dict]:
        raw = await self._complete(context, LANGUAGE_PROMPT.format(code=code), temperature=0)
        language = re.sub(r"[^a-z\d+#]", "", raw.strip().lower()) or "unknown"
        try:
            raw_analysis = await self._complete(
                context,
                ANALYSIS_PROMPT.format(language=language, code=code),
                json_mode=True,
                temperature=0,
            )
        except Exception as e:
            self.logger.warning("Analysis of %s block failed: %s", language, e)
            return language, {}
        return language, parse_json_object(raw_analysis) or {}

    async def analyse(self, blocks: list[str], context: AgentContext) -> CodeAnalysis:
        analysis = CodeAnalysis()
        results = await asyncio.gather(*(self._analyse_block(b, context) for b in blocks))
        for language, payload in results:
            analysis.languages.append(language)
            analysis.patterns.extend(str(p) for p in payload.get("patterns") or [])
            analysis.issues.extend(str(i) for i in payload.get("issues") or [])
        analysis.summary = summarize_blocks(blocks, analysis.languages)
        return analysis

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        blocks = extract_code_blocks(input)
        if not blocks:
            return AgentResult(
                output=(
                    "I couldn't find any code in your message. Please paste the code, "
                    "ideally inside a ``` code block, and tell me what you'd like to know."
                ),
                confidence=NO_CODE_CONFIDENCE,
            )
        if context.llm is None:
            return self._failure("Code interpreter has no language model", context)

        try:
            analysis = await self.analyse(blocks, context)
            self.logger.info(analysis.summary)
            language = await get_language_context(input, context.llm, strict=False)
            output = await self._complete(
                context,
                EXPLANATION_PROMPT.format(
                    language=language.instructions,
                    input=input,
                    summary=analysis.summary,
                    patterns=", ".join(analysis.patterns) or "none detected",
                    issues=", ".join(analysis.issues) or "none detected",
                ),
            )
        except Exception as e:
            return self._failure(e, context)

        result = ResponseFormatter.format_agent_response(
            output, CODE_CONFIDENCE, cleanup_metadata=False,
        )
        result.metadata["languages"] = analysis.languages
        return result


# ---------------------------------------------------------------------------
# Code Optimization
# ---------------------------------------------------------------------------

OPTIMIZATION_CONFIDENCE = 0.9
GENERATION_CONFIDENCE = 0.9
NONSENSE_CONFIDENCE = 0.3

_LOOP = re.compile(r"^\s*(?:for|while)\b|\bfor\s*\(", re.MULTILINE)
_NESTED_LOOPS: tuple[re.Pattern[str], ...] = (
    # C-style: for (...) { ... for (
    re.compile(r"\bfor\s*\([^)]*\)\s*\{[^}]*\bfor\s*\(", re.DOTALL),
    # Indented: a loop header followed by a deeper-indented loop
    re.compile(
        r"^([ \t]*)(?:for|while)\b[^\n]*:[ \t]*\n(?:\1[ \t]+[^\n]*\n)*?\1[ \t]+(?:for|while)\b",
        re.MULTILINE,
    ),
)
_EXPENSIVE_CALL = re.compile(r"\b(?:Math\.)?(?:sqrt|pow)\s*\(|\bre\.compile\s*\(")
_STRING_CONCAT = re.compile(r"\+=\s*(?:f?[\"']|str\()")
_INDEX_LOOP = re.compile(r"\brange\s*\(\s*len\s*\(")

OPTIMIZATION_PROMPT = """You are an expert code optimization assistant. A user has provided code and is asking for optimizations.

{language}

User's question:
{question}

Provided code:
```
{code}
```

Automated review findings:
{hints}

Structure your answer in markdown:
1. "Code Optimization Analysis" heading
2. Original code issues and their performance impact
3. An optimized version in a fenced code block, in the same programming language
4. The optimization techniques used and the expected improvement
5. Additional recommendations, including measuring with a profiler on real data"""

GENERATION_PROMPT = """You are an expert code generation assistant.

{language}

User's request:
{input}

1. Provide the generated code in a fenced markdown code block.
2. Then explain the code in a helpful, conversational tone."""


def find_optimization_hints(code: str) -> list[str]:
    """Cheap static findings handed to the LLM as a starting point."""
    hints: list[str] = []
    has_loop = bool(_LOOP.search(code))
    if any(p.search(code) for p in _NESTED_LOOPS):
        hints.append("Nested loops detected: O(n²) or higher complexity")
    if has_loop and _EXPENSIVE_CALL.search(code):
        hints.append("Expensive calls repeated inside a loop; pre-compute or cache them")
    if has_loop and _STRING_CONCAT.search(code):
        hints.append("String concatenation inside a loop; build a list and join once")
    if _INDEX_LOOP.search(code):
        hints.append("Index-based iteration; iterate directly or use enumerate()")
    return hints


def find_recent_code(input: str, history: Sequence[ChatMessage]) -> list[str]:
    """Code from the message itself, else from the most recent turn that has some."""
    blocks = extract_code_blocks(input)
    if blocks:
        return blocks
    for message in reversed(list(history)):
        blocks = extract_code_blocks(message.content)
        if blocks:
            return blocks
    return []


class CodeOptimizationAgent(BaseAgent):
    name = "code_optimization"
    description = (
        "Analyzes code performance and suggests an optimized version with explanations."
    )

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        blocks = find_recent_code(input, context.chat_history)
        if not blocks:
            return AgentResult.failure(
                "No code found in your message or recent history. Please paste the "
                "code inside ``` code blocks so I can analyze it for optimizations.",
                NO_CODE_CONFIDENCE,
            )
        if context.llm is None:
            return self._failure("Code optimization has no language model", context)

        code = blocks[0]
        hints = find_optimization_hints(code)
        question = _CODE_BLOCK.sub("", input).strip() or "How can this code be optimized?"

        try:
            language = await get_language_context(question, context.llm, strict=False)
            if language.language == NONSENSE:
                return AgentResult(
                    output="I'm sorry, I didn't understand your request. Could you please rephrase it?",
                    confidence=NONSENSE_CONFIDENCE,
                )
            output = await self._complete(
                context,
                OPTIMIZATION_PROMPT.format(
                    language=language.instructions,
                    question=question,
                    code=code,
                    hints="\n".join(f"- {h}" for h in hints) or "- none detected",
                ),
            )
        except Exception as e:
            return self._failure(e, context)

        result = ResponseFormatter.format_agent_response(
            output, OPTIMIZATION_CONFIDENCE, cleanup_metadata=False,
        )
        result.metadata["hints"] = hints
        return result


# ---------------------------------------------------------------------------
# Code Generation
# ---------------------------------------------------------------------------


class CodeGenerationAgent(BaseAgent):
    name = "code_generation"
    description = "Writes new code from a description of what the user needs."

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        if context.llm is None:
            return self._failure("Code generation has no language model", context)

        try:
            language = await get_language_context(input, context.llm)
            if language.language == NONSENSE:
                return AgentResult(
                    output="I'm sorry, I didn't understand your request. Could you please rephrase it?",
                    confidence=NONSENSE_CONFIDENCE,
                )
            output = await self._complete(
                context, GENERATION_PROMPT.format(language=language.instructions, input=input),
            )
        except Exception as e:
            return self._failure(e, context)

        return ResponseFormatter.format_agent_response(
            output, GENERATION_CONFIDENCE, cleanup_metadata=False,
        )
