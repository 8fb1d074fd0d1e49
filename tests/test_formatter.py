# =============================================================================
# Unit Tests — Response Formatter
# =============================================================================

import json

from chatmesh.agents.types import AgentContext, ChatMessage
from chatmesh.services.formatter import ResponseFormatter


class TestCleanOutput:
    def test_keeps_only_final_answer(self):
        raw = (
            "THOUGHT: I should look this up.\n"
            "ACTION: web_search\n"
            "OBSERVATION: lots of results\n"
            "FINAL ANSWER: GBH was founded in 2004."
        )
        assert ResponseFormatter.clean_output(raw) == "GBH was founded in 2004."

    def test_removes_search_narration(self):
        raw = "I'll search for the latest numbers.\nRevenue was $4.2B."
        assert ResponseFormatter.clean_output(raw) == "Revenue was $4.2B."

    def test_removes_attribution_hedges(self):
        raw = "According to the search results, Paris is the capital of France."
        assert ResponseFormatter.clean_output(raw) == "Paris is the capital of France."

    def test_plain_text_untouched(self):
        assert ResponseFormatter.clean_output("  Hello there!  ") == "Hello there!"

    def test_leaked_tokens_removed_but_words_kept(self):
        raw = "TOOL web_search QUERY done. Refine the query with this tool."
        cleaned = ResponseFormatter.clean_output(raw)
        assert "TOOL" not in cleaned
        assert "QUERY" not in cleaned
        assert cleaned.endswith("Refine the query with this tool.")

    def test_lone_thought_line_keeps_answer(self):
        raw = "THOUGHT: I already know this.\nParis is the capital of France."
        assert ResponseFormatter.clean_output(raw) == "Paris is the capital of France."

    def test_inline_markers_end_at_next_marker(self):
        raw = "THOUGHT: check ACTION: lookup\nOBSERVATION: found it\nThe answer is 42."
        assert ResponseFormatter.clean_output(raw) == "The answer is 42."

    def test_ordinary_words_survive(self):
        raw = "The transaction gave customer satisfaction. I thought so. Take action."
        assert ResponseFormatter.clean_output(raw) == raw


class TestFormatAgentResponse:
    def test_cleans_by_default(self):
        result = ResponseFormatter.format_agent_response(
            "Based on the results, it is sunny.", 0.9,
        )
        assert result.output == "it is sunny."
        assert result.confidence == 0.9
        assert not result.is_error

    def test_cleanup_can_be_disabled(self):
        raw = '{"agentName": "general", "reasoning": "THOUGHT: greeting"}'
        result = ResponseFormatter.format_agent_response(raw, 0.9, cleanup_metadata=False)
        assert result.output == raw

    def test_non_string_output_is_json_encoded(self):
        result = ResponseFormatter.format_agent_response({"a": 1}, 0.5, cleanup_metadata=False)
        assert json.loads(result.output) == {"a": 1}


class TestFormatErrorResponse:
    def test_generic_apology(self):
        result = ResponseFormatter.format_error_response(RuntimeError("provider down"))
        assert result.confidence == 0.1
        assert result.is_error
        assert "provider down" not in result.output
        assert "rephrasing" in result.output

    def test_mentions_topic(self):
        context = AgentContext(session_id="s", chat_default_topic="cooking")
        result = ResponseFormatter.format_error_response("boom", context, "general")
        assert "Remember, I'm specialized in cooking." in result.output


class TestFormatChatHistory:
    HISTORY = [ChatMessage("human", f"m{i}") for i in range(12)]

    def test_text_limit(self):
        text = ResponseFormatter.format_chat_history(self.HISTORY)
        lines = text.splitlines()
        assert len(lines) == 10
        assert lines[0] == "human: m2"
        assert lines[-1] == "human: m11"

    def test_markdown(self):
        text = ResponseFormatter.format_chat_history(self.HISTORY[:1], style="markdown")
        assert text == "**human**: m0"

    def test_empty(self):
        assert ResponseFormatter.format_chat_history([]) == ""


class TestFormatRoutingResponse:
    def test_shape(self):
        payload = json.loads(ResponseFormatter.format_routing_response("weather", 0.9, "forecast"))
        assert payload == {"agentName": "weather", "confidence": 0.9, "reasoning": "forecast"}
