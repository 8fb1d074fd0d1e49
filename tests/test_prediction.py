# =============================================================================
# Unit Tests — Routing Prediction Parser
# =============================================================================
#
# parse_prediction() must never raise and must always return a candidate.
# Each test pins which cascade step produced the answer via `source`.
# =============================================================================

from chatmesh.agents.prediction import (
    default_prediction,
    keyword_prediction,
    parse_prediction,
)

CANDIDATES = ["general", "research", "weather", "time", "document_search", "hashing"]


class TestParsePrediction:
    def test_direct_json(self):
        p = parse_prediction(
            '{"agentName": "research", "confidence": 0.9, "reasoning": "company question"}',
            "who founded GBH?",
            CANDIDATES,
        )
        assert p.agent_name == "research"
        assert p.confidence == 0.9
        assert p.reasoning == "company question"
        assert p.source == "json"

    def test_fenced_json(self):
        raw = 'Sure! Here you go:\n```json\n{"agentName": "time", "confidence": 0.8}\n```'
        p = parse_prediction(raw, "hora en Manila", CANDIDATES)
        assert p.agent_name == "time"
        assert p.source == "embedded"

    def test_json_inside_prose(self):
        raw = 'I think {"agentName": "hashing", "confidence": 0.7} is best.'
        p = parse_prediction(raw, "sha256 of hello", CANDIDATES)
        assert p.agent_name == "hashing"
        assert p.source == "embedded"

    def test_confidence_clamped(self):
        p = parse_prediction('{"agentName": "general", "confidence": 7}', "hi", CANDIDATES)
        assert p.confidence == 1.0

    def test_missing_confidence_defaults(self):
        p = parse_prediction('{"agentName": "general"}', "hi", CANDIDATES)
        assert p.confidence == 0.5

    def test_non_candidate_agent_falls_through(self):
        p = parse_prediction(
            '{"agentName": "stock_ticker", "confidence": 0.99}',
            "tell me something fun",
            CANDIDATES,
        )
        assert p.agent_name in CANDIDATES
        assert p.agent_name == "general"

    def test_error_payload_falls_through(self):
        p = parse_prediction(
            '{"error": true, "message": "no llm"}', "what time is it in Tokyo", CANDIDATES,
        )
        assert p.agent_name == "time"
        assert p.source == "keywords"

    def test_weather_mention(self):
        p = parse_prediction("The best agent is weather.", "clima?", CANDIDATES)
        assert p.agent_name == "weather"
        assert p.confidence == 0.85
        assert p.source == "mention"

    def test_other_mention(self):
        p = parse_prediction("Route this to research please", "x", CANDIDATES)
        assert p.agent_name == "research"
        assert p.confidence == 0.55

    def test_longest_name_mentioned_wins(self):
        p = parse_prediction(
            "use open_weather_map", "x", ["weather", "open_weather_map", "general"],
        )
        assert p.agent_name == "open_weather_map"

    def test_garbage_uses_keywords(self):
        p = parse_prediction("¯\\_(ツ)_/¯", "Who founded Microsoft?", CANDIDATES)
        assert p.agent_name == "research"
        assert p.confidence == 0.6
        assert p.source == "keywords"

    def test_empty_output_defaults_to_general(self):
        p = parse_prediction("", "tell me something fun", CANDIDATES)
        assert p.agent_name == "general"
        assert p.confidence == 0.5
        assert p.source == "default"

    def test_none_output(self):
        p = parse_prediction(None, "tell me something fun", CANDIDATES)
        assert p.agent_name == "general"


class TestFallbackPredictions:
    def test_keyword_prediction_weather(self):
        p = keyword_prediction("weather in Paris", ["general", "open_weather_map", "weather"])
        assert p.agent_name == "open_weather_map"

    def test_keyword_prediction_without_matching_candidate(self):
        p = keyword_prediction("weather in Paris", ["general", "research"])
        assert p.agent_name == "general"
        assert p.source == "default"

    def test_default_without_general(self):
        p = default_prediction(["research", "time"])
        assert p.agent_name == "research"

    def test_default_with_no_candidates(self):
        assert default_prediction([]).agent_name == "general"
