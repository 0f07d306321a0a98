"""
ThemeSync Backend — LLM Module Unit Tests

Tests for the response repair steps, repair_and_parse, and call_llm
configuration / failure handling. litellm is always mocked.
"""

import json

import pytest

from themesync import llm
from themesync.errors import ConfigurationError, ExtractionError


# -----------------------------------------------------------------------------
# Repair Steps
# -----------------------------------------------------------------------------


class TestRepairSteps:
    """Each heuristic in isolation."""

    def test_extract_fenced_json_block(self):
        text = 'Here you go:\n```json\n{"themes": []}\n```\nThanks!'
        assert llm.extract_fenced_block(text) == '{"themes": []}'

    def test_extract_untagged_fence(self):
        assert llm.extract_fenced_block('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence_returns_text_unchanged(self):
        assert llm.extract_fenced_block('{"a": 1}') == '{"a": 1}'

    def test_remove_trailing_commas(self):
        assert llm.remove_trailing_commas('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'

    def test_quote_bare_keys(self):
        assert llm.quote_bare_keys('{title: "x", category: "generic"}') == '{"title": "x", "category": "generic"}'

    def test_quoted_keys_untouched(self):
        assert llm.quote_bare_keys('{"title": "x"}') == '{"title": "x"}'

    def test_normalize_single_quoted_values(self):
        assert llm.normalize_single_quotes("{\"title\": 'Hello'}") == '{"title": "Hello"}'

    def test_collapse_blank_lines(self):
        assert llm.collapse_blank_lines("a\n\n\nb") == "a\nb"


# -----------------------------------------------------------------------------
# repair_and_parse
# -----------------------------------------------------------------------------


class TestRepairAndParse:
    """Tests for the full repair parser."""

    def test_fenced_with_trailing_comma_matches_clean_original(self):
        """Fence + trailing comma parses to the same structure as the clean JSON."""
        clean = '{"themes":[{"title":"A","category":"pain_points","quotes":[]}]}'
        messy = '```json\n{"themes":[{"title":"A","category":"pain_points","quotes":[],}]}\n```'

        expected = llm.repair_and_parse(clean)
        result = llm.repair_and_parse(messy)

        assert result.error is None
        assert result.model_dump() == expected.model_dump()
        assert result.themes[0].title == "A"
        assert result.themes[0].category == "pain_points"

    def test_prose_returns_empty_without_raising(self):
        result = llm.repair_and_parse("I'm sorry, I could not find any insights in this text.")

        assert result.themes == []
        assert result.error is not None

    @pytest.mark.parametrize("raw", ["", None, "{", "[1, 2", "```json\n```", "null"])
    def test_degenerate_input_never_raises(self, raw):
        result = llm.repair_and_parse(raw)
        assert result.themes == []

    @pytest.mark.parametrize("raw", ["[" * 100000, '{"themes": ' + "[" * 50000 + "]" * 50000 + "}"])
    def test_deep_nesting_returns_empty_without_raising(self, raw):
        result = llm.repair_and_parse(raw)

        assert result.themes == []
        assert result.error is not None

    def test_bare_keys_and_single_quotes_recovered(self):
        raw = "{themes: [{title: 'Slow onboarding', category: 'pain_points', quotes: []}]}"
        result = llm.repair_and_parse(raw)

        assert [t.title for t in result.themes] == ["Slow onboarding"]

    def test_top_level_list_is_treated_as_themes(self):
        result = llm.repair_and_parse('[{"title": "A"}, {"title": "B"}]')
        assert [t.title for t in result.themes] == ["A", "B"]

    def test_invalid_theme_dropped_others_kept(self):
        raw = json.dumps({"themes": [{"title": ""}, {"description": "no title"}, {"title": "Kept"}]})
        result = llm.repair_and_parse(raw)

        assert [t.title for t in result.themes] == ["Kept"]

    def test_missing_lists_default_to_empty(self):
        result = llm.repair_and_parse('{"themes": [{"title": "A", "quotes": null, "hmwQuestions": null}]}')
        theme = result.themes[0]

        assert theme.quotes == []
        assert theme.hmw_questions == []
        assert theme.ai_suggested_steps == []
        assert theme.category == "generic"

    def test_string_quotes_and_text_transcript_ids(self):
        raw = json.dumps(
            {
                "themes": [
                    {
                        "title": "A",
                        "quotes": ["plain quote", {"text": "q", "source": "E1", "transcriptId": "Interview 2"}],
                    }
                ]
            }
        )
        quotes = llm.repair_and_parse(raw).themes[0].quotes

        assert quotes[0].text == "plain quote"
        assert quotes[1].transcript_id is None
        assert quotes[1].source == "E1"

    def test_object_without_themes_list(self):
        result = llm.repair_and_parse('{"insights": []}')
        assert result.themes == []
        assert result.error == "response has no themes list"


class TestParseJsonObject:
    """Tests for the generic object parser used by refinement."""

    def test_fenced_object(self):
        assert llm.parse_json_object('```json\n{"title": "T",}\n```') == {"title": "T"}

    def test_list_is_not_an_object(self):
        assert llm.parse_json_object("[1]") is None

    def test_garbage(self):
        assert llm.parse_json_object("nope") is None

    def test_deep_nesting(self):
        assert llm.parse_json_object('{"a": ' + "[" * 100000) is None


# -----------------------------------------------------------------------------
# call_llm
# -----------------------------------------------------------------------------


class TestCallLLM:
    """Tests for the single-attempt model call."""

    @pytest.mark.asyncio
    async def test_returns_content_and_passes_config(self, mock_llm_with_response):
        mock = mock_llm_with_response('{"themes": []}')

        content = await llm.call_llm([{"role": "user", "content": "hi"}], provider="openai")

        assert content == '{"themes": []}'
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o"
        assert kwargs["max_tokens"] == 4000
        assert kwargs["temperature"] == 0.3
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_sprint_variant_uses_higher_temperature(self, mock_llm_with_response):
        mock = mock_llm_with_response("{}")

        await llm.call_llm([{"role": "user", "content": "hi"}], provider="openai_sprint")

        assert mock.call_args.kwargs["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_claude_variant_sends_no_temperature(self, mock_llm_with_response):
        mock = mock_llm_with_response("{}")

        await llm.call_llm([{"role": "user", "content": "hi"}], provider="claude")

        kwargs = mock.call_args.kwargs
        assert kwargs["model"].startswith("anthropic/")
        assert "temperature" not in kwargs
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    async def test_missing_key_raises_configuration_error(self, no_api_keys, mock_llm_with_response):
        mock = mock_llm_with_response("{}")

        with pytest.raises(ConfigurationError) as exc_info:
            await llm.call_llm([{"role": "user", "content": "hi"}], provider="claude")

        assert exc_info.value.message == "AI analysis not available"
        assert "Anthropic API key" in exc_info.value.error
        mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_upstream_failure_raises_extraction_error_once(self, mock_llm_failure):
        with pytest.raises(ExtractionError) as exc_info:
            await llm.call_llm([{"role": "user", "content": "hi"}])

        assert "upstream overloaded" in exc_info.value.error
        assert mock_llm_failure.call_count == 1

    @pytest.mark.asyncio
    async def test_empty_content_raises_extraction_error(self, mock_llm_with_response):
        mock_llm_with_response("")

        with pytest.raises(ExtractionError):
            await llm.call_llm([{"role": "user", "content": "hi"}])

    def test_unknown_provider_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            llm.get_provider_config("gemini")
