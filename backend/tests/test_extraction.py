"""
ThemeSync Backend — Insight Extraction Service Tests

Color assignment, template resolution, failure semantics, quote attribution
and refinement. Model calls are mocked via litellm.acompletion.
"""

import json
from datetime import datetime, timezone

import pytest

from themesync import extraction
from themesync.errors import ConfigurationError, ExtractionError
from themesync.models import AnalysisSettingsData, ExtractedTheme, Quote, Theme, Transcript


def _transcript(id: int, content: str) -> Transcript:
    return Transcript(
        id=id,
        project_id=1,
        filename=f"t{id}.txt",
        content=content,
        file_type="txt",
        uploaded_at=datetime.now(timezone.utc),
    )


class TestCategoryColor:
    @pytest.mark.parametrize(
        "category,color",
        [
            ("opportunities", "#22c55e"),
            ("pain_points", "#ef4444"),
            ("ideas_hmws", "#eab308"),
            ("miscellaneous", "#eab308"),
            ("generic", "#6b7280"),
            ("Pain_Points ", "#ef4444"),
            ("emotions", "#6b7280"),
            (None, "#6b7280"),
        ],
    )
    def test_fixed_lookup(self, category, color):
        assert extraction.category_color(category) == color


class TestExtractInsights:
    """Tests for extract_insights."""

    @pytest.mark.asyncio
    async def test_assigns_colors_in_order(self, mock_llm_with_response, two_themes_payload):
        mock_llm_with_response(two_themes_payload)

        themes = await extraction.extract_insights("transcript", "expert_interviews", "Ship offline")

        assert [t.title for t in themes] == ["Offline access matters", "Export is confusing"]
        assert [t.color for t in themes] == ["#22c55e", "#ef4444"]

    @pytest.mark.asyncio
    async def test_unknown_category_kept_and_gray(self, mock_llm_with_response):
        mock_llm_with_response({"themes": [{"title": "Feelings", "category": "Emotions"}]})

        themes = await extraction.extract_insights("x")

        assert themes[0].category == "emotions"
        assert themes[0].color == "#6b7280"

    @pytest.mark.asyncio
    async def test_renders_template_for_transcript_type(self, mock_llm_with_response):
        mock = mock_llm_with_response({"themes": []})

        await extraction.extract_insights("User 4 hated it", "testing_notes", "Validate checkout")

        messages = mock.call_args.kwargs["messages"]
        assert messages[0]["content"] == extraction.prompts.TESTING_NOTES_SYSTEM_PROMPT
        assert "User 4 hated it" in messages[1]["content"]
        assert "Validate checkout" in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_custom_template_key_wins(self, mock_llm_with_response):
        mock = mock_llm_with_response({"themes": []})
        extraction.prompts.register_template(
            "pricing",
            extraction.prompts.create_custom_template(["pricing objections"]),
        )

        await extraction.extract_insights("x", "expert_interviews", custom_template_key="pricing")

        assert "pricing objections" in mock.call_args.kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_unparseable_response_yields_no_themes(self, mock_llm_with_response):
        mock_llm_with_response("Sorry, nothing to report.")

        assert await extraction.extract_insights("x") == []

    @pytest.mark.asyncio
    async def test_missing_credential_checked_before_call(self, no_api_keys, mock_llm_with_response):
        mock = mock_llm_with_response({"themes": []})

        with pytest.raises(ConfigurationError):
            await extraction.extract_insights("x")
        mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, mock_llm_failure):
        with pytest.raises(ExtractionError) as exc_info:
            await extraction.extract_insights("x")

        assert exc_info.value.message == "AI analysis failed"
        assert mock_llm_failure.call_count == 1


class TestSettingsExtraction:
    @pytest.mark.asyncio
    async def test_combines_transcripts_and_attributes_quotes(self, mock_llm_with_response):
        transcripts = [_transcript(3, "Alpha says hello."), _transcript(7, "Beta says goodbye.")]
        mock = mock_llm_with_response(
            {
                "themes": [
                    {
                        "title": "Greetings",
                        "category": "generic",
                        "quotes": [
                            {"text": "Beta says goodbye", "source": "Interview #2", "transcriptId": 1},
                            {"text": "not in any transcript", "source": "?", "transcriptId": 42},
                        ],
                    }
                ]
            }
        )

        themes = await extraction.extract_with_settings(
            transcripts, AnalysisSettingsData(theme_count="8-10"), sprint_goal="Goal"
        )

        user_prompt = mock.call_args.kwargs["messages"][1]["content"]
        assert "Alpha says hello.\n\n---TRANSCRIPT BREAK---\n\nBeta says goodbye." in user_prompt
        assert "Extract 8-10 key themes" in user_prompt
        quotes = themes[0].quotes
        assert quotes[0].transcript_id == 7
        assert quotes[1].transcript_id == 42


class TestQuoteAttribution:
    def test_find_transcript_id(self):
        transcripts = [_transcript(1, "one two"), _transcript(2, "three four")]

        assert extraction.find_transcript_id(" three ", transcripts) == 2
        assert extraction.find_transcript_id("five", transcripts) is None
        assert extraction.find_transcript_id("   ", transcripts) is None

    def test_no_transcripts_leaves_themes_untouched(self):
        themes = [ExtractedTheme(title="A", quotes=[Quote(text="x", transcript_id=9)])]
        assert extraction.attach_transcript_ids(themes, []) == themes


class TestRefineTheme:
    def _theme(self) -> Theme:
        return Theme(id=1, project_id=1, title="Old title", description="Old description")

    @pytest.mark.asyncio
    async def test_returns_refined_values(self, mock_llm_with_response):
        mock_llm_with_response(json.dumps({"title": "Sharper title", "description": "Sharper description"}))

        refined = await extraction.refine_theme(self._theme(), "focus")

        assert refined.title == "Sharper title"
        assert refined.description == "Sharper description"

    @pytest.mark.asyncio
    async def test_unparseable_keeps_current(self, mock_llm_with_response):
        mock_llm_with_response("no json here")

        refined = await extraction.refine_theme(self._theme())

        assert refined.title == "Old title"
        assert refined.description == "Old description"

    @pytest.mark.asyncio
    async def test_blank_fields_keep_current(self, mock_llm_with_response):
        mock_llm_with_response({"title": "  ", "description": "New"})

        refined = await extraction.refine_theme(self._theme())

        assert refined.title == "Old title"
        assert refined.description == "New"
