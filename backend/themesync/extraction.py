"""
ThemeSync Backend — Insight Extraction Service

transcript text + sprint goal + transcript type
    → template (prompts) → model call (llm) → repair parser → colored themes.

Persisting the result is the caller's job: each returned theme is stored with
position equal to its index in the returned list.
"""

import time

from themesync import llm, prompts
from themesync.config import log
from themesync.models import (
    AnalysisSettingsData,
    ExtractedTheme,
    PromptTemplate,
    RefinedTheme,
    Theme,
    Transcript,
)

CATEGORY_COLORS = {
    "opportunities": "#22c55e",  # green
    "pain_points": "#ef4444",    # red
    "ideas_hmws": "#eab308",     # yellow
    "miscellaneous": "#eab308",  # yellow
    "generic": "#6b7280",        # gray
}
DEFAULT_COLOR = "#6b7280"


def category_color(category: str | None) -> str:
    """Fixed category → color lookup. Anything unrecognised is gray."""
    return CATEGORY_COLORS.get((category or "").strip().lower(), DEFAULT_COLOR)


async def extract_insights(
    transcript_content: str,
    transcript_type: str = "expert_interviews",
    sprint_goal: str | None = None,
    custom_template_key: str | None = None,
    provider: str | None = None,
    template: PromptTemplate | None = None,
) -> list[ExtractedTheme]:
    """
    Extract categorized themes from transcript text.

    Steps:
        1. Require the provider credential (ConfigurationError if absent)
        2. Resolve the template: explicit `template`, else custom key, else transcript type
        3. Render system + user prompts
        4. Call the model once
        5. Repair + parse the response (empty list on irrecoverable output)
        6. Assign each theme's color from its category

    Raises:
        ConfigurationError: Missing credential.
        ExtractionError: The model call failed.
    """
    llm.require_api_key(provider)

    if template is None:
        template = prompts.get_template(custom_template_key or transcript_type)
    messages = prompts.build_extraction_prompt(template, transcript_content, transcript_type, sprint_goal)

    start = time.perf_counter()
    log(
        "INFO",
        "extraction started",
        transcript_type=transcript_type,
        template=template.name,
        content_chars=len(transcript_content),
    )

    raw = await llm.call_llm(messages, provider=provider, transcript_type=transcript_type)
    parsed = llm.repair_and_parse(raw)
    themes = [
        theme.model_copy(update={"color": category_color(theme.category)})
        for theme in parsed.themes
    ]

    log(
        "INFO",
        "extraction completed",
        transcript_type=transcript_type,
        themes_count=len(themes),
        parse_error=parsed.error,
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    return themes


async def extract_with_settings(
    transcripts: list[Transcript],
    analysis_settings: AnalysisSettingsData,
    sprint_goal: str | None = None,
    provider: str | None = None,
) -> list[ExtractedTheme]:
    """Settings-driven extraction over every stored transcript."""
    combined = combine_transcripts(transcripts)
    template = prompts.build_settings_template(analysis_settings)
    themes = await extract_insights(
        combined,
        transcript_type="general_research",
        sprint_goal=sprint_goal,
        provider=provider,
        template=template,
    )
    return attach_transcript_ids(themes, transcripts)


def combine_transcripts(transcripts: list[Transcript]) -> str:
    return prompts.TRANSCRIPT_SEPARATOR.join(t.content for t in transcripts)


def find_transcript_id(quote_text: str, transcripts: list[Transcript]) -> int | None:
    """Id of the first transcript containing the quote verbatim."""
    needle = quote_text.strip()
    if not needle:
        return None
    for transcript in transcripts:
        if needle in transcript.content:
            return transcript.id
    return None


def attach_transcript_ids(
    themes: list[ExtractedTheme],
    transcripts: list[Transcript],
) -> list[ExtractedTheme]:
    """
    Point each quote at the stored transcript it came from.

    Quotes not found verbatim keep the model-supplied id; dangling ids are tolerated.
    """
    if not transcripts:
        return themes
    result = []
    for theme in themes:
        quotes = []
        for quote in theme.quotes:
            found = find_transcript_id(quote.text, transcripts)
            quotes.append(quote.model_copy(update={"transcript_id": found}) if found else quote)
        result.append(theme.model_copy(update={"quotes": quotes}))
    return result


async def refine_theme(theme: Theme, context: str = "", provider: str | None = None) -> RefinedTheme:
    """
    Ask the model for a tighter title and description.

    A failed parse keeps the current values. Call failures propagate.
    """
    messages = prompts.build_refine_prompt(theme.title, theme.quotes, context)
    raw = await llm.call_llm(messages, provider=provider, theme_id=theme.id)
    parsed = llm.parse_json_object(raw)
    current = RefinedTheme(title=theme.title, description=theme.description or "")
    if not parsed:
        log("WARN", "refine response could not be parsed", theme_id=theme.id)
        return current
    title = str(parsed.get("title") or "").strip() or current.title
    description = str(parsed.get("description") or "").strip() or current.description
    return RefinedTheme(title=title, description=description)

