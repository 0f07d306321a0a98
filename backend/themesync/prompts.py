"""
ThemeSync Backend — Prompt Template Registry

Maps a transcript-type key to a PromptTemplate with {{placeholder}} slots.
Unknown keys fall back to "general_research". Custom templates can be
registered at runtime or synthesized from focus areas + output format + depth.
"""

import json

from themesync.models import AnalysisSettingsData, PromptTemplate, Quote

PLACEHOLDERS = ("sprintGoal", "transcriptType", "transcriptContent")
MISSING_VALUE = "Not specified"
FALLBACK_TEMPLATE_KEY = "general_research"
TRANSCRIPT_SEPARATOR = "\n\n---TRANSCRIPT BREAK---\n\n"


# -----------------------------------------------------------------------------
# Output format shared by the built-in templates
# -----------------------------------------------------------------------------

THEMES_JSON_FORMAT = """{
  "themes": [
    {
      "title": "Brief insight title",
      "description": "Why this matters for the Sprint",
      "category": "%(categories)s",
      "hmwQuestions": ["How might we ...?", "How might we ...?"],%(steps)s
      "quotes": [{"text": "exact quote from transcript", "source": "%(source)s", "transcriptId": 1}]
    }
  ]
}"""


def _themes_format(categories: str, source: str, with_steps: bool) -> str:
    steps = '\n      "aiSuggestedSteps": ["Next step recommendation", "Follow-up to test"],' if with_steps else ""
    return THEMES_JSON_FORMAT % {"categories": categories, "source": source, "steps": steps}


# -----------------------------------------------------------------------------
# 1. Expert interviews (Day 2)
# -----------------------------------------------------------------------------

EXPERT_INTERVIEWS_SYSTEM_PROMPT = """You are an expert Design Sprint facilitator analysing Day 2 expert interview transcripts. Your role is to extract actionable insights that will inform the Sprint team's decisions.

Organise insights into three categories:
1. OPPORTUNITIES - market gaps, user needs and business opportunities the experts highlighted
2. PAIN POINTS - problems, barriers and challenges the experts identified
3. MISC/OBSERVATIONS - other observations, behaviours, patterns or ideas that fit neither of the above

Reference the sprint goal to focus on relevant insights.

For each insight:
- Write a clear, actionable title that summarises the key idea (3-6 words)
- Explain the insight's significance in 10-25 words
- Generate 2-3 "How Might We" questions that frame the problem or opportunity instead of proposing a solution
- Include verbatim quotes that support the insight. Never invent quotes."""

EXPERT_INTERVIEWS_USER_PROMPT = """Analyse these expert interview transcripts for Sprint insights.

Sprint Goal: {{sprintGoal}}
Interview Context: Day 2 Expert Interviews - industry experts sharing knowledge and insights

{{transcriptContent}}

CRITICAL: Return ONLY valid JSON with no additional text. Use this exact structure:
""" + _themes_format("opportunities|pain_points|miscellaneous", "Expert name or Interview #", with_steps=False)


# -----------------------------------------------------------------------------
# 2. User testing notes (Day 4)
# -----------------------------------------------------------------------------

TESTING_NOTES_SYSTEM_PROMPT = """You are an expert Design Sprint facilitator analysing Day 4 user testing notes. Your role is to extract learnings that will guide the Sprint team's next iteration and answer the sprint goal.

Organise insights into three categories:
1. WHAT WORKED - features, interactions or concepts users responded well to
2. WHAT DIDN'T WORK - usability issues, confusion or failures users experienced
3. IDEAS/NEXT STEPS - improvements, iterations or new directions based on the feedback

For each insight:
- Write a clear, specific title focused on user behaviour or feedback
- Describe what users actually did or said, not assumptions
- Suggest practical next steps, or discovery questions for what the team needs to find out next
- Include direct user quotes that demonstrate the finding"""

TESTING_NOTES_USER_PROMPT = """Analyse these user testing notes for actionable insights.

Sprint Goal: {{sprintGoal}}
Testing Context: Day 4 User Testing - real users interacting with the prototype

{{transcriptContent}}

CRITICAL: Return ONLY valid JSON with no additional text. Use this exact structure:
""" + _themes_format("opportunities|pain_points|ideas_hmws", "User # / Session #", with_steps=True)


# -----------------------------------------------------------------------------
# 3. General research (fallback)
# -----------------------------------------------------------------------------

GENERAL_RESEARCH_SYSTEM_PROMPT = """You are an expert user researcher analysing qualitative research data. Extract meaningful insights that can inform product and design decisions.

Organise insights into categories:
1. OPPORTUNITIES - unmet needs, market gaps, positive signals
2. PAIN POINTS - problems, frustrations, barriers users face
3. IDEAS/HMWS - solutions, features or "How Might We" questions
4. GENERIC - anything relevant that fits none of the above

Focus on insights a team can act upon."""

GENERAL_RESEARCH_USER_PROMPT = """Analyse this research content for key insights.

Research Goal: {{sprintGoal}}
Content Type: {{transcriptType}}

{{transcriptContent}}

Return JSON with this exact structure:
""" + _themes_format("opportunities|pain_points|ideas_hmws|generic", "source identifier", with_steps=True)


PROMPT_TEMPLATES: dict[str, PromptTemplate] = {
    "expert_interviews": PromptTemplate(
        name="Expert Interviews Analysis",
        system_prompt=EXPERT_INTERVIEWS_SYSTEM_PROMPT,
        user_prompt_template=EXPERT_INTERVIEWS_USER_PROMPT,
        description="Optimized for expert knowledge and industry insights from Day 2 interviews",
    ),
    "testing_notes": PromptTemplate(
        name="User Testing Analysis",
        system_prompt=TESTING_NOTES_SYSTEM_PROMPT,
        user_prompt_template=TESTING_NOTES_USER_PROMPT,
        description="Optimized for user testing sessions and prototype feedback",
    ),
    "general_research": PromptTemplate(
        name="General Research Analysis",
        system_prompt=GENERAL_RESEARCH_SYSTEM_PROMPT,
        user_prompt_template=GENERAL_RESEARCH_USER_PROMPT,
        description="General purpose analysis for any qualitative research content",
    ),
}

# Runtime registrations. Kept apart from the built-ins so they can be reset.
_custom_templates: dict[str, PromptTemplate] = {}


# -----------------------------------------------------------------------------
# Registry operations
# -----------------------------------------------------------------------------


def get_templates() -> dict[str, PromptTemplate]:
    """All templates, built-in first. Custom keys may shadow built-in ones."""
    return {**PROMPT_TEMPLATES, **_custom_templates}


def get_template(key: str | None) -> PromptTemplate:
    """Return the template registered for `key`, or the general research one."""
    templates = get_templates()
    if key and key in templates:
        return templates[key]
    return templates[FALLBACK_TEMPLATE_KEY]


def register_template(key: str, template: PromptTemplate) -> None:
    """Add or replace a template at runtime."""
    _custom_templates[key] = template


def clear_custom_templates() -> None:
    _custom_templates.clear()


def render_template(template: str, variables: dict[str, str | None]) -> str:
    """
    Literal substring substitution of every {{placeholder}}.

    Missing or empty variables become "Not specified". Transcript content is
    substituted last so placeholder-like text inside a transcript is left alone.
    """
    rendered = template
    for name in PLACEHOLDERS:
        value = variables.get(name) or MISSING_VALUE
        rendered = rendered.replace("{{" + name + "}}", value)
    return rendered


def build_extraction_prompt(
    template: PromptTemplate,
    transcript_content: str,
    transcript_type: str,
    sprint_goal: str | None = None,
) -> list[dict]:
    """Render a template into system + user chat messages."""
    variables = {
        "sprintGoal": sprint_goal,
        "transcriptType": transcript_type,
        "transcriptContent": transcript_content,
    }
    return [
        {"role": "system", "content": render_template(template.system_prompt, variables)},
        {"role": "user", "content": render_template(template.user_prompt_template, variables)},
    ]


# -----------------------------------------------------------------------------
# Custom template synthesis
# -----------------------------------------------------------------------------

DEPTH_INSTRUCTIONS = {
    "basic": "Provide concise, high-level insights with minimal detail.",
    "detailed": "Provide thorough analysis with clear explanations and context.",
    "comprehensive": (
        "Provide in-depth analysis with extensive detail, multiple perspectives, "
        "and strategic implications."
    ),
}


def create_custom_template(
    focus_areas: list[str],
    output_format: str = "",
    analysis_depth: str = "detailed",
) -> PromptTemplate:
    """
    Synthesize a template from focus areas, an output format and a depth level.

    The depth maps to a fixed sentence appended to the system prompt. An empty
    output format falls back to the standard themes JSON structure.
    """
    if analysis_depth not in DEPTH_INSTRUCTIONS:
        raise ValueError(f"Unknown analysis depth: {analysis_depth}")
    focus = ", ".join(focus_areas)
    output_format = output_format or (
        "Return ONLY valid JSON with this structure:\n"
        + _themes_format("opportunities|pain_points|ideas_hmws|generic", "source identifier", with_steps=True)
    )
    system_prompt = (
        f"You are an expert researcher analysing qualitative data. Focus specifically on: {focus}.\n\n"
        "Extract insights and organise them appropriately based on the content type and research goals.\n\n"
        f"Analysis depth: {DEPTH_INSTRUCTIONS[analysis_depth]}"
    )
    user_prompt_template = (
        f"Analyse this content with focus on: {focus}\n\n"
        "Research Goal: {{sprintGoal}}\n"
        "Content Type: {{transcriptType}}\n\n"
        "{{transcriptContent}}\n\n"
        f"{output_format}"
    )
    return PromptTemplate(
        name="Custom Analysis",
        system_prompt=system_prompt,
        user_prompt_template=user_prompt_template,
        description=f"Custom analysis focusing on: {focus}",
    )


THEME_COUNT_RANGES = ("5-7", "8-10")


def settings_focus_areas(settings: AnalysisSettingsData) -> list[str]:
    """Translate the analysis toggles into focus area phrases."""
    areas = []
    if settings.pain_points:
        areas.append("pain points and frustrations")
    if settings.feature_requests:
        areas.append("feature requests and suggestions")
    if settings.user_behaviors:
        areas.append("user behaviors and usage patterns")
    if settings.emotions:
        areas.append("emotional responses and feelings")
    return areas or ["key themes and recurring patterns"]


def build_settings_template(settings: AnalysisSettingsData) -> PromptTemplate:
    """Template used by settings-driven extraction over all stored transcripts."""
    theme_count = settings.theme_count if settings.theme_count in THEME_COUNT_RANGES else "5-7"
    output_format = (
        f"Extract {theme_count} key themes. For each theme give a clear title (2-5 words), "
        "a 1-2 sentence description, 2-4 verbatim supporting quotes with their source "
        "(e.g. \"Interview #1\"), and 2-3 How Might We questions.\n"
        "Themes must be distinct, non-overlapping, and recurring across interviews where possible.\n\n"
        "Return ONLY valid JSON with this structure:\n"
        + _themes_format("opportunities|pain_points|ideas_hmws|generic", "Interview #", with_steps=False)
    )
    return create_custom_template(settings_focus_areas(settings), output_format, "detailed")


# -----------------------------------------------------------------------------
# Theme refinement
# -----------------------------------------------------------------------------

REFINE_SYSTEM_PROMPT = "You are a UX research expert helping to refine theme analysis."

REFINE_PROMPT = """Based on the following quotes and context, refine this theme.

Current Theme: "{title}"

Supporting Quotes:
{quotes}

Context: {context}

Return ONLY valid JSON:
{example}"""


def build_refine_prompt(title: str, quotes: list[Quote], context: str = "") -> list[dict]:
    quote_lines = "\n".join(f'- "{q.text}" ({q.source or "Unknown"})' for q in quotes) or "- (none)"
    example = json.dumps(
        {
            "title": "Refined theme title (2-5 words)",
            "description": "What this theme represents (1-2 sentences)",
        },
        indent=2,
    )
    content = REFINE_PROMPT.format(
        title=title,
        quotes=quote_lines,
        context=context or MISSING_VALUE,
        example=example,
    )
    return [
        {"role": "system", "content": REFINE_SYSTEM_PROMPT},
        {"role": "user", "content": content},
    ]
