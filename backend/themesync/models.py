"""
Single source of truth for all Pydantic models (entities, requests, responses, LLM output).
Python code uses snake_case; JSON on the wire uses camelCase aliases, and both
spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from themesync.config import DEFAULT_PROJECT_ID

ItemType = Literal["theme", "hmw", "step"]
ListName = Literal["hmw", "step"]
ProviderName = Literal["claude", "openai", "openai_sprint"]
AnalysisDepth = Literal["basic", "detailed", "comprehensive"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Entities
# -----------------------------------------------------------------------------


class ProjectCreate(ApiModel):
    name: str
    description: Optional[str] = None
    sprint_goal: Optional[str] = None
    sprint_questions: list[str] = []


class Project(ProjectCreate):
    id: int
    created_at: datetime = Field(default_factory=_utcnow)


class TranscriptCreate(ApiModel):
    project_id: int
    filename: str
    content: str
    file_type: str
    transcript_type: Optional[str] = None


class Transcript(TranscriptCreate):
    id: int
    uploaded_at: datetime = Field(default_factory=_utcnow)


class Quote(ApiModel):
    text: str
    source: str = ""
    transcript_id: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_string(cls, data: object) -> object:
        """Models sometimes emit a quote as a plain string."""
        if isinstance(data, str):
            return {"text": data}
        return data

    @field_validator("source", mode="before")
    @classmethod
    def none_source_to_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("transcript_id", mode="before")
    @classmethod
    def coerce_transcript_id(cls, value: object) -> object:
        """Non-numeric ids ("Interview 2") are dropped rather than rejecting the quote."""
        if value is None or isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            return None


class ThemeFields(ApiModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    color: str = ""
    quotes: list[Quote] = []
    hmw_questions: list[str] = []
    ai_suggested_steps: list[str] = []
    category: str = "generic"

    @field_validator("quotes", "hmw_questions", "ai_suggested_steps", mode="before")
    @classmethod
    def none_list_to_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: object) -> object:
        if value is None:
            return "generic"
        return str(value).strip().lower() or "generic"


class ExtractedTheme(ThemeFields):
    """One theme as returned by the model, after color assignment."""


class ThemeCreate(ThemeFields):
    project_id: int
    position: int = 0


class Theme(ThemeCreate):
    id: int
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class AnalysisSettingsData(ApiModel):
    pain_points: bool = True
    feature_requests: bool = True
    user_behaviors: bool = False
    emotions: bool = False
    theme_count: str = "5-7"


class AnalysisSettings(AnalysisSettingsData):
    id: int
    project_id: int


class VotingSessionCreate(ApiModel):
    project_id: int
    name: str
    duration: int  # minutes
    is_active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class VotingSession(VotingSessionCreate):
    id: int
    created_at: datetime = Field(default_factory=_utcnow)

    @computed_field
    @property
    def expires_at(self) -> Optional[datetime]:
        """Countdown deadline. Clients end the session when it passes."""
        if self.starts_at is None:
            return None
        return self.starts_at + timedelta(minutes=self.duration)


class VoteCreate(ApiModel):
    session_id: int
    theme_id: int
    item_type: ItemType
    item_index: Optional[int] = None
    voter_token: str


class Vote(VoteCreate):
    id: int
    created_at: datetime = Field(default_factory=_utcnow)


class PromptTemplate(ApiModel):
    name: str
    system_prompt: str
    user_prompt_template: str
    description: str = ""


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------


def _reject_null(value: object) -> object:
    """Partial updates: omit a field to keep it. Null is only accepted where the entity allows it."""
    if value is None:
        raise ValueError("may be omitted but not null")
    return value


class ProjectUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    sprint_goal: Optional[str] = None
    sprint_questions: Optional[list[str]] = None

    @field_validator("name", "sprint_questions", mode="before")
    @classmethod
    def reject_null(cls, value: object) -> object:
        return _reject_null(value)


class TextInputRequest(ApiModel):
    content: str = Field(..., min_length=1, description="Pasted transcript text")
    filename: Optional[str] = None
    transcript_type: Optional[str] = None


class AnalyzeRequest(ApiModel):
    transcript_content: Optional[str] = Field(
        None, description="Text to analyze. Omit to analyze every stored transcript."
    )
    transcript_type: str = "expert_interviews"
    sprint_goal: Optional[str] = None
    custom_template: Optional[str] = Field(None, description="Registered template key")
    provider: Optional[ProviderName] = None


class TemplateCreateRequest(ApiModel):
    """Register a template explicitly, or synthesize one from focus areas."""

    key: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-z0-9_\-]+$")
    name: Optional[str] = None
    system_prompt: Optional[str] = None
    user_prompt_template: Optional[str] = None
    description: str = ""
    focus_areas: list[str] = []
    output_format: str = ""
    analysis_depth: AnalysisDepth = "detailed"

    @model_validator(mode="after")
    def require_prompts_or_focus(self) -> "TemplateCreateRequest":
        explicit = bool(self.system_prompt and self.user_prompt_template)
        if not explicit and not self.focus_areas:
            raise ValueError("Provide systemPrompt and userPromptTemplate, or at least one focus area")
        return self


class ThemeCreateRequest(ApiModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None
    quotes: list[Quote] = []
    hmw_questions: list[str] = []
    ai_suggested_steps: list[str] = []
    category: str = "generic"
    position: Optional[int] = Field(None, description="Defaults to the end of the list")


class ThemeUpdateRequest(ApiModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None
    quotes: Optional[list[Quote]] = None
    hmw_questions: Optional[list[str]] = None
    ai_suggested_steps: Optional[list[str]] = None
    category: Optional[str] = None
    position: Optional[int] = None

    @field_validator(
        "title", "color", "quotes", "hmw_questions", "ai_suggested_steps", "category", "position", mode="before"
    )
    @classmethod
    def reject_null(cls, value: object) -> object:
        return _reject_null(value)


class ItemEditRequest(ApiModel):
    new_value: str

    @field_validator("new_value")
    @classmethod
    def strip_and_require(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("New value is required")
        return value


class RefineRequest(ApiModel):
    context: str = ""


class AnalysisSettingsUpdate(ApiModel):
    pain_points: Optional[bool] = None
    feature_requests: Optional[bool] = None
    user_behaviors: Optional[bool] = None
    emotions: Optional[bool] = None
    theme_count: Optional[str] = None


class ExtractThemesRequest(ApiModel):
    """Settings-driven extraction over every stored transcript."""

    settings: Optional[AnalysisSettingsUpdate] = Field(None, description="Saved with the run; omitted fields keep their stored value")
    sprint_goal: Optional[str] = None
    provider: Optional[ProviderName] = None


class VotingSessionCreateRequest(ApiModel):
    project_id: int = DEFAULT_PROJECT_ID
    name: str = Field(..., min_length=1)
    duration: int = Field(..., gt=0, description="Minutes")


class VoteRequest(ApiModel):
    session_id: int
    theme_id: int
    item_type: ItemType
    item_index: Optional[int] = Field(None, ge=0)
    voter_token: str = Field(..., min_length=1)


class CsvExportRequest(ApiModel):
    transcript_type: str = "expert_interviews"
    sprint_goal: Optional[str] = None
    vote_counts: Optional[dict[str, int]] = None
    session_id: Optional[int] = Field(None, description="Aggregate counts from this session's votes")


class TextExportRequest(CsvExportRequest):
    format: Literal["txt", "md", "doc"] = "txt"


class ThemeFilter(ApiModel):
    search: str = ""
    category: str = "all"
    has_quotes: Optional[bool] = None
    has_hmws: Optional[bool] = None
    has_suggestions: Optional[bool] = None
    sort: Literal["position", "az", "category"] = "position"


# -----------------------------------------------------------------------------
# LLM Response Models
# -----------------------------------------------------------------------------


class ParsedThemes(ApiModel):
    """Outcome of repairing and parsing a model response.

    Total failure is a normal outcome: `themes` is empty and `error` says why.
    """

    themes: list[ExtractedTheme] = []
    error: Optional[str] = None


class RefinedTheme(ApiModel):
    title: str
    description: str = ""


# -----------------------------------------------------------------------------
# Response Models
# -----------------------------------------------------------------------------


class MessageResponse(ApiModel):
    message: str


class TranscriptResponse(ApiModel):
    message: str
    transcript: Transcript


class UploadResponse(ApiModel):
    message: str
    transcripts: list[Transcript]


class AnalyzeResponse(ApiModel):
    message: str
    themes: list[Theme]
    count: int


class TemplateResponse(ApiModel):
    message: str
    key: str
    template: PromptTemplate


class ThemeResponse(ApiModel):
    message: str
    theme: Theme


class VoteCounts(ApiModel):
    counts: dict[str, int] = {}
    voted: list[str] = []
    total_votes: int = 0


class ToggleVoteResponse(ApiModel):
    voted: bool
    vote: Optional[Vote] = None


class ThemeStatistics(ApiModel):
    total_themes: int
    total_quotes: int
    total_hmws: int
    total_suggestions: int
    by_category: dict[str, int]
    category_labels: dict[str, str]
