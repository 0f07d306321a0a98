"""
ThemeSync Backend — Sprint Analysis API

POST /api/sprint/analyze: transcript text → extraction → replace project themes.
GET/POST /api/sprint/templates: prompt template registry.
POST /api/extract-themes: settings-driven extraction over all stored transcripts.
GET/PUT /api/analysis-settings.
PATCH/DELETE /api/themes/{id}/items/{itemType}/{itemIndex}: HMW / step edits.
"""

from fastapi import APIRouter, Depends

from themesync import prompts
from themesync.config import log
from themesync.errors import ValidationError
from themesync.extraction import (
    attach_transcript_ids,
    combine_transcripts,
    extract_insights,
    extract_with_settings,
)
from themesync.models import (
    AnalysisSettingsData,
    AnalysisSettingsUpdate,
    AnalyzeRequest,
    AnalyzeResponse,
    ExtractedTheme,
    ExtractThemesRequest,
    ItemEditRequest,
    ListName,
    PromptTemplate,
    TemplateCreateRequest,
    TemplateResponse,
    Theme,
    ThemeCreate,
    ThemeResponse,
)
from themesync.storage import Storage, get_storage

router = APIRouter(prefix="/api", tags=["sprint"])


async def replace_themes(storage: Storage, project_id: int, extracted: list[ExtractedTheme]) -> list[Theme]:
    """
    Clear the project's themes, then store the new ones with position = index.

    Only called once extraction has fully succeeded. Clear and write are not
    one transaction.
    """
    cleared = await storage.clear_themes(project_id)
    stored = []
    for position, theme in enumerate(extracted):
        stored.append(
            await storage.create_theme(ThemeCreate(**theme.model_dump(), project_id=project_id, position=position))
        )
    log("INFO", "themes replaced", project_id=project_id, cleared=cleared, stored=len(stored))
    return stored


@router.post("/sprint/analyze", response_model=AnalyzeResponse)
async def analyze(body: AnalyzeRequest, storage: Storage = Depends(get_storage)) -> AnalyzeResponse:
    """
    POST /api/sprint/analyze

    Steps:
        1. Resolve content: request text, else every stored transcript
        2. Sprint goal: request value, else the project's
        3. Extract (credential check first; nothing is cleared on failure)
        4. Attribute quotes to stored transcripts
        5. Replace the project's themes

    Returns: { message, themes, count }
    """
    project = await storage.ensure_default_project()
    transcripts = await storage.list_transcripts(project.id)

    content = body.transcript_content or ""
    if not content.strip():
        if not transcripts:
            raise ValidationError(
                "Transcript content is required",
                "Paste transcript text or upload transcripts before analyzing",
            )
        content = combine_transcripts(transcripts)

    sprint_goal = body.sprint_goal or project.sprint_goal
    log(
        "INFO",
        "analysis started",
        project_id=project.id,
        transcript_type=body.transcript_type,
        template=body.custom_template or body.transcript_type,
    )
    extracted = await extract_insights(
        content,
        transcript_type=body.transcript_type,
        sprint_goal=sprint_goal,
        custom_template_key=body.custom_template,
        provider=body.provider,
    )
    extracted = attach_transcript_ids(extracted, transcripts)
    themes = await replace_themes(storage, project.id, extracted)

    return AnalyzeResponse(message="Analysis completed successfully", themes=themes, count=len(themes))


@router.get("/sprint/templates", response_model=dict[str, PromptTemplate])
async def list_templates() -> dict[str, PromptTemplate]:
    return prompts.get_templates()


@router.post("/sprint/templates", response_model=TemplateResponse)
async def create_template(body: TemplateCreateRequest) -> TemplateResponse:
    """
    POST /api/sprint/templates

    Explicit systemPrompt + userPromptTemplate win; otherwise the template is
    synthesized from focusAreas, outputFormat and analysisDepth.
    """
    if body.system_prompt and body.user_prompt_template:
        template = PromptTemplate(
            name=body.name or body.key,
            system_prompt=body.system_prompt,
            user_prompt_template=body.user_prompt_template,
            description=body.description,
        )
    else:
        template = prompts.create_custom_template(body.focus_areas, body.output_format, body.analysis_depth)
        updates = {"name": body.name} if body.name else {}
        if body.description:
            updates["description"] = body.description
        template = template.model_copy(update=updates)

    prompts.register_template(body.key, template)
    log("INFO", "prompt template registered", key=body.key)
    return TemplateResponse(message="Template registered successfully", key=body.key, template=template)


@router.post("/extract-themes", response_model=AnalyzeResponse)
async def extract_themes(
    body: ExtractThemesRequest | None = None,
    storage: Storage = Depends(get_storage),
) -> AnalyzeResponse:
    """
    POST /api/extract-themes

    Combines every stored transcript, derives focus areas and theme count from
    the analysis settings, replaces the project's themes and saves the settings.
    """
    body = body or ExtractThemesRequest()
    project = await storage.ensure_default_project()
    transcripts = await storage.list_transcripts(project.id)
    if not transcripts:
        raise ValidationError(
            "No transcripts found",
            "Please upload files or add text first",
        )

    stored = await storage.get_analysis_settings(project.id)
    current = AnalysisSettingsData.model_validate(stored.model_dump()) if stored else AnalysisSettingsData()
    overrides = body.settings.model_dump(exclude_none=True) if body.settings else {}
    analysis_settings = current.model_copy(update=overrides)

    extracted = await extract_with_settings(
        transcripts,
        analysis_settings,
        sprint_goal=body.sprint_goal or project.sprint_goal,
        provider=body.provider,
    )
    themes = await replace_themes(storage, project.id, extracted)
    await storage.upsert_analysis_settings(project.id, analysis_settings.model_dump())

    return AnalyzeResponse(message="Themes extracted successfully", themes=themes, count=len(themes))


@router.get("/analysis-settings", response_model=AnalysisSettingsData)
async def get_analysis_settings(storage: Storage = Depends(get_storage)) -> AnalysisSettingsData:
    """Stored settings, or the defaults when none were saved yet."""
    project = await storage.ensure_default_project()
    stored = await storage.get_analysis_settings(project.id)
    return stored or AnalysisSettingsData()


@router.put("/analysis-settings", response_model=AnalysisSettingsData)
async def update_analysis_settings(
    body: AnalysisSettingsUpdate,
    storage: Storage = Depends(get_storage),
) -> AnalysisSettingsData:
    project = await storage.ensure_default_project()
    return await storage.upsert_analysis_settings(project.id, body.model_dump(exclude_none=True))


# ─────────────────────────────────────────────────────────────────────────────
# HMW question / suggested step edits
# ─────────────────────────────────────────────────────────────────────────────


@router.patch("/themes/{theme_id}/items/{item_type}/{item_index}", response_model=ThemeResponse)
async def edit_item(
    theme_id: int,
    item_type: ListName,
    item_index: int,
    body: ItemEditRequest,
    storage: Storage = Depends(get_storage),
) -> ThemeResponse:
    """
    PATCH /api/themes/{id}/items/{hmw|step}/{index}  body: { newValue }

    Errors: 404 unknown theme, 400 index outside the list (never clamped).
    """
    theme = await storage.set_list_item(theme_id, item_type, item_index, body.new_value)
    log("INFO", "theme item edited", theme_id=theme_id, item_type=item_type, item_index=item_index)
    return ThemeResponse(message="Item updated successfully", theme=theme)


@router.delete("/themes/{theme_id}/items/{item_type}/{item_index}", response_model=ThemeResponse)
async def delete_item(
    theme_id: int,
    item_type: ListName,
    item_index: int,
    storage: Storage = Depends(get_storage),
) -> ThemeResponse:
    theme = await storage.remove_list_item(theme_id, item_type, item_index)
    log("INFO", "theme item deleted", theme_id=theme_id, item_type=item_type, item_index=item_index)
    return ThemeResponse(message="Item deleted successfully", theme=theme)
