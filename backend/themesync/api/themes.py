"""
ThemeSync Backend — Theme API

CRUD over the project's themes plus filtering, statistics and model-assisted
refinement. Positions are never renumbered: deleting leaves a gap.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from themesync.analytics import active_filter_count, apply_filter, theme_statistics
from themesync.config import log
from themesync.errors import ExtractionError, NotFoundError
from themesync.extraction import category_color, refine_theme
from themesync.models import (
    MessageResponse,
    RefineRequest,
    Theme,
    ThemeCreate,
    ThemeCreateRequest,
    ThemeFilter,
    ThemeResponse,
    ThemeStatistics,
    ThemeUpdateRequest,
)
from themesync.storage import Storage, get_storage

router = APIRouter(prefix="/api/themes", tags=["themes"])

ACTIVE_FILTERS_HEADER = "X-Active-Filters"


@router.get("", response_model=list[Theme])
async def list_themes(
    response: Response,
    search: str = "",
    category: str = "all",
    has_quotes: Optional[bool] = Query(None, alias="hasQuotes"),
    has_hmws: Optional[bool] = Query(None, alias="hasHmws"),
    has_suggestions: Optional[bool] = Query(None, alias="hasSuggestions"),
    sort: str = Query("position", pattern="^(position|az|category)$"),
    storage: Storage = Depends(get_storage),
) -> list[Theme]:
    """
    GET /api/themes

    Sorted by position unless `sort` says otherwise. Tri-state flags:
    omitted = any, true = must have, false = must not have.
    The number of filters in effect is returned in the X-Active-Filters header.
    """
    project = await storage.ensure_default_project()
    themes = await storage.list_themes(project.id)
    criteria = ThemeFilter(
        search=search,
        category=category,
        has_quotes=has_quotes,
        has_hmws=has_hmws,
        has_suggestions=has_suggestions,
        sort=sort,
    )
    response.headers[ACTIVE_FILTERS_HEADER] = str(active_filter_count(criteria))
    return apply_filter(themes, criteria)


@router.get("/stats", response_model=ThemeStatistics)
async def get_statistics(
    transcript_type: str = Query("expert_interviews", alias="transcriptType"),
    storage: Storage = Depends(get_storage),
) -> ThemeStatistics:
    project = await storage.ensure_default_project()
    return theme_statistics(await storage.list_themes(project.id), transcript_type)


@router.post("", response_model=Theme)
async def create_theme(body: ThemeCreateRequest, storage: Storage = Depends(get_storage)) -> Theme:
    """POST /api/themes — appended after the last position unless one is given."""
    project = await storage.ensure_default_project()
    position = body.position
    if position is None:
        existing = await storage.list_themes(project.id)
        position = max((t.position for t in existing), default=-1) + 1

    data = body.model_dump(exclude={"position", "color"})
    theme = await storage.create_theme(
        ThemeCreate(
            **data,
            color=body.color or category_color(body.category),
            project_id=project.id,
            position=position,
        )
    )
    log("INFO", "theme created", project_id=project.id, theme_id=theme.id, position=position)
    return theme


@router.get("/{theme_id}", response_model=Theme)
async def get_theme(theme_id: int, storage: Storage = Depends(get_storage)) -> Theme:
    return await storage.require_theme(theme_id)


@router.patch("/{theme_id}", response_model=Theme)
async def update_theme(
    theme_id: int,
    body: ThemeUpdateRequest,
    storage: Storage = Depends(get_storage),
) -> Theme:
    """
    PATCH /api/themes/{id} — partial merge, touches updatedAt.

    Changing the category without sending a color recolors the theme.
    """
    updates = body.model_dump(exclude_unset=True)
    if updates.get("category") and "color" not in updates:
        updates["color"] = category_color(updates["category"])
    theme = await storage.update_theme(theme_id, updates)
    if theme is None:
        raise NotFoundError("Theme not found", f"No theme with id {theme_id}")
    log("INFO", "theme updated", theme_id=theme_id, fields=",".join(updates))
    return theme


@router.delete("/{theme_id}", response_model=MessageResponse)
async def delete_theme(theme_id: int, storage: Storage = Depends(get_storage)) -> MessageResponse:
    if not await storage.delete_theme(theme_id):
        raise NotFoundError("Theme not found", f"No theme with id {theme_id}")
    log("INFO", "theme deleted", theme_id=theme_id)
    return MessageResponse(message="Theme deleted successfully")


@router.post("/{theme_id}/refine", response_model=ThemeResponse)
async def refine(
    theme_id: int,
    body: RefineRequest | None = None,
    storage: Storage = Depends(get_storage),
) -> ThemeResponse:
    """
    POST /api/themes/{id}/refine  body: { context? }

    A failed model call or unparseable answer leaves the theme unchanged.
    A missing credential is still reported (400).
    """
    theme = await storage.require_theme(theme_id)
    context = body.context if body else ""
    try:
        refined = await refine_theme(theme, context)
    except ExtractionError as e:
        log("WARN", "theme refinement failed, keeping current values", theme_id=theme_id, error=e.error)
        return ThemeResponse(message="Theme unchanged", theme=theme)

    if refined.title == theme.title and refined.description == (theme.description or ""):
        return ThemeResponse(message="Theme unchanged", theme=theme)

    updated = await storage.update_theme(theme_id, refined.model_dump())
    log("INFO", "theme refined", theme_id=theme_id)
    return ThemeResponse(message="Theme refined successfully", theme=updated)
