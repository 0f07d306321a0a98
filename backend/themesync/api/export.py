"""
ThemeSync Backend — Export API

GET /api/export/{json|csv|excel|pdf}: whole-project exports, quote level.
POST /api/export/text: insight report as txt / md / doc.
POST /api/export/csv: insight CSV, one row per theme.
"""

import time
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from themesync import export
from themesync.config import log
from themesync.models import CsvExportRequest, TextExportRequest
from themesync.storage import Storage, get_storage
from themesync.voting import get_vote_counts

router = APIRouter(prefix="/api/export", tags=["export"])

PROJECT_EXPORTS = {
    "json": ("application/json", "themes.json"),
    "csv": ("text/csv", "themes.csv"),
    "excel": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "themes.xlsx"),
    "pdf": ("application/pdf", "themes.pdf"),
}
TEXT_EXPORTS = {
    "txt": "text/plain",
    "md": "text/markdown",
    "doc": "application/msword",
}


def _attachment(content: str | bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _resolve_vote_counts(storage: Storage, body: CsvExportRequest) -> Optional[dict[str, int]]:
    """Explicit counts win; otherwise aggregate the given session's votes."""
    if body.vote_counts is not None:
        return body.vote_counts
    if body.session_id is not None:
        return (await get_vote_counts(storage, body.session_id)).counts
    return None


@router.post("/text")
async def export_text(body: TextExportRequest, storage: Storage = Depends(get_storage)) -> Response:
    """Markdown for "md"; the plain-text report for "txt" and "doc"."""
    project = await storage.ensure_default_project()
    themes = await storage.list_themes(project.id)
    vote_counts = await _resolve_vote_counts(storage, body)
    sprint_goal = body.sprint_goal or project.sprint_goal

    if body.format == "md":
        content = export.format_markdown(themes, body.transcript_type, sprint_goal, vote_counts=vote_counts)
    else:
        content = export.format_text(themes, body.transcript_type, sprint_goal, vote_counts=vote_counts)

    log("INFO", "text export generated", project_id=project.id, format=body.format, themes_count=len(themes))
    filename = f"sprint-insights-{int(time.time() * 1000)}.{body.format}"
    return _attachment(content, TEXT_EXPORTS[body.format], filename)


@router.post("/csv")
async def export_csv(body: CsvExportRequest, storage: Storage = Depends(get_storage)) -> Response:
    project = await storage.ensure_default_project()
    themes = await storage.list_themes(project.id)
    vote_counts = await _resolve_vote_counts(storage, body)
    sprint_goal = body.sprint_goal or project.sprint_goal
    content = export.format_csv(themes, body.transcript_type, sprint_goal, vote_counts=vote_counts)
    log("INFO", "csv export generated", project_id=project.id, themes_count=len(themes))
    return _attachment(content, "text/csv", f"sprint-insights-{int(time.time() * 1000)}.csv")


@router.get("/{export_format}")
async def export_project(
    export_format: Literal["json", "csv", "excel", "pdf"],
    storage: Storage = Depends(get_storage),
) -> Response:
    """GET /api/export/{format} — unknown formats are rejected with 400."""
    project = await storage.ensure_default_project()
    themes = await storage.list_themes(project.id)
    transcripts = await storage.list_transcripts(project.id)

    if export_format == "json":
        content = export.format_json(project, themes, transcripts)
    elif export_format == "csv":
        content = export.format_quotes_csv(themes, transcripts)
    elif export_format == "excel":
        content = export.format_excel(themes, transcripts)
    else:
        content = export.format_pdf(project, themes, transcripts)

    media_type, filename = PROJECT_EXPORTS[export_format]
    log("INFO", "project export generated", project_id=project.id, format=export_format, themes_count=len(themes))
    return _attachment(content, media_type, filename)
