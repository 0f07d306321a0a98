"""
ThemeSync Backend — Project & Transcript API

GET/PATCH /api/project, POST /api/text, POST /api/upload,
GET /api/transcripts, GET/DELETE /api/transcripts/{id}.
"""

from fastapi import APIRouter, Depends, File, UploadFile

from themesync.config import log, settings
from themesync.errors import NotFoundError, ValidationError
from themesync.files import file_extension, normalize_text, parse_file, validate_upload
from themesync.models import (
    MessageResponse,
    Project,
    ProjectUpdate,
    TextInputRequest,
    Transcript,
    TranscriptCreate,
    TranscriptResponse,
    UploadResponse,
)
from themesync.storage import Storage, get_storage

router = APIRouter(prefix="/api", tags=["transcripts"])


@router.get("/project", response_model=Project)
async def get_project(storage: Storage = Depends(get_storage)) -> Project:
    """GET /api/project — the default project, created on first access."""
    return await storage.ensure_default_project()


@router.patch("/project", response_model=Project)
async def update_project(body: ProjectUpdate, storage: Storage = Depends(get_storage)) -> Project:
    project = await storage.ensure_default_project()
    updates = body.model_dump(exclude_unset=True)
    updated = await storage.update_project(project.id, updates)
    if updated is None:
        raise NotFoundError("Project not found", f"No project with id {project.id}")
    log("INFO", "project updated", project_id=project.id, fields=",".join(updates))
    return updated


@router.post("/text", response_model=TranscriptResponse)
async def add_text(body: TextInputRequest, storage: Storage = Depends(get_storage)) -> TranscriptResponse:
    """
    POST /api/text

    Store pasted text as a transcript. Content is normalized (line endings,
    blank-line runs, tabs) but otherwise kept verbatim.
    """
    content = normalize_text(body.content)
    if not content:
        raise ValidationError("Text content is required", "content is blank")

    project = await storage.ensure_default_project()
    transcript = await storage.create_transcript(
        TranscriptCreate(
            project_id=project.id,
            filename=body.filename or "Pasted Text",
            content=content,
            file_type="text",
            transcript_type=body.transcript_type,
        )
    )
    log("INFO", "text transcript added", project_id=project.id, transcript_id=transcript.id, chars=len(content))
    return TranscriptResponse(message="Text added successfully", transcript=transcript)


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] = File(...),
    storage: Storage = Depends(get_storage),
) -> UploadResponse:
    """
    POST /api/upload (multipart, field "files")

    Every file is validated and parsed before any transcript is stored, so a
    bad file in the batch rejects the whole request.
    """
    if not files:
        raise ValidationError("No files uploaded", "Attach at least one file in the 'files' field")

    parsed: list[tuple[str, str, str]] = []
    for upload in files:
        # One byte past the limit is enough to reject an oversized file
        data = await upload.read(settings.max_upload_bytes + 1)
        filename = upload.filename or ""
        validate_upload(filename, upload.content_type, len(data))
        parsed.append((filename, file_extension(filename), parse_file(filename, data)))

    project = await storage.ensure_default_project()
    transcripts = []
    for filename, extension, content in parsed:
        transcripts.append(
            await storage.create_transcript(
                TranscriptCreate(
                    project_id=project.id,
                    filename=filename,
                    content=content,
                    file_type=extension,
                )
            )
        )
    log("INFO", "files uploaded", project_id=project.id, count=len(transcripts))
    return UploadResponse(message=f"{len(transcripts)} file(s) uploaded successfully", transcripts=transcripts)


@router.get("/transcripts", response_model=list[Transcript])
async def list_transcripts(storage: Storage = Depends(get_storage)) -> list[Transcript]:
    project = await storage.ensure_default_project()
    return await storage.list_transcripts(project.id)


@router.get("/transcripts/{transcript_id}", response_model=Transcript)
async def get_transcript(transcript_id: int, storage: Storage = Depends(get_storage)) -> Transcript:
    transcript = await storage.get_transcript(transcript_id)
    if transcript is None:
        raise NotFoundError("Transcript not found", f"No transcript with id {transcript_id}")
    return transcript


@router.delete("/transcripts/{transcript_id}", response_model=MessageResponse)
async def delete_transcript(transcript_id: int, storage: Storage = Depends(get_storage)) -> MessageResponse:
    if not await storage.delete_transcript(transcript_id):
        raise NotFoundError("Transcript not found", f"No transcript with id {transcript_id}")
    log("INFO", "transcript deleted", transcript_id=transcript_id)
    return MessageResponse(message="Transcript deleted successfully")
