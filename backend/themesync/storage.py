"""
ThemeSync Backend — Storage Interface & In-Memory Backend

`Storage` is the capability set every backend provides (create / read /
update / delete / list per entity). Request handlers receive it through the
`get_storage` dependency; nothing reaches for a module-level store.

`MemStorage` keeps everything in dicts with auto-incrementing integer ids.
Writes are serialized with an asyncio.Lock. No persistence.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request

from themesync.config import DEFAULT_PROJECT_ID, log, settings
from themesync.errors import ItemIndexError, NotFoundError
from themesync.models import (
    AnalysisSettings,
    AnalysisSettingsData,
    ListName,
    Project,
    ProjectCreate,
    Theme,
    ThemeCreate,
    Transcript,
    TranscriptCreate,
    Vote,
    VoteCreate,
    VotingSession,
    VotingSessionCreate,
)

LIST_FIELDS = {"hmw": "hmw_questions", "step": "ai_suggested_steps"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Storage(ABC):
    """Async storage capabilities. Lookups return None when a record is missing."""

    # ── Projects ────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_project(self, data: ProjectCreate) -> Project: ...

    @abstractmethod
    async def get_project(self, project_id: int) -> Optional[Project]: ...

    @abstractmethod
    async def update_project(self, project_id: int, updates: dict[str, Any]) -> Optional[Project]: ...

    # ── Transcripts ─────────────────────────────────────────────────────────

    @abstractmethod
    async def create_transcript(self, data: TranscriptCreate) -> Transcript: ...

    @abstractmethod
    async def get_transcript(self, transcript_id: int) -> Optional[Transcript]: ...

    @abstractmethod
    async def list_transcripts(self, project_id: int) -> list[Transcript]: ...

    @abstractmethod
    async def delete_transcript(self, transcript_id: int) -> bool: ...

    # ── Themes ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_theme(self, data: ThemeCreate) -> Theme: ...

    @abstractmethod
    async def get_theme(self, theme_id: int) -> Optional[Theme]: ...

    @abstractmethod
    async def list_themes(self, project_id: int) -> list[Theme]:
        """Themes of a project sorted by position ascending."""

    @abstractmethod
    async def update_theme(self, theme_id: int, updates: dict[str, Any]) -> Optional[Theme]:
        """Partial merge; touches updated_at."""

    @abstractmethod
    async def delete_theme(self, theme_id: int) -> bool:
        """Remove one theme. Remaining positions are not renumbered."""

    @abstractmethod
    async def clear_themes(self, project_id: int) -> int: ...

    # ── Analysis settings ───────────────────────────────────────────────────

    @abstractmethod
    async def get_analysis_settings(self, project_id: int) -> Optional[AnalysisSettings]: ...

    @abstractmethod
    async def upsert_analysis_settings(self, project_id: int, updates: dict[str, Any]) -> AnalysisSettings:
        """One record per project; last write wins."""

    # ── Voting sessions ─────────────────────────────────────────────────────

    @abstractmethod
    async def create_voting_session(self, data: VotingSessionCreate) -> VotingSession: ...

    @abstractmethod
    async def get_voting_session(self, session_id: int) -> Optional[VotingSession]: ...

    @abstractmethod
    async def get_active_voting_session(self, project_id: int) -> Optional[VotingSession]: ...

    @abstractmethod
    async def end_voting_session(self, session_id: int) -> Optional[VotingSession]:
        """Mark inactive and stamp ends_at. Ending an ended session changes nothing."""

    # ── Votes ───────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_vote(self, data: VoteCreate) -> Vote: ...

    @abstractmethod
    async def find_vote(self, key: VoteCreate) -> Optional[Vote]:
        """Vote matching the full (session, theme, item type, index, voter) key."""

    @abstractmethod
    async def delete_votes(self, key: VoteCreate) -> int:
        """Delete every vote matching the full key. Returns how many went."""

    @abstractmethod
    async def list_votes(self, session_id: int) -> list[Vote]: ...

    # ── Shared behaviour ────────────────────────────────────────────────────

    async def ensure_default_project(self) -> Project:
        project = await self.get_project(DEFAULT_PROJECT_ID)
        if project is None:
            project = await self.create_project(
                ProjectCreate(
                    name=settings.default_project_name,
                    description="AI-powered theme extraction from research transcripts",
                )
            )
            log("INFO", "default project created", project_id=project.id)
        return project

    async def require_theme(self, theme_id: int) -> Theme:
        theme = await self.get_theme(theme_id)
        if theme is None:
            raise NotFoundError("Theme not found", f"No theme with id {theme_id}")
        return theme

    async def set_list_item(self, theme_id: int, list_name: ListName, index: int, value: str) -> Theme:
        """
        Replace one HMW question / suggested step in place.

        Raises:
            NotFoundError: Unknown theme.
            ItemIndexError: index outside 0 <= index < length (no clamping).
        """
        theme = await self.require_theme(theme_id)
        field = LIST_FIELDS[list_name]
        items = list(getattr(theme, field))
        _check_index(list_name, index, len(items))
        items[index] = value
        return await self.update_theme(theme_id, {field: items})

    async def remove_list_item(self, theme_id: int, list_name: ListName, index: int) -> Theme:
        """Remove one HMW question / suggested step. Same errors as set_list_item."""
        theme = await self.require_theme(theme_id)
        field = LIST_FIELDS[list_name]
        items = list(getattr(theme, field))
        _check_index(list_name, index, len(items))
        del items[index]
        return await self.update_theme(theme_id, {field: items})


def _check_index(list_name: str, index: int, length: int) -> None:
    if not 0 <= index < length:
        label = "HMW question" if list_name == "hmw" else "AI step"
        raise ItemIndexError(f"Invalid {label} index", f"index {index} outside 0..{length - 1}")


def _vote_matches(vote: Vote, key: VoteCreate) -> bool:
    return (
        vote.session_id == key.session_id
        and vote.theme_id == key.theme_id
        and vote.item_type == key.item_type
        and vote.item_index == key.item_index
        and vote.voter_token == key.voter_token
    )


class MemStorage(Storage):
    """Dict-backed storage for a single-process deployment."""

    def __init__(self, seed_default_project: bool = True):
        self._lock = asyncio.Lock()
        self._projects: dict[int, Project] = {}
        self._transcripts: dict[int, Transcript] = {}
        self._themes: dict[int, Theme] = {}
        self._settings: dict[int, AnalysisSettings] = {}
        self._sessions: dict[int, VotingSession] = {}
        self._votes: dict[int, Vote] = {}
        self._next_ids = {
            "projects": 1,
            "transcripts": 1,
            "themes": 1,
            "settings": 1,
            "sessions": 1,
            "votes": 1,
        }
        if seed_default_project:
            self._insert_project(
                ProjectCreate(
                    name=settings.default_project_name,
                    description="AI-powered theme extraction from research transcripts",
                )
            )

    def _next_id(self, table: str) -> int:
        new_id = self._next_ids[table]
        self._next_ids[table] += 1
        return new_id

    def _insert_project(self, data: ProjectCreate) -> Project:
        project = Project(**data.model_dump(), id=self._next_id("projects"))
        self._projects[project.id] = project
        return project

    # ── Projects ────────────────────────────────────────────────────────────

    async def create_project(self, data: ProjectCreate) -> Project:
        async with self._lock:
            return self._insert_project(data)

    async def get_project(self, project_id: int) -> Optional[Project]:
        return self._projects.get(project_id)

    async def update_project(self, project_id: int, updates: dict[str, Any]) -> Optional[Project]:
        async with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                return None
            updated = Project.model_validate({**project.model_dump(), **updates})
            self._projects[project_id] = updated
            return updated

    # ── Transcripts ─────────────────────────────────────────────────────────

    async def create_transcript(self, data: TranscriptCreate) -> Transcript:
        async with self._lock:
            transcript = Transcript(**data.model_dump(), id=self._next_id("transcripts"), uploaded_at=utcnow())
            self._transcripts[transcript.id] = transcript
            return transcript

    async def get_transcript(self, transcript_id: int) -> Optional[Transcript]:
        return self._transcripts.get(transcript_id)

    async def list_transcripts(self, project_id: int) -> list[Transcript]:
        return [t for t in self._transcripts.values() if t.project_id == project_id]

    async def delete_transcript(self, transcript_id: int) -> bool:
        async with self._lock:
            return self._transcripts.pop(transcript_id, None) is not None

    # ── Themes ──────────────────────────────────────────────────────────────

    async def create_theme(self, data: ThemeCreate) -> Theme:
        async with self._lock:
            now = utcnow()
            theme = Theme(**data.model_dump(), id=self._next_id("themes"), created_at=now, updated_at=now)
            self._themes[theme.id] = theme
            return theme

    async def get_theme(self, theme_id: int) -> Optional[Theme]:
        return self._themes.get(theme_id)

    async def list_themes(self, project_id: int) -> list[Theme]:
        themes = [t for t in self._themes.values() if t.project_id == project_id]
        return sorted(themes, key=lambda t: (t.position, t.id))

    async def update_theme(self, theme_id: int, updates: dict[str, Any]) -> Optional[Theme]:
        async with self._lock:
            theme = self._themes.get(theme_id)
            if theme is None:
                return None
            updated = Theme.model_validate({**theme.model_dump(), **updates, "updated_at": utcnow()})
            self._themes[theme_id] = updated
            return updated

    async def delete_theme(self, theme_id: int) -> bool:
        async with self._lock:
            return self._themes.pop(theme_id, None) is not None

    async def clear_themes(self, project_id: int) -> int:
        async with self._lock:
            doomed = [tid for tid, t in self._themes.items() if t.project_id == project_id]
            for theme_id in doomed:
                del self._themes[theme_id]
            return len(doomed)

    # ── Analysis settings ───────────────────────────────────────────────────

    async def get_analysis_settings(self, project_id: int) -> Optional[AnalysisSettings]:
        return next((s for s in self._settings.values() if s.project_id == project_id), None)

    async def upsert_analysis_settings(self, project_id: int, updates: dict[str, Any]) -> AnalysisSettings:
        async with self._lock:
            current = next((s for s in self._settings.values() if s.project_id == project_id), None)
            if current is None:
                base = {**AnalysisSettingsData().model_dump(), "id": self._next_id("settings"), "project_id": project_id}
            else:
                base = current.model_dump()
            record = AnalysisSettings.model_validate({**base, **updates})
            self._settings[record.id] = record
            return record

    # ── Voting sessions ─────────────────────────────────────────────────────

    async def create_voting_session(self, data: VotingSessionCreate) -> VotingSession:
        async with self._lock:
            session = VotingSession(**data.model_dump(), id=self._next_id("sessions"), created_at=utcnow())
            self._sessions[session.id] = session
            return session

    async def get_voting_session(self, session_id: int) -> Optional[VotingSession]:
        return self._sessions.get(session_id)

    async def get_active_voting_session(self, project_id: int) -> Optional[VotingSession]:
        active = [s for s in self._sessions.values() if s.project_id == project_id and s.is_active]
        return max(active, key=lambda s: s.id, default=None)

    async def end_voting_session(self, session_id: int) -> Optional[VotingSession]:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return session
            ended = session.model_copy(update={"is_active": False, "ends_at": utcnow()})
            self._sessions[session_id] = ended
            return ended

    # ── Votes ───────────────────────────────────────────────────────────────

    async def create_vote(self, data: VoteCreate) -> Vote:
        async with self._lock:
            vote = Vote(**data.model_dump(), id=self._next_id("votes"), created_at=utcnow())
            self._votes[vote.id] = vote
            return vote

    async def find_vote(self, key: VoteCreate) -> Optional[Vote]:
        return next((v for v in self._votes.values() if _vote_matches(v, key)), None)

    async def delete_votes(self, key: VoteCreate) -> int:
        async with self._lock:
            doomed = [vid for vid, v in self._votes.items() if _vote_matches(v, key)]
            for vote_id in doomed:
                del self._votes[vote_id]
            return len(doomed)

    async def list_votes(self, session_id: int) -> list[Vote]:
        return sorted((v for v in self._votes.values() if v.session_id == session_id), key=lambda v: v.id)


# ─────────────────────────────────────────────────────────────────────────────
# Wiring
# ─────────────────────────────────────────────────────────────────────────────


def build_storage(backend: str | None = None) -> Storage:
    """Instantiate the backend named by settings.storage_backend."""
    backend = backend or settings.storage_backend
    if backend == "supabase":
        from themesync.db import SupabaseStorage

        return SupabaseStorage()
    if backend != "memory":
        log("WARN", "unknown storage backend, using memory", backend=backend)
    return MemStorage()


def get_storage(request: Request) -> Storage:
    """FastAPI dependency: the store attached to the running app."""
    return request.app.state.storage
