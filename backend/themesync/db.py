"""
ThemeSync Backend — Supabase Storage

Storage implementation over Supabase/PostgreSQL. Tables (snake_case columns):
projects, transcripts, themes, analysis_settings, voting_sessions, votes.
List-valued theme columns (quotes, hmw_questions, ai_suggested_steps) are jsonb.

Every failure is logged with an error code and re-raised as StorageError.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from supabase import Client, create_client

from themesync.config import generate_error_code, log, settings
from themesync.errors import StorageError
from themesync.models import (
    AnalysisSettings,
    AnalysisSettingsData,
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
from themesync.storage import Storage

# ─────────────────────────────────────────────────────────────────────────────
# Supabase Client (singleton)
# ─────────────────────────────────────────────────────────────────────────────

_supabase: Client | None = None


def get_supabase() -> Client:
    """Return the Supabase client singleton. Creates it on first call."""
    global _supabase
    if _supabase is None:
        _supabase = create_client(settings.supabase_url, settings.supabase_service_key)
    return _supabase


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row(data: Any) -> Optional[dict]:
    """First row of a response payload, or None."""
    if not data:
        return None
    return dict(data[0] if isinstance(data, list) else data)


def _fail(operation: str, e: Exception) -> StorageError:
    code = generate_error_code()
    log("ERROR", "db operation failed", operation=operation, error=str(e), error_code=code)
    return StorageError("Storage operation failed", f"{operation}: {e}")


class SupabaseStorage(Storage):
    """Storage backed by Supabase tables."""

    def __init__(self, client: Client | None = None):
        self._client = client

    @property
    def sb(self) -> Client:
        return self._client or get_supabase()

    # ── Generic helpers ─────────────────────────────────────────────────────

    def _insert(self, table: str, data: dict, operation: str) -> dict:
        try:
            response = self.sb.table(table).insert(data).execute()
        except Exception as e:
            raise _fail(operation, e) from e
        row = _row(response.data)
        if row is None:
            raise _fail(operation, RuntimeError("insert returned no row"))
        return row

    def _select_one(self, table: str, column: str, value: Any, operation: str) -> Optional[dict]:
        try:
            response = self.sb.table(table).select("*").eq(column, value).limit(1).execute()
        except Exception as e:
            raise _fail(operation, e) from e
        return _row(response.data)

    def _select_many(self, table: str, column: str, value: Any, operation: str, order: str = "id") -> list[dict]:
        try:
            response = self.sb.table(table).select("*").eq(column, value).order(order).execute()
        except Exception as e:
            raise _fail(operation, e) from e
        return [dict(r) for r in (response.data or [])]

    def _update(self, table: str, row_id: int, updates: dict, operation: str) -> Optional[dict]:
        try:
            response = self.sb.table(table).update(updates).eq("id", row_id).execute()
        except Exception as e:
            raise _fail(operation, e) from e
        return _row(response.data)

    def _delete(self, table: str, row_id: int, operation: str) -> bool:
        try:
            response = self.sb.table(table).delete().eq("id", row_id).execute()
        except Exception as e:
            raise _fail(operation, e) from e
        return bool(response.data)

    # ── Projects ────────────────────────────────────────────────────────────

    async def create_project(self, data: ProjectCreate) -> Project:
        return Project.model_validate(self._insert("projects", data.model_dump(), "create_project"))

    async def get_project(self, project_id: int) -> Optional[Project]:
        row = self._select_one("projects", "id", project_id, "get_project")
        return Project.model_validate(row) if row else None

    async def update_project(self, project_id: int, updates: dict[str, Any]) -> Optional[Project]:
        row = self._update("projects", project_id, updates, "update_project")
        return Project.model_validate(row) if row else None

    # ── Transcripts ─────────────────────────────────────────────────────────

    async def create_transcript(self, data: TranscriptCreate) -> Transcript:
        row = self._insert("transcripts", {**data.model_dump(), "uploaded_at": _now()}, "create_transcript")
        return Transcript.model_validate(row)

    async def get_transcript(self, transcript_id: int) -> Optional[Transcript]:
        row = self._select_one("transcripts", "id", transcript_id, "get_transcript")
        return Transcript.model_validate(row) if row else None

    async def list_transcripts(self, project_id: int) -> list[Transcript]:
        rows = self._select_many("transcripts", "project_id", project_id, "list_transcripts")
        return [Transcript.model_validate(r) for r in rows]

    async def delete_transcript(self, transcript_id: int) -> bool:
        return self._delete("transcripts", transcript_id, "delete_transcript")

    # ── Themes ──────────────────────────────────────────────────────────────

    async def create_theme(self, data: ThemeCreate) -> Theme:
        now = _now()
        payload = {**data.model_dump(mode="json"), "created_at": now, "updated_at": now}
        return Theme.model_validate(self._insert("themes", payload, "create_theme"))

    async def get_theme(self, theme_id: int) -> Optional[Theme]:
        row = self._select_one("themes", "id", theme_id, "get_theme")
        return Theme.model_validate(row) if row else None

    async def list_themes(self, project_id: int) -> list[Theme]:
        rows = self._select_many("themes", "project_id", project_id, "list_themes", order="position")
        return sorted((Theme.model_validate(r) for r in rows), key=lambda t: (t.position, t.id))

    async def update_theme(self, theme_id: int, updates: dict[str, Any]) -> Optional[Theme]:
        current = await self.get_theme(theme_id)
        if current is None:
            return None
        merged = Theme.model_validate({**current.model_dump(), **updates})
        payload = merged.model_dump(mode="json", include=set(updates))
        row = self._update("themes", theme_id, {**payload, "updated_at": _now()}, "update_theme")
        return Theme.model_validate(row) if row else None

    async def delete_theme(self, theme_id: int) -> bool:
        return self._delete("themes", theme_id, "delete_theme")

    async def clear_themes(self, project_id: int) -> int:
        try:
            response = self.sb.table("themes").delete().eq("project_id", project_id).execute()
        except Exception as e:
            raise _fail("clear_themes", e) from e
        return len(response.data or [])

    # ── Analysis settings ───────────────────────────────────────────────────

    async def get_analysis_settings(self, project_id: int) -> Optional[AnalysisSettings]:
        row = self._select_one("analysis_settings", "project_id", project_id, "get_analysis_settings")
        return AnalysisSettings.model_validate(row) if row else None

    async def upsert_analysis_settings(self, project_id: int, updates: dict[str, Any]) -> AnalysisSettings:
        current = await self.get_analysis_settings(project_id)
        if current is None:
            payload = {**AnalysisSettingsData().model_dump(), **updates, "project_id": project_id}
            return AnalysisSettings.model_validate(
                self._insert("analysis_settings", payload, "upsert_analysis_settings")
            )
        row = self._update("analysis_settings", current.id, updates, "upsert_analysis_settings")
        return AnalysisSettings.model_validate(row) if row else current

    # ── Voting sessions ─────────────────────────────────────────────────────

    async def create_voting_session(self, data: VotingSessionCreate) -> VotingSession:
        payload = {**data.model_dump(mode="json"), "created_at": _now()}
        return VotingSession.model_validate(self._insert("voting_sessions", payload, "create_voting_session"))

    async def get_voting_session(self, session_id: int) -> Optional[VotingSession]:
        row = self._select_one("voting_sessions", "id", session_id, "get_voting_session")
        return VotingSession.model_validate(row) if row else None

    async def get_active_voting_session(self, project_id: int) -> Optional[VotingSession]:
        try:
            response = (
                self.sb.table("voting_sessions")
                .select("*")
                .eq("project_id", project_id)
                .eq("is_active", True)
                .order("id", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise _fail("get_active_voting_session", e) from e
        row = _row(response.data)
        return VotingSession.model_validate(row) if row else None

    async def end_voting_session(self, session_id: int) -> Optional[VotingSession]:
        session = await self.get_voting_session(session_id)
        if session is None or not session.is_active:
            return session
        row = self._update(
            "voting_sessions",
            session_id,
            {"is_active": False, "ends_at": _now()},
            "end_voting_session",
        )
        return VotingSession.model_validate(row) if row else session

    # ── Votes ───────────────────────────────────────────────────────────────

    def _vote_query(self, query, key: VoteCreate):
        query = (
            query.eq("session_id", key.session_id)
            .eq("theme_id", key.theme_id)
            .eq("item_type", key.item_type)
            .eq("voter_token", key.voter_token)
        )
        if key.item_index is None:
            return query.is_("item_index", "null")
        return query.eq("item_index", key.item_index)

    async def create_vote(self, data: VoteCreate) -> Vote:
        payload = {**data.model_dump(), "created_at": _now()}
        return Vote.model_validate(self._insert("votes", payload, "create_vote"))

    async def find_vote(self, key: VoteCreate) -> Optional[Vote]:
        try:
            response = self._vote_query(self.sb.table("votes").select("*"), key).limit(1).execute()
        except Exception as e:
            raise _fail("find_vote", e) from e
        row = _row(response.data)
        return Vote.model_validate(row) if row else None

    async def delete_votes(self, key: VoteCreate) -> int:
        try:
            response = self._vote_query(self.sb.table("votes").delete(), key).execute()
        except Exception as e:
            raise _fail("delete_votes", e) from e
        return len(response.data or [])

    async def list_votes(self, session_id: int) -> list[Vote]:
        rows = self._select_many("votes", "session_id", session_id, "list_votes")
        return [Vote.model_validate(r) for r in rows]
