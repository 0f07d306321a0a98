"""
ThemeSync Backend — Voting Service

Session lifecycle and vote casting on top of a Storage.

State machine per session: active → ended, terminal once ended. Creating a new
session ends any active one for the same project first, so a project has at
most one active session. Votes are keyed on
(session, theme, item type, item index, voter token) and never purged on end.
"""

from typing import Optional

from themesync.config import log
from themesync.errors import ItemIndexError, NotFoundError, ValidationError
from themesync.models import (
    Theme,
    ToggleVoteResponse,
    Vote,
    VoteCounts,
    VoteCreate,
    VoteRequest,
    VotingSession,
    VotingSessionCreate,
)
from themesync.storage import Storage, utcnow


def vote_key(theme_id: int, item_type: str, item_index: Optional[int] = None) -> str:
    """Aggregation key shared with the exports: theme-{id}[-hmw-{i}|-step-{i}]."""
    if item_type == "theme":
        return f"theme-{theme_id}"
    return f"theme-{theme_id}-{item_type}-{item_index}"


# ─────────────────────────────────────────────────────────────────────────────
# Sessions
# ─────────────────────────────────────────────────────────────────────────────


async def start_session(storage: Storage, project_id: int, name: str, duration: int) -> VotingSession:
    """End the project's active session (if any) and open a new one."""
    if await storage.get_project(project_id) is None:
        raise NotFoundError("Project not found", f"No project with id {project_id}")

    previous = await storage.get_active_voting_session(project_id)
    while previous is not None:
        await storage.end_voting_session(previous.id)
        log("INFO", "voting session force-ended", project_id=project_id, session_id=previous.id)
        previous = await storage.get_active_voting_session(project_id)

    session = await storage.create_voting_session(
        VotingSessionCreate(
            project_id=project_id,
            name=name,
            duration=duration,
            is_active=True,
            starts_at=utcnow(),
        )
    )
    log("INFO", "voting session started", project_id=project_id, session_id=session.id, duration=duration)
    return session


async def end_session(storage: Storage, session_id: int) -> VotingSession:
    """Idempotent: ending an ended session returns it unchanged."""
    session = await storage.end_voting_session(session_id)
    if session is None:
        raise NotFoundError("Voting session not found", f"No voting session with id {session_id}")
    log("INFO", "voting session ended", session_id=session_id)
    return session


async def get_active_session(storage: Storage, project_id: int) -> Optional[VotingSession]:
    return await storage.get_active_voting_session(project_id)


async def require_session(storage: Storage, session_id: int) -> VotingSession:
    session = await storage.get_voting_session(session_id)
    if session is None:
        raise NotFoundError("Voting session not found", f"No voting session with id {session_id}")
    return session


# ─────────────────────────────────────────────────────────────────────────────
# Votes
# ─────────────────────────────────────────────────────────────────────────────


def _check_item_index(theme: Theme, item_type: str, item_index: Optional[int]) -> None:
    if item_type == "theme":
        if item_index is not None:
            raise ValidationError("Invalid vote", "itemIndex must be null for theme votes")
        return
    items = theme.hmw_questions if item_type == "hmw" else theme.ai_suggested_steps
    if item_index is None:
        raise ValidationError("Invalid vote", f"itemIndex is required for {item_type} votes")
    if not 0 <= item_index < len(items):
        raise ItemIndexError("Invalid vote", f"{item_type} index {item_index} outside 0..{len(items) - 1}")


async def _validated_key(storage: Storage, request: VoteRequest) -> VoteCreate:
    session = await require_session(storage, request.session_id)
    if not session.is_active:
        raise ValidationError("Voting session has ended", f"Session {session.id} is not active")
    theme = await storage.require_theme(request.theme_id)
    _check_item_index(theme, request.item_type, request.item_index)
    return VoteCreate(**request.model_dump())


async def cast_vote(storage: Storage, request: VoteRequest) -> Vote:
    """
    Record a vote. Any existing vote with the identical key is removed first,
    so a voter holds at most one vote per key.

    Raises:
        NotFoundError: Unknown session or theme.
        ValidationError: Session ended, or itemIndex missing / out of range.
    """
    key = await _validated_key(storage, request)
    await storage.delete_votes(key)
    vote = await storage.create_vote(key)
    log("INFO", "vote cast", session_id=key.session_id, theme_id=key.theme_id, item_type=key.item_type)
    return vote


async def remove_vote(storage: Storage, request: VoteRequest) -> int:
    """Delete the voter's vote for the key. Allowed after the session ended."""
    await require_session(storage, request.session_id)
    removed = await storage.delete_votes(VoteCreate(**request.model_dump()))
    log("INFO", "vote removed", session_id=request.session_id, theme_id=request.theme_id, removed=removed)
    return removed


async def toggle_vote(storage: Storage, request: VoteRequest) -> ToggleVoteResponse:
    """Presence test, then insert or delete."""
    key = await _validated_key(storage, request)
    if await storage.find_vote(key) is not None:
        await storage.delete_votes(key)
        return ToggleVoteResponse(voted=False)
    return ToggleVoteResponse(voted=True, vote=await storage.create_vote(key))


def aggregate_votes(votes: list[Vote], voter_token: Optional[str] = None) -> VoteCounts:
    """Count votes per key and list the keys `voter_token` holds a vote on."""
    counts: dict[str, int] = {}
    voted: list[str] = []
    for vote in votes:
        key = vote_key(vote.theme_id, vote.item_type, vote.item_index)
        counts[key] = counts.get(key, 0) + 1
        if voter_token and vote.voter_token == voter_token and key not in voted:
            voted.append(key)
    return VoteCounts(counts=counts, voted=voted, total_votes=len(votes))


async def get_vote_counts(storage: Storage, session_id: int, voter_token: Optional[str] = None) -> VoteCounts:
    await require_session(storage, session_id)
    return aggregate_votes(await storage.list_votes(session_id), voter_token)
