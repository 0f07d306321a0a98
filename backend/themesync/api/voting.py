"""
ThemeSync Backend — Voting API

Sessions: create (ends the prior active one), read active, end (idempotent).
Votes: cast, remove, toggle, raw list, aggregated counts. Clients poll; there
is no push channel.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from themesync import voting
from themesync.models import (
    MessageResponse,
    ToggleVoteResponse,
    Vote,
    VoteCounts,
    VoteRequest,
    VotingSession,
    VotingSessionCreateRequest,
)
from themesync.storage import Storage, get_storage

router = APIRouter(prefix="/api/voting", tags=["voting"])


@router.post("/sessions", response_model=VotingSession)
async def create_session(body: VotingSessionCreateRequest, storage: Storage = Depends(get_storage)) -> VotingSession:
    return await voting.start_session(storage, body.project_id, body.name, body.duration)


@router.get("/sessions/{project_id}/active", response_model=Optional[VotingSession])
async def active_session(project_id: int, storage: Storage = Depends(get_storage)) -> Optional[VotingSession]:
    """The project's active session, or null."""
    return await voting.get_active_session(storage, project_id)


@router.post("/sessions/{session_id}/end", response_model=VotingSession)
async def end_session(session_id: int, storage: Storage = Depends(get_storage)) -> VotingSession:
    return await voting.end_session(storage, session_id)


@router.get("/sessions/{session_id}/counts", response_model=VoteCounts)
async def session_counts(
    session_id: int,
    voter_token: Optional[str] = Query(None, alias="voterToken"),
    storage: Storage = Depends(get_storage),
) -> VoteCounts:
    return await voting.get_vote_counts(storage, session_id, voter_token)


@router.post("/vote", response_model=Vote)
async def cast_vote(body: VoteRequest, storage: Storage = Depends(get_storage)) -> Vote:
    return await voting.cast_vote(storage, body)


@router.delete("/vote", response_model=MessageResponse)
async def remove_vote(body: VoteRequest, storage: Storage = Depends(get_storage)) -> MessageResponse:
    await voting.remove_vote(storage, body)
    return MessageResponse(message="Vote removed successfully")


@router.post("/vote/toggle", response_model=ToggleVoteResponse)
async def toggle_vote(body: VoteRequest, storage: Storage = Depends(get_storage)) -> ToggleVoteResponse:
    return await voting.toggle_vote(storage, body)


@router.get("/votes/{session_id}", response_model=list[Vote])
async def list_votes(session_id: int, storage: Storage = Depends(get_storage)) -> list[Vote]:
    """Raw votes for client-side aggregation."""
    await voting.require_session(storage, session_id)
    return await storage.list_votes(session_id)
