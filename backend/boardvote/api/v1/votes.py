"""
Vote endpoints.

Lifecycle calls go through VotingService; reads go through VoteQueries.
VotingError subclasses are rendered by the handler in boardvote.main.
"""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Request, Query, status

from boardvote.core.deps import get_current_actor, get_voting_service, get_vote_queries
from boardvote.core.permissions import require_vote_manager
from boardvote.core.security import Actor
from boardvote.models.vote import VoteStatus, VoteEntityType, DECIDED_STATUSES
from boardvote.schemas.voting import (
    VoteCreate,
    VoteConfigure,
    VoteOpen,
    VoteCastRequest,
    VoteCloseRequest,
    VoteReopenRequest,
    VoteResponse,
    VoteDetailResponse,
    VoteWithResultsResponse,
    VoteResultsResponse,
    VoteActionResponse,
    CastResponse,
    CloseResponse,
    ReconcileResponse,
    OverdueVoteResponse,
)
from boardvote.services.eligibility import RosterEntry, StaticRosterProvider, HttpRosterProvider
from boardvote.services.exceptions import VoteNotOpen
from boardvote.services.queries import VoteQueries, ballot_to_response
from boardvote.services.voting import VotingService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# LIFECYCLE
# ============================================================================

@router.post("/votes", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def create_vote(
    data: VoteCreate,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
):
    """Create a draft vote."""
    vote = await service.create(actor, data)
    return VoteResponse.model_validate(vote)


@router.put("/votes/{vote_id}/configure", response_model=VoteDetailResponse)
async def configure_vote(
    vote_id: str,
    rules: VoteConfigure,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
    queries: VoteQueries = Depends(get_vote_queries),
):
    """Replace the vote's rules and options. Rejected once the vote has opened."""
    await service.configure(actor, vote_id, rules)
    return await queries.get_vote(vote_id)


@router.post("/votes/{vote_id}/open", response_model=VoteDetailResponse)
async def open_vote(
    vote_id: str,
    data: Optional[VoteOpen] = None,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
    queries: VoteQueries = Depends(get_vote_queries),
):
    """
    Open the vote and freeze the eligible voter roster.

    The roster comes from the request body when given, otherwise from the
    board directory.
    """
    if data is not None and data.roster is not None:
        provider = StaticRosterProvider([RosterEntry(**entry.model_dump()) for entry in data.roster])
    else:
        provider = HttpRosterProvider()
    await service.open(actor, vote_id, provider)
    return await queries.get_vote(vote_id)


@router.post("/votes/{vote_id}/cast", response_model=CastResponse)
async def cast_vote(
    vote_id: str,
    data: VoteCastRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: VotingService = Depends(get_voting_service),
):
    """Cast (or, when allowed, change) the caller's ballot. The receipt always shows the caller their own ballot."""
    receipt = await service.cast(
        actor,
        vote_id,
        data.option_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return CastResponse(
        ballot=ballot_to_response(receipt.ballot, anonymous=False),
        changed=receipt.changed,
        vote_status=receipt.vote.status,
    )


@router.post("/votes/{vote_id}/close", response_model=CloseResponse)
async def close_vote(
    vote_id: str,
    data: Optional[VoteCloseRequest] = None,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
    queries: VoteQueries = Depends(get_vote_queries),
):
    """Close the vote and compute results. A vote someone else already closed is reported as closed."""
    force = data.force if data is not None else False
    already_closed = False
    try:
        receipt = await service.close(actor, vote_id, force=force)
        vote = receipt.vote
    except VoteNotOpen as e:
        if e.current_status not in DECIDED_STATUSES:
            raise
        logger.info(f"Close of vote {vote_id} by {actor.user_id} found it already {e.current_status.value}")
        already_closed = True
        vote = await queries.store.get_vote(vote_id)

    return CloseResponse(
        vote=VoteResponse.model_validate(vote),
        results=await queries.get_results(vote_id),
        already_closed=already_closed,
    )


@router.post("/votes/{vote_id}/reopen", response_model=VoteResponse)
async def reopen_vote(
    vote_id: str,
    data: VoteReopenRequest,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
):
    """Reopen a closed vote. A reason is mandatory and goes into the audit log."""
    vote = await service.reopen(actor, vote_id, data.reason)
    return VoteResponse.model_validate(vote)


@router.post("/votes/{vote_id}/archive", response_model=VoteResponse)
async def archive_vote(
    vote_id: str,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
):
    vote = await service.archive(actor, vote_id)
    return VoteResponse.model_validate(vote)


@router.delete("/votes/{vote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vote(
    vote_id: str,
    actor: Actor = Depends(require_vote_manager),
    service: VotingService = Depends(get_voting_service),
):
    """Delete a vote that was never opened."""
    await service.delete(actor, vote_id)
    return None


# ============================================================================
# READS
# ============================================================================

@router.get("/votes/overdue", response_model=list[OverdueVoteResponse])
async def list_overdue_votes(
    now: Optional[datetime] = None,
    queries: VoteQueries = Depends(get_vote_queries),
):
    """Open votes past their time limit."""
    return await queries.get_overdue_votes(now)


@router.get("/votes/{vote_id}", response_model=VoteDetailResponse)
async def get_vote(vote_id: str, queries: VoteQueries = Depends(get_vote_queries)):
    return await queries.get_vote(vote_id)


@router.get("/votes/{vote_id}/results", response_model=VoteResultsResponse)
async def get_vote_results(vote_id: str, queries: VoteQueries = Depends(get_vote_queries)):
    return await queries.get_results(vote_id)


@router.get("/votes/{vote_id}/results/reconcile", response_model=ReconcileResponse)
async def reconcile_vote_results(vote_id: str, queries: VoteQueries = Depends(get_vote_queries)):
    """Re-tally from the ledger and compare with the cached results."""
    return await queries.reconcile_results(vote_id)


@router.get("/votes/{vote_id}/actions", response_model=list[VoteActionResponse])
async def get_vote_actions(vote_id: str, queries: VoteQueries = Depends(get_vote_queries)):
    """Audit timeline, oldest first."""
    return await queries.get_actions(vote_id)


@router.get("/entities/{entity_type}/{entity_id}/votes", response_model=list[VoteResponse])
async def list_entity_votes(
    entity_type: VoteEntityType,
    entity_id: str,
    queries: VoteQueries = Depends(get_vote_queries),
):
    return await queries.get_votes_by_entity(entity_type, entity_id)


@router.get("/meetings/{meeting_id}/votes", response_model=list[VoteWithResultsResponse])
async def list_meeting_votes(
    meeting_id: str,
    vote_status: Optional[VoteStatus] = Query(None, alias="status"),
    queries: VoteQueries = Depends(get_vote_queries),
):
    return await queries.get_votes_by_meeting(meeting_id, vote_status)
