"""
Read projections over the configuration store, ledger and results cache.

Nothing here writes. Anonymous votes never expose who cast which ballot.
"""
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from boardvote.models.base import as_utc, utcnow
from boardvote.models.ledger import VoteCast
from boardvote.models.vote import Vote, VoteStatus, VoteOutcome, VoteEntityType, DECIDED_STATUSES
from boardvote.models.vote_configuration import VoteConfiguration
from boardvote.schemas.voting import (
    VoteResponse,
    VoteConfigurationResponse,
    VoteOptionResponse,
    EligibilityResponse,
    BallotResponse,
    VoteResultResponse,
    VoteResultsSummaryResponse,
    VoteResultsResponse,
    VoteDetailResponse,
    VoteWithResultsResponse,
    VoteActionResponse,
    ReconcileResponse,
    OverdueVoteResponse,
)
from boardvote.services.configuration_store import ConfigurationStore
from boardvote.services.exceptions import VoteNotFound
from boardvote.services.ledger import LedgerStore
from boardvote.services.results_store import ResultsStore
from boardvote.services.tally import tally, TallyResult


def closes_at(vote: Vote, configuration: Optional[VoteConfiguration]) -> Optional[datetime]:
    """Advisory deadline of an open vote, if it has a time limit."""
    if configuration is None or not configuration.time_limit or vote.opened_at is None:
        return None
    return as_utc(vote.opened_at) + timedelta(minutes=configuration.time_limit)


def ballot_to_response(cast: VoteCast, anonymous: bool) -> BallotResponse:
    # Anonymous ballots carry only their option; weight, sequence and time
    # would match them to the roster or the audit log
    if anonymous:
        return BallotResponse(option_id=cast.option_id)
    return BallotResponse(
        id=cast.id,
        option_id=cast.option_id,
        user_id=cast.user_id,
        user_name=cast.user_name,
        weight_applied=cast.weight_applied,
        ballot_sequence=cast.ballot_sequence,
        cast_at=as_utc(cast.cast_at),
    )


def tally_to_response(vote: Vote, result: TallyResult) -> VoteResultsResponse:
    return VoteResultsResponse(
        vote_id=vote.id,
        status=vote.status,
        summary=VoteResultsSummaryResponse(
            total_eligible=result.total_eligible,
            total_voted=result.total_voted,
            total_weight=result.total_weight,
            quorum_required=result.quorum_required,
            quorum_met=result.quorum_met,
            threshold_percentage=result.threshold_percentage,
            outcome=result.outcome,
            winning_option_id=result.winning_option_id,
            computed_at=as_utc(result.computed_at),
        ),
        results=[
            VoteResultResponse(
                option_id=line.option_id,
                option_label=line.option_label,
                display_order=line.display_order,
                total_weight=line.total_weight,
                vote_count=line.vote_count,
                percentage=line.percentage,
                is_winner=line.is_winner,
            )
            for line in result.results
        ],
    )


class VoteQueries:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = ConfigurationStore(db)
        self.ledger = LedgerStore(db)
        self.results = ResultsStore(db)

    async def get_vote(self, vote_id: str) -> VoteDetailResponse:
        vote = await self.store.get_vote(vote_id)
        configuration = await self.store.get_configuration(vote_id)
        anonymous = bool(configuration and configuration.anonymous)

        options = await self.store.get_options(vote_id)
        ballots = await self.ledger.effective_casts(vote_id)
        if anonymous:
            # Roster order must not line up with ballot order
            position = {o.id: index for index, o in enumerate(options)}
            ballots = sorted(ballots, key=lambda b: (position.get(b.option_id, len(position)), b.option_id))

        return VoteDetailResponse(
            vote=VoteResponse.model_validate(vote),
            configuration=(
                VoteConfigurationResponse.model_validate(configuration) if configuration else None
            ),
            options=[VoteOptionResponse.model_validate(o) for o in options],
            eligibility=[
                EligibilityResponse.model_validate(e) for e in await self.ledger.list_eligibility(vote_id)
            ],
            ballots=[ballot_to_response(b, anonymous) for b in ballots],
            results=await self._results(vote),
            closes_at=closes_at(vote, configuration) if vote.status == VoteStatus.OPEN else None,
        )

    async def get_results(self, vote_id: str) -> VoteResultsResponse:
        """Cached results of the last close, or an all-zero summary if the vote never closed."""
        vote = await self.store.get_vote(vote_id)
        return await self._results(vote)

    async def _results(self, vote: Vote) -> VoteResultsResponse:
        summary = await self.results.get_summary(vote.id)
        if summary is None:
            options = await self.store.get_options(vote.id)
            return VoteResultsResponse(
                vote_id=vote.id,
                status=vote.status,
                summary=VoteResultsSummaryResponse(),
                results=[
                    VoteResultResponse(
                        option_id=o.id,
                        option_label=o.label,
                        display_order=o.display_order,
                        total_weight=0.0,
                        vote_count=0,
                        percentage=0.0,
                        is_winner=False,
                    )
                    for o in options
                ],
            )

        summary_response = VoteResultsSummaryResponse.model_validate(summary)
        summary_response.computed_at = as_utc(summary.computed_at)
        return VoteResultsResponse(
            vote_id=vote.id,
            status=vote.status,
            summary=summary_response,
            results=[VoteResultResponse.model_validate(r) for r in await self.results.get_results(vote.id)],
        )

    async def get_actions(self, vote_id: str) -> list[VoteActionResponse]:
        """Audit timeline. Still readable after a draft has been deleted."""
        actions = await self.ledger.list_actions(vote_id)
        if not actions:
            # Raises VoteNotFound for unknown ids
            await self.store.get_vote(vote_id)
        return [
            VoteActionResponse(
                id=a.id,
                vote_id=a.vote_id,
                sequence=a.sequence,
                action_type=a.action_type,
                performed_by_id=a.performed_by_id,
                performed_by_name=a.performed_by_name,
                metadata=a.details or {},
                created_at=as_utc(a.created_at),
            )
            for a in actions
        ]

    async def get_votes_by_entity(self, entity_type: VoteEntityType, entity_id: str) -> list[VoteResponse]:
        votes = await self.store.list_by_entity(entity_type, entity_id)
        return [VoteResponse.model_validate(v) for v in votes]

    async def get_votes_by_meeting(
        self,
        meeting_id: str,
        status: Optional[VoteStatus] = None,
    ) -> list[VoteWithResultsResponse]:
        """Votes of a meeting with their rules, options and current results."""
        items = []
        for vote in await self.store.list_by_meeting(meeting_id, status):
            configuration = await self.store.get_configuration(vote.id)
            items.append(VoteWithResultsResponse(
                vote=VoteResponse.model_validate(vote),
                configuration=(
                    VoteConfigurationResponse.model_validate(configuration) if configuration else None
                ),
                options=[VoteOptionResponse.model_validate(o) for o in await self.store.get_options(vote.id)],
                results=await self._results(vote),
            ))
        return items

    async def get_overdue_votes(self, now: Optional[datetime] = None) -> list[OverdueVoteResponse]:
        """Open votes whose time limit has passed, for an external scheduler to close."""
        now = as_utc(now) or utcnow()
        overdue = []
        for vote, configuration in await self.store.list_open_with_configuration():
            deadline = closes_at(vote, configuration)
            if deadline is not None and deadline <= now:
                overdue.append(OverdueVoteResponse(
                    vote=VoteResponse.model_validate(vote),
                    time_limit=configuration.time_limit,
                    closes_at=deadline,
                ))
        return overdue

    async def reconcile_results(self, vote_id: str) -> ReconcileResponse:
        """Re-tally the ledger and compare with the cached results."""
        vote = await self.store.get_vote(vote_id)
        configuration = await self.store.get_configuration(vote_id)
        if configuration is None:
            raise VoteNotFound(f"Vote {vote_id} has no configuration to tally")

        cached_summary = await self.results.get_summary(vote_id)
        computed = tally(
            options=await self.store.get_options(vote_id),
            eligibility=await self.ledger.list_eligibility(vote_id),
            ballots=await self.ledger.effective_casts(vote_id),
            rules=configuration,
            computed_at=as_utc(cached_summary.computed_at) if cached_summary else utcnow(),
        )
        computed_response = tally_to_response(vote, computed)

        if cached_summary is None:
            # A vote that has ever closed carries an outcome and must have cached results
            decided = vote.status in DECIDED_STATUSES or vote.outcome != VoteOutcome.NONE
            return ReconcileResponse(
                vote_id=vote_id,
                consistent=not decided,
                mismatches=["summary"] if decided else [],
                cached=None,
                computed=computed_response,
            )

        cached_response = await self._results(vote)
        mismatches = []
        summary_fields = (
            "total_eligible", "total_voted", "total_weight", "quorum_required",
            "quorum_met", "threshold_percentage", "outcome", "winning_option_id",
        )
        for name in summary_fields:
            if getattr(cached_response.summary, name) != getattr(computed_response.summary, name):
                mismatches.append(f"summary.{name}")

        cached_lines = {r.option_id: r for r in cached_response.results}
        for line in computed_response.results:
            cached_line = cached_lines.pop(line.option_id, None)
            if cached_line is None:
                mismatches.append(f"results.{line.option_id}")
                continue
            for name in ("total_weight", "vote_count", "percentage", "is_winner"):
                if getattr(cached_line, name) != getattr(line, name):
                    mismatches.append(f"results.{line.option_id}.{name}")
        mismatches.extend(f"results.{option_id}" for option_id in cached_lines)

        return ReconcileResponse(
            vote_id=vote_id,
            consistent=not mismatches,
            mismatches=mismatches,
            cached=cached_response,
            computed=computed_response,
        )
