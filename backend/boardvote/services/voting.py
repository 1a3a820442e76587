"""
Vote lifecycle controller.

The only writer of the configuration store, the ledger and the results
cache. Each public operation is one transaction, committed here:

    draft -> configured -> open -> closed -> archived
                                     |
                                     +-> open (reopen, reason required)

Operations on the same vote are serialized in-process by a per-vote
asyncio.Lock and across processes by a row lock on the vote plus a
compare-and-swap on its status. Only the caller that wins the swap from
`open` to `closed` tallies. Serialization conflicts (IntegrityError,
OperationalError) are retried a bounded number of times; lifecycle errors
are never retried.
"""
import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from boardvote.core.config import settings
from boardvote.core.security import Actor
from boardvote.models.base import utcnow
from boardvote.models.ledger import VoteActionType, VoteCast
from boardvote.models.vote import Vote, VoteStatus, VoteOutcome, EDITABLE_STATUSES
from boardvote.models.vote_configuration import (
    VoteConfiguration,
    VoteOption,
    VotingMethod,
    OptionKind,
    PASSING_RULE_THRESHOLDS,
)
from boardvote.models.vote_result import VoteResultsSummary
from boardvote.schemas.voting import VoteCreate, VoteConfigure
from boardvote.services.configuration_store import ConfigurationStore
from boardvote.services.eligibility import RosterProvider, build_eligibility
from boardvote.services.exceptions import (
    VotingError,
    InvalidTransition,
    ConfigurationLocked,
    InvalidConfiguration,
    EmptyEligibility,
    VoteNotOpen,
    NotEligible,
    AlreadyVoted,
    InvalidOption,
    ReasonRequired,
    CannotDeleteAfterOpening,
    TransactionConflict,
)
from boardvote.services.ledger import LedgerStore
from boardvote.services.results_store import ResultsStore
from boardvote.services.tally import tally, TallyResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOSE_FORCED = "force_closed"
CLOSE_BY_ORGANIZER = "closed_by_organizer"
CLOSE_ALL_VOTED = "all_voters_voted"


class VoteLockRegistry:
    """Per-vote asyncio locks. A lock lives only while someone holds a reference to it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, vote_id: str) -> asyncio.Lock:
        lock = self._locks.get(vote_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[vote_id] = lock
        return lock


vote_locks = VoteLockRegistry()


@dataclass
class CastReceipt:
    ballot: VoteCast
    changed: bool
    vote: Vote
    summary: Optional[VoteResultsSummary] = None


@dataclass
class CloseReceipt:
    vote: Vote
    summary: VoteResultsSummary
    result: TallyResult


def build_options(rules: VoteConfigure) -> list[VoteOption]:
    """Ballot options for a rule set, in display order."""
    method = rules.voting_method
    if method in (VotingMethod.YES_NO, VotingMethod.YES_NO_ABSTAIN):
        specs = [("Yes", None, OptionKind.AFFIRMATIVE), ("No", None, OptionKind.NEGATIVE)]
    else:
        labels = [o.label.strip() for o in rules.options]
        if len(labels) < 2:
            raise InvalidConfiguration("Multiple choice votes need at least two options")
        if len({label.lower() for label in labels}) != len(labels):
            raise InvalidConfiguration("Option labels must be unique")
        specs = [(o.label.strip(), o.description, OptionKind.CHOICE) for o in rules.options]

    if method != VotingMethod.YES_NO and rules.allow_abstain:
        specs.append(("Abstain", None, OptionKind.ABSTAIN))

    return [
        VoteOption(label=label, description=description, display_order=index, kind=kind)
        for index, (label, description, kind) in enumerate(specs)
    ]


def build_configuration(rules: VoteConfigure) -> VoteConfiguration:
    if rules.voting_method == VotingMethod.RANKED:
        raise InvalidConfiguration("Ranked voting is not supported")
    if rules.voting_method != VotingMethod.MULTIPLE_CHOICE and rules.options:
        raise InvalidConfiguration(f"Options are generated for {rules.voting_method.value} votes")
    if not 0 <= rules.quorum_percentage <= 100:
        raise InvalidConfiguration("quorum_percentage must be between 0 and 100")

    threshold = rules.pass_threshold_percentage
    if threshold is None:
        threshold = PASSING_RULE_THRESHOLDS[rules.passing_rule]
    if not 0 <= threshold <= 100:
        raise InvalidConfiguration("pass_threshold_percentage must be between 0 and 100")

    return VoteConfiguration(
        voting_method=rules.voting_method,
        quorum_required=rules.quorum_required,
        quorum_percentage=float(rules.quorum_percentage),
        passing_rule=rules.passing_rule,
        pass_threshold_percentage=float(threshold),
        anonymous=rules.anonymous,
        allow_abstain=rules.allow_abstain,
        allow_change_vote=rules.allow_change_vote,
        time_limit=rules.time_limit,
        auto_close_when_all_voted=rules.auto_close_when_all_voted,
    )


class VotingService:
    def __init__(self, db: AsyncSession, locks: Optional[VoteLockRegistry] = None):
        self.db = db
        self.locks = locks or vote_locks
        self.store = ConfigurationStore(db)
        self.ledger = LedgerStore(db)
        self.results = ResultsStore(db)

    # =========================================================================
    # TRANSACTION HANDLING
    # =========================================================================

    async def _run(self, vote_id: Optional[str], operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` as one committed transaction, holding the vote's lock."""
        if vote_id is None:
            return await self._attempt(vote_id, operation, fn)
        async with self.locks.get(vote_id):
            return await self._attempt(vote_id, operation, fn)

    async def _attempt(self, vote_id: Optional[str], operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempts = max(1, settings.TRANSACTION_RETRY_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                result = await fn()
                await self.db.commit()
                return result
            except VotingError:
                await self.db.rollback()
                raise
            except (IntegrityError, OperationalError) as e:
                await self.db.rollback()
                if attempt == attempts:
                    logger.error(f"{operation} on vote {vote_id} failed after {attempts} attempts: {e}")
                    raise TransactionConflict(
                        f"Concurrent update conflict on vote {vote_id}; try again"
                    ) from e
                logger.warning(f"{operation} on vote {vote_id} conflicted (attempt {attempt}/{attempts}); retrying")
        raise TransactionConflict(f"Concurrent update conflict on vote {vote_id}")

    async def _log(self, vote_id: str, action_type: VoteActionType, actor: Actor, details: Optional[dict] = None):
        return await self.ledger.append_action(
            vote_id,
            action_type,
            performed_by_id=actor.user_id,
            performed_by_name=actor.name,
            details=details,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def create(self, actor: Actor, data: VoteCreate) -> Vote:
        async def _create() -> Vote:
            vote = Vote(
                entity_type=data.entity_type,
                entity_id=data.entity_id,
                meeting_id=data.meeting_id,
                board_id=data.board_id,
                title=data.title,
                description=data.description,
                status=VoteStatus.DRAFT,
                outcome=VoteOutcome.NONE,
                created_by_id=actor.user_id,
                created_by_name=actor.name,
            )
            await self.store.add_vote(vote)
            await self._log(vote.id, VoteActionType.CREATED, actor, {"title": vote.title})
            return vote

        vote = await self._run(None, "create", _create)
        logger.info(f"Vote {vote.id} created by {actor.user_id}")
        return vote

    async def configure(self, actor: Actor, vote_id: str, rules: VoteConfigure) -> Vote:
        """Replace the configuration and options wholesale. Only draft or configured votes."""
        async def _configure() -> Vote:
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status not in EDITABLE_STATUSES:
                raise ConfigurationLocked(f"Vote is {vote.status.value}; configuration is locked")

            configuration = build_configuration(rules)
            options = build_options(rules)
            await self.store.replace_configuration(vote_id, configuration, options)

            if not await self.store.transition(vote_id, EDITABLE_STATUSES, VoteStatus.CONFIGURED):
                raise ConfigurationLocked("Vote was opened concurrently; configuration is locked")

            await self._log(vote_id, VoteActionType.CONFIGURED, actor, {
                **configuration.snapshot(),
                "options": [o.label for o in options],
            })
            return await self.store.get_vote(vote_id)

        vote = await self._run(vote_id, "configure", _configure)
        logger.info(f"Vote {vote_id} configured by {actor.user_id} ({rules.voting_method.value})")
        return vote

    async def open(self, actor: Actor, vote_id: str, roster_provider: RosterProvider) -> Vote:
        """Snapshot the roster and open the vote."""
        roster = None

        async def _open() -> Vote:
            nonlocal roster
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status != VoteStatus.CONFIGURED:
                raise InvalidTransition(f"Cannot open a vote that is {vote.status.value}")

            if roster is None:
                roster = await roster_provider.get_roster(vote)
            rows = build_eligibility(vote_id, roster)
            eligible = [r for r in rows if r.eligible]
            if not eligible:
                raise EmptyEligibility("No eligible voters in the roster")

            await self.ledger.add_eligibility(rows)

            now = utcnow()
            if not await self.store.transition(vote_id, [VoteStatus.CONFIGURED], VoteStatus.OPEN, opened_at=now):
                raise InvalidTransition("Vote changed status while opening")

            await self._log(vote_id, VoteActionType.OPENED, actor, {
                "total_eligible": len(eligible),
                "total_weight": sum(r.weight for r in eligible),
            })
            return await self.store.get_vote(vote_id)

        vote = await self._run(vote_id, "open", _open)
        logger.info(f"Vote {vote_id} opened by {actor.user_id}")
        return vote

    async def cast(
        self,
        actor: Actor,
        vote_id: str,
        option_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> CastReceipt:
        """Record a ballot for `actor`. May close the vote when everyone has voted."""
        async def _cast() -> CastReceipt:
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status != VoteStatus.OPEN:
                raise VoteNotOpen(f"Vote is {vote.status.value}", current_status=vote.status)

            configuration = await self.store.get_configuration(vote_id)
            options = {o.id: o for o in await self.store.get_options(vote_id)}
            if option_id not in options:
                raise InvalidOption(f"Option {option_id} does not belong to vote {vote_id}")

            eligibility = await self.ledger.get_eligibility(vote_id, actor.user_id)
            if eligibility is None or not eligibility.eligible:
                raise NotEligible(f"User {actor.user_id} is not eligible to vote")

            previous = await self.ledger.latest_cast(vote_id, actor.user_id)
            if previous is not None and not configuration.allow_change_vote:
                raise AlreadyVoted("You have already voted and changes are not allowed")

            ballot = await self.ledger.append_cast(
                vote_id,
                option_id,
                user_id=actor.user_id,
                user_name=eligibility.user_name,
                weight_applied=eligibility.weight,
                ip_address=ip_address,
                user_agent=user_agent,
                previous=previous,
            )

            details = {"weight": ballot.weight_applied, "ballot_sequence": ballot.ballot_sequence}
            if not configuration.anonymous:
                details["option_id"] = option_id
                if previous is not None:
                    details["previous_option_id"] = previous.option_id
            action_type = VoteActionType.VOTE_CHANGED if previous else VoteActionType.VOTE_CAST
            await self._log(vote_id, action_type, actor, details)

            summary = None
            if configuration.auto_close_when_all_voted:
                voters = await self.ledger.count_voters(vote_id)
                total_eligible = len(await self.ledger.list_eligibility(vote_id, eligible_only=True))
                if voters >= total_eligible:
                    try:
                        receipt = await self._close(actor, vote_id, CLOSE_ALL_VOTED)
                        summary = receipt.summary
                    except VoteNotOpen:
                        logger.info(f"Vote {vote_id} was already closed; auto-close skipped")

            return CastReceipt(
                ballot=ballot,
                changed=previous is not None,
                vote=await self.store.get_vote(vote_id),
                summary=summary,
            )

        receipt = await self._run(vote_id, "cast", _cast)
        logger.info(f"Ballot #{receipt.ballot.ballot_sequence} recorded on vote {vote_id}")
        if receipt.summary is not None:
            logger.info(f"Vote {vote_id} auto-closed: {receipt.summary.outcome.value}")
        return receipt

    async def close(self, actor: Actor, vote_id: str, force: bool = False) -> CloseReceipt:
        """
        Close an open vote and compute its results.

        Raises VoteNotOpen (with the current status) when the vote is not
        open, including when a concurrent close got there first.
        """
        reason = CLOSE_FORCED if force else CLOSE_BY_ORGANIZER

        async def _close() -> CloseReceipt:
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status != VoteStatus.OPEN:
                raise VoteNotOpen(f"Vote is {vote.status.value}", current_status=vote.status)
            return await self._close(actor, vote_id, reason)

        receipt = await self._run(vote_id, "close", _close)
        logger.info(f"Vote {vote_id} closed ({reason}) by {actor.user_id}: {receipt.summary.outcome.value}")
        return receipt

    async def _close(self, actor: Actor, vote_id: str, reason: str) -> CloseReceipt:
        now = utcnow()
        if not await self.store.transition(vote_id, [VoteStatus.OPEN], VoteStatus.CLOSED, closed_at=now):
            current = await self.store.get_vote(vote_id)
            raise VoteNotOpen(f"Vote is {current.status.value}", current_status=current.status)

        await self._log(vote_id, VoteActionType.CLOSED, actor, {"reason": reason})

        result = await self.compute(vote_id, computed_at=now)
        summary = await self.results.replace(vote_id, result)
        await self.store.set_outcome(vote_id, result.outcome)

        await self._log(vote_id, VoteActionType.RESULTS_GENERATED, actor, {
            "outcome": result.outcome.value,
            "total_voted": result.total_voted,
            "quorum_met": result.quorum_met,
            "winning_option_id": result.winning_option_id,
        })
        return CloseReceipt(vote=await self.store.get_vote(vote_id), summary=summary, result=result)

    async def compute(self, vote_id: str, computed_at=None) -> TallyResult:
        """Tally the ledger as it stands. Reads only."""
        configuration = await self.store.get_configuration(vote_id)
        if configuration is None:
            raise InvalidTransition(f"Vote {vote_id} has no configuration")
        return tally(
            options=await self.store.get_options(vote_id),
            eligibility=await self.ledger.list_eligibility(vote_id),
            ballots=await self.ledger.effective_casts(vote_id),
            rules=configuration,
            computed_at=computed_at,
        )

    async def reopen(self, actor: Actor, vote_id: str, reason: str) -> Vote:
        """
        Reopen a closed vote. The eligibility snapshot and ballots carry over.

        The previous outcome stays on the vote until the next close replaces it.
        """
        if not reason or not reason.strip():
            raise ReasonRequired("A reason is required to reopen a vote")
        reason = reason.strip()

        async def _reopen() -> Vote:
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status != VoteStatus.CLOSED:
                raise InvalidTransition(f"Cannot reopen a vote that is {vote.status.value}")
            previous_outcome = vote.outcome

            if not await self.store.transition(
                vote_id, [VoteStatus.CLOSED], VoteStatus.OPEN, closed_at=None,
            ):
                raise InvalidTransition("Vote changed status while reopening")

            await self._log(vote_id, VoteActionType.REOPENED, actor, {
                "reason": reason,
                "previous_outcome": previous_outcome.value,
            })
            return await self.store.get_vote(vote_id)

        vote = await self._run(vote_id, "reopen", _reopen)
        logger.info(f"Vote {vote_id} reopened by {actor.user_id}: {reason}")
        return vote

    async def archive(self, actor: Actor, vote_id: str) -> Vote:
        async def _archive() -> Vote:
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status != VoteStatus.CLOSED:
                raise InvalidTransition(f"Cannot archive a vote that is {vote.status.value}")
            if not await self.store.transition(vote_id, [VoteStatus.CLOSED], VoteStatus.ARCHIVED):
                raise InvalidTransition("Vote changed status while archiving")
            await self._log(vote_id, VoteActionType.ARCHIVED, actor, {"outcome": vote.outcome.value})
            return await self.store.get_vote(vote_id)

        vote = await self._run(vote_id, "archive", _archive)
        logger.info(f"Vote {vote_id} archived by {actor.user_id}")
        return vote

    async def delete(self, actor: Actor, vote_id: str) -> None:
        """Hard-delete a vote that never opened. The audit log keeps a `deleted` entry."""
        async def _delete() -> None:
            vote = await self.store.get_vote(vote_id, lock=True)
            if vote.status not in EDITABLE_STATUSES or await self.ledger.count_casts(vote_id) > 0:
                raise CannotDeleteAfterOpening(f"Cannot delete a vote that is {vote.status.value}")
            await self._log(vote_id, VoteActionType.DELETED, actor, {"title": vote.title})
            await self.store.delete_vote(vote_id)

        await self._run(vote_id, "delete", _delete)
        logger.info(f"Vote {vote_id} deleted by {actor.user_id}")
