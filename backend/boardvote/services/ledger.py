"""
Ledger store.

Append-only access to the eligibility snapshot, ballots and the audit log.
Nothing here updates or deletes a row. Per-vote action sequences and
per-voter ballot sequences are allocated as max + 1; the unique constraints
on those columns turn a lost race into an IntegrityError that the
controller retries.
"""
from typing import Optional
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from boardvote.models.base import next_timestamp
from boardvote.models.ledger import VoteEligibility, VoteCast, VoteAction, VoteActionType


class LedgerStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # ELIGIBILITY
    # =========================================================================

    async def add_eligibility(self, rows: list[VoteEligibility]) -> None:
        self.db.add_all(rows)
        await self.db.flush()

    async def list_eligibility(self, vote_id: str, eligible_only: bool = False) -> list[VoteEligibility]:
        query = select(VoteEligibility).where(VoteEligibility.vote_id == vote_id)
        if eligible_only:
            query = query.where(VoteEligibility.eligible.is_(True))
        result = await self.db.execute(query.order_by(VoteEligibility.user_id))
        return list(result.scalars().all())

    async def get_eligibility(self, vote_id: str, user_id: str) -> Optional[VoteEligibility]:
        result = await self.db.execute(
            select(VoteEligibility).where(
                VoteEligibility.vote_id == vote_id,
                VoteEligibility.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # BALLOTS
    # =========================================================================

    async def latest_cast(self, vote_id: str, user_id: str) -> Optional[VoteCast]:
        result = await self.db.execute(
            select(VoteCast)
            .where(VoteCast.vote_id == vote_id, VoteCast.user_id == user_id)
            .order_by(VoteCast.ballot_sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def append_cast(
        self,
        vote_id: str,
        option_id: str,
        user_id: str,
        user_name: Optional[str],
        weight_applied: float,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        previous: Optional[VoteCast] = None,
    ) -> VoteCast:
        """Append a ballot after `previous` (the voter's current effective ballot, if any)."""
        cast = VoteCast(
            vote_id=vote_id,
            option_id=option_id,
            user_id=user_id,
            user_name=user_name,
            weight_applied=weight_applied,
            ballot_sequence=(previous.ballot_sequence + 1) if previous else 1,
            cast_at=next_timestamp(previous.cast_at if previous else None),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(cast)
        await self.db.flush()
        return cast

    async def effective_casts(self, vote_id: str) -> list[VoteCast]:
        """Each voter's latest ballot, ordered by user id."""
        latest = (
            select(
                VoteCast.user_id.label("user_id"),
                func.max(VoteCast.ballot_sequence).label("ballot_sequence"),
            )
            .where(VoteCast.vote_id == vote_id)
            .group_by(VoteCast.user_id)
            .subquery()
        )
        result = await self.db.execute(
            select(VoteCast)
            .join(
                latest,
                and_(
                    VoteCast.user_id == latest.c.user_id,
                    VoteCast.ballot_sequence == latest.c.ballot_sequence,
                ),
            )
            .where(VoteCast.vote_id == vote_id)
            .order_by(VoteCast.user_id)
        )
        return list(result.scalars().all())

    async def list_casts(self, vote_id: str) -> list[VoteCast]:
        """Full ballot history, oldest first."""
        result = await self.db.execute(
            select(VoteCast)
            .where(VoteCast.vote_id == vote_id)
            .order_by(VoteCast.cast_at, VoteCast.user_id, VoteCast.ballot_sequence)
        )
        return list(result.scalars().all())

    async def count_casts(self, vote_id: str) -> int:
        result = await self.db.execute(
            select(func.count(VoteCast.id)).where(VoteCast.vote_id == vote_id)
        )
        return result.scalar() or 0

    async def count_voters(self, vote_id: str) -> int:
        result = await self.db.execute(
            select(func.count(func.distinct(VoteCast.user_id))).where(VoteCast.vote_id == vote_id)
        )
        return result.scalar() or 0

    # =========================================================================
    # AUDIT LOG
    # =========================================================================

    async def append_action(
        self,
        vote_id: str,
        action_type: VoteActionType,
        performed_by_id: str,
        performed_by_name: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> VoteAction:
        last = await self._last_action(vote_id)
        action = VoteAction(
            vote_id=vote_id,
            sequence=(last.sequence + 1) if last else 1,
            action_type=action_type,
            performed_by_id=performed_by_id,
            performed_by_name=performed_by_name,
            details=details or {},
            created_at=next_timestamp(last.created_at if last else None),
        )
        self.db.add(action)
        await self.db.flush()
        return action

    async def list_actions(self, vote_id: str) -> list[VoteAction]:
        result = await self.db.execute(
            select(VoteAction)
            .where(VoteAction.vote_id == vote_id)
            .order_by(VoteAction.created_at, VoteAction.sequence)
        )
        return list(result.scalars().all())

    async def _last_action(self, vote_id: str) -> Optional[VoteAction]:
        result = await self.db.execute(
            select(VoteAction)
            .where(VoteAction.vote_id == vote_id)
            .order_by(VoteAction.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
