"""
Results cache: the last tally written on close.
"""
from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from boardvote.models.vote_result import VoteResultsSummary, VoteResult
from boardvote.services.tally import TallyResult


class ResultsStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def replace(self, vote_id: str, result: TallyResult) -> VoteResultsSummary:
        """Swap the cached summary and per-option rows for `result`."""
        await self.db.execute(delete(VoteResult).where(VoteResult.vote_id == vote_id))
        await self.db.execute(delete(VoteResultsSummary).where(VoteResultsSummary.vote_id == vote_id))
        await self.db.flush()

        summary = VoteResultsSummary(
            vote_id=vote_id,
            total_eligible=result.total_eligible,
            total_voted=result.total_voted,
            total_weight=result.total_weight,
            quorum_required=result.quorum_required,
            quorum_met=result.quorum_met,
            threshold_percentage=result.threshold_percentage,
            outcome=result.outcome,
            winning_option_id=result.winning_option_id,
            computed_at=result.computed_at,
        )
        self.db.add(summary)
        for line in result.results:
            self.db.add(VoteResult(
                vote_id=vote_id,
                option_id=line.option_id,
                option_label=line.option_label,
                display_order=line.display_order,
                total_weight=line.total_weight,
                vote_count=line.vote_count,
                percentage=line.percentage,
                is_winner=line.is_winner,
            ))
        await self.db.flush()
        return summary

    async def get_summary(self, vote_id: str) -> Optional[VoteResultsSummary]:
        result = await self.db.execute(
            select(VoteResultsSummary)
            .where(VoteResultsSummary.vote_id == vote_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_results(self, vote_id: str) -> list[VoteResult]:
        result = await self.db.execute(
            select(VoteResult)
            .where(VoteResult.vote_id == vote_id)
            .order_by(VoteResult.display_order, VoteResult.option_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
