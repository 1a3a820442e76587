"""
Configuration store: votes, their configuration and options.

Configuration and options are replaced wholesale while a vote is editable.
Status changes go through `transition()`, a compare-and-swap on the status
column, so concurrent callers cannot both move a vote out of the same state.
"""
from typing import Optional, Sequence
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from boardvote.models.vote import Vote, VoteStatus, VoteOutcome, VoteEntityType
from boardvote.models.vote_configuration import VoteConfiguration, VoteOption
from boardvote.services.exceptions import VoteNotFound


class ConfigurationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_vote(self, vote: Vote) -> Vote:
        self.db.add(vote)
        await self.db.flush()
        return vote

    async def get_vote(self, vote_id: str, lock: bool = False) -> Vote:
        """Load a vote fresh from the database; `lock` takes a row lock where supported."""
        query = select(Vote).where(Vote.id == vote_id).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        vote = result.scalar_one_or_none()
        if vote is None:
            raise VoteNotFound(f"Vote {vote_id} not found")
        return vote

    async def transition(
        self,
        vote_id: str,
        source: Sequence[VoteStatus],
        target: VoteStatus,
        **values,
    ) -> bool:
        """Move a vote from any of `source` to `target`. Returns False if another caller won."""
        result = await self.db.execute(
            update(Vote)
            .where(Vote.id == vote_id, Vote.status.in_(list(source)))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_outcome(self, vote_id: str, outcome: VoteOutcome) -> None:
        await self.db.execute(
            update(Vote)
            .where(Vote.id == vote_id)
            .values(outcome=outcome)
            .execution_options(synchronize_session=False)
        )

    async def get_configuration(self, vote_id: str) -> Optional[VoteConfiguration]:
        result = await self.db.execute(
            select(VoteConfiguration)
            .where(VoteConfiguration.vote_id == vote_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_options(self, vote_id: str) -> list[VoteOption]:
        result = await self.db.execute(
            select(VoteOption)
            .where(VoteOption.vote_id == vote_id)
            .order_by(VoteOption.display_order, VoteOption.id)
        )
        return list(result.scalars().all())

    async def replace_configuration(
        self,
        vote_id: str,
        configuration: VoteConfiguration,
        options: list[VoteOption],
    ) -> None:
        await self._delete_configuration(vote_id)
        configuration.vote_id = vote_id
        self.db.add(configuration)
        for option in options:
            option.vote_id = vote_id
            self.db.add(option)
        await self.db.flush()

    async def delete_vote(self, vote_id: str) -> None:
        await self._delete_configuration(vote_id)
        await self.db.execute(delete(Vote).where(Vote.id == vote_id))
        await self.db.flush()

    async def _delete_configuration(self, vote_id: str) -> None:
        await self.db.execute(delete(VoteOption).where(VoteOption.vote_id == vote_id))
        await self.db.execute(delete(VoteConfiguration).where(VoteConfiguration.vote_id == vote_id))
        await self.db.flush()

    async def list_by_entity(self, entity_type: VoteEntityType, entity_id: str) -> list[Vote]:
        result = await self.db.execute(
            select(Vote)
            .where(Vote.entity_type == entity_type, Vote.entity_id == entity_id)
            .order_by(Vote.created.desc())
        )
        return list(result.scalars().all())

    async def list_by_meeting(self, meeting_id: str, status: Optional[VoteStatus] = None) -> list[Vote]:
        query = select(Vote).where(Vote.meeting_id == meeting_id)
        if status is not None:
            query = query.where(Vote.status == status)
        result = await self.db.execute(query.order_by(Vote.created.desc()))
        return list(result.scalars().all())

    async def list_open_with_configuration(self) -> list[tuple[Vote, VoteConfiguration]]:
        result = await self.db.execute(
            select(Vote, VoteConfiguration)
            .join(VoteConfiguration, VoteConfiguration.vote_id == Vote.id)
            .where(Vote.status == VoteStatus.OPEN)
            .order_by(Vote.opened_at)
        )
        return [(vote, configuration) for vote, configuration in result.all()]
