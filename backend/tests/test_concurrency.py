"""
Tests for concurrent operations on the same vote.

Each competing caller gets its own session, like two API requests would,
and they share one lock registry.
"""
import asyncio

import pytest

from boardvote.core.security import Actor
from boardvote.models.ledger import VoteActionType
from boardvote.models.vote import VoteStatus
from boardvote.services.exceptions import AlreadyVoted, VoteNotOpen
from boardvote.services.voting import VotingService, VoteLockRegistry

from conftest import open_vote


class TestLockRegistry:
    def test_same_vote_shares_a_lock(self):
        registry = VoteLockRegistry()
        first = registry.get("vote-a")
        assert registry.get("vote-a") is first

    def test_different_votes_do_not_share(self):
        registry = VoteLockRegistry()
        first = registry.get("vote-a")
        second = registry.get("vote-b")
        assert first is not second


class TestConcurrentVoting:
    @pytest.mark.asyncio
    async def test_last_two_voters_close_once(
        self, service, db_session, session_maker, vote_locks: VoteLockRegistry,
        chair: Actor, voters: list[Actor],
    ):
        vote, options = await open_vote(service, chair, voters[:2], auto_close_when_all_voted=True)
        vote_id = vote.id
        await db_session.commit()

        async with session_maker() as first_session, session_maker() as second_session:
            first = VotingService(first_session, locks=vote_locks)
            second = VotingService(second_session, locks=vote_locks)
            receipts = await asyncio.gather(
                first.cast(voters[0], vote_id, options["Yes"]),
                second.cast(voters[1], vote_id, options["No"]),
            )

        assert sum(1 for r in receipts if r.summary is not None) == 1

        async with session_maker() as session:
            reader = VotingService(session, locks=vote_locks)
            assert (await reader.store.get_vote(vote_id)).status == VoteStatus.CLOSED
            assert await reader.ledger.count_casts(vote_id) == 2
            actions = [a.action_type for a in await reader.ledger.list_actions(vote_id)]
            assert actions.count(VoteActionType.CLOSED) == 1
            assert actions.count(VoteActionType.RESULTS_GENERATED) == 1
            summary = await reader.results.get_summary(vote_id)
            assert summary.total_voted == 2

    @pytest.mark.asyncio
    async def test_concurrent_close(
        self, service, db_session, session_maker, vote_locks: VoteLockRegistry,
        chair: Actor, voters: list[Actor],
    ):
        vote, options = await open_vote(service, chair, voters[:3])
        vote_id = vote.id
        await service.cast(voters[0], vote_id, options["Yes"])
        await db_session.commit()

        async with session_maker() as first_session, session_maker() as second_session:
            first = VotingService(first_session, locks=vote_locks)
            second = VotingService(second_session, locks=vote_locks)
            outcomes = await asyncio.gather(
                first.close(chair, vote_id),
                second.close(chair, vote_id),
                return_exceptions=True,
            )

        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], VoteNotOpen)
        assert failures[0].current_status == VoteStatus.CLOSED

        async with session_maker() as session:
            reader = VotingService(session, locks=vote_locks)
            actions = [a.action_type for a in await reader.ledger.list_actions(vote_id)]
            assert actions.count(VoteActionType.RESULTS_GENERATED) == 1

    @pytest.mark.asyncio
    async def test_concurrent_casts_get_distinct_sequences(
        self, service, db_session, session_maker, vote_locks: VoteLockRegistry,
        chair: Actor, voters: list[Actor],
    ):
        vote, options = await open_vote(service, chair, voters[:5])
        vote_id = vote.id
        await db_session.commit()

        sessions = [session_maker() for _ in voters[:5]]
        try:
            await asyncio.gather(*(
                VotingService(session, locks=vote_locks).cast(voter, vote_id, options["Yes"])
                for session, voter in zip(sessions, voters[:5])
            ))
        finally:
            for session in sessions:
                await session.close()

        async with session_maker() as session:
            reader = VotingService(session, locks=vote_locks)
            assert await reader.ledger.count_voters(vote_id) == 5
            sequences = [a.sequence for a in await reader.ledger.list_actions(vote_id)]
            assert sequences == list(range(1, len(sequences) + 1))

    @pytest.mark.asyncio
    async def test_double_submit_from_same_voter(
        self, service, db_session, session_maker, vote_locks: VoteLockRegistry,
        chair: Actor, voters: list[Actor],
    ):
        vote, options = await open_vote(service, chair, voters[:3], allow_change_vote=False)
        vote_id = vote.id
        await db_session.commit()

        async with session_maker() as first_session, session_maker() as second_session:
            first = VotingService(first_session, locks=vote_locks)
            second = VotingService(second_session, locks=vote_locks)
            outcomes = await asyncio.gather(
                first.cast(voters[0], vote_id, options["Yes"]),
                second.cast(voters[0], vote_id, options["No"]),
                return_exceptions=True,
            )

        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyVoted)

        async with session_maker() as session:
            reader = VotingService(session, locks=vote_locks)
            assert await reader.ledger.count_casts(vote_id) == 1
            casts = await reader.ledger.list_casts(vote_id)
            accepted = next(o for o in outcomes if not isinstance(o, Exception))
            assert casts[0].option_id == accepted.ballot.option_id
            actions = [a.action_type for a in await reader.ledger.list_actions(vote_id)]
            assert actions.count(VoteActionType.VOTE_CAST) == 1
