"""
Test configuration and fixtures for the board vote backend.
"""
import os

# Use a file-based SQLite DB to avoid :memory: multiple-connection issues
# with SQLAlchemy + aiosqlite (each new connection would see an empty DB).
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test_boardvote.db"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from boardvote.main import app
from boardvote.db.base import Base, get_db, create_engine
from boardvote.core.security import Actor, create_access_token
from boardvote.schemas.voting import VoteCreate, VoteConfigure
from boardvote.services.eligibility import RosterEntry, StaticRosterProvider
from boardvote.services.voting import VotingService, VoteLockRegistry


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test database file
    try:
        os.remove("./test_boardvote.db")
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def vote_locks() -> VoteLockRegistry:
    return VoteLockRegistry()


@pytest_asyncio.fixture
async def service(db_session: AsyncSession, vote_locks: VoteLockRegistry) -> VotingService:
    return VotingService(db_session, locks=vote_locks)


@pytest_asyncio.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client; every request gets its own session, like get_db."""
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ========== Actors ==========

@pytest.fixture
def chair() -> Actor:
    return Actor(user_id="chair-1", name="Carol Chair", role="chair")


@pytest.fixture
def voters() -> list[Actor]:
    return [Actor(user_id=f"member-{i}", name=f"Member {i}", role="member") for i in range(1, 8)]


@pytest.fixture
def chair_headers(chair: Actor) -> dict:
    token = create_access_token(subject=chair.user_id, name=chair.name, role=chair.role)
    return {"Authorization": f"Bearer {token}"}


def headers_for(actor: Actor) -> dict:
    token = create_access_token(subject=actor.user_id, name=actor.name, role=actor.role)
    return {"Authorization": f"Bearer {token}"}


def roster_for(actors: list[Actor], weight: float = 1.0) -> StaticRosterProvider:
    return StaticRosterProvider([
        RosterEntry(user_id=a.user_id, user_name=a.name, user_role=a.role, weight=weight)
        for a in actors
    ])


async def open_vote(
    service: VotingService,
    chair: Actor,
    voters: list[Actor],
    **rules,
):
    """Create, configure and open a vote; returns (vote, option ids by label).

    Ids are plain strings so they stay usable after a failed call rolls the
    session back and expires loaded rows.
    """
    vote = await service.create(chair, VoteCreate(title="Approve the budget", meeting_id="meeting-1"))
    await service.configure(chair, vote.id, VoteConfigure(**rules))
    vote = await service.open(chair, vote.id, roster_for(voters))
    options = await service.store.get_options(vote.id)
    return vote, {o.label: o.id for o in options}
