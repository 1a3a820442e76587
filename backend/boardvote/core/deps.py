"""
FastAPI dependencies: current actor and services.
"""
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from boardvote.core.security import Actor, actor_from_token
from boardvote.db.base import get_db
from boardvote.services.queries import VoteQueries
from boardvote.services.voting import VotingService

security = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """Resolve the caller from the bearer token. 401 if missing or invalid."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    actor = actor_from_token(credentials.credentials)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


async def get_voting_service(db: AsyncSession = Depends(get_db)) -> VotingService:
    return VotingService(db)


async def get_vote_queries(db: AsyncSession = Depends(get_db)) -> VoteQueries:
    return VoteQueries(db)
