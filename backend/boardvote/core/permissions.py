"""Role checks for vote management."""
from fastapi import Depends, HTTPException, status

from boardvote.core.config import settings
from boardvote.core.deps import get_current_actor
from boardvote.core.security import Actor


def ensure_vote_manager(actor: Actor) -> Actor:
    """Raise 403 unless the actor's role may organize votes."""
    if not actor.is_vote_manager:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires one of roles: {', '.join(settings.VOTE_MANAGER_ROLES)}",
        )
    return actor


async def require_vote_manager(actor: Actor = Depends(get_current_actor)) -> Actor:
    return ensure_vote_manager(actor)
