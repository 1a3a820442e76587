"""
Eligibility snapshot.

The roster is read once, when a vote opens, and frozen into
`vote_eligibility`. Later directory changes never reach an open or closed
vote.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from boardvote.core.config import settings
from boardvote.models.ledger import VoteEligibility
from boardvote.models.vote import Vote
from boardvote.services.exceptions import RosterUnavailable, InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterEntry:
    user_id: str
    user_name: str
    user_role: Optional[str] = None
    weight: float = 1.0
    eligible: bool = True


class RosterProvider(Protocol):
    async def get_roster(self, vote: Vote) -> list[RosterEntry]:
        ...


class StaticRosterProvider:
    """Roster supplied by the caller, e.g. in the open request."""

    def __init__(self, entries: list[RosterEntry]):
        self.entries = list(entries)

    async def get_roster(self, vote: Vote) -> list[RosterEntry]:
        return list(self.entries)


class HttpRosterProvider:
    """
    Roster fetched from the board directory.

    GET {base_url}/boards/{board_id}/voters?meeting_id=... returning
    {"items": [{"user_id", "user_name", "user_role", "weight", "eligible"}]}.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ROSTER_SERVICE_URL or "").rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ROSTER_TIMEOUT_SECONDS
        self.headers = headers or {}
        self.transport = transport

    async def get_roster(self, vote: Vote) -> list[RosterEntry]:
        if not self.base_url:
            raise RosterUnavailable("No roster service is configured")
        if not vote.board_id:
            raise RosterUnavailable(f"Vote {vote.id} has no board to load a roster from")

        params = {"meeting_id": vote.meeting_id} if vote.meeting_id else None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(
                    f"{self.base_url}/boards/{vote.board_id}/voters",
                    params=params,
                    headers=self.headers,
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Roster fetch failed for vote {vote.id} (board {vote.board_id}): {e}")
            raise RosterUnavailable(f"Roster service error: {e}") from e

        items = payload.get("items", []) if isinstance(payload, dict) else payload
        try:
            return [
                RosterEntry(
                    user_id=str(item["user_id"]),
                    user_name=item.get("user_name") or str(item["user_id"]),
                    user_role=item.get("user_role"),
                    weight=float(item.get("weight", 1.0)),
                    eligible=bool(item.get("eligible", True)),
                )
                for item in items
            ]
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed roster for vote {vote.id}: {e}")
            raise RosterUnavailable(f"Malformed roster: {e}") from e


def build_eligibility(vote_id: str, roster: list[RosterEntry]) -> list[VoteEligibility]:
    """
    Turn a roster into eligibility rows.

    Duplicate user ids keep the first entry. Negative weights are rejected.
    """
    rows: list[VoteEligibility] = []
    seen: set[str] = set()
    for entry in roster:
        if entry.user_id in seen:
            logger.warning(f"Duplicate roster entry for user {entry.user_id} on vote {vote_id}; keeping the first")
            continue
        if entry.weight < 0:
            raise InvalidConfiguration(f"Negative weight for user {entry.user_id}")
        seen.add(entry.user_id)
        rows.append(VoteEligibility(
            vote_id=vote_id,
            user_id=entry.user_id,
            user_name=entry.user_name,
            user_role=entry.user_role,
            weight=float(entry.weight),
            eligible=entry.eligible,
        ))
    return rows
