"""
Vote model.
"""
from typing import Optional
from datetime import datetime
from sqlalchemy import String, Text, DateTime, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column
import enum
from boardvote.models.base import BaseModel


class VoteStatus(str, enum.Enum):
    """Vote lifecycle status."""
    DRAFT = "draft"
    CONFIGURED = "configured"
    OPEN = "open"
    CLOSED = "closed"
    ARCHIVED = "archived"


class VoteOutcome(str, enum.Enum):
    """Final classification of a closed vote."""
    NONE = "none"
    PASSED = "passed"
    FAILED = "failed"
    INVALID = "invalid"


class VoteEntityType(str, enum.Enum):
    """What a vote is about. The target is referenced, never dereferenced."""
    AGENDA = "agenda"
    AGENDA_ITEM = "agenda_item"
    MINUTES = "minutes"
    ACTION_ITEM = "action_item"
    RESOLUTION = "resolution"


# Configuration and options may only be replaced in these states
EDITABLE_STATUSES = (VoteStatus.DRAFT, VoteStatus.CONFIGURED)

# Outcome is meaningful only in these states
DECIDED_STATUSES = (VoteStatus.CLOSED, VoteStatus.ARCHIVED)


class Vote(BaseModel):
    """One voting instance."""
    __tablename__ = "votes"
    __table_args__ = (
        Index("ix_votes_entity", "entity_type", "entity_id"),
    )

    # Polymorphic target (optional)
    entity_type: Mapped[Optional[VoteEntityType]] = mapped_column(
        Enum(VoteEntityType, values_callable=lambda x: [e.value for e in x]),
        nullable=True
    )
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Context
    meeting_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    board_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[VoteStatus] = mapped_column(
        Enum(VoteStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=VoteStatus.DRAFT,
        index=True
    )
    outcome: Mapped[VoteOutcome] = mapped_column(
        Enum(VoteOutcome, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=VoteOutcome.NONE
    )

    # Creator
    created_by_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Timing
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Vote {self.id} {self.status.value if self.status else None}>"
