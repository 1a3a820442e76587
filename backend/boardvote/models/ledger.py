"""
Append-only models: eligibility snapshot, ballots and audit actions.

Rows are inserted and never updated or deleted; the mapper hooks at the
bottom of this module reject any attempt made through the ORM.
"""
from typing import Optional
from datetime import datetime
from sqlalchemy import String, Text, Boolean, Integer, Float, ForeignKey, DateTime, Enum, JSON, UniqueConstraint, Index, event
from sqlalchemy.orm import Mapped, mapped_column
import enum
from boardvote.models.base import LedgerModel, utcnow
from boardvote.services.exceptions import LedgerViolation


class VoteActionType(str, enum.Enum):
    """Audit event kinds."""
    CREATED = "created"
    CONFIGURED = "configured"
    OPENED = "opened"
    VOTE_CAST = "vote_cast"
    VOTE_CHANGED = "vote_changed"
    CLOSED = "closed"
    RESULTS_GENERATED = "results_generated"
    REOPENED = "reopened"
    ARCHIVED = "archived"
    DELETED = "deleted"


class VoteEligibility(LedgerModel):
    """Roster row frozen when the vote opens."""
    __tablename__ = "vote_eligibility"
    __table_args__ = (
        UniqueConstraint("vote_id", "user_id", name="uq_vote_eligibility_vote_user"),
    )

    vote_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("votes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Denormalized so the audit trail survives directory changes
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    user_role: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<VoteEligibility {self.user_id} on vote {self.vote_id}>"


class VoteCast(LedgerModel):
    """
    One ballot action. A vote change is a new row with the next
    ballot_sequence; the highest sequence per voter is the effective ballot.
    """
    __tablename__ = "votes_cast"
    __table_args__ = (
        UniqueConstraint("vote_id", "user_id", "ballot_sequence", name="uq_votes_cast_vote_user_sequence"),
        Index("ix_votes_cast_vote_user_cast_at", "vote_id", "user_id", "cast_at"),
    )

    vote_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("votes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    option_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("vote_options.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Always the real voter; anonymity is applied by read projections
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Copied from eligibility at cast time
    weight_applied: Mapped[float] = mapped_column(Float, nullable=False)

    ballot_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cast_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<VoteCast #{self.ballot_sequence} by {self.user_id} on vote {self.vote_id}>"


class VoteAction(LedgerModel):
    """Audit log entry. vote_id is not a foreign key so history outlives a deleted draft."""
    __tablename__ = "vote_actions"
    __table_args__ = (
        UniqueConstraint("vote_id", "sequence", name="uq_vote_actions_vote_sequence"),
    )

    vote_id: Mapped[str] = mapped_column(String(15), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    action_type: Mapped[VoteActionType] = mapped_column(
        Enum(VoteActionType, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )

    performed_by_id: Mapped[str] = mapped_column(String(64), nullable=False)
    performed_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # "metadata" is reserved on declarative classes
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<VoteAction {self.action_type.value} #{self.sequence} on vote {self.vote_id}>"


def _reject_update(mapper, connection, target) -> None:
    raise LedgerViolation(f"{type(target).__name__} rows are append-only and cannot be updated")


def _reject_delete(mapper, connection, target) -> None:
    raise LedgerViolation(f"{type(target).__name__} rows are append-only and cannot be deleted")


for _model in (VoteEligibility, VoteCast, VoteAction):
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
