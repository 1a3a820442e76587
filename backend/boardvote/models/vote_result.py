"""
Results cache models.

Rebuilt from the ledger and eligibility snapshot on every close. The ledger
stays authoritative; these rows are never used to decide an outcome.
"""
from typing import Optional
from datetime import datetime
from sqlalchemy import String, Integer, Float, Boolean, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from boardvote.models.base import LedgerModel
from boardvote.models.vote import VoteOutcome


class VoteResultsSummary(LedgerModel):
    """Latest computed summary for a vote."""
    __tablename__ = "vote_results_summaries"
    __table_args__ = (
        UniqueConstraint("vote_id", name="uq_vote_results_summaries_vote"),
    )

    vote_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("votes.id", ondelete="CASCADE"),
        nullable=False
    )

    total_eligible: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_voted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    quorum_required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quorum_met: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    threshold_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    outcome: Mapped[VoteOutcome] = mapped_column(
        Enum(VoteOutcome, values_callable=lambda x: [e.value for e in x]),
        nullable=False
    )
    winning_option_id: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<VoteResultsSummary {self.vote_id} {self.outcome.value}>"


class VoteResult(LedgerModel):
    """Per-option line of the latest summary."""
    __tablename__ = "vote_results"
    __table_args__ = (
        UniqueConstraint("vote_id", "option_id", name="uq_vote_results_vote_option"),
    )

    vote_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("votes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    option_id: Mapped[str] = mapped_column(String(15), nullable=False)
    option_label: Mapped[str] = mapped_column(String(300), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<VoteResult {self.option_label} on vote {self.vote_id}>"
