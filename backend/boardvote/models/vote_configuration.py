"""
Vote configuration and option models.
"""
from typing import Optional
from sqlalchemy import String, Text, Boolean, Integer, Float, ForeignKey, Enum, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column
import enum
from boardvote.models.base import BaseModel
from boardvote.services.exceptions import LedgerViolation


class VotingMethod(str, enum.Enum):
    """Ballot shape."""
    YES_NO = "yes_no"
    YES_NO_ABSTAIN = "yes_no_abstain"
    MULTIPLE_CHOICE = "multiple_choice"
    RANKED = "ranked"  # reserved, never tallied


class PassingRule(str, enum.Enum):
    """Named passing thresholds."""
    SIMPLE_MAJORITY = "simple_majority"
    TWO_THIRDS = "two_thirds"
    THREE_QUARTERS = "three_quarters"
    UNANIMOUS = "unanimous"


PASSING_RULE_THRESHOLDS: dict[PassingRule, float] = {
    PassingRule.SIMPLE_MAJORITY: 50.0,
    PassingRule.TWO_THIRDS: 66.67,
    PassingRule.THREE_QUARTERS: 75.0,
    PassingRule.UNANIMOUS: 100.0,
}


class OptionKind(str, enum.Enum):
    """Role an option plays in the tally."""
    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    ABSTAIN = "abstain"
    CHOICE = "choice"


class VoteConfiguration(BaseModel):
    """Rules governing a vote. Replaced wholesale, never patched."""
    __tablename__ = "vote_configurations"
    __table_args__ = (
        UniqueConstraint("vote_id", name="uq_vote_configurations_vote"),
    )

    vote_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("votes.id", ondelete="CASCADE"),
        nullable=False
    )

    voting_method: Mapped[VotingMethod] = mapped_column(
        Enum(VotingMethod, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=VotingMethod.YES_NO_ABSTAIN
    )

    # Quorum
    quorum_required: Mapped[bool] = mapped_column(Boolean, default=False)
    quorum_percentage: Mapped[float] = mapped_column(Float, default=0.0)

    # Passing threshold
    passing_rule: Mapped[PassingRule] = mapped_column(
        Enum(PassingRule, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PassingRule.SIMPLE_MAJORITY
    )
    pass_threshold_percentage: Mapped[float] = mapped_column(Float, default=50.0)

    # Ballot settings
    anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_abstain: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_change_vote: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timing (advisory; minutes)
    time_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    auto_close_when_all_voted: Mapped[bool] = mapped_column(Boolean, default=False)

    def snapshot(self) -> dict:
        """Plain-data copy used for audit metadata and comparisons."""
        return {
            "voting_method": self.voting_method.value,
            "quorum_required": self.quorum_required,
            "quorum_percentage": self.quorum_percentage,
            "passing_rule": self.passing_rule.value,
            "pass_threshold_percentage": self.pass_threshold_percentage,
            "anonymous": self.anonymous,
            "allow_abstain": self.allow_abstain,
            "allow_change_vote": self.allow_change_vote,
            "time_limit": self.time_limit,
            "auto_close_when_all_voted": self.auto_close_when_all_voted,
        }

    def __repr__(self) -> str:
        return f"<VoteConfiguration for {self.vote_id}>"


class VoteOption(BaseModel):
    """One choice on a ballot."""
    __tablename__ = "vote_options"

    vote_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("votes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    label: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kind: Mapped[OptionKind] = mapped_column(
        Enum(OptionKind, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=OptionKind.CHOICE
    )

    def __repr__(self) -> str:
        return f"<VoteOption {self.label}>"


def _reject_patch(mapper, connection, target) -> None:
    raise LedgerViolation(f"{type(target).__name__} is replaced wholesale, never updated in place")


event.listen(VoteConfiguration, "before_update", _reject_patch)
event.listen(VoteOption, "before_update", _reject_patch)
