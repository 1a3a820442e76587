"""
SQLAlchemy models for the board vote engine.

- Configuration store: Vote, VoteConfiguration, VoteOption
- Ledger (append-only): VoteEligibility, VoteCast, VoteAction
- Results cache: VoteResultsSummary, VoteResult
"""
from boardvote.models.vote import Vote, VoteStatus, VoteOutcome, VoteEntityType
from boardvote.models.vote_configuration import (
    VoteConfiguration,
    VoteOption,
    VotingMethod,
    PassingRule,
    OptionKind,
    PASSING_RULE_THRESHOLDS,
)
from boardvote.models.ledger import VoteEligibility, VoteCast, VoteAction, VoteActionType
from boardvote.models.vote_result import VoteResultsSummary, VoteResult

__all__ = [
    # Configuration store
    "Vote",
    "VoteStatus",
    "VoteOutcome",
    "VoteEntityType",
    "VoteConfiguration",
    "VoteOption",
    "VotingMethod",
    "PassingRule",
    "OptionKind",
    "PASSING_RULE_THRESHOLDS",
    # Ledger
    "VoteEligibility",
    "VoteCast",
    "VoteAction",
    "VoteActionType",
    # Results cache
    "VoteResultsSummary",
    "VoteResult",
]
