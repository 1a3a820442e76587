"""
Vote schemas: requests and read projections.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from boardvote.models.vote import VoteStatus, VoteOutcome, VoteEntityType
from boardvote.models.vote_configuration import VotingMethod, PassingRule, OptionKind
from boardvote.models.ledger import VoteActionType


# ============================================================================
# REQUESTS
# ============================================================================

class VoteCreate(BaseModel):
    """Create vote request."""
    entity_type: Optional[VoteEntityType] = None
    entity_id: Optional[str] = Field(None, max_length=64)
    meeting_id: Optional[str] = Field(None, max_length=64)
    board_id: Optional[str] = Field(None, max_length=64)
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None


class VoteOptionInput(BaseModel):
    """Caller-supplied option for multiple choice votes."""
    label: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None


class VoteConfigure(BaseModel):
    """Full rule set. Replaces any previous configuration."""
    voting_method: VotingMethod = VotingMethod.YES_NO_ABSTAIN
    quorum_required: bool = False
    quorum_percentage: float = Field(0.0, ge=0, le=100)
    passing_rule: PassingRule = PassingRule.SIMPLE_MAJORITY
    # Defaults from passing_rule when omitted
    pass_threshold_percentage: Optional[float] = Field(None, ge=0, le=100)
    anonymous: bool = False
    allow_abstain: bool = True
    allow_change_vote: bool = False
    time_limit: Optional[int] = Field(None, ge=1)  # minutes
    auto_close_when_all_voted: bool = False
    options: list[VoteOptionInput] = []


class RosterEntryInput(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    user_name: str = Field(..., min_length=1, max_length=200)
    user_role: Optional[str] = Field(None, max_length=100)
    weight: float = Field(1.0, ge=0)
    eligible: bool = True


class VoteOpen(BaseModel):
    """Open request. Without a roster, the board directory is queried."""
    roster: Optional[list[RosterEntryInput]] = None


class VoteCastRequest(BaseModel):
    option_id: str


class VoteCloseRequest(BaseModel):
    force: bool = False


class VoteReopenRequest(BaseModel):
    reason: str = ""


# ============================================================================
# RESPONSES
# ============================================================================

class VoteResponse(BaseModel):
    """Vote list projection (no ballot detail)."""
    id: str
    entity_type: Optional[VoteEntityType] = None
    entity_id: Optional[str] = None
    meeting_id: Optional[str] = None
    board_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: VoteStatus
    outcome: VoteOutcome
    created_by_id: str
    created_by_name: Optional[str] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class VoteConfigurationResponse(BaseModel):
    voting_method: VotingMethod
    quorum_required: bool
    quorum_percentage: float
    passing_rule: PassingRule
    pass_threshold_percentage: float
    anonymous: bool
    allow_abstain: bool
    allow_change_vote: bool
    time_limit: Optional[int] = None
    auto_close_when_all_voted: bool
    created: datetime

    class Config:
        from_attributes = True


class VoteOptionResponse(BaseModel):
    id: str
    label: str
    description: Optional[str] = None
    display_order: int
    kind: OptionKind

    class Config:
        from_attributes = True


class EligibilityResponse(BaseModel):
    user_id: str
    user_name: str
    user_role: Optional[str] = None
    weight: float
    eligible: bool

    class Config:
        from_attributes = True


class BallotResponse(BaseModel):
    """Effective ballot. On anonymous votes only option_id is filled in."""
    id: Optional[str] = None
    option_id: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    weight_applied: Optional[float] = None
    ballot_sequence: Optional[int] = None
    cast_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VoteResultResponse(BaseModel):
    option_id: str
    option_label: str
    display_order: int
    total_weight: float
    vote_count: int
    percentage: float
    is_winner: bool

    class Config:
        from_attributes = True


class VoteResultsSummaryResponse(BaseModel):
    total_eligible: int = 0
    total_voted: int = 0
    total_weight: float = 0.0
    quorum_required: int = 0
    quorum_met: bool = False
    threshold_percentage: float = 0.0
    outcome: VoteOutcome = VoteOutcome.NONE
    winning_option_id: Optional[str] = None
    computed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VoteResultsResponse(BaseModel):
    vote_id: str
    status: VoteStatus
    summary: VoteResultsSummaryResponse
    results: list[VoteResultResponse] = []


class VoteDetailResponse(BaseModel):
    """Vote with configuration, options, roster, effective ballots and results."""
    vote: VoteResponse
    configuration: Optional[VoteConfigurationResponse] = None
    options: list[VoteOptionResponse] = []
    eligibility: list[EligibilityResponse] = []
    ballots: list[BallotResponse] = []
    results: VoteResultsResponse
    closes_at: Optional[datetime] = None


class VoteWithResultsResponse(BaseModel):
    """Meeting listing entry: a vote with its rules, options and results, without ballots."""
    vote: VoteResponse
    configuration: Optional[VoteConfigurationResponse] = None
    options: list[VoteOptionResponse] = []
    results: VoteResultsResponse


class VoteActionResponse(BaseModel):
    id: str
    vote_id: str
    sequence: int
    action_type: VoteActionType
    performed_by_id: str
    performed_by_name: Optional[str] = None
    metadata: dict = {}
    created_at: datetime


class CastResponse(BaseModel):
    ballot: BallotResponse
    changed: bool = False
    vote_status: VoteStatus


class CloseResponse(BaseModel):
    vote: VoteResponse
    results: VoteResultsResponse
    already_closed: bool = False


class ReconcileResponse(BaseModel):
    """Cache check: `computed` is a fresh tally over the ledger."""
    vote_id: str
    consistent: bool
    mismatches: list[str] = []
    cached: Optional[VoteResultsResponse] = None
    computed: VoteResultsResponse


class OverdueVoteResponse(BaseModel):
    vote: VoteResponse
    time_limit: int
    closes_at: datetime
