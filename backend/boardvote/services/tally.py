"""
Tally engine.

`tally()` is a pure function of (options, eligibility, ballots, configuration,
computed_at): no I/O, no clock, no mutation of its inputs. Running it twice
over the same inputs yields equal results, so it can be rerun at any time to
reconcile the results cache against the ledger.

Rules:
- quorum_required = ceil(total_eligible * quorum_percentage / 100) when the
  configuration requires a quorum, else 0.
- total_voted counts distinct voters with an effective ballot, abstentions
  included.
- Percentages are weight shares of the *decisive* weight: abstain ballots
  are left out of the denominator. They are rounded half-up to 2 decimals.
- The winner is the decisive option with the strictly greatest weight. A tie
  for first place, or no decisive weight at all, leaves no winner.
- Outcome: invalid without quorum or without a winner; otherwise passed when
  the winner reaches the threshold (and, for yes/no methods, the winner is
  the affirmative option); otherwise failed.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Iterable, Optional, Protocol, Sequence

from boardvote.models.vote import VoteOutcome
from boardvote.models.vote_configuration import OptionKind, VotingMethod

MOTION_METHODS = (VotingMethod.YES_NO, VotingMethod.YES_NO_ABSTAIN)

_CENT = Decimal("0.01")


class OptionLike(Protocol):
    id: str
    label: str
    kind: OptionKind
    display_order: int


class EligibilityLike(Protocol):
    user_id: str
    weight: float
    eligible: bool


class BallotLike(Protocol):
    user_id: str
    option_id: str
    weight_applied: float
    ballot_sequence: int


class RulesLike(Protocol):
    voting_method: VotingMethod
    quorum_required: bool
    quorum_percentage: float
    pass_threshold_percentage: float


@dataclass(frozen=True)
class OptionTally:
    option_id: str
    option_label: str
    display_order: int
    total_weight: float
    vote_count: int
    percentage: float
    is_winner: bool = False


@dataclass(frozen=True)
class TallyResult:
    total_eligible: int
    total_voted: int
    total_weight: float
    quorum_required: int
    quorum_met: bool
    threshold_percentage: float
    outcome: VoteOutcome
    winning_option_id: Optional[str]
    computed_at: Optional[datetime]
    results: tuple[OptionTally, ...] = field(default_factory=tuple)


def effective_ballots(ballots: Iterable[BallotLike]) -> list[BallotLike]:
    """Keep each voter's latest ballot (highest ballot_sequence)."""
    latest: dict[str, BallotLike] = {}
    for ballot in ballots:
        current = latest.get(ballot.user_id)
        if current is None or ballot.ballot_sequence > current.ballot_sequence:
            latest[ballot.user_id] = ballot
    return [latest[user_id] for user_id in sorted(latest)]


def required_quorum(total_eligible: int, rules: RulesLike) -> int:
    if not rules.quorum_required:
        return 0
    exact = Decimal(total_eligible) * Decimal(str(rules.quorum_percentage)) / Decimal(100)
    return int(exact.to_integral_value(rounding=ROUND_CEILING))


def _percentage(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    share = Decimal(repr(part)) / Decimal(repr(whole)) * Decimal(100)
    return float(share.quantize(_CENT, rounding=ROUND_HALF_UP))


def tally(
    options: Sequence[OptionLike],
    eligibility: Sequence[EligibilityLike],
    ballots: Sequence[BallotLike],
    rules: RulesLike,
    computed_at: Optional[datetime] = None,
) -> TallyResult:
    """
    Compute per-option results and the outcome.

    Ballots from voters outside the eligible roster, or for options not in
    `options`, are ignored; the controller never records such ballots, so
    this only matters when reconciling damaged data.
    """
    ordered_options = sorted(options, key=lambda o: (o.display_order, o.id))
    options_by_id = {o.id: o for o in ordered_options}
    eligible_ids = {e.user_id for e in eligibility if e.eligible}

    counted = [
        b for b in effective_ballots(ballots)
        if b.user_id in eligible_ids and b.option_id in options_by_id
    ]

    total_eligible = len(eligible_ids)
    total_voted = len({b.user_id for b in counted})
    total_weight = math.fsum(b.weight_applied for b in counted)

    quorum_required = required_quorum(total_eligible, rules)
    quorum_met = total_voted >= quorum_required

    weight_by_option: dict[str, float] = {}
    count_by_option: dict[str, int] = {}
    for option in ordered_options:
        option_ballots = [b for b in counted if b.option_id == option.id]
        weight_by_option[option.id] = math.fsum(b.weight_applied for b in option_ballots)
        count_by_option[option.id] = len(option_ballots)

    decisive = [o for o in ordered_options if o.kind != OptionKind.ABSTAIN]
    decisive_weight = math.fsum(weight_by_option[o.id] for o in decisive)

    winner = None
    if decisive and decisive_weight > 0:
        top_weight = max(weight_by_option[o.id] for o in decisive)
        leaders = [o for o in decisive if weight_by_option[o.id] == top_weight]
        if len(leaders) == 1:
            winner = leaders[0]

    results = tuple(
        OptionTally(
            option_id=option.id,
            option_label=option.label,
            display_order=option.display_order,
            total_weight=weight_by_option[option.id],
            vote_count=count_by_option[option.id],
            percentage=(
                0.0 if option.kind == OptionKind.ABSTAIN
                else _percentage(weight_by_option[option.id], decisive_weight)
            ),
            is_winner=winner is not None and option.id == winner.id,
        )
        for option in ordered_options
    )

    threshold = float(rules.pass_threshold_percentage)
    if not quorum_met or winner is None:
        outcome = VoteOutcome.INVALID
    else:
        winner_percentage = next(r.percentage for r in results if r.is_winner)
        if rules.voting_method in MOTION_METHODS and winner.kind != OptionKind.AFFIRMATIVE:
            outcome = VoteOutcome.FAILED
        elif winner_percentage >= threshold:
            outcome = VoteOutcome.PASSED
        else:
            outcome = VoteOutcome.FAILED

    return TallyResult(
        total_eligible=total_eligible,
        total_voted=total_voted,
        total_weight=total_weight,
        quorum_required=quorum_required,
        quorum_met=quorum_met,
        threshold_percentage=threshold,
        outcome=outcome,
        winning_option_id=winner.id if winner is not None else None,
        computed_at=computed_at,
        results=results,
    )
