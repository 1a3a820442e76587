"""
Tests for the tally engine.

The engine is pure, so these tests build plain objects instead of rows.
"""
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from boardvote.models.vote import VoteOutcome
from boardvote.models.vote_configuration import OptionKind, VotingMethod
from boardvote.services.tally import tally, required_quorum, effective_ballots

COMPUTED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def motion_options(abstain: bool = True):
    options = [
        SimpleNamespace(id="yes", label="Yes", kind=OptionKind.AFFIRMATIVE, display_order=0),
        SimpleNamespace(id="no", label="No", kind=OptionKind.NEGATIVE, display_order=1),
    ]
    if abstain:
        options.append(SimpleNamespace(id="abstain", label="Abstain", kind=OptionKind.ABSTAIN, display_order=2))
    return options


def roster(count: int, weight: float = 1.0):
    return [SimpleNamespace(user_id=f"u{i}", weight=weight, eligible=True) for i in range(count)]


def ballots(*option_ids, weight: float = 1.0):
    return [
        SimpleNamespace(user_id=f"u{i}", option_id=option_id, weight_applied=weight, ballot_sequence=1)
        for i, option_id in enumerate(option_ids)
    ]


def rules(
    method=VotingMethod.YES_NO_ABSTAIN,
    quorum_required=False,
    quorum_percentage=0.0,
    threshold=50.0,
):
    return SimpleNamespace(
        voting_method=method,
        quorum_required=quorum_required,
        quorum_percentage=quorum_percentage,
        pass_threshold_percentage=threshold,
    )


def line(result, option_id):
    return next(r for r in result.results if r.option_id == option_id)


class TestQuorum:
    """Quorum arithmetic."""

    def test_quorum_rounds_up(self):
        assert required_quorum(7, rules(quorum_required=True, quorum_percentage=50)) == 4

    def test_quorum_not_required(self):
        assert required_quorum(7, rules(quorum_required=False, quorum_percentage=50)) == 0

    def test_quorum_exact_boundary(self):
        assert required_quorum(10, rules(quorum_required=True, quorum_percentage=50)) == 5

    def test_below_quorum_is_invalid(self):
        result = tally(
            motion_options(),
            roster(7),
            ballots("yes", "yes", "yes"),
            rules(quorum_required=True, quorum_percentage=50),
            COMPUTED_AT,
        )
        assert result.quorum_required == 4
        assert result.total_voted == 3
        assert result.quorum_met is False
        assert result.outcome == VoteOutcome.INVALID

    def test_abstentions_count_toward_quorum(self):
        result = tally(
            motion_options(),
            roster(7),
            ballots("yes", "abstain", "abstain", "abstain"),
            rules(quorum_required=True, quorum_percentage=50),
            COMPUTED_AT,
        )
        assert result.quorum_met is True
        assert result.outcome == VoteOutcome.PASSED


class TestOutcomes:
    """Winner and outcome rules."""

    def test_simple_majority_passes(self):
        result = tally(motion_options(), roster(3), ballots("yes", "yes", "yes"), rules(
            quorum_required=True, quorum_percentage=50,
        ), COMPUTED_AT)

        assert line(result, "yes").total_weight == 3.0
        assert line(result, "yes").percentage == 100.0
        assert line(result, "yes").is_winner is True
        assert result.quorum_required == 2
        assert result.quorum_met is True
        assert result.outcome == VoteOutcome.PASSED
        assert result.winning_option_id == "yes"

    def test_abstain_excluded_from_denominator(self):
        result = tally(
            motion_options(),
            roster(7),
            ballots("yes", "yes", "yes", "yes", "yes", "yes", "abstain"),
            rules(),
            COMPUTED_AT,
        )
        assert result.total_voted == 7
        assert line(result, "yes").percentage == 100.0
        assert line(result, "abstain").vote_count == 1
        assert line(result, "abstain").percentage == 0.0
        assert result.outcome == VoteOutcome.PASSED

    def test_tie_has_no_winner(self):
        result = tally(motion_options(), roster(4), ballots("yes", "yes", "no", "no"), rules(), COMPUTED_AT)
        assert result.winning_option_id is None
        assert not any(r.is_winner for r in result.results)
        assert result.outcome == VoteOutcome.INVALID

    def test_only_abstentions_is_invalid(self):
        result = tally(motion_options(), roster(2), ballots("abstain", "abstain"), rules(), COMPUTED_AT)
        assert result.total_voted == 2
        assert result.winning_option_id is None
        assert result.outcome == VoteOutcome.INVALID

    def test_no_ballots_is_invalid(self):
        result = tally(motion_options(), roster(3), [], rules(), COMPUTED_AT)
        assert result.total_voted == 0
        assert result.total_weight == 0.0
        assert result.outcome == VoteOutcome.INVALID

    def test_negative_option_winning_fails_motion(self):
        result = tally(motion_options(), roster(3), ballots("no", "no", "yes"), rules(), COMPUTED_AT)
        assert result.winning_option_id == "no"
        assert result.outcome == VoteOutcome.FAILED

    def test_two_thirds_of_three_reaches_two_thirds_threshold(self):
        result = tally(motion_options(), roster(3), ballots("yes", "yes", "no"), rules(threshold=66.67), COMPUTED_AT)
        assert line(result, "yes").percentage == 66.67
        assert result.outcome == VoteOutcome.PASSED

    def test_below_threshold_fails(self):
        result = tally(motion_options(), roster(5), ballots("yes", "yes", "yes", "no", "no"), rules(threshold=75.0), COMPUTED_AT)
        assert line(result, "yes").percentage == 60.0
        assert result.outcome == VoteOutcome.FAILED

    def test_unanimous_requires_every_decisive_ballot(self):
        result = tally(
            motion_options(), roster(4), ballots("yes", "yes", "yes", "abstain"), rules(threshold=100.0), COMPUTED_AT,
        )
        assert result.outcome == VoteOutcome.PASSED

    def test_weighted_ballots(self):
        eligibility = roster(3)
        weighted = [
            SimpleNamespace(user_id="u0", option_id="no", weight_applied=3.0, ballot_sequence=1),
            SimpleNamespace(user_id="u1", option_id="yes", weight_applied=1.0, ballot_sequence=1),
            SimpleNamespace(user_id="u2", option_id="yes", weight_applied=1.0, ballot_sequence=1),
        ]
        result = tally(motion_options(), eligibility, weighted, rules(), COMPUTED_AT)
        assert line(result, "no").total_weight == 3.0
        assert line(result, "no").percentage == 60.0
        assert line(result, "yes").vote_count == 2
        assert result.total_weight == 5.0
        assert result.outcome == VoteOutcome.FAILED

    def test_multiple_choice_plurality(self):
        options = [
            SimpleNamespace(id="a", label="Vendor A", kind=OptionKind.CHOICE, display_order=0),
            SimpleNamespace(id="b", label="Vendor B", kind=OptionKind.CHOICE, display_order=1),
            SimpleNamespace(id="c", label="Vendor C", kind=OptionKind.CHOICE, display_order=2),
        ]
        result = tally(
            options, roster(5), ballots("a", "a", "b", "c", "a"), rules(method=VotingMethod.MULTIPLE_CHOICE),
            COMPUTED_AT,
        )
        assert result.winning_option_id == "a"
        assert line(result, "a").percentage == 60.0
        assert result.outcome == VoteOutcome.PASSED

    def test_multiple_choice_tie_is_invalid(self):
        options = [
            SimpleNamespace(id="a", label="A", kind=OptionKind.CHOICE, display_order=0),
            SimpleNamespace(id="b", label="B", kind=OptionKind.CHOICE, display_order=1),
            SimpleNamespace(id="c", label="C", kind=OptionKind.CHOICE, display_order=2),
        ]
        result = tally(
            options, roster(5), ballots("a", "a", "b", "b", "c"),
            rules(method=VotingMethod.MULTIPLE_CHOICE),
            COMPUTED_AT,
        )
        assert result.winning_option_id is None
        assert result.outcome == VoteOutcome.INVALID


class TestEffectiveBallots:
    def test_latest_sequence_wins(self):
        history = [
            SimpleNamespace(user_id="u0", option_id="yes", weight_applied=1.0, ballot_sequence=1),
            SimpleNamespace(user_id="u0", option_id="no", weight_applied=1.0, ballot_sequence=2),
            SimpleNamespace(user_id="u1", option_id="yes", weight_applied=1.0, ballot_sequence=1),
        ]
        effective = effective_ballots(history)
        assert [(b.user_id, b.option_id) for b in effective] == [("u0", "no"), ("u1", "yes")]

    def test_changed_ballot_counted_once(self):
        history = [
            SimpleNamespace(user_id="u0", option_id="yes", weight_applied=1.0, ballot_sequence=1),
            SimpleNamespace(user_id="u0", option_id="no", weight_applied=1.0, ballot_sequence=2),
        ]
        result = tally(motion_options(), roster(1), history, rules(), COMPUTED_AT)
        assert result.total_voted == 1
        assert line(result, "yes").vote_count == 0
        assert line(result, "no").vote_count == 1

    def test_ineligible_and_unknown_ballots_ignored(self):
        eligibility = roster(2) + [SimpleNamespace(user_id="observer", weight=1.0, eligible=False)]
        stray = ballots("yes", "yes") + [
            SimpleNamespace(user_id="observer", option_id="no", weight_applied=1.0, ballot_sequence=1),
            SimpleNamespace(user_id="outsider", option_id="no", weight_applied=1.0, ballot_sequence=1),
        ]
        result = tally(motion_options(), eligibility, stray, rules(), COMPUTED_AT)
        assert result.total_eligible == 2
        assert result.total_voted == 2
        assert line(result, "no").vote_count == 0


class TestDeterminism:
    def test_tally_is_idempotent(self):
        args = (motion_options(), roster(5), ballots("yes", "no", "yes", "abstain"), rules(
            quorum_required=True, quorum_percentage=60,
        ), COMPUTED_AT)
        assert tally(*args) == tally(*args)

    def test_input_order_does_not_matter(self):
        forward = ballots("yes", "no", "yes", "abstain")
        first = tally(motion_options(), roster(4), forward, rules(), COMPUTED_AT)
        second = tally(list(reversed(motion_options())), roster(4), list(reversed(forward)), rules(), COMPUTED_AT)
        assert first == second

    @pytest.mark.parametrize("weight", [0.5, 1.0, 2.5])
    def test_uniform_weights_do_not_change_outcome(self, weight):
        result = tally(motion_options(), roster(3, weight), ballots("yes", "yes", "no", weight=weight), rules(), COMPUTED_AT)
        assert line(result, "yes").percentage == 66.67
        assert result.outcome == VoteOutcome.PASSED
