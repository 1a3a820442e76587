"""
Voting errors.

Every lifecycle error is terminal for the call that triggered it; only
TransactionConflict comes out of the bounded retry loop.
"""
from typing import Optional


class VotingError(Exception):
    """Base class. `code` is stable and machine-readable."""
    code = "voting_error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__doc__ or self.code)
        self.message = message or (self.__doc__ or self.code).strip()


class VoteNotFound(VotingError):
    """Vote not found."""
    code = "vote_not_found"
    status_code = 404


class InvalidTransition(VotingError):
    """The vote is not in a status that allows this operation."""
    code = "invalid_transition"
    status_code = 409


class ConfigurationLocked(VotingError):
    """Configuration cannot change once the vote has been opened."""
    code = "configuration_locked"
    status_code = 409


class InvalidConfiguration(VotingError):
    """The requested configuration is not valid."""
    code = "invalid_configuration"
    status_code = 422


class EmptyEligibility(VotingError):
    """The roster has no eligible voters."""
    code = "empty_eligibility"
    status_code = 422


class VoteNotOpen(VotingError):
    """Vote is not open."""
    code = "vote_not_open"
    status_code = 409

    def __init__(self, message: Optional[str] = None, current_status=None):
        super().__init__(message)
        self.current_status = current_status


class NotEligible(VotingError):
    """User is not eligible to vote."""
    code = "not_eligible"
    status_code = 403


class AlreadyVoted(VotingError):
    """User has already voted and vote changes are not allowed."""
    code = "already_voted"
    status_code = 409


class InvalidOption(VotingError):
    """Option does not belong to this vote."""
    code = "invalid_option"
    status_code = 422


class ReasonRequired(VotingError):
    """A reason is required to reopen a vote."""
    code = "reason_required"
    status_code = 422


class CannotDeleteAfterOpening(VotingError):
    """Only draft or configured votes without ballots can be deleted."""
    code = "cannot_delete_after_opening"
    status_code = 409


class TransactionConflict(VotingError):
    """Concurrent update conflict; retry later."""
    code = "transaction_conflict"
    status_code = 409


class RosterUnavailable(VotingError):
    """The voter roster could not be loaded."""
    code = "roster_unavailable"
    status_code = 502


class LedgerViolation(VotingError):
    """Attempt to modify or remove an append-only row."""
    code = "ledger_violation"
    status_code = 500
