"""Domain error taxonomy surfaced to callers of the trust core."""

from __future__ import annotations


class TrustError(Exception):
    """Base class for expected, caller-facing failures."""


class NotFoundError(TrustError):
    """A referenced provider, plan, verification or conflict does not exist."""


class DuplicateError(TrustError):
    """An identity tried to repeat a submission or vote."""


class DuplicateSubmissionError(DuplicateError):
    """Same IP or submitter already verified this provider/plan pair in the window."""


class DuplicateVoteError(DuplicateError):
    """Same IP already cast this vote on the verification."""


class ValidationError(TrustError, ValueError):
    """Input is missing a required signal or violates a precondition."""


class AlreadyResolvedError(TrustError):
    """An import conflict has already left the pending state."""


__all__ = [
    "AlreadyResolvedError",
    "DuplicateError",
    "DuplicateSubmissionError",
    "DuplicateVoteError",
    "NotFoundError",
    "TrustError",
    "ValidationError",
]
