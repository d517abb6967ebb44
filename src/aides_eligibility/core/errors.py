from __future__ import annotations


class EligibilityError(Exception):
    """Base class for every error raised by the eligibility engine."""


class DataFetchError(EligibilityError):
    """Raised when the rule table cannot be fetched or comes back in an unexpected shape."""


class DataShapeError(EligibilityError):
    """Raised at load time when rule rows cannot form a consistent dataset."""


class InvalidAnswerError(EligibilityError):
    """Raised when an answer is not valid for the current question. The session is left unchanged."""


class SessionConcludedError(InvalidAnswerError):
    """Raised when answering a session that has already concluded."""
