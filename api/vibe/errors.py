"""
Domain exceptions raised by the services and mapped to HTTP errors by the routes.
"""


class VibeError(Exception):
    """Base class for domain errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(VibeError):
    """Rejected before any store call (blank message, bad phone, self-swipe...)."""


class NotFoundError(VibeError):
    pass


class ForbiddenError(VibeError):
    pass


class TransactionConflictError(VibeError):
    """Raised when a transaction keeps conflicting after every retry."""

    def __init__(self, message: str, attempts: int = 0, original_error: Exception | None = None):
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(message)


class MatchInvariantError(VibeError):
    """A match record disagrees with its key. Never expected; alert on it."""

    def __init__(self, message: str, match_id: str):
        self.match_id = match_id
        super().__init__(message)
