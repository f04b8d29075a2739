"""Domain error kinds.

Each kind maps to one HTTP status in ``realdeal.main``.
"""


class EngagementError(Exception):
    """Base class for every error raised by the engine."""


class NotFoundError(EngagementError):
    """The referenced entity or user does not exist.  Never retried."""


class ConflictError(EngagementError):
    """A concurrent writer got there first (duplicate key, vanished row, duplicate username)."""


class InvalidInputError(EngagementError):
    """Input rejected before any mutation took place."""


class AccessDeniedError(EngagementError):
    """The acting user does not own the entity being changed."""


class StoreUnavailableError(EngagementError):
    """The persistence store did not answer in time or failed transiently."""
