"""
Domain error taxonomy for the community contest service.

Every error carries a message meant to be shown to the user, explaining why
the operation was refused, and a stable `code` for programmatic handling.
Storage-tier failures are not part of this hierarchy; they propagate as
SQLAlchemy errors and are handled by the transport's retry policy.
"""


class ContestError(Exception):
    """Base class for all domain errors."""

    code = "contest_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ContestError):
    """Malformed input, e.g. content below the minimum length."""

    code = "validation_error"


class NotAuthenticated(ContestError):
    """The operation requires an authenticated user and none was supplied."""

    code = "not_authenticated"


class NotAuthorized(ContestError):
    """The actor lacks ownership or role for the requested mutation."""

    code = "not_authorized"


class InvalidState(ContestError):
    """The operation is not legal for the entity's current status."""

    code = "invalid_state"


class InvalidTransition(InvalidState):
    """A submission status change not allowed by the state machine."""

    code = "invalid_transition"


class NotVotable(ContestError):
    code = "not_votable"


class NotCommentable(ContestError):
    code = "not_commentable"


class NotFound(ContestError):
    code = "not_found"


class ConflictError(ContestError):
    """A concurrent compare-and-set was lost; retry with fresh state."""

    code = "conflict"
