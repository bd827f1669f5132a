"""
Core components of the community contest service.
"""

from .errors import (
    ConflictError,
    ContestError,
    InvalidState,
    InvalidTransition,
    NotAuthenticated,
    NotAuthorized,
    NotCommentable,
    NotFound,
    NotVotable,
    ValidationError,
)
from .submission_store import SubmissionStore
from .vote_ledger import VoteLedger
from .comment_thread import CommentThread
from .contest_manager import ContestPeriodManager
from .moderation import ModerationGateway
from .resolver import ContestResolver
from .views import get_for_viewer

__all__ = [
    "ConflictError",
    "ContestError",
    "InvalidState",
    "InvalidTransition",
    "NotAuthenticated",
    "NotAuthorized",
    "NotCommentable",
    "NotFound",
    "NotVotable",
    "ValidationError",
    "SubmissionStore",
    "VoteLedger",
    "CommentThread",
    "ContestPeriodManager",
    "ModerationGateway",
    "ContestResolver",
    "get_for_viewer",
]
