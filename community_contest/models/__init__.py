"""
Models package for the community contest service.

This package contains SQLAlchemy ORM models and Pydantic DTOs.
"""

# Ensure all ORM models are registered with the Base metadata when this package is imported.
from .base import Base
from .contest_period_orm import ContestPeriodORM
from .submission_orm import SubmissionORM
from .vote_orm import VoteORM
from .comment_orm import CommentORM

from .dtos import (
    PUBLIC_STATUSES,
    Actor,
    ActorRole,
    CommentCreateRequest,
    CommentDTO,
    ContestPeriodCreateRequest,
    ContestPeriodDTO,
    ModerationRequest,
    PastWinnerDTO,
    ResolutionOutcome,
    SubmissionCreateRequest,
    SubmissionDTO,
    SubmissionEditRequest,
    SubmissionListItem,
    SubmissionStatus,
    SubmissionView,
    TallyRepair,
    VoteResult,
)

__all__ = [
    # Base
    "Base",
    # ORMs
    "CommentORM",
    "ContestPeriodORM",
    "SubmissionORM",
    "VoteORM",
    # DTOs
    "PUBLIC_STATUSES",
    "Actor",
    "ActorRole",
    "CommentCreateRequest",
    "CommentDTO",
    "ContestPeriodCreateRequest",
    "ContestPeriodDTO",
    "ModerationRequest",
    "PastWinnerDTO",
    "ResolutionOutcome",
    "SubmissionCreateRequest",
    "SubmissionDTO",
    "SubmissionEditRequest",
    "SubmissionListItem",
    "SubmissionStatus",
    "SubmissionView",
    "TallyRepair",
    "VoteResult",
]
