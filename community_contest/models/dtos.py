"""
Pydantic Data Transfer Objects (DTOs) for the community contest service.

These models are used for API request/response validation and for returning
the authoritative post-mutation state from every write operation.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WINNER = "winner"


# Statuses in which a submission is publicly visible, votable and commentable.
PUBLIC_STATUSES = (SubmissionStatus.APPROVED, SubmissionStatus.WINNER)


class ActorRole(str, Enum):
    MEMBER = "member"
    MODERATOR = "moderator"
    SCHEDULER = "scheduler"


class Actor(BaseModel):
    """
    The caller of an operation, as vouched for by the identity provider.

    `user_id` is None for anonymous requests.
    """
    user_id: Optional[str] = None
    role: ActorRole = ActorRole.MEMBER

    @property
    def is_moderator(self) -> bool:
        return self.role == ActorRole.MODERATOR

    @classmethod
    def scheduler(cls) -> "Actor":
        return cls(user_id="system", role=ActorRole.SCHEDULER)


class SubmissionDTO(BaseModel):
    """
    DTO for an article submission.

    Mirrors SubmissionORM and is used for API responses.
    """
    id: uuid.UUID
    author_id: str
    contest_period_id: Optional[uuid.UUID] = None
    title: str
    body: str
    excerpt: Optional[str] = None
    cover_image_url: Optional[str] = None
    status: SubmissionStatus
    vote_count: int
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubmissionCreateRequest(BaseModel):
    title: str = Field(..., description="Article title.")
    body: str = Field(..., description="Article text; subject to the minimum content length.")
    excerpt: Optional[str] = Field(None, description="Optional summary; derived from the body when omitted.")
    cover_image_url: Optional[str] = Field(None, description="Opaque reference returned by the media store.")
    contest_period_id: Optional[uuid.UUID] = Field(None, description="Contest to enter; defaults to none.")


class SubmissionEditRequest(BaseModel):
    """Partial update; only the fields that are set are applied."""
    title: Optional[str] = None
    body: Optional[str] = None
    excerpt: Optional[str] = None
    cover_image_url: Optional[str] = None


class ModerationRequest(BaseModel):
    feedback: Optional[str] = Field(None, description="Explanation shown to the author.")


class VoteResult(BaseModel):
    """Outcome of a vote toggle. `voted` lets a retrying client detect a double flip."""
    submission_id: uuid.UUID
    voted: bool
    vote_count: int


class TallyRepair(BaseModel):
    submission_id: uuid.UUID
    cached_count: int
    actual_count: int

    @property
    def drifted(self) -> bool:
        return self.cached_count != self.actual_count


class CommentDTO(BaseModel):
    id: uuid.UUID
    submission_id: uuid.UUID
    author_id: str
    body: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CommentCreateRequest(BaseModel):
    body: str = Field(..., description="Comment text.")


class SubmissionView(BaseModel):
    """A single submission as seen by one viewer."""
    submission: SubmissionDTO
    has_voted: bool = False
    comments: List[CommentDTO] = Field(default_factory=list)


class ContestPeriodDTO(BaseModel):
    """
    DTO for a contest period.

    Mirrors ContestPeriodORM.
    """
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    prize_description: str
    is_active: bool
    winner_submission_id: Optional[uuid.UUID] = None
    winner_announced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ContestPeriodCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    prize_description: str = ""


class PastWinnerDTO(BaseModel):
    period: ContestPeriodDTO
    submission: SubmissionDTO


class ResolutionOutcome(BaseModel):
    """
    Result of a resolve call.

    `resolved_now` is False when the period had already been closed by an
    earlier (or concurrent) call, in which case nothing was changed.
    """
    period: ContestPeriodDTO
    winner: Optional[SubmissionDTO] = None
    resolved_now: bool = False


class SubmissionListItem(SubmissionDTO):
    """A submission in a listing, flagged with the viewer's vote."""
    has_voted: bool = False
