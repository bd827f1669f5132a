"""
SQLAlchemy ORM model for the 'article_submissions' table.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, TIMESTAMP, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from community_contest.utils.time_utils import utcnow
from .base import Base


class SubmissionORM(Base):
    """
    A community article submitted by a user, optionally entered into a contest.

    Attributes:
        id (UUID): Primary key.
        author_id (str): Stable user id from the identity provider.
        contest_period_id (UUID, optional): Contest the article was entered into.
        title (str): Article title.
        body (str): Article text, at least MIN_CONTENT_LENGTH characters.
        excerpt (str, optional): Short summary; derived from the body when omitted.
        cover_image_url (str, optional): Opaque media store reference.
        status (str): pending, approved, rejected or winner.
        vote_count (int): Cached number of vote rows; written only by the vote ledger.
        reviewed_by (str, optional): Moderator who approved or rejected the article.
        reviewed_at (datetime, optional): When the moderation decision was made.
        admin_feedback (str, optional): Moderator's explanation of the decision.
    """
    __tablename__ = "article_submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[str] = mapped_column(Text, nullable=False)
    contest_period_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("contest_periods.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviewed_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    admin_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'approved', 'rejected', 'winner')", name="status_valid"),
        CheckConstraint("vote_count >= 0", name="vote_count_non_negative"),
        Index("ix_article_submissions_contest_status_votes", "contest_period_id", "status", "vote_count"),
        Index("ix_article_submissions_author_created", "author_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubmissionORM(id={self.id}, title='{self.title[:40]}', "
            f"status='{self.status}', vote_count={self.vote_count})>"
        )
