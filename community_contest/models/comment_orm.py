"""
SQLAlchemy ORM model for the 'article_comments' table.
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Text, TIMESTAMP, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from community_contest.utils.time_utils import utcnow
from .base import Base


class CommentORM(Base):
    """Immutable comment posted on an approved or winning submission."""
    __tablename__ = "article_comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("article_submissions.id"), nullable=False)
    author_id: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        Index("ix_article_comments_submission_created", "submission_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CommentORM(id={self.id}, submission_id={self.submission_id}, author_id='{self.author_id}')>"
