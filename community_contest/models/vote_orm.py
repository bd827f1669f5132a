"""
SQLAlchemy ORM model for the 'article_votes' table.
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, PrimaryKeyConstraint, Text, TIMESTAMP, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from community_contest.utils.time_utils import utcnow
from .base import Base


class VoteORM(Base):
    """
    One voter's endorsement of one submission.

    The composite primary key (submission_id, voter_id) is the
    one-vote-per-pair guarantee.
    """
    __tablename__ = "article_votes"

    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("article_submissions.id"), nullable=False)
    voter_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        PrimaryKeyConstraint("submission_id", "voter_id", name="pk_article_votes"),
        Index("ix_article_votes_voter_id", "voter_id"),
    )

    def __repr__(self) -> str:
        return f"<VoteORM(submission_id={self.submission_id}, voter_id='{self.voter_id}')>"
