"""
SQLAlchemy ORM model for the 'contest_periods' table.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Text, TIMESTAMP, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from community_contest.utils.time_utils import utcnow
from .base import Base


class ContestPeriodORM(Base):
    """
    A time-boxed contest collecting votes on approved submissions.

    Attributes:
        id (UUID): Primary key.
        name (str): Display name of the contest.
        description (str, optional): Longer description shown to participants.
        start_date (datetime): When the contest opens.
        end_date (datetime): When voting closes and the period becomes resolvable.
        prize_description (str): What the winner receives.
        is_active (bool): True for the single current contest.
        winner_submission_id (UUID, optional): Set once, at resolution.
        winner_announced_at (datetime, optional): When the period was resolved,
            with or without a winner. A resolved period cannot be reactivated.
    """
    __tablename__ = "contest_periods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    prize_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    winner_submission_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Write-once, set by contest resolution. Logically references article_submissions.id (not an enforced FK).",
    )
    winner_announced_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="end_after_start"),
        # At most one active period, enforced by the database.
        Index(
            "uq_contest_periods_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_contest_periods_end_date", "end_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ContestPeriodORM(id={self.id}, name='{self.name}', "
            f"is_active={self.is_active}, winner={self.winner_submission_id})>"
        )
