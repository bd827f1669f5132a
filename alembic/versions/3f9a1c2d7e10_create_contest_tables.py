"""create contest periods, submissions, votes and comments

Revision ID: 3f9a1c2d7e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

The partial unique index on contest_periods(is_active) enforces that at
most one contest period is active at a time.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3f9a1c2d7e10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "contest_periods",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("prize_description", sa.Text(), server_default="", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "winner_submission_id",
            sa.Uuid(),
            nullable=True,
            comment="Write-once, set by contest resolution. Logically references article_submissions.id (not an enforced FK).",
        ),
        sa.Column("winner_announced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_contest_periods"),
        sa.CheckConstraint("end_date > start_date", name="ck_contest_periods_end_after_start"),
    )
    op.create_index(
        "uq_contest_periods_single_active",
        "contest_periods",
        ["is_active"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )
    op.create_index("ix_contest_periods_end_date", "contest_periods", ["end_date"])

    op.create_table(
        "article_submissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("author_id", sa.Text(), nullable=False),
        sa.Column("contest_period_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("cover_image_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("vote_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("reviewed_by", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("admin_feedback", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_article_submissions"),
        sa.ForeignKeyConstraint(
            ["contest_period_id"],
            ["contest_periods.id"],
            name="fk_article_submissions_contest_period_id_contest_periods",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'winner')",
            name="ck_article_submissions_status_valid",
        ),
        sa.CheckConstraint("vote_count >= 0", name="ck_article_submissions_vote_count_non_negative"),
    )
    op.create_index(
        "ix_article_submissions_contest_status_votes",
        "article_submissions",
        ["contest_period_id", "status", "vote_count"],
    )
    op.create_index(
        "ix_article_submissions_author_created",
        "article_submissions",
        ["author_id", "created_at"],
    )

    op.create_table(
        "article_votes",
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("voter_id", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("submission_id", "voter_id", name="pk_article_votes"),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["article_submissions.id"],
            name="fk_article_votes_submission_id_article_submissions",
        ),
    )
    op.create_index("ix_article_votes_voter_id", "article_votes", ["voter_id"])

    op.create_table(
        "article_comments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("author_id", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_article_comments"),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["article_submissions.id"],
            name="fk_article_comments_submission_id_article_submissions",
        ),
    )
    op.create_index(
        "ix_article_comments_submission_created",
        "article_comments",
        ["submission_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_article_comments_submission_created", table_name="article_comments")
    op.drop_table("article_comments")
    op.drop_index("ix_article_votes_voter_id", table_name="article_votes")
    op.drop_table("article_votes")
    op.drop_index("ix_article_submissions_author_created", table_name="article_submissions")
    op.drop_index("ix_article_submissions_contest_status_votes", table_name="article_submissions")
    op.drop_table("article_submissions")
    op.drop_index("ix_contest_periods_end_date", table_name="contest_periods")
    op.drop_index("uq_contest_periods_single_active", table_name="contest_periods")
    op.drop_table("contest_periods")
