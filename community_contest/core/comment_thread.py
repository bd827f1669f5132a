"""
Comment Thread attached to each submission.

Comments are immutable once posted and may only be removed by their author.
"""
import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.config.settings import settings
from community_contest.core.errors import (
    NotAuthenticated,
    NotAuthorized,
    NotCommentable,
    NotFound,
    ValidationError,
)
from community_contest.models import CommentORM, SubmissionORM
from community_contest.models.dtos import PUBLIC_STATUSES, CommentDTO

logger = logging.getLogger(__name__)

_COMMENTABLE = tuple(status.value for status in PUBLIC_STATUSES)


class CommentThread:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, submission_id: uuid.UUID, author_id: Optional[str], body: str) -> CommentDTO:
        """
        Post a comment on an approved or winning submission.

        Raises:
            NotAuthenticated: If no author id is supplied.
            ValidationError: If the body is empty or too long.
            NotFound: If the submission does not exist.
            NotCommentable: If the submission is not published.
        """
        if not author_id:
            raise NotAuthenticated("You must be signed in to comment.")
        if body is None or not body.strip():
            raise ValidationError("A comment must not be empty.")
        if len(body.strip()) > settings.MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"A comment can have at most {settings.MAX_COMMENT_LENGTH} characters."
            )

        status_result = await self._session.execute(
            select(SubmissionORM.status).where(SubmissionORM.id == submission_id)
        )
        status = status_result.scalar_one_or_none()
        if status is None:
            raise NotFound(f"Submission {submission_id} does not exist.")
        if status not in _COMMENTABLE:
            raise NotCommentable(
                f"Comments are only accepted on published articles (this one is '{status}')."
            )

        comment = CommentORM(submission_id=submission_id, author_id=author_id, body=body.strip())
        self._session.add(comment)
        await self._session.flush()
        await self._session.refresh(comment)
        logger.info(f"Comment {comment.id} added to submission {submission_id} by {author_id}")
        return CommentDTO.model_validate(comment)

    async def remove(self, comment_id: uuid.UUID, actor_id: Optional[str]) -> None:
        """Delete a comment. Only its author may do so."""
        if not actor_id:
            raise NotAuthenticated("You must be signed in to delete a comment.")
        comment = await self._session.get(CommentORM, comment_id)
        if comment is None:
            raise NotFound(f"Comment {comment_id} does not exist.")
        if comment.author_id != actor_id:
            raise NotAuthorized("You can only delete your own comments.")

        await self._session.execute(
            delete(CommentORM)
            .where(CommentORM.id == comment_id, CommentORM.author_id == actor_id)
            .execution_options(synchronize_session=False)
        )
        self._session.expunge(comment)
        logger.info(f"Comment {comment_id} removed by {actor_id}")

    async def list(self, submission_id: uuid.UUID) -> List[CommentDTO]:
        """Comments on a submission, oldest first."""
        result = await self._session.execute(
            select(CommentORM)
            .where(CommentORM.submission_id == submission_id)
            .order_by(CommentORM.created_at.asc(), CommentORM.id.asc())
        )
        return [CommentDTO.model_validate(row) for row in result.scalars().all()]
