"""
Comment API endpoints that address a comment directly.
"""

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.api.dependencies import get_actor
from community_contest.core.comment_thread import CommentThread
from community_contest.models.dtos import Actor
from community_contest.utils.db_session import get_db_session

router = APIRouter()


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> Response:
    """Delete one of the caller's own comments."""
    await CommentThread(session).remove(comment_id, actor.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
