"""
Viewer-specific read models combining a submission with its vote and
comment state.
"""
import uuid
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.core.comment_thread import CommentThread
from community_contest.core.errors import NotFound
from community_contest.core.submission_store import SubmissionStore
from community_contest.core.vote_ledger import VoteLedger
from community_contest.models.dtos import PUBLIC_STATUSES, Actor, CommentDTO, SubmissionDTO, SubmissionView


async def visible_submission(session: AsyncSession, submission_id: uuid.UUID, viewer: Actor) -> SubmissionDTO:
    """
    Load a submission the viewer is allowed to see.

    Unpublished submissions are visible only to their author and to
    moderators; anyone else gets NotFound, as for an unknown id.
    """
    submission = await SubmissionStore(session).get(submission_id)
    if (
        submission.status not in PUBLIC_STATUSES
        and not viewer.is_moderator
        and viewer.user_id != submission.author_id
    ):
        raise NotFound(f"Submission {submission_id} does not exist.")
    return submission


async def get_for_viewer(session: AsyncSession, submission_id: uuid.UUID, viewer: Actor) -> SubmissionView:
    """A submission as one viewer sees it."""
    submission = await visible_submission(session, submission_id, viewer)
    return SubmissionView(
        submission=submission,
        has_voted=await VoteLedger(session).has_voted(submission_id, viewer.user_id),
        comments=await CommentThread(session).list(submission_id),
    )


async def comments_for_viewer(session: AsyncSession, submission_id: uuid.UUID, viewer: Actor) -> List[CommentDTO]:
    await visible_submission(session, submission_id, viewer)
    return await CommentThread(session).list(submission_id)
