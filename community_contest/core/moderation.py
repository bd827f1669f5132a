"""
Moderation Gateway: the authorization boundary for approve/reject decisions.
"""
import logging
import uuid
from typing import Optional

from community_contest.core.submission_store import SubmissionStore
from community_contest.models.dtos import Actor, SubmissionDTO, SubmissionStatus

logger = logging.getLogger(__name__)


class ModerationGateway:
    """
    Thin wrapper over SubmissionStore.set_status for moderator decisions.

    The role check and the pending-only compare-and-set live in the store;
    both decisions fail with InvalidTransition unless the submission is
    currently pending.
    """

    def __init__(self, submissions: SubmissionStore):
        self._submissions = submissions

    async def approve(self, submission_id: uuid.UUID, moderator: Actor, feedback: Optional[str] = None) -> SubmissionDTO:
        submission = await self._submissions.set_status(
            submission_id, SubmissionStatus.APPROVED, moderator, feedback=feedback
        )
        logger.info(f"Submission {submission_id} approved by moderator {moderator.user_id}")
        return submission

    async def reject(self, submission_id: uuid.UUID, moderator: Actor, feedback: Optional[str] = None) -> SubmissionDTO:
        submission = await self._submissions.set_status(
            submission_id, SubmissionStatus.REJECTED, moderator, feedback=feedback
        )
        logger.info(f"Submission {submission_id} rejected by moderator {moderator.user_id}")
        return submission
