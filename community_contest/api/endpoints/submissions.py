"""
Submission API endpoints.

Authoring, listing, voting, moderation and comments on article submissions.
Every write returns the authoritative post-mutation state.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.api.dependencies import get_actor, get_notification_client
from community_contest.core.comment_thread import CommentThread
from community_contest.core.errors import NotAuthenticated
from community_contest.core.moderation import ModerationGateway
from community_contest.core.submission_store import SubmissionStore
from community_contest.core.views import comments_for_viewer, get_for_viewer
from community_contest.core.vote_ledger import VoteLedger
from community_contest.integrations.notifier import NotificationClient, NotificationEvent
from community_contest.models.dtos import (
    Actor,
    CommentCreateRequest,
    CommentDTO,
    ModerationRequest,
    SubmissionCreateRequest,
    SubmissionDTO,
    SubmissionEditRequest,
    SubmissionListItem,
    SubmissionView,
    VoteResult,
)
from community_contest.utils.db_session import get_db_session

router = APIRouter()
logger = logging.getLogger(__name__)


async def with_vote_flags(
    session: AsyncSession, submissions: List[SubmissionDTO], viewer: Actor
) -> List[SubmissionListItem]:
    """Attach the viewer's has_voted flag to each submission of a listing."""
    voted = await VoteLedger(session).voted_ids(viewer.user_id, [s.id for s in submissions])
    return [
        SubmissionListItem(**s.model_dump(), has_voted=s.id in voted)
        for s in submissions
    ]


@router.post("", response_model=SubmissionDTO, status_code=status.HTTP_201_CREATED)
async def create_submission(
    request: SubmissionCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SubmissionDTO:
    """Submit a new article for moderation."""
    return await SubmissionStore(session).create(
        author_id=actor.user_id,
        title=request.title,
        body=request.body,
        excerpt=request.excerpt,
        cover_image_url=request.cover_image_url,
        contest_period_id=request.contest_period_id,
    )


@router.get("", response_model=List[SubmissionListItem])
async def list_submissions(
    contest_period_id: Optional[uuid.UUID] = Query(None, description="Restrict to one contest period"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum number of results"),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[SubmissionListItem]:
    """Published submissions ordered by vote tally."""
    submissions = await SubmissionStore(session).list_approved(contest_period_id, limit=limit)
    return await with_vote_flags(session, submissions, actor)


@router.get("/mine", response_model=List[SubmissionDTO])
async def list_my_submissions(
    contest_period_id: Optional[uuid.UUID] = Query(None, description="Restrict to one contest period"),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[SubmissionDTO]:
    """The caller's own submissions in every status, newest first."""
    if not actor.user_id:
        raise NotAuthenticated("You must be signed in to see your submissions.")
    return await SubmissionStore(session).list_by_author(actor.user_id, contest_period_id)


@router.get("/{submission_id}", response_model=SubmissionView)
async def get_submission(
    submission_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SubmissionView:
    return await get_for_viewer(session, submission_id, actor)


@router.patch("/{submission_id}", response_model=SubmissionDTO)
async def edit_submission(
    submission_id: uuid.UUID,
    request: SubmissionEditRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> SubmissionDTO:
    """Edit a pending submission. Only its author may do so."""
    return await SubmissionStore(session).edit(submission_id, actor.user_id, request)


@router.post("/{submission_id}/vote", response_model=VoteResult)
async def toggle_vote(
    submission_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> VoteResult:
    """
    Toggle the caller's vote.

    The response says whether the caller now has a vote on the submission;
    a client retrying after a timeout should check it before toggling again.
    """
    return await VoteLedger(session).toggle(submission_id, actor.user_id)


async def _moderate(
    decision: str,
    submission_id: uuid.UUID,
    request: Optional[ModerationRequest],
    actor: Actor,
    session: AsyncSession,
    notifier: Optional[NotificationClient],
    background_tasks: BackgroundTasks,
) -> SubmissionDTO:
    gateway = ModerationGateway(SubmissionStore(session))
    feedback = request.feedback if request is not None else None
    if decision == "approved":
        submission = await gateway.approve(submission_id, actor, feedback=feedback)
    else:
        submission = await gateway.reject(submission_id, actor, feedback=feedback)

    # The decision must be durable before the author hears about it.
    await session.commit()
    if notifier is not None:
        background_tasks.add_task(notifier.notify, NotificationEvent.for_submission(decision, submission))
    return submission


@router.post("/{submission_id}/approve", response_model=SubmissionDTO)
async def approve_submission(
    submission_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Optional[ModerationRequest] = None,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    notifier: Optional[NotificationClient] = Depends(get_notification_client),
) -> SubmissionDTO:
    """Approve a pending submission (moderators only)."""
    return await _moderate("approved", submission_id, request, actor, session, notifier, background_tasks)


@router.post("/{submission_id}/reject", response_model=SubmissionDTO)
async def reject_submission(
    submission_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Optional[ModerationRequest] = None,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    notifier: Optional[NotificationClient] = Depends(get_notification_client),
) -> SubmissionDTO:
    """Reject a pending submission (moderators only)."""
    return await _moderate("rejected", submission_id, request, actor, session, notifier, background_tasks)


@router.get("/{submission_id}/comments", response_model=List[CommentDTO])
async def list_comments(
    submission_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[CommentDTO]:
    return await comments_for_viewer(session, submission_id, actor)


@router.post("/{submission_id}/comments", response_model=CommentDTO, status_code=status.HTTP_201_CREATED)
async def add_comment(
    submission_id: uuid.UUID,
    request: CommentCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> CommentDTO:
    return await CommentThread(session).add(submission_id, actor.user_id, request.body)
