"""
Contest period API endpoints.

Public reads of the active contest, its leaderboard and past winners, plus
moderator administration and the scheduler's resolve trigger.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.api.dependencies import get_actor, get_notification_client
from community_contest.api.endpoints.submissions import with_vote_flags
from community_contest.core.contest_manager import ContestPeriodManager
from community_contest.core.errors import NotAuthorized
from community_contest.core.submission_store import SubmissionStore
from community_contest.integrations.notifier import NotificationClient, NotificationEvent
from community_contest.models.dtos import (
    Actor,
    ContestPeriodCreateRequest,
    ContestPeriodDTO,
    PastWinnerDTO,
    SubmissionListItem,
)
from community_contest.utils.db_session import get_db_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/active", response_model=Optional[ContestPeriodDTO])
async def get_active_contest(session: AsyncSession = Depends(get_db_session)) -> Optional[ContestPeriodDTO]:
    """The current contest, or null when none is running."""
    return await ContestPeriodManager(session).get_active()


@router.get("/winners", response_model=List[PastWinnerDTO])
async def list_past_winners(
    limit: Optional[int] = Query(None, ge=1, le=100, description="Maximum number of results"),
    session: AsyncSession = Depends(get_db_session),
) -> List[PastWinnerDTO]:
    return await ContestPeriodManager(session).past_winners(limit)


@router.get("", response_model=List[ContestPeriodDTO])
async def list_contests(
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[ContestPeriodDTO]:
    """All contest periods, newest first (moderators only)."""
    if not actor.is_moderator:
        raise NotAuthorized("Only a moderator can list every contest.")
    return await ContestPeriodManager(session).list_periods()


@router.post("", response_model=ContestPeriodDTO, status_code=status.HTTP_201_CREATED)
async def create_contest(
    request: ContestPeriodCreateRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ContestPeriodDTO:
    return await ContestPeriodManager(session).create_period(
        actor,
        name=request.name,
        start_date=request.start_date,
        end_date=request.end_date,
        prize_description=request.prize_description,
        description=request.description,
    )


@router.get("/{period_id}/submissions", response_model=List[SubmissionListItem])
async def list_contest_submissions(
    period_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[SubmissionListItem]:
    """The contest leaderboard: published entries ordered by tally."""
    await ContestPeriodManager(session).get(period_id)
    submissions = await SubmissionStore(session).list_approved(period_id)
    return await with_vote_flags(session, submissions, actor)


@router.post("/{period_id}/activate", response_model=ContestPeriodDTO)
async def activate_contest(
    period_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ContestPeriodDTO:
    return await ContestPeriodManager(session).activate(actor, period_id)


@router.post("/{period_id}/deactivate", response_model=ContestPeriodDTO)
async def deactivate_contest(
    period_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> ContestPeriodDTO:
    return await ContestPeriodManager(session).deactivate(actor, period_id)


@router.post("/{period_id}/resolve", response_model=ContestPeriodDTO)
async def resolve_contest(
    period_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
    notifier: Optional[NotificationClient] = Depends(get_notification_client),
) -> ContestPeriodDTO:
    """Resolve an ended contest (scheduler only). Idempotent."""
    outcome = await ContestPeriodManager(session).resolve_with_outcome(period_id, actor)
    await session.commit()
    if notifier is not None and outcome.resolved_now and outcome.winner is not None:
        background_tasks.add_task(
            notifier.notify, NotificationEvent.for_submission("winner", outcome.winner, outcome.period)
        )
    return outcome.period
