"""
Contest Period Manager for the community contest service.

Tracks the single active contest period, its candidate pool and its resolved
winner. Resolution may be triggered by several schedulers at once: closing
the period is one compare-and-set UPDATE on `is_active`, so exactly one
caller goes on to pick and persist a winner while the others see the period
already closed and get the existing result back.
"""
import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from community_contest.config.settings import settings
from community_contest.core.errors import (
    ConflictError,
    InvalidState,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from community_contest.core.submission_store import SubmissionStore
from community_contest.models import ContestPeriodORM, SubmissionORM
from community_contest.models.dtos import (
    Actor,
    ActorRole,
    ContestPeriodDTO,
    PastWinnerDTO,
    ResolutionOutcome,
    SubmissionDTO,
    SubmissionStatus,
)
from community_contest.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


def _require_role(actor: Actor, role: ActorRole, action: str) -> None:
    if actor.role != role:
        raise NotAuthorized(f"Only a {role.value} can {action}.")


class ContestPeriodManager:
    """
    Contest lifecycle: creation, activation, winner resolution and history.

    Args:
        session: Session shared with the other components of the request.
        submissions: Submission store used for candidates and the winner
            transition; one is created on the same session if omitted.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        session: AsyncSession,
        submissions: Optional[SubmissionStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._submissions = submissions or SubmissionStore(session)
        self._clock = clock

    async def _load(self, period_id: uuid.UUID) -> ContestPeriodORM:
        period = await self._session.get(ContestPeriodORM, period_id, populate_existing=True)
        if period is None:
            raise NotFound(f"Contest period {period_id} does not exist.")
        return period

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get(self, period_id: uuid.UUID) -> ContestPeriodDTO:
        return ContestPeriodDTO.model_validate(await self._load(period_id))

    async def get_active(self) -> Optional[ContestPeriodDTO]:
        """The single period with is_active set, or None."""
        result = await self._session.execute(
            select(ContestPeriodORM)
            .where(ContestPeriodORM.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        period = result.scalars().first()
        return ContestPeriodDTO.model_validate(period) if period is not None else None

    async def list_periods(self) -> List[ContestPeriodDTO]:
        result = await self._session.execute(
            select(ContestPeriodORM)
            .order_by(ContestPeriodORM.start_date.desc())
            .execution_options(populate_existing=True)
        )
        return [ContestPeriodDTO.model_validate(row) for row in result.scalars().all()]

    async def candidates(self, period_id: uuid.UUID) -> List[SubmissionDTO]:
        """Approved submissions entered into the period, best tally first."""
        await self._load(period_id)
        return await self._submissions.list_approved(period_id, include_winners=False)

    async def due_period_ids(self) -> List[uuid.UUID]:
        """Active periods whose end time has passed."""
        result = await self._session.execute(
            select(ContestPeriodORM.id).where(
                ContestPeriodORM.is_active.is_(True),
                ContestPeriodORM.end_date <= self._clock(),
            )
        )
        return list(result.scalars().all())

    async def past_winners(self, limit: Optional[int] = None) -> List[PastWinnerDTO]:
        """Resolved periods with their winning submission, latest contest first."""
        limit = limit if limit is not None else settings.PAST_WINNERS_DEFAULT_LIMIT
        result = await self._session.execute(
            select(ContestPeriodORM, SubmissionORM)
            .join(SubmissionORM, SubmissionORM.id == ContestPeriodORM.winner_submission_id)
            .order_by(ContestPeriodORM.end_date.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [
            PastWinnerDTO(
                period=ContestPeriodDTO.model_validate(period),
                submission=SubmissionDTO.model_validate(submission),
            )
            for period, submission in result.all()
        ]

    # ------------------------------------------------------------------ #
    # Administration
    # ------------------------------------------------------------------ #

    async def create_period(
        self,
        actor: Actor,
        name: str,
        start_date: datetime,
        end_date: datetime,
        prize_description: str = "",
        description: Optional[str] = None,
    ) -> ContestPeriodDTO:
        """Create an inactive contest period."""
        _require_role(actor, ActorRole.MODERATOR, "create a contest")
        if not name or not name.strip():
            raise ValidationError("The contest name must not be empty.")
        start_date, end_date = as_utc(start_date), as_utc(end_date)
        if end_date <= start_date:
            raise ValidationError("The contest must end after it starts.")

        period = ContestPeriodORM(
            name=name.strip(),
            description=description,
            start_date=start_date,
            end_date=end_date,
            prize_description=prize_description or "",
            is_active=False,
        )
        self._session.add(period)
        await self._session.flush()
        await self._session.refresh(period)
        logger.info(f"Contest period {period.id} '{period.name}' created by {actor.user_id}")
        return ContestPeriodDTO.model_validate(period)

    async def activate(self, actor: Actor, period_id: uuid.UUID) -> ContestPeriodDTO:
        """
        Make the period the current contest.

        Raises:
            InvalidState: If the period has already been resolved.
            ConflictError: If another period is already active.
        """
        _require_role(actor, ActorRole.MODERATOR, "activate a contest")
        period = await self._load(period_id)
        if period.winner_announced_at is not None:
            raise InvalidState(f"The contest '{period.name}' has already been resolved.")
        if period.is_active:
            return ContestPeriodDTO.model_validate(period)

        other = aliased(ContestPeriodORM)
        try:
            result = await self._session.execute(
                update(ContestPeriodORM)
                .where(
                    ContestPeriodORM.id == period_id,
                    ContestPeriodORM.is_active.is_(False),
                    ContestPeriodORM.winner_submission_id.is_(None),
                    ContestPeriodORM.winner_announced_at.is_(None),
                    ~exists().where(other.is_active.is_(True)),
                )
                .values(is_active=True, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            logger.warning(f"Concurrent activation blocked for contest period {period_id}: {e.orig}")
            raise ConflictError("Another contest was activated at the same time; refresh and try again.") from e

        if result.rowcount != 1:
            active = await self.get_active()
            active_name = active.name if active is not None else "another contest"
            logger.warning(f"Activation of contest period {period_id} refused; '{active_name}' is active")
            raise ConflictError(
                f"The contest '{active_name}' is already active; deactivate it before activating another."
            )

        logger.info(f"Contest period {period_id} activated by {actor.user_id}")
        return await self.get(period_id)

    async def deactivate(self, actor: Actor, period_id: uuid.UUID) -> ContestPeriodDTO:
        """Close the period without picking a winner."""
        _require_role(actor, ActorRole.MODERATOR, "deactivate a contest")
        await self._load(period_id)
        result = await self._session.execute(
            update(ContestPeriodORM)
            .where(ContestPeriodORM.id == period_id, ContestPeriodORM.is_active.is_(True))
            .values(is_active=False, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info(f"Contest period {period_id} deactivated by {actor.user_id}")
        return await self.get(period_id)

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    async def resolve(self, period_id: uuid.UUID, actor: Optional[Actor] = None) -> ContestPeriodDTO:
        """
        Close an ended period and declare its winner.

        Idempotent: an already-closed period is returned unchanged.
        """
        outcome = await self.resolve_with_outcome(period_id, actor)
        return outcome.period

    async def resolve_with_outcome(self, period_id: uuid.UUID, actor: Optional[Actor] = None) -> ResolutionOutcome:
        """
        Resolve the period and report whether this call did the work.

        The winner is the approved candidate with the highest tally; ties go
        to the earliest submission. A period without candidates is closed
        with no winner.

        Raises:
            NotAuthorized: If the actor is not the scheduler.
            NotFound: If the period does not exist.
            InvalidState: If the period is active but has not ended yet.
        """
        actor = actor or Actor.scheduler()
        _require_role(actor, ActorRole.SCHEDULER, "resolve a contest")
        now = self._clock()

        closed = await self._session.execute(
            update(ContestPeriodORM)
            .where(
                ContestPeriodORM.id == period_id,
                ContestPeriodORM.is_active.is_(True),
                ContestPeriodORM.end_date <= now,
            )
            .values(is_active=False, winner_announced_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if closed.rowcount != 1:
            period = await self._load(period_id)
            if period.is_active:
                raise InvalidState(
                    f"The contest '{period.name}' is still running until "
                    f"{as_utc(period.end_date).isoformat()}."
                )
            if period.winner_announced_at is None:
                logger.info(f"Contest period {period_id} is inactive and was never resolved; nothing to do")
            else:
                logger.info(f"Contest period {period_id} already resolved; returning existing result")
            winner = None
            if period.winner_submission_id is not None:
                winner = await self._submissions.get(period.winner_submission_id)
            return ResolutionOutcome(
                period=ContestPeriodDTO.model_validate(period), winner=winner, resolved_now=False
            )

        candidates = await self._submissions.list_approved(period_id, include_winners=False, limit=1)
        if not candidates:
            logger.info(f"Contest period {period_id} closed with no approved candidates; no winner")
            return ResolutionOutcome(period=await self.get(period_id), winner=None, resolved_now=True)

        winner = await self._submissions.set_status(candidates[0].id, SubmissionStatus.WINNER, actor)
        await self._session.execute(
            update(ContestPeriodORM)
            .where(ContestPeriodORM.id == period_id, ContestPeriodORM.winner_submission_id.is_(None))
            .values(winner_submission_id=winner.id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            f"Contest period {period_id} resolved: winner {winner.id} with {winner.vote_count} vote(s)"
        )
        return ResolutionOutcome(period=await self.get(period_id), winner=winner, resolved_now=True)
