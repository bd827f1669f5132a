"""
Scheduled contest resolution.

Finds active contest periods whose end time has passed and resolves each one
in its own transaction. Safe to run on several instances at once: the
compare-and-set in ContestPeriodManager lets exactly one of them declare the
winner, and only that one sends the winner notification.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_contest.core.contest_manager import ContestPeriodManager
from community_contest.core.errors import ContestError
from community_contest.integrations.notifier import NotificationClient, NotificationEvent
from community_contest.models.dtos import Actor, ResolutionOutcome
from community_contest.utils.db_session import get_async_session_factory
from community_contest.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ContestResolver:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        notifier: Optional[NotificationClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory or get_async_session_factory()
        self._notifier = notifier
        self._clock = clock
        self._actor = Actor.scheduler()

    async def run_once(self) -> List[ResolutionOutcome]:
        """
        Resolve every due period.

        Returns:
            The outcomes of the periods this run resolved or found resolved.
        """
        async with self._session_factory() as session:
            due = await ContestPeriodManager(session, clock=self._clock).due_period_ids()
        if not due:
            logger.debug("No contest periods due for resolution")
            return []

        logger.info(f"{len(due)} contest period(s) due for resolution")
        outcomes: List[ResolutionOutcome] = []
        for period_id in due:
            async with self._session_factory() as session:
                try:
                    outcome = await ContestPeriodManager(session, clock=self._clock).resolve_with_outcome(
                        period_id, self._actor
                    )
                    await session.commit()
                except ContestError as e:
                    await session.rollback()
                    logger.warning(f"Could not resolve contest period {period_id}: {e.message}")
                    continue
                except Exception:
                    await session.rollback()
                    raise
            outcomes.append(outcome)

            if self._notifier and outcome.resolved_now and outcome.winner is not None:
                await self._notifier.notify(
                    NotificationEvent.for_submission("winner", outcome.winner, outcome.period)
                )
        return outcomes
