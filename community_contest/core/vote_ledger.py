"""
Vote Ledger for the community contest service.

Stores one vote row per (submission, voter) and keeps the cached
`vote_count` on the submission in step with it. The ledger is the only
writer of `vote_count`, and every change to it is an in-database
increment/decrement so concurrent toggles on the same submission never
lose updates.
"""
import logging
import uuid
from typing import Iterable, List, Optional, Set

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.core.errors import ConflictError, NotAuthenticated, NotFound, NotVotable
from community_contest.models import SubmissionORM, VoteORM
from community_contest.models.dtos import PUBLIC_STATUSES, TallyRepair, VoteResult

logger = logging.getLogger(__name__)

_VOTABLE = tuple(status.value for status in PUBLIC_STATUSES)


class VoteLedger:
    """
    Toggle-style voting over approved and winning submissions.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _current_count(self, submission_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(SubmissionORM.vote_count).where(SubmissionORM.id == submission_id)
        )
        return result.scalar_one()

    async def _adjust_count(self, submission_id: uuid.UUID, delta: int) -> None:
        stmt = (
            update(SubmissionORM)
            .where(SubmissionORM.id == submission_id)
            .values(vote_count=SubmissionORM.vote_count + delta)
            .execution_options(synchronize_session=False)
        )
        if delta < 0:
            stmt = stmt.where(SubmissionORM.vote_count > 0)
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            # Only reachable if the cached tally had already drifted to zero.
            logger.warning(f"Tally for submission {submission_id} not adjusted by {delta}; run a recount")

    async def toggle(self, submission_id: uuid.UUID, voter_id: Optional[str]) -> VoteResult:
        """
        Cast the voter's vote if absent, retract it if present.

        Retrying a toggle after an ambiguous failure may undo the intended
        vote; the returned `voted` flag tells the caller which state it
        ended in.

        Raises:
            NotAuthenticated: If no voter id is supplied.
            NotFound: If the submission does not exist.
            NotVotable: If the submission is not approved or winner.
            ConflictError: If a concurrent toggle by the same voter inserted
                the vote row first. The session must be rolled back.
        """
        if not voter_id:
            raise NotAuthenticated("You must be signed in to vote.")

        status_result = await self._session.execute(
            select(SubmissionORM.status).where(SubmissionORM.id == submission_id)
        )
        status = status_result.scalar_one_or_none()
        if status is None:
            raise NotFound(f"Submission {submission_id} does not exist.")
        # approved and winner are never left once entered, so this check cannot go stale.
        if status not in _VOTABLE:
            raise NotVotable(f"Votes are only accepted on published articles (this one is '{status}').")

        deleted = await self._session.execute(
            delete(VoteORM)
            .where(VoteORM.submission_id == submission_id, VoteORM.voter_id == voter_id)
            .execution_options(synchronize_session=False)
        )
        if deleted.rowcount == 1:
            await self._adjust_count(submission_id, -1)
            voted = False
        else:
            try:
                await self._session.execute(
                    insert(VoteORM).values(submission_id=submission_id, voter_id=voter_id)
                )
            except IntegrityError as e:
                logger.warning(f"Concurrent vote by {voter_id} on submission {submission_id}: {e.orig}")
                raise ConflictError(
                    "Your vote was changed from another session at the same time; refresh and try again."
                ) from e
            await self._adjust_count(submission_id, 1)
            voted = True

        new_count = await self._current_count(submission_id)
        logger.info(
            f"Voter {voter_id} {'cast' if voted else 'retracted'} vote on submission "
            f"{submission_id}; tally now {new_count}"
        )
        return VoteResult(submission_id=submission_id, voted=voted, vote_count=new_count)

    async def has_voted(self, submission_id: uuid.UUID, voter_id: Optional[str]) -> bool:
        if not voter_id:
            return False
        result = await self._session.execute(
            select(VoteORM.voter_id).where(
                VoteORM.submission_id == submission_id, VoteORM.voter_id == voter_id
            )
        )
        return result.first() is not None

    async def voted_ids(self, voter_id: Optional[str], submission_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        """Which of `submission_ids` the voter has voted for, in one query."""
        ids = list(submission_ids)
        if not voter_id or not ids:
            return set()
        result = await self._session.execute(
            select(VoteORM.submission_id).where(
                VoteORM.voter_id == voter_id, VoteORM.submission_id.in_(ids)
            )
        )
        return set(result.scalars().all())

    async def count_for(self, submission_id: uuid.UUID) -> int:
        """Authoritative tally: the number of vote rows for the submission."""
        result = await self._session.execute(
            select(func.count()).select_from(VoteORM).where(VoteORM.submission_id == submission_id)
        )
        return result.scalar_one()

    async def repair(self, submission_id: uuid.UUID) -> TallyRepair:
        """Rewrite the cached tally from the vote rows in a single statement."""
        cached_result = await self._session.execute(
            select(SubmissionORM.vote_count).where(SubmissionORM.id == submission_id)
        )
        cached = cached_result.scalar_one_or_none()
        if cached is None:
            raise NotFound(f"Submission {submission_id} does not exist.")

        actual_subquery = (
            select(func.count())
            .select_from(VoteORM)
            .where(VoteORM.submission_id == submission_id)
            .scalar_subquery()
        )
        await self._session.execute(
            update(SubmissionORM)
            .where(SubmissionORM.id == submission_id)
            .values(vote_count=actual_subquery)
            .execution_options(synchronize_session=False)
        )
        repair = TallyRepair(
            submission_id=submission_id,
            cached_count=cached,
            actual_count=await self._current_count(submission_id),
        )
        if repair.drifted:
            logger.warning(
                f"Repaired tally drift on submission {submission_id}: "
                f"{repair.cached_count} -> {repair.actual_count}"
            )
        return repair

    async def recount_all(self) -> List[TallyRepair]:
        """Check every submission's cached tally and repair the ones that drifted."""
        counts = (
            select(VoteORM.submission_id, func.count().label("actual"))
            .group_by(VoteORM.submission_id)
            .subquery()
        )
        result = await self._session.execute(
            select(SubmissionORM.id, SubmissionORM.vote_count, func.coalesce(counts.c.actual, 0))
            .outerjoin(counts, counts.c.submission_id == SubmissionORM.id)
        )
        drifted = [row.id for row in result.all() if row[1] != row[2]]

        repairs = [await self.repair(submission_id) for submission_id in drifted]
        logger.info(f"Recount complete: {len(repairs)} submission(s) repaired")
        return repairs
