import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.core.contest_manager import ContestPeriodManager
from community_contest.core.errors import (
    ConflictError,
    InvalidState,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from community_contest.core.submission_store import SubmissionStore
from community_contest.core.vote_ledger import VoteLedger
from community_contest.models import ContestPeriodORM
from community_contest.models.dtos import Actor, SubmissionStatus
from community_contest.utils.time_utils import as_utc, utcnow


@pytest.fixture
def ended_contest(make_period, make_submission, cast_votes, end_period):
    """An active period whose end time has passed, with candidates of 5 and 3 votes."""

    async def _ended_contest(session):
        period = await make_period(session)
        strong = await make_submission(session, author_id="author-1", title="Strong", contest_period_id=period.id)
        weak = await make_submission(session, author_id="author-2", title="Weak", contest_period_id=period.id)
        await make_submission(session, author_id="author-3", title="Unreviewed", contest_period_id=period.id, approve=False)
        await cast_votes(session, strong.id, 5)
        await cast_votes(session, weak.id, 3)
        await end_period(session, period.id)
        return period, strong, weak

    return _ended_contest


class TestResolve:
    @pytest.mark.asyncio
    async def test_highest_tally_wins(self, db_session, ended_contest, scheduler):
        period, strong, weak = await ended_contest(db_session)

        resolved = await ContestPeriodManager(db_session).resolve(period.id, scheduler)

        assert resolved.is_active is False
        assert resolved.winner_submission_id == strong.id
        assert resolved.winner_announced_at is not None
        store = SubmissionStore(db_session)
        assert (await store.get(strong.id)).status == SubmissionStatus.WINNER
        assert (await store.get(weak.id)).status == SubmissionStatus.APPROVED

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, db_session, ended_contest, scheduler):
        period, strong, weak = await ended_contest(db_session)
        manager = ContestPeriodManager(db_session)
        first = await manager.resolve_with_outcome(period.id, scheduler)

        # A late vote on the runner-up must not change the result.
        await VoteLedger(db_session).toggle(weak.id, "late-1")
        await VoteLedger(db_session).toggle(weak.id, "late-2")
        await VoteLedger(db_session).toggle(weak.id, "late-3")
        second = await manager.resolve_with_outcome(period.id, scheduler)

        assert first.resolved_now is True
        assert second.resolved_now is False
        assert second.period.winner_submission_id == first.period.winner_submission_id == strong.id
        assert second.winner.id == strong.id
        assert (await SubmissionStore(db_session).get(strong.id)).vote_count == 5

    @pytest.mark.asyncio
    async def test_tie_goes_to_earliest_submission(
        self, db_session, make_period, make_submission, cast_votes, end_period, set_created_at, scheduler
    ):
        period = await make_period(db_session)
        later = await make_submission(db_session, title="Later", contest_period_id=period.id)
        earlier = await make_submission(db_session, title="Earlier", contest_period_id=period.id)
        now = utcnow()
        await set_created_at(db_session, earlier.id, now - timedelta(hours=3))
        await set_created_at(db_session, later.id, now - timedelta(hours=1))
        await cast_votes(db_session, later.id, 2)
        await cast_votes(db_session, earlier.id, 2)
        await end_period(db_session, period.id)

        resolved = await ContestPeriodManager(db_session).resolve(period.id, scheduler)

        assert resolved.winner_submission_id == earlier.id

    @pytest.mark.asyncio
    async def test_no_candidates_closes_without_winner(self, db_session, make_period, end_period, scheduler):
        period = await make_period(db_session)
        await end_period(db_session, period.id)

        outcome = await ContestPeriodManager(db_session).resolve_with_outcome(period.id, scheduler)

        assert outcome.resolved_now is True
        assert outcome.winner is None
        assert outcome.period.is_active is False
        assert outcome.period.winner_submission_id is None
        assert outcome.period.winner_announced_at is not None

    @pytest.mark.asyncio
    async def test_losing_the_claim_leaves_winner_to_other_resolver(self, scheduler):
        """Another scheduler closed the period between our due check and our claim."""
        period_id = uuid.uuid4()
        now = utcnow()
        closed_by_other = ContestPeriodORM(
            id=period_id, name="Spring", start_date=now - timedelta(days=30), end_date=now - timedelta(minutes=1),
            prize_description="", is_active=False, winner_submission_id=None, winner_announced_at=now,
            created_at=now, updated_at=now,
        )
        session = AsyncMock(spec=AsyncSession)
        session.execute.return_value = MagicMock(rowcount=0)
        session.get.return_value = closed_by_other
        submissions = AsyncMock(spec=SubmissionStore)

        outcome = await ContestPeriodManager(session, submissions=submissions).resolve_with_outcome(
            period_id, scheduler
        )

        assert outcome.resolved_now is False
        assert outcome.winner is None
        submissions.set_status.assert_not_called()
        submissions.list_approved.assert_not_called()
        assert session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_running_contest_cannot_be_resolved(self, db_session, make_period, scheduler):
        period = await make_period(db_session)

        with pytest.raises(InvalidState) as exc_info:
            await ContestPeriodManager(db_session).resolve(period.id, scheduler)

        assert "still running" in exc_info.value.message
        assert (await ContestPeriodManager(db_session).get(period.id)).is_active is True

    @pytest.mark.asyncio
    async def test_resolving_inactive_period_is_a_no_op(self, db_session, make_period, scheduler):
        period = await make_period(db_session, active=False)

        outcome = await ContestPeriodManager(db_session).resolve_with_outcome(period.id, scheduler)

        assert outcome.resolved_now is False
        assert outcome.winner is None
        assert outcome.period.id == period.id

    @pytest.mark.asyncio
    async def test_only_scheduler_resolves(self, db_session, ended_contest, moderator):
        period, _, _ = await ended_contest(db_session)

        with pytest.raises(NotAuthorized):
            await ContestPeriodManager(db_session).resolve(period.id, moderator)

    @pytest.mark.asyncio
    async def test_default_actor_is_scheduler(self, db_session, ended_contest):
        period, strong, _ = await ended_contest(db_session)

        resolved = await ContestPeriodManager(db_session).resolve(period.id)

        assert resolved.winner_submission_id == strong.id

    @pytest.mark.asyncio
    async def test_unknown_period(self, db_session, scheduler):
        with pytest.raises(NotFound):
            await ContestPeriodManager(db_session).resolve(uuid.uuid4(), scheduler)

    @pytest.mark.asyncio
    async def test_injected_clock_decides_due(self, db_session, make_period, scheduler):
        period = await make_period(db_session, ends_in=timedelta(hours=1))
        manager = ContestPeriodManager(db_session, clock=lambda: utcnow() + timedelta(hours=2))

        assert await manager.due_period_ids() == [period.id]
        resolved = await manager.resolve(period.id, scheduler)
        assert resolved.is_active is False


class TestReads:
    @pytest.mark.asyncio
    async def test_get_active(self, db_session, make_period):
        assert await ContestPeriodManager(db_session).get_active() is None
        period = await make_period(db_session)
        await make_period(db_session, name="Old", active=False)

        active = await ContestPeriodManager(db_session).get_active()

        assert active.id == period.id

    @pytest.mark.asyncio
    async def test_candidates_are_approved_entries_only(self, db_session, make_period, make_submission):
        period = await make_period(db_session)
        approved = await make_submission(db_session, contest_period_id=period.id)
        await make_submission(db_session, contest_period_id=period.id, approve=False)
        await make_submission(db_session)

        candidates = await ContestPeriodManager(db_session).candidates(period.id)

        assert [c.id for c in candidates] == [approved.id]

    @pytest.mark.asyncio
    async def test_past_winners_latest_first(
        self, db_session, make_period, make_submission, end_period, scheduler
    ):
        manager = ContestPeriodManager(db_session)
        winners = []
        for name in ("Winter", "Spring"):
            period = await make_period(db_session, name=name)
            entry = await make_submission(db_session, title=f"{name} entry", contest_period_id=period.id)
            await end_period(db_session, period.id)
            await manager.resolve(period.id, scheduler)
            winners.append(entry.id)
        # Spring ended after Winter.
        await db_session.execute(
            update(ContestPeriodORM)
            .where(ContestPeriodORM.name == "Winter")
            .values(end_date=utcnow() - timedelta(days=2))
        )

        past = await manager.past_winners()

        assert [p.period.name for p in past] == ["Spring", "Winter"]
        assert [p.submission.id for p in past] == list(reversed(winners))
        assert all(p.submission.status == SubmissionStatus.WINNER for p in past)
        assert len(await manager.past_winners(limit=1)) == 1


class TestAdministration:
    @pytest.mark.asyncio
    async def test_create_period_is_inactive(self, db_session, moderator):
        start = utcnow() + timedelta(days=1)
        end = start + timedelta(days=14)

        period = await ContestPeriodManager(db_session).create_period(
            moderator, "  Autumn Stories ", start, end, prize_description="Book tokens"
        )

        assert period.name == "Autumn Stories"
        assert period.is_active is False
        assert period.prize_description == "Book tokens"
        assert as_utc(period.end_date) == end

    @pytest.mark.asyncio
    async def test_create_period_requires_end_after_start(self, db_session, moderator):
        start = utcnow()

        with pytest.raises(ValidationError):
            await ContestPeriodManager(db_session).create_period(moderator, "Backwards", start, start)

    @pytest.mark.asyncio
    async def test_member_cannot_create_period(self, db_session):
        start = utcnow()
        with pytest.raises(NotAuthorized):
            await ContestPeriodManager(db_session).create_period(
                Actor(user_id="author-1"), "Mine", start, start + timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_activate_and_deactivate(self, db_session, make_period, moderator):
        period = await make_period(db_session, active=False)
        manager = ContestPeriodManager(db_session)

        activated = await manager.activate(moderator, period.id)
        again = await manager.activate(moderator, period.id)
        deactivated = await manager.deactivate(moderator, period.id)

        assert activated.is_active is True
        assert again.is_active is True
        assert deactivated.is_active is False
        assert await manager.get_active() is None

    @pytest.mark.asyncio
    async def test_second_active_period_is_a_conflict(self, db_session, make_period, moderator):
        current = await make_period(db_session, name="Current")
        other = await make_period(db_session, name="Next", active=False)

        with pytest.raises(ConflictError) as exc_info:
            await ContestPeriodManager(db_session).activate(moderator, other.id)

        assert "Current" in exc_info.value.message
        assert (await ContestPeriodManager(db_session).get_active()).id == current.id

    @pytest.mark.asyncio
    async def test_database_rejects_two_active_periods(self, db_session, make_period):
        await make_period(db_session, name="First")

        with pytest.raises(IntegrityError):
            await make_period(db_session, name="Second")
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_resolved_period_cannot_be_reactivated(
        self, db_session, ended_contest, scheduler, moderator
    ):
        period, _, _ = await ended_contest(db_session)
        manager = ContestPeriodManager(db_session)
        await manager.resolve(period.id, scheduler)

        with pytest.raises(InvalidState):
            await manager.activate(moderator, period.id)

    @pytest.mark.asyncio
    async def test_period_resolved_without_winner_stays_resolved(
        self, db_session, make_period, make_submission, end_period, scheduler, moderator
    ):
        period = await make_period(db_session)
        late = await make_submission(db_session, contest_period_id=period.id, approve=False)
        await end_period(db_session, period.id)
        manager = ContestPeriodManager(db_session)
        first = await manager.resolve_with_outcome(period.id, scheduler)
        assert first.winner is None

        await SubmissionStore(db_session).set_status(late.id, SubmissionStatus.APPROVED, moderator)
        with pytest.raises(InvalidState):
            await manager.activate(moderator, period.id)

        second = await manager.resolve_with_outcome(period.id, scheduler)
        assert second.resolved_now is False
        assert second.winner is None
        assert second.period.winner_submission_id is None
        assert (await SubmissionStore(db_session).get(late.id)).status == SubmissionStatus.APPROVED

    @pytest.mark.asyncio
    async def test_deactivated_period_can_be_reactivated(self, db_session, make_period, moderator):
        period = await make_period(db_session)
        manager = ContestPeriodManager(db_session)
        await manager.deactivate(moderator, period.id)

        reactivated = await manager.activate(moderator, period.id)

        assert reactivated.is_active is True

    @pytest.mark.asyncio
    async def test_list_periods(self, db_session, make_period):
        await make_period(db_session, name="Now")
        await make_period(db_session, name="Later", active=False, starts_in=timedelta(days=30), ends_in=timedelta(days=60))

        periods = await ContestPeriodManager(db_session).list_periods()

        assert [p.name for p in periods] == ["Later", "Now"]
