from unittest.mock import AsyncMock

import pytest
from pytest_mock import MockerFixture
from sqlalchemy.exc import OperationalError

from community_contest.core.contest_manager import ContestPeriodManager
from community_contest.core.errors import InvalidState
from community_contest.core.resolver import ContestResolver
from community_contest.core.submission_store import SubmissionStore
from community_contest.integrations.notifier import NotificationClient
from community_contest.models.dtos import SubmissionStatus


@pytest.fixture
def notifier():
    client = AsyncMock(spec=NotificationClient)
    client.notify.return_value = True
    return client


async def _seed_ended_contest(session_factory, make_period, make_submission, cast_votes, end_period):
    async with session_factory() as session:
        period = await make_period(session)
        entry = await make_submission(session, contest_period_id=period.id)
        await cast_votes(session, entry.id, 2)
        await end_period(session, period.id)
        await session.commit()
    return period, entry


@pytest.mark.asyncio
async def test_run_once_resolves_due_period_and_notifies_winner(
    session_factory, make_period, make_submission, cast_votes, end_period, notifier
):
    period, entry = await _seed_ended_contest(session_factory, make_period, make_submission, cast_votes, end_period)
    resolver = ContestResolver(session_factory=session_factory, notifier=notifier)

    outcomes = await resolver.run_once()

    assert len(outcomes) == 1
    assert outcomes[0].resolved_now is True
    assert outcomes[0].winner.id == entry.id
    notifier.notify.assert_awaited_once()
    event = notifier.notify.await_args.args[0]
    assert event.type == "winner"
    assert event.submission_id == entry.id
    assert event.contest_name == period.name
    assert event.prize_description == period.prize_description

    async with session_factory() as session:
        assert (await SubmissionStore(session).get(entry.id)).status == SubmissionStatus.WINNER
        assert (await ContestPeriodManager(session).get(period.id)).is_active is False


@pytest.mark.asyncio
async def test_second_run_finds_nothing_due(
    session_factory, make_period, make_submission, cast_votes, end_period, notifier
):
    await _seed_ended_contest(session_factory, make_period, make_submission, cast_votes, end_period)
    resolver = ContestResolver(session_factory=session_factory, notifier=notifier)
    await resolver.run_once()

    assert await resolver.run_once() == []
    assert notifier.notify.await_count == 1


@pytest.mark.asyncio
async def test_running_contest_is_left_alone(session_factory, make_period, notifier):
    async with session_factory() as session:
        period = await make_period(session)
        await session.commit()

    outcomes = await ContestResolver(session_factory=session_factory, notifier=notifier).run_once()

    assert outcomes == []
    notifier.notify.assert_not_awaited()
    async with session_factory() as session:
        assert (await ContestPeriodManager(session).get(period.id)).is_active is True


@pytest.mark.asyncio
async def test_no_notification_without_winner(session_factory, make_period, end_period, notifier):
    async with session_factory() as session:
        period = await make_period(session)
        await end_period(session, period.id)
        await session.commit()

    outcomes = await ContestResolver(session_factory=session_factory, notifier=notifier).run_once()

    assert outcomes[0].winner is None
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_domain_error_is_logged_and_skipped(
    session_factory, make_period, end_period, notifier, mocker: MockerFixture
):
    async with session_factory() as session:
        period = await make_period(session)
        await end_period(session, period.id)
        await session.commit()
    mocker.patch.object(
        ContestPeriodManager,
        "resolve_with_outcome",
        AsyncMock(side_effect=InvalidState("The contest is still running.")),
    )

    outcomes = await ContestResolver(session_factory=session_factory, notifier=notifier).run_once()

    assert outcomes == []
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_storage_error_propagates(session_factory, make_period, end_period, mocker: MockerFixture):
    async with session_factory() as session:
        period = await make_period(session)
        await end_period(session, period.id)
        await session.commit()
    mocker.patch.object(
        ContestPeriodManager,
        "resolve_with_outcome",
        AsyncMock(side_effect=OperationalError("UPDATE contest_periods", {}, Exception("database is locked"))),
    )

    with pytest.raises(OperationalError):
        await ContestResolver(session_factory=session_factory).run_once()
