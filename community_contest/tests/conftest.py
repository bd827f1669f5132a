import os
from datetime import timedelta
from typing import Optional

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))

# Load test environment variables from .env.test in the project root
dotenv_path = os.path.join(project_root, '.env.test')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)

from community_contest.core.moderation import ModerationGateway
from community_contest.core.submission_store import SubmissionStore
from community_contest.core.vote_ledger import VoteLedger
from community_contest.models import Base, ContestPeriodORM, SubmissionORM
from community_contest.models.dtos import Actor, ActorRole, ContestPeriodDTO, SubmissionDTO
from community_contest.utils.time_utils import utcnow

# In-memory SQLite shared across sessions through a single static connection
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

ARTICLE_BODY = (
    "Our neighbourhood garden started with three raised beds and a borrowed hose. "
    "Two summers later it feeds a dozen families, hosts a Saturday seed swap and "
    "has taught more children to tell a weed from a seedling than any classroom. "
    "This is the story of how it happened, what went wrong along the way, and what "
    "we would do differently if we started again tomorrow. We learned that the soil "
    "matters less than the people, that a rota beats goodwill, and that every "
    "garden needs someone who enjoys paperwork. Most of all we learned to share. "
)


@pytest_asyncio.fixture
async def db_engine():
    """Yield an engine with the full schema created from the ORM metadata."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def article_body() -> str:
    assert len(ARTICLE_BODY.strip()) >= 500
    return ARTICLE_BODY


@pytest.fixture
def moderator() -> Actor:
    return Actor(user_id="mod-1", role=ActorRole.MODERATOR)


@pytest.fixture
def scheduler() -> Actor:
    return Actor.scheduler()


@pytest.fixture
def make_period():
    """Insert a contest period directly, bypassing the role checks."""

    async def _make_period(
        session: AsyncSession,
        name: str = "Spring Writing Contest",
        active: bool = True,
        starts_in: timedelta = timedelta(days=-1),
        ends_in: timedelta = timedelta(days=7),
        prize_description: str = "A year of free membership",
    ) -> ContestPeriodDTO:
        now = utcnow()
        period = ContestPeriodORM(
            name=name,
            start_date=now + starts_in,
            end_date=now + ends_in,
            prize_description=prize_description,
            is_active=active,
        )
        session.add(period)
        await session.flush()
        await session.refresh(period)
        return ContestPeriodDTO.model_validate(period)

    return _make_period


@pytest.fixture
def end_period():
    """Move a period's end time into the past."""

    async def _end_period(session: AsyncSession, period_id) -> None:
        now = utcnow()
        await session.execute(
            update(ContestPeriodORM)
            .where(ContestPeriodORM.id == period_id)
            .values(start_date=now - timedelta(days=7), end_date=now - timedelta(minutes=1))
        )

    return _end_period


@pytest.fixture
def make_submission(article_body, moderator):
    """Create a submission through the store, approving it unless told otherwise."""

    async def _make_submission(
        session: AsyncSession,
        author_id: str = "author-1",
        title: str = "How our garden grew",
        contest_period_id=None,
        approve: bool = True,
    ) -> SubmissionDTO:
        store = SubmissionStore(session)
        submission = await store.create(
            author_id=author_id,
            title=title,
            body=article_body,
            contest_period_id=contest_period_id,
        )
        if approve:
            submission = await ModerationGateway(store).approve(submission.id, moderator)
        return submission

    return _make_submission


@pytest.fixture
def cast_votes():
    """Have `count` distinct voters vote for a submission."""

    async def _cast_votes(session: AsyncSession, submission_id, count: int, prefix: Optional[str] = None) -> None:
        ledger = VoteLedger(session)
        for i in range(count):
            await ledger.toggle(submission_id, f"{prefix or 'voter'}-{submission_id.hex[:6]}-{i}")

    return _cast_votes


@pytest.fixture
def set_created_at():
    async def _set_created_at(session: AsyncSession, submission_id, created_at) -> None:
        await session.execute(
            update(SubmissionORM).where(SubmissionORM.id == submission_id).values(created_at=created_at)
        )

    return _set_created_at
