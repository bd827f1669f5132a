"""Command-line interface for contest administration and maintenance."""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional

import typer
from pydantic import BaseModel
from typing_extensions import Annotated

from community_contest.config.settings import settings
from community_contest.core.contest_manager import ContestPeriodManager
from community_contest.core.errors import ContestError
from community_contest.core.resolver import ContestResolver
from community_contest.core.vote_ledger import VoteLedger
from community_contest.integrations.notifier import NotificationClient, NotificationEvent
from community_contest.models.dtos import Actor, ActorRole
from community_contest.utils.db_session import get_db_session_context_manager
from community_contest.utils.logging_utils import setup_logging

app = typer.Typer(help="Community contest administration commands")
logger = logging.getLogger(__name__)

DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%d %H:%M:%S"]

OperatorOption = Annotated[
    str, typer.Option("--operator", "-o", help="Moderator id recorded as the actor")
]


def _echo_json(data: Any) -> None:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]
    typer.echo(json.dumps(data, indent=2))


def _run(coro) -> Any:
    """Run a coroutine, turning domain errors into a non-zero exit."""
    try:
        return asyncio.run(coro)
    except ContestError as e:
        typer.echo(f"Error ({e.code}): {e.message}", err=True)
        raise typer.Exit(code=1)


@app.callback()
def main(
    loglevel: Annotated[Optional[str], typer.Option("--loglevel", "-l", help="Override the root log level")] = None,
) -> None:
    setup_logging(settings.LOGGING_CONFIG_PATH)
    if loglevel:
        logging.getLogger().setLevel(loglevel.upper())


@app.command("create-period")
def create_period(
    name: Annotated[str, typer.Argument(help="Contest name")],
    start: Annotated[datetime, typer.Option("--start", formats=DATETIME_FORMATS, help="Start time (UTC if no offset)")],
    end: Annotated[datetime, typer.Option("--end", formats=DATETIME_FORMATS, help="End time (UTC if no offset)")],
    prize: Annotated[str, typer.Option("--prize", help="Prize description")] = "",
    description: Annotated[Optional[str], typer.Option("--description", help="Contest description")] = None,
    activate: Annotated[bool, typer.Option("--activate", help="Activate the contest after creating it")] = False,
    operator: OperatorOption = "cli",
) -> None:
    """Create a contest period, optionally activating it."""
    actor = Actor(user_id=operator, role=ActorRole.MODERATOR)

    async def _create():
        async with get_db_session_context_manager() as session:
            manager = ContestPeriodManager(session)
            period = await manager.create_period(
                actor, name=name, start_date=start, end_date=end,
                prize_description=prize, description=description,
            )
            if activate:
                period = await manager.activate(actor, period.id)
            return period

    _echo_json(_run(_create()))


@app.command("activate")
def activate_period(
    period_id: Annotated[uuid.UUID, typer.Argument(help="Contest period id")],
    operator: OperatorOption = "cli",
) -> None:
    """Make a contest period the active one."""
    actor = Actor(user_id=operator, role=ActorRole.MODERATOR)

    async def _activate():
        async with get_db_session_context_manager() as session:
            return await ContestPeriodManager(session).activate(actor, period_id)

    _echo_json(_run(_activate()))


@app.command("deactivate")
def deactivate_period(
    period_id: Annotated[uuid.UUID, typer.Argument(help="Contest period id")],
    operator: OperatorOption = "cli",
) -> None:
    """Close a contest period without choosing a winner."""
    actor = Actor(user_id=operator, role=ActorRole.MODERATOR)

    async def _deactivate():
        async with get_db_session_context_manager() as session:
            return await ContestPeriodManager(session).deactivate(actor, period_id)

    _echo_json(_run(_deactivate()))


@app.command("resolve")
def resolve_period(
    period_id: Annotated[uuid.UUID, typer.Argument(help="Contest period id")],
) -> None:
    """Resolve one ended contest period and announce its winner."""

    async def _resolve():
        async with get_db_session_context_manager() as session:
            outcome = await ContestPeriodManager(session).resolve_with_outcome(period_id, Actor.scheduler())
        if outcome.resolved_now and outcome.winner is not None:
            notifier = NotificationClient.from_settings()
            if notifier is not None:
                try:
                    await notifier.notify(
                        NotificationEvent.for_submission("winner", outcome.winner, outcome.period)
                    )
                finally:
                    await notifier.close()
        return outcome

    outcome = _run(_resolve())
    if not outcome.resolved_now:
        logger.info(f"Contest period {period_id} was already resolved")
    _echo_json(outcome)


@app.command("resolve-due")
def resolve_due() -> None:
    """Resolve every active contest whose end time has passed."""

    async def _resolve_due():
        notifier = NotificationClient.from_settings()
        try:
            return await ContestResolver(notifier=notifier).run_once()
        finally:
            if notifier is not None:
                await notifier.close()

    outcomes = _run(_resolve_due())
    typer.echo(f"Resolved {sum(1 for o in outcomes if o.resolved_now)} contest period(s).", err=True)
    _echo_json(outcomes)


@app.command("recount")
def recount(
    submission_id: Annotated[
        Optional[uuid.UUID], typer.Option("--submission", "-s", help="Repair a single submission")
    ] = None,
) -> None:
    """Recompute cached vote tallies from the vote rows and repair drift."""

    async def _recount():
        async with get_db_session_context_manager() as session:
            ledger = VoteLedger(session)
            if submission_id is not None:
                return [await ledger.repair(submission_id)]
            return await ledger.recount_all()

    repairs: List = _run(_recount())
    drifted = [r for r in repairs if r.drifted]
    typer.echo(f"{len(drifted)} submission(s) had drifted tallies.", err=True)
    _echo_json(repairs)


@app.command("winners")
def winners(
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", min=1, help="Maximum number of results")] = None,
) -> None:
    """List past contest winners, latest first."""

    async def _winners():
        async with get_db_session_context_manager() as session:
            return await ContestPeriodManager(session).past_winners(limit)

    _echo_json(_run(_winners()))


if __name__ == "__main__":
    app()
