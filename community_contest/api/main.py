"""
FastAPI application for the Community Contest service.

This module initializes and configures the FastAPI application that serves
the submission, voting, comment and contest endpoints, and runs the contest
resolver as a background worker.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from community_contest.api.dependencies import set_notification_client
from community_contest.api.endpoints import comments, contests, submissions
from community_contest.api.errors import register_error_handlers
from community_contest.config.settings import settings
from community_contest.core.resolver import ContestResolver
from community_contest.integrations.notifier import NotificationClient
from community_contest.utils.db_health import check_db_connection
from community_contest.utils.logging_utils import setup_logging
from community_contest.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

# Global resolver background task
resolver_task: Optional[asyncio.Task] = None


async def resolver_worker(resolver: ContestResolver, interval_seconds: int) -> None:
    """Background worker that resolves ended contests on a fixed interval."""
    logger.info(f"Contest resolver worker started. Run interval: {interval_seconds}s")
    try:
        while True:
            try:
                outcomes = await resolver.run_once()
                if outcomes:
                    logger.info(f"Resolver cycle handled {len(outcomes)} contest period(s)")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep the worker alive; the next cycle retries the same periods.
                logger.error(f"Error in contest resolver worker: {e}", exc_info=True)
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("Contest resolver worker cancelled. Shutting down.")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Sets up logging and the notification client, and starts the contest
    resolver worker when enabled.
    """
    global resolver_task

    setup_logging(settings.LOGGING_CONFIG_PATH)
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    notification_client = NotificationClient.from_settings()
    if notification_client is None:
        logger.info("Notification webhook not configured - moderation notifications disabled")
    set_notification_client(notification_client)

    if settings.CONTEST_RESOLVER_ENABLED:
        resolver = ContestResolver(notifier=notification_client)
        resolver_task = asyncio.create_task(
            resolver_worker(resolver, settings.CONTEST_RESOLVE_INTERVAL_SECONDS)
        )
        logger.info("Contest resolver background task created")
    else:
        logger.info("Contest resolver disabled - contests must be resolved via the API or CLI")
        resolver_task = None

    yield

    # Shutdown
    logger.info("Shutting down application")
    if resolver_task:
        resolver_task.cancel()
        try:
            await resolver_task
        except asyncio.CancelledError:
            logger.info("Contest resolver task cancelled successfully")
        resolver_task = None

    set_notification_client(None)
    if notification_client:
        await notification_client.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""Community article contest API.

        This API provides endpoints for:
        - Submitting and editing articles
        - Moderating pending submissions
        - Voting on and commenting on published articles
        - Running time-boxed contests and announcing winners""",
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_tags=[
            {"name": "submissions", "description": "Article submissions, votes and moderation"},
            {"name": "comments", "description": "Comment management"},
            {"name": "contests", "description": "Contest periods and winners"},
            {"name": "health", "description": "Health check and monitoring"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.DEBUG else ["*"],
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS if not settings.DEBUG else ["*"],
    )

    app.include_router(submissions.router, prefix="/api/v1/submissions", tags=["submissions"])
    app.include_router(comments.router, prefix="/api/v1/comments", tags=["comments"])
    app.include_router(contests.router, prefix="/api/v1/contests", tags=["contests"])
    register_error_handlers(app)

    @app.get("/health", tags=["health"], summary="Health Check")
    async def health_check():
        """Service status, version and database reachability."""
        database_ok = await check_db_connection()
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": utcnow().isoformat(),
            "database": "ok" if database_ok else "unreachable",
            "contest_resolver": "running" if resolver_task and not resolver_task.done() else "stopped",
        }

    return app


# Create the application instance
app = create_app()
