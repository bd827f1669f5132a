"""
Moderation notification client.

Pushes approve/reject/winner decisions to an external webhook, which owns
rendering and e-mail delivery. Delivery problems are logged and never
propagate into the moderation or resolution operation that triggered them.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Literal, Optional

import httpx
from pydantic import BaseModel

from community_contest.config.settings import settings
from community_contest.models.dtos import ContestPeriodDTO, SubmissionDTO
from community_contest.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

NotificationType = Literal["approved", "rejected", "winner"]


class NotificationEvent(BaseModel):
    """
    Payload sent to the notification webhook for one moderation outcome.
    """
    type: NotificationType
    submission_id: uuid.UUID
    submission_title: str
    author_id: str
    feedback: Optional[str] = None
    contest_name: Optional[str] = None
    prize_description: Optional[str] = None
    occurred_at: datetime

    @classmethod
    def for_submission(
        cls,
        type: NotificationType,
        submission: SubmissionDTO,
        period: Optional[ContestPeriodDTO] = None,
    ) -> "NotificationEvent":
        return cls(
            type=type,
            submission_id=submission.id,
            submission_title=submission.title,
            author_id=submission.author_id,
            feedback=submission.admin_feedback,
            contest_name=period.name if period is not None else None,
            prize_description=period.prize_description if period is not None else None,
            occurred_at=utcnow(),
        )

    def model_dump_json_compatible(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class NotificationClient:
    """
    Async client posting NotificationEvents to the configured webhook.

    Retries on 429 and 5xx responses and on transport errors with
    exponential backoff.
    """

    def __init__(
        self,
        webhook_url: str,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
    ):
        self.webhook_url = webhook_url
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = httpx.AsyncClient(headers=headers, timeout=httpx.Timeout(timeout))
        logger.info(f"Notification client initialized with webhook URL: {webhook_url[:50]}...")

    @classmethod
    def from_settings(cls) -> Optional["NotificationClient"]:
        """Build a client from settings, or None when no webhook is configured."""
        if not settings.NOTIFICATION_WEBHOOK_URL:
            return None
        return cls(
            webhook_url=settings.NOTIFICATION_WEBHOOK_URL,
            api_key=settings.NOTIFICATION_API_KEY,
            max_retries=settings.NOTIFICATION_MAX_RETRIES,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Notification client closed")

    async def notify(self, event: NotificationEvent) -> bool:
        """
        Deliver one event.

        Returns:
            bool: True if the webhook accepted the event, False otherwise.
        """
        payload = event.model_dump_json_compatible()

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post(self.webhook_url, json=payload)
            except httpx.HTTPError as e:
                logger.warning(f"Notification transport error (attempt {attempt + 1}): {e}")
            else:
                if response.is_success:
                    logger.info(f"Delivered '{event.type}' notification for submission {event.submission_id}")
                    return True
                if response.status_code != 429 and response.status_code < 500:
                    logger.error(
                        f"Notification webhook rejected '{event.type}' event for submission "
                        f"{event.submission_id}: {response.status_code} - {response.text}"
                    )
                    return False
                logger.warning(
                    f"Notification webhook returned {response.status_code} (attempt {attempt + 1})"
                )

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        logger.error(
            f"Giving up on '{event.type}' notification for submission {event.submission_id} "
            f"after {self.max_retries + 1} attempts"
        )
        return False
