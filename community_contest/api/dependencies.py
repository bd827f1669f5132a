"""
Request-scoped dependencies: caller identity and the notification client.
"""

from typing import Optional

from fastapi import Header, HTTPException

from community_contest.integrations.notifier import NotificationClient
from community_contest.models.dtos import Actor, ActorRole

# Set by the application lifespan when a webhook is configured.
_notification_client: Optional[NotificationClient] = None


async def get_actor(
    x_user_id: Optional[str] = Header(None, description="Authenticated user id from the identity provider"),
    x_user_role: Optional[str] = Header(None, description="member, moderator or scheduler"),
) -> Actor:
    """
    Build the calling Actor from headers set by the upstream identity gateway.

    The headers are trusted; credentials are never checked here.
    """
    try:
        role = ActorRole(x_user_role) if x_user_role else ActorRole.MEMBER
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {x_user_role}")
    return Actor(user_id=x_user_id or None, role=role)


def set_notification_client(client: Optional[NotificationClient]) -> None:
    global _notification_client
    _notification_client = client


def get_notification_client() -> Optional[NotificationClient]:
    return _notification_client
