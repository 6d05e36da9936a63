"""Per-user notifications produced by moderation decisions."""

import logging
import uuid
from typing import Dict, Any, List, Union

from database import get_pool

logger = logging.getLogger(__name__)

TYPE_APPROVAL = 'approval'
TYPE_REJECTION = 'rejection'
NOTIFICATION_TYPES = (TYPE_APPROVAL, TYPE_REJECTION)

class NotificationError(Exception):
    """Base exception for notification operations."""
    pass

def approval_message(title: str) -> str:
    return f'Your model "{title}" has been approved and is now listed in the marketplace.'

def rejection_message(title: str) -> str:
    return f'Your model "{title}" was not approved and has been removed.'

def _user_uuid(user_id: Union[str, uuid.UUID]) -> uuid.UUID:
    try:
        return user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
    except (TypeError, ValueError):
        raise NotificationError(f"Invalid user id: {user_id}")

def serialize_notification(row) -> Dict[str, Any]:
    return {
        '_id': str(row['id']),
        'message': row['message'],
        'modelTitle': row['model_title'],
        'type': row['type'],
        'createdAt': row['created_at'].isoformat() if row['created_at'] else None
    }

class NotificationManager:
    """Stores and retrieves user notifications."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def add(
        self,
        user_id: Union[str, uuid.UUID],
        type: str,
        model_title: str,
        message: str
    ) -> Dict[str, Any]:
        """Append a notification to a user's list.

        Raises:
            NotificationError: If the type is unknown or the user id is invalid
        """
        if type not in NOTIFICATION_TYPES:
            raise NotificationError(f"Unknown notification type: {type}")
        owner = _user_uuid(user_id)

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                INSERT INTO notifications (user_id, message, model_title, type)
                VALUES ($1, $2, $3, $4)
                RETURNING id, message, model_title, type, created_at
                ''',
                owner,
                message,
                model_title,
                type
            )

        logger.info(f"Sent {type} notification to {owner} for {model_title!r}")
        return serialize_notification(row)

    async def list(self, user_id: Union[str, uuid.UUID]) -> List[Dict[str, Any]]:
        """A user's notifications, oldest first."""
        owner = _user_uuid(user_id)

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT id, message, model_title, type, created_at
                FROM notifications
                WHERE user_id = $1
                ORDER BY created_at
                ''',
                owner
            )
        return [serialize_notification(row) for row in rows]

    async def clear(self, user_id: Union[str, uuid.UUID]) -> int:
        """Remove all of a user's notifications.

        Returns:
            Number of notifications removed
        """
        owner = _user_uuid(user_id)

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'DELETE FROM notifications WHERE user_id = $1',
                owner
            )

        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(result.split()[-1])

# Create global instance
manager = NotificationManager()

def get_notification_manager() -> NotificationManager:
    """FastAPI dependency returning the notification manager."""
    return manager

__all__ = [
    'NotificationManager',
    'manager',
    'get_notification_manager',
    'approval_message',
    'rejection_message',
    'serialize_notification',
    'TYPE_APPROVAL',
    'TYPE_REJECTION',
    'NOTIFICATION_TYPES',
    'NotificationError'
]
