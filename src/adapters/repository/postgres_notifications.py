"""
PostgreSQL repository adapter - Implements NotificationRepository protocol.

Notifications are append-only; the read flag is the only column ever
updated, and only from FALSE to TRUE.
"""

import uuid
from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from src.adapters.repository.postgres import as_uuid
from src.domain.models import Notification, NotificationType

_COLUMNS = "id, recipient_id, type, title, message, link, related_id, read, created_at"


def _row_to_notification(row: dict[str, Any]) -> Notification:
    return Notification(
        id=str(row["id"]),
        recipient_id=str(row["recipient_id"]),
        type=NotificationType(row["type"]),
        title=row["title"],
        message=row["message"],
        created_at=row["created_at"],
        link=row["link"],
        related_id=row["related_id"],
        read=row["read"],
    )


class PostgresNotificationRepository:
    """
    Implements NotificationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def create(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        message: str,
        link: str | None,
        related_id: str | None,
    ) -> Notification:
        sql = f"""
            INSERT INTO notifications (id, recipient_id, type, title, message, link, related_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS}
        """
        params = (uuid.uuid4(), as_uuid(recipient_id), type.value, title, message, link, related_id)

        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cursor:
                await cursor.execute(sql, params)
                row = await cursor.fetchone()
            await conn.commit()

        return _row_to_notification(row)

    async def get(self, notification_id: str) -> Notification | None:
        key = as_uuid(notification_id)
        if key is None:
            return None
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(f"SELECT {_COLUMNS} FROM notifications WHERE id = %s", (key,))
            row = await cursor.fetchone()
        return None if row is None else _row_to_notification(row)

    async def list_for_recipient(self, recipient_id: str, limit: int) -> list[Notification]:
        sql = f"""
            SELECT {_COLUMNS} FROM notifications
            WHERE recipient_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(sql, (as_uuid(recipient_id), limit))
            rows = await cursor.fetchall()
        return [_row_to_notification(row) for row in rows]

    async def count_unread(self, recipient_id: str) -> int:
        sql = "SELECT COUNT(*) FROM notifications WHERE recipient_id = %s AND NOT read"
        async with self._pool.connection() as conn, conn.cursor() as cursor:
            await cursor.execute(sql, (as_uuid(recipient_id),))
            row = await cursor.fetchone()
        return row[0]

    async def mark_read(self, notification_id: str) -> bool:
        sql = "UPDATE notifications SET read = TRUE WHERE id = %s AND NOT read"
        return await self._update(sql, (as_uuid(notification_id),)) == 1

    async def mark_all_read(self, recipient_id: str) -> int:
        sql = "UPDATE notifications SET read = TRUE WHERE recipient_id = %s AND NOT read"
        return await self._update(sql, (as_uuid(recipient_id),))

    async def _update(self, sql: str, params: tuple) -> int:
        async with self._pool.connection() as conn, conn.cursor() as cursor:
            await cursor.execute(sql, params)
            await conn.commit()
            return cursor.rowcount
