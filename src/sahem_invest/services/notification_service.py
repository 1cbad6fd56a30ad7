"""Best-effort notification delivery: email plus the in-app inbox.

Nothing here propagates a failure to the caller. The business operation that
triggered a notification has already committed by the time it is sent.
"""

import logging
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.domain.enums import NotificationType
from sahem_invest.domain.errors import ErrorKind, NotFoundError
from sahem_invest.domain.models import Notification
from sahem_invest.services import email_service
from sahem_invest.services.email_service import EmailResult

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends templated email without ever failing the caller.

    With ``background_tasks`` attached (the HTTP path) delivery is deferred
    until after the response is sent; otherwise it is awaited inline.
    """

    def __init__(self, background_tasks: Optional[BackgroundTasks] = None):
        self.background_tasks = background_tasks

    async def notify(self, template: str, recipients: list[str] | str, params: dict) -> Optional[EmailResult]:
        if self.background_tasks is not None:
            self.background_tasks.add_task(self._deliver, template, recipients, params)
            return None
        return await self._deliver(template, recipients, params)

    async def _deliver(self, template: str, recipients, params: dict) -> EmailResult:
        try:
            result = await email_service.send_template(template, recipients, params)
        except Exception as exc:
            logger.exception("%s: %s notification raised", ErrorKind.DEPENDENCY_FAILURE.value, template)
            return EmailResult(False, str(exc))
        if not result.success:
            logger.warning(
                "%s: %s notification not delivered: %s",
                ErrorKind.DEPENDENCY_FAILURE.value,
                template,
                result.error,
            )
        return result


async def record_in_app(
    db: AsyncSession,
    user_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    data: Optional[dict] = None,
) -> Optional[Notification]:
    """Write an inbox entry in its own commit. Failures are logged and rolled back."""
    try:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type.value,
            read=False,
            data=data,
        )
        db.add(notification)
        await db.commit()
        return notification
    except Exception:
        await db.rollback()
        logger.exception("Failed to record in-app notification for user %s", user_id)
        return None


async def list_notifications(db: AsyncSession, user_id: str, unread_only: bool = False) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    result = await db.execute(stmt.order_by(Notification.created_at.desc()))
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, user_id: str, notification_id: str) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.read = True
    await db.commit()
    return notification


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.commit()
    return result.rowcount or 0
