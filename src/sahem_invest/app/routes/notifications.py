"""In-app notification inbox."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.routes.auth import get_current_user_dep
from sahem_invest.domain.models import User
from sahem_invest.domain.schemas import NotificationResponse
from sahem_invest.infra.database import get_db
from sahem_invest.services import notification_service

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    notifications = await notification_service.list_notifications(db, user.id, unread_only)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.post("/read-all")
async def mark_all_read(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    count = await notification_service.mark_all_read(db, user.id)
    return {"updated": count}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_service.mark_read(db, user.id, notification_id)
    return NotificationResponse.model_validate(notification)
