from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ptw.api.v1.schemas import CamelModel
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db

router = APIRouter(tags=["Notifications"])


class NotificationResponse(CamelModel):
    id: int
    title: str
    message: str
    type: str
    related_permit_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None


def _own(db: Session, user: models.User):
    return db.query(models.Notification).filter(models.Notification.user_id == user.id)


@router.get("/notifications", response_model=List[NotificationResponse])
def list_notifications(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _own(db, current_user).order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).all()


@router.get("/notifications/unread-count")
def unread_count(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"count": _own(db, current_user).filter(models.Notification.is_read.is_(False)).count()}


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = _own(db, current_user).filter(models.Notification.id == notification_id).first()
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benachrichtigung nicht gefunden")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


@router.patch("/notifications/read-all")
def mark_all_read(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = (
        _own(db, current_user)
        .filter(models.Notification.is_read.is_(False))
        .update({models.Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"updatedCount": updated}
