import logging
from typing import Iterable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ptw.db import models

logger = logging.getLogger("ptw.notifications")


def notify(
    db: Session,
    users: Iterable[models.User],
    title: str,
    message: str,
    permit: models.Permit | None = None,
    kind: str = "info",
) -> int:
    count = 0
    seen: set[int] = set()
    for user in users:
        if user is None or user.id in seen:
            continue
        seen.add(user.id)
        db.add(
            models.Notification(
                user_id=user.id,
                title=title,
                message=message,
                type=kind,
                related_permit_id=permit.id if permit is not None else None,
            )
        )
        count += 1
    logger.info("notifications queued title=%s recipients=%s", title, count)
    return count


def find_users_by_name(db: Session, names: Iterable[str | None]) -> list[models.User]:
    cleaned = [name.strip() for name in names if name and name.strip()]
    if not cleaned:
        return []
    return (
        db.query(models.User)
        .filter(or_(models.User.username.in_(cleaned), models.User.full_name.in_(cleaned)))
        .all()
    )


def approvers_for(db: Session, permit: models.Permit) -> list[models.User]:
    named = find_users_by_name(
        db, [permit.department_head, permit.safety_officer, permit.maintenance_approver]
    )
    if named:
        return named
    return (
        db.query(models.User)
        .filter(
            models.User.is_active.is_(True),
            models.User.role.in_(["department_head", "maintenance", "safety_officer"]),
        )
        .all()
    )


def requestor_of(db: Session, permit: models.Permit) -> list[models.User]:
    if permit.created_by is not None:
        user = db.query(models.User).filter(models.User.id == permit.created_by).first()
        if user:
            return [user]
    return find_users_by_name(db, [permit.requestor_name])
