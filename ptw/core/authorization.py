from fastapi import HTTPException, status

from ptw.db import models
from ptw.workflow.engine import DRAFT

APPROVER_ROLES = {"department_head", "safety_officer", "maintenance"}
SUPERVISOR_ROLES = {"supervisor", "department_head", "safety_officer", "maintenance"}


def is_admin_user(user: models.User) -> bool:
    return user.role == "admin"


def require_admin(user: models.User) -> None:
    if not is_admin_user(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administratorrechte erforderlich",
        )


def _matches_user(value: str | None, user: models.User) -> bool:
    name = (value or "").strip()
    return bool(name) and name in {user.username, user.full_name}


def is_creator(user: models.User, permit: models.Permit) -> bool:
    if permit.created_by is not None and permit.created_by == user.id:
        return True
    return _matches_user(permit.requestor_name, user)


def get_workflow_permissions(user: models.User, permit: models.Permit) -> set[str]:
    if is_admin_user(user):
        return {"admin", "creator", "approver", "supervisor", "performer"}

    permissions: set[str] = set()
    if is_creator(user, permit):
        permissions.add("creator")
    if user.role in APPROVER_ROLES:
        permissions.add("approver")
    if user.role in SUPERVISOR_ROLES:
        permissions.add("supervisor")
    if _matches_user(permit.performer_name, user):
        permissions.add("performer")
    for assignee in (permit.department_head, permit.safety_officer, permit.maintenance_approver):
        if _matches_user(assignee, user):
            permissions.add("approver")
    return permissions


def can_edit_permit(user: models.User, permit: models.Permit) -> bool:
    if is_admin_user(user):
        return True
    if permit.status != DRAFT:
        return False
    return is_creator(user, permit)
