import logging
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ptw.core.authorization import can_edit_permit, get_workflow_permissions
from ptw.db import models
from ptw.forms import descriptor
from ptw.hazards.notes import parse_hazard_notes, serialize_hazard_notes
from ptw.services import notifications
from ptw.workflow import approvals, engine

logger = logging.getLogger("ptw.workflow")

TYPE_PREFIXES = {
    "confined_space": "CS",
    "hot_work": "HW",
    "electrical_work": "EL",
    "chemical_work": "CH",
    "height_work": "HT",
    "machinery_work": "MA",
    "excavation": "EX",
    "maintenance": "MT",
    "cleaning": "CL",
}

REQUIRED_TEXT_COLUMNS = frozenset({"description", "location", "department", "requestor_name"})
EXECUTION_EDITORS = frozenset({"creator", "performer", "supervisor", "admin"})


class PermitValidationError(Exception):
    def __init__(self, errors: dict[str, str], message: str = "Bitte korrigieren Sie die markierten Felder"):
        super().__init__(message)
        self.message = message
        self.errors = errors


def generate_permit_code(db: Session, permit_type: str, now: Optional[datetime] = None) -> str:
    prefix = TYPE_PREFIXES.get(permit_type, "GN")
    year = (now or datetime.utcnow()).year
    pattern = re.compile(rf"^{prefix}-{year}-(\d+)$")
    codes = (
        db.query(models.Permit.permit_id)
        .filter(models.Permit.permit_id.like(f"{prefix}-{year}-%"))
        .all()
    )
    highest = 0
    for (code,) in codes:
        match = pattern.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}-{year}-{highest + 1:03d}"


def permit_form_data(permit: models.Permit) -> dict[str, Any]:
    return {field.name: getattr(permit, field.name) for field in descriptor.FIELDS}


def assign_fields(permit: models.Permit, data: dict[str, Any]) -> None:
    for name, value in data.items():
        if name not in descriptor.FIELDS_BY_NAME:
            continue
        if name in ("start_date", "end_date", "work_started_at", "work_completed_at"):
            value = descriptor.parse_datetime(value)
        elif name == "overall_risk":
            value = descriptor.normalize_risk(value)
        elif name == "hazard_notes":
            value = serialize_hazard_notes(parse_hazard_notes(value))
        elif name in ("selected_hazards", "completed_measures"):
            value = list(value or [])
        elif value is None and name in REQUIRED_TEXT_COLUMNS:
            value = ""
        setattr(permit, name, value)


def create_permit(db: Session, user: models.User, data: dict[str, Any]) -> models.Permit:
    """Create a permit as draft, or directly as pending when submitted on creation."""
    requested_status = data.pop("status", None) or engine.DRAFT
    if requested_status not in (engine.DRAFT, engine.PENDING):
        raise PermitValidationError({"status": "Neue Genehmigungen sind Entwurf oder Ausstehend"})

    mode = descriptor.SUBMIT if requested_status == engine.PENDING else descriptor.DRAFT
    errors = descriptor.validate(data, mode)
    if errors:
        raise PermitValidationError(errors)

    permit_type = data.get("type") or "general"
    permit = models.Permit(
        permit_id=generate_permit_code(db, permit_type),
        type=permit_type,
        status=requested_status,
        created_by=user.id,
        selected_hazards=[],
        completed_measures=[],
        hazard_notes="{}",
    )
    assign_fields(permit, data)
    if not permit.requestor_name:
        permit.requestor_name = user.full_name
    if not permit.department:
        permit.department = user.department or ""
    db.add(permit)
    db.flush()
    if permit.status == engine.PENDING:
        _notify_submitted(db, permit)
    db.commit()
    db.refresh(permit)
    logger.info("permit created permit=%s status=%s user=%s", permit.permit_id, permit.status, user.username)
    return permit


def split_fields(data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split field changes into (planning, execution)."""
    planning = {name: value for name, value in data.items() if name not in descriptor.EXECUTION_FIELDS}
    execution = {name: value for name, value in data.items() if name in descriptor.EXECUTION_FIELDS}
    return planning, execution


def check_update(permit: models.Permit, user: models.User, data: dict[str, Any]) -> None:
    """Raise unless ``user`` may write ``data`` and the resulting permit is valid.

    Planning fields follow the edit rules (draft and creator, or admin);
    execution fields need an executing role and an active permit.
    """
    planning, execution = split_fields(data)
    if planning:
        if permit.status in engine.TERMINAL_STATUSES:
            raise engine.WorkflowError("Abgeschlossene Genehmigungen können nicht bearbeitet werden")
        if not can_edit_permit(user, permit):
            raise engine.WorkflowPermissionError("Genehmigung kann in diesem Status nicht bearbeitet werden")
    if execution:
        if not get_workflow_permissions(user, permit) & EXECUTION_EDITORS:
            raise engine.WorkflowPermissionError("Keine Berechtigung für Ausführungsdaten")
        if permit.status != engine.ACTIVE:
            raise engine.WorkflowError("Ausführungsdaten können nur bei aktiven Genehmigungen bearbeitet werden")

    merged = {**permit_form_data(permit), **data}
    errors: dict[str, str] = {}
    if planning:
        mode = descriptor.DRAFT if permit.status == engine.DRAFT else descriptor.EDIT
        errors.update(descriptor.validate(merged, mode))
    if execution:
        for key, message in descriptor.validate(merged, descriptor.EXECUTION).items():
            errors.setdefault(key, message)
    if errors:
        raise PermitValidationError(errors)


def update_fields(db: Session, permit: models.Permit, user: models.User, data: dict[str, Any]) -> models.Permit:
    check_update(permit, user, data)
    assign_fields(permit, data)
    db.commit()
    db.refresh(permit)
    logger.info("permit updated permit=%s fields=%s user=%s", permit.permit_id, sorted(data), user.username)
    return permit


def _notify_submitted(db: Session, permit: models.Permit) -> None:
    notifications.notify(
        db,
        notifications.approvers_for(db, permit),
        "Neue Genehmigung zur Freigabe",
        f"Genehmigung {permit.permit_id} wartet auf Ihre Freigabe.",
        permit,
        kind="approval_request",
    )


def _enter_status(db: Session, permit: models.Permit, target: str, now: datetime) -> None:
    previous = permit.status
    permit.status = target
    if target == engine.DRAFT and previous in (engine.PENDING, engine.APPROVED):
        approvals.clear_approvals(permit)
    if target == engine.ACTIVE and permit.work_started_at is None:
        permit.work_started_at = now
    if target == engine.COMPLETED and permit.work_completed_at is None:
        permit.work_completed_at = now
    if target == engine.PENDING:
        permit.rejection_reason = None
        _notify_submitted(db, permit)


def apply_transition(
    db: Session,
    permit: models.Permit,
    action_id: str,
    next_status: Optional[str],
    user: models.User,
    reason: Optional[str] = None,
) -> models.Permit:
    permissions = get_workflow_permissions(user, permit)
    action = engine.plan_transition(permit.status, action_id, next_status, permissions)

    if action.requires_reason and not (reason or "").strip():
        raise PermitValidationError({"reason": "Begründung ist erforderlich"}, "Begründung fehlt")
    if action.next_status == engine.PENDING:
        errors = descriptor.validate(permit_form_data(permit), descriptor.SUBMIT)
        if errors:
            raise PermitValidationError(errors)

    now = datetime.utcnow()
    previous = permit.status
    _enter_status(db, permit, action.next_status, now)
    if action.id == "reject":
        permit.rejection_reason = reason.strip()
        notifications.notify(
            db,
            notifications.requestor_of(db, permit),
            "Genehmigung abgelehnt",
            f"Genehmigung {permit.permit_id} wurde abgelehnt: {permit.rejection_reason}",
            permit,
            kind="rejected",
        )
    db.commit()
    db.refresh(permit)
    logger.info(
        "permit transition permit=%s action=%s from=%s to=%s user=%s",
        permit.permit_id,
        action.id,
        previous,
        permit.status,
        user.username,
    )
    return permit


def reject(db: Session, permit: models.Permit, user: models.User, reason: str) -> models.Permit:
    return apply_transition(db, permit, "reject", engine.DRAFT, user, reason=reason)


def _lock_permit(db: Session, permit: models.Permit) -> models.Permit:
    """Reload ``permit`` from the database under a row lock."""
    return (
        db.query(models.Permit)
        .filter(models.Permit.id == permit.id)
        .with_for_update()
        .populate_existing()
        .one()
    )


def approve(db: Session, permit: models.Permit, approval_type: str, user: models.User) -> models.Permit:
    permit = _lock_permit(db, permit)
    changed = approvals.record_approval(permit, approval_type, user)
    if approvals.is_fully_approved(permit):
        permit.status = engine.APPROVED
        notifications.notify(
            db,
            notifications.requestor_of(db, permit),
            "Genehmigung erteilt",
            f"Genehmigung {permit.permit_id} wurde vollständig freigegeben.",
            permit,
            kind="approved",
        )
        logger.info("permit fully approved permit=%s", permit.permit_id)
    db.commit()
    db.refresh(permit)
    logger.info(
        "permit approval permit=%s type=%s changed=%s user=%s",
        permit.permit_id,
        approval_type,
        changed,
        user.username,
    )
    return permit


def expire_overdue(db: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    candidates = (
        db.query(models.Permit)
        .filter(
            models.Permit.status.in_([engine.APPROVED, engine.ACTIVE, engine.SUSPENDED]),
            models.Permit.end_date.isnot(None),
            models.Permit.end_date < now,
        )
        .all()
    )
    for permit in candidates:
        permit.status = engine.EXPIRED
    db.commit()
    if candidates:
        logger.info("expired permits count=%s", len(candidates))
    return len(candidates)


def permit_stats(db: Session, now: Optional[datetime] = None) -> dict[str, int]:
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    query = db.query(models.Permit)
    return {
        "activePermits": query.filter(models.Permit.status == engine.ACTIVE).count(),
        "pendingApproval": query.filter(models.Permit.status == engine.PENDING).count(),
        "expiredToday": query.filter(
            models.Permit.status == engine.EXPIRED,
            models.Permit.end_date >= today,
            models.Permit.end_date < tomorrow,
        ).count(),
        "completed": query.filter(models.Permit.status == engine.COMPLETED).count(),
    }


def delete_permit(db: Session, permit: models.Permit) -> None:
    db.query(models.Notification).filter(models.Notification.related_permit_id == permit.id).delete()
    db.delete(permit)
    db.commit()
    logger.info("permit deleted permit=%s", permit.permit_id)
