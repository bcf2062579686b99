from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ptw.workflow.engine import PENDING

DEPARTMENT_HEAD = "department_head"
SAFETY_OFFICER = "safety_officer"
MAINTENANCE = "maintenance"


class ApprovalError(Exception):
    pass


class ApprovalPermissionError(ApprovalError):
    pass


@dataclass(frozen=True)
class ApprovalSlot:
    approval_type: str
    label: str
    assignee_attr: str
    flag_attr: str
    date_attr: str
    role: str


SLOTS: dict[str, ApprovalSlot] = {
    DEPARTMENT_HEAD: ApprovalSlot(
        DEPARTMENT_HEAD,
        "Abteilungsleiter",
        "department_head",
        "department_head_approval",
        "department_head_approval_date",
        "department_head",
    ),
    SAFETY_OFFICER: ApprovalSlot(
        SAFETY_OFFICER,
        "Sicherheitsbeauftragter",
        "safety_officer",
        "safety_officer_approval",
        "safety_officer_approval_date",
        "safety_officer",
    ),
    MAINTENANCE: ApprovalSlot(
        MAINTENANCE,
        "Instandhaltung",
        "maintenance_approver",
        "maintenance_approval",
        "maintenance_approval_date",
        "maintenance",
    ),
}


def get_slot(approval_type: str) -> ApprovalSlot:
    slot = SLOTS.get(approval_type)
    if slot is None:
        raise ApprovalError(f"Ungültiger Genehmigungstyp: {approval_type}")
    return slot


def required_slots(permit) -> list[ApprovalSlot]:
    # Safety officer sign-off is only required once one is assigned.
    slots = [SLOTS[DEPARTMENT_HEAD], SLOTS[MAINTENANCE]]
    if (permit.safety_officer or "").strip():
        slots.append(SLOTS[SAFETY_OFFICER])
    return slots


def is_fully_approved(permit) -> bool:
    return all(bool(getattr(permit, slot.flag_attr)) for slot in required_slots(permit))


def approval_progress(permit) -> dict:
    slots = required_slots(permit)
    received = [slot for slot in slots if getattr(permit, slot.flag_attr)]
    return {
        "required": [slot.approval_type for slot in slots],
        "received": [slot.approval_type for slot in received],
        "complete": len(received) == len(slots),
    }


def can_approve_slot(user, permit, slot: ApprovalSlot) -> bool:
    if user.role == "admin":
        return True
    if user.role == slot.role:
        return True
    assignee = (getattr(permit, slot.assignee_attr) or "").strip()
    return bool(assignee) and assignee in {user.username, user.full_name}


def record_approval(permit, approval_type: str, user, now: Optional[datetime] = None) -> bool:
    """Set one approval slot. Returns False when the slot was already approved."""
    slot = get_slot(approval_type)
    if permit.status != PENDING:
        raise ApprovalError("Genehmigungen sind nur im Status 'Ausstehend' möglich")
    if not can_approve_slot(user, permit, slot):
        raise ApprovalPermissionError(f"Keine Berechtigung für die Freigabe als {slot.label}")
    if getattr(permit, slot.flag_attr):
        return False
    setattr(permit, slot.flag_attr, True)
    setattr(permit, slot.date_attr, now or datetime.utcnow())
    return True


def clear_approvals(permit) -> None:
    for slot in SLOTS.values():
        setattr(permit, slot.flag_attr, False)
        setattr(permit, slot.date_attr, None)
