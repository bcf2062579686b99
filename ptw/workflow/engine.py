"""Permit status state machine.

Everything here is pure: the legal actions for a permit depend only on its
status and the workflow permissions of the acting user (see
``ptw.core.authorization.get_workflow_permissions``). Persisting the
transition is the job of ``ptw.workflow.service``.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

DRAFT = "draft"
PENDING = "pending"
APPROVED = "approved"
ACTIVE = "active"
SUSPENDED = "suspended"
COMPLETED = "completed"
EXPIRED = "expired"

STATUSES = (DRAFT, PENDING, APPROVED, ACTIVE, SUSPENDED, COMPLETED, EXPIRED)
TERMINAL_STATUSES = frozenset({COMPLETED, EXPIRED})

STATUS_LABELS = {
    DRAFT: "Entwurf",
    PENDING: "Ausstehend",
    APPROVED: "Genehmigt",
    ACTIVE: "Aktiv",
    SUSPENDED: "Unterbrochen",
    COMPLETED: "Abgeschlossen",
    EXPIRED: "Abgelaufen",
}

ANY = "any"


class WorkflowError(Exception):
    """The requested transition does not exist for the permit's status."""


class WorkflowPermissionError(WorkflowError):
    """The transition exists but the user may not perform it."""


@dataclass(frozen=True)
class WorkflowAction:
    id: str
    label: str
    from_status: str
    next_status: str
    permissions: tuple[str, ...]
    requires_confirmation: bool = True
    requires_reason: bool = False

    def allowed_for(self, permissions: Iterable[str]) -> bool:
        if ANY in self.permissions:
            return True
        granted = set(permissions)
        return any(code in granted for code in self.permissions)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "nextStatus": self.next_status,
            "requiresConfirmation": self.requires_confirmation,
            "requiresReason": self.requires_reason,
        }


ACTIONS: tuple[WorkflowAction, ...] = (
    WorkflowAction("submit", "Zur Genehmigung einreichen", DRAFT, PENDING, ("creator", "admin")),
    WorkflowAction("withdraw", "Zurückziehen", PENDING, DRAFT, ("creator", "admin")),
    WorkflowAction(
        "reject", "Ablehnen", PENDING, DRAFT, ("approver", "admin"), requires_reason=True
    ),
    WorkflowAction("withdraw", "Zurückziehen", APPROVED, DRAFT, (ANY,)),
    WorkflowAction("activate", "Aktivieren", APPROVED, ACTIVE, (ANY,)),
    WorkflowAction("complete", "Genehmigung abschließen", ACTIVE, COMPLETED, ("supervisor", "performer", "admin")),
    WorkflowAction("suspend", "Unterbrechen", ACTIVE, SUSPENDED, ("supervisor", "admin")),
    WorkflowAction("resume", "Fortsetzen", SUSPENDED, ACTIVE, ("supervisor", "admin")),
)

# Edges the system takes on its own; never offered as user actions.
SYSTEM_EDGES = frozenset(
    {
        (PENDING, APPROVED),
        (APPROVED, EXPIRED),
        (ACTIVE, EXPIRED),
        (SUSPENDED, EXPIRED),
    }
)


def is_valid_status(status: str) -> bool:
    return status in STATUSES


def actions_for_status(status: str) -> list[WorkflowAction]:
    return [action for action in ACTIONS if action.from_status == status]


def available_actions(status: str, permissions: Iterable[str]) -> list[WorkflowAction]:
    granted = list(permissions)
    return [action for action in actions_for_status(status) if action.allowed_for(granted)]


def documented_edges() -> set[tuple[str, str]]:
    edges = {(action.from_status, action.next_status) for action in ACTIONS}
    return edges | set(SYSTEM_EDGES)


def is_documented_edge(from_status: str, to_status: str) -> bool:
    return (from_status, to_status) in documented_edges()


def find_action(status: str, action_id: str, next_status: Optional[str] = None) -> Optional[WorkflowAction]:
    for action in actions_for_status(status):
        if action.id != action_id:
            continue
        if next_status is not None and action.next_status != next_status:
            continue
        return action
    return None


def plan_transition(
    status: str,
    action_id: str,
    next_status: Optional[str],
    permissions: Iterable[str],
) -> WorkflowAction:
    if not is_valid_status(status):
        raise WorkflowError(f"Unbekannter Status: {status}")
    if status in TERMINAL_STATUSES:
        raise WorkflowError(f"Status '{STATUS_LABELS[status]}' ist abgeschlossen, keine weiteren Aktionen möglich")
    if next_status is not None and not is_valid_status(next_status):
        raise WorkflowError(f"Unbekannter Zielstatus: {next_status}")

    action = find_action(status, action_id, next_status)
    if action is None:
        target = next_status or "?"
        raise WorkflowError(f"Aktion '{action_id}' ist im Status '{status}' nicht erlaubt (Ziel: {target})")
    if not action.allowed_for(permissions):
        raise WorkflowPermissionError(f"Keine Berechtigung für Aktion '{action.label}'")
    return action


def can_system_transition(from_status: str, to_status: str) -> bool:
    return (from_status, to_status) in SYSTEM_EDGES
