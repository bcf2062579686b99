"""One permit form, parameterized by mode.

Create, edit and execution screens all share this descriptor; a mode only
changes which fields are visible and which are required.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from ptw.hazards.notes import orphan_note_keys, parse_hazard_notes
from ptw.hazards.taxonomy import is_known_hazard, parse_hazard_id
from ptw.maps.geometry import MAP_HEIGHT, MAP_WIDTH

PERMIT_TYPES = (
    "general",
    "hot_work",
    "height_work",
    "confined_space",
    "electrical_work",
    "chemical_work",
    "machinery_work",
    "excavation",
    "maintenance",
    "cleaning",
    "other",
)

TYPE_LABELS = {
    "general": "Allgemeiner Erlaubnisschein",
    "hot_work": "Heißarbeiten",
    "height_work": "Höhenarbeiten",
    "confined_space": "Enger Raum",
    "electrical_work": "Elektrische Arbeiten",
    "chemical_work": "Chemische Arbeiten",
    "machinery_work": "Maschinenarbeiten",
    "excavation": "Erdarbeiten",
    "maintenance": "Instandhaltung",
    "cleaning": "Reinigung",
    "other": "Sonstige",
}

RISK_LEVELS = ("low", "medium", "high", "critical")
RISK_ALIASES = {
    "niedrig": "low",
    "gering": "low",
    "mittel": "medium",
    "hoch": "high",
    "kritisch": "critical",
}

DRAFT = "draft"
SUBMIT = "submit"
EDIT = "edit"
EXECUTION = "execution"
MODES = (DRAFT, SUBMIT, EDIT, EXECUTION)

REQUIRED_MESSAGE = "Pflichtfeld"


@dataclass(frozen=True)
class FormField:
    name: str
    key: str
    label: str
    tab: str
    kind: str = "text"


FIELDS: tuple[FormField, ...] = (
    FormField("type", "type", "Art der Arbeit", "basic", "choice"),
    FormField("description", "description", "Arbeitsbeschreibung", "basic", "textarea"),
    FormField("location", "location", "Arbeitsort", "basic"),
    FormField("work_location_id", "workLocationId", "Arbeitsbereich", "basic", "reference"),
    FormField("department", "department", "Abteilung", "basic"),
    FormField("requestor_name", "requestorName", "Antragsteller", "basic"),
    FormField("contact_number", "contactNumber", "Kontaktnummer", "basic"),
    FormField("emergency_contact", "emergencyContact", "Notfallkontakt", "basic"),
    FormField("start_date", "startDate", "Beginn", "basic", "datetime"),
    FormField("end_date", "endDate", "Ende", "basic", "datetime"),
    FormField("map_position_x", "mapPositionX", "Kartenposition X", "basic", "number"),
    FormField("map_position_y", "mapPositionY", "Kartenposition Y", "basic", "number"),
    FormField("selected_hazards", "selectedHazards", "Gefährdungen (TRBS)", "hazards", "hazards"),
    FormField("hazard_notes", "hazardNotes", "Notizen zu Gefährdungen", "hazards", "notes"),
    FormField("identified_hazards", "identifiedHazards", "Weitere Gefährdungen", "hazards", "textarea"),
    FormField("overall_risk", "overallRisk", "Gesamtrisiko", "hazards", "choice"),
    FormField("immediate_actions", "immediateActions", "Sofortmaßnahmen", "hazards", "textarea"),
    FormField("before_work_starts", "beforeWorkStarts", "Vor Arbeitsbeginn", "hazards", "textarea"),
    FormField("compliance_notes", "complianceNotes", "Compliance-Hinweise", "hazards", "textarea"),
    FormField("additional_comments", "additionalComments", "Bemerkungen", "hazards", "textarea"),
    FormField("department_head", "departmentHead", "Abteilungsleiter", "approvals"),
    FormField("safety_officer", "safetyOfficer", "Sicherheitsbeauftragter", "approvals"),
    FormField("maintenance_approver", "maintenanceApprover", "Instandhaltung", "approvals"),
    FormField("performer_name", "performerName", "Durchführender", "execution"),
    FormField("performer_signature", "performerSignature", "Unterschrift", "execution", "signature"),
    FormField("work_started_at", "workStartedAt", "Arbeitsbeginn", "execution", "datetime"),
    FormField("work_completed_at", "workCompletedAt", "Arbeitsende", "execution", "datetime"),
    FormField("completed_measures", "completedMeasures", "Durchgeführte Maßnahmen", "execution", "list"),
)

FIELDS_BY_NAME = {field.name: field for field in FIELDS}
TABS = ("basic", "hazards", "approvals", "execution")

EXECUTION_FIELDS = frozenset(field.name for field in FIELDS if field.tab == "execution")
PLANNING_FIELDS = frozenset(field.name for field in FIELDS if field.tab != "execution")

_SUBMIT_REQUIRED = frozenset(
    {
        "type",
        "description",
        "location",
        "department",
        "requestor_name",
        "start_date",
        "end_date",
        "department_head",
        "maintenance_approver",
    }
)

VISIBLE_FIELDS = {
    DRAFT: PLANNING_FIELDS,
    SUBMIT: PLANNING_FIELDS,
    EDIT: PLANNING_FIELDS,
    EXECUTION: EXECUTION_FIELDS,
}

REQUIRED_FIELDS = {
    DRAFT: frozenset({"type"}),
    SUBMIT: _SUBMIT_REQUIRED,
    EDIT: _SUBMIT_REQUIRED,
    EXECUTION: frozenset(),
}


def normalize_risk(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip().lower()
    if not cleaned:
        return None
    if cleaned in RISK_LEVELS:
        return cleaned
    if cleaned in RISK_ALIASES:
        return RISK_ALIASES[cleaned]
    raise ValueError(f"Ungültige Risikostufe: {value}")


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def visible_fields(mode: str) -> list[FormField]:
    names = VISIBLE_FIELDS[mode]
    return [field for field in FIELDS if field.name in names]


def fields_by_tab(mode: str) -> dict[str, list[FormField]]:
    grouped: dict[str, list[FormField]] = {tab: [] for tab in TABS}
    for field in visible_fields(mode):
        grouped[field.tab].append(field)
    return {tab: fields for tab, fields in grouped.items() if fields}


def describe(mode: str) -> dict:
    if mode not in MODES:
        raise ValueError(f"Unbekannter Formularmodus: {mode}")
    required = REQUIRED_FIELDS[mode]
    return {
        "mode": mode,
        "tabs": [
            {
                "id": tab,
                "fields": [
                    {
                        "key": field.key,
                        "label": field.label,
                        "kind": field.kind,
                        "required": field.name in required,
                    }
                    for field in fields
                ],
            }
            for tab, fields in fields_by_tab(mode).items()
        ],
    }


def validate(data: Mapping[str, Any], mode: str) -> dict[str, str]:
    """Validate snake_case permit data; returns errors keyed by camelCase field key."""
    if mode not in MODES:
        raise ValueError(f"Unbekannter Formularmodus: {mode}")
    errors: dict[str, str] = {}

    def fail(name: str, message: str) -> None:
        errors.setdefault(FIELDS_BY_NAME[name].key, message)

    for name in REQUIRED_FIELDS[mode]:
        if name == "location" and not _is_blank(data.get("work_location_id")):
            continue
        if _is_blank(data.get(name)):
            fail(name, REQUIRED_MESSAGE)

    permit_type = data.get("type")
    if not _is_blank(permit_type) and permit_type not in PERMIT_TYPES:
        fail("type", f"Unbekannte Art der Arbeit: {permit_type}")

    try:
        normalize_risk(data.get("overall_risk"))
    except ValueError as exc:
        fail("overall_risk", str(exc))

    parsed_dates: dict[str, Optional[datetime]] = {}
    for name in ("start_date", "end_date", "work_started_at", "work_completed_at"):
        try:
            parsed_dates[name] = parse_datetime(data.get(name))
        except (TypeError, ValueError):
            fail(name, "Ungültiges Datum")
            parsed_dates[name] = None

    start, end = parsed_dates["start_date"], parsed_dates["end_date"]
    if start and end and end < start:
        fail("end_date", "Das Enddatum darf nicht vor dem Startdatum liegen")
    started, finished = parsed_dates["work_started_at"], parsed_dates["work_completed_at"]
    if started and finished and finished < started:
        fail("work_completed_at", "Arbeitsende darf nicht vor dem Arbeitsbeginn liegen")

    for name, limit in (("map_position_x", MAP_WIDTH), ("map_position_y", MAP_HEIGHT)):
        value = data.get(name)
        if value is None or value == "":
            continue
        try:
            position = float(value)
        except (TypeError, ValueError):
            fail(name, "Ungültige Kartenposition")
            continue
        if not 0 <= position <= limit:
            fail(name, f"Kartenposition muss zwischen 0 und {limit} liegen")

    hazards = data.get("selected_hazards") or []
    strict = mode in (SUBMIT, EDIT)
    for hazard_id in hazards:
        if parse_hazard_id(hazard_id) is None:
            fail("selected_hazards", f"Ungültige Gefährdungs-ID: {hazard_id}")
            break
        if strict and not is_known_hazard(hazard_id):
            fail("selected_hazards", f"Unbekannte Gefährdung: {hazard_id}")
            break

    if strict and "hazard_notes" in data:
        orphans = orphan_note_keys(parse_hazard_notes(data.get("hazard_notes")), hazards)
        if orphans:
            fail("hazard_notes", f"Notizen ohne ausgewählte Gefährdung: {', '.join(orphans)}")

    return errors
