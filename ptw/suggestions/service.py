"""AI suggestion lifecycle.

An analysis is dispatched to the n8n webhook and tracked as an
``AnalysisRun``. The webhook calls back with suggestions which are stored as
``pending``; users accept, reject or apply them one by one or in bulk.
"""

import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from ptw.db import models
from ptw.forms import descriptor
from ptw.hazards.notes import parse_hazard_notes, parse_string_list, serialize_hazard_notes
from ptw.hazards.taxonomy import parse_hazard_id
from ptw.suggestions import webhook_client
from ptw.suggestions.schemas import AnalysisCallback
from ptw.workflow import engine
from ptw.workflow import service as permit_service

logger = logging.getLogger("ptw.suggestions")

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
APPLIED = "applied"

RUN_QUEUED = "queued"
RUN_RUNNING = "running"
RUN_DONE = "done"
RUN_FAILED = "failed"
RUN_TERMINAL = frozenset({RUN_DONE, RUN_FAILED})

FIELD_ALIASES = {"preventiveMeasures": "before_work_starts"}
NON_APPLICABLE_FIELDS = frozenset({"id", "permit_id", "permitId", "status", "created_by", "createdBy", "created_at", "updated_at"})
LIST_ATTRS = frozenset({"selected_hazards", "completed_measures"})
DATE_ATTRS = frozenset({"start_date", "end_date", "work_started_at", "work_completed_at"})


class SuggestionError(Exception):
    def __init__(self, message: str, status_code: int = 409, errors: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors


def new_batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def find_permit_by_reference(db: Session, reference: Any) -> Optional[models.Permit]:
    permit = db.query(models.Permit).filter(models.Permit.permit_id == str(reference)).first()
    if permit is None and str(reference).isdigit():
        permit = db.query(models.Permit).filter(models.Permit.id == int(reference)).first()
    return permit


def latest_run(db: Session, permit: models.Permit) -> Optional[models.AnalysisRun]:
    return (
        db.query(models.AnalysisRun)
        .filter(models.AnalysisRun.permit_id == permit.id)
        .order_by(models.AnalysisRun.id.desc())
        .first()
    )


def active_webhook_config(db: Session) -> Optional[models.WebhookConfig]:
    return db.query(models.WebhookConfig).filter(models.WebhookConfig.is_active.is_(True)).first()


def _finish_run(run: models.AnalysisRun, status: str, error: Optional[str] = None, count: int = 0) -> None:
    run.status = status
    run.error = error
    run.suggestion_count = count
    run.completed_at = datetime.utcnow()


def start_analysis(
    db: Session,
    permit: models.Permit,
    transport: Optional[httpx.BaseTransport] = None,
) -> models.AnalysisRun:
    config = active_webhook_config(db)
    if config is None:
        raise SuggestionError("Keine aktive Webhook-Konfiguration gefunden", status_code=400)

    run = models.AnalysisRun(permit_id=permit.id, status=RUN_QUEUED)
    db.add(run)
    db.commit()
    db.refresh(run)

    try:
        webhook_client.dispatch_analysis(config, permit, run, transport=transport)
    except webhook_client.WebhookError as exc:
        _finish_run(run, RUN_FAILED, error=str(exc))
        db.commit()
        raise
    # The callback may already have finished the run while the webhook was answering.
    db.refresh(run)
    if run.status == RUN_QUEUED:
        run.status = RUN_RUNNING
        db.commit()
        db.refresh(run)
    logger.info("analysis dispatched permit=%s run=%s", permit.permit_id, run.id)
    return run


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _bullets(value: Any) -> str:
    if isinstance(value, list):
        return "• " + "\n• ".join(str(item) for item in value)
    return "• " + str(value)


def _resolve_run(db: Session, permit: models.Permit, analysis_id: Optional[int]) -> Optional[models.AnalysisRun]:
    query = db.query(models.AnalysisRun).filter(models.AnalysisRun.permit_id == permit.id)
    if analysis_id is not None:
        return query.filter(models.AnalysisRun.id == analysis_id).first()
    return (
        query.filter(models.AnalysisRun.status.in_([RUN_QUEUED, RUN_RUNNING]))
        .order_by(models.AnalysisRun.id.desc())
        .first()
    )


def ingest_callback(db: Session, payload: AnalysisCallback) -> dict:
    permit = find_permit_by_reference(db, payload.permit_id)
    if permit is None:
        raise SuggestionError("Genehmigung nicht gefunden", status_code=404)
    run = _resolve_run(db, permit, payload.analysis_id)

    if not payload.analysis_complete and payload.error:
        logger.error("analysis failed permit=%s error=%s", permit.permit_id, payload.error)
        if run is not None:
            _finish_run(run, RUN_FAILED, error=payload.error)
            db.commit()
        return {"message": "Analysefehler empfangen", "suggestionsCount": 0, "batchId": None}

    batch_id = new_batch_id()
    created: list[models.AiSuggestion] = []

    def add(**kwargs) -> None:
        suggestion = models.AiSuggestion(permit_id=permit.id, batch_id=batch_id, status=PENDING, **kwargs)
        db.add(suggestion)
        created.append(suggestion)

    for item in payload.suggestions or []:
        suggested = _to_text(item.suggested_value if item.suggested_value is not None else item.title)
        if suggested is None:
            logger.warning("skipping suggestion without value permit=%s field=%s", permit.permit_id, item.field_name)
            continue
        add(
            suggestion_type=item.type or "improvement",
            field_name=item.field_name or None,
            original_value=_to_text(item.original_value),
            suggested_value=suggested,
            reasoning=item.reasoning or item.impact or "KI-Analyse Empfehlung",
            priority=item.priority or "medium",
        )

    recommendations = payload.recommendations
    if recommendations is not None:
        if recommendations.immediate_actions:
            add(
                suggestion_type="safety_assessment",
                field_name="immediateActions",
                original_value=permit.immediate_actions or "",
                suggested_value=_bullets(recommendations.immediate_actions),
                reasoning="KI-generierte Sofortmaßnahmen basierend auf Risikoanalyse",
                priority="high",
            )
        if recommendations.before_work_starts:
            add(
                suggestion_type="safety_assessment",
                field_name="beforeWorkStarts",
                original_value=permit.before_work_starts or "",
                suggested_value=_bullets(recommendations.before_work_starts),
                reasoning="KI-generierte Vorbereitungsmaßnahmen basierend auf Arbeitsanalyse",
                priority="high",
            )
        compliance = recommendations.compliance_requirements or payload.compliance_notes
        if compliance:
            add(
                suggestion_type="safety_assessment",
                field_name="complianceNotes",
                original_value=permit.compliance_notes or "",
                suggested_value=compliance if isinstance(compliance, str) else _bullets(compliance),
                reasoning="KI-generierte Compliance-Hinweise basierend auf regulatorischen Anforderungen",
                priority="medium",
            )

    risk = payload.risk_assessment.overall_risk if payload.risk_assessment else None
    if risk:
        try:
            normalized = descriptor.normalize_risk(risk)
        except ValueError:
            logger.warning("ignoring unknown risk level permit=%s risk=%s", permit.permit_id, risk)
            normalized = None
        if normalized and normalized != permit.overall_risk:
            add(
                suggestion_type="risk_assessment",
                field_name="overallRisk",
                original_value=permit.overall_risk or "",
                suggested_value=normalized,
                reasoning="KI-Bewertung des Gesamtrisikos",
                priority="high",
            )

    if run is not None:
        _finish_run(run, RUN_DONE, count=len(created))
    db.commit()
    logger.info(
        "analysis callback stored permit=%s batch=%s suggestions=%s run=%s",
        permit.permit_id,
        batch_id,
        len(created),
        run.id if run is not None else None,
    )
    return {
        "message": "KI-Vorschläge gespeichert",
        "suggestionsCount": len(created),
        "batchId": batch_id,
        "analysisId": run.id if run is not None else None,
    }


def resolve_field(field_name: str) -> str:
    """Map a suggestion field name (camelCase or snake_case) to a permit attribute."""
    name = (field_name or "").strip()
    if name in NON_APPLICABLE_FIELDS:
        raise SuggestionError(f"Feld '{name}' kann nicht per Vorschlag geändert werden", status_code=422)
    if name in FIELD_ALIASES:
        return FIELD_ALIASES[name]
    for field in descriptor.FIELDS:
        if name in (field.key, field.name):
            return field.name
    raise SuggestionError(f"Unbekanntes Feld: {name}", status_code=422)


def sanitize_value(attr: str, raw: Any) -> Any:
    if attr == "selected_hazards":
        hazards = parse_string_list(raw)
        valid = [hazard_id for hazard_id in hazards if parse_hazard_id(hazard_id) is not None]
        if len(valid) != len(hazards):
            logger.warning("dropping invalid hazard ids from suggestion: %s", sorted(set(hazards) - set(valid)))
        return valid
    if attr in LIST_ATTRS:
        return parse_string_list(raw)
    if attr == "hazard_notes":
        return serialize_hazard_notes(parse_hazard_notes(raw))
    if attr in DATE_ATTRS:
        try:
            return descriptor.parse_datetime(raw)
        except (TypeError, ValueError):
            raise SuggestionError(f"Ungültiges Datum: {raw}", status_code=422)
    if attr == "overall_risk":
        try:
            return descriptor.normalize_risk(raw)
        except ValueError as exc:
            raise SuggestionError(str(exc), status_code=422)
    if attr == "work_location_id":
        try:
            return int(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            raise SuggestionError(f"Ungültiger Arbeitsbereich: {raw}", status_code=422)
    if attr in ("map_position_x", "map_position_y"):
        try:
            return float(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            raise SuggestionError(f"Ungültige Kartenposition: {raw}", status_code=422)
    return "" if raw is None else str(raw).strip()


def change_status(db: Session, suggestion: models.AiSuggestion, new_status: str) -> models.AiSuggestion:
    if suggestion.status == new_status:
        return suggestion
    if suggestion.status != PENDING or new_status not in (ACCEPTED, REJECTED):
        raise SuggestionError(
            f"Statuswechsel von '{suggestion.status}' nach '{new_status}' ist nicht erlaubt"
        )
    suggestion.status = new_status
    db.commit()
    db.refresh(suggestion)
    return suggestion


def _apply(permit: models.Permit, suggestion: models.AiSuggestion, user: models.User, now: datetime) -> None:
    if suggestion.status not in (PENDING, ACCEPTED):
        raise SuggestionError(f"Vorschlag im Status '{suggestion.status}' kann nicht übernommen werden")
    if suggestion.field_name:
        attr = resolve_field(suggestion.field_name)
        value = sanitize_value(attr, suggestion.suggested_value)
        try:
            permit_service.check_update(permit, user, {attr: value})
        except permit_service.PermitValidationError as exc:
            raise SuggestionError(exc.message, status_code=422, errors=exc.errors)
        except engine.WorkflowPermissionError as exc:
            raise SuggestionError(str(exc), status_code=403)
        except engine.WorkflowError as exc:
            raise SuggestionError(str(exc))
        setattr(permit, attr, value)
    suggestion.status = APPLIED
    suggestion.applied_at = now


def _ensure_permit_open(permit: models.Permit) -> None:
    if permit.status in engine.TERMINAL_STATUSES:
        raise SuggestionError("Vorschläge können auf abgeschlossene Genehmigungen nicht angewendet werden")


def apply_suggestion(db: Session, suggestion: models.AiSuggestion, user: models.User) -> models.AiSuggestion:
    """Write the suggested value to the permit under the same rules as a manual edit."""
    permit = suggestion.permit
    _ensure_permit_open(permit)
    _apply(permit, suggestion, user, datetime.utcnow())
    db.commit()
    db.refresh(suggestion)
    logger.info(
        "suggestion applied id=%s permit=%s field=%s user=%s",
        suggestion.id,
        permit.permit_id,
        suggestion.field_name,
        user.username,
    )
    return suggestion


def _pending(db: Session, permit: models.Permit) -> list[models.AiSuggestion]:
    return (
        db.query(models.AiSuggestion)
        .filter(models.AiSuggestion.permit_id == permit.id, models.AiSuggestion.status == PENDING)
        .order_by(models.AiSuggestion.id)
        .all()
    )


def apply_all(db: Session, permit: models.Permit, user: models.User) -> int:
    _ensure_permit_open(permit)
    now = datetime.utcnow()
    applied = 0
    for suggestion in _pending(db, permit):
        try:
            _apply(permit, suggestion, user, now)
        except SuggestionError as exc:
            logger.warning("could not apply suggestion id=%s: %s", suggestion.id, exc.message)
            continue
        applied += 1
    db.commit()
    logger.info("applied suggestions permit=%s count=%s", permit.permit_id, applied)
    return applied


def reject_all(db: Session, permit: models.Permit) -> int:
    pending = _pending(db, permit)
    for suggestion in pending:
        suggestion.status = REJECTED
    db.commit()
    return len(pending)


def delete_all(db: Session, permit: models.Permit) -> int:
    deleted = (
        db.query(models.AiSuggestion)
        .filter(models.AiSuggestion.permit_id == permit.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    db.expire(permit, ["suggestions"])
    return deleted


def _display_value(attr: str, value: Any) -> Any:
    if attr == "hazard_notes":
        return parse_hazard_notes(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def batch_diff(db: Session, permit: models.Permit, batch_id: str) -> list[dict]:
    suggestions = (
        db.query(models.AiSuggestion)
        .filter(models.AiSuggestion.permit_id == permit.id, models.AiSuggestion.batch_id == batch_id)
        .order_by(models.AiSuggestion.id)
        .all()
    )
    if not suggestions:
        raise SuggestionError("Vorschlagsgruppe nicht gefunden", status_code=404)

    rows = []
    for suggestion in suggestions:
        if not suggestion.field_name:
            continue
        row = {
            "suggestionId": suggestion.id,
            "fieldName": suggestion.field_name,
            "status": suggestion.status,
            "applicable": True,
            "label": None,
            "currentValue": None,
            "suggestedValue": suggestion.suggested_value,
        }
        try:
            attr = resolve_field(suggestion.field_name)
            suggested = sanitize_value(attr, suggestion.suggested_value)
        except SuggestionError:
            row["applicable"] = False
            rows.append(row)
            continue
        row["label"] = descriptor.FIELDS_BY_NAME[attr].label
        row["currentValue"] = _display_value(attr, getattr(permit, attr))
        row["suggestedValue"] = _display_value(attr, suggested)
        rows.append(row)
    return rows
