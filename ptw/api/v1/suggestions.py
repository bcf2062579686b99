import hmac
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ptw.api.v1.permits import get_permit_or_404
from ptw.api.v1.schemas import AnalysisRunResponse, SuggestionResponse
from ptw.core.config import settings
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db
from ptw.suggestions import service
from ptw.suggestions.schemas import AnalysisCallback
from ptw.suggestions.webhook_client import WebhookError

logger = logging.getLogger("ptw.suggestions")

router = APIRouter(tags=["AI Suggestions"])


class SuggestionStatusUpdate(BaseModel):
    status: Literal["pending", "accepted", "rejected"]


def _internal_error():
    logger.exception("Interner Fehler bei KI-Vorschlägen")
    return JSONResponse(
        status_code=500,
        content={"detail": "Ein Fehler ist aufgetreten, bitte später erneut versuchen"},
    )


def _suggestion_error(exc: service.SuggestionError) -> HTTPException:
    if exc.errors:
        return HTTPException(status_code=exc.status_code, detail={"message": exc.message, "errors": exc.errors})
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _get_suggestion_or_404(db: Session, suggestion_id: int) -> models.AiSuggestion:
    suggestion = db.query(models.AiSuggestion).filter(models.AiSuggestion.id == suggestion_id).first()
    if not suggestion:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vorschlag nicht gefunden")
    return suggestion


@router.post("/permits/{permit_id}/analyze", status_code=status.HTTP_202_ACCEPTED)
def analyze_permit(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        run = service.start_analysis(db, permit)
    except service.SuggestionError as exc:
        raise _suggestion_error(exc)
    except WebhookError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return {
        "message": "KI-Analyse gestartet",
        "status": "processing",
        "analysisId": run.id,
        "permitId": permit.permit_id,
    }


@router.get("/permits/{permit_id}/analysis", response_model=AnalysisRunResponse)
def latest_analysis(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    run = service.latest_run(db, permit)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keine Analyse vorhanden")
    return run


@router.post("/webhooks/suggestions")
def receive_suggestions(
    payload: AnalysisCallback,
    x_webhook_secret: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    expected = settings.WEBHOOK_CALLBACK_SECRET
    if expected and not hmac.compare_digest(x_webhook_secret or "", expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Ungültiges Webhook-Geheimnis")
    try:
        return service.ingest_callback(db, payload)
    except service.SuggestionError as exc:
        raise _suggestion_error(exc)
    except HTTPException:
        raise
    except Exception:
        return _internal_error()


@router.get("/permits/{permit_id}/suggestions", response_model=List[SuggestionResponse])
def list_suggestions(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    return (
        db.query(models.AiSuggestion)
        .filter(models.AiSuggestion.permit_id == permit.id)
        .order_by(models.AiSuggestion.created_at.desc(), models.AiSuggestion.id.desc())
        .all()
    )


@router.get("/permits/{permit_id}/diff/{batch_id}")
def suggestion_diff(
    permit_id: int,
    batch_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        return {"batchId": batch_id, "changes": service.batch_diff(db, permit, batch_id)}
    except service.SuggestionError as exc:
        raise _suggestion_error(exc)


@router.patch("/suggestions/{suggestion_id}/status", response_model=SuggestionResponse)
def update_suggestion_status(
    suggestion_id: int,
    payload: SuggestionStatusUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    suggestion = _get_suggestion_or_404(db, suggestion_id)
    try:
        return service.change_status(db, suggestion, payload.status)
    except service.SuggestionError as exc:
        raise _suggestion_error(exc)


@router.post("/suggestions/{suggestion_id}/apply", response_model=SuggestionResponse)
def apply_suggestion(
    suggestion_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    suggestion = _get_suggestion_or_404(db, suggestion_id)
    try:
        return service.apply_suggestion(db, suggestion, current_user)
    except service.SuggestionError as exc:
        db.rollback()
        raise _suggestion_error(exc)


@router.delete("/suggestions/{suggestion_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_suggestion(
    suggestion_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    suggestion = _get_suggestion_or_404(db, suggestion_id)
    db.delete(suggestion)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/permits/{permit_id}/suggestions/apply-all")
def apply_all_suggestions(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        applied = service.apply_all(db, permit, current_user)
    except service.SuggestionError as exc:
        raise _suggestion_error(exc)
    return {"message": f"{applied} Vorschläge übernommen", "appliedCount": applied}


@router.post("/permits/{permit_id}/suggestions/reject-all")
def reject_all_suggestions(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    rejected = service.reject_all(db, permit)
    return {"message": f"{rejected} Vorschläge abgelehnt", "rejectedCount": rejected}


@router.delete("/permits/{permit_id}/suggestions")
def delete_all_suggestions(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    deleted = service.delete_all(db, permit)
    return {"message": f"{deleted} Vorschläge gelöscht", "deletedCount": deleted}
