import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ptw.api.v1.schemas import CamelModel, PermitCreate, PermitFields, PermitResponse
from ptw.core.authorization import can_edit_permit, get_workflow_permissions
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.init_db import get_app_settings
from ptw.db.session import get_db
from ptw.forms import descriptor
from ptw.maps.geometry import marker_style, positioned_permits
from ptw.services.print_view import render_permit_html, render_permit_pdf
from ptw.workflow import approvals, engine, service

logger = logging.getLogger("ptw.permits")

router = APIRouter(tags=["Permits"])


class WorkflowRequest(BaseModel):
    action: str
    next_status: Optional[str] = Field(default=None, alias="nextStatus")
    reason: Optional[str] = None

    model_config = {"populate_by_name": True}


class ApproveRequest(BaseModel):
    approval_type: str = Field(alias="approvalType")

    model_config = {"populate_by_name": True}


class RejectRequest(BaseModel):
    reason: str = ""


class ApprovalProgressResponse(CamelModel):
    required: List[str]
    received: List[str]
    complete: bool


class MapMarkerResponse(CamelModel):
    id: int
    permit_id: str
    type: str
    status: str
    location: str
    work_location_id: Optional[int] = None
    map_position_x: float
    map_position_y: float
    fill: str
    stroke: str


def _internal_error():
    logger.exception("Interner Fehler bei Genehmigungen")
    return JSONResponse(
        status_code=500,
        content={"detail": "Ein Fehler ist aufgetreten, bitte später erneut versuchen"},
    )


def _validation_error(exc: service.PermitValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": exc.message, "errors": exc.errors},
    )


def get_permit_or_404(db: Session, permit_id: int) -> models.Permit:
    permit = db.query(models.Permit).filter(models.Permit.id == permit_id).first()
    if not permit:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Genehmigung nicht gefunden")
    return permit


@router.get("/permits", response_model=List[PermitResponse])
def list_permits(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    permit_type: Optional[str] = Query(default=None, alias="type"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(models.Permit)
    if status_filter:
        query = query.filter(models.Permit.status == status_filter)
    if permit_type:
        query = query.filter(models.Permit.type == permit_type)
    return query.order_by(models.Permit.created_at.desc(), models.Permit.id.desc()).all()


@router.get("/permits/stats")
def permit_stats(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return service.permit_stats(db)


@router.get("/permits/map", response_model=List[MapMarkerResponse])
def permit_map(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    work_location_id: Optional[int] = Query(default=None, alias="workLocationId"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permits = db.query(models.Permit).order_by(models.Permit.id).all()
    markers = []
    for permit in positioned_permits(permits, status=status_filter, work_location_id=work_location_id):
        style = marker_style(permit.status)
        markers.append(
            MapMarkerResponse(
                id=permit.id,
                permit_id=permit.permit_id,
                type=permit.type,
                status=permit.status,
                location=permit.location,
                work_location_id=permit.work_location_id,
                map_position_x=permit.map_position_x,
                map_position_y=permit.map_position_y,
                fill=style["fill"],
                stroke=style["stroke"],
            )
        )
    return markers


@router.get("/permit-form/{mode}")
def permit_form(mode: str, current_user: models.User = Depends(get_current_user)):
    if mode not in descriptor.MODES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unbekannter Formularmodus")
    return descriptor.describe(mode)


@router.post("/permits", response_model=PermitResponse, status_code=status.HTTP_201_CREATED)
def create_permit(
    payload: PermitCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return service.create_permit(db, current_user, payload.model_dump(exclude_unset=True))
    except service.PermitValidationError as exc:
        raise _validation_error(exc)
    except HTTPException:
        raise
    except Exception:
        return _internal_error()


@router.get("/permits/{permit_id}", response_model=PermitResponse)
def get_permit(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_permit_or_404(db, permit_id)


@router.patch("/permits/{permit_id}", response_model=PermitResponse)
def update_permit(
    permit_id: int,
    payload: PermitFields,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        return service.update_fields(db, permit, current_user, payload.model_dump(exclude_unset=True))
    except service.PermitValidationError as exc:
        db.rollback()
        raise _validation_error(exc)
    except engine.WorkflowPermissionError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except engine.WorkflowError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except Exception:
        db.rollback()
        return _internal_error()


@router.delete("/permits/{permit_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_permit(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    if not can_edit_permit(current_user, permit):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Keine Berechtigung zum Löschen")
    service.delete_permit(db, permit)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/permits/{permit_id}/actions")
def permit_actions(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    permissions = get_workflow_permissions(current_user, permit)
    return [action.as_dict() for action in engine.available_actions(permit.status, permissions)]


@router.post("/permits/{permit_id}/workflow", response_model=PermitResponse)
def run_workflow_action(
    permit_id: int,
    payload: WorkflowRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        return service.apply_transition(
            db, permit, payload.action, payload.next_status, current_user, reason=payload.reason
        )
    except service.PermitValidationError as exc:
        db.rollback()
        raise _validation_error(exc)
    except engine.WorkflowPermissionError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except engine.WorkflowError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/permits/{permit_id}/approvals", response_model=ApprovalProgressResponse)
def permit_approvals(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return approvals.approval_progress(get_permit_or_404(db, permit_id))


@router.post("/permits/{permit_id}/approve", response_model=PermitResponse)
def approve_permit(
    permit_id: int,
    payload: ApproveRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        return service.approve(db, permit, payload.approval_type, current_user)
    except approvals.ApprovalPermissionError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except approvals.ApprovalError as exc:
        db.rollback()
        code = status.HTTP_400_BAD_REQUEST if payload.approval_type not in approvals.SLOTS else status.HTTP_409_CONFLICT
        raise HTTPException(status_code=code, detail=str(exc))


@router.post("/permits/{permit_id}/reject", response_model=PermitResponse)
def reject_permit(
    permit_id: int,
    payload: RejectRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        return service.reject(db, permit, current_user, payload.reason)
    except service.PermitValidationError as exc:
        db.rollback()
        raise _validation_error(exc)
    except engine.WorkflowPermissionError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except engine.WorkflowError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/permits/{permit_id}/print", response_class=HTMLResponse)
def print_permit(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    return HTMLResponse(render_permit_html(permit, get_app_settings(db)))


@router.get("/permits/{permit_id}/print.pdf")
def print_permit_pdf(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    try:
        pdf = render_permit_pdf(permit, get_app_settings(db))
    except Exception:
        return _internal_error()
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{permit.permit_id}.pdf"'},
    )
