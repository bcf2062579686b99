from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ptw.api.v1.schemas import CamelModel
from ptw.core.authorization import require_admin
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db
from ptw.maps.geometry import MAP_HEIGHT, MAP_WIDTH, is_within_map

router = APIRouter(tags=["Work Locations"])


class WorkLocationResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    building: Optional[str] = None
    area: Optional[str] = None
    map_position_x: Optional[float] = None
    map_position_y: Optional[float] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class WorkLocationPayload(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    building: Optional[str] = None
    area: Optional[str] = None
    map_position_x: Optional[float] = None
    map_position_y: Optional[float] = None
    is_active: Optional[bool] = None


class MapBackgroundResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    image_url: str
    width: int = MAP_WIDTH
    height: int = MAP_HEIGHT
    is_active: bool = True


class MapBackgroundCreate(CamelModel):
    name: str
    description: Optional[str] = None
    image_url: str
    width: int = MAP_WIDTH
    height: int = MAP_HEIGHT


def _check_position(x: Optional[float], y: Optional[float]) -> None:
    if x is None and y is None:
        return
    if not is_within_map(x, y):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Kartenposition muss innerhalb von {MAP_WIDTH}x{MAP_HEIGHT} liegen",
        )


def _get_location_or_404(db: Session, location_id: int) -> models.WorkLocation:
    location = db.query(models.WorkLocation).filter(models.WorkLocation.id == location_id).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Arbeitsbereich nicht gefunden")
    return location


@router.get("/work-locations", response_model=List[WorkLocationResponse])
def list_work_locations(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return db.query(models.WorkLocation).order_by(models.WorkLocation.name).all()


@router.get("/work-locations/active", response_model=List[WorkLocationResponse])
def list_active_work_locations(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(models.WorkLocation)
        .filter(models.WorkLocation.is_active.is_(True))
        .order_by(models.WorkLocation.name)
        .all()
    )


@router.post("/work-locations", response_model=WorkLocationResponse, status_code=status.HTTP_201_CREATED)
def create_work_location(
    payload: WorkLocationPayload,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    if not (payload.name or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name ist erforderlich")
    _check_position(payload.map_position_x, payload.map_position_y)
    data = payload.model_dump(exclude_none=True)
    data["name"] = data["name"].strip()
    location = models.WorkLocation(**data)
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


@router.patch("/work-locations/{location_id}", response_model=WorkLocationResponse)
def update_work_location(
    location_id: int,
    payload: WorkLocationPayload,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    location = _get_location_or_404(db, location_id)
    data = payload.model_dump(exclude_unset=True)
    _check_position(
        data.get("map_position_x", location.map_position_x),
        data.get("map_position_y", location.map_position_y),
    )
    for name, value in data.items():
        setattr(location, name, value)
    db.commit()
    db.refresh(location)
    return location


@router.delete("/work-locations/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_work_location(
    location_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    location = _get_location_or_404(db, location_id)
    in_use = db.query(models.Permit).filter(models.Permit.work_location_id == location.id).count()
    if in_use:
        # Referenced locations are deactivated instead of removed.
        location.is_active = False
    else:
        db.delete(location)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/map-backgrounds", response_model=List[MapBackgroundResponse])
def list_map_backgrounds(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(models.MapBackground)
        .filter(models.MapBackground.is_active.is_(True))
        .order_by(models.MapBackground.id)
        .all()
    )


@router.post("/map-backgrounds", response_model=MapBackgroundResponse, status_code=status.HTTP_201_CREATED)
def create_map_background(
    payload: MapBackgroundCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    background = models.MapBackground(**payload.model_dump())
    db.add(background)
    db.commit()
    db.refresh(background)
    return background
