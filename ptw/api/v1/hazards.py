from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db
from ptw.hazards.notes import parse_hazard_notes
from ptw.hazards.taxonomy import resolve_hazards, taxonomy_as_dict

router = APIRouter(tags=["Hazards"])


@router.get("/trbs-hazards")
def trbs_hazards():
    return taxonomy_as_dict()


@router.get("/permits/{permit_id}/hazards")
def permit_hazards(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = db.query(models.Permit).filter(models.Permit.id == permit_id).first()
    if not permit:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Genehmigung nicht gefunden")
    notes = parse_hazard_notes(permit.hazard_notes)
    return [
        {
            "id": hazard.hazard_id,
            "category": hazard.category,
            "hazard": hazard.hazard,
            "known": hazard.known,
            "note": notes.get(hazard.hazard_id, ""),
        }
        for hazard in resolve_hazards(permit.selected_hazards)
    ]
