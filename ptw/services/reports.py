from datetime import datetime
from io import BytesIO
from typing import Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session

from ptw.db import models
from ptw.forms.descriptor import TYPE_LABELS
from ptw.hazards.taxonomy import resolve_hazards
from ptw.workflow.approvals import approval_progress
from ptw.workflow.engine import STATUS_LABELS

COLUMNS = (
    ("Genehmigungs-Nr.", 18),
    ("Art", 24),
    ("Status", 14),
    ("Beschreibung", 40),
    ("Arbeitsort", 24),
    ("Abteilung", 18),
    ("Antragsteller", 20),
    ("Beginn", 18),
    ("Ende", 18),
    ("Gesamtrisiko", 14),
    ("Gefährdungen", 60),
    ("Freigaben", 14),
    ("Erstellt am", 18),
)


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else ""


def _row(permit: models.Permit) -> list:
    hazards = "; ".join(hazard.label for hazard in resolve_hazards(permit.selected_hazards))
    progress = approval_progress(permit)
    return [
        permit.permit_id,
        TYPE_LABELS.get(permit.type, permit.type),
        STATUS_LABELS.get(permit.status, permit.status),
        permit.description,
        permit.location,
        permit.department,
        permit.requestor_name,
        _fmt(permit.start_date),
        _fmt(permit.end_date),
        permit.overall_risk or "",
        hazards,
        f"{len(progress['received'])}/{len(progress['required'])}",
        _fmt(permit.created_at),
    ]


def build_permit_report(db: Session, status: Optional[str] = None) -> Tuple[bytes, str]:
    query = db.query(models.Permit)
    if status:
        query = query.filter(models.Permit.status == status)
    permits = query.order_by(models.Permit.created_at.desc()).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "Genehmigungen"
    ws.append([label for label, _ in COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for permit in permits:
        ws.append(_row(permit))

    ws.freeze_panes = "A2"
    for idx, (_, width) in enumerate(COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    info = wb.create_sheet("INFO")
    info["A1"] = "Bericht"
    info["B1"] = "Arbeitserlaubnisse"
    info["A2"] = "Filter"
    info["B2"] = status or "alle"
    info["A3"] = "Erstellt am"
    info["B3"] = datetime.utcnow().isoformat()

    out = BytesIO()
    wb.save(out)
    filename = f"genehmigungen_{datetime.utcnow().strftime('%Y%m%d')}.xlsx"
    return out.getvalue(), filename
