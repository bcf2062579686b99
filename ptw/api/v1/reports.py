from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db
from ptw.services.reports import build_permit_report

router = APIRouter(tags=["Reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/reports/permits.xlsx")
def export_permits(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    content, filename = build_permit_report(db, status=status_filter)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
