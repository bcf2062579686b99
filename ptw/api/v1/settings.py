import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from ptw.api.v1.attachments import get_storage
from ptw.api.v1.schemas import CamelModel
from ptw.core.authorization import require_admin
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.init_db import get_app_settings
from ptw.db.session import get_db
from ptw.services.storage import StorageClient, StorageError, unique_name

router = APIRouter(tags=["Settings"])

COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")
LOGO_MAX_BYTES = 2 * 1024 * 1024


class AppSettingsResponse(CamelModel):
    app_name: str
    logo_url: Optional[str] = None
    header_background_color: str
    header_text_color: str
    updated_at: Optional[datetime] = None


def _check_color(value: Optional[str], label: str) -> None:
    if value is not None and not COLOR_PATTERN.match(value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Ungültige Farbe für {label}: {value}")


@router.get("/settings", response_model=AppSettingsResponse)
def read_settings(db: Session = Depends(get_db)):
    return get_app_settings(db)


@router.put("/settings", response_model=AppSettingsResponse)
def update_settings(
    app_name: Optional[str] = Form(default=None, alias="appName"),
    header_background_color: Optional[str] = Form(default=None, alias="headerBackgroundColor"),
    header_text_color: Optional[str] = Form(default=None, alias="headerTextColor"),
    logo: Optional[UploadFile] = File(default=None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    require_admin(current_user)
    _check_color(header_background_color, "Kopfzeilenhintergrund")
    _check_color(header_text_color, "Kopfzeilentext")
    app_settings = get_app_settings(db)

    if app_name is not None:
        if not app_name.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="App-Name darf nicht leer sein")
        app_settings.app_name = app_name.strip()
    if header_background_color is not None:
        app_settings.header_background_color = header_background_color
    if header_text_color is not None:
        app_settings.header_text_color = header_text_color
    if logo is not None and logo.filename:
        if not (logo.content_type or "").startswith("image/"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Logo muss ein Bild sein")
        try:
            logo_url, _ = storage.upload_file(
                logo.file,
                f"branding/{unique_name(logo.filename)}",
                logo.content_type,
                max_bytes=LOGO_MAX_BYTES,
            )
        except StorageError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        app_settings.logo_url = logo_url

    db.commit()
    db.refresh(app_settings)
    return app_settings
