import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ptw.api.v1.permits import get_permit_or_404
from ptw.api.v1.schemas import CamelModel
from ptw.core.authorization import is_admin_user
from ptw.core.config import settings
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db
from ptw.services.storage import StorageClient, StorageError, file_type_for, unique_name

logger = logging.getLogger("ptw.attachments")

router = APIRouter(tags=["Attachments"])


class AttachmentResponse(CamelModel):
    id: int
    permit_id: int
    file_name: str
    original_name: str
    file_type: str
    mime_type: str
    file_size: int
    uploaded_by: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


def get_storage() -> StorageClient:
    return StorageClient()


def _get_attachment_or_404(db: Session, attachment_id: int) -> models.PermitAttachment:
    attachment = (
        db.query(models.PermitAttachment).filter(models.PermitAttachment.id == attachment_id).first()
    )
    if not attachment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anhang nicht gefunden")
    return attachment


@router.get("/permits/{permit_id}/attachments", response_model=List[AttachmentResponse])
def list_attachments(
    permit_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    permit = get_permit_or_404(db, permit_id)
    return (
        db.query(models.PermitAttachment)
        .filter(models.PermitAttachment.permit_id == permit.id)
        .order_by(models.PermitAttachment.created_at.desc())
        .all()
    )


@router.post(
    "/permits/{permit_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_attachment(
    permit_id: int,
    file: UploadFile = File(...),
    description: Optional[str] = Form(default=None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    permit = get_permit_or_404(db, permit_id)
    mime_type = file.content_type or "application/octet-stream"
    try:
        file_type = file_type_for(mime_type)
        file_name = unique_name(file.filename or "")
        file_url, size = storage.upload_file(
            file.file,
            f"permits/{permit.id}/{file_name}",
            mime_type,
            max_bytes=settings.UPLOAD_MAX_BYTES,
        )
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    attachment = models.PermitAttachment(
        permit_id=permit.id,
        file_name=file_name,
        original_name=file.filename or file_name,
        file_type=file_type,
        mime_type=mime_type,
        file_size=size,
        file_url=file_url,
        uploaded_by=current_user.id,
        description=description,
    )
    db.add(attachment)
    db.commit()
    db.refresh(attachment)
    logger.info("attachment uploaded permit=%s file=%s size=%s", permit.permit_id, file_name, size)
    return attachment


@router.get("/attachments/{attachment_id}/download")
def download_attachment(
    attachment_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    attachment = _get_attachment_or_404(db, attachment_id)
    try:
        content = storage.read_bytes(attachment.file_url)
    except (StorageError, FileNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Datei nicht gefunden")
    return Response(
        content=content,
        media_type=attachment.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{attachment.original_name}"'},
    )


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_attachment(
    attachment_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    attachment = _get_attachment_or_404(db, attachment_id)
    if not is_admin_user(current_user) and attachment.uploaded_by != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Keine Berechtigung")
    try:
        storage.delete(attachment.file_url)
    except StorageError as exc:
        logger.warning("could not delete stored file %s: %s", attachment.file_url, exc)
    db.delete(attachment)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
