import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from pydantic import Field
from sqlalchemy.orm import Session

from ptw.api.v1.schemas import CamelModel
from ptw.core.authorization import require_admin
from ptw.core.security import get_current_user
from ptw.db import models
from ptw.db.session import get_db
from ptw.suggestions.webhook_client import check_connection

logger = logging.getLogger("ptw.webhooks")

router = APIRouter(tags=["Webhook Configs"])


class WebhookConfigResponse(CamelModel):
    id: int
    name: str
    webhook_url: str
    is_active: bool
    last_tested_at: Optional[datetime] = None
    last_test_status: Optional[str] = None
    created_at: Optional[datetime] = None


class WebhookConfigCreate(CamelModel):
    name: str = Field(min_length=1)
    webhook_url: str = Field(pattern=r"^https?://")
    is_active: bool = False


class WebhookConfigUpdate(CamelModel):
    name: Optional[str] = None
    webhook_url: Optional[str] = Field(default=None, pattern=r"^https?://")
    is_active: Optional[bool] = None


def _get_config_or_404(db: Session, config_id: int) -> models.WebhookConfig:
    config = db.query(models.WebhookConfig).filter(models.WebhookConfig.id == config_id).first()
    if not config:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook-Konfiguration nicht gefunden")
    return config


def _deactivate_others(db: Session, keep_id: Optional[int]) -> None:
    query = db.query(models.WebhookConfig).filter(models.WebhookConfig.is_active.is_(True))
    if keep_id is not None:
        query = query.filter(models.WebhookConfig.id != keep_id)
    for other in query.all():
        other.is_active = False


@router.get("/webhook-configs", response_model=List[WebhookConfigResponse])
def list_webhook_configs(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return db.query(models.WebhookConfig).order_by(models.WebhookConfig.id).all()


@router.post("/webhook-configs", response_model=WebhookConfigResponse, status_code=status.HTTP_201_CREATED)
def create_webhook_config(
    payload: WebhookConfigCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    config = models.WebhookConfig(
        name=payload.name.strip(),
        webhook_url=payload.webhook_url.strip(),
        is_active=payload.is_active,
    )
    db.add(config)
    db.flush()
    if config.is_active:
        _deactivate_others(db, config.id)
    db.commit()
    db.refresh(config)
    logger.info("webhook config created id=%s active=%s", config.id, config.is_active)
    return config


@router.patch("/webhook-configs/{config_id}", response_model=WebhookConfigResponse)
def update_webhook_config(
    config_id: int,
    payload: WebhookConfigUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    config = _get_config_or_404(db, config_id)
    for name, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(config, name, value)
    if config.is_active:
        _deactivate_others(db, config.id)
    db.commit()
    db.refresh(config)
    return config


@router.delete("/webhook-configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_webhook_config(
    config_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    db.delete(_get_config_or_404(db, config_id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/webhook-configs/{config_id}/test", response_model=WebhookConfigResponse)
def run_webhook_test(
    config_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    config = _get_config_or_404(db, config_id)
    ok = check_connection(config)
    config.last_tested_at = datetime.utcnow()
    config.last_test_status = "success" if ok else "failed"
    db.commit()
    db.refresh(config)
    return config
