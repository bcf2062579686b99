import importlib.util
import logging
import os

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ptw.core import config
from ptw.db import models
from ptw.db.session import get_db

router = APIRouter(tags=["Doctor"])
logger = logging.getLogger("ptw.doctor")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/doctor")
def doctor(db: Session = Depends(get_db)):
    settings = config.settings
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.exception("doctor: database check failed")
        db_ok = False

    webhook_ok = (
        db_ok
        and db.query(models.WebhookConfig).filter(models.WebhookConfig.is_active.is_(True)).count() > 0
    )
    pdf_ok = importlib.util.find_spec("weasyprint") is not None
    secret_ok = settings.SECRET_KEY != "dev-secret-change-me"
    if not webhook_ok:
        logger.warning("doctor: no active n8n webhook configured")

    overall = all([db_ok, webhook_ok, pdf_ok, secret_ok])
    return {
        "status": "OK" if overall else "WARN",
        "database": "OK" if db_ok else "ERROR",
        "webhook": "OK" if webhook_ok else "ERROR",
        "storage": "GCS" if os.getenv("GCS_BUCKET") else "LOCAL",
        "pdf": "OK" if pdf_ok else "ERROR",
        "secret_key": "OK" if secret_ok else "DEFAULT",
        "cors": "OK" if settings.BACKEND_CORS_ORIGINS else "ERROR",
    }
