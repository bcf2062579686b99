import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ptw.api.v1.attachments import router as attachments_router
from ptw.api.v1.auth import router as auth_router
from ptw.api.v1.doctor import router as doctor_router
from ptw.api.v1.hazards import router as hazards_router
from ptw.api.v1.notifications import router as notifications_router
from ptw.api.v1.permits import router as permits_router
from ptw.api.v1.reports import router as reports_router
from ptw.api.v1.settings import router as settings_router
from ptw.api.v1.suggestions import router as suggestions_router
from ptw.api.v1.users import router as users_router
from ptw.api.v1.webhook_configs import router as webhook_configs_router
from ptw.api.v1.work_locations import router as work_locations_router
from ptw.core.config import settings
from ptw.db import models
from ptw.db.init_db import ensure_missing_columns, seed_initial_data
from ptw.db.session import engine

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("ptw")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Arbeitserlaubnis-System - Genehmigungen, Gefährdungsbeurteilung und KI-Vorschläge",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=engine)
    ensure_missing_columns(engine)
    seed_initial_data()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY verwendet den Standardwert in Produktion.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI zeigt in Produktion auf SQLite.")
        if not settings.WEBHOOK_CALLBACK_SECRET:
            logger.warning("WEBHOOK_CALLBACK_SECRET ist nicht gesetzt; n8n-Rückrufe sind ungeschützt.")


app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(permits_router, prefix="/api")
app.include_router(attachments_router, prefix="/api")
app.include_router(suggestions_router, prefix="/api")
app.include_router(webhook_configs_router, prefix="/api")
app.include_router(work_locations_router, prefix="/api")
app.include_router(settings_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(hazards_router, prefix="/api")
app.include_router(reports_router, prefix="/api")
app.include_router(doctor_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response
