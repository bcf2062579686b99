import logging
import os
from typing import Optional

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from ptw.core.config import settings
from ptw.core.security import get_password_hash
from ptw.db import models
from ptw.db.session import SessionLocal

logger = logging.getLogger("ptw.db")

RESET_DEFAULT_PASSWORDS = os.getenv("RESET_DEFAULT_PASSWORDS", "").strip().lower() in {"1", "true", "yes"}

DEFAULT_LOCATIONS = (
    ("Produktionshalle A", "Halle A", "Fertigung", 180.0, 220.0),
    ("Tanklager", "Außenbereich", "Lager", 560.0, 140.0),
    ("Werkstatt", "Gebäude 2", "Instandhaltung", 420.0, 430.0),
)


def ensure_missing_columns(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    inspector = inspect(engine)
    preparer = engine.dialect.identifier_preparer
    existing_tables = set(inspector.get_table_names())
    for table_name, table in models.Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(table_name)} "
                        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                    )
                )
            logger.info("added missing column %s.%s", table_name, column.name)


def ensure_admin(db: Session, username: str, password: str) -> models.User:
    admin = db.query(models.User).filter(models.User.username == username).first()
    if not admin:
        admin = models.User(
            username=username,
            password_hash=get_password_hash(password),
            full_name="Administrator",
            department="Verwaltung",
            role="admin",
            is_active=True,
        )
        db.add(admin)
    else:
        admin.role = "admin"
        admin.is_active = True
        if RESET_DEFAULT_PASSWORDS or not admin.password_hash:
            admin.password_hash = get_password_hash(password)
    db.commit()
    db.refresh(admin)
    return admin


def get_app_settings(db: Session) -> models.AppSettings:
    app_settings = db.query(models.AppSettings).first()
    if not app_settings:
        app_settings = models.AppSettings()
        db.add(app_settings)
        db.commit()
        db.refresh(app_settings)
    return app_settings


def seed_initial_data(db: Optional[Session] = None) -> None:
    owns_session = db is None
    db = db or SessionLocal()
    try:
        ensure_admin(db, settings.DEFAULT_ADMIN_USERNAME, settings.DEFAULT_ADMIN_PASSWORD)
        get_app_settings(db)
        if db.query(models.WorkLocation).count() == 0:
            for name, building, area, x, y in DEFAULT_LOCATIONS:
                db.add(
                    models.WorkLocation(
                        name=name,
                        building=building,
                        area=area,
                        map_position_x=x,
                        map_position_y=y,
                    )
                )
            db.commit()
        logger.info("seed ok: admin user %s", settings.DEFAULT_ADMIN_USERNAME)
    finally:
        if owns_session:
            db.close()
