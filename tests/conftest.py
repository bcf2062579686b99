import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ptw.api.v1.attachments import get_storage
from ptw.core.security import create_user_token, get_password_hash
from ptw.db import models
from ptw.db.session import get_db
from ptw.main import app
from ptw.services.storage import StorageClient

PASSWORD = "geheim123"


@pytest.fixture(scope="session")
def password():
    return PASSWORD


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture()
def db_session(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_STORAGE", "1")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture()
def users(db_session, password_hash):
    specs = {
        "admin": ("admin", "Administrator", "admin", "Verwaltung"),
        "requester": ("erika", "Erika Muster", "employee", "Produktion"),
        "dept_head": ("dora", "Dora Leitner", "department_head", "Produktion"),
        "maintenance": ("max", "Max Wartung", "maintenance", "Instandhaltung"),
        "safety": ("sven", "Sven Sicher", "safety_officer", "Arbeitssicherheit"),
        "supervisor": ("sam", "Sam Aufsicht", "supervisor", "Produktion"),
        "other": ("otto", "Otto Fremd", "employee", "Logistik"),
    }
    created = {}
    for key, (username, full_name, role, department) in specs.items():
        user = models.User(
            username=username,
            password_hash=password_hash,
            full_name=full_name,
            role=role,
            department=department,
            is_active=True,
        )
        db_session.add(user)
        created[key] = user
    db_session.commit()
    return created


@pytest.fixture()
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {create_user_token(user)}"}

    return _headers


@pytest.fixture()
def client(db_session):
    storage_client = StorageClient()
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_storage] = lambda: storage_client
    yield TestClient(app)
    app.dependency_overrides.clear()
