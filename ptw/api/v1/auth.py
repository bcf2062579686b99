from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ptw.api.v1.schemas import UserResponse
from ptw.core.security import create_user_token, get_current_user, verify_password
from ptw.db import models
from ptw.db.session import get_db

router = APIRouter(tags=["Auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse


def authenticate(db: Session, username: str, password: str) -> models.User:
    normalized = username.strip().lower()
    user = db.query(models.User).filter(func.lower(models.User.username) == normalized).first()
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Benutzername oder Passwort ungültig"
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Benutzer ist deaktiviert")
    return user


@router.post("/auth/login", response_model=LoginResponse, summary="Login JSON (frontend)")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, payload.username, payload.password)
    return {"access_token": create_user_token(user), "token_type": "bearer", "user": UserResponse.model_validate(user)}


@router.post("/auth/token", summary="Login OAuth2 (Swagger)")
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    user = authenticate(db, form_data.username, form_data.password)
    return {"access_token": create_user_token(user), "token_type": "bearer"}


@router.get("/auth/user", response_model=UserResponse)
def current_user_info(current_user: models.User = Depends(get_current_user)):
    return current_user
