from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy.orm import Session

from ptw.api.v1.schemas import CamelModel, UserResponse
from ptw.core.authorization import require_admin
from ptw.core.security import ROLES, get_current_user, get_password_hash
from ptw.db import models
from ptw.db.session import get_db

router = APIRouter(tags=["Users"])

ROLE_LISTS = {
    "department-heads": ("department_head",),
    "safety-officers": ("safety_officer",),
    "maintenance-approvers": ("maintenance",),
    "supervisors": ("supervisor", "department_head"),
}


class UserCreate(CamelModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: str
    department: str = ""
    role: str = "employee"


class UserUpdate(CamelModel):
    full_name: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class PasswordUpdate(CamelModel):
    password: str = Field(min_length=6)


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unbekannte Rolle: {role}")


def _get_user_or_404(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benutzer nicht gefunden")
    return user


@router.get("/users", response_model=List[UserResponse])
def list_users(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return db.query(models.User).order_by(models.User.full_name).all()


@router.get("/users/{role_list}", response_model=List[UserResponse])
def list_users_by_role(
    role_list: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    roles = ROLE_LISTS.get(role_list)
    if roles is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unbekannte Benutzerliste")
    return (
        db.query(models.User)
        .filter(models.User.role.in_(roles), models.User.is_active.is_(True))
        .order_by(models.User.full_name)
        .all()
    )


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    _check_role(payload.role)
    username = payload.username.strip()
    if db.query(models.User).filter(models.User.username == username).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Benutzername bereits vergeben")
    try:
        password_hash = get_password_hash(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    user = models.User(
        username=username,
        password_hash=password_hash,
        full_name=payload.full_name.strip(),
        department=payload.department.strip(),
        role=payload.role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UserUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    user = _get_user_or_404(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    if "role" in data and data["role"] is not None:
        _check_role(data["role"])
    for name, value in data.items():
        if value is not None:
            setattr(user, name, value)
    db.commit()
    db.refresh(user)
    return user


@router.put("/users/{user_id}/password", status_code=status.HTTP_204_NO_CONTENT)
def update_password(
    user_id: int,
    payload: PasswordUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.id != user_id:
        require_admin(current_user)
    user = _get_user_or_404(db, user_id)
    try:
        user.password_hash = get_password_hash(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
