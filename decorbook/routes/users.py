import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound, ValidationFailure
from ..models import User
from ..schemas import UserIn, UserOut, UserUpdate, RoleUpdate, StatusUpdate, RoleOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

DECORATOR = "decorator"


def _get_user(db: Session, user_id: int) -> User:
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise NotFound("User not found")
    return u


def _sync_status(u: User) -> None:
    # Only decorators carry a status
    if u.role != DECORATOR:
        u.status = None
    elif not u.status:
        u.status = "pending"


def _save(db: Session, u: User) -> User:
    db.commit()
    db.refresh(u)
    return u


# Login-or-create: the client calls this after every sign-in
@router.post("/users", response_model=UserOut)
def login_or_create(payload: UserIn, response: Response, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        return existing

    status = None
    if payload.role == DECORATOR:
        status = payload.status or "pending"

    u = User(
        email=payload.email,
        name=payload.name,
        photo_url=payload.photo_url,
        role=payload.role,
        status=status,
    )
    db.add(u)
    try:
        db.commit()
    except IntegrityError:
        # Same email inserted concurrently; answer with the stored record
        db.rollback()
        existing = db.query(User).filter(User.email == payload.email).first()
        if not existing:
            raise
        return existing

    db.refresh(u)
    logger.info("user created id=%s role=%s", u.id, u.role)
    response.status_code = 201
    return u


@router.get("/users", response_model=List[UserOut])
def list_users(
    role: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    q = db.query(User)
    if role:
        q = q.filter(User.role == role)
    if status:
        q = q.filter(User.status == status)
    return q.order_by(User.id.desc()).all()


@router.get("/users/{email}/role", response_model=RoleOut)
def get_role(email: str, db: Session = Depends(get_db)):
    u = db.query(User).filter(User.email == email).first()
    return RoleOut(role=u.role if u else "user")


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailure("No fields to update")

    u = _get_user(db, user_id)
    for field, value in changes.items():
        setattr(u, field, value)
    _sync_status(u)
    return _save(db, u)


@router.patch("/users/{user_id}/role", response_model=UserOut)
def update_role(user_id: int, payload: RoleUpdate, db: Session = Depends(get_db)):
    if not payload.role:
        raise ValidationFailure("Role is required")

    u = _get_user(db, user_id)
    u.role = payload.role
    _sync_status(u)
    return _save(db, u)


@router.patch("/users/{user_id}/status", response_model=UserOut)
def update_status(user_id: int, payload: StatusUpdate, db: Session = Depends(get_db)):
    if not payload.status:
        raise ValidationFailure("Status is required")

    u = _get_user(db, user_id)
    if u.role != DECORATOR:
        raise ValidationFailure("Only decorators carry a status")
    u.status = payload.status
    return _save(db, u)


@router.delete("/users/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db)):
    u = _get_user(db, user_id)
    db.delete(u)
    db.commit()
    return {"ok": True}


@router.get("/decorators", response_model=List[UserOut])
def list_decorators(
    decorator_email: Optional[str] = Query(default=None, alias="decoratorEmail"),
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    q = db.query(User).filter(User.role == DECORATOR)
    if decorator_email:
        q = q.filter(User.email == decorator_email)
    if status:
        q = q.filter(User.status == status)
    return q.order_by(User.id.desc()).all()
