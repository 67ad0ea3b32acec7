from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound, ValidationFailure
from ..lifecycle import generate_tracking_id
from ..models import Service
from ..schemas import ServiceIn, ServiceOut, ServiceUpdate

router = APIRouter(tags=["services"])


def _get_service(db: Session, service_id: int) -> Service:
    s = db.query(Service).filter(Service.id == service_id).first()
    if not s:
        raise NotFound("Service not found")
    return s


@router.post("/services", response_model=ServiceOut, status_code=201)
def create_service(payload: ServiceIn, db: Session = Depends(get_db)):
    s = Service(
        service_name=payload.service_name,
        category=payload.category,
        cost=Decimal(str(payload.cost)),
        unit=payload.unit,
        description=payload.description,
        image=payload.image,
        created_by_email=payload.created_by_email,
        tracking_id=generate_tracking_id(),
    )
    db.add(s); db.commit(); db.refresh(s)
    return s


@router.get("/services", response_model=List[ServiceOut])
def list_services(
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_budget: Optional[float] = Query(default=None, alias="minBudget", ge=0),
    max_budget: Optional[float] = Query(default=None, alias="maxBudget", ge=0),
    db: Session = Depends(get_db),
):
    q = db.query(Service)
    if search:
        q = q.filter(Service.service_name.ilike(f"%{search}%"))
    if category:
        q = q.filter(Service.category == category)
    if min_budget is not None:
        q = q.filter(Service.cost >= Decimal(str(min_budget)))
    if max_budget is not None:
        q = q.filter(Service.cost <= Decimal(str(max_budget)))
    return q.order_by(Service.id.desc()).all()


@router.get("/services/{service_id}", response_model=ServiceOut)
def get_service(service_id: int, db: Session = Depends(get_db)):
    return _get_service(db, service_id)


@router.patch("/services/{service_id}", response_model=ServiceOut)
def update_service(service_id: int, payload: ServiceUpdate, db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailure("No fields to update")

    s = _get_service(db, service_id)
    if "cost" in changes:
        changes["cost"] = Decimal(str(changes["cost"]))
    for field, value in changes.items():
        setattr(s, field, value)

    db.commit(); db.refresh(s)
    return s


@router.delete("/services/{service_id}")
def delete_service(service_id: int, db: Session = Depends(get_db)):
    s = _get_service(db, service_id)
    db.delete(s); db.commit()
    return {"ok": True}
