from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import lifecycle
from ..db import get_db
from ..schemas import BookingIn, BookingOut, BookingUpdate, DecoratorAssign, DeliveryStatusUpdate

router = APIRouter(tags=["bookings"])


@router.post("/bookings", response_model=BookingOut, status_code=201)
def create_booking(payload: BookingIn, db: Session = Depends(get_db)):
    return lifecycle.create_booking(db, payload)


@router.get("/bookings", response_model=List[BookingOut])
def list_bookings(
    email: Optional[str] = None,
    decorator_email: Optional[str] = Query(default=None, alias="decoratorEmail"),
    delivery_status: Optional[str] = Query(default=None, alias="deliveryStatus"),
    db: Session = Depends(get_db),
):
    return lifecycle.list_bookings(
        db,
        user_email=email,
        decorator_email=decorator_email,
        delivery_status=delivery_status,
    )


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: int, db: Session = Depends(get_db)):
    return lifecycle.get_booking(db, booking_id)


@router.patch("/bookings/{booking_id}", response_model=BookingOut)
def update_booking(booking_id: int, payload: BookingUpdate, db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    return lifecycle.update_booking(db, booking_id, changes)


# Decorator assignment
@router.patch("/bookings/{booking_id}/role", response_model=BookingOut)
def assign_decorator(booking_id: int, payload: DecoratorAssign, db: Session = Depends(get_db)):
    return lifecycle.assign_decorator(
        db,
        booking_id,
        decorator_name=payload.decorator_name,
        decorator_email=payload.decorator_email,
        decorator_status=payload.decorator_status,
    )


@router.patch("/bookings/{booking_id}/status", response_model=BookingOut)
def update_status(booking_id: int, payload: DeliveryStatusUpdate, db: Session = Depends(get_db)):
    return lifecycle.update_delivery_status(db, booking_id, payload.delivery_status)


@router.delete("/bookings/{booking_id}")
def delete_booking(booking_id: int, db: Session = Depends(get_db)):
    lifecycle.delete_booking(db, booking_id)
    return {"ok": True}
