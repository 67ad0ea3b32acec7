"""
Booking lifecycle.

A booking starts as ``assigned``, moves to ``materials-prepared`` once a
decorator is attached, to ``planning-phase`` once payment is confirmed, and
from there through the on-site statuses to ``completed``. Only the moves in
TRANSITIONS are accepted.
"""
import logging
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .errors import InternalFailure, NotFound, ValidationFailure
from .events import publish
from .models import Booking
from .schemas import BookingIn

logger = logging.getLogger(__name__)

ASSIGNED = "assigned"
MATERIALS_PREPARED = "materials-prepared"
PLANNING_PHASE = "planning-phase"
ON_THE_WAY = "on-the-way"
SETUP_IN_PROGRESS = "setup-in-progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

TRANSITIONS: Dict[str, frozenset] = {
    ASSIGNED: frozenset({MATERIALS_PREPARED, PLANNING_PHASE, CANCELLED}),
    # self-loop: a decorator may be re-assigned
    MATERIALS_PREPARED: frozenset({MATERIALS_PREPARED, PLANNING_PHASE, CANCELLED}),
    PLANNING_PHASE: frozenset({ON_THE_WAY, CANCELLED}),
    ON_THE_WAY: frozenset({SETUP_IN_PROGRESS, CANCELLED}),
    SETUP_IN_PROGRESS: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

STATUSES = frozenset(TRANSITIONS)

PAID = "paid"
UNPAID = "unpaid"

# Rating slot filled in when a decorator is assigned; real ratings come later
RATING_PLACEHOLDER = 0

TRACKING_ID_ATTEMPTS = 5


def generate_tracking_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"PS-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    return status in STATUSES and not TRANSITIONS[status]


def check_transition(current: str, new: str) -> None:
    if new not in STATUSES:
        raise ValidationFailure(f"Unknown delivery status: {new}")
    if not can_transition(current, new):
        raise ValidationFailure(f"Cannot move booking from {current} to {new}")


def _new_tracking_id(db: Session) -> str:
    for _ in range(TRACKING_ID_ATTEMPTS):
        candidate = generate_tracking_id()
        if db.query(Booking.id).filter(Booking.tracking_id == candidate).first() is None:
            return candidate
        logger.warning("tracking id collision on %s, regenerating", candidate)
    raise InternalFailure("Could not allocate a unique tracking id")


def _event_payload(booking: Booking) -> Dict[str, Any]:
    return {
        "booking_id": booking.id,
        "tracking_id": booking.tracking_id,
        "user_email": booking.user_email,
        "decorator_email": booking.decorator_email,
        "delivery_status": booking.delivery_status,
    }


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def create_booking(db: Session, data: BookingIn) -> Booking:
    booking = Booking(
        service_id=data.service_id,
        service_name=data.service_name,
        category=data.category,
        cost=Decimal(str(data.cost)),
        user_email=data.user_email,
        user_name=data.user_name,
        location=data.location,
        date=data.date or datetime.now(timezone.utc),
        tracking_id=_new_tracking_id(db),
        delivery_status=ASSIGNED,
        payment_status=UNPAID,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)

    logger.info("booking created id=%s tracking=%s", booking.id, booking.tracking_id)
    publish("booking.created", _event_payload(booking))
    return booking


def assign_decorator(
    db: Session,
    booking_id: int,
    decorator_name: str,
    decorator_email: str,
    decorator_status: Optional[str] = None,
) -> Booking:
    booking = get_booking(db, booking_id)
    if not can_transition(booking.delivery_status, MATERIALS_PREPARED):
        raise ValidationFailure(
            f"Cannot assign a decorator to a booking in status {booking.delivery_status}"
        )

    booking.decorator_name = decorator_name
    booking.decorator_email = decorator_email
    booking.decorator_status = decorator_status
    booking.delivery_status = MATERIALS_PREPARED
    booking.assigned_at = datetime.now(timezone.utc)
    booking.ratings = RATING_PLACEHOLDER

    db.commit()
    db.refresh(booking)

    logger.info("decorator %s assigned to booking id=%s", decorator_email, booking.id)
    publish("booking.decorator_assigned", _event_payload(booking))
    return booking


def update_delivery_status(db: Session, booking_id: int, status: Optional[str]) -> Booking:
    if not status:
        raise ValidationFailure("deliveryStatus is required")

    booking = get_booking(db, booking_id)
    previous = booking.delivery_status
    check_transition(previous, status)

    booking.delivery_status = status
    db.commit()
    db.refresh(booking)

    logger.info("booking id=%s status %s -> %s", booking.id, previous, status)
    publish("booking.status_changed", {**_event_payload(booking), "previous_status": previous})
    return booking


def update_booking(db: Session, booking_id: int, changes: Dict[str, Any]) -> Booking:
    if not changes:
        raise ValidationFailure("No fields to update")

    changes = dict(changes)
    status = changes.pop("delivery_status", None)
    if "cost" in changes:
        changes["cost"] = Decimal(str(changes["cost"]))

    booking = get_booking(db, booking_id)
    if status is not None and status != booking.delivery_status:
        check_transition(booking.delivery_status, status)
        booking.delivery_status = status

    for field, value in changes.items():
        setattr(booking, field, value)

    db.commit()
    db.refresh(booking)
    return booking


def mark_paid(booking: Booking) -> None:
    """Record payment on a booking and advance it to planning when allowed (no commit)."""
    booking.payment_status = PAID
    if can_transition(booking.delivery_status, PLANNING_PHASE):
        booking.delivery_status = PLANNING_PHASE


def list_bookings(
    db: Session,
    user_email: Optional[str] = None,
    decorator_email: Optional[str] = None,
    delivery_status: Optional[str] = None,
) -> List[Booking]:
    q = db.query(Booking)
    if user_email:
        q = q.filter(Booking.user_email == user_email)
    if decorator_email:
        q = q.filter(Booking.decorator_email == decorator_email)
    if delivery_status:
        q = q.filter(Booking.delivery_status == delivery_status)
    return q.order_by(Booking.date.desc(), Booking.id.desc()).all()


def delete_booking(db: Session, booking_id: int) -> None:
    booking = get_booking(db, booking_id)
    db.delete(booking)
    db.commit()
    logger.info("booking deleted id=%s", booking_id)
