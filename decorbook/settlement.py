"""
Payment settlement.

Bridges a finished hosted-checkout session back into local state exactly once
per external transaction. The booking update and the ledger insert are
committed together; the unique index on payments.transaction_id is the
guard against two settlements racing past the idempotency lookup.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import Conflict, NotFound, ValidationFailure
from .events import publish
from .lifecycle import PAID, get_booking, is_terminal, mark_paid
from .models import Booking, Payment

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    success: bool
    message: str
    duplicate: bool = False
    # Paid, but the booking can no longer go forward (refund needed)
    needs_review: bool = False
    booking: Optional[Booking] = None
    payment: Optional[Payment] = None
    tracking_id: Optional[str] = None
    transaction_id: Optional[str] = None


def amount_in_minor_units(cost: Any) -> int:
    # Decimal avoids 19.99 * 100 == 1998.9999...
    return int(Decimal(str(cost)) * 100)


def _parse_booking_id(raw: Optional[str]) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise NotFound("Booking not found")


class PaymentSettlement:
    def __init__(self, checkout):
        self.checkout = checkout

    def create_checkout_session(
        self,
        db: Session,
        booking_id: int,
        cost: Any,
        payer_email: str,
        item_name: str,
        tracking_id: Optional[str] = None,
    ) -> str:
        """
        Start a hosted checkout for one booking and return the redirect URL.

        The booking's own cost and tracking id are authoritative: a cost or
        tracking id from the caller must match them, and cost may be omitted.
        """
        booking = get_booking(db, booking_id)
        if booking.payment_status == PAID:
            raise Conflict("Booking is already paid")
        if is_terminal(booking.delivery_status):
            raise Conflict(f"Booking is {booking.delivery_status} and cannot be paid")

        amount_cents = amount_in_minor_units(booking.cost)
        if cost is not None and amount_in_minor_units(cost) != amount_cents:
            raise ValidationFailure("Amount does not match the booking cost")
        if amount_cents <= 0:
            raise ValidationFailure("Amount must be positive")

        if tracking_id and tracking_id != booking.tracking_id:
            raise ValidationFailure("trackingId does not match the booking")

        metadata = {
            "bookingId": str(booking.id),
            "trackingId": booking.tracking_id,
            "itemName": item_name,
        }
        return self.checkout.create_session(
            amount_cents=amount_cents,
            item_name=item_name,
            customer_email=payer_email,
            metadata=metadata,
        )

    def _find_payment(self, db: Session, transaction_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.transaction_id == transaction_id).first()

    def _duplicate(self, payment: Payment) -> SettlementResult:
        return SettlementResult(
            success=True,
            duplicate=True,
            message="Payment already recorded",
            payment=payment,
            tracking_id=payment.tracking_id,
            transaction_id=payment.transaction_id,
        )

    def settle(self, db: Session, session_id: Optional[str]) -> SettlementResult:
        """
        Record the outcome of a checkout session.

        Settling the same session again returns the stored payment and its
        tracking id without touching the booking. A session that is not paid
        changes nothing. A booking id in the session metadata that does not
        resolve raises NotFound and nothing is written.
        """
        if not session_id:
            raise ValidationFailure("session_id is required")

        result = self.checkout.retrieve_session(session_id)
        transaction_id = result.transaction_id or result.session_id

        existing = self._find_payment(db, transaction_id)
        if existing:
            logger.info("payment already settled transaction=%s", transaction_id)
            return self._duplicate(existing)

        if not result.is_paid:
            logger.info(
                "checkout session %s not paid (status=%s)", session_id, result.payment_status
            )
            return SettlementResult(
                success=False,
                message="Payment not completed",
                tracking_id=result.metadata.get("trackingId"),
                transaction_id=transaction_id,
            )

        booking = get_booking(db, _parse_booking_id(result.metadata.get("bookingId")))
        # The money has already moved, so a payment for a booking that was
        # cancelled or completed meanwhile is still recorded, but flagged.
        needs_review = is_terminal(booking.delivery_status)
        mark_paid(booking)

        if result.amount_total is not None:
            amount = Decimal(result.amount_total) / 100
            if result.amount_total != amount_in_minor_units(booking.cost):
                logger.warning(
                    "settled amount %s differs from booking cost %s booking=%s transaction=%s",
                    amount, booking.cost, booking.id, transaction_id,
                )
        else:
            amount = booking.cost

        payment = Payment(
            transaction_id=transaction_id,
            booking_id=booking.id,
            tracking_id=booking.tracking_id,
            service_name=result.metadata.get("itemName") or booking.service_name,
            amount=amount,
            currency=result.currency or "usd",
            customer_email=result.customer_email or booking.user_email,
            payment_status=result.payment_status,
            paid_at=datetime.now(timezone.utc),
        )
        db.add(payment)

        try:
            db.commit()
        except IntegrityError:
            # Lost the race to a concurrent settlement of the same transaction;
            # the rollback also discards our booking change.
            db.rollback()
            existing = self._find_payment(db, transaction_id)
            if existing is None:
                raise
            logger.info("concurrent settlement resolved as duplicate transaction=%s", transaction_id)
            return self._duplicate(existing)

        db.refresh(booking)
        db.refresh(payment)

        message = "Payment recorded"
        if needs_review:
            message = f"Payment recorded for a {booking.delivery_status} booking; refund required"
            logger.warning(
                "payment settled on %s booking=%s transaction=%s",
                booking.delivery_status, booking.id, transaction_id,
            )
        else:
            logger.info(
                "payment settled transaction=%s booking=%s tracking=%s",
                transaction_id, booking.id, payment.tracking_id,
            )
        publish(
            "payment.settled",
            {
                "transaction_id": transaction_id,
                "booking_id": booking.id,
                "tracking_id": payment.tracking_id,
                "email": payment.customer_email,
                "amount": float(payment.amount),
                "currency": payment.currency,
                "needs_review": needs_review,
            },
        )

        return SettlementResult(
            success=True,
            message=message,
            needs_review=needs_review,
            booking=booking,
            payment=payment,
            tracking_id=payment.tracking_id,
            transaction_id=transaction_id,
        )
