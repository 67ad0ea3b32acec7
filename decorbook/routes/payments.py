from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Payment
from ..schemas import CheckoutSessionIn, CheckoutSessionOut, PaymentOut, SettlementOut
from ..settlement import PaymentSettlement

router = APIRouter(tags=["payments"])


def get_settlement(request: Request) -> PaymentSettlement:
    return request.app.state.settlement


@router.post("/payment-checkout-session", response_model=CheckoutSessionOut)
def create_checkout_session(
    payload: CheckoutSessionIn,
    db: Session = Depends(get_db),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    url = settlement.create_checkout_session(
        db,
        booking_id=payload.booking_id,
        cost=payload.cost,
        payer_email=payload.customer_email,
        item_name=payload.service_name,
        tracking_id=payload.tracking_id,
    )
    return CheckoutSessionOut(url=url)


@router.patch("/payment-success", response_model=SettlementOut)
def payment_success(
    session_id: Optional[str] = None,
    db: Session = Depends(get_db),
    settlement: PaymentSettlement = Depends(get_settlement),
):
    result = settlement.settle(db, session_id)
    return SettlementOut.model_validate(result)


@router.get("/payments", response_model=List[PaymentOut])
def list_payments(email: Optional[str] = None, db: Session = Depends(get_db)):
    q = db.query(Payment)
    if email:
        q = q.filter(Payment.customer_email == email)
    return q.order_by(Payment.paid_at.desc(), Payment.id.desc()).all()
