"""
Hosted checkout integration (Stripe Checkout).

Only two calls are made: create a session for one booking, and resolve a
finished session back into a CheckoutResult. Everything else about the
payment state machine stays on Stripe's side.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from .errors import ExternalProviderFailure

logger = logging.getLogger(__name__)

METADATA_KEYS = ("bookingId", "trackingId", "itemName")


@dataclass
class CheckoutResult:
    session_id: str
    transaction_id: Optional[str]
    payment_status: str
    amount_total: Optional[int] = None  # minor units
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @classmethod
    def from_session(cls, session: Any) -> "CheckoutResult":
        metadata = getattr(session, "metadata", None)
        meta = {}
        for key in METADATA_KEYS:
            value = getattr(metadata, key, None) if metadata is not None else None
            if value is not None:
                meta[key] = value

        email = getattr(session, "customer_email", None)
        if not email:
            details = getattr(session, "customer_details", None)
            email = getattr(details, "email", None) if details is not None else None

        intent = getattr(session, "payment_intent", None)
        if intent is not None and not isinstance(intent, str):
            # expanded PaymentIntent object
            intent = getattr(intent, "id", None)

        return cls(
            session_id=session.id,
            transaction_id=intent,
            payment_status=getattr(session, "payment_status", None) or "unpaid",
            amount_total=getattr(session, "amount_total", None),
            currency=getattr(session, "currency", None),
            customer_email=email,
            metadata=meta,
        )


def _provider_failure(error: stripe.StripeError) -> ExternalProviderFailure:
    retryable = isinstance(
        error,
        (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError),
    )
    message = getattr(error, "user_message", None) or str(error) or error.__class__.__name__
    logger.warning("stripe call failed retryable=%s error=%r", retryable, error)
    return ExternalProviderFailure(f"Checkout provider error: {message}", retryable=retryable)


class StripeCheckout:
    def __init__(self, secret_key: str, site_domain: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.site_domain = site_domain.rstrip("/")
        self.currency = currency.lower()

    @classmethod
    def from_env(cls) -> "StripeCheckout":
        secret_key = os.getenv("STRIPE_SECRET_KEY")
        if not secret_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not set")
        return cls(
            secret_key,
            site_domain=os.getenv("SITE_DOMAIN", "http://localhost:5173"),
            currency=os.getenv("CHECKOUT_CURRENCY", "usd"),
        )

    @property
    def success_url(self) -> str:
        return f"{self.site_domain}/dashboard/payment-success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def cancel_url(self) -> str:
        return f"{self.site_domain}/dashboard/payment-cancelled"

    def create_session(
        self,
        amount_cents: int,
        item_name: str,
        customer_email: str,
        metadata: Dict[str, str],
    ) -> str:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": amount_cents,
                            "product_data": {"name": item_name},
                        },
                        "quantity": 1,
                    }
                ],
                customer_email=customer_email,
                metadata=metadata,
                success_url=self.success_url,
                cancel_url=self.cancel_url,
            )
        except stripe.StripeError as e:
            raise _provider_failure(e) from e

        logger.info("checkout session created id=%s amount=%s", session.id, amount_cents)
        return session.url

    def retrieve_session(self, session_id: str) -> CheckoutResult:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise _provider_failure(e) from e
        return CheckoutResult.from_session(session)
