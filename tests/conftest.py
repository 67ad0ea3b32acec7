"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from decorbook import lifecycle
from decorbook.checkout import CheckoutResult
from decorbook.db import Store
from decorbook.errors import ExternalProviderFailure
from decorbook.main import create_app
from decorbook.schemas import BookingIn
from decorbook.settlement import PaymentSettlement


class FakeCheckout:
    """In-memory stand-in for the hosted checkout provider."""

    def __init__(self) -> None:
        self.sessions: Dict[str, CheckoutResult] = {}
        self.created: list = []
        self.fail_with: Optional[Exception] = None

    def create_session(
        self,
        amount_cents: int,
        item_name: str,
        customer_email: str,
        metadata: Dict[str, str],
    ) -> str:
        if self.fail_with:
            raise self.fail_with
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append(
            {
                "session_id": session_id,
                "amount_cents": amount_cents,
                "item_name": item_name,
                "customer_email": customer_email,
                "metadata": dict(metadata),
            }
        )
        self.sessions[session_id] = CheckoutResult(
            session_id=session_id,
            transaction_id=None,
            payment_status="unpaid",
            amount_total=amount_cents,
            currency="usd",
            customer_email=customer_email,
            metadata=dict(metadata),
        )
        return f"https://checkout.stripe.test/c/pay/{session_id}"

    def add_session(self, session_id: str, **fields: Any) -> CheckoutResult:
        fields.setdefault("transaction_id", None)
        fields.setdefault("payment_status", "unpaid")
        result = CheckoutResult(session_id=session_id, **fields)
        self.sessions[session_id] = result
        return result

    def pay(self, session_id: str, transaction_id: str = "pi_test_1") -> None:
        result = self.sessions[session_id]
        result.payment_status = "paid"
        result.transaction_id = transaction_id

    def retrieve_session(self, session_id: str) -> CheckoutResult:
        if self.fail_with:
            raise self.fail_with
        if session_id not in self.sessions:
            raise ExternalProviderFailure("No such checkout session", retryable=False)
        return self.sessions[session_id]


@pytest.fixture(autouse=True)
def no_event_broker(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EVENT_BACKEND", "none")


@pytest.fixture
def store() -> Iterator[Store]:
    """In-memory SQLite store shared across threads."""
    s = Store(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def db(store: Store) -> Iterator[Session]:
    session = store.session()
    yield session
    session.close()


@pytest.fixture
def checkout() -> FakeCheckout:
    return FakeCheckout()


@pytest.fixture
def settlement(checkout: FakeCheckout) -> PaymentSettlement:
    return PaymentSettlement(checkout)


@pytest.fixture
def client(store: Store, checkout: FakeCheckout) -> Iterator[TestClient]:
    with TestClient(create_app(store=store, checkout=checkout)) as c:
        yield c


@pytest.fixture
def make_booking(db: Session):
    """Create a booking through the lifecycle with sensible defaults."""

    def _make(**overrides: Any):
        data = {
            "service_name": "Wedding Stage Decoration",
            "category": "wedding",
            "cost": 250.0,
            "user_email": "client@example.com",
            "user_name": "Client",
            "location": "Dhaka",
            "date": datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc),
        }
        data.update(overrides)
        return lifecycle.create_booking(db, BookingIn(**data))

    return _make
