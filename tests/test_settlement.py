"""
Unit tests for checkout creation and payment settlement.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from decorbook import lifecycle
from decorbook.errors import Conflict, ExternalProviderFailure, NotFound, ValidationFailure
from decorbook.models import Payment
from decorbook.settlement import amount_in_minor_units


def _start_paid_session(db: Any, settlement: Any, checkout: Any, booking: Any, transaction_id: str = "pi_test_1") -> str:
    settlement.create_checkout_session(
        db,
        booking_id=booking.id,
        cost=booking.cost,
        payer_email=booking.user_email,
        item_name=booking.service_name,
    )
    session_id = checkout.created[-1]["session_id"]
    checkout.pay(session_id, transaction_id)
    return session_id


class TestAmount:
    def test_minor_units(self) -> None:
        assert amount_in_minor_units(100) == 10000
        assert amount_in_minor_units(19.99) == 1999
        assert amount_in_minor_units(Decimal("250.00")) == 25000

    def test_truncates(self) -> None:
        assert amount_in_minor_units(10.555) == 1055


class TestCheckoutSession:
    def test_metadata_links_booking(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking(cost=149.5)

        url = settlement.create_checkout_session(
            db, booking.id, 149.5, "client@example.com", "Birthday Setup"
        )

        assert url.startswith("https://checkout.stripe.test/")
        created = checkout.created[0]
        assert created["amount_cents"] == 14950
        assert created["metadata"] == {
            "bookingId": str(booking.id),
            "trackingId": booking.tracking_id,
            "itemName": "Birthday Setup",
        }

    def test_does_not_touch_booking(self, db: Any, settlement: Any, make_booking: Any) -> None:
        booking = make_booking()
        settlement.create_checkout_session(db, booking.id, 250, "client@example.com", "Stage")

        db.refresh(booking)
        assert booking.delivery_status == "assigned"
        assert booking.payment_status == "unpaid"
        assert db.query(Payment).count() == 0

    def test_unknown_booking(self, db: Any, settlement: Any) -> None:
        with pytest.raises(NotFound):
            settlement.create_checkout_session(db, 4242, 100, "client@example.com", "Stage")

    def test_already_paid(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        settlement.settle(db, _start_paid_session(db, settlement, checkout, booking))

        with pytest.raises(Conflict):
            settlement.create_checkout_session(db, booking.id, 250, "client@example.com", "Stage")

    def test_provider_failure_propagates(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        checkout.fail_with = ExternalProviderFailure("Stripe unreachable", retryable=True)

        with pytest.raises(ExternalProviderFailure) as exc:
            settlement.create_checkout_session(db, booking.id, 250, "client@example.com", "Stage")
        assert exc.value.retryable
        assert exc.value.status_code == 503

    @pytest.mark.parametrize("final_status", ["cancelled", "completed"])
    def test_terminal_booking_cannot_be_paid(
        self, db: Any, settlement: Any, checkout: Any, make_booking: Any, final_status: str
    ) -> None:
        booking = make_booking(cost=1200)
        path = {
            "cancelled": ["cancelled"],
            "completed": ["planning-phase", "on-the-way", "setup-in-progress", "completed"],
        }[final_status]
        for status in path:
            lifecycle.update_delivery_status(db, booking.id, status)

        with pytest.raises(Conflict, match="cannot be paid"):
            settlement.create_checkout_session(db, booking.id, 1200, "client@example.com", "Stage")
        assert checkout.created == []

    def test_cost_defaults_to_booking(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking(cost=1200)

        settlement.create_checkout_session(db, booking.id, None, "client@example.com", "Stage")

        assert checkout.created[0]["amount_cents"] == 120000

    def test_cost_must_match_booking(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking(cost=1200)

        with pytest.raises(ValidationFailure, match="does not match the booking cost"):
            settlement.create_checkout_session(db, booking.id, 0.01, "client@example.com", "Stage")
        assert checkout.created == []

    def test_tracking_id_must_match_booking(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()

        with pytest.raises(ValidationFailure, match="trackingId"):
            settlement.create_checkout_session(
                db, booking.id, 250, "client@example.com", "Stage", tracking_id="PS-19990101-000000"
            )

        settlement.create_checkout_session(
            db, booking.id, 250, "client@example.com", "Stage", tracking_id=booking.tracking_id
        )
        assert checkout.created[0]["metadata"]["trackingId"] == booking.tracking_id


class TestSettle:
    def test_paid_session_settles_booking(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        session_id = _start_paid_session(db, settlement, checkout, booking)

        result = settlement.settle(db, session_id)

        assert result.success
        assert not result.duplicate
        assert result.transaction_id == "pi_test_1"
        assert result.tracking_id == booking.tracking_id
        assert result.booking.payment_status == "paid"
        assert result.booking.delivery_status == "planning-phase"
        assert result.payment.booking_id == booking.id
        assert float(result.payment.amount) == 250.0
        assert result.payment.customer_email == "client@example.com"
        assert db.query(Payment).count() == 1

    def test_settle_twice_is_idempotent(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        session_id = _start_paid_session(db, settlement, checkout, booking)

        first = settlement.settle(db, session_id)
        lifecycle.update_delivery_status(db, booking.id, "on-the-way")

        second = settlement.settle(db, session_id)

        assert second.success
        assert second.duplicate
        assert second.tracking_id == first.tracking_id
        assert second.booking is None
        assert db.query(Payment).count() == 1
        db.refresh(booking)
        assert booking.delivery_status == "on-the-way"

    def test_unpaid_session_changes_nothing(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        settlement.create_checkout_session(db, booking.id, 250, "client@example.com", "Stage")
        session_id = checkout.created[0]["session_id"]

        result = settlement.settle(db, session_id)

        assert not result.success
        assert result.payment is None
        assert db.query(Payment).count() == 0
        db.refresh(booking)
        assert booking.payment_status == "unpaid"
        assert booking.delivery_status == "assigned"

    @pytest.mark.parametrize("booking_ref", ["9999", "not-an-id", None])
    def test_unresolvable_booking_writes_nothing(self, db: Any, settlement: Any, checkout: Any, booking_ref: Any) -> None:
        metadata = {"trackingId": "PS-20250501-000000", "itemName": "Stage"}
        if booking_ref is not None:
            metadata["bookingId"] = booking_ref
        checkout.add_session(
            "cs_orphan",
            transaction_id="pi_orphan",
            payment_status="paid",
            amount_total=1000,
            currency="usd",
            metadata=metadata,
        )

        with pytest.raises(NotFound):
            settlement.settle(db, "cs_orphan")
        assert db.query(Payment).count() == 0

    def test_missing_session_id(self, db: Any, settlement: Any) -> None:
        with pytest.raises(ValidationFailure):
            settlement.settle(db, "")

    def test_unknown_session(self, db: Any, settlement: Any) -> None:
        with pytest.raises(ExternalProviderFailure) as exc:
            settlement.settle(db, "cs_missing")
        assert not exc.value.retryable

    def test_concurrent_insert_is_a_duplicate(
        self, db: Any, settlement: Any, checkout: Any, make_booking: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        booking = make_booking()
        session_id = _start_paid_session(db, settlement, checkout, booking, transaction_id="pi_race")

        # Another request recorded the payment between our lookup and our insert
        db.add(
            Payment(
                transaction_id="pi_race",
                booking_id=booking.id,
                tracking_id=booking.tracking_id,
                amount=Decimal("250.00"),
                currency="usd",
                customer_email="client@example.com",
                payment_status="paid",
                paid_at=datetime.now(timezone.utc),
            )
        )
        db.commit()

        real_lookup = settlement._find_payment
        calls = []

        def stale_lookup(session: Any, transaction_id: str) -> Any:
            calls.append(transaction_id)
            if len(calls) == 1:
                return None
            return real_lookup(session, transaction_id)

        monkeypatch.setattr(settlement, "_find_payment", stale_lookup)

        result = settlement.settle(db, session_id)

        assert result.success
        assert result.duplicate
        assert result.tracking_id == booking.tracking_id
        assert db.query(Payment).count() == 1
        # the losing attempt's booking change was rolled back with its insert
        db.refresh(booking)
        assert booking.payment_status == "unpaid"
        assert booking.delivery_status == "assigned"

    def test_booking_cancelled_after_checkout_is_recorded_and_flagged(
        self, db: Any, settlement: Any, checkout: Any, make_booking: Any
    ) -> None:
        booking = make_booking(cost=1200)
        session_id = _start_paid_session(db, settlement, checkout, booking)
        lifecycle.update_delivery_status(db, booking.id, "cancelled")

        result = settlement.settle(db, session_id)

        assert result.success
        assert result.needs_review
        assert "refund required" in result.message
        assert result.booking.delivery_status == "cancelled"
        assert result.booking.payment_status == "paid"
        assert db.query(Payment).count() == 1

    def test_normal_settlement_is_not_flagged(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        result = settlement.settle(db, _start_paid_session(db, settlement, checkout, booking))
        assert not result.needs_review

    def test_payment_tracking_id_comes_from_booking(self, db: Any, settlement: Any, checkout: Any, make_booking: Any) -> None:
        booking = make_booking()
        checkout.add_session(
            "cs_foreign_tracking",
            transaction_id="pi_foreign",
            payment_status="paid",
            amount_total=25000,
            currency="usd",
            metadata={"bookingId": str(booking.id), "trackingId": "PS-19990101-000000", "itemName": "Stage"},
        )

        result = settlement.settle(db, "cs_foreign_tracking")

        assert result.tracking_id == booking.tracking_id
        assert result.payment.tracking_id == booking.tracking_id

    def test_amount_mismatch_is_logged(
        self, db: Any, settlement: Any, checkout: Any, make_booking: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        booking = make_booking(cost=1200)
        checkout.add_session(
            "cs_underpaid",
            transaction_id="pi_underpaid",
            payment_status="paid",
            amount_total=1,
            currency="usd",
            metadata={"bookingId": str(booking.id), "itemName": "Stage"},
        )

        with caplog.at_level("WARNING", logger="decorbook.settlement"):
            result = settlement.settle(db, "cs_underpaid")

        assert result.success
        assert float(result.payment.amount) == 0.01
        assert "differs from booking cost" in caplog.text
