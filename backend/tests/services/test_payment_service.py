"""
支付服务测试
"""
import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from concierge_core.engine import event_bus
from concierge_core.payments import PaymentGatewayRegistry
from concierge.database import utcnow
from concierge.errors import BadRequestError, NotFoundError, PermissionDeniedError, ServiceUnavailableError
from concierge.models.domain import (
    BookingStatus, PaymentStatus, PaymentTransaction, TransactionStatus, UserRole,
)
from concierge.services.payment_service import PaymentService
from concierge.system.payment_gateway import LocalGateway
from tests.helpers import make_user


@pytest.fixture
def gateway():
    gateway = LocalGateway("test-secret")
    PaymentGatewayRegistry().register(gateway)
    return gateway


def _webhook(service, gateway, **payload):
    body = json.dumps(payload).encode()
    return service.handle_webhook(body, gateway.sign(body))


def _pay(db_session, gateway, guest, booking):
    service = PaymentService(db_session)
    intent = service.create_intent(guest, booking.id)
    _webhook(service, gateway, intent_id=intent["intent_id"], status="SUCCESS", amount=float(booking.total_amount))
    return intent


class TestCreateIntent:

    def test_amount_in_minor_units(self, db_session, gateway, guest, sample_booking):
        result = PaymentService(db_session).create_intent(guest, sample_booking.id)

        assert result["amount"] == 23000
        assert result["booking_number"] == sample_booking.booking_number
        transaction = db_session.query(PaymentTransaction).one()
        assert transaction.intent_id == result["intent_id"]
        assert transaction.status == TransactionStatus.REQUIRES_PAYMENT
        assert transaction.amount == Decimal("230.00")

    def test_only_own_pending_booking(self, db_session, gateway, guest, sample_booking, sample_hotel):
        stranger = make_user(db_session, "s@example.com", UserRole.GUEST, selected_hotel_id=sample_hotel.id)
        with pytest.raises(NotFoundError):
            PaymentService(db_session).create_intent(stranger, sample_booking.id)

        sample_booking.status = BookingStatus.CONFIRMED
        db_session.commit()
        with pytest.raises(BadRequestError):
            PaymentService(db_session).create_intent(guest, sample_booking.id)

    def test_disabled_payments(self, db_session, gateway, guest, sample_booking):
        with patch("concierge.services.payment_service.settings.PAYMENTS_ENABLED", False):
            with pytest.raises(ServiceUnavailableError):
                PaymentService(db_session).create_intent(guest, sample_booking.id)

    def test_no_gateway(self, db_session, guest, sample_booking):
        with pytest.raises(ServiceUnavailableError):
            PaymentService(db_session).create_intent(guest, sample_booking.id)


class TestWebhook:

    def test_success_confirms_booking(self, db_session, gateway, guest, sample_booking):
        _pay(db_session, gateway, guest, sample_booking)

        db_session.refresh(sample_booking)
        assert sample_booking.status == BookingStatus.CONFIRMED
        assert sample_booking.payment_status == PaymentStatus.PAID
        assert sample_booking.paid_at is not None
        assert sample_booking.status_history[-1].automatic is True
        assert len(event_bus.get_history(event_type="payment.completed")) == 1

    def test_duplicate_success_is_idempotent(self, db_session, gateway, guest, sample_booking):
        intent = _pay(db_session, gateway, guest, sample_booking)
        result = _webhook(PaymentService(db_session), gateway, intent_id=intent["intent_id"], status="SUCCESS")

        assert result["processed"] is False
        assert len(event_bus.get_history(event_type="payment.completed")) == 1

    def test_failure_keeps_booking_pending(self, db_session, gateway, guest, sample_booking):
        service = PaymentService(db_session)
        intent = service.create_intent(guest, sample_booking.id)
        result = _webhook(service, gateway, intent_id=intent["intent_id"], status="FAILED", message="card declined")

        assert result["status"] == "failed"
        db_session.refresh(sample_booking)
        assert sample_booking.status == BookingStatus.PENDING
        assert sample_booking.payment_status == PaymentStatus.FAILED
        transaction = db_session.query(PaymentTransaction).one()
        assert transaction.failure_reason == "card declined"
        assert event_bus.get_history(event_type="payment.failed")[0].data["reason"] == "card declined"

    def test_other_status_is_processing(self, db_session, gateway, guest, sample_booking):
        service = PaymentService(db_session)
        intent = service.create_intent(guest, sample_booking.id)
        result = _webhook(service, gateway, intent_id=intent["intent_id"], status="PENDING_3DS")

        assert result["status"] == "processing"
        db_session.refresh(sample_booking)
        assert sample_booking.payment_status == PaymentStatus.PROCESSING

    def test_bad_signature(self, db_session, gateway):
        with pytest.raises(BadRequestError):
            PaymentService(db_session).handle_webhook(b'{"intent_id": "x", "status": "SUCCESS"}', "bad")

    def test_missing_fields(self, db_session, gateway):
        body = b'{"status": "SUCCESS"}'
        with pytest.raises(BadRequestError):
            PaymentService(db_session).handle_webhook(body, gateway.sign(body))

    def test_unknown_intent(self, db_session, gateway):
        result = _webhook(PaymentService(db_session), gateway, intent_id="pi_nope", status="SUCCESS")
        assert result == {"received": True, "processed": False}


class TestConfirm:

    def test_requires_succeeded_intent(self, db_session, gateway, guest, sample_booking):
        service = PaymentService(db_session)
        intent = service.create_intent(guest, sample_booking.id)
        with pytest.raises(BadRequestError):
            service.confirm(guest, intent["intent_id"], sample_booking.id)

    def test_confirm_after_webhook(self, db_session, gateway, guest, sample_booking):
        intent = _pay(db_session, gateway, guest, sample_booking)
        booking = PaymentService(db_session).confirm(guest, intent["intent_id"], sample_booking.id)
        assert booking.payment_status == PaymentStatus.PAID
        assert booking.status == BookingStatus.CONFIRMED

    def test_confirm_other_guest_forbidden(self, db_session, gateway, guest, sample_booking, sample_hotel):
        intent = _pay(db_session, gateway, guest, sample_booking)
        stranger = make_user(db_session, "s@example.com", UserRole.GUEST, selected_hotel_id=sample_hotel.id)
        with pytest.raises(PermissionDeniedError):
            PaymentService(db_session).confirm(stranger, intent["intent_id"], sample_booking.id)

    def test_confirm_mismatched_booking(self, db_session, gateway, guest, sample_booking):
        intent = _pay(db_session, gateway, guest, sample_booking)
        with pytest.raises(BadRequestError):
            PaymentService(db_session).confirm(guest, intent["intent_id"], sample_booking.id + 1)


class TestRefund:

    def test_full_refund(self, db_session, gateway, guest, sample_booking, hotel_admin):
        _pay(db_session, gateway, guest, sample_booking)
        booking = PaymentService(db_session).refund(hotel_admin, sample_booking.id, reason="service missed")

        assert booking.status == BookingStatus.REFUNDED
        assert booking.payment_status == PaymentStatus.REFUNDED
        assert booking.refund_amount == Decimal("230.00")
        assert event_bus.get_history(event_type="payment.refunded")[0].data["amount"] == 230.0

        with pytest.raises(BadRequestError):
            PaymentService(db_session).refund(hotel_admin, sample_booking.id)

    def test_partial_refund_limit(self, db_session, gateway, guest, sample_booking, hotel_admin):
        _pay(db_session, gateway, guest, sample_booking)
        with pytest.raises(BadRequestError):
            PaymentService(db_session).refund(hotel_admin, sample_booking.id, amount=500)
        booking = PaymentService(db_session).refund(hotel_admin, sample_booking.id, amount=50)
        assert booking.refund_amount == Decimal("50.00")

    def test_unpaid_booking(self, db_session, gateway, sample_booking, hotel_admin):
        with pytest.raises(BadRequestError):
            PaymentService(db_session).refund(hotel_admin, sample_booking.id)

    def test_other_hotel_admin(self, db_session, gateway, guest, sample_booking, other_hotel):
        _pay(db_session, gateway, guest, sample_booking)
        outsider = make_user(db_session, "x@x.test", UserRole.HOTEL, hotel_id=other_hotel.id)
        with pytest.raises(NotFoundError):
            PaymentService(db_session).refund(outsider, sample_booking.id)


class TestPayoutSummary:

    def _complete_paid(self, db_session, booking, days_ago=0):
        booking.status = BookingStatus.COMPLETED
        booking.payment_status = PaymentStatus.PAID
        booking.completed_at = utcnow() - timedelta(days=days_ago)
        db_session.commit()

    def test_groups_by_day_and_service(self, db_session, sample_booking, sample_provider):
        self._complete_paid(db_session, sample_booking)
        summary = PaymentService(db_session).payout_summary(sample_provider.id, "7days")

        assert summary["total_earnings"] == 200.0
        assert summary["total_bookings"] == 1
        assert summary["by_day"][0]["earnings"] == 200.0
        assert summary["by_service"][0]["service_name"] == "Express Wash"

    def test_time_range_filter(self, db_session, sample_booking, sample_provider):
        self._complete_paid(db_session, sample_booking, days_ago=40)
        service = PaymentService(db_session)
        assert service.payout_summary(sample_provider.id, "30days")["total_bookings"] == 0
        assert service.payout_summary(sample_provider.id, "all")["total_bookings"] == 1

    def test_invalid_range(self, db_session, sample_provider):
        with pytest.raises(BadRequestError):
            PaymentService(db_session).payout_summary(sample_provider.id, "weekly")
