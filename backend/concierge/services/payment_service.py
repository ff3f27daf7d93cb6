"""
支付服务
创建支付意图、确认支付、处理网关回调、退款、服务商结算汇总
"""
import logging
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from concierge_core.payments import IPaymentGateway, PaymentGatewayRegistry, WebhookVerificationError
from concierge.config import settings
from concierge.database import utcnow
from concierge.errors import (
    BadRequestError, NotFoundError, PermissionDeniedError, ServiceUnavailableError,
)
from concierge.models.domain import (
    Booking, BookingStatus, PaymentStatus, PaymentTransaction, TransactionStatus, User,
)
from concierge.models.events import EventType, PaymentEventData
from concierge.models.schemas import WebhookPayload
from concierge.services.booking_service import BookingService
from concierge.services.event_publisher import publish_event
from concierge.services.pricing import money, to_minor_units

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"SUCCESS", "SUCCEEDED", "PAID", "CAPTURED"}
FAILURE_STATUSES = {"FAILED", "FAILURE", "ERROR", "DECLINED"}

PAYOUT_RANGES = {"7days": 7, "30days": 30, "90days": 90, "all": None}


class PaymentService:
    """支付服务"""

    def __init__(self, db: Session, registry: Optional[PaymentGatewayRegistry] = None):
        self.db = db
        self.registry = registry or PaymentGatewayRegistry()
        self.bookings = BookingService(db)

    def _gateway(self) -> IPaymentGateway:
        if not settings.PAYMENTS_ENABLED:
            raise ServiceUnavailableError("支付服务未启用")
        gateway = self.registry.get_gateway()
        if gateway is None:
            raise ServiceUnavailableError("支付网关未配置")
        return gateway

    def _payment_event(self, booking: Booking, amount, intent_id: Optional[str] = None,
                       reason: Optional[str] = None) -> PaymentEventData:
        return PaymentEventData(
            booking_id=booking.id, booking_number=booking.booking_number,
            guest_id=booking.guest_id, provider_id=booking.provider_id,
            amount=float(amount), currency=booking.currency,
            intent_id=intent_id, reason=reason,
        )

    # ============== 支付 ==============

    def create_intent(self, guest: User, booking_id: int) -> dict:
        gateway = self._gateway()
        booking = self.bookings.get_booking(booking_id)
        if booking.guest_id != guest.id:
            raise NotFoundError("预订不存在")
        if booking.status != BookingStatus.PENDING:
            raise BadRequestError("只有待确认的预订可以支付")
        if booking.payment_status == PaymentStatus.PAID:
            raise BadRequestError("该预订已支付")

        amount = to_minor_units(booking.total_amount)
        intent = gateway.create_intent(amount, booking.currency, {
            "booking_id": booking.id,
            "booking_number": booking.booking_number,
            "guest_id": guest.id,
            "hotel_id": booking.hotel_id,
        })
        self.db.add(PaymentTransaction(
            booking_id=booking.id,
            gateway=gateway.get_gateway_name(),
            intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            amount=money(booking.total_amount),
            currency=booking.currency,
            status=TransactionStatus.REQUIRES_PAYMENT,
        ))
        self.db.commit()
        return {
            "client_secret": intent.client_secret,
            "intent_id": intent.intent_id,
            "amount": intent.amount,
            "currency": intent.currency,
            "booking_number": booking.booking_number,
        }

    def _get_transaction(self, intent_id: str) -> Optional[PaymentTransaction]:
        return self.db.query(PaymentTransaction).filter(PaymentTransaction.intent_id == intent_id).first()

    def _mark_paid(self, booking: Booking, transaction: PaymentTransaction, user_id: Optional[int],
                   automatic: bool) -> Booking:
        booking.payment_status = PaymentStatus.PAID
        booking.payment_method = transaction.payment_method or "card"
        booking.paid_at = booking.paid_at or utcnow()
        self.db.commit()
        if booking.status == BookingStatus.PENDING:
            self.bookings.change_status(booking, BookingStatus.CONFIRMED, user_id, "支付成功", automatic=automatic)
        publish_event(
            EventType.PAYMENT_COMPLETED,
            self._payment_event(booking, transaction.amount, transaction.intent_id),
            source="payment_service",
        )
        return booking

    def confirm(self, guest: User, intent_id: str, booking_id: int) -> Booking:
        """宾客端支付完成后确认，支付结果以网关回调为准"""
        self._gateway()
        transaction = self._get_transaction(intent_id)
        if transaction is None:
            raise NotFoundError("支付记录不存在")
        if transaction.booking_id != booking_id:
            raise BadRequestError("支付记录与预订不匹配")
        booking = transaction.booking
        if booking.guest_id != guest.id:
            raise PermissionDeniedError("无权确认该预订的支付")
        if transaction.status != TransactionStatus.SUCCEEDED:
            raise BadRequestError("支付尚未完成")
        if booking.payment_status == PaymentStatus.PAID:
            return booking
        return self._mark_paid(booking, transaction, guest.id, automatic=False)

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        处理网关回调

        SUCCESS -> 已支付并确认预订；FAILED/ERROR -> 支付失败，预订保持待确认可重新支付；
        其余状态 -> 处理中。同一意图重复回调成功不会重复处理。
        """
        gateway = self._gateway()
        try:
            raw = gateway.verify_webhook(payload, signature)
            data = WebhookPayload(**raw)
        except WebhookVerificationError as e:
            raise BadRequestError(f"回调校验失败: {e}")
        except ValidationError:
            raise BadRequestError("回调负载格式错误")

        transaction = self._get_transaction(data.intent_id)
        if transaction is None:
            logger.warning(f"Webhook for unknown intent {data.intent_id}")
            return {"received": True, "processed": False}
        if transaction.status in (TransactionStatus.SUCCEEDED, TransactionStatus.REFUNDED):
            return {"received": True, "processed": False, "status": transaction.status.value}

        if data.amount is not None and money(data.amount) != money(transaction.amount):
            logger.warning(f"Webhook amount {data.amount} differs from intent {transaction.intent_id}")

        booking = transaction.booking
        gateway_status = data.status.upper()
        transaction.raw_payload = raw
        transaction.gateway_reference = data.reference
        transaction.payment_method = data.method

        if gateway_status in SUCCESS_STATUSES:
            transaction.status = TransactionStatus.SUCCEEDED
            self.db.commit()
            self._mark_paid(booking, transaction, None, automatic=True)
            logger.info(f"Payment succeeded for booking {booking.booking_number}")
        elif gateway_status in FAILURE_STATUSES:
            transaction.status = TransactionStatus.FAILED
            transaction.failure_reason = data.message or gateway_status
            booking.payment_status = PaymentStatus.FAILED
            self.db.commit()
            publish_event(
                EventType.PAYMENT_FAILED,
                self._payment_event(booking, transaction.amount, transaction.intent_id, transaction.failure_reason),
                source="payment_service",
            )
            logger.info(f"Payment failed for booking {booking.booking_number}: {transaction.failure_reason}")
        else:
            transaction.status = TransactionStatus.PROCESSING
            booking.payment_status = PaymentStatus.PROCESSING
            self.db.commit()

        return {"received": True, "processed": True, "status": transaction.status.value}

    # ============== 退款 ==============

    def refund(self, admin: User, booking_id: int, amount: Optional[float] = None,
               reason: Optional[str] = None) -> Booking:
        """酒店管理员对本酒店已支付的预订退款，默认全额"""
        gateway = self._gateway()
        booking = self.bookings.get_booking(booking_id)
        if booking.hotel_id != admin.hotel_id:
            raise NotFoundError("预订不存在")
        if booking.payment_status == PaymentStatus.REFUNDED or booking.status == BookingStatus.REFUNDED:
            raise BadRequestError("该预订已退款")

        transaction = self.db.query(PaymentTransaction).filter(
            PaymentTransaction.booking_id == booking.id,
            PaymentTransaction.status == TransactionStatus.SUCCEEDED,
        ).order_by(PaymentTransaction.id.desc()).first()
        if transaction is None:
            raise BadRequestError("该预订没有成功的支付记录")

        refund_amount = money(amount) if amount is not None else money(transaction.amount)
        if refund_amount > money(transaction.amount):
            raise BadRequestError("退款金额不能超过支付金额")

        result = gateway.refund(transaction.intent_id, to_minor_units(refund_amount))

        transaction.status = TransactionStatus.REFUNDED
        transaction.refund_id = result.refund_id
        transaction.refunded_amount = refund_amount
        booking.payment_status = PaymentStatus.REFUNDED
        booking.refund_amount = refund_amount
        booking.refund_reason = reason
        booking.refunded_at = utcnow()
        self.db.commit()

        self.bookings.change_status(booking, BookingStatus.REFUNDED, admin.id, reason or "退款")
        publish_event(
            EventType.PAYMENT_REFUNDED,
            self._payment_event(booking, refund_amount, transaction.intent_id, reason),
            source="payment_service",
        )
        logger.info(f"Refunded {refund_amount} for booking {booking.booking_number} by admin {admin.id}")
        return booking

    # ============== 结算汇总 ==============

    def payout_summary(self, provider_id: int, time_range: str = "30days") -> dict:
        """服务商已完成且已支付预订的收入汇总"""
        if time_range not in PAYOUT_RANGES:
            raise BadRequestError("time_range 只能是 7days、30days、90days 或 all")

        query = self.db.query(Booking).filter(
            Booking.provider_id == provider_id,
            Booking.status == BookingStatus.COMPLETED,
            Booking.payment_status == PaymentStatus.PAID,
        )
        days = PAYOUT_RANGES[time_range]
        if days is not None:
            query = query.filter(Booking.completed_at >= utcnow() - timedelta(days=days))
        bookings = query.order_by(Booking.completed_at).all()

        total = Decimal("0")
        by_day: "OrderedDict[str, dict]" = OrderedDict()
        by_service: dict = {}
        for booking in bookings:
            earnings = money(booking.provider_earnings)
            total += earnings
            day = (booking.completed_at or booking.updated_at).date().isoformat()
            day_entry = by_day.setdefault(day, {"date": day, "earnings": Decimal("0"), "bookings": 0})
            day_entry["earnings"] += earnings
            day_entry["bookings"] += 1
            svc_entry = by_service.setdefault(booking.service_id, {
                "service_id": booking.service_id, "service_name": booking.service_name,
                "earnings": Decimal("0"), "bookings": 0,
            })
            svc_entry["earnings"] += earnings
            svc_entry["bookings"] += 1

        def _floats(entries):
            return [{**e, "earnings": float(e["earnings"])} for e in entries]

        return {
            "time_range": time_range,
            "total_earnings": float(total),
            "total_bookings": len(bookings),
            "currency": bookings[0].currency if bookings else settings.DEFAULT_CURRENCY,
            "by_day": _floats(by_day.values()),
            "by_service": sorted(_floats(by_service.values()), key=lambda e: e["earnings"], reverse=True),
        }
