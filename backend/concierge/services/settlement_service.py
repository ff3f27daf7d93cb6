"""
酒店结算服务
平台代收宾客付款，定期把酒店的加价收入打给酒店。
待结算 = 已完成、已付款且尚未归入任何结算单的预订。
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from concierge.database import utcnow
from concierge.errors import BadRequestError, NotFoundError
from concierge.models.domain import (
    Booking, BookingStatus, Hotel, HotelSettlement, PaymentStatus, User,
)
from concierge.models.events import EventType, HotelSettlementData
from concierge.models.schemas import SettlementCreate
from concierge.services.event_publisher import publish_event
from concierge.services.pagination import paginate
from concierge.services.pricing import money

logger = logging.getLogger(__name__)


def _amount(value) -> float:
    return float(money(value or 0))


class SettlementService:
    """酒店结算服务"""

    def __init__(self, db: Session):
        self.db = db

    def _get_hotel(self, hotel_id: int) -> Hotel:
        hotel = self.db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if not hotel:
            raise NotFoundError("酒店不存在")
        return hotel

    @staticmethod
    def _outstanding_criteria():
        return (
            Booking.status == BookingStatus.COMPLETED,
            Booking.payment_status == PaymentStatus.PAID,
            Booking.settlement_id.is_(None),
        )

    def outstanding_bookings(self, hotel_id: int) -> List[Booking]:
        return self.db.query(Booking).filter(
            Booking.hotel_id == hotel_id, *self._outstanding_criteria(),
        ).order_by(Booking.created_at).all()

    def payment_analytics(self, hotel_id: Optional[int] = None) -> dict:
        """各酒店待结算金额，没有待结算预订的酒店也列出（金额为 0）"""
        hotels_query = self.db.query(Hotel)
        if hotel_id is not None:
            hotels_query = hotels_query.filter(Hotel.id == self._get_hotel(hotel_id).id)
        hotels = hotels_query.order_by(Hotel.name).all()

        outstanding = {
            row[0]: row[1:]
            for row in self.db.query(
                Booking.hotel_id,
                func.count(Booking.id),
                func.coalesce(func.sum(Booking.total_amount), 0),
                func.coalesce(func.sum(Booking.hotel_earnings), 0),
                func.coalesce(func.sum(Booking.platform_fee), 0),
                func.min(Booking.created_at),
            ).filter(*self._outstanding_criteria()).group_by(Booking.hotel_id).all()
        }
        last_paid = dict(
            self.db.query(HotelSettlement.hotel_id, func.max(HotelSettlement.paid_at))
            .group_by(HotelSettlement.hotel_id).all()
        )

        items = []
        for hotel in hotels:
            count, total, earnings, fees, oldest = outstanding.get(hotel.id, (0, 0, 0, 0, None))
            items.append({
                "hotel_id": hotel.id,
                "hotel_name": hotel.name,
                "currency": hotel.currency,
                "outstanding_bookings": count,
                "total_amount": _amount(total),
                "hotel_earnings": _amount(earnings),
                "platform_fees": _amount(fees),
                "oldest_booking_at": oldest,
                "last_settlement_at": last_paid.get(hotel.id),
            })
        items.sort(key=lambda item: item["hotel_earnings"], reverse=True)

        return {
            "hotels": items,
            "totals": {
                "outstanding_bookings": sum(item["outstanding_bookings"] for item in items),
                "total_amount": _amount(sum(Decimal(str(item["total_amount"])) for item in items)),
                "hotel_earnings": _amount(sum(Decimal(str(item["hotel_earnings"])) for item in items)),
                "platform_fees": _amount(sum(Decimal(str(item["platform_fees"])) for item in items)),
            },
        }

    def record_settlement(self, actor: User, data: SettlementCreate) -> HotelSettlement:
        """
        登记一次打款，当前所有待结算预订归入这张结算单

        金额默认等于待结算的酒店收入，可以少付（如扣减）但不能多付。
        """
        hotel = self._get_hotel(data.hotel_id)
        bookings = self.outstanding_bookings(hotel.id)
        if not bookings:
            raise BadRequestError("该酒店没有待结算的预订")

        earnings = money(sum((Decimal(str(b.hotel_earnings)) for b in bookings), Decimal("0")))
        amount = money(data.amount) if data.amount is not None else earnings
        if amount > earnings:
            raise BadRequestError(f"结算金额不能超过待结算的酒店收入 {earnings}")

        now = utcnow()
        settlement = HotelSettlement(
            hotel_id=hotel.id,
            period_start=bookings[0].created_at,
            period_end=now,
            booking_count=len(bookings),
            total_amount=money(sum((Decimal(str(b.total_amount)) for b in bookings), Decimal("0"))),
            hotel_earnings=earnings,
            platform_fees=money(sum((Decimal(str(b.platform_fee or 0)) for b in bookings), Decimal("0"))),
            amount_paid=amount,
            currency=hotel.currency,
            payment_method=data.payment_method,
            transaction_reference=data.transaction_reference,
            notes=data.notes,
            processed_by=actor.id,
            paid_at=now,
        )
        self.db.add(settlement)
        self.db.flush()
        for booking in bookings:
            booking.settlement_id = settlement.id
        self.db.commit()
        self.db.refresh(settlement)
        logger.info(f"Settlement {settlement.id} recorded for hotel {hotel.id}: "
                    f"{amount} {hotel.currency} over {len(bookings)} bookings")

        admin = hotel.admin
        publish_event(
            EventType.HOTEL_SETTLEMENT_RECORDED,
            HotelSettlementData(
                settlement_id=settlement.id,
                hotel_id=hotel.id,
                hotel_name=hotel.name,
                admin_user_id=admin.id if admin else None,
                admin_email=admin.email if admin else None,
                amount_paid=float(amount),
                currency=hotel.currency or "EGP",
                booking_count=len(bookings),
                payment_method=data.payment_method.value,
                transaction_reference=data.transaction_reference,
            ),
            source="settlement_service",
        )
        return settlement

    def settlement_history(self, hotel_id: Optional[int] = None, page: int = 1, limit: int = 20) -> dict:
        query = self.db.query(HotelSettlement)
        if hotel_id is not None:
            query = query.filter(HotelSettlement.hotel_id == hotel_id)
        return paginate(query.order_by(HotelSettlement.paid_at.desc(), HotelSettlement.id.desc()), page, limit)
