"""
预订服务 - 预订聚合根的全部状态变更
创建、查询、宾客取消、评价、服务商推进状态；每次状态变化写入状态历史并发布事件
"""
import logging
import random
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from concierge.config import settings
from concierge.database import utcnow
from concierge.errors import BadRequestError, NotFoundError, PermissionDeniedError
from concierge.models.domain import (
    Booking, BookingStatus, BookingStatusHistory, Service, ServiceCategory, ServiceProvider,
    User, UserRole,
)
from concierge.models.events import (
    BookingCreatedData, BookingReviewedData, BookingStatusChangedData, EventType,
)
from concierge.models.schemas import BookingCancel, BookingCreate, BookingReview
from concierge.services.event_publisher import publish_event
from concierge.services.pagination import paginate
from concierge.services.pricing import calculate_price, resolve_markup

logger = logging.getLogger(__name__)

# 服务商可以推进的状态流转
PROVIDER_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.ASSIGNED, BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED},
    BookingStatus.ASSIGNED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
}

GUEST_CANCELLABLE = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def generate_booking_number(today: Optional[date] = None) -> str:
    """BK + yymmdd + 4 位随机数"""
    today = today or utcnow().date()
    return f"BK{today.strftime('%y%m%d')}{random.randint(0, 9999):04d}"


class BookingService:
    """预订服务"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 查询 ==============

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError("预订不存在")
        return booking

    def get_booking_for_user(self, booking_id: int, user: User) -> Booking:
        """按角色校验可见性：宾客本人、所属酒店管理员、对应服务商、超级管理员"""
        booking = self.get_booking(booking_id)
        if user.role == UserRole.SUPERADMIN:
            return booking
        if user.role == UserRole.GUEST and booking.guest_id == user.id:
            return booking
        if user.role == UserRole.HOTEL and booking.hotel_id == user.hotel_id:
            return booking
        if user.role == UserRole.SERVICE and booking.provider_id == user.service_provider_id:
            return booking
        raise PermissionDeniedError("无权查看该预订")

    def list_guest_bookings(self, guest_id: int, status: Optional[BookingStatus] = None,
                            category: Optional[ServiceCategory] = None,
                            page: int = 1, limit: int = 10) -> dict:
        query = self.db.query(Booking).filter(Booking.guest_id == guest_id)
        if status:
            query = query.filter(Booking.status == status)
        if category:
            query = query.filter(Booking.service_category == category)
        return paginate(query.order_by(Booking.created_at.desc()), page, limit)

    def list_provider_bookings(self, provider_id: int, status: Optional[BookingStatus] = None,
                               start_date: Optional[date] = None, end_date: Optional[date] = None,
                               page: int = 1, limit: int = 10) -> dict:
        query = self.db.query(Booking).filter(Booking.provider_id == provider_id)
        if status:
            query = query.filter(Booking.status == status)
        if start_date:
            query = query.filter(Booking.preferred_date >= start_date)
        if end_date:
            query = query.filter(Booking.preferred_date <= end_date)
        return paginate(query.order_by(Booking.preferred_date.desc(), Booking.created_at.desc()), page, limit)

    # ============== 创建 ==============

    def _unique_booking_number(self) -> str:
        for _ in range(10):
            number = generate_booking_number()
            if not self.db.query(Booking.id).filter(Booking.booking_number == number).first():
                return number
        raise BadRequestError("生成预订号失败，请重试")

    def create_booking(self, guest: User, data: BookingCreate) -> Booking:
        """宾客预订服务，价格按当前加价设置快照"""
        service = self.db.query(Service).filter(Service.id == data.service_id).first()
        if not service or not service.is_active:
            raise NotFoundError("服务不存在或已下线")
        if not service.is_available:
            raise BadRequestError("该服务暂不可预订")
        if service.hotel_id != guest.selected_hotel_id:
            raise BadRequestError("只能预订您所住酒店的服务")

        provider = service.provider
        if provider is None or not provider.is_active:
            raise BadRequestError("服务商暂不可用")

        room_number = data.room_number or guest.room_number
        if not room_number:
            raise BadRequestError("请提供房间号")

        if data.preferred_date < utcnow().date():
            raise BadRequestError("预约日期不能早于今天")

        hotel = service.hotel
        markup = resolve_markup(hotel, provider, service.category)
        price = calculate_price(service.base_price, data.quantity, markup)

        booking = Booking(
            booking_number=self._unique_booking_number(),
            guest_id=guest.id,
            service_id=service.id,
            provider_id=provider.id,
            hotel_id=hotel.id,
            guest_name=guest.full_name,
            guest_email=guest.email,
            room_number=room_number,
            service_name=service.name,
            service_category=service.category,
            quantity=data.quantity,
            preferred_date=data.preferred_date,
            preferred_time=data.preferred_time,
            special_requests=data.special_requests,
            base_price=price.base_price,
            total_before_markup=price.total_before_markup,
            markup_percentage=price.markup_percentage,
            markup_amount=price.markup_amount,
            tax_rate=price.tax_rate,
            tax_amount=price.tax_amount,
            total_amount=price.total_amount,
            provider_earnings=price.provider_earnings,
            hotel_earnings=price.hotel_earnings,
            platform_fee=price.platform_fee,
            currency=service.currency or hotel.currency,
            status=BookingStatus.PENDING,
        )
        booking.status_history.append(BookingStatusHistory(
            status=BookingStatus.PENDING, notes="预订已创建", updated_by=guest.id,
        ))
        self.db.add(booking)
        service.total_bookings = (service.total_bookings or 0) + 1
        provider.total_bookings = (provider.total_bookings or 0) + 1
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"Booking {booking.booking_number} created by guest {guest.id} for service {service.id}")

        publish_event(
            EventType.BOOKING_CREATED,
            BookingCreatedData(
                booking_id=booking.id, booking_number=booking.booking_number,
                guest_id=guest.id, provider_id=provider.id, hotel_id=hotel.id,
                service_name=service.name, total_amount=float(booking.total_amount),
                currency=booking.currency,
            ),
            source="booking_service",
        )
        return booking

    # ============== 状态变更 ==============

    def _apply_status(self, booking: Booking, new_status: BookingStatus,
                      user_id: Optional[int], notes: Optional[str] = None,
                      automatic: bool = False) -> BookingStatus:
        """写入新状态和状态历史，返回旧状态；调用方负责提交和发布事件"""
        old_status = booking.status
        booking.status = new_status
        now = utcnow()
        if new_status == BookingStatus.CANCELLED:
            booking.cancelled_at = now
        elif new_status == BookingStatus.COMPLETED:
            booking.completed_at = now
        booking.status_history.append(BookingStatusHistory(
            status=new_status, notes=notes, updated_by=user_id, automatic=automatic,
        ))
        return old_status

    def _publish_status_change(self, booking: Booking, old_status: BookingStatus,
                               user_id: Optional[int], notes: Optional[str]) -> None:
        publish_event(
            EventType.BOOKING_STATUS_CHANGED,
            BookingStatusChangedData(
                booking_id=booking.id, booking_number=booking.booking_number,
                guest_id=booking.guest_id, provider_id=booking.provider_id,
                old_status=old_status.value, new_status=booking.status.value,
                changed_by=user_id, notes=notes,
            ),
            source="booking_service",
        )

    def change_status(self, booking: Booking, new_status: BookingStatus,
                      user_id: Optional[int], notes: Optional[str] = None,
                      automatic: bool = False) -> Booking:
        """不做流转校验的状态变更（支付回调等内部流程使用）"""
        if booking.status == new_status:
            return booking
        old_status = self._apply_status(booking, new_status, user_id, notes, automatic)
        self.db.commit()
        self.db.refresh(booking)
        self._publish_status_change(booking, old_status, user_id, notes)
        return booking

    def update_status_by_provider(self, provider_id: int, booking_id: int, new_status: BookingStatus,
                                  user_id: int, notes: Optional[str] = None) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.provider_id != provider_id:
            raise NotFoundError("预订不存在")

        allowed = PROVIDER_TRANSITIONS.get(booking.status, set())
        if new_status not in allowed:
            raise BadRequestError(
                f"预订状态不能从 {booking.status.value} 变更为 {new_status.value}"
            )
        if new_status == BookingStatus.CANCELLED and not notes:
            notes = "服务商取消"
        return self.change_status(booking, new_status, user_id, notes)

    def cancel_by_guest(self, guest: User, booking_id: int, data: BookingCancel) -> Booking:
        """宾客取消：仅待确认/已确认，且距预约时间不少于规定小时数"""
        booking = self.get_booking(booking_id)
        if booking.guest_id != guest.id:
            raise NotFoundError("预订不存在")
        if booking.status not in GUEST_CANCELLABLE:
            raise BadRequestError("当前状态的预订不能取消")

        notice = timedelta(hours=settings.CANCELLATION_NOTICE_HOURS)
        if booking.scheduled_at - utcnow() < notice:
            raise BadRequestError(f"距预约时间不足 {settings.CANCELLATION_NOTICE_HOURS} 小时，不能取消")

        booking.cancellation_reason = data.reason or "宾客取消"
        return self.change_status(booking, BookingStatus.CANCELLED, guest.id, booking.cancellation_reason)

    # ============== 评价 ==============

    def review(self, guest: User, booking_id: int, data: BookingReview) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.guest_id != guest.id:
            raise NotFoundError("预订不存在")
        if booking.status != BookingStatus.COMPLETED:
            raise BadRequestError("只能评价已完成的预订")
        if booking.rating is not None:
            raise BadRequestError("该预订已评价")

        booking.rating = data.rating
        booking.review = data.review
        booking.reviewed_at = utcnow()
        self.db.flush()
        self._refresh_ratings(booking.service_id, booking.provider_id)
        self.db.commit()
        self.db.refresh(booking)

        publish_event(
            EventType.BOOKING_REVIEWED,
            BookingReviewedData(
                booking_id=booking.id, booking_number=booking.booking_number,
                provider_id=booking.provider_id, service_name=booking.service_name,
                rating=booking.rating, review=booking.review,
            ),
            source="booking_service",
        )
        return booking

    def _refresh_ratings(self, service_id: int, provider_id: int) -> None:
        """按已评价预订重新计算服务和服务商的平均评分"""
        service_avg = self.db.query(func.avg(Booking.rating)).filter(
            Booking.service_id == service_id, Booking.rating.isnot(None),
        ).scalar()
        provider_avg = self.db.query(func.avg(Booking.rating)).filter(
            Booking.provider_id == provider_id, Booking.rating.isnot(None),
        ).scalar()
        service = self.db.query(Service).filter(Service.id == service_id).first()
        provider = self.db.query(ServiceProvider).filter(ServiceProvider.id == provider_id).first()
        if service is not None and service_avg is not None:
            service.average_rating = round(Decimal(str(service_avg)), 2)
        if provider is not None and provider_avg is not None:
            provider.average_rating = round(Decimal(str(provider_avg)), 2)
