"""
领域对象定义
用户、酒店、服务商、服务、预订、支付流水、站内通知、酒店结算
"""
from datetime import datetime, time
from typing import Optional
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, JSON,
)
from sqlalchemy.orm import relationship
from concierge.database import Base, utcnow


# ============== 枚举定义 ==============

class UserRole(str, Enum):
    """用户角色"""
    SUPERADMIN = "superadmin"  # 平台超级管理员
    HOTEL = "hotel"            # 酒店管理员
    SERVICE = "service"        # 服务商
    GUEST = "guest"            # 住店宾客


class ServiceCategory(str, Enum):
    """服务类别"""
    LAUNDRY = "laundry"
    TRANSPORTATION = "transportation"
    TOURS = "tours"
    SPA = "spa"
    DINING = "dining"
    RESTAURANT = "restaurant"
    HOUSEKEEPING = "housekeeping"
    MAINTENANCE = "maintenance"
    AMENITIES = "amenities"


class VerificationStatus(str, Enum):
    """服务商审核状态"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BookingStatus(str, Enum):
    """预订状态"""
    PENDING = "pending"            # 待确认
    CONFIRMED = "confirmed"        # 已确认
    ASSIGNED = "assigned"          # 已派单
    IN_PROGRESS = "in-progress"    # 服务中
    COMPLETED = "completed"        # 已完成
    CANCELLED = "cancelled"        # 已取消
    REFUNDED = "refunded"          # 已退款
    DISPUTED = "disputed"          # 争议中


class PaymentStatus(str, Enum):
    """预订的支付状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class TransactionStatus(str, Enum):
    """支付流水状态"""
    REQUIRES_PAYMENT = "requires_payment"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class SettlementMethod(str, Enum):
    """酒店结算打款方式"""
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CASH = "cash"
    DIGITAL_WALLET = "digital_wallet"
    OTHER = "other"


# ============== 领域对象 ==============

class User(Base):
    """
    用户对象 - 四种角色共用
    宾客需要入住酒店、入退房日期和房号；酒店管理员绑定酒店；服务商用户绑定服务商
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50))
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(30))
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.GUEST)
    preferences = Column(JSON, default=dict)

    hotel_id = Column(Integer, ForeignKey("hotels.id"))                       # 酒店管理员
    service_provider_id = Column(Integer, ForeignKey("service_providers.id"))  # 服务商用户
    selected_hotel_id = Column(Integer, ForeignKey("hotels.id"))              # 宾客所住酒店
    check_in_date = Column(Date)
    check_out_date = Column(Date)
    room_number = Column(String(20))

    is_active = Column(Boolean, default=True)
    deactivation_reason = Column(String(50))
    auto_deactivated_at = Column(DateTime)
    last_login = Column(DateTime)
    login_attempts = Column(Integer, default=0)
    lock_until = Column(DateTime)
    password_changed_at = Column(DateTime)
    password_reset_token = Column(String(64), index=True)
    password_reset_expires = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    hotel = relationship("Hotel", foreign_keys=[hotel_id])
    selected_hotel = relationship("Hotel", foreign_keys=[selected_hotel_id])
    service_provider = relationship("ServiceProvider", foreign_keys=[service_provider_id])

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def is_locked(self) -> bool:
        return bool(self.lock_until and self.lock_until > utcnow())

    def checkout_moment(self, checkout_hour: int) -> Optional[datetime]:
        """退房日当天的退房时刻"""
        if self.check_out_date is None:
            return None
        return datetime.combine(self.check_out_date, time(hour=checkout_hour))


class Hotel(Base):
    """
    酒店对象 - 租户
    default_markup 为默认加价百分比，category_markups 按服务类别覆盖
    """
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    email = Column(String(255))
    phone = Column(String(30))
    street = Column(String(200))
    city = Column(String(100))
    state = Column(String(100))
    country = Column(String(100))
    category = Column(String(30), default="mid-range")
    star_rating = Column(Integer)
    total_rooms = Column(Integer)
    is_active = Column(Boolean, default=True)
    is_published = Column(Boolean, default=False)
    admin_id = Column(Integer, ForeignKey("users.id", use_alter=True))
    default_markup = Column(Numeric(5, 2), default=15)
    category_markups = Column(JSON, default=dict)
    currency = Column(String(3), default="EGP")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    admin = relationship("User", foreign_keys=[admin_id], post_update=True)
    providers = relationship("ServiceProvider", back_populates="hotel")


class ServiceProvider(Base):
    """服务商对象 - 归属于一家酒店"""
    __tablename__ = "service_providers"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", use_alter=True))
    business_name = Column(String(100), nullable=False)
    description = Column(Text)
    email = Column(String(255), nullable=False)
    phone = Column(String(30))
    categories = Column(JSON, default=list)

    markup_percentage = Column(Numeric(5, 2))   # 为空时使用酒店的加价设置
    markup_notes = Column(Text)
    markup_set_by = Column(Integer, ForeignKey("users.id"))
    markup_set_at = Column(DateTime)

    is_active = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)
    verification_status = Column(SQLEnum(VerificationStatus), default=VerificationStatus.PENDING)
    verification_notes = Column(Text)
    verified_at = Column(DateTime)
    verified_by = Column(Integer, ForeignKey("users.id"))

    total_bookings = Column(Integer, default=0)
    average_rating = Column(Numeric(3, 2), default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    hotel = relationship("Hotel", back_populates="providers")
    user = relationship("User", foreign_keys=[user_id], post_update=True)
    services = relationship("Service", back_populates="provider")


class Service(Base):
    """服务对象 - 服务商提供的一项可预订服务，base_price 为服务商报价"""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    category = Column(SQLEnum(ServiceCategory), nullable=False)
    subcategory = Column(String(50))
    base_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="EGP")
    duration_minutes = Column(Integer)
    is_active = Column(Boolean, default=True)
    is_available = Column(Boolean, default=True)
    is_approved = Column(Boolean, default=True)
    total_bookings = Column(Integer, default=0)
    average_rating = Column(Numeric(3, 2), default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    provider = relationship("ServiceProvider", back_populates="services")
    hotel = relationship("Hotel")


class Booking(Base):
    """
    预订对象 - 聚合根
    价格字段在创建时快照，之后服务改价不影响已有预订
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(20), unique=True, nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)

    # 快照
    guest_name = Column(String(100))
    guest_email = Column(String(255))
    room_number = Column(String(20))
    service_name = Column(String(100))
    service_category = Column(SQLEnum(ServiceCategory))

    quantity = Column(Integer, default=1)
    preferred_date = Column(Date, nullable=False)
    preferred_time = Column(String(5))      # HH:MM
    special_requests = Column(Text)

    # 价格
    base_price = Column(Numeric(10, 2), nullable=False)
    total_before_markup = Column(Numeric(10, 2), nullable=False)
    markup_percentage = Column(Numeric(5, 2), nullable=False)
    markup_amount = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), default=0)
    tax_amount = Column(Numeric(10, 2), default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    provider_earnings = Column(Numeric(10, 2), nullable=False)
    hotel_earnings = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), default=0)
    currency = Column(String(3), default="EGP")

    status = Column(SQLEnum(BookingStatus), default=BookingStatus.PENDING, index=True)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING)
    payment_method = Column(String(30))
    paid_at = Column(DateTime)
    refund_amount = Column(Numeric(10, 2))
    refund_reason = Column(Text)
    refunded_at = Column(DateTime)
    cancellation_reason = Column(Text)
    cancelled_at = Column(DateTime)
    completed_at = Column(DateTime)

    rating = Column(Integer)
    review = Column(Text)
    reviewed_at = Column(DateTime)
    settlement_id = Column(Integer, ForeignKey("hotel_settlements.id"), index=True)   # 已结算给酒店时指向结算单

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    guest = relationship("User", foreign_keys=[guest_id])
    service = relationship("Service")
    provider = relationship("ServiceProvider")
    hotel = relationship("Hotel")
    status_history = relationship(
        "BookingStatusHistory", back_populates="booking",
        order_by="BookingStatusHistory.id", cascade="all, delete-orphan",
    )
    transactions = relationship("PaymentTransaction", back_populates="booking")
    settlement = relationship("HotelSettlement", back_populates="bookings")

    @property
    def scheduled_at(self) -> datetime:
        """预约的服务时间，未指定时刻时取当天零点"""
        hour, minute = 0, 0
        if self.preferred_time:
            hour, minute = (int(part) for part in self.preferred_time.split(":")[:2])
        return datetime.combine(self.preferred_date, time(hour=hour, minute=minute))

    @property
    def can_be_modified(self) -> bool:
        return self.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class BookingStatusHistory(Base):
    """预订状态变更记录"""
    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    status = Column(SQLEnum(BookingStatus), nullable=False)
    notes = Column(Text)
    updated_by = Column(Integer, ForeignKey("users.id"))
    automatic = Column(Boolean, default=False)
    timestamp = Column(DateTime, default=utcnow)

    booking = relationship("Booking", back_populates="status_history")


class PaymentTransaction(Base):
    """支付流水 - 每个支付意图一条"""
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    gateway = Column(String(30), nullable=False)
    intent_id = Column(String(100), unique=True, nullable=False, index=True)
    client_secret = Column(String(200))
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(SQLEnum(TransactionStatus), default=TransactionStatus.REQUIRES_PAYMENT)
    payment_method = Column(String(30))
    gateway_reference = Column(String(100))
    failure_reason = Column(Text)
    refund_id = Column(String(100))
    refunded_amount = Column(Numeric(10, 2))
    raw_payload = Column(JSON)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    booking = relationship("Booking", back_populates="transactions")


class Notification(Base):
    """站内通知"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"))
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)


class HotelSettlement(Base):
    """
    酒店结算单 - 平台把代收的酒店加价收入打给酒店的一次记录
    结算单覆盖的预订通过 Booking.settlement_id 关联，结算过的预订不会再计入待结算金额
    """
    __tablename__ = "hotel_settlements"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    period_start = Column(DateTime, nullable=False)   # 覆盖预订中最早的创建时间
    period_end = Column(DateTime, nullable=False)
    booking_count = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    hotel_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    platform_fees = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="EGP")
    payment_method = Column(SQLEnum(SettlementMethod), nullable=False)
    transaction_reference = Column(String(100))
    notes = Column(Text)
    processed_by = Column(Integer, ForeignKey("users.id"))
    paid_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    hotel = relationship("Hotel")
    bookings = relationship("Booking", back_populates="settlement")
