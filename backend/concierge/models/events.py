"""
领域事件定义
业务服务发布事件，通知处理器订阅事件
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 预订相关
    BOOKING_CREATED = "booking.created"
    BOOKING_STATUS_CHANGED = "booking.status_changed"
    BOOKING_REVIEWED = "booking.reviewed"

    # 支付相关
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"

    # 服务商相关
    PROVIDER_VERIFIED = "provider.verified"

    # 酒店结算
    HOTEL_SETTLEMENT_RECORDED = "hotel.settlement_recorded"

    # 账号相关
    ACCOUNT_CREATED = "account.created"
    PASSWORD_RESET_REQUESTED = "account.password_reset_requested"
    GUEST_CHECKOUT_DEACTIVATED = "guest.checkout_deactivated"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
        return result


@dataclass
class BookingCreatedData(BaseEventData):
    booking_id: int = 0
    booking_number: str = ""
    guest_id: int = 0
    provider_id: int = 0
    hotel_id: int = 0
    service_name: str = ""
    total_amount: float = 0.0
    currency: str = "EGP"


@dataclass
class BookingStatusChangedData(BaseEventData):
    booking_id: int = 0
    booking_number: str = ""
    guest_id: int = 0
    provider_id: int = 0
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None
    notes: Optional[str] = None


@dataclass
class BookingReviewedData(BaseEventData):
    booking_id: int = 0
    booking_number: str = ""
    provider_id: int = 0
    service_name: str = ""
    rating: int = 0
    review: Optional[str] = None


@dataclass
class PaymentEventData(BaseEventData):
    booking_id: int = 0
    booking_number: str = ""
    guest_id: int = 0
    provider_id: int = 0
    amount: float = 0.0
    currency: str = "EGP"
    intent_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class ProviderVerifiedData(BaseEventData):
    provider_id: int = 0
    user_id: Optional[int] = None
    email: str = ""
    business_name: str = ""
    status: str = ""
    notes: Optional[str] = None


@dataclass
class AccountCreatedData(BaseEventData):
    """新建账号（服务商、酒店管理员），temporary_password 仅用于邮件"""
    user_id: int = 0
    email: str = ""
    role: str = ""
    temporary_password: Optional[str] = None
    hotel_name: Optional[str] = None


@dataclass
class PasswordResetRequestedData(BaseEventData):
    user_id: int = 0
    email: str = ""
    reset_token: str = ""


@dataclass
class GuestDeactivatedData(BaseEventData):
    user_id: int = 0
    email: str = ""
    hotel_id: Optional[int] = None


@dataclass
class HotelSettlementData(BaseEventData):
    settlement_id: int = 0
    hotel_id: int = 0
    hotel_name: str = ""
    admin_user_id: Optional[int] = None
    admin_email: Optional[str] = None
    amount_paid: float = 0.0
    currency: str = "EGP"
    booking_count: int = 0
    payment_method: str = ""
    transaction_reference: Optional[str] = None
