"""
Pydantic 模式定义
用于 API 请求/响应验证
"""
from datetime import datetime, date
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from concierge.models.domain import (
    UserRole, ServiceCategory, VerificationStatus, BookingStatus, PaymentStatus, SettlementMethod,
)


def _normalize_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("邮箱格式不正确")
    return value


# ============== 认证 Schemas ==============

class LoginRequest(BaseModel):
    email: str
    password: str
    role: Optional[UserRole] = None   # 登录门户

    normalize_email = field_validator("email")(_normalize_email)


class GuestRegister(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    email: str
    password: str = Field(..., min_length=8)
    phone: str = Field(..., min_length=5, max_length=30)
    selected_hotel_id: int
    check_in_date: date
    check_out_date: date
    room_number: str = Field(..., min_length=1, max_length=20)

    normalize_email = field_validator("email")(_normalize_email)

    @model_validator(mode="after")
    def check_stay_dates(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError("退房日期必须晚于入住日期")
        return self


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: str

    normalize_email = field_validator("email")(_normalize_email)


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=8)


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class ProfileUpdate(BaseModel):
    """仅允许修改个人资料，密码请走专门的接口"""
    model_config = ConfigDict(extra="allow")

    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    preferences: Optional[Dict[str, Any]] = None

    @field_validator("first_name")
    @classmethod
    def first_name_not_null(cls, v):
        # 名字不能清空，不传表示不修改
        if v is None:
            raise ValueError("名字不能为空")
        return v


class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    role: UserRole
    hotel_id: Optional[int] = None
    service_provider_id: Optional[int] = None
    selected_hotel_id: Optional[int] = None
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    room_number: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


# ============== 酒店 Schemas ==============

class AdminAccount(BaseModel):
    """创建酒店时一并创建的管理员"""
    first_name: str = Field(..., max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    email: str
    phone: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)

    normalize_email = field_validator("email")(_normalize_email)


class HotelBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    category: Optional[str] = "mid-range"
    star_rating: Optional[int] = Field(None, ge=1, le=5)
    total_rooms: Optional[int] = Field(None, ge=0)
    currency: str = Field(default="EGP", min_length=3, max_length=3)


class HotelCreate(HotelBase):
    is_published: bool = True
    default_markup: Optional[float] = None
    admin: Optional[AdminAccount] = None


class HotelUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    category: Optional[str] = None
    star_rating: Optional[int] = Field(None, ge=1, le=5)
    total_rooms: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    is_active: Optional[bool] = None
    is_published: Optional[bool] = None


class HotelProfileUpdate(BaseModel):
    """酒店管理员可修改的字段"""
    description: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    total_rooms: Optional[int] = Field(None, ge=0)


class HotelResponse(HotelBase):
    id: int
    is_active: bool
    is_published: bool
    admin_id: Optional[int] = None
    default_markup: float
    category_markups: Dict[str, float] = {}
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @field_validator("category_markups", mode="before")
    @classmethod
    def default_markups(cls, v):
        return v or {}


class PublicHotelResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    category: Optional[str] = None
    star_rating: Optional[int] = None
    currency: str
    model_config = ConfigDict(from_attributes=True)


class AssignAdminRequest(BaseModel):
    """指定已有用户 user_id，或提供 admin 新建账号"""
    user_id: Optional[int] = None
    admin: Optional[AdminAccount] = None

    @model_validator(mode="after")
    def one_of(self):
        if self.user_id is None and self.admin is None:
            raise ValueError("需要提供 user_id 或 admin")
        return self


class MarkupSettingsUpdate(BaseModel):
    default_percentage: Optional[float] = None
    category_markups: Optional[Dict[ServiceCategory, float]] = None


class UserStatusUpdate(BaseModel):
    is_active: bool
    reason: Optional[str] = None


# ============== 服务商 Schemas ==============

class ProviderCredentials(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)

    normalize_email = field_validator("email")(_normalize_email)


class ProviderCreate(BaseModel):
    business_name: str = Field(..., max_length=100)
    description: Optional[str] = None
    email: str
    phone: Optional[str] = None
    categories: List[ServiceCategory] = []
    contact_first_name: Optional[str] = None
    contact_last_name: Optional[str] = None
    markup_percentage: Optional[float] = None
    credentials: Optional[ProviderCredentials] = None
    send_email: bool = True

    normalize_email = field_validator("email")(_normalize_email)


class ProviderUpdate(BaseModel):
    business_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class ProviderVerify(BaseModel):
    status: VerificationStatus
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def not_pending(cls, v):
        if v == VerificationStatus.PENDING:
            raise ValueError("审核结果只能是 approved 或 rejected")
        return v


class ProviderMarkupUpdate(BaseModel):
    percentage: float
    notes: Optional[str] = None


class ProviderCategoriesUpdate(BaseModel):
    categories: List[str]


class ProviderResponse(BaseModel):
    id: int
    hotel_id: int
    user_id: Optional[int] = None
    business_name: str
    description: Optional[str] = None
    email: str
    phone: Optional[str] = None
    categories: List[str] = []
    markup_percentage: Optional[float] = None
    markup_notes: Optional[str] = None
    markup_set_at: Optional[datetime] = None
    is_active: bool
    is_verified: bool
    verification_status: VerificationStatus
    total_bookings: int = 0
    average_rating: float = 0
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @field_validator("categories", mode="before")
    @classmethod
    def default_categories(cls, v):
        return v or []


# ============== 服务 Schemas ==============

class ServiceBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    category: ServiceCategory
    subcategory: Optional[str] = None
    base_price: float = Field(..., ge=0)
    duration_minutes: Optional[int] = Field(None, ge=0)


class ServiceCreate(ServiceBase):
    is_available: bool = True


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    subcategory: Optional[str] = None
    base_price: Optional[float] = Field(None, ge=0)
    duration_minutes: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None


class ServiceResponse(ServiceBase):
    id: int
    provider_id: int
    hotel_id: int
    currency: str
    is_active: bool
    is_available: bool
    total_bookings: int = 0
    average_rating: float = 0
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class GuestServiceResponse(BaseModel):
    """宾客看到的服务：只暴露加价后的价格"""
    id: int
    name: str
    description: Optional[str] = None
    category: ServiceCategory
    subcategory: Optional[str] = None
    duration_minutes: Optional[int] = None
    price: float
    currency: str
    provider_id: int
    provider_name: str
    average_rating: float = 0


# ============== 预订 Schemas ==============

class BookingCreate(BaseModel):
    service_id: int
    quantity: int = Field(default=1, ge=1, le=100)
    preferred_date: date
    preferred_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    special_requests: Optional[str] = Field(None, max_length=1000)
    room_number: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingReview(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    notes: Optional[str] = Field(None, max_length=500)


class StatusHistoryResponse(BaseModel):
    status: BookingStatus
    notes: Optional[str] = None
    updated_by: Optional[int] = None
    automatic: bool = False
    timestamp: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    guest_id: int
    service_id: int
    provider_id: int
    hotel_id: int
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    room_number: Optional[str] = None
    service_name: Optional[str] = None
    service_category: Optional[ServiceCategory] = None
    quantity: int
    preferred_date: date
    preferred_time: Optional[str] = None
    special_requests: Optional[str] = None
    base_price: float
    total_before_markup: float
    markup_percentage: float
    markup_amount: float
    tax_amount: float = 0
    total_amount: float
    provider_earnings: float
    hotel_earnings: float
    platform_fee: float = 0
    currency: str
    status: BookingStatus
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None
    refund_amount: Optional[float] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingDetailResponse(BookingResponse):
    status_history: List[StatusHistoryResponse] = []


# ============== 支付 Schemas ==============

class PaymentIntentCreate(BaseModel):
    booking_id: int


class PaymentIntentResponse(BaseModel):
    client_secret: str
    intent_id: str
    amount: int
    currency: str
    booking_number: str


class PaymentConfirm(BaseModel):
    intent_id: str
    booking_id: int


class RefundRequest(BaseModel):
    booking_id: int
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class WebhookPayload(BaseModel):
    intent_id: str
    status: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    reference: Optional[str] = None
    method: Optional[str] = None
    message: Optional[str] = None


# ============== 酒店结算 Schemas ==============

class SettlementCreate(BaseModel):
    """登记一次向酒店的打款，amount 不传时按待结算的酒店收入全额"""
    hotel_id: int
    amount: Optional[float] = Field(None, gt=0)
    payment_method: SettlementMethod = SettlementMethod.BANK_TRANSFER
    transaction_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class SettlementResponse(BaseModel):
    id: int
    hotel_id: int
    period_start: datetime
    period_end: datetime
    booking_count: int
    total_amount: float
    hotel_earnings: float
    platform_fees: float
    amount_paid: float
    currency: str
    payment_method: SettlementMethod
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    processed_by: Optional[int] = None
    paid_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 评价 Schemas ==============

class FeedbackResponse(BaseModel):
    """已评价预订的评价视图"""
    booking_id: int
    booking_number: str
    hotel_id: int
    provider_id: int
    service_id: int
    service_name: Optional[str] = None
    service_category: Optional[ServiceCategory] = None
    guest_name: Optional[str] = None
    rating: int
    review: Optional[str] = None
    reviewed_at: Optional[datetime] = None


# ============== 通知 Schemas ==============

class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    booking_id: Optional[int] = None
    is_read: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 通用 Schemas ==============

class Page(BaseModel):
    """分页结果"""
    items: List[Any]
    total: int
    page: int
    limit: int
    pages: int
