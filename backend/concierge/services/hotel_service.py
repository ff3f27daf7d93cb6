"""
酒店管理服务
酒店管理员在自己酒店范围内管理服务商、加价设置、宾客与预订
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from concierge.database import utcnow
from concierge.errors import BadRequestError, NotFoundError
from concierge.models.domain import (
    Booking, BookingStatus, Hotel, Service, ServiceCategory, ServiceProvider,
    User, UserRole, VerificationStatus,
)
from concierge.models.events import AccountCreatedData, EventType, ProviderVerifiedData
from concierge.models.schemas import (
    HotelProfileUpdate, MarkupSettingsUpdate, ProviderCreate, ProviderUpdate, ProviderVerify,
)
from concierge.security.auth import get_password_hash
from concierge.services.auth_service import generate_password
from concierge.services.event_publisher import publish_event
from concierge.services.pagination import paginate
from concierge.services.pricing import validate_percentage

logger = logging.getLogger(__name__)

PROVIDER_STATUS_FILTERS = ("active", "pending", "inactive")


def parse_categories(categories) -> List[str]:
    """校验服务类别列表，返回去重后的字符串值"""
    valid = {c.value for c in ServiceCategory}
    result = []
    for category in categories or []:
        value = getattr(category, "value", category)
        if value not in valid:
            raise BadRequestError(f"无效的服务类别: {value}")
        if value not in result:
            result.append(value)
    return result


class HotelService:
    """酒店管理服务，所有操作都限定在 hotel_id 范围内"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 酒店资料 ==============

    def get_hotel(self, hotel_id: int) -> Hotel:
        hotel = self.db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if not hotel:
            raise NotFoundError("酒店不存在")
        return hotel

    def update_profile(self, hotel_id: int, data: HotelProfileUpdate) -> Hotel:
        hotel = self.get_hotel(hotel_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(hotel, field, value)
        self.db.commit()
        self.db.refresh(hotel)
        return hotel

    # ============== 服务商 ==============

    def get_provider(self, hotel_id: int, provider_id: int) -> ServiceProvider:
        provider = self.db.query(ServiceProvider).filter(
            ServiceProvider.id == provider_id,
            ServiceProvider.hotel_id == hotel_id,
        ).first()
        if not provider:
            raise NotFoundError("服务商不存在")
        return provider

    def list_providers(self, hotel_id: int, status: Optional[str] = None,
                       category: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        """服务商列表，status: active(启用且已审核) / pending(待审核) / inactive(已停用)"""
        query = self.db.query(ServiceProvider).filter(ServiceProvider.hotel_id == hotel_id)

        if status == "active":
            query = query.filter(ServiceProvider.is_active == True, ServiceProvider.is_verified == True)
        elif status == "pending":
            query = query.filter(
                ServiceProvider.is_active == True,
                ServiceProvider.verification_status == VerificationStatus.PENDING,
            )
        elif status == "inactive":
            query = query.filter(ServiceProvider.is_active == False)
        elif status is not None:
            raise BadRequestError(f"无效的状态筛选: {status}")

        if category:
            parse_categories([category])
            query = query.filter(cast(ServiceProvider.categories, String).like(f'%"{category}"%'))

        return paginate(query.order_by(ServiceProvider.created_at.desc()), page, limit)

    def create_provider(self, admin: User, data: ProviderCreate) -> Tuple[ServiceProvider, Optional[str]]:
        """
        创建服务商及其登录账号

        未提供密码时生成临时密码，返回值第二项为临时密码（仅此一次可见）。
        """
        hotel = self.get_hotel(admin.hotel_id)
        categories = parse_categories(data.categories)
        markup = None
        if data.markup_percentage is not None:
            markup = validate_percentage(data.markup_percentage)

        credentials = data.credentials
        login_email = (credentials.email if credentials and credentials.email else data.email)
        if self.db.query(User).filter(User.email == login_email).first():
            raise BadRequestError("该邮箱已被其他账号使用")

        temporary_password = None
        if credentials and credentials.password:
            password = credentials.password
        else:
            password = temporary_password = generate_password()

        provider = ServiceProvider(
            hotel_id=hotel.id,
            business_name=data.business_name,
            description=data.description,
            email=data.email,
            phone=data.phone,
            categories=categories,
            markup_percentage=markup,
            markup_set_by=admin.id if markup is not None else None,
            markup_set_at=utcnow() if markup is not None else None,
            is_active=True,
            verification_status=VerificationStatus.PENDING,
        )
        self.db.add(provider)
        self.db.flush()

        user = User(
            first_name=data.contact_first_name or data.business_name.split(" ")[0],
            last_name=data.contact_last_name or "Provider",
            email=login_email,
            phone=data.phone,
            password_hash=get_password_hash(password),
            role=UserRole.SERVICE,
            hotel_id=hotel.id,
            service_provider_id=provider.id,
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()
        provider.user_id = user.id
        self.db.commit()
        self.db.refresh(provider)
        logger.info(f"Provider {provider.id} created for hotel {hotel.id} by admin {admin.id}")

        if data.send_email:
            publish_event(
                EventType.ACCOUNT_CREATED,
                AccountCreatedData(
                    user_id=user.id, email=login_email, role=UserRole.SERVICE.value,
                    temporary_password=password, hotel_name=hotel.name,
                ),
                source="hotel_service",
            )
        return provider, temporary_password

    def update_provider(self, hotel_id: int, provider_id: int, data: ProviderUpdate) -> ServiceProvider:
        provider = self.get_provider(hotel_id, provider_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(provider, field, value)
        self.db.commit()
        self.db.refresh(provider)
        return provider

    def verify_provider(self, admin: User, provider_id: int, data: ProviderVerify) -> ServiceProvider:
        provider = self.get_provider(admin.hotel_id, provider_id)
        approved = data.status == VerificationStatus.APPROVED

        provider.verification_status = data.status
        provider.verification_notes = data.notes
        provider.is_verified = approved
        provider.verified_at = utcnow() if approved else None
        provider.verified_by = admin.id
        self.db.commit()
        self.db.refresh(provider)

        publish_event(
            EventType.PROVIDER_VERIFIED,
            ProviderVerifiedData(
                provider_id=provider.id, user_id=provider.user_id, email=provider.email,
                business_name=provider.business_name, status=data.status.value, notes=data.notes,
            ),
            source="hotel_service",
        )
        return provider

    def update_provider_markup(self, admin: User, provider_id: int,
                               percentage, notes: Optional[str] = None) -> ServiceProvider:
        pct = validate_percentage(percentage)
        provider = self.get_provider(admin.hotel_id, provider_id)
        provider.markup_percentage = pct
        provider.markup_notes = notes
        provider.markup_set_by = admin.id
        provider.markup_set_at = utcnow()
        self.db.commit()
        self.db.refresh(provider)
        logger.info(f"Markup for provider {provider.id} set to {pct}% by admin {admin.id}")
        return provider

    def update_provider_categories(self, hotel_id: int, provider_id: int, categories) -> ServiceProvider:
        provider = self.get_provider(hotel_id, provider_id)
        provider.categories = parse_categories(categories)
        self.db.commit()
        self.db.refresh(provider)
        return provider

    def deactivate_provider(self, hotel_id: int, provider_id: int) -> ServiceProvider:
        """软删除：停用服务商及其全部服务"""
        provider = self.get_provider(hotel_id, provider_id)
        provider.is_active = False
        self.db.query(Service).filter(Service.provider_id == provider.id).update(
            {Service.is_active: False}, synchronize_session=False
        )
        self.db.commit()
        self.db.refresh(provider)
        return provider

    # ============== 加价设置 ==============

    def get_markup_settings(self, hotel_id: int) -> dict:
        hotel = self.get_hotel(hotel_id)
        return {
            "default_percentage": float(hotel.default_markup),
            "category_markups": dict(hotel.category_markups or {}),
        }

    def update_markup_settings(self, hotel_id: int, data: MarkupSettingsUpdate) -> dict:
        hotel = self.get_hotel(hotel_id)
        if data.default_percentage is not None:
            hotel.default_markup = validate_percentage(data.default_percentage, "默认加价百分比")
        if data.category_markups:
            merged = dict(hotel.category_markups or {})
            for category, value in data.category_markups.items():
                key = getattr(category, "value", category)
                merged[key] = float(validate_percentage(value, f"{key} 加价百分比"))
            hotel.category_markups = merged
        self.db.commit()
        self.db.refresh(hotel)
        return self.get_markup_settings(hotel_id)

    # ============== 宾客 ==============

    def list_guests(self, hotel_id: int, search: Optional[str] = None,
                    is_active: Optional[bool] = None, page: int = 1, limit: int = 10) -> dict:
        query = self.db.query(User).filter(
            User.role == UserRole.GUEST,
            User.selected_hotel_id == hotel_id,
        )
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
                User.room_number.ilike(pattern),
            ))
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        return paginate(query.order_by(User.created_at.desc()), page, limit)

    def get_guest(self, hotel_id: int, user_id: int) -> User:
        guest = self.db.query(User).filter(
            User.id == user_id,
            User.role == UserRole.GUEST,
            User.selected_hotel_id == hotel_id,
        ).first()
        if not guest:
            raise NotFoundError("宾客不存在")
        return guest

    # ============== 预订 ==============

    def list_bookings(self, hotel_id: int, status: Optional[BookingStatus] = None,
                      category: Optional[ServiceCategory] = None, provider_id: Optional[int] = None,
                      start_date: Optional[date] = None, end_date: Optional[date] = None,
                      page: int = 1, limit: int = 10) -> dict:
        query = self.db.query(Booking).filter(Booking.hotel_id == hotel_id)
        if status:
            query = query.filter(Booking.status == status)
        if category:
            query = query.filter(Booking.service_category == category)
        if provider_id:
            query = query.filter(Booking.provider_id == provider_id)
        if start_date:
            query = query.filter(Booking.preferred_date >= start_date)
        if end_date:
            query = query.filter(Booking.preferred_date <= end_date)
        return paginate(query.order_by(Booking.created_at.desc()), page, limit)
