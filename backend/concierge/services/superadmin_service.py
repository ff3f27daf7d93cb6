"""
平台管理服务
超级管理员管理酒店、酒店管理员账号和全平台用户
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from concierge.errors import BadRequestError, NotFoundError
from concierge.models.domain import Booking, Hotel, Service, ServiceProvider, User, UserRole
from concierge.models.events import AccountCreatedData, EventType
from concierge.models.schemas import AdminAccount, HotelCreate, HotelUpdate
from concierge.security.auth import get_password_hash
from concierge.services.auth_service import generate_password
from concierge.services.event_publisher import publish_event
from concierge.services.pagination import paginate
from concierge.services.pricing import validate_percentage

logger = logging.getLogger(__name__)


class SuperadminService:
    """平台管理服务"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 酒店 ==============

    def list_hotels(self, search: Optional[str] = None, is_active: Optional[bool] = None,
                    page: int = 1, limit: int = 10) -> dict:
        query = self.db.query(Hotel)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Hotel.name.ilike(pattern), Hotel.city.ilike(pattern), Hotel.country.ilike(pattern),
            ))
        if is_active is not None:
            query = query.filter(Hotel.is_active == is_active)
        return paginate(query.order_by(Hotel.created_at.desc()), page, limit)

    def get_hotel(self, hotel_id: int) -> Hotel:
        hotel = self.db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if not hotel:
            raise NotFoundError("酒店不存在")
        return hotel

    def hotel_detail(self, hotel_id: int) -> dict:
        hotel = self.get_hotel(hotel_id)
        return {
            "hotel": hotel,
            "admin": hotel.admin,
            "counts": {
                "providers": self.db.query(ServiceProvider).filter(ServiceProvider.hotel_id == hotel_id).count(),
                "services": self.db.query(Service).filter(Service.hotel_id == hotel_id).count(),
                "bookings": self.db.query(Booking).filter(Booking.hotel_id == hotel_id).count(),
                "guests": self.db.query(User).filter(
                    User.role == UserRole.GUEST, User.selected_hotel_id == hotel_id,
                ).count(),
            },
        }

    def _ensure_email_free(self, email: str) -> None:
        if self.db.query(User).filter(User.email == email).first():
            raise BadRequestError(f"邮箱 {email} 已被使用")

    def _new_admin(self, hotel: Hotel, account: AdminAccount) -> Tuple[User, str]:
        password = account.password or generate_password()
        user = User(
            first_name=account.first_name,
            last_name=account.last_name,
            email=account.email,
            phone=account.phone,
            password_hash=get_password_hash(password),
            role=UserRole.HOTEL,
            hotel_id=hotel.id,
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()
        hotel.admin_id = user.id
        return user, password

    def _announce_admin(self, user: User, password: str, hotel: Hotel) -> None:
        publish_event(
            EventType.ACCOUNT_CREATED,
            AccountCreatedData(
                user_id=user.id, email=user.email, role=UserRole.HOTEL.value,
                temporary_password=password, hotel_name=hotel.name,
            ),
            source="superadmin_service",
        )

    def create_hotel(self, data: HotelCreate) -> Hotel:
        """创建酒店，可同时创建管理员；管理员创建失败时酒店一并回滚"""
        if data.admin is not None:
            self._ensure_email_free(data.admin.email)

        fields = data.model_dump(exclude={"admin", "default_markup"})
        hotel = Hotel(**fields, is_active=True, category_markups={})
        if data.default_markup is not None:
            hotel.default_markup = validate_percentage(data.default_markup, "默认加价百分比")
        self.db.add(hotel)
        admin_user, password = None, None
        try:
            self.db.flush()
            if data.admin is not None:
                admin_user, password = self._new_admin(hotel, data.admin)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Hotel creation rolled back for '{data.name}'", exc_info=True)
            raise
        self.db.refresh(hotel)
        logger.info(f"Hotel {hotel.id} created")

        if admin_user is not None:
            self._announce_admin(admin_user, password, hotel)
        return hotel

    def update_hotel(self, hotel_id: int, data: HotelUpdate) -> Hotel:
        hotel = self.get_hotel(hotel_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(hotel, field, value)
        self.db.commit()
        self.db.refresh(hotel)
        return hotel

    def deactivate_hotel(self, hotel_id: int) -> Hotel:
        """软删除：停业并下架"""
        hotel = self.get_hotel(hotel_id)
        hotel.is_active = False
        hotel.is_published = False
        self.db.commit()
        self.db.refresh(hotel)
        logger.info(f"Hotel {hotel.id} deactivated")
        return hotel

    def assign_admin(self, hotel_id: int, user_id: Optional[int] = None,
                     account: Optional[AdminAccount] = None) -> User:
        hotel = self.get_hotel(hotel_id)
        if user_id is not None:
            user = self.db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("用户不存在")
            if user.role != UserRole.HOTEL:
                raise BadRequestError("只能指定酒店管理员角色的用户")
            user.hotel_id = hotel.id
            hotel.admin_id = user.id
            self.db.commit()
            self.db.refresh(user)
            return user

        self._ensure_email_free(account.email)
        user, password = self._new_admin(hotel, account)
        self.db.commit()
        self.db.refresh(user)
        self._announce_admin(user, password, hotel)
        return user

    def list_hotel_admins(self) -> List[User]:
        return self.db.query(User).filter(User.role == UserRole.HOTEL).order_by(User.created_at.desc()).all()

    # ============== 用户 ==============

    def list_users(self, role: Optional[UserRole] = None, is_active: Optional[bool] = None,
                   search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.email.ilike(pattern), User.first_name.ilike(pattern),
                                     User.last_name.ilike(pattern)))
        return paginate(query.order_by(User.created_at.desc()), page, limit)

    def set_user_status(self, actor: User, user_id: int, is_active: bool,
                        reason: Optional[str] = None) -> User:
        if user_id == actor.id and not is_active:
            raise BadRequestError("不能停用自己的账号")
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("用户不存在")
        user.is_active = is_active
        if is_active:
            user.deactivation_reason = None
            user.auto_deactivated_at = None
        else:
            user.deactivation_reason = reason or "admin"
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user.id} {'activated' if is_active else 'deactivated'} by {actor.id}")
        return user
