"""
认证服务
注册、登录（失败锁定）、刷新令牌、找回/重置/修改密码、修改个人资料
"""
import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from concierge.config import settings
from concierge.database import utcnow
from concierge.errors import (
    AccountLockedError, AuthenticationError, BadRequestError, NotFoundError,
)
from concierge.logging_config import log_security
from concierge.models.domain import Hotel, User, UserRole
from concierge.models.events import EventType, PasswordResetRequestedData
from concierge.models.schemas import (
    GuestRegister, LoginRequest, PasswordUpdate, ProfileUpdate,
)
from concierge.security.auth import (
    decode_refresh_token, ensure_active, get_password_hash, issue_token_pair, verify_password,
)
from concierge.services.event_publisher import publish_event

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"first_name", "last_name", "phone", "preferences"}
PASSWORD_FIELDS = {"password", "password_confirm", "new_password", "current_password"}


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_password(length: int = 12) -> str:
    """生成临时密码"""
    return secrets.token_urlsafe(length)[:length]


def mark_password_changed(user: User) -> None:
    # 往前拨 1 秒，保证紧接着签发的令牌不会被判定为改密前签发
    user.password_changed_at = utcnow() - timedelta(seconds=1)


class AuthService:
    """认证服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def _auth_result(self, user: User) -> dict:
        result = issue_token_pair(user)
        result["user"] = user
        return result

    def register_guest(self, data: GuestRegister) -> dict:
        """宾客自助注册，必须选择一家营业中的酒店"""
        if self.get_user_by_email(data.email):
            raise BadRequestError("该邮箱已注册")

        hotel = self.db.query(Hotel).filter(Hotel.id == data.selected_hotel_id).first()
        if not hotel or not hotel.is_active:
            raise BadRequestError("所选酒店不存在或已停业")

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            phone=data.phone,
            password_hash=get_password_hash(data.password),
            role=UserRole.GUEST,
            selected_hotel_id=hotel.id,
            check_in_date=data.check_in_date,
            check_out_date=data.check_out_date,
            room_number=data.room_number,
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Guest {user.id} registered at hotel {hotel.id}")
        return self._auth_result(user)

    def authenticate(self, data: LoginRequest, request: Optional[Request] = None) -> dict:
        """
        登录

        连续失败达到上限后锁定账号一段时间，超级管理员不锁定。
        失败与锁定都写入安全日志。
        """
        user = self.get_user_by_email(data.email)
        if not user:
            log_security("login_failed", request, email=data.email, reason="unknown_email")
            raise AuthenticationError("邮箱或密码错误")

        if user.is_locked:
            log_security("login_rejected_locked", request, user_id=user.id)
            raise AccountLockedError("登录失败次数过多，账号已被临时锁定，请稍后再试")

        if not verify_password(data.password, user.password_hash):
            self._register_failed_attempt(user, request)
            raise AuthenticationError("邮箱或密码错误")

        if not user.is_active:
            ensure_active(user)

        if data.role is not None and user.role != data.role:
            log_security("login_failed", request, user_id=user.id, reason="wrong_portal")
            raise AuthenticationError("该账号不能从此入口登录")

        user.login_attempts = 0
        user.lock_until = None
        user.last_login = utcnow()
        self.db.commit()
        self.db.refresh(user)
        return self._auth_result(user)

    def _register_failed_attempt(self, user: User, request: Optional[Request] = None) -> None:
        if user.role == UserRole.SUPERADMIN:
            log_security("login_failed", request, user_id=user.id, reason="bad_password")
            return
        # 锁定已过期则重新计数
        if user.lock_until and user.lock_until <= utcnow():
            user.login_attempts = 0
            user.lock_until = None
        user.login_attempts = (user.login_attempts or 0) + 1
        log_security("login_failed", request, user_id=user.id, reason="bad_password",
                     attempts=user.login_attempts)
        if user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.lock_until = utcnow() + timedelta(hours=settings.LOCKOUT_HOURS)
            log_security("account_locked", request, user_id=user.id, attempts=user.login_attempts,
                         lock_until=user.lock_until.isoformat())
        self.db.commit()

    def refresh(self, refresh_token: Optional[str]) -> dict:
        """用刷新令牌换一对新令牌"""
        if not refresh_token:
            raise AuthenticationError("缺少刷新令牌")
        payload = decode_refresh_token(refresh_token)
        user = self.db.query(User).filter(User.id == int(payload["sub"])).first()
        if not user:
            raise AuthenticationError("令牌对应的用户不存在")
        ensure_active(user)
        return self._auth_result(user)

    def forgot_password(self, email: str) -> None:
        """生成重置令牌并通过邮件发送；账号不存在时静默返回"""
        user = self.get_user_by_email(email)
        if not user or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return

        token = secrets.token_hex(32)
        user.password_reset_token = hash_reset_token(token)
        user.password_reset_expires = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        self.db.commit()

        publish_event(
            EventType.PASSWORD_RESET_REQUESTED,
            PasswordResetRequestedData(user_id=user.id, email=user.email, reset_token=token),
            source="auth_service",
        )

    def reset_password(self, token: str, new_password: str) -> dict:
        user = self.db.query(User).filter(
            User.password_reset_token == hash_reset_token(token),
            User.password_reset_expires > utcnow(),
        ).first()
        if not user:
            raise BadRequestError("重置链接无效或已过期")

        user.password_hash = get_password_hash(new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        user.login_attempts = 0
        user.lock_until = None
        mark_password_changed(user)
        self.db.commit()
        self.db.refresh(user)
        return self._auth_result(user)

    def update_password(self, user: User, data: PasswordUpdate) -> dict:
        if not verify_password(data.current_password, user.password_hash):
            raise AuthenticationError("当前密码错误")
        if data.current_password == data.new_password:
            raise BadRequestError("新密码不能与当前密码相同")

        user.password_hash = get_password_hash(data.new_password)
        mark_password_changed(user)
        self.db.commit()
        self.db.refresh(user)
        return self._auth_result(user)

    def update_profile(self, user: User, data: ProfileUpdate) -> User:
        update_data = data.model_dump(exclude_unset=True)
        if PASSWORD_FIELDS & set(update_data):
            raise BadRequestError("此接口不能修改密码，请使用 /update-password")

        for field, value in update_data.items():
            if field in PROFILE_FIELDS:
                setattr(user, field, value)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("用户不存在")
        return user
