"""
认证与授权模块

- 访问令牌与刷新令牌使用不同密钥签发
- 令牌优先从 Authorization: Bearer 读取，其次读取 jwt Cookie
- 按角色限制访问，并把酒店管理员/服务商/宾客限制在各自的数据范围内
"""
import bcrypt
import logging
from datetime import datetime, timedelta, UTC
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from concierge.config import settings
from concierge.database import get_db
from concierge.errors import AuthenticationError, PermissionDeniedError
from concierge.logging_config import log_security
from concierge.models.domain import User, UserRole

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "jwt"
REFRESH_COOKIE = "refreshToken"
CHECKOUT_EXPIRED = "checkout_expired"

security = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    """密码哈希"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


def create_access_token(user_id: int, role, expires_delta: Optional[timedelta] = None) -> str:
    """创建访问令牌"""
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user_id),
        "role": _role_value(role),
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """创建刷新令牌"""
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode = {
        "sub": str(user_id),
        "type": "refresh",
        "iat": int(now.timestamp()),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)


def issue_token_pair(user: User) -> dict:
    return {
        "access_token": create_access_token(user.id, user.role),
        "refresh_token": create_refresh_token(user.id),
        "token_type": "bearer",
    }


def _decode(token: str, secret: str, token_type: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthenticationError("无效或已过期的认证凭证")
    if payload.get("type") != token_type or payload.get("sub") is None:
        raise AuthenticationError("无效的认证凭证")
    return payload


def decode_token(token: str) -> dict:
    """解码访问令牌"""
    return _decode(token, settings.SECRET_KEY, "access")


def decode_refresh_token(token: str) -> dict:
    """解码刷新令牌"""
    return _decode(token, settings.REFRESH_SECRET_KEY, "refresh")


def password_changed_after(user: User, issued_at: Optional[int]) -> bool:
    """令牌签发后是否修改过密码"""
    if user.password_changed_at is None or issued_at is None:
        return False
    changed_ts = int(user.password_changed_at.replace(tzinfo=UTC).timestamp())
    return int(issued_at) < changed_ts


def ensure_active(user: User) -> None:
    """停用账号不能访问，退房自动停用给出专门的提示"""
    if user.is_active:
        return
    if user.deactivation_reason == CHECKOUT_EXPIRED:
        raise AuthenticationError("您的住店已结束，账号已自动停用。如需继续使用请联系酒店前台")
    raise AuthenticationError("账号已停用")


def resolve_user_from_token(token: str, db: Session) -> User:
    """校验访问令牌并返回对应用户（HTTP 与 WebSocket 共用）"""
    payload = decode_token(token)
    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if not user:
        raise AuthenticationError("令牌对应的用户不存在")
    ensure_active(user)
    if password_changed_after(user, payload.get("iat")):
        raise AuthenticationError("密码已修改，请重新登录")
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """获取当前登录用户"""
    token = credentials.credentials if credentials else request.cookies.get(ACCESS_COOKIE)
    if not token:
        raise AuthenticationError("未登录，请先登录")
    return resolve_user_from_token(token, db)


def require_roles(*roles: UserRole):
    """角色权限验证"""
    async def role_checker(request: Request, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            log_security(
                "access_denied", request,
                user_id=current_user.id, role=_role_value(current_user.role),
            )
            if current_user.role == UserRole.GUEST:
                raise PermissionDeniedError("宾客账号无权访问该功能")
            raise PermissionDeniedError("权限不足")
        return current_user
    return role_checker


require_superadmin = require_roles(UserRole.SUPERADMIN)
require_guest = require_roles(UserRole.GUEST)


async def require_hotel_admin(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> User:
    """酒店管理员，且必须绑定酒店；超级管理员不能直接管理服务商"""
    if current_user.role == UserRole.SUPERADMIN:
        log_security("superadmin_provider_management", request, user_id=current_user.id)
        raise PermissionDeniedError("超级管理员不能直接管理服务商，请由酒店管理员操作")
    if current_user.role != UserRole.HOTEL:
        log_security("access_denied", request, user_id=current_user.id, role=_role_value(current_user.role))
        raise PermissionDeniedError("仅酒店管理员可以访问")
    if not current_user.hotel_id:
        raise PermissionDeniedError("该管理员未绑定酒店")
    return current_user


async def require_provider(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> User:
    """服务商用户，且必须绑定服务商"""
    if current_user.role != UserRole.SERVICE:
        log_security("access_denied", request, user_id=current_user.id, role=_role_value(current_user.role))
        raise PermissionDeniedError("仅服务商可以访问")
    if not current_user.service_provider_id:
        raise PermissionDeniedError("该账号未绑定服务商")
    return current_user
