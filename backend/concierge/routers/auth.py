"""
认证路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from concierge.config import settings
from concierge.database import get_db
from concierge.models.domain import User
from concierge.models.schemas import (
    AuthResponse, ForgotPasswordRequest, GuestRegister, LoginRequest, PasswordUpdate,
    ProfileUpdate, RefreshRequest, ResetPasswordRequest, UserResponse,
)
from concierge.security.auth import ACCESS_COOKIE, REFRESH_COOKIE, get_current_user
from concierge.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["认证"])


def _set_auth_cookies(response: Response, result: dict) -> None:
    response.set_cookie(
        ACCESS_COOKIE, result["access_token"],
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True, secure=settings.COOKIE_SECURE, samesite="lax",
    )
    response.set_cookie(
        REFRESH_COOKIE, result["refresh_token"],
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        httponly=True, secure=settings.COOKIE_SECURE, samesite="lax",
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(data: GuestRegister, response: Response, db: Session = Depends(get_db)):
    """宾客注册"""
    result = AuthService(db).register_guest(data)
    _set_auth_cookies(response, result)
    return result


@router.post("/login", response_model=AuthResponse)
def login(data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """用户登录"""
    result = AuthService(db).authenticate(data, request)
    _set_auth_cookies(response, result)
    return result


@router.post("/refresh", response_model=AuthResponse)
def refresh(request: Request, response: Response, data: Optional[RefreshRequest] = None,
            db: Session = Depends(get_db)):
    """刷新令牌，请求体优先，其次读取 Cookie"""
    token = (data.refresh_token if data else None) or request.cookies.get(REFRESH_COOKIE)
    result = AuthService(db).refresh(token)
    _set_auth_cookies(response, result)
    return result


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return {"success": True, "message": "已退出登录"}


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """获取当前用户信息"""
    return current_user


@router.post("/forgot-password")
def forgot_password(data: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """找回密码，无论账号是否存在都返回成功"""
    AuthService(db).forgot_password(data.email)
    return {"success": True, "message": "如果该邮箱已注册，重置链接已发送"}


@router.patch("/reset-password/{token}", response_model=AuthResponse)
def reset_password(token: str, data: ResetPasswordRequest, response: Response,
                   db: Session = Depends(get_db)):
    result = AuthService(db).reset_password(token, data.password)
    _set_auth_cookies(response, result)
    return result


@router.patch("/update-password", response_model=AuthResponse)
def update_password(
    data: PasswordUpdate,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """修改密码"""
    result = AuthService(db).update_password(current_user, data)
    _set_auth_cookies(response, result)
    return result


@router.patch("/update-me", response_model=UserResponse)
def update_me(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """修改个人资料"""
    return AuthService(db).update_profile(current_user, data)
