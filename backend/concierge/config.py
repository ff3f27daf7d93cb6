"""
应用配置
从环境变量和 .env 读取配置
"""
from typing import List, Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Concierge"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./concierge.db"

    # JWT 配置
    SECRET_KEY: str = "concierge-secret-key-change-in-production"
    REFRESH_SECRET_KEY: str = "concierge-refresh-secret-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    COOKIE_SECURE: bool = False

    # 账号安全
    PASSWORD_RESET_EXPIRE_MINUTES: int = 10
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_HOURS: int = 2
    PASSWORD_RESET_URL: str = "http://localhost:3000/reset-password"

    # 定价
    DEFAULT_MARKUP_PERCENTAGE: float = 15.0
    PLATFORM_FEE_PERCENTAGE: float = 5.0
    DEFAULT_CURRENCY: str = "EGP"
    CANCELLATION_NOTICE_HOURS: int = 24

    # 退房自动停用
    CHECKOUT_HOUR: int = 16
    CHECKOUT_SCHEDULER_ENABLED: bool = True
    CHECKOUT_CRON: str = "0 * * * *"

    # 支付
    PAYMENTS_ENABLED: bool = True
    PAYMENT_WEBHOOK_SECRET: str = "concierge-webhook-secret"

    # 邮件
    EMAIL_ENABLED: bool = False
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_SENDER: str = "no-reply@concierge.local"
    SMTP_USE_TLS: bool = True

    # 运营 Webhook（可选，转发预订事件到钉钉/Slack 等）
    OPS_WEBHOOK_URL: Optional[str] = None

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
