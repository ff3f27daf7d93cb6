"""
日志配置
"""
import logging
from typing import Optional
from fastapi import Request
from concierge.config import settings

security_logger = logging.getLogger("concierge.security")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """启动时配置根日志器"""
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)


def log_security(event: str, request: Optional[Request] = None, **context) -> None:
    """记录安全相关事件（拒绝访问、登录失败、账号锁定）"""
    parts = [f"event={event}"]
    if request is not None:
        client = request.client.host if request.client else "-"
        parts.append(f"method={request.method} path={request.url.path} ip={client}")
    parts.extend(f"{key}={value}" for key, value in context.items())
    security_logger.warning(" ".join(parts))
