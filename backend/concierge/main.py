"""
Concierge 主应用入口
多租户酒店宾客服务平台
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from concierge import __version__
from concierge.config import settings
from concierge.database import init_db
from concierge.errors import register_exception_handlers
from concierge.logging_config import configure_logging
from concierge.routers import auth, client, hotel, notifications, payments, provider, superadmin

logger = logging.getLogger(__name__)


def register_channels() -> None:
    """注册通知渠道：站内、邮件，配置了运营 Webhook 时再加 webhook"""
    from concierge_core.notification import NotificationChannelRegistry
    from concierge.system.notification import EmailChannel, InAppChannel, WebhookChannel

    registry = NotificationChannelRegistry()
    registry.register(InAppChannel())
    registry.register(EmailChannel.from_settings(settings))
    if settings.OPS_WEBHOOK_URL:
        registry.register(WebhookChannel(webhook_url=settings.OPS_WEBHOOK_URL))


def register_payment_gateway() -> None:
    from concierge_core.payments import PaymentGatewayRegistry
    from concierge.system.payment_gateway import LocalGateway

    if not settings.PAYMENTS_ENABLED:
        logger.info("Payments disabled, no gateway registered")
        return
    PaymentGatewayRegistry().register(LocalGateway(settings.PAYMENT_WEBHOOK_SECRET), default=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    configure_logging()
    init_db()

    register_channels()
    register_payment_gateway()

    from concierge.services.notification_handlers import register_event_handlers
    register_event_handlers()

    from concierge.system.checkout_scheduler import checkout_scheduler
    if settings.CHECKOUT_SCHEDULER_ENABLED:
        checkout_scheduler.start()
    logger.info(f"{settings.APP_NAME} {__version__} started")

    yield

    if settings.CHECKOUT_SCHEDULER_ENABLED:
        checkout_scheduler.stop()
    logger.info(f"{settings.APP_NAME} shut down")


# 创建应用
app = FastAPI(
    title=f"{settings.APP_NAME} - 酒店宾客服务平台",
    description="多租户酒店宾客服务预订平台",
    version=__version__,
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# 注册路由
app.include_router(auth.router)
app.include_router(client.router)
app.include_router(hotel.router)
app.include_router(provider.router)
app.include_router(payments.router)
app.include_router(superadmin.router)
app.include_router(notifications.router)
app.include_router(notifications.ws_router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": __version__,
        "description": "酒店宾客服务平台",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
