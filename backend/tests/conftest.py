"""
Pytest 配置和共享 fixtures
"""
import os

# 必须在导入 concierge 之前设置，避免测试启动时连接真实数据库和调度器
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["CHECKOUT_SCHEDULER_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from concierge_core.engine import event_bus
from concierge_core.notification import NotificationChannelRegistry
from concierge_core.payments import PaymentGatewayRegistry
from concierge_core.scheduler import SchedulerRegistry
from concierge import database
from concierge.database import Base, get_db, utcnow
from concierge.models.domain import (
    Hotel, Service, ServiceCategory, ServiceProvider, User, UserRole, VerificationStatus,
)
from concierge.models.schemas import BookingCreate
from concierge.services.booking_service import BookingService
from concierge.services.notification_handlers import notification_handlers
from concierge.main import app
from tests.helpers import auth_headers, make_user


@pytest.fixture(autouse=True)
def reset_singletons():
    """每个测试前后清空事件总线和各注册表"""
    event_bus.clear()
    NotificationChannelRegistry().clear()
    PaymentGatewayRegistry().clear()
    SchedulerRegistry().clear()
    notification_handlers._registered = False
    yield
    event_bus.clear()
    NotificationChannelRegistry().clear()
    PaymentGatewayRegistry().clear()
    SchedulerRegistry().clear()
    notification_handlers._registered = False


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine, monkeypatch):
    """绑定到测试引擎的会话工厂，同时替换通知渠道和定时任务使用的 SessionLocal"""
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端（会执行应用生命周期：注册渠道、网关和事件处理器）"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_hotel(db_session):
    """创建测试酒店"""
    hotel = Hotel(
        name="Nile View Hotel",
        city="Cairo",
        country="Egypt",
        currency="EGP",
        default_markup=Decimal("15.00"),
        category_markups={},
        is_active=True,
        is_published=True,
    )
    db_session.add(hotel)
    db_session.commit()
    db_session.refresh(hotel)
    return hotel


@pytest.fixture
def other_hotel(db_session):
    hotel = Hotel(name="Red Sea Resort", city="Hurghada", country="Egypt",
                  default_markup=Decimal("10.00"), is_active=True, is_published=True)
    db_session.add(hotel)
    db_session.commit()
    db_session.refresh(hotel)
    return hotel


@pytest.fixture
def superadmin(db_session):
    return make_user(db_session, "root@concierge.test", UserRole.SUPERADMIN, first_name="Super")


@pytest.fixture
def hotel_admin(db_session, sample_hotel):
    """酒店管理员"""
    admin = make_user(db_session, "admin@nileview.test", UserRole.HOTEL, hotel_id=sample_hotel.id)
    sample_hotel.admin_id = admin.id
    db_session.commit()
    return admin


@pytest.fixture
def sample_provider(db_session, sample_hotel):
    """已审核的服务商及其登录账号"""
    provider = ServiceProvider(
        hotel_id=sample_hotel.id,
        business_name="Fresh Laundry",
        email="laundry@nileview.test",
        categories=["laundry", "spa"],
        is_active=True,
        is_verified=True,
        verification_status=VerificationStatus.APPROVED,
    )
    db_session.add(provider)
    db_session.commit()
    user = make_user(
        db_session, "laundry@nileview.test", UserRole.SERVICE,
        hotel_id=sample_hotel.id, service_provider_id=provider.id,
    )
    provider.user_id = user.id
    db_session.commit()
    db_session.refresh(provider)
    return provider


@pytest.fixture
def provider_user(db_session, sample_provider):
    return db_session.query(User).filter(User.id == sample_provider.user_id).first()


@pytest.fixture
def sample_service(db_session, sample_provider):
    """基础价 100 的洗衣服务"""
    service = Service(
        provider_id=sample_provider.id,
        hotel_id=sample_provider.hotel_id,
        name="Express Wash",
        category=ServiceCategory.LAUNDRY,
        base_price=Decimal("100.00"),
        currency="EGP",
        is_active=True,
        is_available=True,
    )
    db_session.add(service)
    db_session.commit()
    db_session.refresh(service)
    return service


@pytest.fixture
def guest(db_session, sample_hotel):
    """住在测试酒店 101 房的宾客"""
    today = utcnow().date()
    return make_user(
        db_session, "guest@example.com", UserRole.GUEST,
        first_name="Amira", last_name="Hassan",
        selected_hotel_id=sample_hotel.id, room_number="101",
        check_in_date=today - timedelta(days=1), check_out_date=today + timedelta(days=5),
    )


@pytest.fixture
def sample_booking(db_session, guest, sample_service):
    """三天后的待确认预订，数量 2"""
    data = BookingCreate(
        service_id=sample_service.id,
        quantity=2,
        preferred_date=utcnow().date() + timedelta(days=3),
        preferred_time="10:00",
    )
    return BookingService(db_session).create_booking(guest, data)


@pytest.fixture
def guest_headers(guest):
    return auth_headers(guest)


@pytest.fixture
def admin_headers(hotel_admin):
    return auth_headers(hotel_admin)


@pytest.fixture
def provider_headers(provider_user):
    return auth_headers(provider_user)


@pytest.fixture
def superadmin_headers(superadmin):
    return auth_headers(superadmin)
