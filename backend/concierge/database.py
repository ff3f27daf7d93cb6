"""
数据库配置 - SQLAlchemy 持久化层
"""
from datetime import datetime, UTC
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from concierge.config import settings


def utcnow() -> datetime:
    """当前 UTC 时间（naive，与数据库中存储的时间一致）"""
    return datetime.now(UTC).replace(tzinfo=None)


connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """依赖注入：获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """初始化数据库表"""
    from concierge.models import domain  # noqa
    Base.metadata.create_all(bind=engine)
