"""
站内通知渠道 - 持久化 Notification 并推送给在线的 WebSocket 连接
"""
import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from concierge_core.notification import INotificationChannel
from concierge.system.notification.connection_manager import ConnectionManager, connection_manager

logger = logging.getLogger(__name__)


class InAppChannel(INotificationChannel):
    """站内通知渠道"""

    def __init__(
        self,
        db_factory: Optional[Callable] = None,
        manager: Optional[ConnectionManager] = None,
    ):
        self._db_factory = db_factory
        self._manager = manager or connection_manager

    def _get_db(self):
        if self._db_factory is not None:
            return self._db_factory()
        from concierge import database
        return database.SessionLocal()

    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """发送站内通知

        Args:
            recipient: 接收者用户 ID（字符串形式）
            subject: 通知标题
            content: 通知内容
            extra: 可选扩展参数 (type, booking_id)
        """
        from concierge.models.domain import Notification

        extra = extra or {}
        db = self._get_db()
        try:
            notification = Notification(
                user_id=int(recipient),
                type=extra.get("type", "system"),
                title=subject,
                message=content,
                booking_id=extra.get("booking_id"),
            )
            db.add(notification)
            db.commit()
            db.refresh(notification)
            payload = {
                "event": "notification",
                "data": {
                    "id": notification.id,
                    "type": notification.type,
                    "title": notification.title,
                    "message": notification.message,
                    "booking_id": notification.booking_id,
                    "created_at": notification.created_at.isoformat(),
                },
            }
        except (SQLAlchemyError, ValueError) as e:
            db.rollback()
            logger.error(f"Failed to store notification for user {recipient}: {e}")
            return False
        finally:
            db.close()

        self._manager.push(int(recipient), payload)
        return True

    def get_channel_type(self) -> str:
        return "in_app"
