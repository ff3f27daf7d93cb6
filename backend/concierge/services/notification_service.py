"""
站内通知查询服务
"""

from sqlalchemy.orm import Session

from concierge.errors import NotFoundError
from concierge.models.domain import Notification
from concierge.services.pagination import paginate


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: int, unread_only: bool = False,
                      page: int = 1, limit: int = 20) -> dict:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)
        return paginate(query.order_by(Notification.created_at.desc(), Notification.id.desc()), page, limit)

    def unread_count(self, user_id: int) -> int:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id, Notification.is_read == False,
        ).count()

    def mark_read(self, user_id: int, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id, Notification.user_id == user_id,
        ).first()
        if not notification:
            raise NotFoundError("通知不存在")
        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        """全部标为已读，返回更新条数"""
        updated = self.db.query(Notification).filter(
            Notification.user_id == user_id, Notification.is_read == False,
        ).update({Notification.is_read: True}, synchronize_session=False)
        self.db.commit()
        return updated
