"""
站内通知服务测试
"""
import pytest

from concierge.errors import NotFoundError
from concierge.models.domain import Notification
from concierge.services.notification_service import NotificationService


@pytest.fixture
def notifications(db_session, guest):
    items = [
        Notification(user_id=guest.id, type="system", title=f"title {i}", message="hello", is_read=(i == 0))
        for i in range(3)
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


class TestNotificationService:

    def test_list_and_unread(self, db_session, guest, notifications):
        service = NotificationService(db_session)

        assert service.list_for_user(guest.id)["total"] == 3
        assert service.list_for_user(guest.id, unread_only=True)["total"] == 2
        assert service.unread_count(guest.id) == 2

    def test_mark_read(self, db_session, guest, notifications):
        service = NotificationService(db_session)
        notification = service.mark_read(guest.id, notifications[1].id)

        assert notification.is_read is True
        assert service.unread_count(guest.id) == 1

    def test_mark_read_other_user(self, db_session, provider_user, notifications):
        with pytest.raises(NotFoundError):
            NotificationService(db_session).mark_read(provider_user.id, notifications[1].id)

    def test_mark_all_read(self, db_session, guest, notifications):
        service = NotificationService(db_session)
        assert service.mark_all_read(guest.id) == 2
        assert service.unread_count(guest.id) == 0
