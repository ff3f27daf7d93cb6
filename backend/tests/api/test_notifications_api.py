"""
站内通知接口与 WebSocket 推送测试
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool
from starlette.websockets import WebSocketDisconnect

from concierge import database
from concierge.database import Base
from concierge.models.domain import Notification, UserRole
from concierge.security.auth import create_access_token
from concierge.system.notification import connection_manager
from tests.helpers import make_user


@pytest.fixture
def guest_notifications(db_session, guest):
    items = [Notification(user_id=guest.id, type="system", title=f"n{i}", message="hi") for i in range(2)]
    db_session.add_all(items)
    db_session.commit()
    return items


class TestNotificationApi:

    def test_list_with_unread_count(self, client, guest_headers, guest_notifications):
        data = client.get("/api/notifications", headers=guest_headers).json()
        assert data["total"] == 2
        assert data["unread_count"] == 2

    def test_mark_read(self, client, guest_headers, guest_notifications):
        notification_id = guest_notifications[0].id
        response = client.patch(f"/api/notifications/{notification_id}/read", headers=guest_headers)
        assert response.json()["is_read"] is True
        assert client.get("/api/notifications?unread=true", headers=guest_headers).json()["total"] == 1

    def test_cannot_read_others(self, client, admin_headers, guest_notifications):
        notification_id = guest_notifications[0].id
        assert client.patch(f"/api/notifications/{notification_id}/read", headers=admin_headers).status_code == 404

    def test_mark_all_read(self, client, guest_headers, guest_notifications):
        assert client.patch("/api/notifications/read-all", headers=guest_headers).json()["updated"] == 2

    def test_booking_creates_provider_notification(self, client, guest_headers, provider_headers, sample_service):
        client.post("/api/client/bookings", headers=guest_headers, json={
            "service_id": sample_service.id, "preferred_date": "2099-01-01",
        })
        data = client.get("/api/notifications", headers=provider_headers).json()
        assert data["items"][0]["type"] == "booking_created"


class TestNotificationWebSocket:

    def test_connect_and_ping(self, client, guest):
        token = create_access_token(guest.id, guest.role)
        with client.websocket_connect(f"/ws/notifications?token={token}") as websocket:
            assert websocket.receive_json() == {"event": "connected", "data": {"user_id": guest.id}}
            assert connection_manager.is_online(guest.id)
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

    def test_invalid_token_closes_with_policy_violation(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications?token=bogus") as websocket:
                websocket.receive_json()
        assert exc_info.value.code == 1008

    def test_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications") as websocket:
                websocket.receive_json()
        assert exc_info.value.code == 1008

    def test_idle_socket_releases_db_connection(self, client, tmp_path, monkeypatch):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'ws.db'}",
            connect_args={"check_same_thread": False},
            poolclass=QueuePool,
            pool_size=1,
        )
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        monkeypatch.setattr(database, "SessionLocal", factory)
        with factory() as session:
            user = make_user(session, "ops@concierge.test", UserRole.SUPERADMIN)
            token = create_access_token(user.id, user.role)

        try:
            with client.websocket_connect(f"/ws/notifications?token={token}") as websocket:
                assert websocket.receive_json()["event"] == "connected"
                assert engine.pool.checkedout() == 0
        finally:
            engine.dispose()
