"""
测试辅助函数
"""
from typing import Dict, Optional

from concierge_core.notification import INotificationChannel
from concierge.models.domain import User, UserRole
from concierge.security.auth import create_access_token, get_password_hash

PASSWORD = "password123"


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def make_user(db_session, email: str, role: UserRole, **fields) -> User:
    user = User(
        first_name=fields.pop("first_name", "Test"),
        last_name=fields.pop("last_name", "User"),
        email=email,
        password_hash=get_password_hash(PASSWORD),
        role=role,
        is_active=fields.pop("is_active", True),
        **fields,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


class RecordingChannel(INotificationChannel):
    """记录发送内容的通知渠道"""

    def __init__(self, channel_type: str = "email"):
        self.channel_type = channel_type
        self.sent = []

    def send(self, recipient: str, subject: str, content: str, extra: Optional[Dict] = None) -> bool:
        self.sent.append((recipient, subject, content, extra))
        return True

    def get_channel_type(self) -> str:
        return self.channel_type

    def recipients(self):
        return [r for r, _, _, _ in self.sent]
