"""
通知渠道 - 邮件、站内信、运营 Webhook 的统一出口

业务代码只按渠道类型发送，具体渠道在应用启动时注册；
渠道未注册或发送出错都只返回 False，不影响预订、支付等主流程。
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class INotificationChannel(ABC):
    """通知渠道接口"""

    @abstractmethod
    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """发送一条通知

        recipient 的含义由渠道决定：邮件为邮箱地址，站内信为用户 ID，
        Webhook 只用于日志。extra 携带通知类型、关联预订等附加信息。
        """

    @abstractmethod
    def get_channel_type(self) -> str:
        """渠道类型：in_app / email / webhook"""


class NotificationChannelRegistry:
    """通知渠道注册表（单例），同一类型只保留最后注册的渠道"""

    _instance: Optional["NotificationChannelRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "NotificationChannelRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._channels = {}
        return cls._instance

    def register(self, channel: INotificationChannel) -> None:
        channel_type = channel.get_channel_type()
        with self._lock:
            self._channels[channel_type] = channel
        logger.info(f"Notification channel '{channel_type}' registered")

    def unregister(self, channel_type: str) -> None:
        with self._lock:
            self._channels.pop(channel_type, None)

    def get_channel(self, channel_type: str) -> Optional[INotificationChannel]:
        return self._channels.get(channel_type)

    def get_all_channels(self) -> List[INotificationChannel]:
        with self._lock:
            return list(self._channels.values())

    def available_types(self) -> List[str]:
        with self._lock:
            return sorted(self._channels)

    def send(
        self,
        channel_type: str,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """按渠道类型发送；渠道抛出的异常在这里记录并吞掉"""
        channel = self.get_channel(channel_type)
        if channel is None:
            logger.debug(f"No '{channel_type}' channel registered, '{subject}' dropped")
            return False
        try:
            return channel.send(recipient, subject, content, extra)
        except Exception as e:
            logger.error(f"Channel '{channel_type}' failed to send '{subject}' to {recipient}: {e}", exc_info=True)
            return False

    def clear(self) -> None:
        """清除所有渠道（用于测试）"""
        with self._lock:
            self._channels.clear()
