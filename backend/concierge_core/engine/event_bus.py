"""
concierge_core/engine/event_bus.py

进程内事件总线 - 发布/订阅模式
预订、支付等业务服务只负责发布事件，邮件与实时推送由订阅者完成
"""
from typing import Callable, Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], None]


def _generate_event_id() -> str:
    """生成唯一事件ID"""
    return f"{datetime.now().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"


@dataclass
class Event:
    """
    事件

    Attributes:
        event_type: 事件类型（如 "booking.created"）
        timestamp: 事件时间戳
        data: 事件数据
        source: 触发来源（服务名）
        event_id: 唯一事件ID
    """

    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str = ""
    event_id: str = field(default_factory=_generate_event_id)


@dataclass
class PublishResult:
    """事件发布结果"""

    event_type: str
    subscriber_count: int
    success_count: int = 0
    failure_count: int = 0
    errors: List[Tuple[Callable, Exception]] = field(default_factory=list)


class EventBus:
    """
    事件总线 - 线程安全单例

    - 订阅管理加锁
    - 处理器异常互相隔离，只记录日志，不影响发布方
    - 保留最近的事件历史用于调试
    """

    _instance: Optional["EventBus"] = None
    _lock = threading.Lock()

    def __new__(cls, history_size: int = 100) -> "EventBus":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, history_size: int = 100):
        if self._initialized:
            return
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._event_history: deque = deque(maxlen=history_size)
        self._subscriber_lock = threading.RLock()
        self._initialized = True
        logger.info("EventBus initialized")

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """订阅事件，同一处理器不会重复注册"""
        with self._subscriber_lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.info(f"Handler {handler.__name__} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """取消订阅"""
        with self._subscriber_lock:
            if handler in self._subscribers.get(event_type, []):
                self._subscribers[event_type].remove(handler)
                logger.info(f"Handler {handler.__name__} unsubscribed from {event_type}")

    def publish(self, event: Event) -> PublishResult:
        """
        发布事件（同步执行所有处理器）

        Args:
            event: 要发布的事件对象

        Returns:
            PublishResult，包含成功/失败统计
        """
        self._event_history.append(event)

        with self._subscriber_lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        result = PublishResult(event_type=event.event_type, subscriber_count=len(handlers))

        if handlers:
            logger.info(f"Publishing {event.event_type} to {len(handlers)} handlers")

        for handler in handlers:
            try:
                handler(event)
                result.success_count += 1
            except Exception as e:
                result.failure_count += 1
                result.errors.append((handler, e))
                logger.error(
                    f"Event handler {handler.__name__} error for {event.event_type}: {e}",
                    exc_info=True,
                )

        return result

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """获取事件历史（最新的在前）"""
        history = list(self._event_history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def get_subscribers(self) -> Dict[str, List[str]]:
        """事件类型到处理器名称列表的映射"""
        with self._subscriber_lock:
            return {
                et: [h.__name__ for h in handlers]
                for et, handlers in self._subscribers.items()
            }

    def clear(self) -> None:
        """清除订阅和历史（用于测试）"""
        with self._subscriber_lock:
            self._subscribers.clear()
        self._event_history.clear()


event_bus = EventBus()
