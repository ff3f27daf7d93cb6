"""
WebSocket 连接管理 - 按用户 ID 维护在线连接，用于实时推送通知

推送可能发生在线程池中的同步请求处理函数里，因此通过
run_coroutine_threadsafe 投递到连接所在的事件循环。
"""
import asyncio
import logging
import threading
from typing import Any, Dict, List, Tuple

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """在线连接表"""

    def __init__(self):
        self._connections: Dict[int, List[Tuple[WebSocket, asyncio.AbstractEventLoop]]] = {}
        self._lock = threading.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        loop = asyncio.get_running_loop()
        with self._lock:
            self._connections.setdefault(user_id, []).append((websocket, loop))
        logger.info(f"WebSocket connected for user {user_id}")

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        with self._lock:
            entries = self._connections.get(user_id, [])
            self._connections[user_id] = [e for e in entries if e[0] is not websocket]
            if not self._connections[user_id]:
                del self._connections[user_id]
        logger.info(f"WebSocket disconnected for user {user_id}")

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            return bool(self._connections.get(user_id))

    def connection_count(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._connections.values())

    def push(self, user_id: int, message: Dict[str, Any]) -> int:
        """向用户的所有连接推送消息，返回投递的连接数"""
        with self._lock:
            entries = list(self._connections.get(user_id, []))

        delivered = 0
        for websocket, loop in entries:
            if loop.is_closed():
                self.disconnect(user_id, websocket)
                continue
            asyncio.run_coroutine_threadsafe(
                self._safe_send(user_id, websocket, message), loop
            )
            delivered += 1
        return delivered

    async def _safe_send(self, user_id: int, websocket: WebSocket, message: Dict[str, Any]) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"Dropping WebSocket for user {user_id}: {e}")
            self.disconnect(user_id, websocket)


connection_manager = ConnectionManager()
