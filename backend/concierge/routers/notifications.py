"""
通知路由
站内通知的查询与已读标记，以及实时推送的 WebSocket
"""
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from concierge import database
from concierge.database import get_db
from concierge.errors import AuthenticationError
from concierge.models.domain import User
from concierge.models.schemas import NotificationResponse
from concierge.security.auth import get_current_user, resolve_user_from_token
from concierge.services.notification_service import NotificationService
from concierge.services.pagination import serialize_page
from concierge.system.notification import connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["通知"])
ws_router = APIRouter(tags=["通知"])


@router.get("")
def list_notifications(
    unread: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """我的通知"""
    service = NotificationService(db)
    result = serialize_page(service.list_for_user(current_user.id, unread, page, limit), NotificationResponse)
    result["unread_count"] = service.unread_count(current_user.id)
    return result


@router.patch("/read-all")
def mark_all_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = NotificationService(db).mark_all_read(current_user.id)
    return {"success": True, "updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return NotificationService(db).mark_read(current_user.id, notification_id)


@ws_router.websocket("/ws/notifications")
async def notifications_ws(websocket: WebSocket, token: str = ""):
    """
    实时通知推送

    连接时通过 ?token= 传访问令牌，令牌无效时以 1008 关闭。
    客户端发送 "ping" 会收到 "pong"。
    数据库会话只在鉴权时使用，连接保持期间不占用连接池。
    """
    user_id = None
    if token:
        with database.SessionLocal() as db:
            try:
                user_id = resolve_user_from_token(token, db).id
            except AuthenticationError as e:
                logger.info(f"WebSocket rejected: {e.message}")
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await connection_manager.connect(user_id, websocket)
    try:
        await websocket.send_json({"event": "connected", "data": {"user_id": user_id}})
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        connection_manager.disconnect(user_id, websocket)
