"""
通知事件处理器
订阅预订、支付、账号相关事件，通过已注册的渠道发送邮件、站内通知和运营 Webhook
"""
import logging
from typing import Callable, Optional

from concierge_core.engine import Event, EventBus, event_bus
from concierge_core.notification import NotificationChannelRegistry
from concierge.config import settings
from concierge.models.domain import Booking, ServiceProvider, User
from concierge.models.events import EventType

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "pending": "待确认",
    "confirmed": "已确认",
    "assigned": "已派单",
    "in-progress": "服务中",
    "completed": "已完成",
    "cancelled": "已取消",
    "refunded": "已退款",
    "disputed": "争议中",
}


class NotificationHandlers:
    """
    通知处理器集合

    支持依赖注入以便于测试：
    - db_session_factory: 数据库会话工厂，默认使用 concierge.database.SessionLocal
    - registry: 通知渠道注册表
    """

    def __init__(
        self,
        db_session_factory: Optional[Callable] = None,
        registry: Optional[NotificationChannelRegistry] = None,
    ):
        self._db_session_factory = db_session_factory
        self._registry = registry or NotificationChannelRegistry()
        self._registered = False

    def _get_db(self):
        if self._db_session_factory is not None:
            return self._db_session_factory()
        from concierge import database
        return database.SessionLocal()

    # ---------- 发送工具 ----------

    def _email(self, address: Optional[str], subject: str, content: str) -> bool:
        return self._registry.send("email", address or "", subject, content)

    def _in_app(self, user_id: Optional[int], subject: str, content: str,
                type_: str, booking_id: Optional[int] = None) -> bool:
        if not user_id:
            return False
        return self._registry.send(
            "in_app", str(user_id), subject, content,
            {"type": type_, "booking_id": booking_id},
        )

    def _ops(self, subject: str, content: str) -> None:
        if self._registry.get_channel("webhook") is not None:
            self._registry.send("webhook", "ops", subject, content)

    @staticmethod
    def _provider_user_id(db, provider_id: Optional[int]) -> Optional[int]:
        if not provider_id:
            return None
        provider = db.query(ServiceProvider).filter(ServiceProvider.id == provider_id).first()
        return provider.user_id if provider else None

    # ---------- 事件处理 ----------

    def handle_booking_created(self, event: Event) -> None:
        """新预订：邮件通知宾客和服务商，站内通知服务商"""
        data = event.data
        db = self._get_db()
        try:
            booking = db.query(Booking).filter(Booking.id == data.get("booking_id")).first()
            if booking is None:
                logger.warning(f"Booking {data.get('booking_id')} not found for booking.created")
                return
            provider = booking.provider
            when = booking.preferred_date.isoformat() + (f" {booking.preferred_time}" if booking.preferred_time else "")
            summary = (
                f"预订号: {booking.booking_number}\n"
                f"服务: {booking.service_name} x {booking.quantity}\n"
                f"时间: {when}\n"
                f"房号: {booking.room_number}\n"
                f"金额: {booking.total_amount} {booking.currency}"
            )
            self._email(booking.guest_email, f"预订已提交 {booking.booking_number}",
                        f"您好 {booking.guest_name}，\n\n您的预订已提交，等待服务商确认。\n\n{summary}")
            if provider is not None:
                self._email(provider.email, f"新预订 {booking.booking_number}",
                            f"{provider.business_name} 您好，\n\n您收到一笔新预订：\n\n{summary}\n"
                            f"服务商收入: {booking.provider_earnings} {booking.currency}")
                self._in_app(provider.user_id, "新预订",
                             f"{booking.guest_name} 预订了 {booking.service_name}（{booking.booking_number}）",
                             "booking_created", booking.id)
            self._ops("新预订", summary)
        finally:
            db.close()

    def handle_booking_status_changed(self, event: Event) -> None:
        """状态变更：通知宾客；宾客取消时通知服务商"""
        data = event.data
        new_status = data.get("new_status", "")
        label = STATUS_LABELS.get(new_status, new_status)
        db = self._get_db()
        try:
            guest = db.query(User).filter(User.id == data.get("guest_id")).first()
            message = f"您的预订 {data.get('booking_number')} 状态已更新为：{label}"
            if data.get("notes"):
                message += f"\n备注：{data['notes']}"
            if guest is not None:
                self._email(guest.email, f"预订状态更新 {data.get('booking_number')}", message)
                self._in_app(guest.id, "预订状态更新", message, "booking_status", data.get("booking_id"))

            if new_status == "cancelled" and data.get("changed_by") == data.get("guest_id"):
                self._in_app(self._provider_user_id(db, data.get("provider_id")), "预订已取消",
                             f"宾客取消了预订 {data.get('booking_number')}", "booking_cancelled",
                             data.get("booking_id"))
        finally:
            db.close()

    def handle_booking_reviewed(self, event: Event) -> None:
        data = event.data
        db = self._get_db()
        try:
            message = f"预订 {data.get('booking_number')}（{data.get('service_name')}）收到 {data.get('rating')} 星评价"
            if data.get("review"):
                message += f"：{data['review']}"
            self._in_app(self._provider_user_id(db, data.get("provider_id")), "收到新评价", message,
                         "booking_reviewed", data.get("booking_id"))
        finally:
            db.close()

    def handle_payment_completed(self, event: Event) -> None:
        data = event.data
        db = self._get_db()
        try:
            guest = db.query(User).filter(User.id == data.get("guest_id")).first()
            message = f"预订 {data.get('booking_number')} 已支付 {data.get('amount')} {data.get('currency')}"
            if guest is not None:
                self._email(guest.email, f"支付成功 {data.get('booking_number')}", message)
                self._in_app(guest.id, "支付成功", message, "payment_completed", data.get("booking_id"))
            self._in_app(self._provider_user_id(db, data.get("provider_id")), "预订已付款", message,
                         "payment_completed", data.get("booking_id"))
        finally:
            db.close()

    def handle_payment_failed(self, event: Event) -> None:
        data = event.data
        message = f"预订 {data.get('booking_number')} 支付失败"
        if data.get("reason"):
            message += f"：{data['reason']}"
        self._in_app(data.get("guest_id"), "支付失败", message + "，请重新尝试支付", "payment_failed",
                     data.get("booking_id"))

    def handle_payment_refunded(self, event: Event) -> None:
        data = event.data
        db = self._get_db()
        try:
            guest = db.query(User).filter(User.id == data.get("guest_id")).first()
            message = f"预订 {data.get('booking_number')} 已退款 {data.get('amount')} {data.get('currency')}"
            if data.get("reason"):
                message += f"\n原因：{data['reason']}"
            if guest is not None:
                self._email(guest.email, f"退款通知 {data.get('booking_number')}", message)
                self._in_app(guest.id, "退款通知", message, "payment_refunded", data.get("booking_id"))
        finally:
            db.close()

    def handle_provider_verified(self, event: Event) -> None:
        data = event.data
        approved = data.get("status") == "approved"
        subject = "服务商审核通过" if approved else "服务商审核未通过"
        message = (
            f"{data.get('business_name')} 您好，\n\n"
            + ("您的服务商账号已审核通过，现在可以发布服务并接收预订。" if approved
               else "很遗憾，您的服务商申请未通过审核。")
        )
        if data.get("notes"):
            message += f"\n\n备注：{data['notes']}"
        self._email(data.get("email"), subject, message)
        self._in_app(data.get("user_id"), subject, message, "provider_verified")

    def handle_account_created(self, event: Event) -> None:
        """新账号：邮件发送登录信息"""
        data = event.data
        lines = [f"您好，\n\n您的 {settings.APP_NAME} 账号已创建。", f"登录邮箱：{data.get('email')}"]
        if data.get("temporary_password"):
            lines.append(f"临时密码：{data['temporary_password']}")
            lines.append("请登录后尽快修改密码。")
        if data.get("hotel_name"):
            lines.append(f"所属酒店：{data['hotel_name']}")
        self._email(data.get("email"), f"{settings.APP_NAME} 账号已创建", "\n".join(lines))

    def handle_password_reset_requested(self, event: Event) -> None:
        data = event.data
        link = f"{settings.PASSWORD_RESET_URL}/{data.get('reset_token')}"
        self._email(
            data.get("email"), "重置密码",
            f"您申请了重置密码，请在 {settings.PASSWORD_RESET_EXPIRE_MINUTES} 分钟内访问以下链接：\n{link}\n\n"
            "如果不是您本人操作，请忽略本邮件。",
        )

    def handle_settlement_recorded(self, event: Event) -> None:
        """平台向酒店打款后通知酒店管理员"""
        data = event.data
        subject = f"结算到账 {data.get('amount_paid')} {data.get('currency')}"
        message = (
            f"{data.get('hotel_name')} 您好，\n\n平台已结算 {data.get('booking_count')} 笔预订的酒店收入，"
            f"金额 {data.get('amount_paid')} {data.get('currency')}，方式 {data.get('payment_method')}。"
        )
        if data.get("transaction_reference"):
            message += f"\n交易参考号：{data['transaction_reference']}"
        self._email(data.get("admin_email"), subject, message)
        self._in_app(data.get("admin_user_id"), subject, message, "hotel_settlement")

    def handle_guest_deactivated(self, event: Event) -> None:
        data = event.data
        self._email(data.get("email"), "感谢您的入住",
                    "您的住店已结束，宾客服务账号已自动停用。期待您再次光临！")

    # ---------- 注册 ----------

    def _subscriptions(self):
        return [
            (EventType.BOOKING_CREATED, self.handle_booking_created),
            (EventType.BOOKING_STATUS_CHANGED, self.handle_booking_status_changed),
            (EventType.BOOKING_REVIEWED, self.handle_booking_reviewed),
            (EventType.PAYMENT_COMPLETED, self.handle_payment_completed),
            (EventType.PAYMENT_FAILED, self.handle_payment_failed),
            (EventType.PAYMENT_REFUNDED, self.handle_payment_refunded),
            (EventType.PROVIDER_VERIFIED, self.handle_provider_verified),
            (EventType.HOTEL_SETTLEMENT_RECORDED, self.handle_settlement_recorded),
            (EventType.ACCOUNT_CREATED, self.handle_account_created),
            (EventType.PASSWORD_RESET_REQUESTED, self.handle_password_reset_requested),
            (EventType.GUEST_CHECKOUT_DEACTIVATED, self.handle_guest_deactivated),
        ]

    def register_handlers(self, event_bus_instance: Optional[EventBus] = None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            return
        bus = event_bus_instance or event_bus
        for event_type, handler in self._subscriptions():
            bus.subscribe(event_type.value, handler)
        self._registered = True
        logger.info("Notification handlers registered")

    def unregister_handlers(self, event_bus_instance: Optional[EventBus] = None) -> None:
        """取消注册（用于测试）"""
        bus = event_bus_instance or event_bus
        for event_type, handler in self._subscriptions():
            bus.unsubscribe(event_type.value, handler)
        self._registered = False


# 全局处理器实例
notification_handlers = NotificationHandlers()


def register_event_handlers() -> None:
    """注册所有事件处理器（应用启动时调用）"""
    notification_handlers.register_handlers()
