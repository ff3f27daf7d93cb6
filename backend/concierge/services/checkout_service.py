"""
退房停用服务
宾客退房日的规定时刻过后自动停用其账号
"""
import logging
from datetime import datetime, time, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from concierge.config import settings
from concierge.database import utcnow
from concierge.models.domain import User, UserRole
from concierge.models.events import EventType, GuestDeactivatedData
from concierge.security.auth import CHECKOUT_EXPIRED
from concierge.services.event_publisher import publish_event

logger = logging.getLogger(__name__)


class CheckoutService:
    """退房停用服务"""

    def __init__(self, db: Session, checkout_hour: Optional[int] = None):
        self.db = db
        self.checkout_hour = settings.CHECKOUT_HOUR if checkout_hour is None else checkout_hour

    def find_expired_guests(self, now: datetime) -> List[User]:
        """退房时刻不晚于 now 的在用宾客"""
        # 退房日早于今天的一定过期；退房日为今天的要看是否已过退房时刻
        cutoff_date = now.date() if now.time() >= time(hour=self.checkout_hour) else now.date() - timedelta(days=1)
        return self.db.query(User).filter(
            User.role == UserRole.GUEST,
            User.is_active == True,
            User.check_out_date.isnot(None),
            User.check_out_date <= cutoff_date,
        ).all()

    def deactivate_expired_checkouts(self, now: Optional[datetime] = None) -> List[dict]:
        now = now or utcnow()
        results = []
        for guest in self.find_expired_guests(now):
            try:
                guest.is_active = False
                guest.deactivation_reason = CHECKOUT_EXPIRED
                guest.auto_deactivated_at = now
                self.db.commit()
                results.append({"user_id": guest.id, "email": guest.email, "status": "deactivated"})
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to deactivate guest {guest.id}: {e}", exc_info=True)
                results.append({"user_id": guest.id, "email": guest.email, "status": "error", "error": str(e)})
                continue

            publish_event(
                EventType.GUEST_CHECKOUT_DEACTIVATED,
                GuestDeactivatedData(user_id=guest.id, email=guest.email, hotel_id=guest.selected_hotel_id),
                source="checkout_service",
            )

        if results:
            deactivated = sum(1 for r in results if r["status"] == "deactivated")
            logger.info(f"Checkout run: {deactivated} guests deactivated, {len(results) - deactivated} errors")
        return results
