"""
退房停用定时任务
每小时（UTC 整点）检查一次，启动时立即执行一次
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from concierge_core.scheduler import ISchedulerBackend, SchedulerRegistry
from concierge.config import settings
from concierge.database import utcnow
from concierge.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

JOB_ID = "checkout_deactivation"


class CheckoutScheduler:
    """退房停用调度器"""

    def __init__(
        self,
        backend: Optional[ISchedulerBackend] = None,
        db_session_factory: Optional[Callable] = None,
        cron_expression: Optional[str] = None,
    ):
        self._backend = backend
        self._db_session_factory = db_session_factory
        self.cron_expression = cron_expression or settings.CHECKOUT_CRON
        self.last_run_at: Optional[datetime] = None
        self.last_result: List[Dict] = []

    @property
    def backend(self) -> ISchedulerBackend:
        if self._backend is None:
            self._backend = SchedulerRegistry().get_backend()
        if self._backend is None:
            from concierge.system.scheduler_backend import APSchedulerBackend
            self._backend = APSchedulerBackend()
            SchedulerRegistry().set_backend(self._backend)
        return self._backend

    def _get_db(self):
        if self._db_session_factory is not None:
            return self._db_session_factory()
        from concierge import database
        return database.SessionLocal()

    def run_once(self) -> List[Dict]:
        """执行一次退房检查；异常只记录日志，不向调度器抛出"""
        db = self._get_db()
        try:
            results = CheckoutService(db).deactivate_expired_checkouts()
            self.last_result = results
            return results
        except Exception as e:
            logger.error(f"Checkout deactivation run failed: {e}", exc_info=True)
            return []
        finally:
            self.last_run_at = utcnow()
            db.close()

    def start(self) -> None:
        """注册定时任务并启动，重复调用无副作用"""
        backend = self.backend
        if backend.running and backend.get_job(JOB_ID) is not None:
            logger.info("Checkout scheduler already running")
            return
        backend.add_job(JOB_ID, self.run_once, "cron", cron_expression=self.cron_expression)
        backend.start()
        logger.info(f"Checkout scheduler started ({self.cron_expression} UTC)")
        self.run_once()

    def stop(self) -> None:
        backend = self.backend
        backend.remove_job(JOB_ID)
        backend.shutdown()
        logger.info("Checkout scheduler stopped")

    def trigger(self) -> List[Dict]:
        """手动触发一次"""
        logger.info("Checkout deactivation triggered manually")
        return self.run_once()

    def get_status(self) -> Dict:
        backend = self.backend
        job = backend.get_job(JOB_ID)
        return {
            "is_running": backend.running,
            "has_job": job is not None,
            "next_run_time": job["next_run_time"] if job else None,
            "cron_expression": self.cron_expression,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_deactivated": sum(1 for r in self.last_result if r.get("status") == "deactivated"),
        }


checkout_scheduler = CheckoutScheduler()
