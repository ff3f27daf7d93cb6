"""
APScheduler 调度后端 - 实现 concierge_core 的 ISchedulerBackend 接口
"""
import logging
from typing import Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from concierge_core.scheduler import ISchedulerBackend

logger = logging.getLogger(__name__)


class APSchedulerBackend(ISchedulerBackend):
    """基于 APScheduler 的调度后端，任务时间一律按 UTC 计算"""

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APScheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler shut down")

    def add_job(
        self,
        job_id: str,
        func: Callable,
        trigger: str,
        **trigger_args,
    ) -> None:
        if trigger == "cron" and "cron_expression" in trigger_args:
            expr = trigger_args.pop("cron_expression")
            cron_trigger = CronTrigger.from_crontab(expr, timezone="UTC")
            self._scheduler.add_job(
                func, trigger=cron_trigger, id=job_id, replace_existing=True, **trigger_args,
            )
        else:
            self._scheduler.add_job(
                func, trigger=trigger, id=job_id, replace_existing=True, **trigger_args,
            )
        logger.info(f"Job added: {job_id}")

    def remove_job(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(job_id)
            logger.info(f"Job removed: {job_id}")
        except JobLookupError:
            logger.warning(f"Job not found for removal: {job_id}")

    def get_jobs(self) -> List[Dict]:
        return [self._job_to_dict(j) for j in self._scheduler.get_jobs()]

    def get_job(self, job_id: str) -> Optional[Dict]:
        job = self._scheduler.get_job(job_id)
        if job is None:
            return None
        return self._job_to_dict(job)

    def trigger_job(self, job_id: str) -> None:
        job = self._scheduler.get_job(job_id)
        if job is None:
            raise ValueError(f"Job not found: {job_id}")
        job.func()

    @staticmethod
    def _job_to_dict(job) -> Dict:
        next_run = getattr(job, "next_run_time", None)
        return {
            "id": job.id,
            "name": job.name or job.id,
            "trigger": str(job.trigger),
            "next_run_time": next_run.isoformat() if next_run else None,
            "status": "active" if next_run else "paused",
        }
