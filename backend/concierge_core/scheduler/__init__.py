from concierge_core.scheduler.base import ISchedulerBackend, SchedulerRegistry

__all__ = ["ISchedulerBackend", "SchedulerRegistry"]
