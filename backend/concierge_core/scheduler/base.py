"""
调度器后端接口 - 与业务无关的定时任务抽象

app 层通过实现 ISchedulerBackend 对接具体调度框架（APScheduler 等）。
"""
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional


class ISchedulerBackend(ABC):
    """调度后端接口"""

    @abstractmethod
    def start(self) -> None:
        """启动调度器"""

    @abstractmethod
    def shutdown(self) -> None:
        """关闭调度器"""

    @property
    @abstractmethod
    def running(self) -> bool:
        """调度器是否在运行"""

    @abstractmethod
    def add_job(
        self,
        job_id: str,
        func: Callable,
        trigger: str,
        **trigger_args,
    ) -> None:
        """添加定时任务

        Args:
            job_id: 任务唯一标识
            func: 要执行的函数
            trigger: 触发器类型（'cron', 'interval', 'date'）
            **trigger_args: 触发器参数，cron 可传 cron_expression
        """

    @abstractmethod
    def remove_job(self, job_id: str) -> None:
        """移除任务"""

    @abstractmethod
    def get_jobs(self) -> List[Dict]:
        """获取所有任务，每项包含 id, name, trigger, next_run_time, status"""

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Dict]:
        """获取单个任务信息"""

    @abstractmethod
    def trigger_job(self, job_id: str) -> None:
        """立即触发一次任务执行"""


class SchedulerRegistry:
    """调度器注册表 - 单例模式"""

    _instance: Optional["SchedulerRegistry"] = None

    def __new__(cls) -> "SchedulerRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._backend = None
        return cls._instance

    def set_backend(self, backend: ISchedulerBackend) -> None:
        self._backend = backend

    def get_backend(self) -> Optional[ISchedulerBackend]:
        return self._backend

    def clear(self) -> None:
        """清除后端（用于测试）"""
        self._backend = None
