"""
调度后端与退房定时任务测试
"""
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from concierge_core.scheduler import ISchedulerBackend, SchedulerRegistry
from concierge.models.domain import User, UserRole
from concierge.system.checkout_scheduler import JOB_ID, CheckoutScheduler
from concierge.system.scheduler_backend import APSchedulerBackend
from tests.helpers import make_user


@pytest.fixture
def backend():
    backend = APSchedulerBackend()
    yield backend
    backend.shutdown()


class TestAPSchedulerBackend:

    def test_is_scheduler_backend(self, backend):
        assert isinstance(backend, ISchedulerBackend)

    def test_add_cron_job(self, backend):
        backend.add_job("job1", lambda: None, "cron", cron_expression="0 * * * *")
        job = backend.get_job("job1")
        assert job["id"] == "job1"
        assert "cron" in job["trigger"]
        assert [j["id"] for j in backend.get_jobs()] == ["job1"]

    def test_start_and_shutdown(self, backend):
        backend.start()
        assert backend.running
        backend.add_job("job1", lambda: None, "cron", cron_expression="0 * * * *")
        assert backend.get_job("job1")["next_run_time"] is not None
        backend.shutdown()
        assert not backend.running

    def test_remove_missing_job_is_noop(self, backend):
        backend.remove_job("missing")
        assert backend.get_job("missing") is None

    def test_trigger_job(self, backend):
        calls = []

        def job():
            calls.append(1)

        backend.add_job("job1", job, "cron", cron_expression="0 * * * *")
        backend.trigger_job("job1")
        assert calls == [1]

    def test_trigger_missing_job(self, backend):
        with pytest.raises(ValueError):
            backend.trigger_job("missing")


class TestCheckoutScheduler:

    def test_start_registers_job_and_runs_once(self, session_factory, sample_hotel):
        make_user(session_factory(), "late@example.com", UserRole.GUEST,
                  selected_hotel_id=sample_hotel.id, check_out_date=date(2020, 1, 1))
        backend = APSchedulerBackend()
        scheduler = CheckoutScheduler(backend=backend, db_session_factory=session_factory)
        try:
            scheduler.start()
            status = scheduler.get_status()
            assert status["is_running"] is True
            assert status["has_job"] is True
            assert status["next_run_time"] is not None
            assert status["last_deactivated"] == 1

            # 重复启动不会重复注册
            scheduler.start()
            assert len(backend.get_jobs()) == 1
        finally:
            scheduler.stop()

        status = scheduler.get_status()
        assert status["is_running"] is False
        assert status["has_job"] is False

        db = session_factory()
        assert db.query(User).filter(User.email == "late@example.com").first().is_active is False
        db.close()

    def test_trigger_runs_deactivation(self, session_factory, sample_hotel):
        make_user(session_factory(), "late@example.com", UserRole.GUEST,
                  selected_hotel_id=sample_hotel.id, check_out_date=date(2020, 1, 1))
        scheduler = CheckoutScheduler(backend=MagicMock(), db_session_factory=session_factory)

        results = scheduler.trigger()
        assert [r["status"] for r in results] == ["deactivated"]
        assert scheduler.last_run_at is not None

    def test_last_run_recorded_in_utc(self, session_factory, monkeypatch):
        fixed = datetime(2025, 3, 1, 14, 0)
        monkeypatch.setattr("concierge.system.checkout_scheduler.utcnow", lambda: fixed)
        scheduler = CheckoutScheduler(backend=MagicMock(), db_session_factory=session_factory)

        scheduler.trigger()
        assert scheduler.last_run_at == fixed

    def test_run_errors_are_swallowed(self):
        factory = MagicMock()
        factory.return_value.query.side_effect = RuntimeError("db down")
        scheduler = CheckoutScheduler(backend=MagicMock(), db_session_factory=factory)

        assert scheduler.run_once() == []
        factory.return_value.close.assert_called_once()

    def test_default_backend_from_registry(self):
        backend = MagicMock(spec=ISchedulerBackend)
        SchedulerRegistry().set_backend(backend)
        assert CheckoutScheduler().backend is backend

    def test_creates_apscheduler_backend_when_missing(self):
        scheduler = CheckoutScheduler()
        assert isinstance(scheduler.backend, APSchedulerBackend)
        assert SchedulerRegistry().get_backend() is scheduler.backend

    def test_job_id(self):
        backend = MagicMock()
        backend.running = False
        scheduler = CheckoutScheduler(backend=backend, db_session_factory=MagicMock())
        scheduler.start()
        assert backend.add_job.call_args[0][0] == JOB_ID
        assert backend.add_job.call_args[1]["cron_expression"] == scheduler.cron_expression
