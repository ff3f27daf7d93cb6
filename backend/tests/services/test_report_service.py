"""
报表服务测试
"""
from datetime import date, timedelta

import pytest

from concierge.database import utcnow
from concierge.errors import BadRequestError, NotFoundError
from concierge.models.domain import BookingStatus, ServiceCategory
from concierge.models.schemas import BookingCreate
from concierge.services.booking_service import BookingService
from concierge.services.report_service import ReportService, _month_start


def _complete(db_session, booking, days_ago=0, rating=None):
    booking.status = BookingStatus.COMPLETED
    booking.completed_at = utcnow() - timedelta(days=days_ago)
    booking.rating = rating
    db_session.commit()


def test_month_start_wraps_year():
    today = date(2025, 2, 14)
    assert _month_start(3, today).isoformat() == "2024-11-01T00:00:00"
    assert _month_start(0, today).isoformat() == "2025-02-01T00:00:00"


class TestRevenue:

    def test_only_completed_counts(self, db_session, sample_booking):
        service = ReportService(db_session)
        assert service.revenue_stats()["total_bookings"] == 0

        _complete(db_session, sample_booking)
        stats = service.revenue_stats()
        assert stats["total_revenue"] == 230.0
        assert stats["provider_earnings"] == 200.0
        assert stats["hotel_earnings"] == 30.0
        assert stats["platform_fees"] == 11.5
        assert stats["average_order_value"] == 230.0

    def test_status_breakdown_lists_every_status(self, db_session, sample_booking):
        breakdown = ReportService(db_session).status_breakdown()
        assert breakdown["pending"] == 1
        assert set(breakdown) == {s.value for s in BookingStatus}

    def test_monthly_trends(self, db_session, sample_booking):
        _complete(db_session, sample_booking)
        trends = ReportService(db_session).monthly_trends()
        now = utcnow()
        assert trends == [{"year": now.year, "month": now.month, "bookings": 1, "revenue": 230.0}]


class TestHotelReports:

    def test_dashboard(self, db_session, sample_booking, sample_hotel):
        dashboard = ReportService(db_session).hotel_dashboard(sample_hotel.id)

        assert dashboard["counts"]["total_providers"] == 1
        assert dashboard["counts"]["active_providers"] == 1
        assert dashboard["counts"]["total_guests"] == 1
        assert dashboard["recent_bookings"][0]["booking_number"] == sample_booking.booking_number
        assert dashboard["top_services"][0]["bookings"] == 1
        assert dashboard["services_by_category"][0]["category"] == "laundry"

    def test_dashboard_unknown_hotel(self, db_session):
        with pytest.raises(NotFoundError):
            ReportService(db_session).hotel_dashboard(999)

    def test_provider_analytics(self, db_session, sample_booking, sample_hotel):
        _complete(db_session, sample_booking, rating=4)
        rows = ReportService(db_session).provider_analytics(sample_hotel.id)

        assert rows[0]["business_name"] == "Fresh Laundry"
        assert rows[0]["completed_bookings"] == 1
        assert rows[0]["provider_earnings"] == 200.0
        assert rows[0]["average_rating"] == 4.0

    def test_provider_metrics(self, db_session, sample_booking, sample_provider):
        metrics = ReportService(db_session).provider_metrics(sample_provider.id)
        assert metrics["total_bookings"] == 1
        assert metrics["completed_bookings"] == 0
        assert metrics["average_rating"] == 0.0


class TestProviderReports:

    def test_dashboard_pending_earnings(self, db_session, sample_booking, sample_provider):
        sample_booking.status = BookingStatus.CONFIRMED
        db_session.commit()
        dashboard = ReportService(db_session).provider_dashboard(sample_provider.id)

        assert dashboard["pending_earnings"] == {"amount": 200.0, "bookings": 1}
        assert dashboard["services"] == {"total": 1, "active": 1}

    def test_earnings_by_range(self, db_session, sample_booking, sample_provider):
        _complete(db_session, sample_booking, days_ago=20)
        service = ReportService(db_session)

        assert service.provider_earnings(sample_provider.id, "week")["period"]["bookings"] == 0
        month = service.provider_earnings(sample_provider.id, "month")
        assert month["period"]["earnings"] == 200.0
        assert month["by_category"][0]["category"] == "laundry"
        assert month["all_time"]["total_bookings"] == 1

    def test_invalid_range(self, db_session, sample_provider):
        with pytest.raises(BadRequestError):
            ReportService(db_session).provider_earnings(sample_provider.id, "decade")


class TestPlatformReports:

    def test_superadmin_dashboard(self, db_session, sample_booking, other_hotel, hotel_admin):
        _complete(db_session, sample_booking)
        dashboard = ReportService(db_session).superadmin_dashboard()

        assert dashboard["counts"]["total_hotels"] == 2
        assert dashboard["counts"]["hotel_admins"] == 1
        assert dashboard["top_hotels"][0]["hotel_name"] == "Nile View Hotel"
        assert dashboard["geographic_distribution"] == [{"country": "Egypt", "hotels": 2}]
        assert dashboard["health"]["completion_rate"] == 100.0

    def test_platform_analytics(self, db_session, sample_booking):
        analytics = ReportService(db_session).platform_analytics()
        assert analytics["status_distribution"]["pending"] == 1
        assert analytics["by_hotel"] == []


class TestFeedback:

    @pytest.fixture
    def reviewed(self, db_session, guest, sample_booking, sample_service):
        """两条评价：5 星和 2 星"""
        second = BookingService(db_session).create_booking(guest, BookingCreate(
            service_id=sample_service.id, preferred_date=utcnow().date() + timedelta(days=4),
        ))
        for booking, stars in ((sample_booking, 5), (second, 2)):
            _complete(db_session, booking, rating=stars)
            booking.review = f"{stars} stars"
            booking.reviewed_at = utcnow()
        db_session.commit()
        return sample_booking, second

    def test_hotel_feedback_statistics(self, db_session, reviewed, sample_hotel):
        result = ReportService(db_session).hotel_feedback(sample_hotel.id)

        assert result["total"] == 2
        assert result["statistics"]["average_rating"] == 3.5
        assert result["statistics"]["rating_distribution"] == {"1": 0, "2": 1, "3": 0, "4": 0, "5": 1}
        assert {item["review"] for item in result["items"]} == {"5 stars", "2 stars"}

    def test_rating_filters_only_narrow_the_list(self, db_session, reviewed, sample_hotel):
        service = ReportService(db_session)

        exact = service.hotel_feedback(sample_hotel.id, rating=2)
        assert [item["rating"] for item in exact["items"]] == [2]
        assert exact["statistics"]["total_reviews"] == 2
        assert service.hotel_feedback(sample_hotel.id, min_rating=4)["total"] == 1
        assert service.hotel_feedback(sample_hotel.id, category=ServiceCategory.SPA)["total"] == 0

    def test_unreviewed_bookings_excluded(self, db_session, sample_booking, sample_provider):
        result = ReportService(db_session).provider_feedback(sample_provider.id)
        assert result["total"] == 0
        assert result["statistics"]["average_rating"] == 0.0

    def test_platform_feedback_by_hotel(self, db_session, reviewed, other_hotel):
        service = ReportService(db_session)
        assert service.platform_feedback()["total"] == 2
        assert service.platform_feedback(other_hotel.id)["total"] == 0
