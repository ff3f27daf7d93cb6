"""
报表服务 - 经营数据统计
酒店仪表盘、服务商收入、平台总览，统计口径以已完成预订为准
"""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, extract, func
from sqlalchemy.orm import Session

from concierge.database import utcnow
from concierge.errors import BadRequestError, NotFoundError
from concierge.models.domain import (
    Booking, BookingStatus, Hotel, Service, ServiceProvider, User, UserRole, VerificationStatus,
)
from concierge.services.pagination import paginate
from concierge.services.pricing import money

EARNINGS_RANGES = {"week": 7, "month": 30, "quarter": 90, "year": 365}
PENDING_EARNING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ASSIGNED, BookingStatus.IN_PROGRESS)


def _amount(value) -> float:
    return float(money(value or 0))


def _month_start(months_back: int, today: Optional[date] = None) -> datetime:
    """往前 months_back 个月的月初"""
    today = today or utcnow().date()
    year, month = today.year, today.month - months_back
    while month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1)


class ReportService:
    """报表服务"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 通用聚合 ==============

    def revenue_stats(self, *criteria) -> dict:
        """已完成预订的收入统计"""
        row = self.db.query(
            func.coalesce(func.sum(Booking.total_amount), 0),
            func.coalesce(func.sum(Booking.provider_earnings), 0),
            func.coalesce(func.sum(Booking.hotel_earnings), 0),
            func.coalesce(func.sum(Booking.platform_fee), 0),
            func.count(Booking.id),
        ).filter(Booking.status == BookingStatus.COMPLETED, *criteria).one()
        total, provider, hotel, platform, count = row
        return {
            "total_revenue": _amount(total),
            "provider_earnings": _amount(provider),
            "hotel_earnings": _amount(hotel),
            "platform_fees": _amount(platform),
            "total_bookings": count,
            "average_order_value": _amount(Decimal(str(total)) / count) if count else 0.0,
        }

    def status_breakdown(self, *criteria) -> dict:
        rows = self.db.query(Booking.status, func.count(Booking.id)).filter(*criteria).group_by(Booking.status).all()
        breakdown = {status.value: 0 for status in BookingStatus}
        for status, count in rows:
            breakdown[status.value] = count
        return breakdown

    def monthly_trends(self, *criteria, months: int = 12) -> List[dict]:
        """最近若干月的预订量与已完成收入，按时间升序"""
        year = extract("year", Booking.created_at)
        month = extract("month", Booking.created_at)
        completed_revenue = func.sum(case(
            (Booking.status == BookingStatus.COMPLETED, Booking.total_amount), else_=0,
        ))
        rows = self.db.query(
            year, month, func.count(Booking.id), func.coalesce(completed_revenue, 0),
        ).filter(
            Booking.created_at >= _month_start(months - 1), *criteria,
        ).group_by(year, month).order_by(year, month).all()
        return [
            {"year": int(y), "month": int(m), "bookings": count, "revenue": _amount(revenue)}
            for y, m, count, revenue in rows
        ]

    def category_performance(self, *criteria) -> List[dict]:
        rows = self.db.query(
            Booking.service_category,
            func.count(Booking.id),
            func.coalesce(func.sum(Booking.total_amount), 0),
            func.coalesce(func.sum(Booking.provider_earnings), 0),
        ).filter(
            Booking.status == BookingStatus.COMPLETED, *criteria,
        ).group_by(Booking.service_category).all()
        result = [
            {
                "category": category.value if category else None,
                "bookings": count,
                "revenue": _amount(revenue),
                "provider_earnings": _amount(earnings),
                "average_order_value": _amount(Decimal(str(revenue)) / count) if count else 0.0,
            }
            for category, count, revenue, earnings in rows
        ]
        return sorted(result, key=lambda r: r["revenue"], reverse=True)

    # ============== 评价 ==============

    def feedback(self, *criteria, rating: Optional[int] = None, min_rating: Optional[int] = None,
                 category=None, page: int = 1, limit: int = 20) -> dict:
        """
        已评价预订列表及评分统计

        criteria 限定范围（酒店/服务商），rating、min_rating、category 只作用于列表，
        统计始终覆盖整个范围。
        """
        reviewed = (Booking.rating.isnot(None), *criteria)

        query = self.db.query(Booking).filter(*reviewed)
        if rating is not None:
            query = query.filter(Booking.rating == rating)
        if min_rating is not None:
            query = query.filter(Booking.rating >= min_rating)
        if category is not None:
            query = query.filter(Booking.service_category == category)
        result = paginate(query.order_by(Booking.reviewed_at.desc(), Booking.id.desc()), page, limit)
        result["items"] = [self._feedback_item(b) for b in result["items"]]

        distribution = {str(stars): 0 for stars in range(1, 6)}
        for stars, count in self.db.query(Booking.rating, func.count(Booking.id)).filter(
            *reviewed,
        ).group_by(Booking.rating).all():
            distribution[str(stars)] = count
        total_reviews = sum(distribution.values())
        average = self.db.query(func.avg(Booking.rating)).filter(*reviewed).scalar()
        result["statistics"] = {
            "total_reviews": total_reviews,
            "average_rating": round(float(average), 2) if average is not None else 0.0,
            "rating_distribution": distribution,
        }
        return result

    def hotel_feedback(self, hotel_id: int, provider_id: Optional[int] = None, **filters) -> dict:
        criteria = [Booking.hotel_id == hotel_id]
        if provider_id is not None:
            criteria.append(Booking.provider_id == provider_id)
        return self.feedback(*criteria, **filters)

    def provider_feedback(self, provider_id: int, **filters) -> dict:
        return self.feedback(Booking.provider_id == provider_id, **filters)

    def platform_feedback(self, hotel_id: Optional[int] = None, **filters) -> dict:
        criteria = [Booking.hotel_id == hotel_id] if hotel_id is not None else []
        return self.feedback(*criteria, **filters)

    @staticmethod
    def _feedback_item(booking: Booking) -> dict:
        return {
            "booking_id": booking.id,
            "booking_number": booking.booking_number,
            "hotel_id": booking.hotel_id,
            "provider_id": booking.provider_id,
            "service_id": booking.service_id,
            "service_name": booking.service_name,
            "service_category": booking.service_category,
            "guest_name": booking.guest_name,
            "rating": booking.rating,
            "review": booking.review,
            "reviewed_at": booking.reviewed_at,
        }

    # ============== 酒店 ==============

    def hotel_dashboard(self, hotel_id: int) -> dict:
        hotel = self.db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if not hotel:
            raise NotFoundError("酒店不存在")
        in_hotel = Booking.hotel_id == hotel_id

        providers = self.db.query(ServiceProvider).filter(ServiceProvider.hotel_id == hotel_id)
        services = self.db.query(Service).filter(Service.hotel_id == hotel_id)
        counts = {
            "total_providers": providers.count(),
            "active_providers": providers.filter(
                ServiceProvider.is_active == True, ServiceProvider.is_verified == True,
            ).count(),
            "pending_provider_approvals": providers.filter(
                ServiceProvider.is_active == True,
                ServiceProvider.verification_status == VerificationStatus.PENDING,
            ).count(),
            "total_services": services.count(),
            "active_services": services.filter(Service.is_active == True, Service.is_approved == True).count(),
            "total_bookings": self.db.query(Booking).filter(in_hotel).count(),
            "total_guests": self.db.query(User).filter(
                User.role == UserRole.GUEST, User.selected_hotel_id == hotel_id,
            ).count(),
        }

        recent_bookings = self.db.query(Booking).filter(in_hotel).order_by(Booking.created_at.desc()).limit(10).all()
        recent_guests = self.db.query(User).filter(
            User.role == UserRole.GUEST, User.selected_hotel_id == hotel_id,
        ).order_by(User.created_at.desc()).limit(5).all()

        return {
            "hotel": {"id": hotel.id, "name": hotel.name, "currency": hotel.currency},
            "counts": counts,
            "recent_bookings": [self._booking_summary(b) for b in recent_bookings],
            "revenue": self.revenue_stats(in_hotel),
            "status_breakdown": self.status_breakdown(in_hotel),
            "top_services": self.top_services(hotel_id),
            "monthly_trends": self.monthly_trends(in_hotel),
            "category_performance": self.category_performance(in_hotel),
            "services_by_category": self.services_by_category(hotel_id),
            "recent_guests": [
                {"id": u.id, "name": u.full_name, "email": u.email, "room_number": u.room_number,
                 "is_active": u.is_active, "created_at": u.created_at}
                for u in recent_guests
            ],
        }

    @staticmethod
    def _booking_summary(booking: Booking) -> dict:
        return {
            "id": booking.id,
            "booking_number": booking.booking_number,
            "guest_name": booking.guest_name,
            "service_name": booking.service_name,
            "category": booking.service_category.value if booking.service_category else None,
            "status": booking.status.value,
            "total_amount": _amount(booking.total_amount),
            "preferred_date": booking.preferred_date,
            "created_at": booking.created_at,
        }

    def top_services(self, hotel_id: int, limit: int = 5) -> List[dict]:
        rows = self.db.query(
            Booking.service_id,
            Booking.service_name,
            func.count(Booking.id).label("bookings"),
            func.coalesce(func.sum(case(
                (Booking.status == BookingStatus.COMPLETED, Booking.total_amount), else_=0,
            )), 0),
        ).filter(Booking.hotel_id == hotel_id).group_by(
            Booking.service_id, Booking.service_name,
        ).order_by(func.count(Booking.id).desc()).limit(limit).all()
        return [
            {"service_id": sid, "service_name": name, "bookings": count, "revenue": _amount(revenue)}
            for sid, name, count, revenue in rows
        ]

    def services_by_category(self, hotel_id: int) -> List[dict]:
        rows = self.db.query(
            Service.category,
            func.count(Service.id),
            func.avg(Service.base_price),
            func.coalesce(func.sum(Service.total_bookings), 0),
        ).filter(Service.hotel_id == hotel_id, Service.is_active == True).group_by(Service.category).all()
        return [
            {"category": category.value, "services": count,
             "average_base_price": _amount(Decimal(str(avg_price or 0))), "bookings": int(bookings)}
            for category, count, avg_price, bookings in rows
        ]

    def provider_metrics(self, provider_id: int) -> dict:
        """单个服务商的预订指标和月度趋势"""
        of_provider = Booking.provider_id == provider_id
        revenue = self.revenue_stats(of_provider)
        avg_rating = self.db.query(func.avg(Booking.rating)).filter(
            of_provider, Booking.rating.isnot(None),
        ).scalar()
        return {
            "total_bookings": self.db.query(Booking).filter(of_provider).count(),
            "completed_bookings": revenue["total_bookings"],
            "total_revenue": revenue["total_revenue"],
            "provider_earnings": revenue["provider_earnings"],
            "hotel_commission": revenue["hotel_earnings"],
            "average_rating": round(float(avg_rating), 2) if avg_rating is not None else 0.0,
            "status_breakdown": self.status_breakdown(of_provider),
            "monthly_trends": self.monthly_trends(of_provider, months=6),
        }

    def provider_analytics(self, hotel_id: int) -> List[dict]:
        """酒店内各服务商的业绩对比"""
        completed = case((Booking.status == BookingStatus.COMPLETED, 1), else_=0)

        def completed_amount(col):
            return func.coalesce(func.sum(case(
                (Booking.status == BookingStatus.COMPLETED, col), else_=0,
            )), 0)

        rows = self.db.query(
            ServiceProvider.id,
            ServiceProvider.business_name,
            func.count(Booking.id),
            func.coalesce(func.sum(completed), 0),
            completed_amount(Booking.total_amount),
            completed_amount(Booking.provider_earnings),
            completed_amount(Booking.hotel_earnings),
            func.avg(Booking.rating),
        ).outerjoin(Booking, Booking.provider_id == ServiceProvider.id).filter(
            ServiceProvider.hotel_id == hotel_id,
        ).group_by(ServiceProvider.id, ServiceProvider.business_name).all()

        result = [
            {
                "provider_id": pid,
                "business_name": name,
                "total_bookings": total,
                "completed_bookings": int(done),
                "total_revenue": _amount(revenue),
                "provider_earnings": _amount(earnings),
                "hotel_commission": _amount(commission),
                "average_rating": round(float(rating), 2) if rating is not None else 0.0,
            }
            for pid, name, total, done, revenue, earnings, commission, rating in rows
        ]
        return sorted(result, key=lambda r: r["total_revenue"], reverse=True)

    # ============== 服务商 ==============

    def provider_dashboard(self, provider_id: int) -> dict:
        of_provider = Booking.provider_id == provider_id
        today = utcnow().date()
        todays = self.db.query(Booking).filter(of_provider, Booking.preferred_date == today).order_by(
            Booking.preferred_time,
        ).all()
        return {
            "status_breakdown": self.status_breakdown(of_provider),
            "today_bookings": [self._booking_summary(b) for b in todays],
            "earnings": self.revenue_stats(of_provider),
            "pending_earnings": self._pending_earnings(provider_id),
            "services": {
                "total": self.db.query(Service).filter(Service.provider_id == provider_id).count(),
                "active": self.db.query(Service).filter(
                    Service.provider_id == provider_id, Service.is_active == True,
                ).count(),
            },
        }

    def _pending_earnings(self, provider_id: int) -> dict:
        total, count = self.db.query(
            func.coalesce(func.sum(Booking.provider_earnings), 0), func.count(Booking.id),
        ).filter(
            Booking.provider_id == provider_id, Booking.status.in_(PENDING_EARNING_STATUSES),
        ).one()
        return {"amount": _amount(total), "bookings": count}

    def provider_earnings(self, provider_id: int, time_range: str = "month") -> dict:
        if time_range not in EARNINGS_RANGES:
            raise BadRequestError("time_range 只能是 week、month、quarter 或 year")
        of_provider = Booking.provider_id == provider_id
        since = utcnow() - timedelta(days=EARNINGS_RANGES[time_range])
        in_period = Booking.completed_at >= since

        period = self.revenue_stats(of_provider, in_period)
        by_category = [
            {
                "category": c["category"],
                "bookings": c["bookings"],
                "earnings": c["provider_earnings"],
                "average_earning": _amount(Decimal(str(c["provider_earnings"])) / c["bookings"]) if c["bookings"] else 0.0,
            }
            for c in self.category_performance(of_provider, in_period)
        ]
        return {
            "time_range": time_range,
            "period": {
                "earnings": period["provider_earnings"],
                "revenue": period["total_revenue"],
                "bookings": period["total_bookings"],
                "average_earning": _amount(Decimal(str(period["provider_earnings"])) / period["total_bookings"])
                if period["total_bookings"] else 0.0,
            },
            "by_category": by_category,
            "monthly": self.monthly_trends(of_provider),
            "all_time": self.revenue_stats(of_provider),
            "pending": self._pending_earnings(provider_id),
        }

    # ============== 平台 ==============

    def superadmin_dashboard(self) -> dict:
        hotels = self.db.query(Hotel)
        services = self.db.query(Service)
        users = self.db.query(User)
        counts = {
            "total_hotels": hotels.count(),
            "active_hotels": hotels.filter(Hotel.is_active == True).count(),
            "total_services": services.count(),
            "active_services": services.filter(Service.is_active == True).count(),
            "total_bookings": self.db.query(Booking).count(),
            "hotel_admins": users.filter(User.role == UserRole.HOTEL).count(),
            "service_providers": self.db.query(ServiceProvider).count(),
            "guests": users.filter(User.role == UserRole.GUEST).count(),
            "active_guests": users.filter(User.role == UserRole.GUEST, User.is_active == True).count(),
        }
        recent = self.db.query(Booking).order_by(Booking.created_at.desc()).limit(10).all()
        revenue = self.revenue_stats()

        return {
            "counts": counts,
            "recent_bookings": [self._booking_summary(b) for b in recent],
            "revenue": revenue,
            "hotel_growth": self.hotel_growth(),
            "top_hotels": self.revenue_by_hotel(limit=5),
            "category_distribution": self.category_performance(),
            "geographic_distribution": self.hotels_by_country(),
            "health": self._health(counts),
        }

    def _health(self, counts: dict) -> dict:
        total = counts["total_bookings"]
        completed = self.db.query(Booking).filter(Booking.status == BookingStatus.COMPLETED).count()
        cancelled = self.db.query(Booking).filter(Booking.status == BookingStatus.CANCELLED).count()

        def ratio(part, whole):
            return round(part / whole * 100, 1) if whole else 0.0

        return {
            "active_hotel_rate": ratio(counts["active_hotels"], counts["total_hotels"]),
            "active_service_rate": ratio(counts["active_services"], counts["total_services"]),
            "completion_rate": ratio(completed, total),
            "cancellation_rate": ratio(cancelled, total),
            "active_guest_rate": ratio(counts["active_guests"], counts["guests"]),
        }

    def hotel_growth(self, months: int = 12) -> List[dict]:
        year = extract("year", Hotel.created_at)
        month = extract("month", Hotel.created_at)
        rows = self.db.query(year, month, func.count(Hotel.id)).filter(
            Hotel.created_at >= _month_start(months - 1),
        ).group_by(year, month).order_by(year, month).all()
        return [{"year": int(y), "month": int(m), "new_hotels": count} for y, m, count in rows]

    def revenue_by_hotel(self, limit: Optional[int] = None) -> List[dict]:
        query = self.db.query(
            Hotel.id,
            Hotel.name,
            func.count(Booking.id),
            func.coalesce(func.sum(Booking.total_amount), 0),
            func.coalesce(func.sum(Booking.hotel_earnings), 0),
            func.coalesce(func.sum(Booking.platform_fee), 0),
        ).join(Booking, Booking.hotel_id == Hotel.id).filter(
            Booking.status == BookingStatus.COMPLETED,
        ).group_by(Hotel.id, Hotel.name).order_by(func.sum(Booking.total_amount).desc())
        if limit:
            query = query.limit(limit)
        return [
            {"hotel_id": hid, "hotel_name": name, "bookings": count, "revenue": _amount(revenue),
             "hotel_earnings": _amount(earnings), "platform_fees": _amount(fees)}
            for hid, name, count, revenue, earnings, fees in query.all()
        ]

    def hotels_by_country(self) -> List[dict]:
        rows = self.db.query(Hotel.country, func.count(Hotel.id)).filter(
            Hotel.is_active == True,
        ).group_by(Hotel.country).order_by(func.count(Hotel.id).desc()).all()
        return [{"country": country or "unknown", "hotels": count} for country, count in rows]

    def platform_analytics(self) -> dict:
        return {
            "revenue": self.revenue_stats(),
            "by_hotel": self.revenue_by_hotel(),
            "by_category": self.category_performance(),
            "monthly": self.monthly_trends(),
            "status_distribution": self.status_breakdown(),
        }
