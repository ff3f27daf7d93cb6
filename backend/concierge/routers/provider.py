"""
服务商路由
服务商维护自己的服务目录、处理预订、查看收入
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from concierge.database import get_db
from concierge.models.domain import BookingStatus, ServiceCategory, User
from concierge.models.schemas import (
    BookingResponse, BookingStatusUpdate, FeedbackResponse, ServiceCreate, ServiceResponse, ServiceUpdate,
)
from concierge.security.auth import require_provider
from concierge.services.booking_service import BookingService
from concierge.services.catalog_service import CatalogService
from concierge.services.pagination import serialize_page
from concierge.services.report_service import ReportService

router = APIRouter(prefix="/api/service", tags=["服务商"])


@router.get("/dashboard")
def get_dashboard(current_user: User = Depends(require_provider), db: Session = Depends(get_db)):
    """服务商仪表盘"""
    return ReportService(db).provider_dashboard(current_user.service_provider_id)


# ============== 服务目录 ==============

@router.get("/services", response_model=List[ServiceResponse])
def list_services(
    category: Optional[ServiceCategory] = None,
    include_inactive: bool = False,
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    return CatalogService(db).list_provider_services(current_user.service_provider_id, category, include_inactive)


@router.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: ServiceCreate,
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    """发布服务，类别必须是服务商已开通的类别"""
    return CatalogService(db).create_service(current_user.service_provider_id, data)


@router.get("/services/{service_id}", response_model=ServiceResponse)
def get_service(service_id: int, current_user: User = Depends(require_provider), db: Session = Depends(get_db)):
    return CatalogService(db).get_provider_service(current_user.service_provider_id, service_id)


@router.put("/services/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: int,
    data: ServiceUpdate,
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    return CatalogService(db).update_service(current_user.service_provider_id, service_id, data)


@router.delete("/services/{service_id}")
def delete_service(service_id: int, current_user: User = Depends(require_provider), db: Session = Depends(get_db)):
    """下线服务（软删除）"""
    service = CatalogService(db).deactivate_service(current_user.service_provider_id, service_id)
    return {"success": True, "message": "服务已删除", "service_id": service.id}


@router.patch("/services/{service_id}/toggle-availability", response_model=ServiceResponse)
def toggle_availability(
    service_id: int,
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    return CatalogService(db).toggle_availability(current_user.service_provider_id, service_id)


# ============== 预订 ==============

@router.get("/bookings")
def list_bookings(
    status: Optional[BookingStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    result = BookingService(db).list_provider_bookings(
        current_user.service_provider_id, status, start_date, end_date, page, limit,
    )
    return serialize_page(result, BookingResponse)


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    """推进预订状态"""
    return BookingService(db).update_status_by_provider(
        current_user.service_provider_id, booking_id, data.status, current_user.id, data.notes,
    )


@router.get("/earnings")
def get_earnings(
    time_range: str = "month",
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    """收入统计，time_range 为 week/month/quarter/year"""
    return ReportService(db).provider_earnings(current_user.service_provider_id, time_range)


@router.get("/feedback")
def list_feedback(
    rating: Optional[int] = Query(None, ge=1, le=5),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    category: Optional[ServiceCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    result = ReportService(db).provider_feedback(
        current_user.service_provider_id,
        rating=rating, min_rating=min_rating, category=category, page=page, limit=limit,
    )
    return serialize_page(result, FeedbackResponse)
