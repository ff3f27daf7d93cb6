"""
超级管理员路由
平台级的酒店、管理员、用户管理，酒店结算、评价和统计
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from concierge.database import get_db
from concierge.models.domain import ServiceCategory, User, UserRole
from concierge.models.schemas import (
    AssignAdminRequest, FeedbackResponse, HotelCreate, HotelResponse, HotelUpdate, SettlementCreate,
    SettlementResponse, UserResponse, UserStatusUpdate,
)
from concierge.security.auth import require_superadmin
from concierge.services.pagination import serialize_page
from concierge.services.report_service import ReportService
from concierge.services.settlement_service import SettlementService
from concierge.services.superadmin_service import SuperadminService
from concierge.system.checkout_scheduler import checkout_scheduler

router = APIRouter(prefix="/api/superadmin", tags=["平台管理"])


@router.get("/dashboard")
def get_dashboard(current_user: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    """平台仪表盘"""
    return ReportService(db).superadmin_dashboard()


# ============== 酒店 ==============

@router.get("/hotels")
def list_hotels(
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    result = SuperadminService(db).list_hotels(search, is_active, page, limit)
    return serialize_page(result, HotelResponse)


@router.get("/hotels/{hotel_id}")
def get_hotel(hotel_id: int, current_user: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    """酒店详情，含管理员和各项数量"""
    detail = SuperadminService(db).hotel_detail(hotel_id)
    return {
        "hotel": HotelResponse.model_validate(detail["hotel"]),
        "admin": UserResponse.model_validate(detail["admin"]) if detail["admin"] else None,
        "counts": detail["counts"],
    }


@router.post("/hotels", response_model=HotelResponse, status_code=status.HTTP_201_CREATED)
def create_hotel(
    data: HotelCreate,
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    """创建酒店，可同时创建酒店管理员"""
    return SuperadminService(db).create_hotel(data)


@router.put("/hotels/{hotel_id}", response_model=HotelResponse)
def update_hotel(
    hotel_id: int,
    data: HotelUpdate,
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    return SuperadminService(db).update_hotel(hotel_id, data)


@router.delete("/hotels/{hotel_id}", response_model=HotelResponse)
def delete_hotel(hotel_id: int, current_user: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    """停业并下架（软删除）"""
    return SuperadminService(db).deactivate_hotel(hotel_id)


@router.post("/hotels/{hotel_id}/assign-admin", response_model=UserResponse)
def assign_admin(
    hotel_id: int,
    data: AssignAdminRequest,
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    return SuperadminService(db).assign_admin(hotel_id, data.user_id, data.admin)


@router.get("/hotel-admins", response_model=List[UserResponse])
def list_hotel_admins(current_user: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    return SuperadminService(db).list_hotel_admins()


# ============== 用户 ==============

@router.get("/users")
def list_users(
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    result = SuperadminService(db).list_users(role, is_active, search, page, limit)
    return serialize_page(result, UserResponse)


@router.patch("/users/{user_id}/status", response_model=UserResponse)
def set_user_status(
    user_id: int,
    data: UserStatusUpdate,
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    """启用/停用账号，不能停用自己"""
    return SuperadminService(db).set_user_status(current_user, user_id, data.is_active, data.reason)


# ============== 酒店结算 ==============

@router.get("/payment-analytics")
def payment_analytics(
    hotel_id: Optional[int] = None,
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    """各酒店待结算金额（已完成且已付款、尚未结算的预订）"""
    return SettlementService(db).payment_analytics(hotel_id)


@router.post("/mark-hotel-payment", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
def mark_hotel_payment(
    data: SettlementCreate,
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    """登记向酒店的打款，结清当前待结算预订"""
    return SettlementService(db).record_settlement(current_user, data)


@router.get("/payment-history")
def payment_history(
    hotel_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    result = SettlementService(db).settlement_history(hotel_id, page, limit)
    return serialize_page(result, SettlementResponse)


# ============== 评价 ==============

@router.get("/feedback")
def list_feedback(
    hotel_id: Optional[int] = None,
    rating: Optional[int] = Query(None, ge=1, le=5),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    category: Optional[ServiceCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    """全平台评价"""
    result = ReportService(db).platform_feedback(
        hotel_id, rating=rating, min_rating=min_rating, category=category, page=page, limit=limit,
    )
    return serialize_page(result, FeedbackResponse)


# ============== 统计与任务 ==============

@router.get("/analytics/platform")
def platform_analytics(current_user: User = Depends(require_superadmin), db: Session = Depends(get_db)):
    return ReportService(db).platform_analytics()


@router.get("/scheduler/status")
def scheduler_status(current_user: User = Depends(require_superadmin)):
    """退房停用任务状态"""
    return checkout_scheduler.get_status()


@router.post("/scheduler/checkout/run")
def run_checkout(current_user: User = Depends(require_superadmin)):
    """手动执行一次退房停用"""
    results = checkout_scheduler.trigger()
    return {
        "success": True,
        "deactivated": sum(1 for r in results if r["status"] == "deactivated"),
        "results": results,
    }
