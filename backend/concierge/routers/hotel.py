"""
酒店管理路由
仅酒店管理员可访问，所有数据限定在管理员所属酒店
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from concierge.database import get_db
from concierge.models.domain import BookingStatus, ServiceCategory, User
from concierge.models.schemas import (
    BookingResponse, FeedbackResponse, HotelProfileUpdate, HotelResponse, MarkupSettingsUpdate,
    ProviderCategoriesUpdate, ProviderCreate, ProviderMarkupUpdate, ProviderResponse,
    ProviderUpdate, ProviderVerify, ServiceResponse, UserResponse,
)
from concierge.security.auth import require_hotel_admin
from concierge.services.catalog_service import CatalogService
from concierge.services.hotel_service import PROVIDER_STATUS_FILTERS, HotelService
from concierge.services.pagination import serialize_page
from concierge.services.report_service import ReportService

router = APIRouter(prefix="/api/hotel", tags=["酒店管理"])


# ============== 酒店资料 ==============

@router.get("/profile", response_model=HotelResponse)
def get_profile(current_user: User = Depends(require_hotel_admin), db: Session = Depends(get_db)):
    return HotelService(db).get_hotel(current_user.hotel_id)


@router.put("/profile", response_model=HotelResponse)
def update_profile(
    data: HotelProfileUpdate,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    return HotelService(db).update_profile(current_user.hotel_id, data)


@router.get("/dashboard")
def get_dashboard(current_user: User = Depends(require_hotel_admin), db: Session = Depends(get_db)):
    """酒店仪表盘"""
    return ReportService(db).hotel_dashboard(current_user.hotel_id)


# ============== 服务商 ==============

@router.get("/service-providers")
def list_providers(
    status: Optional[str] = Query(None, pattern="^(" + "|".join(PROVIDER_STATUS_FILTERS) + ")$"),
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """服务商列表"""
    result = HotelService(db).list_providers(current_user.hotel_id, status, category, page, limit)
    return serialize_page(result, ProviderResponse)


@router.get("/service-providers/{provider_id}")
def get_provider(
    provider_id: int,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """服务商详情、服务列表和预订指标"""
    provider = HotelService(db).get_provider(current_user.hotel_id, provider_id)
    services = CatalogService(db).list_provider_services(provider.id, include_inactive=True)
    return {
        "provider": ProviderResponse.model_validate(provider),
        "services": [ServiceResponse.model_validate(s) for s in services],
        "metrics": ReportService(db).provider_metrics(provider.id),
    }


@router.post("/service-providers", status_code=status.HTTP_201_CREATED)
def create_provider(
    data: ProviderCreate,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """创建服务商及其登录账号；未提供密码时返回一次性的临时密码"""
    provider, temporary_password = HotelService(db).create_provider(current_user, data)
    result = {"provider": ProviderResponse.model_validate(provider)}
    if temporary_password:
        result["temporary_password"] = temporary_password
    return result


@router.put("/service-providers/{provider_id}", response_model=ProviderResponse)
def update_provider(
    provider_id: int,
    data: ProviderUpdate,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    return HotelService(db).update_provider(current_user.hotel_id, provider_id, data)


@router.put("/service-providers/{provider_id}/verify", response_model=ProviderResponse)
def verify_provider(
    provider_id: int,
    data: ProviderVerify,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """审核服务商"""
    return HotelService(db).verify_provider(current_user, provider_id, data)


@router.put("/service-providers/{provider_id}/markup", response_model=ProviderResponse)
def update_provider_markup(
    provider_id: int,
    data: ProviderMarkupUpdate,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """设置服务商专属加价"""
    return HotelService(db).update_provider_markup(current_user, provider_id, data.percentage, data.notes)


@router.put("/service-providers/{provider_id}/categories", response_model=ProviderResponse)
def update_provider_categories(
    provider_id: int,
    data: ProviderCategoriesUpdate,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    return HotelService(db).update_provider_categories(current_user.hotel_id, provider_id, data.categories)


@router.delete("/service-providers/{provider_id}")
def delete_provider(
    provider_id: int,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """停用服务商（软删除）"""
    provider = HotelService(db).deactivate_provider(current_user.hotel_id, provider_id)
    return {"success": True, "message": "服务商已停用", "provider_id": provider.id}


# ============== 加价设置 ==============

@router.get("/markup-settings")
def get_markup_settings(current_user: User = Depends(require_hotel_admin), db: Session = Depends(get_db)):
    return HotelService(db).get_markup_settings(current_user.hotel_id)


@router.put("/markup-settings")
def update_markup_settings(
    data: MarkupSettingsUpdate,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """修改默认加价和分类加价，分类加价合并到已有设置"""
    return HotelService(db).update_markup_settings(current_user.hotel_id, data)


# ============== 宾客与预订 ==============

@router.get("/users")
def list_guests(
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """本酒店宾客"""
    result = HotelService(db).list_guests(current_user.hotel_id, search, is_active, page, limit)
    return serialize_page(result, UserResponse)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_guest(
    user_id: int,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    return HotelService(db).get_guest(current_user.hotel_id, user_id)


@router.get("/bookings")
def list_bookings(
    status: Optional[BookingStatus] = None,
    category: Optional[ServiceCategory] = None,
    provider_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """本酒店预订"""
    result = HotelService(db).list_bookings(
        current_user.hotel_id, status, category, provider_id, start_date, end_date, page, limit,
    )
    return serialize_page(result, BookingResponse)


@router.get("/analytics/providers")
def provider_analytics(current_user: User = Depends(require_hotel_admin), db: Session = Depends(get_db)):
    """各服务商业绩"""
    return ReportService(db).provider_analytics(current_user.hotel_id)


@router.get("/feedback")
def list_feedback(
    rating: Optional[int] = Query(None, ge=1, le=5),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    category: Optional[ServiceCategory] = None,
    provider_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """本酒店宾客评价及评分统计"""
    result = ReportService(db).hotel_feedback(
        current_user.hotel_id, provider_id,
        rating=rating, min_rating=min_rating, category=category, page=page, limit=limit,
    )
    return serialize_page(result, FeedbackResponse)
