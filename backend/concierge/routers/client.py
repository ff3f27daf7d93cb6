"""
宾客端路由
公开的酒店与服务浏览，以及宾客本人的预订
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from concierge.database import get_db
from concierge.errors import NotFoundError
from concierge.models.domain import BookingStatus, ServiceCategory, User
from concierge.models.schemas import (
    BookingCancel, BookingCreate, BookingDetailResponse, BookingResponse, BookingReview,
    GuestServiceResponse, PublicHotelResponse,
)
from concierge.security.auth import get_current_user, require_guest
from concierge.services.booking_service import BookingService
from concierge.services.catalog_service import CatalogService
from concierge.services.pagination import serialize_page

router = APIRouter(prefix="/api/client", tags=["宾客端"])


# ============== 公开浏览 ==============

@router.get("/hotels", response_model=List[PublicHotelResponse])
def list_hotels(search: Optional[str] = None, db: Session = Depends(get_db)):
    """营业中且已发布的酒店"""
    return CatalogService(db).list_public_hotels(search)


@router.get("/hotels/{hotel_id}", response_model=PublicHotelResponse)
def get_hotel(hotel_id: int, db: Session = Depends(get_db)):
    return CatalogService(db).get_public_hotel(hotel_id)


@router.get("/hotels/{hotel_id}/services", response_model=List[GuestServiceResponse])
def list_hotel_services(
    hotel_id: int,
    category: Optional[ServiceCategory] = None,
    db: Session = Depends(get_db),
):
    """酒店可预订的服务，价格为加价后的宾客价"""
    return CatalogService(db).list_hotel_services(hotel_id, category)


@router.get("/services/{service_id}", response_model=GuestServiceResponse)
def get_service(service_id: int, db: Session = Depends(get_db)):
    return CatalogService(db).get_public_service(service_id)


# ============== 宾客 ==============

@router.get("/my-hotel")
def get_my_hotel(current_user: User = Depends(require_guest), db: Session = Depends(get_db)):
    """宾客所住酒店及其可用服务类别"""
    if not current_user.selected_hotel_id:
        raise NotFoundError("尚未选择酒店")
    catalog = CatalogService(db)
    hotel = catalog.get_public_hotel(current_user.selected_hotel_id)
    return {
        "hotel": PublicHotelResponse.model_validate(hotel),
        "categories": catalog.hotel_categories(hotel.id),
        "room_number": current_user.room_number,
        "check_in_date": current_user.check_in_date,
        "check_out_date": current_user.check_out_date,
    }


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    current_user: User = Depends(require_guest),
    db: Session = Depends(get_db),
):
    """预订服务"""
    return BookingService(db).create_booking(current_user, data)


@router.get("/bookings")
def list_my_bookings(
    status: Optional[BookingStatus] = None,
    category: Optional[ServiceCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_guest),
    db: Session = Depends(get_db),
):
    """我的预订"""
    result = BookingService(db).list_guest_bookings(current_user.id, status, category, page, limit)
    return serialize_page(result, BookingResponse)


@router.get("/bookings/{booking_id}", response_model=BookingDetailResponse)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """预订详情：宾客本人、所属酒店管理员、服务商或超级管理员可见"""
    return BookingService(db).get_booking_for_user(booking_id, current_user)


@router.put("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    data: BookingCancel,
    current_user: User = Depends(require_guest),
    db: Session = Depends(get_db),
):
    return BookingService(db).cancel_by_guest(current_user, booking_id, data)


@router.post("/bookings/{booking_id}/review", response_model=BookingResponse)
def review_booking(
    booking_id: int,
    data: BookingReview,
    current_user: User = Depends(require_guest),
    db: Session = Depends(get_db),
):
    """评价已完成的预订"""
    return BookingService(db).review(current_user, booking_id, data)
