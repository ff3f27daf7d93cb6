"""
服务目录
宾客浏览酒店与服务（展示加价后的价格），服务商维护自己的服务
"""
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from concierge.errors import BadRequestError, NotFoundError
from concierge.models.domain import Hotel, Service, ServiceCategory, ServiceProvider
from concierge.models.schemas import ServiceCreate, ServiceUpdate
from concierge.services.pricing import guest_price, money, resolve_markup


class CatalogService:
    """服务目录"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 宾客侧 ==============

    def list_public_hotels(self, search: Optional[str] = None) -> List[Hotel]:
        query = self.db.query(Hotel).filter(Hotel.is_active == True, Hotel.is_published == True)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Hotel.name.ilike(pattern), Hotel.city.ilike(pattern)))
        return query.order_by(Hotel.name).all()

    def get_public_hotel(self, hotel_id: int) -> Hotel:
        hotel = self.db.query(Hotel).filter(
            Hotel.id == hotel_id, Hotel.is_active == True, Hotel.is_published == True,
        ).first()
        if not hotel:
            raise NotFoundError("酒店不存在")
        return hotel

    def _bookable_services(self, hotel_id: int):
        return self.db.query(Service).join(ServiceProvider, Service.provider_id == ServiceProvider.id).filter(
            Service.hotel_id == hotel_id,
            Service.is_active == True,
            Service.is_available == True,
            Service.is_approved == True,
            ServiceProvider.is_active == True,
        )

    def to_guest_view(self, service: Service, hotel: Hotel) -> dict:
        markup = resolve_markup(hotel, service.provider, service.category)
        return {
            "id": service.id,
            "name": service.name,
            "description": service.description,
            "category": service.category,
            "subcategory": service.subcategory,
            "duration_minutes": service.duration_minutes,
            "price": float(guest_price(service.base_price, markup)),
            "currency": service.currency,
            "provider_id": service.provider_id,
            "provider_name": service.provider.business_name,
            "average_rating": float(service.average_rating or 0),
        }

    def list_hotel_services(self, hotel_id: int, category: Optional[ServiceCategory] = None) -> List[dict]:
        hotel = self.get_public_hotel(hotel_id)
        query = self._bookable_services(hotel_id)
        if category:
            query = query.filter(Service.category == category)
        return [self.to_guest_view(s, hotel) for s in query.order_by(Service.category, Service.name).all()]

    def get_public_service(self, service_id: int) -> dict:
        service = self.db.query(Service).filter(Service.id == service_id).first()
        if not service or not service.is_active or not service.provider.is_active:
            raise NotFoundError("服务不存在")
        return self.to_guest_view(service, service.hotel)

    def hotel_categories(self, hotel_id: int) -> List[str]:
        """酒店当前有可预订服务的类别"""
        rows = self._bookable_services(hotel_id).with_entities(Service.category).distinct().all()
        return sorted(row[0].value for row in rows)

    # ============== 服务商侧 ==============

    def _get_provider(self, provider_id: int) -> ServiceProvider:
        provider = self.db.query(ServiceProvider).filter(ServiceProvider.id == provider_id).first()
        if not provider:
            raise NotFoundError("服务商不存在")
        return provider

    def list_provider_services(self, provider_id: int, category: Optional[ServiceCategory] = None,
                               include_inactive: bool = False) -> List[Service]:
        query = self.db.query(Service).filter(Service.provider_id == provider_id)
        if category:
            query = query.filter(Service.category == category)
        if not include_inactive:
            query = query.filter(Service.is_active == True)
        return query.order_by(Service.created_at.desc()).all()

    def get_provider_service(self, provider_id: int, service_id: int) -> Service:
        service = self.db.query(Service).filter(
            Service.id == service_id, Service.provider_id == provider_id,
        ).first()
        if not service:
            raise NotFoundError("服务不存在")
        return service

    def create_service(self, provider_id: int, data: ServiceCreate) -> Service:
        provider = self._get_provider(provider_id)
        if not provider.is_active:
            raise BadRequestError("服务商已停用，不能发布服务")
        if data.category.value not in (provider.categories or []):
            raise BadRequestError(f"服务商未开通 {data.category.value} 类别")

        fields = data.model_dump()
        fields["base_price"] = money(fields["base_price"])
        service = Service(
            provider_id=provider.id,
            hotel_id=provider.hotel_id,
            currency=provider.hotel.currency if provider.hotel else "EGP",
            **fields,
        )
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        return service

    def update_service(self, provider_id: int, service_id: int, data: ServiceUpdate) -> Service:
        service = self.get_provider_service(provider_id, service_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "base_price" and value is not None:
                value = money(value)
            setattr(service, field, value)
        self.db.commit()
        self.db.refresh(service)
        return service

    def deactivate_service(self, provider_id: int, service_id: int) -> Service:
        service = self.get_provider_service(provider_id, service_id)
        service.is_active = False
        service.is_available = False
        self.db.commit()
        self.db.refresh(service)
        return service

    def toggle_availability(self, provider_id: int, service_id: int) -> Service:
        service = self.get_provider_service(provider_id, service_id)
        if not service.is_active:
            raise BadRequestError("服务已删除，不能上架")
        service.is_available = not service.is_available
        self.db.commit()
        self.db.refresh(service)
        return service
