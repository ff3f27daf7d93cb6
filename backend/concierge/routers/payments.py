"""
支付路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from concierge.database import get_db
from concierge.models.domain import User
from concierge.models.schemas import (
    BookingResponse, PaymentConfirm, PaymentIntentCreate, PaymentIntentResponse, RefundRequest,
)
from concierge.security.auth import require_guest, require_hotel_admin, require_provider
from concierge.services.payment_service import PaymentService

router = APIRouter(prefix="/api/payments", tags=["支付"])


@router.post("/create-intent", response_model=PaymentIntentResponse)
def create_intent(
    data: PaymentIntentCreate,
    current_user: User = Depends(require_guest),
    db: Session = Depends(get_db),
):
    """为待确认的预订创建支付意图"""
    return PaymentService(db).create_intent(current_user, data.booking_id)


@router.post("/confirm", response_model=BookingResponse)
def confirm_payment(
    data: PaymentConfirm,
    current_user: User = Depends(require_guest),
    db: Session = Depends(get_db),
):
    return PaymentService(db).confirm(current_user, data.intent_id, data.booking_id)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """网关回调，签名基于原始请求体校验

    处理过程会同步发送邮件和运营 Webhook，放到线程池执行。
    """
    payload = await request.body()
    return await run_in_threadpool(PaymentService(db).handle_webhook, payload, x_signature)


@router.post("/refund", response_model=BookingResponse)
def refund(
    data: RefundRequest,
    current_user: User = Depends(require_hotel_admin),
    db: Session = Depends(get_db),
):
    """酒店管理员退款"""
    return PaymentService(db).refund(current_user, data.booking_id, data.amount, data.reason)


@router.get("/provider/payout-summary")
def payout_summary(
    time_range: str = "30days",
    current_user: User = Depends(require_provider),
    db: Session = Depends(get_db),
):
    return PaymentService(db).payout_summary(current_user.service_provider_id, time_range)
