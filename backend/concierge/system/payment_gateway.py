"""
本地支付网关 - 实现 concierge_core 的 IPaymentGateway

不调用任何第三方 SDK：意图 ID 与 client secret 在本地生成，
支付结果由网关回调 webhook 通知，回调使用 HMAC-SHA256 签名。
"""
import hashlib
import hmac
import json
import logging
import secrets
from typing import Any, Dict, Optional

from concierge_core.payments import (
    IPaymentGateway, PaymentIntent, RefundResult, WebhookVerificationError,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class LocalGateway(IPaymentGateway):
    """本地网关"""

    def __init__(self, webhook_secret: str, name: str = "local"):
        if not webhook_secret:
            raise ValueError("webhook_secret is required")
        self._secret = webhook_secret
        self._name = name
        self._intents: Dict[str, PaymentIntent] = {}

    def get_gateway_name(self) -> str:
        return self._name

    def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        if amount <= 0:
            raise ValueError("amount must be positive")
        intent_id = f"pi_{secrets.token_hex(12)}"
        intent = PaymentIntent(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{secrets.token_hex(16)}",
            amount=amount,
            currency=currency.lower(),
            metadata=dict(metadata or {}),
        )
        self._intents[intent_id] = intent
        logger.info(f"Payment intent {intent_id} created for {amount} {currency}")
        return intent

    def retrieve(self, intent_id: str) -> Optional[PaymentIntent]:
        return self._intents.get(intent_id)

    def refund(self, intent_id: str, amount: int) -> RefundResult:
        if amount <= 0:
            raise ValueError("refund amount must be positive")
        refund_id = f"re_{secrets.token_hex(12)}"
        logger.info(f"Refund {refund_id} issued for intent {intent_id}: {amount}")
        return RefundResult(refund_id=refund_id, amount=amount)

    def sign(self, payload: bytes) -> str:
        """为回调负载签名（回调发送方与测试使用）"""
        return compute_signature(self._secret, payload)

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not signature:
            raise WebhookVerificationError("missing signature")
        expected = compute_signature(self._secret, payload)
        if not hmac.compare_digest(expected, signature.strip()):
            logger.warning("Webhook signature mismatch")
            raise WebhookVerificationError("invalid signature")
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WebhookVerificationError(f"invalid payload: {e}")
        if not isinstance(data, dict):
            raise WebhookVerificationError("payload must be an object")
        return data
