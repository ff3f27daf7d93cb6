from concierge_core.payments.gateway import (
    IPaymentGateway,
    PaymentGatewayRegistry,
    PaymentIntent,
    RefundResult,
    WebhookVerificationError,
)

__all__ = [
    "IPaymentGateway",
    "PaymentGatewayRegistry",
    "PaymentIntent",
    "RefundResult",
    "WebhookVerificationError",
]
