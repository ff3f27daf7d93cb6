"""
支付网关接口 - 与具体支付服务商无关的抽象

app 层通过实现 IPaymentGateway 对接具体网关，支付服务只依赖该接口。
金额一律使用最小货币单位（分/piastre）的整数。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class WebhookVerificationError(Exception):
    """Webhook 签名或负载校验失败"""


@dataclass
class PaymentIntent:
    """支付意图"""

    intent_id: str
    client_secret: str
    amount: int
    currency: str
    status: str = "requires_payment"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """退款结果"""

    refund_id: str
    amount: int
    status: str = "succeeded"


class IPaymentGateway(ABC):
    """支付网关接口"""

    @abstractmethod
    def get_gateway_name(self) -> str:
        """网关标识，如 'local'"""

    @abstractmethod
    def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntent:
        """创建支付意图"""

    @abstractmethod
    def retrieve(self, intent_id: str) -> Optional[PaymentIntent]:
        """查询支付意图，不存在时返回 None"""

    @abstractmethod
    def refund(self, intent_id: str, amount: int) -> RefundResult:
        """对已成功的支付发起（部分）退款"""

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """校验 webhook 签名并解析负载

        Raises:
            WebhookVerificationError: 签名缺失、不匹配或负载无法解析
        """


class PaymentGatewayRegistry:
    """支付网关注册表 - 单例模式，第一个注册的网关为默认网关"""

    _instance: Optional["PaymentGatewayRegistry"] = None

    def __new__(cls) -> "PaymentGatewayRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._gateways = {}
            cls._instance._default = None
        return cls._instance

    def register(self, gateway: IPaymentGateway, default: bool = False) -> None:
        name = gateway.get_gateway_name()
        self._gateways[name] = gateway
        if default or self._default is None:
            self._default = name

    def get_gateway(self, name: Optional[str] = None) -> Optional[IPaymentGateway]:
        """获取网关，未指定名称时返回默认网关"""
        key = name or self._default
        if key is None:
            return None
        return self._gateways.get(key)

    def clear(self) -> None:
        """清除所有网关（用于测试）"""
        self._gateways.clear()
        self._default = None
