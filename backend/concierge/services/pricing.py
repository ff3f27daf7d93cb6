"""
定价服务 - 加价与佣金计算

加价取值优先级：服务商单独加价 > 酒店按类别加价 > 酒店默认加价 > 平台默认加价
所有金额使用 Decimal 计算，逐项四舍五入到分
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
from concierge.config import settings
from concierge.errors import BadRequestError

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Number) -> Decimal:
    """四舍五入到分"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_percentage(value: Optional[Number], label: str = "加价百分比") -> Decimal:
    """百分比必须在 [0, 100] 区间内"""
    if value is None:
        raise BadRequestError(f"{label}不能为空")
    try:
        pct = to_decimal(value)
    except (ArithmeticError, ValueError):
        raise BadRequestError(f"{label}必须是数字")
    if not pct.is_finite() or pct < 0 or pct > HUNDRED:
        raise BadRequestError(f"{label}必须在 0 到 100 之间")
    return pct


@dataclass(frozen=True)
class PriceBreakdown:
    """一笔预订的价格拆分"""
    base_price: Decimal
    quantity: int
    total_before_markup: Decimal
    markup_percentage: Decimal
    markup_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    provider_earnings: Decimal
    hotel_earnings: Decimal
    platform_fee: Decimal

    def to_dict(self) -> dict:
        return {k: (float(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}


def resolve_markup(hotel, provider=None, category: Optional[str] = None) -> Decimal:
    """确定一项服务适用的加价百分比"""
    if provider is not None and provider.markup_percentage is not None:
        return to_decimal(provider.markup_percentage)

    if hotel is not None:
        category_key = getattr(category, "value", category)
        overrides = hotel.category_markups or {}
        if category_key and category_key in overrides and overrides[category_key] is not None:
            return to_decimal(overrides[category_key])
        if hotel.default_markup is not None:
            return to_decimal(hotel.default_markup)

    return to_decimal(settings.DEFAULT_MARKUP_PERCENTAGE)


def guest_price(base_price: Number, markup_percentage: Number) -> Decimal:
    """宾客看到的单价"""
    base = to_decimal(base_price)
    return money(base + base * to_decimal(markup_percentage) / HUNDRED)


def calculate_price(
    base_price: Number,
    quantity: int,
    markup_percentage: Number,
    tax_rate: Number = 0,
    platform_fee_percentage: Optional[Number] = None,
) -> PriceBreakdown:
    """
    计算价格拆分

    服务商收入为加价前金额，酒店收入为加价金额，平台服务费按总额比例计提。
    """
    if quantity is None or int(quantity) < 1:
        raise BadRequestError("数量必须大于等于 1")
    base = to_decimal(base_price)
    if base < 0:
        raise BadRequestError("基础价格不能为负数")
    markup = validate_percentage(markup_percentage)
    tax = validate_percentage(tax_rate, "税率")
    fee_pct = validate_percentage(
        settings.PLATFORM_FEE_PERCENTAGE if platform_fee_percentage is None else platform_fee_percentage,
        "平台服务费比例",
    )

    subtotal = money(base * int(quantity))
    markup_amount = money(subtotal * markup / HUNDRED)
    tax_amount = money((subtotal + markup_amount) * tax / HUNDRED)
    total = money(subtotal + markup_amount + tax_amount)

    return PriceBreakdown(
        base_price=money(base),
        quantity=int(quantity),
        total_before_markup=subtotal,
        markup_percentage=markup,
        markup_amount=markup_amount,
        tax_rate=tax,
        tax_amount=tax_amount,
        total_amount=total,
        provider_earnings=subtotal,
        hotel_earnings=markup_amount,
        platform_fee=money(total * fee_pct / HUNDRED),
    )


def to_minor_units(amount: Number) -> int:
    """金额转为最小货币单位"""
    return int((money(amount) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))
