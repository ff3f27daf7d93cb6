"""
定价计算测试
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from concierge.config import settings
from concierge.errors import BadRequestError
from concierge.services.pricing import (
    calculate_price, guest_price, money, resolve_markup, to_minor_units, validate_percentage,
)


def _hotel(default=Decimal("15"), category_markups=None):
    return SimpleNamespace(default_markup=default, category_markups=category_markups or {})


def _provider(markup=None):
    return SimpleNamespace(markup_percentage=markup)


class TestCalculatePrice:

    def test_breakdown(self):
        price = calculate_price(100, 2, 15, platform_fee_percentage=5)

        assert price.total_before_markup == Decimal("200.00")
        assert price.markup_amount == Decimal("30.00")
        assert price.tax_amount == Decimal("0.00")
        assert price.total_amount == Decimal("230.00")
        assert price.provider_earnings == Decimal("200.00")
        assert price.hotel_earnings == Decimal("30.00")
        assert price.platform_fee == Decimal("11.50")

    def test_tax_applies_after_markup(self):
        price = calculate_price("50.00", 1, 10, tax_rate=14, platform_fee_percentage=0)
        # (50 + 5) * 14% = 7.70
        assert price.tax_amount == Decimal("7.70")
        assert price.total_amount == Decimal("62.70")
        assert price.platform_fee == Decimal("0.00")

    def test_rounds_half_up(self):
        price = calculate_price("10.05", 1, 5, platform_fee_percentage=0)
        # 10.05 * 5% = 0.5025 -> 0.50
        assert price.markup_amount == Decimal("0.50")
        price = calculate_price("0.10", 1, 5, platform_fee_percentage=0)
        # 0.005 -> 0.01
        assert price.markup_amount == Decimal("0.01")

    def test_default_platform_fee_from_settings(self):
        price = calculate_price(100, 1, 0)
        assert price.platform_fee == money(Decimal("100") * Decimal(str(settings.PLATFORM_FEE_PERCENTAGE)) / 100)

    def test_zero_markup(self):
        price = calculate_price(80, 1, 0, platform_fee_percentage=0)
        assert price.total_amount == Decimal("80.00")
        assert price.hotel_earnings == Decimal("0.00")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_invalid_quantity(self, quantity):
        with pytest.raises(BadRequestError):
            calculate_price(100, quantity, 15)

    def test_rejects_negative_base_price(self):
        with pytest.raises(BadRequestError):
            calculate_price(-1, 1, 15)

    def test_to_dict_uses_floats(self):
        data = calculate_price(100, 1, 15, platform_fee_percentage=5).to_dict()
        assert data["total_amount"] == 115.0
        assert data["quantity"] == 1


class TestValidatePercentage:

    @pytest.mark.parametrize("value", [0, 15, "37.5", 100])
    def test_accepts_range(self, value):
        assert validate_percentage(value) == Decimal(str(value))

    @pytest.mark.parametrize("value", [-0.01, 100.5, "abc", None, float("nan")])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(BadRequestError):
            validate_percentage(value)


class TestResolveMarkup:

    def test_provider_markup_wins(self):
        hotel = _hotel(category_markups={"laundry": 20})
        assert resolve_markup(hotel, _provider(Decimal("8")), "laundry") == Decimal("8")

    def test_category_markup_over_default(self):
        hotel = _hotel(category_markups={"laundry": 20})
        assert resolve_markup(hotel, _provider(), "laundry") == Decimal("20")
        assert resolve_markup(hotel, _provider(), "spa") == Decimal("15")

    def test_provider_zero_markup_is_respected(self):
        assert resolve_markup(_hotel(), _provider(Decimal("0")), "laundry") == Decimal("0")

    def test_falls_back_to_platform_default(self):
        assert resolve_markup(_hotel(default=None), None, None) == Decimal(str(settings.DEFAULT_MARKUP_PERCENTAGE))


def test_guest_price():
    assert guest_price(100, 15) == Decimal("115.00")
    assert guest_price("19.99", Decimal("12.5")) == Decimal("22.49")


def test_to_minor_units():
    assert to_minor_units(Decimal("230.00")) == 23000
    assert to_minor_units("12.345") == 1235
