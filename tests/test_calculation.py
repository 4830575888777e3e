"""
Tests for calculators
"""

import pytest

from shoppingcart.calculation import (
    Calculator,
    DefaultCalculator,
    GrossPriceCalculator,
    get_calculator,
)
from shoppingcart.cart import CartItem
from shoppingcart.config import CartConfig
from shoppingcart.errors import InvalidCalculatorError, UnknownAttributeError


class FlatCalculator(DefaultCalculator):
    """Calculator without tax, used to test dotted-path resolution."""

    def _tax(self, item):
        return super()._tax(item) * 0


def make_item(price, qty=1, tax=0, discount=0, calculator=None):
    item = CartItem.from_attributes(1, "Widget", price, calculator=calculator)
    item.set_quantity(qty)
    item.set_tax_rate(tax)
    item.set_discount_rate(discount)
    return item


class TestDefaultCalculator:
    """Tests for net price calculation."""

    def test_scenario(self):
        """Three items at 10.00 with 10% tax."""
        item = make_item(10.0, qty=3, tax=10)

        assert item.subtotal == 30.0
        assert item.tax == 1.0
        assert item.tax_total == 3.0
        assert item.total == 33.0

    def test_relations(self):
        """Derived amounts stay consistent with each other."""
        item = make_item(19.95, qty=7, tax=19, discount=12.5)

        assert item.price_target == round(item.price - item.discount, 2)
        assert item.price_tax == round(item.price_target + item.tax, 2)
        assert item.subtotal == round(item.price_target * item.qty, 2)
        assert item.total == round(item.subtotal + item.tax_total, 2)
        assert item.price_total == item.total

    def test_full_discount(self):
        """A 100% discount makes the item free."""
        item = make_item(10.0, qty=2, tax=21, discount=100)

        assert item.price_target == 0.0
        assert item.tax == 0.0
        assert item.total == 0.0

    def test_discount_over_hundred_percent_clamps(self):
        """The discounted price never goes below zero."""
        item = make_item(10.0, discount=150)
        assert item.price_target == 0.0

    def test_half_up_rounding(self):
        """Half cents round up."""
        # 0.05 * 10% = 0.005 -> 0.01
        item = make_item(0.05, tax=10)
        assert item.tax == 0.01

    def test_unknown_attribute(self):
        """Unknown names raise UnknownAttributeError."""
        calculator = DefaultCalculator()
        with pytest.raises(UnknownAttributeError):
            calculator.get_attribute("price_net", make_item(10.0))


class TestGrossPriceCalculator:
    """Tests for gross price calculation."""

    def test_gross_price(self):
        """Tax is extracted from a tax-inclusive price."""
        item = make_item(12.10, qty=2, tax=10, calculator=GrossPriceCalculator())

        assert item.get_attribute("price_net") == 11.0
        assert item.price_target == 11.0
        assert item.tax == 1.1
        assert item.price_tax == 12.1
        assert item.subtotal == 22.0
        assert item.total == 24.2

    def test_gross_with_discount(self):
        """Discount applies to the net price."""
        item = make_item(12.10, tax=10, discount=50, calculator=GrossPriceCalculator())

        assert item.discount == 5.5
        assert item.price_target == 5.5
        assert item.tax == 0.55

    def test_gross_without_tax(self):
        """Without tax the net price is the price."""
        item = make_item(10.0, calculator=GrossPriceCalculator())
        assert item.get_attribute("price_net") == 10.0


class TestGetCalculator:
    """Tests for calculator resolution."""

    def test_registered_names(self):
        """Registered names resolve to their classes."""
        assert isinstance(get_calculator("default"), DefaultCalculator)
        assert isinstance(get_calculator("gross"), GrossPriceCalculator)

    def test_instance_passthrough(self):
        """Calculator instances are used as-is."""
        calculator = GrossPriceCalculator()
        assert get_calculator(calculator) is calculator

    def test_class(self):
        """Calculator classes are instantiated."""
        assert isinstance(get_calculator(GrossPriceCalculator), GrossPriceCalculator)

    def test_dotted_path(self):
        """Dotted paths are imported."""
        calculator = get_calculator("test_calculation.FlatCalculator")
        assert isinstance(calculator, Calculator)
        assert calculator.get_attribute("tax", make_item(10.0, tax=21)) == 0.0

    @pytest.mark.parametrize("bad", ["nope", "shoppingcart.money.round_money", dict])
    def test_invalid(self, bad):
        """Anything that is not a Calculator is rejected."""
        with pytest.raises(InvalidCalculatorError) as exc_info:
            get_calculator(bad)
        assert exc_info.value.code == "INVALID_CALCULATOR"

    def test_config_selects_calculator(self):
        """Items pick up the calculator named in config."""
        item = CartItem.from_attributes(1, "Widget", 12.10, config=CartConfig(calculator="gross"))
        assert isinstance(item.calculator, GrossPriceCalculator)
