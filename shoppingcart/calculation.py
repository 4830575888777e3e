"""Calculators for derived cart item amounts.

A calculator turns an item's base price, quantity, tax rate and discount
rate into the derived money fields (discount, tax, subtotal, total, ...).
Amounts are computed in Decimal, rounded half-up to the configured number
of decimals, and returned as floats.

Every calculator keeps these relations:
    price_target = price - discount
    price_tax    = price_target + tax
    subtotal     = price_target * qty
    total        = subtotal + tax_total  (== price_total)
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from shoppingcart.errors import InvalidCalculatorError, UnknownAttributeError
from shoppingcart.money import add, divide, multiply, percent, round_money, subtract, to_decimal, to_float
from shoppingcart.utils import import_string

if TYPE_CHECKING:
    from shoppingcart.cart.models import CartItem


class Calculator(ABC):
    """Strategy computing derived attributes of a CartItem."""

    @abstractmethod
    def get_attribute(self, attribute: str, item: "CartItem") -> float:
        """Return the derived attribute or raise UnknownAttributeError."""


class DefaultCalculator(Calculator):
    """Net prices: tax is added on top of the discounted price."""

    attributes = (
        "discount",
        "price_target",
        "tax",
        "price_tax",
        "subtotal",
        "discount_total",
        "tax_total",
        "total",
        "price_total",
    )

    def get_attribute(self, attribute: str, item: "CartItem") -> float:
        if attribute not in self.attributes:
            raise UnknownAttributeError(attribute)
        return to_float(getattr(self, f"_{attribute}")(item))

    def _round(self, value: Decimal, item: "CartItem") -> Decimal:
        return round_money(value, item.config.decimals)

    def _base_price(self, item: "CartItem") -> Decimal:
        return to_decimal(item.price)

    def _discount(self, item: "CartItem") -> Decimal:
        return self._round(percent(self._base_price(item), item.discount_rate), item)

    def _price_target(self, item: "CartItem") -> Decimal:
        target = subtract(self._base_price(item), self._discount(item))
        return max(self._round(target, item), Decimal("0"))

    def _tax(self, item: "CartItem") -> Decimal:
        return self._round(percent(self._price_target(item), item.tax_rate), item)

    def _price_tax(self, item: "CartItem") -> Decimal:
        return add(self._price_target(item), self._tax(item))

    def _subtotal(self, item: "CartItem") -> Decimal:
        return self._round(multiply(self._price_target(item), item.qty), item)

    def _discount_total(self, item: "CartItem") -> Decimal:
        return self._round(multiply(self._discount(item), item.qty), item)

    def _tax_total(self, item: "CartItem") -> Decimal:
        return self._round(multiply(self._tax(item), item.qty), item)

    def _total(self, item: "CartItem") -> Decimal:
        return add(self._subtotal(item), self._tax_total(item))

    def _price_total(self, item: "CartItem") -> Decimal:
        return self._total(item)


class GrossPriceCalculator(DefaultCalculator):
    """Gross prices: the item price already includes tax.

    The net price is recovered first and everything else is derived
    from it, so ``price_tax`` lands back on the gross price.
    """

    attributes = DefaultCalculator.attributes + ("price_net",)

    def _price_net(self, item: "CartItem") -> Decimal:
        factor = add(1, divide(item.tax_rate, 100))
        return self._round(divide(item.price, factor), item)

    def _base_price(self, item: "CartItem") -> Decimal:
        return self._price_net(item)


CALCULATORS: dict[str, type[Calculator]] = {
    "default": DefaultCalculator,
    "gross": GrossPriceCalculator,
}


def get_calculator(calculator: Any) -> Calculator:
    """
    Resolve a calculator from config.

    Args:
        calculator: Registered name ("default", "gross"), dotted import path,
            Calculator subclass or Calculator instance

    Raises:
        InvalidCalculatorError: If it does not resolve to a Calculator
    """
    if isinstance(calculator, Calculator):
        return calculator

    if isinstance(calculator, type):
        if issubclass(calculator, Calculator):
            return calculator()
        raise InvalidCalculatorError(calculator.__name__)

    name = str(calculator)
    if name in CALCULATORS:
        return CALCULATORS[name]()

    try:
        cls = import_string(name)
    except ImportError as e:
        raise InvalidCalculatorError(name) from e
    if not (isinstance(cls, type) and issubclass(cls, Calculator)):
        raise InvalidCalculatorError(name)
    return cls()
