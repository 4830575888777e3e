"""Session-scoped shopping cart engine."""
from shoppingcart.calculation import Calculator, DefaultCalculator, GrossPriceCalculator, get_calculator
from shoppingcart.cart import Cart, CartItem, ItemOptions, create_cart
from shoppingcart.config import CartConfig
from shoppingcart.contracts import Buyable, CanBeBought, InstanceIdentifier
from shoppingcart.errors import (
    AlreadyStoredError,
    CartError,
    InvalidCalculatorError,
    InvalidRowIdError,
    SnapshotFormatError,
    StorageUnavailableError,
    UnknownAttributeError,
    UnknownModelError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    "AlreadyStoredError",
    "Buyable",
    "CanBeBought",
    "Calculator",
    "Cart",
    "CartConfig",
    "CartError",
    "CartItem",
    "DefaultCalculator",
    "GrossPriceCalculator",
    "InstanceIdentifier",
    "InvalidCalculatorError",
    "InvalidRowIdError",
    "ItemOptions",
    "SnapshotFormatError",
    "StorageUnavailableError",
    "UnknownAttributeError",
    "UnknownModelError",
    "ValidationError",
    "create_cart",
    "get_calculator",
]
