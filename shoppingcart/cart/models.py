"""Cart item models: options, line items and coupons."""
import hashlib
import json
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from numbers import Real
from typing import Any, Literal, Optional

from pydantic import BaseModel

from shoppingcart.calculation import Calculator, get_calculator
from shoppingcart.config import CartConfig
from shoppingcart.contracts import Buyable
from shoppingcart.errors import (
    ERROR_INVALID_IDENTIFIER,
    ERROR_INVALID_NAME,
    ERROR_INVALID_PRICE,
    ERROR_INVALID_QUANTITY,
    ERROR_INVALID_WEIGHT,
    UnknownModelError,
    ValidationError,
)
from shoppingcart.money import format_number, multiply, round_money, to_float
from shoppingcart.utils import class_path, import_string

_INTEGER_KEY = re.compile(r"^(0|-?[1-9][0-9]*)$")


class ItemOptions(dict):
    """Auxiliary attributes (size, color, ...) distinguishing otherwise equal products.

    Equality ignores insertion order. Values are also readable as
    attributes: ``item.options.size`` is ``None`` when not set.
    """

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get(name)

    def canonical(self) -> dict:
        """Options with keys sorted ascending."""
        return {key: self[key] for key in sorted(self, key=str)}

    def serialize(self) -> str:
        """Deterministic serialization of the sorted options (used for row ids)."""
        return _serialize_value(self.canonical())


def _serialize_value(value: Any) -> str:
    """Serialize a scalar / mapping in the format stored row ids were hashed with."""
    if value is None:
        return "N;"
    if isinstance(value, bool):
        return f"b:{int(value)};"
    if isinstance(value, int):
        return f"i:{value};"
    if isinstance(value, float):
        if math.isnan(value):
            return "d:NAN;"
        if math.isinf(value):
            return "d:INF;" if value > 0 else "d:-INF;"
        return f"d:{int(value) if value.is_integer() else repr(value)};"
    if isinstance(value, (list, tuple)):
        value = dict(enumerate(value))
    if isinstance(value, dict):
        body = "".join(_serialize_key(k) + _serialize_value(v) for k, v in value.items())
        return f"a:{len(value)}:{{{body}}}"
    text = str(value)
    return f's:{len(text.encode("utf-8"))}:"{text}";'


def _serialize_key(key: Any) -> str:
    if isinstance(key, int) and not isinstance(key, bool):
        return f"i:{key};"
    key = str(key)
    if _INTEGER_KEY.match(key):
        return f"i:{key};"
    return _serialize_value(key)


def generate_row_id(id: Any, options: Optional[dict] = None) -> str:
    """
    Row id for a product identifier and option set.

    MD5 over the identifier followed by the serialized, key-sorted options.
    Option insertion order does not matter.
    """
    serialized = ItemOptions(options or {}).serialize()
    return hashlib.md5(f"{_id_text(id)}{serialized}".encode("utf-8")).hexdigest()


def _id_text(id: Any) -> str:
    if isinstance(id, bool):
        return "1" if id else ""
    if isinstance(id, float) and id.is_integer():
        return str(int(id))
    return str(id)


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (Real, Decimal)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def is_finite_number(value: Any) -> bool:
    """Number that is neither NaN nor infinite."""
    return is_number(value) and math.isfinite(float(value))


def coerce_number(value: Any) -> int | float:
    """Keep ints and floats as they are, convert Decimal and numeric strings to float."""
    return value if isinstance(value, (int, float)) else float(value)


def _validate_amount(value: Any, field_name: str, message: str) -> float:
    if not is_finite_number(value) or float(value) < 0:
        raise ValidationError(message, field=field_name)
    return float(value)


def _validate_identifier(value: Any) -> Any:
    if value is None or value == "":
        raise ValidationError(ERROR_INVALID_IDENTIFIER, field="id")
    return value


def _validate_name(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(ERROR_INVALID_NAME, field="name")
    return value


@dataclass(eq=False)
class CartItem:
    """Single line in the cart.

    Derived money fields (discount, tax, subtotal, total, ...) are not stored:
    they are computed on read by the configured calculator.
    """
    id: int | str
    name: str
    price: float
    weight: float = 0.0
    options: ItemOptions = field(default_factory=ItemOptions)
    qty: int | float = 1
    tax_rate: float = 0.0
    discount_rate: float = 0.0
    associated_model: Optional[str] = None
    instance: Optional[str] = None
    config: CartConfig = field(default_factory=CartConfig, repr=False)
    calculator: Optional[Calculator] = field(default=None, repr=False)
    row_id: str = field(init=False)

    def __post_init__(self):
        self.id = _validate_identifier(self.id)
        self.name = _validate_name(self.name)
        self.price = _validate_amount(self.price, "price", ERROR_INVALID_PRICE)
        self.weight = _validate_amount(self.weight, "weight", ERROR_INVALID_WEIGHT)
        self.options = ItemOptions(self.options or {})
        self.set_quantity(self.qty)
        if self.calculator is None:
            self.calculator = get_calculator(self.config.calculator)
        self.row_id = generate_row_id(self.id, self.options)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_buyable(
        cls,
        item: Buyable,
        options: Optional[dict] = None,
        config: Optional[CartConfig] = None,
        calculator: Optional[Calculator] = None,
    ) -> "CartItem":
        """Snapshot a catalog item at add time."""
        options = dict(options or {})
        return cls(
            id=item.buyable_identifier(options),
            name=item.buyable_description(options),
            price=item.buyable_price(options),
            weight=item.buyable_weight(options),
            options=options,
            config=config or CartConfig(),
            calculator=calculator,
        )

    @classmethod
    def from_dict(
        cls,
        attributes: dict,
        config: Optional[CartConfig] = None,
        calculator: Optional[Calculator] = None,
    ) -> "CartItem":
        """Create from a raw attribute map with id, name, price, weight and optional options."""
        return cls(
            id=attributes.get("id"),
            name=attributes.get("name"),
            price=attributes.get("price"),
            weight=attributes.get("weight", 0),
            options=attributes.get("options") or {},
            config=config or CartConfig(),
            calculator=calculator,
        )

    @classmethod
    def from_attributes(
        cls,
        id: int | str,
        name: str,
        price: float,
        weight: float = 0,
        options: Optional[dict] = None,
        config: Optional[CartConfig] = None,
        calculator: Optional[Calculator] = None,
    ) -> "CartItem":
        """Create from explicit scalar fields."""
        return cls(
            id=id,
            name=name,
            price=price,
            weight=weight,
            options=options or {},
            config=config or CartConfig(),
            calculator=calculator,
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_quantity(self, qty: Any) -> None:
        """Set quantity; must be a positive number."""
        if not is_finite_number(qty) or float(qty) <= 0:
            raise ValidationError(ERROR_INVALID_QUANTITY, field="qty")
        self.qty = coerce_number(qty)

    def update_from_buyable(self, item: Buyable) -> None:
        """Re-derive id, name and price from the catalog item."""
        self.id = _validate_identifier(item.buyable_identifier(self.options))
        self.name = _validate_name(item.buyable_description(self.options))
        self.price = _validate_amount(item.buyable_price(self.options), "price", ERROR_INVALID_PRICE)
        self.row_id = generate_row_id(self.id, self.options)

    def update_from_dict(self, attributes: dict) -> None:
        """
        Merge named fields into the item.

        The row id is regenerated, so changing ``id`` or ``options`` gives the
        item a new identity. ``qty`` is taken as-is: zero or less means the
        caller is about to remove the item.
        """
        if "id" in attributes:
            self.id = _validate_identifier(attributes["id"])
        if "name" in attributes:
            self.name = _validate_name(attributes["name"])
        if "price" in attributes:
            self.price = _validate_amount(attributes["price"], "price", ERROR_INVALID_PRICE)
        if "weight" in attributes:
            self.weight = _validate_amount(attributes["weight"], "weight", ERROR_INVALID_WEIGHT)
        if "qty" in attributes:
            if not is_finite_number(attributes["qty"]):
                raise ValidationError(ERROR_INVALID_QUANTITY, field="qty")
            self.qty = coerce_number(attributes["qty"])
        if "options" in attributes:
            self.options = ItemOptions(attributes["options"] or {})
        self.row_id = generate_row_id(self.id, self.options)

    def associate(self, model: Any) -> "CartItem":
        """Associate with a catalog class (class, instance or dotted path)."""
        self.associated_model = model if isinstance(model, str) else class_path(model)
        return self

    def set_tax_rate(self, tax_rate: float) -> "CartItem":
        self.tax_rate = tax_rate
        return self

    def set_discount_rate(self, discount_rate: float) -> "CartItem":
        self.discount_rate = discount_rate
        return self

    def set_instance(self, instance: Optional[str]) -> "CartItem":
        self.instance = instance
        return self

    # ------------------------------------------------------------------
    # Derived attributes
    # ------------------------------------------------------------------

    @property
    def discount(self) -> float:
        """Discount amount per unit."""
        return self.calculator.get_attribute("discount", self)

    @property
    def price_target(self) -> float:
        """Unit price after discount, before tax."""
        return self.calculator.get_attribute("price_target", self)

    @property
    def tax(self) -> float:
        """Tax amount per unit."""
        return self.calculator.get_attribute("tax", self)

    @property
    def price_tax(self) -> float:
        """Unit price after discount, with tax."""
        return self.calculator.get_attribute("price_tax", self)

    @property
    def subtotal(self) -> float:
        """Line amount without tax."""
        return self.calculator.get_attribute("subtotal", self)

    @property
    def discount_total(self) -> float:
        return self.calculator.get_attribute("discount_total", self)

    @property
    def tax_total(self) -> float:
        return self.calculator.get_attribute("tax_total", self)

    @property
    def total(self) -> float:
        """Line amount with tax."""
        return self.calculator.get_attribute("total", self)

    @property
    def price_total(self) -> float:
        return self.calculator.get_attribute("price_total", self)

    @property
    def weight_total(self) -> float:
        return to_float(round_money(multiply(self.weight, self.qty), self.config.decimals))

    @property
    def shipping(self) -> float:
        """Per-unit shipping at the standard rate."""
        return to_float(multiply(self.price, self.config.shipping_rate))

    @property
    def shipping_int(self) -> float:
        """Per-unit shipping at the international rate."""
        return to_float(multiply(self.price, self.config.shipping_rate_international))

    @property
    def model_fqcn(self) -> Optional[str]:
        return self.associated_model

    @property
    def model(self) -> Any:
        """Associated catalog record, looked up by id through the class's ``find``.

        Classes without ``find`` have no catalog record to look up.
        """
        if not self.associated_model:
            return None
        try:
            model_class = import_string(self.associated_model)
        except ImportError as e:
            raise UnknownModelError(self.associated_model) from e
        finder = getattr(model_class, "find", None)
        if finder is None:
            return None
        return finder(self.id)

    def get_attribute(self, attribute: str) -> Any:
        """
        Resolve an attribute by name.

        Own fields and derived attributes come first, then a same-named field
        on the associated catalog record, then the calculator.

        Raises:
            UnknownAttributeError: If nothing resolves it
        """
        if attribute in self.__dataclass_fields__ or isinstance(
            getattr(type(self), attribute, None), property
        ):
            return getattr(self, attribute)

        model = self.model
        if model is not None and hasattr(model, attribute):
            return getattr(model, attribute)

        return self.calculator.get_attribute(attribute, self)

    def format(
        self,
        attribute: str,
        decimals: Optional[int] = None,
        decimal_point: Optional[str] = None,
        thousands_separator: Optional[str] = None,
    ) -> str:
        """Formatted string of a numeric attribute, e.g. ``item.format("total")``."""
        return format_number(
            self.get_attribute(attribute),
            self.config.decimals if decimals is None else decimals,
            self.config.decimal_point if decimal_point is None else decimal_point,
            self.config.thousands_separator if thousands_separator is None else thousands_separator,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "row_id": self.row_id,
            "id": self.id,
            "name": self.name,
            "qty": self.qty,
            "price": self.price,
            "weight": self.weight,
            "options": dict(self.options),
            "discount": self.discount,
            "tax": self.tax,
            "subtotal": self.subtotal,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class Coupon(BaseModel):
    """Cart-level discount: a percentage of the subtotal or an absolute amount."""
    type: Literal["relative", "absolute"]
    value: float
    code: Optional[str] = None


class CouponState(BaseModel):
    """Coupons applied to the session and the free-shipping flag."""
    is_ship: bool = False
    coupons: list[Coupon] = []

    class Config:
        extra = "ignore"
