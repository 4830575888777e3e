"""Cart aggregate: session-scoped line items, totals and stored carts."""
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import pydantic

from shoppingcart.calculation import get_calculator
from shoppingcart.config import DEFAULT_INSTANCE, CartConfig
from shoppingcart.contracts import Buyable, InstanceIdentifier
from shoppingcart.errors import (
    ERROR_INVALID_QUANTITY,
    AlreadyStoredError,
    InvalidRowIdError,
    SnapshotFormatError,
    UnknownModelError,
    ValidationError,
)
from shoppingcart.logging import get_logger, sanitize_id_for_logging, sanitize_string_for_logging
from shoppingcart.money import format_number, multiply, percent, to_decimal, to_float
from shoppingcart.utils import import_string

from .events import CartEvents, EventBus, NullEventBus, RedisStreamEventBus
from .models import CartItem, Coupon, CouponState, coerce_number, is_finite_number
from .serializer import dump_content, dumps_content, load_content, loads_content
from .storage import (
    CartGateway,
    RedisSessionStore,
    SessionKeys,
    SessionStore,
    StoredCartRecord,
    SupabaseCartGateway,
)

logger = get_logger(__name__)


class Cart:
    """
    Shopping cart for one user session.

    Features:
    - Named instances ("default", "wishlist", ...) per session
    - Items identified by row id (product id + options); re-adding merges quantities
    - Cart-wide tax and discount rates, retroactive for existing items
    - Totals, coupons and tiered shipping
    - Store / restore / merge / erase of saved carts by identifier
    """

    DEFAULT_INSTANCE = DEFAULT_INSTANCE

    def __init__(
        self,
        session: SessionStore,
        events: Optional[EventBus] = None,
        gateway: Optional[CartGateway] = None,
        config: Optional[CartConfig] = None,
    ) -> None:
        self.session = session
        self.events = events if events is not None else NullEventBus()
        self.config = config or CartConfig()
        self.calculator = get_calculator(self.config.calculator)
        self._gateway = gateway  # Lazy initialization
        self._tax_rate = self.config.tax
        self._discount = 0.0
        self._created_at: Optional[datetime] = None
        self._updated_at: Optional[datetime] = None
        self._instance = DEFAULT_INSTANCE

    @property
    def gateway(self) -> CartGateway:
        """Stored-cart table (Supabase unless injected)."""
        if self._gateway is None:
            self._gateway = SupabaseCartGateway(table=self.config.database_table)
        return self._gateway

    # ==========================================
    # Instances
    # ==========================================

    def instance(self, instance: Any = None) -> "Cart":
        """Switch to another cart instance; an InstanceIdentifier also sets the global discount."""
        instance = instance or DEFAULT_INSTANCE

        if isinstance(instance, InstanceIdentifier):
            self._discount = coerce_number(instance.instance_global_discount())
            instance = instance.instance_identifier()

        self._instance = str(instance)
        return self

    def current_instance(self) -> str:
        return self._instance

    # ==========================================
    # Mutation
    # ==========================================

    def add(
        self,
        id: Any,
        name: Any = None,
        qty: Any = None,
        price: Any = None,
        weight: Any = 0,
        options: Optional[dict] = None,
    ) -> CartItem | list[CartItem]:
        """
        Add an item, or a list of items, to the cart.

        Accepted forms:
            add(1, "Widget", 3, 10.0, 2.0, {"size": "L"})
            add({"id": 1, "name": "Widget", "qty": 3, "price": 10.0, "weight": 2.0})
            add(product, 3, {"size": "L"})        # product is a Buyable
            add([{...}, {...}]) / add([product_a, product_b])

        Returns:
            The resulting CartItem, or the list of results for batch input
        """
        if self._is_multi(id):
            return [self.add(item) for item in id]

        cart_item = self._create_cart_item(id, name, qty, price, weight, options)
        return self.add_cart_item(cart_item)

    def add_cart_item(
        self,
        item: CartItem,
        keep_discount: bool = False,
        keep_tax: bool = False,
        dispatch_event: bool = True,
    ) -> CartItem:
        """
        Insert an item or merge it into the entry with the same row id.

        On merge only the quantity accumulates; the existing entry keeps its
        name, price, options and rates, and its position.
        """
        if not keep_discount:
            item.set_discount_rate(self._discount)

        if not keep_tax:
            item.set_tax_rate(self._tax_rate)

        content = self._get_content()

        existing = content.get(item.row_id)
        if existing is not None:
            existing.qty += item.qty
            result = existing
        else:
            content[item.row_id] = item
            result = item

        if dispatch_event:
            self.events.dispatch(CartEvents.ADDING, result)

        self._put_content(content)

        if dispatch_event:
            self.events.dispatch(CartEvents.ADDED, result)

        logger.debug(
            f"Added {sanitize_string_for_logging(result.name)} "
            f"({sanitize_id_for_logging(result.row_id)}) qty={result.qty} to {self._instance}"
        )
        return result

    def update(self, row_id: str, qty: Any) -> Optional[CartItem]:
        """
        Update the item with the given row id.

        Args:
            row_id: Row id of the item
            qty: New quantity, a dict of attributes to merge, or a Buyable to re-derive from

        Returns:
            The updated item, or None if its quantity dropped to zero or below
            and it was removed

        Raises:
            InvalidRowIdError: If the cart has no such row
        """
        content = self._get_content()
        if row_id not in content:
            raise InvalidRowIdError(row_id)

        cart_item = content[row_id]

        if isinstance(qty, Buyable):
            cart_item.update_from_buyable(qty)
        elif isinstance(qty, dict):
            cart_item.update_from_dict(qty)
        else:
            if not is_finite_number(qty):
                raise ValidationError(ERROR_INVALID_QUANTITY, field="qty")
            cart_item.qty = coerce_number(qty)

        row_changed = cart_item.row_id != row_id
        if row_changed and cart_item.row_id in content:
            cart_item.qty = content[cart_item.row_id].qty + cart_item.qty

        if cart_item.qty <= 0:
            content.pop(row_id)
            content.pop(cart_item.row_id, None)
            self._write_removal(content, cart_item)
            return None

        if row_changed:
            # The merged entry takes the slot of the item being updated
            reordered: dict[str, CartItem] = {}
            for key, value in content.items():
                if key == row_id:
                    reordered[cart_item.row_id] = cart_item
                elif key != cart_item.row_id:
                    reordered[key] = value
            content = reordered
        else:
            content[row_id] = cart_item

        self.events.dispatch(CartEvents.UPDATING, cart_item)

        self._put_content(content)

        self.events.dispatch(CartEvents.UPDATED, cart_item)

        return cart_item

    def remove(self, row_id: str) -> None:
        """Remove the item with the given row id."""
        content = self._get_content()
        if row_id not in content:
            raise InvalidRowIdError(row_id)

        cart_item = content.pop(row_id)
        self._write_removal(content, cart_item)

    def get(self, row_id: str) -> CartItem:
        """Get an item by row id."""
        content = self._get_content()
        if row_id not in content:
            raise InvalidRowIdError(row_id)
        return content[row_id]

    def destroy(self) -> None:
        """Drop the current instance along with the session's coupons and country."""
        self.session.remove(SessionKeys.COUPONS)
        self.session.remove(SessionKeys.COUNTRY)
        self.session.remove(SessionKeys.cart(self._instance))

    def associate(self, row_id: str, model: Any) -> None:
        """
        Associate the item with a catalog class.

        Raises:
            UnknownModelError: If a dotted path is given that does not import
        """
        if isinstance(model, str):
            try:
                import_string(model)
            except ImportError as e:
                raise UnknownModelError(model) from e

        content = self._get_content()
        if row_id not in content:
            raise InvalidRowIdError(row_id)

        content[row_id].associate(model)
        self._put_content(content)

    def set_tax(self, row_id: str, tax_rate: float) -> None:
        """Set the tax rate of one item."""
        content = self._get_content()
        if row_id not in content:
            raise InvalidRowIdError(row_id)

        content[row_id].set_tax_rate(tax_rate)
        self._put_content(content)

    def set_discount(self, row_id: str, discount: float) -> None:
        """Set the discount rate of one item."""
        content = self._get_content()
        if row_id not in content:
            raise InvalidRowIdError(row_id)

        content[row_id].set_discount_rate(discount)
        self._put_content(content)

    def set_global_tax(self, tax_rate: float) -> None:
        """Set the cart tax rate and apply it to every item already in the cart."""
        self._tax_rate = tax_rate

        content = self._get_content()
        if content:
            for item in content.values():
                item.set_tax_rate(tax_rate)
            self._put_content(content)

    def set_global_discount(self, discount: float) -> None:
        """Set the cart discount rate and apply it to every item already in the cart."""
        self._discount = discount

        content = self._get_content()
        if content:
            for item in content.values():
                item.set_discount_rate(discount)
            self._put_content(content)

    def get_tax(self) -> float:
        return self._tax_rate

    def get_discount(self) -> float:
        return self._discount

    # ==========================================
    # Queries
    # ==========================================

    def content(self) -> dict[str, CartItem]:
        """Ordered row id -> item mapping (a copy; mutate through the cart)."""
        return self._get_content()

    def search(self, predicate: Callable[[CartItem], bool]) -> dict[str, CartItem]:
        """Items matching the predicate, in cart order."""
        return {row_id: item for row_id, item in self._get_content().items() if predicate(item)}

    def count(self) -> int | float:
        """Total quantity of all items."""
        return sum(item.qty for item in self._get_content().values())

    def count_items(self) -> int:
        """Number of distinct rows (quantity not counted)."""
        return len(self._get_content())

    def total_float(self) -> float:
        return self._sum(lambda item: item.total)

    def tax_float(self) -> float:
        return self._sum(lambda item: item.tax_total)

    def subtotal_float(self) -> float:
        return self._sum(lambda item: item.subtotal)

    def discount_float(self) -> float:
        return self._sum(lambda item: item.discount_total)

    def initial_float(self) -> float:
        """Subtotal before discounts (price x qty)."""
        return self._sum(lambda item: multiply(item.price, item.qty))

    def price_total_float(self) -> float:
        return self._sum(lambda item: item.price_total)

    def weight_float(self) -> float:
        return self._sum(lambda item: multiply(item.weight, item.qty))

    def total(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.total_float(), decimals, decimal_point, thousands_separator, raw)

    def tax(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.tax_float(), decimals, decimal_point, thousands_separator, raw)

    def subtotal(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.subtotal_float(), decimals, decimal_point, thousands_separator, raw)

    def discount(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.discount_float(), decimals, decimal_point, thousands_separator, raw)

    def initial(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.initial_float(), decimals, decimal_point, thousands_separator, raw)

    def subtotal_no_discounts(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self.initial(decimals, decimal_point, thousands_separator, raw)

    def price_total(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.price_total_float(), decimals, decimal_point, thousands_separator, raw)

    def weight(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        return self._format(self.weight_float(), decimals, decimal_point, thousands_separator, raw)

    def discounts(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        """Cart-level coupon discount: relative coupons take a percentage of the subtotal."""
        subtotal = self.subtotal_float()

        amount = Decimal("0")
        for coupon in self.coupons():
            if coupon.type == "relative":
                amount += percent(subtotal, coupon.value)
            else:
                amount += to_decimal(coupon.value)

        return self._format(to_float(amount), decimals, decimal_point, thousands_separator, raw)

    def shipping(self, decimals=None, decimal_point=None, thousands_separator=None, raw=False):
        """
        Shipping for the cart.

        Zero when free shipping is flagged. Otherwise qty x per-unit rate for
        each item, at the standard rate when the session country is one of the
        standard jurisdictions and the international rate otherwise. Items whose
        catalog record is marked as excluded (vouchers) are skipped.
        """
        amount = Decimal("0")

        if not self._coupon_state().is_ship:
            standard = self.country() in self.config.shipping_standard
            for item in self._get_content().values():
                if self._is_shipping_excluded(item):
                    continue
                rate = item.shipping if standard else item.shipping_int
                amount += multiply(item.qty, rate)

        return self._format(to_float(amount), decimals, decimal_point, thousands_separator, raw)

    # ==========================================
    # Coupons and shipping country
    # ==========================================

    def coupons(self) -> list[Coupon]:
        return self._coupon_state().coupons

    def apply_coupon(self, type: str, value: float, code: Optional[str] = None) -> Coupon:
        """Add a coupon to the session."""
        coupon = Coupon(type=type, value=value, code=code)
        state = self._coupon_state()
        state.coupons.append(coupon)
        self.session.put(SessionKeys.COUPONS, state.model_dump())
        return coupon

    def clear_coupons(self) -> None:
        state = self._coupon_state()
        state.coupons = []
        self.session.put(SessionKeys.COUPONS, state.model_dump())

    def set_free_shipping(self, free: bool = True) -> None:
        state = self._coupon_state()
        state.is_ship = free
        self.session.put(SessionKeys.COUPONS, state.model_dump())

    def set_country(self, country: str) -> None:
        self.session.put(SessionKeys.COUNTRY, country.upper())

    def country(self) -> Optional[str]:
        country = self.session.get(SessionKeys.COUNTRY)
        return country.upper() if country else None

    # ==========================================
    # Stored carts
    # ==========================================

    def store(self, identifier: Any) -> None:
        """
        Save the current instance under an identifier.

        Raises:
            AlreadyStoredError: If a cart is already stored for this identifier and instance
        """
        identifier = self._resolve_identifier(identifier)
        instance = self.current_instance()

        if self.gateway.exists(identifier, instance):
            raise AlreadyStoredError(identifier)

        now = datetime.now(UTC)
        record = StoredCartRecord(
            identifier=identifier,
            instance=instance,
            content=dumps_content(self._get_content()),
            created_at=self._created_at or now,
            updated_at=now,
        )
        self.gateway.insert(record)

        self.events.dispatch(CartEvents.STORED)
        logger.info(f"Stored cart {sanitize_id_for_logging(identifier)} ({instance})")

    def restore(self, identifier: Any) -> None:
        """
        Move a stored cart back into the session.

        Stored items overwrite live items with the same row id (quantities are
        not summed). The stored record is deleted afterwards. No-op when nothing
        is stored for this identifier and instance.
        """
        identifier = self._resolve_identifier(identifier)
        current_instance = self.current_instance()

        if not self.gateway.exists(identifier, current_instance):
            return

        stored = self.gateway.first(identifier, current_instance)
        if stored is None:
            return

        stored_content = loads_content(stored.content, self.config, self.calculator)

        self.instance(stored.instance)

        content = self._get_content()
        for row_id, item in stored_content.items():
            content[row_id] = item

        self.events.dispatch(CartEvents.RESTORED)

        self._put_content(content)

        self.instance(current_instance)

        self._created_at = stored.created_at
        self._updated_at = stored.updated_at

        self.gateway.delete(identifier, current_instance)
        logger.info(f"Restored cart {sanitize_id_for_logging(identifier)} ({current_instance})")

    def erase(self, identifier: Any) -> None:
        """Delete a stored cart; the live cart is untouched."""
        identifier = self._resolve_identifier(identifier)
        instance = self.current_instance()

        if not self.gateway.exists(identifier, instance):
            return

        self.gateway.delete(identifier, instance)

        self.events.dispatch(CartEvents.ERASED)
        logger.info(f"Erased cart {sanitize_id_for_logging(identifier)} ({instance})")

    def merge(
        self,
        identifier: Any,
        keep_discount: bool = False,
        keep_tax: bool = False,
        dispatch_add: bool = True,
        instance: str = DEFAULT_INSTANCE,
    ) -> bool:
        """
        Add every item of a stored cart to the current cart.

        Items go through add_cart_item, so quantities of matching rows are summed.
        The stored record is kept.

        Args:
            identifier: Identifier the cart was stored under
            keep_discount: Keep the stored items' discount rates
            keep_tax: Keep the stored items' tax rates
            dispatch_add: Fire add events for every merged item
            instance: Instance the cart was stored from

        Returns:
            False if no such stored cart exists, True otherwise
        """
        identifier = self._resolve_identifier(identifier)

        if not self.gateway.exists(identifier, instance):
            return False

        stored = self.gateway.first(identifier, instance)
        if stored is None:
            return False

        for item in loads_content(stored.content, self.config, self.calculator).values():
            self.add_cart_item(item, keep_discount, keep_tax, dispatch_add)

        self.events.dispatch(CartEvents.MERGED)
        logger.info(f"Merged cart {sanitize_id_for_logging(identifier)} into {self._instance}")

        return True

    @property
    def created_at(self) -> Optional[datetime]:
        """Creation date of the last restored cart."""
        return self._created_at

    @property
    def updated_at(self) -> Optional[datetime]:
        """Last update date of the last restored cart."""
        return self._updated_at

    # ==========================================
    # Private helpers
    # ==========================================

    def _get_content(self) -> dict[str, CartItem]:
        data = self.session.get(SessionKeys.cart(self._instance))
        return load_content(data, self.config, self.calculator)

    def _put_content(self, content: dict[str, CartItem]) -> None:
        self.session.put(SessionKeys.cart(self._instance), dump_content(content))

    def _write_removal(self, content: dict[str, CartItem], cart_item: CartItem) -> None:
        self.events.dispatch(CartEvents.REMOVING, cart_item)

        self._put_content(content)

        self.events.dispatch(CartEvents.REMOVED, cart_item)

    def _create_cart_item(self, id, name, qty, price, weight, options) -> CartItem:
        if isinstance(id, Buyable):
            # add(product, qty, options)
            quantity = name if name is not None else qty
            if options is None and isinstance(qty, dict):
                options = qty
            cart_item = CartItem.from_buyable(id, options, self.config, self.calculator)
            cart_item.set_quantity(1 if quantity is None or isinstance(quantity, dict) else quantity)
            cart_item.associate(id)
        elif isinstance(id, dict):
            cart_item = CartItem.from_dict(id, self.config, self.calculator)
            cart_item.set_quantity(id.get("qty"))
        else:
            cart_item = CartItem.from_attributes(
                id, name, price, weight, options, self.config, self.calculator
            )
            cart_item.set_quantity(qty)

        cart_item.set_instance(self.current_instance())

        return cart_item

    @staticmethod
    def _is_multi(item: Any) -> bool:
        if not isinstance(item, (list, tuple)) or not item:
            return False
        return isinstance(item[0], (dict, Buyable))

    @staticmethod
    def _resolve_identifier(identifier: Any) -> str:
        if isinstance(identifier, InstanceIdentifier):
            identifier = identifier.instance_identifier()
        return str(identifier)

    def _sum(self, value: Callable[[CartItem], Any]) -> float:
        total = sum((to_decimal(value(item)) for item in self._get_content().values()), Decimal("0"))
        return to_float(total)

    def _format(self, value: float, decimals, decimal_point, thousands_separator, raw: bool):
        if raw:
            return value
        return format_number(
            value,
            self.config.decimals if decimals is None else decimals,
            self.config.decimal_point if decimal_point is None else decimal_point,
            self.config.thousands_separator if thousands_separator is None else thousands_separator,
        )

    def _coupon_state(self) -> CouponState:
        try:
            return CouponState.model_validate(self.session.get(SessionKeys.COUPONS) or {})
        except pydantic.ValidationError as e:
            raise SnapshotFormatError(f"invalid coupon state ({e.error_count()} error(s))") from e

    def _is_shipping_excluded(self, item: CartItem) -> bool:
        model = item.model
        if model is None:
            return False
        marker = getattr(model, self.config.shipping_exclusion_attribute, None)
        return bool(marker) and self.config.shipping_exclusion_marker in str(marker)


def create_cart(session_id: str, config: Optional[CartConfig] = None) -> Cart:
    """
    Build a cart for a session on the hosted backends.

    Session slots live in Upstash Redis, events go to the cart Redis stream,
    stored carts go to the Supabase table named in config.
    """
    config = config or CartConfig.from_env()
    return Cart(
        session=RedisSessionStore(session_id, ttl=config.session_ttl),
        events=RedisStreamEventBus(),
        gateway=SupabaseCartGateway(table=config.database_table),
        config=config,
    )
