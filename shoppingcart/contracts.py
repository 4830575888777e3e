"""Capabilities that catalog entities implement to take part in a cart.

- ``Buyable``: a catalog item that can be snapshotted into a CartItem.
- ``CanBeBought``: Buyable mixin reading ``id``/``name``/``price``/``weight``
  attributes of the host object.
- ``InstanceIdentifier``: an owner (user, tenant) that names a cart
  instance and carries its global discount.
"""

from abc import ABC, abstractmethod
from typing import Any


class Buyable(ABC):
    """Catalog item that can be added to a cart."""

    @abstractmethod
    def buyable_identifier(self, options: dict | None = None) -> int | str:
        """Identifier of the item for the given options."""

    @abstractmethod
    def buyable_description(self, options: dict | None = None) -> str:
        """Name, title or description shown on the cart line."""

    @abstractmethod
    def buyable_price(self, options: dict | None = None) -> float:
        """Unit price before tax and discount."""

    @abstractmethod
    def buyable_weight(self, options: dict | None = None) -> float:
        """Unit weight."""


class CanBeBought(Buyable):
    """Default Buyable implementation for plain catalog objects."""

    def buyable_identifier(self, options: dict | None = None) -> int | str:
        return getattr(self, "id")

    def buyable_description(self, options: dict | None = None) -> str:
        for attribute in ("name", "title", "description"):
            value = getattr(self, attribute, None)
            if value:
                return value
        return ""

    def buyable_price(self, options: dict | None = None) -> float:
        return getattr(self, "price", None) or 0.0

    def buyable_weight(self, options: dict | None = None) -> float:
        return getattr(self, "weight", None) or 0.0


class InstanceIdentifier(ABC):
    """Owner of a cart instance."""

    @abstractmethod
    def instance_identifier(self, options: dict | None = None) -> int | str:
        """Key under which this owner's cart is stored."""

    @abstractmethod
    def instance_global_discount(self, options: dict | None = None) -> Any:
        """Discount rate (percent) applied to every item of this owner's cart."""
