"""Versioned snapshot format for cart content.

Session slots and stored carts hold the same JSON-compatible snapshot:

    {"version": 1, "items": [{"row_id": ..., "id": ..., "name": ..., ...}]}

Item order in ``items`` is the content order.
"""
import json
from typing import Any, Optional

import pydantic
from pydantic import BaseModel

from shoppingcart.calculation import Calculator
from shoppingcart.config import CartConfig
from shoppingcart.errors import CartError, SnapshotFormatError
from shoppingcart.logging import get_logger, sanitize_id_for_logging

from .models import CartItem

logger = get_logger(__name__)

SNAPSHOT_VERSION = 1
SUPPORTED_VERSIONS = (1,)


class CartItemPayload(BaseModel):
    """Serialized CartItem."""
    row_id: Optional[str] = None
    id: int | str
    name: str
    qty: int | float
    price: float
    weight: float = 0.0
    options: dict[str, Any] = {}
    tax_rate: float = 0.0
    discount_rate: float = 0.0
    associated_model: Optional[str] = None
    instance: Optional[str] = None

    class Config:
        extra = "ignore"

    @classmethod
    def from_item(cls, item: CartItem) -> "CartItemPayload":
        return cls(
            row_id=item.row_id,
            id=item.id,
            name=item.name,
            qty=item.qty,
            price=item.price,
            weight=item.weight,
            options=dict(item.options),
            tax_rate=item.tax_rate,
            discount_rate=item.discount_rate,
            associated_model=item.associated_model,
            instance=item.instance,
        )

    def to_item(self, config: CartConfig, calculator: Optional[Calculator] = None) -> CartItem:
        item = CartItem(
            id=self.id,
            name=self.name,
            price=self.price,
            weight=self.weight,
            options=self.options,
            qty=self.qty,
            tax_rate=self.tax_rate,
            discount_rate=self.discount_rate,
            associated_model=self.associated_model,
            instance=self.instance,
            config=config,
            calculator=calculator,
        )
        if self.row_id and self.row_id != item.row_id:
            logger.warning(
                f"Stored row id {sanitize_id_for_logging(self.row_id)} does not match "
                f"recomputed {sanitize_id_for_logging(item.row_id)}, using recomputed"
            )
        return item


class CartSnapshot(BaseModel):
    """Serialized cart content."""
    version: int = SNAPSHOT_VERSION
    items: list[CartItemPayload] = []


def dump_content(content: dict[str, CartItem]) -> dict:
    """Snapshot of the content mapping as a JSON-compatible dict."""
    snapshot = CartSnapshot(items=[CartItemPayload.from_item(item) for item in content.values()])
    return snapshot.model_dump()


def load_content(
    data: Any,
    config: CartConfig,
    calculator: Optional[Calculator] = None,
) -> dict[str, CartItem]:
    """
    Rebuild the ordered row id -> CartItem mapping from a snapshot.

    Args:
        data: Snapshot dict (or JSON string); None gives empty content
        config: Config attached to every rebuilt item
        calculator: Calculator attached to every rebuilt item

    Raises:
        SnapshotFormatError: If the snapshot is malformed or of an unsupported version
    """
    if data is None:
        return {}
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise SnapshotFormatError(f"invalid JSON ({e.msg})") from e
    if not isinstance(data, dict):
        raise SnapshotFormatError(f"expected object, got {type(data).__name__}")

    version = data.get("version")
    if version not in SUPPORTED_VERSIONS:
        raise SnapshotFormatError(f"unsupported version {version!r}")

    try:
        snapshot = CartSnapshot.model_validate(data)
    except pydantic.ValidationError as e:
        raise SnapshotFormatError(f"{e.error_count()} invalid field(s)") from e

    content: dict[str, CartItem] = {}
    for payload in snapshot.items:
        try:
            item = payload.to_item(config, calculator)
        except CartError as e:
            raise SnapshotFormatError(e.message) from e
        content[item.row_id] = item
    return content


def dumps_content(content: dict[str, CartItem]) -> str:
    """Snapshot as a JSON string (stored-cart records)."""
    return json.dumps(dump_content(content))


def loads_content(
    raw: str,
    config: CartConfig,
    calculator: Optional[Calculator] = None,
) -> dict[str, CartItem]:
    return load_content(raw, config, calculator)
