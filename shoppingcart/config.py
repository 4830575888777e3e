"""Cart configuration.

A single immutable settings object is built once (usually via
``CartConfig.from_env()``) and handed to ``Cart`` and every ``CartItem``
it creates. Formatting calls accept per-call overrides on top of it.
"""
import os
from typing import Optional

from pydantic import BaseModel, field_validator

DEFAULT_INSTANCE = "default"


class CartConfig(BaseModel):
    """Cart settings."""
    tax: float = 0.0  # Default tax rate (percent) for new carts
    decimals: int = 2
    decimal_point: str = "."
    thousands_separator: str = ","
    database_table: str = "shoppingcart"
    calculator: str = "default"  # default | gross
    shipping_standard: list[str] = []  # Jurisdictions billed at the standard rate
    shipping_rate: float = 0.05
    shipping_rate_international: float = 0.1
    shipping_exclusion_attribute: str = "title"
    shipping_exclusion_marker: str = "VOUCHER"
    session_ttl: int = 86400  # 24 hours

    class Config:
        frozen = True
        extra = "ignore"

    @field_validator("decimals")
    @classmethod
    def check_decimals(cls, v):
        if v < 0:
            raise ValueError("decimals must be non-negative")
        return v

    @field_validator("shipping_standard", mode="before")
    @classmethod
    def split_jurisdictions(cls, v):
        if isinstance(v, str):
            return [code.strip().upper() for code in v.split(",") if code.strip()]
        return [str(code).upper() for code in v]

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "CartConfig":
        """Build config from CART_* environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        mapping = {
            "tax": "CART_TAX",
            "decimals": "CART_DECIMALS",
            "decimal_point": "CART_DECIMAL_POINT",
            "thousands_separator": "CART_THOUSANDS_SEPARATOR",
            "database_table": "CART_DATABASE_TABLE",
            "calculator": "CART_CALCULATOR",
            "shipping_standard": "CART_SHIPPING_STANDARD",
            "shipping_rate": "CART_SHIPPING_RATE",
            "shipping_rate_international": "CART_SHIPPING_RATE_INTERNATIONAL",
            "shipping_exclusion_attribute": "CART_SHIPPING_EXCLUSION_ATTRIBUTE",
            "shipping_exclusion_marker": "CART_SHIPPING_EXCLUSION_MARKER",
            "session_ttl": "CART_SESSION_TTL",
        }
        values = {field: env[var] for field, var in mapping.items() if var in env}
        return cls(**values)
