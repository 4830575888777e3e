"""Catalog fixtures used as Buyables and associated models in tests."""
from shoppingcart.contracts import Buyable, CanBeBought, InstanceIdentifier

# id -> product; looked up by CartItem.model through BuyableProduct.find
CATALOG = {}


class BuyableProduct(CanBeBought):
    """Catalog product using the default Buyable implementation."""

    def __init__(self, id=1, name="Item name", price=10.0, weight=0.0, title=None, description=None):
        self.id = id
        self.name = name
        self.price = price
        self.weight = weight
        self.title = title
        self.description = description

    @classmethod
    def find(cls, id):
        return CATALOG.get(id)

    def save(self):
        CATALOG[self.id] = self
        return self


class SizedProduct(Buyable):
    """Buyable whose price depends on the chosen size."""

    PRICES = {"S": 8.0, "M": 10.0, "L": 12.0}

    def __init__(self, id=7, name="T-shirt"):
        self.id = id
        self.name = name

    def buyable_identifier(self, options=None):
        return self.id

    def buyable_description(self, options=None):
        return f"{self.name} ({(options or {}).get('size', 'M')})"

    def buyable_price(self, options=None):
        return self.PRICES[(options or {}).get("size", "M")]

    def buyable_weight(self, options=None):
        return 0.2


class Customer(InstanceIdentifier):
    """Cart owner with a personal discount."""

    def __init__(self, id, discount=0):
        self.id = id
        self.discount = discount

    def instance_identifier(self, options=None):
        return self.id

    def instance_global_discount(self, options=None):
        return self.discount
