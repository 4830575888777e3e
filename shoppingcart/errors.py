"""
Cart Errors

Error message constants (kept in one place to avoid string duplication)
and the typed exceptions raised by the cart engine.
"""

# Item construction / validation
ERROR_INVALID_IDENTIFIER = "Please supply a valid identifier."
ERROR_INVALID_NAME = "Please supply a valid name."
ERROR_INVALID_PRICE = "Please supply a valid price."
ERROR_INVALID_WEIGHT = "Please supply a valid weight."
ERROR_INVALID_QUANTITY = "Please supply a valid quantity."

# Lookup errors
ERROR_INVALID_ROW_ID = "The cart does not contain rowId {row_id}."
ERROR_UNKNOWN_MODEL = "The supplied model {model} does not exist."
ERROR_UNKNOWN_ATTRIBUTE = "Unknown cart item attribute: {attribute}"
ERROR_INVALID_CALCULATOR = (
    "The configured calculator {calculator} is invalid. "
    "Calculators have to subclass Calculator."
)

# Persistence errors
ERROR_ALREADY_STORED = "A cart with identifier {identifier} was already stored."
ERROR_SNAPSHOT_FORMAT = "Cart snapshot could not be read: {reason}"
ERROR_STORAGE_UNAVAILABLE = "Cart storage unavailable: {reason}"


class CartError(Exception):
    """Base error for the cart engine."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(CartError, ValueError):
    """Invalid identifier, name, price, weight or quantity."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION")
        self.field = field


class InvalidRowIdError(CartError):
    """The cart has no item with the requested row id."""

    def __init__(self, row_id: str) -> None:
        super().__init__(ERROR_INVALID_ROW_ID.format(row_id=row_id), code="INVALID_ROW_ID")
        self.row_id = row_id


class UnknownModelError(CartError):
    """Association target cannot be imported."""

    def __init__(self, model: str) -> None:
        super().__init__(ERROR_UNKNOWN_MODEL.format(model=model), code="UNKNOWN_MODEL")
        self.model = model


class UnknownAttributeError(CartError):
    """Derived attribute could not be resolved by calculator or catalog record."""

    def __init__(self, attribute: str) -> None:
        super().__init__(
            ERROR_UNKNOWN_ATTRIBUTE.format(attribute=attribute), code="UNKNOWN_ATTRIBUTE"
        )
        self.attribute = attribute


class InvalidCalculatorError(CartError):
    """Configured calculator is not registered or not a Calculator."""

    def __init__(self, calculator: str) -> None:
        super().__init__(
            ERROR_INVALID_CALCULATOR.format(calculator=calculator), code="INVALID_CALCULATOR"
        )


class AlreadyStoredError(CartError):
    """A stored cart already exists for this identifier and instance."""

    def __init__(self, identifier: object) -> None:
        super().__init__(
            ERROR_ALREADY_STORED.format(identifier=identifier), code="ALREADY_STORED"
        )
        self.identifier = identifier


class SnapshotFormatError(CartError):
    """Stored or session snapshot is malformed or of an unsupported version."""

    def __init__(self, reason: str) -> None:
        super().__init__(ERROR_SNAPSHOT_FORMAT.format(reason=reason), code="SNAPSHOT_FORMAT")


class StorageUnavailableError(CartError):
    """Redis or Supabase backend is not configured or failed."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            ERROR_STORAGE_UNAVAILABLE.format(reason=reason), code="STORAGE_UNAVAILABLE"
        )
