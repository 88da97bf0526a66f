"""
Error taxonomy for the canteen core.

Every failure the core can report is a CanteenError carrying a human-readable
message and the HTTP status the API layer answers with.
"""


class CanteenError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------- Not found ----------
class NotFound(CanteenError):
    status_code = 404


class ShopNotFound(NotFound):
    def __init__(self, message: str = "Shop not found"):
        super().__init__(message)


class ItemNotFound(NotFound):
    def __init__(self, message: str = "Item not found"):
        super().__init__(message)


class OrderNotFound(NotFound):
    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class UserNotFound(NotFound):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


# ---------- Authorization ----------
class Forbidden(CanteenError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


# ---------- Malformed input ----------
class ValidationError(CanteenError):
    status_code = 400


class InvalidSlot(ValidationError):
    pass


class MissingAddress(ValidationError):
    pass


class InvalidRole(ValidationError):
    pass


class InvalidStatus(ValidationError):
    pass


# ---------- Business rules ----------
class BusinessRuleViolation(CanteenError):
    status_code = 400


class ShopClosed(BusinessRuleViolation):
    pass


class InsufficientStock(BusinessRuleViolation):
    pass


class CrossShopItem(BusinessRuleViolation):
    pass


class InvalidTransition(BusinessRuleViolation):
    def __init__(self, current: str, requested: str, order_type: str):
        super().__init__(
            f"Invalid status transition from {current} to {requested} for order type {order_type}"
        )
        self.current = current
        self.requested = requested
        self.order_type = order_type


class NotRejectable(BusinessRuleViolation):
    pass


class InvalidReason(BusinessRuleViolation):
    pass


class SlotExpired(BusinessRuleViolation):
    pass


class CannotModifySelf(BusinessRuleViolation):
    pass


class DuplicateShopName(BusinessRuleViolation):
    status_code = 409


class AdminAlreadyAssigned(BusinessRuleViolation):
    status_code = 409


class ShopAlreadyHasAdmin(BusinessRuleViolation):
    status_code = 409


class ItemInUse(BusinessRuleViolation):
    status_code = 409


class EmailAlreadyRegistered(BusinessRuleViolation):
    status_code = 409


# ---------- Storage ----------
class StoreFailure(CanteenError):
    status_code = 500


class PartialWriteError(StoreFailure):
    """Some records of a multi-step mutation were written and the rest were not."""
