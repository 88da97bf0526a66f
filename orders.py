"""
Order lifecycle: placement, status transitions and rejection.

Every mutation holds the locks of all collections it reads and writes, so the
validate -> reserve -> token -> write sequence runs as one section per process.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from clock import local_now, parse_timestamp, timestamp
from database import ITEMS, ORDERS, SHOPS, RecordStore, new_id
from errors import (
    Forbidden,
    InvalidReason,
    InvalidSlot,
    InvalidStatus,
    InvalidTransition,
    MissingAddress,
    NotRejectable,
    OrderNotFound,
    PartialWriteError,
    ShopClosed,
    ShopNotFound,
    SlotExpired,
    StoreFailure,
    ValidationError,
)
from inventory import reserve, restore
from schemas import Order, OrderLineRequest, OrderStatus, OrderType, PaymentStatus, Role
from shops import managed_shop
from settings import delivery_slots
from tokens import generate_token

logger = logging.getLogger(__name__)

MIN_SLOT_LEAD = timedelta(minutes=30)
MIN_REASON_LENGTH = 10

# (current, requested) -> order type the move is limited to, None for any type
TRANSITIONS = {
    (OrderStatus.PLACED, OrderStatus.PREPARING): None,
    (OrderStatus.PREPARING, OrderStatus.READY): None,
    (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY): OrderType.DELIVERY,
    (OrderStatus.READY, OrderStatus.COMPLETED): OrderType.DINE_IN,
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED): OrderType.DELIVERY,
}


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatus(f"Invalid status '{value}'")


def can_transition(current: OrderStatus, requested: OrderStatus, order_type: OrderType) -> bool:
    key = (current, requested)
    if key not in TRANSITIONS:
        return False
    required = TRANSITIONS[key]
    return required is None or required == order_type


def apply_transition(order: Dict[str, Any], requested: OrderStatus, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Return a copy of ``order`` moved to ``requested`` or raise InvalidTransition."""
    current = OrderStatus(order["status"])
    order_type = OrderType(order["order_type"])
    if not can_transition(current, requested, order_type):
        raise InvalidTransition(current.value, requested.value, order_type.value)

    updated = {**order, "status": requested.value, "updated_at": timestamp(now)}
    if requested in (OrderStatus.DELIVERED, OrderStatus.COMPLETED) \
            and order.get("payment_status") == PaymentStatus.SIMULATED_PAID:
        updated["payment_status"] = PaymentStatus.PAID.value
    return updated


def validate_delivery_slot(slot: Optional[str], now: datetime, allowed: Sequence[str]) -> None:
    if not slot or slot not in allowed:
        raise InvalidSlot("Invalid delivery slot")
    hours, minutes = (int(part) for part in slot.split(":"))
    slot_at = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if slot_at - now < MIN_SLOT_LEAD:
        raise SlotExpired("Selected delivery slot is no longer available (less than 30 mins away)")


def summarize(order: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": order["id"],
        "token_number": order["token_number"],
        "total_amount": order["total_amount"],
        "status": order["status"],
        "created_at": order["created_at"],
    }


def status_view(order: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": order["id"],
        "status": order["status"],
        "rejection_reason": order.get("rejection_reason"),
        "payment_status": order["payment_status"],
    }


def _find_index(orders: List[Dict[str, Any]], order_id: str) -> int:
    for i, order in enumerate(orders):
        if order.get("id") == order_id:
            return i
    raise OrderNotFound()


def _check_shop_access(store: RecordStore, actor: Dict[str, Any], order: Dict[str, Any], action: str) -> None:
    if actor.get("role") == Role.SUPER_ADMIN:
        return
    if actor.get("role") != Role.SHOP_ADMIN:
        raise Forbidden()
    shop = managed_shop(store.read_all(SHOPS), actor["id"])
    if not shop or shop["id"] != order["shop_id"]:
        raise Forbidden(f"You do not have permission to {action} this order")


def place_order(
    store: RecordStore,
    user: Dict[str, Any],
    shop_id: str,
    items: Sequence[OrderLineRequest],
    order_type: OrderType,
    delivery_slot: Optional[str] = None,
    delivery_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or local_now()
    order_type = OrderType(order_type)
    if not items:
        raise ValidationError("Invalid request data")

    with store.locked(SHOPS, ITEMS, ORDERS):
        shop = next((s for s in store.read_all(SHOPS) if s["id"] == shop_id), None)
        if shop is None:
            raise ShopNotFound()
        if not shop.get("is_open"):
            raise ShopClosed(f"{shop['name']} is currently closed")

        if order_type == OrderType.DELIVERY:
            validate_delivery_slot(delivery_slot, now, delivery_slots())
            if not delivery_address or not delivery_address.strip():
                raise MissingAddress("Delivery address is required for delivery orders")

        reservation = reserve(shop_id, items, store.read_all(ITEMS))
        orders = store.read_all(ORDERS)
        token = generate_token(shop["name"], orders, now)

        is_delivery = order_type == OrderType.DELIVERY
        order = Order(
            id=new_id("order"),
            token_number=token,
            user_id=user["id"],
            user_name=user.get("name") or user.get("email"),
            shop_id=shop_id,
            shop_name=shop["name"],
            order_type=order_type,
            delivery_slot=delivery_slot if is_delivery else None,
            delivery_address=delivery_address.strip() if is_delivery else None,
            items=reservation.line_items,
            total_amount=reservation.total_amount,
            status=OrderStatus.PLACED,
            payment_status=PaymentStatus.SIMULATED_PAID if is_delivery else PaymentStatus.NOT_REQUIRED,
            created_at=timestamp(now),
            updated_at=timestamp(now),
        ).model_dump(mode="json")

        # Stock is written before the order: a failure in between under-sells
        # rather than double-sells.
        store.write_all(ITEMS, reservation.catalog)
        try:
            store.write_all(ORDERS, orders + [order])
        except StoreFailure as e:
            logger.critical(
                "Stock decremented for order %s (%s) but the order was not saved; manual reconciliation required",
                order["id"], token,
            )
            raise PartialWriteError("Stock was reserved but the order could not be saved") from e

    logger.info("Order %s placed for shop %s by user %s, total %.2f", token, shop_id, user["id"], order["total_amount"])
    return summarize(order)


def update_order_status(
    store: RecordStore,
    order_id: str,
    status: str,
    actor: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    requested = parse_status(status)
    with store.locked(SHOPS, ORDERS):
        orders = store.read_all(ORDERS)
        index = _find_index(orders, order_id)
        _check_shop_access(store, actor, orders[index], "update")
        orders[index] = apply_transition(orders[index], requested, now)
        store.write_all(ORDERS, orders)

    logger.info("Order %s moved to %s", order_id, requested.value)
    return orders[index]


def reject_order(
    store: RecordStore,
    order_id: str,
    reason: str,
    actor: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    with store.locked(SHOPS, ITEMS, ORDERS):
        orders = store.read_all(ORDERS)
        index = _find_index(orders, order_id)
        order = orders[index]
        _check_shop_access(store, actor, order, "reject")

        if order["status"] != OrderStatus.PLACED:
            raise NotRejectable(
                f"Cannot reject order with status {order['status']}. Only PLACED orders can be rejected."
            )
        reason = (reason or "").strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise InvalidReason(
                f"Rejection reason is required and must be at least {MIN_REASON_LENGTH} characters"
            )

        store.write_all(ITEMS, restore(store.read_all(ITEMS), order["items"]))

        rejected = {
            **order,
            "status": OrderStatus.REJECTED.value,
            "rejection_reason": reason,
            "updated_at": timestamp(now),
        }
        if order["order_type"] == OrderType.DELIVERY:
            rejected["payment_status"] = PaymentStatus.REFUNDED.value
        orders[index] = rejected
        try:
            store.write_all(ORDERS, orders)
        except StoreFailure as e:
            logger.critical("Stock restored for order %s but the rejection was not saved", order_id)
            raise PartialWriteError("Stock was restored but the order could not be updated") from e

    logger.info("Order %s rejected: %s", order_id, reason)
    return rejected


def _newest_first(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(orders, key=lambda o: parse_timestamp(o["created_at"]), reverse=True)


def list_user_orders(store: RecordStore, user_id: str) -> List[Dict[str, Any]]:
    return _newest_first([o for o in store.read_all(ORDERS) if o.get("user_id") == user_id])


def list_shop_orders(
    store: RecordStore,
    actor: Dict[str, Any],
    status: Optional[str] = None,
    on_date: Optional[date] = None,
    shop_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    if actor.get("role") == Role.SHOP_ADMIN:
        shop = managed_shop(store.read_all(SHOPS), actor["id"])
        if shop is None:
            return []
        shop_id = shop["id"]
    elif actor.get("role") != Role.SUPER_ADMIN:
        raise Forbidden()

    orders = store.read_all(ORDERS)
    if shop_id:
        orders = [o for o in orders if o.get("shop_id") == shop_id]
    if status:
        wanted = parse_status(status)
        orders = [o for o in orders if o.get("status") == wanted]
    if on_date:
        orders = [o for o in orders if parse_timestamp(o["created_at"]).astimezone().date() == on_date]
    return _newest_first(orders)
