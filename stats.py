"""Dashboard statistics, recomputed from the full collections on every call."""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from clock import local_now, parse_timestamp, start_of_day
from database import ITEMS, ORDERS, SHOPS, USERS, RecordStore
from errors import ShopNotFound
from schemas import OrderStatus
from shops import require_shop_access, require_super_admin


def compute_stats(
    orders: Iterable[Dict[str, Any]],
    items: Iterable[Dict[str, Any]],
    shop_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    midnight = start_of_day(now or local_now())
    if shop_id:
        orders = [o for o in orders if o.get("shop_id") == shop_id]
        items = [i for i in items if i.get("shop_id") == shop_id]

    orders_today = 0
    revenue_today = 0.0
    pending = 0
    for order in orders:
        if parse_timestamp(order["created_at"]) >= midnight:
            orders_today += 1
            revenue_today += order.get("total_amount") or 0
        if order.get("status") == OrderStatus.PLACED:
            pending += 1

    out_of_stock = sum(1 for i in items if not i.get("is_available") or i.get("quantity", 0) <= 0)
    return {
        "orders_today": orders_today,
        "revenue_today": round(revenue_today, 2),
        "pending_orders": pending,
        "out_of_stock_items": out_of_stock,
    }


def shop_stats(store: RecordStore, actor: Dict[str, Any], shop_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    shop = store.find(SHOPS, shop_id)
    if shop is None:
        raise ShopNotFound()
    require_shop_access(actor, shop)
    return compute_stats(store.read_all(ORDERS), store.read_all(ITEMS), shop_id, now)


def system_stats(store: RecordStore, actor: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    require_super_admin(actor)
    data = compute_stats(store.read_all(ORDERS), store.read_all(ITEMS), None, now)
    data["total_shops"] = len(store.read_all(SHOPS))
    data["total_users"] = len(store.read_all(USERS))
    return data
