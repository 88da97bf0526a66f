"""
Inventory reservation.

``reserve`` checks every requested line against a catalog snapshot and returns
the order total, the line-item snapshots and a new catalog with stock
decremented. Nothing is persisted here and the input catalog is never mutated,
so a failing line leaves no trace.
"""
from typing import Any, Dict, List, Sequence

from pydantic import BaseModel

from errors import CrossShopItem, InsufficientStock, ItemNotFound
from schemas import OrderLineRequest


class Reservation(BaseModel):
    total_amount: float
    catalog: List[Dict[str, Any]]
    line_items: List[Dict[str, Any]]


def reserve(shop_id: str, requests: Sequence[OrderLineRequest], catalog: Sequence[Dict[str, Any]]) -> Reservation:
    by_id = {item["id"]: dict(item) for item in catalog}
    total = 0.0
    lines = []

    for req in requests:
        item = by_id.get(req.item_id)
        if item is None:
            raise ItemNotFound(f"Item {req.item_id} not found")
        if item.get("shop_id") != shop_id:
            raise CrossShopItem("All items must belong to the same shop")
        # Repeated lines for one item see the stock left by the earlier ones.
        if not item.get("is_available") or item.get("quantity", 0) < req.quantity:
            raise InsufficientStock(f"Item '{item.get('name')}' is out of stock or insufficient quantity")

        item["quantity"] = item["quantity"] - req.quantity
        item["is_available"] = item["quantity"] > 0
        total += item["price"] * req.quantity
        lines.append({
            "item_id": item["id"],
            "name": item["name"],
            "price": item["price"],
            "quantity": req.quantity,
        })

    updated = [by_id.get(item["id"], item) for item in catalog]
    return Reservation(total_amount=round(total, 2), catalog=updated, line_items=lines)


def restore(catalog: Sequence[Dict[str, Any]], line_items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Give ordered quantities back to the catalog.

    Restored items are always marked available again, even if an admin had
    switched them off in the meantime.
    """
    returned: Dict[str, int] = {}
    for line in line_items:
        returned[line["item_id"]] = returned.get(line["item_id"], 0) + line["quantity"]

    updated = []
    for item in catalog:
        if item["id"] in returned:
            item = {**item, "quantity": item.get("quantity", 0) + returned[item["id"]], "is_available": True}
        updated.append(item)
    return updated
