"""Menu items: customer-facing menus and admin catalog maintenance."""
import logging
from typing import Any, Dict, List, Optional

from clock import timestamp
from database import ITEMS, ORDERS, SHOPS, RecordStore, new_id
from errors import Forbidden, ItemInUse, ItemNotFound, ShopNotFound, ValidationError
from schemas import DEFAULT_IMAGE, TERMINAL_STATUSES, Item, Role
from shops import managed_shop

logger = logging.getLogger(__name__)

MENU_FIELDS = ("id", "name", "price", "image", "is_veg", "is_available", "quantity")
IMMUTABLE_FIELDS = ("id", "shop_id", "created_at")


def _actor_shop_id(store: RecordStore, actor: Dict[str, Any]) -> str:
    shop = managed_shop(store.read_all(SHOPS), actor["id"])
    if shop is None:
        raise Forbidden("No shop assigned")
    return shop["id"]


def _check_item_access(store: RecordStore, actor: Dict[str, Any], item: Dict[str, Any]) -> None:
    if actor.get("role") == Role.SUPER_ADMIN:
        return
    if actor.get("role") != Role.SHOP_ADMIN or _actor_shop_id(store, actor) != item["shop_id"]:
        raise Forbidden()


def get_shop_menu(store: RecordStore, shop_id: str, include_unavailable: bool = False) -> Dict[str, Any]:
    shop = store.find(SHOPS, shop_id)
    if shop is None:
        raise ShopNotFound()

    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for item in store.read_all(ITEMS):
        if item.get("shop_id") != shop_id:
            continue
        if not include_unavailable and not item.get("is_available"):
            continue
        grouped.setdefault(item["category"], []).append({k: item.get(k) for k in MENU_FIELDS})

    return {
        "shop": {"id": shop["id"], "name": shop["name"]},
        "categories": [{"category_name": c, "items": grouped[c]} for c in sorted(grouped)],
    }


def list_admin_items(store: RecordStore, actor: Dict[str, Any], shop_id: Optional[str] = None) -> List[Dict[str, Any]]:
    if actor.get("role") == Role.SHOP_ADMIN:
        shop = managed_shop(store.read_all(SHOPS), actor["id"])
        if shop is None:
            raise ShopNotFound("No shop assigned")
        shop_id = shop["id"]
    elif actor.get("role") != Role.SUPER_ADMIN:
        raise Forbidden()
    items = store.read_all(ITEMS)
    return [i for i in items if i.get("shop_id") == shop_id] if shop_id else items


def add_item(
    store: RecordStore,
    actor: Dict[str, Any],
    name: str,
    category: str,
    price: float,
    quantity: int,
    is_veg: bool = False,
    image: Optional[str] = None,
    shop_id: Optional[str] = None,
) -> Dict[str, Any]:
    if actor.get("role") == Role.SHOP_ADMIN:
        shop_id = _actor_shop_id(store, actor)
    elif actor.get("role") == Role.SUPER_ADMIN:
        if not shop_id:
            raise ValidationError("Shop ID required for Super Admin")
        if store.find(SHOPS, shop_id) is None:
            raise ShopNotFound()
    else:
        raise Forbidden()

    item = Item(
        id=new_id("item"),
        shop_id=shop_id,
        name=name,
        category=category,
        price=price,
        is_veg=bool(is_veg),
        quantity=quantity,
        is_available=quantity > 0,
        image=image or DEFAULT_IMAGE,
        created_at=timestamp(),
    )
    created = store.append(ITEMS, item)
    logger.info("Item %s added to shop %s", created["id"], shop_id)
    return created


def update_item(store: RecordStore, actor: Dict[str, Any], item_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in changes.items() if v is not None and k not in IMMUTABLE_FIELDS}
    with store.locked(SHOPS, ITEMS):
        items = store.read_all(ITEMS)
        index = next((i for i, it in enumerate(items) if it["id"] == item_id), None)
        if index is None:
            raise ItemNotFound()
        item = items[index]
        _check_item_access(store, actor, item)

        if "quantity" in changes:
            changes["is_available"] = changes["quantity"] > 0
        updated = {**item, **changes}
        if updated.get("is_available") and updated.get("quantity", 0) <= 0:
            raise ValidationError("An item with no stock cannot be marked available")

        items[index] = Item(**updated).model_dump(mode="json")
        store.write_all(ITEMS, items)
    return items[index]


def delete_item(store: RecordStore, actor: Dict[str, Any], item_id: str) -> None:
    with store.locked(SHOPS, ITEMS, ORDERS):
        item = store.find(ITEMS, item_id)
        if item is None:
            raise ItemNotFound()
        _check_item_access(store, actor, item)

        active = [
            o for o in store.read_all(ORDERS)
            if o.get("status") not in TERMINAL_STATUSES
            and any(line.get("item_id") == item_id for line in o.get("items", []))
        ]
        if active:
            raise ItemInUse(f"Cannot delete item. It is part of {len(active)} active orders.")
        store.delete(ITEMS, item_id)
    logger.info("Item %s deleted", item_id)


def toggle_availability(store: RecordStore, actor: Dict[str, Any], item_id: str) -> Dict[str, Any]:
    with store.locked(SHOPS, ITEMS):
        item = store.find(ITEMS, item_id)
        if item is None:
            raise ItemNotFound()
        return update_item(store, actor, item_id, {"is_available": not item.get("is_available")})
