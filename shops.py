"""
Shop and admin management.

A user with role SHOP_ADMIN manages exactly one shop, and that shop's
``admin_id`` points back at the user. ``assign_admin`` and ``release_admin``
are the only functions that change either side of that link; shop creation,
shop deletion and role changes all go through them.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from clock import timestamp
from database import SHOPS, USERS, RecordStore, new_id
from errors import (
    AdminAlreadyAssigned,
    CannotModifySelf,
    DuplicateShopName,
    Forbidden,
    InvalidRole,
    ShopAlreadyHasAdmin,
    ShopNotFound,
    UserNotFound,
    ValidationError,
)
from schemas import DEFAULT_IMAGE, TIME_PATTERN, Role, Shop, User

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIME_RE = re.compile(TIME_PATTERN)


def managed_shop(shops: List[Dict[str, Any]], user_id: str) -> Optional[Dict[str, Any]]:
    return next((s for s in shops if s.get("admin_id") == user_id), None)


def _find(records: List[Dict[str, Any]], _id: str) -> Optional[Dict[str, Any]]:
    return next((r for r in records if r.get("id") == _id), None)


def require_super_admin(actor: Dict[str, Any]) -> None:
    if actor.get("role") != Role.SUPER_ADMIN:
        raise Forbidden("Access denied: Only Super Admin can perform this action")


def require_shop_access(actor: Dict[str, Any], shop: Dict[str, Any]) -> None:
    if actor.get("role") == Role.SUPER_ADMIN:
        return
    if actor.get("role") != Role.SHOP_ADMIN or shop.get("admin_id") != actor["id"]:
        raise Forbidden("Access denied: You do not own this shop")


def parse_role(value: str) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise InvalidRole("Invalid role")


# ===================== Admin assignment =====================
def assign_admin(users: List[Dict[str, Any]], shops: List[Dict[str, Any]], user_id: str, shop_id: str) -> None:
    """Make ``user_id`` the admin of ``shop_id``, updating both lists in place.

    Any other shop the user managed is released. Plain users are promoted to
    SHOP_ADMIN; super admins keep their role.
    """
    user = _find(users, user_id)
    if user is None:
        raise UserNotFound()
    shop = _find(shops, shop_id)
    if shop is None:
        raise ShopNotFound()
    if shop.get("admin_id") and shop["admin_id"] != user_id:
        raise ShopAlreadyHasAdmin("This shop already has an administrator assigned.")

    for other in shops:
        if other.get("admin_id") == user_id and other["id"] != shop_id:
            other["admin_id"] = None
    shop["admin_id"] = user_id
    if user.get("role") == Role.USER:
        user["role"] = Role.SHOP_ADMIN.value


def release_admin(users: List[Dict[str, Any]], shops: List[Dict[str, Any]], user_id: str, new_role: Role) -> None:
    """Unbind ``user_id`` from whatever shop they manage and set their role."""
    for shop in shops:
        if shop.get("admin_id") == user_id:
            shop["admin_id"] = None
    user = _find(users, user_id)
    if user is not None:
        user["role"] = new_role.value


# ===================== Validation =====================
def _validate_name(name: str) -> str:
    name = (name or "").strip()
    if len(name) < 2 or len(name) > 100:
        raise ValidationError("Shop name must be between 2 and 100 characters")
    return name


def _validate_time(value: str, label: str) -> str:
    if not value or not TIME_RE.match(value):
        raise ValidationError(f"Invalid {label}. Use HH:MM")
    return value


def _ensure_unique_name(shops: List[Dict[str, Any]], name: str, exclude_id: Optional[str] = None) -> None:
    lowered = name.lower()
    for shop in shops:
        if shop["id"] != exclude_id and shop.get("name", "").lower() == lowered:
            raise DuplicateShopName("Shop name already exists")


# ===================== Shops =====================
def list_public_shops(store: RecordStore) -> List[Dict[str, Any]]:
    fields = ("id", "name", "image", "is_open", "opening_time", "closing_time")
    shops = [{k: s.get(k) for k in fields} for s in store.read_all(SHOPS)]
    return sorted(shops, key=lambda s: s["name"].lower())


def list_shops_with_admins(store: RecordStore) -> List[Dict[str, Any]]:
    emails = {u["id"]: u.get("email") for u in store.read_all(USERS)}
    return [{**s, "admin_email": emails.get(s.get("admin_id"))} for s in store.read_all(SHOPS)]


def get_shop(store: RecordStore, shop_id: str) -> Dict[str, Any]:
    shop = store.find(SHOPS, shop_id)
    if shop is None:
        raise ShopNotFound()
    return shop


def get_my_shop(store: RecordStore, actor: Dict[str, Any]) -> Dict[str, Any]:
    shops = store.read_all(SHOPS)
    if actor.get("role") == Role.SUPER_ADMIN:
        return {"role": Role.SUPER_ADMIN.value, "shops": [{"id": s["id"], "name": s["name"]} for s in shops]}
    if actor.get("role") == Role.SHOP_ADMIN:
        shop = managed_shop(shops, actor["id"])
        if shop is None:
            raise ShopNotFound("No shop assigned")
        return {"shop": shop}
    raise Forbidden()


def create_shop(
    store: RecordStore,
    actor: Dict[str, Any],
    name: str,
    admin_email: str,
    opening_time: str,
    closing_time: str,
    image: Optional[str] = None,
) -> Dict[str, Any]:
    require_super_admin(actor)
    name = _validate_name(name)
    admin_email = (admin_email or "").strip()
    if not EMAIL_RE.match(admin_email):
        raise ValidationError("Invalid email format")
    _validate_time(opening_time, "opening time")
    _validate_time(closing_time, "closing time")

    with store.locked(USERS, SHOPS):
        users = store.read_all(USERS)
        shops = store.read_all(SHOPS)
        _ensure_unique_name(shops, name)

        admin = next((u for u in users if u.get("email", "").lower() == admin_email.lower()), None)
        if admin is None:
            admin = User(
                id=new_id("user"),
                name=admin_email.split("@")[0],
                email=admin_email,
                role=Role.SHOP_ADMIN,
                created_at=timestamp(),
            ).model_dump(mode="json")
            users.append(admin)
            logger.info("Created shop admin account %s", admin_email)
        elif managed_shop(shops, admin["id"]):
            raise AdminAlreadyAssigned("This user already manages a shop")

        shop = Shop(
            id=new_id("shop"),
            name=name,
            is_open=True,
            opening_time=opening_time,
            closing_time=closing_time,
            image=image or DEFAULT_IMAGE,
        ).model_dump(mode="json")
        shops.append(shop)
        assign_admin(users, shops, admin["id"], shop["id"])

        store.write_all(USERS, users)
        store.write_all(SHOPS, shops)

    logger.info("Shop %s (%s) created with admin %s", shop["name"], shop["id"], admin["id"])
    return shop


def update_shop(
    store: RecordStore,
    actor: Dict[str, Any],
    shop_id: str,
    name: Optional[str] = None,
    opening_time: Optional[str] = None,
    closing_time: Optional[str] = None,
    image: Optional[str] = None,
) -> Dict[str, Any]:
    require_super_admin(actor)
    with store.locked(SHOPS):
        shops = store.read_all(SHOPS)
        shop = _find(shops, shop_id)
        if shop is None:
            raise ShopNotFound()
        if name:
            name = _validate_name(name)
            _ensure_unique_name(shops, name, exclude_id=shop_id)
            shop["name"] = name
        if opening_time:
            shop["opening_time"] = _validate_time(opening_time, "opening time")
        if closing_time:
            shop["closing_time"] = _validate_time(closing_time, "closing time")
        if image:
            shop["image"] = image
        store.write_all(SHOPS, shops)
    return shop


def delete_shop(store: RecordStore, actor: Dict[str, Any], shop_id: str) -> None:
    """Remove a shop. Its items and orders are left in place."""
    require_super_admin(actor)
    with store.locked(USERS, SHOPS):
        users = store.read_all(USERS)
        shops = store.read_all(SHOPS)
        shop = _find(shops, shop_id)
        if shop is None:
            raise ShopNotFound()
        admin_id = shop.get("admin_id")
        if admin_id:
            admin = _find(users, admin_id)
            keep = Role.SUPER_ADMIN if admin and admin.get("role") == Role.SUPER_ADMIN else Role.USER
            release_admin(users, shops, admin_id, keep)
        shops = [s for s in shops if s["id"] != shop_id]
        store.write_all(USERS, users)
        store.write_all(SHOPS, shops)
    logger.info("Shop %s deleted", shop_id)


def set_shop_status(store: RecordStore, actor: Dict[str, Any], shop_id: str, is_open: bool) -> Dict[str, Any]:
    """Open or close a shop. Pending orders do not block closing."""
    with store.locked(SHOPS):
        shops = store.read_all(SHOPS)
        shop = _find(shops, shop_id)
        if shop is None:
            raise ShopNotFound()
        require_shop_access(actor, shop)
        shop["is_open"] = bool(is_open)
        store.write_all(SHOPS, shops)
    logger.info("Shop %s is now %s", shop_id, "open" if shop["is_open"] else "closed")
    return shop


def toggle_shop_status(store: RecordStore, actor: Dict[str, Any], shop_id: str) -> Dict[str, Any]:
    with store.locked(SHOPS):
        shop = get_shop(store, shop_id)
        return set_shop_status(store, actor, shop_id, not shop.get("is_open"))


# ===================== Users =====================
def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password"}


def list_users(store: RecordStore, actor: Dict[str, Any]) -> List[Dict[str, Any]]:
    require_super_admin(actor)
    users = sorted(store.read_all(USERS), key=lambda u: u.get("created_at") or "", reverse=True)
    return [public_user(u) for u in users]


def set_user_role(
    store: RecordStore,
    actor: Dict[str, Any],
    target_user_id: str,
    new_role: str,
    shop_id: Optional[str] = None,
) -> Dict[str, Any]:
    require_super_admin(actor)
    if actor["id"] == target_user_id:
        raise CannotModifySelf("Cannot change your own role")
    role = parse_role(new_role)

    with store.locked(USERS, SHOPS):
        users = store.read_all(USERS)
        shops = store.read_all(SHOPS)
        user = _find(users, target_user_id)
        if user is None:
            raise UserNotFound()
        old_role = user.get("role")
        current_shop = managed_shop(shops, target_user_id)

        if role == Role.SHOP_ADMIN:
            if shop_id:
                assign_admin(users, shops, target_user_id, shop_id)
            elif current_shop is None:
                raise ValidationError("Shop ID required when promoting to Shop Admin")
            user["role"] = Role.SHOP_ADMIN.value
        elif old_role == Role.SHOP_ADMIN or (current_shop and role == Role.USER):
            release_admin(users, shops, target_user_id, role)
        else:
            user["role"] = role.value

        store.write_all(USERS, users)
        store.write_all(SHOPS, shops)

    logger.info("User %s role changed from %s to %s", target_user_id, old_role, role.value)
    return public_user(user)
