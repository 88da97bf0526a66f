from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from auth import create_access_token
from clock import local_now, timestamp
from database import ITEMS, ORDERS, SHOPS, USERS, JsonFileStore, get_store
from main import app


def make_user(user_id, role="USER", email=None, name=None):
    return {
        "id": user_id,
        "name": name or user_id,
        "email": email or f"{user_id}@canteen.com",
        "password": None,
        "role": role,
        "created_at": timestamp(),
    }


def make_shop(shop_id, name, admin_id=None, is_open=True):
    return {
        "id": shop_id,
        "name": name,
        "admin_id": admin_id,
        "is_open": is_open,
        "opening_time": "08:00",
        "closing_time": "22:00",
        "image": "https://via.placeholder.com/150",
    }


def make_item(item_id, shop_id, quantity, price=10.0, name=None, category="Drinks", is_available=None):
    return {
        "id": item_id,
        "shop_id": shop_id,
        "name": name or item_id,
        "category": category,
        "price": price,
        "is_veg": True,
        "quantity": quantity,
        "is_available": quantity > 0 if is_available is None else is_available,
        "image": "https://via.placeholder.com/150",
        "created_at": timestamp(),
    }


def at(hour, minute=0):
    """Today at the given local time."""
    return local_now().replace(hour=hour, minute=minute, second=0, microsecond=0)


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path / "data"))


@pytest.fixture
def seeded(store):
    """Juice Corner (open, admin juice_admin) with A in stock and B sold out,
    plus a second shop and the three kinds of users."""
    store.write_all(USERS, [
        make_user("root", "SUPER_ADMIN"),
        make_user("juice_admin", "SHOP_ADMIN"),
        make_user("snack_admin", "SHOP_ADMIN"),
        make_user("alice", "USER", name="Alice"),
        make_user("bob", "USER", name="Bob"),
    ])
    store.write_all(SHOPS, [
        make_shop("shop_juice", "Juice Corner", admin_id="juice_admin"),
        make_shop("shop_snack", "Snack Bar", admin_id="snack_admin"),
        make_shop("shop_empty", "Tea Stall"),
    ])
    store.write_all(ITEMS, [
        make_item("item_a", "shop_juice", 5, price=10.0, name="Mango Juice"),
        make_item("item_b", "shop_juice", 0, price=15.0, name="Lime Soda"),
        make_item("item_c", "shop_snack", 10, price=25.0, name="Samosa", category="Snacks"),
    ])
    store.write_all(ORDERS, [])
    return store


@pytest.fixture
def users(seeded):
    return {u["id"]: u for u in seeded.read_all(USERS)}


@pytest.fixture
def client(seeded):
    app.dependency_overrides[get_store] = lambda: seeded
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(users):
    def headers(user_id):
        return {"Authorization": f"Bearer {create_access_token(users[user_id])}"}
    return headers


@pytest.fixture
def morning():
    return at(10, 0)


def today_ddmmyy(now: datetime = None) -> str:
    return (now or local_now()).strftime("%d%m%y")
