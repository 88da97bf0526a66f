from datetime import timedelta

import pytest

from conftest import at
from database import ORDERS
from errors import Forbidden, ShopNotFound
from stats import compute_stats, shop_stats, system_stats


def order(shop_id, total, status, created):
    return {"shop_id": shop_id, "total_amount": total, "status": status, "created_at": created.isoformat()}


@pytest.fixture
def history(seeded):
    now = at(15)
    yesterday = now - timedelta(days=1)
    seeded.write_all(ORDERS, [
        order("shop_juice", 20, "PLACED", at(9)),
        order("shop_juice", 35.5, "COMPLETED", at(11)),
        order("shop_juice", 100, "PLACED", yesterday),
        order("shop_snack", 25, "REJECTED", at(12)),
    ])
    return now


def test_shop_stats(seeded, users, history):
    data = shop_stats(seeded, users["juice_admin"], "shop_juice", now=history)
    assert data == {
        "orders_today": 2,
        "revenue_today": 55.5,
        "pending_orders": 2,
        "out_of_stock_items": 1,
    }


def test_system_stats(seeded, users, history):
    data = system_stats(seeded, users["root"], now=history)
    assert data["orders_today"] == 3
    assert data["revenue_today"] == 80.5
    assert data["pending_orders"] == 2
    assert data["out_of_stock_items"] == 1
    assert data["total_shops"] == 3
    assert data["total_users"] == 5


def test_out_of_stock_counts_disabled_items():
    items = [
        {"shop_id": "s", "quantity": 3, "is_available": False},
        {"shop_id": "s", "quantity": 0, "is_available": True},
        {"shop_id": "s", "quantity": 2, "is_available": True},
    ]
    assert compute_stats([], items, "s", now=at(12))["out_of_stock_items"] == 2


def test_stats_access(seeded, users, history):
    with pytest.raises(Forbidden):
        shop_stats(seeded, users["snack_admin"], "shop_juice", now=history)
    with pytest.raises(ShopNotFound):
        shop_stats(seeded, users["root"], "missing", now=history)
    with pytest.raises(Forbidden):
        system_stats(seeded, users["juice_admin"], now=history)
