import logging
import os
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import items as item_service
import orders as order_service
import shops as shop_service
import stats as stats_service
from auth import authenticate, create_access_token, get_current_user, register_user, require_role
from database import COLLECTIONS, RecordStore, get_store
from errors import CanteenError
from schemas import (
    CreateItemRequest,
    CreateShopRequest,
    LoginRequest,
    OrderStatusRequest,
    PlaceOrderRequest,
    RegisterRequest,
    RejectOrderRequest,
    Role,
    RoleChangeRequest,
    ShopStatusRequest,
    UpdateItemRequest,
    UpdateShopRequest,
)
from shops import public_user

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Canteen Ordering API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

admin_user = require_role(Role.SHOP_ADMIN, Role.SUPER_ADMIN)
super_admin = require_role(Role.SUPER_ADMIN)


# ===================== Error responses =====================
def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message or "Request failed"})


@app.exception_handler(CanteenError)
async def handle_canteen_error(request: Request, exc: CanteenError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.warning("%s %s refused: %s", request.method, request.url.path, exc.message)
    return failure(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return failure(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return failure(400, "Invalid request data")
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    return failure(400, message)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
    return failure(500, "Internal server error")


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Canteen Ordering API running"}


@app.get("/test")
def test_database(store: RecordStore = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "store": type(store).__name__,
        "collections": {},
    }
    for name in COLLECTIONS:
        try:
            response["collections"][name] = len(store.read_all(name))
        except CanteenError as e:
            response["collections"][name] = f"❌ {e.message}"
    return response


# ===================== Auth =====================
@app.post("/auth/register", status_code=201)
def register(payload: RegisterRequest, store: RecordStore = Depends(get_store)):
    user = register_user(store, payload.name, payload.email, payload.password)
    return {"success": True, "token": create_access_token(user), "user": public_user(user)}


@app.post("/auth/login")
def login(payload: LoginRequest, store: RecordStore = Depends(get_store)):
    user = authenticate(store, payload.email, payload.password)
    return {"success": True, "token": create_access_token(user), "user": public_user(user)}


@app.get("/auth/me")
def me(current_user=Depends(get_current_user)):
    return {"success": True, "data": current_user}


# ===================== Shops & menus =====================
@app.get("/shops")
def list_shops(current_user=Depends(get_current_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "shops": shop_service.list_public_shops(store)}


@app.get("/shops/{shop_id}/items")
def shop_menu(shop_id: str, current_user=Depends(get_current_user), store: RecordStore = Depends(get_store)):
    is_admin = current_user.get("role") in (Role.SHOP_ADMIN, Role.SUPER_ADMIN)
    menu = item_service.get_shop_menu(store, shop_id, include_unavailable=is_admin)
    return {"success": True, **menu}


# ===================== Orders =====================
@app.post("/orders/place", status_code=201)
def place_order(payload: PlaceOrderRequest, current_user=Depends(get_current_user), store: RecordStore = Depends(get_store)):
    summary = order_service.place_order(
        store,
        current_user,
        payload.shop_id,
        payload.items,
        payload.order_type,
        payload.delivery_slot,
        payload.delivery_address,
    )
    return {"success": True, "order": summary}


@app.get("/orders/my-orders")
def my_orders(current_user=Depends(get_current_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "orders": order_service.list_user_orders(store, current_user["id"])}


@app.get("/admin/orders")
def admin_orders(
    status: Optional[str] = None,
    on_date: Optional[date] = Query(None, alias="date"),
    shop_id: Optional[str] = Query(None, alias="shopId"),
    admin=Depends(admin_user),
    store: RecordStore = Depends(get_store),
):
    found = order_service.list_shop_orders(store, admin, status=status, on_date=on_date, shop_id=shop_id)
    return {"success": True, "orders": found}


@app.put("/admin/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    order = order_service.update_order_status(store, order_id, payload.status, admin)
    return {"success": True, "order": order_service.status_view(order)}


@app.put("/admin/orders/{order_id}/reject")
def reject_order(order_id: str, payload: RejectOrderRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    order = order_service.reject_order(store, order_id, payload.reason, admin)
    refunded = " and refund processed" if order["payment_status"] == "REFUNDED" else ""
    return {"success": True, "message": f"Order rejected{refunded}", "order": order_service.status_view(order)}


# ===================== Shop administration =====================
@app.get("/admin/my-shop")
def my_shop(admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    return {"success": True, **shop_service.get_my_shop(store, admin)}


@app.get("/admin/shops")
def admin_list_shops(admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": shop_service.list_shops_with_admins(store)}


@app.post("/admin/shops", status_code=201)
def create_shop(payload: CreateShopRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    shop = shop_service.create_shop(
        store, admin, payload.name, payload.admin_email, payload.opening_time, payload.closing_time, payload.image
    )
    return {"success": True, "message": "Shop created successfully", "shop": shop}


@app.get("/admin/shops/{shop_id}")
def admin_get_shop(shop_id: str, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": shop_service.get_shop(store, shop_id)}


@app.put("/admin/shops/{shop_id}")
def update_shop(shop_id: str, payload: UpdateShopRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    shop = shop_service.update_shop(
        store, admin, shop_id, payload.name, payload.opening_time, payload.closing_time, payload.image
    )
    return {"success": True, "message": "Shop updated successfully", "shop": shop}


@app.delete("/admin/shops/{shop_id}")
def delete_shop(shop_id: str, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    shop_service.delete_shop(store, admin, shop_id)
    return {"success": True, "message": "Shop deleted successfully"}


@app.put("/admin/shop/{shop_id}/status")
def set_shop_status(shop_id: str, payload: ShopStatusRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    shop = shop_service.set_shop_status(store, admin, shop_id, payload.is_open)
    return {"success": True, "data": shop}


@app.put("/admin/shop/{shop_id}/toggle")
def toggle_shop_status(shop_id: str, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    shop = shop_service.toggle_shop_status(store, admin, shop_id)
    message = "Shop is now open" if shop["is_open"] else "Shop is now closed"
    return {"success": True, "message": message, "shop": {"id": shop["id"], "is_open": shop["is_open"]}}


@app.get("/admin/shop/{shop_id}/stats")
def shop_stats(shop_id: str, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": stats_service.shop_stats(store, admin, shop_id)}


@app.get("/admin/stats")
def system_stats(admin=Depends(super_admin), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": stats_service.system_stats(store, admin)}


# ===================== Users =====================
@app.get("/admin/users")
def list_users(admin=Depends(super_admin), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": shop_service.list_users(store, admin)}


@app.put("/admin/users/{user_id}/role")
def change_role(user_id: str, payload: RoleChangeRequest, admin=Depends(super_admin), store: RecordStore = Depends(get_store)):
    user = shop_service.set_user_role(store, admin, user_id, payload.role, payload.shop_id)
    return {"success": True, "message": "User role updated successfully", "user": user}


# ===================== Items =====================
@app.get("/admin/items")
def admin_items(shop_id: Optional[str] = Query(None, alias="shopId"), admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": item_service.list_admin_items(store, admin, shop_id)}


@app.post("/admin/items", status_code=201)
def add_item(payload: CreateItemRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    item = item_service.add_item(
        store,
        admin,
        payload.name,
        payload.category,
        payload.price,
        payload.quantity,
        is_veg=payload.is_veg,
        image=payload.image,
        shop_id=payload.shop_id,
    )
    return {"success": True, "data": item}


@app.put("/admin/items/{item_id}")
def update_item(item_id: str, payload: UpdateItemRequest, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    item = item_service.update_item(store, admin, item_id, payload.model_dump(exclude_none=True))
    return {"success": True, "data": item}


@app.delete("/admin/items/{item_id}")
def delete_item(item_id: str, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    item_service.delete_item(store, admin, item_id)
    return {"success": True, "message": "Item deleted"}


@app.put("/admin/items/{item_id}/availability")
def toggle_availability(item_id: str, admin=Depends(admin_user), store: RecordStore = Depends(get_store)):
    return {"success": True, "data": item_service.toggle_availability(store, admin, item_id)}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
