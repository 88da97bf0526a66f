import pytest

from database import ITEMS, SHOPS, USERS
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
from shops import (
    create_shop,
    delete_shop,
    get_my_shop,
    list_public_shops,
    list_shops_with_admins,
    list_users,
    set_shop_status,
    set_user_role,
    toggle_shop_status,
    update_shop,
)


def user(store, user_id):
    return next(u for u in store.read_all(USERS) if u["id"] == user_id)


def shop(store, shop_id):
    return next(s for s in store.read_all(SHOPS) if s["id"] == shop_id)


def assert_admin_links_consistent(store):
    shops = store.read_all(SHOPS)
    for u in store.read_all(USERS):
        managed = [s for s in shops if s.get("admin_id") == u["id"]]
        if u["role"] == "SHOP_ADMIN":
            assert len(managed) <= 1
        elif u["role"] == "USER":
            assert managed == []


# ===================== Creation =====================
def test_create_shop_with_new_admin(seeded, users):
    created = create_shop(seeded, users["root"], "Dosa Point", "dosa@canteen.com", "07:30", "21:00")

    assert created["is_open"] is True
    admin = next(u for u in seeded.read_all(USERS) if u["email"] == "dosa@canteen.com")
    assert admin["role"] == "SHOP_ADMIN"
    assert admin["name"] == "dosa"
    assert admin.get("password") is None
    assert shop(seeded, created["id"])["admin_id"] == admin["id"]
    assert_admin_links_consistent(seeded)


def test_create_shop_promotes_existing_user(seeded, users):
    created = create_shop(seeded, users["root"], "Dosa Point", "alice@canteen.com", "07:30", "21:00")
    assert user(seeded, "alice")["role"] == "SHOP_ADMIN"
    assert created["admin_id"] == "alice"


def test_create_shop_keeps_super_admin_role(seeded, users):
    create_shop(seeded, users["root"], "Dosa Point", "root@canteen.com", "07:30", "21:00")
    assert user(seeded, "root")["role"] == "SUPER_ADMIN"


def test_create_shop_admin_already_assigned(seeded, users):
    with pytest.raises(AdminAlreadyAssigned):
        create_shop(seeded, users["root"], "Dosa Point", "juice_admin@canteen.com", "07:30", "21:00")
    assert len(seeded.read_all(SHOPS)) == 3


@pytest.mark.parametrize("name", ["juice corner", "JUICE CORNER", "  Juice Corner "])
def test_create_shop_duplicate_name(seeded, users, name):
    with pytest.raises(DuplicateShopName):
        create_shop(seeded, users["root"], name, "new@canteen.com", "07:30", "21:00")


@pytest.mark.parametrize("name, email, opening, closing", [
    ("D", "new@canteen.com", "07:30", "21:00"),
    ("D" * 101, "new@canteen.com", "07:30", "21:00"),
    ("Dosa Point", "not-an-email", "07:30", "21:00"),
    ("Dosa Point", "new@canteen.com", "7:30", "21:00"),
    ("Dosa Point", "new@canteen.com", "07:30", "24:00"),
])
def test_create_shop_validation(seeded, users, name, email, opening, closing):
    with pytest.raises(ValidationError):
        create_shop(seeded, users["root"], name, email, opening, closing)


def test_only_super_admin_creates_shops(seeded, users):
    with pytest.raises(Forbidden):
        create_shop(seeded, users["juice_admin"], "Dosa Point", "new@canteen.com", "07:30", "21:00")


# ===================== Update / delete =====================
def test_update_shop(seeded, users):
    updated = update_shop(seeded, users["root"], "shop_juice", name="Juice Centre", closing_time="23:00")
    assert updated["name"] == "Juice Centre"
    assert updated["closing_time"] == "23:00"
    assert updated["opening_time"] == "08:00"
    with pytest.raises(DuplicateShopName):
        update_shop(seeded, users["root"], "shop_juice", name="snack bar")
    with pytest.raises(ValidationError):
        update_shop(seeded, users["root"], "shop_juice", opening_time="8am")
    with pytest.raises(ShopNotFound):
        update_shop(seeded, users["root"], "missing", name="Anything")


def test_delete_shop_releases_admin_and_keeps_items(seeded, users):
    delete_shop(seeded, users["root"], "shop_juice")
    assert all(s["id"] != "shop_juice" for s in seeded.read_all(SHOPS))
    assert user(seeded, "juice_admin")["role"] == "USER"
    assert any(i["shop_id"] == "shop_juice" for i in seeded.read_all(ITEMS))
    assert_admin_links_consistent(seeded)
    with pytest.raises(ShopNotFound):
        delete_shop(seeded, users["root"], "shop_juice")


# ===================== Roles =====================
def test_promote_requires_shop_then_guards_assigned_shop(seeded, users):
    with pytest.raises(ValidationError):
        set_user_role(seeded, users["root"], "alice", "SHOP_ADMIN")
    assert user(seeded, "alice")["role"] == "USER"

    promoted = set_user_role(seeded, users["root"], "alice", "SHOP_ADMIN", "shop_empty")
    assert promoted["role"] == "SHOP_ADMIN"
    assert "password" not in promoted
    assert shop(seeded, "shop_empty")["admin_id"] == "alice"

    with pytest.raises(ShopAlreadyHasAdmin):
        set_user_role(seeded, users["root"], "bob", "SHOP_ADMIN", "shop_empty")
    assert user(seeded, "bob")["role"] == "USER"
    assert shop(seeded, "shop_empty")["admin_id"] == "alice"
    assert_admin_links_consistent(seeded)


def test_reassigning_same_shop_is_allowed(seeded, users):
    set_user_role(seeded, users["root"], "juice_admin", "SHOP_ADMIN", "shop_juice")
    assert shop(seeded, "shop_juice")["admin_id"] == "juice_admin"


def test_shop_admin_switches_shop(seeded, users):
    set_user_role(seeded, users["root"], "juice_admin", "SHOP_ADMIN", "shop_empty")
    assert shop(seeded, "shop_juice")["admin_id"] is None
    assert shop(seeded, "shop_empty")["admin_id"] == "juice_admin"

    with pytest.raises(ShopAlreadyHasAdmin):
        set_user_role(seeded, users["root"], "juice_admin", "SHOP_ADMIN", "shop_snack")
    assert shop(seeded, "shop_empty")["admin_id"] == "juice_admin"
    assert_admin_links_consistent(seeded)


def test_demotion_clears_shop_admin(seeded, users):
    set_user_role(seeded, users["root"], "juice_admin", "USER")
    assert user(seeded, "juice_admin")["role"] == "USER"
    assert shop(seeded, "shop_juice")["admin_id"] is None


def test_promotion_to_super_admin_from_shop_admin(seeded, users):
    set_user_role(seeded, users["root"], "snack_admin", "SUPER_ADMIN")
    assert user(seeded, "snack_admin")["role"] == "SUPER_ADMIN"
    assert shop(seeded, "shop_snack")["admin_id"] is None


def test_role_change_guards(seeded, users):
    with pytest.raises(CannotModifySelf):
        set_user_role(seeded, users["root"], "root", "USER")
    with pytest.raises(InvalidRole):
        set_user_role(seeded, users["root"], "alice", "OWNER")
    with pytest.raises(UserNotFound):
        set_user_role(seeded, users["root"], "ghost", "USER")
    with pytest.raises(ShopNotFound):
        set_user_role(seeded, users["root"], "alice", "SHOP_ADMIN", "ghost_shop")
    with pytest.raises(Forbidden):
        set_user_role(seeded, users["juice_admin"], "alice", "SHOP_ADMIN", "shop_empty")


# ===================== Status =====================
def test_toggle_shop_status(seeded, users):
    assert toggle_shop_status(seeded, users["juice_admin"], "shop_juice")["is_open"] is False
    assert shop(seeded, "shop_juice")["is_open"] is False
    assert toggle_shop_status(seeded, users["root"], "shop_juice")["is_open"] is True


def test_status_change_requires_ownership(seeded, users):
    with pytest.raises(Forbidden):
        toggle_shop_status(seeded, users["snack_admin"], "shop_juice")
    with pytest.raises(Forbidden):
        set_shop_status(seeded, users["alice"], "shop_juice", False)
    with pytest.raises(ShopNotFound):
        set_shop_status(seeded, users["root"], "missing", False)
    assert shop(seeded, "shop_juice")["is_open"] is True


def test_set_shop_status(seeded, users):
    set_shop_status(seeded, users["juice_admin"], "shop_juice", False)
    set_shop_status(seeded, users["juice_admin"], "shop_juice", False)
    assert shop(seeded, "shop_juice")["is_open"] is False


# ===================== Queries =====================
def test_public_shops_sorted_by_name(seeded):
    names = [s["name"] for s in list_public_shops(seeded)]
    assert names == ["Juice Corner", "Snack Bar", "Tea Stall"]
    assert "admin_id" not in list_public_shops(seeded)[0]


def test_shops_with_admin_email(seeded):
    by_id = {s["id"]: s for s in list_shops_with_admins(seeded)}
    assert by_id["shop_juice"]["admin_email"] == "juice_admin@canteen.com"
    assert by_id["shop_empty"]["admin_email"] is None


def test_my_shop(seeded, users):
    assert get_my_shop(seeded, users["juice_admin"])["shop"]["id"] == "shop_juice"
    assert len(get_my_shop(seeded, users["root"])["shops"]) == 3
    with pytest.raises(ShopNotFound):
        get_my_shop(seeded, {**users["bob"], "role": "SHOP_ADMIN"})


def test_list_users_hides_passwords(seeded, users):
    listed = list_users(seeded, users["root"])
    assert len(listed) == 5
    assert all("password" not in u for u in listed)
    with pytest.raises(Forbidden):
        list_users(seeded, users["juice_admin"])
