from decimal import Decimal

import pytest

from checkout.domain.errors import ConflictError, ValidationError
from checkout.services.cart_service import CartService, validate_cart_items


def _item(**overrides):
    item = {
        "catalog_item_id": "A",
        "title": "Song A",
        "attribution_label": "Artist X",
        "unit_price": 9.99,
        "quantity": 1,
    }
    item.update(overrides)
    return item


def test_validate_normalizes_values():
    cleaned = validate_cart_items([_item(unit_price="4.5", quantity="2", image_ref="covers/a.jpg")])

    assert cleaned == [{
        "catalog_item_id": "A",
        "title": "Song A",
        "attribution_label": "Artist X",
        "unit_price": Decimal("4.50"),
        "quantity": 2,
        "image_ref": "covers/a.jpg",
    }]


def test_validate_reports_every_problem():
    items = [
        _item(),
        {"catalog_item_id": "B", "unit_price": -1, "quantity": 0},
        _item(catalog_item_id="A", image_ref=42),
        "not an item",
    ]

    with pytest.raises(ValidationError) as exc:
        validate_cart_items(items)

    problems = {(e["index"], e["field"]) for e in exc.value.errors}
    assert problems == {
        (1, "title"),
        (1, "attribution_label"),
        (1, "unit_price"),
        (1, "quantity"),
        (2, "image_ref"),
        (2, "catalog_item_id"),
        (3, None),
    }
    assert exc.value.status_code == 422


def test_validate_missing_vs_wrong_type():
    with pytest.raises(ValidationError) as exc:
        validate_cart_items([_item(title="", quantity=1.5, unit_price="abc")])

    reasons = {e["field"]: e["reason"] for e in exc.value.errors}
    assert reasons["title"] == "missing"
    assert reasons["quantity"] == "must be an integer between 1 and 2147483647"
    assert reasons["unit_price"] == "must be a number >= 0 and < 100000000"


def test_validate_rejects_out_of_range_numbers():
    items = [
        _item(catalog_item_id="A", unit_price=1e30),
        _item(catalog_item_id="B", unit_price="100000000"),
        _item(catalog_item_id="C", quantity=10**20),
        _item(catalog_item_id="D", quantity=2**31),
    ]

    with pytest.raises(ValidationError) as exc:
        validate_cart_items(items)

    assert [(e["index"], e["field"]) for e in exc.value.errors] == [
        (0, "unit_price"),
        (1, "unit_price"),
        (2, "quantity"),
        (3, "quantity"),
    ]
    assert exc.value.errors[0]["reason"] == "must be a number >= 0 and < 100000000"


def test_validate_accepts_upper_bounds():
    cleaned = validate_cart_items([_item(unit_price="99999999.99", quantity=2**31 - 1)])

    assert cleaned[0]["unit_price"] == Decimal("99999999.99")
    assert cleaned[0]["quantity"] == 2**31 - 1


def test_validate_checks_text_lengths():
    items = [_item(
        catalog_item_id="x" * 65,
        title="t" * 201,
        attribution_label="a" * 201,
        image_ref="i" * 501,
    )]

    with pytest.raises(ValidationError) as exc:
        validate_cart_items(items)

    reasons = {e["field"]: e["reason"] for e in exc.value.errors}
    assert reasons == {
        "catalog_item_id": "must be at most 64 characters",
        "title": "must be at most 200 characters",
        "attribution_label": "must be at most 200 characters",
        "image_ref": "must be at most 500 characters",
    }


def test_validate_rejects_booleans():
    with pytest.raises(ValidationError) as exc:
        validate_cart_items([_item(quantity=True, unit_price=False)])

    assert {e["field"] for e in exc.value.errors} == {"quantity", "unit_price"}


def test_validate_requires_a_list():
    with pytest.raises(ValidationError):
        validate_cart_items({"items": []})


def test_empty_list_is_a_valid_cart():
    assert validate_cart_items([]) == []


def test_get_creates_empty_cart(db):
    cart = CartService(db).get("user-1")

    assert cart["user_id"] == "user-1"
    assert cart["items"] == []
    assert cart["total"] == Decimal("0.00")


def test_replace_and_total(db):
    svc = CartService(db)

    cart = svc.replace("user-1", [_item(), _item(catalog_item_id="B", unit_price=2, quantity=3)])

    assert [i["catalog_item_id"] for i in cart["items"]] == ["A", "B"]
    assert cart["total"] == Decimal("15.99")


def test_replace_overwrites_previous_items(db):
    svc = CartService(db)
    svc.replace("user-1", [_item(), _item(catalog_item_id="B")])

    cart = svc.replace("user-1", [_item(catalog_item_id="C")])

    assert [i["catalog_item_id"] for i in cart["items"]] == ["C"]


def test_invalid_replace_keeps_old_cart(db):
    svc = CartService(db)
    svc.replace("user-1", [_item()])

    with pytest.raises(ValidationError):
        svc.replace("user-1", [_item(quantity=0)])

    assert [i["catalog_item_id"] for i in svc.get("user-1")["items"]] == ["A"]


def test_stale_version_conflicts(db, monkeypatch):
    svc = CartService(db)
    svc.get("user-1")
    monkeypatch.setattr(svc.repo, "update_cart_version", lambda **kwargs: 0)

    with pytest.raises(ConflictError):
        svc.replace("user-1", [_item()])

    assert svc.get("user-1")["items"] == []


def test_clear(db):
    svc = CartService(db)
    svc.replace("user-1", [_item()])

    cart = svc.clear("user-1")

    assert cart["items"] == []
    assert cart["total"] == Decimal("0.00")


def test_carts_are_per_user(db):
    svc = CartService(db)
    svc.replace("user-1", [_item()])

    assert svc.get("user-2")["items"] == []


def test_replace_with_huge_quantity_is_a_validation_error(db):
    with pytest.raises(ValidationError):
        CartService(db).replace("user-1", [_item(quantity=10**20)])

    assert CartService(db).get("user-1")["items"] == []
