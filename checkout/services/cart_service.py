from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout.data.models.cart import CartModel
from checkout.data.models.cart_item import CartItemModel
from checkout.domain.errors import ConflictError, ValidationError
from checkout.repos.cart_repo import CartRepo
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")

#bounds of the cart_items columns
MAX_PRICE = Decimal("100000000")
MAX_QUANTITY = 2**31 - 1
MAX_LENGTHS = {
    "catalog_item_id": 64,
    "title": 200,
    "attribution_label": 200,
    "image_ref": 500,
}

PRICE_RULE = f"must be a number >= 0 and < {MAX_PRICE}"
QUANTITY_RULE = f"must be an integer between 1 and {MAX_QUANTITY}"


def _text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _price(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price < 0 or price >= MAX_PRICE:
        return None
    try:
        return price.quantize(CENTS)
    except InvalidOperation:
        return None


def _quantity(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        qty = value
    elif isinstance(value, float) and value.is_integer():
        qty = int(value)
    elif isinstance(value, str):
        try:
            qty = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return qty if 1 <= qty <= MAX_QUANTITY else None


def _is_missing(raw: Dict[str, Any], field: str) -> bool:
    value = raw.get(field)
    return value is None or (isinstance(value, str) and not value.strip())


def validate_cart_items(items: Any) -> List[Dict[str, Any]]:
    """
    Checks every item and collects all problems before failing:
    - required: catalog_item_id, title, attribution_label, unit_price, quantity
    - unit_price coerces to a number in [0, MAX_PRICE), quantity to an
      integer in [1, MAX_QUANTITY]
    - text fields fit their columns (MAX_LENGTHS)
    - image_ref optional string
    - catalog_item_id unique within the cart

    Returns normalized item dicts, or raises ValidationError listing every
    offending index/field.
    """
    if not isinstance(items, list):
        raise ValidationError(
            "Invalid cart",
            [{"index": None, "field": "items", "reason": "must be a list"}],
        )

    errors: List[Dict[str, Any]] = []
    cleaned: List[Dict[str, Any]] = []
    seen: set[str] = set()

    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            errors.append({"index": index, "field": None, "reason": "item must be an object"})
            continue

        item_errors = []

        def invalid(field: str, reason: str) -> None:
            item_errors.append({"index": index, "field": field, "reason": reason})

        parsed = {
            "catalog_item_id": _text(raw.get("catalog_item_id")),
            "title": _text(raw.get("title")),
            "attribution_label": _text(raw.get("attribution_label")),
        }
        for field, value in parsed.items():
            if _is_missing(raw, field):
                invalid(field, "missing")
            elif value is None:
                invalid(field, "must be a non-empty string")
            elif len(value) > MAX_LENGTHS[field]:
                invalid(field, f"must be at most {MAX_LENGTHS[field]} characters")

        unit_price = _price(raw.get("unit_price"))
        if _is_missing(raw, "unit_price"):
            invalid("unit_price", "missing")
        elif unit_price is None:
            invalid("unit_price", PRICE_RULE)

        quantity = _quantity(raw.get("quantity"))
        if _is_missing(raw, "quantity"):
            invalid("quantity", "missing")
        elif quantity is None:
            invalid("quantity", QUANTITY_RULE)

        image_ref = raw.get("image_ref")
        if image_ref is not None and not isinstance(image_ref, str):
            invalid("image_ref", "must be a string")
        elif image_ref and len(image_ref) > MAX_LENGTHS["image_ref"]:
            invalid("image_ref", f"must be at most {MAX_LENGTHS['image_ref']} characters")

        catalog_item_id = parsed["catalog_item_id"]
        if catalog_item_id is not None:
            if catalog_item_id in seen:
                invalid("catalog_item_id", "duplicate item")
            seen.add(catalog_item_id)

        if item_errors:
            errors.extend(item_errors)
            continue

        cleaned.append({
            **parsed,
            "unit_price": unit_price,
            "quantity": quantity,
            "image_ref": image_ref or None,
        })

    if errors:
        raise ValidationError("Invalid cart items", errors)
    return cleaned


def line_total(items) -> Decimal:
    return sum((Decimal(i.unit_price) * i.quantity for i in items), Decimal("0.00"))


class CartService:
    """
    Cart use cases for one user:
    - get (query, creates the cart lazily)
    - replace, clear (commands, optimistic locking on version)
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    #query
    def get(self, user_id: str) -> Dict[str, Any]:
        cart = self._get_or_create(user_id)
        return self._to_dict(cart)

    def get_items(self, user_id: str) -> List[CartItemModel]:
        cart = self._get_or_create(user_id)
        return self.repo.get_cart_items(cart.id)

    #commands
    def replace(self, user_id: str, items: Any) -> Dict[str, Any]:
        cleaned = validate_cart_items(items)
        cart = self._get_or_create(user_id)

        self.repo.delete_cart_items(cart.id)
        self.repo.add_cart_items([CartItemModel(cart_id=cart.id, **item) for item in cleaned])

        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={
                "version": cart.version + 1,
                "updated_at": datetime.now(timezone.utc),
            },
        )

        # UPDATE carts SET version = 2 WHERE id = 1 AND version = 1
        if rowcount == 0:
            self.repo.rollback()
            raise ConflictError("Cart was modified by another request")

        self.repo.commit()
        logger.info(f"Cart of user {user_id} replaced with {len(cleaned)} items")

        return self.get(user_id)

    def clear(self, user_id: str) -> Dict[str, Any]:
        cart = self._get_or_create(user_id)

        self.repo.delete_cart_items(cart.id)
        self.repo.bump_version(cart.id, {"updated_at": datetime.now(timezone.utc)})
        self.repo.commit()

        logger.info(f"Cart of user {user_id} cleared")
        return self.get(user_id)

    def _get_or_create(self, user_id: str) -> CartModel:
        existing = self.repo.get_cart_by_user(user_id)
        if existing:
            return existing

        try:
            created = self.repo.create_cart(CartModel(user_id=user_id, version=1))
        except IntegrityError:
            #another request created it first
            self.repo.rollback()
            return self.repo.get_cart_by_user(user_id)

        logger.info(f"Created cart {created.id} for user {user_id}")
        return created

    def _to_dict(self, cart: CartModel) -> Dict[str, Any]:
        items = self.repo.get_cart_items(cart.id)

        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "items": [
                {
                    "catalog_item_id": i.catalog_item_id,
                    "title": i.title,
                    "attribution_label": i.attribution_label,
                    "unit_price": Decimal(i.unit_price),
                    "quantity": i.quantity,
                    "image_ref": i.image_ref,
                }
                for i in items
            ],
            "total": line_total(items),
            "updated_at": cart.updated_at,
        }
