from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from database import create_document, get_db, now_utc, serialize, write_guard
from errors import AuthenticationError, BadRequestError
from repository import (find_active_product_or_error, find_cart_item_or_error, find_stocks_or_error,
                        product_views)
from schemas import SIZES, CartProduct
from security import check_param_ids, get_current_user

router = APIRouter(prefix="/api/cart", tags=["cart"], dependencies=[Depends(check_param_ids)])


class CartItemIn(BaseModel):
    size: str
    quantity: int = 1


def _my_cart_item(cart_item_id: str, user: dict) -> dict:
    item = find_cart_item_or_error(cart_item_id)
    if item["user_id"] != user["_id"]:
        raise AuthenticationError()
    return item


def _available(product_id, size: str) -> int:
    stocks = find_stocks_or_error(product_id)
    return int(stocks.get(size, 0) or 0)


def _set_quantity(item: dict, quantity: int) -> None:
    with write_guard("cart update"):
        get_db()["cart_product"].update_one(
            {"_id": item["_id"]}, {"$set": {"quantity": quantity, "updated_at": now_utc()}}
        )
    item["quantity"] = quantity


def _remove(item: dict) -> None:
    with write_guard("cart delete"):
        get_db()["cart_product"].delete_one({"_id": item["_id"]})


@router.get("")
def get_cart(user: dict = Depends(get_current_user)):
    db = get_db()
    items = list(db["cart_product"].find({"user_id": user["_id"]}).sort("created_at", 1))
    product_ids = list({i["product_id"] for i in items})
    products = {p["_id"]: p for p in product_views(list(db["product"].find({"_id": {"$in": product_ids}})))}
    cart = []
    for item in items:
        view = dict(item)
        view["product"] = products.get(item["product_id"])
        cart.append(view)
    return {"message": "Cart fetched", "cart_products": serialize(cart)}


@router.post("/{id}", status_code=201)
def add_to_cart(id: str, payload: CartItemIn, user: dict = Depends(get_current_user)):
    """Add a product to the cart or change the quantity of the matching line by ``quantity``."""
    size = payload.size.lower()
    if size not in SIZES:
        raise BadRequestError("Invalid size")
    product = find_active_product_or_error(id)
    available = _available(product["_id"], size)

    carts = get_db()["cart_product"]
    item = carts.find_one({"user_id": user["_id"], "product_id": product["_id"], "size": size})
    if not item and payload.quantity <= 0:
        raise BadRequestError("Invalid quantity")

    total = (item["quantity"] if item else 0) + payload.quantity
    if total > available:
        raise BadRequestError("Not enough stocks")
    if total <= 0:
        _remove(item)
        return JSONResponse({"message": "Product removed from cart"}, status_code=200)

    if item:
        _set_quantity(item, total)
    else:
        with write_guard("cart insert"):
            item_id = create_document(
                "cart_product", CartProduct(user_id=user["_id"], product_id=product["_id"], size=size, quantity=total)
            )
        item = carts.find_one({"_id": item_id})
    return {"message": "Product added to cart", "cart_product": serialize(item)}


@router.delete("/{id}")
def remove_from_cart(id: str, user: dict = Depends(get_current_user)):
    _remove(_my_cart_item(id, user))
    return {"message": "Cart item removed"}


@router.post("/{id}/increment")
def increment_cart_item(id: str, user: dict = Depends(get_current_user)):
    item = _my_cart_item(id, user)
    find_active_product_or_error(item["product_id"])
    quantity = item["quantity"] + 1
    if quantity > _available(item["product_id"], item["size"]):
        raise BadRequestError("Not enough stocks")
    _set_quantity(item, quantity)
    return {"message": "Cart item incremented", "cart_product": serialize(item)}


@router.post("/{id}/decrement")
def decrement_cart_item(id: str, user: dict = Depends(get_current_user)):
    item = _my_cart_item(id, user)
    quantity = item["quantity"] - 1
    if quantity < 0:
        raise BadRequestError("Invalid quantity")
    if quantity == 0:
        _remove(item)
        return {"message": "Cart item removed"}
    _set_quantity(item, quantity)
    return {"message": "Cart item decremented", "cart_product": serialize(item)}
