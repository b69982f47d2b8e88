"""
Lookups and read models.

``find_*_or_error`` fetch a single document by id and raise a BadRequestError
when it does not exist. The ``*_view`` helpers build the composed documents the
API returns (product + stocks, order + lines + owner, ...); joins are done here
explicitly instead of on every query.
"""
from typing import Dict, Iterable, List, Optional

from bson import ObjectId

from database import get_db, oid
from errors import BadRequestError
from schemas import SIZES

NOT_DELETED = {"is_deleted": {"$ne": True}}


def _find_or_error(collection: str, query: dict, label: str, session=None) -> dict:
    doc = get_db()[collection].find_one(query, session=session)
    if not doc:
        raise BadRequestError(f"{label} not found")
    return doc


def find_user_or_error(user_id, session=None) -> dict:
    return _find_or_error("user", {"_id": oid(user_id)}, "User", session)


def find_product_or_error(product_id, session=None) -> dict:
    """Any product that has not been deleted, active or not."""
    return _find_or_error("product", {"_id": oid(product_id), **NOT_DELETED}, "Product", session)


def find_active_product_or_error(product_id, session=None) -> dict:
    return _find_or_error("product", {"_id": oid(product_id), "active": True, **NOT_DELETED}, "Product", session)


def find_stocks_or_error(product_id, session=None) -> dict:
    return _find_or_error("stocks", {"product_id": oid(product_id)}, "Stocks", session)


def find_category_or_error(category_id, session=None) -> dict:
    return _find_or_error("category", {"_id": oid(category_id)}, "Category", session)


def find_cart_item_or_error(cart_item_id, session=None) -> dict:
    return _find_or_error("cart_product", {"_id": oid(cart_item_id)}, "Cart item", session)


def find_address_or_error(address_id, session=None) -> dict:
    return _find_or_error("address", {"_id": oid(address_id)}, "Address", session)


def find_order_or_error(order_id, session=None) -> dict:
    return _find_or_error("order", {"_id": oid(order_id)}, "Order", session)


def find_order_product_or_error(order_product_id, session=None) -> dict:
    return _find_or_error("order_product", {"_id": oid(order_product_id)}, "Order product", session)


def find_products(query: Optional[dict] = None, session=None) -> List[dict]:
    """Products that have not been deleted, whatever their active flag."""
    return list(get_db()["product"].find({**(query or {}), **NOT_DELETED}, session=session))


def find_active_products(query: Optional[dict] = None, session=None) -> List[dict]:
    """Products visible in the storefront."""
    return find_products({**(query or {}), "active": True}, session=session)


# Read models

def stock_counts(stocks: Optional[dict]) -> Dict[str, int]:
    stocks = stocks or {}
    return {size: int(stocks.get(size, 0) or 0) for size in SIZES}


def stocks_by_product(product_ids: Iterable[ObjectId], session=None) -> Dict[ObjectId, dict]:
    ids = list(product_ids)
    if not ids:
        return {}
    cursor = get_db()["stocks"].find({"product_id": {"$in": ids}}, session=session)
    return {s["product_id"]: s for s in cursor}


def product_view(product: dict, stocks: Optional[dict] = None) -> dict:
    view = dict(product)
    if stocks is None:
        stocks = get_db()["stocks"].find_one({"product_id": product["_id"]})
    view["stocks"] = stock_counts(stocks)
    return view


def product_views(products: List[dict]) -> List[dict]:
    stocks = stocks_by_product(p["_id"] for p in products)
    return [product_view(p, stocks.get(p["_id"], {})) for p in products]


def order_lines(order_id: ObjectId, session=None) -> List[dict]:
    return list(get_db()["order_product"].find({"order_id": order_id}, session=session))


def order_views(orders: List[dict]) -> List[dict]:
    """Attach order lines and the owner's name to each order."""
    if not orders:
        return []
    db = get_db()
    order_ids = [o["_id"] for o in orders]
    user_ids = list({o["user_id"] for o in orders})

    lines: Dict[ObjectId, List[dict]] = {}
    for line in db["order_product"].find({"order_id": {"$in": order_ids}}):
        lines.setdefault(line["order_id"], []).append(line)

    users = {
        u["_id"]: {"id": u["_id"], "first_name": u.get("first_name"), "last_name": u.get("last_name"),
                   "display_name": u.get("display_name")}
        for u in db["user"].find({"_id": {"$in": user_ids}})
    }

    views = []
    for order in orders:
        view = dict(order)
        view["order_products"] = lines.get(order["_id"], [])
        view["user"] = users.get(order["user_id"])
        views.append(view)
    return views


def order_view(order: dict) -> dict:
    return order_views([order])[0]


def order_total(lines: List[dict]) -> float:
    return sum(line["price"] * line["quantity"] for line in lines)
