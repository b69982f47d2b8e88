import re
from typing import List, Optional

from fastapi import APIRouter

from database import get_db, serialize
from inventory import has_stock
from repository import find_active_products, product_views
from schemas import SIZES

router = APIRouter(prefix="/api/search", tags=["search"])


def parse_price_range(price: str) -> Optional[dict]:
    """``"100-500"`` -> ``{"$gte": 100, "$lte": 500}``; anything malformed is ignored."""
    parts = price.split("-")
    if len(parts) != 2:
        return None
    try:
        low, high = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    return {"$gte": low, "$lte": high}


def product_ids_in_category(name: str) -> Optional[set]:
    db = get_db()
    category = db["category"].find_one({"name": name})
    if not category:
        return None
    return {cp["product_id"] for cp in db["category_product"].find({"category_id": category["_id"]})}


def product_ids_rated_at_least(stars: float) -> set:
    pipeline = [
        {"$group": {"_id": "$product_id", "average_rating": {"$avg": "$stars"}}},
        {"$match": {"average_rating": {"$gte": stars}}},
    ]
    return {r["_id"] for r in get_db()["rating"].aggregate(pipeline)}


@router.get("")
def search_products(search: Optional[str] = None, category: Optional[str] = None, size: Optional[str] = None,
                    ratings: Optional[str] = None, price: Optional[str] = None, in_stock: Optional[str] = None):
    query = {}
    if search:
        query["name"] = {"$regex": re.escape(search), "$options": "i"}
    if price:
        price_cond = parse_price_range(price)
        if price_cond:
            query["price"] = price_cond

    products: List[dict] = product_views(find_active_products(query))

    if in_stock == "true":
        products = [p for p in products if has_stock(p["stocks"])]

    if size and size.lower() in SIZES:
        products = [p for p in products if p["stocks"][size.lower()] > 0]

    if category:
        ids = product_ids_in_category(category)
        if ids is not None:
            products = [p for p in products if p["_id"] in ids]

    if ratings:
        try:
            stars = float(ratings)
        except ValueError:
            stars = None
        if stars is not None:
            ids = product_ids_rated_at_least(stars)
            products = [p for p in products if p["_id"] in ids]

    return {"message": "Products fetched successfully", "products": serialize(products)}


@router.get("/categories")
def get_categories():
    categories = list(get_db()["category"].find({"show_in_menu": True}, {"name": 1}).sort("name", 1))
    return {"message": "Categories fetched", "categories": serialize(categories)}
