import calendar
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, File, UploadFile

import config
import media
from database import create_document, get_db, now_utc, serialize, write_guard
from errors import BadRequestError
from repository import NOT_DELETED, order_views, product_views
from schemas import HomeCarousel, OrderStatus
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

COMPLETED = OrderStatus.COMPLETED.value
WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
LINE_TOTAL = {"$multiply": ["$order_products.quantity", "$order_products.price"]}


def week_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Sunday 00:00 of the current week and the Sunday after it."""
    days_since_sunday = (now.weekday() + 1) % 7
    start = (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=7)


def months_ago(now: datetime, months: int) -> datetime:
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    day = min(now.day, calendar.monthrange(year, month + 1)[1])
    return now.replace(year=year, month=month + 1, day=day)


def month_label(month: int) -> str:
    return calendar.month_name[month]


def _with_lines(match: dict) -> List[dict]:
    return [
        {"$match": match},
        {"$lookup": {"from": "order_product", "localField": "_id", "foreignField": "order_id",
                     "as": "order_products"}},
        {"$unwind": "$order_products"},
    ]


def total_revenue(since: Optional[datetime] = None) -> float:
    match = {"status": COMPLETED}
    if since:
        match["created_at"] = {"$gte": since}
    pipeline = _with_lines(match) + [{"$group": {"_id": None, "total": {"$sum": LINE_TOTAL}}}]
    result = list(get_db()["order"].aggregate(pipeline))
    return result[0]["total"] if result else 0


def daily_order_count(now: datetime) -> dict:
    start, end = week_bounds(now)
    pipeline = [
        {"$match": {"created_at": {"$gte": start, "$lt": end}}},
        {"$group": {"_id": {"$dayOfWeek": "$created_at"}, "count": {"$sum": 1}}},
    ]
    counts = {day: 0 for day in WEEKDAYS[1:] + WEEKDAYS[:1]}
    for row in get_db()["order"].aggregate(pipeline):
        # $dayOfWeek: 1 is Sunday
        counts[WEEKDAYS[row["_id"] - 1]] = row["count"]
    return counts


def monthly_sales(since: datetime) -> List[dict]:
    pipeline = _with_lines({"status": COMPLETED, "created_at": {"$gte": since}}) + [
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "order_ids": {"$addToSet": "$_id"},
            "total_sales": {"$sum": LINE_TOTAL},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1}},
    ]
    return list(get_db()["order"].aggregate(pipeline))


def revenue_by_category(since: datetime) -> List[dict]:
    pipeline = _with_lines({"status": COMPLETED, "created_at": {"$gte": since}}) + [
        {"$lookup": {"from": "product", "localField": "order_products.product_id", "foreignField": "_id",
                     "as": "product"}},
        {"$unwind": "$product"},
        {"$lookup": {"from": "category_product", "localField": "product._id", "foreignField": "product_id",
                     "as": "category_product"}},
        {"$unwind": "$category_product"},
        {"$lookup": {"from": "category", "localField": "category_product.category_id", "foreignField": "_id",
                     "as": "category"}},
        {"$unwind": "$category"},
        {"$group": {"_id": "$category.name", "total_revenue": {"$sum": LINE_TOTAL}}},
        {"$sort": {"total_revenue": -1}},
    ]
    return list(get_db()["order"].aggregate(pipeline))


@router.get("/dashboard")
def get_dashboard_stats(admin: dict = Depends(require_admin)):
    db = get_db()
    now = now_utc()
    recent_orders = list(db["order"].find().sort("created_at", -1).limit(5))
    recent_products = list(db["product"].find(NOT_DELETED).sort("created_at", -1).limit(5))
    daily = daily_order_count(now)
    return {
        "recent_orders": serialize(order_views(recent_orders)),
        "recent_products": serialize(product_views(recent_products)),
        "daily_order_count": daily,
        "daily_order_average": round(sum(daily.values()) / 7),
        "total_revenue": total_revenue(),
        "active_users": len(db["order"].distinct("user_id")),
    }


@router.get("/overview")
def get_overview(admin: dict = Depends(require_admin)):
    db = get_db()
    now = now_utc()
    since = months_ago(now, 12)
    monthly = monthly_sales(since)
    categories = revenue_by_category(since)
    labels = [month_label(m["_id"]["month"]) for m in monthly]
    return {
        "message": "Overview statistics fetched",
        "sales_data": {"labels": labels, "data": [m["total_sales"] for m in monthly]},
        "orders_data": {"labels": labels, "data": [len(m["order_ids"]) for m in monthly]},
        "category_data": {"labels": [c["_id"] for c in categories], "data": [c["total_revenue"] for c in categories]},
        "total_orders": db["order"].count_documents({}),
        "total_customers": db["user"].count_documents({}),
        "total_sales": total_revenue(),
        "new_customers": db["user"].count_documents({"created_at": {"$gte": now - timedelta(days=7)}}),
    }


@router.get("/home-images")
def get_home_images():
    carousel = get_db()["home_carousel"].find_one({})
    return {"message": "Home images fetched", "home_images": carousel["images"] if carousel else []}


@router.post("/home-images")
def set_home_images(images: Optional[List[UploadFile]] = File(None), admin: dict = Depends(require_admin)):
    contents = media.read_images(images, config.CAROUSEL_IMAGE_LIMIT)
    if not contents:
        raise BadRequestError("No images provided")
    new_images = media.upload_images(contents)

    db = get_db()
    carousel = db["home_carousel"].find_one({})
    try:
        with write_guard("home carousel save"):
            if carousel:
                db["home_carousel"].update_one(
                    {"_id": carousel["_id"]}, {"$set": {"images": new_images, "updated_at": now_utc()}}
                )
            else:
                create_document("home_carousel", HomeCarousel(images=new_images))
    except Exception:
        media.delete_images(new_images)
        raise

    if carousel:
        media.delete_images(carousel.get("images", []))
    return {"message": "Home images successfully set", "home_images": new_images}
