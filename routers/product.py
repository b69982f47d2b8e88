import logging
from typing import List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

import config
import media
from database import get_db, now_utc, serialize, transaction, write_guard
from errors import BadRequestError
from inventory import write_stocks
from repository import (find_active_product_or_error, find_product_or_error, find_products,
                        find_active_products, find_stocks_or_error, product_view, product_views,
                        stock_counts)
from schemas import CategoryProduct, Product, Stocks
from security import TokenUser, check_param_ids, optional_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/product", tags=["product"], dependencies=[Depends(check_param_ids)])


class StocksIn(BaseModel):
    xs: Optional[int] = Field(None, ge=0)
    sm: Optional[int] = Field(None, ge=0)
    md: Optional[int] = Field(None, ge=0)
    lg: Optional[int] = Field(None, ge=0)
    xl: Optional[int] = Field(None, ge=0)
    xxl: Optional[int] = Field(None, ge=0)


def _category_ids(ids: List[str]) -> List[ObjectId]:
    out: List[ObjectId] = []
    for value in ids:
        if not ObjectId.is_valid(value):
            raise BadRequestError(f"Invalid category id: {value}")
        if ObjectId(value) not in out:
            out.append(ObjectId(value))
    if out and get_db()["category"].count_documents({"_id": {"$in": out}}) != len(out):
        raise BadRequestError("Category not found")
    return out


def _detail(product: dict) -> dict:
    db = get_db()
    view = product_view(product)
    category_ids = [cp["category_id"] for cp in db["category_product"].find({"product_id": product["_id"]})]
    view["categories"] = list(db["category"].find({"_id": {"$in": category_ids}}))
    stats = list(db["rating"].aggregate([
        {"$match": {"product_id": product["_id"]}},
        {"$group": {"_id": "$product_id", "average": {"$avg": "$stars"}, "count": {"$sum": 1}}},
    ]))
    view["average_rating"] = round(stats[0]["average"], 2) if stats else 0
    view["rating_count"] = stats[0]["count"] if stats else 0
    return view


def _viewer_is_admin(token_user: Optional[TokenUser]) -> bool:
    return token_user is not None and token_user.role.value == "admin"


@router.post("", status_code=201)
def create_product(
    name: str = Form(...),
    description: str = Form(...),
    price: float = Form(..., ge=0),
    xs: int = Form(0, ge=0),
    sm: int = Form(0, ge=0),
    md: int = Form(0, ge=0),
    lg: int = Form(0, ge=0),
    xl: int = Form(0, ge=0),
    xxl: int = Form(0, ge=0),
    category_ids: List[str] = Form(default=[]),
    images: Optional[List[UploadFile]] = File(None),
    admin: dict = Depends(require_admin),
):
    if not name.strip() or not description.strip():
        raise BadRequestError("Incomplete input")
    contents = media.read_images(images, config.PRODUCT_IMAGE_LIMIT)
    categories = _category_ids(category_ids)
    uploaded = media.upload_images(contents)

    db = get_db()
    now = now_utc()
    product = Product(name=name.strip(), description=description.strip(), price=price, images=uploaded)
    try:
        with transaction() as session:
            product_id = db["product"].insert_one(
                {**product.model_dump(), "created_at": now, "updated_at": now}, session=session
            ).inserted_id
            stocks = Stocks(product_id=product_id, xs=xs, sm=sm, md=md, lg=lg, xl=xl, xxl=xxl)
            db["stocks"].insert_one(stocks.model_dump(), session=session)
            if categories:
                db["category_product"].insert_many(
                    [CategoryProduct(category_id=cid, product_id=product_id).model_dump() for cid in categories],
                    session=session,
                )
    except Exception:
        media.delete_images(uploaded)
        raise

    return {"message": "Product created", "product": serialize(_detail(db["product"].find_one({"_id": product_id})))}


@router.get("")
def get_products(token_user: Optional[TokenUser] = Depends(optional_user)):
    products = find_products() if _viewer_is_admin(token_user) else find_active_products()
    products.sort(key=lambda p: p.get("created_at") or now_utc(), reverse=True)
    return {"message": "Products fetched", "products": serialize(product_views(products))}


@router.get("/{id}")
def get_product(id: str, token_user: Optional[TokenUser] = Depends(optional_user)):
    if _viewer_is_admin(token_user):
        product = find_product_or_error(id)
    else:
        product = find_active_product_or_error(id)
    return {"message": "Product fetched", "product": serialize(_detail(product))}


@router.put("/{id}")
def edit_product(
    id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None, ge=0),
    removed_images: List[str] = Form(default=[]),
    category_ids: Optional[List[str]] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    admin: dict = Depends(require_admin),
):
    db = get_db()
    product = find_product_or_error(id)

    removed = [img for img in product.get("images", []) if img["public_id"] in removed_images]
    kept = [img for img in product.get("images", []) if img["public_id"] not in removed_images]
    contents = media.read_images(images, max(0, config.PRODUCT_IMAGE_LIMIT - len(kept)))
    categories = _category_ids(category_ids) if category_ids is not None else None
    uploaded = media.upload_images(contents)

    update = {"images": kept + uploaded, "updated_at": now_utc()}
    if name and name.strip():
        update["name"] = name.strip()
    if description and description.strip():
        update["description"] = description.strip()
    if price is not None:
        update["price"] = price

    try:
        with transaction() as session:
            db["product"].update_one({"_id": product["_id"]}, {"$set": update}, session=session)
            if categories is not None:
                existing = [cp["category_id"] for cp in
                            db["category_product"].find({"product_id": product["_id"]}, session=session)]
                dropped = [cid for cid in existing if cid not in categories]
                added = [cid for cid in categories if cid not in existing]
                if dropped:
                    db["category_product"].delete_many(
                        {"product_id": product["_id"], "category_id": {"$in": dropped}}, session=session
                    )
                if added:
                    db["category_product"].insert_many(
                        [CategoryProduct(category_id=cid, product_id=product["_id"]).model_dump() for cid in added],
                        session=session,
                    )
    except Exception:
        media.delete_images(uploaded)
        raise

    media.delete_images(removed)
    return {"message": "Product updated", "product": serialize(_detail(db["product"].find_one({"_id": product["_id"]})))}


@router.get("/{id}/stocks")
def get_product_stocks(id: str):
    product = find_product_or_error(id)
    stocks = find_stocks_or_error(product["_id"])
    return {"message": "Stocks fetched", "stocks": stock_counts(stocks)}


@router.put("/{id}/stocks")
def edit_product_stocks(id: str, payload: StocksIn, admin: dict = Depends(require_admin)):
    product = find_product_or_error(id)
    counts = payload.model_dump(exclude_none=True)
    if not counts:
        raise BadRequestError("Incomplete input")
    with transaction() as session:
        stocks = write_stocks(product["_id"], counts, session=session)
    return {"message": "Stocks updated", "stocks": stock_counts(stocks)}


@router.patch("/{id}/status")
def toggle_product_status(id: str, admin: dict = Depends(require_admin)):
    product = find_product_or_error(id)
    active = not product.get("active", True)
    with write_guard("product status"):
        get_db()["product"].update_one({"_id": product["_id"]}, {"$set": {"active": active, "updated_at": now_utc()}})
    product["active"] = active
    return {"message": "Product activated" if active else "Product deactivated", "product": serialize(product)}


@router.delete("/{id}")
def delete_product(id: str, admin: dict = Depends(require_admin)):
    """Soft-delete the product; its stocks, category links and cart lines go away for good."""
    db = get_db()
    product = find_product_or_error(id)
    now = now_utc()
    with transaction() as session:
        db["product"].update_one(
            {"_id": product["_id"]},
            {"$set": {"is_deleted": True, "deleted_at": now, "active": False, "updated_at": now}},
            session=session,
        )
        db["stocks"].delete_one({"product_id": product["_id"]}, session=session)
        db["category_product"].delete_many({"product_id": product["_id"]}, session=session)
        db["cart_product"].delete_many({"product_id": product["_id"]}, session=session)

    media.delete_images(product.get("images", []))
    logger.info("Product %s deleted", product["_id"])
    return {"message": "Product deleted"}
