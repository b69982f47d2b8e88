from typing import List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import config
from database import get_db, now_utc, oid, serialize, transaction, write_guard
from errors import BadRequestError
from repository import NOT_DELETED, find_category_or_error, find_product_or_error, product_views
from schemas import Category, CategoryProduct
from security import check_param_ids, require_admin

router = APIRouter(prefix="/api/category", tags=["category"], dependencies=[Depends(check_param_ids)])


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    show_in_menu: bool = False
    product_ids: List[str] = Field(default_factory=list)


class CategoryEdit(BaseModel):
    product_ids: List[str]
    name: Optional[str] = None
    description: Optional[str] = None
    show_in_menu: Optional[bool] = None


def _product_ids(ids: List[str]) -> List[ObjectId]:
    """Validate and de-duplicate product ids, keeping their order."""
    out: List[ObjectId] = []
    for value in ids:
        if not ObjectId.is_valid(value):
            raise BadRequestError(f"Invalid product id: {value}")
        product_id = ObjectId(value)
        if product_id not in out:
            out.append(product_id)
    if out:
        found = get_db()["product"].count_documents({"_id": {"$in": out}, **NOT_DELETED})
        if found != len(out):
            raise BadRequestError("Product not found")
    return out


def _ensure_name_free(name: str, exclude: Optional[ObjectId] = None) -> None:
    query = {"name": name}
    if exclude is not None:
        query["_id"] = {"$ne": exclude}
    if get_db()["category"].find_one(query):
        raise BadRequestError("Category name already taken")


def category_products(category_id: ObjectId) -> List[dict]:
    db = get_db()
    ids = [cp["product_id"] for cp in db["category_product"].find({"category_id": category_id})]
    return product_views(list(db["product"].find({"_id": {"$in": ids}, **NOT_DELETED})))


def menu_visibility(product_count: int, requested: bool) -> bool:
    """Categories with too few products are never shown in the menu."""
    if product_count < config.CATEGORY_MENU_THRESHOLD:
        return False
    return requested


@router.get("")
def get_all_categories():
    categories = list(get_db()["category"].find().sort("name", 1))
    return {"message": "Categories fetched", "categories": serialize(categories)}


@router.get("/home")
def get_categories_home():
    categories = list(get_db()["category"].find({"show_in_menu": True}).sort("name", 1))
    with_products = [
        {"category": category, "products": [p for p in category_products(category["_id"]) if p.get("active")]}
        for category in categories
    ]
    return {
        "message": "Categories with products fetched",
        "categories": serialize(categories),
        "category_with_products": serialize(with_products),
    }


@router.post("", status_code=201)
def create_category(payload: CategoryIn, admin: dict = Depends(require_admin)):
    name = payload.name.strip()
    _ensure_name_free(name)
    product_ids = _product_ids(payload.product_ids)

    db = get_db()
    now = now_utc()
    category = Category(name=name, description=payload.description, show_in_menu=payload.show_in_menu)
    with transaction() as session:
        category_id = db["category"].insert_one(
            {**category.model_dump(), "created_at": now, "updated_at": now}, session=session
        ).inserted_id
        if product_ids:
            db["category_product"].insert_many(
                [CategoryProduct(category_id=category_id, product_id=pid).model_dump() for pid in product_ids],
                session=session,
            )
    return {"message": "Category created", "category": serialize(db["category"].find_one({"_id": category_id}))}


@router.post("/show/{id}")
def show_hide_category(id: str, admin: dict = Depends(require_admin)):
    category = find_category_or_error(id)
    category["show_in_menu"] = not category.get("show_in_menu", False)
    with write_guard("category update"):
        get_db()["category"].update_one(
            {"_id": category["_id"]}, {"$set": {"show_in_menu": category["show_in_menu"], "updated_at": now_utc()}}
        )
    return {"message": "Category updated", "category": serialize(category)}


@router.get("/{id}")
def get_category_products(id: str):
    category = find_category_or_error(id)
    products = category_products(category["_id"])
    return {
        "message": "Category products fetched",
        "category": serialize(category),
        "products": serialize(products),
        "product_ids": [str(p["_id"]) for p in products],
    }


@router.put("/{id}")
def edit_category(id: str, payload: CategoryEdit, admin: dict = Depends(require_admin)):
    """Replace the category's product set, touching only the links that change."""
    db = get_db()
    category = find_category_or_error(id)
    requested = _product_ids(payload.product_ids)

    name = (payload.name or "").strip() or category["name"]
    if name != category["name"]:
        _ensure_name_free(name, exclude=category["_id"])

    existing = [cp["product_id"] for cp in db["category_product"].find({"category_id": category["_id"]})]
    removed = [pid for pid in existing if pid not in requested]
    added = [pid for pid in requested if pid not in existing]
    count = len(existing) - len(removed) + len(added)

    requested_show = category.get("show_in_menu", False) if payload.show_in_menu is None else payload.show_in_menu
    update = {
        "name": name,
        "show_in_menu": menu_visibility(count, requested_show),
        "updated_at": now_utc(),
    }
    if payload.description is not None:
        update["description"] = payload.description

    with transaction() as session:
        if removed:
            db["category_product"].delete_many(
                {"category_id": category["_id"], "product_id": {"$in": removed}}, session=session
            )
        if added:
            db["category_product"].insert_many(
                [CategoryProduct(category_id=category["_id"], product_id=pid).model_dump() for pid in added],
                session=session,
            )
        db["category"].update_one({"_id": category["_id"]}, {"$set": update}, session=session)

    category.update(update)
    return {
        "message": "Category products updated",
        "category": serialize(category),
        "added": [str(pid) for pid in added],
        "removed": [str(pid) for pid in removed],
    }


@router.delete("/{id}")
def delete_category(id: str, admin: dict = Depends(require_admin)):
    db = get_db()
    category = find_category_or_error(id)
    with transaction() as session:
        db["category"].delete_one({"_id": category["_id"]}, session=session)
        db["category_product"].delete_many({"category_id": category["_id"]}, session=session)
    return {"message": "Category deleted"}


@router.post("/{category_id}/{product_id}")
def add_remove_category_product(category_id: str, product_id: str, admin: dict = Depends(require_admin)):
    db = get_db()
    category = find_category_or_error(category_id)
    product = find_product_or_error(product_id)
    link = {"category_id": category["_id"], "product_id": oid(product["_id"])}

    with write_guard("category product toggle"):
        if db["category_product"].find_one(link):
            db["category_product"].delete_one(link)
            return {"message": "Product removed from category"}
        db["category_product"].insert_one(CategoryProduct(**link).model_dump())
    return JSONResponse({"message": "Product added to category"}, status_code=201)
