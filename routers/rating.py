from typing import Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from database import get_db, now_utc, oid, serialize, transaction
from errors import AuthenticationError, BadRequestError
from repository import find_order_or_error, find_order_product_or_error
from schemas import OrderStatus, Rating
from security import check_param_ids, get_current_user

router = APIRouter(prefix="/api/rating", tags=["rating"], dependencies=[Depends(check_param_ids)])


class RatingIn(BaseModel):
    stars: int
    comment: Optional[str] = None


class RatingsIn(BaseModel):
    ratings: Dict[str, RatingIn] = Field(default_factory=dict)


@router.post("/{id}", status_code=201)
def create_rating(id: str, payload: RatingsIn, user: dict = Depends(get_current_user)):
    """Rate one or more lines of a completed order; ``ratings`` is keyed by order product id."""
    order = find_order_or_error(id)
    if order["user_id"] != user["_id"]:
        raise AuthenticationError()
    if order["status"] != OrderStatus.COMPLETED.value:
        raise BadRequestError("Unable to rate an order that is not yet completed")
    if not payload.ratings:
        raise BadRequestError("Incomplete input")

    db = get_db()
    new_ratings = []
    for order_product_id, rating in payload.ratings.items():
        if not ObjectId.is_valid(order_product_id):
            raise BadRequestError(f"Invalid order product id: {order_product_id}")
        order_product = find_order_product_or_error(order_product_id)
        if order_product["order_id"] != order["_id"]:
            raise BadRequestError("Order product does not belong to this order")
        if not 1 <= rating.stars <= 5:
            raise BadRequestError("Stars must be within 1-5 only")
        if db["rating"].find_one({"user_id": user["_id"], "order_product_id": order_product["_id"]}):
            raise BadRequestError("A rating for this already exists")
        new_ratings.append(Rating(
            user_id=user["_id"],
            order_product_id=order_product["_id"],
            product_id=order_product["product_id"],
            stars=rating.stars,
            comment=rating.comment,
        ))

    now = now_utc()
    docs = [{**r.model_dump(), "created_at": now, "updated_at": now} for r in new_ratings]
    with transaction() as session:
        db["rating"].insert_many(docs, session=session)
        db["order"].update_one({"_id": order["_id"]}, {"$set": {"is_rated": True, "updated_at": now}},
                               session=session)
    return {"message": "Ratings successfully created", "ratings": serialize(docs)}


@router.get("/{id}")
def get_product_ratings(id: str):
    db = get_db()
    ratings = list(db["rating"].find({"product_id": oid(id)}).sort("created_at", -1))
    users = {
        u["_id"]: {"id": u["_id"], "display_name": u.get("display_name"), "image": u.get("image")}
        for u in db["user"].find({"_id": {"$in": list({r["user_id"] for r in ratings})}})
    }
    for r in ratings:
        r["user"] = users.get(r["user_id"])
    return {"message": "Ratings for product fetched", "ratings": serialize(ratings)}
