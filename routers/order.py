"""
Orders and their lifecycle.

    REVIEWING -> SHIPPING -> RECEIVED -> COMPLETED
    REVIEWING | SHIPPING -> CANCELLED
    RECEIVED -> RETURN

Stock is taken out when an order is accepted and put back when a shipping
order is cancelled or a received order is returned. A transition is applied
only when the order is still in the status it was read in, so repeating one
(e.g. accepting twice) is rejected instead of moving stock again.
"""
import logging
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import config
import mailer
from database import get_db, get_documents, now_utc, serialize, transaction
from errors import AuthenticationError, BadRequestError
from inventory import apply_lines
from repository import (find_active_product_or_error, find_address_or_error, find_order_or_error,
                        find_stocks_or_error, order_lines, order_view, order_views)
from schemas import SIZES, Order, OrderAddress, OrderProduct, OrderStatus, OrderTimestamps
from security import check_param_ids, get_current_user, is_admin, order_owner, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/order", tags=["order"], dependencies=[Depends(check_param_ids)])

REVIEWING = OrderStatus.REVIEWING.value
SHIPPING = OrderStatus.SHIPPING.value
RECEIVED = OrderStatus.RECEIVED.value
COMPLETED = OrderStatus.COMPLETED.value
CANCELLED = OrderStatus.CANCELLED.value
RETURN = OrderStatus.RETURN.value

ADDRESS_FIELDS = list(OrderAddress.model_fields)


class OrderLineIn(BaseModel):
    product_id: str
    size: str
    quantity: int = Field(..., ge=1)


class OrderIn(BaseModel):
    address_id: str
    items: List[OrderLineIn] = Field(default_factory=list)
    from_cart: bool = False


def shipping_fee_for(province: str) -> float:
    if province.strip().lower() == config.DISCOUNTED_PROVINCE.lower():
        return config.DISCOUNTED_SHIPPING_FEE
    return config.SHIPPING_FEE


def _requested_lines(payload: OrderIn, user: dict) -> Dict[Tuple[str, str], int]:
    """Merge the requested items into (product id, size) -> quantity."""
    items = [(i.product_id, i.size.lower(), i.quantity) for i in payload.items]
    if payload.from_cart and not items:
        items = [
            (str(c["product_id"]), c["size"], c["quantity"])
            for c in get_documents("cart_product", {"user_id": user["_id"]})
        ]
    if not items:
        raise BadRequestError("No products to order")

    merged: Dict[Tuple[str, str], int] = {}
    for product_id, size, quantity in items:
        if not ObjectId.is_valid(product_id):
            raise BadRequestError(f"Invalid product id: {product_id}")
        if size not in SIZES:
            raise BadRequestError("Invalid size")
        merged[(product_id, size)] = merged.get((product_id, size), 0) + quantity
    return merged


def _check_transition(order: dict, allowed: Tuple[str, ...], status: str) -> None:
    if order["status"] not in allowed:
        raise BadRequestError(f"Unable to move an order from {order['status']} to {status}")


def _set_status(order: dict, allowed: Tuple[str, ...], status: str, stamp: str, session=None) -> dict:
    _check_transition(order, allowed, status)
    now = now_utc()
    result = get_db()["order"].update_one(
        {"_id": order["_id"], "status": order["status"]},
        {"$set": {"status": status, f"timestamps.{stamp}": now, "updated_at": now}},
        session=session,
    )
    if result.matched_count == 0:
        raise BadRequestError("Order was updated by someone else, please try again")
    order["status"] = status
    order.setdefault("timestamps", {})[stamp] = now
    return order


def _notify_owner(order: dict) -> None:
    owner = get_db()["user"].find_one({"_id": order["user_id"]})
    mailer.notify_status(order, owner, order["status"])


def _respond(message: str, order: dict) -> dict:
    return {"message": message, "order": serialize(order_view(order))}


@router.get("")
def get_my_orders(user: dict = Depends(get_current_user)):
    orders = list(get_db()["order"].find({"user_id": user["_id"]}).sort("created_at", -1))
    return {"message": "Orders fetched", "orders": serialize(order_views(orders))}


@router.get("/all")
def get_all_orders(status: Optional[OrderStatus] = None, admin: dict = Depends(require_admin)):
    query = {"status": status.value} if status else {}
    orders = list(get_db()["order"].find(query).sort("created_at", -1))
    return {"message": "Orders fetched", "orders": serialize(order_views(orders))}


@router.post("", status_code=201)
def create_order(payload: OrderIn, user: dict = Depends(get_current_user)):
    if not ObjectId.is_valid(payload.address_id):
        raise BadRequestError("Invalid address id")
    address = find_address_or_error(payload.address_id)
    if address["user_id"] != user["_id"]:
        raise AuthenticationError()
    requested = _requested_lines(payload, user)

    db = get_db()
    now = now_utc()
    order = Order(
        user_id=user["_id"],
        address=OrderAddress(**{field: address[field] for field in ADDRESS_FIELDS}),
        shipping_fee=shipping_fee_for(address["province"]),
        timestamps=OrderTimestamps(reviewed_at=now),
    )
    with transaction() as session:
        lines = []
        for (product_id, size), quantity in requested.items():
            product = find_active_product_or_error(product_id, session=session)
            stocks = find_stocks_or_error(product["_id"], session=session)
            if quantity > int(stocks.get(size, 0) or 0):
                raise BadRequestError(f"Not enough stocks for {product['name']} ({size})")
            lines.append((product, size, quantity))

        order_doc = {**order.model_dump(), "created_at": now, "updated_at": now}
        order_id = db["order"].insert_one(order_doc, session=session).inserted_id
        line_docs = [
            {
                **OrderProduct(order_id=order_id, product_id=product["_id"], name=product["name"],
                               description=product["description"], price=product["price"],
                               quantity=quantity, size=size).model_dump(),
                "created_at": now,
                "updated_at": now,
            }
            for product, size, quantity in lines
        ]
        db["order_product"].insert_many(line_docs, session=session)

        if payload.from_cart:
            for product, size, _ in lines:
                db["cart_product"].delete_many(
                    {"user_id": user["_id"], "product_id": product["_id"], "size": size}, session=session
                )

    logger.info("Order %s placed by %s", order_id, user["_id"])
    mailer.notify_order_placed(order_doc, line_docs, user)
    return _respond("Order created", db["order"].find_one({"_id": order_id}))


@router.get("/{id}")
def get_order(order: dict = Depends(order_owner(admin_bypass=True))):
    return _respond("Order fetched", order)


@router.patch("/{id}/accept")
def accept_order(id: str, admin: dict = Depends(require_admin)):
    order = find_order_or_error(id)
    with transaction() as session:
        _check_transition(order, (REVIEWING,), SHIPPING)
        apply_lines(order_lines(order["_id"], session=session), -1, session=session)
        _set_status(order, (REVIEWING,), SHIPPING, "shipped_at", session=session)
    _notify_owner(order)
    return _respond("Order accepted", order)


@router.patch("/{id}/reject")
def reject_order(id: str, admin: dict = Depends(require_admin)):
    order = find_order_or_error(id)
    _set_status(order, (REVIEWING,), CANCELLED, "cancelled_at")
    _notify_owner(order)
    return _respond("Order rejected", order)


@router.patch("/{id}/received")
def receive_order(id: str, admin: dict = Depends(require_admin)):
    order = find_order_or_error(id)
    _set_status(order, (SHIPPING,), RECEIVED, "received_at")
    _notify_owner(order)
    return _respond("Order received", order)


@router.patch("/{id}/cancel")
def cancel_order(order: dict = Depends(order_owner(admin_bypass=True)),
                 user: dict = Depends(get_current_user)):
    shipped = order["status"] == SHIPPING
    with transaction() as session:
        _check_transition(order, (REVIEWING, SHIPPING), CANCELLED)
        if shipped:
            apply_lines(order_lines(order["_id"], session=session), 1, session=session)
        _set_status(order, (REVIEWING, SHIPPING), CANCELLED, "cancelled_at", session=session)
    _notify_owner(order)
    if not is_admin(user):
        mailer.send_email(config.ADMIN_EMAIL, f"Order {order['_id']} cancelled",
                          f"<p>Order {order['_id']} was cancelled by the customer.</p>")
    return _respond("Order cancelled", order)


@router.patch("/{id}/complete")
def complete_order(order: dict = Depends(order_owner(admin_bypass=False))):
    _set_status(order, (RECEIVED,), COMPLETED, "completed_at")
    return _respond("Order completed", order)


@router.patch("/{id}/return")
def return_order(id: str, admin: dict = Depends(require_admin)):
    order = find_order_or_error(id)
    with transaction() as session:
        _check_transition(order, (RECEIVED,), RETURN)
        apply_lines(order_lines(order["_id"], session=session), 1, session=session)
        _set_status(order, (RECEIVED,), RETURN, "returned_at", session=session)
    _notify_owner(order)
    return _respond("Order returned", order)
