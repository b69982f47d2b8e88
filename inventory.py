"""
Stock ledger.

Every change to a product's stock goes through ``write_stocks`` so that cart
lines never hold more than what is available: lines above the new count for a
size are clamped down to it, and removed when the size runs out. Pass the
session of the surrounding transaction so the correction commits or rolls back
together with the stock write.
"""
import logging
from typing import Dict, Iterable, Mapping

from bson import ObjectId

from database import get_db, now_utc
from errors import BadRequestError
from repository import find_stocks_or_error
from schemas import SIZES

logger = logging.getLogger(__name__)


def reconcile_carts(product_id: ObjectId, counts: Mapping[str, int], session=None) -> None:
    """Clamp or drop cart lines of ``product_id`` that exceed the given per-size counts."""
    carts = get_db()["cart_product"]
    for size, available in counts.items():
        over = {"product_id": product_id, "size": size, "quantity": {"$gt": available}}
        if available <= 0:
            result = carts.delete_many(over, session=session)
            if result.deleted_count:
                logger.info("Removed %s cart lines for %s/%s (out of stock)", result.deleted_count, product_id, size)
        else:
            result = carts.update_many(over, {"$set": {"quantity": available}}, session=session)
            if result.modified_count:
                logger.info("Clamped %s cart lines for %s/%s to %s", result.modified_count, product_id, size, available)


def write_stocks(product_id: ObjectId, counts: Mapping[str, int], session=None) -> dict:
    """
    Overwrite the given sizes of a product's stock.

    Sizes not in ``counts`` keep their value and their cart lines are not looked at.
    """
    counts = {size: int(qty) for size, qty in counts.items() if size in SIZES}
    for size, qty in counts.items():
        if qty < 0:
            raise BadRequestError(f"Stocks for size {size} cannot be negative")

    stocks = find_stocks_or_error(product_id, session=session)
    reconcile_carts(product_id, counts, session=session)
    if counts:
        get_db()["stocks"].update_one(
            {"_id": stocks["_id"]}, {"$set": {**counts, "updated_at": now_utc()}}, session=session
        )
        stocks.update(counts)
    return stocks


def apply_lines(lines: Iterable[dict], direction: int, session=None) -> None:
    """
    Move stock for a set of order lines: ``direction`` -1 takes the ordered
    quantities out (order accepted), +1 puts them back (cancelled or returned).

    Every product is checked before anything is written, so a short line
    leaves all stock untouched. Putting stock back skips products deleted
    since the order was placed; taking it out of one fails.
    """
    deltas: Dict[ObjectId, Dict[str, int]] = {}
    for line in lines:
        per_size = deltas.setdefault(line["product_id"], {})
        per_size[line["size"]] = per_size.get(line["size"], 0) + line["quantity"] * direction

    stocks_db = get_db()["stocks"]
    new_counts: Dict[ObjectId, Dict[str, int]] = {}
    for product_id, per_size in deltas.items():
        stocks = stocks_db.find_one({"product_id": product_id}, session=session)
        if stocks is None:
            if direction < 0:
                raise BadRequestError("Stocks not found")
            logger.info("No stocks for product %s, skipping", product_id)
            continue
        counts = {}
        for size, delta in per_size.items():
            current = int(stocks.get(size, 0) or 0)
            if current + delta < 0:
                raise BadRequestError(f"Not enough stocks for size {size}")
            counts[size] = current + delta
        new_counts[product_id] = counts

    for product_id, counts in new_counts.items():
        write_stocks(product_id, counts, session=session)


def has_stock(stocks: dict) -> bool:
    return any(int(stocks.get(size, 0) or 0) > 0 for size in SIZES)
