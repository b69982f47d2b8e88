"""Transactional emails for order events, sent through Resend."""
import html
import logging
from typing import List, Optional

import resend

import config
from repository import order_total

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "SHIPPING": "Your order has been accepted and is on its way.",
    "CANCELLED": "Your order has been cancelled.",
    "RECEIVED": "Your order has been marked as received.",
    "COMPLETED": "Your order is complete. Thank you for shopping with us!",
    "RETURN": "Your order has been marked as returned.",
}


def send_email(to: Optional[str], subject: str, body: str) -> bool:
    """Send one email. Never raises; returns whether the message was handed over."""
    if not to:
        logger.info("No recipient for %r, skipping email", subject)
        return False
    if not config.RESEND_API_KEY:
        logger.info("RESEND_API_KEY not set, skipping email %r to %s", subject, to)
        return False
    resend.api_key = config.RESEND_API_KEY
    try:
        resend.Emails.send({"from": config.MAIL_FROM, "to": [to], "subject": subject, "html": body})
    except Exception:
        logger.warning("Unable to send email %r to %s", subject, to, exc_info=True)
        return False
    return True


def _lines_table(lines: List[dict]) -> str:
    rows = "".join(
        f"<tr><td>{html.escape(line['name'])}</td><td>{line['size'].upper()}</td>"
        f"<td>{line['quantity']}</td><td>{line['price']:.2f}</td></tr>"
        for line in lines
    )
    return f"<table><tr><th>Product</th><th>Size</th><th>Qty</th><th>Price</th></tr>{rows}</table>"


def notify_order_placed(order: dict, lines: List[dict], user: dict) -> bool:
    name = html.escape(user.get("display_name") or user.get("email") or "")
    total = order_total(lines) + order.get("shipping_fee", 0)
    body = (
        f"<h2>New order {order['_id']}</h2>"
        f"<p>Placed by {name}.</p>"
        f"{_lines_table(lines)}"
        f"<p>Shipping fee: {order.get('shipping_fee', 0):.2f}<br>Total: {total:.2f}</p>"
    )
    return send_email(config.ADMIN_EMAIL, f"New order {order['_id']}", body)


def notify_status(order: dict, user: Optional[dict], status: str) -> bool:
    if not user:
        return False
    message = STATUS_MESSAGES.get(status, f"Your order is now {status}.")
    body = (
        f"<p>Hi {html.escape(user.get('first_name') or user.get('display_name') or '')},</p>"
        f"<p>{message}</p><p>Order: {order['_id']}</p>"
    )
    return send_email(user.get("email"), f"Order {order['_id']}: {status.lower()}", body)
