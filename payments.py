"""
Payment webhook inbox

Events must carry a hex HMAC-SHA256 of the raw body, keyed with
PAYMENT_WEBHOOK_SECRET. Verified ``payment.captured`` events are applied to
the order and then recorded in the ``payment_event`` collection by payment
id, so a redelivered event is acknowledged without touching the order again
while one whose apply step failed is simply retried.
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
import orders
from database import create_document
from errors import NotFound, ValidationFailed, WebhookRejected
from schemas import PaymentEvent

logger = logging.getLogger(__name__)

CAPTURED = "payment.captured"


def compute_signature(body: bytes, secret: Optional[str] = None) -> str:
    key = secret if secret is not None else config.PAYMENT_WEBHOOK_SECRET
    return hmac.new(key.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str]) -> None:
    if not config.PAYMENT_WEBHOOK_SECRET:
        logger.error("Payment webhook received but PAYMENT_WEBHOOK_SECRET is not configured")
        raise WebhookRejected()
    if not signature or not hmac.compare_digest(compute_signature(body), signature.strip()):
        logger.warning("Payment webhook rejected: bad signature")
        raise WebhookRejected()


def _captured_payment(event: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return event["payload"]["payment"]["entity"]
    except (KeyError, TypeError):
        raise ValidationFailed("Malformed payment event")


def handle_webhook(db: Database, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
    verify_signature(body, signature)
    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationFailed("Malformed payment event")
    if not isinstance(event, dict):
        raise ValidationFailed("Malformed payment event")

    if event.get("event") != CAPTURED:
        logger.info("Ignoring payment webhook event %r", event.get("event"))
        return {"status": "ignored"}

    payment = _captured_payment(event)
    payment_id = payment.get("id")
    order_number = (payment.get("notes") or {}).get("orderId")
    if not payment_id or not order_number:
        raise ValidationFailed("Malformed payment event")
    if not db["order"].find_one({"order_number": order_number}, {"_id": 1}):
        logger.warning("Payment webhook for unknown order %s", order_number)
        raise NotFound("Order not found")

    if db["payment_event"].find_one({"payment_id": payment_id}):
        logger.info("Payment %s already processed", payment_id)
        return {"status": "duplicate"}

    # Only events whose order update went through are recorded
    order = orders.mark_paid(db, order_number, payment_reference=payment_id)
    try:
        create_document(db, "payment_event", PaymentEvent(payment_id=payment_id, order_number=order_number,
                                                          event=CAPTURED))
    except DuplicateKeyError:
        logger.info("Payment %s already processed", payment_id)
        return {"status": "duplicate"}

    logger.info("Payment %s captured for order %s", payment_id, order_number)
    return {"status": "ok", "order": order}
