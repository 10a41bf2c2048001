import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from django.conf import settings
from django.db import IntegrityError, transaction
from django.urls import reverse
from django.utils import timezone

from shop import services as shop_services
from shop.models import Order

from .integrations import bkash
from .integrations.bkash import BkashError
from .models import PENDING, IllegalTransition, PendingPayment
from .utils import clean_reference, gen_reference, parse_amount, site_url

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("bkash", "cod")
GATEWAY_SUCCESS = "success"


class CheckoutError(Exception):
    def __init__(self, message, status=400, details=None):
        super().__init__(message)
        self.status = status
        self.details = details


class PaymentInitiationError(Exception):
    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or {}


def payable_amount(payment_method: str, total) -> Decimal:
    """Full total for bKash, a fixed advance for cash on delivery."""
    if payment_method == "bkash":
        return Decimal(total)
    if payment_method == "cod":
        return Decimal(settings.CHECKOUT_COD_ADVANCE)
    raise CheckoutError(f"Unsupported payment method: {payment_method}")


def _money(body: dict, key: str) -> Decimal:
    raw = body.get(key)
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise CheckoutError(f"Invalid {key}")
    if not value.is_finite() or value < 0:
        raise CheckoutError(f"Invalid {key}")
    return value


def _clean_cart_items(items) -> list:
    if not isinstance(items, list) or not items:
        raise CheckoutError("Cart is empty")
    cleaned = []
    for item in items:
        if not isinstance(item, dict) or not item.get("productId"):
            raise CheckoutError("Every cart item needs a productId")
        try:
            qty = int(item.get("quantity"))
        except (TypeError, ValueError):
            qty = 0
        if qty <= 0:
            raise CheckoutError(f"Invalid quantity for product {item.get('productId')}")
        cleaned.append({**item, "productId": str(item["productId"]), "quantity": qty})
    return cleaned


def _clean_checkout(body: dict) -> dict:
    required = ["customer", "cartItems", "shipping", "subtotal", "total", "paymentMethod", "userEmail"]
    missing = [k for k in required if body.get(k) in (None, "", [], {})]
    if missing:
        raise CheckoutError(f"Missing fields: {', '.join(missing)}")
    if not isinstance(body["customer"], dict):
        raise CheckoutError("customer must be an object")

    method = str(body["paymentMethod"]).lower()
    if method not in PAYMENT_METHODS:
        raise CheckoutError(f"Unsupported payment method: {body['paymentMethod']}")

    shipping = _money(body, "shipping")
    subtotal = _money(body, "subtotal")
    total = _money(body, "total")
    if total != subtotal + shipping:
        raise CheckoutError("total must equal subtotal + shipping")

    return {
        "customer": body["customer"],
        "cart_items": _clean_cart_items(body["cartItems"]),
        "note": str(body.get("note") or ""),
        "shipping": shipping,
        "subtotal": subtotal,
        "total": total,
        "payment_method": method,
        "user_email": str(body["userEmail"]).strip(),
    }


def start_gateway_payment(pending, amount, callback_path: str) -> str:
    """Create the bKash payment for a stored pending row and return the buyer's redirect URL."""
    callback_url = site_url(f"{callback_path}?{urlencode({'reference': pending.reference})}")
    try:
        resp = bkash.create_payment(amount=amount, callback_url=callback_url, reference=pending.reference)
    except BkashError as e:
        logger.error("bKash create payment failed for reference=%s: %s", pending.reference, e)
        raise PaymentInitiationError("Payment initiation failed", {"error": str(e)})

    if not bkash.is_ok(resp) or not resp.get("bkashURL"):
        logger.warning("bKash create payment rejected for reference=%s: %s", pending.reference, resp)
        raise PaymentInitiationError("Payment initiation failed", resp)

    pending.record_payment_id(resp.get("paymentID", ""), resp)
    logger.info("bKash payment %s created for reference=%s amount=%s",
                pending.payment_id, pending.reference, amount)
    return resp["bkashURL"]


def start_checkout_payment(body: dict) -> dict:
    """Park the checkout as a pending payment and open a bKash payment for it."""
    data = _clean_checkout(body or {})
    reference = clean_reference(body.get("reference")) or gen_reference()
    if Order.objects.filter(reference=reference).exists():
        raise CheckoutError("A checkout with this reference already exists", status=409)
    try:
        with transaction.atomic():
            pending = PendingPayment.objects.create(reference=reference, status=PENDING, **data)
    except IntegrityError:
        raise CheckoutError("A checkout with this reference already exists", status=409)

    amount = payable_amount(pending.payment_method, pending.total)
    url = start_gateway_payment(pending, amount, reverse("payments:bkash_callback"))
    return {"url": url, "reference": pending.reference, "amount": amount}


def _outcome(outcome, record=None, ok=False):
    return {"ok": ok, "outcome": outcome, "record": record}


def settle_pending_payment(model, *, reference, payment_id, status, fulfil, find_settled) -> dict:
    """Finish a gateway payment when the buyer comes back from bKash.

    ``fulfil(pending, confirmation)`` performs the business writes and returns
    the created record; ``find_settled(reference)`` returns the record an
    earlier callback already created, if any. Everything runs in one
    transaction holding a lock on the pending row, and the fulfilment writes
    plus the pending-row delete share a savepoint so they land together or not
    at all.

    Returns ``{"ok": bool, "outcome": str, "record": obj | None}``.
    """
    if not reference:
        return _outcome("missing_reference")

    with transaction.atomic():
        pending = model.objects.select_for_update().filter(reference=reference).first()
        if pending is None:
            settled = find_settled(reference)
            if settled is not None:
                logger.info("Callback for already settled reference=%s", reference)
                return _outcome("already_settled", settled, ok=True)
            logger.warning("Callback for unknown reference=%s", reference)
            return _outcome("unknown_reference")

        if not pending.is_pending:
            logger.warning("Callback for reference=%s in state %s", reference, pending.status)
            return _outcome("not_pending")

        if status != GATEWAY_SUCCESS or not payment_id:
            logger.warning("bKash payment cancelled or failed: reference=%s paymentID=%s status=%s",
                           reference, payment_id, status)
            pending.mark_failed("cancelled", {"paymentID": payment_id or "", "status": status or ""})
            return _outcome("cancelled")

        if pending.payment_id and pending.payment_id != payment_id:
            logger.warning("paymentID mismatch for reference=%s: expected %s got %s",
                           reference, pending.payment_id, payment_id)
            pending.mark_failed("payment_mismatch", {"paymentID": payment_id})
            return _outcome("payment_mismatch")

        try:
            resp = bkash.execute_payment(payment_id)
        except BkashError as e:
            logger.error("bKash execute failed for reference=%s: %s", reference, e)
            pending.mark_failed("execute_error", {"paymentID": payment_id, "error": str(e)})
            return _outcome("execute_failed")

        if not bkash.is_ok(resp):
            logger.error("bKash execute rejected for reference=%s: %s", reference, resp)
            pending.mark_failed("execute_failed", resp or {})
            return _outcome("execute_failed")

        paid = parse_amount(resp.get("amount"))
        transaction_id = resp.get("trxID") or resp.get("paymentID") or payment_id
        if paid <= 0:
            logger.error("No valid payment amount for reference=%s: %s", reference, resp)
            pending.mark_failed("zero_amount", resp)
            return _outcome("zero_amount")

        confirmation = {
            "paid_amount": paid,
            "transaction_id": transaction_id,
            "payment_id": payment_id,
            "gateway": resp,
        }
        try:
            with transaction.atomic():
                record = fulfil(pending, confirmation)
                pending.complete()
        except Exception as e:
            settled = find_settled(reference)
            if settled is not None and settled.payment_id == payment_id:
                logger.info("reference=%s was settled by a concurrent callback", reference)
                return _outcome("already_settled", settled, ok=True)
            # Money was taken but nothing was written; keep the evidence for manual reconciliation.
            logger.exception("Fulfilment failed after payment for reference=%s trx=%s", reference, transaction_id)
            pending.mark_failed("fulfilment_failed", {**resp, "error": str(e)})
            return _outcome("fulfilment_failed")

    logger.info("Settled reference=%s trx=%s paid=%s", reference, transaction_id, paid)
    return _outcome("completed", record, ok=True)


def complete_checkout_payment(pending: PendingPayment, confirmation: dict) -> Order:
    order = shop_services.create_order(
        reference=pending.reference,
        payment_id=confirmation["payment_id"],
        transaction_id=confirmation["transaction_id"],
        customer=pending.customer,
        products=pending.cart_items,
        email=pending.user_email,
        note=pending.note,
        subtotal=pending.subtotal,
        shipping=pending.shipping,
        total_amount=pending.total,
        advance_paid=confirmation["paid_amount"],
        payment_method=pending.payment_method,
    )
    shop_services.clear_cart(pending.user_email)
    for item in pending.cart_items:
        shop_services.decrease_product_stock(item.get("productId"), item.get("quantity"))
    return order


def handle_checkout_callback(*, reference, payment_id, status) -> dict:
    return settle_pending_payment(
        PendingPayment,
        reference=reference,
        payment_id=payment_id,
        status=status,
        fulfil=complete_checkout_payment,
        find_settled=lambda ref: Order.objects.filter(reference=ref).first(),
    )


def expire_pending_payments(model, *, older_than_minutes: int, limit: int = 500, dry_run: bool = False) -> list:
    """Fail pending rows whose buyer never came back from the gateway. Returns the affected references."""
    cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
    qs = model.objects.filter(status=PENDING, created_at__lt=cutoff).order_by("created_at")[:limit]
    expired = []
    for pending in qs:
        if dry_run:
            expired.append(pending.reference)
            continue
        try:
            pending.mark_failed("expired")
        except IllegalTransition:
            continue
        expired.append(pending.reference)
    if expired and not dry_run:
        logger.info("Expired %d stale %s rows", len(expired), model.__name__)
    return expired
