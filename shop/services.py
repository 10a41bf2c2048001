import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .models import CartItem, Order, Product
from .utils import generate_order_id, parse_stock

logger = logging.getLogger(__name__)

ORDER_STATUS_FLOW = {
    Order.PENDING: {Order.CONFIRMED, Order.CANCELLED},
    Order.CONFIRMED: {Order.SHIPPED, Order.CANCELLED},
    Order.SHIPPED: {Order.DELIVERED, Order.RETURNED},
    Order.DELIVERED: {Order.RETURNED},
    Order.CANCELLED: set(),
    Order.RETURNED: set(),
}

EDITABLE_ORDER_FIELDS = (
    "payment_status",
    "payment_method",
    "transaction_id",
    "courier",
    "tracking_number",
    "shipping_method",
    "estimated_delivery_date",
    "shipped_at",
    "delivered_at",
    "admin_note",
    "is_refund_requested",
    "refund_status",
    "return_reason",
)


class InvalidStatusTransition(Exception): pass


class OrderUpdateError(Exception): pass


def _unique_order_id() -> str:
    oid = generate_order_id()
    while Order.objects.filter(order_id=oid).exists():
        oid = generate_order_id()
    return oid


@transaction.atomic
def create_order(*, reference, payment_id, transaction_id, customer, products, email,
                 subtotal, shipping, total_amount, advance_paid, payment_method, note="") -> Order:
    """Create an order from a paid checkout snapshot.

    ``advance_paid`` must be the amount confirmed by the gateway. Prices in
    ``products`` are kept as they were at checkout time.
    """
    advance_paid = Decimal(advance_paid)
    total_amount = Decimal(total_amount)
    if advance_paid <= 0:
        raise ValueError("An order needs a confirmed payment amount")
    order = Order.objects.create(
        order_id=_unique_order_id(),
        reference=reference,
        payment_id=payment_id,
        transaction_id=transaction_id,
        customer=customer or {},
        products=list(products or []),
        email=email,
        note=note or "",
        subtotal=subtotal,
        shipping=shipping,
        total_amount=total_amount,
        advance_paid=advance_paid,
        payment_method=payment_method,
        payment_status="Paid" if advance_paid >= total_amount else "Partially Paid",
    )
    logger.info("Created order %s for %s (reference=%s trx=%s paid=%s)",
                order.order_id, email, reference, transaction_id, advance_paid)
    return order


def clear_cart(email: str) -> int:
    deleted, _ = CartItem.objects.filter(email=email).delete()
    return deleted


@transaction.atomic
def decrease_product_stock(product_id, quantity) -> Product | None:
    try:
        pk = int(product_id)
    except (TypeError, ValueError):
        logger.warning("Cannot decrement stock: bad product id %r", product_id)
        return None

    product = Product.objects.select_for_update().filter(pk=pk).first()
    if product is None:
        logger.warning("Cannot decrement stock: product %s not found", pk)
        return None

    current = parse_stock(product.stock)
    if current is None:
        logger.warning("Cannot decrement stock: product %s has invalid stock %r", pk, product.stock)
        return None

    product.stock = str(max(0, current - int(quantity or 0)))
    product.save(update_fields=["stock", "updated_at"])
    return product


@transaction.atomic
def update_order_status(order: Order, new_status: str) -> Order:
    order = Order.objects.select_for_update().get(pk=order.pk)
    prev = order.order_status
    if prev == new_status:
        return order
    if new_status not in ORDER_STATUS_FLOW.get(prev, set()):
        raise InvalidStatusTransition(f"{order.order_id}: {prev} -> {new_status} is not allowed")

    order.order_status = new_status
    now = timezone.now()
    if new_status == Order.SHIPPED and not order.shipped_at:
        order.shipped_at = now
    if new_status == Order.DELIVERED and not order.delivered_at:
        order.delivered_at = now
    order.save()
    logger.info("Order %s status %s -> %s", order.order_id, prev, new_status)
    return order


def update_order_details(order: Order, **data) -> Order:
    unknown = set(data) - set(EDITABLE_ORDER_FIELDS)
    if unknown:
        raise OrderUpdateError(f"Fields not editable: {', '.join(sorted(unknown))}")
    for field, value in data.items():
        setattr(order, field, value)
    if data:
        try:
            order.clean_fields(exclude=[f.name for f in Order._meta.fields if f.name not in data])
        except ValidationError as e:
            raise OrderUpdateError(str(e))
        order.save(update_fields=[*data, "updated_at"])
    return order
