import hmac
import logging

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.http import Http404, JsonResponse
from django.views.decorators.http import require_GET

from .models import Order, Product

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "order_id", "customer", "products", "email", "note",
    "subtotal", "shipping", "total_amount", "advance_paid", "amount_due",
    "payment_method", "payment_status", "transaction_id",
    "order_status", "shipping_method", "tracking_number", "courier",
    "estimated_delivery_date", "shipped_at", "delivered_at",
    "is_refund_requested", "refund_status", "return_reason",
    "created_at", "updated_at",
)

PRODUCT_FIELDS = ("id", "title", "description", "sku", "price", "category", "brand", "stock", "created_at", "updated_at")


def _order_dict(order):
    return {f: getattr(order, f) for f in ORDER_FIELDS}


@require_GET
@login_required
def order_detail(request, order_id: str):
    """Order confirmation data for its buyer (or staff)."""
    order = Order.objects.filter(order_id=order_id).first()
    if order is None:
        raise Http404("Order not found")
    user = request.user
    if not user.is_staff and (user.email or "").lower() != order.email.lower():
        raise Http404("Order not found")
    return JsonResponse({"order": _order_dict(order)})


@require_GET
def products_api(request):
    expected = getattr(settings, "PRODUCTS_API_KEY", "") or ""
    api_key = request.headers.get("X-API-Key", "")
    if not expected or not api_key or not hmac.compare_digest(api_key, expected):
        return JsonResponse({"error": "Unauthorized"}, status=401)
    try:
        products = [{f: getattr(p, f) for f in PRODUCT_FIELDS} for p in Product.objects.order_by("-created_at")]
    except Exception:
        logger.exception("Error fetching products")
        return JsonResponse({"error": "Internal Server Error"}, status=500)
    return JsonResponse({"products": products})
