import logging

from django.conf import settings
from django.http import JsonResponse
from django.urls import reverse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .services import CheckoutError, PaymentInitiationError, handle_checkout_callback, start_checkout_payment
from .utils import HttpResponseSeeOther, json_body, site_url

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def make_payment(request):
    body = json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"message": "Invalid JSON body"}, status=400)

    try:
        result = start_checkout_payment(body)
    except CheckoutError as e:
        return JsonResponse({"message": str(e), "details": e.details}, status=e.status)
    except PaymentInitiationError as e:
        return JsonResponse({"message": str(e), "details": e.details}, status=400)
    except Exception:
        logger.exception("bKash payment initiation crashed")
        return JsonResponse({"message": "Something went wrong"}, status=500)

    return JsonResponse({"message": "Payment initiated", "url": result["url"], "reference": result["reference"]})


@require_GET
def bkash_callback(request):
    """bKash sends the buyer's browser here after the payment page.

    Always answers with a 303: to the order on success, back to checkout otherwise.
    """
    checkout_url = site_url(settings.CHECKOUT_PAGE_PATH)
    try:
        result = handle_checkout_callback(
            reference=request.GET.get("reference"),
            payment_id=request.GET.get("paymentID"),
            status=request.GET.get("status"),
        )
    except Exception:
        logger.exception("Order processing error for reference=%s", request.GET.get("reference"))
        return HttpResponseSeeOther(checkout_url)

    if not result["ok"]:
        return HttpResponseSeeOther(checkout_url)
    order = result["record"]
    return HttpResponseSeeOther(site_url(reverse("shop:order_detail", kwargs={"order_id": order.order_id})))
