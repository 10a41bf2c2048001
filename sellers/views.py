import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from payments.services import CheckoutError, PaymentInitiationError
from payments.utils import HttpResponseSeeOther, json_body, site_url

from .services import handle_registration_callback, start_registration_payment

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def register_make_payment(request):
    body = json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"message": "Invalid JSON body"}, status=400)
    try:
        result = start_registration_payment(body)
    except CheckoutError as e:
        return JsonResponse({"message": str(e), "details": e.details}, status=e.status)
    except PaymentInitiationError as e:
        return JsonResponse({"message": str(e), "details": e.details}, status=400)
    except Exception:
        logger.exception("bKash registration payment crashed")
        return JsonResponse({"message": "Something went wrong"}, status=500)
    return JsonResponse({"message": "Payment initiated", "url": result["url"], "reference": result["reference"]})


@require_GET
def register_callback(request):
    register_url = site_url(settings.SELLER_REGISTER_PAGE_PATH)
    try:
        handle_registration_callback(
            reference=request.GET.get("reference"),
            payment_id=request.GET.get("paymentID"),
            status=request.GET.get("status"),
        )
    except Exception:
        logger.exception("Registration callback error for reference=%s", request.GET.get("reference"))
    return HttpResponseSeeOther(register_url)
