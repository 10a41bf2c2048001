import json
import logging
import threading
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import requests
from requests import RequestException
from django.conf import settings
from django.utils import timezone

from payments.models import GatewayToken

logger = logging.getLogger(__name__)

STATUS_OK = "0000"

# Serializes token refresh inside this process.
_token_lock = threading.Lock()


class BkashError(Exception): pass


def _base_url() -> str:
    base = (getattr(settings, "BKASH_BASE_URL", "") or "").rstrip("/")
    if not base:
        raise BkashError("Missing BKASH_BASE_URL")
    return base


def _timeout() -> float:
    return getattr(settings, "BKASH_TIMEOUT", 30)


def _amount_str(amount) -> str:
    try:
        q = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise BkashError("Invalid amount value")
    s = format(q, "f")
    return s[:-3] if s.endswith(".00") else s


def _post(path: str, payload: dict, headers: dict) -> dict:
    url = f"{_base_url()}{path}"
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=_timeout())
    except RequestException as e:
        raise BkashError(f"Gateway request failed: {e}")
    try:
        data = resp.json()
    except ValueError:
        raise BkashError(f"Gateway returned non-JSON response (HTTP {resp.status_code}): {resp.text[:300]}")
    if not isinstance(data, dict):
        raise BkashError(f"Unexpected gateway response: {json.dumps(data)[:300]}")
    # bKash reports business errors as JSON with a statusCode; anything else on an HTTP error is transport-level.
    if resp.status_code >= 400 and "statusCode" not in data:
        raise BkashError(f"Gateway error HTTP {resp.status_code}. Response: {json.dumps(data)[:800]}")
    return data


def is_ok(response) -> bool:
    return bool(response) and str(response.get("statusCode", "")) == STATUS_OK


# ---------- token ----------
def _request_token() -> dict:
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "username": settings.BKASH_USERNAME,
        "password": settings.BKASH_PASSWORD,
    }
    payload = {"app_key": settings.BKASH_APP_KEY, "app_secret": settings.BKASH_APP_SECRET}
    data = _post("/tokenized/checkout/token/grant", payload, headers)
    if not data.get("id_token"):
        raise BkashError(f"bKash did not return an id_token: {json.dumps(data)[:300]}")
    return data


def _cached_token(ttl: int) -> str | None:
    record = GatewayToken.objects.filter(pk=GatewayToken.SINGLETON_PK).first()
    return record.id_token if record is not None and record.is_fresh(ttl) else None


def grant_token() -> str:
    """Return a bearer token, requesting a new one only when the cached one is stale.

    A fresh token is read without any lock; only a refresh writes the row.
    """
    ttl = getattr(settings, "BKASH_TOKEN_TTL", 3600)
    token = _cached_token(ttl)
    if token:
        return token

    with _token_lock:
        token = _cached_token(ttl)
        if token:
            return token

        logger.info("Requesting new bKash token")
        data = _request_token()
        GatewayToken.objects.update_or_create(
            pk=GatewayToken.SINGLETON_PK,
            defaults={
                "id_token": data["id_token"],
                "refresh_token": data.get("refresh_token", "") or "",
                "obtained_at": timezone.now(),
            },
        )
        return data["id_token"]


def _auth_headers() -> dict:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Bearer {grant_token()}",
        "x-app-key": settings.BKASH_APP_KEY,
    }


# ---------- checkout ----------
def create_payment(*, amount, callback_url: str, reference: str) -> dict:
    """Create a tokenized checkout payment.

    Returns the gateway body; on success it carries ``statusCode == "0000"``,
    ``paymentID`` and ``bkashURL`` (where the buyer is sent).
    """
    if amount in (None, ""):
        raise BkashError("amount required")
    amount_s = _amount_str(amount)
    if Decimal(amount_s) < 1:
        raise BkashError("minimum amount 1")
    if not callback_url:
        raise BkashError("callbackURL required")

    payload = {
        "mode": "0011",
        "currency": "BDT",
        "intent": "sale",
        "amount": amount_s,
        "callbackURL": callback_url,
        "payerReference": reference or "1",
        "merchantInvoiceNumber": reference or f"Inv_{uuid.uuid4().hex[:6]}",
    }
    return _post("/tokenized/checkout/create", payload, _auth_headers())


def execute_payment(payment_id: str) -> dict:
    """Finalize an authorized payment. Success body has ``amount`` and ``trxID``."""
    if not payment_id:
        raise BkashError("paymentID required")
    return _post("/tokenized/checkout/execute", {"paymentID": payment_id}, _auth_headers())
