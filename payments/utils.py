import json
import re
import secrets
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.http import HttpResponseRedirect

REFERENCE_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class HttpResponseSeeOther(HttpResponseRedirect):
    status_code = 303


def gen_reference(prefix="chk"):
    return f"{prefix}_{secrets.token_hex(12)}"


def clean_reference(raw) -> str | None:
    ref = (raw or "").strip() if isinstance(raw, str) else ""
    return ref if REFERENCE_RE.match(ref) else None


def parse_amount(value) -> Decimal:
    """Decimal amount from a gateway/client value; 0 when it cannot be parsed."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def site_url(path: str = "") -> str:
    return f"{settings.SITE_URL.rstrip('/')}{path}"


def json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError): return None
