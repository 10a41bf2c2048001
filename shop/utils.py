import secrets
import string

from django.utils import timezone

ALNUM = string.ascii_uppercase + string.digits


def generate_order_id(prefix="ACS"):
    """Short human-readable order number, e.g. ``ACS2410191530K7Q2M9``."""
    ts = timezone.now().strftime("%y%m%d%H%M")
    rand = "".join(secrets.choice(ALNUM) for _ in range(6))
    return f"{prefix}{ts}{rand}"[:20]


def parse_stock(value) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
