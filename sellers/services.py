import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q, Sum
from django.urls import reverse

from payments.models import PENDING
from payments.services import CheckoutError, settle_pending_payment, start_gateway_payment
from payments.utils import gen_reference

from .models import PendingRegisterPayment, Seller, SellerPayout

logger = logging.getLogger(__name__)

# request key -> model field
REGISTRATION_FIELDS = {
    "name": "name",
    "email": "email",
    "number": "number",
    "address": "address",
    "district": "district",
    "shopName": "shop_name",
    "shopLogo": "shop_logo",
    "website": "website",
}


def registration_fee() -> Decimal | None:
    fee = getattr(settings, "SELLER_REGISTRATION_FEE", None)
    return Decimal(fee) if fee not in (None, "") else None


def start_registration_payment(body: dict) -> dict:
    """Park a seller sign-up and open a bKash payment for its registration fee."""
    body = body or {}
    if not body.get("amount") or not body.get("website"):
        raise CheckoutError("Amount and Website are required")
    missing = [k for k in REGISTRATION_FIELDS if not str(body.get(k) or "").strip()]
    if missing:
        raise CheckoutError(f"Missing fields: {', '.join(missing)}")

    try:
        amount = Decimal(str(body["amount"]))
    except (InvalidOperation, TypeError, ValueError):
        raise CheckoutError("Invalid amount")
    if not amount.is_finite() or amount <= 0:
        raise CheckoutError("Invalid amount")
    fee = registration_fee()
    if fee is not None and amount != fee:
        raise CheckoutError(f"Registration fee is {fee}")

    data = {field: str(body[key]).strip() for key, field in REGISTRATION_FIELDS.items()}
    if Seller.objects.filter(email__iexact=data["email"]).exists():
        raise CheckoutError("This email is already registered as a seller", status=409)

    try:
        with transaction.atomic():
            pending = PendingRegisterPayment.objects.create(
                reference=gen_reference("reg"), status=PENDING, amount=amount, **data
            )
    except IntegrityError:
        raise CheckoutError("Could not reserve a registration reference, please retry", status=409)

    url = start_gateway_payment(pending, amount, reverse("sellers:register_callback"))
    return {"url": url, "reference": pending.reference, "amount": amount}


def complete_seller_registration(pending: PendingRegisterPayment, confirmation: dict) -> Seller:
    if confirmation["paid_amount"] < pending.amount:
        raise ValueError(f"Paid {confirmation['paid_amount']} is below the registration fee {pending.amount}")
    seller = Seller.objects.create(
        name=pending.name,
        email=pending.email,
        number=pending.number,
        address=pending.address,
        district=pending.district,
        shop_name=pending.shop_name,
        shop_logo=pending.shop_logo,
        website=pending.website,
        reference=pending.reference,
        payment_id=confirmation["payment_id"],
        transaction_id=confirmation["transaction_id"],
        amount=confirmation["paid_amount"],
    )
    logger.info("Registered seller %s (%s) trx=%s", seller.email, seller.shop_name, seller.transaction_id)
    return seller


def handle_registration_callback(*, reference, payment_id, status) -> dict:
    return settle_pending_payment(
        PendingRegisterPayment,
        reference=reference,
        payment_id=payment_id,
        status=status,
        fulfil=complete_seller_registration,
        find_settled=lambda ref: Seller.objects.filter(reference=ref).first(),
    )


# ---------- payouts ----------
PAYOUT_FIELDS = ("amount", "payment_method", "account_details", "progress")


class PayoutError(Exception): pass


def refresh_payout_totals(seller: Seller) -> Seller:
    """Recompute ``total_paid`` (paid payouts) and ``total_due`` (payouts not yet paid)."""
    seller = Seller.objects.select_for_update().get(pk=seller.pk)
    totals = seller.payouts.aggregate(
        paid=Sum("amount", filter=Q(progress=SellerPayout.PAID)),
        due=Sum("amount", filter=~Q(progress=SellerPayout.PAID)),
    )
    seller.total_paid = totals["paid"] or 0
    seller.total_due = totals["due"] or 0
    seller.save(update_fields=["total_paid", "total_due", "updated_at"])
    return seller


def _validate_payout(payout: SellerPayout) -> None:
    try:
        payout.clean_fields(exclude=["seller"])
    except ValidationError as e:
        raise PayoutError(str(e))


@transaction.atomic
def create_payout(*, seller, amount, payment_method, account_details="", progress=SellerPayout.PENDING) -> SellerPayout:
    payout = SellerPayout(seller=seller, amount=amount, payment_method=payment_method,
                          account_details=account_details or "", progress=progress)
    _validate_payout(payout)
    payout.save()
    refresh_payout_totals(seller)
    logger.info("Payout %s of %s created for seller %s", payout.pk, payout.amount, seller.email)
    return payout


@transaction.atomic
def update_payout(payout: SellerPayout, **data) -> SellerPayout:
    unknown = set(data) - set(PAYOUT_FIELDS)
    if unknown:
        raise PayoutError(f"Fields not editable: {', '.join(sorted(unknown))}")
    for field, value in data.items():
        setattr(payout, field, value)
    _validate_payout(payout)
    payout.save()
    refresh_payout_totals(payout.seller)
    return payout


@transaction.atomic
def delete_payout(payout: SellerPayout) -> None:
    seller = payout.seller
    payout.delete()
    refresh_payout_totals(seller)
    logger.info("Payout deleted for seller %s", seller.email)
