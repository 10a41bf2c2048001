from datetime import timedelta

from django.db import models
from django.utils import timezone

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"


class IllegalTransition(Exception):
    """Raised when a pending gateway payment is no longer in the ``pending`` state."""


class PendingGatewayPayment(models.Model):
    """Checkout data parked while the buyer is on the gateway's page.

    The row moves ``pending -> failed`` (kept for audit) or
    ``pending -> completed``, which deletes it together with the fulfilment
    writes. Both transitions are conditional updates on ``status='pending'``,
    so a row that already left ``pending`` cannot be moved again.
    """

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]

    reference = models.CharField(max_length=64, unique=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    payment_id = models.CharField(max_length=64, blank=True, default="")  # gateway paymentID from create
    failure_reason = models.CharField(max_length=64, blank=True, default="")
    gateway_meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    def _pending_row(self):
        return type(self).objects.filter(pk=self.pk, status=PENDING)

    def mark_failed(self, reason: str, gateway_meta: dict | None = None) -> None:
        fields = {"status": FAILED, "failure_reason": reason[:64], "updated_at": timezone.now()}
        if gateway_meta is not None:
            fields["gateway_meta"] = gateway_meta
        if not self._pending_row().update(**fields):
            raise IllegalTransition(f"{self.reference}: cannot fail a payment that is not pending")
        for k, v in fields.items():
            setattr(self, k, v)

    def complete(self) -> None:
        deleted, _ = self._pending_row().delete()
        if not deleted:
            raise IllegalTransition(f"{self.reference}: cannot complete a payment that is not pending")
        self.status = COMPLETED

    def record_payment_id(self, payment_id: str, gateway_meta: dict | None = None) -> None:
        fields = {"payment_id": payment_id or "", "updated_at": timezone.now()}
        if gateway_meta is not None:
            fields["gateway_meta"] = gateway_meta
        if not self._pending_row().update(**fields):
            raise IllegalTransition(f"{self.reference}: payment is not pending")
        for k, v in fields.items():
            setattr(self, k, v)


class PendingPayment(PendingGatewayPayment):
    PAYMENT_METHOD_CHOICES = [
        ("bkash", "bKash (full payment)"),
        ("cod", "Cash on delivery (advance via bKash)"),
    ]

    customer = models.JSONField(default=dict)
    cart_items = models.JSONField(default=list)
    note = models.TextField(blank=True, default="")
    shipping = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=16, choices=PAYMENT_METHOD_CHOICES)
    user_email = models.EmailField(db_index=True)

    def __str__(self):
        return f"{self.reference} {self.status} ({self.payment_method} {self.total})"


class GatewayToken(models.Model):
    """The one cached bKash access token (row ``pk=1``)."""

    SINGLETON_PK = 1

    id_token = models.TextField(blank=True, default="")
    refresh_token = models.TextField(blank=True, default="")
    obtained_at = models.DateTimeField(null=True, blank=True)

    def is_fresh(self, ttl_seconds: int) -> bool:
        if not self.id_token or not self.obtained_at:
            return False
        return self.obtained_at > timezone.now() - timedelta(seconds=ttl_seconds)

    def __str__(self):
        return f"bKash token obtained {self.obtained_at or 'never'}"
