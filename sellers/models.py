from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from payments.models import PendingGatewayPayment


class PendingRegisterPayment(PendingGatewayPayment):
    name = models.CharField(max_length=128)
    email = models.EmailField(db_index=True)
    number = models.CharField(max_length=20)
    address = models.CharField(max_length=255)
    district = models.CharField(max_length=64)
    shop_name = models.CharField(max_length=128)
    shop_logo = models.URLField(max_length=512)
    website = models.CharField(max_length=255, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.reference} {self.status} ({self.shop_name})"


class Seller(models.Model):
    name = models.CharField(max_length=128)
    email = models.EmailField(unique=True)
    number = models.CharField(max_length=20)
    shop_name = models.CharField(max_length=128)
    shop_logo = models.URLField(max_length=512)
    district = models.CharField(max_length=64)
    address = models.CharField(max_length=255)
    website = models.CharField(max_length=255, blank=True, default="")

    total_orders = models.PositiveIntegerField(default=0)
    total_spend = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    successful_order = models.PositiveIntegerField(default=0)
    canceled_order = models.PositiveIntegerField(default=0)
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_due = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=16, default="Pending")

    # Registration fee, as confirmed by the gateway.
    reference = models.CharField(max_length=64, unique=True)
    payment_id = models.CharField(max_length=64, unique=True)
    transaction_id = models.CharField(max_length=64)
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.shop_name} <{self.email}>"


class SellerPayout(models.Model):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    PAID = "Paid"
    PROGRESS_CHOICES = [
        (PENDING, "Pending"),
        (IN_PROGRESS, "In Progress"),
        (PAID, "Paid"),
    ]

    seller = models.ForeignKey(Seller, on_delete=models.PROTECT, related_name="payouts")
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    payment_method = models.CharField(max_length=32)
    account_details = models.CharField(max_length=255, blank=True, default="")
    progress = models.CharField(max_length=16, choices=PROGRESS_CHOICES, default=PENDING, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.seller.shop_name}: {self.amount} ({self.progress})"
