from django.db import models


class Product(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    sku = models.CharField(max_length=64, unique=True, null=True, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    category = models.CharField(max_length=128, blank=True, default="")
    brand = models.CharField(max_length=128, blank=True, default="")
    # Stored as text; decremented after each paid order, never below zero.
    stock = models.CharField(max_length=16, default="0")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.stock} in stock)"


class CartItem(models.Model):
    email = models.EmailField(db_index=True)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="cart_items")
    title = models.CharField(max_length=255)
    images = models.CharField(max_length=512, blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    category = models.CharField(max_length=128, blank=True, default="")
    brand = models.CharField(max_length=128, blank=True, default="")
    sku = models.CharField(max_length=64, blank=True, default="")
    variations = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.email}: {self.quantity} x {self.title}"


class Order(models.Model):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"
    ORDER_STATUS_CHOICES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (SHIPPED, "Shipped"),
        (DELIVERED, "Delivered"),
        (CANCELLED, "Cancelled"),
        (RETURNED, "Returned"),
    ]
    PAYMENT_STATUS_CHOICES = [
        ("Pending", "Pending"),
        ("Partially Paid", "Partially Paid"),
        ("Paid", "Paid"),
        ("Refunded", "Refunded"),
    ]
    REFUND_STATUS_CHOICES = [
        ("None", "None"),
        ("Requested", "Requested"),
        ("Approved", "Approved"),
        ("Rejected", "Rejected"),
        ("Refunded", "Refunded"),
    ]

    order_id = models.CharField(max_length=20, unique=True, db_index=True)
    # One order per checkout attempt and per gateway payment.
    reference = models.CharField(max_length=64, unique=True)
    payment_id = models.CharField(max_length=64, unique=True)
    transaction_id = models.CharField(max_length=64, db_index=True)

    customer = models.JSONField(default=dict)
    products = models.JSONField(default=list)
    email = models.EmailField(db_index=True)
    note = models.TextField(blank=True, default="")

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    advance_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=16)
    payment_status = models.CharField(max_length=16, choices=PAYMENT_STATUS_CHOICES, default="Pending")

    order_status = models.CharField(max_length=16, choices=ORDER_STATUS_CHOICES, default=PENDING, db_index=True)
    shipping_method = models.CharField(max_length=64, blank=True, default="")
    tracking_number = models.CharField(max_length=64, blank=True, default="")
    courier = models.CharField(max_length=64, blank=True, default="")
    estimated_delivery_date = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    is_refund_requested = models.BooleanField(default=False)
    refund_status = models.CharField(max_length=16, choices=REFUND_STATUS_CHOICES, default="None")
    return_reason = models.TextField(blank=True, default="")

    admin_note = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    @property
    def amount_due(self):
        return max(self.total_amount - self.advance_paid, 0)

    def __str__(self):
        return f"{self.order_id} ({self.order_status})"
