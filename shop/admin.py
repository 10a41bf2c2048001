from django.contrib import admin, messages

from .models import CartItem, Order, Product
from .services import (
    EDITABLE_ORDER_FIELDS,
    InvalidStatusTransition,
    OrderUpdateError,
    update_order_details,
    update_order_status,
)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("title", "sku", "price", "stock", "category", "brand", "updated_at")
    search_fields = ("title", "sku", "category", "brand")


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ("email", "title", "quantity", "price", "created_at")
    search_fields = ("email", "title", "sku")


def _status_action(status):
    def action(modeladmin, request, queryset):
        for order in queryset:
            try:
                update_order_status(order, status)
            except InvalidStatusTransition as e:
                modeladmin.message_user(request, str(e), level=messages.WARNING)
    action.__name__ = f"mark_{status.lower()}"
    action.short_description = f"Mark selected orders as {status}"
    return action


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_id", "email", "order_status", "payment_status", "total_amount", "advance_paid", "created_at")
    search_fields = ("order_id", "reference", "transaction_id", "payment_id", "email")
    list_filter = ("order_status", "payment_status", "payment_method", "refund_status", "created_at")
    readonly_fields = tuple(f.name for f in Order._meta.fields if f.name not in EDITABLE_ORDER_FIELDS)
    actions = [_status_action(s) for s in (Order.CONFIRMED, Order.SHIPPED, Order.DELIVERED, Order.CANCELLED, Order.RETURNED)]

    def has_add_permission(self, request):
        return False

    def save_model(self, request, obj, form, change):
        # Only editable fields are written, validated by the service.
        data = {f: form.cleaned_data[f] for f in form.changed_data if f in EDITABLE_ORDER_FIELDS}
        try:
            update_order_details(Order.objects.get(pk=obj.pk), **data)
        except OrderUpdateError as e:
            self.message_user(request, str(e), level=messages.ERROR)
