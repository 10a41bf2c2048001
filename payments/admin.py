from django.contrib import admin

from .models import GatewayToken, PendingPayment


@admin.register(PendingPayment)
class PendingPaymentAdmin(admin.ModelAdmin):
    list_display = ("reference", "status", "payment_method", "total", "user_email", "failure_reason", "created_at")
    search_fields = ("reference", "payment_id", "user_email")
    list_filter = ("status", "payment_method", "failure_reason", "created_at")
    readonly_fields = ("reference", "status", "payment_id", "failure_reason", "gateway_meta", "created_at", "updated_at")


@admin.register(GatewayToken)
class GatewayTokenAdmin(admin.ModelAdmin):
    list_display = ("pk", "obtained_at")
    readonly_fields = ("id_token", "refresh_token", "obtained_at")
