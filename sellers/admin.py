from django.contrib import admin

from .models import PendingRegisterPayment, Seller, SellerPayout
from .services import PAYOUT_FIELDS, create_payout, delete_payout, update_payout


@admin.register(Seller)
class SellerAdmin(admin.ModelAdmin):
    list_display = ("shop_name", "name", "email", "status", "total_paid", "total_due", "created_at")
    search_fields = ("shop_name", "name", "email", "transaction_id", "reference")
    list_filter = ("status", "district", "created_at")
    readonly_fields = ("reference", "payment_id", "transaction_id", "amount",
                       "total_paid", "total_due", "created_at", "updated_at")


@admin.register(PendingRegisterPayment)
class PendingRegisterPaymentAdmin(admin.ModelAdmin):
    list_display = ("reference", "status", "shop_name", "email", "amount", "failure_reason", "created_at")
    search_fields = ("reference", "payment_id", "email", "shop_name")
    list_filter = ("status", "failure_reason", "created_at")
    readonly_fields = ("reference", "status", "payment_id", "failure_reason", "gateway_meta", "created_at", "updated_at")


@admin.register(SellerPayout)
class SellerPayoutAdmin(admin.ModelAdmin):
    list_display = ("seller", "amount", "payment_method", "progress", "created_at")
    search_fields = ("seller__email", "seller__shop_name", "account_details")
    list_filter = ("progress", "payment_method", "created_at")

    def get_readonly_fields(self, request, obj=None):
        return ("seller", "created_at", "updated_at") if obj else ("created_at", "updated_at")

    def save_model(self, request, obj, form, change):
        if change:
            data = {f: form.cleaned_data[f] for f in form.changed_data if f in PAYOUT_FIELDS}
            update_payout(SellerPayout.objects.get(pk=obj.pk), **data)
            return
        payout = create_payout(seller=form.cleaned_data["seller"],
                               **{f: form.cleaned_data.get(f) for f in PAYOUT_FIELDS})
        obj.pk = payout.pk

    def delete_model(self, request, obj):
        delete_payout(obj)

    def delete_queryset(self, request, queryset):
        for payout in queryset:
            delete_payout(payout)
