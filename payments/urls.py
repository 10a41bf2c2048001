from django.urls import path

from . import views

app_name = "payments"
urlpatterns = [
    path("make-payment", views.make_payment, name="make_payment"),
    path("callback", views.bkash_callback, name="bkash_callback"),
]
