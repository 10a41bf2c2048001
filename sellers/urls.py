from django.urls import path

from . import views

app_name = "sellers"
urlpatterns = [
    path("make-payment", views.register_make_payment, name="register_make_payment"),
    path("callback", views.register_callback, name="register_callback"),
]
