from django.urls import path

from . import views

app_name = "shop"
urlpatterns = [
    path("orders/<str:order_id>", views.order_detail, name="order_detail"),
    path("api/products", views.products_api, name="products_api"),
]
