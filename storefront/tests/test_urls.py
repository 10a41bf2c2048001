from django.test import SimpleTestCase
from django.urls import reverse


class RouteTests(SimpleTestCase):
    def test_public_paths(self):
        self.assertEqual(reverse("payments:make_payment"), "/api/make-payment")
        self.assertEqual(reverse("payments:bkash_callback"), "/api/callback")
        self.assertEqual(reverse("sellers:register_make_payment"), "/api/register/make-payment")
        self.assertEqual(reverse("sellers:register_callback"), "/api/register/callback")
        self.assertEqual(reverse("shop:order_detail", kwargs={"order_id": "ACS1"}), "/orders/ACS1")
        self.assertEqual(reverse("shop:products_api"), "/api/products")
