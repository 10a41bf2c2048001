from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from django.urls import reverse

from .admin import OrderAdmin
from .models import CartItem, Order, Product
from .services import (
    InvalidStatusTransition,
    OrderUpdateError,
    clear_cart,
    create_order,
    decrease_product_stock,
    update_order_details,
    update_order_status,
)
from .utils import generate_order_id, parse_stock


def make_order(**overrides):
    data = dict(
        reference="user_1700000000000",
        payment_id="PAY1",
        transaction_id="TRX1",
        customer={"name": "Rahim", "district": "Dhaka"},
        products=[{"productId": "1", "title": "Phone case", "price": 250, "quantity": 2}],
        email="rahim@example.com",
        subtotal=Decimal("500"),
        shipping=Decimal("110"),
        total_amount=Decimal("610"),
        advance_paid=Decimal("610"),
        payment_method="bkash",
    )
    data.update(overrides)
    return create_order(**data)


class OrderIdTests(TestCase):
    def test_format(self):
        oid = generate_order_id()
        self.assertTrue(oid.startswith("ACS"))
        self.assertLessEqual(len(oid), 20)
        self.assertNotEqual(oid, generate_order_id())

    def test_parse_stock(self):
        self.assertEqual(parse_stock(" 12 "), 12)
        self.assertIsNone(parse_stock("lots"))
        self.assertIsNone(parse_stock(None))


class CreateOrderTests(TestCase):
    def test_full_payment(self):
        order = make_order()
        self.assertEqual(order.payment_status, "Paid")
        self.assertEqual(order.order_status, Order.PENDING)
        self.assertEqual(order.amount_due, 0)

    def test_advance_payment(self):
        order = make_order(payment_method="cod", advance_paid=Decimal("200"))
        self.assertEqual(order.payment_status, "Partially Paid")
        self.assertEqual(order.amount_due, Decimal("410"))

    def test_requires_confirmed_amount(self):
        with self.assertRaises(ValueError):
            make_order(advance_paid=0)
        self.assertFalse(Order.objects.exists())


class StockTests(TestCase):
    def test_decrement_floors_at_zero(self):
        p = Product.objects.create(title="Case", price=300, stock="3")
        decrease_product_stock(str(p.pk), 5)
        p.refresh_from_db()
        self.assertEqual(p.stock, "0")

    def test_decrement(self):
        p = Product.objects.create(title="Cable", price=100, stock="10")
        decrease_product_stock(p.pk, 2)
        p.refresh_from_db()
        self.assertEqual(p.stock, "8")

    def test_bad_input_is_skipped(self):
        p = Product.objects.create(title="Cable", price=100, stock="n/a")
        with self.assertLogs("shop.services", level="WARNING"):
            self.assertIsNone(decrease_product_stock(p.pk, 1))
        with self.assertLogs("shop.services", level="WARNING"):
            self.assertIsNone(decrease_product_stock("999999", 1))
        with self.assertLogs("shop.services", level="WARNING"):
            self.assertIsNone(decrease_product_stock("abc", 1))
        p.refresh_from_db()
        self.assertEqual(p.stock, "n/a")


class ClearCartTests(TestCase):
    def test_only_buyer_cart_is_cleared(self):
        p = Product.objects.create(title="Case", price=300, stock="3")
        CartItem.objects.create(email="rahim@example.com", product=p, title="Case", price=300)
        CartItem.objects.create(email="rahim@example.com", product=p, title="Case", price=300)
        CartItem.objects.create(email="karim@example.com", product=p, title="Case", price=300)
        self.assertEqual(clear_cart("rahim@example.com"), 2)
        self.assertEqual(list(CartItem.objects.values_list("email", flat=True)), ["karim@example.com"])


class OrderStatusTests(TestCase):
    def setUp(self):
        self.order = make_order()

    def test_happy_path(self):
        for status in (Order.CONFIRMED, Order.SHIPPED, Order.DELIVERED, Order.RETURNED):
            self.order = update_order_status(self.order, status)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.RETURNED)
        self.assertIsNotNone(self.order.shipped_at)
        self.assertIsNotNone(self.order.delivered_at)

    def test_cannot_skip_states(self):
        with self.assertRaises(InvalidStatusTransition):
            update_order_status(self.order, Order.SHIPPED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.PENDING)

    def test_cancelled_is_final(self):
        update_order_status(self.order, Order.CANCELLED)
        with self.assertRaises(InvalidStatusTransition):
            update_order_status(self.order, Order.CONFIRMED)

    def test_same_status_is_noop(self):
        self.assertEqual(update_order_status(self.order, Order.PENDING).order_status, Order.PENDING)


class OrderDetailsTests(TestCase):
    def setUp(self):
        self.order = make_order()

    def test_updates_shipping_fields(self):
        update_order_details(self.order, courier="Pathao", tracking_number="PT-99", admin_note="fragile")
        self.order.refresh_from_db()
        self.assertEqual(self.order.courier, "Pathao")
        self.assertEqual(self.order.tracking_number, "PT-99")

    def test_rejects_protected_fields(self):
        with self.assertRaises(OrderUpdateError):
            update_order_details(self.order, advance_paid=Decimal("1"))
        with self.assertRaises(OrderUpdateError):
            update_order_details(self.order, order_status=Order.DELIVERED)

    def test_rejects_invalid_choice(self):
        with self.assertRaises(OrderUpdateError):
            update_order_details(self.order, refund_status="Maybe")


class OrderDetailViewTests(TestCase):
    def setUp(self):
        self.order = make_order()
        self.url = reverse("shop:order_detail", kwargs={"order_id": self.order.order_id})
        User = get_user_model()
        self.buyer = User.objects.create_user("rahim", email="Rahim@example.com", password="pw")
        self.other = User.objects.create_user("karim", email="karim@example.com", password="pw")

    def test_anonymous_redirected_to_login(self):
        resp = self.client.get(self.url)
        self.assertEqual(resp.status_code, 302)

    def test_buyer_sees_order(self):
        self.client.force_login(self.buyer)
        resp = self.client.get(self.url)
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["order"]
        self.assertEqual(data["order_id"], self.order.order_id)
        self.assertEqual(data["payment_status"], "Paid")

    def test_other_user_gets_404(self):
        self.client.force_login(self.other)
        self.assertEqual(self.client.get(self.url).status_code, 404)

    def test_unknown_order_404(self):
        self.client.force_login(self.buyer)
        resp = self.client.get(reverse("shop:order_detail", kwargs={"order_id": "ACS000"}))
        self.assertEqual(resp.status_code, 404)


class ProductsApiTests(TestCase):
    def setUp(self):
        Product.objects.create(title="Case", price=300, stock="3", sku="PC-1")
        self.url = reverse("shop:products_api")

    def test_requires_api_key(self):
        self.assertEqual(self.client.get(self.url).status_code, 401)
        self.assertEqual(self.client.get(self.url, HTTP_X_API_KEY="wrong").status_code, 401)

    def test_lists_products(self):
        resp = self.client.get(self.url, HTTP_X_API_KEY="products-key")
        self.assertEqual(resp.status_code, 200)
        products = resp.json()["products"]
        self.assertEqual(len(products), 1)
        self.assertEqual(products[0]["sku"], "PC-1")
        self.assertEqual(products[0]["stock"], "3")


class OrderAdminTests(TestCase):
    def setUp(self):
        self.order = make_order()
        self.admin = OrderAdmin(Order, AdminSite())
        self.request = RequestFactory().post("/admin/shop/order/")

    def test_payment_fields_are_read_only(self):
        for field in ("order_id", "reference", "payment_id", "advance_paid", "total_amount", "order_status"):
            self.assertIn(field, self.admin.readonly_fields)
        self.assertNotIn("courier", self.admin.readonly_fields)

    def test_save_writes_only_editable_fields(self):
        self.order.courier = "Pathao"
        self.order.advance_paid = Decimal("1")
        form = SimpleNamespace(
            changed_data=["courier", "advance_paid"],
            cleaned_data={"courier": "Pathao", "advance_paid": Decimal("1")},
        )
        self.admin.save_model(self.request, self.order, form, True)

        self.order.refresh_from_db()
        self.assertEqual(self.order.courier, "Pathao")
        self.assertEqual(self.order.advance_paid, Decimal("610"))

    def test_invalid_value_is_reported_not_saved(self):
        form = SimpleNamespace(changed_data=["refund_status"], cleaned_data={"refund_status": "Maybe"})
        with patch.object(self.admin, "message_user") as message_user:
            self.admin.save_model(self.request, self.order, form, True)
        message_user.assert_called_once()
        self.order.refresh_from_db()
        self.assertEqual(self.order.refund_status, "None")
