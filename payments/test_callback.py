from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse

from shop.models import CartItem, Order, Product

from .integrations.bkash import BkashError
from .models import IllegalTransition, PendingPayment

REFERENCE = "user_1700000000000"
EXECUTED = {"statusCode": "0000", "amount": "610", "trxID": "TRX9", "paymentID": "PAY1"}


class CheckoutCallbackTests(TestCase):
    def setUp(self):
        self.case = Product.objects.create(title="Phone case", price=Decimal("300"), stock="3")
        self.cable = Product.objects.create(title="USB cable", price=Decimal("100"), stock="10")
        for product in (self.case, self.cable):
            CartItem.objects.create(email="rahim@example.com", product=product, title=product.title, price=product.price)
        CartItem.objects.create(email="karim@example.com", product=self.cable, title="USB cable", price=Decimal("100"))

        self.pending = PendingPayment.objects.create(
            reference=REFERENCE,
            payment_id="PAY1",
            customer={"name": "Rahim", "email": "rahim@example.com", "number": "01700000000",
                      "address": "House 1", "areaOfDelivery": "Inside Dhaka", "district": "Dhaka"},
            cart_items=[
                {"productId": str(self.case.pk), "title": "Phone case", "price": 300, "quantity": 5},
                {"productId": str(self.cable.pk), "title": "USB cable", "price": 100, "quantity": 2},
            ],
            note="",
            shipping=Decimal("110"),
            subtotal=Decimal("500"),
            total=Decimal("610"),
            payment_method="bkash",
            user_email="rahim@example.com",
        )

    def _callback(self, **params):
        query = {"reference": REFERENCE, "paymentID": "PAY1", "status": "success"}
        query.update(params)
        query = {k: v for k, v in query.items() if v is not None}
        return self.client.get(reverse("payments:bkash_callback"), query)

    def assertRedirectsToCheckout(self, resp):
        self.assertEqual(resp.status_code, 303)
        self.assertEqual(resp["Location"], "https://shop.example.com/checkout")

    def test_success_creates_order_clears_cart_and_decrements_stock(self):
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED) as execute:
            resp = self._callback()

        execute.assert_called_once_with("PAY1")
        order = Order.objects.get()
        self.assertEqual(resp.status_code, 303)
        self.assertEqual(resp["Location"], f"https://shop.example.com/orders/{order.order_id}")

        self.assertEqual(order.reference, REFERENCE)
        self.assertEqual(order.advance_paid, Decimal("610"))
        self.assertEqual(order.transaction_id, "TRX9")
        self.assertEqual(order.payment_id, "PAY1")
        self.assertEqual(order.payment_status, "Paid")
        self.assertEqual(order.order_status, "Pending")
        self.assertEqual(order.email, "rahim@example.com")
        self.assertEqual(order.products[0]["price"], 300)

        self.assertFalse(CartItem.objects.filter(email="rahim@example.com").exists())
        self.assertTrue(CartItem.objects.filter(email="karim@example.com").exists())

        self.case.refresh_from_db()
        self.cable.refresh_from_db()
        self.assertEqual(self.case.stock, "0")
        self.assertEqual(self.cable.stock, "8")

        self.assertFalse(PendingPayment.objects.filter(reference=REFERENCE).exists())

    def test_gateway_amount_wins_over_client_amount(self):
        PendingPayment.objects.filter(pk=self.pending.pk).update(payment_method="cod")
        executed = {**EXECUTED, "amount": "200"}
        with patch("payments.services.bkash.execute_payment", return_value=executed):
            self._callback()
        order = Order.objects.get()
        self.assertEqual(order.advance_paid, Decimal("200"))
        self.assertEqual(order.total_amount, Decimal("610"))
        self.assertEqual(order.payment_status, "Partially Paid")
        self.assertEqual(order.amount_due, Decimal("410"))

    def test_transaction_id_falls_back_to_payment_id(self):
        executed = {"statusCode": "0000", "amount": "610"}
        with patch("payments.services.bkash.execute_payment", return_value=executed):
            self._callback()
        self.assertEqual(Order.objects.get().transaction_id, "PAY1")

    def test_cancelled_payment_marks_failed(self):
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback(status="cancel")
        self.assertRedirectsToCheckout(resp)
        execute.assert_not_called()
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "cancelled")
        self.assertFalse(Order.objects.exists())

    def test_missing_payment_id_marks_failed(self):
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback(paymentID=None)
        self.assertRedirectsToCheckout(resp)
        execute.assert_not_called()
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")

    def test_missing_reference_redirects(self):
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback(reference=None)
        self.assertRedirectsToCheckout(resp)
        execute.assert_not_called()
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "pending")

    def test_unknown_reference_redirects(self):
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback(reference="user_0")
        self.assertRedirectsToCheckout(resp)
        execute.assert_not_called()

    def test_execute_rejected_marks_failed(self):
        rejected = {"statusCode": "2056", "statusMessage": "Invalid Payment State"}
        with patch("payments.services.bkash.execute_payment", return_value=rejected):
            resp = self._callback()
        self.assertRedirectsToCheckout(resp)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "execute_failed")
        self.assertEqual(self.pending.gateway_meta, rejected)
        self.assertFalse(Order.objects.exists())

    def test_execute_error_marks_failed(self):
        with patch("payments.services.bkash.execute_payment", side_effect=BkashError("timeout")):
            resp = self._callback()
        self.assertRedirectsToCheckout(resp)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "execute_error")

    def test_unparseable_amount_creates_no_order(self):
        with patch("payments.services.bkash.execute_payment", return_value={**EXECUTED, "amount": "abc"}):
            resp = self._callback()
        self.assertRedirectsToCheckout(resp)
        self.assertFalse(Order.objects.exists())
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "zero_amount")

    def test_payment_id_must_match_created_payment(self):
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback(paymentID="PAY-OTHER")
        self.assertRedirectsToCheckout(resp)
        execute.assert_not_called()
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.failure_reason, "payment_mismatch")

    def test_failed_payment_is_never_executed_again(self):
        self.pending.mark_failed("cancelled")
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback()
        self.assertRedirectsToCheckout(resp)
        execute.assert_not_called()
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")

    def test_repeated_callback_creates_one_order(self):
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED) as execute:
            first = self._callback()
            second = self._callback()

        execute.assert_called_once()
        order = Order.objects.get()
        self.assertEqual(first["Location"], second["Location"])
        self.assertEqual(second["Location"], f"https://shop.example.com/orders/{order.order_id}")
        self.cable.refresh_from_db()
        self.assertEqual(self.cable.stock, "8")

    def test_fulfilment_failure_rolls_back_and_keeps_evidence(self):
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED), \
                patch("payments.services.shop_services.decrease_product_stock", side_effect=DatabaseError("boom")):
            with self.assertLogs("payments.services", level="ERROR"):
                resp = self._callback()

        self.assertRedirectsToCheckout(resp)
        self.assertFalse(Order.objects.exists())
        self.assertEqual(CartItem.objects.filter(email="rahim@example.com").count(), 2)
        self.case.refresh_from_db()
        self.assertEqual(self.case.stock, "3")

        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "fulfilment_failed")
        self.assertEqual(self.pending.gateway_meta["trxID"], "TRX9")

    def test_payment_id_already_used_by_another_order(self):
        Order.objects.create(
            order_id="ACSOTHER", reference="user_other", payment_id="PAY1", transaction_id="TRX0",
            email="x@example.com", subtotal=1, total_amount=1, advance_paid=1, payment_method="bkash",
        )
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED):
            resp = self._callback()
        self.assertRedirectsToCheckout(resp)
        self.assertEqual(Order.objects.count(), 1)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.failure_reason, "fulfilment_failed")

    def test_order_with_same_reference_but_other_payment_is_not_reused(self):
        old = Order.objects.create(
            order_id="ACSOLD", reference=REFERENCE, payment_id="PAY0", transaction_id="TRX0",
            email="someone@example.com", subtotal=1, total_amount=1, advance_paid=1, payment_method="bkash",
        )
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED) as execute:
            with self.assertLogs("payments.services", level="ERROR"):
                resp = self._callback()

        execute.assert_called_once_with("PAY1")
        self.assertRedirectsToCheckout(resp)
        self.assertEqual(list(Order.objects.values_list("pk", flat=True)), [old.pk])
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "fulfilment_failed")
        self.assertEqual(self.pending.gateway_meta["trxID"], "TRX9")

    def test_non_database_fulfilment_error_keeps_evidence(self):
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED), \
                patch("payments.services.shop_services.clear_cart", side_effect=TypeError("bad email")):
            with self.assertLogs("payments.services", level="ERROR"):
                resp = self._callback()

        self.assertRedirectsToCheckout(resp)
        self.assertFalse(Order.objects.exists())
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertEqual(self.pending.failure_reason, "fulfilment_failed")
        self.assertEqual(self.pending.gateway_meta["trxID"], "TRX9")
        self.assertEqual(self.pending.gateway_meta["error"], "bad email")

    def test_unexpected_error_still_redirects(self):
        with patch("payments.views.handle_checkout_callback", side_effect=RuntimeError("db down")):
            resp = self._callback()
        self.assertRedirectsToCheckout(resp)


class PendingPaymentStateTests(TestCase):
    def setUp(self):
        self.pending = PendingPayment.objects.create(
            reference="chk_state", shipping=0, subtotal=100, total=100,
            payment_method="bkash", user_email="a@example.com",
        )

    def test_failed_is_terminal(self):
        self.pending.mark_failed("cancelled")
        with self.assertRaises(IllegalTransition):
            self.pending.mark_failed("cancelled")
        with self.assertRaises(IllegalTransition):
            self.pending.complete()
        self.assertTrue(PendingPayment.objects.filter(reference="chk_state", status="failed").exists())

    def test_complete_deletes_row(self):
        self.pending.complete()
        self.assertEqual(self.pending.status, "completed")
        self.assertFalse(PendingPayment.objects.filter(reference="chk_state").exists())

    def test_stale_instance_cannot_override_database_state(self):
        stale = PendingPayment.objects.get(pk=self.pending.pk)
        self.pending.mark_failed("expired")
        with self.assertRaises(IllegalTransition):
            stale.complete()
