import json
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse

from shop.models import Order

from .integrations.bkash import BkashError
from .models import PendingPayment
from .services import CheckoutError, payable_amount

CREATED = {"statusCode": "0000", "paymentID": "PAY1", "bkashURL": "https://pay.example/PAY1"}


def checkout_payload(**overrides):
    payload = {
        "customer": {
            "name": "Rahim",
            "email": "rahim@example.com",
            "number": "01700000000",
            "address": "House 1, Road 2",
            "areaOfDelivery": "Inside Dhaka",
            "district": "Dhaka",
        },
        "cartItems": [
            {"productId": "1", "title": "Phone case", "price": 250, "sellingPrice": 250, "quantity": 2, "sku": "PC-1"},
        ],
        "note": "Call before delivery",
        "shipping": 110,
        "subtotal": 500,
        "total": 610,
        "paymentMethod": "cod",
        "userEmail": "rahim@example.com",
        "reference": "user_1700000000000",
    }
    payload.update(overrides)
    return payload


class PayableAmountTests(TestCase):
    def test_cod_charges_fixed_advance(self):
        self.assertEqual(payable_amount("cod", Decimal("610")), Decimal("200"))
        self.assertEqual(payable_amount("cod", Decimal("99999")), Decimal("200"))

    def test_bkash_charges_full_total(self):
        self.assertEqual(payable_amount("bkash", Decimal("610")), Decimal("610"))

    def test_unknown_method_rejected(self):
        with self.assertRaises(CheckoutError):
            payable_amount("card", Decimal("610"))


class MakePaymentViewTests(TestCase):
    def _post(self, payload):
        return self.client.post(
            reverse("payments:make_payment"),
            data=json.dumps(payload),
            content_type="application/json",
        )

    def test_cod_checkout_stores_pending_and_charges_advance(self):
        with patch("payments.services.bkash.create_payment", return_value=CREATED) as create:
            resp = self._post(checkout_payload())

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["url"], "https://pay.example/PAY1")
        self.assertEqual(resp.json()["reference"], "user_1700000000000")

        pending = PendingPayment.objects.get()
        self.assertEqual(pending.reference, "user_1700000000000")
        self.assertEqual(pending.status, "pending")
        self.assertEqual(pending.payment_id, "PAY1")
        self.assertEqual(pending.total, Decimal("610"))
        self.assertEqual(pending.cart_items[0]["quantity"], 2)
        self.assertEqual(pending.customer["district"], "Dhaka")

        create.assert_called_once_with(
            amount=Decimal("200"),
            callback_url="https://shop.example.com/api/callback?reference=user_1700000000000",
            reference="user_1700000000000",
        )

    def test_bkash_checkout_charges_subtotal_plus_shipping(self):
        with patch("payments.services.bkash.create_payment", return_value=CREATED) as create:
            resp = self._post(checkout_payload(paymentMethod="bkash"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(create.call_args.kwargs["amount"], Decimal("610"))

    def test_gateway_rejection_leaves_pending_row(self):
        rejected = {"statusCode": "2065", "statusMessage": "amount required"}
        with patch("payments.services.bkash.create_payment", return_value=rejected):
            resp = self._post(checkout_payload())
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Payment initiation failed")
        self.assertEqual(resp.json()["details"], rejected)
        pending = PendingPayment.objects.get()
        self.assertEqual(pending.status, "pending")
        self.assertEqual(pending.payment_id, "")

    def test_gateway_error_returns_400(self):
        with patch("payments.services.bkash.create_payment", side_effect=BkashError("timeout")):
            resp = self._post(checkout_payload())
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["details"], {"error": "timeout"})

    def test_duplicate_reference_is_rejected(self):
        with patch("payments.services.bkash.create_payment", return_value=CREATED):
            self.assertEqual(self._post(checkout_payload()).status_code, 200)
            resp = self._post(checkout_payload())
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(PendingPayment.objects.count(), 1)

    def test_reference_of_existing_order_is_rejected(self):
        Order.objects.create(
            order_id="ACSOLD", reference="user_1700000000000", payment_id="PAY0", transaction_id="TRX0",
            email="rahim@example.com", subtotal=500, total_amount=610, advance_paid=610, payment_method="bkash",
        )
        with patch("payments.services.bkash.create_payment") as create:
            resp = self._post(checkout_payload())
        self.assertEqual(resp.status_code, 409)
        create.assert_not_called()
        self.assertFalse(PendingPayment.objects.exists())

    def test_missing_or_malformed_reference_gets_server_reference(self):
        with patch("payments.services.bkash.create_payment", return_value=CREATED):
            first = self._post(checkout_payload(reference=None)).json()["reference"]
            second = self._post(checkout_payload(reference="bad ref!")).json()["reference"]
        self.assertTrue(first.startswith("chk_"))
        self.assertTrue(second.startswith("chk_"))
        self.assertNotEqual(first, second)
        self.assertEqual(PendingPayment.objects.filter(status="pending").count(), 2)

    def test_missing_fields(self):
        payload = checkout_payload()
        del payload["customer"]
        with patch("payments.services.bkash.create_payment") as create:
            resp = self._post(payload)
        self.assertEqual(resp.status_code, 400)
        self.assertIn("customer", resp.json()["message"])
        create.assert_not_called()
        self.assertFalse(PendingPayment.objects.exists())

    def test_total_must_match_subtotal_plus_shipping(self):
        with patch("payments.services.bkash.create_payment") as create:
            resp = self._post(checkout_payload(total=10))
        self.assertEqual(resp.status_code, 400)
        create.assert_not_called()

    def test_unknown_payment_method(self):
        resp = self._post(checkout_payload(paymentMethod="nagad"))
        self.assertEqual(resp.status_code, 400)

    def test_bad_quantity(self):
        items = [{"productId": "1", "title": "x", "price": 500, "quantity": 0}]
        resp = self._post(checkout_payload(cartItems=items))
        self.assertEqual(resp.status_code, 400)

    def test_invalid_json(self):
        resp = self.client.post(reverse("payments:make_payment"), data="{nope", content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_get_not_allowed(self):
        self.assertEqual(self.client.get(reverse("payments:make_payment")).status_code, 405)
