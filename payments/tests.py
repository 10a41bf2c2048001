from datetime import timedelta
from unittest.mock import patch

import requests
from django.db import transaction
from django.test import TestCase
from django.utils import timezone

from .integrations import bkash
from .integrations.bkash import BkashError
from .models import GatewayToken


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("No JSON object could be decoded")
        return self._data


def _fresh_token(token="cached-token"):
    return GatewayToken.objects.create(pk=GatewayToken.SINGLETON_PK, id_token=token, obtained_at=timezone.now())


class GrantTokenTests(TestCase):
    def test_requests_token_once_and_caches_it(self):
        with patch("payments.integrations.bkash.requests.post",
                   return_value=FakeResponse(200, {"id_token": "tok1", "refresh_token": "ref1"})) as post:
            self.assertEqual(bkash.grant_token(), "tok1")
            self.assertEqual(bkash.grant_token(), "tok1")

        post.assert_called_once()
        self.assertEqual(post.call_args.args[0], "https://bkash.example.com/tokenized/checkout/token/grant")
        self.assertEqual(post.call_args.kwargs["json"], {"app_key": "app-key", "app_secret": "app-secret"})
        headers = post.call_args.kwargs["headers"]
        self.assertEqual(headers["username"], "sandbox-user")
        self.assertEqual(headers["password"], "sandbox-pass")

        record = GatewayToken.objects.get()
        self.assertEqual(record.id_token, "tok1")
        self.assertEqual(record.refresh_token, "ref1")
        self.assertIsNotNone(record.obtained_at)

    def test_stale_token_is_replaced(self):
        GatewayToken.objects.create(
            pk=GatewayToken.SINGLETON_PK, id_token="old", obtained_at=timezone.now() - timedelta(hours=2)
        )
        with patch("payments.integrations.bkash.requests.post",
                   return_value=FakeResponse(200, {"id_token": "new"})) as post:
            self.assertEqual(bkash.grant_token(), "new")
        post.assert_called_once()
        self.assertEqual(GatewayToken.objects.count(), 1)
        self.assertEqual(GatewayToken.objects.get().id_token, "new")

    def test_fresh_token_skips_gateway(self):
        _fresh_token("still-good")
        with patch("payments.integrations.bkash.requests.post") as post:
            self.assertEqual(bkash.grant_token(), "still-good")
        post.assert_not_called()

    def test_fresh_token_read_takes_no_lock(self):
        _fresh_token("still-good")
        with patch("payments.integrations.bkash._token_lock") as lock, \
                patch.object(GatewayToken.objects, "select_for_update") as select_for_update:
            self.assertEqual(bkash.grant_token(), "still-good")
        lock.__enter__.assert_not_called()
        select_for_update.assert_not_called()

    def test_refresh_inside_open_transaction_is_saved(self):
        with transaction.atomic(), patch("payments.integrations.bkash.requests.post",
                                         return_value=FakeResponse(200, {"id_token": "tok2"})):
            self.assertEqual(bkash.grant_token(), "tok2")
        self.assertEqual(GatewayToken.objects.get().id_token, "tok2")

    def test_missing_id_token_raises(self):
        with patch("payments.integrations.bkash.requests.post",
                   return_value=FakeResponse(200, {"statusCode": "2001", "statusMessage": "Invalid App Key"})):
            with self.assertRaises(BkashError):
                bkash.grant_token()
        self.assertEqual(GatewayToken.objects.filter(id_token__gt="").count(), 0)


class CreatePaymentTests(TestCase):
    def setUp(self):
        _fresh_token("tok")

    def test_posts_checkout_create_payload(self):
        body = {"statusCode": "0000", "paymentID": "PAY1", "bkashURL": "https://pay.example/PAY1"}
        with patch("payments.integrations.bkash.requests.post", return_value=FakeResponse(200, body)) as post:
            data = bkash.create_payment(
                amount="610.00",
                callback_url="https://shop.example.com/api/callback?reference=user_1",
                reference="user_1",
            )

        self.assertEqual(data, body)
        self.assertTrue(bkash.is_ok(data))
        self.assertEqual(post.call_args.args[0], "https://bkash.example.com/tokenized/checkout/create")
        self.assertEqual(post.call_args.kwargs["json"], {
            "mode": "0011",
            "currency": "BDT",
            "intent": "sale",
            "amount": "610",
            "callbackURL": "https://shop.example.com/api/callback?reference=user_1",
            "payerReference": "user_1",
            "merchantInvoiceNumber": "user_1",
        })
        headers = post.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer tok")
        self.assertEqual(headers["x-app-key"], "app-key")
        self.assertEqual(post.call_args.kwargs["timeout"], 30)

    def test_amount_below_one_is_rejected_without_request(self):
        with patch("payments.integrations.bkash.requests.post") as post:
            with self.assertRaises(BkashError):
                bkash.create_payment(amount="0.5", callback_url="https://x/cb", reference="r")
            with self.assertRaises(BkashError):
                bkash.create_payment(amount=None, callback_url="https://x/cb", reference="r")
            with self.assertRaises(BkashError):
                bkash.create_payment(amount=10, callback_url="", reference="r")
        post.assert_not_called()

    def test_business_error_is_returned_not_raised(self):
        body = {"statusCode": "2023", "statusMessage": "Insufficient Balance"}
        with patch("payments.integrations.bkash.requests.post", return_value=FakeResponse(400, body)):
            data = bkash.create_payment(amount=100, callback_url="https://x/cb", reference="r")
        self.assertEqual(data, body)
        self.assertFalse(bkash.is_ok(data))


class ExecutePaymentTests(TestCase):
    def setUp(self):
        _fresh_token("tok")

    def test_posts_payment_id(self):
        body = {"statusCode": "0000", "amount": "610", "trxID": "TRX1", "paymentID": "PAY1"}
        with patch("payments.integrations.bkash.requests.post", return_value=FakeResponse(200, body)) as post:
            self.assertEqual(bkash.execute_payment("PAY1"), body)
        self.assertEqual(post.call_args.args[0], "https://bkash.example.com/tokenized/checkout/execute")
        self.assertEqual(post.call_args.kwargs["json"], {"paymentID": "PAY1"})

    def test_transport_error_raises(self):
        with patch("payments.integrations.bkash.requests.post", side_effect=requests.ConnectionError("down")):
            with self.assertRaises(BkashError):
                bkash.execute_payment("PAY1")

    def test_non_json_body_raises(self):
        with patch("payments.integrations.bkash.requests.post",
                   return_value=FakeResponse(502, None, text="<html>Bad gateway</html>")):
            with self.assertRaises(BkashError):
                bkash.execute_payment("PAY1")

    def test_http_error_without_status_code_raises(self):
        with patch("payments.integrations.bkash.requests.post",
                   return_value=FakeResponse(500, {"message": "Internal error"})):
            with self.assertRaises(BkashError):
                bkash.execute_payment("PAY1")

    def test_is_ok_only_for_0000(self):
        self.assertFalse(bkash.is_ok(None))
        self.assertFalse(bkash.is_ok({}))
        self.assertFalse(bkash.is_ok({"statusCode": "2062"}))
        self.assertTrue(bkash.is_ok({"statusCode": "0000"}))
