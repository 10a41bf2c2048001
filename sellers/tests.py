import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.admin.sites import AdminSite
from django.test import RequestFactory, TestCase, override_settings
from django.urls import reverse

from .admin import SellerPayoutAdmin
from .models import PendingRegisterPayment, Seller, SellerPayout
from .services import PayoutError, create_payout, delete_payout, update_payout

CREATED = {"statusCode": "0000", "paymentID": "REGPAY1", "bkashURL": "https://pay.example/REGPAY1"}
EXECUTED = {"statusCode": "0000", "amount": "500", "trxID": "REGTRX1", "paymentID": "REGPAY1"}


def registration_payload(**overrides):
    payload = {
        "name": "Karim",
        "email": "karim@example.com",
        "number": "01800000000",
        "address": "Shop 4, New Market",
        "district": "Khulna",
        "shopName": "Karim Store",
        "shopLogo": "https://cdn.example.com/karim.png",
        "website": "karimstore.example.com",
        "amount": 500,
    }
    payload.update(overrides)
    return payload


class RegisterMakePaymentTests(TestCase):
    def _post(self, payload):
        return self.client.post(
            reverse("sellers:register_make_payment"),
            data=json.dumps(payload),
            content_type="application/json",
        )

    def test_parks_registration_and_charges_fee(self):
        with patch("payments.services.bkash.create_payment", return_value=CREATED) as create:
            resp = self._post(registration_payload())

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["url"], "https://pay.example/REGPAY1")
        pending = PendingRegisterPayment.objects.get()
        self.assertTrue(pending.reference.startswith("reg_"))
        self.assertEqual(resp.json()["reference"], pending.reference)
        self.assertEqual(pending.shop_name, "Karim Store")
        self.assertEqual(pending.payment_id, "REGPAY1")
        self.assertEqual(create.call_args.kwargs["amount"], Decimal("500"))
        self.assertEqual(
            create.call_args.kwargs["callback_url"],
            f"https://shop.example.com/api/register/callback?reference={pending.reference}",
        )

    def test_amount_and_website_required(self):
        for field in ("amount", "website"):
            resp = self._post(registration_payload(**{field: ""}))
            self.assertEqual(resp.status_code, 400)
            self.assertEqual(resp.json()["message"], "Amount and Website are required")
        self.assertFalse(PendingRegisterPayment.objects.exists())

    def test_missing_profile_field(self):
        resp = self._post(registration_payload(shopName=""))
        self.assertEqual(resp.status_code, 400)
        self.assertIn("shopName", resp.json()["message"])

    def test_invalid_amount(self):
        self.assertEqual(self._post(registration_payload(amount="free")).status_code, 400)
        self.assertEqual(self._post(registration_payload(amount=-5)).status_code, 400)

    def test_registered_email_rejected_before_charging(self):
        Seller.objects.create(
            name="Karim", email="Karim@example.com", number="1", shop_name="Old", shop_logo="https://x/l.png",
            district="Khulna", address="a", reference="reg_old", payment_id="P0", transaction_id="T0", amount=500,
        )
        with patch("payments.services.bkash.create_payment") as create:
            resp = self._post(registration_payload())
        self.assertEqual(resp.status_code, 409)
        create.assert_not_called()

    def test_gateway_rejection(self):
        with patch("payments.services.bkash.create_payment", return_value={"statusCode": "2001"}):
            resp = self._post(registration_payload())
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(PendingRegisterPayment.objects.get().status, "pending")


class RegisterCallbackTests(TestCase):
    def setUp(self):
        self.pending = PendingRegisterPayment.objects.create(
            reference="reg_abc", payment_id="REGPAY1", name="Karim", email="karim@example.com",
            number="01800000000", address="Shop 4", district="Khulna", shop_name="Karim Store",
            shop_logo="https://cdn.example.com/karim.png", website="karimstore.example.com", amount=500,
        )

    def _callback(self, **params):
        query = {"reference": "reg_abc", "paymentID": "REGPAY1", "status": "success"}
        query.update(params)
        return self.client.get(reverse("sellers:register_callback"), query)

    def test_success_creates_seller(self):
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED):
            resp = self._callback()

        self.assertEqual(resp.status_code, 303)
        self.assertEqual(resp["Location"], "https://shop.example.com/register")
        seller = Seller.objects.get()
        self.assertEqual(seller.email, "karim@example.com")
        self.assertEqual(seller.shop_name, "Karim Store")
        self.assertEqual(seller.transaction_id, "REGTRX1")
        self.assertEqual(seller.amount, Decimal("500"))
        self.assertEqual(seller.status, "Pending")
        self.assertFalse(PendingRegisterPayment.objects.exists())

    def test_repeated_callback_creates_one_seller(self):
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED) as execute:
            self._callback()
            resp = self._callback()
        self.assertEqual(resp.status_code, 303)
        execute.assert_called_once()
        self.assertEqual(Seller.objects.count(), 1)

    def test_cancelled(self):
        with patch("payments.services.bkash.execute_payment") as execute:
            resp = self._callback(status="failure")
        self.assertEqual(resp.status_code, 303)
        execute.assert_not_called()
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, "failed")
        self.assertFalse(Seller.objects.exists())

    def test_unparseable_amount_creates_no_seller(self):
        with patch("payments.services.bkash.execute_payment", return_value={**EXECUTED, "amount": ""}):
            self._callback()
        self.assertFalse(Seller.objects.exists())
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.failure_reason, "zero_amount")

    def test_email_taken_during_payment(self):
        Seller.objects.create(
            name="Other", email="karim@example.com", number="1", shop_name="Other", shop_logo="https://x/l.png",
            district="Dhaka", address="a", reference="reg_other", payment_id="P9", transaction_id="T9", amount=500,
        )
        with patch("payments.services.bkash.execute_payment", return_value=EXECUTED):
            with self.assertLogs("payments.services", level="ERROR"):
                resp = self._callback()
        self.assertEqual(resp.status_code, 303)
        self.assertEqual(Seller.objects.count(), 1)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.failure_reason, "fulfilment_failed")
        self.assertEqual(self.pending.gateway_meta["trxID"], "REGTRX1")


class RegistrationFeeTests(TestCase):
    def _post(self, payload):
        return self.client.post(
            reverse("sellers:register_make_payment"),
            data=json.dumps(payload),
            content_type="application/json",
        )

    @override_settings(SELLER_REGISTRATION_FEE=Decimal("500"))
    def test_amount_must_equal_configured_fee(self):
        with patch("payments.services.bkash.create_payment") as create:
            resp = self._post(registration_payload(amount=1))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Registration fee is 500")
        create.assert_not_called()

    @override_settings(SELLER_REGISTRATION_FEE=Decimal("500"))
    def test_configured_fee_is_charged(self):
        with patch("payments.services.bkash.create_payment", return_value=CREATED) as create:
            resp = self._post(registration_payload(amount="500"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(create.call_args.kwargs["amount"], Decimal("500"))

    def test_underpaid_fee_registers_no_seller(self):
        pending = PendingRegisterPayment.objects.create(
            reference="reg_low", payment_id="REGPAY1", name="Karim", email="karim@example.com",
            number="01800000000", address="Shop 4", district="Khulna", shop_name="Karim Store",
            shop_logo="https://cdn.example.com/karim.png", website="karimstore.example.com", amount=500,
        )
        with patch("payments.services.bkash.execute_payment", return_value={**EXECUTED, "amount": "1"}):
            with self.assertLogs("payments.services", level="ERROR"):
                resp = self.client.get(reverse("sellers:register_callback"),
                                       {"reference": "reg_low", "paymentID": "REGPAY1", "status": "success"})
        self.assertEqual(resp.status_code, 303)
        self.assertFalse(Seller.objects.exists())
        pending.refresh_from_db()
        self.assertEqual(pending.failure_reason, "fulfilment_failed")
        self.assertEqual(pending.gateway_meta["amount"], "1")


def make_seller(email="karim@example.com"):
    return Seller.objects.create(
        name="Karim", email=email, number="01800000000", shop_name="Karim Store",
        shop_logo="https://cdn.example.com/karim.png", district="Khulna", address="Shop 4",
        reference=f"reg_{email}", payment_id=f"PAY_{email}", transaction_id="TRX", amount=500,
    )


class SellerPayoutTests(TestCase):
    def setUp(self):
        self.seller = make_seller()

    def test_totals_follow_payout_progress(self):
        first = create_payout(seller=self.seller, amount="1500", payment_method="bKash", account_details="01800000000")
        create_payout(seller=self.seller, amount=Decimal("700"), payment_method="Bank", progress=SellerPayout.PAID)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.total_paid, Decimal("700"))
        self.assertEqual(self.seller.total_due, Decimal("1500"))

        update_payout(first, progress=SellerPayout.PAID)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.total_paid, Decimal("2200"))
        self.assertEqual(self.seller.total_due, Decimal("0"))

        delete_payout(first)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.total_paid, Decimal("700"))

    def test_other_sellers_are_untouched(self):
        other = make_seller("other@example.com")
        create_payout(seller=self.seller, amount=100, payment_method="bKash")
        other.refresh_from_db()
        self.assertEqual(other.total_due, Decimal("0"))

    def test_invalid_payouts_rejected(self):
        with self.assertRaises(PayoutError):
            create_payout(seller=self.seller, amount=0, payment_method="bKash")
        with self.assertRaises(PayoutError):
            create_payout(seller=self.seller, amount=100, payment_method="bKash", progress="Sent")
        payout = create_payout(seller=self.seller, amount=100, payment_method="bKash")
        with self.assertRaises(PayoutError):
            update_payout(payout, seller=make_seller("x@example.com"))
        self.assertEqual(SellerPayout.objects.count(), 1)


class SellerPayoutAdminTests(TestCase):
    def setUp(self):
        self.seller = make_seller()
        self.admin = SellerPayoutAdmin(SellerPayout, AdminSite())
        self.request = RequestFactory().post("/admin/sellers/sellerpayout/")

    def test_add_and_change_update_totals(self):
        obj = SellerPayout(seller=self.seller, amount=Decimal("900"), payment_method="bKash")
        form = SimpleNamespace(changed_data=["seller", "amount", "payment_method"], cleaned_data={
            "seller": self.seller, "amount": Decimal("900"), "payment_method": "bKash",
            "account_details": "", "progress": SellerPayout.PENDING,
        })
        self.admin.save_model(self.request, obj, form, False)
        self.assertIsNotNone(obj.pk)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.total_due, Decimal("900"))

        form = SimpleNamespace(changed_data=["progress"], cleaned_data={"progress": SellerPayout.PAID})
        self.admin.save_model(self.request, SellerPayout.objects.get(pk=obj.pk), form, True)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.total_paid, Decimal("900"))
        self.assertEqual(self.seller.total_due, Decimal("0"))

        self.admin.delete_queryset(self.request, SellerPayout.objects.all())
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.total_paid, Decimal("0"))
