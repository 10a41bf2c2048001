from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from sellers.models import PendingRegisterPayment

from .models import PendingPayment


def _pending(reference, age_minutes, **extra):
    row = PendingPayment.objects.create(
        reference=reference, shipping=0, subtotal=100, total=100,
        payment_method="bkash", user_email="a@example.com", **extra,
    )
    PendingPayment.objects.filter(pk=row.pk).update(created_at=timezone.now() - timedelta(minutes=age_minutes))
    return row


class ExpirePendingPaymentsCommandTests(TestCase):
    def _run(self, *args):
        out = StringIO()
        call_command("expire_pending_payments", *args, stdout=out)
        return out.getvalue()

    def test_fails_only_stale_pending_rows(self):
        _pending("chk_old", 120)
        _pending("chk_new", 5)
        failed = _pending("chk_failed", 120)
        failed.mark_failed("cancelled")

        out = self._run("--minutes", "60")

        self.assertIn("payments.PendingPayment chk_old -> failed", out)
        self.assertIn("Expired 1 pending payments.", out)
        old = PendingPayment.objects.get(reference="chk_old")
        self.assertEqual(old.status, "failed")
        self.assertEqual(old.failure_reason, "expired")
        self.assertEqual(PendingPayment.objects.get(reference="chk_new").status, "pending")
        self.assertEqual(PendingPayment.objects.get(reference="chk_failed").failure_reason, "cancelled")

    def test_dry_run_changes_nothing(self):
        _pending("chk_old", 120)
        out = self._run("--minutes", "60", "--dry-run")
        self.assertIn("chk_old -> would expire", out)
        self.assertIn("Would expire 1 pending payments.", out)
        self.assertEqual(PendingPayment.objects.get().status, "pending")

    @override_settings(PENDING_PAYMENT_TTL_MINUTES=30)
    def test_default_ttl_comes_from_settings_and_covers_registrations(self):
        _pending("chk_40", 40)
        reg = PendingRegisterPayment.objects.create(
            reference="reg_40", name="Karim", email="karim@example.com", number="01800000000",
            address="Shop 4", district="Khulna", shop_name="Karim Store",
            shop_logo="https://cdn.example.com/logo.png", website="karim.example.com", amount=500,
        )
        PendingRegisterPayment.objects.filter(pk=reg.pk).update(created_at=timezone.now() - timedelta(minutes=40))

        out = self._run()

        self.assertIn("Expired 2 pending payments.", out)
        self.assertEqual(PendingPayment.objects.get().status, "failed")
        self.assertEqual(PendingRegisterPayment.objects.get().status, "failed")

    def test_nothing_to_do(self):
        _pending("chk_new", 5)
        self.assertIn("No stale pending payments.", self._run())
