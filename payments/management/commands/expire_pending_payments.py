from django.apps import apps
from django.conf import settings
from django.core.management.base import BaseCommand

from payments.services import expire_pending_payments

PENDING_MODELS = ("payments.PendingPayment", "sellers.PendingRegisterPayment")


class Command(BaseCommand):
    help = "Mark pending bKash payments the buyer never came back from as failed"

    def add_arguments(self, parser):
        parser.add_argument("--minutes", type=int, default=None,
                            help="Age after which a pending payment is stale (default PENDING_PAYMENT_TTL_MINUTES)")
        parser.add_argument("--max", type=int, default=500, help="Max rows per model")
        parser.add_argument("--dry-run", action="store_true", help="Only list what would be expired")

    def handle(self, *args, **opts):
        minutes = opts["minutes"] if opts["minutes"] is not None else settings.PENDING_PAYMENT_TTL_MINUTES
        total = 0
        for label in PENDING_MODELS:
            model = apps.get_model(label)
            refs = expire_pending_payments(model, older_than_minutes=minutes, limit=opts["max"], dry_run=opts["dry_run"])
            for ref in refs:
                self.stdout.write(f"{label} {ref} -> {'would expire' if opts['dry_run'] else 'failed'}")
            total += len(refs)

        if not total:
            self.stdout.write(self.style.SUCCESS("No stale pending payments."))
            return
        verb = "Would expire" if opts["dry_run"] else "Expired"
        self.stdout.write(self.style.SUCCESS(f"{verb} {total} pending payments."))
