from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from apps.wallet.services import reconcile


class Command(BaseCommand):
    help = "Replay every wallet ledger and compare it with the stored balances."

    def add_arguments(self, parser):
        parser.add_argument("--user", help="Only reconcile this user id")

    def handle(self, *args, **options):
        User = get_user_model()
        users = User.objects.order_by("pk")
        if options.get("user"):
            users = users.filter(pk=options["user"])

        checked = 0
        failed = 0
        for user in users.iterator():
            report = reconcile(user)
            checked += 1
            if report.ok:
                continue
            failed += 1
            self.stdout.write(
                self.style.ERROR(
                    f"user={user.pk} replayed={report.replayed_balance:.2f} "
                    f"stored={report.stored_balance:.2f} mismatches={len(report.mismatches)}"
                )
            )
            for mismatch in report.mismatches:
                self.stdout.write(
                    f"  tx={mismatch['transaction_id']} {mismatch['field']} "
                    f"expected={mismatch['expected']} stored={mismatch['stored']}"
                )

        if failed:
            raise CommandError(f"Wallet reconciliation failed for {failed} of {checked} users")
        self.stdout.write(self.style.SUCCESS(f"Wallets reconciled: {checked}"))
