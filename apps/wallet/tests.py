from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import CommandError, call_command
from django.db.models.query import QuerySet
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from apps.common.exceptions import InsufficientFunds, NotFound, ValidationError
from apps.wallet.models import ReferenceType, TransactionType, VirtualAccount, WalletTransaction
from apps.wallet.services import credit, debit, reconcile

User = get_user_model()


class WalletLedgerTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="ada", password="ada12345", role="CUSTOMER")

    def balance(self):
        self.user.refresh_from_db(fields=["wallet_balance"])
        return self.user.wallet_balance

    def test_credit_and_debit_record_balance_snapshots(self):
        first = credit(user=self.user, amount="1000.00", description="Top up")
        second = debit(user=self.user, amount="250.00", description="Order ORD-1")

        self.assertEqual(first.balance_before, Decimal("0.00"))
        self.assertEqual(first.balance_after, Decimal("1000.00"))
        self.assertEqual(second.balance_before, Decimal("1000.00"))
        self.assertEqual(second.balance_after, Decimal("750.00"))
        self.assertEqual(second.transaction.type, TransactionType.DEBIT)
        self.assertEqual(second.transaction.reference_type, ReferenceType.ORDER)
        self.assertEqual(self.balance(), Decimal("750.00"))
        self.assertEqual(self.user.wallet_balance, second.balance_after)

    def test_credit_with_same_reference_applies_once(self):
        first = credit(user=self.user, amount="500.00", description="Paystack payment - ref_1", reference_id="ref_1")
        second = credit(user=self.user.pk, amount="500.00", description="Paystack payment - ref_1", reference_id="ref_1")

        self.assertFalse(first.replayed)
        self.assertTrue(second.replayed)
        self.assertEqual(second.transaction.pk, first.transaction.pk)
        self.assertEqual(second.balance_after, first.balance_after)
        self.assertEqual(self.balance(), Decimal("500.00"))
        self.assertEqual(WalletTransaction.objects.filter(reference_id="ref_1").count(), 1)

    def test_debit_with_same_reference_applies_once(self):
        credit(user=self.user, amount="1000.00", description="Top up")
        debit(user=self.user, amount="400.00", description="Order", reference_id="order:1")
        replay = debit(user=self.user, amount="400.00", description="Order", reference_id="order:1")

        self.assertTrue(replay.replayed)
        self.assertEqual(self.balance(), Decimal("600.00"))

    def test_credit_that_loses_insert_race_replays_winner(self):
        description = "Paystack payment - ref_race"
        winner = credit(user=self.user, amount="500.00", description=description, reference_id="ref_race")
        real_first = QuerySet.first
        calls = []

        def miss_first_lookup(queryset):
            calls.append(queryset)
            if len(calls) == 1:
                return None
            return real_first(queryset)

        with mock.patch.object(QuerySet, "first", autospec=True, side_effect=miss_first_lookup):
            result = credit(user=self.user, amount="500.00", description=description, reference_id="ref_race")

        self.assertEqual(len(calls), 2)
        self.assertTrue(result.replayed)
        self.assertEqual(result.transaction.pk, winner.transaction.pk)
        self.assertEqual(result.balance_after, Decimal("500.00"))
        self.assertEqual(self.balance(), Decimal("500.00"))
        self.assertEqual(WalletTransaction.objects.filter(user=self.user).count(), 1)

    def test_reference_owned_by_other_transaction_is_rejected(self):
        other = User.objects.create_user(username="bola", password="bola12345", role="CUSTOMER")
        credit(user=self.user, amount="500.00", description="Top up", reference_id="ref_shared")

        with self.assertRaises(ValidationError):
            credit(user=other, amount="500.00", description="Top up", reference_id="ref_shared")
        with self.assertRaises(ValidationError):
            debit(user=self.user, amount="200.00", description="Order", reference_id="ref_shared")

        other.refresh_from_db()
        self.assertEqual(other.wallet_balance, Decimal("0.00"))
        self.assertEqual(self.balance(), Decimal("500.00"))
        self.assertEqual(WalletTransaction.objects.count(), 1)

    def test_overdraft_fails_and_leaves_balance_unchanged(self):
        credit(user=self.user, amount="300.00", description="Top up")
        with self.assertRaises(InsufficientFunds):
            debit(user=self.user, amount="300.01", description="Too much", reference_id="order:big")

        self.assertEqual(self.balance(), Decimal("300.00"))
        self.assertFalse(WalletTransaction.objects.filter(reference_id="order:big").exists())
        self.assertEqual(WalletTransaction.objects.filter(user=self.user).count(), 1)

    def test_debit_of_whole_balance_is_allowed(self):
        credit(user=self.user, amount="300.00", description="Top up")
        result = debit(user=self.user, amount="300.00", description="All of it")
        self.assertEqual(result.balance_after, Decimal("0.00"))

    @override_settings(WALLET_MIN_AMOUNT=Decimal("100.00"))
    def test_invalid_amounts_are_rejected(self):
        for amount in ("0", "-5", "abc", None, "99.99"):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    credit(user=self.user, amount=amount, description="Bad")
        self.assertEqual(self.balance(), Decimal("0.00"))
        self.assertFalse(WalletTransaction.objects.exists())

    def test_unknown_user_is_not_found(self):
        with self.assertRaises(NotFound):
            credit(user=999999, amount="100.00", description="Ghost")

    def test_reconciliation_replays_history(self):
        credit(user=self.user, amount="1000.00", description="Top up", reference_id="ref_a")
        debit(user=self.user, amount="200.00", description="Order A")
        credit(user=self.user, amount="150.00", description="Refund", reference_type=ReferenceType.REFUND)
        debit(user=self.user, amount="400.00", description="Withdrawal", reference_type=ReferenceType.WITHDRAWAL)
        credit(user=self.user, amount="1000.00", description="Top up", reference_id="ref_a")

        report = reconcile(self.user)

        self.assertTrue(report.ok)
        self.assertEqual(report.transaction_count, 4)
        self.assertEqual(report.replayed_balance, Decimal("550.00"))
        self.assertEqual(report.stored_balance, Decimal("550.00"))

        previous = Decimal("0.00")
        for entry in WalletTransaction.objects.filter(user=self.user).order_by("created_at"):
            self.assertEqual(entry.balance_before, previous)
            previous = entry.balance_after
        self.assertEqual(previous, self.balance())

    def test_reconciliation_detects_drift(self):
        credit(user=self.user, amount="1000.00", description="Top up")
        User.objects.filter(pk=self.user.pk).update(wallet_balance=Decimal("1200.00"))

        report = reconcile(self.user)

        self.assertFalse(report.ok)
        self.assertEqual(report.replayed_balance, Decimal("1000.00"))
        self.assertEqual(report.stored_balance, Decimal("1200.00"))

    def test_reconciliation_detects_broken_chain(self):
        credit(user=self.user, amount="1000.00", description="Top up")
        second = credit(user=self.user, amount="500.00", description="Top up")
        WalletTransaction.objects.filter(pk=second.transaction.pk).update(balance_before=Decimal("900.00"))

        report = reconcile(self.user)

        self.assertFalse(report.ok)
        fields = {mismatch["field"] for mismatch in report.mismatches}
        self.assertEqual(fields, {"balance_before", "balance_after"})


class ReconcileWalletsCommandTests(TestCase):
    def setUp(self):
        self.ada = User.objects.create_user(username="ada", password="ada12345")
        self.bola = User.objects.create_user(username="bola", password="bola12345")
        credit(user=self.ada, amount="700.00", description="Top up")
        credit(user=self.bola, amount="300.00", description="Top up")

    def test_reports_success_when_ledgers_match(self):
        out = StringIO()
        call_command("reconcile_wallets", stdout=out)
        self.assertIn("Wallets reconciled: 2", out.getvalue())

    def test_fails_when_a_ledger_drifts(self):
        User.objects.filter(pk=self.bola.pk).update(wallet_balance=Decimal("0.00"))
        out = StringIO()
        with self.assertRaises(CommandError):
            call_command("reconcile_wallets", stdout=out)
        self.assertIn(f"user={self.bola.pk}", out.getvalue())
        self.assertNotIn(f"user={self.ada.pk} ", out.getvalue())


class WalletApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123", role="CUSTOMER")
        self.other = User.objects.create_user(username="other", password="other123", role="CUSTOMER")
        credit(user=self.customer, amount="1000.00", description="Top up", reference_id="ref_customer")
        credit(user=self.other, amount="500.00", description="Top up", reference_id="ref_other")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_wallet_requires_authentication(self):
        self.assertEqual(self.client.get("/api/v1/wallet/").status_code, 401)
        self.assertEqual(self.client.post("/api/v1/wallet/withdraw/", {"amount": "100"}, format="json").status_code, 401)

    def test_wallet_summary_includes_virtual_account(self):
        VirtualAccount.objects.create(
            user=self.customer,
            customer_code="CUS_123",
            account_number="0123456789",
            account_name="Customer",
            bank_name="Wema Bank",
            assigned=True,
            active=True,
        )
        self.auth_as("customer", "customer123")
        response = self.client.get("/api/v1/wallet/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["balance"], "1000.00")
        self.assertEqual(response.data["virtual_account"]["account_number"], "0123456789")

    def test_transactions_are_scoped_to_caller(self):
        self.auth_as("customer", "customer123")
        own = self.client.get("/api/v1/wallet/transactions/")
        peek = self.client.get(f"/api/v1/wallet/transactions/?user={self.other.pk}")

        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.data["count"], 1)
        self.assertEqual(own.data["results"][0]["reference_id"], "ref_customer")
        self.assertEqual(peek.status_code, 403)

        self.auth_as("admin", "admin123")
        as_admin = self.client.get(f"/api/v1/wallet/transactions/?user={self.other.pk}")
        self.assertEqual(as_admin.status_code, 200)
        self.assertEqual(as_admin.data["results"][0]["reference_id"], "ref_other")

    def test_withdraw_is_idempotent_by_reference(self):
        self.auth_as("customer", "customer123")
        first = self.client.post("/api/v1/wallet/withdraw/", {"amount": "400.00", "reference": "w-1"}, format="json")
        second = self.client.post("/api/v1/wallet/withdraw/", {"amount": "400.00", "reference": "w-1"}, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.data["balance_after"], "600.00")
        self.assertEqual(first.data["transaction"]["reference_type"], "withdrawal")
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data["replayed"])
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("600.00"))

    def test_withdraw_overdraft_is_rejected(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/wallet/withdraw/", {"amount": "1000.01"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_funds")
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("1000.00"))
