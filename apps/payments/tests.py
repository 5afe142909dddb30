import hashlib
import hmac
import json
from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, override_settings
from rest_framework.test import APITestCase

from apps.payments.models import PaymentReference, VerificationStatus
from apps.payments.paystack import from_minor_units, to_minor_units
from apps.payments.services import map_provider_status
from apps.wallet.models import ReferenceType, VirtualAccount, WalletTransaction
from apps.wallet.services import credit

User = get_user_model()

SECRET = "sk_test_secret"


def provider_response(body, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.content = json.dumps(body).encode()
    response.json.return_value = body
    return response


def verify_body(reference, status="success", amount=50000, metadata=None):
    return {
        "status": True,
        "message": "Verification successful",
        "data": {"reference": reference, "status": status, "amount": amount, "metadata": metadata or {}},
    }


class PaystackHelpersTests(SimpleTestCase):
    def test_minor_unit_conversion(self):
        self.assertEqual(to_minor_units(Decimal("500.00")), 50000)
        self.assertEqual(to_minor_units("12.34"), 1234)
        self.assertEqual(from_minor_units(50000), Decimal("500.00"))
        self.assertEqual(from_minor_units(None), Decimal("0.00"))

    def test_provider_status_mapping(self):
        self.assertEqual(map_provider_status("success"), VerificationStatus.SUCCESS)
        for status in ("abandoned", "ongoing", "pending", "processing", "queued"):
            self.assertEqual(map_provider_status(status), VerificationStatus.PENDING)
        for status in ("failed", "reversed", "", None):
            self.assertEqual(map_provider_status(status), VerificationStatus.FAILED)


@override_settings(PAYSTACK_SECRET_KEY=SECRET, WALLET_MIN_AMOUNT=Decimal("100.00"))
class PaymentApiTestCase(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(
            username="customer",
            password="customer123",
            role="CUSTOMER",
            email="customer@example.com",
            full_name="Ada Obi",
        )
        self.other = User.objects.create_user(username="other", password="other123", role="CUSTOMER")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")


@mock.patch("apps.payments.paystack.requests.request")
class InitializePaymentTests(PaymentApiTestCase):
    def test_initialize_records_pending_reference(self, mocked_request):
        mocked_request.return_value = provider_response(
            {
                "status": True,
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc",
                    "access_code": "abc",
                    "reference": "ref_init",
                },
            }
        )
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/initialize-payment/",
            {"amount": "500.00", "email": "customer@example.com"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["reference"], "ref_init")
        self.assertEqual(response.data["authorization_url"], "https://checkout.paystack.com/abc")

        payload = mocked_request.call_args.kwargs["json"]
        self.assertEqual(payload["amount"], 50000)
        self.assertEqual(payload["metadata"]["user_id"], self.customer.pk)
        self.assertEqual(payload["metadata"]["purpose"], "wallet")
        self.assertEqual(
            mocked_request.call_args.kwargs["headers"]["Authorization"],
            f"Bearer {SECRET}",
        )

        payment = PaymentReference.objects.get(reference="ref_init")
        self.assertEqual(payment.user, self.customer)
        self.assertEqual(payment.status, VerificationStatus.PENDING)
        self.assertEqual(payment.amount_requested, Decimal("500.00"))

    def test_wallet_top_up_below_minimum_never_reaches_provider(self, mocked_request):
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/initialize-payment/",
            {"amount": "50.00", "email": "customer@example.com"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        mocked_request.assert_not_called()

    def test_invalid_email_is_rejected(self, mocked_request):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/initialize-payment/", {"amount": "500.00", "email": "nope"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("email", response.data["fields"])
        mocked_request.assert_not_called()

    def test_provider_rejection_passes_message_through(self, mocked_request):
        mocked_request.return_value = provider_response(
            {"status": False, "message": "Invalid Email Address Passed"}, status_code=400
        )
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/initialize-payment/",
            {"amount": "500.00", "email": "customer@example.com"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "Invalid Email Address Passed")
        self.assertEqual(response.data["code"], "upstream_provider_error")
        self.assertFalse(PaymentReference.objects.exists())

    def test_requires_authentication(self, mocked_request):
        response = self.client.post(
            "/api/v1/initialize-payment/",
            {"amount": "500.00", "email": "customer@example.com"},
            format="json",
        )
        self.assertEqual(response.status_code, 401)
        mocked_request.assert_not_called()


@mock.patch("apps.payments.paystack.requests.request")
class VerifyPaymentTests(PaymentApiTestCase):
    def test_double_verify_credits_wallet_once(self, mocked_request):
        mocked_request.return_value = provider_response(
            verify_body("ref_ok", metadata={"user_id": self.customer.pk, "purpose": "wallet"})
        )
        self.auth_as("customer", "customer123")

        first = self.client.get("/api/v1/verify-payment/?reference=ref_ok&type=wallet")
        second = self.client.get("/api/v1/verify-payment/?reference=ref_ok&type=wallet")

        self.assertEqual(first.status_code, 200)
        self.assertTrue(first.data["success"])
        self.assertEqual(first.data["amount"], "500.00")
        self.assertEqual(first.data["mode"], "wallet")
        self.assertTrue(first.data["wallet_credited"])
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data["already_processed"])
        self.assertFalse(second.data["wallet_credited"])

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("500.00"))
        entry = WalletTransaction.objects.get(reference_id="ref_ok")
        self.assertEqual(entry.description, "Paystack payment - ref_ok")
        self.assertEqual(entry.reference_type, ReferenceType.TOPUP)

        payment = PaymentReference.objects.get(reference="ref_ok")
        self.assertEqual(payment.status, VerificationStatus.SUCCESS)
        self.assertEqual(payment.amount_paid, Decimal("500.00"))
        self.assertIsNotNone(payment.verified_at)

    def test_anonymous_verify_is_allowed(self, mocked_request):
        mocked_request.return_value = provider_response(verify_body("ref_anon", metadata={"user_id": self.customer.pk}))
        response = self.client.get("/api/v1/verify-payment/?reference=ref_anon")

        self.assertEqual(response.status_code, 200)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("500.00"))

    def test_pending_and_failed_do_not_credit(self, mocked_request):
        mocked_request.side_effect = [
            provider_response(verify_body("ref_wait", status="ongoing", metadata={"user_id": self.customer.pk})),
            provider_response(verify_body("ref_bad", status="failed", metadata={"user_id": self.customer.pk})),
        ]
        pending = self.client.get("/api/v1/verify-payment/?reference=ref_wait&type=wallet")
        failed = self.client.get("/api/v1/verify-payment/?reference=ref_bad&type=wallet")

        self.assertEqual(pending.status_code, 400)
        self.assertEqual(pending.data["status"], "pending")
        self.assertEqual(failed.status_code, 400)
        self.assertEqual(failed.data["status"], "failed")
        self.assertEqual(failed.data["error"], "Payment was not successful")
        self.assertFalse(WalletTransaction.objects.exists())
        self.assertEqual(PaymentReference.objects.get(reference="ref_wait").status, VerificationStatus.PENDING)

    def test_order_mode_leaves_ledger_alone(self, mocked_request):
        mocked_request.return_value = provider_response(
            verify_body("ref_order", amount=250000, metadata={"user_id": self.customer.pk, "purpose": "order"})
        )
        response = self.client.get("/api/v1/verify-payment/?reference=ref_order&type=order")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["mode"], "order")
        self.assertEqual(response.data["amount"], "2500.00")
        self.assertFalse(WalletTransaction.objects.exists())

    def test_order_reference_cannot_fund_wallet(self, mocked_request):
        mocked_request.return_value = provider_response(
            verify_body("ref_order", metadata={"user_id": self.customer.pk, "purpose": "order"})
        )
        response = self.client.get("/api/v1/verify-payment/?reference=ref_order&type=wallet")

        self.assertEqual(response.status_code, 400)
        self.assertFalse(WalletTransaction.objects.exists())

    def test_missing_user_in_metadata_is_upstream_error(self, mocked_request):
        mocked_request.return_value = provider_response(verify_body("ref_orphan", metadata={}))
        response = self.client.get("/api/v1/verify-payment/?reference=ref_orphan")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data["error"], "User ID not found in transaction metadata")
        self.assertFalse(WalletTransaction.objects.exists())

    def test_other_users_reference_is_forbidden(self, mocked_request):
        mocked_request.return_value = provider_response(verify_body("ref_mine", metadata={"user_id": self.customer.pk}))
        self.auth_as("other", "other123")
        response = self.client.get("/api/v1/verify-payment/?reference=ref_mine")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(WalletTransaction.objects.exists())

    def test_missing_reference_is_rejected(self, mocked_request):
        response = self.client.get("/api/v1/verify-payment/")
        self.assertEqual(response.status_code, 400)
        mocked_request.assert_not_called()

    def test_provider_outage_is_not_retried(self, mocked_request):
        mocked_request.side_effect = requests.exceptions.Timeout("slow")
        response = self.client.get("/api/v1/verify-payment/?reference=ref_slow")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(mocked_request.call_count, 1)


@mock.patch("apps.payments.paystack.requests.request")
class VirtualAccountTests(PaymentApiTestCase):
    dedicated_account = {
        "status": True,
        "data": {
            "account_number": "9930000001",
            "account_name": "Ada Obi",
            "bank": {"id": 20, "name": "Wema Bank"},
            "assigned": True,
            "active": True,
        },
    }

    def test_creates_customer_and_dedicated_account_once(self, mocked_request):
        mocked_request.side_effect = [
            provider_response({"status": True, "data": {"customer_code": "CUS_ada"}}),
            provider_response(self.dedicated_account),
        ]
        self.auth_as("customer", "customer123")

        first = self.client.post("/api/v1/create-virtual-account/", {}, format="json")
        second = self.client.post("/api/v1/create-virtual-account/", {}, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertTrue(first.data["created"])
        self.assertEqual(first.data["account"]["account_number"], "9930000001")
        self.assertEqual(first.data["account"]["bank_name"], "Wema Bank")
        self.assertEqual(second.status_code, 200)
        self.assertFalse(second.data["created"])
        self.assertEqual(mocked_request.call_count, 2)

        customer_payload = mocked_request.call_args_list[0].kwargs["json"]
        self.assertEqual(customer_payload["first_name"], "Ada")
        self.assertEqual(customer_payload["last_name"], "Obi")
        self.assertEqual(mocked_request.call_args_list[1].kwargs["json"]["preferred_bank"], "wema-bank")

    def test_existing_provider_customer_is_fetched(self, mocked_request):
        mocked_request.side_effect = [
            provider_response({"status": False, "message": "Customer already exists"}, status_code=400),
            provider_response({"status": True, "data": {"customer_code": "CUS_existing"}}),
            provider_response(self.dedicated_account),
        ]
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/create-virtual-account/", {}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(VirtualAccount.objects.get(user=self.customer).customer_code, "CUS_existing")
        self.assertEqual(mocked_request.call_args_list[1].args[0], "GET")

    def test_user_without_email_is_rejected(self, mocked_request):
        self.auth_as("other", "other123")
        response = self.client.post("/api/v1/create-virtual-account/", {}, format="json")
        self.assertEqual(response.status_code, 400)
        mocked_request.assert_not_called()


class PaystackWebhookTests(PaymentApiTestCase):
    def setUp(self):
        super().setUp()
        self.account = VirtualAccount.objects.create(user=self.customer, customer_code="CUS_ada")

    def post_event(self, event, signature=None):
        raw = json.dumps(event).encode()
        if signature is None:
            signature = hmac.new(SECRET.encode(), raw, hashlib.sha512).hexdigest()
        return self.client.post(
            "/api/v1/paystack-webhook/",
            data=raw,
            content_type="application/json",
            HTTP_X_PAYSTACK_SIGNATURE=signature,
        )

    def transfer_event(self, reference="trf_1", amount=150000):
        return {
            "event": "charge.success",
            "data": {
                "reference": reference,
                "amount": amount,
                "channel": "dedicated_nuban",
                "customer": {"customer_code": "CUS_ada"},
            },
        }

    def test_bad_signature_is_rejected(self):
        response = self.post_event(self.transfer_event(), signature="not-a-signature")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(WalletTransaction.objects.exists())

    def test_bank_transfer_credits_wallet_once(self):
        first = self.post_event(self.transfer_event())
        second = self.post_event(self.transfer_event())

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data["message"], "Wallet credited successfully")
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["message"], "Transaction already processed")
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("1500.00"))
        entry = WalletTransaction.objects.get(reference_id="trf_1")
        self.assertEqual(entry.description, "Wallet funding via bank transfer")

    def test_webhook_and_verify_share_the_reference(self):
        credit(
            user=self.customer,
            amount="500.00",
            description="Paystack payment - ref_card",
            reference_id="ref_card",
        )
        response = self.post_event(
            {
                "event": "charge.success",
                "data": {
                    "reference": "ref_card",
                    "amount": 50000,
                    "channel": "card",
                    "metadata": {"user_id": self.customer.pk, "purpose": "wallet"},
                },
            }
        )

        self.assertEqual(response.data["message"], "Transaction already processed")
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("500.00"))

    def test_unknown_virtual_account_is_not_found(self):
        event = self.transfer_event()
        event["data"]["customer"]["customer_code"] = "CUS_ghost"
        response = self.post_event(event)
        self.assertEqual(response.status_code, 404)

    def test_assignment_updates_virtual_account(self):
        response = self.post_event(
            {
                "event": "dedicatedaccount.assign.success",
                "data": {
                    "customer": {"customer_code": "CUS_ada"},
                    "dedicated_account": {
                        "account_number": "9930000002",
                        "account_name": "Ada Obi",
                        "bank": {"id": 20, "name": "Wema Bank"},
                        "assigned": True,
                        "active": True,
                    },
                },
            }
        )

        self.assertEqual(response.status_code, 200)
        self.account.refresh_from_db()
        self.assertEqual(self.account.account_number, "9930000002")
        self.assertTrue(self.account.active)

    def test_other_events_are_acknowledged(self):
        response = self.post_event({"event": "transfer.success", "data": {}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"message": "Webhook received"})
