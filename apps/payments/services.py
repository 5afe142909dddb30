import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from apps.common.exceptions import NotFound, UpstreamProviderError, ValidationError
from apps.common.permissions import has_capability
from apps.payments.models import PaymentPurpose, PaymentReference, VerificationStatus
from apps.payments.paystack import PaystackClient, from_minor_units
from apps.wallet.models import ReferenceType, VirtualAccount
from apps.wallet.services import credit, validate_amount

logger = logging.getLogger(__name__)

PENDING_PROVIDER_STATUSES = {"abandoned", "ongoing", "pending", "processing", "queued", "reversal_pending"}


@dataclass
class VerificationResult:
    reference: str
    mode: str
    status: str
    provider_status: str
    amount: Decimal
    user_id: object = None
    ledger: object = None

    @property
    def success(self):
        return self.status == VerificationStatus.SUCCESS

    def as_dict(self):
        data = {
            "success": self.success,
            "status": self.status,
            "mode": self.mode,
            "amount": f"{self.amount:.2f}",
            "reference": self.reference,
        }
        if self.mode == PaymentPurpose.WALLET and self.ledger is not None:
            data["wallet_credited"] = not self.ledger.replayed
            data["already_processed"] = self.ledger.replayed
            data["balance_after"] = f"{self.ledger.balance_after:.2f}"
            data["message"] = (
                "Payment already processed"
                if self.ledger.replayed
                else "Payment verified and wallet credited successfully"
            )
        elif self.success:
            data["message"] = "Payment verified successfully"
        return data


def map_provider_status(provider_status):
    provider_status = (provider_status or "").strip().lower()
    if provider_status == "success":
        return VerificationStatus.SUCCESS
    if provider_status in PENDING_PROVIDER_STATUSES:
        return VerificationStatus.PENDING
    return VerificationStatus.FAILED


def _metadata(data):
    metadata = data.get("metadata") or {}
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            metadata = {}
    return metadata if isinstance(metadata, dict) else {}


def initialize_payment(*, user, amount, email, purpose=PaymentPurpose.WALLET, client=None):
    client = client or PaystackClient()
    if purpose not in PaymentPurpose.values:
        raise ValidationError(f"Unknown payment type '{purpose}'.")
    email = (email or "").strip()
    if not email:
        raise ValidationError("Email is required")
    if purpose == PaymentPurpose.WALLET:
        amount = validate_amount(amount)
    else:
        try:
            amount = Decimal(str(amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Invalid amount")
        if amount <= 0:
            raise ValidationError("Invalid amount")

    metadata = {
        "user_id": user.pk,
        "purpose": purpose,
        "custom_fields": [
            {"display_name": "User ID", "variable_name": "user_id", "value": user.pk},
        ],
    }
    data = client.initialize_transaction(email=email, amount=amount, metadata=metadata)
    reference = (data.get("reference") or "").strip()
    if not reference:
        raise UpstreamProviderError("Payment provider did not return a reference", provider=client.provider)

    PaymentReference.objects.create(
        reference=reference,
        user=user,
        purpose=purpose,
        email=email,
        amount_requested=amount,
        authorization_url=data.get("authorization_url") or "",
    )
    logger.info("Payment initialized user=%s amount=%s purpose=%s reference=%s", user.pk, amount, purpose, reference)
    return {
        "authorization_url": data.get("authorization_url"),
        "access_code": data.get("access_code"),
        "reference": reference,
    }


def verify_payment(*, reference, mode=PaymentPurpose.WALLET, requester=None, client=None):
    """Report the status of a gateway reference, crediting the wallet once on success.

    Safe to call any number of times: the wallet credit is keyed by ``reference``.
    In ``order`` mode the funds settle to the merchant and the ledger is not touched.
    """
    client = client or PaystackClient()
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError("Payment reference is required")
    mode = (mode or PaymentPurpose.WALLET).strip().lower()
    if mode not in PaymentPurpose.values:
        raise ValidationError(f"Unknown payment type '{mode}'.")

    data = client.verify_transaction(reference)
    provider_status = (data.get("status") or "").strip().lower()
    status = map_provider_status(provider_status)
    amount = from_minor_units(data.get("amount"))
    metadata = _metadata(data)
    user_id = metadata.get("user_id")

    if requester is not None and requester.is_authenticated and user_id is not None:
        if str(requester.pk) != str(user_id) and not has_capability(requester, "orders.manage"):
            logger.warning("Reference %s verify attempted by user=%s, belongs to user=%s", reference, requester.pk, user_id)
            raise PermissionDenied("This payment belongs to another user.")

    declared_purpose = metadata.get("purpose")
    if declared_purpose and declared_purpose != mode:
        raise ValidationError(f"Reference {reference} was initialized for {declared_purpose} payment, not {mode}.")

    _record_verification(reference, mode, status, provider_status, amount, user_id)
    result = VerificationResult(
        reference=reference,
        mode=mode,
        status=status,
        provider_status=provider_status,
        amount=amount,
        user_id=user_id,
    )
    if not result.success:
        logger.info("Reference %s not successful (provider status %s)", reference, provider_status)
        return result

    if user_id is None:
        logger.error("Reference %s verified without user_id in metadata amount=%s", reference, amount)
        raise UpstreamProviderError("User ID not found in transaction metadata", provider=client.provider)

    if mode == PaymentPurpose.WALLET:
        result.ledger = credit(
            user=user_id,
            amount=amount,
            description=f"Paystack payment - {reference}",
            reference_id=reference,
            reference_type=ReferenceType.TOPUP,
        )
    else:
        logger.info("Order payment %s verified amount=%s user=%s (merchant settlement)", reference, amount, user_id)
    return result


def _record_verification(reference, mode, status, provider_status, amount, user_id):
    payment, _ = PaymentReference.objects.get_or_create(
        reference=reference,
        defaults={"purpose": mode, "user_id": _user_pk(user_id)},
    )
    payment.status = status
    payment.provider_status = provider_status
    payment.amount_paid = amount
    update_fields = ["status", "provider_status", "amount_paid", "updated_at"]
    if status == VerificationStatus.SUCCESS and payment.verified_at is None:
        payment.verified_at = timezone.now()
        update_fields.append("verified_at")
    payment.save(update_fields=update_fields)
    return payment


def _user_pk(user_id):
    from django.contrib.auth import get_user_model

    User = get_user_model()
    try:
        return User.objects.filter(pk=user_id).values_list("pk", flat=True).first()
    except (TypeError, ValueError):
        return None


def provision_virtual_account(*, user, client=None):
    existing = VirtualAccount.objects.filter(user=user).first()
    if existing is not None:
        return existing, False

    client = client or PaystackClient()
    email = (user.email or "").strip()
    if not email:
        raise ValidationError("An email address is required to open a virtual account.")

    names = (user.display_name or "").split()
    first_name = names[0] if names else user.username
    last_name = " ".join(names[1:]) or "User"

    customer_code = client.create_customer(
        email=email,
        first_name=first_name,
        last_name=last_name,
        metadata={"user_id": user.pk},
    )
    if not customer_code:
        customer_code = client.fetch_customer(email)
    if not customer_code:
        raise UpstreamProviderError("Failed to get customer code", provider=client.provider)

    data = client.create_dedicated_account(customer_code=customer_code)
    bank = data.get("bank") or {}
    try:
        with transaction.atomic():
            account = VirtualAccount.objects.create(
                user=user,
                customer_code=customer_code,
                account_number=data.get("account_number") or "",
                account_name=data.get("account_name") or "",
                bank_name=bank.get("name") or "",
                bank_code=str(bank.get("id") or ""),
                assigned=bool(data.get("assigned")),
                active=bool(data.get("active")),
            )
    except IntegrityError:
        account = VirtualAccount.objects.filter(user=user).first()
        if account is None:
            logger.exception("Failed to save virtual account user=%s customer=%s", user.pk, customer_code)
            raise
        return account, False

    logger.info("Virtual account issued user=%s customer=%s", user.pk, customer_code)
    return account, True


def handle_webhook(*, raw_body, signature, client=None):
    client = client or PaystackClient()
    if not client.verify_webhook_signature(raw_body, signature):
        logger.warning("Paystack webhook rejected: invalid signature")
        raise ValidationError("Invalid signature")
    try:
        event = json.loads(raw_body or b"{}")
    except ValueError:
        raise ValidationError("Invalid webhook payload")

    event_name = event.get("event")
    data = event.get("data") or {}
    logger.info("Paystack webhook event received: %s", event_name)

    if event_name == "dedicatedaccount.assign.success":
        return _assign_dedicated_account(data)
    if event_name == "charge.success":
        return _credit_from_charge(data)
    return {"message": "Webhook received"}


def _assign_dedicated_account(data):
    customer_code = (data.get("customer") or {}).get("customer_code")
    dedicated = data.get("dedicated_account") or {}
    bank = dedicated.get("bank") or {}
    updated = VirtualAccount.objects.filter(customer_code=customer_code).update(
        account_number=dedicated.get("account_number") or "",
        account_name=dedicated.get("account_name") or "",
        bank_name=bank.get("name") or "",
        bank_code=str(bank.get("id") or ""),
        assigned=bool(dedicated.get("assigned")),
        active=bool(dedicated.get("active")),
        updated_at=timezone.now(),
    )
    if updated:
        logger.info("Virtual account assignment stored customer=%s", customer_code)
    return {"message": "Webhook received"}


def _credit_from_charge(data):
    reference = (data.get("reference") or "").strip()
    amount = from_minor_units(data.get("amount"))

    if data.get("channel") == "dedicated_nuban":
        customer_code = (data.get("customer") or {}).get("customer_code")
        account = VirtualAccount.objects.filter(customer_code=customer_code).select_related("user").first()
        if account is None:
            logger.error("Transfer %s amount=%s for unknown customer=%s", reference, amount, customer_code)
            raise NotFound("Virtual account not found")
        result = credit(
            user=account.user,
            amount=amount,
            description="Wallet funding via bank transfer",
            reference_id=reference,
            reference_type=ReferenceType.TOPUP,
        )
    else:
        metadata = _metadata(data)
        if metadata.get("purpose") != PaymentPurpose.WALLET or metadata.get("user_id") is None:
            return {"message": "Webhook received"}
        result = credit(
            user=metadata["user_id"],
            amount=amount,
            description=f"Paystack payment - {reference}",
            reference_id=reference,
            reference_type=ReferenceType.TOPUP,
        )
        _record_verification(reference, PaymentPurpose.WALLET, VerificationStatus.SUCCESS, "success", amount, metadata["user_id"])

    if result.replayed:
        return {"message": "Transaction already processed", "reference": reference}
    return {"message": "Wallet credited successfully", "amount": f"{amount:.2f}", "reference": reference}
