import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from apps.common.exceptions import InsufficientFunds, NotFound, ValidationError
from apps.wallet.models import ReferenceType, TransactionType, WalletTransaction

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class LedgerResult:
    transaction: WalletTransaction
    balance_before: Decimal
    balance_after: Decimal
    replayed: bool = False

    def as_dict(self):
        return {
            "success": True,
            "transaction_id": str(self.transaction.id),
            "balance_before": f"{self.balance_before:.2f}",
            "balance_after": f"{self.balance_after:.2f}",
            "replayed": self.replayed,
        }


def minimum_amount():
    return Decimal(str(settings.WALLET_MIN_AMOUNT)).quantize(CENT)


def validate_amount(amount):
    try:
        amount = Decimal(str(amount)).quantize(CENT)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid amount")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    if amount < minimum_amount():
        raise ValidationError(f"Minimum amount is {minimum_amount():.2f}")
    return amount


def credit(*, user, amount, description, reference_id=None, reference_type=ReferenceType.TOPUP):
    return _apply(
        user=user,
        tx_type=TransactionType.CREDIT,
        amount=amount,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
    )


def debit(*, user, amount, description, reference_id=None, reference_type=ReferenceType.ORDER):
    return _apply(
        user=user,
        tx_type=TransactionType.DEBIT,
        amount=amount,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
    )


def _replay(existing, tx_type, user_id):
    if existing.type != tx_type or str(existing.user_id) != str(user_id):
        logger.warning(
            "Reference %s sent as %s for user=%s but belongs to %s user=%s",
            existing.reference_id,
            tx_type,
            user_id,
            existing.type,
            existing.user_id,
        )
        raise ValidationError(f"Reference {existing.reference_id} is already used by another transaction.")
    logger.info("Reference %s already applied, replaying %s", existing.reference_id, existing.id)
    return LedgerResult(
        transaction=existing,
        balance_before=existing.balance_before,
        balance_after=existing.balance_after,
        replayed=True,
    )


def _apply(*, user, tx_type, amount, description, reference_id, reference_type):
    User = get_user_model()
    amount = validate_amount(amount)
    reference_id = str(reference_id).strip() if reference_id else None
    user_id = getattr(user, "pk", user)

    try:
        with transaction.atomic():
            try:
                locked = User.objects.select_for_update().get(pk=user_id)
            except (User.DoesNotExist, TypeError, ValueError):
                raise NotFound("User not found")

            if reference_id:
                existing = WalletTransaction.objects.filter(reference_id=reference_id).first()
                if existing is not None:
                    return _replay(existing, tx_type, locked.pk)

            balance_before = locked.wallet_balance
            if tx_type == TransactionType.DEBIT:
                if amount > balance_before:
                    logger.info(
                        "Debit rejected user=%s amount=%s balance=%s reference=%s",
                        locked.pk,
                        amount,
                        balance_before,
                        reference_id,
                    )
                    raise InsufficientFunds(
                        f"Insufficient balance: available {balance_before:.2f}, requested {amount:.2f}."
                    )
                balance_after = balance_before - amount
            else:
                balance_after = balance_before + amount

            locked.wallet_balance = balance_after
            locked.save(update_fields=["wallet_balance"])
            entry = WalletTransaction.objects.create(
                user=locked,
                type=tx_type,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
                description=description,
                reference_type=reference_type or "",
                reference_id=reference_id,
            )
    except IntegrityError:
        if not reference_id:
            logger.exception("Wallet %s failed user=%s amount=%s", tx_type, user_id, amount)
            raise
        existing = WalletTransaction.objects.filter(reference_id=reference_id).first()
        if existing is None:
            logger.exception("Wallet %s failed user=%s amount=%s reference=%s", tx_type, user_id, amount, reference_id)
            raise
        return _replay(existing, tx_type, user_id)

    if hasattr(user, "wallet_balance"):
        user.wallet_balance = balance_after
    logger.info(
        "Wallet %s user=%s amount=%s balance %s -> %s reference=%s",
        tx_type,
        locked.pk,
        amount,
        balance_before,
        balance_after,
        reference_id,
    )
    return LedgerResult(transaction=entry, balance_before=balance_before, balance_after=balance_after)


@dataclass
class ReconciliationReport:
    user_id: object
    transaction_count: int
    replayed_balance: Decimal
    stored_balance: Decimal
    mismatches: list = field(default_factory=list)

    @property
    def ok(self):
        return not self.mismatches and self.replayed_balance == self.stored_balance


def _mismatch(entry, field_name, expected, stored):
    return {
        "transaction_id": str(entry.id),
        "field": field_name,
        "expected": f"{expected:.2f}",
        "stored": f"{stored:.2f}",
    }


def reconcile(user):
    """Replay a user's ledger from zero and compare it with the stored balance snapshots."""
    replayed = Decimal("0.00")
    previous_after = Decimal("0.00")
    mismatches = []
    count = 0
    for entry in WalletTransaction.objects.filter(user=user).order_by("created_at", "id"):
        count += 1
        signed = entry.amount if entry.type == TransactionType.CREDIT else -entry.amount
        replayed += signed
        if entry.balance_before != previous_after:
            mismatches.append(_mismatch(entry, "balance_before", previous_after, entry.balance_before))
        if entry.balance_after != entry.balance_before + signed:
            mismatches.append(_mismatch(entry, "balance_after", entry.balance_before + signed, entry.balance_after))
        previous_after = entry.balance_after

    user.refresh_from_db(fields=["wallet_balance"])
    if mismatches or replayed != user.wallet_balance:
        logger.warning(
            "Wallet reconciliation failed user=%s replayed=%s stored=%s mismatches=%s",
            user.pk,
            replayed,
            user.wallet_balance,
            len(mismatches),
        )
    return ReconciliationReport(
        user_id=user.pk,
        transaction_count=count,
        replayed_balance=replayed,
        stored_balance=user.wallet_balance,
        mismatches=mismatches,
    )
