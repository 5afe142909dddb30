import uuid

from django.db import models


class PaymentPurpose(models.TextChoices):
    WALLET = "wallet", "Wallet Funding"
    ORDER = "order", "Order Payment"


class VerificationStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


class PaymentReference(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference = models.CharField(max_length=100, unique=True)
    user = models.ForeignKey("accounts.User", null=True, blank=True, on_delete=models.SET_NULL, related_name="payment_references")
    purpose = models.CharField(max_length=10, choices=PaymentPurpose.choices, default=PaymentPurpose.WALLET)
    email = models.EmailField(blank=True)
    amount_requested = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=10, choices=VerificationStatus.choices, default=VerificationStatus.PENDING)
    provider_status = models.CharField(max_length=32, blank=True)
    authorization_url = models.URLField(max_length=500, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="payref_user_created_idx"),
            models.Index(fields=["status"], name="payref_status_idx"),
        ]

    def __str__(self):
        return f"{self.reference} ({self.status})"
