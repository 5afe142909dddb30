import uuid
from decimal import Decimal

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class DeliveryZone(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    min_distance = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    max_distance = models.DecimalField(max_digits=10, decimal_places=2)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["min_distance", "-created_at"]
        indexes = [
            models.Index(fields=["is_active", "min_distance"], name="zone_active_min_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(min_distance__lt=models.F("max_distance")), name="zone_min_lt_max"),
            models.CheckConstraint(condition=models.Q(min_distance__gte=0), name="zone_min_distance_gte_zero"),
            models.CheckConstraint(condition=models.Q(price__gte=0), name="zone_price_gte_zero"),
        ]

    def __str__(self):
        return f"{self.name} ({self.min_distance}-{self.max_distance} km)"


class DeliveryPricing(models.Model):
    SINGLETON_ID = 1

    id = models.PositiveSmallIntegerField(primary_key=True, default=SINGLETON_ID, editable=False)
    default_base_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("5.00"))
    default_price_per_km = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("2.00"))
    min_delivery_charge = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("3.00"))
    max_delivery_distance = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("50.00"))
    free_delivery_threshold = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("100.00"))
    updated_by = models.ForeignKey("accounts.User", null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "delivery pricing"

    def save(self, *args, **kwargs):
        self.pk = self.SINGLETON_ID
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        pricing, _ = cls.objects.get_or_create(pk=cls.SINGLETON_ID)
        return pricing


class DeliveryLogAction(models.TextChoices):
    CALCULATE = "calculate", "Calculate"
    PROMOTION_APPLIED = "promotion_applied", "Promotion Applied"
    ADJUSTMENT = "adjustment", "Adjustment"


class DeliveryLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey("accounts.User", null=True, blank=True, on_delete=models.SET_NULL, related_name="delivery_logs")
    order = models.ForeignKey("orders.Order", null=True, blank=True, on_delete=models.SET_NULL, related_name="delivery_logs")
    action = models.CharField(max_length=32, choices=DeliveryLogAction.choices)
    zone = models.ForeignKey(DeliveryZone, null=True, blank=True, on_delete=models.SET_NULL, related_name="logs")
    distance_km = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    base_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    distance_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    promotion_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    adjustment_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    final_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    details = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="deliverylog_user_created_idx"),
            models.Index(fields=["order"], name="deliverylog_order_idx"),
            models.Index(fields=["action", "created_at"], name="deliverylog_action_idx"),
        ]


class DeliveryAdjustment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey("orders.Order", on_delete=models.CASCADE, related_name="delivery_adjustments")
    original_price = models.DecimalField(max_digits=12, decimal_places=2)
    adjusted_price = models.DecimalField(max_digits=12, decimal_places=2)
    adjustment_amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255)
    adjusted_by = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=models.Q(adjusted_price__gte=0), name="adjustment_price_gte_zero"),
        ]
