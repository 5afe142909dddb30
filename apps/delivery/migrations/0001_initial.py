import uuid
from decimal import Decimal

import django.core.serializers.json
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DeliveryZone",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True)),
                ("min_distance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("max_distance", models.DecimalField(decimal_places=2, max_digits=10)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["min_distance", "-created_at"],
                "indexes": [
                    models.Index(fields=["is_active", "min_distance"], name="zone_active_min_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(min_distance__lt=models.F("max_distance")), name="zone_min_lt_max"
                    ),
                    models.CheckConstraint(condition=models.Q(min_distance__gte=0), name="zone_min_distance_gte_zero"),
                    models.CheckConstraint(condition=models.Q(price__gte=0), name="zone_price_gte_zero"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeliveryPricing",
            fields=[
                (
                    "id",
                    models.PositiveSmallIntegerField(default=1, editable=False, primary_key=True, serialize=False),
                ),
                ("default_base_price", models.DecimalField(decimal_places=2, default=Decimal("5.00"), max_digits=12)),
                ("default_price_per_km", models.DecimalField(decimal_places=2, default=Decimal("2.00"), max_digits=12)),
                ("min_delivery_charge", models.DecimalField(decimal_places=2, default=Decimal("3.00"), max_digits=12)),
                (
                    "max_delivery_distance",
                    models.DecimalField(decimal_places=2, default=Decimal("50.00"), max_digits=10),
                ),
                (
                    "free_delivery_threshold",
                    models.DecimalField(decimal_places=2, default=Decimal("100.00"), max_digits=12),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"verbose_name_plural": "delivery pricing"},
        ),
        migrations.CreateModel(
            name="DeliveryLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("calculate", "Calculate"),
                            ("promotion_applied", "Promotion Applied"),
                            ("adjustment", "Adjustment"),
                        ],
                        max_length=32,
                    ),
                ),
                ("distance_km", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("base_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("distance_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("promotion_discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("adjustment_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("final_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("details", models.JSONField(default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="delivery_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="delivery_logs",
                        to="orders.order",
                    ),
                ),
                (
                    "zone",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="logs",
                        to="delivery.deliveryzone",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="deliverylog_user_created_idx"),
                    models.Index(fields=["order"], name="deliverylog_order_idx"),
                    models.Index(fields=["action", "created_at"], name="deliverylog_action_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeliveryAdjustment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("original_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("adjusted_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("adjustment_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reason", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="delivery_adjustments",
                        to="orders.order",
                    ),
                ),
                (
                    "adjusted_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(adjusted_price__gte=0), name="adjustment_price_gte_zero"),
                ],
            },
        ),
    ]
