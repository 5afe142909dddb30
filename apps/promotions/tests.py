from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.common.exceptions import InvalidPromotion, ValidationError
from apps.orders.models import Order
from apps.promotions.models import DiscountType, Promotion
from apps.promotions.services import (
    discount_for,
    evaluate_promotion,
    find_promotion,
    redeem_for_order,
    redeem_promotion,
)

User = get_user_model()


def create_promotion(code="SAVE10", **overrides):
    now = timezone.now()
    values = {
        "code": code,
        "name": "Save ten percent",
        "discount_type": DiscountType.PERCENTAGE,
        "discount_value": Decimal("10"),
        "max_discount_amount": Decimal("100.00"),
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=1),
    }
    values.update(overrides)
    return Promotion.objects.create(**values)


class PromotionEvaluatorTests(TestCase):
    def assertReason(self, reason, promotion, subtotal=Decimal("1000"), now=None):
        with self.assertRaises(InvalidPromotion) as ctx:
            evaluate_promotion(promotion, subtotal, now)
        self.assertEqual(ctx.exception.reason, reason)

    def test_missing_and_inactive_codes_read_as_not_found(self):
        self.assertReason(InvalidPromotion.NOT_FOUND, None)
        self.assertReason(InvalidPromotion.NOT_FOUND, create_promotion(is_active=False))

    def test_window_is_checked_before_usage_and_minimum(self):
        now = timezone.now()
        promotion = create_promotion(
            valid_from=now + timedelta(days=1),
            valid_until=now + timedelta(days=2),
            usage_limit=1,
            usage_count=1,
            min_order_amount=Decimal("5000"),
        )
        self.assertReason(InvalidPromotion.NOT_YET_ACTIVE, promotion)
        self.assertReason(InvalidPromotion.EXPIRED, promotion, now=now + timedelta(days=3))
        self.assertReason(InvalidPromotion.EXHAUSTED, promotion, now=now + timedelta(days=1, hours=1))

    def test_minimum_order_amount(self):
        promotion = create_promotion(min_order_amount=Decimal("1500"))
        self.assertReason(InvalidPromotion.BELOW_MINIMUM, promotion, subtotal=Decimal("1499.99"))
        self.assertEqual(evaluate_promotion(promotion, Decimal("1500")), promotion)

    def test_lookup_is_case_insensitive(self):
        promotion = create_promotion(code="welcome")
        self.assertEqual(promotion.code, "WELCOME")
        self.assertEqual(find_promotion(" Welcome "), promotion)
        self.assertIsNone(find_promotion(""))


class DiscountTests(TestCase):
    def test_percentage_discount_is_capped(self):
        promotion = create_promotion()
        self.assertEqual(discount_for(promotion, Decimal("1500.00")), Decimal("100.00"))
        self.assertEqual(discount_for(promotion, Decimal("500.00")), Decimal("50.00"))

    def test_fixed_amount_never_exceeds_fee(self):
        promotion = create_promotion(
            code="FLAT300",
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("300"),
            max_discount_amount=None,
        )
        self.assertEqual(discount_for(promotion, Decimal("1000.00")), Decimal("300.00"))
        self.assertEqual(discount_for(promotion, Decimal("200.00")), Decimal("200.00"))

    def test_free_delivery_covers_whole_fee(self):
        promotion = create_promotion(code="FREESHIP", discount_type=DiscountType.FREE_DELIVERY, discount_value=Decimal("0"))
        self.assertEqual(discount_for(promotion, Decimal("750.00")), Decimal("750.00"))
        self.assertEqual(discount_for(promotion, Decimal("0.00")), Decimal("0.00"))


class PromotionRedemptionTests(TestCase):
    def test_stale_copies_cannot_exceed_usage_limit(self):
        promotion = create_promotion(usage_limit=1)
        first_copy = Promotion.objects.get(pk=promotion.pk)
        second_copy = Promotion.objects.get(pk=promotion.pk)

        redeem_promotion(first_copy)
        with self.assertRaises(InvalidPromotion) as ctx:
            redeem_promotion(second_copy)

        self.assertEqual(ctx.exception.reason, InvalidPromotion.EXHAUSTED)
        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 1)

    def test_unlimited_promotion_keeps_counting(self):
        promotion = create_promotion(usage_limit=0)
        for _ in range(3):
            redeem_promotion(promotion)
        self.assertEqual(promotion.usage_count, 3)

    def test_inactive_promotion_cannot_be_redeemed(self):
        promotion = create_promotion(usage_limit=5)
        Promotion.objects.filter(pk=promotion.pk).update(is_active=False)
        with self.assertRaises(InvalidPromotion):
            redeem_promotion(promotion)

    def test_order_redemption_is_counted_once_per_order(self):
        promotion = create_promotion(usage_limit=5)
        customer = User.objects.create_user(username="ada", password="ada12345", role="CUSTOMER")
        order = Order.objects.create(order_number="ORD-300", customer=customer, payment_method="wallet")

        self.assertTrue(redeem_for_order(promotion, order))
        self.assertFalse(redeem_for_order(Promotion.objects.get(pk=promotion.pk), order))

        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 1)
        order.refresh_from_db()
        self.assertEqual(order.promotion, promotion)

    def test_order_cannot_take_a_second_code(self):
        first = create_promotion(code="FIRST", usage_limit=5)
        second = create_promotion(code="SECOND", usage_limit=5)
        customer = User.objects.create_user(username="ada", password="ada12345", role="CUSTOMER")
        order = Order.objects.create(order_number="ORD-301", customer=customer, payment_method="wallet")

        redeem_for_order(first, order)
        with self.assertRaises(ValidationError):
            redeem_for_order(second, order)

        second.refresh_from_db()
        self.assertEqual(second.usage_count, 0)


class PromotionApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.vendor = User.objects.create_user(username="vendor", password="vendor123", role="VENDOR")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def promotion_payload(self, **overrides):
        now = timezone.now()
        payload = {
            "code": "save10",
            "name": "Save 10",
            "discount_type": "percentage",
            "discount_value": "10.00",
            "max_discount_amount": "100.00",
            "min_order_amount": "0.00",
            "valid_from": (now - timedelta(days=1)).isoformat(),
            "valid_until": (now + timedelta(days=30)).isoformat(),
            "usage_limit": 100,
        }
        payload.update(overrides)
        return payload

    def test_promotions_are_admin_only(self):
        self.assertEqual(self.client.get("/api/v1/promotions/").status_code, 401)

        self.auth_as("vendor", "vendor123")
        self.assertEqual(self.client.get("/api/v1/promotions/").status_code, 403)
        self.assertEqual(self.client.post("/api/v1/promotions/", self.promotion_payload(), format="json").status_code, 403)
        self.assertEqual(Promotion.objects.count(), 0)

    def test_admin_crud_is_audited_and_normalizes_code(self):
        self.auth_as("admin", "admin123")
        created = self.client.post("/api/v1/promotions/", self.promotion_payload(), format="json")
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["code"], "SAVE10")
        self.assertEqual(created.data["usage_count"], 0)
        self.assertEqual(created.data["created_by"], "admin")
        promotion_id = created.data["id"]

        updated = self.client.patch(f"/api/v1/promotions/{promotion_id}/", {"is_active": False}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertFalse(updated.data["is_active"])

        listed = self.client.get("/api/v1/promotions/?is_active=false")
        self.assertEqual(listed.data["count"], 1)

        deleted = self.client.delete(f"/api/v1/promotions/{promotion_id}/")
        self.assertEqual(deleted.status_code, 204)

        self.assertTrue(AuditLog.objects.filter(action="promotions.create", entity_id=promotion_id).exists())
        self.assertTrue(AuditLog.objects.filter(action="promotions.update", entity_id=promotion_id).exists())
        self.assertTrue(AuditLog.objects.filter(action="promotions.delete", entity_id=promotion_id).exists())

    def test_duplicate_code_is_rejected_case_insensitively(self):
        create_promotion(code="SAVE10")
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/promotions/", self.promotion_payload(code="Save10"), format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("code", response.data["fields"])

    def test_window_and_percentage_are_validated(self):
        self.auth_as("admin", "admin123")
        now = timezone.now()
        backwards = self.client.post(
            "/api/v1/promotions/",
            self.promotion_payload(valid_from=now.isoformat(), valid_until=(now - timedelta(days=1)).isoformat()),
            format="json",
        )
        too_much = self.client.post(
            "/api/v1/promotions/",
            self.promotion_payload(code="HUGE", discount_value="150.00"),
            format="json",
        )
        self.assertEqual(backwards.status_code, 400)
        self.assertIn("valid_until", backwards.data["fields"])
        self.assertEqual(too_much.status_code, 400)
        self.assertIn("discount_value", too_much.data["fields"])
