from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.common.exceptions import DistanceExceeded, InvalidPromotion, ValidationError
from apps.delivery.distance import GoogleDistanceClient
from apps.delivery.models import DeliveryAdjustment, DeliveryLog, DeliveryLogAction, DeliveryPricing, DeliveryZone
from apps.delivery.pricing import compute_fee, match_zone
from apps.delivery.repositories import InMemoryDeliveryRepository
from apps.delivery.services import DeliveryFeeService
from apps.orders.models import Order
from apps.promotions.models import Promotion

User = get_user_model()


def make_pricing(**overrides):
    values = {
        "default_base_price": Decimal("200.00"),
        "default_price_per_km": Decimal("50.00"),
        "min_delivery_charge": Decimal("300.00"),
        "max_delivery_distance": Decimal("50.00"),
        "free_delivery_threshold": Decimal("5000.00"),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_zone(name, min_distance, max_distance, price, is_active=True, created_at=None):
    return SimpleNamespace(
        id=name,
        name=name,
        min_distance=Decimal(min_distance),
        max_distance=Decimal(max_distance),
        price=Decimal(price),
        is_active=is_active,
        created_at=created_at or timezone.now(),
    )


def make_promotion(code="SAVE10", **overrides):
    now = timezone.now()
    values = {
        "code": code,
        "discount_type": "percentage",
        "discount_value": Decimal("10"),
        "max_discount_amount": Decimal("100.00"),
        "min_order_amount": Decimal("0.00"),
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=1),
        "usage_limit": 0,
        "usage_count": 0,
        "is_active": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class ZoneMatcherTests(SimpleTestCase):
    def test_returns_none_when_no_band_holds_distance(self):
        zones = [make_zone("A", "0", "5", "500")]
        self.assertIsNone(match_zone(zones, Decimal("5")))
        self.assertIsNone(match_zone(zones, Decimal("12")))

    def test_band_is_half_open(self):
        zones = [make_zone("A", "0", "5", "500"), make_zone("B", "5", "10", "800")]
        self.assertEqual(match_zone(zones, Decimal("0")).name, "A")
        self.assertEqual(match_zone(zones, Decimal("4.99")).name, "A")
        self.assertEqual(match_zone(zones, Decimal("5")).name, "B")

    def test_inactive_zones_are_ignored(self):
        zones = [make_zone("A", "0", "5", "500", is_active=False)]
        self.assertIsNone(match_zone(zones, Decimal("3")))

    def test_overlap_prefers_lowest_min_then_newest(self):
        now = timezone.now()
        zones = [
            make_zone("wide", "0", "10", "900", created_at=now - timedelta(days=2)),
            make_zone("narrow-old", "2", "6", "400", created_at=now - timedelta(days=3)),
            make_zone("wide-new", "0", "8", "700", created_at=now),
        ]
        self.assertEqual(match_zone(zones, Decimal("3")).name, "wide-new")

    def test_negative_distance_is_rejected(self):
        with self.assertRaises(ValidationError):
            match_zone([], Decimal("-1"))


class FeeCalculatorTests(SimpleTestCase):
    def test_zone_price_replaces_default_formula(self):
        zones = [make_zone("A", "0", "5", "500")]
        breakdown = compute_fee(Decimal("3"), zones, make_pricing(), Decimal("2000"))

        self.assertEqual(breakdown.zone.name, "A")
        self.assertEqual(breakdown.base_price, Decimal("0.00"))
        self.assertEqual(breakdown.distance_price, Decimal("500.00"))
        self.assertFalse(breakdown.free_delivery_applied)
        self.assertEqual(breakdown.final_price, Decimal("500.00"))

    def test_default_formula_without_zone(self):
        zones = [make_zone("A", "0", "5", "500")]
        breakdown = compute_fee(Decimal("12"), zones, make_pricing(), Decimal("2000"))

        self.assertIsNone(breakdown.zone)
        self.assertEqual(breakdown.base_price, Decimal("200.00"))
        self.assertEqual(breakdown.distance_price, Decimal("600.00"))
        self.assertEqual(breakdown.final_price, Decimal("800.00"))

    def test_minimum_charge_applies(self):
        breakdown = compute_fee(Decimal("1"), [], make_pricing(min_delivery_charge=Decimal("400.00")), Decimal("0"))
        self.assertEqual(breakdown.subtotal_fee, Decimal("400.00"))
        self.assertEqual(breakdown.final_price, Decimal("400.00"))

    def test_free_delivery_threshold_zeroes_fee_with_or_without_zone(self):
        zones = [make_zone("A", "0", "5", "500")]
        for distance in (Decimal("0"), Decimal("3"), Decimal("12"), Decimal("50")):
            breakdown = compute_fee(distance, zones, make_pricing(), Decimal("5000"))
            self.assertTrue(breakdown.free_delivery_applied)
            self.assertEqual(breakdown.final_price, Decimal("0.00"))

    def test_zero_threshold_makes_every_delivery_free(self):
        pricing = make_pricing(free_delivery_threshold=Decimal("0"))
        for subtotal in (Decimal("0"), Decimal("2000")):
            breakdown = compute_fee(Decimal("12"), [], pricing, subtotal)
            self.assertTrue(breakdown.free_delivery_applied)
            self.assertEqual(breakdown.final_price, Decimal("0.00"))

    def test_subtotal_just_below_threshold_pays(self):
        breakdown = compute_fee(Decimal("12"), [], make_pricing(), Decimal("4999.99"))
        self.assertFalse(breakdown.free_delivery_applied)
        self.assertEqual(breakdown.final_price, Decimal("800.00"))

    def test_percentage_promotion_is_capped(self):
        breakdown = compute_fee(Decimal("26"), [], make_pricing(), Decimal("2000"), promotion=make_promotion())

        self.assertEqual(breakdown.fee_before_discount, Decimal("1500.00"))
        self.assertEqual(breakdown.promotion_discount, Decimal("100.00"))
        self.assertEqual(breakdown.final_price, Decimal("1400.00"))

    def test_fixed_discount_never_makes_fee_negative(self):
        promotion = make_promotion(discount_type="fixed_amount", discount_value=Decimal("5000"), max_discount_amount=None)
        breakdown = compute_fee(Decimal("12"), [], make_pricing(), Decimal("0"), promotion=promotion)
        self.assertEqual(breakdown.promotion_discount, Decimal("800.00"))
        self.assertEqual(breakdown.final_price, Decimal("0.00"))

    def test_distance_beyond_maximum_is_rejected(self):
        with self.assertRaises(DistanceExceeded):
            compute_fee(Decimal("50.01"), [], make_pricing(), Decimal("0"))

    def test_negative_subtotal_is_rejected(self):
        with self.assertRaises(ValidationError):
            compute_fee(Decimal("1"), [], make_pricing(), Decimal("-1"))


class DeliveryFeeServiceInMemoryTests(SimpleTestCase):
    def build_service(self, promotions=()):
        self.repository = InMemoryDeliveryRepository(
            pricing=make_pricing(),
            zones=[make_zone("A", "0", "5", "500")],
            promotions=promotions,
        )
        return DeliveryFeeService(repository=self.repository)

    def test_quote_appends_calculate_log(self):
        service = self.build_service()
        breakdown, log = service.quote(distance=Decimal("3"), order_subtotal=Decimal("2000"))

        self.assertEqual(breakdown.final_price, Decimal("500.00"))
        self.assertEqual(len(self.repository.logs), 1)
        self.assertEqual(log.action, DeliveryLogAction.CALCULATE)
        self.assertEqual(log.final_price, Decimal("500.00"))
        self.assertEqual(log.details["zone_name"], "A")

    def test_redeemed_promotion_logs_promotion_applied(self):
        promotion = make_promotion(usage_limit=5)
        service = self.build_service(promotions=[promotion])
        breakdown, log = service.quote(
            distance=Decimal("26"),
            order_subtotal=Decimal("2000"),
            promo_code="save10",
            redeem=True,
            order=SimpleNamespace(id="order-1"),
        )

        self.assertEqual(breakdown.final_price, Decimal("1400.00"))
        self.assertEqual(log.action, DeliveryLogAction.PROMOTION_APPLIED)
        self.assertEqual(log.promotion_discount, Decimal("100.00"))
        self.assertEqual(promotion.usage_count, 1)

    def test_redeeming_twice_for_one_order_consumes_once(self):
        promotion = make_promotion(usage_limit=1)
        service = self.build_service(promotions=[promotion])
        order = SimpleNamespace(id="order-1")

        first, first_log = service.quote(
            distance=Decimal("26"), order_subtotal=Decimal("2000"), promo_code="SAVE10", redeem=True, order=order
        )
        second, second_log = service.quote(
            distance=Decimal("26"), order_subtotal=Decimal("2000"), promo_code="SAVE10", redeem=True, order=order
        )

        self.assertEqual(promotion.usage_count, 1)
        self.assertEqual(second.final_price, first.final_price)
        self.assertEqual(first_log.action, DeliveryLogAction.PROMOTION_APPLIED)
        self.assertEqual(second_log.action, DeliveryLogAction.CALCULATE)
        self.assertFalse(second_log.details["promotion_redeemed"])

        with self.assertRaises(InvalidPromotion) as ctx:
            service.quote(
                distance=Decimal("26"),
                order_subtotal=Decimal("2000"),
                promo_code="SAVE10",
                redeem=True,
                order=SimpleNamespace(id="order-2"),
            )
        self.assertEqual(ctx.exception.reason, InvalidPromotion.EXHAUSTED)

    def test_redeem_requires_an_order(self):
        promotion = make_promotion(usage_limit=5)
        service = self.build_service(promotions=[promotion])
        with self.assertRaises(ValidationError):
            service.quote(distance=Decimal("26"), order_subtotal=Decimal("2000"), promo_code="SAVE10", redeem=True)

        self.assertEqual(promotion.usage_count, 0)
        self.assertEqual(self.repository.logs, [])

    def test_free_delivery_does_not_consume_promotion(self):
        promotion = make_promotion(usage_limit=5)
        service = self.build_service(promotions=[promotion])
        breakdown, log = service.quote(
            distance=Decimal("26"),
            order_subtotal=Decimal("5000"),
            promo_code="SAVE10",
            redeem=True,
            order=SimpleNamespace(id="order-1"),
        )

        self.assertTrue(breakdown.free_delivery_applied)
        self.assertEqual(breakdown.final_price, Decimal("0.00"))
        self.assertEqual(breakdown.promotion_discount, Decimal("0.00"))
        self.assertEqual(promotion.usage_count, 0)
        self.assertEqual(log.action, DeliveryLogAction.CALCULATE)

    def test_plain_quote_does_not_consume_promotion(self):
        promotion = make_promotion(usage_limit=1)
        service = self.build_service(promotions=[promotion])
        service.quote(distance=Decimal("26"), order_subtotal=Decimal("2000"), promo_code="SAVE10")
        self.assertEqual(promotion.usage_count, 0)

    def test_invalid_promotion_is_logged_then_raised(self):
        service = self.build_service()
        with self.assertRaises(InvalidPromotion) as ctx:
            service.quote(distance=Decimal("3"), order_subtotal=Decimal("2000"), promo_code="NOPE")

        self.assertEqual(ctx.exception.reason, InvalidPromotion.NOT_FOUND)
        self.assertEqual(len(self.repository.logs), 1)
        self.assertEqual(self.repository.logs[0].details["promotion_reason"], "not_found")
        self.assertEqual(self.repository.logs[0].final_price, Decimal("500.00"))

    def test_below_minimum_promotion_is_rejected(self):
        promotion = make_promotion(min_order_amount=Decimal("3000"))
        service = self.build_service(promotions=[promotion])
        with self.assertRaises(InvalidPromotion) as ctx:
            service.quote(distance=Decimal("26"), order_subtotal=Decimal("2000"), promo_code="SAVE10")
        self.assertEqual(ctx.exception.reason, InvalidPromotion.BELOW_MINIMUM)

    def test_distance_exceeded_is_logged_then_raised(self):
        service = self.build_service()
        with self.assertRaises(DistanceExceeded):
            service.quote(distance=Decimal("80"), order_subtotal=Decimal("0"))

        self.assertEqual(len(self.repository.logs), 1)
        self.assertIsNone(self.repository.logs[0].final_price)
        self.assertEqual(self.repository.logs[0].details["error"], "distance_exceeded")

    def test_non_numeric_distance_is_rejected(self):
        service = self.build_service()
        with self.assertRaises(ValidationError):
            service.quote(distance="far", order_subtotal=Decimal("0"))
        self.assertEqual(self.repository.logs, [])


def distance_matrix_response(meters=3500, seconds=600, status="OK"):
    response = mock.Mock()
    response.ok = True
    response.status_code = 200
    element = {"status": status}
    if status == "OK":
        element.update(
            {
                "distance": {"value": meters, "text": f"{meters / 1000} km"},
                "duration": {"value": seconds, "text": f"{seconds // 60} mins"},
            }
        )
    response.json.return_value = {"status": "OK", "rows": [{"elements": [element]}]}
    return response


class DeliveryApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123", role="CUSTOMER")
        self.other = User.objects.create_user(username="other", password="other123", role="CUSTOMER")

        pricing = DeliveryPricing.load()
        pricing.default_base_price = Decimal("200.00")
        pricing.default_price_per_km = Decimal("50.00")
        pricing.min_delivery_charge = Decimal("300.00")
        pricing.max_delivery_distance = Decimal("50.00")
        pricing.free_delivery_threshold = Decimal("5000.00")
        pricing.save()

        self.zone = DeliveryZone.objects.create(
            name="Zone A", min_distance=Decimal("0"), max_distance=Decimal("5"), price=Decimal("500.00")
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_quote_requires_authentication(self):
        response = self.client.post("/api/v1/delivery/quote/", {"distance": "3"}, format="json")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(DeliveryLog.objects.count(), 0)

    def test_quote_uses_zone_and_logs(self):
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/delivery/quote/",
            {"distance": "3", "order_subtotal": "2000"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["final_price"], "500.00")
        self.assertEqual(response.data["zone"]["name"], "Zone A")
        log = DeliveryLog.objects.get(pk=response.data["log_id"])
        self.assertEqual(log.user, self.customer)
        self.assertEqual(log.zone, self.zone)
        self.assertEqual(log.action, DeliveryLogAction.CALCULATE)

    def test_quote_default_formula_and_free_delivery(self):
        self.auth_as("customer", "customer123")
        default = self.client.post("/api/v1/delivery/quote/", {"distance": "12", "order_subtotal": "2000"}, format="json")
        free = self.client.post("/api/v1/delivery/quote/", {"distance": "12", "order_subtotal": "5000"}, format="json")

        self.assertEqual(default.data["final_price"], "800.00")
        self.assertIsNone(default.data["zone"])
        self.assertEqual(free.data["final_price"], "0.00")
        self.assertTrue(free.data["free_delivery_applied"])

    @mock.patch("apps.delivery.distance.requests.get")
    def test_quote_can_measure_route(self, mocked_get):
        mocked_get.return_value = distance_matrix_response(meters=3500)
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/delivery/quote/",
            {"origin": "Shop", "destination": "Home", "order_subtotal": "100"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["distance_km"], "3.50")
        self.assertEqual(response.data["final_price"], "500.00")
        self.assertEqual(response.data["route"]["distanceKm"], 3.5)

    def test_quote_without_distance_or_route_is_rejected(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/delivery/quote/", {"order_subtotal": "100"}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_quote_distance_exceeded(self):
        self.auth_as("customer", "customer123")
        response = self.client.post("/api/v1/delivery/quote/", {"distance": "51"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "distance_exceeded")
        self.assertEqual(DeliveryLog.objects.filter(user=self.customer).count(), 1)

    def test_quote_with_unknown_promotion_reports_reason(self):
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/delivery/quote/",
            {"distance": "3", "order_subtotal": "2000", "promo_code": "NOPE"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_promotion")
        self.assertEqual(response.data["reason"], "not_found")
        log = DeliveryLog.objects.get(user=self.customer)
        self.assertEqual(log.details["promotion_reason"], "not_found")

    def create_promotion(self, usage_limit):
        now = timezone.now()
        return Promotion.objects.create(
            code="SAVE10",
            name="Save 10",
            discount_type="percentage",
            discount_value=Decimal("10"),
            max_discount_amount=Decimal("100.00"),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1),
            usage_limit=usage_limit,
        )

    def create_order(self, number, customer=None):
        return Order.objects.create(
            order_number=number,
            customer=customer or self.customer,
            payment_method="wallet",
            subtotal=Decimal("2000.00"),
            total_amount=Decimal("2000.00"),
        )

    def test_repeated_redeem_for_one_order_uses_promotion_once(self):
        promotion = self.create_promotion(usage_limit=3)
        order = self.create_order("ORD-200")
        self.auth_as("customer", "customer123")
        payload = {
            "distance": "26",
            "order_subtotal": "2000",
            "promo_code": "save10",
            "redeem": True,
            "order": str(order.id),
        }

        responses = [self.client.post("/api/v1/delivery/quote/", payload, format="json") for _ in range(4)]

        self.assertEqual([response.status_code for response in responses], [200, 200, 200, 200])
        self.assertEqual(responses[0].data["promotion_discount"], "100.00")
        self.assertEqual(responses[3].data["final_price"], "1400.00")
        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 1)
        order.refresh_from_db()
        self.assertEqual(order.promotion, promotion)
        self.assertEqual(DeliveryLog.objects.filter(action=DeliveryLogAction.PROMOTION_APPLIED).count(), 1)

    def test_redeeming_promotion_stops_at_usage_limit(self):
        promotion = self.create_promotion(usage_limit=1)
        first_order = self.create_order("ORD-201")
        second_order = self.create_order("ORD-202")
        self.auth_as("customer", "customer123")
        payload = {"distance": "26", "order_subtotal": "2000", "promo_code": "save10", "redeem": True}

        first = self.client.post("/api/v1/delivery/quote/", {**payload, "order": str(first_order.id)}, format="json")
        second = self.client.post("/api/v1/delivery/quote/", {**payload, "order": str(second_order.id)}, format="json")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data["final_price"], "1400.00")
        self.assertEqual(second.status_code, 400)
        self.assertEqual(second.data["reason"], "exhausted")
        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 1)
        second_order.refresh_from_db()
        self.assertIsNone(second_order.promotion)

    def test_redeem_needs_callers_own_order(self):
        promotion = self.create_promotion(usage_limit=3)
        foreign_order = self.create_order("ORD-203", customer=self.other)
        self.auth_as("customer", "customer123")
        payload = {"distance": "26", "order_subtotal": "2000", "promo_code": "save10", "redeem": True}

        without_order = self.client.post("/api/v1/delivery/quote/", payload, format="json")
        foreign = self.client.post("/api/v1/delivery/quote/", {**payload, "order": str(foreign_order.id)}, format="json")

        self.assertEqual(without_order.status_code, 400)
        self.assertIn("order", without_order.data["fields"])
        self.assertEqual(foreign.status_code, 404)
        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 0)
        self.assertFalse(DeliveryLog.objects.exists())

    def test_zone_writes_are_admin_only_and_audited(self):
        self.auth_as("customer", "customer123")
        listed = self.client.get("/api/v1/delivery/zones/")
        forbidden = self.client.post(
            "/api/v1/delivery/zones/",
            {"name": "Zone B", "min_distance": "5", "max_distance": "10", "price": "800.00"},
            format="json",
        )
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(listed.data["count"], 1)
        self.assertEqual(forbidden.status_code, 403)

        self.auth_as("admin", "admin123")
        created = self.client.post(
            "/api/v1/delivery/zones/",
            {"name": "Zone B", "min_distance": "5", "max_distance": "10", "price": "800.00"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        zone_id = created.data["id"]

        updated = self.client.patch(f"/api/v1/delivery/zones/{zone_id}/", {"price": "850.00"}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.data["price"], "850.00")

        deleted = self.client.delete(f"/api/v1/delivery/zones/{zone_id}/")
        self.assertEqual(deleted.status_code, 204)

        self.assertTrue(AuditLog.objects.filter(action="delivery.zone.create", entity_id=zone_id).exists())
        self.assertTrue(AuditLog.objects.filter(action="delivery.zone.update", entity_id=zone_id).exists())
        self.assertTrue(AuditLog.objects.filter(action="delivery.zone.delete", entity_id=zone_id).exists())

    def test_zone_band_must_be_ordered(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/delivery/zones/",
            {"name": "Broken", "min_distance": "10", "max_distance": "5", "price": "100.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("max_distance", response.data["fields"])

    def test_pricing_read_for_all_write_for_admin(self):
        self.auth_as("customer", "customer123")
        read = self.client.get("/api/v1/delivery/pricing/")
        write = self.client.patch("/api/v1/delivery/pricing/", {"default_price_per_km": "60.00"}, format="json")
        self.assertEqual(read.status_code, 200)
        self.assertEqual(read.data["default_base_price"], "200.00")
        self.assertEqual(write.status_code, 403)

        self.auth_as("admin", "admin123")
        updated = self.client.patch("/api/v1/delivery/pricing/", {"default_price_per_km": "60.00"}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.data["default_price_per_km"], "60.00")
        self.assertEqual(updated.data["updated_by"], "admin")
        self.assertEqual(DeliveryPricing.objects.count(), 1)

        audit = AuditLog.objects.get(action="delivery.pricing.update")
        self.assertEqual(audit.payload["before"], {"default_price_per_km": "50.00"})
        self.assertEqual(audit.payload["after"], {"default_price_per_km": "60.00"})

    def test_logs_are_scoped_to_caller_unless_admin(self):
        DeliveryLog.objects.create(action=DeliveryLogAction.CALCULATE, user=self.customer, final_price=Decimal("500.00"))
        DeliveryLog.objects.create(action=DeliveryLogAction.CALCULATE, user=self.other, final_price=Decimal("800.00"))

        self.auth_as("customer", "customer123")
        own = self.client.get("/api/v1/delivery/logs/")
        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.data["count"], 1)
        self.assertEqual(own.data["results"][0]["final_price"], "500.00")

        self.auth_as("admin", "admin123")
        everything = self.client.get("/api/v1/delivery/logs/")
        self.assertEqual(everything.data["count"], 2)

    def test_logs_have_no_write_surface(self):
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/delivery/logs/", {"action": "calculate"}, format="json")
        self.assertEqual(response.status_code, 405)

    def test_admin_adjusts_order_delivery_fee(self):
        order = Order.objects.create(
            order_number="ORD-100",
            customer=self.customer,
            payment_method="cash_on_delivery",
            subtotal=Decimal("2000.00"),
            delivery_fee=Decimal("800.00"),
            total_amount=Decimal("2800.00"),
        )

        self.auth_as("customer", "customer123")
        forbidden = self.client.post(
            "/api/v1/delivery/adjustments/",
            {"order": str(order.id), "adjusted_price": "500.00", "reason": "Courier shortcut"},
            format="json",
        )
        self.assertEqual(forbidden.status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/delivery/adjustments/",
            {"order": str(order.id), "adjusted_price": "500.00", "reason": "Courier shortcut"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["original_price"], "800.00")
        self.assertEqual(response.data["adjustment_amount"], "-300.00")
        order.refresh_from_db()
        self.assertEqual(order.delivery_fee, Decimal("500.00"))
        self.assertEqual(order.total_amount, Decimal("2500.00"))
        self.assertEqual(DeliveryAdjustment.objects.filter(order=order).count(), 1)
        log = DeliveryLog.objects.get(order=order, action=DeliveryLogAction.ADJUSTMENT)
        self.assertEqual(log.adjustment_amount, Decimal("-300.00"))
        self.assertTrue(AuditLog.objects.filter(action="delivery.adjust", entity_id=str(order.id)).exists())


class CalculateDistanceApiTests(APITestCase):
    def setUp(self):
        self.customer = User.objects.create_user(username="customer", password="customer123", role="CUSTOMER")
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "customer", "password": "customer123"},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    @mock.patch("apps.delivery.distance.requests.get")
    def test_returns_distance_and_duration(self, mocked_get):
        mocked_get.return_value = distance_matrix_response(meters=12400, seconds=1500)
        response = self.client.post(
            "/api/v1/calculate-distance/",
            {"origin": "Ikeja, Lagos", "destination": "Lekki, Lagos"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["distanceKm"], 12.4)
        self.assertEqual(response.data["durationSeconds"], 1500)
        self.assertEqual(mocked_get.call_count, 1)
        self.assertEqual(mocked_get.call_args.kwargs["params"]["origins"], "Ikeja, Lagos")

    @mock.patch("apps.delivery.distance.requests.get")
    def test_unreachable_address_is_a_validation_error(self, mocked_get):
        mocked_get.return_value = distance_matrix_response(status="NOT_FOUND")
        response = self.client.post(
            "/api/v1/calculate-distance/",
            {"origin": "Nowhere", "destination": "Lekki"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("NOT_FOUND", response.data["error"])

    @mock.patch("apps.delivery.distance.requests.get")
    def test_provider_outage_is_upstream_error(self, mocked_get):
        mocked_get.side_effect = requests.exceptions.ConnectionError("boom")
        response = self.client.post(
            "/api/v1/calculate-distance/",
            {"origin": "Ikeja", "destination": "Lekki"},
            format="json",
        )
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data["code"], "upstream_provider_error")
        self.assertEqual(mocked_get.call_count, 1)

    @mock.patch("apps.delivery.distance.requests.get")
    def test_missing_destination_never_calls_provider(self, mocked_get):
        response = self.client.post("/api/v1/calculate-distance/", {"origin": "Ikeja"}, format="json")
        self.assertEqual(response.status_code, 400)
        mocked_get.assert_not_called()

    @mock.patch("apps.delivery.distance.requests.get")
    def test_coordinate_object_is_rejected_before_provider_call(self, mocked_get):
        response = self.client.post(
            "/api/v1/calculate-distance/",
            {"origin": {"lat": 6.45, "lng": 3.39}, "destination": "Lagos"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("origin", response.data["fields"])
        mocked_get.assert_not_called()

    @mock.patch("apps.delivery.distance.requests.get")
    def test_client_rejects_non_string_addresses(self, mocked_get):
        client = GoogleDistanceClient(api_key="maps-key")
        with self.assertRaises(ValidationError):
            client.measure(6.45, "Lagos")
        with self.assertRaises(ValidationError):
            client.measure("Ikeja", ["Lekki"])
        mocked_get.assert_not_called()
