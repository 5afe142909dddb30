from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.accounts.models import Vendor
from apps.audit.models import AuditLog
from apps.orders.models import Order, OrderItem, OrderStatus, PaymentStatus
from apps.wallet.models import WalletTransaction
from apps.wallet.services import credit

User = get_user_model()


class OrderApiTestCase(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(
            username="customer",
            password="customer123",
            role="CUSTOMER",
            email="customer@example.com",
            full_name="Ada Obi",
            phone="+2348000000000",
        )
        self.vendor_user = User.objects.create_user(username="vendor", password="vendor123", role="VENDOR")
        self.vendor = Vendor.objects.create(user=self.vendor_user, business_name="Mama Put Kitchen", is_approved=True)

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def create_order(self, number="ORD-001", **overrides):
        values = {
            "order_number": number,
            "customer": self.customer,
            "vendor": self.vendor_user,
            "payment_method": "wallet",
            "subtotal": Decimal("2000.00"),
            "delivery_fee": Decimal("500.00"),
            "total_amount": Decimal("2500.00"),
        }
        values.update(overrides)
        return Order.objects.create(**values)


class AdminOrdersTests(OrderApiTestCase):
    def test_requires_admin(self):
        self.assertEqual(self.client.get("/api/v1/admin-orders/").status_code, 401)

        self.auth_as("customer", "customer123")
        self.assertEqual(self.client.get("/api/v1/admin-orders/").status_code, 403)

        order = self.create_order()
        forbidden = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {"status": "cancelled"}, format="json")
        self.assertEqual(forbidden.status_code, 403)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_lists_orders_with_customer_vendor_and_items(self):
        order = self.create_order()
        OrderItem.objects.create(
            order=order, product_name="Jollof rice", quantity=2, unit_price=Decimal("1000.00"), subtotal=Decimal("2000.00")
        )
        self.create_order(number="ORD-002", vendor=None, status=OrderStatus.DELIVERED)

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/admin-orders/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["order_number"] for row in response.data], ["ORD-002", "ORD-001"])
        detailed = response.data[1]
        self.assertEqual(
            detailed["customer"],
            {"id": self.customer.pk, "full_name": "Ada Obi", "email": "customer@example.com", "phone": "+2348000000000"},
        )
        self.assertEqual(detailed["vendor"]["business_name"], "Mama Put Kitchen")
        self.assertEqual(detailed["items"][0]["product_name"], "Jollof rice")
        self.assertEqual(response.data[0]["vendor"], {"id": None, "business_name": "Unknown"})

        filtered = self.client.get("/api/v1/admin-orders/?status=delivered")
        self.assertEqual(len(filtered.data), 1)

    def test_forward_status_update_is_stamped_and_audited(self):
        order = self.create_order()
        self.auth_as("admin", "admin123")
        response = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {"status": "confirmed"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "confirmed")
        self.assertIsNotNone(response.data["confirmed_at"])
        audit = AuditLog.objects.get(action="orders.update", entity_id=str(order.id))
        self.assertEqual(audit.payload["status"], {"from": "pending", "to": "confirmed", "override": False})
        self.assertEqual(audit.actor, self.admin)

    def test_backwards_status_is_allowed_but_flagged(self):
        order = self.create_order(status=OrderStatus.DELIVERED)
        self.auth_as("admin", "admin123")
        response = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {"status": "pending"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "pending")
        audit = AuditLog.objects.get(action="orders.update", entity_id=str(order.id))
        self.assertTrue(audit.payload["status"]["override"])

    def test_marking_paid_does_not_touch_wallet(self):
        order = self.create_order(payment_method="cash_on_delivery")
        self.auth_as("admin", "admin123")
        response = self.client.put(
            f"/api/v1/admin-orders/?id={order.id}", {"payment_status": "completed"}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["payment_status"], "completed")
        self.assertFalse(WalletTransaction.objects.exists())

        reverted = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {"payment_status": "pending"}, format="json")
        self.assertEqual(reverted.status_code, 400)
        order.refresh_from_db()
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)

    def test_rejects_unknown_fields_and_values(self):
        order = self.create_order()
        self.auth_as("admin", "admin123")

        extra = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {"total_amount": "1.00"}, format="json")
        unknown = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {"status": "teleported"}, format="json")
        empty = self.client.put(f"/api/v1/admin-orders/?id={order.id}", {}, format="json")

        self.assertEqual(extra.status_code, 400)
        self.assertEqual(unknown.status_code, 400)
        self.assertEqual(empty.status_code, 400)
        order.refresh_from_db()
        self.assertEqual(order.total_amount, Decimal("2500.00"))
        self.assertFalse(AuditLog.objects.filter(action="orders.update").exists())

    def test_put_requires_known_order(self):
        self.auth_as("admin", "admin123")
        missing = self.client.put("/api/v1/admin-orders/", {"status": "confirmed"}, format="json")
        bogus = self.client.put("/api/v1/admin-orders/?id=not-a-uuid", {"status": "confirmed"}, format="json")
        unknown = self.client.put(
            "/api/v1/admin-orders/?id=00000000-0000-0000-0000-000000000000", {"status": "confirmed"}, format="json"
        )

        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.data["error"], "Missing order id")
        self.assertEqual(bogus.status_code, 404)
        self.assertEqual(unknown.status_code, 404)

    def test_delete_is_audited(self):
        order = self.create_order()
        self.auth_as("admin", "admin123")
        response = self.client.delete(f"/api/v1/admin-orders/?id={order.id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"success": True})
        self.assertFalse(Order.objects.filter(pk=order.pk).exists())
        audit = AuditLog.objects.get(action="orders.delete", entity_id=str(order.id))
        self.assertEqual(audit.payload["order_number"], "ORD-001")


class PayWithWalletTests(OrderApiTestCase):
    def test_pays_order_once(self):
        credit(user=self.customer, amount="3000.00", description="Top up")
        order = self.create_order()
        self.auth_as("customer", "customer123")

        first = self.client.post(f"/api/v1/orders/{order.id}/pay-with-wallet/")
        second = self.client.post(f"/api/v1/orders/{order.id}/pay-with-wallet/")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data["order"]["payment_status"], "completed")
        self.assertEqual(first.data["wallet"]["balance_after"], "500.00")
        self.assertEqual(second.status_code, 200)
        self.assertIsNone(second.data["wallet"])

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("500.00"))
        self.assertEqual(WalletTransaction.objects.filter(reference_id=f"order:{order.id}").count(), 1)

    def test_insufficient_balance_leaves_order_unpaid(self):
        credit(user=self.customer, amount="1000.00", description="Top up")
        order = self.create_order()
        self.auth_as("customer", "customer123")

        response = self.client.post(f"/api/v1/orders/{order.id}/pay-with-wallet/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_funds")
        order.refresh_from_db()
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.wallet_balance, Decimal("1000.00"))

    def test_only_wallet_orders_can_be_paid_from_wallet(self):
        credit(user=self.customer, amount="3000.00", description="Top up")
        order = self.create_order(payment_method="cash_on_delivery")
        self.auth_as("customer", "customer123")

        response = self.client.post(f"/api/v1/orders/{order.id}/pay-with-wallet/")
        self.assertEqual(response.status_code, 400)

    def test_other_customers_order_is_not_found(self):
        User.objects.create_user(username="stranger", password="stranger123", role="CUSTOMER")
        order = self.create_order()
        self.auth_as("stranger", "stranger123")

        response = self.client.post(f"/api/v1/orders/{order.id}/pay-with-wallet/")
        self.assertEqual(response.status_code, 404)

    def test_vendor_cannot_pay_orders(self):
        order = self.create_order()
        self.auth_as("vendor", "vendor123")
        response = self.client.post(f"/api/v1/orders/{order.id}/pay-with-wallet/")
        self.assertEqual(response.status_code, 403)
