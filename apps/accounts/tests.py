from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser, Group
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.accounts.models import UserRole
from apps.common.permissions import has_capability, resolve_role

User = get_user_model()


class RoleResolutionTests(TestCase):
    def test_seed_roles_creates_one_group_per_role(self):
        out = StringIO()
        call_command("seed_roles", stdout=out)
        call_command("seed_roles", stdout=out)

        self.assertEqual(set(Group.objects.values_list("name", flat=True)), set(UserRole.values))
        self.assertIn("ADMIN: exists", out.getvalue())

    def test_group_membership_takes_precedence_over_role_field(self):
        call_command("seed_roles", stdout=StringIO())
        user = User.objects.create_user(username="support", password="support123", role=UserRole.CUSTOMER)
        self.assertEqual(resolve_role(user), UserRole.CUSTOMER)
        self.assertFalse(has_capability(user, "orders.manage"))

        user.groups.add(Group.objects.get(name=UserRole.ADMIN))
        self.assertEqual(resolve_role(user), UserRole.ADMIN)
        self.assertTrue(has_capability(user, "orders.manage"))

    def test_anonymous_has_no_capabilities(self):
        self.assertFalse(has_capability(AnonymousUser(), "delivery.view"))
        self.assertFalse(has_capability(None, "delivery.view"))

    def test_display_name_falls_back_to_username(self):
        self.assertEqual(User(username="bola").display_name, "bola")
        self.assertEqual(User(username="bola", first_name="Bola", last_name="Ade").display_name, "Bola Ade")
        self.assertEqual(User(username="bola", full_name="Bola A.").display_name, "Bola A.")


class TokenAuthTests(APITestCase):
    def setUp(self):
        User.objects.create_user(username="customer", password="customer123", role=UserRole.CUSTOMER)

    def test_token_pair_is_issued(self):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "customer", "password": "customer123"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

    def test_bad_credentials_use_error_envelope(self):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "customer", "password": "wrong"},
            format="json",
        )
        self.assertEqual(response.status_code, 401)
        self.assertIn("error", response.data)
        self.assertIn("code", response.data)

    def test_invalid_bearer_token_is_unauthorized(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")
        response = self.client.get("/api/v1/wallet/")
        self.assertEqual(response.status_code, 401)
