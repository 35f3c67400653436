# users/tests/test_me.py

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from permissions.roles import (
    ALL_CAPABILITIES,
    CAP_INVENTORY_ADJUST,
    CAP_INVOICE_EDIT,
    CAP_SALES_APPROVE,
    effective_capabilities_for,
)

User = get_user_model()


class MeEndpointTests(TestCase):
    """
    GUARANTEES:
    - /api/auth/me/ needs authentication
    - The profile lists exactly the capabilities the role grants
    """

    def setUp(self):
        self.client = APIClient()

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/auth/me/").status_code, 401)

    def test_profile_reports_role_capabilities(self):
        user = User.objects.create_user(email="ayu@example.com", password="pass12345", role="accounts")
        self.client.force_authenticate(user)

        response = self.client.get("/api/auth/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["role"], "accounts")
        self.assertIn(CAP_INVOICE_EDIT, response.data["capabilities"])
        self.assertNotIn(CAP_SALES_APPROVE, response.data["capabilities"])


class RoleCapabilityTests(TestCase):
    def test_manager_cannot_adjust_stock(self):
        manager = User.objects.create_user(email="m@example.com", password="pass12345", role="manager")
        self.assertNotIn(CAP_INVENTORY_ADJUST, effective_capabilities_for(manager))

    def test_superuser_gets_everything(self):
        root = User.objects.create_superuser(email="root@example.com", password="pass12345")
        self.assertEqual(effective_capabilities_for(root), ALL_CAPABILITIES)

    def test_username_derived_from_email(self):
        user = User.objects.create_user(email="Budi@Example.com", password="pass12345")
        self.assertEqual(user.username, "budi")
        self.assertEqual(user.role, User.Role.SALES)
