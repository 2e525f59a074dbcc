from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from core.models import AuditLog, Partner, SystemSettings


class PartnerAndSettingsTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.staff = self.user_model.objects.create_user(
            username="core-staff",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.client.force_authenticate(user=self.staff)

        Partner.objects.create(name="Builder Co", type=Partner.Type.CLIENT)
        Partner.objects.create(name="Old Client", type=Partner.Type.CLIENT, is_active=False)
        Partner.objects.create(name="Fast Haulage", type=Partner.Type.TRANSPORT)

    def test_partner_list_is_paginated_and_filterable(self):
        response = self.client.get("/api/v1/partners/", {"type": "client", "active": "true"})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual([item["name"] for item in payload["results"]], ["Builder Co"])

    def test_settings_fall_back_to_default_rates(self):
        response = self.client.get("/api/v1/settings/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["cgst_rate"]), Decimal("9"))
        self.assertEqual(Decimal(response.json()["igst_rate"]), Decimal("0"))
        self.assertFalse(SystemSettings.objects.exists())

    def test_settings_row_is_a_singleton(self):
        SystemSettings.objects.create(company_name="Brick Works", cgst_rate=Decimal("6"))
        SystemSettings(company_name="Brick Works Ltd").save()

        self.assertEqual(SystemSettings.objects.count(), 1)
        self.assertEqual(SystemSettings.load().company_name, "Brick Works Ltd")


class RolePermissionCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.staff = self.user_model.objects.create_user(
            username="staff-core",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.admin = self.user_model.objects.create_user(
            username="admin-core",
            password="pass1234",
            role=self.user_model.Role.ADMIN,
        )
        AuditLog.objects.create(action="invoice.create", entity="invoice", actor=self.admin, request_id="req-1")

    def test_staff_cannot_read_audit_logs_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.staff)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_admin_can_filter_and_export_audit_logs(self):
        self.client.force_authenticate(user=self.admin)

        listed = self.client.get("/api/v1/admin/audit-logs/", {"entity": "invoice"})
        exported = self.client.get("/api/v1/admin/audit-logs/export/")

        self.assertEqual(listed.status_code, 200)
        self.assertEqual(listed.json()["count"], 1)
        self.assertEqual(listed.json()["results"][0]["actor_username"], "admin-core")
        self.assertEqual(exported.status_code, 200)
        self.assertIn("invoice.create", exported.content.decode())

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.get()

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.manager = self.user_model.objects.create_user(
            username="yard-manager",
            email="Manager@Example.com",
            password="pass1234",
            role=self.user_model.Role.MANAGER,
        )

    def test_token_carries_role_claim(self):
        response = self.client.post(
            "/api/v1/token/", {"username": "yard-manager", "password": "pass1234"}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        token = AccessToken(response.json()["access"])
        self.assertEqual(token["role"], "manager")
        self.assertFalse(token["is_superuser"])

    def test_token_accepts_email_login(self):
        response = self.client.post(
            "/api/v1/token/", {"username": "manager@example.com", "password": "pass1234"}, format="json"
        )

        self.assertEqual(response.status_code, 200)

    def test_wrong_password_uses_error_envelope(self):
        response = self.client.post(
            "/api/v1/token/", {"username": "yard-manager", "password": "nope"}, format="json"
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")


class HealthTests(TestCase):
    def test_health_endpoints_are_public(self):
        client = APIClient()

        self.assertEqual(client.get("/api/v1/healthz/").json()["status"], "ok")
        self.assertEqual(client.get("/api/v1/readyz/").json()["status"], "ready")
