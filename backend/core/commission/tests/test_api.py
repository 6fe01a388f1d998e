import csv
import io
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings

from commission.models import CommissionGrid, CommissionRecord, CommissionTier, GridRate
from commission.services.export import CSV_COLUMNS
from commission.tests.fixtures import create_channel, create_grid, create_policy
from customers.models import Company, CompanyMembership
from insurance_core.models import Policy
from ledger.models import LedgerEntry


@override_settings(ALLOWED_HOSTS=["testserver", ".example.com"])
class CommissionAPITests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.company = Company.objects.create(name="Acme", tenant_code="acme", subdomain="acme")
        self.other = Company.objects.create(name="Beta", tenant_code="beta", subdomain="beta")
        self.user_member = User.objects.create_user(username="member", password="pass-123")
        self.user_manager = User.objects.create_user(username="manager", password="pass-123")
        self.user_owner = User.objects.create_user(username="owner", password="pass-123")
        for user, role in (
            (self.user_member, CompanyMembership.ROLE_MEMBER),
            (self.user_manager, CompanyMembership.ROLE_MANAGER),
            (self.user_owner, CompanyMembership.ROLE_OWNER),
        ):
            CompanyMembership.objects.create(company=self.company, user=user, role=role)

        self.channel = create_channel(self.company)
        create_grid(self.company, provider="ICICI Lombard", rates=[{"base_rate": Decimal("10")}])
        create_policy(self.company, "MOT-001", premium_amount=Decimal("50000.00"))
        create_policy(
            self.company,
            "MOT-002",
            source_type="agent",
            source_id=self.channel["agent"].id,
            customer_name="Anita Desai",
        )
        create_policy(self.company, "HLT-001", product_type="health")
        create_policy(self.other, "BETA-001")

    def test_member_can_calculate(self):
        self.client.force_login(self.user_member)
        response = self.client.get("/api/commissions/calculate/", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 200)

        payload = response.json()
        by_number = {row["policy_number"]: row for row in payload["results"]}
        self.assertEqual(set(by_number), {"MOT-001", "MOT-002", "HLT-001"})
        self.assertEqual(by_number["MOT-001"]["insurer_commission"], "5000.00")
        self.assertEqual(by_number["MOT-001"]["broker_share"], "5000.00")
        self.assertEqual(by_number["MOT-002"]["agent_commission"], "7000.00")
        self.assertEqual(by_number["MOT-002"]["source_label"], "External (Asha Agent)")
        self.assertEqual(by_number["MOT-001"]["source_label"], "Direct")
        self.assertEqual(by_number["HLT-001"]["status"], "no_grid_match")
        self.assertEqual(payload["summary"]["calculated"], 2)
        self.assertEqual(payload["summary"]["no_grid_match"], 1)
        self.assertEqual(payload["summary"]["total_insurer_commission"], "15000.00")
        self.assertFalse(CommissionRecord.all_objects.exists())

    def test_calculate_applies_filters(self):
        self.client.force_login(self.user_member)
        response = self.client.get(
            "/api/commissions/calculate/?source_type=agent",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["policy_number"] for row in response.json()["results"]], ["MOT-002"])

    def test_calculate_rejects_bad_filters(self):
        self.client.force_login(self.user_member)
        response = self.client.get(
            "/api/commissions/calculate/?source_type=broker&policy_ids=1,x",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("source_type", response.json())
        self.assertIn("policy_ids", response.json())

    def test_member_cannot_sync(self):
        self.client.force_login(self.user_member)
        response = self.client.post(
            "/api/commissions/sync/",
            data={},
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 403)

    def test_manager_sync_is_idempotent(self):
        self.client.force_login(self.user_manager)
        for expected_created in (3, 0):
            response = self.client.post(
                "/api/commissions/sync/",
                data={},
                content_type="application/json",
                HTTP_X_TENANT_ID="acme",
            )
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["created"], expected_created)
            self.assertEqual(response.json()["failures"], [])

        self.assertEqual(CommissionRecord.all_objects.filter(company=self.company).count(), 3)
        self.assertFalse(CommissionRecord.all_objects.filter(company=self.other).exists())
        entry = LedgerEntry.all_objects.filter(company=self.company, event_type="commission.sync").first()
        self.assertEqual(entry.actor_username, "manager")
        self.assertEqual(entry.request_path, "/api/commissions/sync/")

    def test_sync_accepts_policy_id_list(self):
        policy_id = Policy.all_objects.get(
            company=self.company, policy_number="MOT-001"
        ).id
        self.client.force_login(self.user_manager)
        response = self.client.post(
            "/api/commissions/sync/",
            data={"policy_ids": [policy_id]},
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["synced"], 1)

    def test_records_list_is_tenant_scoped(self):
        self.client.force_login(self.user_manager)
        self.client.post("/api/commissions/sync/", data={}, content_type="application/json", HTTP_X_TENANT_ID="acme")

        response = self.client.get("/api/commissions/records/?status=calculated", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 200)
        self.assertEqual({row["policy_number"] for row in response.json()}, {"MOT-001", "MOT-002"})

    def test_export_returns_csv_projection(self):
        self.client.force_login(self.user_member)
        response = self.client.get("/api/commissions/export/", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response["Content-Type"].startswith("text/csv"))
        self.assertIn("policy-commission-distribution-", response["Content-Disposition"])

        rows = list(csv.reader(io.StringIO(response.content.decode("utf-8"))))
        self.assertEqual(tuple(rows[0]), CSV_COLUMNS)
        self.assertEqual(len(rows), 4)
        agent_row = next(row for row in rows[1:] if row[0] == "MOT-002")
        self.assertEqual(agent_row[1], "Anita Desai")
        self.assertEqual(agent_row[6], "External (Asha Agent)")
        self.assertEqual(agent_row[7], "10.00")
        self.assertEqual(agent_row[9], "7000.00")
        self.assertEqual(agent_row[13], "calculated")
        self.assertEqual(agent_row[14], "motor_payout_grid")

    def test_manager_can_create_grid_and_rate(self):
        self.client.force_login(self.user_manager)
        response = self.client.post(
            "/api/commissions/grids/",
            data={
                "name": "Health retail",
                "grid_table": "health_payout_grid",
                "product_type": "Health",
                "effective_from": "2024-01-01",
            },
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 201)
        grid_id = response.json()["id"]
        self.assertEqual(response.json()["product_type"], "health")

        response = self.client.post(
            "/api/commissions/grid-rates/",
            data={"grid_id": grid_id, "base_rate": "15", "tier_id": self.channel["tier"].id, "agent_type": "posp"},
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 201)
        rate = GridRate.all_objects.get(pk=response.json()["id"])
        self.assertEqual(rate.company_id, self.company.id)
        self.assertEqual(rate.agent_type, "POSP")
        self.assertEqual(rate.reward_rate, Decimal("0"))

        events = set(
            LedgerEntry.all_objects.filter(company=self.company).values_list("event_type", flat=True)
        )
        self.assertIn("commission.CommissionGrid.CREATE", events)
        self.assertIn("commission.GridRate.CREATE", events)

    def test_grid_rate_cannot_reference_other_tenant_grid(self):
        foreign_grid = create_grid(self.other, name="Beta motor")
        self.client.force_login(self.user_manager)
        response = self.client.post(
            "/api/commissions/grid-rates/",
            data={"grid_id": foreign_grid.id, "base_rate": "15"},
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("grid_id", response.json())

    def test_grid_validation(self):
        self.client.force_login(self.user_manager)
        response = self.client.post(
            "/api/commissions/grids/",
            data={
                "name": "Bad",
                "grid_table": "bad",
                "product_type": "pets",
                "effective_from": "2024-02-01",
                "effective_to": "2024-01-01",
            },
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("product_type", response.json())

    def test_member_cannot_edit_tiers_and_manager_cannot_delete(self):
        tier = self.channel["tier"]

        self.client.force_login(self.user_member)
        response = self.client.patch(
            f"/api/commissions/tiers/{tier.id}/",
            data={"share_percentage": "60.00"},
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.user_manager)
        response = self.client.patch(
            f"/api/commissions/tiers/{tier.id}/",
            data={"share_percentage": "60.00"},
            content_type="application/json",
            HTTP_X_TENANT_ID="acme",
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.delete(f"/api/commissions/tiers/{tier.id}/", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 403)

    def test_owner_cannot_delete_tier_used_by_grid_rate(self):
        tier = self.channel["tier"]
        GridRate.all_objects.create(
            company=self.company,
            grid=CommissionGrid.all_objects.filter(company=self.company).first(),
            tier=tier,
            base_rate=Decimal("11"),
        )
        self.client.force_login(self.user_owner)
        response = self.client.delete(f"/api/commissions/tiers/{tier.id}/", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 409)
        self.assertTrue(CommissionTier.all_objects.filter(pk=tier.pk).exists())

    def test_tiers_are_tenant_scoped(self):
        CommissionTier.all_objects.create(company=self.other, name="Beta Gold", share_percentage=Decimal("50"))
        self.client.force_login(self.user_member)
        response = self.client.get("/api/commissions/tiers/", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["name"] for row in response.json()], ["Gold"])

    def test_ledger_is_manager_only(self):
        self.client.force_login(self.user_member)
        response = self.client.get("/api/ledger/", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.user_manager)
        self.client.post("/api/commissions/sync/", data={}, content_type="application/json", HTTP_X_TENANT_ID="acme")
        response = self.client.get("/api/ledger/?event_type=commission.sync", HTTP_X_TENANT_ID="acme")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)
