from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog, Partner
from finance.models import Expense, ExpenseCategory, FinancialTransaction
from finance.services import ExpenseLedger, raw_material_category
from inventory.models import RawMaterial


class ExpenseLedgerTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.manager = self.user_model.objects.create_user(
            username="finance-manager",
            password="pass1234",
            role=self.user_model.Role.MANAGER,
        )
        self.staff = self.user_model.objects.create_user(
            username="finance-staff",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.client.force_authenticate(user=self.manager)

        self.fuel = ExpenseCategory.objects.create(name="Fuel")
        self.vendor = Partner.objects.create(name="Clay Suppliers", type=Partner.Type.VENDOR)
        self.clay = RawMaterial.objects.create(name="Clay", unit="ton", current_stock=Decimal("10"))

    def _create_fuel_expense(self, **extra):
        return self.client.post(
            "/api/v1/expenses/",
            {"category_id": str(self.fuel.id), "amount": "1200.00", "date": "2024-06-01", **extra},
            format="json",
        )

    def test_create_expense_writes_expense_transaction(self):
        response = self._create_fuel_expense(description="diesel for kiln")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["payment_status"], "COMPLETE")
        self.assertEqual(Decimal(body["pending_amount"]), Decimal("0"))
        txn = FinancialTransaction.objects.get(expense_id=body["id"])
        self.assertEqual(txn.type, FinancialTransaction.Type.EXPENSE)
        self.assertEqual(txn.amount, Decimal("1200.00"))
        self.assertEqual(txn.description, "Fuel Expense: diesel for kiln")
        self.assertTrue(AuditLog.objects.filter(action="expense.create", entity_id=body["id"]).exists())

    def test_pending_expense_keeps_full_amount_pending(self):
        response = self._create_fuel_expense(payment_status="PENDING")

        body = response.json()
        self.assertEqual(Decimal(body["paid_amount"]), Decimal("0"))
        self.assertEqual(Decimal(body["pending_amount"]), Decimal("1200.00"))

    def test_edit_expense_keeps_transaction_in_step(self):
        expense_id = self._create_fuel_expense().json()["id"]

        response = self.client.patch(
            f"/api/v1/expenses/{expense_id}/",
            {"amount": "1500.00", "date": "2024-06-03", "partner": str(self.vendor.id)},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["paid_amount"]), Decimal("1500.00"))
        txn = FinancialTransaction.objects.get(expense_id=expense_id)
        self.assertEqual(txn.amount, Decimal("1500.00"))
        self.assertEqual(str(txn.date), "2024-06-03")
        self.assertEqual(txn.partner_id, self.vendor.id)

    def test_delete_expense_removes_transaction(self):
        expense_id = self._create_fuel_expense().json()["id"]

        response = self.client.delete(f"/api/v1/expenses/{expense_id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Expense.objects.filter(id=expense_id).exists())
        self.assertFalse(FinancialTransaction.objects.exists())

    def test_staff_cannot_delete_expense(self):
        expense_id = self._create_fuel_expense().json()["id"]
        self.client.force_authenticate(user=self.staff)

        response = self.client.delete(f"/api/v1/expenses/{expense_id}/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(Expense.objects.filter(id=expense_id).exists())

    def test_raw_material_expense_requires_vendor_and_material(self):
        category = raw_material_category()

        response = self.client.post(
            "/api/v1/expenses/",
            {"category_id": str(category.id), "amount": "900.00", "date": "2024-06-01"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("partner", response.json()["errors"])
        self.assertFalse(Expense.objects.exists())

    def test_unknown_category_is_not_found(self):
        response = self.client.post(
            "/api/v1/expenses/",
            {"category_id": "00000000-0000-0000-0000-000000000000", "amount": "10.00", "date": "2024-06-01"},
            format="json",
        )

        self.assertEqual(response.status_code, 404)


class RawMaterialPurchaseTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.staff = self.user_model.objects.create_user(
            username="purchase-staff",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.client.force_authenticate(user=self.staff)

        self.vendor = Partner.objects.create(name="Ash Traders", type=Partner.Type.VENDOR)
        self.clay = RawMaterial.objects.create(name="Clay", unit="ton", current_stock=Decimal("10"))

    def test_existing_material_purchase_adds_stock_and_books_expense(self):
        response = self.client.post(
            "/api/v1/raw-material-purchases/",
            {
                "mode": "existing",
                "raw_material_id": str(self.clay.id),
                "quantity": "5",
                "purchase_amount": "2500.00",
                "partner": str(self.vendor.id),
                "date": "2024-06-05",
                "bill_number": "B-77",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.clay.refresh_from_db()
        self.assertEqual(self.clay.current_stock, Decimal("15"))
        expense = Expense.objects.get(raw_material=self.clay)
        self.assertEqual(expense.rate, Decimal("500.00"))
        self.assertEqual(expense.category.name, "Raw Material")
        self.assertEqual(expense.payment_status, Expense.PaymentStatus.COMPLETE)
        txn = FinancialTransaction.objects.get(expense=expense)
        self.assertEqual(txn.type, FinancialTransaction.Type.EXPENSE)
        self.assertEqual(txn.description, "Purchase of Clay (5 ton)")

    def test_existing_material_purchase_without_amount_only_restocks(self):
        response = self.client.post(
            "/api/v1/raw-material-purchases/",
            {"mode": "existing", "raw_material_id": str(self.clay.id), "quantity": "2.5"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()["expense"])
        self.clay.refresh_from_db()
        self.assertEqual(self.clay.current_stock, Decimal("12.5"))
        self.assertFalse(Expense.objects.exists())

    def test_new_material_with_zero_quantity_books_zero_rate(self):
        response = self.client.post(
            "/api/v1/raw-material-purchases/",
            {
                "mode": "new",
                "material": {"name": "Fly Ash", "unit": "ton", "min_stock_level": "2"},
                "quantity": "0",
                "purchase_amount": "800.00",
                "partner": str(self.vendor.id),
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["raw_material"]["name"], "Fly Ash")
        self.assertTrue(body["raw_material"]["is_low_stock"])
        self.assertEqual(Decimal(body["expense"]["rate"]), Decimal("0"))
        self.assertEqual(Decimal(body["expense"]["amount"]), Decimal("800.00"))

    def test_new_material_without_vendor_skips_expense(self):
        response = self.client.post(
            "/api/v1/raw-material-purchases/",
            {"material": {"name": "Sand", "unit": "ton"}, "quantity": "3", "purchase_amount": "300.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()["expense"])
        self.assertEqual(RawMaterial.objects.get(name="Sand").current_stock, Decimal("3"))

    def test_new_material_name_must_be_unique(self):
        response = self.client.post(
            "/api/v1/raw-material-purchases/",
            {"material": {"name": "Clay", "unit": "ton"}, "quantity": "3"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(RawMaterial.objects.filter(name="Clay").count(), 1)

    def test_purchase_history_lists_material_expenses(self):
        ledger = ExpenseLedger()
        ledger.record_purchase(
            quantity=Decimal("4"),
            date="2024-06-01",
            raw_material_id=self.clay.id,
            purchase_amount=Decimal("1000"),
            partner=self.vendor,
        )
        ledger.record_purchase(
            quantity=Decimal("6"),
            date="2024-06-08",
            raw_material_id=self.clay.id,
            purchase_amount=Decimal("1800"),
            partner=self.vendor,
        )

        response = self.client.get(f"/api/v1/raw-materials/{self.clay.id}/purchases/")

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual([item["date"] for item in results], ["2024-06-08", "2024-06-01"])
        self.assertEqual(results[0]["partner_name"], "Ash Traders")

    def test_transactions_filter_by_type(self):
        ExpenseLedger().record_purchase(
            quantity=Decimal("1"),
            date="2024-06-01",
            raw_material_id=self.clay.id,
            purchase_amount=Decimal("100"),
            partner=self.vendor,
        )

        expenses = self.client.get("/api/v1/transactions/", {"type": "expense"})
        sales = self.client.get("/api/v1/transactions/", {"type": "sale"})

        self.assertEqual(expenses.json()["count"], 1)
        self.assertEqual(sales.json()["count"], 0)

    def test_transactions_filter_by_partner(self):
        other_vendor = Partner.objects.create(name="Coal Depot", type=Partner.Type.VENDOR)
        for partner in (self.vendor, other_vendor):
            ExpenseLedger().record_purchase(
                quantity=Decimal("1"),
                date="2024-06-01",
                raw_material_id=self.clay.id,
                purchase_amount=Decimal("100"),
                partner=partner,
            )

        response = self.client.get("/api/v1/transactions/", {"partner": str(other_vendor.id)})
        malformed = self.client.get("/api/v1/transactions/", {"partner": "not-a-uuid"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)
        self.assertEqual(response.json()["results"][0]["partner"], str(other_vendor.id))
        self.assertEqual(malformed.status_code, 400)
        self.assertEqual(malformed.json()["code"], "validation_error")
