from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import LedgerValidationError
from core.models import Partner
from finance.models import FinancialTransaction
from inventory.models import ProductionBatch, ProductType, StorageLocation
from sales.allocation import BatchAllocation, MultiBatchLine, SingleLine
from sales.models import Invoice, Sale
from sales.services import InvoiceLedger
from sales.tax import TaxRates

DEFAULT_RATES = TaxRates(cgst=Decimal("9"), sgst=Decimal("9"), igst=Decimal("0"))


class InvoiceLedgerTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.manager = self.user_model.objects.create_user(
            username="sales-manager",
            password="pass1234",
            role=self.user_model.Role.MANAGER,
        )
        self.staff = self.user_model.objects.create_user(
            username="sales-staff",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.client.force_authenticate(user=self.manager)

        self.partner = Partner.objects.create(name="Builder Co", type=Partner.Type.CLIENT)
        self.yard = StorageLocation.objects.create(name="Yard 1")
        self.brick = ProductType.objects.create(name="Red Brick")
        self.block = ProductType.objects.create(name="Hollow Block")
        self.loading = ProductType.objects.create(name="Loading", is_service=True)

        self.batch_b = self._batch(self.brick, 1000)
        self.batch_c = self._batch(self.block, 200)

    def _batch(self, product_type, quantity):
        return ProductionBatch.objects.create(
            product_type=product_type,
            storage_location=self.yard,
            quantity=quantity,
            remaining_quantity=quantity,
            production_date="2024-05-01",
        )

    def _header(self, number, **extra):
        return {
            "invoice_number": number,
            "partner": str(self.partner.id),
            "invoice_date": "2024-05-02",
            **extra,
        }

    def _create_single(self, number, batch, quantity, rate="10.00", **extra):
        return self.client.post(
            "/api/v1/sales/",
            {
                **self._header(number, **extra),
                "product_type_id": str(batch.product_type_id),
                "production_batch_id": str(batch.id),
                "quantity": quantity,
                "rate": rate,
            },
            format="json",
        )

    def _remaining(self, batch):
        batch.refresh_from_db()
        return batch.remaining_quantity

    def assertStockConserved(self, *batches):
        for batch in batches:
            batch.refresh_from_db()
            sold = sum(Sale.objects.filter(production_batch=batch).values_list("quantity", flat=True))
            self.assertEqual(batch.remaining_quantity + sold, batch.quantity)

    def assertInvoiceConsistent(self, invoice_id):
        invoice = Invoice.objects.get(id=invoice_id)
        amounts = Sale.objects.filter(invoice=invoice).values_list("amount", flat=True)
        self.assertEqual(invoice.subtotal, sum(amounts, Decimal("0")))
        self.assertEqual(
            invoice.total_amount,
            invoice.subtotal + invoice.cgst_amount + invoice.sgst_amount + invoice.igst_amount,
        )
        self.assertEqual(invoice.pending_amount, invoice.total_amount - invoice.paid_amount)
        mirror = FinancialTransaction.objects.get(invoice=invoice)
        self.assertEqual(mirror.type, FinancialTransaction.Type.SALE)
        self.assertEqual(mirror.amount, invoice.total_amount)
        return invoice


class InvoiceScenarioTests(InvoiceLedgerTestCase):
    def test_single_sale_without_gst_spends_batch_stock(self):
        response = self._create_single("INV-001", self.batch_b, 300, is_gst=False)

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(self._remaining(self.batch_b), 700)
        self.assertEqual(Decimal(body["subtotal"]), Decimal("3000"))
        self.assertEqual(Decimal(body["total_amount"]), Decimal("3000"))
        self.assertEqual(Decimal(body["pending_amount"]), Decimal("3000"))
        self.assertEqual(body["payment_status"], "PENDING")
        self.assertEqual(len(body["sales"]), 1)
        self.assertInvoiceConsistent(body["id"])

    def test_edit_sale_quantity_applies_only_the_difference(self):
        invoice = self._create_single("INV-001", self.batch_b, 300, is_gst=False).json()
        sale_id = invoice["sales"][0]["id"]

        response = self.client.patch(f"/api/v1/sales/{sale_id}/", {"quantity": 500}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._remaining(self.batch_b), 500)
        self.assertEqual(Decimal(response.json()["invoice"]["total_amount"]), Decimal("5000"))
        self.assertEqual(response.json()["sale"]["quantity"], 500)
        self.assertInvoiceConsistent(invoice["id"])
        self.assertStockConserved(self.batch_b)

    def test_oversell_is_rejected_and_stock_is_unchanged(self):
        first = self._create_single("INV-001", self.batch_b, 500, is_gst=False)
        self.assertEqual(first.status_code, 201)

        response = self._create_single("INV-003", self.batch_b, 600, is_gst=False)

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["code"], "insufficient_stock")
        self.assertEqual(body["errors"]["batch_id"], str(self.batch_b.id))
        self.assertEqual(body["errors"]["available"], 500)
        self.assertEqual(self._remaining(self.batch_b), 500)
        self.assertFalse(Invoice.objects.filter(invoice_number="INV-003").exists())

    def test_duplicate_invoice_number_writes_nothing(self):
        self._create_single("INV-001", self.batch_b, 300, is_gst=False)

        response = self._create_single("INV-001", self.batch_b, 10, is_gst=False)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "duplicate_invoice_number")
        self.assertEqual(Invoice.objects.count(), 1)
        self.assertEqual(Sale.objects.count(), 1)
        self.assertEqual(self._remaining(self.batch_b), 700)

    def test_multi_product_invoice_with_service_line(self):
        response = self.client.post(
            "/api/v1/sales/multi-product/",
            {
                **self._header("INV-002", is_gst=True),
                "items": [
                    {"product_type_id": str(self.loading.id), "rate": "100.00", "quantity": 2},
                    {
                        "product_type_id": str(self.block.id),
                        "rate": "5.00",
                        "batch_selections": [{"batch_id": str(self.batch_c.id), "quantity": 50}],
                    },
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(Decimal(body["subtotal"]), Decimal("450.00"))
        self.assertEqual(Decimal(body["cgst_amount"]), Decimal("40.50"))
        self.assertEqual(Decimal(body["sgst_amount"]), Decimal("40.50"))
        self.assertEqual(Decimal(body["total_amount"]), Decimal("531.00"))
        self.assertEqual(len(body["sales"]), 2)
        service_sale = Sale.objects.get(invoice_id=body["id"], product_type=self.loading)
        self.assertIsNone(service_sale.production_batch_id)
        self.assertEqual(service_sale.quantity, 2)
        self.assertEqual(self._remaining(self.batch_c), 150)
        self.assertInvoiceConsistent(body["id"])

    def test_clear_sales_keeps_zeroed_invoice_then_delete_removes_it(self):
        invoice = self._create_single("INV-002", self.batch_b, 120).json()

        response = self.client.delete(f"/api/v1/invoices/{invoice['id']}/sales/")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        for field in ("subtotal", "cgst_amount", "sgst_amount", "igst_amount", "total_amount", "pending_amount"):
            self.assertEqual(Decimal(body[field]), Decimal("0"))
        self.assertEqual(body["sales"], [])
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertEqual(FinancialTransaction.objects.get(invoice_id=invoice["id"]).amount, Decimal("0"))

        response = self.client.delete(f"/api/v1/invoices/{invoice['id']}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Invoice.objects.filter(id=invoice["id"]).exists())
        self.assertFalse(FinancialTransaction.objects.filter(type=FinancialTransaction.Type.SALE).exists())


class InvoiceCreateTests(InvoiceLedgerTestCase):
    def test_multi_batch_failure_rolls_back_every_allocation(self):
        small = self._batch(self.brick, 10)

        response = self.client.post(
            "/api/v1/sales/multi-batch/",
            {
                **self._header("INV-010"),
                "product_type_id": str(self.brick.id),
                "rate": "8.00",
                "batch_selections": [
                    {"batch_id": str(self.batch_b.id), "quantity": 50},
                    {"batch_id": str(small.id), "quantity": 20},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"]["batch_id"], str(small.id))
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertEqual(self._remaining(small), 10)
        self.assertFalse(Invoice.objects.exists())
        self.assertFalse(FinancialTransaction.objects.exists())

    def test_multi_batch_sums_repeated_batch_before_checking(self):
        small = self._batch(self.brick, 10)

        response = self.client.post(
            "/api/v1/sales/multi-batch/",
            {
                **self._header("INV-011"),
                "product_type_id": str(self.brick.id),
                "rate": "8.00",
                "batch_selections": [
                    {"batch_id": str(small.id), "quantity": 6},
                    {"batch_id": str(small.id), "quantity": 6},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"]["available"], 10)
        self.assertEqual(self._remaining(small), 10)

    def test_multi_batch_skips_zero_quantity_selections(self):
        response = self.client.post(
            "/api/v1/sales/multi-batch/",
            {
                **self._header("INV-012", is_gst=False),
                "product_type_id": str(self.brick.id),
                "rate": "2.00",
                "batch_selections": [
                    {"batch_id": str(self.batch_b.id), "quantity": 40},
                    {"batch_id": str(self._batch(self.brick, 50).id), "quantity": 0},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()["sales"]), 1)
        self.assertEqual(Decimal(response.json()["subtotal"]), Decimal("80.00"))

    def test_batch_from_another_product_is_rejected(self):
        response = self.client.post(
            "/api/v1/sales/",
            {
                **self._header("INV-013"),
                "product_type_id": str(self.brick.id),
                "production_batch_id": str(self.batch_c.id),
                "quantity": 5,
                "rate": "10.00",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertEqual(self._remaining(self.batch_c), 200)

    def test_service_sale_defaults_quantity_to_one(self):
        response = self.client.post(
            "/api/v1/sales/",
            {
                **self._header("INV-014", is_gst=False),
                "product_type_id": str(self.loading.id),
                "quantity": 0,
                "rate": "750.00",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        sale = Sale.objects.get(invoice_id=response.json()["id"])
        self.assertEqual(sale.quantity, 1)
        self.assertIsNone(sale.production_batch_id)
        self.assertEqual(Decimal(response.json()["total_amount"]), Decimal("750.00"))

    def test_physical_sale_requires_batch(self):
        response = self.client.post(
            "/api/v1/sales/",
            {
                **self._header("INV-015"),
                "product_type_id": str(self.brick.id),
                "quantity": 5,
                "rate": "10.00",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Invoice.objects.exists())

    def test_paid_amount_drives_pending_and_status(self):
        response = self._create_single("INV-016", self.batch_b, 300, is_gst=False, paid_amount="1000.00")

        body = response.json()
        self.assertEqual(Decimal(body["pending_amount"]), Decimal("2000.00"))
        self.assertEqual(body["payment_status"], "PARTIAL")

    def test_invoice_rates_override_product_rates(self):
        response = self._create_single(
            "INV-017", self.batch_b, 100, is_gst=True, cgst_rate="2.50", sgst_rate="2.50", igst_rate="0"
        )

        body = response.json()
        self.assertEqual(Decimal(body["cgst_amount"]), Decimal("25.00"))
        self.assertEqual(Decimal(body["total_amount"]), Decimal("1050.00"))

    def test_unknown_product_type_is_not_found(self):
        response = self.client.post(
            "/api/v1/sales/multi-batch/",
            {
                **self._header("INV-018"),
                "product_type_id": "00000000-0000-0000-0000-000000000000",
                "rate": "8.00",
                "batch_selections": [{"batch_id": str(self.batch_b.id), "quantity": 1}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_check_number_reports_existing_invoice(self):
        self._create_single("INV-001", self.batch_b, 1)

        taken = self.client.get("/api/v1/invoices/check-number/", {"invoice_number": "INV-001"})
        free = self.client.get("/api/v1/invoices/check-number/", {"invoice_number": "INV-999"})

        self.assertTrue(taken.json()["exists"])
        self.assertFalse(free.json()["exists"])


class InvoiceEditTests(InvoiceLedgerTestCase):
    def setUp(self):
        super().setUp()
        self.invoice = self._create_single("INV-100", self.batch_b, 300, is_gst=True).json()
        self.sale_id = self.invoice["sales"][0]["id"]

    def test_moving_sale_to_another_batch_restores_the_old_one(self):
        other = self._batch(self.brick, 400)

        response = self.client.patch(
            f"/api/v1/sales/{self.sale_id}/",
            {"production_batch_id": str(other.id), "quantity": 350},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertEqual(self._remaining(other), 50)
        self.assertStockConserved(self.batch_b, other)
        self.assertInvoiceConsistent(self.invoice["id"])

    def test_moving_sale_beyond_new_batch_stock_is_rejected(self):
        other = self._batch(self.brick, 100)

        response = self.client.patch(
            f"/api/v1/sales/{self.sale_id}/",
            {"production_batch_id": str(other.id)},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "insufficient_stock")
        self.assertEqual(self._remaining(self.batch_b), 700)
        self.assertEqual(self._remaining(other), 100)

    def test_increase_beyond_remaining_is_rejected(self):
        response = self.client.patch(f"/api/v1/sales/{self.sale_id}/", {"quantity": 1001}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"]["available"], 700)
        self.assertEqual(self._remaining(self.batch_b), 700)

    def test_amount_must_match_quantity_times_rate(self):
        response = self.client.patch(
            f"/api/v1/sales/{self.sale_id}/", {"quantity": 10, "amount": "99.00"}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(Sale.objects.get(id=self.sale_id).quantity, 300)
        self.assertEqual(self._remaining(self.batch_b), 700)

    def test_supplied_tax_amounts_are_kept_for_single_line_invoice(self):
        response = self.client.patch(
            f"/api/v1/sales/{self.sale_id}/",
            {"cgst_amount": "200.00", "sgst_amount": "200.00", "igst_amount": "0"},
            format="json",
        )

        body = response.json()["invoice"]
        self.assertEqual(Decimal(body["cgst_amount"]), Decimal("200.00"))
        self.assertEqual(Decimal(body["total_amount"]), Decimal("3400.00"))
        self.assertInvoiceConsistent(self.invoice["id"])

    def test_renaming_to_existing_number_is_rejected(self):
        self._create_single("INV-101", self.batch_b, 1)

        response = self.client.patch(
            f"/api/v1/sales/{self.sale_id}/", {"invoice_number": "INV-101", "quantity": 10}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "duplicate_invoice_number")
        self.assertEqual(Sale.objects.get(id=self.sale_id).quantity, 300)

    def test_add_line_with_zero_allocation_changes_nothing(self):
        before = Invoice.objects.get(id=self.invoice["id"])

        response = self.client.post(
            "/api/v1/sales/products/",
            {
                "invoice_id": self.invoice["id"],
                "product_type_id": str(self.block.id),
                "rate": "5.00",
                "batch_selections": [{"batch_id": str(self.batch_c.id), "quantity": 0}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        after = Invoice.objects.get(id=self.invoice["id"])
        self.assertEqual(after.total_amount, before.total_amount)
        self.assertEqual(after.subtotal, before.subtotal)
        self.assertEqual(Sale.objects.filter(invoice=after).count(), 1)
        self.assertEqual(self._remaining(self.batch_c), 200)

    def test_add_line_recomputes_totals_from_all_sales(self):
        response = self.client.post(
            "/api/v1/sales/products/",
            {
                "invoice_id": self.invoice["id"],
                "product_type_id": str(self.block.id),
                "rate": "5.00",
                "batch_selections": [{"batch_id": str(self.batch_c.id), "quantity": 40}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["subtotal"]), Decimal("3200.00"))
        self.assertEqual(self._remaining(self.batch_c), 160)
        self.assertInvoiceConsistent(self.invoice["id"])

    def test_edit_batches_reconciles_selections(self):
        second = self._batch(self.brick, 100)

        response = self.client.patch(
            f"/api/v1/invoices/{self.invoice['id']}/batches/",
            {
                "product_type_id": str(self.brick.id),
                "rate": "12.00",
                "batch_selections": [
                    {"batch_id": str(self.batch_b.id), "quantity": 200},
                    {"batch_id": str(second.id), "quantity": 60},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._remaining(self.batch_b), 800)
        self.assertEqual(self._remaining(second), 40)
        self.assertEqual(Decimal(response.json()["subtotal"]), Decimal("3120.00"))
        self.assertStockConserved(self.batch_b, second)
        self.assertInvoiceConsistent(self.invoice["id"])

    def test_edit_batches_counts_held_stock_as_available(self):
        self.client.post(
            "/api/v1/sales/",
            {
                **self._header("INV-102"),
                "product_type_id": str(self.brick.id),
                "production_batch_id": str(self.batch_b.id),
                "quantity": 700,
                "rate": "10.00",
            },
            format="json",
        )
        self.assertEqual(self._remaining(self.batch_b), 0)

        response = self.client.patch(
            f"/api/v1/invoices/{self.invoice['id']}/batches/",
            {
                "product_type_id": str(self.brick.id),
                "rate": "10.00",
                "batch_selections": [{"batch_id": str(self.batch_b.id), "quantity": 300}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._remaining(self.batch_b), 0)

    def test_edit_batches_drops_unselected_batch(self):
        second = self._batch(self.brick, 100)

        response = self.client.patch(
            f"/api/v1/invoices/{self.invoice['id']}/batches/",
            {
                "product_type_id": str(self.brick.id),
                "rate": "10.00",
                "batch_selections": [
                    {"batch_id": str(self.batch_b.id), "quantity": 0},
                    {"batch_id": str(second.id), "quantity": 30},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertEqual(self._remaining(second), 70)
        self.assertEqual(Sale.objects.filter(invoice_id=self.invoice["id"]).count(), 1)

    def test_edit_batches_selection_without_quantity_is_rejected(self):
        response = self.client.patch(
            f"/api/v1/invoices/{self.invoice['id']}/batches/",
            {
                "product_type_id": str(self.brick.id),
                "rate": "10.00",
                "batch_selections": [{"batch_id": str(self.batch_b.id)}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertEqual(self._remaining(self.batch_b), 700)
        self.assertEqual(Sale.objects.get(id=self.sale_id).quantity, 300)

    def test_edit_batches_keeps_header_fields_not_sent(self):
        invoice = self._create_single("INV-112", self.batch_c, 10, is_gst=False).json()

        response = self.client.patch(
            f"/api/v1/invoices/{invoice['id']}/batches/",
            {
                "product_type_id": str(self.block.id),
                "rate": "10.00",
                "batch_selections": [{"batch_id": str(self.batch_c.id), "quantity": 20}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["invoice_number"], "INV-112")
        self.assertFalse(body["is_gst"])
        self.assertEqual(Decimal(body["cgst_amount"]), Decimal("0.00"))
        self.assertEqual(Decimal(body["total_amount"]), Decimal("200.00"))
        self.assertEqual(self._remaining(self.batch_c), 180)

    def test_service_sale_edited_to_zero_quantity_becomes_one(self):
        invoice = self._create_service("INV-110", quantity=2)

        response = self.client.patch(
            f"/api/v1/sales/{invoice['sales'][0]['id']}/", {"quantity": 0}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["sale"]["quantity"], 1)
        self.assertEqual(Decimal(response.json()["invoice"]["subtotal"]), Decimal("750.00"))
        self.assertInvoiceConsistent(invoice["id"])

    def test_service_sale_cannot_be_moved_onto_a_batch(self):
        invoice = self._create_service("INV-111", quantity=2)
        sale_id = invoice["sales"][0]["id"]

        response = self.client.patch(
            f"/api/v1/sales/{sale_id}/", {"production_batch_id": str(self.batch_b.id)}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIsNone(Sale.objects.get(id=sale_id).production_batch_id)
        self.assertEqual(self._remaining(self.batch_b), 700)

    def test_clearing_batch_returns_stock_and_keeps_sale(self):
        response = self.client.patch(
            f"/api/v1/sales/{self.sale_id}/", {"production_batch_id": None}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._remaining(self.batch_b), 1000)
        sale = Sale.objects.get(id=self.sale_id)
        self.assertIsNone(sale.production_batch_id)
        self.assertEqual(sale.quantity, 300)
        self.assertInvoiceConsistent(self.invoice["id"])

    def test_add_service_line_creates_sale_without_batch(self):
        response = self.client.post(
            "/api/v1/sales/products/",
            {
                "invoice_id": self.invoice["id"],
                "product_type_id": str(self.loading.id),
                "rate": "100.00",
                "quantity": 3,
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        sale = Sale.objects.get(invoice_id=self.invoice["id"], product_type=self.loading)
        self.assertIsNone(sale.production_batch_id)
        self.assertEqual(sale.quantity, 3)
        self.assertEqual(Decimal(response.json()["subtotal"]), Decimal("3300.00"))
        self.assertEqual(self._remaining(self.batch_b), 700)
        self.assertInvoiceConsistent(self.invoice["id"])

    def _create_service(self, number, quantity):
        response = self.client.post(
            "/api/v1/sales/",
            {
                **self._header(number, is_gst=False),
                "product_type_id": str(self.loading.id),
                "quantity": quantity,
                "rate": "750.00",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        return response.json()


class InvoiceDeleteTests(InvoiceLedgerTestCase):
    def test_deleting_last_sale_deletes_invoice(self):
        invoice = self._create_single("INV-200", self.batch_b, 250).json()

        response = self.client.delete(f"/api/v1/sales/{invoice['sales'][0]['id']}/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["invoice_deleted"])
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertFalse(Invoice.objects.filter(id=invoice["id"]).exists())
        self.assertFalse(FinancialTransaction.objects.exists())

    def test_deleting_one_of_two_sales_recomputes_invoice(self):
        invoice = self.client.post(
            "/api/v1/sales/multi-product/",
            {
                **self._header("INV-201", is_gst=False),
                "items": [
                    {
                        "product_type_id": str(self.brick.id),
                        "rate": "10.00",
                        "batch_selections": [{"batch_id": str(self.batch_b.id), "quantity": 100}],
                    },
                    {
                        "product_type_id": str(self.block.id),
                        "rate": "5.00",
                        "batch_selections": [{"batch_id": str(self.batch_c.id), "quantity": 20}],
                    },
                ],
            },
            format="json",
        ).json()
        brick_sale = Sale.objects.get(invoice_id=invoice["id"], product_type=self.brick)

        response = self.client.delete(f"/api/v1/sales/{brick_sale.id}/")

        self.assertFalse(response.json()["invoice_deleted"])
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertEqual(self._remaining(self.batch_c), 180)
        updated = self.assertInvoiceConsistent(invoice["id"])
        self.assertEqual(updated.total_amount, Decimal("100.00"))

    def test_staff_cannot_delete_sales(self):
        invoice = self._create_single("INV-202", self.batch_b, 10).json()
        self.client.force_authenticate(user=self.staff)

        response = self.client.delete(f"/api/v1/sales/{invoice['sales'][0]['id']}/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertEqual(self._remaining(self.batch_b), 990)

    def test_staff_can_create_sales(self):
        self.client.force_authenticate(user=self.staff)

        response = self._create_single("INV-203", self.batch_b, 10)

        self.assertEqual(response.status_code, 201)

    def test_unauthenticated_requests_are_rejected(self):
        self.client.force_authenticate(user=None)

        response = self.client.get("/api/v1/invoices/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")

    def test_clear_sales_zeroes_pending_even_when_paid(self):
        invoice = self._create_single("INV-210", self.batch_b, 300, is_gst=False, paid_amount="1000.00").json()
        self.assertEqual(Decimal(invoice["pending_amount"]), Decimal("2000.00"))

        response = self.client.delete(f"/api/v1/invoices/{invoice['id']}/sales/")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(Decimal(body["total_amount"]), Decimal("0"))
        self.assertEqual(Decimal(body["pending_amount"]), Decimal("0"))
        self.assertEqual(Decimal(body["paid_amount"]), Decimal("1000.00"))
        self.assertEqual(self._remaining(self.batch_b), 1000)


class InvoiceConservationTests(InvoiceLedgerTestCase):
    def test_mixed_sequence_conserves_stock_and_mirror(self):
        ledger = InvoiceLedger(tax_defaults=DEFAULT_RATES)
        header = {"partner": self.partner, "invoice_date": "2024-05-03", "is_gst": True}

        first = ledger.create(
            {**header, "invoice_number": "INV-300"},
            MultiBatchLine(
                product_type_id=self.brick.id,
                rate=Decimal("9.50"),
                allocations=(BatchAllocation(self.batch_b.id, 120), BatchAllocation(self.batch_b.id, 30)),
            ),
        )
        second = ledger.create(
            {**header, "invoice_number": "INV-301"},
            SingleLine(product_type_id=self.block.id, rate=Decimal("4"), quantity=70, batch_id=self.batch_c.id),
        )
        self.assertStockConserved(self.batch_b, self.batch_c)

        sale = Sale.objects.filter(invoice=first).order_by("created_at").first()
        ledger.edit_sale(sale.id, {"quantity": 10})
        self.assertStockConserved(self.batch_b)
        self.assertInvoiceConsistent(first.id)

        ledger.clear_sales(second.id)
        self.assertStockConserved(self.batch_c)
        self.assertEqual(self._remaining(self.batch_c), 200)

        ledger.delete_invoice(first.id)
        self.assertEqual(self._remaining(self.batch_b), 1000)
        self.assertEqual(FinancialTransaction.objects.filter(invoice_id=first.id).count(), 0)

    def test_create_without_positive_lines_is_rejected(self):
        ledger = InvoiceLedger(tax_defaults=DEFAULT_RATES)

        with self.assertRaises(LedgerValidationError):
            ledger.create(
                {"invoice_number": "INV-302", "partner": self.partner, "invoice_date": "2024-05-03"},
                MultiBatchLine(
                    product_type_id=self.brick.id,
                    rate=Decimal("9.50"),
                    allocations=(BatchAllocation(self.batch_b.id, 0),),
                ),
            )

        self.assertFalse(Invoice.objects.exists())

    def test_create_logs_operation_with_invoice_context(self):
        with self.assertLogs("ledger.invoice", level="INFO") as cm:
            response = self._create_single("INV-305", self.batch_b, 3)

        record = next(record for record in cm.records if record.getMessage() == "invoice_created")
        self.assertEqual(record.operation, "invoice.create")
        self.assertEqual(str(record.invoice_id), response.json()["id"])
        self.assertEqual(record.quantity, 3)

    def test_sale_list_filters_by_invoice(self):
        invoice = self._create_single("INV-303", self.batch_b, 5).json()
        self._create_single("INV-304", self.batch_b, 6)

        response = self.client.get("/api/v1/sales/", {"invoice": invoice["id"]})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)
        self.assertEqual(response.json()["results"][0]["quantity"], 5)

    def test_invoice_list_filters_by_transportation(self):
        carrier = Partner.objects.create(name="Fast Haulers", type=Partner.Type.TRANSPORT)
        carried = self._create_single("INV-306", self.batch_b, 5, transportation=str(carrier.id)).json()
        self._create_single("INV-307", self.batch_b, 6)

        response = self.client.get("/api/v1/invoices/", {"transportation": str(carrier.id)})
        malformed = self.client.get("/api/v1/invoices/", {"transportation": "not-a-uuid"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)
        self.assertEqual(response.json()["results"][0]["id"], carried["id"])
        self.assertEqual(response.json()["results"][0]["transportation_name"], "Fast Haulers")
        self.assertEqual(malformed.status_code, 400)
