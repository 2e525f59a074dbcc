from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import InsufficientStock, LedgerNotFound, LedgerValidationError, StockInvariantViolation
from core.models import AuditLog, Partner
from inventory.models import ProductionBatch, ProductionMaterial, ProductType, RawMaterial, StorageLocation
from inventory.services import StockLedger, adjust_raw_material_stock
from sales.models import Invoice, Sale


class StockLedgerTests(TestCase):
    def setUp(self):
        self.product_type = ProductType.objects.create(name="Red Brick")
        self.location = StorageLocation.objects.create(name="Kiln Yard")
        self.batch = ProductionBatch.objects.create(
            product_type=self.product_type,
            storage_location=self.location,
            quantity=100,
            remaining_quantity=60,
            production_date="2024-04-01",
        )

    def test_check_available_counts_held_stock(self):
        stock = StockLedger()

        self.assertEqual(stock.check_available(self.batch.id, 60), 60)
        self.assertEqual(stock.check_available(self.batch.id, 80, already_held=20), 80)
        with self.assertRaises(InsufficientStock) as ctx:
            stock.check_available(self.batch.id, 61)

        self.assertEqual(ctx.exception.available, 60)
        self.assertEqual(ctx.exception.requested, 61)

    def test_commit_spends_and_restores(self):
        stock = StockLedger()

        stock.commit(self.batch.id, -25)
        stock.commit(self.batch.id, 5)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.remaining_quantity, 40)

    def test_commit_cannot_leave_bounds(self):
        stock = StockLedger()

        with self.assertRaises(StockInvariantViolation):
            stock.commit(self.batch.id, -61)
        with self.assertRaises(StockInvariantViolation):
            stock.commit(self.batch.id, 41)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.remaining_quantity, 60)

    def test_unknown_batch_is_not_found(self):
        stock = StockLedger()

        with self.assertRaises(LedgerNotFound):
            stock.lock(["00000000-0000-0000-0000-000000000001"])
        with self.assertRaises(LedgerNotFound):
            stock.get("not-a-uuid")

    def test_raw_material_stock_cannot_go_negative(self):
        clay = RawMaterial.objects.create(name="Clay", unit="ton", current_stock=Decimal("3"))

        adjust_raw_material_stock(clay.id, Decimal("-1.5"))
        clay.refresh_from_db()
        self.assertEqual(clay.current_stock, Decimal("1.5"))

        with self.assertRaisesMessage(LedgerValidationError, "Insufficient stock for Clay"):
            adjust_raw_material_stock(clay.id, Decimal("-2"))


class ProductionBatchApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.staff = self.user_model.objects.create_user(
            username="production-staff",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.client.force_authenticate(user=self.staff)

        self.product_type = ProductType.objects.create(name="Fly Ash Brick")
        self.service = ProductType.objects.create(name="Unloading", is_service=True)
        self.location = StorageLocation.objects.create(name="Shed 2")
        self.clay = RawMaterial.objects.create(name="Clay", unit="ton", current_stock=Decimal("10"))
        self.ash = RawMaterial.objects.create(name="Fly Ash", unit="ton", current_stock=Decimal("4"))

    def _payload(self, **overrides):
        payload = {
            "product_type": str(self.product_type.id),
            "storage_location": str(self.location.id),
            "quantity": 5000,
            "production_date": "2024-04-10",
            "materials_used": [
                {"raw_material_id": str(self.clay.id), "quantity": "6.5"},
                {"raw_material_id": str(self.ash.id), "quantity": "2"},
            ],
        }
        payload.update(overrides)
        return payload

    def test_recording_batch_consumes_raw_materials(self):
        response = self.client.post("/api/v1/production-batches/", self._payload(), format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["remaining_quantity"], 5000)
        self.assertEqual(len(body["materials"]), 2)
        self.clay.refresh_from_db()
        self.ash.refresh_from_db()
        self.assertEqual(self.clay.current_stock, Decimal("3.5"))
        self.assertEqual(self.ash.current_stock, Decimal("2"))

    def test_insufficient_raw_material_records_nothing(self):
        payload = self._payload(materials_used=[
            {"raw_material_id": str(self.clay.id), "quantity": "2"},
            {"raw_material_id": str(self.ash.id), "quantity": "9"},
        ])

        response = self.client.post("/api/v1/production-batches/", payload, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertFalse(ProductionBatch.objects.exists())
        self.assertFalse(ProductionMaterial.objects.exists())
        self.clay.refresh_from_db()
        self.assertEqual(self.clay.current_stock, Decimal("10"))

    def test_materials_required_unless_skipped(self):
        missing = self.client.post("/api/v1/production-batches/", self._payload(materials_used=[]), format="json")
        skipped = self.client.post(
            "/api/v1/production-batches/",
            self._payload(materials_used=[], skip_raw_materials=True),
            format="json",
        )

        self.assertEqual(missing.status_code, 400)
        self.assertEqual(skipped.status_code, 201)

    def test_service_products_are_not_produced(self):
        response = self.client.post(
            "/api/v1/production-batches/",
            self._payload(product_type=str(self.service.id)),
            format="json",
        )

        self.assertEqual(response.status_code, 400)

    def test_in_stock_filter_hides_sold_out_batches(self):
        ProductionBatch.objects.create(
            product_type=self.product_type,
            storage_location=self.location,
            quantity=10,
            remaining_quantity=0,
            production_date="2024-04-01",
        )
        open_batch = ProductionBatch.objects.create(
            product_type=self.product_type,
            storage_location=self.location,
            quantity=10,
            remaining_quantity=4,
            production_date="2024-04-02",
        )

        response = self.client.get("/api/v1/production-batches/", {"in_stock": "true"})

        self.assertEqual(response.status_code, 200)
        ids = [item["id"] for item in response.json()["results"]]
        self.assertEqual(ids, [str(open_batch.id)])

    def test_raw_materials_flag_low_stock(self):
        self.ash.min_stock_level = Decimal("5")
        self.ash.save()

        response = self.client.get("/api/v1/raw-materials/")

        flags = {item["name"]: item["is_low_stock"] for item in response.json()["results"]}
        self.assertEqual(flags, {"Clay": False, "Fly Ash": True})

    def test_master_data_lists(self):
        product_types = self.client.get("/api/v1/product-types/")
        locations = self.client.get("/api/v1/storage-locations/")

        self.assertEqual(product_types.status_code, 200)
        self.assertEqual(product_types.json()["count"], 2)
        self.assertEqual(locations.json()["results"][0]["name"], "Shed 2")


class ProductionBatchChangeTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.manager = self.user_model.objects.create_user(
            username="production-manager",
            password="pass1234",
            role=self.user_model.Role.MANAGER,
        )
        self.staff = self.user_model.objects.create_user(
            username="production-staff",
            password="pass1234",
            role=self.user_model.Role.STAFF,
        )
        self.client.force_authenticate(user=self.manager)

        self.product_type = ProductType.objects.create(name="Fly Ash Brick")
        self.location = StorageLocation.objects.create(name="Shed 2")
        self.other_location = StorageLocation.objects.create(name="Shed 3")
        self.clay = RawMaterial.objects.create(name="Clay", unit="ton", current_stock=Decimal("10"))
        self.ash = RawMaterial.objects.create(name="Fly Ash", unit="ton", current_stock=Decimal("4"))

        response = self.client.post(
            "/api/v1/production-batches/",
            {
                "product_type": str(self.product_type.id),
                "storage_location": str(self.location.id),
                "quantity": 500,
                "production_date": "2024-04-10",
                "materials_used": [
                    {"raw_material_id": str(self.clay.id), "quantity": "6.5"},
                    {"raw_material_id": str(self.ash.id), "quantity": "2"},
                ],
            },
            format="json",
        )
        self.batch_id = response.json()["id"]

    def _sell(self, quantity):
        partner = Partner.objects.create(name="Builder Co")
        invoice = Invoice.objects.create(invoice_number="INV-900", partner=partner, invoice_date="2024-04-11")
        batch = ProductionBatch.objects.get(id=self.batch_id)
        batch.remaining_quantity -= quantity
        batch.save()
        return Sale.objects.create(
            invoice=invoice,
            product_type=self.product_type,
            production_batch=batch,
            quantity=quantity,
            rate=Decimal("10"),
            amount=Decimal("10") * quantity,
        )

    def test_delete_returns_raw_materials_to_stock(self):
        response = self.client.delete(f"/api/v1/production-batches/{self.batch_id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(ProductionBatch.objects.filter(id=self.batch_id).exists())
        self.assertFalse(ProductionMaterial.objects.exists())
        self.clay.refresh_from_db()
        self.ash.refresh_from_db()
        self.assertEqual(self.clay.current_stock, Decimal("10"))
        self.assertEqual(self.ash.current_stock, Decimal("4"))
        self.assertTrue(AuditLog.objects.filter(action="production_batch.delete").exists())

    def test_delete_with_sales_is_rejected(self):
        self._sell(40)

        response = self.client.delete(f"/api/v1/production-batches/{self.batch_id}/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertTrue(ProductionBatch.objects.filter(id=self.batch_id).exists())
        self.clay.refresh_from_db()
        self.assertEqual(self.clay.current_stock, Decimal("3.5"))

    def test_staff_cannot_delete_batches(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.delete(f"/api/v1/production-batches/{self.batch_id}/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(ProductionBatch.objects.filter(id=self.batch_id).exists())

    def test_update_changes_location_date_and_notes(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.patch(
            f"/api/v1/production-batches/{self.batch_id}/",
            {"storage_location": str(self.other_location.id), "production_date": "2024-04-12", "notes": "Kiln 4"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["storage_location_name"], "Shed 3")
        self.assertEqual(body["production_date"], "2024-04-12")
        self.assertEqual(body["notes"], "Kiln 4")
        self.assertEqual(body["remaining_quantity"], 500)

    def test_update_cannot_change_remaining_quantity(self):
        self._sell(40)

        rejected = self.client.patch(
            f"/api/v1/production-batches/{self.batch_id}/", {"remaining_quantity": 500}, format="json"
        )
        unchanged = self.client.patch(
            f"/api/v1/production-batches/{self.batch_id}/",
            {"remaining_quantity": 460, "notes": "checked"},
            format="json",
        )

        self.assertEqual(rejected.status_code, 400)
        self.assertEqual(rejected.json()["code"], "validation_error")
        self.assertEqual(unchanged.status_code, 200)
        self.assertEqual(unchanged.json()["remaining_quantity"], 460)
        self.assertEqual(unchanged.json()["notes"], "checked")
