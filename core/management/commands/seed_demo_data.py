from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from core.models import Partner, SystemSettings
from finance.services import ExpenseLedger, raw_material_category
from inventory.models import ProductType, RawMaterial, StorageLocation
from inventory.services import record_production_batch
from sales.allocation import BatchAllocation, MultiProductLine, ProductLine
from sales.models import Invoice
from sales.services import InvoiceLedger


class Command(BaseCommand):
    help = "Seed demo brick-works data (users, partners, stock, one invoice) for local development."

    def handle(self, *args, **options):
        User = get_user_model()

        for username, role, password in [
            ("admin", User.Role.ADMIN, "admin1234"),
            ("manager", User.Role.MANAGER, "manager1234"),
            ("staff", User.Role.STAFF, "staff1234"),
        ]:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={
                    "email": f"{username}@example.com",
                    "role": role,
                    "is_staff": role == User.Role.ADMIN,
                    "is_superuser": role == User.Role.ADMIN,
                    "is_active": True,
                },
            )
            if created:
                user.set_password(password)
                user.save(update_fields=["password"])

        SystemSettings.objects.get_or_create(
            pk=1,
            defaults={"company_name": "Demo Brick Works", "default_brick_price": Decimal("8.50")},
        )

        client, _ = Partner.objects.get_or_create(
            name="Demo Builders", type=Partner.Type.CLIENT, defaults={"phone": "+910000000001"}
        )
        vendor, _ = Partner.objects.get_or_create(
            name="Clay Suppliers", type=Partner.Type.VENDOR, defaults={"phone": "+910000000002"}
        )
        Partner.objects.get_or_create(name="Fast Haulage", type=Partner.Type.TRANSPORT)

        red_brick, _ = ProductType.objects.get_or_create(name="Red Brick", defaults={"hsn_number": "6901"})
        fly_ash, _ = ProductType.objects.get_or_create(name="Fly Ash Brick", defaults={"hsn_number": "6810"})
        loading, _ = ProductType.objects.get_or_create(
            name="Loading Charges", defaults={"is_service": True, "hsn_number": "9965"}
        )
        kiln_yard, _ = StorageLocation.objects.get_or_create(name="Kiln Yard")
        raw_material_category()

        today = timezone.localdate()
        ledger = ExpenseLedger()
        clay = RawMaterial.objects.filter(name="Clay").first()
        if clay is None:
            clay, _ = ledger.record_purchase(
                quantity=Decimal("50"),
                date=today,
                new_material={"name": "Clay", "unit": "ton", "min_stock_level": Decimal("5")},
                purchase_amount=Decimal("25000"),
                partner=vendor,
                bill_number="BILL-0001",
            )

        if not red_brick.batches.exists():
            record_production_batch(
                product_type=red_brick,
                storage_location=kiln_yard,
                quantity=10000,
                production_date=today,
                materials_used=[{"raw_material_id": clay.id, "quantity": Decimal("20")}],
            )
        if not fly_ash.batches.exists():
            record_production_batch(
                product_type=fly_ash,
                storage_location=kiln_yard,
                quantity=5000,
                production_date=today,
                skip_raw_materials=True,
            )

        if not Invoice.objects.filter(invoice_number="INV-0001").exists():
            red_batch = red_brick.batches.order_by("created_at").first()
            InvoiceLedger().create(
                {"invoice_number": "INV-0001", "partner": client, "invoice_date": today, "is_gst": True},
                MultiProductLine(
                    items=(
                        ProductLine(
                            product_type_id=red_brick.id,
                            rate=Decimal("8.50"),
                            allocations=(BatchAllocation(batch_id=red_batch.id, quantity=1500),),
                        ),
                        ProductLine(product_type_id=loading.id, rate=Decimal("500.00")),
                    )
                ),
            )

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write("Credentials: admin/admin1234, manager/manager1234, staff/staff1234")
