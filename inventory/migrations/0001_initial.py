import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ProductType",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
                ("hsn_number", models.CharField(blank=True, default="", max_length=32)),
                ("is_service", models.BooleanField(default=False)),
                ("cgst_rate", models.DecimalField(decimal_places=2, default=Decimal("9.00"), max_digits=6)),
                ("sgst_rate", models.DecimalField(decimal_places=2, default=Decimal("9.00"), max_digits=6)),
                ("igst_rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=6)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="StorageLocation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
                ("description", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="RawMaterial",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
                ("unit", models.CharField(max_length=32)),
                ("current_stock", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("min_stock_level", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="ProductionBatch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField()),
                ("remaining_quantity", models.PositiveIntegerField()),
                ("production_date", models.DateField()),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product_type",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="inventory.producttype",
                    ),
                ),
                (
                    "storage_location",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="inventory.storagelocation",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["product_type", "production_date"], name="batch_product_date_idx"),
                    models.Index(fields=["storage_location"], name="batch_location_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("remaining_quantity__lte", models.F("quantity"))),
                        name="batch_remaining_lte_quantity",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductionMaterial",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity_used", models.DecimalField(decimal_places=3, max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "production_batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="materials",
                        to="inventory.productionbatch",
                    ),
                ),
                (
                    "raw_material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="consumptions",
                        to="inventory.rawmaterial",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["production_batch"], name="prodmaterial_batch_idx"),
                    models.Index(fields=["raw_material"], name="prodmaterial_material_idx"),
                ],
            },
        ),
    ]
