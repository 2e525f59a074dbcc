import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("invoice_number", models.CharField(max_length=64, unique=True)),
                ("invoice_date", models.DateField()),
                ("is_gst", models.BooleanField(default=True)),
                ("cgst_rate", models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ("sgst_rate", models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ("igst_rate", models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ("subtotal", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("cgst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("sgst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("igst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                (
                    "payment_type",
                    models.CharField(choices=[("CASH", "Cash"), ("ONLINE", "Online")], default="CASH", max_length=16),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("PARTIAL", "Partial"), ("COMPLETE", "Complete")],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("pending_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("remarks", models.TextField(blank=True, null=True)),
                ("transport_mode", models.CharField(blank=True, max_length=64, null=True)),
                ("driver_name", models.CharField(blank=True, max_length=255, null=True)),
                ("driver_phone", models.CharField(blank=True, max_length=64, null=True)),
                ("transport_vehicle", models.CharField(blank=True, max_length=64, null=True)),
                ("delivery_city", models.CharField(blank=True, max_length=255, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "partner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                        to="core.partner",
                    ),
                ),
                (
                    "transportation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transported_invoices",
                        to="core.partner",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["invoice_date"], name="invoice_date_idx"),
                    models.Index(fields=["partner", "invoice_date"], name="invoice_partner_date_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField()),
                ("rate", models.DecimalField(decimal_places=2, max_digits=12)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sales",
                        to="sales.invoice",
                    ),
                ),
                (
                    "product_type",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="inventory.producttype",
                    ),
                ),
                (
                    "production_batch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="inventory.productionbatch",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["invoice"], name="sale_invoice_idx"),
                    models.Index(fields=["production_batch"], name="sale_batch_idx"),
                    models.Index(fields=["product_type", "created_at"], name="sale_product_created_idx"),
                ],
            },
        ),
    ]
