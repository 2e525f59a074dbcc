import uuid
from decimal import Decimal

from django.db import models
from django.db.models import F, Q


class ProductType(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    hsn_number = models.CharField(max_length=32, blank=True, default="")
    is_service = models.BooleanField(default=False)
    cgst_rate = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("9.00"))
    sgst_rate = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("9.00"))
    igst_rate = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("0.00"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name


class StorageLocation(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name


class ProductionBatch(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product_type = models.ForeignKey(ProductType, on_delete=models.PROTECT, related_name="batches")
    storage_location = models.ForeignKey(StorageLocation, on_delete=models.PROTECT, related_name="batches")
    quantity = models.PositiveIntegerField()
    remaining_quantity = models.PositiveIntegerField()
    production_date = models.DateField()
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["product_type", "production_date"], name="batch_product_date_idx"),
            models.Index(fields=["storage_location"], name="batch_location_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining_quantity__lte=F("quantity")),
                name="batch_remaining_lte_quantity",
            ),
        ]


class RawMaterial(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    unit = models.CharField(max_length=32)
    current_stock = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    min_stock_level = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name


class ProductionMaterial(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    production_batch = models.ForeignKey(ProductionBatch, on_delete=models.CASCADE, related_name="materials")
    raw_material = models.ForeignKey(RawMaterial, on_delete=models.PROTECT, related_name="consumptions")
    quantity_used = models.DecimalField(max_digits=14, decimal_places=3)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["production_batch"], name="prodmaterial_batch_idx"),
            models.Index(fields=["raw_material"], name="prodmaterial_material_idx"),
        ]
