import uuid

from django.db import models

from core.models import Partner
from inventory.models import ProductionBatch, ProductType


class Invoice(models.Model):
    class PaymentType(models.TextChoices):
        CASH = "CASH", "Cash"
        ONLINE = "ONLINE", "Online"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PARTIAL = "PARTIAL", "Partial"
        COMPLETE = "COMPLETE", "Complete"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice_number = models.CharField(max_length=64, unique=True)
    partner = models.ForeignKey(Partner, on_delete=models.PROTECT, related_name="invoices")
    invoice_date = models.DateField()
    is_gst = models.BooleanField(default=True)
    # Explicit invoice-level rates; null means "use the product type's rates".
    cgst_rate = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    sgst_rate = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    igst_rate = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    cgst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    sgst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    igst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_type = models.CharField(max_length=16, choices=PaymentType.choices, default=PaymentType.CASH)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    pending_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    remarks = models.TextField(null=True, blank=True)
    transport_mode = models.CharField(max_length=64, null=True, blank=True)
    transportation = models.ForeignKey(
        Partner, on_delete=models.SET_NULL, null=True, blank=True, related_name="transported_invoices"
    )
    driver_name = models.CharField(max_length=255, null=True, blank=True)
    driver_phone = models.CharField(max_length=64, null=True, blank=True)
    transport_vehicle = models.CharField(max_length=64, null=True, blank=True)
    delivery_city = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["invoice_date"], name="invoice_date_idx"),
            models.Index(fields=["partner", "invoice_date"], name="invoice_partner_date_idx"),
        ]

    def __str__(self):
        return self.invoice_number


class Sale(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="sales")
    product_type = models.ForeignKey(ProductType, on_delete=models.PROTECT, related_name="sales")
    production_batch = models.ForeignKey(
        ProductionBatch, on_delete=models.PROTECT, null=True, blank=True, related_name="sales"
    )
    quantity = models.PositiveIntegerField()
    rate = models.DecimalField(max_digits=12, decimal_places=2)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["invoice"], name="sale_invoice_idx"),
            models.Index(fields=["production_batch"], name="sale_batch_idx"),
            models.Index(fields=["product_type", "created_at"], name="sale_product_created_idx"),
        ]
