import uuid

from django.db import models

from core.models import Partner
from inventory.models import RawMaterial


class ExpenseCategory(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Expense(models.Model):
    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PARTIAL = "PARTIAL", "Partial"
        COMPLETE = "COMPLETE", "Complete"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    category = models.ForeignKey(ExpenseCategory, on_delete=models.PROTECT, related_name="expenses")
    partner = models.ForeignKey(Partner, on_delete=models.PROTECT, null=True, blank=True, related_name="expenses")
    raw_material = models.ForeignKey(
        RawMaterial, on_delete=models.SET_NULL, null=True, blank=True, related_name="purchases"
    )
    description = models.TextField(null=True, blank=True)
    quantity = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)
    rate = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    date = models.DateField()
    bill_number = models.CharField(max_length=64, null=True, blank=True)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.COMPLETE)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    pending_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["date"], name="expense_date_idx"),
            models.Index(fields=["category", "date"], name="expense_category_date_idx"),
            models.Index(fields=["raw_material", "date"], name="expense_material_date_idx"),
        ]


class FinancialTransaction(models.Model):
    """Denormalized ledger row mirroring exactly one invoice or one expense."""

    class Type(models.TextChoices):
        SALE = "SALE", "Sale"
        PURCHASE = "PURCHASE", "Purchase"
        EXPENSE = "EXPENSE", "Expense"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(max_length=16, choices=Type.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    date = models.DateField()
    description = models.CharField(max_length=512, blank=True, default="")
    partner = models.ForeignKey(Partner, on_delete=models.PROTECT, null=True, blank=True, related_name="transactions")
    invoice = models.ForeignKey(
        "sales.Invoice", on_delete=models.CASCADE, null=True, blank=True, related_name="transactions"
    )
    expense = models.ForeignKey(Expense, on_delete=models.CASCADE, null=True, blank=True, related_name="transactions")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["type", "date"], name="fintxn_type_date_idx"),
            models.Index(fields=["invoice"], name="fintxn_invoice_idx"),
            models.Index(fields=["expense"], name="fintxn_expense_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(invoice__isnull=False, expense__isnull=True)
                    | models.Q(invoice__isnull=True, expense__isnull=False)
                ),
                name="fintxn_single_source",
            ),
        ]
