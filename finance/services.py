import logging
from decimal import Decimal

from django.conf import settings

from common.db import ledger_atomic, parse_id
from common.exceptions import LedgerNotFound, LedgerValidationError
from finance.models import Expense, ExpenseCategory, FinancialTransaction
from inventory.models import RawMaterial
from inventory.services import adjust_raw_material_stock
from sales.tax import ZERO, derive_payment_status, to_money

logger = logging.getLogger("ledger.expense")

EXPENSE_FIELDS = ("description", "partner", "raw_material", "quantity", "rate", "date", "bill_number")


def raw_material_category():
    category, _ = ExpenseCategory.objects.get_or_create(
        name=settings.RAW_MATERIAL_CATEGORY_NAME,
        defaults={"is_default": True},
    )
    return category


def expense_description(category, description):
    return f"{category.name} Expense{f': {description}' if description else ''}"


def purchase_description(material, quantity):
    return f"Purchase of {material.name} ({quantity.normalize():f} {material.unit})"


def _load_category(category_id):
    category = ExpenseCategory.objects.filter(id=parse_id("ExpenseCategory", category_id)).first()
    if category is None:
        raise LedgerNotFound("ExpenseCategory", category_id)
    return category


def _require_raw_material_refs(category, partner, raw_material):
    if category.name != settings.RAW_MATERIAL_CATEGORY_NAME:
        return
    missing = [name for name, value in (("partner", partner), ("raw_material", raw_material)) if value is None]
    if missing:
        raise LedgerValidationError(
            "Vendor and raw material are required for raw material expenses.",
            errors={name: "This field is required." for name in missing},
        )


def _settle(expense, payment_status=None, paid_amount=None):
    """Fill paid/pending/status so that pending = amount - paid."""
    amount = to_money(expense.amount)
    if paid_amount is None:
        if payment_status in (None, Expense.PaymentStatus.COMPLETE):
            paid_amount = amount
        elif payment_status == Expense.PaymentStatus.PENDING:
            paid_amount = ZERO
        else:
            paid_amount = expense.paid_amount
    expense.amount = amount
    expense.paid_amount = to_money(paid_amount)
    expense.pending_amount = amount - expense.paid_amount
    expense.payment_status = payment_status or derive_payment_status(amount, expense.paid_amount)


class ExpenseLedger:
    """Expenses and raw-material purchases, each with its EXPENSE ledger row."""

    def create(self, data):
        category = _load_category(data["category_id"])
        if data.get("amount") is None or data.get("date") is None:
            raise LedgerValidationError("Amount and date are required.", errors={"amount": data.get("amount")})
        _require_raw_material_refs(category, data.get("partner"), data.get("raw_material"))

        with ledger_atomic("expense.create"):
            expense = Expense(category=category, amount=data["amount"])
            for field in EXPENSE_FIELDS:
                if field in data:
                    setattr(expense, field, data[field])
            _settle(expense, data.get("payment_status"), data.get("paid_amount"))
            expense.save()
            self._write_mirror(expense, expense_description(category, expense.description))

        logger.info(
            "expense_created",
            extra={"operation": "expense.create", "expense_id": expense.id, "total_amount": expense.amount},
        )
        return expense

    def edit(self, expense_id, changes):
        with ledger_atomic("expense.edit"):
            expense = Expense.objects.select_for_update().filter(id=parse_id("Expense", expense_id)).first()
            if expense is None:
                raise LedgerNotFound("Expense", expense_id)

            if changes.get("category_id") is not None:
                expense.category = _load_category(changes["category_id"])
            for field in EXPENSE_FIELDS:
                if field in changes:
                    setattr(expense, field, changes[field])
            if changes.get("amount") is not None:
                expense.amount = changes["amount"]
            _require_raw_material_refs(expense.category, expense.partner, expense.raw_material)

            paid_amount = changes.get("paid_amount")
            payment_status = changes.get("payment_status")
            if paid_amount is None and payment_status is None:
                if expense.payment_status == Expense.PaymentStatus.COMPLETE:
                    paid_amount = expense.amount
                else:
                    paid_amount = min(to_money(expense.paid_amount), to_money(expense.amount))
            _settle(expense, payment_status, paid_amount)
            expense.save()

            FinancialTransaction.objects.filter(expense=expense).update(
                amount=expense.amount,
                date=expense.date,
                description=expense_description(expense.category, expense.description),
                partner=expense.partner,
            )

        logger.info(
            "expense_updated",
            extra={"operation": "expense.edit", "expense_id": expense.id, "total_amount": expense.amount},
        )
        return expense

    def delete(self, expense_id):
        with ledger_atomic("expense.delete"):
            expense = Expense.objects.select_for_update().filter(id=parse_id("Expense", expense_id)).first()
            if expense is None:
                raise LedgerNotFound("Expense", expense_id)
            deleted_id = expense.id
            FinancialTransaction.objects.filter(expense=expense).delete()
            expense.delete()

        logger.info("expense_deleted", extra={"operation": "expense.delete", "expense_id": deleted_id})
        return deleted_id

    def record_purchase(
        self,
        *,
        quantity,
        date,
        raw_material_id=None,
        new_material=None,
        purchase_amount=None,
        partner=None,
        bill_number=None,
    ):
        """Restock an existing raw material or create a new one, and book the purchase.

        ``new_material`` is a dict with ``name``, ``unit`` and optionally
        ``min_stock_level``. An expense is written only when a purchase amount
        is given (and, for a new material, a vendor).
        """
        quantity = Decimal(str(quantity or 0))
        if quantity < 0:
            raise LedgerValidationError("Quantity cannot be negative.", errors={"quantity": str(quantity)})
        if raw_material_id is None and not new_material:
            raise LedgerValidationError(
                "Either an existing raw material or a new material is required.",
                errors={"raw_material_id": None},
            )

        with ledger_atomic("raw_material.purchase"):
            if raw_material_id is not None:
                material = adjust_raw_material_stock(raw_material_id, quantity)
                book_expense = bool(purchase_amount)
            else:
                if RawMaterial.objects.filter(name=new_material["name"]).exists():
                    raise LedgerValidationError(
                        f"Raw material {new_material['name']} already exists.",
                        errors={"name": new_material["name"]},
                    )
                material = RawMaterial.objects.create(
                    name=new_material["name"],
                    unit=new_material["unit"],
                    current_stock=quantity,
                    min_stock_level=new_material.get("min_stock_level") or 0,
                )
                book_expense = bool(purchase_amount) and partner is not None

            expense = None
            if book_expense:
                amount = to_money(purchase_amount)
                description = purchase_description(material, quantity)
                expense = Expense.objects.create(
                    category=raw_material_category(),
                    partner=partner,
                    raw_material=material,
                    quantity=quantity,
                    rate=to_money(amount / quantity) if quantity > 0 else ZERO,
                    amount=amount,
                    date=date,
                    bill_number=bill_number or None,
                    description=description,
                    payment_status=Expense.PaymentStatus.COMPLETE,
                    paid_amount=amount,
                    pending_amount=ZERO,
                )
                self._write_mirror(expense, description)

        logger.info(
            "raw_material_purchased",
            extra={
                "operation": "raw_material.purchase",
                "raw_material_id": material.id,
                "quantity": quantity,
                "expense_id": expense.id if expense else None,
            },
        )
        return material, expense

    def _write_mirror(self, expense, description):
        return FinancialTransaction.objects.create(
            type=FinancialTransaction.Type.EXPENSE,
            amount=expense.amount,
            date=expense.date,
            description=description,
            partner=expense.partner,
            expense=expense,
        )
