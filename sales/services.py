import logging
from collections import defaultdict

from django.db import IntegrityError
from django.utils import timezone

from common.db import ledger_atomic, parse_id
from common.exceptions import DuplicateInvoiceNumber, LedgerNotFound, LedgerValidationError
from core.models import SystemSettings
from finance.models import FinancialTransaction
from inventory.services import StockLedger, batch_key
from sales.allocation import MultiBatchLine, MultiProductLine, PlannedSale, SaleLineAllocator
from sales.models import Invoice, Sale
from sales.tax import (
    ZERO,
    ZERO_TOTALS,
    InvoiceTotals,
    TaxRates,
    compute_totals,
    derive_payment_status,
    invoice_total,
    line_amount,
    resolve_rates,
    to_money,
)

logger = logging.getLogger("ledger.invoice")

HEADER_FIELDS = (
    "partner",
    "invoice_date",
    "is_gst",
    "cgst_rate",
    "sgst_rate",
    "igst_rate",
    "payment_type",
    "remarks",
    "transport_mode",
    "transportation",
    "driver_name",
    "driver_phone",
    "transport_vehicle",
    "delivery_city",
)
TAX_AMOUNT_FIELDS = ("cgst_amount", "sgst_amount", "igst_amount")


def load_tax_defaults():
    return TaxRates.from_source(SystemSettings.load())


def invoice_number_exists(invoice_number, *, exclude_id=None):
    queryset = Invoice.objects.filter(invoice_number=invoice_number)
    if exclude_id is not None:
        queryset = queryset.exclude(id=exclude_id)
    return queryset.exists()


def _create_operation(line):
    if isinstance(line, MultiProductLine):
        return "invoice.create_multi_product"
    if isinstance(line, MultiBatchLine):
        return "invoice.create_multi_batch"
    return "invoice.create"


def _invoice_log_extra(invoice, operation, **extra):
    return {
        "operation": operation,
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "total_amount": invoice.total_amount,
        **extra,
    }


class InvoiceLedger:
    """Invoice lifecycle: every mutation of invoices, their sales and batch stock.

    Each public method is one atomic ledger transaction. Invoice totals are
    rebuilt from the invoice's current Sale rows after every mutation, and
    the invoice's SALE FinancialTransaction is rewritten in the same
    transaction. Tax defaults are read once, when the ledger is built.
    """

    def __init__(self, tax_defaults=None):
        self.tax_defaults = tax_defaults if tax_defaults is not None else load_tax_defaults()

    # Create

    def create(self, header, line):
        invoice_number = header["invoice_number"]
        operation = _create_operation(line)
        try:
            with ledger_atomic(operation):
                if invoice_number_exists(invoice_number):
                    raise DuplicateInvoiceNumber(invoice_number)

                allocator = SaleLineAllocator(StockLedger())
                planned = allocator.plan(line)
                if not planned:
                    raise LedgerValidationError(
                        "At least one sale line with a quantity greater than zero is required.",
                        errors={"batch_selections": []},
                    )

                invoice = Invoice(invoice_number=invoice_number)
                self._apply_header(invoice, header)
                invoice.save()

                sales = allocator.apply(invoice, planned)
                self._recompute(
                    invoice,
                    sales=sales,
                    product_type=planned[0].product_type,
                    payment_status=header.get("payment_status"),
                )
                self._sync_mirror(invoice)
        except IntegrityError:
            if invoice_number_exists(invoice_number):
                raise DuplicateInvoiceNumber(invoice_number) from None
            raise

        logger.info(
            "invoice_created",
            extra=_invoice_log_extra(invoice, operation, quantity=sum(sale.quantity for sale in sales)),
        )
        return invoice

    # Edit

    def edit_sale(self, sale_id, changes):
        """Re-quantify, re-price or move an invoice's sale to another batch.

        Only the marginal difference against the current Sale row reaches the
        stock ledger. Supplied tax amounts are taken as given for an invoice
        whose only line is this sale; otherwise taxes are computed.
        """
        with ledger_atomic("sale.edit"):
            invoice, sale = self._lock_sale(sale_id)
            self._check_number_change(invoice, changes)

            product_type = sale.product_type
            new_rate = changes.get("rate", sale.rate)
            if product_type.is_service:
                new_quantity = changes.get("quantity", sale.quantity) or 1
            else:
                new_quantity = changes.get("quantity", sale.quantity)
            if new_quantity is None or new_quantity <= 0:
                raise LedgerValidationError(
                    "Quantity must be greater than zero.",
                    errors={"quantity": new_quantity},
                )

            old_batch_id = batch_key(sale.production_batch_id) if sale.production_batch_id else None
            new_batch_id = old_batch_id
            if "production_batch_id" in changes:
                requested_batch = changes["production_batch_id"]
                new_batch_id = batch_key(requested_batch) if requested_batch else None
            if product_type.is_service and new_batch_id:
                raise LedgerValidationError(
                    "Service lines do not draw from a production batch.",
                    errors={"production_batch_id": new_batch_id},
                )

            amount = line_amount(new_quantity, new_rate)
            supplied_amount = changes.get("amount")
            if supplied_amount is not None and to_money(supplied_amount) != amount:
                raise LedgerValidationError(
                    "Amount must equal quantity multiplied by rate.",
                    errors={"amount": str(supplied_amount), "expected": str(amount)},
                )

            stock = StockLedger()
            stock.lock([batch_id for batch_id in (old_batch_id, new_batch_id) if batch_id])
            if new_batch_id != old_batch_id:
                if new_batch_id:
                    self._check_batch_product(stock, new_batch_id, product_type)
                    stock.check_available(new_batch_id, new_quantity)
                if old_batch_id:
                    stock.commit(old_batch_id, sale.quantity)
                if new_batch_id:
                    stock.commit(new_batch_id, -new_quantity)
            elif new_batch_id:
                delta = new_quantity - sale.quantity
                if delta > 0:
                    stock.check_available(new_batch_id, delta)
                stock.commit(new_batch_id, -delta)

            old_quantity = sale.quantity
            sale.quantity = new_quantity
            sale.rate = new_rate
            sale.amount = amount
            sale.production_batch = stock.get(new_batch_id) if new_batch_id else None
            sale.save()

            self._apply_header(invoice, changes)
            sales = self._current_sales(invoice)
            totals = self._totals_for(invoice, sales)
            supplied_taxes = {field: changes[field] for field in TAX_AMOUNT_FIELDS if changes.get(field) is not None}
            if len(sales) == 1 and supplied_taxes and invoice.is_gst:
                totals = self._with_supplied_taxes(totals, supplied_taxes)
            self._apply_totals(invoice, totals, payment_status=changes.get("payment_status"))
            self._sync_mirror(invoice)

        logger.info(
            "sale_updated",
            extra=_invoice_log_extra(
                invoice,
                "sale.edit",
                sale_id=sale.id,
                batch_id=new_batch_id,
                quantity=new_quantity,
                delta=new_quantity - old_quantity,
            ),
        )
        return sale

    def add_line(self, invoice_id, line):
        """Add one product line and rebuild totals from every current sale."""
        with ledger_atomic("invoice.add_line"):
            invoice = self._lock_invoice(invoice_id)
            allocator = SaleLineAllocator(StockLedger())
            planned = allocator.plan(line)
            if not planned:
                logger.info("invoice_line_skipped", extra=_invoice_log_extra(invoice, "invoice.add_line"))
                return invoice

            allocator.apply(invoice, planned)
            self._recompute(invoice, product_type=planned[0].product_type)
            self._sync_mirror(invoice)

        logger.info("invoice_line_added", extra=_invoice_log_extra(invoice, "invoice.add_line"))
        return invoice

    def edit_batches(self, invoice_id, changes, line):
        """Reconcile one product's batch selections against the invoice's sales.

        A selected batch the invoice already draws from is re-quantified by the
        difference, a new batch gets a new sale and a batch no longer selected
        has its sales deleted and stock returned. Stock the invoice already
        holds on a batch counts as available to it.
        """
        with ledger_atomic("invoice.edit_batches"):
            invoice = self._lock_invoice(invoice_id)
            self._check_number_change(invoice, changes)

            stock = StockLedger()
            allocator = SaleLineAllocator(stock)
            if not line.allocations:
                raise LedgerValidationError(
                    "At least one batch selection is required.",
                    errors={"batch_selections": []},
                )

            existing = defaultdict(list)
            for sale in invoice.sales.filter(
                product_type_id=line.product_type_id, production_batch__isnull=False
            ).order_by("created_at", "id"):
                existing[batch_key(sale.production_batch_id)].append(sale)
            held = {batch_id: sum(sale.quantity for sale in sales) for batch_id, sales in existing.items()}

            stock.lock(
                set(existing)
                | {batch_key(allocation.batch_id) for allocation in line.allocations if allocation.quantity > 0}
            )
            planned = allocator.plan(line, held=held)
            if any(planned_sale.batch_id is None for planned_sale in planned):
                raise LedgerValidationError(
                    "Batch editing applies to products drawn from production batches.",
                    errors={"product_type_id": str(line.product_type_id)},
                )

            wanted = defaultdict(int)
            for planned_sale in planned:
                wanted[planned_sale.batch_id] += planned_sale.quantity

            for batch_id in sorted(existing):
                if batch_id in wanted:
                    continue
                for sale in existing[batch_id]:
                    stock.commit(batch_id, sale.quantity)
                    sale.delete()

            new_sales = []
            for batch_id in sorted(wanted):
                quantity = wanted[batch_id]
                current = existing.get(batch_id)
                if not current:
                    product_type = next(p.product_type for p in planned if p.batch_id == batch_id)
                    new_sales.append(PlannedSale(product_type, quantity, line.rate, batch_id=batch_id))
                    continue

                keep, *extra = current
                for sale in extra:
                    stock.commit(batch_id, sale.quantity)
                    sale.delete()
                stock.commit(batch_id, keep.quantity - quantity)
                keep.quantity = quantity
                keep.rate = line.rate
                keep.amount = line_amount(quantity, line.rate)
                keep.save()

            if new_sales:
                allocator.apply(invoice, new_sales)

            self._apply_header(invoice, changes)
            self._recompute(invoice, payment_status=changes.get("payment_status"))
            self._sync_mirror(invoice)

        logger.info("invoice_batches_updated", extra=_invoice_log_extra(invoice, "invoice.edit_batches"))
        return invoice

    # Delete

    def delete_sale(self, sale_id):
        """Delete one sale; the invoice goes with it when no sale remains."""
        with ledger_atomic("sale.delete"):
            invoice, sale = self._lock_sale(sale_id)
            stock = StockLedger()
            if sale.production_batch_id:
                stock.commit(sale.production_batch_id, sale.quantity)

            FinancialTransaction.objects.filter(invoice=invoice).delete()
            deleted_sale_id = sale.id
            sale.delete()

            remaining = self._current_sales(invoice)
            invoice_deleted = not remaining
            if invoice_deleted:
                invoice_id = invoice.id
                invoice.delete()
                invoice.id = invoice_id
            else:
                self._recompute(invoice, sales=remaining)
                self._sync_mirror(invoice)

        logger.info(
            "sale_deleted",
            extra=_invoice_log_extra(invoice, "sale.delete", sale_id=deleted_sale_id, quantity=sale.quantity),
        )
        return {"invoice_id": invoice.id, "invoice_deleted": invoice_deleted}

    def clear_sales(self, invoice_id):
        """Delete every sale but keep the invoice, with all totals back at zero.

        Pending is reset to zero as well, even when something was paid; the
        paid amount itself is left as recorded.
        """
        with ledger_atomic("invoice.clear_sales"):
            invoice = self._lock_invoice(invoice_id)
            restored = self._restore_all(invoice)
            self._apply_totals(invoice, ZERO_TOTALS, pending_amount=ZERO)
            self._sync_mirror(invoice)

        logger.info("invoice_sales_cleared", extra=_invoice_log_extra(invoice, "invoice.clear_sales", quantity=restored))
        return invoice

    def delete_invoice(self, invoice_id):
        with ledger_atomic("invoice.delete"):
            invoice = self._lock_invoice(invoice_id)
            restored = self._restore_all(invoice)
            FinancialTransaction.objects.filter(invoice=invoice).delete()
            deleted_id = invoice.id
            invoice.delete()
            invoice.id = deleted_id

        logger.info("invoice_deleted", extra=_invoice_log_extra(invoice, "invoice.delete", quantity=restored))
        return invoice

    # Helpers

    def _lock_invoice(self, invoice_id):
        invoice = Invoice.objects.select_for_update().filter(id=parse_id("Invoice", invoice_id)).first()
        if invoice is None:
            raise LedgerNotFound("Invoice", invoice_id)
        return invoice

    def _lock_sale(self, sale_id):
        """Lock the sale's invoice first, then read the sale under that lock."""
        parsed_id = parse_id("Sale", sale_id)
        invoice_id = Sale.objects.filter(id=parsed_id).values_list("invoice_id", flat=True).first()
        if invoice_id is None:
            raise LedgerNotFound("Sale", sale_id)
        invoice = self._lock_invoice(invoice_id)
        sale = Sale.objects.select_related("product_type").filter(id=parsed_id, invoice=invoice).first()
        if sale is None:
            raise LedgerNotFound("Sale", sale_id)
        return invoice, sale

    def _check_number_change(self, invoice, changes):
        new_number = changes.get("invoice_number")
        if not new_number or new_number == invoice.invoice_number:
            return
        if invoice_number_exists(new_number, exclude_id=invoice.id):
            raise DuplicateInvoiceNumber(new_number)
        invoice.invoice_number = new_number

    def _check_batch_product(self, stock, batch_id, product_type):
        if stock.get(batch_id).product_type_id != product_type.id:
            raise LedgerValidationError(
                f"Batch {batch_id} does not belong to the selected product.",
                errors={"batch_id": batch_id},
            )

    def _apply_header(self, invoice, values):
        for field in HEADER_FIELDS:
            if field in values:
                setattr(invoice, field, values[field])
        if values.get("paid_amount") is not None:
            invoice.paid_amount = to_money(values["paid_amount"])

    def _current_sales(self, invoice):
        return list(invoice.sales.select_related("product_type").order_by("created_at", "id"))

    def _restore_all(self, invoice):
        sales = self._current_sales(invoice)
        stock = StockLedger()
        stock.lock([sale.production_batch_id for sale in sales if sale.production_batch_id])
        restored = 0
        for sale in sales:
            if sale.production_batch_id:
                stock.commit(sale.production_batch_id, sale.quantity)
                restored += sale.quantity
        invoice.sales.all().delete()
        return restored

    def _totals_for(self, invoice, sales, product_type=None):
        if product_type is None and sales:
            product_type = sales[0].product_type
        rates = resolve_rates(defaults=self.tax_defaults, invoice=invoice, product_type=product_type)
        return compute_totals([sale.amount for sale in sales], rates, invoice.is_gst)

    def _with_supplied_taxes(self, totals, supplied):
        cgst = to_money(supplied.get("cgst_amount", totals.cgst_amount))
        sgst = to_money(supplied.get("sgst_amount", totals.sgst_amount))
        igst = to_money(supplied.get("igst_amount", totals.igst_amount))
        return InvoiceTotals(
            subtotal=totals.subtotal,
            cgst_amount=cgst,
            sgst_amount=sgst,
            igst_amount=igst,
            total_amount=invoice_total(totals.subtotal, cgst, sgst, igst),
        )

    def _recompute(self, invoice, *, sales=None, product_type=None, payment_status=None):
        if sales is None:
            sales = self._current_sales(invoice)
        totals = self._totals_for(invoice, sales, product_type=product_type)
        self._apply_totals(invoice, totals, payment_status=payment_status)

    def _apply_totals(self, invoice, totals, payment_status=None, pending_amount=None):
        for field, value in totals.as_fields().items():
            setattr(invoice, field, value)
        invoice.paid_amount = to_money(invoice.paid_amount)
        if pending_amount is None:
            pending_amount = totals.total_amount - invoice.paid_amount
        invoice.pending_amount = pending_amount
        invoice.payment_status = payment_status or derive_payment_status(totals.total_amount, invoice.paid_amount)
        invoice.save()

    def _sync_mirror(self, invoice):
        values = {
            "amount": invoice.total_amount,
            "date": invoice.invoice_date,
            "description": f"Sale Invoice {invoice.invoice_number}",
            "partner": invoice.partner,
        }
        updated = FinancialTransaction.objects.filter(invoice=invoice).update(updated_at=timezone.now(), **values)
        if not updated:
            FinancialTransaction.objects.create(type=FinancialTransaction.Type.SALE, invoice=invoice, **values)
