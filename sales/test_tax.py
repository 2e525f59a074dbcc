from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase

from sales.tax import (
    TaxRates,
    compute_totals,
    derive_payment_status,
    invoice_total,
    line_amount,
    resolve_rates,
    split_tax,
    to_money,
)

DEFAULTS = TaxRates(cgst=Decimal("9"), sgst=Decimal("9"), igst=Decimal("0"))


class SplitTaxTests(SimpleTestCase):
    def test_split_is_zero_when_gst_is_off(self):
        split = split_tax(Decimal("3000"), Decimal("9"), Decimal("9"), Decimal("18"), False)

        self.assertEqual(split.cgst_amount, Decimal("0.00"))
        self.assertEqual(split.sgst_amount, Decimal("0.00"))
        self.assertEqual(split.igst_amount, Decimal("0.00"))

    def test_split_applies_each_rate_as_percentage(self):
        split = split_tax(Decimal("450"), Decimal("9"), Decimal("9"), Decimal("0"), True)

        self.assertEqual(split.cgst_amount, Decimal("40.50"))
        self.assertEqual(split.sgst_amount, Decimal("40.50"))
        self.assertEqual(split.igst_amount, Decimal("0.00"))

    def test_split_rounds_half_up_to_the_cent(self):
        split = split_tax(Decimal("0.50"), Decimal("9"), Decimal("2.5"), Decimal("0"), True)

        self.assertEqual(split.cgst_amount, Decimal("0.05"))
        self.assertEqual(split.sgst_amount, Decimal("0.01"))


class InvoiceTotalTests(SimpleTestCase):
    def test_total_is_sum_of_parts(self):
        self.assertEqual(
            invoice_total(Decimal("450"), Decimal("40.5"), Decimal("40.5"), Decimal("0")),
            Decimal("531.00"),
        )

    def test_compute_totals_from_line_amounts(self):
        totals = compute_totals([Decimal("200"), Decimal("250")], DEFAULTS, True)

        self.assertEqual(totals.subtotal, Decimal("450.00"))
        self.assertEqual(totals.total_amount, Decimal("531.00"))
        self.assertEqual(
            totals.total_amount,
            totals.subtotal + totals.cgst_amount + totals.sgst_amount + totals.igst_amount,
        )

    def test_compute_totals_for_no_lines_is_zero(self):
        totals = compute_totals([], DEFAULTS, True)

        self.assertEqual(totals.subtotal, Decimal("0.00"))
        self.assertEqual(totals.total_amount, Decimal("0.00"))

    def test_line_amount_is_quantity_times_rate(self):
        self.assertEqual(line_amount(300, Decimal("10")), Decimal("3000.00"))
        self.assertEqual(line_amount(3, Decimal("0.335")), Decimal("1.01"))

    def test_to_money_rounds_half_up_from_any_numeric_input(self):
        self.assertEqual(to_money("2.675"), Decimal("2.68"))
        self.assertEqual(to_money(1.005), Decimal("1.01"))
        self.assertEqual(to_money(7), Decimal("7.00"))


class ResolveRatesTests(SimpleTestCase):
    def test_defaults_apply_without_invoice_or_product(self):
        self.assertEqual(resolve_rates(defaults=DEFAULTS), DEFAULTS)

    def test_product_type_rates_override_defaults(self):
        product_type = SimpleNamespace(cgst_rate=Decimal("6"), sgst_rate=Decimal("6"), igst_rate=Decimal("0"))

        rates = resolve_rates(defaults=DEFAULTS, product_type=product_type)

        self.assertEqual(rates, TaxRates(Decimal("6"), Decimal("6"), Decimal("0")))

    def test_invoice_rates_override_product_type_field_by_field(self):
        product_type = SimpleNamespace(cgst_rate=Decimal("6"), sgst_rate=Decimal("6"), igst_rate=Decimal("0"))
        invoice = SimpleNamespace(cgst_rate=Decimal("2.5"), sgst_rate=None, igst_rate=None)

        rates = resolve_rates(defaults=DEFAULTS, invoice=invoice, product_type=product_type)

        self.assertEqual(rates, TaxRates(Decimal("2.5"), Decimal("6"), Decimal("0")))


class PaymentStatusTests(SimpleTestCase):
    def test_status_follows_paid_amount(self):
        self.assertEqual(derive_payment_status(Decimal("100"), Decimal("0")), "PENDING")
        self.assertEqual(derive_payment_status(Decimal("100"), Decimal("40")), "PARTIAL")
        self.assertEqual(derive_payment_status(Decimal("100"), Decimal("100")), "COMPLETE")
