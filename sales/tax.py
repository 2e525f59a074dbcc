from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value):
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxRates:
    """CGST/SGST/IGST percentages applied to one invoice."""

    cgst: Decimal
    sgst: Decimal
    igst: Decimal

    @classmethod
    def from_source(cls, source):
        """Read ``cgst_rate``/``sgst_rate``/``igst_rate`` off a model row."""
        return cls(
            cgst=Decimal(str(source.cgst_rate)),
            sgst=Decimal(str(source.sgst_rate)),
            igst=Decimal(str(source.igst_rate)),
        )


@dataclass(frozen=True)
class TaxSplit:
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_amount: Decimal

    def as_fields(self):
        return {
            "subtotal": self.subtotal,
            "cgst_amount": self.cgst_amount,
            "sgst_amount": self.sgst_amount,
            "igst_amount": self.igst_amount,
            "total_amount": self.total_amount,
        }


ZERO_TOTALS = InvoiceTotals(ZERO, ZERO, ZERO, ZERO, ZERO)


def line_amount(quantity, rate):
    return to_money(Decimal(quantity) * Decimal(str(rate)))


def split_tax(base, cgst_rate, sgst_rate, igst_rate, is_gst):
    """Each component is ``base * rate / 100`` rounded to the cent; all zero when GST is off."""
    if not is_gst:
        return TaxSplit(ZERO, ZERO, ZERO)

    base = Decimal(str(base))
    return TaxSplit(
        cgst_amount=to_money(base * Decimal(str(cgst_rate)) / HUNDRED),
        sgst_amount=to_money(base * Decimal(str(sgst_rate)) / HUNDRED),
        igst_amount=to_money(base * Decimal(str(igst_rate)) / HUNDRED),
    )


def invoice_total(subtotal, cgst_amount, sgst_amount, igst_amount):
    return to_money(subtotal) + to_money(cgst_amount) + to_money(sgst_amount) + to_money(igst_amount)


def compute_totals(line_amounts, rates, is_gst):
    subtotal = sum((to_money(amount) for amount in line_amounts), ZERO)
    split = split_tax(subtotal, rates.cgst, rates.sgst, rates.igst, is_gst)
    return InvoiceTotals(
        subtotal=subtotal,
        cgst_amount=split.cgst_amount,
        sgst_amount=split.sgst_amount,
        igst_amount=split.igst_amount,
        total_amount=invoice_total(subtotal, split.cgst_amount, split.sgst_amount, split.igst_amount),
    )


def resolve_rates(*, defaults, invoice=None, product_type=None):
    """Pick the single effective rate set for an invoice.

    Invoice-level rates win field by field, then the product type's own rates,
    then ``defaults`` (the company-wide settings).
    """
    fallback = TaxRates.from_source(product_type) if product_type is not None else defaults

    def pick(field, fallback_value):
        explicit = getattr(invoice, f"{field}_rate", None) if invoice is not None else None
        return Decimal(str(explicit)) if explicit is not None else fallback_value

    return TaxRates(
        cgst=pick("cgst", fallback.cgst),
        sgst=pick("sgst", fallback.sgst),
        igst=pick("igst", fallback.igst),
    )


def derive_payment_status(total_amount, paid_amount):
    paid = to_money(paid_amount)
    if paid <= ZERO:
        return "PENDING"
    if paid < to_money(total_amount):
        return "PARTIAL"
    return "COMPLETE"
