import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from common.exceptions import LedgerNotFound, LedgerValidationError
from inventory.models import ProductType
from inventory.services import batch_key
from sales.models import Sale
from sales.tax import line_amount

logger = logging.getLogger("ledger.allocation")


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: str
    quantity: int


@dataclass(frozen=True)
class SingleLine:
    product_type_id: str
    rate: Decimal
    quantity: Optional[int]
    batch_id: Optional[str] = None


@dataclass(frozen=True)
class MultiBatchLine:
    product_type_id: str
    rate: Decimal
    allocations: tuple = ()


@dataclass(frozen=True)
class ProductLine:
    product_type_id: str
    rate: Decimal
    allocations: tuple = ()
    quantity: Optional[int] = None


@dataclass(frozen=True)
class MultiProductLine:
    items: tuple = ()


@dataclass
class PlannedSale:
    product_type: ProductType
    quantity: int
    rate: Decimal
    batch_id: Optional[str] = None
    amount: Decimal = field(init=False)

    def __post_init__(self):
        self.amount = line_amount(self.quantity, self.rate)


def _load_product_type(product_type_id):
    product_type = ProductType.objects.filter(id=product_type_id).first()
    if product_type is None:
        raise LedgerNotFound("ProductType", product_type_id)
    return product_type


def _service_quantity(quantity):
    if quantity is None or quantity == 0:
        return 1
    if quantity < 0:
        raise LedgerValidationError(
            "Service quantity must be greater than zero.",
            errors={"quantity": quantity},
        )
    return quantity


class SaleLineAllocator:
    """Turns line requests into planned Sale rows and writes them.

    ``plan`` resolves product types and checks every batch allocation against
    the stock ledger without writing anything; ``apply`` then spends the stock
    and inserts the sales. Both run inside the caller's ledger transaction, so a
    failed check leaves nothing behind.
    """

    def __init__(self, stock):
        self.stock = stock

    def plan(self, request, *, held=None):
        """Return the planned sales for ``request``.

        ``held`` maps batch id to the quantity the invoice being edited already
        holds on it; that stock counts as available to the same invoice.
        """
        if isinstance(request, SingleLine):
            planned = self._plan_single(request)
        elif isinstance(request, (MultiBatchLine, ProductLine)):
            planned = self._plan_product(request)
        elif isinstance(request, MultiProductLine):
            planned = []
            for item in request.items:
                planned.extend(self._plan_product(item))
        else:
            raise TypeError(f"Unsupported line request: {type(request).__name__}")

        self._check_stock(planned, held or {})
        return planned

    def _plan_single(self, request):
        product_type = _load_product_type(request.product_type_id)
        if product_type.is_service:
            return [PlannedSale(product_type, _service_quantity(request.quantity), request.rate)]

        if not request.batch_id:
            raise LedgerValidationError(
                "A production batch is required for this product.",
                errors={"production_batch_id": None},
            )
        if not request.quantity or request.quantity <= 0:
            raise LedgerValidationError(
                "Quantity must be greater than zero.",
                errors={"quantity": request.quantity},
            )
        return [PlannedSale(product_type, request.quantity, request.rate, batch_id=batch_key(request.batch_id))]

    def _plan_product(self, request):
        product_type = _load_product_type(request.product_type_id)
        allocations = list(request.allocations)

        if product_type.is_service:
            quantity = getattr(request, "quantity", None)
            if quantity is None and allocations:
                quantity = sum(allocation.quantity for allocation in allocations)
            return [PlannedSale(product_type, _service_quantity(quantity), request.rate)]

        # No batch chosen at all: a single unbatched unit line.
        if not allocations:
            return [PlannedSale(product_type, 1, request.rate)]

        planned = []
        for allocation in allocations:
            if allocation.quantity < 0:
                raise LedgerValidationError(
                    "Batch quantity cannot be negative.",
                    errors={"batch_id": str(allocation.batch_id), "quantity": allocation.quantity},
                )
            if allocation.quantity == 0:
                continue
            planned.append(
                PlannedSale(product_type, allocation.quantity, request.rate, batch_id=batch_key(allocation.batch_id))
            )
        return planned

    def _check_stock(self, planned, held):
        requested = defaultdict(int)
        for sale in planned:
            if sale.batch_id:
                requested[sale.batch_id] += sale.quantity

        self.stock.lock(requested.keys())
        for batch_id, quantity in sorted(requested.items()):
            batch = self.stock.get(batch_id)
            product_type_ids = {sale.product_type.id for sale in planned if sale.batch_id == batch_id}
            if product_type_ids != {batch.product_type_id}:
                raise LedgerValidationError(
                    f"Batch {batch_id} does not belong to the selected product.",
                    errors={"batch_id": batch_id},
                )
            self.stock.check_available(batch_id, quantity, already_held=held.get(batch_id, 0))

    def apply(self, invoice, planned):
        sales = []
        for planned_sale in planned:
            batch = None
            if planned_sale.batch_id:
                batch = self.stock.commit(planned_sale.batch_id, -planned_sale.quantity)
            sales.append(
                Sale.objects.create(
                    invoice=invoice,
                    product_type=planned_sale.product_type,
                    production_batch=batch,
                    quantity=planned_sale.quantity,
                    rate=planned_sale.rate,
                    amount=planned_sale.amount,
                )
            )
        logger.info(
            "sales_allocated",
            extra={
                "invoice_id": invoice.id,
                "quantity": sum(sale.quantity for sale in sales),
            },
        )
        return sales
