import logging
import uuid
from decimal import Decimal

from django.db import connection
from django.db.models import F
from django.db.transaction import TransactionManagementError
from django.utils import timezone

from common.db import ledger_atomic, parse_id
from common.exceptions import InsufficientStock, LedgerNotFound, LedgerValidationError, StockInvariantViolation
from inventory.models import ProductionBatch, ProductionMaterial, RawMaterial

logger = logging.getLogger("ledger.stock")


def batch_key(batch_id):
    try:
        return str(uuid.UUID(str(batch_id)))
    except (TypeError, ValueError):
        raise LedgerNotFound("ProductionBatch", batch_id) from None


def _require_atomic():
    if not connection.in_atomic_block:
        raise TransactionManagementError("Stock ledger calls must run inside the ledger transaction.")


class StockLedger:
    """Remaining-quantity arithmetic for production batches.

    One instance lives for one ledger transaction. Batches are row-locked on
    first touch (``SELECT ... FOR UPDATE``) so a concurrent sale on the same
    batch waits until this transaction commits or rolls back, which makes the
    check-then-commit sequence atomic per batch.
    """

    def __init__(self):
        self._batches = {}

    def lock(self, batch_ids):
        """Lock every batch in ``batch_ids`` in a stable order and cache it."""
        _require_atomic()
        wanted = sorted({batch_key(batch_id) for batch_id in batch_ids if batch_id} - set(self._batches))
        if not wanted:
            return
        rows = ProductionBatch.objects.select_for_update().filter(id__in=wanted).order_by("id")
        for batch in rows:
            self._batches[str(batch.id)] = batch
        for batch_id in wanted:
            if batch_id not in self._batches:
                raise LedgerNotFound("ProductionBatch", batch_id)

    def get(self, batch_id):
        self.lock([batch_id])
        return self._batches[batch_key(batch_id)]

    def available(self, batch_id):
        return self.get(batch_id).remaining_quantity

    def check_available(self, batch_id, requested_qty, *, already_held=0):
        """Fail with ``InsufficientStock`` when ``requested_qty`` exceeds what is left.

        ``already_held`` is stock this operation is about to give back to the
        same batch (an edit re-quantifying its own sale), so it counts as
        available.
        """
        available = self.available(batch_id) + already_held
        if requested_qty > available:
            logger.warning(
                "stock_check_failed",
                extra={"batch_id": batch_id, "quantity": requested_qty, "available": available},
            )
            raise InsufficientStock(batch_id, available=available, requested=requested_qty)
        return available

    def commit(self, batch_id, delta):
        """Apply ``delta`` to remaining quantity (negative spends, positive restores)."""
        if not delta:
            return self.get(batch_id)

        batch = self.get(batch_id)
        new_remaining = batch.remaining_quantity + delta
        if new_remaining < 0 or new_remaining > batch.quantity:
            logger.error(
                "stock_invariant_violation",
                extra={"batch_id": batch_id, "delta": delta, "available": batch.remaining_quantity},
            )
            raise StockInvariantViolation(batch.id, batch.remaining_quantity, delta, batch.quantity)

        updated = ProductionBatch.objects.filter(id=batch.id, remaining_quantity=batch.remaining_quantity).update(
            remaining_quantity=F("remaining_quantity") + delta,
            updated_at=timezone.now(),
        )
        if updated != 1:
            raise StockInvariantViolation(batch.id, batch.remaining_quantity, delta, batch.quantity)

        batch.remaining_quantity = new_remaining
        logger.info("stock_committed", extra={"batch_id": batch_id, "delta": delta, "available": new_remaining})
        return batch


def adjust_raw_material_stock(raw_material_id, delta):
    """Add ``delta`` to a raw material's current stock under a row lock."""
    _require_atomic()
    material = RawMaterial.objects.select_for_update().filter(id=parse_id("RawMaterial", raw_material_id)).first()
    if material is None:
        raise LedgerNotFound("RawMaterial", raw_material_id)

    new_stock = material.current_stock + Decimal(delta)
    if new_stock < 0:
        raise LedgerValidationError(
            f"Insufficient stock for {material.name}. Only {material.current_stock} {material.unit} available.",
            errors={"raw_material_id": str(material.id), "available": str(material.current_stock)},
        )

    material.current_stock = new_stock
    material.save(update_fields=["current_stock", "updated_at"])
    return material


def record_production_batch(
    *,
    product_type,
    storage_location,
    quantity,
    production_date,
    notes="",
    materials_used=None,
    skip_raw_materials=False,
):
    """Create a batch with full remaining stock and consume its raw materials."""
    materials_used = [item for item in (materials_used or []) if item]
    if quantity <= 0:
        raise LedgerValidationError("Production quantity must be greater than zero.", errors={"quantity": quantity})
    if not skip_raw_materials and not materials_used:
        raise LedgerValidationError("At least one raw material must be used.", errors={"materials_used": []})

    with ledger_atomic("production.record"):
        batch = ProductionBatch.objects.create(
            product_type=product_type,
            storage_location=storage_location,
            quantity=quantity,
            remaining_quantity=quantity,
            production_date=production_date,
            notes=notes or "",
        )

        for item in sorted(materials_used, key=lambda entry: str(entry["raw_material_id"])):
            used = Decimal(item["quantity"])
            if used <= 0:
                continue
            material = adjust_raw_material_stock(item["raw_material_id"], -used)
            ProductionMaterial.objects.create(production_batch=batch, raw_material=material, quantity_used=used)

    logger.info(
        "production_batch_recorded",
        extra={"operation": "production.record", "batch_id": batch.id, "quantity": quantity},
    )
    return batch


BATCH_EDITABLE_FIELDS = ("production_date", "storage_location", "notes")


def update_production_batch(batch_id, changes):
    """Change a batch's date, location or notes.

    Remaining stock moves only through sales, so a ``remaining_quantity`` other
    than the current one is rejected.
    """
    with ledger_atomic("production.update"):
        batch = StockLedger().get(batch_id)
        requested = changes.get("remaining_quantity")
        if requested is not None and requested != batch.remaining_quantity:
            raise LedgerValidationError(
                "Remaining quantity changes only through sales.",
                errors={"remaining_quantity": requested, "current": batch.remaining_quantity},
            )

        updated = [field for field in BATCH_EDITABLE_FIELDS if field in changes]
        for field in updated:
            setattr(batch, field, changes[field])
        if updated:
            batch.save(update_fields=[*updated, "updated_at"])

    logger.info(
        "production_batch_updated",
        extra={"operation": "production.update", "batch_id": batch.id, "fields": updated},
    )
    return batch


def delete_production_batch(batch_id):
    """Delete a batch nothing was sold from, returning its raw materials to stock."""
    with ledger_atomic("production.delete"):
        batch = StockLedger().get(batch_id)
        if batch.sales.exists():
            raise LedgerValidationError(
                "Cannot delete a production batch that has sales.",
                errors={"batch_id": str(batch.id), "sales": batch.sales.count()},
            )

        restored = []
        for material in batch.materials.order_by("raw_material_id"):
            adjust_raw_material_stock(material.raw_material_id, material.quantity_used)
            restored.append(str(material.raw_material_id))
        deleted_id = batch.id
        batch.delete()

    logger.info(
        "production_batch_deleted",
        extra={"operation": "production.delete", "batch_id": deleted_id, "raw_materials": restored},
    )
    return {"batch_id": deleted_id, "restored_raw_materials": restored}
