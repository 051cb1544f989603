"""
InventoryLedgerService -- the single mutation path for stock.

Responsibility:
    Applies signed quantity changes to an InventoryRecord and appends the
    matching InventoryLedgerEntry with before/after snapshots.  Issues,
    returns, consumption, receipt verification, restock and manual
    adjustment all funnel through ``apply_inventory_change`` (or its
    record-id twin ``apply_to_record``); nothing else writes
    ``quantity_on_hand``.

Architecture position:
    Kernel > Services.  Flush only -- callers (document module services,
    or ``session_scope()``) own commit/rollback.

Invariants enforced:
    - Non-negative stock: a decrement larger than the quantity on hand
      raises InsufficientStockError before anything is written.
    - One change, one entry: every quantity write is paired with exactly
      one ledger entry whose quantity_after equals the new on-hand value.
    - Replay: entries carry a monotonic ``sequence``, so summing deltas in
      (transaction_at, sequence) order reproduces quantity_on_hand.
    - Serialization: the record row is locked (SELECT ... FOR UPDATE)
      before the availability check, so two concurrent decrements cannot
      both pass it.
    - Reversal is a new opposite-signed change with its own reference;
      ledger entries are never edited (db/immutability.py).

Failure modes:
    - InsufficientStockError(available, requested).
    - InvalidQuantityError for a zero delta or a no-op adjustment.
    - ReferenceNotFoundError for an unknown item or record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import (
    InventoryRecordDTO,
    InventoryStatus,
    InventoryTransactionType,
)
from materials_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    MaterialsKernelError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.logging_config import get_logger
from materials_kernel.models.inventory import (
    InventoryLedgerEntryModel,
    InventoryRecordModel,
    make_stock_key,
)
from materials_kernel.services.catalog_service import CatalogService
from materials_kernel.services.sequence_service import SequenceService

logger = get_logger("services.inventory_ledger")

ZERO = Decimal("0")


@dataclass(frozen=True)
class RestockRequest:
    record_id: UUID
    quantity: Decimal
    unit_cost: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RestockFailure:
    record_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class BulkRestockResult:
    succeeded: tuple[InventoryRecordDTO, ...] = field(default_factory=tuple)
    failed: tuple[RestockFailure, ...] = field(default_factory=tuple)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class InventoryLedgerService:
    """
    Stock mutation service.

    Contract:
        ``apply_inventory_change(item, project, warehouse, delta, type,
        reference, actor)`` atomically updates-or-creates the record and
        appends one ledger entry.  Returns the record's new state as a DTO.

    Non-goals:
        - Does NOT commit.
        - Does NOT decide document workflow; callers check their own states.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._catalog = CatalogService(session)

    # =========================================================================
    # Locking
    # =========================================================================

    def _lock_by_key(self, stock_key: str) -> InventoryRecordModel | None:
        return self._session.execute(
            select(InventoryRecordModel)
            .where(InventoryRecordModel.stock_key == stock_key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_by_id(self, record_id: UUID) -> InventoryRecordModel:
        record = self._session.execute(
            select(InventoryRecordModel)
            .where(InventoryRecordModel.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise ReferenceNotFoundError("InventoryRecord", str(record_id))
        return record

    def _create_locked(
        self,
        item_id: UUID,
        project_id: UUID | None,
        warehouse_id: UUID | None,
        actor_id: UUID,
        **attrs,
    ) -> InventoryRecordModel:
        """Insert a zero-quantity record; on a unique-key race, lock the winner's."""
        item = self._catalog.require_item(item_id)
        stock_key = make_stock_key(item_id, project_id, warehouse_id)
        unit_cost = attrs.pop("unit_cost", None)

        savepoint = self._session.begin_nested()
        try:
            record = InventoryRecordModel(
                item_id=item_id,
                project_id=project_id,
                warehouse_id=warehouse_id,
                stock_key=stock_key,
                name=item.name,
                unit=item.unit_symbol,
                category=item.category,
                quantity_on_hand=ZERO,
                unit_cost=unit_cost if unit_cost is not None else item.cost_per_unit,
                created_by_id=actor_id,
                **attrs,
            )
            self._session.add(record)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("inventory_record_create_race", extra={"stock_key": stock_key})
            record = self._lock_by_key(stock_key)
            if record is None:
                raise
            return record

        logger.info(
            "inventory_record_created",
            extra={
                "record_id": str(record.id),
                "stock_key": stock_key,
                "item_id": str(item_id),
            },
        )
        return record

    # =========================================================================
    # Posting
    # =========================================================================

    def _post(
        self,
        record: InventoryRecordModel,
        delta: Decimal,
        transaction_type: InventoryTransactionType | str,
        reference: str,
        actor_id: UUID,
        description: str | None,
        source_id: UUID | None,
    ) -> InventoryLedgerEntryModel:
        """Write the new quantity and its ledger entry. Record must be locked."""
        tx_type = InventoryTransactionType(transaction_type)
        before = record.quantity_on_hand
        after = before + delta

        if after < ZERO:
            logger.warning(
                "inventory_change_rejected",
                extra={
                    "record_id": str(record.id),
                    "stock_key": record.stock_key,
                    "transaction_type": tx_type.value,
                    "available": before,
                    "requested": -delta,
                    "reference": reference,
                },
            )
            raise InsufficientStockError(
                available=before,
                requested=-delta,
                item_id=str(record.item_id),
                stock_key=record.stock_key,
            )

        sequence = self._sequences.next_value(SequenceService.INVENTORY_LEDGER)
        record.quantity_on_hand = after
        record.touch(actor_id)

        entry = InventoryLedgerEntryModel(
            record_id=record.id,
            item_id=record.item_id,
            project_id=record.project_id,
            warehouse_id=record.warehouse_id,
            transaction_type=tx_type.value,
            quantity_change=delta,
            quantity_before=before,
            quantity_after=after,
            reference=reference,
            source_id=source_id,
            description=description,
            actor_id=actor_id,
            transaction_at=self._clock.now(),
            sequence=sequence,
            created_by_id=actor_id,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "inventory_change_applied",
            extra={
                "record_id": str(record.id),
                "stock_key": record.stock_key,
                "transaction_type": tx_type.value,
                "quantity_change": delta,
                "quantity_before": before,
                "quantity_after": after,
                "reference": reference,
                "sequence": sequence,
            },
        )
        return entry

    @staticmethod
    def _as_delta(delta) -> Decimal:
        delta = delta if isinstance(delta, Decimal) else Decimal(str(delta))
        if delta == ZERO:
            raise InvalidQuantityError(delta, "inventory change must be non-zero")
        return delta

    def apply_inventory_change(
        self,
        item_id: UUID,
        project_id: UUID | None,
        warehouse_id: UUID | None,
        delta: Decimal,
        transaction_type: InventoryTransactionType | str,
        reference: str,
        actor_id: UUID,
        description: str | None = None,
        source_id: UUID | None = None,
        unit_cost: Decimal | None = None,
    ) -> InventoryRecordDTO:
        """
        Apply a signed quantity change to the (item, project, warehouse) pool.

        Preconditions:
            - delta != 0.
            - If delta < 0, |delta| <= quantity on hand.
        Postconditions:
            - The record exists (created on the first positive change, with
              catalog defaults) and holds quantity_before + delta.
            - When ``unit_cost`` is given the record's unit cost becomes it,
              on create and on update (last purchase price).
            - Exactly one new InventoryLedgerEntry references it.

        Raises:
            InsufficientStockError: decrement exceeds stock (a missing record
                has zero available).  Nothing is written.
            InvalidQuantityError: delta is zero.
            ReferenceNotFoundError: item does not exist.
        """
        delta = self._as_delta(delta)
        stock_key = make_stock_key(item_id, project_id, warehouse_id)
        record = self._lock_by_key(stock_key)

        if record is None:
            if delta < ZERO:
                logger.warning(
                    "inventory_change_rejected",
                    extra={
                        "stock_key": stock_key,
                        "available": ZERO,
                        "requested": -delta,
                        "reference": reference,
                    },
                )
                raise InsufficientStockError(
                    available=ZERO,
                    requested=-delta,
                    item_id=str(item_id),
                    stock_key=stock_key,
                )
            record = self._create_locked(
                item_id, project_id, warehouse_id, actor_id, unit_cost=unit_cost
            )
        elif unit_cost is not None:
            record.unit_cost = unit_cost

        self._post(record, delta, transaction_type, reference, actor_id, description, source_id)
        return record.to_dto()

    def apply_to_record(
        self,
        record_id: UUID,
        delta: Decimal,
        transaction_type: InventoryTransactionType | str,
        reference: str,
        actor_id: UUID,
        description: str | None = None,
        source_id: UUID | None = None,
    ) -> InventoryRecordDTO:
        """Same contract as apply_inventory_change, addressed by record id."""
        delta = self._as_delta(delta)
        record = self._lock_by_id(record_id)
        self._post(record, delta, transaction_type, reference, actor_id, description, source_id)
        return record.to_dto()

    # =========================================================================
    # Record lifecycle
    # =========================================================================

    def create_record(
        self,
        item_id: UUID,
        project_id: UUID | None,
        warehouse_id: UUID | None,
        actor_id: UUID,
        initial_quantity: Decimal = ZERO,
        unit_cost: Decimal | None = None,
        minimum_stock_level: Decimal = ZERO,
        maximum_stock_level: Decimal = Decimal("1000"),
        reorder_point: Decimal = ZERO,
        location: str | None = None,
    ) -> InventoryRecordDTO:
        """
        Create a stock pool, posting any opening stock through the ledger.

        A positive ``initial_quantity`` becomes one ADJUSTMENT entry
        referenced ``INITIAL-<record id>``, so replay from zero holds.

        Raises:
            ValidationError: the pool already exists, or thresholds conflict.
            InvalidQuantityError: negative initial quantity.
        """
        if initial_quantity < ZERO:
            raise InvalidQuantityError(initial_quantity, "initial stock cannot be negative")
        if minimum_stock_level > maximum_stock_level:
            raise ValidationError(
                "minimum_stock_level cannot exceed maximum_stock_level",
                field="minimum_stock_level",
            )

        stock_key = make_stock_key(item_id, project_id, warehouse_id)
        if self._lock_by_key(stock_key) is not None:
            raise ValidationError(
                f"Inventory record already exists for {stock_key}", field="stock_key"
            )

        record = self._create_locked(
            item_id,
            project_id,
            warehouse_id,
            actor_id,
            unit_cost=unit_cost,
            minimum_stock_level=minimum_stock_level,
            maximum_stock_level=maximum_stock_level,
            reorder_point=reorder_point,
            location=location,
        )
        if initial_quantity > ZERO:
            self._post(
                record,
                initial_quantity,
                InventoryTransactionType.ADJUSTMENT,
                f"INITIAL-{record.id}",
                actor_id,
                "Opening stock",
                None,
            )
        return record.to_dto()

    def ensure_record(
        self,
        item_id: UUID,
        project_id: UUID | None,
        warehouse_id: UUID | None,
        actor_id: UUID,
    ) -> tuple[InventoryRecordDTO, bool]:
        """Locate or create (at zero stock) a pool. Returns (record, created)."""
        record = self._lock_by_key(make_stock_key(item_id, project_id, warehouse_id))
        if record is not None:
            return record.to_dto(), False
        record = self._create_locked(item_id, project_id, warehouse_id, actor_id)
        return record.to_dto(), True

    def restock(
        self,
        record_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        notes: str | None = None,
        unit_cost: Decimal | None = None,
    ) -> InventoryRecordDTO:
        """Add stock to an existing pool (RESTOCK entry)."""
        if quantity <= ZERO:
            raise InvalidQuantityError(quantity, "restock quantity must be positive")

        record = self._lock_by_id(record_id)
        if unit_cost is not None:
            if unit_cost < ZERO:
                raise InvalidQuantityError(unit_cost, "unit cost cannot be negative")
            record.unit_cost = unit_cost

        self._post(
            record,
            quantity,
            InventoryTransactionType.RESTOCK,
            f"RESTOCK-{self._clock.now():%Y%m%d%H%M%S}",
            actor_id,
            notes or f"Restocked {quantity} {record.unit or ''}".rstrip(),
            None,
        )
        return record.to_dto()

    def bulk_restock(
        self,
        requests: Sequence[RestockRequest],
        actor_id: UUID,
    ) -> BulkRestockResult:
        """
        Restock several pools, each in its own savepoint.

        A failing request is rolled back alone and reported in
        ``failed``; the others still apply.
        """
        succeeded: list[InventoryRecordDTO] = []
        failed: list[RestockFailure] = []

        for request in requests:
            savepoint = self._session.begin_nested()
            try:
                dto = self.restock(
                    request.record_id,
                    request.quantity,
                    actor_id,
                    notes=request.notes,
                    unit_cost=request.unit_cost,
                )
                savepoint.commit()
                succeeded.append(dto)
            except MaterialsKernelError as exc:
                savepoint.rollback()
                failed.append(RestockFailure(request.record_id, exc.code, str(exc)))

        logger.info(
            "inventory_bulk_restock_completed",
            extra={
                "requested": len(requests),
                "succeeded": len(succeeded),
                "failed": len(failed),
            },
        )
        return BulkRestockResult(succeeded=tuple(succeeded), failed=tuple(failed))

    def adjust(
        self,
        record_id: UUID,
        new_quantity: Decimal,
        actor_id: UUID,
        reason: str,
    ) -> InventoryRecordDTO:
        """Manual stock count correction: posts (new - current) as ADJUSTMENT."""
        if new_quantity < ZERO:
            raise InvalidQuantityError(new_quantity, "stock cannot be set negative")

        record = self._lock_by_id(record_id)
        delta = new_quantity - record.quantity_on_hand
        if delta == ZERO:
            raise InvalidQuantityError(new_quantity, "adjustment does not change stock")

        self._post(
            record,
            delta,
            InventoryTransactionType.ADJUSTMENT,
            f"ADJUST-{record.id}",
            actor_id,
            reason,
            None,
        )
        return record.to_dto()

    def update_thresholds(
        self,
        record_id: UUID,
        actor_id: UUID,
        minimum_stock_level: Decimal | None = None,
        maximum_stock_level: Decimal | None = None,
        reorder_point: Decimal | None = None,
        unit_cost: Decimal | None = None,
        location: str | None = None,
    ) -> InventoryRecordDTO:
        """Change non-quantity attributes. Never touches quantity_on_hand."""
        record = self._lock_by_id(record_id)
        minimum = minimum_stock_level if minimum_stock_level is not None else record.minimum_stock_level
        maximum = maximum_stock_level if maximum_stock_level is not None else record.maximum_stock_level
        if minimum > maximum:
            raise ValidationError(
                "minimum_stock_level cannot exceed maximum_stock_level",
                field="minimum_stock_level",
            )
        for name, value in (
            ("reorder_point", reorder_point),
            ("unit_cost", unit_cost),
        ):
            if value is not None and value < ZERO:
                raise ValidationError(f"{name} cannot be negative", field=name)

        record.minimum_stock_level = minimum
        record.maximum_stock_level = maximum
        if reorder_point is not None:
            record.reorder_point = reorder_point
        if unit_cost is not None:
            record.unit_cost = unit_cost
        if location is not None:
            record.location = location
        record.touch(actor_id)
        self._session.flush()
        return record.to_dto()

    def set_status(
        self,
        record_id: UUID,
        status: InventoryStatus | str,
        actor_id: UUID,
    ) -> InventoryRecordDTO:
        record = self._lock_by_id(record_id)
        record.status = InventoryStatus(status).value
        record.touch(actor_id)
        self._session.flush()
        logger.info(
            "inventory_record_status_changed",
            extra={"record_id": str(record.id), "status": record.status},
        )
        return record.to_dto()
