"""
Module: materials_kernel.models.inventory
Responsibility: ORM persistence for the Inventory Store (quantity on hand per
    stock pool) and the Inventory Ledger (append-only movement history).
Architecture position: Kernel > Models.  Imports from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - A stock pool is identified by (item, project, warehouse).  Project and
      warehouse may be absent, so the unique constraint is on ``stock_key``,
      a canonical string with ``*`` for absent scopes.
    - quantity_on_hand >= 0 (CHECK constraint, backstop for the service check).
    - Ledger entries are append-only; UPDATE/DELETE is blocked by the
      listeners in db/immutability.py.
    - Ledger ``sequence`` is unique and monotonic (SequenceService), giving
      a total replay order even when timestamps collide.

Failure modes:
    - IntegrityError on duplicate stock_key (concurrent first creation; the
      service resolves it by savepoint rollback and re-select).
    - IntegrityError if quantity_on_hand would be stored negative.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_kernel.domain.dtos import (
    InventoryLedgerEntryDTO,
    InventoryRecordDTO,
    InventoryStatus,
    InventoryTransactionType,
)


def make_stock_key(
    item_id: UUID,
    project_id: UUID | None,
    warehouse_id: UUID | None,
) -> str:
    """Canonical key for a stock pool: ``<item>:<project|*>:<warehouse|*>``."""
    return f"{item_id}:{project_id or '*'}:{warehouse_id or '*'}"


class InventoryRecordModel(TrackedBase):
    """
    Quantity on hand for one stock pool.

    Mutated only through InventoryLedgerService.apply_inventory_change
    (quantity) or its threshold/status setters (everything else).
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("stock_key", name="uq_inventory_stock_key"),
        CheckConstraint("quantity_on_hand >= 0", name="ck_inventory_non_negative"),
        Index("idx_inventory_item", "item_id"),
        Index("idx_inventory_project", "project_id"),
        Index("idx_inventory_warehouse", "warehouse_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    warehouse_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    stock_key: Mapped[str] = mapped_column(String(120), nullable=False)

    # Defaults copied from the catalog item on creation
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    quantity_on_hand: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    minimum_stock_level: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    maximum_stock_level: Mapped[Decimal] = mapped_column(default=Decimal("1000"))
    reorder_point: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=InventoryStatus.ACTIVE.value
    )

    def to_dto(self) -> InventoryRecordDTO:
        return InventoryRecordDTO(
            id=self.id,
            item_id=self.item_id,
            project_id=self.project_id,
            warehouse_id=self.warehouse_id,
            stock_key=self.stock_key,
            name=self.name,
            unit=self.unit,
            category=self.category,
            quantity_on_hand=self.quantity_on_hand,
            unit_cost=self.unit_cost,
            minimum_stock_level=self.minimum_stock_level,
            maximum_stock_level=self.maximum_stock_level,
            reorder_point=self.reorder_point,
            location=self.location,
            status=InventoryStatus(self.status),
        )

    def __repr__(self) -> str:
        return f"<InventoryRecordModel {self.stock_key} qty={self.quantity_on_hand}>"


class InventoryLedgerEntryModel(TrackedBase):
    """
    One stock movement, with the quantity before and after it.

    ``reference`` is the causal reference (``ISSUE-<id>``,
    ``ISSUE-DELETE-<id>``, a receipt number...); ``source_id`` is the UUID
    of the document that caused it, when there is one.
    """

    __tablename__ = "inventory_ledger_entries"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_inventory_ledger_sequence"),
        Index("idx_inv_ledger_record", "record_id", "transaction_at", "sequence"),
        Index("idx_inv_ledger_item_project", "item_id", "project_id"),
        Index("idx_inv_ledger_reference", "reference"),
        Index("idx_inv_ledger_source", "source_id"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("inventory_records.id"), nullable=False
    )
    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    warehouse_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity_change: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_before: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(nullable=False)

    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    transaction_at: Mapped[datetime] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def to_dto(self) -> InventoryLedgerEntryDTO:
        return InventoryLedgerEntryDTO(
            id=self.id,
            record_id=self.record_id,
            item_id=self.item_id,
            project_id=self.project_id,
            warehouse_id=self.warehouse_id,
            transaction_type=InventoryTransactionType(self.transaction_type),
            quantity_change=self.quantity_change,
            quantity_before=self.quantity_before,
            quantity_after=self.quantity_after,
            reference=self.reference,
            source_id=self.source_id,
            description=self.description,
            actor_id=self.actor_id,
            transaction_at=self.transaction_at,
            sequence=self.sequence,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryLedgerEntryModel {self.transaction_type} "
            f"{self.quantity_change:+} ref={self.reference}>"
        )
