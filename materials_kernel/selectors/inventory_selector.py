"""
Inventory query selector.

Read-only access to inventory records and their ledger history.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session, never creates its own
- Replay sums ledger deltas in Python in (transaction_at, sequence) order so
  the check does not depend on database numeric aggregation

Invariants:
- Ledger replay: for every record, the sum of its ledger deltas from zero
  equals quantity_on_hand, and each entry's quantity_before equals the
  previous entry's quantity_after.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_kernel.domain.dtos import (
    InventoryLedgerEntryDTO,
    InventoryRecordDTO,
    InventoryStatus,
    InventoryTransactionType,
)
from materials_kernel.exceptions import LedgerIntegrityError, ReferenceNotFoundError
from materials_kernel.logging_config import get_logger
from materials_kernel.models.inventory import (
    InventoryLedgerEntryModel,
    InventoryRecordModel,
    make_stock_key,
)
from materials_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.inventory")

ZERO = Decimal("0")


@dataclass(frozen=True)
class InventoryStats:
    """Dashboard figures for a project (or every project)."""

    record_count: int
    total_value: Decimal
    low_stock_count: int
    out_of_stock_count: int


class InventorySelector(BaseSelector[InventoryRecordModel]):
    """Selector for stock levels and movement history."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_record(self, record_id: UUID) -> InventoryRecordDTO | None:
        record = self.session.get(InventoryRecordModel, record_id)
        return record.to_dto() if record is not None else None

    def find_record(
        self,
        item_id: UUID,
        project_id: UUID | None = None,
        warehouse_id: UUID | None = None,
    ) -> InventoryRecordDTO | None:
        """Record for the exact (item, project, warehouse) pool, if any."""
        record = self.session.execute(
            select(InventoryRecordModel).where(
                InventoryRecordModel.stock_key
                == make_stock_key(item_id, project_id, warehouse_id)
            )
        ).scalar_one_or_none()
        return record.to_dto() if record is not None else None

    def list_records(
        self,
        project_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        status: InventoryStatus | None = None,
    ) -> list[InventoryRecordDTO]:
        query = select(InventoryRecordModel)
        if project_id is not None:
            query = query.where(InventoryRecordModel.project_id == project_id)
        if warehouse_id is not None:
            query = query.where(InventoryRecordModel.warehouse_id == warehouse_id)
        if status is not None:
            query = query.where(InventoryRecordModel.status == status.value)
        query = query.order_by(InventoryRecordModel.name, InventoryRecordModel.stock_key)
        return [r.to_dto() for r in self.session.execute(query).scalars()]

    def available_quantity(
        self,
        item_id: UUID,
        project_id: UUID | None = None,
        warehouse_id: UUID | None = None,
    ) -> Decimal:
        """Quantity on hand in the pool; zero when no record exists."""
        record = self.find_record(item_id, project_id, warehouse_id)
        return record.quantity_on_hand if record is not None else ZERO

    def history(
        self,
        record_id: UUID | None = None,
        item_id: UUID | None = None,
        project_id: UUID | None = None,
        transaction_type: InventoryTransactionType | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[InventoryLedgerEntryDTO]:
        """
        Ledger entries, newest first.

        Filter by record, or by item and/or project across pools.
        """
        query = select(InventoryLedgerEntryModel)
        if record_id is not None:
            query = query.where(InventoryLedgerEntryModel.record_id == record_id)
        if item_id is not None:
            query = query.where(InventoryLedgerEntryModel.item_id == item_id)
        if project_id is not None:
            query = query.where(InventoryLedgerEntryModel.project_id == project_id)
        if transaction_type is not None:
            query = query.where(
                InventoryLedgerEntryModel.transaction_type == transaction_type.value
            )
        query = (
            query.order_by(
                InventoryLedgerEntryModel.transaction_at.desc(),
                InventoryLedgerEntryModel.sequence.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        return [e.to_dto() for e in self.session.execute(query).scalars()]

    def entries_for_reference(self, reference: str) -> list[InventoryLedgerEntryDTO]:
        entries = self.session.execute(
            select(InventoryLedgerEntryModel)
            .where(InventoryLedgerEntryModel.reference == reference)
            .order_by(InventoryLedgerEntryModel.sequence)
        ).scalars()
        return [e.to_dto() for e in entries]

    def _replay_entries(self, record_id: UUID) -> list[InventoryLedgerEntryModel]:
        return list(
            self.session.execute(
                select(InventoryLedgerEntryModel)
                .where(InventoryLedgerEntryModel.record_id == record_id)
                .order_by(
                    InventoryLedgerEntryModel.transaction_at,
                    InventoryLedgerEntryModel.sequence,
                )
            ).scalars()
        )

    def replay_quantity(self, record_id: UUID) -> Decimal:
        """Sum of every ledger delta for the record, from zero."""
        return sum(
            (e.quantity_change for e in self._replay_entries(record_id)),
            ZERO,
        )

    def verify_replay(self, record_id: UUID) -> Decimal:
        """
        Check the ledger replays to the stored quantity.

        Returns the verified quantity.

        Raises:
            ReferenceNotFoundError: no such record.
            LedgerIntegrityError: a broken before/after chain, or a replayed
                total that differs from quantity_on_hand.
        """
        record = self.session.get(InventoryRecordModel, record_id)
        if record is None:
            raise ReferenceNotFoundError("InventoryRecord", str(record_id))

        running = ZERO
        for entry in self._replay_entries(record_id):
            if entry.quantity_before != running:
                self._integrity_failure(record.stock_key, running, entry.quantity_before)
            running += entry.quantity_change
            if entry.quantity_after != running:
                self._integrity_failure(record.stock_key, running, entry.quantity_after)

        if running != record.quantity_on_hand:
            self._integrity_failure(record.stock_key, running, record.quantity_on_hand)
        return running

    @staticmethod
    def _integrity_failure(stock_key: str, expected: Decimal, actual: Decimal):
        logger.error(
            "inventory_replay_mismatch",
            extra={"stock_key": stock_key, "expected": expected, "actual": actual},
        )
        raise LedgerIntegrityError(
            ledger="inventory",
            key=stock_key,
            expected=expected,
            actual=actual,
        )

    def low_stock(self, project_id: UUID | None = None) -> list[InventoryRecordDTO]:
        """ACTIVE records at or below their reorder point (reorder_point > 0)."""
        query = select(InventoryRecordModel).where(
            InventoryRecordModel.status == InventoryStatus.ACTIVE.value,
            InventoryRecordModel.reorder_point > 0,
            InventoryRecordModel.quantity_on_hand <= InventoryRecordModel.reorder_point,
        )
        if project_id is not None:
            query = query.where(InventoryRecordModel.project_id == project_id)
        query = query.order_by(InventoryRecordModel.quantity_on_hand)
        return [r.to_dto() for r in self.session.execute(query).scalars()]

    def dashboard_stats(self, project_id: UUID | None = None) -> InventoryStats:
        records = self.list_records(project_id=project_id)
        return InventoryStats(
            record_count=len(records),
            total_value=sum((r.stock_value for r in records), ZERO),
            low_stock_count=sum(
                1
                for r in records
                if r.minimum_stock_level > 0
                and r.quantity_on_hand <= r.minimum_stock_level
            ),
            out_of_stock_count=sum(1 for r in records if r.quantity_on_hand == 0),
        )
