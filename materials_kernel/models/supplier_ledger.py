"""
Module: materials_kernel.models.supplier_ledger
Responsibility: ORM persistence for the supplier ledger -- an append-only,
    running-balance log of what the company owes each supplier.
Architecture position: Kernel > Models.  Imports from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - balance_n = balance_(n-1) + debit_n - credit_n per supplier, in
      (transaction_date, sequence) order.  Computed by SupplierLedgerService
      under a lock on the supplier row; verified by SupplierLedgerSelector.
    - At most one PURCHASE entry per PO: partial unique index on po_id where
      transaction_type = 'PURCHASE' (storage backstop for the service check).
    - Append-only: only ``payment_status`` (settlement tracking) and audit
      timestamps may change after insert (db/immutability.py).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_kernel.domain.dtos import (
    PaymentStatus,
    SupplierLedgerEntryDTO,
    SupplierTransactionType,
)

_PURCHASE_ONLY = text("transaction_type = 'PURCHASE'")


class SupplierLedgerEntryModel(TrackedBase):
    """One debit or credit against a supplier, with the resulting balance."""

    __tablename__ = "supplier_ledger_entries"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_supplier_ledger_sequence"),
        Index(
            "uq_supplier_ledger_purchase_po",
            "po_id",
            unique=True,
            postgresql_where=_PURCHASE_ONLY,
            sqlite_where=_PURCHASE_ONLY,
        ),
        Index("idx_sup_ledger_supplier", "supplier_id", "transaction_date", "sequence"),
        Index("idx_sup_ledger_status", "payment_status"),
        Index("idx_sup_ledger_due", "due_date"),
    )

    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("suppliers.id"), nullable=False
    )
    po_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    debit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    credit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def to_dto(self) -> SupplierLedgerEntryDTO:
        return SupplierLedgerEntryDTO(
            id=self.id,
            supplier_id=self.supplier_id,
            po_id=self.po_id,
            transaction_type=SupplierTransactionType(self.transaction_type),
            transaction_date=self.transaction_date,
            reference=self.reference,
            description=self.description,
            debit_amount=self.debit_amount,
            credit_amount=self.credit_amount,
            balance=self.balance,
            payment_status=PaymentStatus(self.payment_status),
            due_date=self.due_date,
            sequence=self.sequence,
        )

    def __repr__(self) -> str:
        return (
            f"<SupplierLedgerEntryModel {self.transaction_type} "
            f"dr={self.debit_amount} cr={self.credit_amount} bal={self.balance}>"
        )
