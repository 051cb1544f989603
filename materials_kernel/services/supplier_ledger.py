"""
SupplierLedgerService -- running-balance postings per supplier.

Responsibility:
    Appends debit/credit entries to the supplier ledger, computing each new
    balance from the supplier's latest entry.  Posts the PURCHASE debit for a
    placed purchase order (exactly once), payments, credit/debit notes,
    manual adjustments and the compensating credit for a cancelled placed PO.

Architecture position:
    Kernel > Services.  Flush only -- the PO service calls ``post_purchase``
    inside the same transaction that marks the order PLACED.

Invariants enforced:
    - Running balance: balance = previous balance + debit - credit.
    - Serialization: the supplier row is locked (SELECT ... FOR UPDATE)
      before the latest balance is read, so concurrent postings for one
      supplier cannot read the same previous balance.
    - Single PURCHASE per PO: checked under the supplier lock before insert,
      backed by a partial unique index.
    - Append-only: only payment_status changes after insert (settlement).

Failure modes:
    - DuplicatePostingError: second PURCHASE (or cancellation credit) for a PO.
    - InvalidQuantityError: non-positive payment/adjustment amounts.
    - ReferenceNotFoundError: unknown supplier.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import (
    PaymentStatus,
    SupplierLedgerEntryDTO,
    SupplierTransactionType,
)
from materials_kernel.exceptions import (
    DuplicatePostingError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    ValidationError,
)
from materials_kernel.logging_config import get_logger
from materials_kernel.models.catalog import SupplierModel
from materials_kernel.models.supplier_ledger import SupplierLedgerEntryModel
from materials_kernel.services.sequence_service import SequenceService

logger = get_logger("services.supplier_ledger")

ZERO = Decimal("0")

_OPEN_STATUSES = (
    PaymentStatus.PENDING.value,
    PaymentStatus.PARTIAL.value,
    PaymentStatus.OVERDUE.value,
)

_NOTE_TYPES = (
    SupplierTransactionType.CREDIT_NOTE,
    SupplierTransactionType.DEBIT_NOTE,
    SupplierTransactionType.ADJUSTMENT,
)


class SupplierLedgerService:
    """
    Supplier ledger writer.

    Contract:
        Every posting locks the supplier, reads the latest balance, appends
        one entry and flushes.  Never commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        payment_due_days: int = 30,
        payment_prefix: str = "PAY-",
        payment_code_width: int = 6,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._payment_due_days = payment_due_days
        self._payment_prefix = payment_prefix
        self._payment_code_width = payment_code_width
        self._sequences = SequenceService(session)

    def _lock_supplier(self, supplier_id: UUID) -> SupplierModel:
        supplier = self._session.execute(
            select(SupplierModel)
            .where(SupplierModel.id == supplier_id)
            .with_for_update()
        ).scalar_one_or_none()
        if supplier is None:
            raise ReferenceNotFoundError("Supplier", str(supplier_id))
        return supplier

    def _latest_balance(self, supplier_id: UUID) -> Decimal:
        balance = self._session.execute(
            select(SupplierLedgerEntryModel.balance)
            .where(SupplierLedgerEntryModel.supplier_id == supplier_id)
            .order_by(
                SupplierLedgerEntryModel.transaction_date.desc(),
                SupplierLedgerEntryModel.sequence.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        return balance if balance is not None else ZERO

    def _post(
        self,
        supplier_id: UUID,
        transaction_type: SupplierTransactionType,
        debit: Decimal,
        credit: Decimal,
        reference: str,
        actor_id: UUID,
        po_id: UUID | None = None,
        description: str | None = None,
        due_date: date | None = None,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
    ) -> SupplierLedgerEntryModel:
        """Append one entry. The supplier row must already be locked."""
        previous = self._latest_balance(supplier_id)
        balance = previous + debit - credit
        sequence = self._sequences.next_value(SequenceService.SUPPLIER_LEDGER)

        entry = SupplierLedgerEntryModel(
            supplier_id=supplier_id,
            po_id=po_id,
            transaction_type=transaction_type.value,
            transaction_date=self._clock.today(),
            reference=reference,
            description=description,
            debit_amount=debit,
            credit_amount=credit,
            balance=balance,
            payment_status=payment_status.value,
            due_date=due_date,
            sequence=sequence,
            created_by_id=actor_id,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "supplier_ledger_posted",
            extra={
                "supplier_id": str(supplier_id),
                "transaction_type": transaction_type.value,
                "reference": reference,
                "debit_amount": debit,
                "credit_amount": credit,
                "previous_balance": previous,
                "balance": balance,
                "sequence": sequence,
            },
        )
        return entry

    # =========================================================================
    # Purchase postings
    # =========================================================================

    def find_purchase(self, po_id: UUID) -> SupplierLedgerEntryDTO | None:
        entry = self._session.execute(
            select(SupplierLedgerEntryModel).where(
                SupplierLedgerEntryModel.po_id == po_id,
                SupplierLedgerEntryModel.transaction_type
                == SupplierTransactionType.PURCHASE.value,
            )
        ).scalar_one_or_none()
        return entry.to_dto() if entry is not None else None

    def post_purchase(
        self,
        supplier_id: UUID,
        po_id: UUID,
        po_number: str,
        amount: Decimal,
        actor_id: UUID,
        due_date: date | None = None,
    ) -> SupplierLedgerEntryDTO:
        """
        Debit the supplier for a placed purchase order.

        Postconditions:
            - Exactly one PURCHASE entry exists for ``po_id``.

        Raises:
            DuplicatePostingError: a PURCHASE entry already exists for the PO.
        """
        if amount < ZERO:
            raise InvalidQuantityError(amount, "purchase amount cannot be negative")

        self._lock_supplier(supplier_id)
        existing = self.find_purchase(po_id)
        if existing is not None:
            logger.warning(
                "supplier_purchase_duplicate_blocked",
                extra={
                    "po_id": str(po_id),
                    "po_number": po_number,
                    "existing_entry_id": str(existing.id),
                },
            )
            raise DuplicatePostingError(
                posting_type=SupplierTransactionType.PURCHASE.value,
                reference=po_number,
                existing_id=str(existing.id),
            )

        if due_date is None:
            due_date = self._clock.today() + timedelta(days=self._payment_due_days)

        entry = self._post(
            supplier_id,
            SupplierTransactionType.PURCHASE,
            debit=amount,
            credit=ZERO,
            reference=po_number,
            actor_id=actor_id,
            po_id=po_id,
            description=f"Purchase Order {po_number}",
            due_date=due_date,
        )
        return entry.to_dto()

    def reverse_purchase(
        self,
        po_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> SupplierLedgerEntryDTO:
        """
        Credit back a PURCHASE posting (placed PO cancelled).

        The original entry stays; an ADJUSTMENT credit referenced
        ``<po_number>-CANCEL`` offsets it.

        Raises:
            ReferenceNotFoundError: no PURCHASE posting for the PO.
            DuplicatePostingError: the PO was already reversed.
        """
        purchase = self.find_purchase(po_id)
        if purchase is None:
            raise ReferenceNotFoundError("SupplierPurchasePosting", str(po_id))

        self._lock_supplier(purchase.supplier_id)
        reference = f"{purchase.reference}-CANCEL"
        already = self._session.execute(
            select(SupplierLedgerEntryModel.id).where(
                SupplierLedgerEntryModel.po_id == po_id,
                SupplierLedgerEntryModel.reference == reference,
            )
        ).scalar_one_or_none()
        if already is not None:
            raise DuplicatePostingError(
                posting_type=SupplierTransactionType.ADJUSTMENT.value,
                reference=reference,
                existing_id=str(already),
            )

        entry = self._post(
            purchase.supplier_id,
            SupplierTransactionType.ADJUSTMENT,
            debit=ZERO,
            credit=purchase.debit_amount,
            reference=reference,
            actor_id=actor_id,
            po_id=po_id,
            description=reason,
        )
        return entry.to_dto()

    # =========================================================================
    # Payments and notes
    # =========================================================================

    def record_payment(
        self,
        supplier_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        reference: str | None = None,
        po_id: UUID | None = None,
        description: str | None = None,
    ) -> SupplierLedgerEntryDTO:
        """
        Credit a payment to the supplier.

        The entry is PAID when the new balance is <= 0, else PARTIAL.  Open
        PURCHASE entries follow: all become PAID when the balance is cleared,
        otherwise PENDING ones become PARTIAL.
        """
        if amount <= ZERO:
            raise InvalidQuantityError(amount, "payment amount must be positive")

        self._lock_supplier(supplier_id)
        if reference is None:
            reference = self._sequences.next_code(
                SequenceService.SUPPLIER_PAYMENT,
                self._payment_prefix,
                self._payment_code_width,
            )

        cleared = self._latest_balance(supplier_id) - amount <= ZERO
        entry = self._post(
            supplier_id,
            SupplierTransactionType.PAYMENT,
            debit=ZERO,
            credit=amount,
            reference=reference,
            actor_id=actor_id,
            po_id=po_id,
            description=description or f"Payment of {amount}",
            payment_status=PaymentStatus.PAID if cleared else PaymentStatus.PARTIAL,
        )

        if cleared:
            open_statuses, new_status = _OPEN_STATUSES, PaymentStatus.PAID
        else:
            open_statuses, new_status = (PaymentStatus.PENDING.value,), PaymentStatus.PARTIAL
        settled = self._set_purchase_status(
            open_statuses,
            new_status,
            actor_id,
            SupplierLedgerEntryModel.supplier_id == supplier_id,
        )

        logger.info(
            "supplier_payment_recorded",
            extra={
                "supplier_id": str(supplier_id),
                "amount": amount,
                "balance": entry.balance,
                "cleared": cleared,
                "purchase_entries_updated": settled,
            },
        )
        return entry.to_dto()

    def record_adjustment(
        self,
        supplier_id: UUID,
        adjustment_type: SupplierTransactionType | str,
        amount: Decimal,
        actor_id: UUID,
        description: str,
        reference: str | None = None,
        po_id: UUID | None = None,
    ) -> SupplierLedgerEntryDTO:
        """
        Post a credit note, debit note or manual adjustment.

        CREDIT_NOTE reduces what is owed by |amount|; DEBIT_NOTE increases it
        by |amount|.  ADJUSTMENT uses the sign of ``amount``: positive is a
        debit, negative a credit.
        """
        adjustment_type = SupplierTransactionType(adjustment_type)
        if adjustment_type not in _NOTE_TYPES:
            raise ValidationError(
                f"adjustment_type must be one of {[t.value for t in _NOTE_TYPES]}",
                field="adjustment_type",
            )
        if amount == ZERO:
            raise InvalidQuantityError(amount, "adjustment amount must be non-zero")
        if not description:
            raise ValidationError("description is required", field="description")

        if adjustment_type is SupplierTransactionType.CREDIT_NOTE:
            debit, credit = ZERO, abs(amount)
        elif adjustment_type is SupplierTransactionType.DEBIT_NOTE:
            debit, credit = abs(amount), ZERO
        else:
            debit, credit = (amount, ZERO) if amount > ZERO else (ZERO, -amount)

        self._lock_supplier(supplier_id)
        entry = self._post(
            supplier_id,
            adjustment_type,
            debit=debit,
            credit=credit,
            reference=reference
            or f"{adjustment_type.value}-{self._clock.now():%Y%m%d%H%M%S}",
            actor_id=actor_id,
            po_id=po_id,
            description=description,
        )
        return entry.to_dto()

    def mark_overdue(self, actor_id: UUID, as_of: date | None = None) -> int:
        """Flag unpaid PURCHASE entries past their due date. Returns the count."""
        as_of = as_of or self._clock.today()
        count = self._set_purchase_status(
            (PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value),
            PaymentStatus.OVERDUE,
            actor_id,
            SupplierLedgerEntryModel.due_date < as_of,
        )
        logger.info(
            "supplier_entries_marked_overdue",
            extra={"as_of": as_of, "count": count},
        )
        return count

    def _set_purchase_status(
        self,
        from_statuses: tuple[str, ...],
        new_status: PaymentStatus,
        actor_id: UUID,
        *criteria,
    ) -> int:
        entries = self._session.execute(
            select(SupplierLedgerEntryModel).where(
                SupplierLedgerEntryModel.transaction_type
                == SupplierTransactionType.PURCHASE.value,
                SupplierLedgerEntryModel.payment_status.in_(from_statuses),
                *criteria,
            )
        ).scalars().all()
        for entry in entries:
            entry.payment_status = new_status.value
            entry.touch(actor_id)
        self._session.flush()
        return len(entries)
