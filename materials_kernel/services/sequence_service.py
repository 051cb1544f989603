"""
SequenceService -- named counters behind ledger ordering and document codes.

Responsibility:
    Hands out strictly increasing integers per sequence name.  The two
    ledgers use them as the tie-breaker in replay order; the document
    modules turn them into ``PO000123`` / ``MRR000001`` / ``GRN000042``.
    The counter row is the only source of truth: codes are never derived
    from the highest existing document number.

Architecture position:
    Kernel > Services.  Used by the ledger services and the document modules.

Invariants enforced:
    - Each value handed out is greater than every earlier value of the same
      sequence.
    - The increment is part of the caller's transaction: a rollback gives
      the value back, so committed document codes have no gaps.

Failure modes:
    - Two transactions creating the same counter at once: the loser's insert
      fails inside a savepoint and it locks the winner's row instead.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from materials_kernel.db.base import Base
from materials_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named sequence; ``current_value`` is the last value issued."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


def format_reference(prefix: str, value: int, width: int) -> str:
    """``format_reference("PO", 123, 6) -> "PO000123"``."""
    return f"{prefix}{value:0{width}d}"


class SequenceService:
    """
    Sequence allocation inside the caller's transaction.

    Never commits.  The locked counter row stays locked until the caller
    commits or rolls back, so two POs created concurrently get distinct
    numbers in the order their transactions took the lock.
    """

    INVENTORY_LEDGER = "inventory_ledger"
    SUPPLIER_LEDGER = "supplier_ledger"
    PURCHASE_ORDER = "purchase_order"
    MRR = "mrr"
    MATERIAL_RECEIPT = "material_receipt"
    SUPPLIER_PAYMENT = "supplier_payment"

    WELL_KNOWN = (
        INVENTORY_LEDGER,
        SUPPLIER_LEDGER,
        PURCHASE_ORDER,
        MRR,
        MATERIAL_RECEIPT,
        SUPPLIER_PAYMENT,
    )

    def __init__(self, session: Session):
        self._session = session

    def _select(self, name: str, lock: bool):
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _counter_for_update(self, name: str) -> SequenceCounter:
        counter = self._select(name, lock=True)
        if counter is not None:
            return counter

        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": name})
            counter = self._select(name, lock=True)
            if counter is None:
                raise
        else:
            savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        counter = self._counter_for_update(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_code(self, sequence_name: str, prefix: str, width: int = 6) -> str:
        """Next value of ``sequence_name`` as ``<prefix><zero-padded value>``."""
        return format_reference(prefix, self.next_value(sequence_name), width)

    def current_value(self, sequence_name: str) -> int | None:
        """Last value issued, or None for a sequence never used."""
        counter = self._select(sequence_name, lock=False)
        return None if counter is None else counter.current_value

    def initialize_sequences(self) -> None:
        """Create any missing well-known counter at zero."""
        existing = set(
            self._session.scalars(
                select(SequenceCounter.name).where(SequenceCounter.name.in_(self.WELL_KNOWN))
            )
        )
        self._session.add_all(
            SequenceCounter(name=name, current_value=0)
            for name in self.WELL_KNOWN
            if name not in existing
        )
        self._session.flush()
