"""
Module: materials_kernel.db.base
Responsibility: Declarative base for every ORM model in the kernel and the
    module packages: UUID keys stored portably, exact decimals for stock
    quantities and rupee amounts, and actor/timestamp columns on tracked rows.
Architecture position: Kernel > DB.  Imported by every model file; imports
    nothing from the rest of the package.

Column conventions:
    - ``Decimal`` annotations map to Numeric(38, 9).  Quantities and money
      never go through float in Python code.
    - ``UUID`` annotations are stored as String(36) so the same schema runs
      on PostgreSQL and SQLite.
    - ``int`` maps to BigInteger (ledger sequence numbers).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

EXACT_DECIMAL = Numeric(38, 9)


class UUIDString(TypeDecorator):
    """UUID <-> 36-character string."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Root of the declarative hierarchy; every row gets a uuid4 ``id``."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: EXACT_DECIMAL,
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows that record who created them and who last changed them.

    ``created_by_id`` is mandatory.  ``updated_at`` / ``updated_by_id`` are
    audit metadata and may change on the append-only ledger tables too
    (db/immutability.py lets them through).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def touch(self, actor_id: UUID) -> None:
        """Record ``actor_id`` as the last modifier of this row."""
        self.updated_by_id = actor_id
