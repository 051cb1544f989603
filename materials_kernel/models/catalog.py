"""
Module: materials_kernel.models.catalog
Responsibility: Reference data consumed by every layer above it: units of
    measure, catalog items and suppliers.  No workflow state.
Architecture position: Kernel > Models.  Imports from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - Item codes and unit names are unique.
    - SupplierModel rows double as the lock target that serializes supplier
      ledger postings (see services/supplier_ledger.py).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from materials_kernel.db.base import TrackedBase, UUIDString
from materials_kernel.domain.dtos import ItemInfo, SupplierInfo


class UnitModel(TrackedBase):
    """Unit of measure (bags, kg, m3, nos...)."""

    __tablename__ = "units"

    __table_args__ = (UniqueConstraint("name", name="uq_unit_name"),)

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<UnitModel {self.symbol}>"


class ItemModel(TrackedBase):
    """
    Catalog item.

    Supplies the defaults (name, unit, category, cost) copied onto an
    InventoryRecord the first time stock for the item is created.
    """

    __tablename__ = "items"

    __table_args__ = (UniqueConstraint("item_code", name="uq_item_code"),)

    item_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("units.id"), nullable=True
    )
    cost_per_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    unit: Mapped[UnitModel | None] = relationship(UnitModel, lazy="joined")

    def to_info(self) -> ItemInfo:
        return ItemInfo(
            id=self.id,
            item_code=self.item_code,
            name=self.name,
            category=self.category,
            brand=self.brand,
            unit_id=self.unit_id,
            unit_symbol=self.unit.symbol if self.unit is not None else None,
            cost_per_unit=self.cost_per_unit,
        )

    def __repr__(self) -> str:
        return f"<ItemModel {self.item_code}>"


class SupplierModel(TrackedBase):
    """Supplier identity and contact data."""

    __tablename__ = "suppliers"

    supplier_name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    gst_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_info(self) -> SupplierInfo:
        return SupplierInfo(
            id=self.id,
            supplier_name=self.supplier_name,
            contact_person=self.contact_person,
            phone=self.phone,
            email=self.email,
            gst_number=self.gst_number,
        )

    def __repr__(self) -> str:
        return f"<SupplierModel {self.supplier_name}>"
