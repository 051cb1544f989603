"""
CatalogService -- reference data registration and existence checks.

Responsibility:
    Registers units, items and suppliers, and gives every core operation an
    explicit ``require_*`` call that turns a dangling id into a typed
    ``ReferenceNotFoundError`` at the boundary, instead of failing later on a
    foreign key.

Architecture position:
    Kernel > Services.  Flush only; callers own the transaction.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from materials_kernel.domain.dtos import ItemInfo, SupplierInfo
from materials_kernel.exceptions import ReferenceNotFoundError, ValidationError
from materials_kernel.logging_config import get_logger
from materials_kernel.models.catalog import ItemModel, SupplierModel, UnitModel

logger = get_logger("services.catalog")


class CatalogService:
    """Reference data writes and lookups."""

    def __init__(self, session: Session):
        self._session = session

    def register_unit(self, name: str, symbol: str, actor_id: UUID) -> UUID:
        unit = UnitModel(name=name, symbol=symbol, created_by_id=actor_id)
        self._session.add(unit)
        self._session.flush()
        logger.info("unit_registered", extra={"unit_id": str(unit.id), "symbol": symbol})
        return unit.id

    def register_item(
        self,
        item_code: str,
        name: str,
        actor_id: UUID,
        category: str | None = None,
        brand: str | None = None,
        unit_id: UUID | None = None,
        cost_per_unit: Decimal = Decimal("0"),
    ) -> ItemInfo:
        """
        Add a catalog item.

        Raises:
            ValidationError: item_code already registered.
            ReferenceNotFoundError: unit_id does not resolve.
        """
        existing = self._session.execute(
            select(ItemModel.id).where(ItemModel.item_code == item_code)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(f"Item code already exists: {item_code}", field="item_code")
        if unit_id is not None and self._session.get(UnitModel, unit_id) is None:
            raise ReferenceNotFoundError("Unit", str(unit_id))

        item = ItemModel(
            item_code=item_code,
            name=name,
            category=category,
            brand=brand,
            unit_id=unit_id,
            cost_per_unit=cost_per_unit,
            created_by_id=actor_id,
        )
        self._session.add(item)
        self._session.flush()
        logger.info(
            "item_registered",
            extra={"item_id": str(item.id), "item_code": item_code},
        )
        return item.to_info()

    def register_supplier(
        self,
        supplier_name: str,
        actor_id: UUID,
        contact_person: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        gst_number: str | None = None,
        address: str | None = None,
    ) -> SupplierInfo:
        supplier = SupplierModel(
            supplier_name=supplier_name,
            contact_person=contact_person,
            phone=phone,
            email=email,
            gst_number=gst_number,
            address=address,
            created_by_id=actor_id,
        )
        self._session.add(supplier)
        self._session.flush()
        logger.info(
            "supplier_registered",
            extra={"supplier_id": str(supplier.id), "supplier_name": supplier_name},
        )
        return supplier.to_info()

    def require_item(self, item_id: UUID) -> ItemInfo:
        item = self._session.get(ItemModel, item_id)
        if item is None:
            raise ReferenceNotFoundError("Item", str(item_id))
        return item.to_info()

    def require_supplier(self, supplier_id: UUID) -> SupplierInfo:
        supplier = self._session.get(SupplierModel, supplier_id)
        if supplier is None:
            raise ReferenceNotFoundError("Supplier", str(supplier_id))
        return supplier.to_info()

    def require_unit(self, unit_id: UUID) -> None:
        if self._session.get(UnitModel, unit_id) is None:
            raise ReferenceNotFoundError("Unit", str(unit_id))
