"""
Purchase order notifications.

``PurchaseOrderService.place`` hands the placed order to a ``PoNotifier``
after the transaction commits.  Delivery (WhatsApp, e-mail, ...) lives
outside this package; the default notifier only logs the message.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from materials_kernel.domain.dtos import SupplierInfo
from materials_kernel.logging_config import get_logger
from materials_modules.procurement.models import PurchaseOrder

logger = get_logger("modules.procurement.notifications")


@runtime_checkable
class PoNotifier(Protocol):
    def notify_po_placed(self, po: PurchaseOrder, supplier: SupplierInfo) -> None:
        ...


def _money(amount: Decimal) -> str:
    return f"{amount:,.2f}"


def format_po_message(
    po: PurchaseOrder,
    supplier: SupplierInfo,
    item_names: Mapping[UUID, str] | None = None,
) -> str:
    """Supplier-facing text for a placed purchase order."""
    item_names = item_names or {}
    lines = [
        f"PURCHASE ORDER {po.po_number}",
        "",
        f"Dear {supplier.contact_person or supplier.supplier_name},",
        "",
        "Please find the purchase order details below:",
        "",
        f"PO Number: {po.po_number}",
    ]
    if po.project_id is not None:
        lines.append(f"Project: {po.project_id}")
    lines.append(f"PO Date: {po.po_date.isoformat()}")
    if po.expected_delivery_date is not None:
        lines.append(f"Expected Delivery: {po.expected_delivery_date.isoformat()}")
    lines.append(f"Total Amount: {_money(po.total_amount)}")

    lines += ["", "Items:"]
    for line in po.lines:
        name = item_names.get(line.item_id, str(line.item_id))
        lines.append(f"{line.line_number}. {name}")
        lines.append(
            f"   Qty: {line.quantity_ordered} | Rate: {_money(line.unit_price)}"
            f" | Total: {_money(line.line_total + line.tax_amount)}"
        )

    if po.payment_terms:
        lines += ["", f"Payment Terms: {po.payment_terms}"]
    if po.delivery_terms:
        lines += ["", f"Delivery Terms: {po.delivery_terms}"]
    if po.notes:
        lines += ["", f"Notes: {po.notes}"]

    lines += [
        "",
        "Please confirm receipt of this purchase order and the expected delivery date.",
    ]
    return "\n".join(lines)


class LoggingPoNotifier:
    """Default notifier: logs the formatted message instead of sending it."""

    def notify_po_placed(self, po: PurchaseOrder, supplier: SupplierInfo) -> None:
        message = format_po_message(po, supplier)
        logger.info(
            "po_notification_logged",
            extra={
                "po_number": po.po_number,
                "supplier_id": str(supplier.id),
                "phone": supplier.phone,
                "message_length": len(message),
            },
        )
