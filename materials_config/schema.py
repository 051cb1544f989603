"""
Materials configuration schema.

Operational switches for the document workflows: when a material receipt
posts stock, whether a PO may have more than one receipt, over-receipt
tolerance, payment terms, tax rounding and the document code formats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Self

from materials_kernel.logging_config import get_logger

logger = get_logger("config.schema")


class ReceiptPostingPolicy(str, Enum):
    """Which receipt transition is allowed to post stock."""

    # Only verify() posts; complete() is bookkeeping.
    VERIFY = "VERIFY"
    # complete() may post from RECEIVED when verify() was skipped.
    VERIFY_OR_COMPLETE = "VERIFY_OR_COMPLETE"


@dataclass(frozen=True)
class ReferenceCodeFormat:
    """Prefix plus zero-padded counter: ``ReferenceCodeFormat("PO", 6)`` -> PO000123."""

    prefix: str
    width: int = 6

    def __post_init__(self):
        if not self.prefix:
            raise ValueError("reference code prefix cannot be empty")
        if self.width < 1:
            raise ValueError("reference code width must be positive")

    def format(self, value: int) -> str:
        return f"{self.prefix}{value:0{self.width}d}"


def _code(prefix: str):
    return field(default_factory=lambda: ReferenceCodeFormat(prefix))


@dataclass
class MaterialsConfig:
    """
    Configuration for the materials workflows.

    Defaults match day-to-day site procurement: stock posts at verification,
    one goods receipt per PO, no over-receipt, 30-day payment terms.
    """

    receipt_posting_policy: ReceiptPostingPolicy = ReceiptPostingPolicy.VERIFY
    one_receipt_per_po: bool = True
    allow_over_receipt: bool = False

    # Days after the PO date when a PURCHASE posting falls due
    payment_due_days: int = 30

    # GST amounts are rounded to this many places (ROUND_HALF_UP)
    tax_decimal_places: int = 2

    po_code: ReferenceCodeFormat = _code("PO")
    mrr_code: ReferenceCodeFormat = _code("MRR")
    receipt_code: ReferenceCodeFormat = _code("GRN")
    payment_code: ReferenceCodeFormat = _code("PAY-")

    def __post_init__(self):
        self.receipt_posting_policy = ReceiptPostingPolicy(self.receipt_posting_policy)
        if self.payment_due_days < 0:
            raise ValueError("payment_due_days cannot be negative")
        if not 0 <= self.tax_decimal_places <= 9:
            raise ValueError("tax_decimal_places must be between 0 and 9")

    @property
    def complete_may_post(self) -> bool:
        return self.receipt_posting_policy is ReceiptPostingPolicy.VERIFY_OR_COMPLETE

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("materials_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (parsed YAML)."""
        data = dict(data)
        for key in ("po_code", "mrr_code", "receipt_code", "payment_code"):
            if key in data and isinstance(data[key], dict):
                data[key] = ReferenceCodeFormat(**data[key])
        logger.info(
            "materials_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    def to_dict(self) -> dict:
        return {
            "receipt_posting_policy": self.receipt_posting_policy.value,
            "one_receipt_per_po": self.one_receipt_per_po,
            "allow_over_receipt": self.allow_over_receipt,
            "payment_due_days": self.payment_due_days,
            "tax_decimal_places": self.tax_decimal_places,
            "po_code": {"prefix": self.po_code.prefix, "width": self.po_code.width},
            "mrr_code": {"prefix": self.mrr_code.prefix, "width": self.mrr_code.width},
            "receipt_code": {
                "prefix": self.receipt_code.prefix,
                "width": self.receipt_code.width,
            },
            "payment_code": {
                "prefix": self.payment_code.prefix,
                "width": self.payment_code.width,
            },
        }
