"""
GST line and document totals (``materials_kernel.domain.tax``).

Responsibility
--------------
Pure calculation of CGST / SGST / IGST amounts for purchase order and
receipt lines, and of document totals from their lines.  Totals are always
recomputed from the complete set of lines; nothing is accumulated
incrementally.

Rules
-----
* line_total = quantity x unit_price (exact, not rounded).
* <kind>_amount = line_total x <kind>_rate / 100, rounded HALF_UP to
  ``places`` decimal places.
* subtotal = sum(line_total); tax_amount = sum of all GST amounts;
  total_amount = subtotal + tax_amount.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from materials_kernel.exceptions import InvalidQuantityError, InvalidTaxRateError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


@dataclass(frozen=True)
class GstRates:
    """Percentage rates for one line. Each must lie in [0, 100]."""

    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    igst_rate: Decimal = ZERO

    def __post_init__(self):
        for kind in ("cgst", "sgst", "igst"):
            rate = getattr(self, f"{kind}_rate")
            if rate is None:
                object.__setattr__(self, f"{kind}_rate", ZERO)
                continue
            if not isinstance(rate, Decimal):
                rate = Decimal(str(rate))
                object.__setattr__(self, f"{kind}_rate", rate)
            if rate < ZERO or rate > HUNDRED:
                raise InvalidTaxRateError(kind.upper(), rate)


@dataclass(frozen=True)
class LineAmounts:
    """Computed money amounts for one line."""

    line_total: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    @property
    def gross_amount(self) -> Decimal:
        return self.line_total + self.tax_amount


@dataclass(frozen=True)
class DocumentTotals:
    """Header totals derived from every line of a document."""

    subtotal: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst_total + self.sgst_total + self.igst_total

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax_amount


def gst_amount(base: Decimal, rate: Decimal, places: int = 2) -> Decimal:
    """GST on ``base`` at ``rate`` percent, rounded HALF_UP."""
    return (base * rate / HUNDRED).quantize(_quantum(places), rounding=ROUND_HALF_UP)


def compute_line_amounts(
    quantity: Decimal,
    unit_price: Decimal,
    rates: GstRates,
    places: int = 2,
) -> LineAmounts:
    """
    Compute line total and GST amounts.

    Raises:
        InvalidQuantityError: quantity <= 0 or unit_price < 0.
    """
    if quantity <= ZERO:
        raise InvalidQuantityError(quantity, "line quantity must be positive")
    if unit_price < ZERO:
        raise InvalidQuantityError(unit_price, "unit price cannot be negative")

    line_total = quantity * unit_price
    return LineAmounts(
        line_total=line_total,
        cgst_amount=gst_amount(line_total, rates.cgst_rate, places),
        sgst_amount=gst_amount(line_total, rates.sgst_rate, places),
        igst_amount=gst_amount(line_total, rates.igst_rate, places),
    )


def compute_document_totals(lines: Iterable[LineAmounts]) -> DocumentTotals:
    """Sum line amounts into header totals. An empty document totals zero."""
    subtotal = cgst = sgst = igst = ZERO
    for line in lines:
        subtotal += line.line_total
        cgst += line.cgst_amount
        sgst += line.sgst_amount
        igst += line.igst_amount
    return DocumentTotals(
        subtotal=subtotal,
        cgst_total=cgst,
        sgst_total=sgst,
        igst_total=igst,
    )
