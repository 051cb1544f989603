"""Pure domain layer: clock, workflow tables, GST arithmetic. Zero I/O."""

from materials_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from materials_kernel.domain.tax import (
    DocumentTotals,
    GstRates,
    LineAmounts,
    compute_document_totals,
    compute_line_amounts,
)
from materials_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "DocumentTotals",
    "GstRates",
    "Guard",
    "LineAmounts",
    "SystemClock",
    "Transition",
    "Workflow",
    "compute_document_totals",
    "compute_line_amounts",
]
