"""
Typed Exception Hierarchy for the Materials Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock and money postings must fail precisely. A caller that has to parse
"Insufficient stock. Available: 70" out of a message string cannot tell an
availability problem from a workflow problem without brittle matching.

Every error raised by the kernel and the document modules therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        movements.create_issue(...)
    except Exception as e:
        if "Insufficient" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        movements.create_issue(...)
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MaterialsKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidTaxRateError
    |
    +-- ReferenceNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- InvalidStateTransitionError
    |   +-- InvalidMrrStateError
    |   +-- InvalidPoStateError
    |   +-- InvalidReceiptStateError
    |   +-- InvalidMovementStateError
    |
    +-- ReceiptError
    |   +-- ReceiptLineMismatchError
    |   +-- OverReceiptError
    |
    +-- DuplicatePostingError
    |   +-- AlreadyProcessedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- LedgerIntegrityError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input to an operation
                | INVALID_QUANTITY            | Zero/negative quantity or no-op delta
                | INVALID_TAX_RATE            | GST rate outside 0..100
----------------|-----------------------------|-----------------------------------------
Reference       | REFERENCE_NOT_FOUND         | Item/supplier/MRR/PO/... does not exist
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Decrement exceeds quantity on hand
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_STATE_TRANSITION    | Action not allowed from current state
                | INVALID_MRR_STATE           | MRR is not in the required state
                | INVALID_PO_STATE            | PO is not in the required state
                | INVALID_RECEIPT_STATE       | Receipt is not in the required state
                | INVALID_MOVEMENT_STATE      | Issue/return/consumption already reversed
----------------|-----------------------------|-----------------------------------------
Receipt         | RECEIPT_LINE_MISMATCH       | Receipt line points at a foreign PO line
                | OVER_RECEIPT                | Received more than ordered (unflagged)
----------------|-----------------------------|-----------------------------------------
Idempotency     | DUPLICATE_POSTING           | Second PURCHASE posting / second receipt
                | ALREADY_PROCESSED           | Receipt already posted to inventory
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only ledger row
----------------|-----------------------------|-----------------------------------------
Integrity       | LEDGER_INTEGRITY            | Replay or running balance mismatch

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS, THEN CATEGORIES:

    try:
        receipts.verify(receipt_id, ...)
    except AlreadyProcessedError:
        ...                       # receipt was already posted, nothing to do
    except InvalidStateTransitionError as e:
        reject(e.actual, e.required)

2. NEVER RETRY POSTINGS AUTOMATICALLY:

    InsufficientStockError and DuplicatePostingError are caller decisions.
    The kernel performs at most one attempt per call.

3. INTEGRITY ERRORS ARE BUGS:

    LedgerIntegrityError means stored quantities or balances disagree with
    their ledgers. Alert and halt; do not catch and continue.

===============================================================================
"""

from decimal import Decimal


class MaterialsKernelError(Exception):
    """
    Base exception for all materials kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "MATERIALS_KERNEL_ERROR"


# Validation


class ValidationError(MaterialsKernelError):
    """Operation input failed validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidQuantityError(ValidationError):
    """Quantity is zero, negative, or otherwise unusable for the operation."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}", field="quantity")


class InvalidTaxRateError(ValidationError):
    """GST rate outside the 0..100 percent range."""

    code: str = "INVALID_TAX_RATE"

    def __init__(self, tax_kind: str, rate: Decimal):
        self.tax_kind = tax_kind
        self.rate = rate
        super().__init__(
            f"{tax_kind} rate must be between 0 and 100, got {rate}",
            field=f"{tax_kind.lower()}_rate",
        )


# References


class ReferenceNotFoundError(MaterialsKernelError):
    """A foreign reference (item, supplier, project document, ...) does not resolve."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Stock


class StockError(MaterialsKernelError):
    """Base exception for stock availability errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested decrement exceeds the quantity on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        available: Decimal,
        requested: Decimal,
        item_id: str | None = None,
        stock_key: str | None = None,
    ):
        self.available = available
        self.requested = requested
        self.item_id = item_id
        self.stock_key = stock_key
        super().__init__(
            f"Insufficient stock. Available: {available}, Requested: {requested}"
        )


# Workflow state


class InvalidStateTransitionError(MaterialsKernelError):
    """
    An action was attempted from a workflow state that does not permit it.

    ``required`` lists the states from which the action is allowed.
    """

    code: str = "INVALID_STATE_TRANSITION"
    entity_type: str = "Document"

    def __init__(
        self,
        entity_id: str,
        action: str,
        actual: str,
        required: str | tuple[str, ...],
    ):
        if isinstance(required, str):
            required = (required,)
        self.entity_id = entity_id
        self.action = action
        self.actual = actual
        self.required = required[0] if len(required) == 1 else "|".join(required)
        super().__init__(
            f"Cannot {action} {self.entity_type} {entity_id}: "
            f"status is {actual}, required {self.required}"
        )


class InvalidMrrStateError(InvalidStateTransitionError):
    """MRR is not in the state the operation requires."""

    code: str = "INVALID_MRR_STATE"
    entity_type: str = "MRR"


class InvalidPoStateError(InvalidStateTransitionError):
    """Purchase order is not in the state the operation requires."""

    code: str = "INVALID_PO_STATE"
    entity_type: str = "PurchaseOrder"


class InvalidReceiptStateError(InvalidStateTransitionError):
    """Material receipt is not in the state the operation requires."""

    code: str = "INVALID_RECEIPT_STATE"
    entity_type: str = "MaterialReceipt"


class InvalidMovementStateError(InvalidStateTransitionError):
    """Issue, return or consumption was already reversed."""

    code: str = "INVALID_MOVEMENT_STATE"
    entity_type: str = "StockMovement"


# Receipts


class ReceiptError(MaterialsKernelError):
    """Base exception for material receipt line errors."""

    code: str = "RECEIPT_ERROR"


class ReceiptLineMismatchError(ReceiptError):
    """Receipt line references a PO line that is missing or belongs to another PO."""

    code: str = "RECEIPT_LINE_MISMATCH"

    def __init__(self, po_id: str, po_line_id: str):
        self.po_id = po_id
        self.po_line_id = po_line_id
        super().__init__(
            f"PO line {po_line_id} does not belong to purchase order {po_id}"
        )


class OverReceiptError(ReceiptError):
    """Verified quantity would push a PO line past its ordered quantity."""

    code: str = "OVER_RECEIPT"

    def __init__(
        self,
        po_line_id: str,
        quantity_ordered: Decimal,
        quantity_received: Decimal,
        attempted: Decimal,
    ):
        self.po_line_id = po_line_id
        self.quantity_ordered = quantity_ordered
        self.quantity_received = quantity_received
        self.attempted = attempted
        super().__init__(
            f"Over-receipt on PO line {po_line_id}: ordered {quantity_ordered}, "
            f"already received {quantity_received}, attempted {attempted}"
        )


# Idempotency


class DuplicatePostingError(MaterialsKernelError):
    """An idempotency guard tripped; the posting already exists."""

    code: str = "DUPLICATE_POSTING"

    def __init__(self, posting_type: str, reference: str, existing_id: str | None = None):
        self.posting_type = posting_type
        self.reference = reference
        self.existing_id = existing_id
        super().__init__(f"Duplicate {posting_type} posting for {reference}")


class AlreadyProcessedError(DuplicatePostingError):
    """Receipt inventory posting already applied (by verify or complete)."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, receipt_id: str, posted_by: str):
        self.receipt_id = receipt_id
        self.posted_by = posted_by
        self.posting_type = "RECEIPT_INVENTORY"
        self.reference = receipt_id
        self.existing_id = None
        MaterialsKernelError.__init__(
            self, f"Receipt {receipt_id} already posted to inventory by {posted_by}"
        )


# Immutability


class ImmutabilityError(MaterialsKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Integrity


class LedgerIntegrityError(MaterialsKernelError):
    """
    Stored state disagrees with its ledger.

    Raised by replay and running-balance verification. This is a
    programming error, not an expected runtime condition.
    """

    code: str = "LEDGER_INTEGRITY"

    def __init__(self, ledger: str, key: str, expected: Decimal, actual: Decimal):
        self.ledger = ledger
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{ledger} ledger mismatch for {key}: ledger says {expected}, "
            f"stored value is {actual}"
        )
