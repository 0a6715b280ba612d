"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers catch by type and read structured attributes; they never parse
message strings.  Every exception carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (document ids, amounts, states)

Example:
    try:
        service.convert_quotation(quotation_id)
    except ConversionFailureError as e:
        notify_user(e.reason)                 # surfaced, never retried
        api_response(code=e.code, quotation=e.quotation_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- InputError                      (recovered locally, never surfaced)
    |   +-- InvalidQuantityError
    |   +-- InvalidPriceError
    |
    +-- InvariantViolationError         (programming fault)
    |   +-- BalanceDriftError
    |   +-- DerivedFieldMismatchError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- ConversionFailureError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- LineNotFoundError
    |   +-- ProductNotFoundError
    |   +-- CustomerNotFoundError
    |   +-- DocumentLockedError
    |   +-- OperationInProgressError
    |   +-- PersistenceError
    |
    +-- SettlementError
    |   +-- InvalidPaymentError
    |   +-- OverAllocationError
    |   +-- BillVoidError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | INVALID_QUANTITY            | Non-finite / negative quantity input
                | INVALID_PRICE               | Non-finite / negative price input
----------------|-----------------------------|-----------------------------------------
Invariant       | BALANCE_DRIFT               | paid + remaining != gross (> tolerance)
                | DERIVED_FIELD_MISMATCH      | Stored derived field != its formula
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_TRANSITION          | No transition for (state, action)
                | ALREADY_CONVERTED           | Quotation already converted
                | QUOTATION_NOT_CONVERTIBLE   | Quotation in a terminal state
                | CONVERSION_TARGET_FAILED    | Remote invoice creation failed
----------------|-----------------------------|-----------------------------------------
Document        | DOCUMENT_NOT_FOUND          | Unknown document id
                | LINE_NOT_FOUND              | Unknown line id in a working copy
                | PRODUCT_NOT_FOUND           | Catalog has no such product
                | CUSTOMER_NOT_FOUND          | Directory has no such customer
                | DOCUMENT_LOCKED             | Edit or save of a CONVERTED quotation or VOID invoice
                | OPERATION_IN_PROGRESS       | Save/convert already outstanding
                | PERSISTENCE_FAILED          | Save write failed
----------------|-----------------------------|-----------------------------------------
Settlement      | INVALID_PAYMENT             | Payment amount <= 0
                | OVER_ALLOCATION             | Allocations exceed payment / bill
                | BILL_VOID                   | Allocation against a VOID bill
----------------|-----------------------------|-----------------------------------------
Config          | CONFIGURATION_ERROR         | Settings file invalid

===============================================================================
HANDLING PATTERNS
===============================================================================

1. INPUT ERRORS ARE RECOVERED, NOT RAISED TO THE OPERATOR.
   Interactive entry passes through transient invalid states ("", ".",
   "-").  ``billing_kernel.domain.values.coerce_non_negative`` builds an
   InputError, logs it at DEBUG and returns 0.

2. INVARIANT VIOLATIONS ARE BUGS.
   They must never occur under a correct implementation.  Let them
   propagate; do not catch-and-continue.

3. CONVERSION / SAVE FAILURES ARE SURFACED AS-IS.
   A failed remote write may have partially succeeded.  The caller shows
   the error and lets the operator decide whether to retry.

===============================================================================
"""

from decimal import Decimal


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Input-related exceptions


class InputError(BillingKernelError):
    """Base exception for operator input that cannot be used as-is."""

    code: str = "INPUT_ERROR"


class InvalidQuantityError(InputError):
    """A quantity input was non-finite, unparsable or negative."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, raw_value: object):
        self.field = field
        self.raw_value = repr(raw_value)
        super().__init__(f"Invalid quantity for {field}: {raw_value!r}")


class InvalidPriceError(InputError):
    """A price or percentage input was non-finite, unparsable or negative."""

    code: str = "INVALID_PRICE"

    def __init__(self, field: str, raw_value: object):
        self.field = field
        self.raw_value = repr(raw_value)
        super().__init__(f"Invalid price for {field}: {raw_value!r}")


# Invariant violations


class InvariantViolationError(BillingKernelError):
    """Base exception for broken engine invariants (programming faults)."""

    code: str = "INVARIANT_VIOLATION"


class BalanceDriftError(InvariantViolationError):
    """amount_paid + balance_remaining drifted away from gross_total."""

    code: str = "BALANCE_DRIFT"

    def __init__(
        self,
        gross_total: Decimal,
        amount_paid: Decimal,
        balance_remaining: Decimal,
        tolerance: Decimal,
    ):
        self.gross_total = gross_total
        self.amount_paid = amount_paid
        self.balance_remaining = balance_remaining
        self.tolerance = tolerance
        super().__init__(
            f"Balance drift: paid {amount_paid} + remaining {balance_remaining} "
            f"!= gross {gross_total} (tolerance {tolerance})"
        )


class DerivedFieldMismatchError(InvariantViolationError):
    """A stored derived field disagrees with the formula that defines it."""

    code: str = "DERIVED_FIELD_MISMATCH"

    def __init__(self, line_id: str, field: str, stored: Decimal, expected: Decimal):
        self.line_id = line_id
        self.field = field
        self.stored = stored
        self.expected = expected
        super().__init__(
            f"Line {line_id}: {field} is {stored}, formula gives {expected}"
        )


# Workflow exceptions


class WorkflowError(BillingKernelError):
    """Base exception for document lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """No transition exists for the requested (state, action) pair."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, from_state: str, action: str):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"No transition from '{from_state}' via action '{action}' "
            f"in workflow '{workflow}'"
        )


class ConversionFailureError(WorkflowError):
    """
    Quotation -> invoice conversion did not happen.

    The quotation status is unchanged whenever this is raised.  The
    ``reason_code`` distinguishes the cause; ``code`` mirrors it so API
    layers can forward it directly.
    """

    code: str = "CONVERSION_FAILED"

    ALREADY_CONVERTED = "ALREADY_CONVERTED"
    NOT_CONVERTIBLE = "QUOTATION_NOT_CONVERTIBLE"
    TARGET_FAILED = "CONVERSION_TARGET_FAILED"

    def __init__(self, quotation_id: object, reason_code: str, reason: str):
        self.quotation_id = str(quotation_id)
        self.reason_code = reason_code
        self.reason = reason
        self.code = reason_code
        super().__init__(f"Cannot convert quotation {quotation_id}: {reason}")


# Document exceptions


class DocumentError(BillingKernelError):
    """Base exception for document persistence and editing errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: object):
        self.document_id = str(document_id)
        super().__init__(f"Document not found: {document_id}")


class LineNotFoundError(DocumentError):
    """Line with given ID does not exist in the working copy."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, document_id: object, line_id: object):
        self.document_id = str(document_id)
        self.line_id = str(line_id)
        super().__init__(f"Line {line_id} not found in document {document_id}")


class ProductNotFoundError(DocumentError):
    """The product catalog has no product with this ID."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class CustomerNotFoundError(DocumentError):
    """The customer directory has no customer with this ID."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class DocumentLockedError(DocumentError):
    """The document is in a state that no longer accepts edits."""

    code: str = "DOCUMENT_LOCKED"

    def __init__(self, document_id: object, status: str):
        self.document_id = str(document_id)
        self.status = status
        super().__init__(f"Document {document_id} is {status} and cannot be edited")


class OperationInProgressError(DocumentError):
    """A non-idempotent write for this document is already outstanding."""

    code: str = "OPERATION_IN_PROGRESS"

    def __init__(self, document_id: object, operation: str):
        self.document_id = str(document_id)
        self.operation = operation
        super().__init__(
            f"{operation} already in progress for document {document_id}"
        )


class PersistenceError(DocumentError):
    """The persistence save did not complete."""

    code: str = "PERSISTENCE_FAILED"

    def __init__(self, document_id: object, reason: str):
        self.document_id = str(document_id)
        self.reason = reason
        super().__init__(f"Save failed for document {document_id}: {reason}")


# Settlement exceptions


class SettlementError(BillingKernelError):
    """Base exception for payment, credit and allocation errors."""

    code: str = "SETTLEMENT_ERROR"


class InvalidPaymentError(SettlementError):
    """Payment amount must be greater than zero."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, amount: object):
        self.amount = str(amount)
        super().__init__(f"Payment amount must be greater than 0, got {amount}")


class OverAllocationError(SettlementError):
    """Requested allocations exceed what the payment or bill can absorb."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, target: str, requested: Decimal, available: Decimal):
        self.target = target
        self.requested = requested
        self.available = available
        super().__init__(
            f"Allocation of {requested} exceeds available {available} for {target}"
        )


class BillVoidError(SettlementError):
    """Payments cannot be allocated to a VOID bill."""

    code: str = "BILL_VOID"

    def __init__(self, bill_id: object, bill_number: str | None = None):
        self.bill_id = str(bill_id)
        self.bill_number = bill_number
        super().__init__(f"Bill {bill_number or bill_id} is VOID")


# Configuration


class ConfigurationError(BillingKernelError):
    """Settings could not be loaded or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message if source is None else f"{source}: {message}")
