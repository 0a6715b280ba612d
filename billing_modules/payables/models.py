"""
Payables Domain Models (``billing_modules.payables.models``).

Responsibility
--------------
Frozen value objects for the supplier side of the back office: supplier
bills, supplier payments and the allocations that split a payment
across bills.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.  These objects flow
into and out of ``PayablesService`` as immutable snapshots.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (never ``float``).
* All dataclasses are ``frozen=True``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from billing_engines.settlement import BillStatus
from billing_kernel.domain.values import ZERO
from billing_kernel.logging_config import get_logger
from billing_modules.sales.models import PaymentMethod

logger = get_logger("modules.payables.models")


@dataclass(frozen=True)
class SupplierBill:
    """A bill received from a supplier."""
    supplier_id: str
    bill_number: str
    bill_date: date
    total_amount: Decimal
    due_date: date | None = None
    status: BillStatus = BillStatus.OPEN
    amount_applied: Decimal = ZERO
    notes: str = ""
    id: UUID = field(default_factory=uuid4)

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.total_amount - self.amount_applied)


@dataclass(frozen=True)
class SupplierPayment:
    """Money paid to a supplier, to be split across its bills."""
    supplier_id: str
    payment_date: date
    amount: Decimal
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: str | None = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        if self.amount <= 0:
            logger.warning("supplier_payment_non_positive_amount", extra={
                "payment_id": str(self.id),
                "amount": str(self.amount),
            })


@dataclass(frozen=True)
class PaymentAllocation:
    """The part of one supplier payment applied to one bill."""
    payment_id: UUID
    bill_id: UUID
    amount_applied: Decimal
