"""
billing_engines.settlement -- Payments, credits and bill allocation.

Responsibility:
    Pure rules for settling documents against money received or paid:

    * Customer invoices: status and outstanding balance from the
      recorded payments and applied credit notes.
    * Supplier bills: validating how a supplier payment is split across
      open bills, filling oldest bills first on request, and the bill
      status that results.

Architecture position:
    Engines -- pure calculation, zero I/O.  The payables and sales
    services load the inputs and persist the outputs.

Invariants enforced:
    - Payment amounts are rounded to 2dp and must be > 0.
    - balance_remaining = max(0, gross - paid - credits).
    - An allocation never exceeds its bill's remaining balance, and the
      allocations of one payment never exceed the payment.
    - VOID documents keep their status whatever is paid against them.

Failure modes:
    - ``InvalidPaymentError`` -- amount <= 0 after rounding.
    - ``OverAllocationError`` -- per bill or per payment overrun.
    - ``BillVoidError`` -- allocation requested against a VOID bill.
    - ``DocumentNotFoundError`` -- allocation names an unknown bill.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import MAX_INPUT, ZERO, parse_decimal, round_money
from billing_kernel.exceptions import (
    BillVoidError,
    DocumentNotFoundError,
    InvalidPaymentError,
    OverAllocationError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")

# Below this shortfall a document counts as fully paid.
PAID_TOLERANCE = Decimal("0.009")


class InvoiceStatus(str, Enum):
    ISSUED = "ISSUED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOID = "VOID"


class BillStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOID = "VOID"


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def validate_payment_amount(amount: object) -> Decimal:
    """Round a payment to 2dp; reject non-positive or oversized amounts."""
    value = parse_decimal(amount)
    if value is None or value >= MAX_INPUT:
        raise InvalidPaymentError(amount)
    value = round_money(value)
    if value <= ZERO:
        raise InvalidPaymentError(value)
    return value


def _sum_money(amounts: Iterable[object]) -> Decimal:
    total = ZERO
    for amount in amounts:
        value = parse_decimal(amount)
        if value is not None:
            total += value
    return round_money(total)


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


def invoice_status_for(
    total: object,
    paid_plus_credits: object,
    current: InvoiceStatus | None = None,
) -> InvoiceStatus:
    """Payment-driven invoice status.  VOID is sticky."""
    if current is InvoiceStatus.VOID:
        return InvoiceStatus.VOID
    t = round_money(parse_decimal(total) or ZERO)
    p = round_money(parse_decimal(paid_plus_credits) or ZERO)
    if p <= ZERO:
        return InvoiceStatus.ISSUED
    if p + PAID_TOLERANCE < t:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.PAID


@dataclass(frozen=True)
class InvoiceSettlement:
    amount_paid: Decimal
    credits_applied: Decimal
    balance_remaining: Decimal
    status: InvoiceStatus

    @property
    def amount_settled(self) -> Decimal:
        """Payments plus credits, capped at what the invoice can absorb."""
        return self.amount_paid + self.credits_applied


@traced_engine("settle_invoice", "1.0", fingerprint_fields=("gross_total",))
def settle_invoice(
    gross_total: object,
    payments: Iterable[object],
    credits: Iterable[object] = (),
    current: InvoiceStatus | None = None,
) -> InvoiceSettlement:
    """Outstanding balance and status after payments and credits."""
    gross = round_money(parse_decimal(gross_total) or ZERO)
    paid = _sum_money(payments)
    credited = _sum_money(credits)
    balance = max(ZERO, round_money(gross - paid - credited))
    status = invoice_status_for(gross, paid + credited, current)
    logger.info(
        "invoice_settled",
        extra={
            "gross_total": str(gross),
            "amount_paid": str(paid),
            "credits_applied": str(credited),
            "balance_remaining": str(balance),
            "status": status.value,
        },
    )
    return InvoiceSettlement(
        amount_paid=paid,
        credits_applied=credited,
        balance_remaining=balance,
        status=status,
    )


# ---------------------------------------------------------------------------
# Supplier bills
# ---------------------------------------------------------------------------


def bill_status_for(
    total: object,
    applied: object,
    current: BillStatus | None = None,
) -> BillStatus:
    """Allocation-driven bill status.  VOID is sticky."""
    if current is BillStatus.VOID:
        return BillStatus.VOID
    t = round_money(parse_decimal(total) or ZERO)
    a = round_money(parse_decimal(applied) or ZERO)
    if a <= ZERO:
        return BillStatus.OPEN
    if a + PAID_TOLERANCE < t:
        return BillStatus.PARTIALLY_PAID
    return BillStatus.PAID


@dataclass(frozen=True)
class BillBalance:
    """A bill as the allocation rules see it.

    ``amount_applied`` is the sum of allocations from every payment,
    including the one being edited.
    """

    bill_id: UUID
    bill_date: date
    total_amount: Decimal
    amount_applied: Decimal = ZERO
    status: BillStatus = BillStatus.OPEN
    bill_number: str | None = None

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.total_amount - self.amount_applied)

    def remaining_for(self, existing_for_payment: Decimal) -> Decimal:
        """Remaining balance when this payment's own allocation is replaced."""
        return max(ZERO, self.total_amount - (self.amount_applied - existing_for_payment))


@dataclass(frozen=True)
class Allocation:
    bill_id: UUID
    amount_applied: Decimal


@traced_engine("allocate_payment", "1.0", fingerprint_fields=("payment_amount", "requested"))
def allocate_payment(
    payment_amount: object,
    bills: Sequence[BillBalance],
    requested: Mapping[UUID, object],
    existing_for_payment: Mapping[UUID, Decimal] | None = None,
) -> tuple[Allocation, ...]:
    """Validate a requested split of one payment across bills.

    The result replaces the payment's previous allocations; amounts that
    round to zero are dropped.
    """
    payment = validate_payment_amount(payment_amount)
    existing = existing_for_payment or {}
    by_id = {bill.bill_id: bill for bill in bills}

    desired: list[Allocation] = []
    for bill_id, raw in requested.items():
        amount = round_money(parse_decimal(raw) or ZERO)
        if amount > ZERO:
            desired.append(Allocation(bill_id=bill_id, amount_applied=amount))

    total = sum((a.amount_applied for a in desired), ZERO)
    if total > payment:
        raise OverAllocationError("payment", total, payment)

    for alloc in desired:
        bill = by_id.get(alloc.bill_id)
        if bill is None:
            raise DocumentNotFoundError(alloc.bill_id)
        if bill.status is BillStatus.VOID:
            raise BillVoidError(bill.bill_id, bill.bill_number)
        available = bill.remaining_for(existing.get(bill.bill_id, ZERO))
        if alloc.amount_applied > available:
            raise OverAllocationError(
                bill.bill_number or bill.bill_id, alloc.amount_applied, available
            )

    return tuple(desired)


def auto_allocate(
    payment_amount: object,
    bills: Sequence[BillBalance],
    existing_for_payment: Mapping[UUID, Decimal] | None = None,
) -> tuple[Allocation, ...]:
    """Spread a payment over open bills, oldest bill date first."""
    remaining = validate_payment_amount(payment_amount)
    existing = existing_for_payment or {}
    ordered = sorted(
        (b for b in bills if b.status is not BillStatus.VOID),
        key=lambda b: (b.bill_date, b.bill_number or "", b.bill_id),
    )

    allocations: list[Allocation] = []
    for bill in ordered:
        if remaining <= ZERO:
            break
        available = bill.remaining_for(existing.get(bill.bill_id, ZERO))
        if available <= ZERO:
            continue
        applied = min(remaining, available)
        allocations.append(Allocation(bill_id=bill.bill_id, amount_applied=applied))
        remaining -= applied

    logger.info(
        "payment_auto_allocated",
        extra={
            "payment_amount": str(payment_amount),
            "bill_count": len(allocations),
            "unallocated": str(remaining),
        },
    )
    return tuple(allocations)
