"""
Sales Domain Models (``billing_modules.sales.models``).

Responsibility
--------------
Frozen dataclass value objects for the customer side of the back office:
quotations and invoices (one ``Document`` shape), invoice payments and
credit notes.  Line items are the shared ``billing_engines.LineItem``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``DocumentEditor`` and ``SalesService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* On a Document, ``amount_paid + balance_remaining == gross_total``
  (within tolerance).  For invoices ``amount_paid`` counts recorded
  payments plus applied credit notes; ``credits_applied`` is the credit
  part of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from billing_engines.balance import BalanceAuthority, BalanceState
from billing_engines.line_pricing import LineItem
from billing_engines.settlement import InvoiceStatus
from billing_kernel.domain.values import ZERO, round_money
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.sales.models")


class DocumentKind(str, Enum):
    QUOTATION = "QUOTATION"
    INVOICE = "INVOICE"


class QuotationStatus(str, Enum):
    """Quotation lifecycle states."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    CONVERTED = "CONVERTED"


class CreditNoteStatus(str, Enum):
    """Credit note lifecycle states."""
    ISSUED = "ISSUED"
    PENDING = "PENDING"
    REFUNDED = "REFUNDED"
    VOID = "VOID"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    OTHER = "OTHER"


def status_for_kind(kind: DocumentKind, raw: str) -> QuotationStatus | InvoiceStatus:
    if kind is DocumentKind.QUOTATION:
        return QuotationStatus(raw)
    return InvoiceStatus(raw)


@dataclass(frozen=True)
class Document:
    """A quotation or invoice working copy.

    Derived fields (subtotal, vat_amount, total_amount, discount_amount)
    are only ever written by the editor's recomputation.
    """
    kind: DocumentKind
    id: UUID = field(default_factory=uuid4)
    document_number: str | None = None
    date_issued: date | None = None
    customer_id: str | None = None
    lines: tuple[LineItem, ...] = ()
    vat_percent_default: Decimal = Decimal("15")
    discount_percent: Decimal = ZERO
    discount_amount: Decimal = ZERO
    subtotal: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    previous_balance: Decimal = ZERO
    amount_paid: Decimal = ZERO
    balance_remaining: Decimal = ZERO
    balance_authority: BalanceAuthority = BalanceAuthority.AMOUNT_PAID
    status: QuotationStatus | InvoiceStatus = QuotationStatus.DRAFT
    valid_until: date | None = None
    notes: str = ""
    converted_invoice_id: UUID | None = None
    converted_at: datetime | None = None
    source_quotation_id: UUID | None = None
    credits_applied: Decimal = ZERO

    @property
    def gross_total(self) -> Decimal:
        return round_money(self.total_amount + self.previous_balance)

    @property
    def balance_state(self) -> BalanceState:
        return BalanceState(
            gross_total=self.gross_total,
            amount_paid=self.amount_paid,
            balance_remaining=self.balance_remaining,
            authority=self.balance_authority,
        )

    @property
    def is_locked(self) -> bool:
        """A CONVERTED quotation or VOID invoice accepts no further edits."""
        if self.kind is DocumentKind.QUOTATION:
            return self.status is QuotationStatus.CONVERTED
        return self.status is InvoiceStatus.VOID

    @property
    def real_lines(self) -> tuple[LineItem, ...]:
        return tuple(line for line in self.lines if not line.is_placeholder)


@dataclass(frozen=True)
class Payment:
    """A payment received against an invoice."""
    invoice_id: UUID
    amount: Decimal
    payment_date: date
    id: UUID = field(default_factory=uuid4)
    method: PaymentMethod = PaymentMethod.CASH
    reference: str | None = None
    notes: str | None = None
    is_auto: bool = False

    def __post_init__(self):
        if self.amount <= 0:
            logger.warning("payment_non_positive_amount", extra={
                "payment_id": str(self.id),
                "amount": str(self.amount),
            })


@dataclass(frozen=True)
class CreditNote:
    """A credit issued to a customer, optionally against an invoice."""
    customer_id: str | None
    credit_note_date: date
    id: UUID = field(default_factory=uuid4)
    credit_note_number: str | None = None
    invoice_id: UUID | None = None
    lines: tuple[LineItem, ...] = ()
    subtotal: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    status: CreditNoteStatus = CreditNoteStatus.ISSUED
    reason: str = ""

    @property
    def reduces_balance(self) -> bool:
        """Only an ISSUED credit note counts against its invoice."""
        return self.invoice_id is not None and self.status is CreditNoteStatus.ISSUED
