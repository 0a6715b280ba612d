"""
Sales ORM Models (``billing_modules.sales.orm``).

Responsibility
--------------
SQLAlchemy persistence models for quotations, invoices, their lines,
invoice payments and credit notes.  Maps the frozen dataclasses in
``models.py`` to tables.  Derived fields are stored exactly as the
editor computed them.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``billing_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``billing_kernel``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_engines.balance import BalanceAuthority
from billing_engines.line_pricing import LineItem, price_line
from billing_engines.uom import (
    GRAM_CONVENTION_VERSION,
    Uom,
    migrate_legacy_gram_quantity,
    quantity_for,
)
from billing_kernel.db.base import TrackedBase, UUIDString


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Shared line columns
# ---------------------------------------------------------------------------


class LineColumnsMixin:
    """Columns shared by document lines and credit note lines."""

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    uom: Mapped[str] = mapped_column(String(10), nullable=False)
    raw_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    per_container: Mapped[Decimal] = mapped_column(nullable=False)
    base_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    base_unit_price_ex_vat: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price_ex_vat: Mapped[Decimal] = mapped_column(nullable=False)
    unit_vat: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price_inc_vat: Mapped[Decimal] = mapped_column(nullable=False)
    vat_rate_percent: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)
    price_overridden: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str] = mapped_column(Text, default="")
    item_code: Mapped[str] = mapped_column(String(64), default="")
    gram_convention_version: Mapped[int] = mapped_column(
        Integer, default=GRAM_CONVENTION_VERSION
    )

    def to_line(self) -> LineItem:
        """Rebuild the LineItem; legacy GRAM rows are migrated on read."""
        uom = Uom(self.uom)
        line = LineItem(
            id=self.id,
            product_id=self.product_id,
            quantity=quantity_for(uom, self.raw_quantity, self.per_container),
            base_quantity=self.base_quantity,
            base_unit_price_ex_vat=self.base_unit_price_ex_vat,
            unit_price_ex_vat=self.unit_price_ex_vat,
            unit_vat=self.unit_vat,
            unit_price_inc_vat=self.unit_price_inc_vat,
            vat_rate_percent=self.vat_rate_percent,
            line_total=self.line_total,
            price_overridden=self.price_overridden,
            description=self.description or "",
            item_code=self.item_code or "",
        )
        if uom is Uom.GRAM and self.gram_convention_version != GRAM_CONVENTION_VERSION:
            base = migrate_legacy_gram_quantity(
                self.base_quantity, self.gram_convention_version
            )
            pricing = price_line(base, line.unit_price_ex_vat, line.vat_rate_percent)
            line = replace(line, base_quantity=base, line_total=pricing.line_total)
        return line

    @classmethod
    def line_values(cls, line: LineItem, line_number: int) -> dict:
        return {
            "id": line.id,
            "line_number": line_number,
            "product_id": line.product_id,
            "uom": line.uom.value,
            "raw_quantity": line.quantity.raw,
            "per_container": line.quantity.per_container,
            "base_quantity": line.base_quantity,
            "base_unit_price_ex_vat": line.base_unit_price_ex_vat,
            "unit_price_ex_vat": line.unit_price_ex_vat,
            "unit_vat": line.unit_vat,
            "unit_price_inc_vat": line.unit_price_inc_vat,
            "vat_rate_percent": line.vat_rate_percent,
            "line_total": line.line_total,
            "price_overridden": line.price_overridden,
            "description": line.description,
            "item_code": line.item_code,
            "gram_convention_version": GRAM_CONVENTION_VERSION,
        }


# ---------------------------------------------------------------------------
# 1. SalesDocumentModel
# ---------------------------------------------------------------------------


class SalesDocumentModel(TrackedBase):
    """
    ORM model for quotations and invoices.

    Guarantees:
        - document_number is unique once allocated.
        - lines are owned (delete-orphan) and ordered by line_number.
    """

    __tablename__ = "sales_documents"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_sales_documents_number"),
        Index("idx_sales_documents_kind_status", "kind", "status"),
        Index("idx_sales_documents_customer", "customer_id"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    document_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date_issued: Mapped[date | None] = mapped_column(nullable=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vat_percent_default: Mapped[Decimal] = mapped_column(nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    previous_balance: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False)
    balance_remaining: Mapped[Decimal] = mapped_column(nullable=False)
    balance_authority: Mapped[str] = mapped_column(String(20), nullable=False)
    credits_applied: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    valid_until: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")
    converted_invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    source_quotation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    lines: Mapped[list["SalesDocumentLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="SalesDocumentLineModel.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.sales.models import Document, DocumentKind, status_for_kind

        kind = DocumentKind(self.kind)
        return Document(
            kind=kind,
            id=self.id,
            document_number=self.document_number,
            date_issued=self.date_issued,
            customer_id=self.customer_id,
            lines=tuple(row.to_line() for row in self.lines),
            vat_percent_default=self.vat_percent_default,
            discount_percent=self.discount_percent,
            discount_amount=self.discount_amount,
            subtotal=self.subtotal,
            vat_amount=self.vat_amount,
            total_amount=self.total_amount,
            previous_balance=self.previous_balance,
            amount_paid=self.amount_paid,
            balance_remaining=self.balance_remaining,
            balance_authority=BalanceAuthority(self.balance_authority),
            status=status_for_kind(kind, self.status),
            valid_until=self.valid_until,
            notes=self.notes or "",
            converted_invoice_id=self.converted_invoice_id,
            converted_at=_aware(self.converted_at),
            source_quotation_id=self.source_quotation_id,
            credits_applied=self.credits_applied,
        )

    def apply_dto(self, dto, actor_id: UUID | None = None) -> None:
        """Copy every header field and replace the lines from ``dto``."""
        self.kind = dto.kind.value
        self.document_number = dto.document_number
        self.date_issued = dto.date_issued
        self.customer_id = dto.customer_id
        self.vat_percent_default = dto.vat_percent_default
        self.discount_percent = dto.discount_percent
        self.discount_amount = dto.discount_amount
        self.subtotal = dto.subtotal
        self.vat_amount = dto.vat_amount
        self.total_amount = dto.total_amount
        self.previous_balance = dto.previous_balance
        self.amount_paid = dto.amount_paid
        self.balance_remaining = dto.balance_remaining
        self.balance_authority = dto.balance_authority.value
        self.credits_applied = dto.credits_applied
        self.status = dto.status.value
        self.valid_until = dto.valid_until
        self.notes = dto.notes
        self.converted_invoice_id = dto.converted_invoice_id
        self.converted_at = dto.converted_at
        self.source_quotation_id = dto.source_quotation_id
        self.updated_by_id = actor_id
        # Rows are matched by line id so unchanged lines update in place.
        existing = {row.id: row for row in self.lines}
        rows = []
        for n, line in enumerate(dto.lines, start=1):
            values = SalesDocumentLineModel.line_values(line, n)
            row = existing.get(line.id)
            if row is None:
                row = SalesDocumentLineModel(**values, created_by_id=actor_id)
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            rows.append(row)
        self.lines = rows

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "SalesDocumentModel":
        """Create ORM model from frozen dataclass."""
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_dto(dto, created_by_id)
        return model

    def __repr__(self) -> str:
        return f"<SalesDocumentModel {self.kind} {self.document_number}: {self.status}>"


class SalesDocumentLineModel(LineColumnsMixin, TrackedBase):
    """ORM model for a quotation or invoice line."""

    __tablename__ = "sales_document_lines"

    __table_args__ = (
        Index("idx_sales_document_lines_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_documents.id"), nullable=False
    )
    document: Mapped[SalesDocumentModel] = relationship(back_populates="lines")


# ---------------------------------------------------------------------------
# 2. InvoicePaymentModel
# ---------------------------------------------------------------------------


class InvoicePaymentModel(TrackedBase):
    """ORM model for a payment received against an invoice."""

    __tablename__ = "invoice_payments"

    __table_args__ = (
        Index("idx_invoice_payments_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_documents.id"), nullable=False
    )
    payment_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_auto: Mapped[bool] = mapped_column(Boolean, default=False)

    def to_dto(self):
        from billing_modules.sales.models import Payment, PaymentMethod

        return Payment(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            payment_date=self.payment_date,
            method=PaymentMethod(self.method),
            reference=self.reference,
            notes=self.notes,
            is_auto=self.is_auto,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "InvoicePaymentModel":
        return cls(
            id=dto.id,
            invoice_id=dto.invoice_id,
            payment_date=dto.payment_date,
            amount=dto.amount,
            method=dto.method.value,
            reference=dto.reference,
            notes=dto.notes,
            is_auto=dto.is_auto,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# 3. CreditNoteModel
# ---------------------------------------------------------------------------


class CreditNoteModel(TrackedBase):
    """ORM model for credit notes."""

    __tablename__ = "credit_notes"

    __table_args__ = (
        UniqueConstraint("credit_note_number", name="uq_credit_notes_number"),
        Index("idx_credit_notes_invoice", "invoice_id"),
    )

    credit_note_number: Mapped[str] = mapped_column(String(50), nullable=False)
    credit_note_date: Mapped[date] = mapped_column(nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sales_documents.id"), nullable=True
    )
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")

    lines: Mapped[list["CreditNoteLineModel"]] = relationship(
        back_populates="credit_note",
        cascade="all, delete-orphan",
        order_by="CreditNoteLineModel.line_number",
    )

    def to_dto(self):
        from billing_modules.sales.models import CreditNote, CreditNoteStatus

        return CreditNote(
            id=self.id,
            credit_note_number=self.credit_note_number,
            credit_note_date=self.credit_note_date,
            customer_id=self.customer_id,
            invoice_id=self.invoice_id,
            lines=tuple(row.to_line() for row in self.lines),
            subtotal=self.subtotal,
            vat_amount=self.vat_amount,
            total_amount=self.total_amount,
            status=CreditNoteStatus(self.status),
            reason=self.reason or "",
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID | None = None) -> "CreditNoteModel":
        return cls(
            id=dto.id,
            credit_note_number=dto.credit_note_number,
            credit_note_date=dto.credit_note_date,
            customer_id=dto.customer_id,
            invoice_id=dto.invoice_id,
            subtotal=dto.subtotal,
            vat_amount=dto.vat_amount,
            total_amount=dto.total_amount,
            status=dto.status.value,
            reason=dto.reason,
            created_by_id=created_by_id,
            lines=[
                CreditNoteLineModel(
                    **CreditNoteLineModel.line_values(line, n), created_by_id=created_by_id
                )
                for n, line in enumerate(dto.lines, start=1)
            ],
        )


class CreditNoteLineModel(LineColumnsMixin, TrackedBase):
    """ORM model for a credit note line."""

    __tablename__ = "credit_note_lines"

    credit_note_id: Mapped[UUID] = mapped_column(
        ForeignKey("credit_notes.id"), nullable=False
    )
    credit_note: Mapped[CreditNoteModel] = relationship(back_populates="lines")
