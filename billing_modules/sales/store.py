"""
SqlDocumentStore -- SQLAlchemy implementation of the sales write ports.

Responsibility:
    Persists fully-resolved document snapshots, invoice payments and
    credit notes, and allocates document numbers from the kernel
    ``SequenceService`` on first save.  Also serves as the
    ``ConversionTarget`` for quotation -> invoice conversion.

Architecture position:
    Modules layer -- persistence adapter.  Owns the transaction boundary
    for each port call: commits on success, rolls back on failure.

Invariants enforced:
    - A document number is allocated once and never changes.
    - Derived fields are written exactly as the snapshot carries them.

Failure modes:
    - ``PersistenceError`` wrapping any ``SQLAlchemyError``; the session
      is rolled back first.
    - ``DocumentNotFoundError`` for unknown document / payment / credit
      note ids.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_config import get_active_settings
from billing_config.schema import NumberingSettings
from billing_kernel.exceptions import DocumentNotFoundError, PersistenceError
from billing_kernel.logging_config import get_logger
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.sales.models import CreditNote, Document, DocumentKind, Payment
from billing_modules.sales.orm import (
    CreditNoteModel,
    InvoicePaymentModel,
    SalesDocumentModel,
)
from billing_modules.sales.ports import ConversionReceipt

logger = get_logger("modules.sales.store")


class SqlDocumentStore:
    """
    DocumentStore, ConversionTarget, PaymentLedger and CreditNoteStore
    over one SQLAlchemy session.
    """

    def __init__(
        self,
        session: Session,
        numbering: NumberingSettings | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._numbering = numbering or get_active_settings().numbering
        self._actor_id = actor_id
        self._sequences = SequenceService(session)

    def _next_number(self, kind: DocumentKind) -> str:
        if kind is DocumentKind.QUOTATION:
            name, prefix = SequenceService.QUOTATION, self._numbering.quotation_prefix
        else:
            name, prefix = SequenceService.INVOICE, self._numbering.invoice_prefix
        return self._sequences.next_document_number(name, prefix, self._numbering.padding)

    def _fail(self, document_id: object, operation: str, exc: SQLAlchemyError) -> PersistenceError:
        self._session.rollback()
        logger.error(
            "sales_store_write_failed",
            extra={"document_id": str(document_id), "operation": operation},
            exc_info=True,
        )
        return PersistenceError(document_id, f"{operation}: {exc}")

    # =========================================================================
    # DocumentStore
    # =========================================================================

    def save(self, document: Document) -> str:
        try:
            model = self._session.get(SalesDocumentModel, document.id)
            number = document.document_number or (model.document_number if model else None)
            if number is None:
                number = self._next_number(document.kind)
            dto = replace(document, document_number=number)
            if model is None:
                self._session.add(SalesDocumentModel.from_dto(dto, self._actor_id))
            else:
                model.apply_dto(dto, self._actor_id)
            self._session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(document.id, "save", exc) from exc

        logger.info(
            "document_saved",
            extra={
                "document_id": str(document.id),
                "kind": document.kind.value,
                "document_number": number,
                "status": document.status.value,
                "total_amount": str(document.total_amount),
            },
        )
        return number

    def load(self, document_id: UUID) -> Document:
        model = self._session.get(SalesDocumentModel, document_id)
        if model is None:
            raise DocumentNotFoundError(document_id)
        return model.to_dto()

    def list_documents(self, kind: DocumentKind) -> tuple[Document, ...]:
        rows = self._session.scalars(
            select(SalesDocumentModel)
            .where(SalesDocumentModel.kind == kind.value)
            .order_by(SalesDocumentModel.document_number)
        ).all()
        return tuple(row.to_dto() for row in rows)

    # =========================================================================
    # ConversionTarget
    # =========================================================================

    def create_invoice_from_quotation(self, snapshot: Document) -> ConversionReceipt:
        if snapshot.kind is not DocumentKind.INVOICE:
            raise ValueError(f"Conversion snapshot must be an invoice, got {snapshot.kind.value}")
        number = self.save(snapshot)
        return ConversionReceipt(invoice_id=snapshot.id, invoice_number=number)

    # =========================================================================
    # PaymentLedger
    # =========================================================================

    def add_payment(self, payment: Payment) -> Payment:
        try:
            self._session.add(InvoicePaymentModel.from_dto(payment, self._actor_id))
            self._session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(payment.invoice_id, "add_payment", exc) from exc
        return payment

    def delete_payment(self, payment_id: UUID) -> Payment:
        model = self._session.get(InvoicePaymentModel, payment_id)
        if model is None:
            raise DocumentNotFoundError(payment_id)
        payment = model.to_dto()
        try:
            self._session.delete(model)
            self._session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(payment.invoice_id, "delete_payment", exc) from exc
        return payment

    def list_payments(self, invoice_id: UUID) -> tuple[Payment, ...]:
        rows = self._session.scalars(
            select(InvoicePaymentModel)
            .where(InvoicePaymentModel.invoice_id == invoice_id)
            .order_by(InvoicePaymentModel.payment_date, InvoicePaymentModel.created_at)
        ).all()
        return tuple(row.to_dto() for row in rows)

    # =========================================================================
    # CreditNoteStore
    # =========================================================================

    def save_credit_note(self, note: CreditNote) -> str:
        """Insert a new credit note, or update the status of an existing one."""
        try:
            model = self._session.get(CreditNoteModel, note.id)
            if model is None:
                number = note.credit_note_number or self._sequences.next_document_number(
                    SequenceService.CREDIT_NOTE,
                    self._numbering.credit_note_prefix,
                    self._numbering.padding,
                )
                self._session.add(
                    CreditNoteModel.from_dto(
                        replace(note, credit_note_number=number), self._actor_id
                    )
                )
            else:
                number = model.credit_note_number
                model.status = note.status.value
                model.updated_by_id = self._actor_id
            self._session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(note.id, "save_credit_note", exc) from exc
        return number

    def load_credit_note(self, credit_note_id: UUID) -> CreditNote:
        model = self._session.get(CreditNoteModel, credit_note_id)
        if model is None:
            raise DocumentNotFoundError(credit_note_id)
        return model.to_dto()

    def list_credit_notes(self, invoice_id: UUID) -> tuple[CreditNote, ...]:
        rows = self._session.scalars(
            select(CreditNoteModel)
            .where(CreditNoteModel.invoice_id == invoice_id)
            .order_by(CreditNoteModel.credit_note_number)
        ).all()
        return tuple(row.to_dto() for row in rows)
