"""
Sales Module Service (``billing_modules.sales.service``).

Responsibility
--------------
Orchestrates the customer side of the back office -- opening and saving
quotation / invoice working copies, quotation status changes,
quotation -> invoice conversion, the invoice payment ledger and credit
notes -- by delegating calculation to ``billing_engines`` and
persistence to the sales ports.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``SalesService`` is the sole public
entry point for sales writes.  It composes ``DocumentEditor`` working
copies, the sales workflows (through ``WorkflowMachine``) and the
``DocumentStore`` / ``ConversionTarget`` / ``PaymentLedger`` /
``CreditNoteStore`` ports.

Invariants enforced
-------------------
* Save, conversion and payment recording are non-idempotent: at most one
  may be outstanding per document.  A second call raises
  ``OperationInProgressError``; nothing is queued or retried.
* A quotation is marked CONVERTED only after the conversion target has
  returned a receipt.  A failed conversion leaves its status unchanged.
* Every status change goes through the workflow machine (no bypass).
* Invoice ``amount_paid`` is recomputed from the payment ledger plus the
  ISSUED credit notes linked to the invoice after every ledger change.

Failure modes
-------------
* ``ConversionFailureError`` -- ALREADY_CONVERTED, QUOTATION_NOT_CONVERTIBLE
  or CONVERSION_TARGET_FAILED.
* ``InvalidTransitionError`` -- action not allowed from the current state.
* ``InvalidPaymentError`` -- payment amount <= 0.
* ``DocumentLockedError`` -- save of a CONVERTED quotation or VOID invoice.
* ``DocumentNotFoundError`` / ``PersistenceError`` -- from the ports.

Usage::

    store = SqlDocumentStore(session)
    service = SalesService(store, catalog=catalog, customers=customers)
    editor = service.new_quotation(customer_id="C-1")
    line_id = editor.document.lines[0].id
    editor.bind_product(line_id, "P-100")
    editor.set_quantity(line_id, 5)
    quotation = service.save_document(editor)
    receipt = service.convert_quotation(quotation.id)
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from billing_config import get_active_settings
from billing_config.schema import BillingSettings
from billing_engines.balance import edit_amount_paid
from billing_engines.line_pricing import LineItem, reprice
from billing_engines.settlement import (
    InvoiceSettlement,
    InvoiceStatus,
    settle_invoice,
    validate_payment_amount,
)
from billing_engines.totals import compute_totals
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.values import ZERO, round_money
from billing_kernel.exceptions import (
    ConversionFailureError,
    DocumentLockedError,
    DocumentNotFoundError,
    InvalidTransitionError,
    OperationInProgressError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_modules.sales.editor import DocumentEditor
from billing_modules.sales.models import (
    CreditNote,
    CreditNoteStatus,
    Document,
    DocumentKind,
    Payment,
    PaymentMethod,
    QuotationStatus,
)
from billing_modules.sales.ports import (
    ConversionReceipt,
    ConversionTarget,
    CreditNoteStore,
    CustomerDirectory,
    DocumentStore,
    PaymentLedger,
    ProductCatalog,
)
from billing_modules.sales.workflows import (
    CREDIT_NOTE_WORKFLOW,
    INVOICE_WORKFLOW,
    QUOTATION_WORKFLOW,
    build_machine,
)

logger = get_logger("modules.sales.service")

# Ordering used to pick apply_payment vs remove_payment.
_SETTLEMENT_RANK = {
    InvoiceStatus.ISSUED: 0,
    InvoiceStatus.PARTIALLY_PAID: 1,
    InvoiceStatus.PAID: 2,
}

AUTO_PAID_REFERENCE = "AUTO-PAID"
AUTO_PARTIAL_REFERENCE = "AUTO-PARTIAL"


def invoice_snapshot(
    quotation: Document,
    invoice_date: date,
    invoice_id: UUID | None = None,
) -> Document:
    """Unresolved invoice copy of a quotation.

    Lines get new ids and placeholder lines are dropped.  Derived fields
    are filled in by running the copy through a ``DocumentEditor``.
    """
    return Document(
        kind=DocumentKind.INVOICE,
        id=invoice_id or uuid4(),
        date_issued=invoice_date,
        customer_id=quotation.customer_id,
        lines=tuple(replace(line, id=uuid4()) for line in quotation.real_lines),
        vat_percent_default=quotation.vat_percent_default,
        discount_percent=quotation.discount_percent,
        status=InvoiceStatus.ISSUED,
        notes=quotation.notes,
        source_quotation_id=quotation.id,
    )


class SalesService:
    """
    Orchestrates quotation, invoice and credit note operations.

    Contract:
        Every public write either completes through the ports or raises;
        the working copies held by callers are never mutated here except
        for ``mark_saved`` after a successful save.
    Concurrency:
        Single-threaded.  The busy set only rejects re-entrant calls (a
        port calling back into the service mid-write); no locking.
    Non-goals:
        Does not retry failed writes and does not queue concurrent ones.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        catalog: ProductCatalog | None = None,
        customers: CustomerDirectory | None = None,
        conversion_target: ConversionTarget | None = None,
        payments: PaymentLedger | None = None,
        credit_notes: CreditNoteStore | None = None,
        settings: BillingSettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._customers = customers
        self._target = conversion_target if conversion_target is not None else store
        self._payments = payments if payments is not None else store
        self._credit_notes = credit_notes if credit_notes is not None else store
        self._settings = settings or get_active_settings()
        self._clock = clock or SystemClock()
        self._machine = build_machine()
        self._busy: set[UUID] = set()

    # =========================================================================
    # Busy flag
    # =========================================================================

    @contextmanager
    def _exclusive(self, document_id: UUID, operation: str) -> Iterator[None]:
        if document_id in self._busy:
            logger.warning(
                "sales_operation_rejected_busy",
                extra={"document_id": str(document_id), "operation": operation},
            )
            raise OperationInProgressError(document_id, operation)
        self._busy.add(document_id)
        try:
            with LogContext.bind(document_id=str(document_id), operation=operation):
                yield
        finally:
            self._busy.discard(document_id)

    def is_busy(self, document_id: UUID) -> bool:
        return document_id in self._busy

    # =========================================================================
    # Working copies
    # =========================================================================

    def _editor_options(self) -> dict:
        pricing = self._settings.pricing
        return {
            "catalog": self._catalog,
            "customers": self._customers,
            "default_kg_per_bag": pricing.default_kg_per_bag,
            "balance_tolerance": pricing.balance_tolerance,
        }

    def _new_editor(
        self,
        kind: DocumentKind,
        customer_id: str | None,
        valid_until: date | None = None,
    ) -> DocumentEditor:
        editor = DocumentEditor.new(
            kind,
            date_issued=self._clock.today(),
            vat_percent_default=self._settings.pricing.default_vat_percent,
            valid_until=valid_until,
            **self._editor_options(),
        )
        if customer_id is not None:
            editor.select_customer(customer_id)
        return editor

    def new_quotation(
        self,
        customer_id: str | None = None,
        valid_until: date | None = None,
    ) -> DocumentEditor:
        """Blank DRAFT quotation dated today."""
        return self._new_editor(DocumentKind.QUOTATION, customer_id, valid_until)

    def new_invoice(self, customer_id: str | None = None) -> DocumentEditor:
        """Blank ISSUED invoice dated today."""
        return self._new_editor(DocumentKind.INVOICE, customer_id)

    def open_document(self, document_id: UUID) -> DocumentEditor:
        """Working copy of a saved document.

        The stored discount and previous balance count as operator-set, so
        re-selecting the customer does not overwrite them.
        """
        document = self._store.load(document_id)
        return DocumentEditor(
            document,
            discount_touched=True,
            balance_touched=True,
            **self._editor_options(),
        )

    def _stored_lifecycle(self, snapshot: Document) -> dict:
        """Lifecycle fields of the stored row; the editor never writes these.

        Status, conversion links and applied credits only change through
        the workflow operations of this service.
        """
        try:
            stored = self._store.load(snapshot.id)
        except DocumentNotFoundError:
            stored = None
        if stored is None:
            if snapshot.is_locked:
                raise DocumentLockedError(snapshot.id, snapshot.status.value)
            return {}
        if stored.is_locked:
            logger.warning("sales_save_rejected_locked", extra={
                "document_id": str(snapshot.id),
                "status": stored.status.value,
            })
            raise DocumentLockedError(snapshot.id, stored.status.value)
        return {
            "status": stored.status,
            "converted_invoice_id": stored.converted_invoice_id,
            "converted_at": stored.converted_at,
            "source_quotation_id": stored.source_quotation_id,
            "credits_applied": stored.credits_applied,
        }

    def save_document(self, editor: DocumentEditor) -> Document:
        """Persist the editor's fully-resolved snapshot.

        The stored status and conversion fields win over the editor's, so
        saving a working copy opened before a status change cannot undo it.

        Raises:
            DocumentLockedError: the stored document is a CONVERTED
                quotation or a VOID invoice.
            OperationInProgressError: a save or conversion for this
                document is still outstanding.
            PersistenceError: the store could not write the snapshot.
        """
        document_id = editor.document_id
        with self._exclusive(document_id, "save"):
            snapshot = editor.snapshot()
            lifecycle = self._stored_lifecycle(snapshot)
            snapshot = replace(snapshot, **lifecycle)
            logger.info("sales_save_document_started", extra={
                "document_id": str(document_id),
                "kind": snapshot.kind.value,
                "line_count": len(snapshot.real_lines),
                "total_amount": str(snapshot.total_amount),
            })
            number = self._store.save(snapshot)
            saved = editor.mark_saved(number, **lifecycle)
            if saved.kind is DocumentKind.INVOICE:
                saved = self._match_ledger(saved)
            logger.info("sales_save_document_committed", extra={
                "document_id": str(document_id),
                "document_number": number,
                "status": saved.status.value,
            })
            return saved

    def load_document(self, document_id: UUID) -> Document:
        return self._store.load(document_id)

    # =========================================================================
    # Quotations
    # =========================================================================

    def update_quotation_status(self, quotation_id: UUID, action: str) -> Document:
        """Apply ``send``, ``accept``, ``reject`` or ``cancel``.

        ``convert`` is only reachable through ``convert_quotation``.
        """
        quotation = self._store.load(quotation_id)
        if quotation.kind is not DocumentKind.QUOTATION:
            raise InvalidTransitionError(QUOTATION_WORKFLOW.name, quotation.status.value, action)

        with self._exclusive(quotation_id, "save"):
            target = self._machine.apply(QUOTATION_WORKFLOW, quotation.status, action)
            updated = replace(quotation, status=QuotationStatus(target))
            self._store.save(updated)
            logger.info("sales_quotation_status_committed", extra={
                "document_id": str(quotation_id),
                "from_status": quotation.status.value,
                "to_status": target,
            })
            return updated

    def convert_quotation(self, quotation_id: UUID) -> ConversionReceipt:
        """
        Create an invoice from a quotation and mark the quotation CONVERTED.

        Preconditions:
            - The quotation is DRAFT, SENT or ACCEPTED and has at least
              one real line.
        Postconditions:
            - On success: the invoice exists, the quotation is CONVERTED
              with ``converted_invoice_id`` and ``converted_at`` set.
            - On failure: the quotation is unchanged.
        Raises:
            ConversionFailureError: see ``reason_code``.
            OperationInProgressError: a save or conversion is outstanding.
        """
        with self._exclusive(quotation_id, "convert"):
            quotation = self._store.load(quotation_id)
            self._check_convertible(quotation)

            logger.info("sales_convert_quotation_started", extra={
                "quotation_id": str(quotation_id),
                "status": quotation.status.value,
                "line_count": len(quotation.real_lines),
            })

            draft = invoice_snapshot(quotation, quotation.date_issued or self._clock.today())
            resolved = DocumentEditor(
                draft,
                default_kg_per_bag=self._settings.pricing.default_kg_per_bag,
                balance_tolerance=self._settings.pricing.balance_tolerance,
            ).snapshot()

            try:
                receipt = self._target.create_invoice_from_quotation(resolved)
            except Exception as exc:
                logger.error(
                    "sales_convert_quotation_failed",
                    extra={"quotation_id": str(quotation_id)},
                    exc_info=True,
                )
                raise ConversionFailureError(
                    quotation_id,
                    ConversionFailureError.TARGET_FAILED,
                    str(exc) or type(exc).__name__,
                ) from exc

            target = self._machine.apply(
                QUOTATION_WORKFLOW,
                quotation.status,
                "convert",
                {"invoice_id": receipt.invoice_id},
            )
            self._store.save(
                replace(
                    quotation,
                    status=QuotationStatus(target),
                    converted_invoice_id=receipt.invoice_id,
                    converted_at=self._clock.now(),
                )
            )
            logger.info("sales_convert_quotation_committed", extra={
                "quotation_id": str(quotation_id),
                "invoice_id": str(receipt.invoice_id),
                "invoice_number": receipt.invoice_number,
            })
            return receipt

    def _check_convertible(self, quotation: Document) -> None:
        qid = quotation.id
        if quotation.kind is not DocumentKind.QUOTATION:
            raise ConversionFailureError(
                qid, ConversionFailureError.NOT_CONVERTIBLE, "document is not a quotation"
            )
        if quotation.status is QuotationStatus.CONVERTED:
            raise ConversionFailureError(
                qid,
                ConversionFailureError.ALREADY_CONVERTED,
                f"already converted to invoice {quotation.converted_invoice_id}",
            )
        if QUOTATION_WORKFLOW.is_terminal(quotation.status.value):
            raise ConversionFailureError(
                qid,
                ConversionFailureError.NOT_CONVERTIBLE,
                f"quotation is {quotation.status.value}",
            )
        if not quotation.real_lines:
            raise ConversionFailureError(
                qid, ConversionFailureError.NOT_CONVERTIBLE, "quotation has no items"
            )

    # =========================================================================
    # Invoices and payments
    # =========================================================================

    def _load_invoice(self, invoice_id: UUID, action: str) -> Document:
        invoice = self._store.load(invoice_id)
        if invoice.kind is not DocumentKind.INVOICE:
            raise InvalidTransitionError(INVOICE_WORKFLOW.name, invoice.status.value, action)
        return invoice

    def _settlement(self, invoice: Document) -> InvoiceSettlement:
        payments = self._payments.list_payments(invoice.id)
        credits = [
            note.total_amount
            for note in self._credit_notes.list_credit_notes(invoice.id)
            if note.reduces_balance
        ]
        return settle_invoice(
            invoice.gross_total,
            [p.amount for p in payments],
            credits,
            current=invoice.status,
        )

    def _transition(self, invoice: Document, status: InvoiceStatus) -> InvoiceStatus:
        current = InvoiceStatus(invoice.status.value)
        if status is current or current is InvoiceStatus.VOID:
            return current
        action = (
            "apply_payment"
            if _SETTLEMENT_RANK[status] > _SETTLEMENT_RANK[current]
            else "remove_payment"
        )
        target = self._machine.apply(
            INVOICE_WORKFLOW, current, action, {"settlement_status": status}
        )
        return InvoiceStatus(target)

    def _sync_invoice(self, invoice: Document) -> Document:
        """Recompute paid / remaining / status from the ledger and save."""
        settlement = self._settlement(invoice)
        state = edit_amount_paid(invoice.balance_state, settlement.amount_settled)
        synced = replace(
            invoice,
            amount_paid=state.amount_paid,
            balance_remaining=state.balance_remaining,
            balance_authority=state.authority,
            credits_applied=min(settlement.credits_applied, state.amount_paid),
            status=self._transition(invoice, settlement.status),
        )
        self._store.save(synced)
        logger.info("sales_invoice_synced", extra={
            "invoice_id": str(invoice.id),
            "amount_paid": str(synced.amount_paid),
            "credits_applied": str(synced.credits_applied),
            "balance_remaining": str(synced.balance_remaining),
            "status": synced.status.value,
        })
        return synced

    def _add_auto_payment(self, invoice: Document, amount: Decimal, reference: str) -> None:
        self._payments.add_payment(
            Payment(
                invoice_id=invoice.id,
                amount=amount,
                payment_date=self._clock.today(),
                method=PaymentMethod.OTHER,
                reference=reference,
                notes=f"Auto payment inserted to match invoice {invoice.document_number}",
                is_auto=True,
            )
        )
        logger.info("sales_auto_payment_inserted", extra={
            "invoice_id": str(invoice.id),
            "amount": str(amount),
            "reference": reference,
        })

    def _match_ledger(self, invoice: Document) -> Document:
        """Top the ledger up to a hand-entered amount paid, then sync."""
        if invoice.status is InvoiceStatus.VOID:
            return invoice
        settlement = self._settlement(invoice)
        delta = round_money(invoice.amount_paid - settlement.amount_settled)
        if delta > ZERO:
            reference = (
                AUTO_PAID_REFERENCE
                if invoice.balance_remaining <= ZERO
                else AUTO_PARTIAL_REFERENCE
            )
            self._add_auto_payment(invoice, delta, reference)
        elif delta < ZERO:
            logger.warning("sales_amount_paid_below_ledger", extra={
                "invoice_id": str(invoice.id),
                "amount_paid": str(invoice.amount_paid),
                "ledger_amount": str(settlement.amount_settled),
            })
        return self._sync_invoice(invoice)

    def record_payment(
        self,
        invoice_id: UUID,
        amount: object,
        payment_date: date | None = None,
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        """
        Record a payment against an invoice and re-derive its status.

        Raises:
            InvalidPaymentError: amount <= 0 after 2dp rounding.
            InvalidTransitionError: the invoice is VOID.
        """
        value = validate_payment_amount(amount)
        with self._exclusive(invoice_id, "record_payment"):
            invoice = self._load_invoice(invoice_id, "apply_payment")
            if invoice.status is InvoiceStatus.VOID:
                raise InvalidTransitionError(
                    INVOICE_WORKFLOW.name, InvoiceStatus.VOID.value, "apply_payment"
                )
            logger.info("sales_record_payment_started", extra={
                "invoice_id": str(invoice_id),
                "amount": str(value),
                "method": method.value,
            })
            payment = self._payments.add_payment(
                Payment(
                    invoice_id=invoice_id,
                    amount=value,
                    payment_date=payment_date or self._clock.today(),
                    method=method,
                    reference=reference,
                    notes=notes,
                )
            )
            synced = self._sync_invoice(invoice)
            logger.info("sales_record_payment_committed", extra={
                "invoice_id": str(invoice_id),
                "payment_id": str(payment.id),
                "status": synced.status.value,
            })
            return payment

    def delete_payment(self, payment_id: UUID) -> Document:
        """Remove a payment; the invoice may step back to PARTIALLY_PAID or ISSUED."""
        payment = self._payments.delete_payment(payment_id)
        invoice = self._load_invoice(payment.invoice_id, "remove_payment")
        logger.info("sales_payment_deleted", extra={
            "invoice_id": str(payment.invoice_id),
            "payment_id": str(payment_id),
            "amount": str(payment.amount),
        })
        return self._sync_invoice(invoice)

    def list_payments(self, invoice_id: UUID) -> tuple[Payment, ...]:
        return self._payments.list_payments(invoice_id)

    def mark_invoice_paid(self, invoice_id: UUID) -> Document:
        """Insert an auto payment for whatever is still due, making it PAID."""
        with self._exclusive(invoice_id, "record_payment"):
            invoice = self._load_invoice(invoice_id, "apply_payment")
            if invoice.status is InvoiceStatus.VOID:
                raise InvalidTransitionError(
                    INVOICE_WORKFLOW.name, InvoiceStatus.VOID.value, "apply_payment"
                )
            due = self._settlement(invoice).balance_remaining
            if due > ZERO:
                self._add_auto_payment(invoice, due, AUTO_PAID_REFERENCE)
            return self._sync_invoice(invoice)

    def void_invoice(self, invoice_id: UUID) -> Document:
        invoice = self._load_invoice(invoice_id, "void")
        target = self._machine.apply(INVOICE_WORKFLOW, invoice.status, "void")
        voided = replace(invoice, status=InvoiceStatus(target))
        self._store.save(voided)
        logger.info("sales_invoice_voided", extra={
            "invoice_id": str(invoice_id),
            "from_status": invoice.status.value,
        })
        return voided

    # =========================================================================
    # Credit notes
    # =========================================================================

    def issue_credit_note(
        self,
        customer_id: str | None,
        lines: Iterable[LineItem],
        invoice_id: UUID | None = None,
        credit_note_date: date | None = None,
        reason: str = "",
    ) -> CreditNote:
        """
        Issue a credit note, optionally against an invoice.

        Lines are repriced under new ids; placeholder lines are dropped.
        An ISSUED credit note linked to an invoice reduces its balance.
        """
        priced = tuple(
            reprice(replace(line, id=uuid4())) for line in lines if not line.is_placeholder
        )
        totals = compute_totals(priced)
        invoice = None
        if invoice_id is not None:
            invoice = self._load_invoice(invoice_id, "apply_payment")

        note = CreditNote(
            customer_id=customer_id if customer_id is not None else (
                invoice.customer_id if invoice else None
            ),
            credit_note_date=credit_note_date or self._clock.today(),
            invoice_id=invoice_id,
            lines=priced,
            subtotal=totals.subtotal,
            vat_amount=totals.vat_amount,
            total_amount=totals.total_amount,
            reason=reason,
        )
        number = self._credit_notes.save_credit_note(note)
        note = replace(note, credit_note_number=number)
        logger.info("sales_credit_note_issued", extra={
            "credit_note_id": str(note.id),
            "credit_note_number": number,
            "invoice_id": str(invoice_id) if invoice_id else None,
            "total_amount": str(note.total_amount),
        })
        if invoice is not None:
            self._sync_invoice(invoice)
        return note

    def update_credit_note_status(self, credit_note_id: UUID, action: str) -> CreditNote:
        """Apply ``mark_pending``, ``mark_issued``, ``refund``, ``void`` or ``restore``."""
        note = self._credit_notes.load_credit_note(credit_note_id)
        target = self._machine.apply(CREDIT_NOTE_WORKFLOW, note.status, action)
        updated = replace(note, status=CreditNoteStatus(target))
        self._credit_notes.save_credit_note(updated)
        logger.info("sales_credit_note_status_committed", extra={
            "credit_note_id": str(credit_note_id),
            "from_status": note.status.value,
            "to_status": target,
        })
        if note.invoice_id is not None:
            self._sync_invoice(self._store.load(note.invoice_id))
        return updated
