"""
Payables Module Service (``billing_modules.payables.service``).

Responsibility
--------------
Orchestrates the supplier side of the back office -- recording bills and
supplier payments, splitting a payment across open bills (by hand or
oldest first) and keeping each bill's status in line with what has been
allocated to it.

Architecture position
---------------------
**Modules layer** -- thin glue.  Allocation rules come from
``billing_engines.settlement``; status changes go through
``BILL_WORKFLOW``; rows are written through the sibling ORM models.

Invariants enforced
-------------------
* Each public write owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on any exception).
* Allocating a payment replaces that payment's previous allocations.
* The allocations of one payment never exceed the payment; the
  allocations against one bill never exceed the bill.
* VOID bills accept no allocations and keep their status.

Failure modes
-------------
* ``InvalidPaymentError`` -- bill total or payment amount not > 0.
* ``OverAllocationError`` / ``BillVoidError`` -- from the allocation engine.
* ``DocumentNotFoundError`` -- unknown bill or payment id, or a bill that
  belongs to another supplier.
* ``InvalidTransitionError`` -- voiding a PAID or VOID bill.

Usage::

    service = PayablesService(session, clock=clock)
    bill = service.create_bill("SUP-1", Decimal("500.00"))
    payment = service.record_supplier_payment("SUP-1", Decimal("200.00"))
    service.auto_allocate(payment.id)
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_config import get_active_settings
from billing_config.schema import NumberingSettings
from billing_engines.settlement import (
    Allocation,
    BillBalance,
    BillStatus,
    allocate_payment,
    auto_allocate,
    bill_status_for,
    validate_payment_amount,
)
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.values import ZERO, round_money
from billing_kernel.exceptions import DocumentNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.payables.models import (
    PaymentAllocation,
    SupplierBill,
    SupplierPayment,
)
from billing_modules.payables.orm import (
    PaymentAllocationModel,
    SupplierBillModel,
    SupplierPaymentModel,
)
from billing_modules.payables.workflows import BILL_WORKFLOW, build_machine
from billing_modules.sales.models import PaymentMethod

logger = get_logger("modules.payables.service")

_ALLOCATION_RANK = {
    BillStatus.OPEN: 0,
    BillStatus.PARTIALLY_PAID: 1,
    BillStatus.PAID: 2,
}


class PayablesService:
    """
    Orchestrates supplier bills, supplier payments and allocations.

    Transaction boundary: this service commits on success, rolls back on
    failure.
    """

    def __init__(
        self,
        session: Session,
        numbering: NumberingSettings | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._numbering = numbering or get_active_settings().numbering
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._sequences = SequenceService(session)
        self._machine = build_machine()

    # =========================================================================
    # Queries
    # =========================================================================

    def _bill_model(self, bill_id: UUID) -> SupplierBillModel:
        model = self._session.get(SupplierBillModel, bill_id)
        if model is None:
            raise DocumentNotFoundError(bill_id)
        return model

    def _payment_model(self, payment_id: UUID) -> SupplierPaymentModel:
        model = self._session.get(SupplierPaymentModel, payment_id)
        if model is None:
            raise DocumentNotFoundError(payment_id)
        return model

    def _applied_by_bill(self, bill_ids: Iterable[UUID]) -> dict[UUID, Decimal]:
        ids = list(bill_ids)
        applied: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        if not ids:
            return applied
        rows = self._session.scalars(
            select(PaymentAllocationModel).where(PaymentAllocationModel.bill_id.in_(ids))
        ).all()
        for row in rows:
            applied[row.bill_id] += row.amount_applied
        return applied

    def _allocation_rows(self, payment_id: UUID) -> list[PaymentAllocationModel]:
        return list(
            self._session.scalars(
                select(PaymentAllocationModel).where(
                    PaymentAllocationModel.payment_id == payment_id
                )
            ).all()
        )

    def get_bill(self, bill_id: UUID) -> SupplierBill:
        model = self._bill_model(bill_id)
        return model.to_dto(round_money(self._applied_by_bill([bill_id])[bill_id]))

    def bill_balances(self, supplier_id: str) -> tuple[BillBalance, ...]:
        """Every bill of a supplier with what has been applied to it."""
        models = self._session.scalars(
            select(SupplierBillModel)
            .where(SupplierBillModel.supplier_id == supplier_id)
            .order_by(SupplierBillModel.bill_date, SupplierBillModel.bill_number)
        ).all()
        applied = self._applied_by_bill(m.id for m in models)
        return tuple(
            BillBalance(
                bill_id=m.id,
                bill_date=m.bill_date,
                total_amount=round_money(m.total_amount),
                amount_applied=round_money(applied[m.id]),
                status=BillStatus(m.status),
                bill_number=m.bill_number,
            )
            for m in models
        )

    def list_open_bills(self, supplier_id: str) -> tuple[BillBalance, ...]:
        """Non-VOID bills with something left to pay, oldest first."""
        return tuple(
            b for b in self.bill_balances(supplier_id)
            if b.status is not BillStatus.VOID and b.remaining > ZERO
        )

    def list_allocations(self, payment_id: UUID) -> tuple[PaymentAllocation, ...]:
        return tuple(row.to_dto() for row in self._allocation_rows(payment_id))

    def unallocated_amount(self, payment_id: UUID) -> Decimal:
        payment = self._payment_model(payment_id)
        allocated = sum((row.amount_applied for row in self._allocation_rows(payment_id)), ZERO)
        return max(ZERO, round_money(payment.amount - allocated))

    # =========================================================================
    # Bills
    # =========================================================================

    def create_bill(
        self,
        supplier_id: str,
        total_amount: object,
        bill_date: date | None = None,
        due_date: date | None = None,
        bill_number: str | None = None,
        notes: str = "",
    ) -> SupplierBill:
        """
        Record a supplier bill in status OPEN.

        A bill number is allocated from the ``supplier_bill`` sequence
        when none is given.

        Raises:
            InvalidPaymentError: total_amount is not > 0.
            Exception: re-raised after rollback for unexpected failures.
        """
        total = validate_payment_amount(total_amount)
        try:
            number = bill_number or self._sequences.next_document_number(
                SequenceService.SUPPLIER_BILL,
                self._numbering.bill_prefix,
                self._numbering.padding,
            )
            bill = SupplierBill(
                supplier_id=supplier_id,
                bill_number=number,
                bill_date=bill_date or self._clock.today(),
                due_date=due_date,
                total_amount=total,
                notes=notes,
            )
            self._session.add(SupplierBillModel.from_dto(bill, self._actor_id))
            self._session.commit()
            logger.info("payables_bill_created", extra={
                "bill_id": str(bill.id),
                "bill_number": number,
                "supplier_id": supplier_id,
                "total_amount": str(total),
            })
            return bill
        except Exception:
            self._session.rollback()
            raise

    def void_bill(self, bill_id: UUID) -> SupplierBill:
        """Take an OPEN or PARTIALLY_PAID bill out of allocation."""
        try:
            model = self._bill_model(bill_id)
            target = self._machine.apply(BILL_WORKFLOW, model.status, "void")
            model.status = target
            model.updated_by_id = self._actor_id
            self._session.commit()
            logger.info("payables_bill_voided", extra={
                "bill_id": str(bill_id),
                "bill_number": model.bill_number,
            })
            return self.get_bill(bill_id)
        except Exception:
            self._session.rollback()
            raise

    def _refresh_statuses(self, bill_ids: Iterable[UUID]) -> None:
        ids = set(bill_ids)
        applied = self._applied_by_bill(ids)
        for bill_id in ids:
            model = self._bill_model(bill_id)
            current = BillStatus(model.status)
            status = bill_status_for(model.total_amount, applied[bill_id], current)
            if status is current:
                continue
            action = (
                "settle"
                if _ALLOCATION_RANK[status] > _ALLOCATION_RANK[current]
                else "unsettle"
            )
            model.status = self._machine.apply(
                BILL_WORKFLOW, current, action, {"allocation_status": status}
            )
            model.updated_by_id = self._actor_id

    # =========================================================================
    # Payments and allocation
    # =========================================================================

    def record_supplier_payment(
        self,
        supplier_id: str,
        amount: object,
        payment_date: date | None = None,
        method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        reference: str | None = None,
    ) -> SupplierPayment:
        """Record an unallocated payment to a supplier."""
        value = validate_payment_amount(amount)
        try:
            payment = SupplierPayment(
                supplier_id=supplier_id,
                payment_date=payment_date or self._clock.today(),
                amount=value,
                method=method,
                reference=reference,
            )
            self._session.add(SupplierPaymentModel.from_dto(payment, self._actor_id))
            self._session.commit()
            logger.info("payables_payment_recorded", extra={
                "payment_id": str(payment.id),
                "supplier_id": supplier_id,
                "amount": str(value),
            })
            return payment
        except Exception:
            self._session.rollback()
            raise

    def _replace_allocations(
        self,
        payment_id: UUID,
        existing: list[PaymentAllocationModel],
        allocations: tuple[Allocation, ...],
    ) -> tuple[PaymentAllocation, ...]:
        touched = {row.bill_id for row in existing}
        for row in existing:
            self._session.delete(row)
        # Deletes must reach the database before re-inserting the same pairs.
        self._session.flush()
        for alloc in allocations:
            self._session.add(
                PaymentAllocationModel(
                    payment_id=payment_id,
                    bill_id=alloc.bill_id,
                    amount_applied=alloc.amount_applied,
                    created_by_id=self._actor_id,
                )
            )
            touched.add(alloc.bill_id)
        self._session.flush()
        self._refresh_statuses(touched)
        return tuple(
            PaymentAllocation(payment_id, a.bill_id, a.amount_applied) for a in allocations
        )

    def _existing(self, payment_id: UUID) -> tuple[list[PaymentAllocationModel], dict[UUID, Decimal]]:
        rows = self._allocation_rows(payment_id)
        return rows, {row.bill_id: round_money(row.amount_applied) for row in rows}

    def allocate(
        self,
        payment_id: UUID,
        requested: Mapping[UUID, object],
    ) -> tuple[PaymentAllocation, ...]:
        """
        Split a payment across bills by hand.

        ``requested`` maps bill id to amount; it replaces whatever the
        payment was allocated before.  Amounts <= 0 are dropped.

        Raises:
            OverAllocationError: payment or bill overrun.
            BillVoidError: a requested bill is VOID.
            DocumentNotFoundError: unknown payment, or a bill that is not
                one of the supplier's.
        """
        try:
            payment = self._payment_model(payment_id)
            rows, existing = self._existing(payment_id)
            logger.info("payables_allocate_started", extra={
                "payment_id": str(payment_id),
                "amount": str(payment.amount),
                "bill_count": len(requested),
            })
            allocations = allocate_payment(
                payment.amount,
                self.bill_balances(payment.supplier_id),
                requested,
                existing,
            )
            result = self._replace_allocations(payment_id, rows, allocations)
            self._session.commit()
            logger.info("payables_allocate_committed", extra={
                "payment_id": str(payment_id),
                "allocated": str(sum((a.amount_applied for a in result), ZERO)),
            })
            return result
        except Exception:
            self._session.rollback()
            raise

    def auto_allocate(self, payment_id: UUID) -> tuple[PaymentAllocation, ...]:
        """Spread a payment over the supplier's open bills, oldest first."""
        try:
            payment = self._payment_model(payment_id)
            rows, existing = self._existing(payment_id)
            allocations = auto_allocate(
                payment.amount,
                self.bill_balances(payment.supplier_id),
                existing,
            )
            result = self._replace_allocations(payment_id, rows, allocations)
            self._session.commit()
            logger.info("payables_auto_allocate_committed", extra={
                "payment_id": str(payment_id),
                "bill_count": len(result),
            })
            return result
        except Exception:
            self._session.rollback()
            raise

    def delete_supplier_payment(self, payment_id: UUID) -> SupplierPayment:
        """Remove a payment and its allocations; bills step back as needed."""
        try:
            model = self._payment_model(payment_id)
            payment = model.to_dto()
            self._replace_allocations(payment_id, self._allocation_rows(payment_id), ())
            self._session.delete(model)
            self._session.commit()
            logger.info("payables_payment_deleted", extra={
                "payment_id": str(payment_id),
                "amount": str(payment.amount),
            })
            return payment
        except Exception:
            self._session.rollback()
            raise
