"""
Payables ORM Models (``billing_modules.payables.orm``).

Responsibility
--------------
SQLAlchemy persistence models for supplier bills, supplier payments and
payment allocations.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``billing_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``billing_kernel``.

Invariants enforced
-------------------
* bill_number is unique.
* One allocation row per (payment, bill) pair.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_engines.settlement import BillStatus
from billing_kernel.db.base import TrackedBase
from billing_modules.payables.models import (
    PaymentAllocation,
    SupplierBill,
    SupplierPayment,
)
from billing_modules.sales.models import PaymentMethod


class SupplierBillModel(TrackedBase):
    """ORM model for a supplier bill."""

    __tablename__ = "supplier_bills"

    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_supplier_bills_number"),
        Index("idx_supplier_bills_supplier_date", "supplier_id", "bill_date"),
    )

    supplier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bill_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="")

    def to_dto(self, amount_applied: Decimal | None = None) -> SupplierBill:
        return SupplierBill(
            id=self.id,
            supplier_id=self.supplier_id,
            bill_number=self.bill_number,
            bill_date=self.bill_date,
            due_date=self.due_date,
            total_amount=self.total_amount,
            status=BillStatus(self.status),
            amount_applied=amount_applied if amount_applied is not None else Decimal("0"),
            notes=self.notes or "",
        )

    @classmethod
    def from_dto(cls, dto: SupplierBill, created_by_id: UUID | None = None) -> "SupplierBillModel":
        return cls(
            id=dto.id,
            supplier_id=dto.supplier_id,
            bill_number=dto.bill_number,
            bill_date=dto.bill_date,
            due_date=dto.due_date,
            total_amount=dto.total_amount,
            status=dto.status.value,
            notes=dto.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<SupplierBillModel {self.bill_number} {self.status}>"


class SupplierPaymentModel(TrackedBase):
    """ORM model for a payment made to a supplier."""

    __tablename__ = "supplier_payments"

    __table_args__ = (
        Index("idx_supplier_payments_supplier", "supplier_id"),
    )

    supplier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self) -> SupplierPayment:
        return SupplierPayment(
            id=self.id,
            supplier_id=self.supplier_id,
            payment_date=self.payment_date,
            amount=self.amount,
            method=PaymentMethod(self.method),
            reference=self.reference,
        )

    @classmethod
    def from_dto(cls, dto: SupplierPayment, created_by_id: UUID | None = None) -> "SupplierPaymentModel":
        return cls(
            id=dto.id,
            supplier_id=dto.supplier_id,
            payment_date=dto.payment_date,
            amount=dto.amount,
            method=dto.method.value,
            reference=dto.reference,
            created_by_id=created_by_id,
        )


class PaymentAllocationModel(TrackedBase):
    """ORM model for the part of a supplier payment applied to one bill."""

    __tablename__ = "supplier_payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "bill_id", name="uq_supplier_allocation_pair"),
        Index("idx_supplier_allocations_bill", "bill_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("supplier_payments.id"), nullable=False
    )
    bill_id: Mapped[UUID] = mapped_column(
        ForeignKey("supplier_bills.id"), nullable=False
    )
    amount_applied: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> PaymentAllocation:
        return PaymentAllocation(
            payment_id=self.payment_id,
            bill_id=self.bill_id,
            amount_applied=self.amount_applied,
        )
