"""
Sales Ports (``billing_modules.sales.ports``).

Responsibility
--------------
Structural protocols for everything the sales module reads from or
writes to the outside world, plus in-memory reference implementations
of the read-side lookups.

    ProductCatalog      get_product(product_id) -> ProductInfo | None
    CustomerDirectory   get_customer(customer_id) -> CustomerInfo | None
    DocumentStore       save(document) -> document_number; load(id)
    ConversionTarget    create_invoice_from_quotation(snapshot) -> ConversionReceipt
    PaymentLedger       invoice payments
    CreditNoteStore     credit notes

``billing_modules.sales.store.SqlDocumentStore`` implements the four
write-side ports on SQLAlchemy.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from billing_kernel.domain.values import ONE, ZERO
from billing_modules.sales.models import CreditNote, Document, Payment


@dataclass(frozen=True)
class ProductInfo:
    product_id: str
    base_price_ex_vat: Decimal
    default_units_per_box: Decimal = ONE
    display_code: str = ""
    display_name: str = ""


@dataclass(frozen=True)
class CustomerInfo:
    customer_id: str
    name: str = ""
    default_discount_percent: Decimal = ZERO
    opening_balance: Decimal = ZERO


@dataclass(frozen=True)
class ConversionReceipt:
    invoice_id: UUID
    invoice_number: str


@runtime_checkable
class ProductCatalog(Protocol):
    def get_product(self, product_id: str) -> ProductInfo | None: ...


@runtime_checkable
class CustomerDirectory(Protocol):
    def get_customer(self, customer_id: str) -> CustomerInfo | None: ...


@runtime_checkable
class DocumentStore(Protocol):
    def save(self, document: Document) -> str:
        """Persist a fully-resolved snapshot; return its document number."""
        ...

    def load(self, document_id: UUID) -> Document: ...


@runtime_checkable
class ConversionTarget(Protocol):
    def create_invoice_from_quotation(self, snapshot: Document) -> ConversionReceipt: ...


@runtime_checkable
class PaymentLedger(Protocol):
    def add_payment(self, payment: Payment) -> Payment: ...

    def delete_payment(self, payment_id: UUID) -> Payment: ...

    def list_payments(self, invoice_id: UUID) -> tuple[Payment, ...]: ...


@runtime_checkable
class CreditNoteStore(Protocol):
    def save_credit_note(self, note: CreditNote) -> str: ...

    def load_credit_note(self, credit_note_id: UUID) -> CreditNote: ...

    def list_credit_notes(self, invoice_id: UUID) -> tuple[CreditNote, ...]: ...


class InMemoryProductCatalog:
    """Dict-backed ProductCatalog."""

    def __init__(self, products: Iterable[ProductInfo] = ()):
        self._products = {p.product_id: p for p in products}

    def add(self, product: ProductInfo) -> None:
        self._products[product.product_id] = product

    def get_product(self, product_id: str) -> ProductInfo | None:
        return self._products.get(product_id)


class InMemoryCustomerDirectory:
    """Dict-backed CustomerDirectory."""

    def __init__(self, customers: Iterable[CustomerInfo] = ()):
        self._customers = {c.customer_id: c for c in customers}

    def add(self, customer: CustomerInfo) -> None:
        self._customers[customer.customer_id] = customer

    def get_customer(self, customer_id: str) -> CustomerInfo | None:
        return self._customers.get(customer_id)
