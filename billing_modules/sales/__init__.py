"""
Sales Module (``billing_modules.sales``).

Responsibility
--------------
The customer side of the back office: quotation and invoice working
copies, the quotation -> invoice conversion, the invoice payment ledger
and credit notes.

Architecture position
---------------------
**Modules layer** -- models, workflows, ports and a service facade that
delegates all calculation to ``billing_engines``.  The SQLAlchemy store
(``billing_modules.sales.store``) and its ORM models are imported
explicitly by callers that persist to a database.

Failure modes
-------------
* Typed ``billing_kernel.exceptions`` errors; see ``SalesService``.
"""

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
    CustomerInfo,
    DocumentStore,
    InMemoryCustomerDirectory,
    InMemoryProductCatalog,
    PaymentLedger,
    ProductCatalog,
    ProductInfo,
)
from billing_modules.sales.service import SalesService, invoice_snapshot
from billing_modules.sales.workflows import (
    CREDIT_NOTE_WORKFLOW,
    INVOICE_WORKFLOW,
    QUOTATION_WORKFLOW,
)

__all__ = [
    "DocumentEditor",
    "CreditNote",
    "CreditNoteStatus",
    "Document",
    "DocumentKind",
    "Payment",
    "PaymentMethod",
    "QuotationStatus",
    "ConversionReceipt",
    "ConversionTarget",
    "CreditNoteStore",
    "CustomerDirectory",
    "CustomerInfo",
    "DocumentStore",
    "InMemoryCustomerDirectory",
    "InMemoryProductCatalog",
    "PaymentLedger",
    "ProductCatalog",
    "ProductInfo",
    "SalesService",
    "invoice_snapshot",
    "CREDIT_NOTE_WORKFLOW",
    "INVOICE_WORKFLOW",
    "QUOTATION_WORKFLOW",
]
