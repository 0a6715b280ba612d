"""
Billing Modules.

Thin orchestration layers over the billing kernel and engines.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- A service facade that owns the write path
- ORM models for the reference SQLAlchemy store

Modules:
- Sales: quotations, invoices, invoice payments, credit notes
- Payables: supplier bills, supplier payments, payment allocation

Actual calculation lives in ``billing_engines``.
"""

from billing_modules import payables, sales

__all__ = [
    "payables",
    "sales",
]
