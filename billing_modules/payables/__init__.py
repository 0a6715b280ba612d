"""
Payables Module (``billing_modules.payables``).

Responsibility
--------------
The supplier side of the back office: supplier bills, supplier payments
and the allocation of payments across open bills.

Architecture position
---------------------
**Modules layer** -- models, workflow and a service facade over the
allocation rules in ``billing_engines.settlement``.
"""

from billing_modules.payables.models import (
    PaymentAllocation,
    SupplierBill,
    SupplierPayment,
)
from billing_modules.payables.workflows import BILL_WORKFLOW

__all__ = [
    "PaymentAllocation",
    "SupplierBill",
    "SupplierPayment",
    "BILL_WORKFLOW",
]
