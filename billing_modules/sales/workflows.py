"""
Sales Workflows.

State machines for quotations, invoices and credit notes, declared with
the kernel workflow types and resolved by ``WorkflowMachine``.
"""

from __future__ import annotations

from typing import Any

from billing_engines.settlement import InvoiceStatus
from billing_kernel.domain.workflow import Guard, Transition, Workflow, WorkflowMachine
from billing_kernel.logging_config import get_logger
from billing_modules.sales.models import CreditNoteStatus, QuotationStatus

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

INVOICE_CREATED = Guard(
    name="invoice_created",
    description="The conversion target has created the invoice",
)

FULLY_SETTLED = Guard(
    name="fully_settled",
    description="Payments and credits cover the gross total",
)

PARTIALLY_SETTLED = Guard(
    name="partially_settled",
    description="Something is paid but a balance remains",
)

UNSETTLED = Guard(
    name="unsettled",
    description="Nothing is paid",
)


def _get(context: Any, key: str) -> Any:
    if context is None:
        return None
    if isinstance(context, dict):
        return context.get(key)
    return getattr(context, key, None)


def _settled_as(target: InvoiceStatus):
    def evaluate(context: Any) -> bool:
        status = _get(context, "settlement_status")
        return getattr(status, "value", status) == target.value
    return evaluate


GUARD_EVALUATORS = {
    INVOICE_CREATED.name: lambda ctx: bool(_get(ctx, "invoice_id")),
    FULLY_SETTLED.name: _settled_as(InvoiceStatus.PAID),
    PARTIALLY_SETTLED.name: _settled_as(InvoiceStatus.PARTIALLY_PAID),
    UNSETTLED.name: _settled_as(InvoiceStatus.ISSUED),
}


def build_machine() -> WorkflowMachine:
    """Workflow machine wired with the sales guard evaluators."""
    return WorkflowMachine(GUARD_EVALUATORS)


# -----------------------------------------------------------------------------
# Quotation Workflow
# -----------------------------------------------------------------------------

_Q = QuotationStatus

QUOTATION_WORKFLOW = Workflow(
    name="quotation",
    description="Quotation lifecycle",
    initial_state=_Q.DRAFT.value,
    states=tuple(s.value for s in _Q),
    transitions=(
        Transition(_Q.DRAFT.value, _Q.SENT.value, action="send"),
        Transition(_Q.SENT.value, _Q.ACCEPTED.value, action="accept"),
        Transition(_Q.SENT.value, _Q.REJECTED.value, action="reject"),
        Transition(_Q.DRAFT.value, _Q.CANCELLED.value, action="cancel"),
        Transition(_Q.SENT.value, _Q.CANCELLED.value, action="cancel"),
        Transition(_Q.ACCEPTED.value, _Q.CANCELLED.value, action="cancel"),
        # Only the conversion operation supplies an invoice id.
        Transition(_Q.DRAFT.value, _Q.CONVERTED.value, action="convert", guard=INVOICE_CREATED),
        Transition(_Q.SENT.value, _Q.CONVERTED.value, action="convert", guard=INVOICE_CREATED),
        Transition(_Q.ACCEPTED.value, _Q.CONVERTED.value, action="convert", guard=INVOICE_CREATED),
    ),
    terminal_states=(_Q.REJECTED.value, _Q.CANCELLED.value, _Q.CONVERTED.value),
)

logger.info(
    "quotation_workflow_registered",
    extra={
        "workflow_name": QUOTATION_WORKFLOW.name,
        "state_count": len(QUOTATION_WORKFLOW.states),
        "transition_count": len(QUOTATION_WORKFLOW.transitions),
        "initial_state": QUOTATION_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

_I = InvoiceStatus

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Customer invoice lifecycle",
    initial_state=_I.ISSUED.value,
    states=tuple(s.value for s in _I),
    transitions=(
        Transition(_I.ISSUED.value, _I.PARTIALLY_PAID.value, action="apply_payment", guard=PARTIALLY_SETTLED),
        Transition(_I.ISSUED.value, _I.PAID.value, action="apply_payment", guard=FULLY_SETTLED),
        Transition(_I.PARTIALLY_PAID.value, _I.PAID.value, action="apply_payment", guard=FULLY_SETTLED),
        Transition(_I.PAID.value, _I.PARTIALLY_PAID.value, action="remove_payment", guard=PARTIALLY_SETTLED),
        Transition(_I.PAID.value, _I.ISSUED.value, action="remove_payment", guard=UNSETTLED),
        Transition(_I.PARTIALLY_PAID.value, _I.ISSUED.value, action="remove_payment", guard=UNSETTLED),
        Transition(_I.ISSUED.value, _I.VOID.value, action="void"),
        Transition(_I.PARTIALLY_PAID.value, _I.VOID.value, action="void"),
    ),
    terminal_states=(_I.VOID.value,),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Credit Note Workflow
# -----------------------------------------------------------------------------

_C = CreditNoteStatus

CREDIT_NOTE_WORKFLOW = Workflow(
    name="credit_note",
    description="Credit note lifecycle",
    initial_state=_C.ISSUED.value,
    states=tuple(s.value for s in _C),
    transitions=(
        Transition(_C.ISSUED.value, _C.PENDING.value, action="mark_pending"),
        Transition(_C.PENDING.value, _C.ISSUED.value, action="mark_issued"),
        Transition(_C.ISSUED.value, _C.REFUNDED.value, action="refund"),
        Transition(_C.PENDING.value, _C.REFUNDED.value, action="refund"),
        Transition(_C.ISSUED.value, _C.VOID.value, action="void"),
        Transition(_C.PENDING.value, _C.VOID.value, action="void"),
        Transition(_C.REFUNDED.value, _C.ISSUED.value, action="restore"),
        Transition(_C.VOID.value, _C.ISSUED.value, action="restore"),
    ),
)

logger.info(
    "credit_note_workflow_registered",
    extra={
        "workflow_name": CREDIT_NOTE_WORKFLOW.name,
        "state_count": len(CREDIT_NOTE_WORKFLOW.states),
        "transition_count": len(CREDIT_NOTE_WORKFLOW.transitions),
        "initial_state": CREDIT_NOTE_WORKFLOW.initial_state,
    },
)
