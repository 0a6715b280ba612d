"""
Payables Workflows (``billing_modules.payables.workflows``).

Responsibility
--------------
Declares the supplier bill lifecycle.  Bill status is payment-driven:
``settle`` moves forward and ``unsettle`` moves back as allocations are
added or removed, with guards picking the target from the allocation
status the service computed.  ``void`` takes an unpaid or partially
paid bill out of allocation for good.

Audit relevance
---------------
Workflow definitions are logged at module-load time with state and
transition counts.
"""

from __future__ import annotations

from typing import Any

from billing_engines.settlement import BillStatus
from billing_kernel.domain.workflow import Guard, Transition, Workflow, WorkflowMachine
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.payables.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

FULLY_ALLOCATED = Guard(
    name="fully_allocated",
    description="Allocations cover the bill total",
)

PARTIALLY_ALLOCATED = Guard(
    name="partially_allocated",
    description="Something is allocated but a balance remains",
)

UNALLOCATED = Guard(
    name="unallocated",
    description="Nothing is allocated to the bill",
)


def _allocated_as(target: BillStatus):
    def evaluate(context: Any) -> bool:
        if not isinstance(context, dict):
            return False
        status = context.get("allocation_status")
        return getattr(status, "value", status) == target.value
    return evaluate


GUARD_EVALUATORS = {
    FULLY_ALLOCATED.name: _allocated_as(BillStatus.PAID),
    PARTIALLY_ALLOCATED.name: _allocated_as(BillStatus.PARTIALLY_PAID),
    UNALLOCATED.name: _allocated_as(BillStatus.OPEN),
}


def build_machine() -> WorkflowMachine:
    """Workflow machine wired with the payables guard evaluators."""
    return WorkflowMachine(GUARD_EVALUATORS)


# -----------------------------------------------------------------------------
# Bill Workflow
# -----------------------------------------------------------------------------

_B = BillStatus

BILL_WORKFLOW = Workflow(
    name="supplier_bill",
    description="Supplier bill lifecycle",
    initial_state=_B.OPEN.value,
    states=tuple(s.value for s in _B),
    transitions=(
        Transition(_B.OPEN.value, _B.PARTIALLY_PAID.value, action="settle", guard=PARTIALLY_ALLOCATED),
        Transition(_B.OPEN.value, _B.PAID.value, action="settle", guard=FULLY_ALLOCATED),
        Transition(_B.PARTIALLY_PAID.value, _B.PAID.value, action="settle", guard=FULLY_ALLOCATED),
        Transition(_B.PAID.value, _B.PARTIALLY_PAID.value, action="unsettle", guard=PARTIALLY_ALLOCATED),
        Transition(_B.PAID.value, _B.OPEN.value, action="unsettle", guard=UNALLOCATED),
        Transition(_B.PARTIALLY_PAID.value, _B.OPEN.value, action="unsettle", guard=UNALLOCATED),
        Transition(_B.OPEN.value, _B.VOID.value, action="void"),
        Transition(_B.PARTIALLY_PAID.value, _B.VOID.value, action="void"),
    ),
    terminal_states=(_B.VOID.value,),
)

logger.info(
    "bill_workflow_registered",
    extra={
        "workflow_name": BILL_WORKFLOW.name,
        "state_count": len(BILL_WORKFLOW.states),
        "transition_count": len(BILL_WORKFLOW.transitions),
        "initial_state": BILL_WORKFLOW.initial_state,
    },
)
