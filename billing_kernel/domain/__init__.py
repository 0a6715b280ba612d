"""Pure domain layer of the billing kernel: values, clock, workflow types."""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.workflow import (
    Guard,
    Transition,
    Workflow,
    WorkflowMachine,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
    "WorkflowMachine",
]
