"""
Canonical workflow types (``billing_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines plus the executor that
resolves ``(state, action)`` to a target state.  Quotations, invoices,
credit notes and supplier bills all declare their lifecycle with the
same Guard / Transition / Workflow types.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* A transition with a guard fires only when the guard evaluator for that
  guard name returns True for the supplied context.

Failure modes
-------------
* ``InvalidTransitionError`` when no transition matches, or when every
  matching transition is blocked by its guard.
* ``ValueError`` at construction when a workflow references an unknown
  state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from billing_kernel.exceptions import InvalidTransitionError
from billing_kernel.logging_config import get_logger

logger = get_logger("domain.workflow")


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- ``WorkflowMachine`` does,
    through the evaluator registered under ``name``.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``;
    ``terminal_states`` have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                f"is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in known or t.to_state not in known:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} "
                    f"references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has an outgoing transition {t.action!r}"
                )

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


GuardEvaluator = Callable[[Any], bool]


def _state_value(state: Any) -> str:
    # str-Enum statuses and plain strings are both accepted.
    return getattr(state, "value", state)


class WorkflowMachine:
    """
    Resolves workflow actions against a Workflow definition.

    Guard evaluators are looked up by guard name.  A guarded transition
    with no registered evaluator never fires (fail closed).
    """

    def __init__(self, guard_evaluators: Mapping[str, GuardEvaluator] | None = None):
        self._guards: dict[str, GuardEvaluator] = dict(guard_evaluators or {})

    def _guard_passes(self, transition: Transition, context: Any) -> bool:
        if transition.guard is None:
            return True
        evaluator = self._guards.get(transition.guard.name)
        if evaluator is None:
            return False
        return bool(evaluator(context))

    def apply(
        self,
        workflow: Workflow,
        current: Any,
        action: str,
        context: Any = None,
    ) -> str:
        """Return the target state for ``action`` from ``current``.

        Raises:
            InvalidTransitionError: No (unblocked) transition matches.
        """
        state = _state_value(current)
        for t in workflow.transitions:
            if t.from_state == state and t.action == action:
                if self._guard_passes(t, context):
                    logger.info(
                        "workflow_transition",
                        extra={
                            "workflow": workflow.name,
                            "action": action,
                            "from_state": state,
                            "to_state": t.to_state,
                        },
                    )
                    return t.to_state
                logger.info(
                    "workflow_guard_blocked",
                    extra={
                        "workflow": workflow.name,
                        "action": action,
                        "from_state": state,
                        "guard": t.guard.name if t.guard else None,
                    },
                )
        raise InvalidTransitionError(workflow.name, state, action)

    def allowed_actions(
        self,
        workflow: Workflow,
        state: Any,
        context: Any = None,
    ) -> tuple[str, ...]:
        """Actions that would succeed from ``state``, in declaration order."""
        current = _state_value(state)
        seen: list[str] = []
        for t in workflow.transitions:
            if (
                t.from_state == current
                and t.action not in seen
                and self._guard_passes(t, context)
            ):
                seen.append(t.action)
        return tuple(seen)

    def can_apply(self, workflow: Workflow, current: Any, action: str, context: Any = None) -> bool:
        return action in self.allowed_actions(workflow, current, context)
