"""
Canonical workflow types (``movement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the movement state machines.  Procurement and
transfer both declare a ``Workflow`` built from these types so the
transition table is defined once per workflow and checked centrally by
``movement_kernel.domain.authorization``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* At most one transition per (from_state, action) pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LedgerEffect(str, Enum):
    """Stock side effect attached to a transition edge."""

    INCREASE_DESTINATION = "increase_destination"
    DECREASE_ORIGIN = "decrease_origin"
    RESTORE_ORIGIN = "restore_origin"


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class RoleRequirement:
    """A role an actor may hold to fire a transition.

    ``scope_field`` names the request attribute (``origin_branch_id``,
    ``destination_id``) the role grant must be scoped to.  ``None`` means any
    grant of the role qualifies.
    """
    role: str
    scope_field: str | None = None


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``roles`` is an any-of list.  ``allow_requester``
    additionally lets the request's own requester fire the edge.
    ``ledger_effect`` marks the edges that move stock.
    """
    from_state: str
    to_state: str
    action: str
    roles: tuple[RoleRequirement, ...] = ()
    allow_requester: bool = False
    guard: Guard | None = None
    ledger_effect: LedgerEffect | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a movement request lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            for state in (t.from_state, t.to_state):
                if state not in self.states:
                    raise ValueError(
                        f"Workflow {self.name}: transition {t.action!r} "
                        f"references unknown state {state!r}"
                    )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action!r}"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition {key!r}"
                )
            seen.add(key)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


def find_transition(workflow: Workflow, state: str, action: str) -> Transition | None:
    """Return the edge leaving ``state`` via ``action``, if one exists."""
    for t in workflow.transitions:
        if t.from_state == state and t.action == action:
            return t
    return None


def actions_from(workflow: Workflow, state: str) -> tuple[str, ...]:
    """Actions legal from ``state``, in declaration order."""
    return tuple(t.action for t in workflow.transitions if t.from_state == state)
