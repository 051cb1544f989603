"""
Canonical workflow types (``materials_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines (MRR, purchase order,
material receipt).  Each workflow is a closed table of transitions, so every
(state, action) pair has exactly one outcome: a transition, or a typed
``InvalidStateTransitionError`` naming the current and the required states.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from materials_kernel.exceptions import InvalidStateTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``posts_ledger=True`` marks transitions that write a ledger entry
    (inventory or supplier) in the same transaction.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_ledger: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action} references unknown state "
                    f"({t.from_state!r} -> {t.to_state!r})"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state!r} has outgoing "
                    f"transition {t.action!r}"
                )

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions permitted from ``state``, in declaration order."""
        seen: list[str] = []
        for t in self.transitions:
            if t.from_state == state and t.action not in seen:
                seen.append(t.action)
        return tuple(seen)

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which ``action`` may fire."""
        seen: list[str] = []
        for t in self.transitions:
            if t.action == action and t.from_state not in seen:
                seen.append(t.from_state)
        return tuple(seen)

    def find(
        self, action: str, from_state: str, to_state: str | None = None
    ) -> Transition | None:
        for t in self.transitions:
            if t.action != action or t.from_state != from_state:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        return None

    def require(
        self,
        action: str,
        from_state: str,
        entity_id: object,
        error_cls: type[InvalidStateTransitionError] = InvalidStateTransitionError,
        to_state: str | None = None,
    ) -> Transition:
        """
        Return the transition for ``action`` from ``from_state``.

        Raises:
            error_cls: If the workflow has no such transition.  ``required``
                carries every state the action is allowed from.
        """
        transition = self.find(action, from_state, to_state)
        if transition is None:
            raise error_cls(
                entity_id=str(entity_id),
                action=action,
                actual=from_state,
                required=self.sources_for(action) or ("<none>",),
            )
        return transition
