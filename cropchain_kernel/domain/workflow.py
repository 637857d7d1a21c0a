"""
Canonical workflow types (``cropchain_kernel.domain.workflow``).

Pure value objects for the crop batch and transport task state machines,
plus the lookups every service uses before touching a status column.
ZERO I/O.  No imports from ``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from cropchain_kernel.domain.roles import Role


@dataclass(frozen=True)
class Guard:
    """A named prerequisite that must hold before a transition fires.

    Descriptive only; the service applying the transition evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A legal edge in a workflow.

    ``roles`` restricts the edge to specific roles when non-empty; an empty
    tuple means any role whose target set includes ``to_state`` may use it.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    roles: tuple[Role, ...] = ()

    def __post_init__(self) -> None:
        # Status enums are stored by value
        for name in ("from_state", "to_state"):
            value = getattr(self, name)
            object.__setattr__(self, name, getattr(value, "value", value))

    def permits(self, role: Role) -> bool:
        return not self.roles or role in self.roles


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} uses unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state} has an exit")

    def successors(self, state: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions if t.from_state == state)

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def reachable_from_initial(self) -> frozenset[str]:
        seen = {self.initial_state}
        frontier = [self.initial_state]
        while frontier:
            for nxt in self.successors(frontier.pop()):
                if nxt not in seen:
                    seen.add(nxt)
                    frontier.append(nxt)
        return frozenset(seen)
