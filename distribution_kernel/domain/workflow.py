"""
Distribution workflow definition (``distribution_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the distribution state machine: statuses, the
transition table, which department side performs each action, and which
lifecycle timestamp each transition stamps.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* Every edge requires the current status to match ``from_state`` exactly;
  there is no path that skips a state (e.g. draft -> sent).
* ``completed`` and ``deleted`` are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DistributionStatus(str, Enum):
    """Distribution lifecycle states."""

    DRAFT = "draft"
    VERIFIED_SENDER = "verified_sender"
    SENT = "sent"
    RECEIVED = "received"
    VERIFIED_RECEIVER = "verified_receiver"
    COMPLETED = "completed"
    DELETED = "deleted"


class DepartmentSide(str, Enum):
    """Which end of the hand-off performs an action."""

    ORIGIN = "origin"
    DESTINATION = "destination"


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only -- the distribution service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in the distribution workflow.

    ``stamps`` names the Distribution timestamp column set (exactly once)
    when the transition fires.  ``performed_by`` is the department side whose
    members may trigger it.
    """
    from_state: DistributionStatus
    to_state: DistributionStatus
    action: str
    performed_by: DepartmentSide
    guard: Guard | None = None
    stamps: str | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: DistributionStatus
    states: tuple[DistributionStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[DistributionStatus, ...] = ()

    def transition_for(self, action: str) -> Transition:
        for transition in self.transitions:
            if transition.action == action:
                return transition
        raise KeyError(f"Unknown action: {action}")

    def actions_from(self, status: DistributionStatus) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == status)


ALL_DOCUMENTS_SENDER_VERIFIED = Guard(
    "all_documents_sender_verified",
    "Every attached document has a sender verification entry",
)
ALL_DOCUMENTS_RECEIVER_VERIFIED = Guard(
    "all_documents_receiver_verified",
    "Every attached document has a receiver verification entry",
)
NO_DISCREPANCIES_OR_FORCED = Guard(
    "no_discrepancies_or_forced",
    "has_discrepancies is false, or an elevated actor forces completion",
)

S = DistributionStatus

DISTRIBUTION_WORKFLOW = Workflow(
    name="distribution",
    description="Hand-off of a document bundle from one department to another",
    initial_state=S.DRAFT,
    states=tuple(DistributionStatus),
    transitions=(
        Transition(S.DRAFT, S.DRAFT, "attach_documents", DepartmentSide.ORIGIN),
        Transition(S.DRAFT, S.DRAFT, "detach_document", DepartmentSide.ORIGIN),
        Transition(S.DRAFT, S.DRAFT, "update", DepartmentSide.ORIGIN),
        Transition(
            S.DRAFT, S.VERIFIED_SENDER, "verify_sender", DepartmentSide.ORIGIN,
            guard=ALL_DOCUMENTS_SENDER_VERIFIED, stamps="sender_verified_at",
        ),
        Transition(
            S.VERIFIED_SENDER, S.SENT, "send", DepartmentSide.ORIGIN,
            stamps="sent_at",
        ),
        Transition(
            S.SENT, S.RECEIVED, "receive", DepartmentSide.DESTINATION,
            stamps="received_at",
        ),
        Transition(
            S.RECEIVED, S.VERIFIED_RECEIVER, "verify_receiver", DepartmentSide.DESTINATION,
            guard=ALL_DOCUMENTS_RECEIVER_VERIFIED, stamps="receiver_verified_at",
        ),
        Transition(
            S.VERIFIED_RECEIVER, S.COMPLETED, "complete", DepartmentSide.DESTINATION,
            guard=NO_DISCREPANCIES_OR_FORCED, stamps="completed_at",
        ),
        Transition(S.DRAFT, S.DELETED, "delete", DepartmentSide.ORIGIN),
    ),
    terminal_states=(S.COMPLETED, S.DELETED),
)

# Forward order of the main lifecycle; timestamps follow the same order.
LIFECYCLE_ORDER: tuple[DistributionStatus, ...] = (
    S.DRAFT,
    S.VERIFIED_SENDER,
    S.SENT,
    S.RECEIVED,
    S.VERIFIED_RECEIVER,
    S.COMPLETED,
)

TIMESTAMP_FIELDS: tuple[str, ...] = (
    "created_at",
    "sender_verified_at",
    "sent_at",
    "received_at",
    "receiver_verified_at",
    "completed_at",
)


def is_at_or_after(status: DistributionStatus, milestone: DistributionStatus) -> bool:
    """True if ``status`` has reached ``milestone`` on the main lifecycle."""
    if status not in LIFECYCLE_ORDER or milestone not in LIFECYCLE_ORDER:
        return False
    return LIFECYCLE_ORDER.index(status) >= LIFECYCLE_ORDER.index(milestone)
