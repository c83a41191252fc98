"""
Collaborator contracts consumed by the distribution core.

Responsibility:
    Protocols (and the value objects they return) for everything the core
    does not own: the document store, the department directory, identity,
    the access policy and the notification/audit sink.  Concrete adapters
    live in ``distribution_services``.

Architecture position:
    Kernel > Domain -- pure interfaces, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from distribution_kernel.domain.documents import DocumentKind, DocumentRef

if TYPE_CHECKING:
    from distribution_kernel.domain.dtos import HistoryRecord


@dataclass(frozen=True)
class Department:
    id: UUID
    name: str
    location_code: str
    project: str | None = None


@dataclass(frozen=True)
class DocumentInfo:
    """What the document store knows about one invoice or additional document."""

    ref: DocumentRef
    number: str
    document_date: date | None = None
    amount: Decimal | None = None
    currency: str | None = None
    description: str | None = None
    location_code: str | None = None


@dataclass(frozen=True)
class Actor:
    actor_id: UUID
    department_id: UUID | None
    roles: tuple[str, ...] = ()
    name: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles


class DocumentStore(Protocol):
    """Authoritative store of invoices and additional documents."""

    def resolve(self, kind: DocumentKind, document_id: int) -> DocumentInfo | None:
        """Return the document, or None if it does not exist."""
        ...


class DepartmentDirectory(Protocol):
    def get(self, department_id: UUID) -> Department | None:
        ...


class IdentityProvider(Protocol):
    def get_actor(self, actor_id: UUID) -> Actor | None:
        """Return the actor with department affiliation and roles."""
        ...


class AccessPolicy(Protocol):
    """Authorization decisions the state machine delegates.

    Each method returns ``(allowed, reason)``; the reason is carried on the
    ``ForbiddenError`` when access is denied.
    """

    def can_act_for_department(
        self, actor_id: UUID, department_id: UUID, operation: str,
    ) -> tuple[bool, str]:
        ...

    def can_force_complete(self, actor_id: UUID) -> tuple[bool, str]:
        ...


class AuditSink(Protocol):
    """Receives a copy of every history record after commit."""

    def deliver(self, record: HistoryRecord) -> None:
        ...
