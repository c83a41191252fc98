"""
In-memory collaborators.

Reference implementations of the kernel's collaborator protocols backed
by plain dicts, for tests, demos and local development.
"""

from __future__ import annotations

from uuid import UUID

from distribution_kernel.domain.documents import DocumentKind, DocumentRef
from distribution_kernel.domain.dtos import HistoryRecord
from distribution_kernel.domain.ports import Actor, Department, DocumentInfo
from distribution_services.notifications import Notification, notification_for


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self._documents: dict[DocumentRef, DocumentInfo] = {}

    def add(self, info: DocumentInfo) -> DocumentInfo:
        self._documents[info.ref] = info
        return info

    def move(self, ref: DocumentRef, location_code: str) -> None:
        info = self._documents[ref]
        self._documents[ref] = DocumentInfo(
            ref=info.ref,
            number=info.number,
            document_date=info.document_date,
            amount=info.amount,
            currency=info.currency,
            description=info.description,
            location_code=location_code,
        )

    def resolve(self, kind: DocumentKind, document_id: int) -> DocumentInfo | None:
        return self._documents.get(DocumentRef(kind, document_id))


class InMemoryDepartmentDirectory:
    def __init__(self) -> None:
        self._departments: dict[UUID, Department] = {}

    def add(self, department: Department) -> Department:
        self._departments[department.id] = department
        return department

    def get(self, department_id: UUID) -> Department | None:
        return self._departments.get(department_id)


class InMemoryIdentityProvider:
    def __init__(self) -> None:
        self._actors: dict[UUID, Actor] = {}

    def add(self, actor: Actor) -> Actor:
        self._actors[actor.actor_id] = actor
        return actor

    def get_actor(self, actor_id: UUID) -> Actor | None:
        return self._actors.get(actor_id)


class RecordingSink:
    """Audit sink that keeps every delivered record and its notification."""

    def __init__(self) -> None:
        self.records: list[HistoryRecord] = []
        self.notifications: list[Notification] = []

    def deliver(self, record: HistoryRecord) -> None:
        self.records.append(record)
        notification = notification_for(record)
        if notification is not None:
            self.notifications.append(notification)

    @property
    def actions(self) -> list[str]:
        return [record.action for record in self.records]
