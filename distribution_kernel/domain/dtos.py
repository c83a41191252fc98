"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable projections returned by every core operation: the
    distribution aggregate (``DistributionView``), history records, the
    transmittal advice, custody movements, report summaries, and the
    list/filter/page types used by the read side.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods exist as boundary converters but are only
    invoked from the service and selector layers (never from domain logic).

Invariants enforced:
    - Every operation returns the updated aggregate, so callers never need
      to re-fetch after a mutation.
    - ``TransmittalAdvice.to_content_dict()`` is the exact payload hashed
      into ``content_hash``; it contains no live data.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from uuid import UUID

from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.verification import VerificationStatus
from distribution_kernel.domain.workflow import DistributionStatus

if TYPE_CHECKING:
    from distribution_kernel.models.custody import DocumentMovement as DocumentMovementModel
    from distribution_kernel.models.distribution import Distribution as DistributionModel
    from distribution_kernel.models.distribution import (
        DistributionType as DistributionTypeModel,
    )
    from distribution_kernel.models.history import HistoryEntry as HistoryEntryModel

T = TypeVar("T")


# =========================================================================
# Distribution aggregate
# =========================================================================


@dataclass(frozen=True)
class DistributionTypeInfo:
    id: UUID
    code: str
    name: str
    priority: int
    color: str

    @classmethod
    def from_model(cls, model: DistributionTypeModel) -> DistributionTypeInfo:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            priority=model.priority,
            color=model.color,
        )


@dataclass(frozen=True)
class DistributionWarning:
    """Non-blocking finding returned alongside an aggregate."""

    type: str
    message: str
    document_ref: DocumentRef | None = None
    expected_location: str | None = None
    actual_location: str | None = None


@dataclass(frozen=True)
class DistributionView:
    """The distribution aggregate as callers see it."""

    id: UUID
    distribution_number: str
    type: DistributionTypeInfo
    origin_department_id: UUID
    destination_department_id: UUID
    status: DistributionStatus
    has_discrepancies: bool
    created_by: UUID
    notes: str | None
    documents: tuple[DocumentRef, ...]
    created_at: datetime
    sender_verified_at: datetime | None = None
    sent_at: datetime | None = None
    received_at: datetime | None = None
    receiver_verified_at: datetime | None = None
    completed_at: datetime | None = None
    sender_verified_by: UUID | None = None
    receiver_verified_by: UUID | None = None
    version: int = 1
    warnings: tuple[DistributionWarning, ...] = ()

    @classmethod
    def from_model(
        cls,
        model: DistributionModel,
        warnings: tuple[DistributionWarning, ...] = (),
    ) -> DistributionView:
        return cls(
            id=model.id,
            distribution_number=model.distribution_number,
            type=DistributionTypeInfo.from_model(model.distribution_type),
            origin_department_id=model.origin_department_id,
            destination_department_id=model.destination_department_id,
            status=DistributionStatus(model.status),
            has_discrepancies=model.has_discrepancies,
            created_by=model.created_by,
            notes=model.notes,
            documents=tuple(doc.ref for doc in model.documents),
            created_at=model.created_at,
            sender_verified_at=model.sender_verified_at,
            sent_at=model.sent_at,
            received_at=model.received_at,
            receiver_verified_at=model.receiver_verified_at,
            completed_at=model.completed_at,
            sender_verified_by=model.sender_verified_by,
            receiver_verified_by=model.receiver_verified_by,
            version=model.version,
            warnings=warnings,
        )

    def with_warnings(self, warnings: tuple[DistributionWarning, ...]) -> DistributionView:
        return replace(self, warnings=warnings)


@dataclass(frozen=True)
class DeletedDistribution:
    """Result of a hard delete: the archive row that replaced the aggregate."""

    distribution_id: UUID
    distribution_number: str
    archive_id: UUID
    deleted_at: datetime
    deleted_by: UUID


# =========================================================================
# History
# =========================================================================


@dataclass(frozen=True)
class HistoryRecord:
    id: UUID
    distribution_id: UUID
    seq: int
    action: str
    actor_id: UUID
    occurred_at: datetime
    detail: dict[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str

    @classmethod
    def from_model(cls, model: HistoryEntryModel) -> HistoryRecord:
        return cls(
            id=model.id,
            distribution_id=model.distribution_id,
            seq=model.seq,
            action=model.action,
            actor_id=model.actor_id,
            occurred_at=model.occurred_at,
            detail=dict(model.detail or {}),
            payload_hash=model.payload_hash,
            prev_hash=model.prev_hash,
            hash=model.hash,
        )


# =========================================================================
# Transmittal advice
# =========================================================================


@dataclass(frozen=True)
class AdviceParty:
    """Department block printed on the advice."""

    id: UUID
    name: str
    location_code: str
    project: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "location_code": self.location_code,
            "project": self.project,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdviceParty:
        return cls(
            id=UUID(data["id"]),
            name=data["name"],
            location_code=data["location_code"],
            project=data.get("project"),
        )


@dataclass(frozen=True)
class AdviceDocument:
    ref: DocumentRef
    sender_status: VerificationStatus | None
    number: str | None = None
    description: str | None = None
    document_date: date | None = None
    amount: Decimal | None = None
    currency: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ref": self.ref.to_dict(),
            "sender_status": self.sender_status.value if self.sender_status else None,
            "number": self.number,
            "description": self.description,
            "date": self.document_date.isoformat() if self.document_date else None,
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdviceDocument:
        status = data.get("sender_status")
        raw_date = data.get("date")
        raw_amount = data.get("amount")
        return cls(
            ref=DocumentRef.from_dict(data["ref"]),
            sender_status=VerificationStatus(status) if status else None,
            number=data.get("number"),
            description=data.get("description"),
            document_date=date.fromisoformat(raw_date) if raw_date else None,
            amount=Decimal(raw_amount) if raw_amount is not None else None,
            currency=data.get("currency"),
        )


@dataclass(frozen=True)
class TransmittalAdvice:
    """
    Send-time snapshot of a distribution.

    ``content_hash`` covers ``to_content_dict()``; ``qr_code_data`` embeds
    the number and a hash prefix so a printed copy can be checked against
    the stored one.
    """

    distribution_id: UUID
    distribution_number: str
    distribution_date: datetime
    type_code: str
    type_name: str
    type_color: str
    origin: AdviceParty
    destination: AdviceParty
    creator: UUID
    documents: tuple[AdviceDocument, ...]
    notes: str | None
    generated_at: datetime
    content_hash: str = ""
    qr_code_data: str = ""
    is_preview: bool = False

    @property
    def total_documents(self) -> int:
        return len(self.documents)

    @property
    def document_refs(self) -> tuple[DocumentRef, ...]:
        return tuple(doc.ref for doc in self.documents)

    def to_content_dict(self) -> dict[str, Any]:
        return {
            "distribution_id": str(self.distribution_id),
            "distribution_number": self.distribution_number,
            "distribution_date": self.distribution_date.isoformat(),
            "type": {
                "code": self.type_code,
                "name": self.type_name,
                "color": self.type_color,
            },
            "origin": self.origin.to_dict(),
            "destination": self.destination.to_dict(),
            "creator": str(self.creator),
            "documents": [doc.to_dict() for doc in self.documents],
            "total_documents": self.total_documents,
            "notes": self.notes,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_content_dict(
        cls,
        data: dict[str, Any],
        content_hash: str = "",
        qr_code_data: str = "",
    ) -> TransmittalAdvice:
        return cls(
            distribution_id=UUID(data["distribution_id"]),
            distribution_number=data["distribution_number"],
            distribution_date=datetime.fromisoformat(data["distribution_date"]),
            type_code=data["type"]["code"],
            type_name=data["type"]["name"],
            type_color=data["type"]["color"],
            origin=AdviceParty.from_dict(data["origin"]),
            destination=AdviceParty.from_dict(data["destination"]),
            creator=UUID(data["creator"]),
            documents=tuple(AdviceDocument.from_dict(d) for d in data["documents"]),
            notes=data.get("notes"),
            generated_at=datetime.fromisoformat(data["generated_at"]),
            content_hash=content_hash,
            qr_code_data=qr_code_data,
        )


# =========================================================================
# Custody
# =========================================================================


@dataclass(frozen=True)
class CustodyMovement:
    document_ref: DocumentRef
    from_location: str | None
    to_location: str
    distribution_id: UUID
    moved_by: UUID
    moved_at: datetime
    reason: str
    seq: int

    @classmethod
    def from_model(cls, model: DocumentMovementModel) -> CustodyMovement:
        return cls(
            document_ref=model.ref,
            from_location=model.from_location,
            to_location=model.to_location,
            distribution_id=model.distribution_id,
            moved_by=model.moved_by,
            moved_at=model.moved_at,
            reason=model.reason,
            seq=model.seq,
        )


# =========================================================================
# Read side
# =========================================================================


@dataclass(frozen=True)
class TimelineSummary:
    total_actions: int
    current_status: DistributionStatus
    created_at: datetime
    last_action_at: datetime | None
    is_complete: bool
    has_discrepancies: bool


@dataclass(frozen=True)
class DocumentSummary:
    total_invoices: int
    total_additional_documents: int
    total_documents: int


@dataclass(frozen=True)
class DistributionReport:
    distribution: DistributionView
    timeline_summary: TimelineSummary
    document_summary: DocumentSummary
    history: tuple[HistoryRecord, ...]


@dataclass(frozen=True)
class DistributionFilters:
    status: DistributionStatus | None = None
    type_id: UUID | None = None
    origin_department_id: UUID | None = None
    destination_department_id: UUID | None = None
    created_by: UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None
    page: int = 1
    per_page: int = 15

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if not 1 <= self.per_page <= 100:
            raise ValueError(f"per_page must be between 1 and 100, got {self.per_page}")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.per_page))

    @property
    def has_next(self) -> bool:
        return self.page < self.pages
