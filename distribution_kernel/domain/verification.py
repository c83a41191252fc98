"""
Verification ledger value objects (``distribution_kernel.domain.verification``).

Responsibility
--------------
Frozen DTOs describing what a sender or receiver asserted about each
document: the per-call input, the per-side sub-record, the per-document
entry, and the summary returned by a ledger write.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.exceptions import InvalidVerificationStatusError


class VerificationStatus(str, Enum):
    """Physical/administrative condition asserted for a document."""

    OK = "ok"
    MISSING = "missing"
    DAMAGED = "damaged"

    @classmethod
    def parse(cls, value: VerificationStatus | str | None) -> VerificationStatus:
        """Read a caller-supplied status; an empty value means ``ok``."""
        if isinstance(value, VerificationStatus):
            return value
        if value is None or value == "":
            return cls.OK
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidVerificationStatusError(str(value)) from None


class VerificationSide(str, Enum):
    """Which party recorded the verification."""

    SENDER = "sender"
    RECEIVER = "receiver"


@dataclass(frozen=True)
class VerificationInput:
    """One document's verification within a ledger call."""

    document_ref: DocumentRef
    status: VerificationStatus = VerificationStatus.OK
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", VerificationStatus.parse(self.status))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VerificationInput:
        """Accepts ``{"document_type", "document_id", "status", "notes"}`` payloads."""
        ref = data.get("document_ref")
        match ref:
            case DocumentRef():
                pass
            case Mapping():
                ref = DocumentRef.from_dict(ref)
            case _:
                ref = DocumentRef.from_dict(data)
        return cls(
            document_ref=ref,
            status=VerificationStatus.parse(data.get("status")),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class SideRecord:
    """One side's verification of one document."""

    verified: bool = False
    status: VerificationStatus | None = None
    notes: str | None = None
    verified_at: datetime | None = None
    verified_by: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "status": self.status.value if self.status else None,
            "notes": self.notes,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "verified_by": str(self.verified_by) if self.verified_by else None,
        }


@dataclass(frozen=True)
class VerificationEntryView:
    """Ledger entry for one attached document, both sides."""

    document_ref: DocumentRef
    position: int
    sender: SideRecord = field(default_factory=SideRecord)
    receiver: SideRecord = field(default_factory=SideRecord)

    def side(self, side: VerificationSide) -> SideRecord:
        match side:
            case VerificationSide.SENDER:
                return self.sender
            case VerificationSide.RECEIVER:
                return self.receiver

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_ref": self.document_ref.to_dict(),
            "position": self.position,
            "sender": self.sender.to_dict(),
            "receiver": self.receiver.to_dict(),
        }


@dataclass(frozen=True)
class VerificationSummary:
    """Result of a ledger write: the merged state of one side."""

    distribution_id: UUID
    side: VerificationSide
    entries: tuple[VerificationEntryView, ...]
    recorded: tuple[DocumentRef, ...]

    @property
    def total_documents(self) -> int:
        return len(self.entries)

    @property
    def verified_count(self) -> int:
        return sum(1 for e in self.entries if e.side(self.side).verified)

    @property
    def pending(self) -> tuple[DocumentRef, ...]:
        return tuple(e.document_ref for e in self.entries if not e.side(self.side).verified)

    @property
    def is_complete(self) -> bool:
        return self.total_documents > 0 and not self.pending

    @property
    def status_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in VerificationStatus}
        for entry in self.entries:
            record = entry.side(self.side)
            if record.verified and record.status is not None:
                counts[record.status.value] += 1
        return counts
